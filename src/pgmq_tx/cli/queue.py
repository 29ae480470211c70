"""Manage a queue: create, inspect, purge or destroy it.

CLI that performs one administrative action against a named queue.
"""

import click
from icecream import ic

from pgmq_tx.cli import get_dsn
from pgmq_tx.client import PGMQClient
from pgmq_tx.errors import PGMQError

ACTIONS = ["create", "create-unlogged", "create-partitioned", "status", "list", "destroy", "purge", "detach-archive"]


@click.command()
@click.option("--queue-name", type=str, required=True, help="The name of the queue to act on")
@click.option("--dsn", type=str, required=False, help="The DSN of the database to use")
@click.option("--action", type=str, required=True, help="The action to perform on the queue")
@click.option("--partition-interval", type=str, default="10000", help="Partition size for create-partitioned")
@click.option("--retention-interval", type=str, default="100000", help="Retention for create-partitioned")
def main(
    queue_name: str,
    dsn: str,
    action: str,
    partition_interval: str,
    retention_interval: str,
) -> bool | dict | int | None:
    """Perform ACTION on the specified queue (create, status, destroy, purge, ...)."""
    click.echo(f"Queue {queue_name} {action}")
    if action not in ACTIONS:
        raise click.ClickException(f"Invalid action: {action}. Valid actions are: {', '.join(ACTIONS)}")

    client = PGMQClient(dsn=get_dsn(dsn))
    try:
        match action:
            case "create":
                client.create_queue(queue_name)
                click.echo(f"Queue {queue_name} created")
            case "create-unlogged":
                client.create_unlogged_queue(queue_name)
                click.echo(f"Queue {queue_name} created (unlogged)")
            case "create-partitioned":
                client.create_partitioned_queue(queue_name, partition_interval, retention_interval)
                click.echo(f"Queue {queue_name} created (partitioned)")
            case "status":
                metrics = client.metrics(queue_name)
                ic(metrics.model_dump())
                return metrics.model_dump()
            case "list":
                for info in client.list_queues():
                    click.echo(info.queue_name)
            case "destroy":
                existed = client.drop_queue(queue_name)
                click.echo(f"Queue {queue_name} destroyed" if existed else f"Queue {queue_name} did not exist")
                return existed
            case "purge":
                purged_count = client.purge_queue(queue_name)
                click.echo(f"Queue {queue_name} purged ({purged_count} messages)")
                return purged_count
            case "detach-archive":
                client.detach_archive(queue_name)
                click.echo(f"Queue {queue_name} archive detached")
    except PGMQError as e:
        raise click.ClickException(f"Error: {e}") from e
    finally:
        client.close()
    return None


if __name__ == "__main__":
    main()
