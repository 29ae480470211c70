"""Enqueue a message to a queue.

CLI that creates the queue if needed and sends a JSON message to it.
"""

import json

import click

from pgmq_tx.cli import get_dsn, queue_exists
from pgmq_tx.client import PGMQClient
from pgmq_tx.envelope import DataDTO
from pgmq_tx.errors import PGMQError


@click.command()
@click.option(
    "--queue-name",
    type=str,
    required=True,
    help="The name of the queue to enqueue the message to",
)
@click.option("--message", type=str, required=True, help="The message to enqueue (JSON)")
@click.option("--delay", type=click.IntRange(min=0), default=0, help="Seconds before the message becomes visible")
@click.option("--dsn", type=str, required=False, help="The DSN of the database to use")
def main(queue_name: str, message: str, delay: int, dsn: str) -> None:
    """Enqueue a JSON message to the specified queue; creates the queue if it does not exist."""
    click.echo(f"queue-name: {queue_name}")
    click.echo(f"message: {message}")

    try:
        data = json.loads(message)
    except json.JSONDecodeError as err:
        raise click.ClickException(f"Invalid JSON: {message}") from err
    if not isinstance(data, dict):
        raise click.ClickException(f"Message must be a JSON object: {message}")

    client = PGMQClient(dsn=get_dsn(dsn))
    try:
        envelope = DataDTO(data=data, meta={"queue_name": queue_name})

        def create_and_send(tx):
            if not queue_exists(tx, queue_name):
                tx.create_queue(queue_name)
            return tx.send(queue_name, envelope.model_dump(), delay or None)

        message_id = client.transaction(create_and_send)
        click.echo(f"Message enqueued with ID: {message_id}")
    except PGMQError as e:
        raise click.ClickException(f"Error: {e}") from e
    finally:
        client.close()


if __name__ == "__main__":
    main()
