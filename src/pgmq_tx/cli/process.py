"""Process messages from one or more queues.

This module provides a CLI that polls queues, validates and/or handles each
message via per-queue handlers, and archives or deletes it. A message whose
handler fails is re-enqueued with error metadata and a configurable
visibility delay; the re-send and the removal of the original happen in one
transaction.
"""

import importlib
import os
import sys
import time
import traceback
from typing import Any

import click

from pgmq_tx.bound import PGMQTransactionClient
from pgmq_tx.cli import get_dsn
from pgmq_tx.client import PGMQClient
from pgmq_tx.envelope import DataDTO
from pgmq_tx.errors import PGMQError
from pgmq_tx.models import MessageRecord


def get_handlers(
    queue_names: list[str],
    queues: list[str],
    validate_only: bool = False,
    handlers_path: list[str] | None = None,
) -> dict[str, Any]:
    """Load and return the handler instance for each queue name.

    Args:
        queue_names: Queue names to load handlers for.
        queues: Names of the queues that exist in the database.
        validate_only: If True, require each handler to have a validate method.
        handlers_path: Directories containing a ``handlers`` package.
    Returns:
        Mapping of queue name to handler instance.

    Raises:
        click.ClickException: If a queue does not exist or (when validate_only)
            a handler has no validate method.
    """
    for path in handlers_path or []:
        if os.path.exists(path) and path not in sys.path:
            sys.path.append(path)

    handlers: dict[str, Any] = {}
    for q in queue_names:
        if q not in queues:
            raise click.ClickException(f"Queue {q} does not exist")
        handler_module = importlib.import_module(f"handlers.{q}")
        handler = handler_module.Handler()
        if validate_only and not hasattr(handler, "validate"):
            raise click.ClickException(f"No validator for queue: {q}")
        handlers[q] = handler
    return handlers


def validate_message(message: dict, handlers: dict[str, Any], q: str) -> None:
    """Run the queue handler's validate method on the message, if present."""
    if hasattr(handlers[q], "validate"):
        handlers[q].validate(message)


def handle_message(message: dict, handlers: dict[str, Any], q: str) -> None:
    """Validate and then handle the message with the queue's handler."""
    validate_message(message, handlers, q)
    handlers[q].handle(message)


def requeue_with_error(
    tx: PGMQTransactionClient,
    queue_name: str,
    record: MessageRecord,
    error: Exception,
    visibility_timeout: int,
) -> int:
    """Re-send the message with error metadata and delete the original.

    The copy only becomes visible after ``visibility_timeout`` seconds, so it
    is retried in a later run. Returns the id of the copy.
    """
    envelope = DataDTO.from_record(record, queue_name).failed(
        record.msg_id, str(error), "".join(traceback.format_exception(error))
    )
    error_message_id = tx.send(queue_name, envelope.model_dump(), visibility_timeout or None)
    tx.delete_message(queue_name, record.msg_id)
    return error_message_id


def process_queue(client: PGMQClient, q: str, handlers: dict[str, Any], **options: Any) -> int:
    """Process messages from one queue until it is idle or a limit is hit; return the count read."""
    # Cap runtime and message count so we don't overrun and miss future jobs.
    queue_start_time = time.time()
    message_count = 0
    while time.time() - queue_start_time < options["max_runtime"] and message_count < options["max_messages"]:
        records = client.read_with_poll(
            q,
            options["visibility_timeout"],
            qty=1,
            max_poll_seconds=options["poll_seconds"],
            poll_interval_ms=options["poll_interval_ms"],
        )
        if not records:
            break
        record = records[0]
        message_count += 1

        if options["validate_only"]:
            try:
                validate_message(record.message, handlers, q)
            except Exception as e:
                click.secho(f"Validation error: {e}", err=True, fg="red")
                click.secho(f"Stack trace: {traceback.format_exc()}", err=True, fg="red")
                click.secho(f"Message: {record.message.get('data')}", err=True, fg="red")
            continue

        try:
            handle_message(record.message, handlers, q)
        except Exception as e:
            click.secho(f"Error handling message: {e}", err=True, fg="red")
            error_message_id = client.transaction(
                lambda tx: requeue_with_error(tx, q, record, e, options["error_visibility_timeout"])
            )
            click.secho(f"Error message re-enqueued with ID: {error_message_id}", fg="green")
            continue

        if options["delete_messages"]:
            client.delete_message(q, record.msg_id)
        else:
            client.archive(q, record.msg_id)
    return message_count


@click.command()
@click.option("--dsn", type=str, required=False, help="The DSN of the database to use")
@click.option(
    "--max-messages",
    type=int,
    default=100,
    help="Maximum number of messages to process per queue",
)
@click.option("--max-runtime", type=int, default=600, help="Maximum runtime per queue in seconds")
@click.option(
    "--visibility-timeout",
    type=int,
    default=300,
    help="Visibility timeout in seconds for read messages",
)
@click.option(
    "--error-visibility-timeout",
    type=int,
    default=601,
    help="Visibility delay in seconds for re-queued error messages",
)
@click.option("--poll-seconds", type=int, default=5, help="How long to wait for a message before moving on")
@click.option("--poll-interval-ms", type=int, default=100, help="How often the database checks for messages")
@click.option(
    "--queue-names",
    type=str,
    required=True,
    multiple=True,
    help="The name of a queue to process messages from, can be used multiple times",
)
@click.option(
    "--delete-messages",
    is_flag=True,
    default=False,
    help="Delete messages after processing, default is to archive them",
)
@click.option(
    "--validate-only",
    is_flag=True,
    help="Only validate the messages, do not process them",
)
@click.option(
    "--handlers-path",
    type=str,
    required=True,
    help="The path to a directory with a handlers directory, multiple allowed",
    multiple=True,
)
def main(**kwargs: Any) -> None:
    """Process messages from the given queues.

    Polls each named queue, validates and/or handles each message with the
    corresponding handler, then archives or deletes it. With --validate-only,
    only validation is run and messages are neither handled nor removed.

    Visibility timeouts should be longer than the expected processing time
    per message; when the timeout expires, the message becomes visible again
    (e.g. if the processor died). Set error_visibility_timeout longer than
    max_runtime so failed messages re-enter in the next run cycle.
    """
    queue_names = list(kwargs.pop("queue_names"))
    handlers_path = list(kwargs.pop("handlers_path"))
    dsn = get_dsn(kwargs.pop("dsn"))

    client = PGMQClient(dsn=dsn)
    try:
        queues = [info.queue_name for info in client.list_queues()]
        handlers = get_handlers(
            queue_names,
            queues,
            validate_only=kwargs["validate_only"],
            handlers_path=handlers_path,
        )
        for q in queue_names:
            count = process_queue(client, q, handlers, **kwargs)
            click.echo(f"Queue {q}: {count} messages read")
    except PGMQError as e:
        raise click.ClickException(f"Error: {e}") from e
    finally:
        client.close()


if __name__ == "__main__":
    main()
