"""Command line tools built on PGMQClient."""

import os

import click
import dotenv


def get_dsn(dsn: str | None) -> str:
    """Return ``dsn`` or fall back to ``.env`` / ``PGMQ_DSN``; raise ClickException if none."""
    if dsn:
        return dsn
    if os.path.exists(".env"):
        dotenv.load_dotenv()
    dsn = os.getenv("PGMQ_DSN")
    if not dsn:
        raise click.ClickException("No DSN provided and PGMQ_DSN environment variable is not set")
    return dsn


def queue_exists(client, queue_name: str) -> bool:
    """Return True if the given queue exists."""
    return any(q.queue_name == queue_name for q in client.list_queues())
