"""Convenience client that opens a transaction per call.

Connects via a Postgres DSN (or an existing psycopg_pool.ConnectionPool) and
runs each queue operation in its own transaction. Use ``transaction`` or
``session`` to group several operations into one atomic unit.

Example::

    with PGMQClient(dsn="postgresql://localhost/app") as client:
        client.create_queue("emails")
        msg_id = client.send("emails", {"to": "user@example.com"})

        def move(tx):
            [record] = tx.pop("emails")
            return tx.send("emails_sent", record.message)

        client.transaction(move)
"""

import contextvars
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from psycopg_pool import ConnectionPool
from pydantic import PostgresDsn

from pgmq_tx import operations
from pgmq_tx.bound import PGMQTransactionClient
from pgmq_tx.config import Settings, get_settings
from pgmq_tx.errors import NestedTransactionError, PGMQError
from pgmq_tx.logger import create_logger
from pgmq_tx.models import Delay, MessageRecord, QueueInfo, QueueMetrics, Task
from pgmq_tx.transaction import transaction_scope

T = TypeVar("T")

# Clients with a session open in the current context.
_active_clients: contextvars.ContextVar[frozenset[int]] = contextvars.ContextVar(
    "pgmq_tx_active_clients", default=frozenset()
)


class PGMQClient:
    """Queue client over a connection pool; every method is its own transaction.

    When no pool is passed, one is created from ``dsn`` (or ``PGMQ_DSN``) and
    closed by ``close``. A borrowed pool is left open.
    """

    def __init__(
        self,
        dsn: PostgresDsn | str | None = None,
        pool: ConnectionPool | None = None,
        min_size: int = 1,
        max_size: int = 4,
        verbose: bool = False,
        log_filename: str | None = None,
    ) -> None:
        """Connect to PostgreSQL using the given pool, DSN or settings default."""
        self.logger = create_logger("pgmq_tx", verbose=verbose, log_filename=log_filename)
        self._owns_pool = pool is None
        if pool is None:
            raw = dsn or get_settings().pgmq_dsn
            if not raw:
                raise PGMQError("No DSN provided and PGMQ_DSN environment variable is not set")
            pool = ConnectionPool(
                conninfo=str(raw),
                min_size=min_size,
                max_size=max_size,
                kwargs={"autocommit": True},
                open=True,
            )
        self._pool = pool

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PGMQClient":
        """Build a client from pydantic settings (``PGMQ_DSN`` and friends)."""
        settings = settings or get_settings()
        return cls(
            dsn=settings.pgmq_dsn,
            min_size=settings.pgmq_pool_min_size,
            max_size=settings.pgmq_pool_max_size,
            verbose=settings.pgmq_verbose,
            log_filename=settings.pgmq_log_filename,
        )

    @property
    def pool(self) -> ConnectionPool:
        """Expose the underlying connection pool."""
        return self._pool

    def close(self) -> None:
        """Close the connection pool if this client created it."""
        if self._owns_pool and self._pool is not None:
            self._pool.close()

    def __enter__(self) -> "PGMQClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def session(self) -> Iterator[PGMQTransactionClient]:
        """Yield a client bound to one transaction on a pooled connection."""
        active = _active_clients.get()
        if id(self) in active:
            raise NestedTransactionError(
                "a transaction of this client is already open in this context; "
                "use the bound client passed to it instead"
            )
        token = _active_clients.set(active | {id(self)})
        try:
            with self._pool.connection() as conn:
                with transaction_scope(conn) as tx:
                    yield tx
        finally:
            _active_clients.reset(token)

    def transaction(self, callback: Callable[[PGMQTransactionClient], T]) -> T:
        """Run ``callback`` with a bound client inside one transaction and return its result."""
        with self.session() as tx:
            return callback(tx)

    # Convenience methods, one transaction each

    def send(self, queue: str, msg: Task, delay: Delay | None = None) -> int:
        return self.transaction(lambda tx: tx.send(queue, msg, delay))

    def send_batch(self, queue: str, msgs: list[Task], delay: Delay | None = None) -> list[int]:
        return self.transaction(lambda tx: tx.send_batch(queue, msgs, delay))

    def read(self, queue: str, vt: int, qty: int = 1, conditional: Task | None = None) -> list[MessageRecord]:
        return self.transaction(lambda tx: tx.read(queue, vt, qty, conditional))

    def read_with_poll(
        self,
        queue: str,
        vt: int,
        qty: int = 1,
        max_poll_seconds: int = 5,
        poll_interval_ms: int = 100,
        conditional: Task | None = None,
    ) -> list[MessageRecord]:
        """Polling read; holds a pooled connection for up to ``max_poll_seconds``."""
        return self.transaction(
            lambda tx: tx.read_with_poll(queue, vt, qty, max_poll_seconds, poll_interval_ms, conditional)
        )

    def pop(self, queue: str) -> list[MessageRecord]:
        return self.transaction(lambda tx: tx.pop(queue))

    def delete_message(self, queue: str, msg_id: int) -> bool:
        return self.transaction(lambda tx: tx.delete_message(queue, msg_id))

    def delete_batch(self, queue: str, msg_ids: list[int]) -> list[int]:
        return self.transaction(lambda tx: tx.delete_batch(queue, msg_ids))

    def purge_queue(self, queue: str) -> int:
        return self.transaction(lambda tx: tx.purge_queue(queue))

    def archive(self, queue: str, msg_id: int) -> bool:
        return self.transaction(lambda tx: tx.archive(queue, msg_id))

    def archive_batch(self, queue: str, msg_ids: list[int]) -> list[int]:
        return self.transaction(lambda tx: tx.archive_batch(queue, msg_ids))

    def create_queue(self, queue: str) -> None:
        self.transaction(lambda tx: tx.create_queue(queue))

    def create_partitioned_queue(
        self,
        queue: str,
        partition_interval: str = operations.DEFAULT_PARTITION_INTERVAL,
        retention_interval: str = operations.DEFAULT_RETENTION_INTERVAL,
    ) -> None:
        self.transaction(lambda tx: tx.create_partitioned_queue(queue, partition_interval, retention_interval))

    def create_unlogged_queue(self, queue: str) -> None:
        self.transaction(lambda tx: tx.create_unlogged_queue(queue))

    def detach_archive(self, queue: str) -> None:
        self.transaction(lambda tx: tx.detach_archive(queue))

    def drop_queue(self, queue: str) -> bool:
        return self.transaction(lambda tx: tx.drop_queue(queue))

    def set_vt(self, queue: str, msg_id: int, vt_offset: int) -> MessageRecord:
        return self.transaction(lambda tx: tx.set_vt(queue, msg_id, vt_offset))

    def list_queues(self) -> list[QueueInfo]:
        return self.transaction(lambda tx: tx.list_queues())

    def metrics(self, queue: str) -> QueueMetrics:
        return self.transaction(lambda tx: tx.metrics(queue))

    def metrics_all(self) -> list[QueueMetrics]:
        return self.transaction(lambda tx: tx.metrics_all())
