"""Transaction-bound client.

Exposes the operation layer as methods on a handle pinned to one open
transaction, so several queue operations can be composed atomically.
Instances are created by pgmq_tx.transaction.transaction_scope and must not
outlive it.
"""

import psycopg

from pgmq_tx import operations
from pgmq_tx.errors import TransactionClosedError
from pgmq_tx.models import Delay, MessageRecord, QueueInfo, QueueMetrics, Task


class PGMQTransactionClient:
    """The operation layer bound to a connection inside an open transaction.

    Every method runs on the same connection and therefore in the same
    transaction. Once the scope that created the handle ends, further calls
    raise TransactionClosedError.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Detach the handle from its connection."""
        self._closed = True

    @property
    def conn(self) -> psycopg.Connection:
        if self._closed:
            raise TransactionClosedError("transaction scope has ended; open a new one")
        return self._conn

    def send(self, queue: str, msg: Task, delay: Delay | None = None) -> int:
        return operations.send(self.conn, queue, msg, delay)

    def send_batch(self, queue: str, msgs: list[Task], delay: Delay | None = None) -> list[int]:
        return operations.send_batch(self.conn, queue, msgs, delay)

    def read(self, queue: str, vt: int, qty: int = 1, conditional: Task | None = None) -> list[MessageRecord]:
        return operations.read(self.conn, queue, vt, qty, conditional)

    def read_with_poll(
        self,
        queue: str,
        vt: int,
        qty: int = 1,
        max_poll_seconds: int = 5,
        poll_interval_ms: int = 100,
        conditional: Task | None = None,
    ) -> list[MessageRecord]:
        return operations.read_with_poll(
            self.conn, queue, vt, qty, max_poll_seconds, poll_interval_ms, conditional
        )

    def pop(self, queue: str) -> list[MessageRecord]:
        return operations.pop(self.conn, queue)

    def delete_message(self, queue: str, msg_id: int) -> bool:
        return operations.delete_message(self.conn, queue, msg_id)

    def delete_batch(self, queue: str, msg_ids: list[int]) -> list[int]:
        return operations.delete_batch(self.conn, queue, msg_ids)

    def purge_queue(self, queue: str) -> int:
        return operations.purge_queue(self.conn, queue)

    def archive(self, queue: str, msg_id: int) -> bool:
        return operations.archive(self.conn, queue, msg_id)

    def archive_batch(self, queue: str, msg_ids: list[int]) -> list[int]:
        return operations.archive_batch(self.conn, queue, msg_ids)

    def create_queue(self, queue: str) -> None:
        operations.create_queue(self.conn, queue)

    def create_partitioned_queue(
        self,
        queue: str,
        partition_interval: str = operations.DEFAULT_PARTITION_INTERVAL,
        retention_interval: str = operations.DEFAULT_RETENTION_INTERVAL,
    ) -> None:
        operations.create_partitioned_queue(self.conn, queue, partition_interval, retention_interval)

    def create_unlogged_queue(self, queue: str) -> None:
        operations.create_unlogged_queue(self.conn, queue)

    def detach_archive(self, queue: str) -> None:
        operations.detach_archive(self.conn, queue)

    def drop_queue(self, queue: str) -> bool:
        return operations.drop_queue(self.conn, queue)

    def set_vt(self, queue: str, msg_id: int, vt_offset: int) -> MessageRecord:
        return operations.set_vt(self.conn, queue, msg_id, vt_offset)

    def list_queues(self) -> list[QueueInfo]:
        return operations.list_queues(self.conn)

    def metrics(self, queue: str) -> QueueMetrics:
        return operations.metrics(self.conn, queue)

    def metrics_all(self) -> list[QueueMetrics]:
        return operations.metrics_all(self.conn)
