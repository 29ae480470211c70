"""Transactional client for the PGMQ PostgreSQL message queue extension."""

from pgmq_tx.bound import PGMQTransactionClient
from pgmq_tx.client import PGMQClient
from pgmq_tx.errors import (
    EngineError,
    NestedTransactionError,
    PGMQError,
    ProtocolError,
    TransactionClosedError,
)
from pgmq_tx.models import MessageRecord, QueueInfo, QueueMetrics, Task, contains
from pgmq_tx.transaction import run_in_transaction, transaction_scope

__all__ = [
    "EngineError",
    "MessageRecord",
    "NestedTransactionError",
    "PGMQClient",
    "PGMQError",
    "PGMQTransactionClient",
    "ProtocolError",
    "QueueInfo",
    "QueueMetrics",
    "Task",
    "TransactionClosedError",
    "contains",
    "run_in_transaction",
    "transaction_scope",
]
