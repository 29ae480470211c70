"""Exceptions raised by the PGMQ client.

EngineError means PostgreSQL rejected the call; ProtocolError means the call
succeeded but returned no row where one was required. Empty reads, empty
batches and False from single delete/archive are results, not errors.
"""


class PGMQError(Exception):
    """Base class for every error raised by pgmq_tx."""


class EngineError(PGMQError):
    """The pgmq extension (or PostgreSQL) rejected the call.

    The originating psycopg error is chained as ``__cause__``.
    """

    def __init__(self, message: str, primitive: str | None = None, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.primitive = primitive
        self.sqlstate = sqlstate


class ProtocolError(PGMQError):
    """The engine returned zero rows for a primitive that must return exactly one."""

    def __init__(self, primitive: str) -> None:
        super().__init__(f"No result returned from pgmq.{primitive}")
        self.primitive = primitive


class NestedTransactionError(PGMQError):
    """A transaction scope was opened while another one is already active."""


class TransactionClosedError(PGMQError):
    """A transaction-bound client was used after its scope ended."""
