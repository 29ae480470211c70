"""Transaction scope manager.

A scope is one database transaction on one connection: it commits when the
block exits normally and rolls back when anything is raised inside it, then
re-raises that exception unchanged. Scopes do not nest: opening one on a
connection that is already inside a transaction raises NestedTransactionError
rather than silently turning into a savepoint.
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

import psycopg
from psycopg.pq import TransactionStatus

from pgmq_tx.bound import PGMQTransactionClient
from pgmq_tx.errors import NestedTransactionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def transaction_scope(conn: psycopg.Connection) -> Iterator[PGMQTransactionClient]:
    """Open one transaction on ``conn`` and yield a client bound to it."""
    status = conn.info.transaction_status
    if status != TransactionStatus.IDLE:
        raise NestedTransactionError(
            f"connection is already in a transaction ({status.name}); nested scopes are not supported"
        )

    bound = PGMQTransactionClient(conn)
    try:
        with conn.transaction():
            logger.debug("transaction scope opened")
            yield bound
        logger.debug("transaction scope committed")
    except BaseException:
        logger.debug("transaction scope rolled back")
        raise
    finally:
        bound.close()


def run_in_transaction(conn: psycopg.Connection, fn: Callable[[PGMQTransactionClient], T]) -> T:
    """Call ``fn`` with a bound client inside one transaction and return its result."""
    with transaction_scope(conn) as tx:
        return fn(tx)
