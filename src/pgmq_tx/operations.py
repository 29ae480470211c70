"""Operation layer: one pgmq SQL function call per function.

Every function takes an open psycopg connection as its first argument and
performs exactly one round trip. Transaction handling belongs to the caller
(see pgmq_tx.transaction); nothing here commits, rolls back or retries.

Rows are fetched with ``dict_row`` so a single-value primitive comes back as
``{"send": 42}`` and record-returning primitives as column mappings, which are
then normalized into the models of pgmq_tx.models.
"""

import logging
from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from pgmq_tx.errors import EngineError, ProtocolError
from pgmq_tx.models import Delay, MessageRecord, QueueInfo, QueueMetrics, Task, validate_task

logger = logging.getLogger(__name__)

MESSAGE_COLUMNS = "msg_id, read_ct, enqueued_at, vt, message"
QUEUE_INFO_COLUMNS = "queue_name, created_at, is_partitioned, is_unlogged"
METRICS_COLUMNS = (
    "queue_name, queue_length, newest_msg_age_sec, oldest_msg_age_sec, total_messages, scrape_time"
)

DEFAULT_PARTITION_INTERVAL = "10000"
DEFAULT_RETENTION_INTERVAL = "100000"


def _execute(conn: psycopg.Connection, primitive: str, query: str, params: tuple = ()) -> list[dict[str, Any]]:
    """Run one query and return all rows; engine failures become EngineError."""
    logger.debug("pgmq.%s(%s)", primitive, params[0] if params else "")
    try:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, params)
            return cur.fetchall()
    except psycopg.Error as e:
        raise EngineError(str(e), primitive=primitive, sqlstate=e.sqlstate) from e


def _first(rows: list[dict[str, Any]], primitive: str) -> dict[str, Any]:
    if not rows:
        raise ProtocolError(primitive)
    return rows[0]


def _delay_sql(delay: Delay | None) -> tuple[str, tuple]:
    """Return the trailing SQL argument and parameter for an optional delay."""
    if delay is None:
        return "", ()
    if isinstance(delay, datetime):
        return ", %s::timestamptz", (delay,)
    if isinstance(delay, bool) or not isinstance(delay, int):
        raise ValueError(f"delay must be a number of seconds or a datetime, got {delay!r}")
    if delay < 0:
        raise ValueError(f"delay must not be negative, got {delay}")
    if delay == 0:
        return "", ()
    return ", %s::integer", (delay,)


def _conditional(conditional: Task | None) -> Jsonb:
    return Jsonb(validate_task(conditional or {}))


# Sending messages


def send(conn: psycopg.Connection, queue: str, msg: Task, delay: Delay | None = None) -> int:
    """Send one message and return its id.

    ``delay`` is either seconds from now or an absolute datetime; without it
    the message is visible immediately.
    """
    delay_sql, delay_params = _delay_sql(delay)
    rows = _execute(
        conn,
        "send",
        f"SELECT pgmq.send(%s, %s::jsonb{delay_sql})",
        (queue, Jsonb(validate_task(msg)), *delay_params),
    )
    return _first(rows, "send")["send"]


def send_batch(conn: psycopg.Connection, queue: str, msgs: list[Task], delay: Delay | None = None) -> list[int]:
    """Send several messages in one round trip; an empty list yields an empty list."""
    delay_sql, delay_params = _delay_sql(delay)
    payloads = [Jsonb(validate_task(m)) for m in msgs]
    rows = _execute(
        conn,
        "send_batch",
        f"SELECT pgmq.send_batch(%s, %s::jsonb[]{delay_sql})",
        (queue, payloads, *delay_params),
    )
    return [row["send_batch"] for row in rows]


# Reading messages


def read(
    conn: psycopg.Connection,
    queue: str,
    vt: int,
    qty: int = 1,
    conditional: Task | None = None,
) -> list[MessageRecord]:
    """Read up to ``qty`` visible messages, hiding each for ``vt`` seconds.

    A non-empty ``conditional`` restricts candidates to payloads containing it.
    Returning fewer than ``qty`` records, or none, is not an error.
    """
    rows = _execute(
        conn,
        "read",
        f"SELECT {MESSAGE_COLUMNS} FROM pgmq.read(%s, %s::integer, %s::integer, %s::jsonb)",
        (queue, vt, qty, _conditional(conditional)),
    )
    return [MessageRecord.model_validate(row) for row in rows]


def read_with_poll(
    conn: psycopg.Connection,
    queue: str,
    vt: int,
    qty: int = 1,
    max_poll_seconds: int = 5,
    poll_interval_ms: int = 100,
    conditional: Task | None = None,
) -> list[MessageRecord]:
    """Like read, but the engine waits up to ``max_poll_seconds`` for a message.

    The wait happens inside the current transaction, which stays open (and
    keeps its connection) until a message arrives or the budget runs out.
    """
    rows = _execute(
        conn,
        "read_with_poll",
        f"SELECT {MESSAGE_COLUMNS} FROM pgmq.read_with_poll("
        "%s, %s::integer, %s::integer, %s::integer, %s::integer, %s::jsonb)",
        (queue, vt, qty, max_poll_seconds, poll_interval_ms, _conditional(conditional)),
    )
    return [MessageRecord.model_validate(row) for row in rows]


def pop(conn: psycopg.Connection, queue: str) -> list[MessageRecord]:
    """Read and delete the next visible message in one step."""
    rows = _execute(conn, "pop", f"SELECT {MESSAGE_COLUMNS} FROM pgmq.pop(%s)", (queue,))
    return [MessageRecord.model_validate(row) for row in rows]


# Deleting and archiving messages


def delete_message(conn: psycopg.Connection, queue: str, msg_id: int) -> bool:
    """Delete one message; False when it does not exist."""
    rows = _execute(conn, "delete", "SELECT pgmq.delete(%s, %s::bigint)", (queue, msg_id))
    return _first(rows, "delete")["delete"]


def delete_batch(conn: psycopg.Connection, queue: str, msg_ids: list[int]) -> list[int]:
    """Delete several messages; returns the ids that were actually removed."""
    rows = _execute(conn, "delete", "SELECT * FROM pgmq.delete(%s, %s::bigint[])", (queue, list(msg_ids)))
    return [row["delete"] for row in rows]


def purge_queue(conn: psycopg.Connection, queue: str) -> int:
    """Remove every message from the queue and return how many were removed."""
    rows = _execute(conn, "purge_queue", "SELECT pgmq.purge_queue(%s)", (queue,))
    return _first(rows, "purge_queue")["purge_queue"]


def archive(conn: psycopg.Connection, queue: str, msg_id: int) -> bool:
    """Move one message to the queue's archive table; False when it does not exist."""
    rows = _execute(conn, "archive", "SELECT pgmq.archive(%s, %s::bigint)", (queue, msg_id))
    return _first(rows, "archive")["archive"]


def archive_batch(conn: psycopg.Connection, queue: str, msg_ids: list[int]) -> list[int]:
    """Archive several messages; returns the ids that were actually archived."""
    rows = _execute(conn, "archive", "SELECT * FROM pgmq.archive(%s, %s::bigint[])", (queue, list(msg_ids)))
    return [row["archive"] for row in rows]


# Queue management


def create_queue(conn: psycopg.Connection, queue: str) -> None:
    """Create a standard queue. Fails with EngineError if the name is invalid."""
    _execute(conn, "create", "SELECT pgmq.create(%s)", (queue,))


def create_partitioned_queue(
    conn: psycopg.Connection,
    queue: str,
    partition_interval: str = DEFAULT_PARTITION_INTERVAL,
    retention_interval: str = DEFAULT_RETENTION_INTERVAL,
) -> None:
    """Create a queue partitioned by pg_partman.

    Intervals are message-id counts (``"10000"``) or time spans (``"1 day"``).
    """
    _execute(
        conn,
        "create_partitioned",
        "SELECT pgmq.create_partitioned(%s, %s, %s)",
        (queue, str(partition_interval), str(retention_interval)),
    )


def create_unlogged_queue(conn: psycopg.Connection, queue: str) -> None:
    """Create a queue backed by an unlogged table."""
    _execute(conn, "create_unlogged", "SELECT pgmq.create_unlogged(%s)", (queue,))


def detach_archive(conn: psycopg.Connection, queue: str) -> None:
    """Detach the archive table so that drop_queue leaves it in place."""
    _execute(conn, "detach_archive", "SELECT pgmq.detach_archive(%s)", (queue,))


def drop_queue(conn: psycopg.Connection, queue: str) -> bool:
    """Drop the queue and its messages; returns whether it existed."""
    rows = _execute(conn, "drop_queue", "SELECT pgmq.drop_queue(%s)", (queue,))
    return _first(rows, "drop_queue")["drop_queue"]


# Utilities


def set_vt(conn: psycopg.Connection, queue: str, msg_id: int, vt_offset: int) -> MessageRecord:
    """Set a message's visibility deadline to now + ``vt_offset`` seconds."""
    rows = _execute(
        conn,
        "set_vt",
        f"SELECT {MESSAGE_COLUMNS} FROM pgmq.set_vt(%s, %s::bigint, %s::integer)",
        (queue, msg_id, vt_offset),
    )
    return MessageRecord.model_validate(_first(rows, "set_vt"))


def list_queues(conn: psycopg.Connection) -> list[QueueInfo]:
    rows = _execute(conn, "list_queues", f"SELECT {QUEUE_INFO_COLUMNS} FROM pgmq.list_queues()")
    return [QueueInfo.model_validate(row) for row in rows]


def metrics(conn: psycopg.Connection, queue: str) -> QueueMetrics:
    rows = _execute(conn, "metrics", f"SELECT {METRICS_COLUMNS} FROM pgmq.metrics(%s)", (queue,))
    return QueueMetrics.model_validate(_first(rows, "metrics"))


def metrics_all(conn: psycopg.Connection) -> list[QueueMetrics]:
    rows = _execute(conn, "metrics_all", f"SELECT {METRICS_COLUMNS} FROM pgmq.metrics_all()")
    return [QueueMetrics.model_validate(row) for row in rows]
