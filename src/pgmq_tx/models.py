"""Records returned by the pgmq extension.

Payloads and filters are JSON documents (``Task``); rows from ``pgmq.read``,
``pgmq.list_queues`` and ``pgmq.metrics`` are normalized into the pydantic
models below regardless of how the driver decoded the columns.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, JsonValue, TypeAdapter

Task = dict[str, JsonValue]
Delay = int | datetime

_task_adapter = TypeAdapter(Task)


def validate_task(obj: Any) -> Task:
    """Return ``obj`` as a JSON document; raise pydantic.ValidationError otherwise."""
    return _task_adapter.validate_python(obj)


def _same_value(expected: Any, actual: Any) -> bool:
    # JSON keeps true and 1 apart even though Python does not.
    if isinstance(expected, bool) != isinstance(actual, bool):
        return False
    return expected == actual


def _contains_value(expected: Any, actual: Any) -> bool:
    if isinstance(expected, dict):
        return isinstance(actual, dict) and contains(expected, actual)
    if isinstance(expected, list):
        # order and duplicates are ignored; each element must be contained by some element
        return isinstance(actual, list) and all(
            any(_contains_value(e, a) for a in actual) for e in expected
        )
    return _same_value(expected, actual)


def contains(filter: dict[str, Any], payload: dict[str, Any]) -> bool:
    """Structural containment with the semantics of jsonb ``@>`` on objects.

    Every key of ``filter`` must be in ``payload`` with a contained value:
    nested documents match recursively ignoring extra keys, a list matches
    when each of its elements is contained by some element of the payload's
    list, and scalars must be equal. An empty filter matches everything.
    """
    return all(key in payload and _contains_value(expected, payload[key]) for key, expected in filter.items())


class MessageRecord(BaseModel):
    """A message as returned by read, read_with_poll, pop and set_vt."""

    msg_id: int = Field(..., description="Identifier assigned by the engine at enqueue time")
    read_ct: int = Field(..., description="Number of times the message has been read")
    enqueued_at: datetime = Field(..., description="Enqueue timestamp")
    vt: datetime = Field(..., description="Visibility deadline")
    message: Task = Field(..., description="Message payload")

    def matches(self, filter: dict[str, Any]) -> bool:
        """Return True if the payload structurally contains ``filter``."""
        return contains(filter, self.message)


class QueueInfo(BaseModel):
    """A row of pgmq.list_queues()."""

    queue_name: str
    created_at: datetime
    is_partitioned: bool
    is_unlogged: bool


class QueueMetrics(BaseModel):
    """Point-in-time metrics snapshot for one queue."""

    queue_name: str = Field(..., description="Name of the queue")
    queue_length: int = Field(..., description="Messages currently in the queue")
    newest_msg_age_sec: int | None = Field(None, description="Age of the newest message, None when empty")
    oldest_msg_age_sec: int | None = Field(None, description="Age of the oldest message, None when empty")
    total_messages: int = Field(..., description="Messages ever sent to the queue")
    scrape_time: datetime = Field(..., description="When the snapshot was taken")
