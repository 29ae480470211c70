"""Message envelope sent by the CLIs.

``data`` carries the application payload and ``meta`` the routing and
failure bookkeeping. On the wire the envelope is an ordinary JSON document;
``DataDTO.from_record`` reads one back from a MessageRecord.
"""

from pydantic import BaseModel, Field

from pgmq_tx.models import MessageRecord, Task


class MetaDTO(BaseModel):
    """Routing and failure metadata carried next to the payload."""

    queue_name: str = Field(..., description="Queue the message was sent to")
    correlation_id: int | None = Field(None, description="Correlation identifier")
    correlation_queue: str | None = Field(None, description="Queue holding the correlated message")
    error_message: str | None = Field(None, description="Error raised by the last failed handler run")
    stack_trace: str | None = Field(None, description="Traceback of the last failed handler run")
    failed_msg_id: int | None = Field(None, description="msg_id of the copy that failed last")
    attempt: int = Field(0, ge=0, description="Number of failed handler runs so far")
    version: str | None = Field(None, description="Version of the message")


class DataDTO(BaseModel):
    """A queue message: JSON payload plus metadata."""

    data: Task = Field(..., description="Application payload")
    meta: MetaDTO = Field(..., description="Message metadata")

    @classmethod
    def from_record(cls, record: MessageRecord, queue_name: str) -> "DataDTO":
        """Rebuild the envelope of a read message.

        A payload that was not sent as an envelope becomes ``data`` as a whole.
        """
        message = record.message
        if "data" in message and isinstance(message.get("meta"), dict):
            meta = {"queue_name": queue_name, **message["meta"]}
            return cls.model_validate({"data": message["data"], "meta": meta})
        return cls.model_validate({"data": message, "meta": {"queue_name": queue_name}})

    def failed(self, msg_id: int, error_message: str, stack_trace: str) -> "DataDTO":
        """Return a copy recording one more failed handler run."""
        meta = self.meta.model_copy(
            update={
                "error_message": error_message,
                "stack_trace": stack_trace,
                "failed_msg_id": msg_id,
                "attempt": self.meta.attempt + 1,
            }
        )
        return self.model_copy(update={"meta": meta})
