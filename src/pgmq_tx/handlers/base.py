"""Base handler interface for queue messages.

Each queue processed by ``pgmq-tx-process`` has a handler module
``handlers/<queue_name>.py`` defining a ``Handler`` class. The process CLI
loads handlers by queue name and calls validate then handle on each message
payload.
"""

from abc import ABC, abstractmethod


class BaseHandler(ABC):
    """Abstract base for per-queue message handlers.

    validate checks the payload before handling; handle performs the actual
    work (e.g. call an API, update DB). Raising from handle re-enqueues the
    message with error metadata.
    """

    def __init__(self) -> None:
        """Initialize the handler (e.g. load config, tokens)."""

    @abstractmethod
    def validate(self, message: dict) -> None:
        """Validate the message; raise if invalid."""

    @abstractmethod
    def handle(self, message: dict) -> None:
        """Process the message. Raise on failure to trigger error re-enqueue."""
