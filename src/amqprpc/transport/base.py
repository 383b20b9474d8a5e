"""Transport interface.

This is the (small) contract that a message broker client must follow to
carry commands and results. The broker only needs to provide fire-and-forget
delivery to named queues; correlation, timeouts and error propagation are
handled above this layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional


# Transport agnostic exceptions

class TransportError(Exception):
    """Base class for all transport-layer errors."""


class TransportConnectionError(TransportError):
    """The transport could not establish or maintain a connection."""


class Properties:
    """Per-message metadata used for request/response addressing."""

    def __init__(self, reply_to: Optional[str] = None, correlation_id: Optional[str] = None):
        self.reply_to = reply_to
        self.correlation_id = correlation_id

    def __repr__(self) -> str:
        return f"Properties(reply_to={self.reply_to!r}, correlation_id={self.correlation_id!r})"


class Message:
    """A message as delivered to a consumer callback."""

    def __init__(self, content: bytes, properties: Optional[Properties] = None, delivery_tag=None):
        self.content = content
        self.properties = properties if properties is not None else Properties()
        self.delivery_tag = delivery_tag

    def __repr__(self) -> str:
        return f"Message({self.content!r}, {self.properties!r})"


# A consumer callback receives a Message, or None when the queue is closed
# underneath it.
OnMessage = Callable[[Optional[Message]], None]


class Channel(ABC):
    """A communication channel on a connection."""

    @abstractmethod
    def assert_queue(self, name: str = "", exclusive: bool = False) -> str:
        """Declare a queue; an empty *name* requests a generated one.
        Returns the actual queue name."""

    @abstractmethod
    def delete_queue(self, name: str) -> None:
        """Delete a queue. Raises TransportError if that is not possible."""

    @abstractmethod
    def consume(self, queue: str, on_message: OnMessage) -> str:
        """Begin consuming *queue*. Returns the consumer tag."""

    @abstractmethod
    def cancel(self, consumer_tag: str) -> None:
        """Stop the consumer identified by *consumer_tag*."""

    @abstractmethod
    def send_to_queue(
        self,
        queue: str,
        content: bytes,
        reply_to: Optional[str] = None,
        correlation_id: Optional[str] = None,
        expiration: Optional[float] = None,
    ) -> None:
        """Publish *content* directly to *queue*. The optional *expiration*
        is a per-message TTL in seconds."""

    @abstractmethod
    def ack(self, message: Message) -> None:
        """Acknowledge a delivered message."""

    @abstractmethod
    def close(self) -> None:
        """Close the channel."""


class Connection(ABC):
    """A connection to a message broker."""

    @abstractmethod
    def create_channel(self) -> Channel:
        """Open a new channel."""

    @abstractmethod
    def close(self) -> None:
        """Tear down the connection and any channels on it."""
