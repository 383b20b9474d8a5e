"""In-process message transport.

A small broker that lives entirely in the current process. It follows the
behavior of an AMQP default exchange closely enough to exercise the request
and response machinery without a running RabbitMQ instance:

    - publishing to a queue that does not exist drops the message;
    - messages published before anyone consumes are held until a consumer
      appears;
    - several consumers on one queue are served round-robin;
    - deleting a queue tells its remaining consumers with a None message;
    - exclusive queues are removed when the declaring connection closes.

Consumer callbacks are invoked one at a time from a single delivery thread
per broker, never while the broker lock is held.
"""

from __future__ import annotations

import collections
import itertools
import logging
import queue
import threading
import uuid
from typing import Dict, Optional

from .base import (
    Channel as BaseChannel,
    Connection as BaseConnection,
    Message,
    OnMessage,
    Properties,
    TransportError,
)


logger = logging.getLogger(__name__)


class _Queue:

    def __init__(self, name: str, owner=None):
        self.name = name
        self.owner = owner
        self.messages: collections.deque = collections.deque()
        self.consumers: list = []
        self.turn = 0

    def next_consumer(self) -> str:
        self.turn = (self.turn + 1) % len(self.consumers)
        return self.consumers[self.turn]


class Broker:
    """Shared queue state for any number of :class:`Connection` instances."""

    def __init__(self):
        self._lock = threading.RLock()
        self._queues: Dict[str, _Queue] = {}
        self._consumers: Dict[str, tuple] = {}
        self._tags = itertools.count()

        self._deliveries: queue.Queue = queue.Queue()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def queues(self) -> list:
        with self._lock:
            return sorted(self._queues)

    def declare(self, name: str, exclusive: bool = False, owner=None) -> str:
        with self._lock:
            if name == "":
                name = "amq.gen-" + uuid.uuid4().hex
            if name not in self._queues:
                self._queues[name] = _Queue(name, owner if exclusive else None)
                logger.debug("declared queue %s", name)
            return name

    def delete(self, name: str) -> None:
        with self._lock:
            try:
                q = self._queues.pop(name)
            except KeyError:
                raise TransportError(f"NOT_FOUND - no queue '{name}'")

            for tag in q.consumers:
                _queue, callback, _channel = self._consumers.pop(tag)
                self._deliveries.put((None, callback, None, name))

        logger.debug("deleted queue %s", name)

    def consume(self, name: str, callback: OnMessage, channel) -> str:
        with self._lock:
            try:
                q = self._queues[name]
            except KeyError:
                raise TransportError(f"NOT_FOUND - no queue '{name}'")

            if q.owner is not None and q.owner is not channel.connection:
                raise TransportError(
                    f"RESOURCE_LOCKED - cannot obtain exclusive access to queue '{name}'"
                )

            tag = "ctag-" + str(next(self._tags))
            self._consumers[tag] = (name, callback, channel)
            q.consumers.append(tag)

            while q.messages:
                self._route(q, q.messages.popleft())

            return tag

    def cancel(self, tag: str) -> None:
        with self._lock:
            try:
                name, _callback, _channel = self._consumers.pop(tag)
            except KeyError:
                raise TransportError(f"unknown consumer tag '{tag}'")

            q = self._queues.get(name)
            if q is not None:
                q.consumers.remove(tag)

    def publish(self, name: str, message: Message) -> None:
        with self._lock:
            q = self._queues.get(name)
            if q is None:
                logger.debug("no queue %s, message dropped", name)
                return
            message.delivery_tag = next(self._tags)
            self._route(q, message)

    def close_owned(self, owner) -> None:
        """Remove the exclusive queues declared through *owner*."""

        with self._lock:
            names = [q.name for q in self._queues.values() if q.owner is owner]

        for name in names:
            try:
                self.delete(name)
            except TransportError:
                pass

    def consumers_of(self, channel) -> list:
        with self._lock:
            return [tag for tag, entry in self._consumers.items() if entry[2] is channel]

    def close(self) -> None:
        self._deliveries.put(None)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=5)

    def _route(self, q: _Queue, message: Message) -> None:
        if q.consumers:
            tag = q.next_consumer()
            callback = self._consumers[tag][1]
            self._deliveries.put((tag, callback, message, q.name))
        else:
            q.messages.append(message)

    def _run(self) -> None:
        while True:
            delivery = self._deliveries.get()
            if delivery is None:
                break

            tag, callback, message, name = delivery

            if tag is not None:
                with self._lock:
                    entry = self._consumers.get(tag)
                    if entry is None:
                        # The consumer went away after the message was routed
                        # to it; hand the message to whoever is left.
                        q = self._queues.get(name)
                        if q is not None:
                            self._route(q, message)
                        continue

            try:
                callback(message)
            except Exception:
                logger.exception("consumer callback raised")


class Channel(BaseChannel):
    """A channel on an in-process :class:`Connection`."""

    def __init__(self, connection: "Connection"):
        self.connection = connection
        self.broker = connection.broker
        self.closed = False

    def _check(self) -> None:
        if self.closed:
            raise TransportError("channel is closed")

    def assert_queue(self, name: str = "", exclusive: bool = False) -> str:
        self._check()
        return self.broker.declare(name, exclusive, self.connection)

    def delete_queue(self, name: str) -> None:
        self._check()
        self.broker.delete(name)

    def consume(self, queue: str, on_message: OnMessage) -> str:
        self._check()
        return self.broker.consume(queue, on_message, self)

    def cancel(self, consumer_tag: str) -> None:
        self._check()
        self.broker.cancel(consumer_tag)

    def send_to_queue(
        self,
        queue: str,
        content: bytes,
        reply_to: Optional[str] = None,
        correlation_id: Optional[str] = None,
        expiration: Optional[float] = None,
    ) -> None:
        self._check()
        message = Message(bytes(content), Properties(reply_to, correlation_id))
        self.broker.publish(queue, message)

    def ack(self, message: Message) -> None:
        self._check()

    def close(self) -> None:
        self._check()
        for tag in self.broker.consumers_of(self):
            try:
                self.broker.cancel(tag)
            except TransportError:
                pass
        self.closed = True
        self.connection._channels.discard(self)


class Connection(BaseConnection):
    """A connection to an in-process :class:`Broker`. If no *broker* is
    supplied a private one is created, and shut down along with the
    connection."""

    def __init__(self, broker: Optional[Broker] = None):
        self._owns_broker = broker is None
        self.broker = broker if broker is not None else Broker()
        self._channels: set = set()
        self.closed = False

    def create_channel(self) -> Channel:
        if self.closed:
            raise TransportError("connection is closed")
        channel = Channel(self)
        self._channels.add(channel)
        return channel

    def close(self) -> None:
        if self.closed:
            return
        for channel in list(self._channels):
            channel.close()
        self.broker.close_owned(self)
        self.closed = True
        if self._owns_broker:
            self.broker.close()
