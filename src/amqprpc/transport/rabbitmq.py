"""RabbitMQ transport backed by pika.

A :class:`pika.BlockingConnection` may only be used from the thread that
owns it. Each :class:`Connection` therefore runs a dedicated I/O thread;
channel operations requested from any other thread are queued and executed
on the I/O thread via ``add_callback_threadsafe``, with the caller blocking
until the result is available. Consumer callbacks are invoked on the I/O
thread, and channel operations made from within them run inline.
"""

from __future__ import annotations

import concurrent.futures
import logging
import os
import queue
import threading
from typing import Dict, Optional

import pika
import pika.exceptions

from .base import (
    Channel as BaseChannel,
    Connection as BaseConnection,
    Message,
    OnMessage,
    Properties,
    TransportConnectionError,
    TransportError,
)


logger = logging.getLogger(__name__)

_BROKER_HOST = os.environ.get("AMQPRPC_AMQP_HOST", "localhost")
_BROKER_PORT = int(os.environ.get("AMQPRPC_AMQP_PORT", "5672"))
_BROKER_VHOST = os.environ.get("AMQPRPC_AMQP_VHOST", "/")
_BROKER_USER = os.environ.get("AMQPRPC_AMQP_USER", "guest")
_BROKER_PASSWORD = os.environ.get("AMQPRPC_AMQP_PASSWORD", "guest")


def _broker_params() -> pika.ConnectionParameters:
    return pika.ConnectionParameters(
        host=_BROKER_HOST,
        port=_BROKER_PORT,
        virtual_host=_BROKER_VHOST,
        credentials=pika.PlainCredentials(_BROKER_USER, _BROKER_PASSWORD),
        heartbeat=600,
        blocked_connection_timeout=300,
    )


class Channel(BaseChannel):
    """A pika channel whose operations are marshalled onto the I/O thread."""

    def __init__(self, connection: "Connection", channel):
        self.connection = connection
        self._channel = channel
        self._consumers: Dict[str, OnMessage] = {}
        self._channel.add_on_cancel_callback(self._on_broker_cancel)

    def assert_queue(self, name: str = "", exclusive: bool = False) -> str:
        result = self.connection._invoke(
            self._channel.queue_declare, queue=name, exclusive=exclusive
        )
        return result.method.queue

    def delete_queue(self, name: str) -> None:
        self.connection._invoke(self._channel.queue_delete, queue=name)

    def consume(self, queue: str, on_message: OnMessage) -> str:
        def deliver(_ch, method, properties, body: bytes) -> None:
            message = Message(
                body,
                Properties(properties.reply_to, properties.correlation_id),
                method.delivery_tag,
            )
            on_message(message)

        tag = self.connection._invoke(
            self._channel.basic_consume, queue=queue, on_message_callback=deliver
        )
        self._consumers[tag] = on_message
        return tag

    def cancel(self, consumer_tag: str) -> None:
        self._consumers.pop(consumer_tag, None)
        self.connection._invoke(self._channel.basic_cancel, consumer_tag)

    def send_to_queue(
        self,
        queue: str,
        content: bytes,
        reply_to: Optional[str] = None,
        correlation_id: Optional[str] = None,
        expiration: Optional[float] = None,
    ) -> None:
        if expiration is not None:
            # AMQP expresses the per-message TTL as a string of milliseconds.
            expiration = str(int(expiration * 1000))

        properties = pika.BasicProperties(
            reply_to=reply_to,
            correlation_id=correlation_id,
            expiration=expiration,
        )
        self.connection._invoke(
            self._channel.basic_publish,
            exchange="",
            routing_key=queue,
            body=content,
            properties=properties,
        )

    def ack(self, message: Message) -> None:
        self.connection._invoke(
            self._channel.basic_ack, delivery_tag=message.delivery_tag
        )

    def close(self) -> None:
        self._consumers.clear()
        self.connection._invoke(self._close)

    def _close(self) -> None:
        # The broker closes a channel on any failed operation, such as
        # deleting a queue that is already gone.
        if self._channel.is_open:
            self._channel.close()

    def _on_broker_cancel(self, frame) -> None:
        """The broker cancelled one of our consumers, typically because its
        queue was deleted. Tell the consumer the queue is gone."""

        on_message = self._consumers.pop(frame.method.consumer_tag, None)
        if on_message is not None:
            on_message(None)


class Connection(BaseConnection):
    """Connect to a RabbitMQ broker. The broker location defaults to the
    AMQPRPC_AMQP_* environment variables; explicit *parameters* take
    precedence."""

    def __init__(self, parameters: Optional[pika.ConnectionParameters] = None):
        self.parameters = parameters if parameters is not None else _broker_params()

        self._calls: queue.Queue = queue.Queue()
        self._ready = threading.Event()
        self._connection = None
        self._error: Optional[Exception] = None
        self.shutdown = False

        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        self._ready.wait(timeout=10)

        if self._error is not None:
            raise TransportConnectionError(
                f"cannot connect to AMQP broker at "
                f"{self.parameters.host}:{self.parameters.port}: {self._error}"
            ) from self._error

        if self._connection is None:
            raise TransportConnectionError(
                f"timed out connecting to AMQP broker at "
                f"{self.parameters.host}:{self.parameters.port}"
            )

    def create_channel(self) -> Channel:
        channel = self._invoke(self._connection.channel)
        return Channel(self, channel)

    def close(self) -> None:
        if self.shutdown:
            return
        self.shutdown = True

        if threading.current_thread() is self._thread:
            return

        try:
            self._connection.add_callback_threadsafe(lambda: None)
        except pika.exceptions.AMQPError:
            pass
        self._thread.join(timeout=10)

    def _invoke(self, function, *args, **kwargs):
        """Run *function* on the I/O thread and return its result. Any pika
        failure is re-raised as a TransportError."""

        if self._connection is None or self.shutdown:
            raise TransportError("connection is closed")

        if threading.current_thread() is self._thread:
            return _execute(function, args, kwargs)

        future: concurrent.futures.Future = concurrent.futures.Future()
        self._calls.put((future, function, args, kwargs))

        try:
            self._connection.add_callback_threadsafe(self._flush_calls)
        except pika.exceptions.AMQPError as e:
            raise TransportError(str(e)) from e

        return future.result()

    def _flush_calls(self) -> None:
        """Drain all queued channel operations (called on the connection
        thread via add_callback_threadsafe)."""
        while True:
            try:
                future, function, args, kwargs = self._calls.get_nowait()
            except queue.Empty:
                break

            # Every failure belongs to the caller waiting on the future; none
            # may escape into the I/O loop.

            try:
                result = _execute(function, args, kwargs)
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)

    def _run(self) -> None:
        try:
            connection = pika.BlockingConnection(self.parameters)
        except pika.exceptions.AMQPError as e:
            self._error = e
            self._ready.set()
            return

        self._connection = connection
        self._ready.set()

        try:
            while not self.shutdown:
                connection.process_data_events(time_limit=1)
        except pika.exceptions.AMQPError as e:
            logger.warning("AMQP connection lost: %s", e)
            self.shutdown = True
        finally:
            self._fail_calls()
            if connection.is_open:
                try:
                    connection.close()
                except pika.exceptions.AMQPError:
                    pass

    def _fail_calls(self) -> None:
        while True:
            try:
                future, _function, _args, _kwargs = self._calls.get_nowait()
            except queue.Empty:
                break
            future.set_exception(TransportError("connection is closed"))


def _execute(function, args, kwargs):
    try:
        return function(*args, **kwargs)
    except pika.exceptions.AMQPError as e:
        raise TransportError(f"{type(e).__name__}: {e}") from e
