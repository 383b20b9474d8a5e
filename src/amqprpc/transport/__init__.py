"""Transport layer implementations.

Two implementations of the :mod:`amqprpc.transport.base` contract are
provided: :mod:`~amqprpc.transport.rabbitmq`, backed by a real broker via
pika, and :mod:`~amqprpc.transport.memory`, an in-process stand-in used
for tests and local experiments::

    from amqprpc.transport import rabbitmq
    connection = rabbitmq.Connection()
"""

from .base import (
    Channel,
    Connection,
    Message,
    Properties,
    TransportError,
    TransportConnectionError,
)

from . import memory
from . import rabbitmq
