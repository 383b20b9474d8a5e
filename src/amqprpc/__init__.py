""" Request/response (RPC) on top of a fire-and-forget message queue
    transport such as RabbitMQ. A :class:`Server` dispatches named commands
    to registered handlers; a :class:`Client` sends commands and matches the
    asynchronous replies to the calls that produced them, with per-call
    timeouts and clean cancellation on shutdown.

    A minimal exchange over the in-process transport::

        connection = amqprpc.transport.memory.Connection()

        server = amqprpc.Server(connection)
        server.add_command('echo', lambda value: value)
        server.start()

        client = amqprpc.Client(connection, server.requests_queue)
        client.start()
        client.call('echo', ['hi'])         # returns 'hi'
"""

# Utility components.

from . import json
from . import errors

# Submodules used by multiple other components.

from . import transport
from . import command

from .command import (
    Command,
    CommandResult,
    ERROR,
    SUCCESS,
    decode_command,
    decode_result,
    encode_command,
    encode_result,
)

from .errors import (
    ClientDisconnect,
    CommandTimeout,
    DecodingError,
    EncodingError,
    RemoteError,
    RPCError,
    UnknownCommandError,
)

# Primary public-facing interfaces.

from .client import Client
from .server import Server
from .events import EventsReceiver, EventsSender

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
