"""Command-level exceptions.

Transport failures live in :mod:`amqprpc.transport.base`; everything here
describes what happened to a single command.
"""

from __future__ import annotations

from typing import Optional


class RPCError(Exception):
    """Base class for all command-level errors."""


class EncodingError(RPCError):
    """A command or result could not be represented on the wire."""


class DecodingError(RPCError):
    """An inbound payload is not a well-formed command or result."""


class UnknownCommandError(RPCError):
    """The server has no handler registered for the requested command."""

    def __init__(self, command: str):
        RPCError.__init__(self, 'Unknown command ' + str(command))
        self.command = command


class CommandTimeout(RPCError, TimeoutError):
    """No reply arrived within the per-call timeout."""


class ClientDisconnect(RPCError):
    """The client was disconnected while the call was still outstanding."""


class RemoteError(RPCError):
    """ The client-side representation of a failure raised on the server.
        The server flattens the original exception down to a message, the
        exception class name, the formatted traceback and an optional
        application-defined code; those are the only fields that survive
        the trip.
    """

    def __init__(
        self,
        message: str,
        name: Optional[str] = None,
        stack: Optional[str] = None,
        code: Optional[str] = None,
    ):
        RPCError.__init__(self, message)
        self.message = message
        self.name = name
        self.stack = stack
        self.code = code

    def __repr__(self) -> str:
        return "%s(%r, name=%r, code=%r)" % (
            type(self).__name__, self.message, self.name, self.code)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
