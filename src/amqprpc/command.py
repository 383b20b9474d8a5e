""" The on-the-wire representation of a command and of its result. Both are
    small JSON objects; this module is the only place that knows the field
    names. Nothing here performs any I/O.

    A command looks like::

        {"command": "echo", "args": ["hi"]}

    A result looks like one of::

        {"state": "success", "data": "hi"}
        {"state": "error", "data": {"message": "bad", "name": "ValueError",
                                    "stack": "Traceback ...", "code": "E_BAD"}}
"""

import traceback

from . import json
from .errors import DecodingError, EncodingError, RemoteError


SUCCESS = 'success'
ERROR = 'error'
STATES = (SUCCESS, ERROR)


class Command:
    """ A single invocation: the *name* of the registered handler, and the
        ordered *args* it will be called with. Instances are immutable; the
        arguments are stored as a tuple.
    """

    __slots__ = ('_name', '_args')

    def __init__(self, name, args=()):

        if isinstance(name, str) and name != '':
            pass
        else:
            raise ValueError('command name must be a non-empty string')

        if args is None:
            args = ()

        object.__setattr__(self, '_name', name)
        object.__setattr__(self, '_args', tuple(args))


    def __setattr__(self, name, value):
        raise AttributeError('Command instances are immutable')


    def __eq__(self, other):
        if isinstance(other, Command):
            return self._name == other._name and self._args == other._args
        return NotImplemented


    def __hash__(self):
        return hash((self._name, repr(self._args)))


    def __repr__(self):
        return 'Command(%r, %r)' % (self._name, list(self._args))


    @property
    def name(self):
        return self._name


    @property
    def args(self):
        return self._args


    def pack(self):
        """ Return the bytes representation of this command, suitable for
            publishing to a queue.
        """

        return encode_command(self._name, self._args)


    @classmethod
    def unpack(cls, content):
        return decode_command(content)


# end of class Command



class CommandResult:
    """ The outcome of dispatching a :class:`Command`. The *status* is either
        :data:`SUCCESS` or :data:`ERROR`. On success the *payload* is whatever
        the handler returned; on error it is an exception. Exceptions handed
        to :func:`encode_result` may be of any type, decoded results always
        carry a :class:`amqprpc.errors.RemoteError`.
    """

    def __init__(self, status, payload=None):

        if status in STATES:
            pass
        else:
            raise ValueError('invalid result state: ' + repr(status))

        self.status = status
        self.payload = payload


    def __repr__(self):
        return 'CommandResult(%r, %r)' % (self.status, self.payload)


    @property
    def ok(self):
        return self.status == SUCCESS


    def pack(self):
        return encode_result(self.status, self.payload)


    @classmethod
    def unpack(cls, content):
        return decode_result(content)


# end of class CommandResult



def encode_command(name, args=()):
    """ Serialize a command invocation. Raises
        :class:`amqprpc.errors.EncodingError` if the *name* is not a
        non-empty string, or if the *args* cannot be represented as JSON.
    """

    if isinstance(name, str) and name != '':
        pass
    else:
        raise EncodingError('command name must be a non-empty string, not ' + repr(name))

    if args is None:
        args = ()

    if isinstance(args, (str, bytes, dict)):
        raise EncodingError('command arguments must be a sequence, not ' + type(args).__name__)

    try:
        args = list(args)
    except TypeError:
        raise EncodingError('command arguments must be a sequence, not ' + type(args).__name__)

    message = dict()
    message['command'] = name
    message['args'] = args

    try:
        return json.dumps(message)
    except json.EncodeError as e:
        raise EncodingError('cannot encode arguments for %s: %s' % (name, e)) from e


def decode_command(content):
    """ Parse the bytes representation of a command. Raises
        :class:`amqprpc.errors.DecodingError` if the content is not a JSON
        object with a non-empty string 'command' and a list 'args'.
    """

    message = _loads(content)

    if isinstance(message, dict):
        pass
    else:
        raise DecodingError('serialized command must be a JSON object')

    try:
        name = message['command']
    except KeyError:
        raise DecodingError("serialized command is missing the 'command' field")

    if isinstance(name, str) and name != '':
        pass
    else:
        raise DecodingError("'command' field must be a non-empty string")

    try:
        args = message['args']
    except KeyError:
        raise DecodingError("serialized command is missing the 'args' field")

    if isinstance(args, list):
        pass
    else:
        raise DecodingError("'args' field must be an array")

    return Command(name, args)


def encode_result(status, payload=None):
    """ Serialize the outcome of a command. If the *payload* is an exception
        it is flattened to its message, class name, traceback and optional
        'code' attribute before encoding; nothing else about the exception
        is preserved.
    """

    if status in STATES:
        pass
    else:
        raise EncodingError('invalid result state: ' + repr(status))

    if isinstance(payload, BaseException):
        payload = flatten_error(payload)

    message = dict()
    message['state'] = status
    message['data'] = payload

    try:
        return json.dumps(message)
    except json.EncodeError as e:
        raise EncodingError('cannot encode %s result: %s' % (status, e)) from e


def decode_result(content):
    """ Parse the bytes representation of a result, returning a
        :class:`CommandResult`. Error results are rebuilt as a
        :class:`amqprpc.errors.RemoteError`.
    """

    message = _loads(content)

    if isinstance(message, dict):
        pass
    else:
        raise DecodingError('serialized result must be a JSON object')

    status = message.get('state')

    if status in STATES:
        pass
    else:
        raise DecodingError('expected state field to be one of %s, %s; got %r' % (SUCCESS, ERROR, status))

    data = message.get('data')

    if status == ERROR:
        data = restore_error(data)

    return CommandResult(status, data)


def flatten_error(error):
    """ Reduce an exception to the dictionary that travels on the wire.
    """

    if isinstance(error, RemoteError):
        message = error.message
        name = error.name or type(error).__name__
        stack = error.stack or ''
    else:
        message = str(error)
        name = type(error).__name__
        stack = traceback.format_exception(type(error), error, error.__traceback__)
        stack = ''.join(stack)

    flattened = dict()
    flattened['message'] = message
    flattened['name'] = name
    flattened['stack'] = stack

    code = getattr(error, 'code', None)

    if code is None:
        pass
    elif isinstance(code, (str, int)):
        flattened['code'] = code
    else:
        flattened['code'] = str(code)

    return flattened


def restore_error(data):
    """ The inverse of :func:`flatten_error`.
    """

    if isinstance(data, dict):
        pass
    else:
        raise DecodingError('error result data must be a JSON object')

    message = data.get('message')
    if message is None:
        message = ''

    return RemoteError(str(message), data.get('name'), data.get('stack'), data.get('code'))


def _loads(content):

    if isinstance(content, str):
        content = content.encode()

    try:
        return json.loads(content)
    except json.DecodeError as e:
        raise DecodingError('malformed payload: ' + str(e)) from e
    except TypeError as e:
        raise DecodingError('payload must be bytes, not ' + type(content).__name__) from e


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
