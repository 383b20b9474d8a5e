""" The server side of the request/response pattern. A :class:`Server`
    consumes commands from a request queue, invokes the handler registered
    for each command, and publishes the result to whatever reply queue the
    caller asked for.
"""

import asyncio
import concurrent.futures
import inspect
import logging

from . import command as codec
from .endpoint import Endpoint, LISTENING
from .errors import EncodingError, UnknownCommandError
from .transport.base import TransportError


logger = logging.getLogger(__name__)


class Server(Endpoint):
    """ Respond to commands arriving on *requests_queue*. If no queue name
        is provided the server asks the transport for an exclusive queue with
        a generated name when it starts; the actual name is then available
        as :attr:`requests_queue`, and the queue is deleted again by
        :func:`disconnect`. A queue name supplied by the caller is assumed
        to be managed elsewhere and is never deleted.

        Handlers run on a pool of *workers* threads so that a slow handler
        does not hold up the delivery of further commands.
    """

    def __init__(self, connection, requests_queue='', workers=8):

        Endpoint.__init__(self, connection)

        if requests_queue is None:
            requests_queue = ''

        self.requests_queue = requests_queue
        self.max_workers = workers
        self.workers = None

        self._owns_queue = False
        self._consumer_tag = None
        self._commands = dict()


    @property
    def commands(self):
        """ A snapshot of the currently registered command names.
        """

        return frozenset(self._commands)


    def add_command(self, name, handler):
        """ Register *handler* to be invoked for the command *name*. The
            handler is called with the command arguments as positional
            arguments. It may return a value, a
            :class:`concurrent.futures.Future`, or an awaitable; the latter
            two are waited upon before the result is sent. Registering the
            same *name* again replaces the previous handler.

            Returns the server, so that registrations can be chained.
        """

        if callable(handler):
            pass
        else:
            raise TypeError('the handler for %s must be callable' % (repr(name)))

        self._commands[name] = handler
        return self


    def remove_command(self, name):
        self._commands.pop(name, None)


    def start(self):
        """ Create the channel, the request queue if one was not specified,
            and begin consuming. Calling :func:`start` on a running server
            does nothing.
        """

        if self._channel is not None:
            return

        Endpoint.start(self)

        try:
            if self.requests_queue == '':
                self.requests_queue = self._channel.assert_queue('', exclusive=True)
                self._owns_queue = True

            self.workers = concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers)
            self._consumer_tag = self._channel.consume(self.requests_queue, self._handle_message)
        except Exception:
            self._release_queue()

            if self.workers is not None:
                self.workers.shutdown(wait=False)
                self.workers = None

            self._abandon_start()
            raise

        self.state = LISTENING

        logger.debug('server listening on %s', self.requests_queue)


    def disconnect(self):
        """ Stop consuming, delete the request queue if this server created
            it, and close the channel. Handlers still running will have
            their results discarded.
        """

        channel = self._channel

        if channel is None:
            return

        try:
            if self._consumer_tag is not None:
                channel.cancel(self._consumer_tag)
                self._consumer_tag = None

            self._release_queue()

        finally:
            if self.workers is not None:
                self.workers.shutdown(wait=False)
                self.workers = None

            Endpoint.disconnect(self)


    def _release_queue(self):
        """ Delete the request queue if this instance generated it. A queue
            that is already gone is not an error.
        """

        if self._owns_queue:
            try:
                self._channel.delete_queue(self.requests_queue)
            except TransportError:
                pass

            self.requests_queue = ''
            self._owns_queue = False


    def _handle_message(self, message):
        """ Consumer callback for the request queue. The message is
            acknowledged immediately; a command is processed at most once,
            whatever the outcome of the handler.
        """

        if message is None:
            # The queue was closed underneath us.
            logger.debug('request queue %s closed', self.requests_queue)
            return

        channel = self._channel
        workers = self.workers

        if channel is None or workers is None:
            return

        channel.ack(message)

        try:
            workers.submit(self._respond, channel, message)
        except RuntimeError:
            # The pool was shut down by a concurrent disconnect().
            logger.debug('server stopped, command dropped')


    def _respond(self, channel, message):

        properties = message.properties

        try:
            result = self._dispatch(message.content)
        except Exception as error:
            logger.debug('command failed', exc_info=True)
            content = codec.encode_result(codec.ERROR, error)
        else:
            try:
                content = codec.encode_result(codec.SUCCESS, result)
            except EncodingError as error:
                content = codec.encode_result(codec.ERROR, error)

        reply_to = properties.reply_to

        if not reply_to:
            logger.warning('no reply-to address for correlation id %s, result dropped', properties.correlation_id)
            return

        if self._channel is not channel:
            logger.warning('server stopped, result for correlation id %s dropped', properties.correlation_id)
            return

        try:
            channel.send_to_queue(reply_to, content, correlation_id=properties.correlation_id)
        except TransportError as e:
            logger.warning('cannot send result to %s: %s', reply_to, e)


    def _dispatch(self, content):
        """ Decode the command, invoke the registered handler, and return
            whatever the handler produced. Any failure is raised.
        """

        command = codec.decode_command(content)

        try:
            handler = self._commands[command.name]
        except KeyError:
            raise UnknownCommandError(command.name)

        result = handler(*command.args)

        if isinstance(result, concurrent.futures.Future):
            result = result.result()
        elif inspect.isawaitable(result):
            result = asyncio.run(_wait(result))

        return result


# end of class Server



async def _wait(awaitable):
    return await awaitable


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
