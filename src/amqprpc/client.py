""" The client side of the request/response pattern. A :class:`Client`
    publishes commands to a server's request queue and matches the replies
    arriving on its own reply queue back to the calls that produced them,
    using a correlation identifier carried in the message properties.
"""

import concurrent.futures
import itertools
import logging
import threading

from . import command as codec
from .endpoint import Endpoint, READY
from .errors import ClientDisconnect, CommandTimeout, DecodingError
from .transport.base import TransportError


logger = logging.getLogger(__name__)

# Seconds to wait for a reply before a call is abandoned.
DEFAULT_TIMEOUT = 60.0


class PendingCall:
    """ Bookkeeping for one outstanding call: the *correlation_id* it was
        sent with, the *command* name (for diagnostics), the timer that will
        abandon it, and the :class:`concurrent.futures.Future` handed back
        to the caller.
    """

    def __init__(self, correlation_id, command):

        self.correlation_id = correlation_id
        self.command = command
        self.timer = None

        # The future is marked as running straight away, so that the caller
        # cannot cancel it; only a reply, the timer, or a disconnect
        # completes a call.

        self.future = concurrent.futures.Future()
        self.future.set_running_or_notify_cancel()


    def __repr__(self):
        return 'PendingCall(%r, %r)' % (self.correlation_id, self.command)


    def canceled(self, reason):
        """ Return the exception message for a call abandoned for *reason*.
        """

        return 'send_command canceled due to %s, command:%s, correlation_id:%s' % (
                reason, self.command, self.correlation_id)


# end of class PendingCall



class Client(Endpoint):
    """ Send commands to the server consuming *requests_queue*, which must
        be specified. Replies are received on *replies_queue*; if none is
        specified the client asks the transport for an exclusive queue with
        a generated name when it starts, and deletes that queue again when
        it disconnects. A queue name supplied by the caller is assumed to
        be managed elsewhere and is never deleted.

        The *timeout* is the default time to wait for any one reply,
        expressed in seconds (not milliseconds); fractional values such as
        0.05 are accepted.
    """

    def __init__(self, connection, requests_queue, replies_queue='', timeout=DEFAULT_TIMEOUT):

        if not requests_queue:
            raise ValueError('requests_queue is required')

        Endpoint.__init__(self, connection)

        if replies_queue is None:
            replies_queue = ''

        if timeout is None:
            timeout = DEFAULT_TIMEOUT

        self.requests_queue = requests_queue
        self.replies_queue = replies_queue
        self.timeout = float(timeout)

        self._owns_queue = False
        self._consumer_tag = None

        self._pending = dict()
        self._pending_lock = threading.Lock()
        self._id_lock = threading.Lock()
        self._id_ticker = itertools.count(0)


    @property
    def pending(self):
        """ The number of calls still awaiting a reply.
        """

        with self._pending_lock:
            return len(self._pending)


    def start(self):
        """ Create the channel, the reply queue if one was not specified,
            and begin consuming replies. Calling :func:`start` on a running
            client does nothing.
        """

        if self._channel is not None:
            return

        Endpoint.start(self)

        try:
            if self.replies_queue == '':
                self.replies_queue = self._channel.assert_queue('', exclusive=True)
                self._owns_queue = True

            self._consumer_tag = self._channel.consume(self.replies_queue, self._dispatch_reply)
        except Exception:
            self._release_queue()
            self._abandon_start()
            raise

        self.state = READY

        logger.debug('client receiving replies on %s', self.replies_queue)


    def disconnect(self):
        """ Stop consuming replies, delete the reply queue if this client
            created it, reject every call still outstanding with
            :class:`amqprpc.errors.ClientDisconnect`, and close the channel.
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
            with self._pending_lock:
                abandoned = list(self._pending.values())
                self._pending.clear()

            for pending in abandoned:
                pending.timer.cancel()
                error = ClientDisconnect(pending.canceled('client disconnect'))
                pending.future.set_exception(error)

            Endpoint.disconnect(self)


    def send_command(self, name, args=(), timeout=None):
        """ Send the command *name* with the ordered *args* and return a
            :class:`concurrent.futures.Future` for its result. The future
            resolves with the value returned by the server-side handler, or
            fails with:

            * :class:`amqprpc.errors.RemoteError` if the handler raised, or
              the server does not know the command;
            * :class:`amqprpc.errors.CommandTimeout` if no reply arrives
              within *timeout* seconds (the client default if None);
            * :class:`amqprpc.errors.ClientDisconnect` if the client is
              disconnected first.

            Encoding and transport failures are raised directly.
        """

        channel = self._channel

        if channel is None:
            raise RuntimeError('the client must be started before sending commands')

        if timeout is None:
            timeout = self.timeout

        content = codec.encode_command(name, args)

        correlation_id = self._id_next()
        pending = PendingCall(correlation_id, name)

        timer = threading.Timer(timeout, self._expire, args=(correlation_id, timeout))
        timer.daemon = True
        pending.timer = timer

        with self._pending_lock:
            self._pending[correlation_id] = pending

        timer.start()

        try:
            channel.send_to_queue(self.requests_queue, content,
                                  reply_to=self.replies_queue,
                                  correlation_id=correlation_id)
        except Exception:
            self._remove(correlation_id)
            raise

        return pending.future


    def call(self, name, args=(), timeout=None):
        """ Send a command and block until its result is available; this is
            a thin wrapper around :func:`send_command`. The result is
            returned, or the failure raised.
        """

        future = self.send_command(name, args, timeout)
        return future.result()


    def _release_queue(self):
        """ Delete the reply queue if this instance generated it. A queue
            that is already gone is not an error.
        """

        if self._owns_queue:
            try:
                self._channel.delete_queue(self.replies_queue)
            except TransportError:
                pass

            self.replies_queue = ''
            self._owns_queue = False


    def _id_next(self):
        """ Return the next correlation identifier. Identifiers are never
            reused within the lifetime of a client.
        """

        with self._id_lock:
            id = next(self._id_ticker)

        return str(id)


    def _remove(self, correlation_id):
        """ Remove and return the :class:`PendingCall` for *correlation_id*,
            or None if it is no longer outstanding. Whoever removes a call
            is the only one permitted to complete it.
        """

        with self._pending_lock:
            pending = self._pending.pop(correlation_id, None)

        if pending is not None:
            pending.timer.cancel()

        return pending


    def _expire(self, correlation_id, timeout):

        pending = self._remove(correlation_id)

        if pending is None:
            return

        error = CommandTimeout(pending.canceled('timeout (%s sec)' % (timeout)))
        pending.future.set_exception(error)


    def _dispatch_reply(self, message):
        """ Consumer callback for the reply queue.
        """

        if message is None:
            # The queue was closed underneath us.
            logger.debug('reply queue %s closed', self.replies_queue)
            return

        channel = self._channel
        if channel is not None:
            channel.ack(message)

        correlation_id = message.properties.correlation_id
        pending = self._remove(correlation_id)

        if pending is None:
            # Late reply for a call that already timed out or was canceled,
            # or a reply that was never ours.
            logger.debug('dropping reply for correlation id %s', correlation_id)
            return

        try:
            result = codec.decode_result(message.content)
        except DecodingError as error:
            pending.future.set_exception(error)
            return

        if result.status == codec.SUCCESS:
            pending.future.set_result(result.payload)
        else:
            pending.future.set_exception(result.payload)


# end of class Client


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
