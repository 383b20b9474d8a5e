""" One-directional event streaming through a dedicated queue. An
    :class:`EventsSender` publishes arbitrary JSON-serializable events;
    an :class:`EventsReceiver` consumes them and hands each one to any
    registered callbacks. The two are meant to be used as a pair: the
    receiver typically creates the queue and tells the sender its name.
"""

import logging
import threading
import weakref

from . import json
from .errors import DecodingError, EncodingError
from .transport.base import TransportError


logger = logging.getLogger(__name__)

# Seconds an undelivered event survives in the queue.
DEFAULT_TTL = 10 * 60.0


class EventsReceiver:
    """ Turn the sequence of messages on a queue into a sequence of
        callbacks. If *queue_name* is not specified an exclusive queue with
        a generated name is created by :func:`start`, and deleted again by
        :func:`disconnect`.

        :ivar ended: A :class:`threading.Event` set when the queue is closed
            by the broker or a peer.
        :ivar closed: A :class:`threading.Event` set once this receiver
            has disconnected.
    """

    def __init__(self, connection, queue_name=''):

        if queue_name is None:
            queue_name = ''

        self.connection = connection
        self.callbacks = list()
        self.ended = threading.Event()
        self.closed = threading.Event()

        self._queue_name = queue_name
        self._owns_queue = queue_name == ''
        self._consumer_tag = None
        self._channel = None


    @property
    def queue_name(self):
        """ The name of the queue in use, including a generated one.
        """

        return self._queue_name


    def register(self, method):
        """ Register a callback to be invoked with each event received.
            Only a weak reference to the callback is retained.
        """

        if callable(method):
            pass
        else:
            raise TypeError('the registered method must be callable')

        reference = _reference(method)
        self.callbacks.append(reference)


    def start(self):
        """ Begin listening for events. Returns the name of the queue the
            sender should publish to.
        """

        if self._channel is not None:
            raise RuntimeError('already started')

        self._channel = self.connection.create_channel()

        if self._queue_name == '':
            self._queue_name = self._channel.assert_queue('', exclusive=True)

        self._consumer_tag = self._channel.consume(self._queue_name, self._handle_message)
        return self._queue_name


    def disconnect(self):
        """ Stop listening. A generated queue is deleted; it may already
            be gone if the sender side removed it first.
        """

        channel = self._channel

        if channel is None:
            return

        self._channel = None

        try:
            channel.cancel(self._consumer_tag)
        except TransportError:
            # The broker already dropped the consumer along with the queue.
            pass

        if self._owns_queue:
            try:
                channel.delete_queue(self._queue_name)
            except TransportError:
                pass

        channel.close()
        self.closed.set()


    def _handle_message(self, message):

        if message is None:
            self.ended.set()
            self.disconnect()
            return

        channel = self._channel
        if channel is not None:
            channel.ack(message)

        try:
            event = json.loads(message.content)
        except json.DecodeError as e:
            error = DecodingError('malformed event: ' + str(e))
            logger.warning('%s: %s', self._queue_name, error)
            return

        self._propagate(event)


    def _propagate(self, event):
        """ Invoke any registered callbacks with a newly received *event*.
        """

        if self.callbacks:
            pass
        else:
            return

        invalid = list()

        for reference in self.callbacks:
            callback = reference()

            if callback is None:
                invalid.append(reference)
                continue

            try:
                callback(event)
            except Exception:
                logger.exception('event callback failed')
                continue

        for reference in invalid:
            self.callbacks.remove(reference)


# end of class EventsReceiver



class EventsSender:
    """ Publish events to *queue_name*, normally the name returned by
        :func:`EventsReceiver.start`. Events that are not consumed within
        *ttl* seconds are discarded by the broker.
    """

    def __init__(self, connection, queue_name, ttl=DEFAULT_TTL):

        if not queue_name:
            raise ValueError('queue_name is required')

        if ttl is None:
            ttl = DEFAULT_TTL

        self.connection = connection
        self.queue_name = queue_name
        self.ttl = ttl
        self.closed = threading.Event()

        self._channel = None


    def start(self):

        if self._channel is not None:
            return

        self._channel = self.connection.create_channel()


    def send(self, event):
        """ Publish *event*, which may be anything that can be encoded as
            JSON.
        """

        channel = self._channel

        if channel is None:
            raise RuntimeError('the sender must be started before sending events')

        try:
            content = json.dumps(event)
        except json.EncodeError as e:
            raise EncodingError('cannot encode event: ' + str(e)) from e

        channel.send_to_queue(self.queue_name, content, expiration=self.ttl)


    def disconnect(self):

        channel = self._channel

        if channel is None:
            return

        self._channel = None
        channel.close()
        self.closed.set()


# end of class EventsSender



def _reference(method):
    """ Return a weak reference to the supplied callable, regardless of
        whether it is a simple function or a bound method.
    """

    try:
        method.__func__
        method.__self__
    except AttributeError:
        return weakref.ref(method)
    else:
        return weakref.WeakMethod(method)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
