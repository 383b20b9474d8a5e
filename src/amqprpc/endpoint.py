""" Common base for :class:`amqprpc.client.Client` and
    :class:`amqprpc.server.Server`: ownership of exactly one channel on a
    transport connection, acquired once and released once.
"""

import logging

from .transport.base import TransportError


logger = logging.getLogger(__name__)

CREATED = 'CREATED'
STARTING = 'STARTING'
READY = 'READY'
LISTENING = 'LISTENING'
STOPPED = 'STOPPED'


class Endpoint:
    """ Hold the channel for a single client or server. The *connection* is
        any :class:`amqprpc.transport.base.Connection` instance; the channel
        is not created until :func:`start` is invoked.

        Race conditions are not handled here: :func:`start` and
        :func:`disconnect` must not be invoked concurrently on the same
        instance.

        :ivar state: One of CREATED, STARTING, READY (or LISTENING for a
            server), or STOPPED.
    """

    def __init__(self, connection):

        self.connection = connection
        self.state = CREATED
        self._channel = None


    @property
    def started(self):
        return self._channel is not None


    def start(self):
        """ Create the channel. Calling :func:`start` on an endpoint that
            already holds a channel does nothing.
        """

        if self._channel is not None:
            return

        self.state = STARTING

        try:
            self._channel = self.connection.create_channel()
        except Exception:
            self.state = CREATED
            raise

        logger.debug("%s: channel opened", type(self).__name__)


    def disconnect(self):
        """ The opposite of :func:`start`: close the channel and clear the
            local reference to it. Disconnecting an endpoint that was never
            started does nothing.
        """

        channel = self._channel

        if channel is None:
            return

        self._channel = None
        self.state = STOPPED
        channel.close()


    def _abandon_start(self):
        """ Undo a :func:`start` that failed after the channel was acquired,
            returning the endpoint to CREATED so that :func:`start` can be
            tried again. The original failure is left for the caller to
            re-raise.
        """

        channel = self._channel
        self._channel = None
        self.state = CREATED

        if channel is None:
            return

        try:
            channel.close()
        except TransportError as e:
            logger.debug("%s: cannot close channel: %s", type(self).__name__, e)


# end of class Endpoint


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
