import pytest
from unittest import mock

import amqprpc
from amqprpc import transport
from amqprpc.transport import memory


@pytest.fixture
def connection():

    connection = memory.Connection()
    yield connection
    connection.close()


@pytest.fixture
def server(connection):

    server = amqprpc.Server(connection)
    server.start()

    yield server

    server.disconnect()


@pytest.fixture
def client(connection, server):

    # A short timeout keeps failures from hanging the test run; individual
    # tests override it as necessary.

    client = amqprpc.Client(connection, server.requests_queue, timeout=2)
    client.start()

    yield client

    client.disconnect()


@pytest.fixture
def channel():
    """ A stand-in for a transport channel, recording every call made
        against it.
    """

    # The Channel interface, and unsafe=True for older interpreters, let
    # the mock accept the assert_queue attribute.

    channel = mock.Mock(spec=transport.Channel, unsafe=True)
    channel.assert_queue.return_value = 'amq.gen-stub'
    channel.consume.return_value = 'ctag-stub'
    return channel


@pytest.fixture
def stub_connection(channel):

    connection = mock.Mock(spec=transport.Connection)
    connection.create_channel.return_value = channel
    return connection


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
