import pytest
import queue
import threading

from amqprpc.transport import memory, Message, TransportError


class Inbox:
    """ Consumer callback that retains every delivery, including the None
        that announces the removal of a queue.
    """

    def __init__(self):
        self.deliveries = queue.Queue()

    def __call__(self, message):
        self.deliveries.put(message)

    def get(self, timeout=2):
        return self.deliveries.get(timeout=timeout)

    def empty(self):
        return self.deliveries.empty()


@pytest.fixture
def broker():

    broker = memory.Broker()
    yield broker
    broker.close()


def test_declare(connection):

    channel = connection.create_channel()

    generated = channel.assert_queue()
    assert generated.startswith('amq.gen-')
    assert channel.assert_queue() != generated

    assert channel.assert_queue('named') == 'named'
    assert channel.assert_queue('named') == 'named'

    assert 'named' in connection.broker.queues()
    assert generated in connection.broker.queues()


def test_delivery_and_properties(connection):

    channel = connection.create_channel()
    name = channel.assert_queue('q')

    inbox = Inbox()
    channel.consume(name, inbox)
    channel.send_to_queue(name, b'payload', reply_to='replies', correlation_id='3')

    message = inbox.get()
    assert isinstance(message, Message)
    assert message.content == b'payload'
    assert message.properties.reply_to == 'replies'
    assert message.properties.correlation_id == '3'
    assert message.delivery_tag is not None

    channel.ack(message)


def test_messages_are_held_until_consumed(connection):

    channel = connection.create_channel()
    name = channel.assert_queue('held')

    channel.send_to_queue(name, b'one')
    channel.send_to_queue(name, b'two')

    inbox = Inbox()
    channel.consume(name, inbox)

    assert inbox.get().content == b'one'
    assert inbox.get().content == b'two'


def test_publish_to_missing_queue_is_dropped(connection):

    channel = connection.create_channel()
    channel.send_to_queue('nowhere', b'lost')

    assert 'nowhere' not in connection.broker.queues()


def test_round_robin(connection):

    channel = connection.create_channel()
    name = channel.assert_queue('shared')

    first = Inbox()
    second = Inbox()
    channel.consume(name, first)
    channel.consume(name, second)

    for number in range(4):
        channel.send_to_queue(name, str(number).encode())

    received = set()
    for inbox in (first, second):
        received.add(inbox.get().content)
        received.add(inbox.get().content)

    assert received == set((b'0', b'1', b'2', b'3'))
    assert first.empty()
    assert second.empty()


def test_delete_notifies_consumers(connection):

    channel = connection.create_channel()
    name = channel.assert_queue('doomed')

    inbox = Inbox()
    channel.consume(name, inbox)
    channel.delete_queue(name)

    assert inbox.get() is None
    assert name not in connection.broker.queues()

    with pytest.raises(TransportError):
        channel.delete_queue(name)

    with pytest.raises(TransportError):
        channel.consume(name, inbox)


def test_cancel(connection):

    channel = connection.create_channel()
    name = channel.assert_queue('q')

    inbox = Inbox()
    tag = channel.consume(name, inbox)
    channel.cancel(tag)

    with pytest.raises(TransportError):
        channel.cancel(tag)

    # With no consumer left the message waits in the queue.

    channel.send_to_queue(name, b'waiting')

    later = Inbox()
    channel.consume(name, later)

    assert later.get().content == b'waiting'
    assert inbox.empty()


def test_exclusive_queue(broker):

    owner = memory.Connection(broker)
    other = memory.Connection(broker)

    name = owner.create_channel().assert_queue('', exclusive=True)

    with pytest.raises(TransportError):
        other.create_channel().consume(name, Inbox())

    # Anyone may publish to it.

    inbox = Inbox()
    owner.create_channel().consume(name, inbox)
    other.create_channel().send_to_queue(name, b'hello')
    assert inbox.get().content == b'hello'

    owner.close()
    assert name not in broker.queues()

    other.close()


def test_closed_channel(connection):

    channel = connection.create_channel()
    name = channel.assert_queue('q')

    inbox = Inbox()
    channel.consume(name, inbox)
    channel.close()

    with pytest.raises(TransportError):
        channel.send_to_queue(name, b'too late')

    with pytest.raises(TransportError):
        channel.close()

    # Closing the channel removed its consumer.

    assert connection.broker.consumers_of(channel) == []


def test_closed_connection():

    connection = memory.Connection()
    channel = connection.create_channel()
    connection.close()
    connection.close()

    assert channel.closed

    with pytest.raises(TransportError):
        connection.create_channel()


def test_callback_failure_does_not_stop_delivery(connection):

    channel = connection.create_channel()
    name = channel.assert_queue('q')

    inbox = Inbox()

    def broken(message):
        inbox(message)
        raise ValueError('consumer failure')

    channel.consume(name, broken)
    channel.send_to_queue(name, b'one')
    channel.send_to_queue(name, b'two')

    assert inbox.get().content == b'one'
    assert inbox.get().content == b'two'


def test_publish_from_callback(connection):

    channel = connection.create_channel()
    first = channel.assert_queue('first')
    second = channel.assert_queue('second')

    done = threading.Event()

    def forward(message):
        channel.send_to_queue(second, message.content + b' forwarded')

    def finish(message):
        assert message.content == b'hello forwarded'
        done.set()

    channel.consume(first, forward)
    channel.consume(second, finish)
    channel.send_to_queue(first, b'hello')

    assert done.wait(2)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
