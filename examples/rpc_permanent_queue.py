""" Request/response over RabbitMQ with a request queue that is declared
    ahead of time, outside of the server. Both the server and the clients
    only need to agree on the queue name; the queue outlives all of them.
"""

import concurrent.futures
import datetime
import logging

import amqprpc
from amqprpc.transport import rabbitmq


QUEUE_NAME = 'predefined-queue-name'


def initial_setup(connection, queue_name):

    channel = connection.create_channel()
    channel.assert_queue(queue_name)
    channel.close()


def init_server(connection, requests_queue):

    server = amqprpc.Server(connection, requests_queue)
    server.add_command('hello', lambda name: {'message': 'Hello, %s!' % (name)})
    server.add_command('get-time', lambda: {'time': datetime.datetime.now().isoformat()})
    server.start()

    print('Server is ready')
    return server


def run_client(name, requests_queue, count):

    connection = rabbitmq.Connection()
    client = amqprpc.Client(connection, requests_queue)
    client.start()

    response = client.call('hello', [name])
    print('%s got hello response %s' % (name, response['message']))

    # Several commands can be outstanding at once; the replies are matched
    # up with the calls that produced them.

    futures = [client.send_command('get-time') for i in range(count)]

    for number, future in enumerate(futures):
        response = future.result()
        print('%s got response %d for get-time: %s' % (name, number + 1, response['time']))

    client.disconnect()
    connection.close()


def main():

    logging.basicConfig(level=logging.INFO)

    connection = rabbitmq.Connection()
    initial_setup(connection, QUEUE_NAME)
    server = init_server(connection, QUEUE_NAME)

    with concurrent.futures.ThreadPoolExecutor() as executor:
        clients = [executor.submit(run_client, 'Tom', QUEUE_NAME, 2),
                   executor.submit(run_client, 'Alisa', QUEUE_NAME, 1)]

        for future in clients:
            future.result()

    server.disconnect()
    connection.close()


if __name__ == '__main__':
    main()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
