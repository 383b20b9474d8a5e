""" Request/response over RabbitMQ with a server-generated request queue.
    The server asks the broker for an exclusive queue with a generated
    name, and the clients are told that name directly. The queue goes away
    when the server disconnects.
"""

import concurrent.futures
import datetime
import logging
import time

import amqprpc
from amqprpc.transport import rabbitmq


def init_server(connection):

    print('Server starting')

    server = amqprpc.Server(connection)
    server.add_command('hello', lambda name: {'message': 'Hello, %s!' % (name)})
    server.add_command('get-time', lambda: {'time': datetime.datetime.now().isoformat()})
    server.start()

    print('Server is ready')
    return server


def tom(requests_queue):

    print('Tom starting')
    connection = rabbitmq.Connection()
    client = amqprpc.Client(connection, requests_queue)
    client.start()

    response = client.call('hello', ['Tom'])
    print('Tom got hello response ' + response['message'])

    time.sleep(0.1)

    response = client.call('get-time')
    print('Tom got 1st response for get-time: ' + response['time'])

    time.sleep(0.1)

    response = client.call('get-time')
    print('Tom got 2nd response for get-time: ' + response['time'])

    client.disconnect()
    connection.close()


def alisa(requests_queue):

    print('Alisa starting')
    connection = rabbitmq.Connection()
    client = amqprpc.Client(connection, requests_queue)
    client.start()

    response = client.call('hello', ['Alisa'])
    print('Alisa got hello response ' + response['message'])

    time.sleep(0.15)

    response = client.call('get-time')
    print('Alisa got response for get-time: ' + response['time'])

    client.disconnect()
    connection.close()


def main():

    logging.basicConfig(level=logging.INFO)

    connection = rabbitmq.Connection()
    server = init_server(connection)

    with concurrent.futures.ThreadPoolExecutor() as executor:
        clients = [executor.submit(tom, server.requests_queue),
                   executor.submit(alisa, server.requests_queue)]

        for client in clients:
            client.result()

    server.disconnect()
    connection.close()


if __name__ == '__main__':
    main()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
