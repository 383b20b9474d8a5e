import pytest

import amqprpc
from amqprpc import command


def test_command_round_trip():

    arguments = ['string argument', {'key': 'value'}, [1, 2, 3], 3.14159, False, None, 24]

    encoded = command.encode_command('do-something', arguments)
    assert isinstance(encoded, bytes)

    decoded = command.decode_command(encoded)
    assert decoded.name == 'do-something'
    assert list(decoded.args) == arguments


def test_command_wire_format():

    encoded = command.encode_command('echo', ('hi',))
    decoded = amqprpc.json.loads(encoded)

    assert decoded == {'command': 'echo', 'args': ['hi']}


def test_command_default_arguments():

    decoded = command.decode_command(command.encode_command('noargs'))
    assert decoded.args == ()

    decoded = command.decode_command(command.encode_command('noargs', None))
    assert decoded.args == ()


def test_command_object():

    instance = amqprpc.Command('echo', ['hi', 1])
    assert instance.args == ('hi', 1)
    assert amqprpc.Command.unpack(instance.pack()) == instance

    with pytest.raises(AttributeError):
        instance.name = 'other'

    with pytest.raises(ValueError):
        amqprpc.Command('')


def test_command_encoding_errors():

    with pytest.raises(amqprpc.EncodingError):
        command.encode_command('unencodable', [object()])

    with pytest.raises(amqprpc.EncodingError):
        command.encode_command('', [])

    with pytest.raises(amqprpc.EncodingError):
        command.encode_command(None, [])

    with pytest.raises(amqprpc.EncodingError):
        command.encode_command('not-a-sequence', 5)


@pytest.mark.parametrize('payload', (
    b'not json at all',
    b'[1, 2, 3]',
    b'{"args": []}',
    b'{"command": "", "args": []}',
    b'{"command": 5, "args": []}',
    b'{"command": "cmd"}',
    b'{"command": "cmd", "args": {"a": 1}}',
    b'{"command": "cmd", "args": "string"}',
))
def test_command_decoding_errors(payload):

    with pytest.raises(amqprpc.DecodingError):
        command.decode_command(payload)


def test_success_result():

    payload = {'str': 'string', 'obj': {'key': 'value'}, 'arr': [1, 2, 3], 'boolean': False, 'int': 24}

    encoded = command.encode_result(command.SUCCESS, payload)
    assert amqprpc.json.loads(encoded) == {'state': 'success', 'data': payload}

    result = command.decode_result(encoded)
    assert result.status == command.SUCCESS
    assert result.ok
    assert result.payload == payload


def test_success_result_without_payload():

    result = command.decode_result(command.encode_result(command.SUCCESS))
    assert result.status == command.SUCCESS
    assert result.payload is None


def test_error_flattening():

    class CustomError(Exception):
        pass

    try:
        error = CustomError('bad')
        error.code = 'E_CUSTOM_ERROR_CODE'
        error.extra = 'not transmitted'
        raise error
    except CustomError as caught:
        encoded = command.encode_result(command.ERROR, caught)

    decoded = amqprpc.json.loads(encoded)
    assert decoded['state'] == 'error'

    data = decoded['data']
    assert set(data) == set(('message', 'name', 'stack', 'code'))
    assert data['message'] == 'bad'
    assert data['name'] == 'CustomError'
    assert data['code'] == 'E_CUSTOM_ERROR_CODE'
    assert 'Traceback' in data['stack']
    assert 'CustomError: bad' in data['stack']


def test_error_without_code():

    encoded = command.encode_result(command.ERROR, ValueError('no code here'))
    data = amqprpc.json.loads(encoded)['data']

    assert 'code' not in data
    assert data['message'] == 'no code here'
    assert data['name'] == 'ValueError'


def test_error_round_trip():

    error = KeyError('missing')
    error.code = 42

    result = command.decode_result(command.encode_result(command.ERROR, error))

    assert result.status == command.ERROR
    assert not result.ok
    assert isinstance(result.payload, amqprpc.RemoteError)
    assert result.payload.message == str(error)
    assert result.payload.name == 'KeyError'
    assert result.payload.code == 42


def test_remote_error_passes_through():

    original = amqprpc.RemoteError('relayed', name='ValueError', stack='stack text', code='E1')
    result = command.decode_result(command.encode_result(command.ERROR, original))

    assert result.payload.message == 'relayed'
    assert result.payload.name == 'ValueError'
    assert result.payload.stack == 'stack text'
    assert result.payload.code == 'E1'


def test_remote_error_without_stack():

    encoded = command.encode_result(command.ERROR, amqprpc.RemoteError('relayed'))
    data = amqprpc.json.loads(encoded)['data']

    assert data['message'] == 'relayed'
    assert data['name'] == 'RemoteError'
    assert data['stack'] == ''


def test_minimal_error_record():

    result = command.decode_result(b'{"state": "error", "data": {"message": "only a message"}}')

    assert str(result.payload) == 'only a message'
    assert result.payload.name is None
    assert result.payload.stack is None
    assert result.payload.code is None


@pytest.mark.parametrize('payload', (
    b'',
    b'garbage',
    b'"success"',
    b'{"data": 1}',
    b'{"state": "pending", "data": 1}',
    b'{"state": "error", "data": "just a string"}',
))
def test_result_decoding_errors(payload):

    with pytest.raises(amqprpc.DecodingError):
        command.decode_result(payload)


def test_result_encoding_errors():

    with pytest.raises(amqprpc.EncodingError):
        command.encode_result('pending', None)

    with pytest.raises(amqprpc.EncodingError):
        command.encode_result(command.SUCCESS, object())


def test_result_object():

    result = amqprpc.CommandResult(amqprpc.SUCCESS, [1, 2])
    unpacked = amqprpc.CommandResult.unpack(result.pack())

    assert unpacked.status == amqprpc.SUCCESS
    assert unpacked.payload == [1, 2]

    with pytest.raises(ValueError):
        amqprpc.CommandResult('unknown')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
