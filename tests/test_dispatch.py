import json

import pytest

from conftest import frames_body, http_response, json_response, ndjson_response
from moorage import endpoint as ep
from moorage.config import ClientSettings
from moorage.dispatch import Dispatcher, error_message
from moorage.endpoint import ResponseShape
from moorage.exceptions import APIError, DecodeError, Timeout, TransportError, TruncatedStream
from moorage.stream_reader import Channel, Frame


def test_error_message_prefers_envelope():
    assert error_message(b'{"message":"No such container: web"}') == 'No such container: web'
    assert error_message(b'page not found\n') == 'page not found'
    assert error_message(b'{"other":1}') == '{"other":1}'


@pytest.mark.asyncio
async def test_single_value_round_trip(dispatcher, transport):
    transport.queue(json_response([{'Id': 'abc'}]))

    result = await dispatcher.execute(ep.get('/containers/json', (('all', 'true'),)))

    assert result == [{'Id': 'abc'}]
    request = transport.last_request
    assert request.method == 'GET'
    assert request.target == '/containers/json?all=true'
    assert transport.writers[0].closed


@pytest.mark.asyncio
async def test_api_version_prefix(transport):
    dispatcher = Dispatcher(transport, ClientSettings(api_version='1.41'))
    transport.queue(http_response(200, b'OK'))

    await dispatcher.execute(ep.get('/_ping', mapper=ep.text_response))

    assert transport.last_request.target == '/v1.41/_ping'


@pytest.mark.asyncio
async def test_json_body_sets_content_type(dispatcher, transport):
    transport.queue(json_response({'Id': 'new'}, status=201))

    await dispatcher.execute(ep.post('/containers/create', body={'Image': 'alpine'}))

    request = transport.last_request
    assert request.header('Content-Type') == 'application/json'
    assert json.loads(request.body) == {'Image': 'alpine'}


@pytest.mark.asyncio
async def test_error_status_maps_envelope(dispatcher, transport):
    transport.queue(json_response({'message': 'No such container: web'}, status=404))

    with pytest.raises(APIError) as excinfo:
        await dispatcher.execute(ep.get('/containers/web/json'))

    assert excinfo.value.status_code == 404
    assert excinfo.value.explanation == 'No such container: web'
    assert transport.writers[0].closed


@pytest.mark.asyncio
async def test_error_status_with_plain_body(dispatcher, transport):
    transport.queue(http_response(500, b'internal failure', reason='Internal Server Error'))

    with pytest.raises(APIError) as excinfo:
        await dispatcher.execute(ep.get('/info'))

    assert excinfo.value.status_code == 500
    assert str(excinfo.value) == '500: internal failure'


@pytest.mark.asyncio
async def test_malformed_body_is_decode_error(dispatcher, transport):
    transport.queue(http_response(200, b'{"truncated":'))

    with pytest.raises(DecodeError) as excinfo:
        await dispatcher.execute(ep.get('/version'))
    assert excinfo.value.context == b'{"truncated":'


@pytest.mark.asyncio
async def test_empty_body_is_none(dispatcher, transport):
    transport.queue(http_response(204, reason='No Content'))

    assert await dispatcher.execute(ep.post('/containers/web/start')) is None


@pytest.mark.asyncio
async def test_chunked_single_value(dispatcher, transport):
    transport.queue(http_response(200, [b'{"Vers', b'ion":"2', b'5.0"}'], chunked=True))

    assert await dispatcher.execute(ep.get('/version')) == {'Version': '25.0'}


@pytest.mark.asyncio
async def test_transport_error_propagates(dispatcher, transport):
    transport.error = TransportError('connection refused')

    with pytest.raises(TransportError):
        await dispatcher.execute(ep.get('/_ping'))
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_deadline_before_response_head(dispatcher, transport):
    transport.delay = 1
    transport.queue(json_response({}))

    with pytest.raises(Timeout):
        await dispatcher.execute(ep.get('/info'), timeout=0.05)


@pytest.mark.asyncio
async def test_ndjson_stream(dispatcher, transport):
    transport.queue(ndjson_response({'Type': 'container'}, {'Type': 'image'}))

    stream = await dispatcher.execute(ep.get('/events', shape=ResponseShape.NDJSON))
    items = await stream.collect()

    assert items == [{'Type': 'container'}, {'Type': 'image'}]
    assert transport.writers[0].closed


@pytest.mark.asyncio
async def test_demux_stream(dispatcher, transport):
    body = frames_body((Channel.STDOUT, b'hi\n'), (Channel.STDERR, b'warn\n'))
    transport.queue(http_response(200, body))

    stream = await dispatcher.execute(ep.get('/containers/web/logs'), shape=ResponseShape.DEMUX)

    assert await stream.collect() == [Frame(Channel.STDOUT, b'hi\n'), Frame(Channel.STDERR, b'warn\n')]


@pytest.mark.asyncio
async def test_early_close_releases_connection(dispatcher, transport):
    transport.queue(ndjson_response(*[{'n': i} for i in range(50)]))

    stream = await dispatcher.execute(ep.get('/events', shape=ResponseShape.NDJSON))
    assert await stream.__anext__() == {'n': 0}
    await stream.aclose()

    assert transport.writers[0].closed


@pytest.mark.asyncio
async def test_truncated_chunked_stream(dispatcher, transport):
    raw = http_response(200, [b'{"n":1}\n'], chunked=True)
    transport.queue(raw[:-len(b'0\r\n\r\n')])

    stream = await dispatcher.execute(ep.get('/events', shape=ResponseShape.NDJSON))

    assert await stream.__anext__() == {'n': 1}
    with pytest.raises(TruncatedStream):
        await stream.__anext__()
