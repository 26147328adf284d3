import base64
import json
from urllib.parse import parse_qs, urlsplit

import pytest

from conftest import frames_body, http_response, json_response, ndjson_response
from moorage.events import Event
from moorage.exceptions import (
    APIError,
    ContainerNotFound,
    ImageNotFound,
    NetworkNotFound,
    UnknownResponse,
    VolumeNotFound,
)
from moorage.images import parse_repository_tag
from moorage.ndjson import ProgressStatus
from moorage.stream_reader import Channel, Frame, encode_frame


def query_of(request):
    return {k: v[0] for k, v in parse_qs(urlsplit(request.target).query).items()}


@pytest.mark.asyncio
async def test_ping(client, transport):
    transport.queue(http_response(200, b'OK'))

    assert await client.ping() == 'OK'
    assert transport.last_request.target == '/_ping'


@pytest.mark.asyncio
async def test_version_and_df(client, transport):
    transport.queue(json_response({'ApiVersion': '1.44'}))
    transport.queue(json_response({'LayersSize': 0}))

    assert (await client.version())['ApiVersion'] == '1.44'
    assert (await client.df())['LayersSize'] == 0
    assert transport.last_request.target == '/system/df'


@pytest.mark.asyncio
async def test_events_stream(client, transport):
    transport.queue(ndjson_response(
        {'Type': 'container', 'Action': 'start', 'Actor': {'ID': 'abc', 'Attributes': {'name': 'web'}},
         'timeNano': 1700000000000000000},
    ))

    async with await client.events(filters={'type': ['container']}) as events:
        items = [event async for event in events]

    assert items[0] == Event(type='container', action='start', actor_id='abc',
                             attributes={'name': 'web'}, time_nano=1700000000000000000)
    assert items[0].name == 'web'
    assert json.loads(query_of(transport.last_request)['filters']) == {'type': ['container']}


@pytest.mark.asyncio
async def test_container_list_and_get(client, transport):
    transport.queue(json_response([{'Id': 'a' * 64, 'Names': ['/web'], 'State': 'running', 'Image': 'nginx'}]))

    containers = await client.containers.list(all=True)

    assert containers[0].name == 'web'
    assert containers[0].status == 'running'
    assert query_of(transport.last_request) == {'all': 'true'}


@pytest.mark.asyncio
async def test_container_get_not_found(client, transport):
    transport.queue(json_response({'message': 'No such container: ghost'}, status=404))

    with pytest.raises(ContainerNotFound) as excinfo:
        await client.containers.get('ghost')
    assert isinstance(excinfo.value, APIError)
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_logs_inspect_tty_when_unknown(client, transport):
    transport.queue(json_response({'Id': 'abc', 'Name': '/web', 'State': {'Status': 'running'},
                                   'Config': {'Tty': True}}))
    transport.queue(http_response(200, b'\x01\x00\x00\x00raw tty bytes'))

    frames = await client.containers.logs('web', tail=10)
    data = b''.join(frame.payload for frame in await frames.collect())

    assert data == b'\x01\x00\x00\x00raw tty bytes'
    assert transport.requests[0].target == '/containers/web/json'
    assert query_of(transport.last_request)['tail'] == '10'


@pytest.mark.asyncio
async def test_log_entries_demux_and_timestamps(client, transport):
    transport.queue(http_response(200, frames_body(
        (Channel.STDOUT, b'2024-01-01T00:00:00.5Z hello\n'),
        (Channel.STDERR, b'2024-01-01T00:00:01Z oops\n'),
    )))

    stream = await client.containers.log_entries('web', tty=False)
    entries = await stream.collect()

    assert [(e.source, e.message) for e in entries] == [(Channel.STDOUT, 'hello'), (Channel.STDERR, 'oops')]
    assert entries[0].timestamp.microsecond == 500000
    assert query_of(transport.last_request)['timestamps'] == 'true'


@pytest.mark.asyncio
async def test_exec_run_collects_output(client, transport):
    transport.queue(json_response({'Id': 'exec1'}, status=201))
    transport.queue(http_response(200, frames_body((Channel.STDOUT, b'out'), (Channel.STDERR, b'err'))))
    transport.queue(json_response({'ExitCode': 3}))

    result = await client.containers.exec_run('web', 'false')

    assert result.exit_code == 3
    assert result.stdout == b'out'
    assert result.stderr == b'err'
    assert json.loads(transport.requests[0].body)['Cmd'] == ['sh', '-c', 'false']


@pytest.mark.asyncio
async def test_stats_one_shot(client, transport):
    transport.queue(json_response({'memory_stats': {'usage': 1024}}))

    stats = await client.containers.stats('web', stream=False)

    assert stats['memory_stats']['usage'] == 1024
    assert query_of(transport.last_request)['stream'] == 'false'


@pytest.mark.asyncio
async def test_pull_docker_digest(client, transport):
    transport.queue(ndjson_response(
        {'status': 'Pulling from library/alpine', 'id': '3.19'},
        {'status': 'Pull complete', 'id': '4abcf2066143', 'progressDetail': {}},
        {'status': 'Digest: sha256:51b67269f354'},
        {'status': 'Status: Downloaded newer image for alpine:3.19'},
    ))
    seen = []

    result = await client.images.pull('alpine:3.19', progress=seen.append)

    assert result.digest == 'sha256:51b67269f354'
    assert query_of(transport.last_request) == {'fromImage': 'alpine', 'tag': '3.19'}
    assert seen[0] == ProgressStatus(status='Pulling from library/alpine', id='3.19')


@pytest.mark.asyncio
async def test_pull_podman_id(client, transport):
    transport.queue(ndjson_response(
        {'status': 'Trying to pull docker.io/library/alpine:latest...'},
        {'id': '05455a08881ea9cf0e752bc48e61bbd71a34c029bb13df01e40e3e70e0d007bd'},
    ))

    result = await client.images.pull('alpine')

    assert result.digest.startswith('05455a08881e')
    assert query_of(transport.last_request)['tag'] == 'latest'


@pytest.mark.asyncio
async def test_pull_error_envelope(client, transport):
    transport.queue(ndjson_response(
        {'status': 'Pulling from library/nope'},
        {'errorDetail': {'message': 'manifest unknown'}, 'error': 'manifest unknown'},
    ))

    with pytest.raises(APIError, match='manifest unknown'):
        await client.images.pull('nope')
    assert transport.writers[0].closed


@pytest.mark.asyncio
async def test_pull_without_result(client, transport):
    transport.queue(ndjson_response(b'{"status":  "Done"}', b'{"status": "Extracting", "id": null}'))

    with pytest.raises(UnknownResponse) as excinfo:
        await client.images.pull('alpine')
    assert excinfo.value.raw == b'{"status":  "Done"}\n{"status": "Extracting", "id": null}'


def test_parse_repository_tag():
    assert parse_repository_tag('alpine') == ('alpine', None)
    assert parse_repository_tag('registry:5000/app:1.0') == ('registry:5000/app', '1.0')
    assert parse_repository_tag('registry:5000/app') == ('registry:5000/app', None)
    assert parse_repository_tag('app@sha256:abc') == ('app', 'sha256:abc')


@pytest.mark.asyncio
async def test_image_get_not_found(client, transport):
    transport.queue(json_response({'message': 'No such image: x'}, status=404))

    with pytest.raises(ImageNotFound):
        await client.images.get('x')


@pytest.mark.asyncio
async def test_network_get_not_found(client, transport):
    transport.queue(json_response({'message': 'network x not found'}, status=404))

    with pytest.raises(NetworkNotFound):
        await client.networks.get('x')


@pytest.mark.asyncio
async def test_volumes(client, transport):
    transport.queue(json_response({'Volumes': [{'Name': 'data'}], 'Warnings': None}))
    transport.queue(json_response({'message': 'get missing: no such volume'}, status=404))

    volumes = await client.volumes.list()
    assert [v.name for v in volumes] == ['data']
    with pytest.raises(VolumeNotFound):
        await client.volumes.get('missing')


@pytest.mark.asyncio
async def test_secret_create_encodes_data(client, transport):
    transport.queue(json_response({'ID': 'sec1'}, status=201))

    assert await client.secrets.create('token', 's3cret', labels={'app': 'web'}) == 'sec1'

    body = json.loads(transport.last_request.body)
    assert base64.b64decode(body['Data']) == b's3cret'
    assert body['Labels'] == {'app': 'web'}
    assert transport.last_request.target == '/secrets/create'


@pytest.mark.asyncio
async def test_put_archive_sends_tar(client, transport):
    transport.queue(http_response(200))

    assert await client.containers.put_archive('web', '/tmp', b'tar-bytes')

    request = transport.last_request
    assert request.method == 'PUT'
    assert request.header('Content-Type') == 'application/x-tar'
    assert request.body == b'tar-bytes'


@pytest.mark.asyncio
async def test_attach_uses_known_tty(client, transport):
    transport.queue(json_response({'Id': 'abc', 'Config': {'Tty': False}}))
    transport.queue(http_response(101, headers={'Connection': 'Upgrade', 'Upgrade': 'tcp'}, reason='UPGRADED')
                    + frames_body((Channel.STDOUT, b'ready\n')))

    async with await client.containers.attach('web') as session:
        frames = [frame async for frame in session]

    assert frames == [Frame(Channel.STDOUT, b'ready\n')]
    assert session.tty is False


@pytest.mark.asyncio
async def test_exec_attach(client, transport):
    transport.queue(http_response(101, headers={'Connection': 'Upgrade', 'Upgrade': 'tcp'}, reason='UPGRADED'),
                    eof=False)

    session = await client.containers.exec_attach('exec1')

    request = transport.last_request
    assert request.target == '/exec/exec1/start'
    assert json.loads(request.body) == {'Detach': False, 'Tty': False}
    assert request.header('Connection') == 'Upgrade'
    assert request.header('Upgrade') == 'tcp'

    await session.write(b'ls\n')
    assert bytes(transport.writers[0].data).endswith(b'ls\n')

    reader = transport.readers[0]
    reader.feed_data(encode_frame(Channel.STDOUT, b'bin\n') + encode_frame(Channel.STDERR, b'warn\n'))
    reader.feed_eof()
    async with session:
        frames = [frame async for frame in session]

    assert frames == [Frame(Channel.STDOUT, b'bin\n'), Frame(Channel.STDERR, b'warn\n')]
