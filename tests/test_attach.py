import asyncio

import pytest

from conftest import http_response, json_response
from moorage import endpoint as ep
from moorage.attach import AttachSession, SessionState
from moorage.exceptions import APIError, SessionClosed
from moorage.stream_reader import Channel, Frame, encode_frame

UPGRADED = http_response(101, headers={'Connection': 'Upgrade', 'Upgrade': 'tcp'}, reason='UPGRADED')


def attach_endpoint():
    return ep.post('/containers/web/attach', (('stream', 'true'), ('stdin', 'true')))


@pytest.mark.asyncio
async def test_connect_sends_upgrade_headers(dispatcher, transport):
    transport.queue(UPGRADED, eof=False)

    session = await AttachSession(dispatcher, attach_endpoint()).connect()

    request = transport.last_request
    assert request.header('Connection') == 'Upgrade'
    assert request.header('Upgrade') == 'tcp'
    assert session.state is SessionState.OPEN
    await session.close()


@pytest.mark.asyncio
async def test_read_and_write_concurrently(dispatcher, transport):
    transport.queue(UPGRADED, eof=False)
    session = await AttachSession(dispatcher, attach_endpoint()).connect()
    reader = transport.readers[0]
    writer = transport.writers[0]
    head_size = len(writer.data)

    pending = asyncio.ensure_future(session.output.__anext__())
    await asyncio.sleep(0)
    await session.write(b'ls\n')
    assert bytes(writer.data[head_size:]) == b'ls\n'

    reader.feed_data(encode_frame(Channel.STDOUT, b'bin etc\n'))
    assert await pending == Frame(Channel.STDOUT, b'bin etc\n')
    await session.close()


@pytest.mark.asyncio
async def test_tty_session_is_raw(dispatcher, transport):
    transport.queue(UPGRADED + b'$ ', eof=True)

    async with AttachSession(dispatcher, attach_endpoint(), tty=True) as session:
        frames = [frame async for frame in session]

    assert frames == [Frame(Channel.STDOUT, b'$ ')]


@pytest.mark.asyncio
async def test_remote_close_ends_output_and_blocks_writes(dispatcher, transport):
    transport.queue(UPGRADED + encode_frame(Channel.STDERR, b'bye\n'), eof=True)
    session = await AttachSession(dispatcher, attach_endpoint()).connect()

    frames = [frame async for frame in session]

    assert frames == [Frame(Channel.STDERR, b'bye\n')]
    assert session.state is SessionState.CLOSED
    with pytest.raises(SessionClosed):
        await session.write(b'more')


@pytest.mark.asyncio
async def test_write_after_remote_eof_without_reading(dispatcher, transport):
    transport.queue(UPGRADED, eof=True)
    session = await AttachSession(dispatcher, attach_endpoint(), tty=True).connect()

    with pytest.raises(SessionClosed):
        await session.write(b'ls\n')
    assert session.state is not SessionState.OPEN
    with pytest.raises(SessionClosed):
        await session.close_stdin()
    await session.close()


@pytest.mark.asyncio
async def test_close_is_idempotent_and_releases(dispatcher, transport):
    transport.queue(UPGRADED, eof=False)
    session = await AttachSession(dispatcher, attach_endpoint()).connect()

    await session.close()
    await session.close()

    assert session.state is SessionState.CLOSED
    assert transport.writers[0].closed
    with pytest.raises(SessionClosed):
        await session.write(b'x')


@pytest.mark.asyncio
async def test_close_stdin_half_closes(dispatcher, transport):
    transport.queue(UPGRADED, eof=False)
    session = await AttachSession(dispatcher, attach_endpoint()).connect()

    await session.close_stdin()

    assert transport.writers[0].eof
    assert session.state is SessionState.OPEN
    await session.close()


@pytest.mark.asyncio
async def test_error_status_fails_connect(dispatcher, transport):
    transport.queue(json_response({'message': 'container web is not running'}, status=409))
    session = AttachSession(dispatcher, attach_endpoint())

    with pytest.raises(APIError) as excinfo:
        await session.connect()

    assert excinfo.value.status_code == 409
    assert session.state is SessionState.CLOSED


@pytest.mark.asyncio
async def test_unexpected_success_status(dispatcher, transport):
    transport.queue(http_response(204, reason='No Content'))
    session = AttachSession(dispatcher, attach_endpoint())

    with pytest.raises(APIError):
        await session.connect()
    assert transport.writers[0].closed
