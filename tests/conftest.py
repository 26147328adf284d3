import asyncio
import json
from typing import List, Optional

import pytest

from moorage.client import EngineClient
from moorage.config import ClientSettings
from moorage.dispatch import Dispatcher
from moorage.http_client import Connection, Response, read_headers, read_status_line, select_body
from moorage.stream_reader import encode_frame


class ChunkSource:
    """Body source handing out fixed chunks, then b'' (or an error)"""

    def __init__(self, *chunks: bytes, error: Optional[BaseException] = None):
        self.chunks = list(chunks)
        self.error = error
        self.reads = 0
        self.closed = False

    @classmethod
    def split(cls, data: bytes, size: int) -> 'ChunkSource':
        return cls(*[data[i:i + size] for i in range(0, len(data), size)])

    async def read(self, n: int = 65536) -> bytes:
        self.reads += 1
        if self.chunks:
            return self.chunks.pop(0)
        if self.error is not None:
            raise self.error
        return b''

    async def close(self):
        self.closed = True


class FakeWriter:
    """Stand-in for asyncio.StreamWriter that records what was written"""

    def __init__(self):
        self.data = bytearray()
        self.closed = False
        self.eof = False

    def write(self, data: bytes):
        if self.closed:
            raise RuntimeError("write on closed writer")
        self.data.extend(data)

    async def drain(self):
        pass

    def can_write_eof(self) -> bool:
        return True

    def write_eof(self):
        self.eof = True

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


def http_response(status: int = 200, body=b'', headers: Optional[dict] = None,
                  chunked: bool = False, reason: str = 'OK') -> bytes:
    """Encode a raw HTTP/1.1 response; body may be a list of chunks when chunked"""
    headers = dict(headers or {})
    if chunked:
        headers['Transfer-Encoding'] = 'chunked'
        chunks = body if isinstance(body, list) else [body]
        payload = b''.join(b'%x\r\n%s\r\n' % (len(c), c) for c in chunks if c) + b'0\r\n\r\n'
    else:
        payload = body
        if status != 101:
            headers['Content-Length'] = str(len(payload))
    head = [f"HTTP/1.1 {status} {reason}"] + [f"{k}: {v}" for k, v in headers.items()]
    return ('\r\n'.join(head) + '\r\n\r\n').encode('latin-1') + payload


def json_response(value, status: int = 200) -> bytes:
    return http_response(status, json.dumps(value).encode(), {'Content-Type': 'application/json'})


def ndjson_response(*lines, chunk_lines: bool = True) -> bytes:
    encoded = [(json.dumps(line) if not isinstance(line, (bytes, str)) else line) for line in lines]
    encoded = [e.encode() if isinstance(e, str) else e for e in encoded]
    if chunk_lines:
        return http_response(200, [e + b'\n' for e in encoded], chunked=True)
    return http_response(200, b''.join(e + b'\n' for e in encoded))


def frames_body(*frames) -> bytes:
    return b''.join(encode_frame(channel, payload) for channel, payload in frames)


class FakeTransport:
    """
    Transport serving canned raw responses over in-memory connections

    The real status-line, header and body parsers run on every response.
    """

    def __init__(self):
        self.requests = []
        self.responses: List[tuple] = []
        self.readers: List[asyncio.StreamReader] = []
        self.writers: List[FakeWriter] = []
        self.delay: Optional[float] = None
        self.error: Optional[BaseException] = None

    def queue(self, raw: bytes, eof: bool = True):
        self.responses.append((raw, eof))
        return self

    def describe(self) -> str:
        return 'fake://engine'

    async def send(self, request) -> Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.delay is not None:
            await asyncio.sleep(self.delay)
        raw, eof = self.responses.pop(0)
        reader = asyncio.StreamReader()
        reader.feed_data(raw)
        if eof:
            reader.feed_eof()
        writer = FakeWriter()
        self.readers.append(reader)
        self.writers.append(writer)
        connection = Connection(reader, writer)
        status, reason = await read_status_line(reader)
        headers = await read_headers(reader)
        body = select_body(status, headers, connection, request.method)
        return Response(status=status, reason=reason, headers=headers, body=body, connection=connection)

    @property
    def last_request(self):
        return self.requests[-1]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def settings():
    return ClientSettings(timeout=5, stream_timeout=5, stream_buffer=4)


@pytest.fixture
def dispatcher(transport, settings):
    return Dispatcher(transport, settings)


@pytest.fixture
def client(transport, settings):
    return EngineClient(settings=settings, transport=transport)
