"""
HTTP transport for the container engine socket
HTTP/1.1 over a Unix socket or TCP using asyncio streams

One connection per request. The response body is handed out as an
incremental byte source so that streaming endpoints (logs, events, pull
progress) can be consumed while the engine is still writing them.
"""

import asyncio
import logging
import os
import platform
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
from urllib.parse import urlsplit

from .exceptions import TransportError, TruncatedStream

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 65536


def detect_socket() -> Optional[str]:
    """
    Auto-detect an available container engine socket

    Detection order:
        1. ``MOORAGE_SOCKET`` env var
        2. ``DOCKER_HOST`` env var (``unix://`` only)
        3. Docker Desktop on macOS: ``~/.docker/run/docker.sock``
        4. Podman rootless: ``$XDG_RUNTIME_DIR/podman/podman.sock``
        5. Podman system: ``/run/podman/podman.sock``
        6. Docker: ``/var/run/docker.sock``

    Returns:
        Path to the first socket found, or None
    """
    explicit = os.environ.get('MOORAGE_SOCKET')
    if explicit and os.path.exists(explicit):
        return explicit

    docker_host = os.environ.get('DOCKER_HOST', '')
    if docker_host.startswith('unix://'):
        path = docker_host[len('unix://'):]
        if os.path.exists(path):
            return path

    candidates = []
    if platform.system() == "Darwin":
        candidates.append(os.path.expanduser('~/.docker/run/docker.sock'))
    xdg = os.environ.get('XDG_RUNTIME_DIR', f"/run/user/{os.getuid()}")
    candidates.extend([
        os.path.join(xdg, 'podman', 'podman.sock'),
        '/run/podman/podman.sock',
        '/var/run/docker.sock',
    ])
    for candidate in candidates:
        if os.path.exists(candidate):
            return candidate
    return None


@dataclass(frozen=True)
class Request:
    """A fully encoded HTTP request"""
    method: str
    target: str
    headers: Tuple[Tuple[str, str], ...] = ()
    body: Optional[bytes] = None

    def header(self, name: str) -> Optional[str]:
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return None


class Connection:
    """
    One socket to the engine, split into read and write halves

    Each half has its own lock, so an attach session can write input while
    another task is blocked reading output.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self.read_lock = asyncio.Lock()
        self.write_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, data: bytes):
        async with self.write_lock:
            try:
                self.writer.write(data)
                await self.writer.drain()
            except (OSError, RuntimeError) as e:
                raise TransportError(f"Write failed: {e}") from e

    async def write_eof(self):
        """Half-close the write side, if the transport supports it"""
        async with self.write_lock:
            if self.writer.can_write_eof():
                try:
                    self.writer.write_eof()
                except OSError as e:
                    raise TransportError(f"Half-close failed: {e}") from e

    async def close(self):
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            # Peer already gone; nothing left to release
            logger.debug(f"Ignoring error while closing connection: {e}")


class BodySource:
    """Incremental byte source over a response body"""

    def __init__(self, connection: Connection):
        self.connection = connection
        self.finished = False

    async def read(self, n: int = DEFAULT_CHUNK_SIZE) -> bytes:
        """Return up to n bytes, or b'' at end of body"""
        if self.finished:
            return b''
        async with self.connection.read_lock:
            try:
                data = await self._read(n)
            except (OSError, asyncio.IncompleteReadError) as e:
                raise TransportError(f"Read failed: {e}") from e
        if not data:
            self.finished = True
        return data

    async def _read(self, n: int) -> bytes:
        raise NotImplementedError

    async def read_all(self) -> bytes:
        parts = []
        while True:
            chunk = await self.read()
            if not chunk:
                break
            parts.append(chunk)
        return b''.join(parts)

    async def close(self):
        await self.connection.close()


class ContentLengthBody(BodySource):
    """Body delimited by a Content-Length header"""

    def __init__(self, connection: Connection, length: int):
        super().__init__(connection)
        self.remaining = length

    async def _read(self, n: int) -> bytes:
        if self.remaining <= 0:
            return b''
        data = await self.connection.reader.read(min(n, self.remaining))
        if not data:
            raise TruncatedStream(f"Body ended with {self.remaining} bytes still expected")
        self.remaining -= len(data)
        return data


class ChunkedBody(BodySource):
    """Body using chunked transfer encoding, de-chunked as it is read"""

    def __init__(self, connection: Connection):
        super().__init__(connection)
        self.remaining = 0
        self.done = False

    async def _read(self, n: int) -> bytes:
        reader = self.connection.reader
        if self.done:
            return b''
        while self.remaining == 0:
            size_line = await reader.readline()
            if not size_line:
                raise TruncatedStream("Chunked body ended before the terminating chunk")
            size_text = size_line.split(b';', 1)[0].strip()
            if not size_text:
                continue
            try:
                size = int(size_text, 16)
            except ValueError as e:
                raise TransportError(f"Malformed chunk size: {size_line!r}") from e
            if size == 0:
                # Skip trailers up to the blank line
                while True:
                    trailer = await reader.readline()
                    if not trailer.strip():
                        break
                self.done = True
                return b''
            self.remaining = size

        data = await reader.read(min(n, self.remaining))
        if not data:
            raise TruncatedStream(f"Chunk ended with {self.remaining} bytes still expected")
        self.remaining -= len(data)
        if self.remaining == 0:
            await reader.readline()  # CRLF after chunk data
        return data


class UntilCloseBody(BodySource):
    """Body running until the engine closes the connection (raw and upgraded streams)"""

    async def _read(self, n: int) -> bytes:
        return await self.connection.reader.read(n)


@dataclass
class Response:
    """Response head plus a still-open body"""
    status: int
    reason: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[BodySource] = None
    connection: Optional[Connection] = None

    async def read(self) -> bytes:
        if self.body is None:
            return b''
        return await self.body.read_all()

    async def close(self):
        if self.body is not None:
            await self.body.close()
        elif self.connection is not None:
            await self.connection.close()


async def read_status_line(reader: asyncio.StreamReader) -> Tuple[int, str]:
    """Read the HTTP status line and return (status, reason)"""
    line = await reader.readline()
    if not line:
        raise TransportError("Empty response from engine")
    parts = line.decode('latin-1').rstrip('\r\n').split(None, 2)
    if len(parts) < 2 or not parts[1].isdigit():
        raise TransportError(f"Malformed status line: {line!r}")
    reason = parts[2] if len(parts) > 2 else ''
    return int(parts[1]), reason


async def read_headers(reader: asyncio.StreamReader) -> Dict[str, str]:
    """Read HTTP headers until the blank line; names are lower-cased"""
    headers = {}
    while True:
        line = await reader.readline()
        if not line:
            raise TransportError("Connection closed while reading headers")
        stripped = line.strip()
        if not stripped:
            break
        decoded = stripped.decode('latin-1')
        if ':' in decoded:
            key, value = decoded.split(':', 1)
            headers[key.strip().lower()] = value.strip()
    return headers


def select_body(status: int, headers: Dict[str, str], connection: Connection,
                method: str = 'GET') -> BodySource:
    """Pick the body framing from the response head"""
    if status == 101:
        return UntilCloseBody(connection)
    if method == 'HEAD' or status in (204, 304) or 100 <= status < 200:
        return ContentLengthBody(connection, 0)
    if headers.get('transfer-encoding', '').lower() == 'chunked':
        return ChunkedBody(connection)
    if 'content-length' in headers:
        try:
            length = int(headers['content-length'])
        except ValueError as e:
            raise TransportError(f"Bad Content-Length: {headers['content-length']!r}") from e
        return ContentLengthBody(connection, length)
    return UntilCloseBody(connection)


class HTTPTransport:
    """HTTP client for the engine daemon"""

    def __init__(self, base_url: Optional[str] = None, timeout: int = 60):
        """
        Initialize transport

        Args:
            base_url: Socket path or URL (unix://, tcp://, http://); default: auto-detect
            timeout: Connect timeout in seconds
        """
        self.timeout = timeout
        self.socket_path = None
        self.host = None
        self.port = None

        if base_url is None:
            self.socket_path = detect_socket()
            if self.socket_path is None:
                raise FileNotFoundError("No container engine socket found")
        elif base_url.startswith(('tcp://', 'http://')):
            parts = urlsplit(base_url.replace('tcp://', 'http://', 1))
            self.host = parts.hostname or 'localhost'
            self.port = parts.port or 2375
        else:
            # Remove unix:// prefix if present
            self.socket_path = base_url.replace('unix://', '', 1)
            if not os.path.exists(self.socket_path):
                raise FileNotFoundError(f"Engine socket not found: {self.socket_path}")

    @property
    def host_header(self) -> str:
        if self.host is None:
            return 'localhost'
        return f"{self.host}:{self.port}"

    async def open_connection(self) -> Connection:
        try:
            if self.socket_path is not None:
                coro = asyncio.open_unix_connection(self.socket_path)
            else:
                coro = asyncio.open_connection(self.host, self.port)
            reader, writer = await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timed out connecting to {self.describe()}") from e
        except OSError as e:
            raise TransportError(f"Cannot connect to {self.describe()}: {e}") from e
        return Connection(reader, writer)

    def describe(self) -> str:
        if self.socket_path is not None:
            return f"unix://{self.socket_path}"
        return f"tcp://{self.host}:{self.port}"

    def encode_head(self, request: Request) -> bytes:
        lines = [f"{request.method} {request.target} HTTP/1.1"]
        names = {key.lower() for key, _ in request.headers}
        if 'host' not in names:
            lines.append(f"Host: {self.host_header}")
        for key, value in request.headers:
            lines.append(f"{key}: {value}")
        if request.body is not None and 'content-length' not in names:
            lines.append(f"Content-Length: {len(request.body)}")
        if 'connection' not in names:
            lines.append("Connection: close")
        lines.append('')
        lines.append('')
        return '\r\n'.join(lines).encode('latin-1')

    async def send(self, request: Request) -> Response:
        """
        Send request and read the response head

        The body is left on the wire; the caller owns the returned Response
        and must close it.

        Raises:
            TransportError: connect, write or head parsing failure
        """
        connection = await self.open_connection()
        try:
            logger.debug(f"{request.method} {request.target}")
            await connection.write(self.encode_head(request))
            if request.body:
                await connection.write(request.body)
            try:
                status, reason = await read_status_line(connection.reader)
                headers = await read_headers(connection.reader)
            except (OSError, asyncio.IncompleteReadError) as e:
                raise TransportError(f"Failed reading response: {e}") from e
            logger.debug(f"{request.method} {request.target} -> {status} {reason}")
            body = select_body(status, headers, connection, request.method)
        except BaseException:
            await connection.close()
            raise
        return Response(status=status, reason=reason, headers=headers,
                        body=body, connection=connection)
