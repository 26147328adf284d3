"""
Bidirectional attach sessions

After the engine upgrades the connection, the socket carries raw input in
one direction and (multiplexed or raw) output in the other. The session
exposes both halves at once: iterate it for output, ``write()`` for input.
"""

import enum
import logging
from typing import Optional

from .demux import iter_frames
from .endpoint import Endpoint
from .exceptions import APIError, SessionClosed
from .http_client import Connection, Response
from .stream_reader import FramedReader
from .streams import TypedStream

logger = logging.getLogger(__name__)

UPGRADE_HEADERS = (('Connection', 'Upgrade'), ('Upgrade', 'tcp'))


class SessionState(enum.Enum):
    CONNECTING = 'connecting'
    OPEN = 'open'
    CLOSING = 'closing'
    CLOSED = 'closed'


class AttachSession:
    """
    Attached container (or exec) I/O

    Usage::

        async with await client.containers.attach('web') as session:
            await session.write(b'ls\\n')
            async for frame in session:
                print(frame.channel, frame.payload)
    """

    def __init__(self, dispatcher, endpoint: Endpoint, tty: bool = False,
                 timeout: Optional[float] = None):
        self.dispatcher = dispatcher
        self.endpoint = endpoint
        self.tty = tty
        self.timeout = timeout
        self.state = SessionState.CONNECTING
        self.response: Optional[Response] = None
        self.output: Optional[TypedStream] = None

    @property
    def connection(self) -> Optional[Connection]:
        return self.response.connection if self.response is not None else None

    async def connect(self) -> 'AttachSession':
        """Issue the upgrade request and open both halves"""
        if self.state is not SessionState.CONNECTING:
            raise SessionClosed(f"Session already {self.state.value}")
        deadline = self.dispatcher.deadline(self.timeout)
        try:
            response = await self.dispatcher.open(self.endpoint, deadline, extra_headers=UPGRADE_HEADERS)
        except BaseException:
            self.state = SessionState.CLOSED
            raise
        if response.status not in (101, 200):
            await response.close()
            self.state = SessionState.CLOSED
            raise APIError(f"Unexpected status {response.status} for attach", status_code=response.status)

        self.response = response
        frames = self._frames(FramedReader(response.body))
        # No deadline on the output half; an attached session lives until closed
        self.output = TypedStream(frames, on_close=self._release,
                                  maxsize=self.dispatcher.settings.stream_buffer,
                                  name=f"attach {self.endpoint.path}")
        self.state = SessionState.OPEN
        self.output.start()
        logger.debug(f"Attach session open: {self.endpoint.path} (tty={self.tty})")
        return self

    async def _frames(self, reader: FramedReader):
        async for frame in iter_frames(reader, self.tty):
            yield frame
        # Remote side half-closed
        if self.state is SessionState.OPEN:
            self.state = SessionState.CLOSING
            logger.debug(f"Attach session closed by engine: {self.endpoint.path}")

    def _check_remote_eof(self):
        if self.state is not SessionState.OPEN or self.connection is None:
            return
        if self.response.body.finished or self.connection.reader.at_eof():
            self.state = SessionState.CLOSING
            logger.debug(f"Attach session closed by engine: {self.endpoint.path}")

    def __aiter__(self):
        if self.output is None:
            raise SessionClosed("Session is not connected")
        return self.output

    async def write(self, data: bytes):
        """
        Forward raw bytes to the container's stdin

        Raises:
            SessionClosed: session is closing or closed
        """
        self._check_remote_eof()
        if self.state is not SessionState.OPEN or self.connection is None:
            raise SessionClosed(f"Cannot write to a {self.state.value} session")
        await self.connection.write(data)

    async def close_stdin(self):
        """Signal end of input while keeping the output half open"""
        self._check_remote_eof()
        if self.state is not SessionState.OPEN or self.connection is None:
            raise SessionClosed(f"Cannot half-close a {self.state.value} session")
        await self.connection.write_eof()

    async def close(self):
        """Close the session; safe to call more than once"""
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSING
        if self.output is not None:
            await self.output.aclose()
        await self._release()

    async def _release(self):
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        if self.response is not None:
            await self.response.close()
        logger.debug(f"Attach session released: {self.endpoint.path}")

    async def __aenter__(self):
        if self.state is SessionState.CONNECTING:
            await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

