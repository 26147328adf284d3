"""
Framed byte-stream reader

Buffers partial reads from a response body and hands out complete logical
units: newline-terminated segments (NDJSON) or multiplexed frames (logs,
attach, exec).

Multiplexed frame header, 8 bytes:
    byte 0:    stream type (0 = stdin, 1 = stdout, 2 = stderr)
    bytes 1-3: reserved (zero)
    bytes 4-7: payload length, big-endian uint32
"""

import enum
import struct
from dataclasses import dataclass
from typing import Optional, Tuple

from .exceptions import DecodeError, TruncatedStream

HEADER_SIZE = 8
_HEADER_FORMAT = '>BxxxI'
DEFAULT_CHUNK_SIZE = 65536


class Channel(enum.IntEnum):
    """Stream type tag of a multiplexed frame"""
    STDIN = 0
    STDOUT = 1
    STDERR = 2


@dataclass(frozen=True)
class Frame:
    """One demultiplexed unit of output"""
    channel: Channel
    payload: bytes

    @property
    def length(self) -> int:
        return len(self.payload)


def parse_stream_header(header: bytes) -> Tuple[int, int]:
    """
    Parse an 8-byte frame header

    Returns:
        Tuple of (stream_type, payload_length)
    """
    return struct.unpack(_HEADER_FORMAT, header)


def encode_frame(channel: int, payload: bytes) -> bytes:
    """Build a framed chunk (header + payload)"""
    return struct.pack(_HEADER_FORMAT, int(channel), len(payload)) + payload


class FramedReader:
    """
    Pull-based reader over an incremental byte source

    The source must provide ``async read(n) -> bytes`` returning b'' at end
    of stream. More bytes are requested only when the backlog cannot satisfy
    the current call.
    """

    def __init__(self, source, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.source = source
        self.chunk_size = chunk_size
        self._backlog = bytearray()
        self._eof = False

    @property
    def buffered(self) -> int:
        return len(self._backlog)

    @property
    def at_eof(self) -> bool:
        return self._eof and not self._backlog

    async def _fill(self) -> bool:
        """Append one transport read to the backlog; False at end of stream"""
        if self._eof:
            return False
        chunk = await self.source.read(self.chunk_size)
        if not chunk:
            self._eof = True
            return False
        self._backlog.extend(chunk)
        return True

    async def next_segment(self, terminator: bytes = b'\n') -> Optional[bytes]:
        """
        Return the bytes before the next terminator

        An unterminated remainder at end of stream is flushed as a final
        segment. Returns None once the stream is exhausted.
        """
        scan_from = 0
        while True:
            index = self._backlog.find(terminator, scan_from)
            if index >= 0:
                segment = bytes(self._backlog[:index])
                del self._backlog[:index + len(terminator)]
                return segment
            # Terminator may straddle the next read
            scan_from = max(0, len(self._backlog) - len(terminator) + 1)
            if not await self._fill():
                if self._backlog:
                    segment = bytes(self._backlog)
                    self._backlog.clear()
                    return segment
                return None

    async def next_frame(self) -> Optional[Frame]:
        """
        Return the next complete multiplexed frame, or None at a clean end

        Raises:
            TruncatedStream: stream ended mid-header or mid-payload
            DecodeError: unknown stream type in the header
        """
        while len(self._backlog) < HEADER_SIZE:
            if not await self._fill():
                if self._backlog:
                    raise TruncatedStream(
                        f"Stream ended inside a frame header ({len(self._backlog)} of {HEADER_SIZE} bytes)"
                    )
                return None

        stream_type, length = parse_stream_header(bytes(self._backlog[:HEADER_SIZE]))
        if stream_type not in Channel._value2member_map_:
            raise DecodeError(bytes(self._backlog[:HEADER_SIZE]),
                              ValueError(f"unknown stream type {stream_type}"))

        total = HEADER_SIZE + length
        while len(self._backlog) < total:
            if not await self._fill():
                raise TruncatedStream(
                    f"Stream ended inside a frame payload ({len(self._backlog) - HEADER_SIZE} of {length} bytes)"
                )

        payload = bytes(self._backlog[HEADER_SIZE:total])
        del self._backlog[:total]
        return Frame(Channel(stream_type), payload)

    async def next_chunk(self) -> Optional[bytes]:
        """Return buffered bytes or the next transport read, unparsed"""
        if not self._backlog and not await self._fill():
            return None
        chunk = bytes(self._backlog)
        self._backlog.clear()
        return chunk
