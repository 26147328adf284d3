"""
Multiplexed stream demultiplexer

Splits logs/attach/exec output into stdout and stderr. When the container
has a pseudo-terminal the engine does not multiplex, so the caller selects
raw passthrough instead; the mode is never guessed from the bytes.
"""

import inspect
import logging
from typing import AsyncIterator, Dict

from .stream_reader import Channel, Frame, FramedReader, encode_frame, parse_stream_header

logger = logging.getLogger(__name__)

__all__ = [
    'Channel',
    'Demultiplexer',
    'Frame',
    'demux_frames',
    'encode_frame',
    'iter_frames',
    'parse_stream_header',
    'raw_frames',
]


async def demux_frames(reader: FramedReader) -> AsyncIterator[Frame]:
    """Yield stdout/stderr frames; stdin frames are dropped"""
    while True:
        frame = await reader.next_frame()
        if frame is None:
            return
        if frame.channel == Channel.STDIN:
            continue
        yield frame


async def raw_frames(reader: FramedReader) -> AsyncIterator[Frame]:
    """Yield every chunk untouched, attributed to stdout"""
    while True:
        chunk = await reader.next_chunk()
        if chunk is None:
            return
        yield Frame(Channel.STDOUT, chunk)


def iter_frames(reader: FramedReader, tty: bool) -> AsyncIterator[Frame]:
    """Pick raw passthrough for TTY containers, demux otherwise"""
    if tty:
        return raw_frames(reader)
    return demux_frames(reader)


class Demultiplexer:
    """Routes frames to per-channel sinks"""

    def __init__(self, frames):
        self.frames = frames

    async def pump(self, stdout_sink, stderr_sink=None) -> Dict[Channel, int]:
        """
        Deliver all payloads to the sinks

        Args:
            stdout_sink: Object with write(bytes) (sync or async)
            stderr_sink: Sink for stderr frames; None drops them

        Returns:
            Bytes delivered per channel
        """
        counts = {Channel.STDOUT: 0, Channel.STDERR: 0}
        async for frame in self.frames:
            sink = stdout_sink if frame.channel == Channel.STDOUT else stderr_sink
            if sink is None:
                continue
            result = sink.write(frame.payload)
            if inspect.isawaitable(result):
                await result
            counts[frame.channel] += frame.length
        logger.debug(f"Demultiplexed {counts[Channel.STDOUT]} stdout / {counts[Channel.STDERR]} stderr bytes")
        return counts
