"""
Log line assembly

Frame payloads do not respect line boundaries: one frame may hold several
lines or a fraction of one. LogLineAssembler buffers per channel and emits
whole lines, optionally splitting off the timestamp the engine prepends when
``timestamps=true``.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Tuple

from .stream_reader import Channel, Frame

_TIMESTAMP = re.compile(
    r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2}) ?'
)


@dataclass(frozen=True)
class LogEntry:
    """One line of container output"""
    source: Channel
    message: str
    timestamp: Optional[datetime] = None


def parse_timestamp(text: str) -> Tuple[Optional[datetime], str]:
    """
    Split an RFC 3339 timestamp prefix from a log line

    Fractions beyond microseconds (the engine sends nanoseconds) are
    truncated.

    Returns:
        Tuple of (timestamp or None, rest of the line)
    """
    match = _TIMESTAMP.match(text)
    if match is None:
        return None, text
    base, fraction, zone = match.groups()
    micro = (fraction or '0')[:6].ljust(6, '0')
    zone = '+00:00' if zone == 'Z' else zone
    try:
        stamp = datetime.fromisoformat(f"{base}.{micro}{zone}")
    except ValueError:
        return None, text
    return stamp.astimezone(timezone.utc), text[match.end():]


def parse_log_line(source: Channel, line: bytes, timestamps: bool) -> LogEntry:
    text = line.decode('utf-8', errors='replace').rstrip('\r')
    if not timestamps:
        return LogEntry(source=source, message=text)
    stamp, message = parse_timestamp(text)
    return LogEntry(source=source, message=message, timestamp=stamp)


class LogLineAssembler:
    """Per-channel line buffering over frame payloads"""

    def __init__(self, timestamps: bool = False):
        self.timestamps = timestamps
        self._pending: Dict[Channel, bytearray] = {}

    def feed(self, frame: Frame) -> List[LogEntry]:
        """Add a frame; return the lines it completed"""
        buffer = self._pending.setdefault(frame.channel, bytearray())
        buffer.extend(frame.payload)
        entries = []
        while True:
            index = buffer.find(b'\n')
            if index < 0:
                break
            line = bytes(buffer[:index])
            del buffer[:index + 1]
            entries.append(parse_log_line(frame.channel, line, self.timestamps))
        return entries

    def flush(self) -> List[LogEntry]:
        """Emit unterminated remainders at end of stream"""
        entries = []
        for channel, buffer in self._pending.items():
            if buffer:
                entries.append(parse_log_line(channel, bytes(buffer), self.timestamps))
                buffer.clear()
        return entries


async def assemble_lines(frames, timestamps: bool = False) -> AsyncIterator[LogEntry]:
    """Turn a frame stream into LogEntry records"""
    assembler = LogLineAssembler(timestamps=timestamps)
    try:
        async for frame in frames:
            for entry in assembler.feed(frame):
                yield entry
        for entry in assembler.flush():
            yield entry
    finally:
        aclose = getattr(frames, 'aclose', None)
        if aclose is not None:
            await aclose()
