"""
Newline-delimited JSON stream decoding

Used for events, stats and pull/push/build progress. A line that fails to
decode is reported as a DecodeError item and the stream carries on.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from .exceptions import APIError, DecodeError, UnknownResponse
from .stream_reader import FramedReader

logger = logging.getLogger(__name__)

DIGEST_PREFIX = 'Digest: '


def error_envelope_message(value: Any) -> Optional[str]:
    """
    Return the error message if value is an error envelope

    Two shapes are recognised: ``{"message": "..."}`` without a status, and
    the progress-stream form ``{"error": "...", "errorDetail": {...}}``.
    """
    if not isinstance(value, dict):
        return None
    if isinstance(value.get('message'), str) and 'status' not in value:
        return value['message']
    if 'error' in value or 'errorDetail' in value:
        detail = value.get('errorDetail') or {}
        if isinstance(detail, dict) and detail.get('message'):
            return str(detail['message'])
        return str(value.get('error') or 'unknown error')
    return None


async def decode_ndjson(reader: FramedReader, model: Optional[Callable[[Any], Any]] = None,
                        strict: bool = False, error_envelope: bool = False,
                        on_line: Optional[Callable[[bytes], None]] = None) -> AsyncIterator[Any]:
    """
    Decode a body of newline-terminated JSON texts

    Args:
        reader: Framed reader over the response body
        model: Callable turning each decoded JSON value into the item type
        strict: Raise the first DecodeError instead of yielding it
        error_envelope: Treat an error envelope on any line as fatal
        on_line: Called with the raw bytes of each non-empty line

    Yields:
        Decoded items, or DecodeError instances for lines that failed

    Raises:
        APIError: error envelope seen while error_envelope is set
    """
    while True:
        segment = await reader.next_segment(b'\n')
        if segment is None:
            return
        line = segment.strip()
        if not line:
            continue
        if on_line is not None:
            on_line(line)

        try:
            value = json.loads(line.decode('utf-8'))
        except (ValueError, UnicodeDecodeError) as e:
            error = DecodeError(line, e)
            if strict:
                raise error from e
            logger.warning(f"Skipping undecodable stream line: {error}")
            yield error
            continue

        if error_envelope:
            message = error_envelope_message(value)
            if message is not None:
                raise APIError(message)

        if model is None:
            yield value
            continue
        try:
            item = model(value)
        except (ValueError, KeyError, TypeError) as e:
            error = DecodeError(line, e)
            if strict:
                raise error from e
            logger.warning(f"Stream line does not match expected shape: {error}")
            yield error
            continue
        yield item


@dataclass(frozen=True)
class ProgressStatus:
    """One line of pull/push progress"""
    status: str = ''
    id: Optional[str] = None
    progress: Optional[str] = None
    progress_detail: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProgressStatus':
        if not isinstance(data, dict):
            raise TypeError(f"expected a JSON object, got {type(data).__name__}")
        return cls(
            status=str(data.get('status', '')),
            id=data.get('id'),
            progress=data.get('progress'),
            progress_detail=data.get('progressDetail') or {},
        )


@dataclass(frozen=True)
class PullResult:
    """Outcome of an image pull"""
    digest: str


def digest_line_detector(records: Sequence[ProgressStatus]) -> Optional[str]:
    """Docker: the last ``Digest: <digest>`` status line"""
    for record in reversed(records):
        if record.status.startswith(DIGEST_PREFIX):
            return record.status[len(DIGEST_PREFIX):].strip()
    return None


def bare_id_detector(records: Sequence[ProgressStatus]) -> Optional[str]:
    """Podman: the last line carrying a non-null id"""
    for record in reversed(records):
        if record.id is not None:
            return record.id
    return None


COMPLETION_DETECTORS: List[Callable[[Sequence[ProgressStatus]], Optional[str]]] = [
    digest_line_detector,
    bare_id_detector,
]


def detect_pull_completion(records: Sequence[ProgressStatus], raw: bytes = b'') -> PullResult:
    """
    Pick the pull result from a finished progress stream

    Detectors run in precedence order; an explicit digest line wins over a
    bare id line.

    Raises:
        UnknownResponse: no detector matched
    """
    for detector in COMPLETION_DETECTORS:
        digest = detector(records)
        if digest is not None:
            return PullResult(digest=digest)
    raise UnknownResponse(raw)
