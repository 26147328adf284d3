"""
Endpoint descriptors

An Endpoint is an immutable description of one API call: what to send and
what shape of response to expect. Resource collections build them; the
dispatcher executes them.
"""

import enum
import json
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Protocol, Tuple, runtime_checkable
from urllib.parse import quote, urlencode

from .exceptions import DecodeError

QueryItems = Tuple[Tuple[str, str], ...]


class ResponseShape(enum.Enum):
    """How the response body is consumed"""
    SINGLE = 'single'    # buffered, decoded once
    NDJSON = 'ndjson'    # newline-delimited JSON stream
    DEMUX = 'demux'      # multiplexed stdout/stderr frames
    RAW = 'raw'          # unframed TTY byte stream

    @property
    def is_stream(self) -> bool:
        return self is not ResponseShape.SINGLE


@runtime_checkable
class HasQuery(Protocol):
    path: str
    query: QueryItems


@runtime_checkable
class HasBody(Protocol):
    body: Any
    content_type: Optional[str]


@runtime_checkable
class MapsRawResponse(Protocol):
    def map_response(self, raw: bytes) -> Any:
        ...


def query_value(value: Any) -> Optional[str]:
    """Render a query value the way the engine expects it"""
    if value is None:
        return None
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


def build_query(*pairs: Tuple[str, Any], **params: Any) -> QueryItems:
    """
    Build ordered query items, dropping None values

    Positional pairs keep their order and may repeat a name; keyword params
    follow in insertion order.
    """
    items = []
    for name, value in list(pairs) + list(params.items()):
        rendered = query_value(value)
        if rendered is not None:
            items.append((name, rendered))
    return tuple(items)


def request_target(endpoint: HasQuery, prefix: str = '') -> str:
    """Path plus encoded query string"""
    path = endpoint.path if endpoint.path.startswith('/') else f"/{endpoint.path}"
    if prefix:
        path = f"/{prefix.strip('/')}{path}"
    path = quote(path, safe='/:@')
    if not endpoint.query:
        return path
    return f"{path}?{urlencode(endpoint.query)}"


def encode_body(endpoint: HasBody) -> Tuple[Optional[bytes], Optional[str]]:
    """Encode the request body; returns (bytes, content type)"""
    body = endpoint.body
    if body is None:
        return None, None
    if isinstance(body, (bytes, bytearray)):
        return bytes(body), endpoint.content_type or 'application/octet-stream'
    return json.dumps(body).encode('utf-8'), endpoint.content_type or 'application/json'


@dataclass(frozen=True)
class Endpoint:
    """Immutable description of one API call"""
    method: str
    path: str
    query: QueryItems = ()
    headers: Tuple[Tuple[str, str], ...] = ()
    body: Any = None
    content_type: Optional[str] = None
    shape: ResponseShape = ResponseShape.SINGLE
    model: Optional[Callable[[Any], Any]] = None
    mapper: Optional[Callable[[bytes], Any]] = None
    error_envelope: bool = False
    on_line: Optional[Callable[[bytes], None]] = None

    def map_response(self, raw: bytes) -> Any:
        """
        Decode a buffered body into the target type

        Raises:
            DecodeError: body is not JSON or does not fit the model
        """
        if self.mapper is not None:
            try:
                return self.mapper(raw)
            except (ValueError, KeyError, TypeError) as e:
                raise DecodeError(raw, e) from e
        if not raw:
            return None
        try:
            value = json.loads(raw.decode('utf-8'))
        except (ValueError, UnicodeDecodeError) as e:
            raise DecodeError(raw, e) from e
        if self.model is None:
            return value
        try:
            return self.model(value)
        except (ValueError, KeyError, TypeError) as e:
            raise DecodeError(raw, e) from e


def text_response(raw: bytes) -> str:
    return raw.decode('utf-8').strip()


def get(path: str, query: Iterable = (), **kwargs) -> Endpoint:
    return Endpoint('GET', path, query=tuple(query), **kwargs)


def post(path: str, query: Iterable = (), **kwargs) -> Endpoint:
    return Endpoint('POST', path, query=tuple(query), **kwargs)


def put(path: str, query: Iterable = (), **kwargs) -> Endpoint:
    return Endpoint('PUT', path, query=tuple(query), **kwargs)


def delete(path: str, query: Iterable = (), **kwargs) -> Endpoint:
    return Endpoint('DELETE', path, query=tuple(query), **kwargs)
