"""
Endpoint dispatch

Turns an Endpoint into a transport call, enforces the call deadline, maps
error statuses to APIError, and either decodes the buffered body or hands the
open body to the NDJSON decoder / demultiplexer.
"""

import asyncio
import json
import logging
from typing import Any, Optional

from .config import ClientSettings
from .demux import iter_frames
from .endpoint import Endpoint, ResponseShape, encode_body, request_target
from .exceptions import APIError, Timeout
from .http_client import Request, Response
from .ndjson import decode_ndjson
from .stream_reader import FramedReader
from .streams import TypedStream

logger = logging.getLogger(__name__)


def error_message(raw: bytes) -> str:
    """Message from an error envelope, or the raw body text"""
    text = raw.decode('utf-8', errors='replace').strip()
    try:
        data = json.loads(text)
    except ValueError:
        return text
    if isinstance(data, dict) and isinstance(data.get('message'), str):
        return data['message']
    return text


class Dispatcher:
    """Executes endpoint descriptors against a transport"""

    def __init__(self, transport, settings: Optional[ClientSettings] = None):
        self.transport = transport
        self.settings = settings or ClientSettings()

    def build_request(self, endpoint: Endpoint, extra_headers=()) -> Request:
        body, content_type = encode_body(endpoint)
        headers = list(endpoint.headers) + list(extra_headers)
        if content_type and not any(k.lower() == 'content-type' for k, _ in headers):
            headers.append(('Content-Type', content_type))
        return Request(
            method=endpoint.method,
            target=request_target(endpoint, self.settings.api_version_prefix),
            headers=tuple(headers),
            body=body,
        )

    def deadline(self, timeout: Optional[float]) -> float:
        if timeout is None:
            timeout = self.settings.timeout
        return asyncio.get_running_loop().time() + timeout

    async def open(self, endpoint: Endpoint, deadline: float, extra_headers=()) -> Response:
        """
        Send the request and return a successful response with its body open

        Raises:
            Timeout: deadline passed before the response head arrived
            TransportError: connection-level failure (never retried)
            APIError: error status from the engine
        """
        request = self.build_request(endpoint, extra_headers)
        try:
            async with asyncio.timeout_at(deadline):
                response = await self.transport.send(request)
        except TimeoutError as e:
            raise Timeout(f"{endpoint.method} {endpoint.path} timed out") from e

        if response.status >= 400:
            try:
                async with asyncio.timeout_at(deadline):
                    raw = await response.read()
            except TimeoutError as e:
                raise Timeout(f"{endpoint.method} {endpoint.path} timed out reading error body") from e
            finally:
                await response.close()
            message = error_message(raw)
            logger.debug(f"{endpoint.method} {endpoint.path} failed: {response.status} {message}")
            raise APIError(message, status_code=response.status, response=response)
        return response

    async def execute(self, endpoint: Endpoint, timeout: Optional[float] = None,
                      shape: Optional[ResponseShape] = None) -> Any:
        """
        Run one API call

        Args:
            endpoint: What to call
            timeout: Call-scoped deadline in seconds (default: settings.timeout)
            shape: Overrides endpoint.shape

        Returns:
            Decoded value for SINGLE, a TypedStream for streaming shapes
        """
        shape = shape or endpoint.shape
        deadline = self.deadline(timeout)
        response = await self.open(endpoint, deadline)

        if shape is ResponseShape.SINGLE:
            try:
                async with asyncio.timeout_at(deadline):
                    raw = await response.read()
            except TimeoutError as e:
                raise Timeout(f"{endpoint.method} {endpoint.path} timed out reading body") from e
            finally:
                await response.close()
            return endpoint.map_response(raw)

        return self.stream(endpoint, response, shape, deadline)

    def stream(self, endpoint: Endpoint, response: Response, shape: ResponseShape,
               deadline: Optional[float]) -> TypedStream:
        reader = FramedReader(response.body)
        if shape is ResponseShape.NDJSON:
            source = decode_ndjson(reader, model=endpoint.model,
                                   error_envelope=endpoint.error_envelope, on_line=endpoint.on_line)
        else:
            source = iter_frames(reader, tty=shape is ResponseShape.RAW)
        return TypedStream(
            source,
            on_close=response.close,
            maxsize=self.settings.stream_buffer,
            deadline=deadline,
            name=f"{endpoint.method} {endpoint.path}",
        )
