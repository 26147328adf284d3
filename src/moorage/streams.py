"""
Typed async sequences backed by a bounded queue

A producer task drains the decoder/demuxer into an asyncio.Queue; the
caller iterates the other end. A full queue stalls the producer, which stops
reading from the socket until the caller catches up.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Optional, TypeVar

from .exceptions import Timeout

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_BUFFER = 8

_END = object()


class _Failure:
    def __init__(self, error: BaseException):
        self.error = error


class TypedStream(Generic[T]):
    """
    One-shot async iterator over items of a streaming call

    The producer starts on the first pull. ``aclose()`` cancels it, which
    aborts any read in flight, and releases the connection exactly once.
    """

    def __init__(self, source: AsyncIterator[T], on_close: Optional[Callable[[], Awaitable[Any]]] = None,
                 maxsize: int = DEFAULT_BUFFER, deadline: Optional[float] = None, name: str = 'stream'):
        self._source = source
        self._on_close = on_close
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._deadline = deadline
        self._task: Optional[asyncio.Task] = None
        self._finished = False
        self._released = False
        self.name = name

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        if self._finished:
            raise StopAsyncIteration
        self.start()
        try:
            item = await self._queue.get()
        except asyncio.CancelledError:
            await self.aclose()
            raise
        if item is _END:
            await self.aclose()
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            await self.aclose()
            raise item.error
        return item

    def start(self):
        """Begin producing ahead of the first pull"""
        if self._task is None and not self._finished:
            self._task = asyncio.get_running_loop().create_task(self._produce())

    async def _produce(self):
        try:
            if self._deadline is None:
                await self._drain()
            else:
                try:
                    async with asyncio.timeout_at(self._deadline):
                        await self._drain()
                except TimeoutError as e:
                    raise Timeout(f"{self.name} exceeded its deadline") from e
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._queue.put(_Failure(e))
            return
        await self._queue.put(_END)

    async def _drain(self):
        async for item in self._source:
            await self._queue.put(item)

    @property
    def closed(self) -> bool:
        return self._finished

    async def aclose(self):
        """Stop producing and release the underlying connection"""
        if self._finished:
            return
        self._finished = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        aclose_source = getattr(self._source, 'aclose', None)
        if aclose_source is not None:
            await aclose_source()
        await self._release()

    async def _release(self):
        if self._released:
            return
        self._released = True
        logger.debug(f"Releasing {self.name}")
        if self._on_close is not None:
            await self._on_close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def collect(self) -> list:
        """Consume the whole stream into a list"""
        items = []
        async for item in self:
            items.append(item)
        return items
