"""
Uniform "read next, waiting if necessary" adapters.

The batching engine is written once against SequenceSource. Two variants:
  - SyncSource: a plain iterable; reads never suspend.
  - AsyncSource: an async iterable (or a CancellableSource); each read may suspend.

Both open their origin lazily on the first read, keep at most one read in flight,
and release the iterator they opened in aclose().
"""
import logging
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator, Awaitable, Iterable, Iterator
from typing import Any, Generic, TypeVar

from moreiter.cancellation import CancellationToken
from moreiter.errors import InvalidArgument, require_not_none
from moreiter.types import CancellableSource, ReadResult, SequenceSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncSource(Generic[T]):
    """Adapter over an in-memory (no-wait) iterable."""

    def __init__(self, items: Iterable[T], *, force_cancellation_check: bool = True) -> None:
        require_not_none(items, "items")
        self._items = items
        self._force = force_cancellation_check
        self._iterator: Iterator[T] | None = None
        self._closed = False

    async def try_read(self, token: CancellationToken | None = None) -> ReadResult[T]:
        if self._closed:
            raise RuntimeError("read from a closed source")
        # a plain iterable cannot observe the token, so only the forced check applies
        if token is not None and self._force:
            token.raise_if_cancelled()
        if self._iterator is None:
            self._iterator = iter(self._items)
            logger.debug("Opened sync source %s", type(self._items).__name__)
        try:
            return True, next(self._iterator)
        except StopIteration:
            return False, None

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        it, self._iterator = self._iterator, None
        close = getattr(it, "close", None)
        if close is not None:
            close()
            logger.debug("Closed sync source %s", type(self._items).__name__)


class AsyncSource(Generic[T]):
    """Adapter over a wait-capable origin: an async iterable or a CancellableSource."""

    def __init__(
        self,
        items: AsyncIterable[T] | CancellableSource[T],
        *,
        force_cancellation_check: bool = True,
    ) -> None:
        require_not_none(items, "items")
        self._items = items
        self._force = force_cancellation_check
        self._iterator: AsyncIterator[T] | None = None
        self._closed = False

    async def try_read(self, token: CancellationToken | None = None) -> ReadResult[T]:
        if self._closed:
            raise RuntimeError("read from a closed source")
        forced = token is not None and self._force
        if forced:
            token.raise_if_cancelled()
        if self._iterator is None:
            self._iterator = self._open(token)
        if forced:
            return await token.race(_read_next(self._iterator))
        return await _read_next(self._iterator)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        it, self._iterator = self._iterator, None
        if it is None:
            return  # never opened, nothing to release
        aclose = getattr(it, "aclose", None)
        if aclose is not None:
            await aclose()
            logger.debug("Closed async source %s", type(self._items).__name__)

    def _open(self, token: CancellationToken | None) -> AsyncIterator[T]:
        if isinstance(self._items, CancellableSource):
            logger.debug("Opening cancellable source %s", type(self._items).__name__)
            return self._items.open(token)
        logger.debug("Opening async source %s", type(self._items).__name__)
        return aiter(self._items)


async def _read_next(it: AsyncIterator[T]) -> ReadResult[T]:
    try:
        return True, await it.__anext__()
    except StopAsyncIteration:
        return False, None


# ---------- selection ----------

def is_async_source(source: Any) -> bool:
    """True for origins that must be awaited. Objects offering both protocols count as async."""
    return isinstance(source, (AsyncSource, AsyncIterable, CancellableSource))


def adapt(source: Any, *, force_cancellation_check: bool = True) -> SequenceSource[Any]:
    """
    Wrap `source` in the matching adapter without touching it.
    Adapters pass through unchanged; anything that is neither iterable nor
    async-iterable is rejected.
    """
    require_not_none(source, "source")
    if isinstance(source, (SyncSource, AsyncSource)):
        return source
    if is_async_source(source):
        return AsyncSource(source, force_cancellation_check=force_cancellation_check)
    if isinstance(source, Iterable):
        return SyncSource(source, force_cancellation_check=force_cancellation_check)
    raise InvalidArgument(
        f"source must be an iterable or async iterable (got {type(source).__name__})",
        param_name="source", value=source,
    )


# ---------- driving async code that never waits ----------

def run_now(awaitable: Awaitable[T]) -> T:
    """
    Complete an awaitable in a single step, without an event loop.
    Only valid for awaitables that never suspend (everything built on SyncSource).
    """
    step = awaitable.__await__()
    try:
        step.send(None)
    except StopIteration as stop:
        return stop.value
    step.close()
    raise RuntimeError("a synchronous source suspended; consume it with the async form instead")


def iterate_now(agen: AsyncGenerator[T, None]) -> Iterator[T]:
    """Expose an async generator over a SyncSource as a plain generator."""
    try:
        while True:
            try:
                item = run_now(agen.__anext__())
            except StopAsyncIteration:
                break
            yield item
    finally:
        run_now(agen.aclose())
