"""
Test doubles and assertion helpers for checking laziness, disposal and
cancellation contracts of sequence operators.

  - SequenceReader / AsyncSequenceReader: roll "advance" and "current" into one read.
  - BreakingSequence / BreakingAsyncSequence: fail as soon as enumeration is requested.
  - TrackingSequence / TrackingAsyncSequence: record how far they were read and whether
    the iterator was closed.
  - ticking(): an unbounded, slowly produced async source.
  - assert_raises_argument / assert_raises_out_of_range: check the exception and the
    parameter it names.
"""
import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable, Iterator
from typing import Any, Generic, TypeVar

from moreiter.errors import InvalidArgument, OutOfRange, ReaderError, require_not_none

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


class EnumerationRequested(AssertionError):
    """Raised by the breaking sequences; seeing it means an operator was not lazy."""


# ---------- readers ----------

class SequenceReader(Generic[T]):
    """Reader semantics over an iterable: next() and StopIteration become read()/read_end()."""

    def __init__(self, source: Iterable[T]) -> None:
        require_not_none(source, "source")
        self._iterator: Iterator[T] | None = iter(source)

    def try_read(self) -> tuple[bool, T | None]:
        """Return (True, value) if a value was read, else (False, None)."""
        it = self._ensure_not_closed()
        try:
            return True, next(it)
        except StopIteration:
            return False, None

    def read(self) -> T:
        """Read a value or raise ReaderError if the sequence is exhausted."""
        ok, value = self.try_read()
        if not ok:
            raise ReaderError("expected another element but the sequence ended")
        return value  # type: ignore[return-value]

    def read_end(self) -> None:
        """Raise ReaderError unless the sequence is exhausted."""
        ok, value = self.try_read()
        if ok:
            raise ReaderError(f"expected the end of the sequence but read {value!r}")

    def close(self) -> None:
        it, self._iterator = self._iterator, None
        close = getattr(it, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "SequenceReader[T]":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _ensure_not_closed(self) -> Iterator[T]:
        if self._iterator is None:
            raise RuntimeError(f"{type(self).__name__} is closed")
        return self._iterator


class AsyncSequenceReader(Generic[T]):
    """Async counterpart of SequenceReader."""

    def __init__(self, source: AsyncIterable[T]) -> None:
        require_not_none(source, "source")
        self._iterator: AsyncIterator[T] | None = aiter(source)

    async def try_read(self) -> tuple[bool, T | None]:
        it = self._ensure_not_closed()
        try:
            return True, await it.__anext__()
        except StopAsyncIteration:
            return False, None

    async def read(self) -> T:
        ok, value = await self.try_read()
        if not ok:
            raise ReaderError("expected another element but the sequence ended")
        return value  # type: ignore[return-value]

    async def read_end(self) -> None:
        ok, value = await self.try_read()
        if ok:
            raise ReaderError(f"expected the end of the sequence but read {value!r}")

    async def aclose(self) -> None:
        it, self._iterator = self._iterator, None
        aclose = getattr(it, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> "AsyncSequenceReader[T]":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _ensure_not_closed(self) -> AsyncIterator[T]:
        if self._iterator is None:
            raise RuntimeError(f"{type(self).__name__} is closed")
        return self._iterator


def read(source: Iterable[T]) -> SequenceReader[T]:
    return SequenceReader(source)


def aread(source: AsyncIterable[T]) -> AsyncSequenceReader[T]:
    return AsyncSequenceReader(source)


# ---------- sequence doubles ----------

class BreakingSequence(Generic[T]):
    """Iterable which raises as soon as its iterator is requested."""

    def __iter__(self) -> Iterator[T]:
        raise EnumerationRequested("sequence was enumerated")


class BreakingAsyncSequence(Generic[T]):
    """Async iterable which raises as soon as its iterator is requested."""

    def __aiter__(self) -> AsyncIterator[T]:
        raise EnumerationRequested("async sequence was enumerated")


class TrackingSequence(Generic[T]):
    """Iterable over `items` that records reads and whether its iterator was closed."""

    def __init__(self, items: Iterable[T]) -> None:
        self._items = list(items)
        self.opened = False
        self.closed = False
        self.reads = 0

    def __iter__(self) -> Iterator[T]:
        self.opened = True
        try:
            for item in self._items:
                self.reads += 1
                yield item
        finally:
            self.closed = True


class TrackingAsyncSequence(Generic[T]):
    """Async version of TrackingSequence; optionally sleeps `delay_s` before each element."""

    def __init__(self, items: Iterable[T], *, delay_s: float = 0.0) -> None:
        self._items = list(items)
        self._delay_s = delay_s
        self.opened = False
        self.closed = False
        self.reads = 0

    async def __aiter__(self) -> AsyncIterator[T]:
        self.opened = True
        try:
            for item in self._items:
                await asyncio.sleep(self._delay_s)
                self.reads += 1
                yield item
        finally:
            self.closed = True


async def ticking(delay_s: float = 0.01, start: int = 0) -> AsyncIterator[int]:
    """Unbounded source producing start, start+1, ... with `delay_s` between elements."""
    n = start
    while True:
        await asyncio.sleep(delay_s)
        yield n
        n += 1


# ---------- assertions ----------

def _assert_raises_for(exc_type: type[E], param_name: str, fn: Callable[[], Any]) -> E:
    try:
        fn()
    except exc_type as e:
        actual = getattr(e, "param_name", None)
        if actual != param_name:
            raise AssertionError(
                f"{exc_type.__name__} names parameter {actual!r}, expected {param_name!r}"
            ) from e
        return e
    raise AssertionError(f"{exc_type.__name__} for {param_name!r} was not raised")


def assert_raises_argument(param_name: str, fn: Callable[[], Any]) -> InvalidArgument:
    """Call `fn` and check it raises InvalidArgument naming `param_name`."""
    return _assert_raises_for(InvalidArgument, param_name, fn)


def assert_raises_out_of_range(param_name: str, fn: Callable[[], Any]) -> OutOfRange:
    """Call `fn` and check it raises OutOfRange naming `param_name`."""
    return _assert_raises_for(OutOfRange, param_name, fn)
