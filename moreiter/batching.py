import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from typing import Any, TypeVar, overload

from moreiter.cancellation import CancellationToken
from moreiter.config import resolve_force_cancellation
from moreiter.errors import InvalidArgument, require_callable, require_not_none, require_positive_int
from moreiter.sources import SyncSource, adapt, iterate_now
from moreiter.types import ResultSelector, SequenceSource

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def _identity(bucket: tuple[T, ...]) -> tuple[T, ...]:
    return bucket


@overload
def batch(
    source: AsyncIterable[T],
    size: int,
    result_selector: ResultSelector[T, R] = ...,
    *,
    token: CancellationToken | None = ...,
    force_cancellation_check: bool | None = ...,
) -> AsyncIterator[R]: ...

@overload
def batch(
    source: Iterable[T],
    size: int,
    result_selector: ResultSelector[T, R] = ...,
    *,
    token: CancellationToken | None = ...,
    force_cancellation_check: bool | None = ...,
) -> Iterator[R]: ...

def batch(
    source: Any,
    size: int,
    result_selector: Any = _identity,
    *,
    token: CancellationToken | None = None,
    force_cancellation_check: bool | None = None,
) -> Any:
    """
    Batch `source` into buckets of `size` elements and project each bucket through
    `result_selector` (identity by default, so buckets come out as tuples).

    - Sync iterables give back an iterator; async iterables (and CancellableSource
      objects) give back an async iterator. Both run the same algorithm.
    - Arguments are checked here, eagerly. The source itself is not touched until
      the result is consumed.
    - Every bucket except possibly the last holds exactly `size` elements.
    - `token` is checked on every read; on cancellation the partial bucket is dropped
      and Cancelled propagates. See config.resolve_force_cancellation for origins
      that ignore the token.
    """
    require_not_none(source, "source")
    size = require_positive_int(size, "size")
    require_callable(result_selector, "result_selector")
    if token is not None and not isinstance(token, CancellationToken):
        raise InvalidArgument(
            f"token must be a CancellationToken (got {type(token).__name__})",
            param_name="token", value=token,
        )

    reader = adapt(source, force_cancellation_check=resolve_force_cancellation(force_cancellation_check))
    buckets = _batch(reader, size, result_selector, token)
    if isinstance(reader, SyncSource):
        return iterate_now(buckets)
    return buckets


def batched(items: Iterable[T] | AsyncIterable[T], size: int) -> Iterator[list[T]] | AsyncIterator[list[T]]:
    """
    Yield lists of up to `size` items from `items`, without loading all items into memory.
    Same as batch(items, size, list) for callers that want mutable chunks.
    """
    return batch(items, size, list)


async def _batch(
    reader: SequenceSource[T],
    size: int,
    result_selector: ResultSelector[T, R],
    token: CancellationToken | None,
) -> AsyncIterator[R]:
    bucket: list[T] | None = None
    emitted = 0
    try:
        while True:
            ok, item = await reader.try_read(token)
            if not ok:
                break
            if bucket is None:
                bucket = []  # allocated per batch; an empty source never allocates
            bucket.append(item)

            # the bucket is fully buffered before it's handed out
            if len(bucket) < size:
                continue

            view, bucket = tuple(bucket), None
            emitted += 1
            logger.debug("Emitting batch #%d (size=%d)", emitted, size)
            yield result_selector(view)

        # last bucket with all remaining elements
        if bucket is not None:
            emitted += 1
            logger.debug("Emitting final batch #%d (size=%d of %d)", emitted, len(bucket), size)
            yield result_selector(tuple(bucket))

        logger.debug("Source exhausted after %d batch(es)", emitted)
    finally:
        await reader.aclose()
