import asyncio
from collections.abc import AsyncIterator

import pytest

from moreiter.batching import batch, batched
from moreiter.cancellation import CancellationToken
from moreiter.errors import Cancelled
from moreiter.testing import (
    BreakingAsyncSequence,
    EnumerationRequested,
    TrackingAsyncSequence,
    aread,
    assert_raises_out_of_range,
    ticking,
)
from moreiter.types import CancellableSource


async def _aiter(items):
    for item in items:
        yield item


class TokenAwareSource(CancellableSource):
    """Minimal cancellable source: checks the token it was opened with before each element."""
    def __init__(self, items):
        self.items = list(items)
        self.token = None

    def open(self, token):
        self.token = token
        return self._gen(token)

    async def _gen(self, token):
        for item in self.items:
            if token is not None:
                token.raise_if_cancelled()
            yield item


# --- argument checks ---

def test_zero_size():
    assert_raises_out_of_range("size", lambda: batch(_aiter([]), 0))

def test_negative_size():
    assert_raises_out_of_range("size", lambda: batch(_aiter([]), -1))

# --- laziness / shape ---

async def test_is_lazy():
    result = batch(BreakingAsyncSequence(), 3)   # must not raise here
    with pytest.raises(EnumerationRequested):
        await anext(result)

async def test_returns_async_iterator():
    assert isinstance(batch(_aiter([1]), 1), AsyncIterator)

async def test_evenly_distributed_async_sequence():
    async with aread(batch(_aiter(range(1, 10)), 3)) as r:
        assert await r.read() == (1, 2, 3)
        assert await r.read() == (4, 5, 6)
        assert await r.read() == (7, 8, 9)
        await r.read_end()

async def test_unevenly_divisible_async_sequence():
    async with aread(batch(_aiter(range(1, 10)), 4)) as r:
        assert await r.read() == (1, 2, 3, 4)
        assert await r.read() == (5, 6, 7, 8)
        assert await r.read() == (9,)
        await r.read_end()

async def test_sequence_transforming_result():
    assert [s async for s in batch(_aiter(range(1, 10)), 4, sum)] == [10, 26, 9]

async def test_empty_async_sequence():
    assert [c async for c in batch(_aiter([]), 3)] == []

async def test_batched_async_gives_lists():
    assert [c async for c in batched(_aiter(range(5)), 2)] == [[0, 1], [2, 3], [4]]

async def test_one_read_at_a_time_no_read_ahead():
    t = TrackingAsyncSequence(range(10), delay_s=0.001)
    result = batch(t, 3)
    assert await anext(result) == (0, 1, 2)
    assert t.reads == 3
    await result.aclose()

# --- errors and disposal ---

async def test_source_closed_on_completion():
    t = TrackingAsyncSequence(range(5))
    assert [c async for c in batch(t, 2)] == [(0, 1), (2, 3), (4,)]
    assert t.closed is True

async def test_source_closed_when_consumer_abandons():
    t = TrackingAsyncSequence(range(10))
    result = batch(t, 2)
    assert await anext(result) == (0, 1)
    await result.aclose()
    assert t.closed is True
    assert t.reads == 2

async def test_selector_error_propagates_and_source_is_closed():
    def boom(bucket):
        raise KeyError("selector")

    t = TrackingAsyncSequence(range(4))
    with pytest.raises(KeyError):
        [c async for c in batch(t, 2, boom)]
    assert t.closed is True

async def test_source_error_propagates_unmodified():
    async def gen():
        yield 1
        raise LookupError("boom")

    with pytest.raises(LookupError, match="boom"):
        [c async for c in batch(gen(), 5)]

# --- cancellation ---

async def test_cancel_after_first_batch_raises_on_next_read():
    token = CancellationToken()
    result = batch(ticking(0.01), 1, token=token)   # unbounded, slow
    assert await anext(result) == (0,)
    token.cancel()
    with pytest.raises(Cancelled):
        await anext(result)

async def test_cancel_interrupts_a_pending_read():
    token = CancellationToken()
    result = batch(ticking(10.0), 1, token=token)   # would otherwise wait 10s
    token.cancel_after(0.05)
    with pytest.raises(Cancelled):
        await asyncio.wait_for(anext(result), timeout=5)

async def test_partial_bucket_dropped_on_cancel():
    async def fast_then_stall():
        for i in range(4):
            yield i
        await asyncio.sleep(10)
        yield 4

    token = CancellationToken()
    collected = []
    token.cancel_after(0.05)
    with pytest.raises(Cancelled):
        async for chunk in batch(fast_then_stall(), 3, token=token):
            collected.append(chunk)
    assert collected == [(0, 1, 2)]               # (3,) never emitted

async def test_source_closed_when_pending_read_is_cancelled():
    t = TrackingAsyncSequence(range(10), delay_s=10)
    token = CancellationToken()
    token.cancel_after(0.02)
    with pytest.raises(Cancelled):
        await anext(batch(t, 2, token=token))
    assert t.opened is True
    assert t.closed is True

async def test_source_closed_when_cancelled_between_reads():
    t = TrackingAsyncSequence(range(10))
    token = CancellationToken()
    result = batch(t, 2, token=token)
    assert await anext(result) == (0, 1)
    token.cancel()
    with pytest.raises(Cancelled):
        await anext(result)
    assert t.closed is True
    assert t.reads == 2

async def test_token_forwarded_to_cancellable_source():
    token = CancellationToken()
    src = TokenAwareSource([1, 2, 3])
    assert [c async for c in batch(src, 2, token=token)] == [(1, 2), (3,)]
    assert src.token is token

async def test_unforced_policy_relies_on_source():
    token = CancellationToken()
    src = TokenAwareSource([1, 2, 3])
    result = batch(src, 1, token=token, force_cancellation_check=False)
    assert await anext(result) == (1,)
    token.cancel()
    with pytest.raises(Cancelled):                 # raised by the source itself
        await anext(result)

async def test_unforced_policy_ignores_token_for_unaware_source():
    token = CancellationToken()
    token.cancel()
    result = batch(_aiter([1, 2, 3]), 2, token=token, force_cancellation_check=False)
    assert [c async for c in result] == [(1, 2), (3,)]

async def test_policy_from_env(monkeypatch):
    monkeypatch.setenv("MOREITER_FORCE_CANCELLATION", "false")
    token = CancellationToken()
    token.cancel()
    assert [c async for c in batch(_aiter([1, 2]), 1, token=token)] == [(1,), (2,)]

async def test_task_cancellation_propagates_as_cancelled_error():
    token = CancellationToken()

    async def consume():
        return [c async for c in batch(ticking(10.0), 1, token=token)]

    task = asyncio.create_task(consume())
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert token.cancelled is False
