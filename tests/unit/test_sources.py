import asyncio
import pathlib

import pytest

from moreiter.cancellation import CancellationToken
from moreiter.errors import Cancelled, InvalidArgument
from moreiter.sources import AsyncSource, SyncSource, adapt, is_async_source, iterate_now, run_now
from moreiter.testing import TrackingAsyncSequence, TrackingSequence, ticking
from moreiter.types import CancellableSource


class OpenableList(list):
    """A plain iterable that happens to have an open() method."""
    def open(self, token):
        raise AssertionError("must not be treated as a cancellable source")


class Openable(CancellableSource):
    def open(self, token):
        return ticking(0)

# --- SyncSource ---

def test_sync_source_never_suspends():
    s = SyncSource([1])
    assert run_now(s.try_read()) == (True, 1)   # no event loop needed
    assert run_now(s.try_read()) == (False, None)

async def test_sync_source_opens_lazily():
    t = TrackingSequence([1])
    s = SyncSource(t)
    assert t.opened is False
    assert await s.try_read() == (True, 1)
    assert t.opened is True

async def test_sync_source_checks_token_when_forced():
    token = CancellationToken()
    token.cancel()
    with pytest.raises(Cancelled):
        await SyncSource([1]).try_read(token)
    assert await SyncSource([1], force_cancellation_check=False).try_read(token) == (True, 1)

async def test_sync_source_close_releases_iterator_and_blocks_reads():
    t = TrackingSequence([1, 2])
    s = SyncSource(t)
    await s.try_read()
    await s.aclose()
    await s.aclose()                            # idempotent
    assert t.closed is True
    with pytest.raises(RuntimeError):
        await s.try_read()

# --- AsyncSource ---

async def test_async_source_reads_then_reports_end():
    s = AsyncSource(TrackingAsyncSequence([7]))
    assert await s.try_read() == (True, 7)
    assert await s.try_read() == (False, None)

async def test_async_source_not_opened_is_not_closed():
    t = TrackingAsyncSequence([1, 2])
    s = AsyncSource(t)
    await s.aclose()
    assert t.opened is False
    assert t.closed is False

async def test_async_source_close_releases_iterator():
    t = TrackingAsyncSequence([1, 2])
    s = AsyncSource(t)
    await s.try_read()
    await s.aclose()
    assert t.closed is True
    with pytest.raises(RuntimeError):
        await s.try_read()

async def test_async_source_forced_check_races_pending_read():
    token = CancellationToken()
    s = AsyncSource(ticking(10.0))
    token.cancel_after(0.02)
    with pytest.raises(Cancelled):
        await s.try_read(token)
    await s.aclose()

# --- adapt ---

def test_adapt_picks_variant():
    assert isinstance(adapt([1, 2]), SyncSource)
    assert isinstance(adapt(ticking()), AsyncSource)
    assert isinstance(adapt(Openable()), AsyncSource)
    s = SyncSource([])
    assert adapt(s) is s

def test_adapt_rejects_non_iterables():
    with pytest.raises(InvalidArgument) as excinfo:
        adapt(42)
    assert excinfo.value.param_name == "source"
    with pytest.raises(InvalidArgument):
        adapt(None)

def test_iterable_with_open_method_stays_sync():
    assert is_async_source(OpenableList([1])) is False
    assert isinstance(adapt(OpenableList([1])), SyncSource)

def test_open_method_alone_is_not_cancellable_source():
    # pathlib.Path has open() but is neither iterable nor a cancellable source
    path = pathlib.Path("nope.txt")
    assert is_async_source(path) is False
    with pytest.raises(InvalidArgument) as excinfo:
        adapt(path)
    assert excinfo.value.param_name == "source"

def test_registered_class_counts_as_cancellable_source():
    class Registered:
        def open(self, token):
            return ticking(0)

    CancellableSource.register(Registered)
    assert isinstance(adapt(Registered()), AsyncSource)

# --- run_now / iterate_now ---

def test_run_now_rejects_awaitables_that_suspend():
    with pytest.raises(RuntimeError, match="suspended"):
        run_now(asyncio.sleep(0))

def test_iterate_now_drives_async_generator_without_loop():
    async def gen():
        for i in range(3):
            yield i * 2

    assert list(iterate_now(gen())) == [0, 2, 4]
