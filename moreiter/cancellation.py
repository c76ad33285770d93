import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

from moreiter.errors import Cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Cooperative cancellation signal passed through every suspension point.

    What it does:
      - cancel() flips the token once; it never resets.
      - raise_if_cancelled() turns a fired token into a Cancelled error.
      - race() awaits a pending read unless the token fires first, in which
        case the read is cancelled and Cancelled is raised.
    How to use:
      token = CancellationToken()
      async for chunk in batch(source, 10, token=token):
          ...
          token.cancel()   # the next read raises Cancelled
    Notes:
      - cancel() may be called from plain (non-async) code, e.g. a loop.call_later callback.
      - A token is meant for a single event loop.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    # ----- public API -----

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Fire the token. Calling it again is a no-op."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.info("Cancellation requested%s", f" ({reason})" if reason else "")

    def cancel_after(self, delay_s: float) -> asyncio.TimerHandle:
        """Schedule cancel() on the running loop after `delay_s` seconds."""
        loop = asyncio.get_running_loop()
        return loop.call_later(max(0.0, float(delay_s)), self.cancel, f"timeout after {delay_s}s")

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled(self._message(), token=self)

    async def wait(self) -> None:
        """Suspend until the token fires."""
        await self._event.wait()

    async def race(self, coro: Coroutine[Any, Any, T]) -> T:
        """
        Run `coro` as a task and return its result, unless the token fires first.
        If it does, the task is cancelled (and awaited) before Cancelled is raised.
        A result that completes together with the token still wins; the next call raises.

        `coro` runs in its own task, so it sees a copy of the caller's context:
        ContextVar values it sets are not visible to the caller and do not carry
        over to the next race() call.
        """
        if self._event.is_set():
            coro.close()  # never started
            raise Cancelled(self._message(), token=self)

        pending = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(self.wait())
        try:
            await asyncio.wait({pending, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            # the consuming task itself was cancelled; take the read down with it
            # and let it finish, so the source is not left mid-step
            pending.cancel()
            await asyncio.wait({pending})
            raise
        finally:
            waiter.cancel()

        if pending.done():
            return pending.result()

        pending.cancel()
        await asyncio.wait({pending})  # let the source unwind before reporting
        logger.debug("In-flight read abandoned on cancellation")
        raise Cancelled(self._message(), token=self)

    # ----- internal helpers -----

    def _message(self) -> str:
        if self._reason:
            return f"Operation was cancelled: {self._reason}"
        return "Operation was cancelled"
