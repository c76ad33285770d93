import argparse
import asyncio
import contextlib
import json
import logging
import sys
from collections.abc import AsyncIterator, Iterable, Iterator
from typing import IO, Any

from dotenv import load_dotenv

from moreiter.batching import batch
from moreiter.cancellation import CancellationToken
from moreiter.config import Config
from moreiter.errors import Cancelled, MoreIterError

load_dotenv()  # loads .env into process env

logger = logging.getLogger("cli")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="moreiter-batch",
        description="Batch the lines of a text file and print each batch as a JSON line.",
    )
    p.add_argument("path", nargs="?", default="-", help="Input file ('-' or omitted for stdin)")
    p.add_argument(
        "--size",
        type=int,
        default=None,
        help="Bucket size (default: MOREITER_BATCH_SIZE or 100)",
    )
    p.add_argument("--sum", action="store_true", help="Print the numeric sum of each batch instead of its lines")

    # Async path
    p.add_argument(
        "--async",
        dest="use_async",
        action="store_true",
        help="Produce lines from an asynchronous source (one await per line)",
    )
    p.add_argument("--delay-s", type=float, default=None, help="Delay before each line, in seconds (requires --async)")
    p.add_argument("--timeout-s", type=float, default=None, help="Cancel after this many seconds (requires --async)")
    p.add_argument(
        "--force-cancellation-check",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Check the cancellation token on every read (default: MOREITER_FORCE_CANCELLATION or on)",
    )

    # Logging
    p.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: MOREITER_LOG_LEVEL or INFO)",
    )
    return p


# ---------- line sources ----------

def _iter_lines(stream: IO[str]) -> Iterator[str]:
    """Stripped, non-empty lines, one at a time (low memory)."""
    for raw in stream:
        line = raw.strip()
        if line:
            yield line


async def _aiter_lines(lines: Iterable[str], delay_s: float) -> AsyncIterator[str]:
    for line in lines:
        await asyncio.sleep(delay_s)
        yield line


def _to_number(text: str) -> int | float:
    try:
        return int(text)
    except ValueError:
        return float(text)  # let a non-numeric line raise


def _sum_lines(bucket: tuple[str, ...]) -> int | float:
    return sum(_to_number(line) for line in bucket)


def _open_input(path: str) -> contextlib.AbstractContextManager[IO[str]]:
    if path == "-":
        return contextlib.nullcontext(sys.stdin)
    return open(path, "r", encoding="utf-8")


def _emit(result: Any, out: IO[str]) -> None:
    out.write(json.dumps(list(result) if isinstance(result, tuple) else result) + "\n")


# ---------- runners ----------

def _run_sync(lines: Iterable[str], cfg: Config, *, sum_lines: bool, out: IO[str]) -> int:
    selector = _sum_lines if sum_lines else tuple
    count = 0
    for result in batch(lines, cfg.batch_size(), selector):
        _emit(result, out)
        count += 1
    return count


async def _run_async(
    lines: Iterable[str],
    cfg: Config,
    *,
    sum_lines: bool,
    delay_s: float,
    timeout_s: float | None,
    out: IO[str],
) -> int:
    token = CancellationToken()
    timer = token.cancel_after(timeout_s) if timeout_s is not None else None
    selector = _sum_lines if sum_lines else tuple
    count = 0
    try:
        async for result in batch(
            _aiter_lines(lines, delay_s),
            cfg.batch_size(),
            selector,
            token=token,
            force_cancellation_check=cfg.force_cancellation_check(),
        ):
            _emit(result, out)
            count += 1
    finally:
        if timer is not None:
            timer.cancel()
    return count


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.use_async and (args.delay_s is not None or args.timeout_s is not None):
        parser.error("--delay-s and --timeout-s require --async")  # exits 2

    # --- build config (CLI > env > defaults) ---
    try:
        cfg = Config(
            batch_size=args.size,
            force_cancellation_check=args.force_cancellation_check,
            log_level=args.log_level,
        )
    except MoreIterError as e:
        parser.error(str(e))  # exits 2

    # --- logging setup ---
    logging.basicConfig(
        level=getattr(logging, cfg.log_level(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.debug(
        "Config batch_size=%d force_cancellation_check=%s async=%s",
        cfg.batch_size(), cfg.force_cancellation_check(), args.use_async,
    )

    try:
        with _open_input(args.path) as stream:
            lines = _iter_lines(stream)
            if args.use_async:
                count = asyncio.run(_run_async(
                    lines, cfg,
                    sum_lines=args.sum,
                    delay_s=args.delay_s or 0.0,
                    timeout_s=args.timeout_s,
                    out=sys.stdout,
                ))
            else:
                count = _run_sync(lines, cfg, sum_lines=args.sum, out=sys.stdout)
        logger.info("Done: batches=%d", count)
        exit_code = 0
    except Cancelled as e:
        # Output so far is complete batches only; the partial one was dropped
        logger.warning("%s", e)
        exit_code = 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        sys.exit(2)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
