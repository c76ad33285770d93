import logging
import os

from moreiter.errors import OutOfRange, require_positive_int

logger = logging.getLogger(__name__)

# Defaults and env var names
DEFAULT_BATCH_SIZE = 100
DEFAULT_FORCE_CANCELLATION = True
DEFAULT_LOG_LEVEL = "INFO"
ENV_BATCH_SIZE = "MOREITER_BATCH_SIZE"
ENV_FORCE_CANCELLATION = "MOREITER_FORCE_CANCELLATION"
ENV_LOG_LEVEL = "MOREITER_LOG_LEVEL"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


# ---------- helper functions ----------

def _env_int(name: str, default: int) -> int:
    """Read an int from the environment; return default if missing or invalid."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Invalid int in env %s=%r (using default=%s)", name, raw, default)
        return default


def _env_bool(name: str, default: bool) -> bool:
    """Read a yes/no flag from the environment; return default if missing or unrecognised."""
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    logger.warning("Invalid flag in env %s=%r (using default=%s)", name, raw, default)
    return default


def resolve_force_cancellation(explicit: bool | None = None) -> bool:
    """
    Should adapters check the token themselves, even when the origin ignores it?
    Precedence: explicit argument > MOREITER_FORCE_CANCELLATION > default (True).
    """
    if explicit is not None:
        return bool(explicit)
    return _env_bool(ENV_FORCE_CANCELLATION, DEFAULT_FORCE_CANCELLATION)


# ---------- config ----------

class Config:
    """
    Small runtime config holder, resolved once at construction.
    Precedence when loading: explicit arguments > env vars > defaults.
      cfg = Config(batch_size=args.size)
      cfg.batch_size(), cfg.force_cancellation_check(), cfg.log_level()
    Notes:
      - Bad env values are logged and replaced by defaults.
      - Bad explicit values raise (they come from the caller, so fail fast).
    """

    def __init__(
        self,
        *,
        batch_size: int | None = None,
        force_cancellation_check: bool | None = None,
        log_level: str | None = None,
    ) -> None:
        if batch_size is not None:
            self._batch_size = require_positive_int(batch_size, "batch_size")
        else:
            env_size = _env_int(ENV_BATCH_SIZE, DEFAULT_BATCH_SIZE)
            if env_size <= 0:
                logger.warning("Non-positive %s=%d (using default=%d)", ENV_BATCH_SIZE, env_size, DEFAULT_BATCH_SIZE)
                env_size = DEFAULT_BATCH_SIZE
            self._batch_size = env_size

        self._force_cancellation = resolve_force_cancellation(force_cancellation_check)

        level = (log_level or os.getenv(ENV_LOG_LEVEL) or DEFAULT_LOG_LEVEL).strip().upper()
        if level not in _LOG_LEVELS:
            if log_level is not None:
                raise OutOfRange(f"log_level must be one of {_LOG_LEVELS} (got {log_level!r})",
                                 param_name="log_level", value=log_level)
            logger.warning("Invalid %s=%r (using default=%s)", ENV_LOG_LEVEL, level, DEFAULT_LOG_LEVEL)
            level = DEFAULT_LOG_LEVEL
        self._log_level = level

    # ----- public API -----

    def batch_size(self) -> int:
        return self._batch_size

    def force_cancellation_check(self) -> bool:
        return self._force_cancellation

    def log_level(self) -> str:
        return self._log_level
