from typing import Any

# ---- exceptions ----

class MoreIterError(Exception):
    """Base class for every error raised by moreiter itself."""


class InvalidArgument(MoreIterError, TypeError):
    def __init__(self, message: str, *, param_name: str, value: Any = None) -> None:
        super().__init__(message)
        self.param_name = param_name
        self.value = value


class OutOfRange(MoreIterError, ValueError):
    def __init__(self, message: str, *, param_name: str, value: Any = None) -> None:
        super().__init__(message)
        self.param_name = param_name
        self.value = value


class Cancelled(MoreIterError):
    """
    Raised when a cancellation token fires while a sequence is being consumed.
    Terminal: the sequence that raised it is not exhausted, it is aborted.
    """
    def __init__(self, message: str = "Operation was cancelled", *, token: object = None) -> None:
        super().__init__(message)
        self.token = token


class ReaderError(MoreIterError, LookupError): ...   # read past the end / end expected but not reached


# ---- helpers ----

def require_not_none(value: Any, param_name: str) -> None:
    """Raise InvalidArgument if `value` is None."""
    if value is None:
        raise InvalidArgument(f"{param_name} must not be None", param_name=param_name, value=None)


def require_positive_int(value: Any, param_name: str) -> int:
    """
    Accept plain ints >= 1 and return them.
    - bool is rejected even though it is an int subclass.
    - non-ints -> InvalidArgument; ints <= 0 -> OutOfRange.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(
            f"{param_name} must be an integer (got {type(value).__name__})",
            param_name=param_name, value=value,
        )
    if value <= 0:
        raise OutOfRange(f"{param_name} must be > 0 (got {value})", param_name=param_name, value=value)
    return value


def require_callable(value: Any, param_name: str) -> None:
    require_not_none(value, param_name)
    if not callable(value):
        raise InvalidArgument(
            f"{param_name} must be callable (got {type(value).__name__})",
            param_name=param_name, value=value,
        )
