from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar, Union

if TYPE_CHECKING:
    from moreiter.cancellation import CancellationToken

T = TypeVar("T")
R = TypeVar("R")
T_co = TypeVar("T_co", covariant=True)

# (True, value) when an element was read, (False, None) at the end of the sequence
ReadResult = tuple[bool, Union[T, None]]

# receives a read-only view over exactly one bucket
ResultSelector = Callable[[tuple[T, ...]], R]


class CancellableSource(ABC, Generic[T_co]):
    """
    An asynchronous origin that observes the cancellation token itself.
    Opt-in: subclass it, or call CancellableSource.register(cls). Having an
    open() method is not enough (pathlib.Path has one too).
    """

    @abstractmethod
    def open(self, token: "CancellationToken | None") -> AsyncIterator[T_co]: ...


class SequenceSource(Protocol[T_co]):
    """Read next element, waiting if necessary; the seam the batching engine is written against."""

    async def try_read(self, token: "CancellationToken | None" = None) -> "tuple[bool, T_co | None]": ...

    async def aclose(self) -> None: ...
