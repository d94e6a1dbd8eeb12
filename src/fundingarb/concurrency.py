"""Structured fan-out/fan-in for independent adapter calls.

asyncio.gather(..., return_exceptions=True) keeps every sibling running when
one fails; gather_outcomes pairs each result or exception with the key of the
task that produced it, so callers never lose track of which adapter failed.
"""

import asyncio
from collections.abc import Awaitable, Hashable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[K, T]):
    """Result of one dispatched task: exactly one of ``result``/``error`` is meaningful."""

    key: K
    result: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def reason(self) -> str:
        """Human-readable failure reason (exception type and message)."""
        if self.error is None:
            return ""
        message = str(self.error) or self.error.__class__.__name__
        return f"{self.error.__class__.__name__}: {message}"


async def gather_outcomes(
    tasks: Iterable[tuple[K, Awaitable[T]]],
) -> list[Outcome[K, T]]:
    """Run every awaitable concurrently and return one Outcome per task.

    All awaitables are scheduled before any is awaited. The returned list is
    in dispatch order. Exceptions are captured, never raised, except
    cancellation of the caller, which propagates.
    """
    keys: list[K] = []
    awaitables: list[Awaitable[Any]] = []
    for key, awaitable in tasks:
        keys.append(key)
        awaitables.append(awaitable)

    if not awaitables:
        return []

    results = await asyncio.gather(*awaitables, return_exceptions=True)

    outcomes: list[Outcome[K, T]] = []
    for key, result in zip(keys, results):
        if isinstance(result, BaseException):
            if isinstance(result, (KeyboardInterrupt, SystemExit)):
                raise result
            outcomes.append(Outcome(key=key, error=result))
        else:
            outcomes.append(Outcome(key=key, result=result))
    return outcomes
