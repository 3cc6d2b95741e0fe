"""
Dependency injection interfaces for the routing engine.

Provides lightweight protocols for time and pool data so caches, the
monitor loop and the detectors can run against deterministic fakes.
"""

import time
from typing import Awaitable, List, Protocol, Sequence, Union, runtime_checkable

from .types import Pool


@runtime_checkable
class TimeProvider(Protocol):
    """Protocol for time-related operations."""

    def current_timestamp(self) -> float:
        """Get current Unix timestamp."""
        ...

    def monotonic(self) -> float:
        """Get a monotonic clock reading in seconds."""
        ...


class SystemTimeProvider:
    """Production time provider using system time."""

    def current_timestamp(self) -> float:
        """Get current Unix timestamp."""
        return time.time()

    def monotonic(self) -> float:
        """Get a monotonic clock reading in seconds."""
        return time.monotonic()


class DeterministicTimeProvider:
    """Deterministic time provider for testing."""

    def __init__(self, start_time: float = 1640995200.0):  # 2022-01-01
        self._current_time = start_time

    def current_timestamp(self) -> float:
        return self._current_time

    def monotonic(self) -> float:
        return self._current_time

    def advance_time(self, seconds: float) -> None:
        """Manually advance time by specified seconds."""
        self._current_time += seconds

    def set_time(self, timestamp: float) -> None:
        """Set current time to specific timestamp."""
        self._current_time = timestamp


PoolList = Union[Sequence[Pool], Awaitable[Sequence[Pool]]]


@runtime_checkable
class PoolDataProvider(Protocol):
    """
    Read-only source of pool snapshots.

    Implementations may return the pool list directly or as an awaitable.
    Network timeouts and retries belong to the implementation.
    """

    def get_all_pools(self) -> PoolList:
        """Return every known pool."""
        ...

    def get_pools_for_pair(self, asset_a: str, asset_b: str) -> List[Pool]:
        """Return all pools trading the two assets, in either order."""
        ...


_default_time_provider: TimeProvider = SystemTimeProvider()


def get_time_provider() -> TimeProvider:
    """Get the default time provider instance."""
    return _default_time_provider
