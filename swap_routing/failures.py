"""
Failure tracking for routing and execution.

``FailureTracker`` classifies exceptions reported against an asset pair
(and optionally a pool), keeps a bounded history, and counts failures per
pair and per pool. A router holding a tracker skips pools and pair legs
whose failure count has passed the configured limit. Retrying is left to
whoever reported the failure.
"""

import asyncio
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple, Union

from .exceptions import (
    ConfigurationError,
    InsufficientLiquidityError,
    NetworkError,
    NoRouteError,
    PoolDataError,
    ValidationError,
)
from .interfaces import TimeProvider, get_time_provider
from .metrics import RoutingMetrics
from .utils import get_logger, timestamp_to_iso

logger = get_logger(__name__)

MAX_HISTORY = 200
DEFAULT_MAX_ROUTE_FAILURES = 5
DEFAULT_MAX_POOL_FAILURES = 10


class FailureKind(str, Enum):
    NO_ROUTE_FOUND = "NO_ROUTE_FOUND"
    INSUFFICIENT_LIQUIDITY = "INSUFFICIENT_LIQUIDITY"
    EXCESSIVE_PRICE_IMPACT = "EXCESSIVE_PRICE_IMPACT"
    SLIPPAGE_EXCEEDED = "SLIPPAGE_EXCEEDED"
    POOL_DATA_ERROR = "POOL_DATA_ERROR"
    INVALID_ROUTE = "INVALID_ROUTE"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    SIMULATION_FAILED = "SIMULATION_FAILED"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    UNKNOWN = "UNKNOWN"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# kind -> (severity, retryable)
KIND_PROFILE: Dict[FailureKind, Tuple[Severity, bool]] = {
    FailureKind.NO_ROUTE_FOUND: (Severity.HIGH, True),
    FailureKind.INSUFFICIENT_LIQUIDITY: (Severity.HIGH, True),
    FailureKind.EXCESSIVE_PRICE_IMPACT: (Severity.HIGH, True),
    FailureKind.SLIPPAGE_EXCEEDED: (Severity.MEDIUM, True),
    FailureKind.POOL_DATA_ERROR: (Severity.HIGH, True),
    FailureKind.INVALID_ROUTE: (Severity.MEDIUM, False),
    FailureKind.CONFIGURATION_ERROR: (Severity.CRITICAL, False),
    FailureKind.SIMULATION_FAILED: (Severity.MEDIUM, True),
    FailureKind.EXECUTION_ERROR: (Severity.HIGH, True),
    FailureKind.NETWORK_ERROR: (Severity.MEDIUM, True),
    FailureKind.TIMEOUT_ERROR: (Severity.MEDIUM, True),
    FailureKind.UNKNOWN: (Severity.MEDIUM, False),
}

# Checked in order against the message of exceptions raised outside the
# package, e.g. by an executor submitting the route.
MESSAGE_KEYWORDS: List[Tuple[Tuple[str, ...], FailureKind]] = [
    (("slippage",), FailureKind.SLIPPAGE_EXCEEDED),
    (("price impact",), FailureKind.EXCESSIVE_PRICE_IMPACT),
    (("liquidity", "reserve", "insufficient"), FailureKind.INSUFFICIENT_LIQUIDITY),
    (("timeout", "timed out"), FailureKind.TIMEOUT_ERROR),
    (("network", "connection"), FailureKind.NETWORK_ERROR),
    (("simulation", "simulate"), FailureKind.SIMULATION_FAILED),
    (("execution", "transaction", "swap failed"), FailureKind.EXECUTION_ERROR),
    (("no route", "no path"), FailureKind.NO_ROUTE_FOUND),
]

RECOVERY_SUGGESTIONS: Dict[FailureKind, List[str]] = {
    FailureKind.NO_ROUTE_FOUND: [
        "Increase max_hops",
        "Check the pair has any pool with liquidity",
        "Route through a more liquid intermediate asset",
        "Reduce the swap amount",
    ],
    FailureKind.INSUFFICIENT_LIQUIDITY: [
        "Reduce the swap amount",
        "Split the swap across several routes",
        "Route through deeper pools",
    ],
    FailureKind.EXCESSIVE_PRICE_IMPACT: [
        "Reduce the swap amount",
        "Split the swap across several routes",
        "Raise max_price_impact if the impact is acceptable",
    ],
    FailureKind.SLIPPAGE_EXCEEDED: [
        "Increase the slippage tolerance",
        "Re-quote against a fresh pool snapshot",
        "Prefer routes with fewer hops",
    ],
    FailureKind.POOL_DATA_ERROR: [
        "Refresh the pool snapshot",
        "Check the pool data provider",
    ],
    FailureKind.INVALID_ROUTE: [
        "Rebuild the graph from a fresh snapshot",
        "Check the route's hops are continuous",
    ],
    FailureKind.CONFIGURATION_ERROR: ["Fix the engine configuration"],
    FailureKind.SIMULATION_FAILED: [
        "Refresh the pool snapshot before retrying",
        "Retry with a smaller amount",
    ],
    FailureKind.EXECUTION_ERROR: [
        "Check balances and fees on the executing account",
        "Simulate the route before submitting it",
    ],
    FailureKind.NETWORK_ERROR: [
        "Check connectivity to the pool data source",
        "Retry with backoff",
    ],
    FailureKind.TIMEOUT_ERROR: [
        "Increase the provider timeout",
        "Retry with backoff",
    ],
}

SEVERITY_LOG_LEVEL = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.ERROR,
}

DEFAULT_SUGGESTIONS = [
    "Review the routing parameters",
    "Check the logs for the underlying exception",
]


def classify_failure(error: BaseException) -> FailureKind:
    """Map an exception to a ``FailureKind``."""
    if isinstance(error, NoRouteError):
        return FailureKind.NO_ROUTE_FOUND
    if isinstance(error, InsufficientLiquidityError):
        return FailureKind.INSUFFICIENT_LIQUIDITY
    if isinstance(error, PoolDataError):
        return FailureKind.POOL_DATA_ERROR
    if isinstance(error, NetworkError):
        if error.timeout is not None:
            return FailureKind.TIMEOUT_ERROR
        return FailureKind.NETWORK_ERROR
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return FailureKind.TIMEOUT_ERROR
    if isinstance(error, ValidationError):
        return FailureKind.INVALID_ROUTE
    if isinstance(error, ConfigurationError):
        return FailureKind.CONFIGURATION_ERROR

    message = str(error).lower()
    for keywords, kind in MESSAGE_KEYWORDS:
        if any(keyword in message for keyword in keywords):
            return kind
    return FailureKind.UNKNOWN


@dataclass(frozen=True)
class FailureRecord:
    """One reported failure."""

    kind: FailureKind
    message: str
    from_asset: str
    to_asset: str
    pool: Optional[str] = None
    amount: Optional[int] = None
    timestamp: float = 0.0

    @property
    def severity(self) -> Severity:
        return KIND_PROFILE[self.kind][0]

    @property
    def retryable(self) -> bool:
        return KIND_PROFILE[self.kind][1]

    @property
    def route_key(self) -> str:
        return f"{self.from_asset}-{self.to_asset}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "from_asset": self.from_asset,
            "to_asset": self.to_asset,
            "pool": self.pool,
            "amount": self.amount,
            "message": self.message,
            "timestamp": timestamp_to_iso(self.timestamp),
        }


@dataclass
class FailureStatistics:
    total: int
    retryable: int
    by_kind: Dict[str, int] = field(default_factory=dict)
    by_severity: Dict[str, int] = field(default_factory=dict)
    recent: List[FailureRecord] = field(default_factory=list)
    failed_routes: List[Tuple[str, int]] = field(default_factory=list)
    problem_pools: List[Tuple[str, int]] = field(default_factory=list)


class FailureTracker:
    """
    Failure history and avoidance decisions for pools and asset pairs.

    Args:
        max_route_failures: A pair is avoided once it has failed more often
        max_pool_failures: A pool is avoided once it has failed more often
        time_provider: Clock for record timestamps
        metrics: Optional Prometheus metrics
    """

    def __init__(
        self,
        max_route_failures: int = DEFAULT_MAX_ROUTE_FAILURES,
        max_pool_failures: int = DEFAULT_MAX_POOL_FAILURES,
        time_provider: Optional[TimeProvider] = None,
        metrics: Optional[RoutingMetrics] = None,
    ):
        self.max_route_failures = max_route_failures
        self.max_pool_failures = max_pool_failures
        self._time = time_provider or get_time_provider()
        self.metrics = metrics
        self._history: Deque[FailureRecord] = deque(maxlen=MAX_HISTORY)
        self._route_failures: Dict[str, int] = defaultdict(int)
        self._pool_failures: Dict[str, int] = defaultdict(int)

    def record(
        self,
        error: Union[BaseException, FailureKind],
        from_asset: str,
        to_asset: str,
        pool: Optional[str] = None,
        amount: Optional[int] = None,
    ) -> FailureRecord:
        """
        Classify and store a failure.

        ``error`` is either the exception that was raised or a
        ``FailureKind`` when there is no exception to hand.
        """
        if isinstance(error, FailureKind):
            kind, message = error, error.value
        else:
            kind, message = classify_failure(error), str(error)

        record = FailureRecord(
            kind=kind,
            message=message,
            from_asset=from_asset,
            to_asset=to_asset,
            pool=pool,
            amount=amount,
            timestamp=self._time.current_timestamp(),
        )
        self._history.append(record)
        self._route_failures[record.route_key] += 1
        if pool is not None:
            self._pool_failures[pool] += 1
        if self.metrics:
            self.metrics.record_failure(kind.value)

        logger.log(
            SEVERITY_LOG_LEVEL[record.severity],
            "%s %s -> %s%s: %s",
            kind.value,
            from_asset[:8],
            to_asset[:8],
            f" (pool {pool})" if pool else "",
            message,
        )
        return record

    def route_failures(self, from_asset: str, to_asset: str) -> int:
        return self._route_failures.get(f"{from_asset}-{to_asset}", 0)

    def pool_failures(self, pool: str) -> int:
        return self._pool_failures.get(pool, 0)

    def should_avoid_route(self, from_asset: str, to_asset: str) -> bool:
        return self.route_failures(from_asset, to_asset) > self.max_route_failures

    def should_avoid_pool(self, pool: str) -> bool:
        return self.pool_failures(pool) > self.max_pool_failures

    def avoided_pools(self) -> List[str]:
        return sorted(p for p in self._pool_failures if self.should_avoid_pool(p))

    def get_statistics(self, top: int = 10) -> FailureStatistics:
        by_kind: Dict[str, int] = defaultdict(int)
        by_severity: Dict[str, int] = defaultdict(int)
        retryable = 0
        for record in self._history:
            by_kind[record.kind.value] += 1
            by_severity[record.severity.value] += 1
            if record.retryable:
                retryable += 1

        def ranked(counts: Dict[str, int]) -> List[Tuple[str, int]]:
            return sorted(counts.items(), key=lambda item: item[1], reverse=True)[:top]

        return FailureStatistics(
            total=len(self._history),
            retryable=retryable,
            by_kind=dict(by_kind),
            by_severity=dict(by_severity),
            recent=list(self._history)[-10:],
            failed_routes=ranked(self._route_failures),
            problem_pools=ranked(self._pool_failures),
        )

    def suggest_recovery(
        self, failure: Union[FailureRecord, FailureKind]
    ) -> List[str]:
        kind = failure.kind if isinstance(failure, FailureRecord) else failure
        return list(RECOVERY_SUGGESTIONS.get(kind, DEFAULT_SUGGESTIONS))

    def clear(self) -> None:
        self._history.clear()
        self._route_failures.clear()
        self._pool_failures.clear()
        logger.info("Failure history cleared")

    def generate_report(self) -> str:
        stats = self.get_statistics()
        lines = [
            "=== Routing Failure Report ===",
            f"Total Failures: {stats.total}",
            f"Retryable: {stats.retryable}",
            "",
            "Top Failure Kinds:",
        ]
        top_kinds = sorted(
            stats.by_kind.items(), key=lambda item: item[1], reverse=True
        )
        lines.extend(f"  {kind}: {count}" for kind, count in top_kinds[:3])
        lines.extend(["", "Most Failed Routes:"])
        lines.extend(f"  {route}: {count}" for route, count in stats.failed_routes[:3])
        lines.extend(["", "Problem Pools:"])
        lines.extend(f"  {pool}: {count}" for pool, count in stats.problem_pools[:3])
        if self._history:
            last = self._history[-1]
            lines.extend(["", f"Last Failure: {timestamp_to_iso(last.timestamp)}"])
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._history)

