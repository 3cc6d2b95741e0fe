"""
Prometheus metrics for routing queries, arbitrage scans and the monitor.

Each ``RoutingMetrics`` owns its own ``CollectorRegistry`` unless one is
passed in, so several engines (or tests) never collide on metric names.
"""

import logging
import threading
from collections import deque
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)


class RoutingMetrics:
    """
    Routing engine metrics collection

    Provides Prometheus-compatible metrics for:
    - Route queries and their latency
    - Arbitrage scans and opportunities found
    - Monitor loop health
    - Graph size
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._lock = threading.RLock()
        self._initialize_metrics()

    def _initialize_metrics(self):
        """Initialize all Prometheus metrics"""

        # === ROUTING METRICS ===
        self.route_queries_total = Counter(
            "swap_routing_route_queries_total",
            "Total number of routing queries",
            ["strategy"],
            registry=self.registry,
        )

        self.route_queries_empty_total = Counter(
            "swap_routing_route_queries_empty_total",
            "Routing queries that found no route",
            ["strategy"],
            registry=self.registry,
        )

        self.route_query_seconds = Histogram(
            "swap_routing_route_query_seconds",
            "Latency of routing queries",
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=self.registry,
        )

        self.route_cache_hits_total = Counter(
            "swap_routing_route_cache_hits_total",
            "Routing queries answered from the route cache",
            registry=self.registry,
        )

        # === ARBITRAGE METRICS ===
        self.arbitrage_scans_total = Counter(
            "swap_routing_arbitrage_scans_total",
            "Total arbitrage scans run",
            registry=self.registry,
        )

        self.arbitrage_scan_seconds = Histogram(
            "swap_routing_arbitrage_scan_seconds",
            "Duration of arbitrage scans",
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0],
            registry=self.registry,
        )

        self.opportunities_found_total = Counter(
            "swap_routing_opportunities_found_total",
            "Opportunities that cleared the profit threshold",
            ["kind"],
            registry=self.registry,
        )

        self.opportunity_profit_bps = Histogram(
            "swap_routing_opportunity_profit_basis_points",
            "Net profit of detected opportunities in basis points",
            buckets=[0, 5, 10, 20, 50, 100, 200, 500, 1000],
            registry=self.registry,
        )

        # === MONITOR METRICS ===
        self.monitor_ticks_total = Counter(
            "swap_routing_monitor_ticks_total",
            "Monitor ticks executed",
            registry=self.registry,
        )

        self.monitor_ticks_skipped_total = Counter(
            "swap_routing_monitor_ticks_skipped_total",
            "Monitor ticks skipped because the previous scan overran",
            registry=self.registry,
        )

        self.callback_errors_total = Counter(
            "swap_routing_callback_errors_total",
            "Exceptions raised by opportunity callbacks",
            registry=self.registry,
        )

        self.scan_errors_total = Counter(
            "swap_routing_scan_errors_total",
            "Monitor ticks whose arbitrage scan raised",
            registry=self.registry,
        )

        # === FAILURE TRACKING ===
        self.failures_total = Counter(
            "swap_routing_failures_total",
            "Routing and execution failures reported to the failure tracker",
            ["kind"],
            registry=self.registry,
        )

        # === GRAPH METRICS ===
        self.graph_assets = Gauge(
            "swap_routing_graph_assets",
            "Assets in the current pool graph",
            registry=self.registry,
        )

        self.graph_edges = Gauge(
            "swap_routing_graph_edges",
            "Directed pool edges in the current pool graph",
            registry=self.registry,
        )

    # === METRIC RECORDING METHODS ===

    def record_route_query(self, strategy: str, duration_seconds: float, found: bool):
        with self._lock:
            self.route_queries_total.labels(strategy=strategy).inc()
            self.route_query_seconds.observe(duration_seconds)
            if not found:
                self.route_queries_empty_total.labels(strategy=strategy).inc()

    def record_route_cache_hit(self):
        with self._lock:
            self.route_cache_hits_total.inc()

    def record_scan(self, duration_seconds: float):
        with self._lock:
            self.arbitrage_scans_total.inc()
            self.arbitrage_scan_seconds.observe(duration_seconds)

    def record_opportunity(self, kind: str, profit_bps: float):
        """Record a detected opportunity ("triangular" or "cross_pool")"""
        with self._lock:
            self.opportunities_found_total.labels(kind=kind).inc()
            self.opportunity_profit_bps.observe(profit_bps)

    def record_tick(self, skipped: int = 0):
        with self._lock:
            self.monitor_ticks_total.inc()
            if skipped:
                self.monitor_ticks_skipped_total.inc(skipped)

    def record_callback_error(self):
        with self._lock:
            self.callback_errors_total.inc()

    def record_scan_error(self):
        with self._lock:
            self.scan_errors_total.inc()

    def record_failure(self, kind: str):
        with self._lock:
            self.failures_total.labels(kind=kind).inc()

    def update_graph_size(self, assets: int, edges: int):
        with self._lock:
            self.graph_assets.set(assets)
            self.graph_edges.set(edges)

    def export(self) -> bytes:
        """Render the registry in the Prometheus text format"""
        return generate_latest(self.registry)


class VolatilityMonitor:
    """
    Rolling-window volatility of a quoted price.

    Tracks relative changes between consecutive price observations and
    reports their standard deviation. Feeds ``dynamic_adjustment``.
    """

    def __init__(self, window_size: int = 100):
        self.window_size = window_size
        self._returns: deque = deque(maxlen=window_size)
        self._last_price: Optional[float] = None

    def add_price(self, price: float) -> None:
        """Record a price; non-positive prices are ignored."""
        price = float(price)
        if price <= 0:
            return
        if self._last_price is not None:
            self._returns.append(price / self._last_price - 1)
        self._last_price = price

    @property
    def count(self) -> int:
        """Number of returns currently stored."""
        return len(self._returns)

    def get_moving_average(self) -> Optional[float]:
        """Mean return of the window, or None if fewer than 2 observations."""
        if len(self._returns) < 2:
            return None
        return sum(self._returns) / len(self._returns)

    def get_sigma(self) -> Optional[float]:
        """Population standard deviation, or None if fewer than 2 observations."""
        n = len(self._returns)
        if n < 2:
            return None
        mean = sum(self._returns) / n
        variance = sum((x - mean) ** 2 for x in self._returns) / n
        return variance ** 0.5

    def get_volatility(self) -> float:
        """Sigma of returns, or 0.0 until enough data is collected."""
        sigma = self.get_sigma()
        return sigma if sigma is not None else 0.0
