"""
Engine facade wiring provider, graph, router, detector and monitor.

One ``SwapEngine`` owns one graph snapshot and every cache built on it.
Rebuilding the snapshot replaces the graph in the router and detector and
drops their caches.
"""

from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .analysis import (
    RouteAnalysis,
    RouteStability,
    analyze_route_stability,
    analyze_routes,
    format_opportunity,
)
from .arbitrage import ArbitrageDetector
from .config_loader import EngineRuntimeConfig, get_default_config, load_engine_config
from .exceptions import ConfigurationError
from .failures import FailureRecord, FailureTracker
from .graph import PoolGraph
from .interfaces import PoolDataProvider, TimeProvider, get_time_provider
from .metrics import RoutingMetrics, VolatilityMonitor
from .monitor import ArbitrageMonitor, MonitorHandle, OpportunityCallback
from .optimizer import RouteOptimizer
from .pathfinder import astar_path, calculate_metrics, connected_assets, has_path
from .pricing import PriceCalculator, estimate_gas_cost, minimum_amount_out
from .provider import load_pool_snapshot
from .router import MultiHopRouter, RouteConstraints, RoutingStrategy
from .types import (
    ArbitrageOpportunity,
    CrossPoolArbitrage,
    GraphMetrics,
    Route,
    SplitResult,
)
from .utils import get_logger

logger = get_logger(__name__)


class SwapEngine:
    """
    Routing and arbitrage queries over one pool snapshot.

    Args:
        provider: Pool data provider
        config: Runtime configuration (defaults if None)
        time_provider: Clock shared by every cache
        metrics: Prometheus metrics (a private registry if None)
    """

    def __init__(
        self,
        provider: PoolDataProvider,
        config: Optional[EngineRuntimeConfig] = None,
        time_provider: Optional[TimeProvider] = None,
        metrics: Optional[RoutingMetrics] = None,
    ):
        self.provider = provider
        self.config = config or get_default_config()
        self._time = time_provider or get_time_provider()
        self.metrics = metrics or RoutingMetrics()
        self.price_calculator = PriceCalculator(
            self.config.pricing.price_cache_ttl_sec, time_provider=self._time
        )
        self.optimizer = RouteOptimizer()
        self.failures = FailureTracker(
            self.config.routing.max_route_failures,
            self.config.routing.max_pool_failures,
            time_provider=self._time,
            metrics=self.metrics,
        )
        self.detector = ArbitrageDetector(
            provider=provider,
            price_calculator=self.price_calculator,
            config=self.config.arbitrage,
            gas=self.config.gas,
            time_provider=self._time,
            metrics=self.metrics,
        )
        self.router: Optional[MultiHopRouter] = None
        self._volatility: Dict[Tuple[str, str], VolatilityMonitor] = {}

    @classmethod
    def from_config(
        cls, config_path: Union[str, Path], time_provider: Optional[TimeProvider] = None
    ) -> "SwapEngine":
        """
        Build an engine from a YAML config naming a pool snapshot.

        Raises:
            ConfigurationError: If the config or snapshot cannot be loaded
        """
        config = load_engine_config(config_path)
        if not config.pool_snapshot:
            raise ConfigurationError("Config does not name a pool_snapshot")
        provider = load_pool_snapshot(
            config.pool_snapshot, config.pricing.snapshot_ttl_sec, time_provider
        )
        engine = cls(provider, config, time_provider)
        engine.initialize()
        return engine

    # ------------------------------------------------------------------
    # Snapshot management
    # ------------------------------------------------------------------

    def _install(self, graph: PoolGraph) -> PoolGraph:
        if self.router is None:
            self.router = MultiHopRouter(
                graph,
                price_calculator=self.price_calculator,
                optimizer=self.optimizer,
                route_cache_ttl=self.config.routing.route_cache_ttl_sec,
                preferred_pools=self.config.routing.preferred_pools,
                time_provider=self._time,
                metrics=self.metrics,
                failure_tracker=self.failures,
            )
        else:
            self.router.set_graph(graph)
        return graph

    def initialize(self) -> PoolGraph:
        """Load the provider snapshot and build the graph."""
        graph = self._install(self.detector.initialize())
        logger.info(
            f"Engine ready with {graph.number_of_nodes()} assets "
            f"and {graph.number_of_edges()} edges"
        )
        return graph

    async def ainitialize(self, timeout: Optional[float] = None) -> PoolGraph:
        """Async variant of ``initialize`` with a hard deadline on the provider."""
        return self._install(await self.detector.ainitialize(timeout))

    def refresh_if_stale(self) -> bool:
        """Rebuild the graph if the provider reports a stale snapshot."""
        is_stale = getattr(self.provider, "is_stale", None)
        if self.router is not None and (is_stale is None or not is_stale()):
            return False
        self.initialize()
        return True

    @property
    def graph(self) -> Optional[PoolGraph]:
        return self.detector.graph

    def _require_router(self) -> MultiHopRouter:
        if self.router is None:
            self.initialize()
        return self.router

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def default_constraints(self) -> RouteConstraints:
        routing = self.config.routing
        return RouteConstraints(
            max_hops=routing.max_hops,
            max_price_impact=routing.max_price_impact,
            min_liquidity=routing.min_liquidity,
            strategy=RoutingStrategy(routing.strategy),
            max_routes=routing.max_routes if routing.enable_split else 1,
        )

    def route(
        self,
        from_asset: str,
        to_asset: str,
        amount: int,
        constraints: Optional[RouteConstraints] = None,
    ) -> Union[List[Route], List[SplitResult]]:
        """
        Best route, or a split across several routes for large trades.

        Trades below ``routing.split_threshold`` are never split. With
        ``routing.dynamic_adjustment`` on, single routes are adjusted for
        observed volatility and gas price.
        """
        router = self._require_router()
        constraints = constraints or self.default_constraints()
        if amount < self.config.routing.split_threshold and constraints.max_routes > 1:
            constraints = replace(constraints, max_routes=1)

        results = router.route(from_asset, to_asset, amount, constraints)
        if not results or isinstance(results[0], SplitResult):
            return results

        best = results[0]
        volatility = self._volatility.setdefault(
            (from_asset, to_asset), VolatilityMonitor()
        )
        volatility.add_price(best.expected_output / amount)

        if self.config.routing.dynamic_adjustment:
            results = self.optimizer.dynamic_adjustment(
                results, volatility.get_volatility(), self.config.gas.gas_price
            )
        return results

    def rank_for_mev_resistance(self, routes: List[Route]) -> List[Route]:
        return self.optimizer.optimize_for_mev_resistance(routes)

    def minimum_output(self, route: Route, slippage_bps: Optional[int] = None) -> int:
        """Output floor for ``route`` under the configured slippage tolerance."""
        if slippage_bps is None:
            slippage_bps = self.config.pricing.default_slippage_bps
        return minimum_amount_out(route.expected_output, slippage_bps)

    def estimate_gas(self, route: Route) -> int:
        gas = self.config.gas
        return estimate_gas_cost(
            route.hop_count, gas.priority_fee, gas.base_units, gas.gas_units_per_hop
        )

    def analyze(
        self, from_asset: str, to_asset: str, amount: int
    ) -> Optional[RouteAnalysis]:
        return analyze_routes(
            self._require_router(),
            from_asset,
            to_asset,
            amount,
            self.config.routing.max_hops,
        )

    async def analyze_route_stability(
        self, route: Route, intervals: int = 10, delay_sec: float = 1.0
    ) -> RouteStability:
        """Re-quote ``route`` over time, refreshing a stale snapshot between samples."""
        return await analyze_route_stability(
            self._require_router(),
            route,
            intervals=intervals,
            delay_sec=delay_sec,
            before_sample=self.refresh_if_stale,
        )

    def has_path(self, from_asset: str, to_asset: str) -> bool:
        self._require_router()
        return has_path(self.graph, from_asset, to_asset)

    def connected_assets(self, asset: str) -> List[str]:
        """Assets one swap away from ``asset``."""
        self._require_router()
        return connected_assets(self.graph, asset)

    def find_path_astar(
        self, from_asset: str, to_asset: str, max_hops: Optional[int] = None
    ) -> Optional[List[str]]:
        self._require_router()
        if max_hops is None:
            max_hops = self.config.routing.max_hops
        return astar_path(self.graph, from_asset, to_asset, max_hops)

    # ------------------------------------------------------------------
    # Failure reporting
    # ------------------------------------------------------------------

    def record_failure(
        self,
        error: BaseException,
        from_asset: str,
        to_asset: str,
        pool: Optional[str] = None,
        amount: Optional[int] = None,
    ) -> FailureRecord:
        """
        Report a failed swap or query so later routing can steer around it.

        Cached routes through a pool or pair leg that crosses its failure
        limit are not served again.
        """
        return self.failures.record(error, from_asset, to_asset, pool, amount)

    def failure_report(self) -> str:
        return self.failures.generate_report()

    # ------------------------------------------------------------------
    # Arbitrage
    # ------------------------------------------------------------------

    def scan(
        self,
        start_assets: Optional[Iterable[str]] = None,
        min_profit_bps: Optional[float] = None,
        max_hops: Optional[int] = None,
    ) -> List[ArbitrageOpportunity]:
        """Triangular arbitrage across ``start_assets`` (the watch-list if None)."""
        self._require_router()
        if start_assets is None:
            start_assets = self.config.monitor.start_assets
        opportunities = self.detector.scan(start_assets, min_profit_bps, max_hops)
        for opportunity in opportunities[:5]:
            logger.info(format_opportunity(opportunity))
        return opportunities

    def scan_cross_pool(
        self, min_spread_bps: Optional[float] = None
    ) -> List[CrossPoolArbitrage]:
        self._require_router()
        return self.detector.scan_cross_pool(min_spread_bps)

    def monitor(
        self,
        callback: OpportunityCallback,
        start_assets: Optional[Iterable[str]] = None,
        interval_sec: Optional[float] = None,
    ) -> MonitorHandle:
        """
        Start continuous monitoring from a running event loop.

        Returns:
            Handle whose ``cancel()`` stops the loop between ticks
        """
        self._require_router()
        if start_assets is None:
            start_assets = self.config.monitor.start_assets
        if interval_sec is None:
            interval_sec = self.config.monitor.interval_sec
        monitor = ArbitrageMonitor(
            self.detector,
            interval_sec=interval_sec,
            min_profit_bps=self.config.arbitrage.min_profit_bps,
            max_hops=self.config.arbitrage.max_hops,
            metrics=self.metrics,
        )
        return monitor.start(start_assets, callback)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def graph_metrics(self) -> GraphMetrics:
        """Aggregate graph metrics. Runs all-pairs shortest paths."""
        self._require_router()
        return calculate_metrics(self.graph)

    def get_statistics(self):
        router = self._require_router()
        return {
            "router": router.get_statistics(),
            "detector": self.detector.get_statistics(),
            "failures": self.failures.get_statistics(),
        }
