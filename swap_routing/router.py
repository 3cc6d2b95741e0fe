"""
Multi-hop routing over the pool graph.

``MultiHopRouter`` turns candidate asset paths into simulated ``Route``
objects, selects the best one by strategy, and splits large trades across
several routes. Unreachable pairs yield empty results, never exceptions.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Union

from .cache import TTLCache
from .exceptions import NoRouteError
from .failures import FailureKind, FailureTracker
from .graph import PoolGraph, edge_pools, get_asset
from .interfaces import TimeProvider
from .metrics import RoutingMetrics
from .optimizer import OptimizationParams, RouteOptimizer
from .pathfinder import dijkstra, find_all_paths
from .pricing import PriceCalculator
from .types import Asset, Hop, Pool, Route, SplitResult
from .utils import clamp, get_logger

logger = get_logger(__name__)

LOW_LIQUIDITY_THRESHOLD = 10000
DEFAULT_ROUTE_CACHE_TTL = 10.0


class RoutingStrategy(str, Enum):
    """How ``find_best_route`` picks among viable routes."""

    MIN_IMPACT = "MIN_IMPACT"
    MIN_FEES = "MIN_FEES"
    MAX_OUTPUT = "MAX_OUTPUT"
    BALANCED = "BALANCED"


@dataclass(frozen=True)
class RouteConstraints:
    """
    Caller constraints for a routing query.

    Attributes:
        max_hops: Maximum hops per route
        max_price_impact: Drop routes with a higher aggregate impact (percent)
        min_liquidity: Every hop's pool must have at least this liquidity
        strategy: Selection strategy for a single best route
        max_routes: Above 1, ``route`` returns a split across up to this many routes
    """

    max_hops: int = 3
    max_price_impact: Optional[float] = None
    min_liquidity: int = 0
    strategy: RoutingStrategy = RoutingStrategy.BALANCED
    max_routes: int = 1


def route_confidence(hops: Sequence[Hop]) -> float:
    """
    Advisory confidence for a simulated route.

    Starts at 100, loses 10 per extra hop and 5 per percent of average
    impact, and 20 more if any pool is thinner than 10,000.
    """
    confidence = 100.0 - (len(hops) - 1) * 10
    avg_impact = sum(hop.price_impact for hop in hops) / len(hops)
    confidence -= avg_impact * 5
    if min(hop.liquidity for hop in hops) < LOW_LIQUIDITY_THRESHOLD:
        confidence -= 20
    return clamp(confidence, 0.0, 100.0)


def estimate_execution_time(hops: int) -> int:
    """Rough wall-clock estimate in milliseconds."""
    return 1000 + hops * 500


class MultiHopRouter:
    """
    Route search and selection over one graph snapshot.

    Args:
        graph: Pool graph from ``build_graph``
        price_calculator: Hop simulator
        optimizer: Ranking and split allocation
        route_cache_ttl: Seconds a selected route stays cached (0 disables)
        preferred_pools: Pools favoured by the balanced strategy
        time_provider: Clock for the route cache
        metrics: Optional Prometheus metrics
        failure_tracker: Pools and pair legs it marks as failing are skipped
    """

    def __init__(
        self,
        graph: PoolGraph,
        price_calculator: Optional[PriceCalculator] = None,
        optimizer: Optional[RouteOptimizer] = None,
        route_cache_ttl: float = DEFAULT_ROUTE_CACHE_TTL,
        preferred_pools: Sequence[str] = (),
        time_provider: Optional[TimeProvider] = None,
        metrics: Optional[RoutingMetrics] = None,
        failure_tracker: Optional[FailureTracker] = None,
    ):
        self.graph = graph
        self.failure_tracker = failure_tracker
        self.price_calculator = price_calculator or PriceCalculator(
            time_provider=time_provider
        )
        self.optimizer = optimizer or RouteOptimizer()
        self.preferred_pools = tuple(preferred_pools)
        self.metrics = metrics
        self._route_cache: TTLCache[Route] = TTLCache(
            route_cache_ttl, time_provider=time_provider
        )

    def set_graph(self, graph: PoolGraph) -> None:
        """Switch to a rebuilt graph; cached routes are dropped."""
        self.graph = graph
        self.clear_cache()

    def clear_cache(self) -> None:
        self._route_cache.clear()
        self.price_calculator.clear_cache()
        logger.debug("Route cache cleared")

    # ------------------------------------------------------------------
    # Path search and simulation
    # ------------------------------------------------------------------

    def find_paths(
        self, from_asset: str, to_asset: str, max_hops: int = 3, min_liquidity: int = 0
    ) -> List[List[str]]:
        """
        Candidate asset paths, shortest by edge weight first.

        The Dijkstra path leads, followed by every other simple path of at
        most ``max_hops`` hops in enumeration order. Paths with a leg that
        has no pool of at least ``min_liquidity`` are dropped.
        """
        if not self.graph.has_node(from_asset) or not self.graph.has_node(to_asset):
            logger.debug("Asset %s or %s not in graph", from_asset, to_asset)
            return []

        candidates: List[List[str]] = []
        shortest = dijkstra(self.graph, from_asset, to_asset)
        if shortest is not None and len(shortest[0]) - 1 <= max_hops:
            candidates.append(shortest[0])
        candidates.extend(find_all_paths(self.graph, from_asset, to_asset, max_hops))

        seen = set()
        paths = []
        for path in candidates:
            key = tuple(path)
            if key in seen or len(path) < 2:
                continue
            seen.add(key)
            if self._path_avoided(path):
                continue
            if min_liquidity and not self._path_has_liquidity(path, min_liquidity):
                continue
            paths.append(path)

        logger.debug("Found %d unique paths %s -> %s", len(paths), from_asset, to_asset)
        return paths

    def _path_has_liquidity(self, path: Sequence[str], min_liquidity: int) -> bool:
        for from_mint, to_mint in zip(path, path[1:]):
            pools = edge_pools(self.graph, from_mint, to_mint)
            if not any(pool.liquidity >= min_liquidity for pool in pools):
                return False
        return True

    def _path_avoided(self, path: Sequence[str]) -> bool:
        tracker = self.failure_tracker
        if tracker is None:
            return False
        return any(
            tracker.should_avoid_route(from_mint, to_mint)
            for from_mint, to_mint in zip(path, path[1:])
        )

    def _pool_avoided(self, pool: Pool) -> bool:
        tracker = self.failure_tracker
        return tracker is not None and tracker.should_avoid_pool(pool.address)

    def _route_avoided(self, route: Route) -> bool:
        path = [asset.mint for asset in route.path]
        return self._path_avoided(path) or any(
            self._pool_avoided(hop.pool) for hop in route.hops
        )

    def _asset(self, mint: str, pool: Pool) -> Asset:
        asset = get_asset(self.graph, mint)
        if asset is not None:
            return asset
        return pool.token_a if pool.token_a.mint == mint else pool.token_b

    def calculate_route(
        self, path: Sequence[str], amount: int, min_liquidity: int = 0
    ) -> Optional[Route]:
        """
        Simulate ``amount`` along ``path`` hop by hop.

        Each leg uses whichever parallel pool quotes the highest output,
        among pools with at least ``min_liquidity`` that the failure
        tracker does not avoid. Returns None if a leg has no usable pool or
        runs out of liquidity.
        """
        if len(path) < 2 or amount <= 0:
            return None

        hops: List[Hop] = []
        current = amount
        for from_mint, to_mint in zip(path, path[1:]):
            best = None
            for pool in edge_pools(self.graph, from_mint, to_mint):
                if pool.liquidity < min_liquidity or self._pool_avoided(pool):
                    continue
                quote = self.price_calculator.calculate_swap_output(
                    pool, current, from_mint, to_mint
                )
                if quote is None and self.failure_tracker is not None:
                    # only an empty reserve makes a matching pool unquotable
                    self.failure_tracker.record(
                        FailureKind.INSUFFICIENT_LIQUIDITY,
                        from_mint,
                        to_mint,
                        pool=pool.address,
                        amount=current,
                    )
                if quote is None or quote.amount_out <= 0:
                    continue
                if best is None or quote.amount_out > best[1].amount_out:
                    best = (pool, quote)

            if best is None:
                logger.debug("No usable pool for %s -> %s", from_mint, to_mint)
                return None

            pool, quote = best
            hops.append(
                Hop(
                    from_asset=self._asset(from_mint, pool),
                    to_asset=self._asset(to_mint, pool),
                    pool=pool,
                    direction=pool.direction(from_mint, to_mint),
                    amount_in=current,
                    amount_out=quote.amount_out,
                    fee=quote.fee,
                    price_impact=quote.price_impact,
                )
            )
            current = quote.amount_out

        return Route(
            hops=tuple(hops),
            amount_in=amount,
            expected_output=current,
            price_impact=sum(hop.price_impact for hop in hops),
            total_fees=sum(hop.fee_pct for hop in hops),
            confidence=route_confidence(hops),
            execution_time_ms=estimate_execution_time(len(hops)),
        )

    def _viable_routes(
        self, from_asset: str, to_asset: str, amount: int, constraints: RouteConstraints
    ) -> List[Route]:
        routes = []
        for path in self.find_paths(
            from_asset, to_asset, constraints.max_hops, constraints.min_liquidity
        ):
            route = self.calculate_route(path, amount, constraints.min_liquidity)
            if route is None:
                continue
            if (
                constraints.max_price_impact is not None
                and route.price_impact > constraints.max_price_impact
            ):
                continue
            routes.append(route)
        return routes

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _select(self, routes: Sequence[Route], strategy: RoutingStrategy) -> Route:
        if strategy is RoutingStrategy.MIN_IMPACT:
            return min(routes, key=lambda r: r.price_impact)
        if strategy is RoutingStrategy.MIN_FEES:
            return min(routes, key=lambda r: r.total_fees)
        if strategy is RoutingStrategy.MAX_OUTPUT:
            return max(routes, key=lambda r: r.expected_output)
        ranked = self.optimizer.optimize_routes(
            routes, OptimizationParams(preferred_pools=self.preferred_pools)
        )
        return ranked[0]

    def find_best_route(
        self,
        from_asset: str,
        to_asset: str,
        amount: int,
        constraints: Optional[RouteConstraints] = None,
    ) -> Optional[Route]:
        """Best single route by ``constraints.strategy``, or None."""
        constraints = constraints or RouteConstraints()
        strategy = RoutingStrategy(constraints.strategy)
        cache_key = (
            from_asset,
            to_asset,
            amount,
            constraints.max_hops,
            constraints.max_price_impact,
            constraints.min_liquidity,
            strategy.value,
        )
        cached = self._route_cache.get(cache_key)
        if cached is not None and not self._route_avoided(cached):
            logger.debug("Returning cached route")
            if self.metrics:
                self.metrics.record_route_cache_hit()
            return cached

        started = time.perf_counter()
        routes = self._viable_routes(from_asset, to_asset, amount, constraints)
        best = self._select(routes, strategy) if routes else None
        if self.metrics:
            self.metrics.record_route_query(
                strategy.value, time.perf_counter() - started, best is not None
            )

        if best is None:
            logger.info("No viable route %s -> %s", from_asset, to_asset)
            return None

        self._route_cache.set(cache_key, best)
        logger.info(
            "Best route %s: output %d, impact %.4f%%",
            best.describe(),
            best.expected_output,
            best.price_impact,
        )
        return best

    def require_best_route(
        self,
        from_asset: str,
        to_asset: str,
        amount: int,
        constraints: Optional[RouteConstraints] = None,
    ) -> Route:
        """
        Like ``find_best_route`` but raises when nothing is found.

        Raises:
            NoRouteError: If no viable route exists
        """
        route = self.find_best_route(from_asset, to_asset, amount, constraints)
        if route is None:
            raise NoRouteError(
                f"No route from {from_asset} to {to_asset}",
                from_asset=from_asset,
                to_asset=to_asset,
                details={"amount": amount},
            )
        return route

    def find_multiple_routes(
        self,
        from_asset: str,
        to_asset: str,
        amount: int,
        constraints: Optional[RouteConstraints] = None,
    ) -> List[Route]:
        """
        Up to ``constraints.max_routes`` routes for split execution.

        Each candidate is quoted at ``amount // max_routes`` so thin routes
        are not judged by an impact they would never see.
        """
        constraints = constraints or RouteConstraints()
        max_routes = max(1, constraints.max_routes)
        quote_amount = amount // max_routes
        if quote_amount <= 0:
            return []

        routes = self._viable_routes(from_asset, to_asset, quote_amount, constraints)
        routes.sort(key=lambda r: r.expected_output, reverse=True)
        selected = routes[:max_routes]
        logger.info("Selected %d routes for split execution", len(selected))
        return selected

    def calculate_optimal_split(
        self, routes: Sequence[Route], total_amount: int, min_liquidity: int = 0
    ) -> List[SplitResult]:
        """
        Split ``total_amount`` across ``routes``.

        Allocation comes from the optimizer. Each share is then re-simulated
        along its route's path, under the same ``min_liquidity`` the routes
        were found with, so expected outputs reflect the actual amount
        rather than a linear extrapolation. A share whose re-simulation
        fails keeps the optimizer's route and estimate.
        """
        splits = self.optimizer.calculate_optimal_split(routes, total_amount)
        requoted = []
        for split in splits:
            path = [asset.mint for asset in split.route.path]
            route = self.calculate_route(path, split.amount, min_liquidity)
            if route is not None:
                split = SplitResult(
                    route=route,
                    percentage=split.percentage,
                    amount=split.amount,
                    expected_output=route.expected_output,
                )
            requoted.append(split)
        logger.info("Calculated split across %d routes", len(requoted))
        return requoted

    def route(
        self,
        from_asset: str,
        to_asset: str,
        amount: int,
        constraints: Optional[RouteConstraints] = None,
    ) -> Union[List[Route], List[SplitResult]]:
        """
        Answer a routing query.

        With ``max_routes`` above 1 the amount is split across several
        routes. When the amount is too small to give every route a share,
        or fewer than two routes qualify, the query falls back to
        ``[best_route]``. An empty list always means no route exists under
        the constraints.
        """
        constraints = constraints or RouteConstraints()
        if constraints.max_routes > 1 and amount // constraints.max_routes > 0:
            routes = self.find_multiple_routes(
                from_asset, to_asset, amount, constraints
            )
            if len(routes) >= 2:
                return self.calculate_optimal_split(
                    routes, amount, constraints.min_liquidity
                )
            logger.debug("Fewer than two routes to split across, using best route")

        best = self.find_best_route(from_asset, to_asset, amount, constraints)
        return [best] if best is not None else []

    def get_statistics(self):
        return {
            "assets": self.graph.number_of_nodes(),
            "edges": self.graph.number_of_edges(),
            "cached_routes": len(self._route_cache),
            "route_cache_hits": self._route_cache.hits,
            "pricing": self.price_calculator.get_statistics(),
            "avoided_pools": (
                self.failure_tracker.avoided_pools() if self.failure_tracker else []
            ),
        }
