"""
Triangular and cross-pool arbitrage detection.

Each scan runs Init (load pools, build graph), Scan (enumerate cycles per
start asset), Evaluate (simulate every hop), Filter (net profit after gas
against the threshold) and Report (sort, offer to the opportunity cache).
Cycles are judged by direct simulation; the log-price Bellman-Ford check
is only an optional pre-filter.
"""

import asyncio
import inspect
import time
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .cache import OpportunityCache
from .config_loader import ArbitrageConfig, GasConfig
from .exceptions import NetworkError, PoolDataError, SwapRoutingError
from .graph import PoolGraph, best_pool, build_graph, edge_pools, get_asset
from .interfaces import PoolDataProvider, TimeProvider, get_time_provider
from .metrics import RoutingMetrics
from .pathfinder import find_cycles, has_arbitrage_cycle
from .pricing import PriceCalculator, find_arbitrage_spread
from .provider import require_pools
from .types import ArbitrageOpportunity, CrossPoolArbitrage, Hop, Pool, Route
from .utils import basis_points_to_decimal, clamp, get_logger

logger = get_logger(__name__)

BPS = 10000
CROSS_POOL_VOLUME_DIVISOR = 100  # trade at most 1% of the thinner pool


class ArbitrageDetector:
    """
    Finds profitable cycles and cross-pool spreads in one graph snapshot.

    Args:
        provider: Source of pool snapshots for ``initialize``
        graph: Prebuilt graph, if the caller already has one
        price_calculator: Hop simulator
        config: Arbitrage thresholds and defaults
        gas: Gas accounting
        time_provider: Clock for timestamps and the opportunity cache
        metrics: Optional Prometheus metrics
    """

    def __init__(
        self,
        provider: Optional[PoolDataProvider] = None,
        graph: Optional[PoolGraph] = None,
        price_calculator: Optional[PriceCalculator] = None,
        config: Optional[ArbitrageConfig] = None,
        gas: Optional[GasConfig] = None,
        time_provider: Optional[TimeProvider] = None,
        metrics: Optional[RoutingMetrics] = None,
    ):
        self.provider = provider
        self.config = config or ArbitrageConfig()
        self.gas = gas or GasConfig()
        self._time = time_provider or get_time_provider()
        self.price_calculator = price_calculator or PriceCalculator(
            time_provider=self._time
        )
        self.metrics = metrics
        self.opportunity_cache = OpportunityCache(
            self.config.opportunity_ttl_sec, time_provider=self._time
        )
        self.graph: Optional[PoolGraph] = graph

    # ------------------------------------------------------------------
    # Init
    # ------------------------------------------------------------------

    def _require_provider(self) -> PoolDataProvider:
        if self.provider is None:
            raise PoolDataError("No pool data provider configured", source="detector")
        return self.provider

    def set_pools(self, pools: Sequence[Pool]) -> PoolGraph:
        """Rebuild the graph from a pool snapshot."""
        self.graph = build_graph(None, pools)
        self.price_calculator.clear_cache()
        if self.metrics:
            self.metrics.update_graph_size(
                self.graph.number_of_nodes(), self.graph.number_of_edges()
            )
        return self.graph

    def initialize(self) -> PoolGraph:
        """
        Load pools from a synchronous provider and build the graph.

        Raises:
            PoolDataError: If the provider fails or is asynchronous
        """
        provider = self._require_provider()
        try:
            pools = provider.get_all_pools()
        except SwapRoutingError:
            raise
        except Exception as e:
            raise PoolDataError(f"Failed to load pools: {e}", source="provider") from e

        if inspect.isawaitable(pools):
            if inspect.iscoroutine(pools):
                pools.close()
            raise PoolDataError(
                "Provider is asynchronous; use ainitialize()", source="provider"
            )
        return self.set_pools(require_pools(pools, "provider"))

    async def ainitialize(self, timeout: Optional[float] = None) -> PoolGraph:
        """
        Load pools from a sync or async provider under a hard deadline.

        The provider owns retries; a timeout here is final.

        Raises:
            NetworkError: If the provider does not answer within ``timeout``
            PoolDataError: If the provider fails
        """
        provider = self._require_provider()
        try:
            pools = provider.get_all_pools()
            if inspect.isawaitable(pools):
                pools = await asyncio.wait_for(pools, timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Pool provider timed out after {timeout}s", timeout=timeout
            ) from e
        except SwapRoutingError:
            raise
        except Exception as e:
            raise PoolDataError(f"Failed to load pools: {e}", source="provider") from e
        return self.set_pools(require_pools(pools, "provider"))

    def _graph(self) -> PoolGraph:
        if self.graph is None:
            self.initialize()
        return self.graph

    # ------------------------------------------------------------------
    # Evaluate
    # ------------------------------------------------------------------

    def cycle_confidence(self, hops: int, profit_amount: int) -> float:
        confidence = 100.0 - 10 * max(0, hops - 3)
        if profit_amount < self.config.min_profit_amount:
            confidence -= 20
        return clamp(confidence, 0.0, 100.0)

    def evaluate_cycle(
        self, cycle: Sequence[str], capital: int
    ) -> Optional[ArbitrageOpportunity]:
        """
        Simulate ``capital`` around ``cycle`` using the deepest pool per leg.

        Returns None if any leg lacks a pool or runs out of liquidity.
        """
        graph = self._graph()
        hops: List[Hop] = []
        current = capital
        for from_mint, to_mint in zip(cycle, cycle[1:]):
            pool = best_pool(graph, from_mint, to_mint)
            if pool is None:
                return None
            quote = self.price_calculator.calculate_swap_output(
                pool, current, from_mint, to_mint
            )
            if quote is None or quote.amount_out <= 0:
                return None
            hops.append(
                Hop(
                    from_asset=get_asset(graph, from_mint),
                    to_asset=get_asset(graph, to_mint),
                    pool=pool,
                    direction=pool.direction(from_mint, to_mint),
                    amount_in=current,
                    amount_out=quote.amount_out,
                    fee=quote.fee,
                    price_impact=quote.price_impact,
                )
            )
            current = quote.amount_out

        gas_units = self.gas.gas_units_per_hop * len(hops)
        gas_cost = int(gas_units * self.gas.gas_cost_per_unit)
        profit_amount = current - capital
        net_profit = profit_amount - gas_cost
        confidence = self.cycle_confidence(len(hops), profit_amount)

        route = Route(
            hops=tuple(hops),
            amount_in=capital,
            expected_output=current,
            price_impact=sum(hop.price_impact for hop in hops),
            total_fees=sum(hop.fee_pct for hop in hops),
            confidence=confidence,
        )
        return ArbitrageOpportunity(
            route=route,
            profit_bps=net_profit / capital * BPS,
            profit_amount=profit_amount,
            capital_required=capital,
            confidence=confidence,
            gas_estimate=gas_units,
            net_profit=net_profit,
            detected_at=self._time.current_timestamp(),
        )

    # ------------------------------------------------------------------
    # Scan + Filter
    # ------------------------------------------------------------------

    def find_triangular_arbitrage(
        self,
        start: str,
        min_profit_bps: Optional[float] = None,
        max_hops: Optional[int] = None,
        capital: Optional[int] = None,
    ) -> List[ArbitrageOpportunity]:
        """
        Profitable cycles starting and ending at ``start``.

        Returns:
            Opportunities whose net profit clears ``min_profit_bps``, most
            profitable first
        """
        graph = self._graph()
        min_profit_bps = (
            self.config.min_profit_bps if min_profit_bps is None else min_profit_bps
        )
        max_hops = self.config.max_hops if max_hops is None else max_hops
        capital = self.config.capital if capital is None else capital

        if not graph.has_node(start):
            logger.debug("Start asset %s not in graph", start)
            return []
        if capital <= 0:
            logger.debug("No capital to simulate cycles from %s with", start)
            return []

        prefilter = self.config.use_log_price_prefilter
        if prefilter and not has_arbitrage_cycle(graph, start):
            logger.debug("No spot-price arbitrage cycle reachable from %s", start)
            return []

        opportunities = []
        cycles = find_cycles(graph, start, max_hops)
        for cycle in cycles:
            opportunity = self.evaluate_cycle(cycle, capital)
            if opportunity is not None and opportunity.profit_bps >= min_profit_bps:
                opportunities.append(opportunity)

        opportunities.sort(key=lambda o: o.profit_bps, reverse=True)
        logger.debug(
            "Evaluated %d cycles from %s, %d profitable",
            len(cycles),
            start,
            len(opportunities),
        )
        return opportunities

    def _scan(
        self,
        start_assets: Iterable[str],
        min_profit_bps: Optional[float],
        max_hops: Optional[int],
    ) -> Tuple[List[ArbitrageOpportunity], List[ArbitrageOpportunity]]:
        started = time.perf_counter()
        found: List[ArbitrageOpportunity] = []
        changed: List[ArbitrageOpportunity] = []

        for start in start_assets:
            for opportunity in self.find_triangular_arbitrage(
                start, min_profit_bps, max_hops
            ):
                found.append(opportunity)
                if self.opportunity_cache.offer(opportunity):
                    changed.append(opportunity)
                if self.metrics:
                    self.metrics.record_opportunity(
                        "triangular", opportunity.profit_bps
                    )

        found.sort(key=lambda o: o.profit_bps, reverse=True)
        changed.sort(key=lambda o: o.profit_bps, reverse=True)
        if self.metrics:
            self.metrics.record_scan(time.perf_counter() - started)
        if found:
            logger.info(
                "Scan found %d opportunities (%d new or improved)",
                len(found),
                len(changed),
            )
        return found, changed

    def scan(
        self,
        start_assets: Iterable[str],
        min_profit_bps: Optional[float] = None,
        max_hops: Optional[int] = None,
    ) -> List[ArbitrageOpportunity]:
        """All opportunities across ``start_assets``, most profitable first."""
        found, _ = self._scan(start_assets, min_profit_bps, max_hops)
        return found

    def scan_for_updates(
        self,
        start_assets: Iterable[str],
        min_profit_bps: Optional[float] = None,
        max_hops: Optional[int] = None,
    ) -> List[ArbitrageOpportunity]:
        """Only opportunities that are new or beat the cached entry for their cycle."""
        _, changed = self._scan(start_assets, min_profit_bps, max_hops)
        return changed

    def cached_opportunities(self) -> Dict[str, ArbitrageOpportunity]:
        """Snapshot of the opportunity cache keyed by asset cycle."""
        return self.opportunity_cache.snapshot()

    # ------------------------------------------------------------------
    # Cross-pool
    # ------------------------------------------------------------------

    def find_cross_pool_arbitrage(
        self, asset_a: str, asset_b: str, min_spread_bps: Optional[float] = None
    ) -> List[CrossPoolArbitrage]:
        """
        Price discrepancies for one pair across every two pools serving it.

        Prices are ``asset_b`` per ``asset_a``; the cheaper pool is the buy
        side. Volume is capped at 1% of the thinner pool's liquidity.
        """
        graph = self._graph()
        min_spread_bps = (
            self.config.min_spread_bps if min_spread_bps is None else min_spread_bps
        )
        token_a = get_asset(graph, asset_a)
        token_b = get_asset(graph, asset_b)
        pools = edge_pools(graph, asset_a, asset_b)
        if token_a is None or token_b is None or len(pools) < 2:
            return []

        prices = []
        for pool in pools:
            price = self.price_calculator.get_price(pool, asset_a, asset_b)
            if price is not None and price > 0:
                prices.append((pool, price))

        results = []
        for i in range(len(prices)):
            for j in range(i + 1, len(prices)):
                (pool_1, price_1), (pool_2, price_2) = prices[i], prices[j]
                spread_bps = abs(price_1 - price_2) / min(price_1, price_2) * BPS
                if spread_bps < min_spread_bps or spread_bps == 0:
                    continue

                if price_1 <= price_2:
                    buy, sell = prices[i], prices[j]
                else:
                    buy, sell = prices[j], prices[i]
                (buy_pool, buy_price), (sell_pool, sell_price) = buy, sell

                thinner = min(pool_1.liquidity, pool_2.liquidity)
                volume = thinner // CROSS_POOL_VOLUME_DIVISOR
                opportunity = CrossPoolArbitrage(
                    asset_a=token_a,
                    asset_b=token_b,
                    buy_pool=buy_pool.address,
                    sell_pool=sell_pool.address,
                    spread_bps=spread_bps,
                    profit=int(volume * (sell_price - buy_price)),
                    volume=volume,
                    net_spread_bps=find_arbitrage_spread(
                        buy_price, sell_price, buy_pool.fee_bps, sell_pool.fee_bps
                    ),
                )
                results.append(opportunity)
                if self.metrics:
                    self.metrics.record_opportunity("cross_pool", spread_bps)

        results.sort(key=lambda o: o.spread_bps, reverse=True)
        return results

    def scan_cross_pool(
        self, min_spread_bps: Optional[float] = None
    ) -> List[CrossPoolArbitrage]:
        """Cross-pool spreads for every pair served by two or more pools."""
        graph = self._graph()
        pairs: Dict[Tuple[str, str], set] = {}
        for _, _, key, data in graph.edges(keys=True, data=True):
            pool = data["pool"]
            pairs.setdefault(pool.pair_key, set()).add(key)

        results = []
        for (mint_a, mint_b), addresses in pairs.items():
            if len(addresses) >= 2:
                results.extend(
                    self.find_cross_pool_arbitrage(mint_a, mint_b, min_spread_bps)
                )

        results.sort(key=lambda o: o.spread_bps, reverse=True)
        return results

    def get_statistics(self):
        graph = self.graph
        return {
            "assets": graph.number_of_nodes() if graph is not None else 0,
            "edges": graph.number_of_edges() if graph is not None else 0,
            "cached_opportunities": len(self.opportunity_cache),
            "min_profit_fraction": basis_points_to_decimal(self.config.min_profit_bps),
        }
