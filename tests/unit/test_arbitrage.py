"""Tests for triangular and cross-pool arbitrage detection."""

import asyncio

import pytest
from prometheus_client import CollectorRegistry

from conftest import BONK, SOL, USDC, make_pool
from swap_routing.arbitrage import ArbitrageDetector
from swap_routing.config_loader import ArbitrageConfig, GasConfig
from swap_routing.exceptions import NetworkError, PoolDataError
from swap_routing.metrics import RoutingMetrics
from swap_routing.provider import InMemoryPoolProvider


def make_detector(pools, time_provider, **config):
    provider = InMemoryPoolProvider(pools, time_provider=time_provider)
    return ArbitrageDetector(
        provider,
        config=ArbitrageConfig(**config),
        time_provider=time_provider,
    )


class TestTriangularArbitrage:
    def test_finds_mispriced_cycle(self, profitable_pools, time_provider):
        detector = make_detector(profitable_pools, time_provider)

        opportunities = detector.find_triangular_arbitrage(USDC.mint)

        assert len(opportunities) == 1
        opportunity = opportunities[0]
        assert opportunity.path == [USDC, SOL, BONK, USDC]
        assert opportunity.capital_required == 1_000_000_000
        assert opportunity.gas_estimate == 600000
        assert opportunity.net_profit == opportunity.profit_amount - 3_000_000
        assert opportunity.profit_bps == pytest.approx(
            opportunity.net_profit / 1_000_000_000 * 10000
        )
        assert opportunity.profit_bps > 50
        assert opportunity.confidence == 100.0
        assert opportunity.detected_at == time_provider.current_timestamp()

    def test_fair_triangle_is_filtered(self, triangle_pools, time_provider):
        detector = make_detector(triangle_pools, time_provider)
        assert detector.find_triangular_arbitrage(USDC.mint, capital=10000) == []

    def test_negative_threshold_reports_losing_cycles(
        self, triangle_pools, time_provider
    ):
        detector = make_detector(triangle_pools, time_provider)
        detector.gas = GasConfig(gas_units_per_hop=0)

        opportunities = detector.find_triangular_arbitrage(
            USDC.mint, min_profit_bps=-500, capital=10000
        )
        assert len(opportunities) == 2
        assert all(o.profit_amount < 0 for o in opportunities)
        assert opportunities[0].profit_bps >= opportunities[1].profit_bps

    def test_unknown_start(self, profitable_pools, time_provider):
        detector = make_detector(profitable_pools, time_provider)
        assert detector.find_triangular_arbitrage("missing") == []

    def test_explicit_zero_capital_is_not_replaced_by_default(
        self, profitable_pools, time_provider
    ):
        detector = make_detector(profitable_pools, time_provider)
        assert detector.find_triangular_arbitrage(USDC.mint, capital=0) == []

    def test_explicit_zero_max_hops_finds_nothing(
        self, profitable_pools, time_provider
    ):
        detector = make_detector(profitable_pools, time_provider)
        assert detector.find_triangular_arbitrage(USDC.mint, max_hops=0) == []
        assert len(detector.find_triangular_arbitrage(USDC.mint, max_hops=3)) == 1

    def test_log_price_prefilter_agrees(
        self, profitable_pools, triangle_pools, time_provider
    ):
        profitable = make_detector(
            profitable_pools, time_provider, use_log_price_prefilter=True
        )
        fair = make_detector(
            triangle_pools, time_provider, use_log_price_prefilter=True
        )

        assert len(profitable.find_triangular_arbitrage(USDC.mint)) == 1
        assert fair.find_triangular_arbitrage(USDC.mint, min_profit_bps=-500) == []

    def test_longer_cycles_lose_confidence(self, time_provider):
        detector = make_detector([], time_provider)
        assert detector.cycle_confidence(3, 10**9) == 100.0
        assert detector.cycle_confidence(4, 10**9) == 90.0
        assert detector.cycle_confidence(3, 10) == 80.0

    def test_evaluate_cycle_missing_leg(self, profitable_pools, time_provider):
        detector = make_detector(profitable_pools[:2], time_provider)
        cycle = [USDC.mint, SOL.mint, BONK.mint, USDC.mint]
        assert detector.evaluate_cycle(cycle, 100) is None


class TestScan:
    def test_scan_across_start_assets(self, profitable_pools, time_provider):
        detector = make_detector(profitable_pools, time_provider)
        opportunities = detector.scan([USDC.mint, SOL.mint])

        keys = {o.cycle_key for o in opportunities}
        assert len(keys) == 2
        assert opportunities == sorted(
            opportunities, key=lambda o: o.profit_bps, reverse=True
        )

    def test_scan_for_updates_deduplicates(self, profitable_pools, time_provider):
        detector = make_detector(profitable_pools, time_provider)

        assert len(detector.scan_for_updates([USDC.mint])) == 1
        assert detector.scan_for_updates([USDC.mint]) == []
        assert len(detector.cached_opportunities()) == 1

        time_provider.advance_time(61)
        assert len(detector.scan_for_updates([USDC.mint])) == 1

    def test_scan_records_metrics(self, profitable_pools, time_provider):
        registry = CollectorRegistry()
        detector = ArbitrageDetector(
            InMemoryPoolProvider(profitable_pools, time_provider=time_provider),
            time_provider=time_provider,
            metrics=RoutingMetrics(registry),
        )
        detector.scan([USDC.mint])

        assert registry.get_sample_value("swap_routing_arbitrage_scans_total") == 1
        assert (
            registry.get_sample_value(
                "swap_routing_opportunities_found_total", {"kind": "triangular"}
            )
            == 1
        )
        assert registry.get_sample_value("swap_routing_graph_assets") == 3


@pytest.fixture
def two_price_pools():
    """Same USDC/SOL pair quoted at 100 and 102 SOL per USDC, no fees."""
    return [
        make_pool(
            "cheap",
            USDC,
            SOL,
            liquidity=101_000_000,
            fee_bps=0,
            reserve_a=1_000_000,
            reserve_b=100_000_000,
        ),
        make_pool(
            "rich",
            USDC,
            SOL,
            liquidity=103_000_000,
            fee_bps=0,
            reserve_a=1_000_000,
            reserve_b=102_000_000,
        ),
    ]


class TestCrossPoolArbitrage:
    def test_spread_and_sides(self, two_price_pools, time_provider):
        detector = make_detector(two_price_pools, time_provider)

        (opportunity,) = detector.find_cross_pool_arbitrage(USDC.mint, SOL.mint)
        assert opportunity.spread_bps == pytest.approx(200.0)
        assert opportunity.buy_pool == "cheap"
        assert opportunity.sell_pool == "rich"
        assert opportunity.volume == 1_010_000
        assert opportunity.profit > 0
        assert opportunity.net_spread_bps == pytest.approx(200.0)

    def test_min_spread_filters(self, two_price_pools, time_provider):
        detector = make_detector(two_price_pools, time_provider)
        assert detector.find_cross_pool_arbitrage(USDC.mint, SOL.mint, 500) == []

    def test_identical_prices(self, time_provider):
        pools = [make_pool("a", USDC, SOL), make_pool("b", USDC, SOL)]
        detector = make_detector(pools, time_provider)
        assert detector.find_cross_pool_arbitrage(USDC.mint, SOL.mint, 0) == []

    def test_single_pool_pair(self, triangle_pools, time_provider):
        detector = make_detector(triangle_pools, time_provider)
        assert detector.find_cross_pool_arbitrage(USDC.mint, SOL.mint) == []

    def test_scan_cross_pool(self, two_price_pools, triangle_pools, time_provider):
        detector = make_detector(two_price_pools + triangle_pools[1:], time_provider)
        results = detector.scan_cross_pool()

        assert len(results) == 1
        assert results[0].asset_a in (USDC, SOL)


class FailingProvider:
    def get_all_pools(self):
        raise RuntimeError("rpc down")

    def get_pools_for_pair(self, asset_a, asset_b):
        return []


class AsyncProvider:
    def __init__(self, pools, delay=0.0):
        self.pools = pools
        self.delay = delay

    async def get_all_pools(self):
        await asyncio.sleep(self.delay)
        return self.pools

    def get_pools_for_pair(self, asset_a, asset_b):
        return []


class TestInitialization:
    def test_lazy_initialize(self, profitable_pools, time_provider):
        detector = make_detector(profitable_pools, time_provider)
        assert detector.graph is None

        detector.find_triangular_arbitrage(USDC.mint)
        assert detector.get_statistics()["assets"] == 3

    def test_provider_failure(self, time_provider):
        detector = ArbitrageDetector(FailingProvider(), time_provider=time_provider)
        with pytest.raises(PoolDataError) as exc_info:
            detector.initialize()
        assert exc_info.value.source == "provider"

    def test_missing_provider(self, time_provider):
        detector = ArbitrageDetector(time_provider=time_provider)
        with pytest.raises(PoolDataError):
            detector.initialize()

    def test_sync_initialize_rejects_async_provider(self, triangle_pools):
        detector = ArbitrageDetector(AsyncProvider(triangle_pools))
        with pytest.raises(PoolDataError, match="ainitialize"):
            detector.initialize()

    def test_set_pools_rebuilds(self, triangle_pools, time_provider):
        detector = make_detector([], time_provider)
        graph = detector.set_pools(triangle_pools)
        assert graph.number_of_nodes() == 3


@pytest.mark.asyncio
async def test_ainitialize_with_async_provider(triangle_pools):
    detector = ArbitrageDetector(AsyncProvider(triangle_pools))
    graph = await detector.ainitialize(timeout=1.0)
    assert graph.number_of_edges() == 6


@pytest.mark.asyncio
async def test_ainitialize_with_sync_provider(triangle_pools):
    detector = ArbitrageDetector(InMemoryPoolProvider(triangle_pools))
    graph = await detector.ainitialize()
    assert graph.number_of_nodes() == 3


@pytest.mark.asyncio
async def test_ainitialize_timeout(triangle_pools):
    detector = ArbitrageDetector(AsyncProvider(triangle_pools, delay=1.0))
    with pytest.raises(NetworkError) as exc_info:
        await detector.ainitialize(timeout=0.01)
    assert exc_info.value.timeout == 0.01


@pytest.mark.asyncio
async def test_ainitialize_provider_failure():
    detector = ArbitrageDetector(FailingProvider())
    with pytest.raises(PoolDataError):
        await detector.ainitialize(timeout=1.0)
