"""Tests for route comparison and reporting."""

import pytest

from conftest import BONK, SOL, USDC, make_pool, make_route
from swap_routing.analysis import (
    analyze_route_stability,
    analyze_routes,
    compare_routes,
    find_optimal_trade_size,
    format_opportunity,
    format_route_report,
    measure_route_stability,
    price_impact_curve,
    recommend_slippage,
    route_distribution,
)
from swap_routing.arbitrage import ArbitrageDetector
from swap_routing.graph import build_graph
from swap_routing.provider import InMemoryPoolProvider
from swap_routing.router import MultiHopRouter


@pytest.fixture
def router(triangle_pools, time_provider):
    graph = build_graph(None, triangle_pools)
    return MultiHopRouter(graph, time_provider=time_provider)


class TestCompareRoutes:
    def test_output_decides_first(self):
        comparison = compare_routes(
            make_route(expected_output=1100), make_route(expected_output=1000)
        )
        assert comparison.output_difference == 100
        assert comparison.output_difference_pct == pytest.approx(10.0)
        assert comparison.recommendation == "Route 1 provides 10.00% better output"

    def test_second_route_better_output(self):
        comparison = compare_routes(
            make_route(expected_output=1000), make_route(expected_output=1100)
        )
        assert comparison.recommendation.startswith("Route 2 provides")

    def test_impact_decides_when_outputs_match(self):
        comparison = compare_routes(
            make_route(price_impact=2.0), make_route(price_impact=0.0)
        )
        assert comparison.recommendation == (
            "Route 2 has significantly lower price impact"
        )

    def test_fees_decide_last(self):
        comparison = compare_routes(
            make_route(total_fees=0.3), make_route(total_fees=0.5)
        )
        assert comparison.recommendation == "Route 1 has lower fees"

    def test_similar_routes(self):
        comparison = compare_routes(make_route(), make_route())
        assert "similar" in comparison.recommendation


@pytest.mark.parametrize(
    "kwargs,expected",
    [
        ({"price_impact": 1.0, "hops": 2}, 1.7),
        ({"price_impact": 1.0, "hops": 2, "confidence": 50.0}, 2.2),
        ({"price_impact": 10.0}, 5.0),
    ],
)
def test_recommend_slippage(kwargs, expected):
    assert recommend_slippage(make_route(**kwargs)) == pytest.approx(expected)


def test_route_distribution():
    routes = [make_route(hops=h) for h in (1, 2, 4, 5)]
    assert route_distribution(routes) == {
        "1_hop": 1,
        "2_hop": 1,
        "3_hop": 0,
        "4_plus_hop": 2,
    }


def test_price_impact_curve_grows_with_size(router):
    points = price_impact_curve(router, USDC.mint, BONK.mint, [1000, 10000, 100000])

    assert [p.amount for p in points] == [1000, 10000, 100000]
    impacts = [p.price_impact for p in points]
    assert impacts == sorted(impacts)


def test_price_impact_curve_skips_unroutable(router):
    assert price_impact_curve(router, USDC.mint, "missing", [1000]) == []


def test_optimal_trade_size_prefers_small_trades(router):
    result = find_optimal_trade_size(
        router, USDC.mint, BONK.mint, 1000, 101000, steps=4
    )

    assert result.optimal_amount == 1000
    assert result.efficiency > 0.9


def test_optimal_trade_size_invalid_bounds(router):
    assert find_optimal_trade_size(router, USDC.mint, BONK.mint, 10, 5) is None
    assert find_optimal_trade_size(router, USDC.mint, BONK.mint, 1, 5, steps=0) is None


def test_analyze_routes(router):
    analysis = analyze_routes(router, USDC.mint, BONK.mint, 10000)

    assert analysis.total_routes == 2
    assert analysis.best_route.hop_count == 1
    assert analysis.worst_route.hop_count == 2
    assert analysis.distribution["1_hop"] == 1
    assert analysis.distribution["2_hop"] == 1

    report = format_route_report(analysis)
    assert "Total Routes Found: 2" in report
    assert "Path: USDC -> BONK" in report


def test_analyze_routes_without_paths(router):
    assert analyze_routes(router, USDC.mint, "missing", 10000) is None


def test_format_opportunity(profitable_pools, time_provider):
    detector = ArbitrageDetector(
        InMemoryPoolProvider(profitable_pools, time_provider=time_provider),
        time_provider=time_provider,
    )
    (opportunity,) = detector.find_triangular_arbitrage(USDC.mint)

    line = format_opportunity(opportunity)
    assert line.startswith("USDC -> SOL -> BONK -> USDC | +")
    assert line.endswith("| conf 100")


class TestRouteStability:
    def test_unchanged_quotes_are_stable(self):
        route = make_route(expected_output=1000)
        stability = measure_route_stability(route, [route, route, route])

        assert stability.stable
        assert stability.price_variation == 0.0
        assert stability.liquidity_variation == 0.0
        assert stability.samples == 3

    def test_spread_quotes_are_unstable(self):
        route = make_route(expected_output=1000)
        samples = [
            make_route(expected_output=1000, liquidity=1_000_000),
            make_route(expected_output=900, liquidity=500_000),
            make_route(expected_output=1100, liquidity=1_500_000),
        ]

        stability = measure_route_stability(route, samples)

        assert not stability.stable
        assert stability.price_variation == pytest.approx(8.165, abs=1e-3)
        assert stability.liquidity_variation == pytest.approx(40.825, abs=1e-3)

    def test_failed_requotes_are_left_out(self):
        route = make_route(expected_output=1000)

        assert measure_route_stability(route, [None, route]).samples == 1
        stability = measure_route_stability(route, [None, None])
        assert not stability.stable
        assert stability.price_variation == 100.0
        assert stability.liquidity_variation == 100.0
        assert stability.samples == 0


@pytest.mark.asyncio
async def test_analyze_route_stability_requotes_current_graph(router):
    route = router.calculate_route([USDC.mint, BONK.mint], 10000)
    deeper = [
        make_pool("usdc-sol", USDC, SOL),
        make_pool("sol-bonk", SOL, BONK),
        make_pool("bonk-usdc", BONK, USDC, liquidity=4_000_000),
    ]
    calls = []

    def before_sample():
        calls.append(1)
        if len(calls) == 2:
            router.set_graph(build_graph(None, deeper))

    stability = await analyze_route_stability(
        router, route, intervals=3, delay_sec=0, before_sample=before_sample
    )

    assert len(calls) == 3
    assert stability.samples == 3
    assert stability.stable
    assert stability.price_variation > 0
    assert stability.liquidity_variation == pytest.approx(47.14, abs=0.01)


@pytest.mark.asyncio
async def test_analyze_route_stability_on_unchanged_graph(router):
    route = router.calculate_route([USDC.mint, SOL.mint, BONK.mint], 10000)

    stability = await analyze_route_stability(router, route, intervals=2, delay_sec=0)

    assert stability.stable
    assert stability.price_variation == 0.0
    assert stability.samples == 2
