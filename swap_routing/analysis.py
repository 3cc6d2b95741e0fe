"""
Route comparison and reporting helpers.

These work on routes the router has already simulated; the functions that
take a router only re-run its public queries.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from .router import MultiHopRouter, RouteConstraints
from .types import ArbitrageOpportunity, Route
from .utils import calculate_percentage, format_bps, get_logger

logger = get_logger(__name__)

MAX_RECOMMENDED_SLIPPAGE_PCT = 5.0
STABLE_PRICE_VARIATION = 0.02


@dataclass(frozen=True)
class RouteComparison:
    """Side-by-side difference of two routes (first minus second)."""

    route_1: Route
    route_2: Route
    output_difference: int
    output_difference_pct: float
    impact_difference: float
    fee_difference: float
    recommendation: str


@dataclass(frozen=True)
class ImpactPoint:
    amount: int
    price_impact: float
    output: int


@dataclass(frozen=True)
class TradeSizeResult:
    optimal_amount: int
    expected_output: int
    price_impact: float
    efficiency: float


@dataclass(frozen=True)
class RouteAnalysis:
    """Summary of every viable route for one query."""

    total_routes: int
    best_route: Route
    worst_route: Route
    average_fees: float
    average_impact: float
    top_routes: List[Route]
    distribution: Dict[str, int]


@dataclass(frozen=True)
class RouteStability:
    """
    How much a route's quote moved across repeated re-quotes.

    Attributes:
        stable: Output varied by less than 2% (one standard deviation)
        price_variation: Std deviation of output / original output, in percent
        liquidity_variation: Same for the thinnest pool's liquidity
        samples: Re-quotes that succeeded
    """

    stable: bool
    price_variation: float
    liquidity_variation: float
    samples: int


def compare_routes(route_1: Route, route_2: Route) -> RouteComparison:
    """
    Compare two routes and recommend one.

    Output differences above 1% decide first, then impact differences
    above 0.5 points, then fee differences above 0.1 points.
    """
    output_difference = route_1.expected_output - route_2.expected_output
    output_difference_pct = calculate_percentage(
        output_difference, route_2.expected_output
    )
    impact_difference = route_1.price_impact - route_2.price_impact
    fee_difference = route_1.total_fees - route_2.total_fees

    if output_difference_pct > 1:
        recommendation = f"Route 1 provides {output_difference_pct:.2f}% better output"
    elif output_difference_pct < -1:
        better = abs(output_difference_pct)
        recommendation = f"Route 2 provides {better:.2f}% better output"
    elif impact_difference < -0.5:
        recommendation = "Route 1 has significantly lower price impact"
    elif impact_difference > 0.5:
        recommendation = "Route 2 has significantly lower price impact"
    elif fee_difference < -0.1:
        recommendation = "Route 1 has lower fees"
    elif fee_difference > 0.1:
        recommendation = "Route 2 has lower fees"
    else:
        recommendation = "Both routes are similar, choose based on confidence"

    return RouteComparison(
        route_1=route_1,
        route_2=route_2,
        output_difference=output_difference,
        output_difference_pct=output_difference_pct,
        impact_difference=impact_difference,
        fee_difference=fee_difference,
        recommendation=recommendation,
    )


def recommend_slippage(route: Route) -> float:
    """Suggested slippage tolerance in percent, capped at 5%."""
    slippage = route.price_impact * 1.5
    slippage += route.hop_count * 0.1
    if route.confidence < 80:
        slippage += (100 - route.confidence) / 100
    return min(round(slippage, 2), MAX_RECOMMENDED_SLIPPAGE_PCT)


def route_distribution(routes: Sequence[Route]) -> Dict[str, int]:
    """Route counts by hop count."""
    distribution = {"1_hop": 0, "2_hop": 0, "3_hop": 0, "4_plus_hop": 0}
    for route in routes:
        if route.hop_count >= 4:
            distribution["4_plus_hop"] += 1
        else:
            distribution[f"{route.hop_count}_hop"] += 1
    return distribution


def price_impact_curve(
    router: MultiHopRouter,
    from_asset: str,
    to_asset: str,
    amounts: Sequence[int],
    max_hops: int = 3,
) -> List[ImpactPoint]:
    """Best-route impact and output for each amount; unroutable amounts are left out."""
    constraints = RouteConstraints(max_hops=max_hops)
    points = []
    for amount in amounts:
        route = router.find_best_route(from_asset, to_asset, amount, constraints)
        if route is not None:
            points.append(
                ImpactPoint(amount, route.price_impact, route.expected_output)
            )
    return points


def find_optimal_trade_size(
    router: MultiHopRouter,
    from_asset: str,
    to_asset: str,
    min_amount: int,
    max_amount: int,
    steps: int = 10,
    max_hops: int = 3,
) -> Optional[TradeSizeResult]:
    """
    Trade size with the best ``output / (input * (1 + impact/100))``.

    Samples ``steps + 1`` evenly spaced amounts between the bounds.
    """
    if steps < 1 or max_amount < min_amount:
        return None

    constraints = RouteConstraints(max_hops=max_hops)
    step_size = (max_amount - min_amount) // steps
    best: Optional[TradeSizeResult] = None
    for i in range(steps + 1):
        amount = min_amount + step_size * i
        if amount <= 0:
            continue
        route = router.find_best_route(from_asset, to_asset, amount, constraints)
        if route is None:
            continue
        efficiency = route.expected_output / (amount * (1 + route.price_impact / 100))
        if best is None or efficiency > best.efficiency:
            best = TradeSizeResult(
                amount, route.expected_output, route.price_impact, efficiency
            )

    if best is not None:
        logger.info(f"Optimal trade size: {best.optimal_amount}")
    return best


def analyze_routes(
    router: MultiHopRouter,
    from_asset: str,
    to_asset: str,
    amount: int,
    max_hops: int = 3,
    top: int = 5,
) -> Optional[RouteAnalysis]:
    """Simulate every candidate path at ``amount`` and summarise them."""
    routes = []
    for path in router.find_paths(from_asset, to_asset, max_hops):
        route = router.calculate_route(path, amount)
        if route is not None:
            routes.append(route)
    if not routes:
        return None

    by_output = sorted(routes, key=lambda r: r.expected_output, reverse=True)
    return RouteAnalysis(
        total_routes=len(routes),
        best_route=by_output[0],
        worst_route=by_output[-1],
        average_fees=sum(r.total_fees for r in routes) / len(routes),
        average_impact=sum(r.price_impact for r in routes) / len(routes),
        top_routes=by_output[:top],
        distribution=route_distribution(routes),
    )


def _population_sigma(values: Sequence[float]) -> float:
    mean = sum(values) / len(values)
    return (sum((x - mean) ** 2 for x in values) / len(values)) ** 0.5


def measure_route_stability(
    route: Route, samples: Sequence[Optional[Route]]
) -> RouteStability:
    """
    Compare re-quotes of ``route`` against its original quote.

    ``None`` samples are failed re-quotes and are left out. With no
    successful sample the route is reported unstable at 100% variation.
    """
    quotes = [sample for sample in samples if sample is not None]
    if not quotes or route.expected_output <= 0:
        return RouteStability(False, 100.0, 100.0, 0)

    price_sigma = _population_sigma(
        [quote.expected_output / route.expected_output for quote in quotes]
    )
    liquidity_sigma = _population_sigma(
        [quote.min_liquidity / route.min_liquidity for quote in quotes]
    )
    return RouteStability(
        stable=price_sigma < STABLE_PRICE_VARIATION,
        price_variation=price_sigma * 100,
        liquidity_variation=liquidity_sigma * 100,
        samples=len(quotes),
    )


async def analyze_route_stability(
    router: MultiHopRouter,
    route: Route,
    intervals: int = 10,
    delay_sec: float = 1.0,
    before_sample: Optional[Callable[[], object]] = None,
) -> RouteStability:
    """
    Re-quote ``route`` along its path ``intervals`` times.

    Args:
        router: Router whose current graph is quoted against
        route: Route to watch; its input amount is reused
        intervals: Number of re-quotes
        delay_sec: Pause between re-quotes
        before_sample: Called before each re-quote, e.g. to refresh a
            stale snapshot
    """
    path = [asset.mint for asset in route.path]
    samples: List[Optional[Route]] = []
    for i in range(intervals):
        if before_sample is not None:
            before_sample()
        samples.append(router.calculate_route(path, route.amount_in))
        if i < intervals - 1 and delay_sec > 0:
            await asyncio.sleep(delay_sec)

    stability = measure_route_stability(route, samples)
    logger.info(
        f"Route {route.describe()} stability: price variation "
        f"{stability.price_variation:.3f}% over {stability.samples} samples"
    )
    return stability


def format_route_report(analysis: RouteAnalysis) -> str:
    best = analysis.best_route
    lines = [
        "=== Route Analysis Report ===",
        "",
        f"Total Routes Found: {analysis.total_routes}",
        f"Average Fees: {analysis.average_fees:.4f}%",
        f"Average Price Impact: {analysis.average_impact:.4f}%",
        "",
        "=== Route Distribution ===",
        f"1-Hop Routes: {analysis.distribution['1_hop']}",
        f"2-Hop Routes: {analysis.distribution['2_hop']}",
        f"3-Hop Routes: {analysis.distribution['3_hop']}",
        f"4+ Hop Routes: {analysis.distribution['4_plus_hop']}",
        "",
        "=== Best Route ===",
        f"Path: {best.describe()}",
        f"Expected Output: {best.expected_output}",
        f"Price Impact: {best.price_impact:.4f}%",
        f"Total Fees: {best.total_fees:.4f}%",
        "",
        f"=== Top {len(analysis.top_routes)} Routes by Output ===",
    ]
    for i, route in enumerate(analysis.top_routes, 1):
        lines.append(f"{i}. {route.describe()}")
        lines.append(f"   Output: {route.expected_output}")
        lines.append(f"   Impact: {route.price_impact:.4f}%")
    return "\n".join(lines)


def format_opportunity(opportunity: ArbitrageOpportunity) -> str:
    """
    One-line summary of an opportunity.

    e.g. 'USDC -> SOL -> BONK -> USDC | +1.25% | net 125000 | conf 100'
    """
    return (
        f"{opportunity.route.describe()} | {format_bps(opportunity.profit_bps)} "
        f"| net {opportunity.net_profit} | conf {opportunity.confidence:.0f}"
    )
