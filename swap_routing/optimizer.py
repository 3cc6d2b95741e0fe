"""
Route ranking and capital allocation across candidate routes.

Everything here is a pure transform over already-simulated routes: nothing
re-queries pools or mutates the input list.
"""

import math
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from .types import Route, SplitResult
from .utils import clamp, get_logger

logger = get_logger(__name__)

SPLIT_EPSILON = 1e-3
GAS_UNITS_PER_HOP = 200000
VOLATILITY_THRESHOLD = 0.05


@dataclass(frozen=True)
class OptimizationParams:
    """
    Hard filters and preferences for ``optimize_routes``.

    Attributes:
        max_price_impact: Drop routes with a higher aggregate impact (percent)
        min_output: Drop routes producing less than this
        max_fees: Drop routes whose summed fee percentage is higher
        preferred_pools: Pool addresses that earn a score bonus per hop
        preferred_pool_bonus: Score added per hop through a preferred pool
    """

    max_price_impact: Optional[float] = None
    min_output: Optional[int] = None
    max_fees: Optional[float] = None
    preferred_pools: Tuple[str, ...] = ()
    preferred_pool_bonus: float = 1.0


def composite_score(route: Route) -> float:
    """
    ``log(1 + output) - impact^2 - 10*fees - 5*(hops - 1) + confidence/10``.

    Price impact is penalised quadratically so it dominates for large
    trades; hop count only separates otherwise similar routes. Never
    negative.
    """
    output_score = math.log(route.expected_output + 1)
    impact_penalty = route.price_impact * route.price_impact
    fee_penalty = route.total_fees * 10
    hop_penalty = (route.hop_count - 1) * 5
    confidence_bonus = route.confidence / 10
    score = output_score - impact_penalty - fee_penalty - hop_penalty + confidence_bonus
    return max(0.0, score)


def liquidity_factor(route: Route) -> float:
    """Sigmoid of the thinnest hop's liquidity, in millions (0.5 to 1.5)."""
    x = route.min_liquidity / 1_000_000
    return 2 / (1 + math.exp(-x)) - 0.5


def mev_resistance_score(route: Route) -> float:
    """Higher for fewer, deeper hops with little price impact."""
    score = 100.0
    score -= route.hop_count * 10
    score += math.log10(max(route.avg_liquidity, 1.0))
    score -= route.price_impact * 5
    return score


def _scaled_output(route: Route, amount: int) -> int:
    if route.amount_in <= 0:
        return 0
    return route.expected_output * amount // route.amount_in


class RouteOptimizer:
    """Ranks candidate routes and splits capital across them."""

    def optimize_routes(
        self, routes: Sequence[Route], params: Optional[OptimizationParams] = None
    ) -> List[Route]:
        """Filter by ``params`` and sort by composite score, best first."""
        params = params or OptimizationParams()
        candidates = list(routes)

        if params.max_price_impact is not None:
            limit = params.max_price_impact
            candidates = [r for r in candidates if r.price_impact <= limit]
        if params.min_output is not None:
            floor = params.min_output
            candidates = [r for r in candidates if r.expected_output >= floor]
        if params.max_fees is not None:
            candidates = [r for r in candidates if r.total_fees <= params.max_fees]

        preferred = set(params.preferred_pools)

        def score(route: Route) -> float:
            bonus = sum(1 for address in route.pool_addresses if address in preferred)
            return composite_score(route) + bonus * params.preferred_pool_bonus

        # sorted() is stable, so equal scores keep input order
        ranked = sorted(candidates, key=score, reverse=True)
        logger.debug("Ranked %d of %d routes", len(ranked), len(routes))
        return ranked

    def calculate_optimal_split(
        self, routes: Sequence[Route], total_amount: int
    ) -> List[SplitResult]:
        """
        Allocate ``total_amount`` across ``routes``.

        Weights are proportional to composite score, scaled by an impact
        factor and a liquidity factor, then normalised. The last route
        absorbs the integer remainder so amounts sum to ``total_amount``.
        Falls back to an equal split when every score is zero or the
        weighting cannot be computed.
        """
        if not routes:
            return []
        if len(routes) == 1:
            route = routes[0]
            return [
                SplitResult(
                    route=route,
                    percentage=1.0,
                    amount=total_amount,
                    expected_output=_scaled_output(route, total_amount),
                )
            ]

        try:
            weights = self._split_weights(routes)
        except (ArithmeticError, ValueError) as e:
            logger.warning(f"Split weighting failed, using equal split: {e}")
            return self._equal_split(routes, total_amount)

        if weights is None:
            logger.info("All route scores are zero, using equal split")
            return self._equal_split(routes, total_amount)

        return self._allocate(routes, weights, total_amount)

    def _split_weights(self, routes: Sequence[Route]) -> Optional[List[float]]:
        scores = [composite_score(route) for route in routes]
        total_score = sum(scores)
        if total_score <= 0:
            return None

        weights = []
        for route, score in zip(routes, scores):
            weight = score / total_score
            weight *= 1 / (1 + route.price_impact / 100)
            weight *= liquidity_factor(route)
            weights.append(weight)

        total_weight = sum(weights)
        if not math.isfinite(total_weight) or total_weight <= 0:
            raise ValueError(f"degenerate split weights: {weights}")
        if abs(total_weight - 1) > SPLIT_EPSILON:
            weights = [weight / total_weight for weight in weights]
        return weights

    def _allocate(
        self, routes: Sequence[Route], weights: Sequence[float], total_amount: int
    ) -> List[SplitResult]:
        results = []
        remaining = total_amount
        for i, (route, weight) in enumerate(zip(routes, weights)):
            if i == len(routes) - 1:
                amount = remaining
            else:
                amount = min(int(total_amount * weight), remaining)
            remaining -= amount
            results.append(
                SplitResult(
                    route=route,
                    percentage=weight,
                    amount=amount,
                    expected_output=_scaled_output(route, amount),
                )
            )
        return results

    def _equal_split(
        self, routes: Sequence[Route], total_amount: int
    ) -> List[SplitResult]:
        return self._allocate(routes, [1 / len(routes)] * len(routes), total_amount)

    def optimize_for_mev_resistance(self, routes: Sequence[Route]) -> List[Route]:
        """Re-rank so fewer, deeper, lower-impact routes come first."""
        return sorted(routes, key=mev_resistance_score, reverse=True)

    def dynamic_adjustment(
        self, routes: Sequence[Route], market_volatility: float, gas_price: float
    ) -> List[Route]:
        """
        Adjust routes for market conditions.

        Confidence is scaled by ``1 - volatility`` when volatility exceeds
        5%, and the estimated gas cost relative to output is added to
        ``total_fees``. Returns new Route objects in the input order.
        """
        adjusted = []
        for route in routes:
            confidence = route.confidence
            if market_volatility > VOLATILITY_THRESHOLD:
                confidence = clamp(confidence * (1 - market_volatility), 0.0, 100.0)

            total_fees = route.total_fees
            if route.expected_output > 0:
                gas = route.hop_count * GAS_UNITS_PER_HOP * gas_price
                total_fees += gas / route.expected_output

            adjusted.append(
                replace(route, confidence=confidence, total_fees=total_fees)
            )
        return adjusted
