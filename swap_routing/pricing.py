"""
Swap economics for a single hop.

``PriceCalculator`` simulates a swap against a constant-product pool and
caches spot prices for a few seconds. The module-level functions are pure
helpers for slippage bounds, gas, APY, impermanent loss and pool splits.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .cache import TTLCache
from .exceptions import InsufficientLiquidityError
from .interfaces import TimeProvider
from .types import Pool, SwapQuote
from .utils import calculate_percentage, get_logger

logger = get_logger(__name__)

BPS_DENOMINATOR = 10000
DEFAULT_PRICE_CACHE_TTL = 5.0

# Compute unit defaults for gas estimation
BASE_GAS_UNITS = 5000
PER_HOP_GAS_UNITS = 200000
DEFAULT_PRIORITY_FEE = 10000


def constant_product_output(
    amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int
) -> SwapQuote:
    """
    Simulate a constant-product swap with the fee taken from the input.

    Raises:
        InsufficientLiquidityError: If either reserve is empty
    """
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidityError(
            "Pool reserve is empty", reserve_in=reserve_in, reserve_out=reserve_out
        )

    fee = amount_in * fee_bps // BPS_DENOMINATOR
    after_fee = amount_in - fee
    amount_out = after_fee * reserve_out // (reserve_in + after_fee)

    pre_price = reserve_out / reserve_in
    post_price = (reserve_out - amount_out) / (reserve_in + amount_in)
    price_impact = abs(post_price - pre_price) / pre_price * 100

    price = amount_out / amount_in if amount_in else 0.0
    return SwapQuote(
        amount_out=amount_out, price_impact=price_impact, fee=fee, price=price
    )


class PriceCalculator:
    """
    Hop simulation with a short-lived spot price cache.

    The cache belongs to this instance. A miss only means the price is
    recomputed from the pool record.
    """

    def __init__(
        self,
        cache_ttl: float = DEFAULT_PRICE_CACHE_TTL,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.cache_ttl = cache_ttl
        self._price_cache: TTLCache[float] = TTLCache(
            cache_ttl, time_provider=time_provider
        )

    def calculate_swap_output(
        self, pool: Pool, amount_in: int, from_asset: str, to_asset: str
    ) -> Optional[SwapQuote]:
        """
        Quote swapping ``amount_in`` of ``from_asset`` through ``pool``.

        Returns:
            SwapQuote, or None if the pair does not match the pool, the
            amount is not positive, or the pool has an empty reserve
        """
        direction = pool.direction(from_asset, to_asset)
        if direction is None:
            logger.debug(
                "Pair %s/%s does not match pool %s", from_asset, to_asset, pool.address
            )
            return None
        if amount_in <= 0:
            return None

        reserve_in, reserve_out = pool.reserves(direction)
        try:
            return constant_product_output(
                amount_in, reserve_in, reserve_out, pool.fee_bps
            )
        except InsufficientLiquidityError:
            logger.debug("Pool %s has an empty reserve", pool.address)
            return None

    def get_price(self, pool: Pool, asset_a: str, asset_b: str) -> Optional[float]:
        """Spot price of ``asset_a`` in units of ``asset_b``, or None."""
        cache_key = (pool.address, asset_a, asset_b)
        cached = self._price_cache.get(cache_key)
        if cached is not None:
            return cached

        direction = pool.direction(asset_a, asset_b)
        if direction is None:
            return None
        reserve_in, reserve_out = pool.reserves(direction)
        if reserve_in <= 0:
            return None

        price = reserve_out / reserve_in
        self._price_cache.set(cache_key, price)
        return price

    def clear_cache(self) -> None:
        self._price_cache.clear()

    def get_statistics(self) -> Dict[str, Any]:
        """Cache size, TTL and hit rate."""
        lookups = self._price_cache.hits + self._price_cache.misses
        return {
            "cached_prices": len(self._price_cache),
            "cache_ttl": self.cache_ttl,
            "cache_hits": self._price_cache.hits,
            "cache_misses": self._price_cache.misses,
            "hit_rate": calculate_percentage(self._price_cache.hits, lookups),
        }


# ----------------------------------------------------------------------------
# Pure helpers
# ----------------------------------------------------------------------------


def minimum_amount_out(expected_amount: int, slippage_bps: int) -> int:
    """Lowest acceptable output under a slippage tolerance."""
    return expected_amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def maximum_amount_in(expected_amount: int, slippage_bps: int) -> int:
    """Highest acceptable input under a slippage tolerance."""
    return expected_amount * (BPS_DENOMINATOR + slippage_bps) // BPS_DENOMINATOR


def estimate_gas_cost(
    hops: int,
    priority_fee: int = DEFAULT_PRIORITY_FEE,
    base_units: int = BASE_GAS_UNITS,
    per_hop_units: int = PER_HOP_GAS_UNITS,
) -> int:
    """``base + per_hop * hops + priority_fee``."""
    return base_units + per_hop_units * hops + priority_fee


def calculate_apy(fees_24h: int, liquidity: int) -> float:
    """
    Annual percentage yield from trailing 24h fees.

    Daily return is compounded over 365 days.
    """
    if liquidity <= 0:
        return 0.0
    daily_return = fees_24h / liquidity
    return ((1 + daily_return) ** 365 - 1) * 100


def calculate_impermanent_loss(
    initial_price_ratio: float, current_price_ratio: float
) -> float:
    """Impermanent loss as an absolute percentage."""
    if initial_price_ratio <= 0 or current_price_ratio <= 0:
        return 0.0
    ratio = current_price_ratio / initial_price_ratio
    loss = 2 * math.sqrt(ratio) / (1 + ratio) - 1
    return abs(loss) * 100


def find_arbitrage_spread(
    buy_price: float, sell_price: float, buy_fee_bps: float, sell_fee_bps: float
) -> Optional[float]:
    """
    Spread in bps between two quotes after both pools' fees.

    Returns:
        The spread if positive, else None
    """
    effective_buy = buy_price * (1 + buy_fee_bps / BPS_DENOMINATOR)
    effective_sell = sell_price * (1 - sell_fee_bps / BPS_DENOMINATOR)
    if effective_buy <= 0:
        return None
    spread = (effective_sell - effective_buy) / effective_buy * BPS_DENOMINATOR
    return spread if spread > 0 else None


def estimate_price_impact(trade_size: int, liquidity: int) -> float:
    """Quadratic impact estimate ``(size / liquidity)^2 * 100``."""
    if liquidity <= 0:
        return 100.0
    ratio = trade_size / liquidity
    return ratio * ratio * 100


@dataclass(frozen=True)
class PoolAllocation:
    """Part of a single-hop trade routed to one pool."""

    pool: Pool
    amount: int
    impact: float


def calculate_pool_split(amount: int, pools: Sequence[Pool]) -> List[PoolAllocation]:
    """
    Split ``amount`` across parallel pools by liquidity share.

    Pools are visited deepest first. Amounts are floored and the last pool
    takes the remainder, so they always sum to ``amount``.
    """
    usable = sorted(
        (pool for pool in pools if pool.liquidity > 0),
        key=lambda pool: pool.liquidity,
        reverse=True,
    )
    if not usable:
        return []

    total_liquidity = sum(pool.liquidity for pool in usable)
    allocations: List[PoolAllocation] = []
    allocated = 0
    for i, pool in enumerate(usable):
        if i == len(usable) - 1:
            share = amount - allocated
        else:
            share = amount * pool.liquidity // total_liquidity
        allocated += share
        allocations.append(
            PoolAllocation(pool, share, estimate_price_impact(share, pool.liquidity))
        )
    return allocations
