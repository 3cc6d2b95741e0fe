"""
Core data types for swap routing and arbitrage detection.

Pool records form a closed schema shared by the graph builder and the price
calculator. Routes validate path continuity on construction.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import ValidationError
from .utils import timestamp_to_iso


class SwapDirection(Enum):
    """Which way a hop traverses its pool."""

    A_TO_B = "a_to_b"
    B_TO_A = "b_to_a"


@dataclass(frozen=True)
class Asset:
    """
    A tradable asset.

    Attributes:
        mint: Opaque identifier (e.g. mint address)
        symbol: Display symbol (e.g. "USDC")
        decimals: Decimal precision of raw amounts
    """

    mint: str
    symbol: str
    decimals: int = 9

    def __str__(self) -> str:
        return self.symbol or self.mint[:8]


@dataclass(frozen=True)
class Pool:
    """
    A liquidity pool exchanging two assets.

    Attributes:
        address: Pool identifier
        token_a: First asset of the pair
        token_b: Second asset of the pair
        liquidity: Liquidity measure (sum of both reserves, raw units)
        fee_bps: Swap fee in basis points (30 = 0.30%)
        reserve_a: Optional reserve of token_a; defaults to half the liquidity
        reserve_b: Optional reserve of token_b; defaults to half the liquidity
        volume_24h: Optional trailing 24h volume
        updated_at: Unix timestamp of the snapshot this record came from
    """

    address: str
    token_a: Asset
    token_b: Asset
    liquidity: int
    fee_bps: int
    reserve_a: Optional[int] = None
    reserve_b: Optional[int] = None
    volume_24h: Optional[int] = None
    updated_at: Optional[float] = None

    @property
    def fee_rate(self) -> float:
        """Fee as a decimal (30 bps -> 0.003)."""
        return self.fee_bps / 10000.0

    @property
    def fee_pct(self) -> float:
        """Fee as a percent (30 bps -> 0.30)."""
        return self.fee_bps / 100.0

    @property
    def pair_key(self) -> Tuple[str, str]:
        """Order-independent key for the traded pair."""
        return pair_key(self.token_a.mint, self.token_b.mint)

    def is_well_formed(self) -> bool:
        """Whether the record can back a graph edge."""
        if self.token_a is None or self.token_b is None:
            return False
        if not self.token_a.mint or not self.token_b.mint:
            return False
        if self.token_a.mint == self.token_b.mint:
            return False
        if self.liquidity is None or self.liquidity <= 0:
            return False
        return self.fee_bps is not None and 0 <= self.fee_bps < 10000

    def has_asset(self, mint: str) -> bool:
        return mint in (self.token_a.mint, self.token_b.mint)

    def direction(self, from_mint: str, to_mint: str) -> Optional[SwapDirection]:
        """Return the swap direction for the pair, or None if it does not match."""
        if self.token_a.mint == from_mint and self.token_b.mint == to_mint:
            return SwapDirection.A_TO_B
        if self.token_b.mint == from_mint and self.token_a.mint == to_mint:
            return SwapDirection.B_TO_A
        return None

    def split_reserves(self) -> Tuple[int, int]:
        """(reserve_a, reserve_b), falling back to an even liquidity split."""
        half = self.liquidity // 2
        reserve_a = self.reserve_a if self.reserve_a is not None else half
        reserve_b = self.reserve_b if self.reserve_b is not None else half
        return reserve_a, reserve_b

    def reserves(self, direction: SwapDirection) -> Tuple[int, int]:
        """(reserve_in, reserve_out) for the given direction."""
        reserve_a, reserve_b = self.split_reserves()
        if direction is SwapDirection.A_TO_B:
            return reserve_a, reserve_b
        return reserve_b, reserve_a


def pair_key(mint_a: str, mint_b: str) -> Tuple[str, str]:
    """Sorted pair key so both directions share one index entry."""
    return (mint_a, mint_b) if mint_a <= mint_b else (mint_b, mint_a)


@dataclass(frozen=True)
class SwapQuote:
    """Result of simulating one swap against a pool."""

    amount_out: int
    price_impact: float  # percent, always >= 0
    fee: int  # fee charged, in input units
    price: float  # effective output per input unit


@dataclass(frozen=True)
class Hop:
    """One traversal of a single pool within a route."""

    from_asset: Asset
    to_asset: Asset
    pool: Pool
    direction: SwapDirection
    amount_in: int
    amount_out: int
    fee: int
    price_impact: float

    @property
    def pool_address(self) -> str:
        return self.pool.address

    @property
    def liquidity(self) -> int:
        return self.pool.liquidity

    @property
    def fee_pct(self) -> float:
        return self.pool.fee_pct


@dataclass(frozen=True)
class Route:
    """
    An ordered sequence of hops from one asset to another.

    Attributes:
        hops: Hops in execution order (at least one)
        amount_in: Input amount the route was quoted for
        expected_output: Output of the final hop
        price_impact: Sum of per-hop price impacts (percent)
        total_fees: Sum of per-hop fee percentages
        confidence: Advisory reliability estimate (0-100)
        execution_time_ms: Rough execution time estimate
    """

    hops: Tuple[Hop, ...]
    amount_in: int
    expected_output: int
    price_impact: float
    total_fees: float
    confidence: float
    execution_time_ms: int = 0

    def __post_init__(self):
        if len(self.hops) < 1:
            raise ValidationError("Route must contain at least one hop")
        for i in range(len(self.hops) - 1):
            if self.hops[i].to_asset.mint != self.hops[i + 1].from_asset.mint:
                raise ValidationError(
                    f"Route is discontinuous at hop {i}",
                    {
                        "to_asset": self.hops[i].to_asset.mint,
                        "next_from_asset": self.hops[i + 1].from_asset.mint,
                    },
                )

    @property
    def hop_count(self) -> int:
        return len(self.hops)

    @property
    def from_asset(self) -> Asset:
        return self.hops[0].from_asset

    @property
    def to_asset(self) -> Asset:
        return self.hops[-1].to_asset

    @property
    def path(self) -> List[Asset]:
        return [self.hops[0].from_asset] + [hop.to_asset for hop in self.hops]

    @property
    def pool_addresses(self) -> List[str]:
        return [hop.pool_address for hop in self.hops]

    @property
    def min_liquidity(self) -> int:
        return min(hop.liquidity for hop in self.hops)

    @property
    def avg_liquidity(self) -> float:
        return sum(hop.liquidity for hop in self.hops) / len(self.hops)

    @property
    def is_cycle(self) -> bool:
        return self.from_asset.mint == self.to_asset.mint

    def describe(self) -> str:
        """Human-readable path, e.g. 'USDC -> SOL -> BONK'."""
        return " -> ".join(str(asset) for asset in self.path)


@dataclass(frozen=True)
class SplitResult:
    """Share of a total input amount allocated to one route."""

    route: Route
    percentage: float
    amount: int
    expected_output: int


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """
    A cyclic route that returns more of the starting asset than it consumed.

    Attributes:
        route: Cyclic route (start asset == end asset)
        profit_bps: Net profit in basis points of capital
        profit_amount: Gross profit before gas, in start asset units
        capital_required: Starting amount the cycle was simulated with
        confidence: Advisory ranking signal (0-100)
        gas_estimate: Total compute/gas units for the cycle
        net_profit: Profit after simulated gas cost
        detected_at: Unix timestamp of the scan that found it
    """

    route: Route
    profit_bps: float
    profit_amount: int
    capital_required: int
    confidence: float
    gas_estimate: int
    net_profit: int
    detected_at: float = 0.0

    @property
    def path(self) -> List[Asset]:
        return self.route.path

    @property
    def cycle_key(self) -> str:
        """Ordered asset cycle, used to deduplicate across scans."""
        return ",".join(asset.mint for asset in self.route.path)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": [asset.symbol for asset in self.path],
            "pools": self.route.pool_addresses,
            "profit_bps": self.profit_bps,
            "profit_amount": self.profit_amount,
            "capital_required": self.capital_required,
            "confidence": self.confidence,
            "gas_estimate": self.gas_estimate,
            "net_profit": self.net_profit,
            "detected_at": timestamp_to_iso(self.detected_at),
        }


@dataclass(frozen=True)
class CrossPoolArbitrage:
    """Price discrepancy for one pair across two pools."""

    asset_a: Asset
    asset_b: Asset
    buy_pool: str
    sell_pool: str
    spread_bps: float
    profit: int
    volume: int
    net_spread_bps: Optional[float] = None


@dataclass
class GraphMetrics:
    """Aggregate structure of a pool graph."""

    node_count: int
    edge_count: int
    density: float
    avg_degree: float
    is_connected: bool
    diameter: float
    component_count: int = 0
