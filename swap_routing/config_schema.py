"""
Configuration schema validation using Pydantic
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

RoutingStrategyName = Literal["MIN_IMPACT", "MIN_FEES", "MAX_OUTPUT", "BALANCED"]


class RoutingSection(BaseModel):
    """Route search and ranking"""

    max_hops: int = Field(ge=1, le=10, default=3)
    max_routes: int = Field(ge=1, le=20, default=3)
    strategy: RoutingStrategyName = "BALANCED"
    max_price_impact: float = Field(
        ge=0, le=100, default=10.0, description="Maximum route price impact (%)"
    )
    min_liquidity: int = Field(ge=0, default=0)
    enable_split: bool = True
    split_threshold: int = Field(
        ge=0, default=0, description="Only split trades at least this large"
    )
    route_cache_ttl_sec: float = Field(ge=0, le=3600, default=10.0)
    dynamic_adjustment: bool = False
    preferred_pools: List[str] = Field(default_factory=list)
    max_route_failures: int = Field(
        ge=0, default=5, description="Avoid a pair leg after more failures than this"
    )
    max_pool_failures: int = Field(
        ge=0, default=10, description="Avoid a pool after more failures than this"
    )

    model_config = {"extra": "forbid"}


class PricingSection(BaseModel):
    """Price calculator settings"""

    price_cache_ttl_sec: float = Field(ge=0, le=300, default=5.0)
    default_slippage_bps: int = Field(ge=0, le=10000, default=50)
    snapshot_ttl_sec: float = Field(
        gt=0, default=30.0, description="Validity window of a pool snapshot"
    )

    model_config = {"extra": "forbid"}


class GasSection(BaseModel):
    """Compute unit accounting"""

    gas_units_per_hop: int = Field(ge=0, default=200000)
    gas_cost_per_unit: float = Field(ge=0, default=5.0)
    base_units: int = Field(ge=0, default=5000)
    priority_fee: int = Field(ge=0, default=10000)
    gas_price: float = Field(
        ge=0, default=0.0, description="Gas price used by dynamic adjustment"
    )

    model_config = {"extra": "forbid"}


class ArbitrageSection(BaseModel):
    """Triangular and cross-pool arbitrage search"""

    min_profit_bps: float = Field(default=50.0)
    max_hops: int = Field(ge=3, le=6, default=4)
    capital: int = Field(gt=0, default=1_000_000_000)
    min_profit_amount: int = Field(
        ge=0, default=100_000, description="Below this, confidence is reduced"
    )
    opportunity_ttl_sec: float = Field(ge=0, le=3600, default=60.0)
    use_log_price_prefilter: bool = False
    min_spread_bps: float = Field(ge=0, default=10.0)

    @field_validator("min_profit_bps")
    @classmethod
    def validate_min_profit(cls, v):
        if v <= -1000:
            raise ValueError(
                "min_profit_bps too low - would report guaranteed losses"
            )
        return v

    model_config = {"extra": "forbid"}


class MonitorSection(BaseModel):
    """Continuous arbitrage monitoring"""

    interval_sec: float = Field(gt=0, le=3600, default=5.0)
    start_assets: List[str] = Field(default_factory=list)

    @field_validator("start_assets")
    @classmethod
    def validate_start_assets(cls, v):
        if len(set(v)) != len(v):
            raise ValueError("start_assets contains duplicates")
        return v

    model_config = {"extra": "forbid"}


class EngineConfig(BaseModel):
    """Complete engine configuration"""

    routing: RoutingSection = Field(default_factory=RoutingSection)
    pricing: PricingSection = Field(default_factory=PricingSection)
    gas: GasSection = Field(default_factory=GasSection)
    arbitrage: ArbitrageSection = Field(default_factory=ArbitrageSection)
    monitor: MonitorSection = Field(default_factory=MonitorSection)
    pool_snapshot: Optional[str] = Field(
        default=None, description="YAML pool snapshot to load on startup"
    )

    @model_validator(mode="after")
    def validate_cache_windows(self):
        # A route cached longer than the snapshot it came from can outlive it
        if self.routing.route_cache_ttl_sec > self.pricing.snapshot_ttl_sec:
            raise ValueError(
                "routing.route_cache_ttl_sec must not exceed pricing.snapshot_ttl_sec"
            )
        return self

    model_config = {
        "extra": "forbid",  # Disallow extra fields
    }


def validate_engine_config(config_dict: Dict) -> EngineConfig:
    """
    Validate an engine configuration dictionary

    Raises:
        pydantic.ValidationError: If configuration is invalid
    """
    return EngineConfig(**config_dict)
