"""
Configuration loading and normalization for the routing engine.

YAML is validated against ``config_schema.EngineConfig`` and then frozen
into plain dataclasses, so runtime components never see a mutable config.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from .config_schema import EngineConfig, validate_engine_config
from .exceptions import ConfigurationError


@dataclass(frozen=True)
class RoutingConfig:
    """Normalized routing configuration."""

    max_hops: int = 3
    max_routes: int = 3
    strategy: str = "BALANCED"
    max_price_impact: float = 10.0
    min_liquidity: int = 0
    enable_split: bool = True
    split_threshold: int = 0
    route_cache_ttl_sec: float = 10.0
    dynamic_adjustment: bool = False
    preferred_pools: Tuple[str, ...] = ()
    max_route_failures: int = 5
    max_pool_failures: int = 10


@dataclass(frozen=True)
class PricingConfig:
    """Normalized pricing configuration."""

    price_cache_ttl_sec: float = 5.0
    default_slippage_bps: int = 50
    snapshot_ttl_sec: float = 30.0


@dataclass(frozen=True)
class GasConfig:
    """Normalized gas configuration."""

    gas_units_per_hop: int = 200000
    gas_cost_per_unit: float = 5.0
    base_units: int = 5000
    priority_fee: int = 10000
    gas_price: float = 0.0


@dataclass(frozen=True)
class ArbitrageConfig:
    """Normalized arbitrage configuration."""

    min_profit_bps: float = 50.0
    max_hops: int = 4
    capital: int = 1_000_000_000
    min_profit_amount: int = 100_000
    opportunity_ttl_sec: float = 60.0
    use_log_price_prefilter: bool = False
    min_spread_bps: float = 10.0


@dataclass(frozen=True)
class MonitorConfig:
    """Normalized monitor configuration."""

    interval_sec: float = 5.0
    start_assets: Tuple[str, ...] = ()


@dataclass(frozen=True)
class EngineRuntimeConfig:
    """Immutable runtime configuration object."""

    routing: RoutingConfig = field(default_factory=RoutingConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    gas: GasConfig = field(default_factory=GasConfig)
    arbitrage: ArbitrageConfig = field(default_factory=ArbitrageConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    pool_snapshot: Optional[str] = None


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse YAML configuration file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to load config {config_path}: {e}") from e

    if config_dict is None:
        raise ConfigurationError(f"Empty configuration file: {config_path}")
    if not isinstance(config_dict, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")
    return config_dict


def _freeze(model: EngineConfig) -> EngineRuntimeConfig:
    routing = model.routing.model_dump()
    routing["preferred_pools"] = tuple(routing["preferred_pools"])
    monitor = model.monitor.model_dump()
    monitor["start_assets"] = tuple(monitor["start_assets"])

    return EngineRuntimeConfig(
        routing=RoutingConfig(**routing),
        pricing=PricingConfig(**model.pricing.model_dump()),
        gas=GasConfig(**model.gas.model_dump()),
        arbitrage=ArbitrageConfig(**model.arbitrage.model_dump()),
        monitor=MonitorConfig(**monitor),
        pool_snapshot=model.pool_snapshot,
    )


def engine_config_from_dict(config_dict: Dict[str, Any]) -> EngineRuntimeConfig:
    """
    Validate and freeze a configuration dictionary.

    Raises:
        ConfigurationError: If the configuration fails schema validation
    """
    try:
        model = validate_engine_config(config_dict)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed: {e}",
            {"errors": e.errors(include_url=False)},
        ) from e
    return _freeze(model)


def load_engine_config(config_path: Union[str, Path]) -> EngineRuntimeConfig:
    """
    Load and normalize an engine configuration file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Normalized and frozen engine configuration

    Raises:
        ConfigurationError: If the file cannot be loaded or is invalid
    """
    config_dict = load_yaml_config(config_path)
    config = engine_config_from_dict(config_dict)

    # Snapshot paths are relative to the config file
    if config.pool_snapshot and not Path(config.pool_snapshot).is_absolute():
        snapshot = str(Path(config_path).parent / config.pool_snapshot)
        config = replace(config, pool_snapshot=snapshot)
    return config


def get_default_config() -> EngineRuntimeConfig:
    """Get a default configuration for testing or fallback purposes."""
    return EngineRuntimeConfig()
