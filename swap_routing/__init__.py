"""
Multi-hop Swap Routing Engine.

Builds a multigraph of assets and liquidity pools, finds the best way to
convert one asset into another (optionally split across several routes),
and detects triangular and cross-pool arbitrage in the same graph.
"""

PROJECT_NAME = "swap-routing"

from swap_routing.version import __version__, get_version

VERSION = __version__

# Export main components for easier imports
from swap_routing.types import (
    Asset,
    Pool,
    SwapDirection,
    SwapQuote,
    Hop,
    Route,
    SplitResult,
    ArbitrageOpportunity,
    CrossPoolArbitrage,
    GraphMetrics,
)
from swap_routing.exceptions import (
    SwapRoutingError,
    ConfigurationError,
    ValidationError,
    DataError,
    PoolDataError,
    InsufficientLiquidityError,
    NoRouteError,
    NetworkError,
)
from swap_routing.failures import FailureKind, FailureTracker
from swap_routing.graph import build_graph
from swap_routing.pricing import PriceCalculator
from swap_routing.optimizer import OptimizationParams, RouteOptimizer
from swap_routing.router import MultiHopRouter, RouteConstraints, RoutingStrategy
from swap_routing.arbitrage import ArbitrageDetector
from swap_routing.monitor import ArbitrageMonitor, MonitorHandle
from swap_routing.provider import InMemoryPoolProvider, load_pool_snapshot
from swap_routing.config_loader import load_engine_config
from swap_routing.engine import SwapEngine

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "__version__",
    "get_version",
    "Asset",
    "Pool",
    "SwapDirection",
    "SwapQuote",
    "Hop",
    "Route",
    "SplitResult",
    "ArbitrageOpportunity",
    "CrossPoolArbitrage",
    "GraphMetrics",
    "SwapRoutingError",
    "ConfigurationError",
    "ValidationError",
    "DataError",
    "PoolDataError",
    "InsufficientLiquidityError",
    "NoRouteError",
    "NetworkError",
    "FailureKind",
    "FailureTracker",
    "build_graph",
    "PriceCalculator",
    "OptimizationParams",
    "RouteOptimizer",
    "MultiHopRouter",
    "RouteConstraints",
    "RoutingStrategy",
    "ArbitrageDetector",
    "ArbitrageMonitor",
    "MonitorHandle",
    "InMemoryPoolProvider",
    "load_pool_snapshot",
    "load_engine_config",
    "SwapEngine",
]
