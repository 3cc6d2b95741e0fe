"""
Exception hierarchy for the swap routing engine.

Only configuration and collaborator failures are raised to callers.
Degenerate search outcomes (unreachable assets, empty pools, zero scores)
are reported as empty or degraded results instead.
"""

from typing import Any, Dict, Optional


class SwapRoutingError(Exception):
    """Base exception for all swap routing related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(SwapRoutingError):
    """Raised when there are configuration-related issues."""

    pass


class ValidationError(SwapRoutingError):
    """Raised when a record violates a structural invariant."""

    pass


class DataError(SwapRoutingError):
    """Raised when pool or asset data cannot be used."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        pool: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.source = source
        self.pool = pool


class PoolDataError(DataError):
    """Raised when the pool data provider fails to deliver a snapshot."""

    pass


class InsufficientLiquidityError(DataError):
    """Raised when a required hop has an empty reserve."""

    def __init__(
        self,
        message: str,
        pool: Optional[str] = None,
        reserve_in: Optional[int] = None,
        reserve_out: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, source="pricing", pool=pool, details=details)
        self.reserve_in = reserve_in
        self.reserve_out = reserve_out


class NoRouteError(SwapRoutingError):
    """Raised by strict lookups when no path connects two assets."""

    def __init__(
        self,
        message: str,
        from_asset: Optional[str] = None,
        to_asset: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.from_asset = from_asset
        self.to_asset = to_asset


class NetworkError(SwapRoutingError):
    """Raised when the pool data provider times out or is unreachable."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.timeout = timeout
