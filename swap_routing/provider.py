"""
In-memory pool snapshots.

``InMemoryPoolProvider`` satisfies the ``PoolDataProvider`` protocol over a
fixed list of pools, indexed by asset pair. Live providers that talk to a
chain implement the same two methods and own their own timeouts and
retries.
"""

import os
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .exceptions import ConfigurationError, PoolDataError
from .interfaces import TimeProvider, get_time_provider
from .types import Asset, Pool, pair_key
from .utils import get_logger

logger = get_logger(__name__)

DEFAULT_SNAPSHOT_TTL = 30.0


class InMemoryPoolProvider:
    """
    Read-only pool snapshot with a pair index.

    Args:
        pools: Pool records making up the snapshot
        snapshot_ttl: Seconds the snapshot is considered current
        time_provider: Clock for the validity window
    """

    def __init__(
        self,
        pools: Sequence[Pool],
        snapshot_ttl: float = DEFAULT_SNAPSHOT_TTL,
        time_provider: Optional[TimeProvider] = None,
    ):
        self._time = time_provider or get_time_provider()
        self.snapshot_ttl = snapshot_ttl
        self._pools: List[Pool] = []
        self._by_pair: Dict[tuple, List[Pool]] = defaultdict(list)
        self._by_address: Dict[str, Pool] = {}
        self.fetched_at = 0.0
        self.replace(pools)

    def replace(self, pools: Sequence[Pool]) -> None:
        """Swap in a new snapshot and reset the validity window."""
        self._pools = list(pools)
        self._by_pair = defaultdict(list)
        self._by_address = {pool.address: pool for pool in self._pools}
        for pool in self._pools:
            if pool.token_a is None or pool.token_b is None:
                continue
            self._by_pair[pool.pair_key].append(pool)
        self.fetched_at = self._time.current_timestamp()
        logger.debug("Pool snapshot loaded with %d pools", len(self._pools))

    def get_all_pools(self) -> List[Pool]:
        return list(self._pools)

    def get_pool_by_address(self, address: str) -> Optional[Pool]:
        return self._by_address.get(address)

    def get_pools_for_pair(self, asset_a: str, asset_b: str) -> List[Pool]:
        return list(self._by_pair.get(pair_key(asset_a, asset_b), []))

    def get_pool(self, asset_a: str, asset_b: str) -> Optional[Pool]:
        """Deepest pool for the pair, or None."""
        pools = self.get_pools_for_pair(asset_a, asset_b)
        if not pools:
            return None
        return max(pools, key=lambda pool: pool.liquidity)

    def pools_with_asset(self, mint: str) -> List[Pool]:
        return [
            pool
            for pool in self._pools
            if pool.token_a is not None and pool.has_asset(mint)
        ]

    def top_pools_by_liquidity(self, limit: int = 10) -> List[Pool]:
        ranked = sorted(self._pools, key=lambda pool: pool.liquidity, reverse=True)
        return ranked[:limit]

    def top_pools_by_volume(self, limit: int = 10) -> List[Pool]:
        """Busiest pools first; pools without a volume figure rank last."""
        ranked = sorted(
            self._pools, key=lambda pool: pool.volume_24h or 0, reverse=True
        )
        return ranked[:limit]

    def multi_pool_pairs(self) -> List[tuple]:
        """Pair keys served by at least two pools."""
        return [key for key, pools in self._by_pair.items() if len(pools) >= 2]

    def is_stale(self) -> bool:
        """Whether the snapshot is older than its validity window."""
        return self._time.current_timestamp() - self.fetched_at > self.snapshot_ttl

    def __len__(self) -> int:
        return len(self._pools)


def _parse_assets(raw_assets: Any) -> Dict[str, Asset]:
    if not isinstance(raw_assets, list):
        raise ConfigurationError("Snapshot 'assets' must be a list")

    assets: Dict[str, Asset] = {}
    for i, info in enumerate(raw_assets):
        if not isinstance(info, dict) or "mint" not in info:
            raise ConfigurationError(f"Asset {i} must be a dict with a 'mint'")
        asset = Asset(
            mint=str(info["mint"]),
            symbol=str(info.get("symbol", "")),
            decimals=int(info.get("decimals", 9)),
        )
        assets[asset.mint] = asset
        if asset.symbol:
            assets.setdefault(asset.symbol, asset)
    return assets


def _parse_pool(info: Dict[str, Any], assets: Dict[str, Asset]) -> Optional[Pool]:
    token_a = assets.get(str(info.get("token_a")))
    token_b = assets.get(str(info.get("token_b")))
    if token_a is None or token_b is None or "address" not in info:
        return None

    def optional_int(key: str) -> Optional[int]:
        value = info.get(key)
        return int(value) if value is not None else None

    return Pool(
        address=str(info["address"]),
        token_a=token_a,
        token_b=token_b,
        liquidity=int(info.get("liquidity", 0)),
        fee_bps=int(info.get("fee_bps", 30)),
        reserve_a=optional_int("reserve_a"),
        reserve_b=optional_int("reserve_b"),
        volume_24h=optional_int("volume_24h"),
        updated_at=info.get("updated_at"),
    )


def load_pool_snapshot(
    path: str,
    snapshot_ttl: float = DEFAULT_SNAPSHOT_TTL,
    time_provider: Optional[TimeProvider] = None,
) -> InMemoryPoolProvider:
    """
    Load a pool snapshot from YAML.

    The file holds an ``assets`` list (mint, symbol, decimals) and a
    ``pools`` list whose ``token_a``/``token_b`` name an asset by mint or
    symbol. Pool entries naming an unknown asset are skipped with a
    warning.

    Raises:
        ConfigurationError: If the file is missing or not a valid snapshot
    """
    if not os.path.exists(path):
        raise ConfigurationError(f"Pool snapshot not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Pool snapshot {path} must be a mapping")

    assets = _parse_assets(data.get("assets", []))
    raw_pools = data.get("pools", [])
    if not isinstance(raw_pools, list):
        raise ConfigurationError("Snapshot 'pools' must be a list")

    pools = []
    for i, info in enumerate(raw_pools):
        if not isinstance(info, dict):
            logger.warning(f"Skipping pool entry {i}: not a mapping")
            continue
        try:
            pool = _parse_pool(info, assets)
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping pool entry {i}: {e}")
            continue
        if pool is None:
            logger.warning(f"Skipping pool entry {i}: unknown asset or missing address")
            continue
        pools.append(pool)

    asset_count = len(set(assets.values()))
    logger.info(f"Loaded {len(pools)} pools and {asset_count} assets from {path}")
    return InMemoryPoolProvider(pools, snapshot_ttl, time_provider)


def require_pools(pools: Any, source: str) -> List[Pool]:
    """
    Check a provider result is a list of pools.

    Raises:
        PoolDataError: If the provider returned something else
    """
    if pools is None or isinstance(pools, (str, bytes)):
        raise PoolDataError("Provider returned no pool list", source=source)
    try:
        pools = list(pools)
    except TypeError as e:
        raise PoolDataError(
            f"Provider returned {type(pools).__name__}", source=source
        ) from e
    return pools
