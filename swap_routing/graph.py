"""
Pool graph construction.

Turns a pool snapshot into a NetworkX multigraph: one node per asset mint,
one edge per pool per direction. Edge weights grow with fee and shrink with
liquidity so shortest-path search prefers cheap, deep routes.
"""

from typing import Dict, Iterable, List, Optional, Union

import networkx as nx

from .types import Asset, Pool
from .utils import get_logger

logger = get_logger(__name__)

PoolGraph = Union[nx.MultiDiGraph, nx.MultiGraph]

LIQUIDITY_WEIGHT_SCALE = 1_000_000
VOLUME_WEIGHT_SCALE = 100_000
MIN_EDGE_WEIGHT = 0.01


def calculate_edge_weight(pool: Pool) -> float:
    """
    Cost of traversing a pool; lower is better.

    Fee contributes its basis points (1 bp = 1.0), liquidity contributes
    1e6 / liquidity, and 24h volume (when known) contributes half of
    1e5 / volume.
    """
    weight = float(pool.fee_bps)
    weight += LIQUIDITY_WEIGHT_SCALE / max(pool.liquidity, 1)

    if pool.volume_24h:
        weight += (VOLUME_WEIGHT_SCALE / max(pool.volume_24h, 1)) * 0.5

    return max(weight, MIN_EDGE_WEIGHT)


def build_graph(
    assets: Optional[Iterable[Asset]],
    pools: Iterable[Pool],
    directed: bool = True,
) -> PoolGraph:
    """
    Build a multigraph from an asset list and a pool snapshot.

    Args:
        assets: Known assets; if None, assets are taken from the pools
        pools: Pool records
        directed: If True, add an edge per direction for each pool

    Returns:
        ``nx.MultiDiGraph`` (or ``nx.MultiGraph`` when undirected) whose
        edges are keyed by pool address and carry ``weight`` and ``pool``
    """
    graph: PoolGraph = nx.MultiDiGraph() if directed else nx.MultiGraph()
    pools = list(pools)

    known: Dict[str, Asset] = {}
    if assets is None:
        for pool in pools:
            for asset in (pool.token_a, pool.token_b):
                if asset is not None and asset.mint:
                    known.setdefault(asset.mint, asset)
    else:
        for asset in assets:
            known.setdefault(asset.mint, asset)

    for mint, asset in known.items():
        graph.add_node(mint, asset=asset)

    skipped = 0
    for pool in pools:
        if not pool.is_well_formed():
            skipped += 1
            logger.debug("Skipping malformed pool %s", getattr(pool, "address", "?"))
            continue
        mint_a, mint_b = pool.token_a.mint, pool.token_b.mint
        if mint_a not in known or mint_b not in known:
            skipped += 1
            logger.debug("Skipping pool %s with unknown asset", pool.address)
            continue

        weight = calculate_edge_weight(pool)
        graph.add_edge(mint_a, mint_b, key=pool.address, weight=weight, pool=pool)
        if directed:
            graph.add_edge(mint_b, mint_a, key=pool.address, weight=weight, pool=pool)

    logger.info(
        "Graph built with %d assets and %d edges (%d pools skipped)",
        graph.number_of_nodes(),
        graph.number_of_edges(),
        skipped,
    )
    return graph


def edge_pools(graph: PoolGraph, from_mint: str, to_mint: str) -> List[Pool]:
    """All pools backing edges from ``from_mint`` to ``to_mint``."""
    if not graph.has_node(from_mint) or not graph.has_edge(from_mint, to_mint):
        return []
    return [data["pool"] for data in graph[from_mint][to_mint].values()]


def best_pool(graph: PoolGraph, from_mint: str, to_mint: str) -> Optional[Pool]:
    """Highest-liquidity pool for a hop; first inserted wins ties."""
    best: Optional[Pool] = None
    for pool in edge_pools(graph, from_mint, to_mint):
        if best is None or pool.liquidity > best.liquidity:
            best = pool
    return best


def get_asset(graph: PoolGraph, mint: str) -> Optional[Asset]:
    """Asset metadata stored on a node."""
    if not graph.has_node(mint):
        return None
    return graph.nodes[mint].get("asset")
