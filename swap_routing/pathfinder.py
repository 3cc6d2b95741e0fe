"""
Graph algorithms over the pool graph.

Bounded path and cycle enumeration use an explicit stack so recursion depth
never depends on the caller's ``max_length``. Shortest paths, components
and spanning trees lean on NetworkX. ``calculate_metrics`` runs all-pairs
shortest paths and is meant for offline diagnostics only.
"""

import math
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

import networkx as nx

from .graph import MIN_EDGE_WEIGHT, PoolGraph
from .types import GraphMetrics
from .utils import get_logger, timing_decorator

logger = get_logger(__name__)

MIN_CYCLE_HOPS = 3


class MSTEdge(NamedTuple):
    """One edge of a minimum spanning forest."""

    from_asset: str
    to_asset: str
    weight: float
    pool_address: str


def _neighbors(graph: PoolGraph, node: str) -> Iterable[str]:
    if graph.is_directed():
        return graph.successors(node)
    return graph.neighbors(node)


def find_all_paths(
    graph: PoolGraph, start: str, end: str, max_length: int
) -> List[List[str]]:
    """
    Enumerate simple paths from ``start`` to ``end``.

    Args:
        graph: Pool graph
        start: Source asset mint
        end: Destination asset mint
        max_length: Maximum number of hops per path

    Returns:
        Paths as lists of mints, in depth-first enumeration order
    """
    if start == end or max_length < 1:
        return []
    if not graph.has_node(start) or not graph.has_node(end):
        return []

    paths: List[List[str]] = []
    stack: List[Tuple[str, List[str], frozenset]] = [
        (start, [start], frozenset([start]))
    ]

    while stack:
        node, path, visited = stack.pop()
        if node == end:
            paths.append(path)
            continue
        if len(path) - 1 >= max_length:
            continue
        # reversed so pops follow neighbor insertion order
        for neighbor in reversed(list(_neighbors(graph, node))):
            if neighbor not in visited:
                stack.append((neighbor, path + [neighbor], visited | {neighbor}))

    return paths


def find_cycles(
    graph: PoolGraph,
    start: str,
    max_length: int,
    min_length: int = MIN_CYCLE_HOPS,
) -> List[List[str]]:
    """
    Enumerate simple cycles ``start -> ... -> start``.

    Args:
        graph: Pool graph
        start: Asset the cycle begins and ends with
        max_length: Maximum hops in a cycle
        min_length: Minimum hops in a cycle (3 for triangular arbitrage)

    Returns:
        Cycles as lists of mints whose first and last element are ``start``
    """
    if not graph.has_node(start) or max_length < min_length:
        return []

    cycles: List[List[str]] = []
    stack: List[Tuple[str, List[str], frozenset]] = [
        (start, [start], frozenset([start]))
    ]

    while stack:
        node, path, visited = stack.pop()
        hops = len(path) - 1
        if hops >= max_length:
            continue
        neighbors = list(_neighbors(graph, node))
        for neighbor in neighbors:
            if neighbor == start and hops + 1 >= min_length:
                cycles.append(path + [start])
        for neighbor in reversed(neighbors):
            if neighbor not in visited:
                stack.append((neighbor, path + [neighbor], visited | {neighbor}))

    return cycles


def dijkstra(
    graph: PoolGraph, start: str, end: str
) -> Optional[Tuple[List[str], float]]:
    """
    Cheapest path by edge weight.

    Parallel pools count with their lowest weight. Weights must be
    non-negative; use ``bellman_ford`` otherwise.

    Returns:
        (path, distance), or None if ``end`` is unreachable
    """
    if not graph.has_node(start) or not graph.has_node(end):
        return None
    try:
        distance, path = nx.single_source_dijkstra(graph, start, end, weight="weight")
    except nx.NetworkXNoPath:
        return None
    return path, distance


def hop_heuristic(graph: PoolGraph, end: str):
    """
    A* heuristic counting the hops still needed at the lightest edge weight.

    0 at ``end``, one hop from a direct neighbour of ``end``, two otherwise.
    Every edge weighs at least ``MIN_EDGE_WEIGHT``, so it never
    overestimates.
    """

    def estimate(node: str, _target: str) -> float:
        if node == end:
            return 0.0
        if graph.has_edge(node, end):
            return MIN_EDGE_WEIGHT
        return 2 * MIN_EDGE_WEIGHT

    return estimate


def astar_path(
    graph: PoolGraph, start: str, end: str, max_hops: int
) -> Optional[List[str]]:
    """
    Cheapest path by edge weight found with A*.

    Returns:
        The path, or None if ``end`` is unreachable or the cheapest path
        has more than ``max_hops`` hops
    """
    if start == end or not graph.has_node(start) or not graph.has_node(end):
        return None
    try:
        path = nx.astar_path(
            graph, start, end, heuristic=hop_heuristic(graph, end), weight="weight"
        )
    except nx.NetworkXNoPath:
        return None
    if len(path) - 1 > max_hops:
        logger.debug("A* path %s exceeds %d hops", path, max_hops)
        return None
    return path


def has_path(graph: PoolGraph, start: str, end: str) -> bool:
    if not graph.has_node(start) or not graph.has_node(end):
        return False
    return nx.has_path(graph, start, end)


def connected_assets(graph: PoolGraph, asset: str) -> List[str]:
    """Assets reachable from ``asset`` in one swap."""
    if not graph.has_node(asset):
        return []
    return list(_neighbors(graph, asset))


def bellman_ford(
    graph: PoolGraph,
    start: str,
    weight: str = "weight",
    tolerance: float = 0.0,
) -> Tuple[Dict[str, float], bool]:
    """
    Single-source distances with negative cycle detection.

    Relaxes every edge |V|-1 times, then checks whether any edge still
    relaxes. A reachable negative-weight cycle sets the flag.

    Args:
        graph: Graph with numeric edge attribute ``weight`` (missing -> 1.0)
        start: Source node
        weight: Edge attribute holding the weight
        tolerance: Improvements smaller than this are ignored

    Returns:
        (distances, has_negative_cycle)
    """
    nodes = list(graph.nodes)
    distances: Dict[str, float] = {node: math.inf for node in nodes}
    if start not in distances:
        return distances, False
    distances[start] = 0.0

    edges = [(u, v, data.get(weight, 1.0)) for u, v, data in graph.edges(data=True)]
    if not graph.is_directed():
        edges += [(v, u, w) for u, v, w in edges]

    for _ in range(len(nodes) - 1):
        changed = False
        for u, v, w in edges:
            if distances[u] != math.inf and distances[u] + w < distances[v] - tolerance:
                distances[v] = distances[u] + w
                changed = True
        if not changed:
            break

    has_negative_cycle = any(
        distances[u] != math.inf and distances[u] + w < distances[v] - tolerance
        for u, v, w in edges
    )
    return distances, has_negative_cycle


def strongly_connected_components(graph: PoolGraph) -> List[List[str]]:
    """Strongly connected components (connected components if undirected)."""
    if graph.is_directed():
        components = nx.strongly_connected_components(graph)
    else:
        components = nx.connected_components(graph)
    return [sorted(component) for component in components]


def is_acyclic(graph: PoolGraph) -> bool:
    if graph.is_directed():
        return nx.is_directed_acyclic_graph(graph)
    return nx.is_forest(graph) if graph.number_of_nodes() else True


def topological_sort(graph: PoolGraph) -> Optional[List[str]]:
    """Topological order of a directed acyclic graph, else None."""
    if not graph.is_directed() or not is_acyclic(graph):
        return None
    return list(nx.topological_sort(graph))


def prim_mst(graph: PoolGraph) -> List[MSTEdge]:
    """
    Minimum spanning forest, ignoring edge direction.

    Used for connectivity analysis only; it says nothing about routing.
    """
    if graph.number_of_nodes() == 0:
        return []
    undirected = graph.to_undirected(as_view=False)
    edges = nx.minimum_spanning_edges(
        undirected, algorithm="prim", weight="weight", keys=True, data=True
    )
    return [
        MSTEdge(u, v, data.get("weight", 1.0), key) for u, v, key, data in edges
    ]


@timing_decorator
def calculate_metrics(graph: PoolGraph) -> GraphMetrics:
    """
    Aggregate graph metrics.

    The diameter needs all-pairs shortest paths, which is quadratic in the
    number of assets. Do not call this on a request or monitor tick.
    """
    node_count = graph.number_of_nodes()
    edge_count = graph.number_of_edges()
    if node_count == 0:
        return GraphMetrics(0, 0, 0.0, 0.0, False, 0.0, 0)

    simple = nx.DiGraph(graph) if graph.is_directed() else nx.Graph(graph)
    density = nx.density(simple) if node_count > 1 else 0.0

    total_degree = sum(len(list(_neighbors(graph, node))) for node in graph.nodes)
    avg_degree = total_degree / node_count

    if graph.is_directed():
        component_count = nx.number_weakly_connected_components(graph)
    else:
        component_count = nx.number_connected_components(graph)

    diameter = 0.0
    for _, lengths in nx.all_pairs_dijkstra_path_length(graph, weight="weight"):
        for distance in lengths.values():
            if distance > diameter:
                diameter = distance

    metrics = GraphMetrics(
        node_count=node_count,
        edge_count=edge_count,
        density=density,
        avg_degree=avg_degree,
        is_connected=component_count == 1,
        diameter=diameter,
        component_count=component_count,
    )
    logger.debug("Graph metrics: %s", metrics)
    return metrics


# ----------------------------------------------------------------------------
# Log-price view
# ----------------------------------------------------------------------------

LOG_PRICE_TOLERANCE = 1e-12


def log_price_graph(graph: PoolGraph) -> nx.MultiDiGraph:
    """
    Re-weight the pool graph for arbitrage search.

    Each directed edge gets ``-ln(spot_rate * (1 - fee))`` where
    ``spot_rate = reserve_out / reserve_in``. A cycle whose weights sum to
    a negative number multiplies capital by more than 1 at spot prices.
    Pools with an empty reserve are left out.
    """
    log_graph = nx.MultiDiGraph()
    log_graph.add_nodes_from(graph.nodes(data=True))

    edges = list(graph.edges(keys=True, data=True))
    if not graph.is_directed():
        edges += [(v, u, key, data) for u, v, key, data in edges]

    for u, v, key, data in edges:
        pool = data["pool"]
        direction = pool.direction(u, v)
        if direction is None:
            continue
        reserve_in, reserve_out = pool.reserves(direction)
        if reserve_in <= 0 or reserve_out <= 0:
            continue
        rate = (reserve_out / reserve_in) * (1 - pool.fee_rate)
        log_graph.add_edge(u, v, key=key, weight=-math.log(rate), pool=pool)

    return log_graph


def has_arbitrage_cycle(graph: PoolGraph, start: str) -> bool:
    """Whether a spot-price arbitrage cycle is reachable from ``start``."""
    _, has_cycle = bellman_ford(
        log_price_graph(graph), start, tolerance=LOG_PRICE_TOLERANCE
    )
    return has_cycle
