"""Tests for path, cycle and graph-analysis algorithms."""

import math

import networkx as nx
import pytest

from conftest import BONK, SOL, USDC, USDT, make_pool
from swap_routing.graph import MIN_EDGE_WEIGHT, build_graph
from swap_routing.pathfinder import (
    astar_path,
    bellman_ford,
    calculate_metrics,
    connected_assets,
    dijkstra,
    find_all_paths,
    find_cycles,
    has_arbitrage_cycle,
    has_path,
    hop_heuristic,
    is_acyclic,
    log_price_graph,
    prim_mst,
    strongly_connected_components,
    topological_sort,
)


@pytest.fixture
def triangle_graph(triangle_pools):
    return build_graph(None, triangle_pools)


def _weighted_digraph(edges):
    graph = nx.DiGraph()
    for u, v, w in edges:
        graph.add_edge(u, v, weight=w)
    return graph


class TestFindAllPaths:
    def test_enumerates_in_insertion_order(self, triangle_graph):
        paths = find_all_paths(triangle_graph, USDC.mint, BONK.mint, 3)
        assert paths == [
            [USDC.mint, SOL.mint, BONK.mint],
            [USDC.mint, BONK.mint],
        ]

    def test_respects_max_length(self, triangle_graph):
        paths = find_all_paths(triangle_graph, USDC.mint, BONK.mint, 1)
        assert paths == [[USDC.mint, BONK.mint]]

    def test_paths_are_simple_and_bounded(self, triangle_graph):
        for path in find_all_paths(triangle_graph, USDC.mint, BONK.mint, 5):
            assert len(path) == len(set(path))
            assert len(path) - 1 <= 5

    def test_same_start_and_end(self, triangle_graph):
        assert find_all_paths(triangle_graph, USDC.mint, USDC.mint, 3) == []

    def test_unknown_asset(self, triangle_graph):
        assert find_all_paths(triangle_graph, USDC.mint, "missing", 3) == []

    def test_zero_length(self, triangle_graph):
        assert find_all_paths(triangle_graph, USDC.mint, BONK.mint, 0) == []


class TestFindCycles:
    def test_triangle_has_both_orientations(self, triangle_graph):
        cycles = find_cycles(triangle_graph, USDC.mint, 3)
        assert cycles == [
            [USDC.mint, SOL.mint, BONK.mint, USDC.mint],
            [USDC.mint, BONK.mint, SOL.mint, USDC.mint],
        ]

    def test_two_hop_round_trips_need_lower_minimum(self, triangle_graph):
        cycles = find_cycles(triangle_graph, USDC.mint, 2, min_length=2)
        assert [USDC.mint, SOL.mint, USDC.mint] in cycles
        assert all(len(cycle) == 3 for cycle in cycles)

    def test_max_below_minimum(self, triangle_graph):
        assert find_cycles(triangle_graph, USDC.mint, 2) == []

    def test_unknown_start(self, triangle_graph):
        assert find_cycles(triangle_graph, "missing", 3) == []


class TestDijkstra:
    def test_prefers_cheaper_direct_edge(self, triangle_graph):
        path, distance = dijkstra(triangle_graph, USDC.mint, BONK.mint)
        assert path == [USDC.mint, BONK.mint]
        assert distance == pytest.approx(30.5)

    def test_unreachable(self):
        pools = [make_pool("a", USDC, SOL), make_pool("b", BONK, USDT)]
        graph = build_graph(None, pools)
        assert dijkstra(graph, USDC.mint, BONK.mint) is None

    def test_missing_node(self, triangle_graph):
        assert dijkstra(triangle_graph, USDC.mint, "missing") is None


class TestAStar:
    def test_agrees_with_dijkstra(self, triangle_graph):
        assert astar_path(triangle_graph, USDC.mint, BONK.mint, 3) == [
            USDC.mint,
            BONK.mint,
        ]

    def test_takes_cheaper_detour(self):
        pools = [
            make_pool("usdc-sol", USDC, SOL),
            make_pool("sol-bonk", SOL, BONK),
            make_pool("bonk-usdc", BONK, USDC, fee_bps=100),
        ]
        graph = build_graph(None, pools)

        assert astar_path(graph, USDC.mint, BONK.mint, 3) == [
            USDC.mint,
            SOL.mint,
            BONK.mint,
        ]
        assert astar_path(graph, USDC.mint, BONK.mint, 1) is None

    def test_unreachable_and_missing(self, triangle_graph):
        pools = [make_pool("a", USDC, SOL), make_pool("b", BONK, USDT)]
        graph = build_graph(None, pools)
        assert astar_path(graph, USDC.mint, BONK.mint, 3) is None
        assert astar_path(triangle_graph, USDC.mint, "missing", 3) is None
        assert astar_path(triangle_graph, USDC.mint, USDC.mint, 3) is None

    def test_heuristic_counts_remaining_hops(self, triangle_pools):
        pools = triangle_pools + [make_pool("usdt-sol", USDT, SOL)]
        estimate = hop_heuristic(build_graph(None, pools), BONK.mint)

        assert estimate(BONK.mint, BONK.mint) == 0.0
        assert estimate(USDC.mint, BONK.mint) == MIN_EDGE_WEIGHT
        assert estimate(USDT.mint, BONK.mint) == 2 * MIN_EDGE_WEIGHT


def test_has_path(triangle_graph):
    assert has_path(triangle_graph, USDC.mint, BONK.mint)
    assert not has_path(triangle_graph, USDC.mint, "missing")

    pools = [make_pool("a", USDC, SOL), make_pool("b", BONK, USDT)]
    assert not has_path(build_graph(None, pools), USDC.mint, USDT.mint)


def test_connected_assets(triangle_graph):
    assert sorted(connected_assets(triangle_graph, USDC.mint)) == sorted(
        [SOL.mint, BONK.mint]
    )
    assert connected_assets(triangle_graph, "missing") == []


class TestBellmanFord:
    def test_detects_negative_cycle(self):
        graph = _weighted_digraph([("a", "b", 1), ("b", "c", -2), ("c", "a", -1)])
        _, has_negative = bellman_ford(graph, "a")
        assert has_negative

    def test_distances_without_negative_cycle(self):
        graph = _weighted_digraph([("a", "b", 1), ("b", "c", -2), ("c", "a", 2)])
        distances, has_negative = bellman_ford(graph, "a")
        assert not has_negative
        assert distances == {"a": 0.0, "b": 1.0, "c": -1.0}

    def test_unreachable_nodes_stay_infinite(self):
        graph = _weighted_digraph([("a", "b", 1)])
        graph.add_node("z")
        distances, _ = bellman_ford(graph, "a")
        assert math.isinf(distances["z"])

    def test_missing_weight_defaults_to_one(self):
        graph = nx.DiGraph()
        graph.add_edge("a", "b")
        distances, _ = bellman_ford(graph, "a")
        assert distances["b"] == 1.0

    def test_tolerance_ignores_rounding_noise(self):
        graph = _weighted_digraph([("a", "b", 0.5), ("b", "a", -0.5 - 1e-15)])
        _, strict = bellman_ford(graph, "a")
        _, tolerant = bellman_ford(graph, "a", tolerance=1e-12)
        assert strict
        assert not tolerant


def test_strongly_connected_components():
    graph = _weighted_digraph([("a", "b", 1), ("b", "a", 1), ("b", "c", 1)])
    components = sorted(strongly_connected_components(graph))
    assert components == [["a", "b"], ["c"]]


def test_acyclic_and_topological_sort():
    dag = _weighted_digraph([("a", "b", 1), ("b", "c", 1)])
    assert is_acyclic(dag)
    assert topological_sort(dag) == ["a", "b", "c"]

    dag.add_edge("c", "a", weight=1)
    assert not is_acyclic(dag)
    assert topological_sort(dag) is None


def test_topological_sort_rejects_undirected(triangle_pools):
    graph = build_graph(None, triangle_pools, directed=False)
    assert topological_sort(graph) is None


def test_prim_mst_spans_all_assets(triangle_graph):
    edges = prim_mst(triangle_graph)

    assert len(edges) == 2
    covered = {edge.from_asset for edge in edges} | {edge.to_asset for edge in edges}
    assert covered == {USDC.mint, SOL.mint, BONK.mint}
    assert all(edge.pool_address for edge in edges)


def test_prim_mst_empty_graph():
    assert prim_mst(nx.MultiDiGraph()) == []


class TestCalculateMetrics:
    def test_triangle(self, triangle_graph):
        metrics = calculate_metrics(triangle_graph)

        assert metrics.node_count == 3
        assert metrics.edge_count == 6
        assert metrics.density == pytest.approx(1.0)
        assert metrics.avg_degree == pytest.approx(2.0)
        assert metrics.is_connected
        assert metrics.component_count == 1
        assert metrics.diameter == pytest.approx(30.5)

    def test_disconnected(self):
        pools = [make_pool("a", USDC, SOL), make_pool("b", BONK, USDT)]
        metrics = calculate_metrics(build_graph(None, pools))
        assert not metrics.is_connected
        assert metrics.component_count == 2

    def test_empty(self):
        metrics = calculate_metrics(nx.MultiDiGraph())
        assert metrics.node_count == 0
        assert not metrics.is_connected


class TestLogPriceGraph:
    def test_fair_triangle_has_no_arbitrage(self, triangle_graph):
        assert not has_arbitrage_cycle(triangle_graph, USDC.mint)

    def test_mispriced_triangle_has_arbitrage(self, profitable_pools):
        graph = build_graph(None, profitable_pools)
        assert has_arbitrage_cycle(graph, USDC.mint)

    def test_fee_free_fair_triangle_is_not_flagged(self):
        pools = [
            make_pool("usdc-sol", USDC, SOL, fee_bps=0),
            make_pool("sol-bonk", SOL, BONK, fee_bps=0),
            make_pool("bonk-usdc", BONK, USDC, fee_bps=0),
        ]
        assert not has_arbitrage_cycle(build_graph(None, pools), USDC.mint)

    def test_edge_weights(self):
        pool = make_pool("p", USDC, SOL, reserve_a=100, reserve_b=200, fee_bps=0)
        log_graph = log_price_graph(build_graph(None, [pool]))

        forward = log_graph[USDC.mint][SOL.mint]["p"]["weight"]
        backward = log_graph[SOL.mint][USDC.mint]["p"]["weight"]
        assert forward == pytest.approx(-math.log(2))
        assert backward == pytest.approx(math.log(2))

    def test_empty_reserves_are_dropped(self):
        pool = make_pool("p", USDC, SOL, reserve_a=0, reserve_b=200)
        log_graph = log_price_graph(build_graph(None, [pool]))
        assert log_graph.number_of_edges() == 0
