"""Shared fixtures for swap routing tests."""

import pytest

from swap_routing.interfaces import DeterministicTimeProvider
from swap_routing.types import Asset, Hop, Pool, Route, SwapDirection

USDC = Asset("usdc-mint", "USDC", 6)
SOL = Asset("sol-mint", "SOL", 9)
BONK = Asset("bonk-mint", "BONK", 5)
USDT = Asset("usdt-mint", "USDT", 6)


def make_pool(
    address,
    token_a,
    token_b,
    liquidity=2_000_000,
    fee_bps=30,
    reserve_a=None,
    reserve_b=None,
    volume_24h=None,
):
    return Pool(
        address=address,
        token_a=token_a,
        token_b=token_b,
        liquidity=liquidity,
        fee_bps=fee_bps,
        reserve_a=reserve_a,
        reserve_b=reserve_b,
        volume_24h=volume_24h,
    )


def make_route(
    expected_output=1000,
    price_impact=0.0,
    total_fees=0.3,
    confidence=100.0,
    hops=1,
    liquidity=1_000_000,
    amount_in=1000,
    pool_prefix="pool",
):
    """Route over a chain of synthetic assets with fixed aggregate numbers."""
    assets = [Asset(f"asset-{i}", f"A{i}") for i in range(hops + 1)]
    hop_list = []
    for i in range(hops):
        pool = make_pool(f"{pool_prefix}-{i}", assets[i], assets[i + 1], liquidity)
        hop_list.append(
            Hop(
                from_asset=assets[i],
                to_asset=assets[i + 1],
                pool=pool,
                direction=SwapDirection.A_TO_B,
                amount_in=amount_in,
                amount_out=expected_output,
                fee=0,
                price_impact=price_impact / hops,
            )
        )
    return Route(
        hops=tuple(hop_list),
        amount_in=amount_in,
        expected_output=expected_output,
        price_impact=price_impact,
        total_fees=total_fees,
        confidence=confidence,
    )


@pytest.fixture
def time_provider():
    return DeterministicTimeProvider(start_time=1_700_000_000.0)


@pytest.fixture
def triangle_pools():
    """Fair USDC/SOL/BONK triangle with 30 bps fees on every pool."""
    return [
        make_pool("usdc-sol", USDC, SOL),
        make_pool("sol-bonk", SOL, BONK),
        make_pool("bonk-usdc", BONK, USDC),
    ]


@pytest.fixture
def profitable_pools():
    """Triangle where USDC -> SOL is mispriced by 10% in the trader's favour."""
    return [
        make_pool(
            "usdc-sol",
            USDC,
            SOL,
            liquidity=21 * 10**12,
            reserve_a=10**13,
            reserve_b=11 * 10**12,
        ),
        make_pool("sol-bonk", SOL, BONK, liquidity=2 * 10**13),
        make_pool("bonk-usdc", BONK, USDC, liquidity=2 * 10**13),
    ]
