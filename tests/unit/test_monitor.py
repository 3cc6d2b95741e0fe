"""Tests for the periodic arbitrage monitor."""

import asyncio
import time

import pytest
from prometheus_client import CollectorRegistry

from conftest import USDC
from swap_routing.arbitrage import ArbitrageDetector
from swap_routing.exceptions import PoolDataError
from swap_routing.metrics import RoutingMetrics
from swap_routing.monitor import ArbitrageMonitor
from swap_routing.provider import InMemoryPoolProvider


@pytest.fixture
def detector(profitable_pools, time_provider):
    provider = InMemoryPoolProvider(profitable_pools, time_provider=time_provider)
    return ArbitrageDetector(provider, time_provider=time_provider)


class SlowDetector:
    """Takes longer than the monitor interval to scan."""

    def __init__(self, delay):
        self.delay = delay
        self.calls = 0

    def scan_for_updates(self, start_assets, min_profit_bps=None, max_hops=None):
        self.calls += 1
        time.sleep(self.delay)
        return []


class BrokenDetector:
    def scan_for_updates(self, start_assets, min_profit_bps=None, max_hops=None):
        raise PoolDataError("snapshot unavailable", source="provider")


class CrashingDetector:
    """Fails with an exception from outside the package on every scan."""

    def scan_for_updates(self, start_assets, min_profit_bps=None, max_hops=None):
        return 1 // 0


async def run_for(monitor, callback, seconds, start_assets=(USDC.mint,)):
    handle = monitor.start(start_assets, callback)
    await asyncio.sleep(seconds)
    handle.cancel()
    return await handle.wait()


def test_interval_must_be_positive(detector):
    with pytest.raises(ValueError):
        ArbitrageMonitor(detector, interval_sec=0)


@pytest.mark.asyncio
async def test_stable_opportunity_notifies_once(detector):
    received = []
    monitor = ArbitrageMonitor(detector, interval_sec=0.01)

    stats = await run_for(monitor, received.append, 0.1)

    assert stats.ticks > 1
    assert stats.notifications == 1
    assert len(received) == 1
    assert received[0].path[0] == USDC


@pytest.mark.asyncio
async def test_async_callback_is_awaited(detector):
    received = []

    async def callback(opportunity):
        await asyncio.sleep(0)
        received.append(opportunity)

    monitor = ArbitrageMonitor(detector, interval_sec=0.01)
    stats = await run_for(monitor, callback, 0.05)

    assert stats.notifications == 1
    assert len(received) == 1


@pytest.mark.asyncio
async def test_expired_opportunity_is_renotified(detector, time_provider):
    received = []
    monitor = ArbitrageMonitor(detector, interval_sec=0.01)
    handle = monitor.start([USDC.mint], received.append)

    await asyncio.sleep(0.05)
    time_provider.advance_time(61)
    await asyncio.sleep(0.05)
    handle.cancel()
    await handle.wait()

    assert len(received) == 2


@pytest.mark.asyncio
async def test_callback_errors_do_not_stop_the_loop(detector):
    registry = CollectorRegistry()

    def callback(opportunity):
        raise RuntimeError("consumer blew up")

    monitor = ArbitrageMonitor(
        detector, interval_sec=0.01, metrics=RoutingMetrics(registry)
    )
    stats = await run_for(monitor, callback, 0.05)

    assert stats.callback_errors == 1
    assert stats.notifications == 0
    assert stats.ticks > 1
    assert registry.get_sample_value("swap_routing_callback_errors_total") == 1


@pytest.mark.asyncio
async def test_scan_errors_are_counted():
    monitor = ArbitrageMonitor(BrokenDetector(), interval_sec=0.01)
    stats = await run_for(monitor, lambda opportunity: None, 0.05)

    assert stats.scan_errors == stats.ticks
    assert stats.ticks > 1


@pytest.mark.asyncio
async def test_unexpected_scan_errors_do_not_stop_the_loop():
    registry = CollectorRegistry()
    monitor = ArbitrageMonitor(
        CrashingDetector(), interval_sec=0.01, metrics=RoutingMetrics(registry)
    )
    handle = monitor.start([USDC.mint], lambda opportunity: None)

    await asyncio.sleep(0.05)
    assert handle.running
    handle.cancel()
    stats = await handle.wait()

    assert stats.ticks > 1
    assert stats.scan_errors == stats.ticks
    assert (
        registry.get_sample_value("swap_routing_scan_errors_total")
        == stats.scan_errors
    )


@pytest.mark.asyncio
async def test_slow_scan_does_not_block_the_event_loop():
    detector = SlowDetector(delay=0.05)
    monitor = ArbitrageMonitor(detector, interval_sec=0.01)
    handle = monitor.start([USDC.mint], lambda opportunity: None)

    gaps = []
    last = time.monotonic()
    for _ in range(20):
        await asyncio.sleep(0.005)
        now = time.monotonic()
        gaps.append(now - last)
        last = now
    handle.cancel()
    await handle.wait()

    assert detector.calls >= 1
    # a scan run on the loop would stall it for the full 0.05s delay
    assert max(gaps) < 0.04


@pytest.mark.asyncio
async def test_overrunning_ticks_are_skipped():
    detector = SlowDetector(delay=0.05)
    registry = CollectorRegistry()
    monitor = ArbitrageMonitor(
        detector, interval_sec=0.01, metrics=RoutingMetrics(registry)
    )

    stats = await run_for(monitor, lambda opportunity: None, 0.12)

    assert stats.ticks == detector.calls
    assert stats.ticks_skipped >= stats.ticks
    assert (
        registry.get_sample_value("swap_routing_monitor_ticks_skipped_total")
        == stats.ticks_skipped
    )


@pytest.mark.asyncio
async def test_cancel_stops_the_task(detector):
    monitor = ArbitrageMonitor(detector, interval_sec=60)
    handle = monitor.start([USDC.mint], lambda opportunity: None)

    await asyncio.sleep(0.01)
    assert handle.running
    handle.cancel()
    stats = await asyncio.wait_for(handle.wait(), timeout=1.0)

    assert not handle.running
    assert stats.ticks == 1


def test_start_requires_running_loop(detector):
    monitor = ArbitrageMonitor(detector)
    with pytest.raises(RuntimeError):
        monitor.start([USDC.mint], lambda opportunity: None)
