"""
Continuous arbitrage monitoring.

A single asyncio task re-runs triangular discovery at a fixed interval and
notifies a callback only about opportunities that are new or strictly more
profitable than the cached instance for the same cycle. Ticks never
overlap: when a scan overruns, the ticks it covered are skipped rather
than queued.

Each scan runs in a worker thread so the event loop stays free for other
coroutines. Only the monitor task scans, so it stays the single writer of
the detector's opportunity cache. Any exception from a scan is logged and
counted and the loop carries on.
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Union

from .arbitrage import ArbitrageDetector
from .metrics import RoutingMetrics
from .types import ArbitrageOpportunity
from .utils import get_logger

logger = get_logger(__name__)

OpportunityCallback = Callable[[ArbitrageOpportunity], Union[None, Awaitable[None]]]


@dataclass
class MonitorStats:
    """Counters for one monitor run."""

    ticks: int = 0
    ticks_skipped: int = 0
    notifications: int = 0
    callback_errors: int = 0
    scan_errors: int = 0


class MonitorHandle:
    """Control handle returned by ``ArbitrageMonitor.start``."""

    def __init__(self, task: "asyncio.Task", stop: asyncio.Event, stats: MonitorStats):
        self._task = task
        self._stop = stop
        self.stats = stats

    def cancel(self) -> None:
        """Stop the loop once the current tick (if any) finishes."""
        self._stop.set()

    @property
    def running(self) -> bool:
        return not self._task.done()

    async def wait(self) -> MonitorStats:
        """Wait for the loop to exit and return its counters."""
        await self._task
        return self.stats


class ArbitrageMonitor:
    """
    Polls a detector for arbitrage on a fixed interval.

    Args:
        detector: Detector holding the graph and the opportunity cache
        interval_sec: Seconds between tick starts
        min_profit_bps: Threshold passed to each scan (detector default if None)
        max_hops: Cycle length bound passed to each scan
        metrics: Optional Prometheus metrics
    """

    def __init__(
        self,
        detector: ArbitrageDetector,
        interval_sec: float = 5.0,
        min_profit_bps: Optional[float] = None,
        max_hops: Optional[int] = None,
        metrics: Optional[RoutingMetrics] = None,
    ):
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        self.detector = detector
        self.interval_sec = interval_sec
        self.min_profit_bps = min_profit_bps
        self.max_hops = max_hops
        self.metrics = metrics

    def start(
        self, start_assets: Iterable[str], callback: OpportunityCallback
    ) -> MonitorHandle:
        """
        Start monitoring. Must be called from a running event loop.

        Args:
            start_assets: Assets whose cycles are watched
            callback: Called (or awaited) per new or improved opportunity
        """
        start_assets = list(start_assets)
        stop = asyncio.Event()
        stats = MonitorStats()
        task = asyncio.get_running_loop().create_task(
            self._run(start_assets, callback, stop, stats)
        )
        logger.info(
            f"Monitoring {len(start_assets)} assets every {self.interval_sec}s"
        )
        return MonitorHandle(task, stop, stats)

    async def _run(
        self,
        start_assets: list,
        callback: OpportunityCallback,
        stop: asyncio.Event,
        stats: MonitorStats,
    ) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()

        while not stop.is_set():
            await self._tick(start_assets, callback, stats)
            stats.ticks += 1

            next_tick += self.interval_sec
            now = loop.time()
            skipped = 0
            if now > next_tick:
                skipped = int((now - next_tick) // self.interval_sec) + 1
                next_tick += skipped * self.interval_sec
                stats.ticks_skipped += skipped
                logger.debug(f"Scan overran, skipping {skipped} ticks")
            if self.metrics:
                self.metrics.record_tick(skipped)

            try:
                await asyncio.wait_for(stop.wait(), timeout=next_tick - now)
            except asyncio.TimeoutError:
                pass

        logger.info(
            f"Monitor stopped after {stats.ticks} ticks "
            f"({stats.notifications} notifications)"
        )

    async def _tick(
        self, start_assets: list, callback: OpportunityCallback, stats: MonitorStats
    ) -> None:
        try:
            updates = await asyncio.to_thread(
                self.detector.scan_for_updates,
                start_assets,
                self.min_profit_bps,
                self.max_hops,
            )
        except Exception as e:
            stats.scan_errors += 1
            if self.metrics:
                self.metrics.record_scan_error()
            logger.error(f"Arbitrage scan failed: {e}", exc_info=True)
            return

        for opportunity in updates:
            try:
                result = callback(opportunity)
                if inspect.isawaitable(result):
                    await result
                stats.notifications += 1
            except Exception:
                stats.callback_errors += 1
                if self.metrics:
                    self.metrics.record_callback_error()
                logger.exception("Opportunity callback failed")
