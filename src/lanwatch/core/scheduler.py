from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from lanwatch.models import Observation, utcnow

from .discovery import DiscoveryPipeline
from .registry import DeviceRegistry

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class CycleReport:
    started_at: datetime
    duration: float
    observed: int
    created: int
    auto_added: int
    known: int
    unknown: int
    evicted: int


class Scheduler:
    """Runs discovery cycles at a fixed rate, one at a time.

    A tick that fires while the previous cycle is still running is dropped
    and counted in ``dropped_ticks``.
    """

    def __init__(
        self,
        pipeline: DiscoveryPipeline,
        registry: DeviceRegistry,
        *,
        interval: float,
        stop_grace: float = 5.0,
    ) -> None:
        self._pipeline = pipeline
        self._registry = registry
        self._interval = interval
        self._stop_grace = stop_grace
        self._state = SchedulerState.STOPPED
        self._ticker: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[None] | None = None
        self.dropped_ticks = 0
        self.cycles = 0
        self.last_cycle: CycleReport | None = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def start(self) -> None:
        if self._state is SchedulerState.RUNNING:
            logger.warning("Scheduler already running")
            return
        self._state = SchedulerState.RUNNING
        self._ticker = asyncio.create_task(self._tick_loop(), name="lanwatch-ticker")
        logger.info("Discovery scheduled every %.1fs", self._interval)

    async def stop(self, grace: float | None = None) -> None:
        if self._state is SchedulerState.STOPPED:
            return
        self._state = SchedulerState.STOPPED
        grace = self._stop_grace if grace is None else grace

        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker

        inflight = self._inflight
        if inflight is not None and not inflight.done():
            done, _ = await asyncio.wait({inflight}, timeout=grace)
            if not done:
                logger.warning(
                    "Discovery cycle still running after %.1fs, cancelling", grace
                )
                inflight.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await inflight
        logger.info("Scheduler stopped")

    async def run_once(self) -> CycleReport:
        started_at = utcnow()
        started = time.monotonic()
        observations = await self._pipeline.scan()
        report = await asyncio.to_thread(
            self._merge, observations, started_at, started
        )
        self.cycles += 1
        self.last_cycle = report
        logger.info(
            "Cycle finished in %.1fs: %d seen, %d new, %d known, %d unknown, %d evicted",
            report.duration,
            report.observed,
            report.created,
            report.known,
            report.unknown,
            report.evicted,
        )
        return report

    def _merge(
        self, observations: list[Observation], started_at: datetime, started: float
    ) -> CycleReport:
        created = auto_added = 0
        for observation in observations:
            result = self._registry.upsert(observation)
            created += result.created
            auto_added += result.auto_added
        known, unknown = self._registry.reclassify()
        evicted = self._registry.evict_stale()
        return CycleReport(
            started_at=started_at,
            duration=time.monotonic() - started,
            observed=len(observations),
            created=created,
            auto_added=auto_added,
            known=known,
            unknown=unknown,
            evicted=evicted,
        )

    async def _tick_loop(self) -> None:
        while True:
            self._tick()
            await asyncio.sleep(self._interval)

    def _tick(self) -> None:
        if self.busy:
            self.dropped_ticks += 1
            logger.debug("Previous cycle still running, tick dropped")
            return
        self._inflight = asyncio.create_task(self._guarded_cycle(), name="lanwatch-cycle")

    async def _guarded_cycle(self) -> None:
        try:
            await self.run_once()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Discovery cycle failed")
