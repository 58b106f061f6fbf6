"""APScheduler integration for FastAPI.

Owns the three periodic cycles (position monitor, order sync, signal analysis).
Each run is wrapped so an exception is logged and written to the job log without
ever unscheduling the job.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from autotrader.config import settings
from autotrader.engine.errors import NotFoundError
from autotrader.engine.results import CycleReport
from autotrader.models.job_log import JobLog
from autotrader.utils.constants import (
    CYCLE_ORDER_SYNC,
    CYCLE_POSITION_MONITOR,
    CYCLE_SIGNAL_ANALYSIS,
)

logger = logging.getLogger(__name__)

# Cycles that also run once immediately at startup
_RUN_ON_START = {CYCLE_POSITION_MONITOR, CYCLE_ORDER_SYNC}


class SchedulerOrchestrator:
    def __init__(
        self,
        runners: dict[str, Callable[[], Awaitable[CycleReport]]],
        engine,
        intervals: dict[str, float] | None = None,
    ):
        self.runners = runners
        self.engine = engine
        self.intervals = intervals or {
            CYCLE_POSITION_MONITOR: settings.monitor_interval_seconds,
            CYCLE_ORDER_SYNC: settings.order_sync_interval_seconds,
            CYCLE_SIGNAL_ANALYSIS: settings.analysis_interval_seconds,
        }
        self._locks = {name: asyncio.Lock() for name in runners}
        self._scheduler: AsyncIOScheduler | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self):
        """Schedule every cycle. Must be called from inside the event loop."""
        if self.is_running():
            logger.info("[Scheduler] Already running")
            return

        self._loop = asyncio.get_running_loop()
        self._scheduler = AsyncIOScheduler(event_loop=self._loop)
        now = datetime.now(timezone.utc)
        for name in self.runners:
            # next_run_time=None would add the job paused
            extra = {"next_run_time": now} if name in _RUN_ON_START else {}
            self._scheduler.add_job(
                self._run_cycle,
                trigger=IntervalTrigger(seconds=self.intervals[name]),
                args=[name],
                id=name,
                name=name.replace("_", " ").title(),
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=60,
                **extra,
            )
        self._scheduler.start()
        logger.info(f"[Scheduler] Started with {len(self._scheduler.get_jobs())} jobs")

    async def stop(self, timeout: float | None = None):
        """Stop scheduling and give in-flight cycles ``timeout`` seconds to finish."""
        if not self.is_running():
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None

        timeout = settings.shutdown_timeout_seconds if timeout is None else timeout
        try:
            await asyncio.wait_for(self._drain(), timeout=timeout)
        except asyncio.TimeoutError:
            busy = [name for name, lock in self._locks.items() if lock.locked()]
            logger.warning(f"[Scheduler] Abandoning in-flight cycles after {timeout}s: {busy}")
        logger.info("[Scheduler] Stopped")

    async def _drain(self):
        for lock in self._locks.values():
            async with lock:
                pass

    async def trigger(self, name: str) -> CycleReport | None:
        """Run one cycle now. Returns None if that cycle is already in flight."""
        if name not in self.runners:
            raise NotFoundError(f"Unknown cycle: {name}")
        return await self._run_cycle(name)

    async def _run_cycle(self, name: str) -> CycleReport | None:
        lock = self._locks[name]
        if lock.locked():
            logger.warning(f"[Scheduler] Skipping overlapping {name} cycle")
            self._log_cycle(name, "skipped", message="Previous run still in progress")
            return None

        async with lock:
            start = time.monotonic()
            try:
                report = await self.runners[name]()
            except Exception as e:
                duration_ms = int((time.monotonic() - start) * 1000)
                logger.error(f"[Scheduler] {name} cycle failed: {e}", exc_info=True)
                self._log_cycle(name, "error", duration_ms=duration_ms, message=str(e))
                return None

            duration_ms = int((time.monotonic() - start) * 1000)
            if report.processed:
                logger.info(f"[Scheduler] {name}: {report.summary()} in {duration_ms}ms")
            self._log_cycle(name, report.status, report=report, duration_ms=duration_ms)
            return report

    def _log_cycle(
        self,
        name: str,
        status: str,
        report: CycleReport | None = None,
        duration_ms: int | None = None,
        message: str | None = None,
    ):
        """Write a JobLog entry. A failing write must not take the cycle down."""
        try:
            with Session(self.engine) as session:
                session.add(JobLog(
                    cycle=name,
                    status=status,
                    processed=report.processed if report else 0,
                    succeeded=report.succeeded if report else 0,
                    skipped=report.skipped if report else 0,
                    failed=report.failed if report else 0,
                    duration_ms=duration_ms,
                    message=message or (report.summary() if report else None),
                ))
                session.commit()
        except Exception as e:
            logger.warning(f"[Scheduler] Failed to write job log for {name}: {e}")

    async def call_from_thread(self, coro):
        """Await ``coro`` on the loop the scheduler was started on.

        For callers living on another loop, e.g. the Telegram bot thread.
        """
        if self._loop is None:
            coro.close()
            raise NotFoundError("Scheduler has never been started")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return await asyncio.wrap_future(future)

    async def resume(self):
        """Coroutine form of ``start`` so it can be sent to the scheduler's loop."""
        self.start()

    def status(self) -> dict:
        """Return current scheduler state for the API."""
        jobs = self._scheduler.get_jobs() if self.is_running() else []
        return {
            "running": self.is_running(),
            "job_count": len(jobs),
            "in_flight": [name for name, lock in self._locks.items() if lock.locked()],
            "jobs": [
                {
                    "id": j.id,
                    "name": j.name,
                    "next_run": str(j.next_run_time) if j.next_run_time else None,
                    "trigger": str(j.trigger),
                }
                for j in jobs
            ],
        }


_orchestrator: SchedulerOrchestrator | None = None


def get_orchestrator() -> SchedulerOrchestrator:
    """The process-wide orchestrator, wired to the default components."""
    global _orchestrator
    if _orchestrator is None:
        from autotrader.engine.components import get_components

        components = get_components()
        _orchestrator = SchedulerOrchestrator(
            runners={
                CYCLE_POSITION_MONITOR: components.monitor.run,
                CYCLE_ORDER_SYNC: components.reconciler.run,
                CYCLE_SIGNAL_ANALYSIS: components.signal_scheduler.run,
            },
            engine=components.engine,
        )
    return _orchestrator
