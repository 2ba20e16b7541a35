"""
Monitor Engine - schedules ping and route probes for every enabled target.

Two independent cadences per target:
  * ping: one scheduler job ticks every PING_INTERVAL_MS and probes all
    enabled targets concurrently;
  * route: one job per target (mtr with traceroute fallback), created the
    first time the target is seen enabled, fired immediately and then every
    MTR_INTERVAL_SECONDS, removed when the target is disabled or deleted.
A daily cleanup job applies the retention window.

A per-target lock for each cadence guarantees a target is never probed
twice concurrently, including on-demand triggers from the API.
"""
import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Set

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from smokewatch.config import Settings, settings as default_settings
from smokewatch.errors import StoreError, TargetNotFound
from smokewatch.schemas.probe import (
    PingSample, PingStatistics, RouteSample, TimelinePoint, TimelineResponse,
)
from smokewatch.schemas.target import TargetInfo
from smokewatch.services.anomaly_detector import compute_timeline, select_window
from smokewatch.services.ping_monitor import ping_target
from smokewatch.services.ping_statistics import summarize_pings
from smokewatch.services.result_store import ResultStore
from smokewatch.services.route_tracer import RouteStrategy, default_route_strategies, trace_target
from smokewatch.services.tool_runner import ToolRunner

logger = logging.getLogger(__name__)

PING_JOB_ID = "ping_cycle"
CLEANUP_JOB_ID = "retention_cleanup"


def route_job_id(target_id: int) -> str:
    return f"route:{target_id}"


class TargetLocks:
    """
    One asyncio.Lock per target id, kept only while some caller holds or
    waits on it. A target removed and re-added mid-probe still shares the
    lock of the probe in flight.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Counter = Counter()

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, target_id: int) -> bool:
        return target_id in self._locks

    @asynccontextmanager
    async def hold(self, target_id: int):
        lock = self._locks.setdefault(target_id, asyncio.Lock())
        self._users[target_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[target_id] -= 1
            if not self._users[target_id]:
                del self._users[target_id]
                del self._locks[target_id]


class MonitorEngine:
    def __init__(
        self,
        store: ResultStore,
        registry,
        config: Optional[Settings] = None,
        runner: Optional[ToolRunner] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        route_strategies: Optional[Sequence[RouteStrategy]] = None,
    ):
        self.store = store
        self.registry = registry
        self.config = config or default_settings
        self.runner = runner or ToolRunner()
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self.route_strategies = list(route_strategies) if route_strategies is not None \
            else default_route_strategies(self.config)

        self._targets: Dict[int, TargetInfo] = {}
        self._route_jobs: Dict[int, Job] = {}
        self._ping_locks = TargetLocks()
        self._route_locks = TargetLocks()
        self._semaphore = asyncio.Semaphore(self.config.PROBE_CONCURRENCY)
        self._inflight: Set[asyncio.Task] = set()
        self._stopping = False

    # ── lifecycle ────────────────────────────────────────────────────────────

    def start(self):
        now = datetime.now(timezone.utc)
        self.scheduler.add_job(
            self.run_ping_cycle,
            "interval",
            seconds=self.config.PING_INTERVAL_MS / 1000,
            id=PING_JOB_ID,
            next_run_time=now,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_cleanup,
            "interval",
            hours=self.config.CLEANUP_INTERVAL_HOURS,
            id=CLEANUP_JOB_ID,
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            "Monitor engine started (ping every %dms x%d, route every %ds, retention %dd)",
            self.config.PING_INTERVAL_MS, self.config.PING_COUNT,
            self.config.MTR_INTERVAL_SECONDS, self.config.RETENTION_DAYS,
        )

    async def shutdown(self, grace: Optional[float] = None):
        """
        Stop scheduling, give in-flight probes `grace` seconds to finish,
        then kill their subprocesses and cancel what is left.
        """
        grace = self.config.SHUTDOWN_GRACE_SECONDS if grace is None else grace
        self._stopping = True
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self._route_jobs.clear()

        pending = {t for t in self._inflight if not t.done()}
        if pending:
            logger.info("Waiting up to %.1fs for %d in-flight probe(s)", grace, len(pending))
            _, pending = await asyncio.wait(pending, timeout=grace)
        if pending:
            self.runner.kill_all()
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Monitor engine stopped")

    @property
    def route_target_ids(self) -> List[int]:
        return sorted(self._route_jobs)

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    # ── target snapshot ──────────────────────────────────────────────────────

    def _sync_targets(self, targets: Sequence[TargetInfo]):
        """Refresh the snapshot and reconcile per-target route jobs with it."""
        active = {t.id: t for t in targets}

        for target_id in list(self._route_jobs):
            if target_id not in active:
                job = self._route_jobs.pop(target_id)
                try:
                    job.remove()
                except JobLookupError:
                    pass
                logger.info("Stopped route probing for target %d", target_id)

        if not self._stopping:
            now = datetime.now(timezone.utc)
            for target in targets:
                if target.id in self._route_jobs:
                    continue
                self._route_jobs[target.id] = self.scheduler.add_job(
                    self.run_route_job,
                    "interval",
                    seconds=self.config.MTR_INTERVAL_SECONDS,
                    args=[target.id],
                    id=route_job_id(target.id),
                    next_run_time=now,
                    max_instances=1,
                    coalesce=True,
                    replace_existing=True,
                )
                logger.info("Scheduled route probing for %s (%s)", target.name, target.host)

        self._targets = active

    # ── probes ───────────────────────────────────────────────────────────────

    async def _ping_and_store(self, target: TargetInfo) -> PingSample:
        async with self._ping_locks.hold(target.id):
            async with self._semaphore:
                sample = await ping_target(
                    target, self.runner,
                    count=self.config.PING_COUNT,
                    timeout=self.config.PING_TIMEOUT_SECONDS,
                    ping_bin=self.config.PING_BIN,
                )
                await self.store.append_ping(sample)

        if sample.is_alive:
            logger.debug("%s: RTT=%.2fms, Loss=%.1f%%", target.name, sample.avg_rtt or 0, sample.packet_loss)
        else:
            logger.info("%s: unreachable, Loss=%.1f%%", target.name, sample.packet_loss)
        return sample

    async def _route_and_store(self, target: TargetInfo) -> RouteSample:
        async with self._route_locks.hold(target.id):
            async with self._semaphore:
                sample = await trace_target(target, self.runner, self.route_strategies)
                await self.store.append_route(sample)

        if sample.tool:
            logger.info("%s completed for %s (%d hops)", sample.tool, target.name, sample.total_hops)
        return sample

    async def run_ping_cycle(self) -> List[PingSample]:
        """One ping tick over all enabled targets. Re-raises the first StoreError after the tick."""
        if self._stopping:
            return []
        targets = await self.registry.list_enabled()
        self._sync_targets(targets)
        if not targets:
            logger.info("No enabled targets")
            return []

        tasks = [self._track(self._ping_and_store(t)) for t in targets]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        samples: List[PingSample] = []
        store_error: Optional[StoreError] = None
        for target, result in zip(targets, results):
            if isinstance(result, PingSample):
                samples.append(result)
            elif isinstance(result, StoreError):
                logger.error("Storing ping result for %s failed: %s", target.name, result)
                store_error = store_error or result
            elif isinstance(result, asyncio.CancelledError):
                logger.info("Ping for %s cancelled", target.name)
            elif isinstance(result, BaseException):
                logger.error("Ping for %s raised %r", target.name, result)

        logger.info("Ping cycle complete: %d/%d targets probed", len(samples), len(targets))
        if store_error:
            raise store_error
        return samples

    async def run_route_job(self, target_id: int) -> Optional[RouteSample]:
        target = self._targets.get(target_id)
        if target is None or self._stopping:
            return None
        return await self._track(self._route_and_store(target))

    async def run_cleanup(self) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.config.RETENTION_DAYS)
        return await self.store.delete_older_than(cutoff)

    # ── on-demand operations ─────────────────────────────────────────────────

    async def _get_target(self, target_id: int) -> TargetInfo:
        target = await self.registry.get(target_id)
        if target is None:
            raise TargetNotFound(target_id)
        return target

    async def trigger_ping(self, target_id: int) -> PingSample:
        target = await self._get_target(target_id)
        return await self._track(self._ping_and_store(target))

    async def trigger_route(self, target_id: int) -> RouteSample:
        target = await self._get_target(target_id)
        return await self._track(self._route_and_store(target))

    @staticmethod
    def compute_timeline(samples: Sequence[PingSample]) -> List[TimelinePoint]:
        return compute_timeline(samples)

    async def timeline(self, target_id: int, hours: int = 24, limit: int = 5000) -> TimelineResponse:
        await self._get_target(target_id)
        end = datetime.now(timezone.utc)
        start = end - timedelta(hours=hours)
        samples = await self.store.query_pings(target_id, since=start, limit=limit)
        if len(samples) >= limit:
            # newest first; the window only reaches back as far as the limit allows
            start = samples[-1].timestamp
            logger.debug("Timeline for target %d truncated to %d samples since %s",
                         target_id, limit, start.isoformat())
        latest = await self.store.latest_ping(target_id)
        return TimelineResponse(
            target_id=target_id,
            start=start,
            end=end,
            points=compute_timeline(select_window(samples, start, end)),
            current_rtt=latest.avg_rtt if latest else None,
        )

    async def statistics(self, target_id: int, hours: int = 24) -> PingStatistics:
        await self._get_target(target_id)
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        samples = await self.store.query_pings(target_id, since=since)
        return summarize_pings(target_id, samples)
