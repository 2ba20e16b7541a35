"""Test the monitor engine: ping cycles, route jobs, retention and shutdown"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from smokewatch.errors import StoreError, TargetNotFound, ToolFailed
from smokewatch.schemas.probe import PingSample
from smokewatch.schemas.target import TargetInfo
from smokewatch.services.monitor_engine import (
    CLEANUP_JOB_ID, PING_JOB_ID, MonitorEngine, route_job_id,
)
from smokewatch.services.result_store import ResultStore
from tests.fixtures import (
    FakeToolRunner, GNU_PING, GNU_PING_DEAD, MTR_JSON, TRACEROUTE_NUMERIC, slow,
)


async def test_ping_cycle_probes_enabled_targets(engine, store, runner):
    samples = await engine.run_ping_cycle()

    assert sorted(s.target_id for s in samples) == [1, 2]
    assert sorted(c[-1] for c in runner.calls) == ["1.1.1.1", "8.8.8.8"]
    assert len(await store.query_pings(1)) == 1
    assert len(await store.query_pings(2)) == 1
    assert await store.query_pings(3) == []


async def test_ping_cycle_uses_configured_count(engine, runner, test_settings):
    await engine.run_ping_cycle()

    assert all(c[:3] == ["ping", "-c", str(test_settings.PING_COUNT)] for c in runner.calls)


async def test_route_jobs_follow_enabled_targets(engine, registry):
    await engine.run_ping_cycle()
    assert engine.route_target_ids == [1, 2]
    assert engine.scheduler.get_job(route_job_id(1)) is not None

    registry.set(TargetInfo(id=2, name="Cloudflare", host="1.1.1.1", enabled=False))
    registry.set(TargetInfo(id=3, name="Lab switch", host="10.0.0.2", enabled=True))
    await engine.run_ping_cycle()

    assert engine.route_target_ids == [1, 3]
    assert engine.scheduler.get_job(route_job_id(2)) is None

    registry.remove(1)
    await engine.run_ping_cycle()

    assert engine.route_target_ids == [3]


async def test_route_job_is_created_once_per_target(engine):
    await engine.run_ping_cycle()
    first = engine.scheduler.get_job(route_job_id(1))
    await engine.run_ping_cycle()

    assert engine.scheduler.get_job(route_job_id(1)) is first


async def test_route_job_stores_sample(engine, store, runner):
    await engine.run_ping_cycle()

    sample = await engine.run_route_job(1)

    assert sample.tool == "mtr"
    [stored] = await store.query_routes(1)
    assert stored.total_hops == sample.total_hops


async def test_route_job_for_unknown_target_is_noop(engine, store):
    assert await engine.run_route_job(42) is None


async def test_unreachable_target_accumulates_loss_samples(store, registry, test_settings):
    runner = FakeToolRunner({"ping": GNU_PING_DEAD})
    engine = MonitorEngine(store, registry, config=test_settings, runner=runner)

    for _ in range(3):
        await engine.run_ping_cycle()

    samples = await store.query_pings(1)
    assert len(samples) == 3
    assert all(s.packet_loss == 100.0 and not s.is_alive for s in samples)


async def test_missing_ping_binary_still_records_samples(store, registry, test_settings):
    engine = MonitorEngine(store, registry, config=test_settings, runner=FakeToolRunner({}))

    samples = await engine.run_ping_cycle()

    assert len(samples) == 2
    assert all(s.error for s in samples)


class FlakyStore(ResultStore):
    def __init__(self, session_factory, failing_target):
        super().__init__(session_factory)
        self.failing_target = failing_target

    async def append_ping(self, sample):
        if sample.target_id == self.failing_target:
            raise StoreError("disk full")
        await super().append_ping(sample)


async def test_store_error_propagates_after_cycle(session_factory, registry, runner, test_settings):
    store = FlakyStore(session_factory, failing_target=1)
    engine = MonitorEngine(store, registry, config=test_settings, runner=runner)

    with pytest.raises(StoreError):
        await engine.run_ping_cycle()

    # the other target was still probed and stored
    assert len(await store.query_pings(2)) == 1


async def test_trigger_ping(engine, store):
    sample = await engine.trigger_ping(1)

    assert sample.is_alive is True
    assert (await store.latest_ping(1)).avg_rtt == sample.avg_rtt


async def test_trigger_unknown_target(engine):
    with pytest.raises(TargetNotFound):
        await engine.trigger_ping(99)
    with pytest.raises(TargetNotFound):
        await engine.trigger_route(99)


async def test_trigger_route_falls_back(store, registry, test_settings):
    runner = FakeToolRunner({"mtr": ToolFailed("mtr", 1), "traceroute": TRACEROUTE_NUMERIC})
    engine = MonitorEngine(store, registry, config=test_settings, runner=runner)

    sample = await engine.trigger_route(1)

    assert sample.tool == "traceroute"
    assert sample.destination_reached is True
    assert len(await store.query_routes(1)) == 1


async def test_target_is_never_pinged_twice_concurrently(store, registry, test_settings):
    active = {}
    peak = {}

    async def tracked(cmd):
        host = cmd[-1]
        active[host] = active.get(host, 0) + 1
        peak[host] = max(peak.get(host, 0), active[host])
        await asyncio.sleep(0.02)
        active[host] -= 1
        return GNU_PING

    engine = MonitorEngine(store, registry, config=test_settings, runner=FakeToolRunner({"ping": tracked}))

    await asyncio.gather(engine.run_ping_cycle(), engine.trigger_ping(1), engine.trigger_ping(1))

    assert peak["8.8.8.8"] == 1
    assert len(await store.query_pings(1)) == 3


async def test_reenabled_target_is_not_traced_twice_concurrently(store, registry, test_settings):
    active = 0
    peak = 0
    release = asyncio.Event()

    async def tracked(cmd):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await release.wait()
        active -= 1
        return MTR_JSON

    runner = FakeToolRunner({"ping": GNU_PING, "mtr": tracked})
    engine = MonitorEngine(store, registry, config=test_settings, runner=runner)
    await engine.run_ping_cycle()

    first = asyncio.create_task(engine.trigger_route(1))
    await asyncio.sleep(0.01)
    registry.set(TargetInfo(id=1, name="Google DNS", host="8.8.8.8", enabled=False))
    await engine.run_ping_cycle()
    registry.set(TargetInfo(id=1, name="Google DNS", host="8.8.8.8", enabled=True))
    await engine.run_ping_cycle()

    second = asyncio.create_task(engine.trigger_route(1))
    await asyncio.sleep(0.01)
    release.set()
    await asyncio.gather(first, second)

    assert peak == 1
    assert len(await store.query_routes(1)) == 2


async def test_probe_locks_are_released_after_use(engine, registry):
    await engine.run_ping_cycle()
    await engine.trigger_route(1)
    registry.remove(1)
    registry.remove(2)
    await engine.run_ping_cycle()

    assert len(engine._ping_locks) == 0
    assert len(engine._route_locks) == 0


async def test_cleanup_applies_retention(engine, store, test_settings):
    now = datetime.now(timezone.utc)
    old = PingSample.failed(1, 5, timestamp=now - timedelta(days=test_settings.RETENTION_DAYS + 1))
    recent = PingSample.failed(1, 5, timestamp=now - timedelta(days=1))
    await store.append_ping(old)
    await store.append_ping(recent)

    deleted = await engine.run_cleanup()

    assert deleted == 1
    [kept] = await store.query_pings(1)
    assert kept.timestamp == recent.timestamp


async def test_timeline_and_statistics(engine, store):
    now = datetime.now(timezone.utc)
    for minutes, rtt in ((3, 10.0), (2, 10.0), (1, 10.0)):
        await store.append_ping(PingSample(
            target_id=1, timestamp=now - timedelta(minutes=minutes), packets_sent=5,
            packets_received=5, packet_loss=0.0, min_rtt=rtt, avg_rtt=rtt, max_rtt=rtt, jitter=0.0,
        ))
    await store.append_ping(PingSample.failed(1, 5, timestamp=now - timedelta(seconds=10)))

    timeline = await engine.timeline(1, hours=1)

    assert [p.anomaly for p in timeline.points] == ["none", "none", "none", "loss"]
    assert timeline.current_rtt is None

    stats = await engine.statistics(1, hours=1)
    assert stats.total_checks == 4
    assert stats.uptime_percentage == pytest.approx(75.0)


async def test_start_registers_jobs_and_shutdown_stops(store, test_settings):
    from smokewatch.services.target_registry import StaticTargetRegistry

    engine = MonitorEngine(store, StaticTargetRegistry(), config=test_settings, runner=FakeToolRunner({}))
    engine.start()
    try:
        assert engine.scheduler.running
        assert engine.scheduler.get_job(PING_JOB_ID) is not None
        assert engine.scheduler.get_job(CLEANUP_JOB_ID) is not None
    finally:
        await engine.shutdown()

    assert not engine.scheduler.running


async def test_shutdown_kills_probes_past_grace(store, registry, test_settings):
    runner = FakeToolRunner({"ping": slow(GNU_PING, 10)})
    engine = MonitorEngine(store, registry, config=test_settings, runner=runner)

    cycle = asyncio.create_task(engine.run_ping_cycle())
    await asyncio.sleep(0.01)
    await engine.shutdown(grace=0.05)

    assert runner.killed == 1
    samples = await asyncio.wait_for(cycle, timeout=1)
    assert samples == []
    assert await engine.run_ping_cycle() == []


async def test_shutdown_waits_for_quick_probes(store, registry, test_settings):
    runner = FakeToolRunner({"ping": slow(GNU_PING, 0.02)})
    engine = MonitorEngine(store, registry, config=test_settings, runner=runner)

    cycle = asyncio.create_task(engine.run_ping_cycle())
    await asyncio.sleep(0.005)
    await engine.shutdown(grace=1)

    assert runner.killed == 0
    assert len(await cycle) == 2


async def test_timeline_start_follows_sample_limit(engine, store):
    now = datetime.now(timezone.utc)
    stamps = [now - timedelta(minutes=m) for m in (30, 20, 10)]
    for ts in stamps:
        await store.append_ping(PingSample(
            target_id=1, timestamp=ts, packets_sent=5, packets_received=5, packet_loss=0.0,
            min_rtt=10.0, avg_rtt=10.0, max_rtt=10.0, jitter=0.0,
        ))

    timeline = await engine.timeline(1, hours=24, limit=2)

    assert [p.timestamp for p in timeline.points] == stamps[1:]
    assert timeline.start == stamps[1]

    full = await engine.timeline(1, hours=24, limit=10)
    assert len(full.points) == 3
    assert full.start < stamps[0]
