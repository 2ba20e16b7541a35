"""
Probe API
Thin HTTP surface over the monitor engine: sample history, on-demand probes,
anomaly timeline and statistics per target.
"""
from datetime import datetime, timedelta, timezone
from typing import List
from fastapi import APIRouter, Depends, Query, Request

from smokewatch.schemas.probe import (
    PingSample, RouteSample, TimelineResponse, PingStatistics,
)
from smokewatch.services.monitor_engine import MonitorEngine

router = APIRouter(prefix="/api/targets", tags=["Probes"])


def get_engine(request: Request) -> MonitorEngine:
    return request.app.state.engine


@router.get("/{target_id}/ping", response_model=List[PingSample])
async def list_ping_results(
    target_id: int,
    hours: int = Query(24, ge=1, le=24 * 90),
    limit: int = Query(1000, ge=1, le=10000),
    engine: MonitorEngine = Depends(get_engine),
):
    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    return await engine.store.query_pings(target_id, since=since, limit=limit)


@router.post("/{target_id}/ping", response_model=PingSample)
async def run_ping(target_id: int, engine: MonitorEngine = Depends(get_engine)):
    return await engine.trigger_ping(target_id)


@router.get("/{target_id}/routes", response_model=List[RouteSample])
async def list_route_results(
    target_id: int,
    limit: int = Query(50, ge=1, le=1000),
    engine: MonitorEngine = Depends(get_engine),
):
    return await engine.store.query_routes(target_id, limit=limit)


@router.post("/{target_id}/routes", response_model=RouteSample)
async def run_route(target_id: int, engine: MonitorEngine = Depends(get_engine)):
    return await engine.trigger_route(target_id)


@router.get("/{target_id}/timeline", response_model=TimelineResponse)
async def get_timeline(
    target_id: int,
    hours: int = Query(24, ge=1, le=24 * 90),
    engine: MonitorEngine = Depends(get_engine),
):
    return await engine.timeline(target_id, hours=hours)


@router.get("/{target_id}/statistics", response_model=PingStatistics)
async def get_statistics(
    target_id: int,
    hours: int = Query(24, ge=1, le=24 * 90),
    engine: MonitorEngine = Depends(get_engine),
):
    return await engine.statistics(target_id, hours=hours)
