"""
Result Store - append-only time series of ping and route samples.

Every write is a single-row insert in its own transaction. Range queries
are a single SELECT, so they only ever see committed state and never a
half-applied retention delete.
"""
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional, Union

from sqlalchemy import select, delete, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from smokewatch.errors import StoreError
from smokewatch.models.ping import PingResult
from smokewatch.models.route import RouteResult
from smokewatch.schemas.probe import Hop, PingSample, RouteSample

logger = logging.getLogger(__name__)


def _as_utc(ts: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; everything is stored as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _ping_from_row(row: PingResult) -> PingSample:
    return PingSample(
        target_id=row.target_id,
        timestamp=_as_utc(row.timestamp),
        packets_sent=row.packets_sent,
        packets_received=row.packets_received,
        packet_loss=row.packet_loss,
        min_rtt=row.min_rtt,
        avg_rtt=row.avg_rtt,
        max_rtt=row.max_rtt,
        jitter=row.jitter,
        error=row.error,
    )


def _route_from_row(row: RouteResult) -> RouteSample:
    return RouteSample(
        target_id=row.target_id,
        timestamp=_as_utc(row.timestamp),
        hops=[Hop(**hop) for hop in json.loads(row.hops or "[]")],
        destination_reached=row.destination_reached,
        total_hops=row.total_hops,
        tool=row.tool,
        error=row.error,
    )


class ResultStore:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def append(self, sample: Union[PingSample, RouteSample]) -> None:
        if isinstance(sample, PingSample):
            await self.append_ping(sample)
        elif isinstance(sample, RouteSample):
            await self.append_route(sample)
        else:
            raise TypeError(f"Unsupported sample type: {type(sample).__name__}")

    async def append_ping(self, sample: PingSample) -> None:
        row = PingResult(
            target_id=sample.target_id,
            timestamp=sample.timestamp,
            packets_sent=sample.packets_sent,
            packets_received=sample.packets_received,
            packet_loss=sample.packet_loss,
            min_rtt=sample.min_rtt,
            avg_rtt=sample.avg_rtt,
            max_rtt=sample.max_rtt,
            jitter=sample.jitter,
            is_alive=sample.is_alive,
            error=sample.error,
        )
        await self._insert(row, f"ping sample for target {sample.target_id}")

    async def append_route(self, sample: RouteSample) -> None:
        row = RouteResult(
            target_id=sample.target_id,
            timestamp=sample.timestamp,
            hops=json.dumps([hop.model_dump() for hop in sample.hops]),
            destination_reached=sample.destination_reached,
            total_hops=sample.total_hops,
            tool=sample.tool,
            error=sample.error,
        )
        await self._insert(row, f"route sample for target {sample.target_id}")

    async def _insert(self, row, what: str) -> None:
        try:
            async with self.session_factory() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to store %s: %s", what, e)
            raise StoreError(f"Failed to store {what}") from e

    async def query_pings(self, target_id: int, since: Optional[datetime] = None,
                          limit: Optional[int] = None) -> List[PingSample]:
        """Ping samples for a target, newest first."""
        q = select(PingResult).where(PingResult.target_id == target_id)
        if since is not None:
            q = q.where(PingResult.timestamp >= since)
        q = q.order_by(desc(PingResult.timestamp), desc(PingResult.id))
        if limit is not None:
            q = q.limit(limit)
        rows = await self._select(q, f"ping samples for target {target_id}")
        return [_ping_from_row(r) for r in rows]

    async def query_routes(self, target_id: int, since: Optional[datetime] = None,
                           limit: Optional[int] = None) -> List[RouteSample]:
        """Route samples for a target, newest first."""
        q = select(RouteResult).where(RouteResult.target_id == target_id)
        if since is not None:
            q = q.where(RouteResult.timestamp >= since)
        q = q.order_by(desc(RouteResult.timestamp), desc(RouteResult.id))
        if limit is not None:
            q = q.limit(limit)
        rows = await self._select(q, f"route samples for target {target_id}")
        return [_route_from_row(r) for r in rows]

    async def latest_ping(self, target_id: int) -> Optional[PingSample]:
        samples = await self.query_pings(target_id, limit=1)
        return samples[0] if samples else None

    async def _select(self, query, what: str):
        try:
            async with self.session_factory() as db:
                result = await db.execute(query)
                return result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to load %s: %s", what, e)
            raise StoreError(f"Failed to load {what}") from e

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete ping and route samples older than cutoff in one transaction. Returns rows deleted."""
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    pings = await db.execute(delete(PingResult).where(PingResult.timestamp < cutoff))
                    routes = await db.execute(delete(RouteResult).where(RouteResult.timestamp < cutoff))
        except SQLAlchemyError as e:
            logger.error("Retention cleanup failed: %s", e)
            raise StoreError("Retention cleanup failed") from e

        deleted = (pings.rowcount or 0) + (routes.rowcount or 0)
        if deleted:
            logger.info("Retention cleanup removed %d samples older than %s", deleted, cutoff.isoformat())
        return deleted
