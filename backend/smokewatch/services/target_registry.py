"""
Target registry adapters.

The engine only reads targets. The database registry reads the targets
table on every call so additions, removals and enable toggles show up on
the next tick; the static registry serves a fixed in-memory list.
"""
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from smokewatch.errors import StoreError
from smokewatch.models.target import Target
from smokewatch.schemas.target import TargetInfo


class DatabaseTargetRegistry:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def list_enabled(self) -> List[TargetInfo]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Target).where(Target.enabled == True).order_by(Target.id)  # noqa: E712
                )
                return [TargetInfo.model_validate(t) for t in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError("Failed to load enabled targets") from e

    async def get(self, target_id: int) -> Optional[TargetInfo]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(select(Target).where(Target.id == target_id))
                target = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load target {target_id}") from e
        return TargetInfo.model_validate(target) if target else None


class StaticTargetRegistry:
    def __init__(self, targets: Iterable[TargetInfo] = ()):
        self.targets = {t.id: t for t in targets}

    def set(self, target: TargetInfo):
        self.targets[target.id] = target

    def remove(self, target_id: int):
        self.targets.pop(target_id, None)

    async def list_enabled(self) -> List[TargetInfo]:
        return [t for _, t in sorted(self.targets.items()) if t.enabled]

    async def get(self, target_id: int) -> Optional[TargetInfo]:
        return self.targets.get(target_id)
