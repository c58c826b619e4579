"""SQLAlchemy-backed repositories.

Each repository wraps one ``AsyncSession``.  Storage failures are rolled
back and re-raised as :class:`RepositoryError` so services only ever see the
Mnemora error taxonomy.
"""

from __future__ import annotations

import dataclasses
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mnemora.domain.fields import EntityType, new_id
from mnemora.domain.session_notes import FeedbackType
from mnemora.errors import RepositoryError
from mnemora.models import Campaign, Continuity, Drift, Entity, QuickNote, SessionFeedback, World
from mnemora.utils.clock import utcnow


@asynccontextmanager
async def storage_errors(db: AsyncSession, message: str):
    try:
        yield
    except SQLAlchemyError as e:
        await db.rollback()
        raise RepositoryError(message, cause=e) from e


@dataclasses.dataclass
class EntityFilter:
    world_id: Optional[str] = None
    campaign_id: Optional[str] = None
    continuity_id: Optional[str] = None
    types: Sequence[EntityType] = ()


@dataclasses.dataclass
class Page:
    items: List[Entity]
    total: int


class EntityRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _apply_filter(self, stmt, flt: EntityFilter):
        if flt.world_id:
            stmt = stmt.where(Entity.world_id == flt.world_id)
        if flt.campaign_id:
            stmt = stmt.where(Entity.campaign_id == flt.campaign_id)
        if flt.continuity_id:
            stmt = stmt.where(Entity.continuity_id == flt.continuity_id)
        if flt.types:
            stmt = stmt.where(Entity.type.in_(list(flt.types)))
        return stmt

    async def find_by_id(self, entity_id: str) -> Optional[Entity]:
        async with storage_errors(self.db, "Failed to find entity"):
            return await self.db.get(Entity, entity_id)

    async def find_by_filter(self, flt: EntityFilter, limit: int, offset: int = 0) -> Page:
        async with storage_errors(self.db, "Failed to query entities"):
            total = await self.count(flt)
            stmt = self._apply_filter(select(Entity), flt).order_by(Entity.created_at, Entity.id)
            result = await self.db.execute(stmt.limit(limit).offset(offset))
            return Page(items=list(result.scalars().all()), total=total)

    async def count(self, flt: EntityFilter) -> int:
        async with storage_errors(self.db, "Failed to count entities"):
            stmt = self._apply_filter(select(func.count()).select_from(Entity), flt)
            return (await self.db.execute(stmt)).scalar_one()

    async def save(self, entity: Entity) -> None:
        async with storage_errors(self.db, "Failed to save entity"):
            self.db.add(entity)
            await self.db.commit()

    async def delete(self, entity: Entity) -> None:
        async with storage_errors(self.db, "Failed to delete entity"):
            await self.db.delete(entity)
            await self.db.commit()


class ContinuityRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, continuity_id: str) -> Optional[Continuity]:
        async with storage_errors(self.db, "Failed to find continuity"):
            return await self.db.get(Continuity, continuity_id)

    async def exists(self, continuity_id: str) -> bool:
        return await self.find_by_id(continuity_id) is not None

    async def list_by_world(self, world_id: str) -> List[Continuity]:
        async with storage_errors(self.db, "Failed to list continuities"):
            result = await self.db.execute(
                select(Continuity).where(Continuity.world_id == world_id).order_by(Continuity.created_at)
            )
            return list(result.scalars().all())

    async def count_branched_at(self, event_id: str) -> int:
        async with storage_errors(self.db, "Failed to count branches"):
            result = await self.db.execute(
                select(func.count()).select_from(Continuity).where(Continuity.branch_point_event_id == event_id)
            )
            return result.scalar_one()

    async def save(self, continuity: Continuity) -> None:
        async with storage_errors(self.db, "Failed to save continuity"):
            self.db.add(continuity)
            await self.db.commit()

    async def delete(self, continuity: Continuity) -> None:
        async with storage_errors(self.db, "Failed to delete continuity"):
            await self.db.delete(continuity)
            await self.db.commit()


class WorldRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def exists(self, world_id: str) -> bool:
        async with storage_errors(self.db, "Failed to check world existence"):
            return await self.db.get(World, world_id) is not None


class CampaignRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def exists(self, campaign_id: str) -> bool:
        async with storage_errors(self.db, "Failed to check campaign existence"):
            return await self.db.get(Campaign, campaign_id) is not None

    async def count_by_continuity(self, continuity_id: str) -> int:
        async with storage_errors(self.db, "Failed to count campaigns"):
            result = await self.db.execute(
                select(func.count()).select_from(Campaign).where(Campaign.continuity_id == continuity_id)
            )
            return result.scalar_one()


class DriftRepository:
    """Drift rows are unique per ``(entity_id, continuity_id, field)``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, drift_id: str) -> Optional[Drift]:
        async with storage_errors(self.db, "Failed to find drift"):
            return await self.db.get(Drift, drift_id)

    async def find_for_field(self, entity_id: str, continuity_id: str, field: str) -> Optional[Drift]:
        async with storage_errors(self.db, "Failed to find drift"):
            result = await self.db.execute(
                select(Drift).where(
                    Drift.entity_id == entity_id,
                    Drift.continuity_id == continuity_id,
                    Drift.field == field,
                )
            )
            return result.scalar_one_or_none()

    async def find_unresolved(self, entity_id: Optional[str] = None,
                              continuity_id: Optional[str] = None) -> List[Drift]:
        stmt = select(Drift).where(Drift.resolved_at.is_(None))
        if entity_id:
            stmt = stmt.where(Drift.entity_id == entity_id)
        if continuity_id:
            stmt = stmt.where(Drift.continuity_id == continuity_id)
        async with storage_errors(self.db, "Failed to find unresolved drifts"):
            result = await self.db.execute(stmt.order_by(Drift.detected_at.desc()))
            return list(result.scalars().all())

    async def find_all(self, entity_id: Optional[str] = None,
                       continuity_id: Optional[str] = None) -> List[Drift]:
        stmt = select(Drift)
        if entity_id:
            stmt = stmt.where(Drift.entity_id == entity_id)
        if continuity_id:
            stmt = stmt.where(Drift.continuity_id == continuity_id)
        async with storage_errors(self.db, "Failed to list drifts"):
            result = await self.db.execute(stmt.order_by(Drift.detected_at.desc()))
            return list(result.scalars().all())

    def add(self, drift: Drift) -> None:
        self.db.add(drift)

    async def resolve_by_match(self, entity_id: str, continuity_id: str, field: str,
                               resolved_at: Optional[datetime] = None) -> int:
        """Mark the open drift for one field resolved; returns rows touched."""
        async with storage_errors(self.db, "Failed to resolve drift by match"):
            result = await self.db.execute(
                update(Drift)
                .where(
                    Drift.entity_id == entity_id,
                    Drift.continuity_id == continuity_id,
                    Drift.field == field,
                    Drift.resolved_at.is_(None),
                )
                .values(resolved_at=resolved_at or utcnow())
                .execution_options(synchronize_session="fetch")
            )
            return result.rowcount or 0

    async def delete_by_entity(self, entity_id: str) -> None:
        async with storage_errors(self.db, "Failed to delete drifts by entity"):
            await self.db.execute(delete(Drift).where(Drift.entity_id == entity_id))

    async def commit(self) -> None:
        async with storage_errors(self.db, "Failed to save drifts"):
            await self.db.commit()


class QuickNoteRepository:
    """Quick notes and Stars & Wishes feedback, both keyed by session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_session(self, session_id: str) -> List[QuickNote]:
        async with storage_errors(self.db, "Failed to get quick notes"):
            result = await self.db.execute(
                select(QuickNote)
                .where(QuickNote.session_id == session_id)
                .order_by(QuickNote.captured_at, QuickNote.id)
            )
            return list(result.scalars().all())

    async def save(self, note: QuickNote) -> None:
        async with storage_errors(self.db, "Failed to save quick note"):
            self.db.add(note)
            await self.db.commit()

    async def delete(self, note_id: str) -> int:
        async with storage_errors(self.db, "Failed to delete quick note"):
            result = await self.db.execute(delete(QuickNote).where(QuickNote.id == note_id))
            await self.db.commit()
            return result.rowcount or 0

    async def delete_all_for_session(self, session_id: str) -> None:
        async with storage_errors(self.db, "Failed to delete quick notes"):
            await self.db.execute(delete(QuickNote).where(QuickNote.session_id == session_id))
            await self.db.execute(delete(SessionFeedback).where(SessionFeedback.session_id == session_id))

    async def find_feedback(self, session_id: str) -> List[SessionFeedback]:
        async with storage_errors(self.db, "Failed to find session feedback"):
            result = await self.db.execute(
                select(SessionFeedback)
                .where(SessionFeedback.session_id == session_id)
                .order_by(SessionFeedback.feedback_type, SessionFeedback.position)
            )
            return list(result.scalars().all())

    async def replace_feedback(self, session_id: str, stars: List[str], wishes: List[str],
                               collected_at: datetime) -> None:
        async with storage_errors(self.db, "Failed to save feedback"):
            await self.db.execute(delete(SessionFeedback).where(SessionFeedback.session_id == session_id))
            for kind, entries in ((FeedbackType.STAR, stars), (FeedbackType.WISH, wishes)):
                for position, content in enumerate(entries):
                    self.db.add(SessionFeedback(
                        id=new_id(),
                        session_id=session_id,
                        feedback_type=kind.value,
                        content=content,
                        position=position,
                        collected_at=collected_at,
                    ))
            await self.db.commit()
