"""
Drift detection.

A drift is an entity field whose stored value no longer matches what the
Events of a continuity say it should be.  Detection reuses
:func:`resolve_latest`, so the Propagator and the Detector always agree on
the canonical value.

Policy:

* mismatch, no row            -> new open drift
* mismatch, open row          -> figures updated in place, ``detected_at`` kept
* mismatch, resolved row      -> row reopened with a fresh ``detected_at``
* match (or no claim), open   -> auto-resolved
* explicit ``resolve_drift``  -> dismissed until the next mismatch
"""

from __future__ import annotations

import dataclasses
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mnemora.config import get_settings
from mnemora.domain.fields import EntityType, new_id, parse_id
from mnemora.domain.routing import is_tracked_field, read_field_value
from mnemora.domain.timeline import TimelineEntry, group_by_continuity, resolve_latest
from mnemora.errors import NotFoundError
from mnemora.models import Drift, Entity
from mnemora.repositories import DriftRepository, EntityFilter, EntityRepository
from mnemora.schemas.drift import ListDriftsRequest, ResolveDriftRequest
from mnemora.utils.clock import utcnow
from mnemora.utils.logging_config import get_logger

logger = get_logger("mnemora.drift")


@dataclasses.dataclass
class DriftCheckResult:
    detected: int = 0
    resolved: int = 0


class DriftDetector:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], scan_limit: Optional[int] = None):
        self.session_factory = session_factory
        self.scan_limit = scan_limit or get_settings().event_scan_limit

    async def check_for_drifts(
        self,
        entity_id: str,
        world_id: str,
        changed_fields: Optional[Iterable[str]] = None,
    ) -> DriftCheckResult:
        """Compare an entity's stored fields against every continuity's timeline.

        ``changed_fields=None`` checks every field the timeline mentions for
        the entity.
        """
        result = DriftCheckResult()
        async with self.session_factory() as db:
            entity = await EntityRepository(db).find_by_id(entity_id)
            if entity is None:
                return result

            page = await EntityRepository(db).find_by_filter(
                EntityFilter(world_id=world_id, continuity_id=entity.continuity_id, types=[EntityType.EVENT]),
                limit=self.scan_limit,
            )
            if page.total > self.scan_limit:
                logger.warning(
                    "event scan truncated",
                    extra={"entity_id": entity.id,
                           "metadata": {"world_id": world_id, "total": page.total, "limit": self.scan_limit}},
                )
            grouped = group_by_continuity(TimelineEntry.from_event(e) for e in page.items if e.continuity_id)

            drifts = DriftRepository(db)
            for continuity_id, entries in grouped.items():
                for field in self._fields_to_check(entity, entries, changed_fields):
                    await self._check_field(drifts, entity, continuity_id, field, entries, result)

            await drifts.commit()

        if result.detected or result.resolved:
            logger.info(
                "drift check complete",
                extra={"entity_id": entity_id,
                       "metadata": {"detected": result.detected, "resolved": result.resolved}},
            )
        return result

    @staticmethod
    def _fields_to_check(entity: Entity, entries: List[TimelineEntry],
                         changed_fields: Optional[Iterable[str]]) -> List[str]:
        if changed_fields is None:
            seen: dict[str, None] = {}
            for entry in entries:
                for outcome in entry.outcomes:
                    if outcome.entity_id == entity.id:
                        seen.setdefault(outcome.field, None)
            candidates = list(seen)
        else:
            candidates = list(dict.fromkeys(changed_fields))
        return [field for field in candidates if is_tracked_field(entity, field)]

    async def _check_field(self, drifts: DriftRepository, entity: Entity, continuity_id: str, field: str,
                           entries: List[TimelineEntry], result: DriftCheckResult) -> None:
        winner = resolve_latest(entries, entity.id, field)
        current = read_field_value(entity, field)

        if winner is None or current == winner.value:
            resolved = await drifts.resolve_by_match(entity.id, continuity_id, field)
            if resolved:
                result.resolved += resolved
                logger.info("drift resolved by match",
                            extra={"entity_id": entity.id, "continuity_id": continuity_id,
                                   "metadata": {"field": field}})
            return

        existing = await drifts.find_for_field(entity.id, continuity_id, field)
        if existing is None:
            drifts.add(Drift(
                id=new_id(),
                entity_id=entity.id,
                continuity_id=continuity_id,
                field=field,
                event_derived_value=winner.value,
                current_value=current,
                detected_at=utcnow(),
                resolved_at=None,
            ))
        elif existing.is_resolved:
            existing.event_derived_value = winner.value
            existing.current_value = current
            existing.detected_at = utcnow()
            existing.resolved_at = None
        else:
            existing.event_derived_value = winner.value
            existing.current_value = current
            return

        result.detected += 1
        logger.info(
            "drift detected",
            extra={"entity_id": entity.id, "continuity_id": continuity_id,
                   "metadata": {"field": field, "event_derived_value": winner.value, "current_value": current}},
        )

    async def list_drifts(self, request: ListDriftsRequest) -> List[Drift]:
        entity_id = parse_id(request.entity_id, "entity_id", "Entity ID") if request.entity_id else None
        continuity_id = (
            parse_id(request.continuity_id, "continuity_id", "Continuity ID") if request.continuity_id else None
        )
        async with self.session_factory() as db:
            drifts = DriftRepository(db)
            if request.unresolved_only:
                return await drifts.find_unresolved(entity_id=entity_id, continuity_id=continuity_id)
            return await drifts.find_all(entity_id=entity_id, continuity_id=continuity_id)

    async def resolve_drift(self, request: ResolveDriftRequest) -> Drift:
        """Dismiss a drift.  Resolving an already-resolved drift is a no-op."""
        drift_id = parse_id(request.drift_id, "drift_id", "Drift ID")
        async with self.session_factory() as db:
            drifts = DriftRepository(db)
            drift = await drifts.find_by_id(drift_id)
            if drift is None:
                raise NotFoundError("Drift", drift_id)
            if not drift.is_resolved:
                drift.resolved_at = utcnow()
                await drifts.commit()
                logger.info("drift dismissed",
                            extra={"entity_id": drift.entity_id, "continuity_id": drift.continuity_id,
                                   "metadata": {"drift_id": drift.id, "field": drift.field}})
            return drift
