"""
Event outcome propagation.

Given an Event, recompute the canonical value of every ``(entity, field)``
pair the Event itself declares and write the winner onto the target entity.
Propagation is best-effort: each pair is applied in its own session and
commit, and a failing pair becomes a warning instead of aborting the rest.
"""

from __future__ import annotations

import dataclasses
import time
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mnemora.config import get_settings
from mnemora.domain.fields import EntityType, is_valid_id
from mnemora.domain.routing import FieldRoutingError, apply_field_value
from mnemora.domain.timeline import ResolvedValue, TimelineEntry, resolve_latest, touched_pairs
from mnemora.errors import DomainValidationError, RepositoryError
from mnemora.models import Entity
from mnemora.repositories import EntityFilter, EntityRepository
from mnemora.utils.logging_config import get_logger

logger = get_logger("mnemora.propagation")


@dataclasses.dataclass(frozen=True)
class AppliedOutcome:
    entity_id: str
    field: str
    to_value: str
    event_id: str


@dataclasses.dataclass(frozen=True)
class PropagationWarning:
    entity_id: str
    field: str
    reason: str


@dataclasses.dataclass
class PropagationResult:
    applied: List[AppliedOutcome] = dataclasses.field(default_factory=list)
    warnings: List[PropagationWarning] = dataclasses.field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def applied_entity_ids(self) -> List[str]:
        seen: dict[str, None] = {}
        for item in self.applied:
            seen.setdefault(item.entity_id, None)
        return list(seen)


class EventStatePropagator:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], scan_limit: Optional[int] = None):
        self.session_factory = session_factory
        self.scan_limit = scan_limit or get_settings().event_scan_limit

    async def load_entries(self, continuity_id: str) -> List[TimelineEntry]:
        """Snapshot every Event of one continuity, up to the scan limit."""
        async with self.session_factory() as db:
            page = await EntityRepository(db).find_by_filter(
                EntityFilter(continuity_id=continuity_id, types=[EntityType.EVENT]),
                limit=self.scan_limit,
            )
        if page.total > self.scan_limit:
            logger.warning(
                "event scan truncated",
                extra={"continuity_id": continuity_id,
                       "metadata": {"total": page.total, "limit": self.scan_limit}},
            )
        return [TimelineEntry.from_event(event) for event in page.items]

    async def propagate(self, event: Entity) -> PropagationResult:
        result = PropagationResult()
        outcomes = event.get_outcomes()
        if not outcomes or not event.continuity_id:
            return result

        started = time.monotonic()
        pairs = touched_pairs(outcomes)

        try:
            loaded = await self.load_entries(event.continuity_id)
        except RepositoryError:
            logger.exception("failed to load events", extra={"continuity_id": event.continuity_id})
            for entity_id, field in pairs:
                self._warn(result, event, entity_id, field, "Failed to load continuity events for resolution")
            return result

        # The caller's copy of the trigger Event is authoritative
        entries = [e for e in loaded if e.event_id != event.id]
        entries.append(TimelineEntry.from_event(event))

        for entity_id, field in pairs:
            winner = resolve_latest(entries, entity_id, field)
            if winner is None:
                self._warn(result, event, entity_id, field, "no events with inWorldTime found")
                continue
            await self._apply(result, event, entity_id, field, winner)

        logger.info(
            "outcomes propagated",
            extra={
                "entity_id": event.id,
                "continuity_id": event.continuity_id,
                "duration_ms": round((time.monotonic() - started) * 1000, 1),
                "metadata": {"applied": len(result.applied), "warnings": len(result.warnings)},
            },
        )
        return result

    async def _apply(self, result: PropagationResult, event: Entity, entity_id: str, field: str,
                     winner: ResolvedValue) -> None:
        if not is_valid_id(entity_id):
            self._warn(result, event, entity_id, field, "Invalid entity ID in outcome")
            return

        async with self.session_factory() as db:
            repo = EntityRepository(db)
            try:
                target = await repo.find_by_id(entity_id)
            except RepositoryError:
                self._warn(result, event, entity_id, field, "Failed to load referenced entity")
                return
            if target is None:
                self._warn(result, event, entity_id, field, "Referenced entity not found")
                return

            try:
                changed = apply_field_value(target, field, winner.value)
            except DomainValidationError as e:
                self._warn(result, event, entity_id, field, e.message)
                return
            except FieldRoutingError as e:
                self._warn(result, event, entity_id, field, e.reason)
                return

            if changed:
                try:
                    await repo.save(target)
                except RepositoryError:
                    self._warn(result, event, entity_id, field, "Failed to save updated entity")
                    return

        result.applied.append(AppliedOutcome(
            entity_id=entity_id,
            field=field,
            to_value=winner.value,
            event_id=winner.event_id,
        ))

    @staticmethod
    def _warn(result: PropagationResult, event: Entity, entity_id: str, field: str, reason: str) -> None:
        result.warnings.append(PropagationWarning(entity_id=entity_id, field=field, reason=reason))
        logger.warning(
            "outcome not applied: %s", reason,
            extra={
                "entity_id": entity_id,
                "continuity_id": event.continuity_id,
                "metadata": {"event_id": event.id, "field": field},
            },
        )
