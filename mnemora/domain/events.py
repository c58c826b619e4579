"""Lifecycle notifications published on the event bus.

The core fires these but never consumes them; subscribers (audit logging,
search indexing, UI refresh) live outside it.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import ClassVar, Optional, Tuple

from mnemora.utils.clock import utcnow


@dataclasses.dataclass(frozen=True)
class DomainEvent:
    event_type: ClassVar[str] = "domain_event"
    occurred_at: datetime = dataclasses.field(default_factory=utcnow, kw_only=True)

    def payload(self) -> dict:
        data = dataclasses.asdict(self)
        data.pop("occurred_at", None)
        return data


@dataclasses.dataclass(frozen=True)
class EntityCreated(DomainEvent):
    event_type: ClassVar[str] = "entity.created"
    entity_id: str
    entity_type: str
    world_id: str
    campaign_id: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class EntityUpdated(DomainEvent):
    event_type: ClassVar[str] = "entity.updated"
    entity_id: str
    entity_type: str
    changed_fields: Tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class EntityDeleted(DomainEvent):
    event_type: ClassVar[str] = "entity.deleted"
    entity_id: str
    entity_type: str
    world_id: str


@dataclasses.dataclass(frozen=True)
class ContinuityCreated(DomainEvent):
    event_type: ClassVar[str] = "continuity.created"
    continuity_id: str
    world_id: str
    name: str
    branched_from_id: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class ContinuityUpdated(DomainEvent):
    event_type: ClassVar[str] = "continuity.updated"
    continuity_id: str
    changed_fields: Tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class ContinuityDeleted(DomainEvent):
    event_type: ClassVar[str] = "continuity.deleted"
    continuity_id: str
    world_id: str


@dataclasses.dataclass(frozen=True)
class SessionRunStarted(DomainEvent):
    event_type: ClassVar[str] = "session_run.started"
    campaign_id: str
    session_id: str
    started_at: datetime


@dataclasses.dataclass(frozen=True)
class SessionRunEnded(DomainEvent):
    event_type: ClassVar[str] = "session_run.ended"
    campaign_id: str
    session_id: str
    ended_at: datetime
    duration_seconds: int
