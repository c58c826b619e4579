from __future__ import annotations

from datetime import datetime
from typing import Annotated, Dict, List, Optional, Union

from pydantic import BaseModel, Discriminator, Field, Tag

from mnemora.domain.fields import EntityType
from mnemora.domain.outcomes import Outcome
from mnemora.utils.clock import as_utc


class AppliedOutcomeDTO(BaseModel):
    entity_id: str
    field: str
    to_value: str


class PropagationWarningDTO(BaseModel):
    entity_id: str
    field: str
    reason: str


class PropagationResultDTO(BaseModel):
    applied: List[AppliedOutcomeDTO] = Field(default_factory=list)
    warnings: List[PropagationWarningDTO] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result) -> "PropagationResultDTO":
        return cls(
            applied=[AppliedOutcomeDTO(entity_id=a.entity_id, field=a.field, to_value=a.to_value)
                     for a in result.applied],
            warnings=[PropagationWarningDTO(entity_id=w.entity_id, field=w.field, reason=w.reason)
                      for w in result.warnings],
        )


class DriftCheckDTO(BaseModel):
    drifts_detected: int = 0
    drifts_resolved: int = 0


class CreateEventRequest(BaseModel):
    name: str = Field(..., max_length=200)
    world_id: str
    continuity_id: str
    campaign_id: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=100_000)
    secrets: Optional[str] = Field(default=None, max_length=100_000)
    tags: List[str] = Field(default_factory=list, max_length=100)
    in_world_time: Optional[str] = Field(default=None, max_length=200)
    real_world_anchor: Optional[str] = Field(default=None, max_length=200)
    involved_entity_ids: List[str] = Field(default_factory=list)
    location_id: Optional[str] = None
    outcomes: List[Outcome] = Field(default_factory=list)


class UpdateEntityRequest(BaseModel):
    """Partial update; ``None`` means "leave unchanged".

    ``type_specific_fields`` values of ``None`` or ``""`` clear the field.
    ``outcomes`` (Events only) replaces the whole list.
    """
    id: str
    name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=100_000)
    secrets: Optional[str] = Field(default=None, max_length=100_000)
    tags: Optional[List[str]] = Field(default=None, max_length=100)
    type_specific_fields: Optional[Dict[str, Optional[str]]] = None
    outcomes: Optional[List[Outcome]] = None


class EntityDTO(BaseModel):
    id: str
    type: EntityType
    name: str
    description: str = ""
    secrets: str = ""
    tags: List[str] = Field(default_factory=list)
    world_id: str
    campaign_id: Optional[str] = None
    continuity_id: Optional[str] = None
    type_specific_fields: Dict[str, str] = Field(default_factory=dict)
    outcomes: List[Outcome] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    created_at: datetime
    modified_at: datetime

    # Filled in by create/update flows only
    propagation: Optional[PropagationResultDTO] = None
    drift: Optional[DriftCheckDTO] = None

    @classmethod
    def from_model(cls, entity, **extra) -> "EntityDTO":
        return cls(
            id=entity.id,
            type=entity.type,
            name=entity.name,
            description=entity.description or "",
            secrets=entity.secrets or "",
            tags=list(entity.tags or []),
            world_id=entity.world_id,
            campaign_id=entity.campaign_id,
            continuity_id=entity.continuity_id,
            type_specific_fields=dict(entity.type_specific_fields or {}),
            outcomes=entity.get_outcomes() if entity.type == EntityType.EVENT else [],
            started_at=as_utc(entity.started_at),
            ended_at=as_utc(entity.ended_at),
            duration_seconds=entity.duration_seconds,
            created_at=as_utc(entity.created_at),
            modified_at=as_utc(entity.modified_at),
            **extra,
        )


class EventDTO(EntityDTO):
    in_world_time: Optional[str] = None

    @classmethod
    def from_model(cls, entity, **extra) -> "EventDTO":
        return super().from_model(entity, in_world_time=entity.in_world_time, **extra)


def _dto_tag(value) -> str:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return "event" if kind == EntityType.EVENT else "entity"


# Events carry in_world_time; every other entity type renders without it
EntityResponse = Annotated[
    Union[Annotated[EventDTO, Tag("event")], Annotated[EntityDTO, Tag("entity")]],
    Discriminator(_dto_tag),
]
