from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from mnemora.utils.clock import as_utc


class ListDriftsRequest(BaseModel):
    entity_id: Optional[str] = None
    continuity_id: Optional[str] = None
    unresolved_only: bool = True


class ResolveDriftRequest(BaseModel):
    drift_id: str


class DriftDTO(BaseModel):
    id: str
    entity_id: str
    continuity_id: str
    field: str
    event_derived_value: str
    current_value: str
    detected_at: datetime
    resolved_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, drift) -> "DriftDTO":
        return cls(
            id=drift.id,
            entity_id=drift.entity_id,
            continuity_id=drift.continuity_id,
            field=drift.field,
            event_derived_value=drift.event_derived_value,
            current_value=drift.current_value,
            detected_at=as_utc(drift.detected_at),
            resolved_at=as_utc(drift.resolved_at),
        )
