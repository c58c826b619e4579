from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from mnemora.utils.clock import as_utc


class CreateContinuityRequest(BaseModel):
    name: str = Field(..., max_length=200)
    world_id: str
    description: Optional[str] = Field(default=None, max_length=100_000)
    # Supplying either routes the request through branch validation
    branched_from_id: Optional[str] = None
    branch_point_event_id: Optional[str] = None


class BranchContinuityRequest(BaseModel):
    name: str = Field(..., max_length=200)
    parent_continuity_id: str
    branch_point_event_id: str
    description: Optional[str] = Field(default=None, max_length=100_000)


class UpdateContinuityRequest(BaseModel):
    id: str
    name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=100_000)


class ContinuityDTO(BaseModel):
    id: str
    world_id: str
    name: str
    description: str
    branched_from_id: Optional[str] = None
    branch_point_event_id: Optional[str] = None
    created_at: datetime
    modified_at: datetime

    @classmethod
    def from_model(cls, continuity) -> "ContinuityDTO":
        return cls(
            id=continuity.id,
            world_id=continuity.world_id,
            name=continuity.name,
            description=continuity.description or "",
            branched_from_id=continuity.branched_from_id,
            branch_point_event_id=continuity.branch_point_event_id,
            created_at=as_utc(continuity.created_at),
            modified_at=as_utc(continuity.modified_at),
        )
