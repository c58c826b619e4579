from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from mnemora.schemas.session_notes import QuickNoteDTO, StarsAndWishesDTO, StarsAndWishesInput


class StartSessionRunRequest(BaseModel):
    session_id: str


class GetActiveSessionRunRequest(BaseModel):
    campaign_id: str


class EndSessionRunRequest(BaseModel):
    session_id: str
    duration_seconds: int


class EndSessionRequest(BaseModel):
    session_id: str
    duration_seconds: int
    # Omitted means no feedback round was held
    stars_and_wishes: Optional[StarsAndWishesInput] = None


class ActiveSessionRunDTO(BaseModel):
    campaign_id: str
    session_id: str
    session_name: str
    started_at: datetime


class EndSessionRunDTO(BaseModel):
    campaign_id: str
    session_id: str
    # "ended" or "already_ended"
    status: str
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None


class SessionSummaryDTO(BaseModel):
    session_id: str
    session_name: str
    duration_seconds: int
    duration_formatted: str
    quick_notes: List[QuickNoteDTO] = Field(default_factory=list)
    stars_and_wishes: Optional[StarsAndWishesDTO] = None
    referenced_entity_count: int = 0
