from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from mnemora.domain.session_notes import NoteVisibility
from mnemora.utils.clock import as_utc


class AddQuickNoteRequest(BaseModel):
    session_id: str
    content: str
    linked_entity_ids: List[str] = Field(default_factory=list)
    visibility: NoteVisibility = NoteVisibility.GM_ONLY


class RemoveQuickNoteRequest(BaseModel):
    session_id: str
    note_id: str


class StarsAndWishesInput(BaseModel):
    stars: List[str] = Field(default_factory=list)
    wishes: List[str] = Field(default_factory=list)


class QuickNoteDTO(BaseModel):
    id: str
    content: str
    captured_at: datetime
    linked_entity_ids: List[str]
    visibility: NoteVisibility

    @classmethod
    def from_model(cls, note) -> "QuickNoteDTO":
        return cls(
            id=note.id,
            content=note.content,
            captured_at=as_utc(note.captured_at),
            linked_entity_ids=list(note.linked_entity_ids or []),
            visibility=note.visibility,
        )


class StarsAndWishesDTO(BaseModel):
    stars: List[str]
    wishes: List[str]
    collected_at: Optional[datetime] = None
