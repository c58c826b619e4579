"""Live session-run endpoints and table-side session notes."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from mnemora.dependencies import get_session_note_service, get_session_run_service
from mnemora.domain.session_notes import NoteVisibility
from mnemora.schemas import (
    ActiveSessionRunDTO,
    AddQuickNoteRequest,
    EndSessionRequest,
    EndSessionRunDTO,
    EndSessionRunRequest,
    GetActiveSessionRunRequest,
    QuickNoteDTO,
    RemoveQuickNoteRequest,
    SessionSummaryDTO,
    StarsAndWishesDTO,
    StarsAndWishesInput,
    StartSessionRunRequest,
)
from mnemora.services.session_notes import SessionNoteService
from mnemora.services.session_runs import SessionRunService

router = APIRouter(tags=["session-runs"])


class DurationBody(BaseModel):
    duration_seconds: int = Field(..., description="Wall-clock length of the session run")


class EndSessionBody(DurationBody):
    stars_and_wishes: Optional[StarsAndWishesInput] = None


class QuickNoteBody(BaseModel):
    content: str
    linked_entity_ids: List[str] = Field(default_factory=list)
    visibility: NoteVisibility = NoteVisibility.GM_ONLY


@router.post("/sessions/{session_id}/run/start", response_model=ActiveSessionRunDTO)
async def start_session_run(session_id: str, service: SessionRunService = Depends(get_session_run_service)):
    """
    Mark a session as live for its campaign.
    Starting the session that is already live returns the original start time.
    """
    return await service.start_session_run(StartSessionRunRequest(session_id=session_id))


@router.post("/sessions/{session_id}/run/end", response_model=EndSessionRunDTO)
async def end_session_run(session_id: str, body: DurationBody,
                          service: SessionRunService = Depends(get_session_run_service)):
    return await service.end_session_run(
        EndSessionRunRequest(session_id=session_id, duration_seconds=body.duration_seconds))


@router.post("/sessions/{session_id}/end", response_model=SessionSummaryDTO)
async def end_session(session_id: str, body: EndSessionBody,
                      service: SessionRunService = Depends(get_session_run_service)):
    """End the session (if it is live) and return its summary."""
    return await service.end_session_with_summary(
        EndSessionRequest(session_id=session_id, duration_seconds=body.duration_seconds,
                          stars_and_wishes=body.stars_and_wishes))


@router.get("/campaigns/{campaign_id}/session-run", response_model=Optional[ActiveSessionRunDTO])
async def get_active_session_run(campaign_id: str, service: SessionRunService = Depends(get_session_run_service)):
    return await service.get_active_session_run(GetActiveSessionRunRequest(campaign_id=campaign_id))


@router.post("/sessions/{session_id}/notes", response_model=QuickNoteDTO, status_code=201)
async def add_quick_note(session_id: str, body: QuickNoteBody,
                         service: SessionNoteService = Depends(get_session_note_service)):
    return await service.add_quick_note(AddQuickNoteRequest(session_id=session_id, **body.model_dump()))


@router.get("/sessions/{session_id}/notes", response_model=List[QuickNoteDTO])
async def list_quick_notes(session_id: str, service: SessionNoteService = Depends(get_session_note_service)):
    """Notes in capture order."""
    return await service.list_quick_notes(session_id)


@router.delete("/sessions/{session_id}/notes/{note_id}", status_code=204)
async def remove_quick_note(session_id: str, note_id: str,
                            service: SessionNoteService = Depends(get_session_note_service)):
    await service.remove_quick_note(RemoveQuickNoteRequest(session_id=session_id, note_id=note_id))
    return Response(status_code=204)


@router.get("/sessions/{session_id}/feedback", response_model=Optional[StarsAndWishesDTO])
async def get_feedback(session_id: str, service: SessionNoteService = Depends(get_session_note_service)):
    return await service.get_feedback(session_id)
