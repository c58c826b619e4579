"""Continuity (timeline branch) REST endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from mnemora.dependencies import get_continuity_service
from mnemora.schemas import (
    BranchContinuityRequest,
    ContinuityDTO,
    CreateContinuityRequest,
    EventDTO,
    UpdateContinuityRequest,
)
from mnemora.services.continuities import ContinuityService

router = APIRouter(tags=["continuities"])


class BranchBody(BaseModel):
    name: str = Field(..., max_length=200)
    branch_point_event_id: str
    description: Optional[str] = None


class ContinuityPatch(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


@router.post("/continuities", response_model=ContinuityDTO, status_code=201)
async def create_continuity(body: CreateContinuityRequest,
                            service: ContinuityService = Depends(get_continuity_service)):
    """
    Create a root continuity for a world.
    Supplying branch fields creates a validated branch instead.
    """
    return ContinuityDTO.from_model(await service.create_continuity(body))


@router.get("/worlds/{world_id}/continuities", response_model=List[ContinuityDTO])
async def list_continuities(world_id: str, service: ContinuityService = Depends(get_continuity_service)):
    return [ContinuityDTO.from_model(c) for c in await service.list_continuities(world_id)]


@router.get("/continuities/{continuity_id}", response_model=ContinuityDTO)
async def get_continuity(continuity_id: str, service: ContinuityService = Depends(get_continuity_service)):
    return ContinuityDTO.from_model(await service.get_continuity(continuity_id))


@router.patch("/continuities/{continuity_id}", response_model=ContinuityDTO)
async def update_continuity(continuity_id: str, body: ContinuityPatch,
                            service: ContinuityService = Depends(get_continuity_service)):
    continuity = await service.update_continuity(UpdateContinuityRequest(
        id=continuity_id, name=body.name, description=body.description,
    ))
    return ContinuityDTO.from_model(continuity)


@router.delete("/continuities/{continuity_id}", status_code=204)
async def delete_continuity(continuity_id: str, service: ContinuityService = Depends(get_continuity_service)):
    """
    Delete a continuity.
    Refused while any event or campaign still references it.
    """
    await service.delete_continuity(continuity_id)
    return Response(status_code=204)


@router.post("/continuities/{continuity_id}/branch", response_model=ContinuityDTO, status_code=201)
async def branch_continuity(continuity_id: str, body: BranchBody,
                            service: ContinuityService = Depends(get_continuity_service)):
    """
    Branch a continuity at one of its events.
    The branch shares the parent's events up to the branch point; nothing is copied.
    """
    continuity = await service.branch_continuity(BranchContinuityRequest(
        name=body.name,
        parent_continuity_id=continuity_id,
        branch_point_event_id=body.branch_point_event_id,
        description=body.description,
    ))
    return ContinuityDTO.from_model(continuity)


@router.get("/continuities/{continuity_id}/timeline", response_model=List[EventDTO])
async def get_timeline(continuity_id: str, service: ContinuityService = Depends(get_continuity_service)):
    """Events visible from this continuity, oldest in-world time first."""
    return [EventDTO.from_model(e) for e in await service.get_timeline(continuity_id)]
