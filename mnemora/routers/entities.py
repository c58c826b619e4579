"""Event creation and generic entity endpoints."""

from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from mnemora.dependencies import get_entity_service
from mnemora.domain.outcomes import Outcome
from mnemora.schemas import CreateEventRequest, EntityResponse, EventDTO, UpdateEntityRequest
from mnemora.services.entities import EntityService

router = APIRouter(tags=["entities"])


class EntityPatch(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    secrets: Optional[str] = None
    tags: Optional[List[str]] = None
    type_specific_fields: Optional[Dict[str, Optional[str]]] = None
    outcomes: Optional[List[Outcome]] = None


@router.post("/events", response_model=EventDTO, status_code=201)
async def create_event(body: CreateEventRequest, service: EntityService = Depends(get_entity_service)):
    """
    Create an event and propagate its outcomes.
    The response carries what was applied and any warnings.
    """
    return await service.create_event(body)


@router.get("/entities/{entity_id}", response_model=EntityResponse)
async def get_entity(entity_id: str, service: EntityService = Depends(get_entity_service)):
    return await service.get_entity(entity_id)


@router.patch("/entities/{entity_id}", response_model=EntityResponse)
async def update_entity(entity_id: str, body: EntityPatch, service: EntityService = Depends(get_entity_service)):
    """
    Partially update any entity.
    Events re-propagate when outcomes or in-world time change; other
    entities are checked for drift on the fields that changed.
    """
    return await service.update_entity(UpdateEntityRequest(id=entity_id, **body.model_dump(exclude_unset=True)))


@router.delete("/entities/{entity_id}", status_code=204)
async def delete_entity(entity_id: str, service: EntityService = Depends(get_entity_service)):
    await service.delete_entity(entity_id)
    return Response(status_code=204)
