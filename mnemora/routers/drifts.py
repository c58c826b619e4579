"""Drift listing and dismissal."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends

from mnemora.dependencies import get_drift_detector
from mnemora.schemas import DriftDTO, ListDriftsRequest, ResolveDriftRequest
from mnemora.services.drift import DriftDetector

router = APIRouter(tags=["drifts"])


@router.get("/drifts", response_model=List[DriftDTO])
async def list_drifts(
    entity_id: Optional[str] = None,
    continuity_id: Optional[str] = None,
    unresolved_only: bool = True,
    detector: DriftDetector = Depends(get_drift_detector),
):
    drifts = await detector.list_drifts(ListDriftsRequest(
        entity_id=entity_id, continuity_id=continuity_id, unresolved_only=unresolved_only,
    ))
    return [DriftDTO.from_model(d) for d in drifts]


@router.post("/drifts/{drift_id}/resolve", response_model=DriftDTO)
async def resolve_drift(drift_id: str, detector: DriftDetector = Depends(get_drift_detector)):
    """Dismiss a drift; it reopens if the mismatch is detected again later."""
    return DriftDTO.from_model(await detector.resolve_drift(ResolveDriftRequest(drift_id=drift_id)))
