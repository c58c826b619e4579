"""FastAPI dependency providers.

Everything hangs off :func:`get_session_factory`; tests override it with a
factory bound to a temporary database.
"""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mnemora.database import AsyncSessionLocal
from mnemora.services.continuities import ContinuityService
from mnemora.services.drift import DriftDetector
from mnemora.services.entities import EntityService
from mnemora.services.event_bus import EventBus, event_bus
from mnemora.services.session_notes import SessionNoteService
from mnemora.services.session_runs import SessionRunService


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


def get_event_bus() -> EventBus:
    return event_bus


def get_continuity_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    bus: EventBus = Depends(get_event_bus),
) -> ContinuityService:
    return ContinuityService(factory, bus)


def get_entity_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    bus: EventBus = Depends(get_event_bus),
) -> EntityService:
    return EntityService(factory, bus)


def get_session_run_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    bus: EventBus = Depends(get_event_bus),
) -> SessionRunService:
    return SessionRunService(factory, bus)


def get_drift_detector(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> DriftDetector:
    return DriftDetector(factory)


def get_session_note_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SessionNoteService:
    return SessionNoteService(factory)
