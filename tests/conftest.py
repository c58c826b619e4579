"""Shared fixtures: a throwaway SQLite database per test and seed helpers.

Async code is driven with ``asyncio.run``.  The engine uses ``NullPool`` so
no connection outlives the event loop that opened it, and so a second
engine over the same file behaves like a restarted process.
"""

import asyncio
import os
import tempfile

# Must happen before anything imports mnemora.config / mnemora.database
_TMP = tempfile.mkdtemp(prefix="mnemora-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP, 'default.db')}"
os.environ["LOG_FILE"] = ""

import pytest
from sqlalchemy.pool import NullPool

from mnemora.database import init_models, make_engine, make_session_factory
from mnemora.domain.fields import EntityType
from mnemora.domain.outcomes import Outcome
from mnemora.models import Campaign, Continuity, Entity, World
from mnemora.services.event_bus import EventBus


def sqlite_url(path) -> str:
    return f"sqlite+aiosqlite:///{path}"


def open_factory(path):
    """Engine + session factory over an existing database file."""
    engine = make_engine(sqlite_url(path), poolclass=NullPool)
    return engine, make_session_factory(engine)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "mnemora.db"


@pytest.fixture
def session_factory(db_path):
    engine, factory = open_factory(db_path)
    asyncio.run(init_models(engine))
    yield factory
    asyncio.run(engine.dispose())


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def published(bus):
    """Every domain event published on ``bus`` during the test."""
    events = []
    bus.subscribe_all(events.append)
    return events


class Seed:
    """Inserts rows directly, bypassing the services under test."""

    def __init__(self, factory):
        self.factory = factory

    async def _add(self, obj):
        async with self.factory() as db:
            db.add(obj)
            await db.commit()
        return obj

    async def world(self, name="Eberron") -> World:
        return await self._add(World(name=name))

    async def continuity(self, world_id, name="Prime", **kwargs) -> Continuity:
        return await self._add(Continuity.new(name=name, world_id=world_id, **kwargs))

    async def campaign(self, world_id, continuity_id=None, name="The Last War") -> Campaign:
        return await self._add(Campaign(name=name, world_id=world_id, continuity_id=continuity_id))

    async def entity(self, entity_type: EntityType, world_id, name, campaign_id=None, continuity_id=None,
                     **fields) -> Entity:
        entity = Entity.new(type=entity_type, name=name, world_id=world_id,
                            campaign_id=campaign_id, continuity_id=continuity_id)
        for field, value in fields.items():
            if field in ("description", "secrets"):
                setattr(entity, field, value)
            else:
                entity.set_type_specific_field(field, value)
        return await self._add(entity)

    async def character(self, world_id, name="Lady Vol", **fields) -> Entity:
        return await self.entity(EntityType.CHARACTER, world_id, name, **fields)

    async def session(self, world_id, campaign_id, name="Session 1") -> Entity:
        return await self.entity(EntityType.SESSION, world_id, name, campaign_id=campaign_id)

    async def event(self, world_id, continuity_id, name="Event", in_world_time=None, outcomes=()) -> Entity:
        event = Entity.new(type=EntityType.EVENT, name=name, world_id=world_id, continuity_id=continuity_id)
        event.set_type_specific_field("inWorldTime", in_world_time)
        event.set_outcomes(list(outcomes))
        return await self._add(event)

    async def get(self, model, ident):
        async with self.factory() as db:
            return await db.get(model, ident)

    async def update(self, model, ident, **attrs):
        async with self.factory() as db:
            obj = await db.get(model, ident)
            for key, value in attrs.items():
                setattr(obj, key, value)
            await db.commit()
        return obj


@pytest.fixture
def seed(session_factory):
    return Seed(session_factory)


def outcome(entity_id, field, to_value, **kwargs) -> Outcome:
    return Outcome(entity_id=entity_id, field=field, to_value=to_value, **kwargs)


@pytest.fixture
def make_outcome():
    return outcome
