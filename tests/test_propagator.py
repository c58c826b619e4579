"""Tests for EventStatePropagator.

Covers recency by in-world time, idempotence, best-effort warnings and the
"only the trigger's own pairs" scope rule.
"""

import asyncio
from unittest.mock import AsyncMock, patch

from mnemora.domain.fields import EntityType
from mnemora.errors import RepositoryError
from mnemora.models import Entity
from mnemora.repositories import EntityRepository
from mnemora.services.propagation import EventStatePropagator


def run(coro):
    return asyncio.run(coro)


class TestRecency:

    def test_latest_in_world_time_wins_over_latest_saved(self, session_factory, seed, make_outcome):
        async def scenario():
            world = await seed.world()
            prime = await seed.continuity(world.id)
            vol = await seed.character(world.id)
            await seed.event(world.id, prime.id, "Coronation", "998 YK",
                             [make_outcome(vol.id, "name", "Queen Vol")])
            # Saved later, but earlier in the fiction
            flashback = await seed.event(world.id, prime.id, "Flashback", "994 YK",
                                         [make_outcome(vol.id, "name", "Young Vol")])

            result = await EventStatePropagator(session_factory).propagate(flashback)
            return result, await seed.get(Entity, vol.id)

        result, vol = run(scenario())
        assert vol.name == "Queen Vol"
        assert [(a.field, a.to_value) for a in result.applied] == [("name", "Queen Vol")]
        assert result.warnings == []

    def test_other_continuities_do_not_compete(self, session_factory, seed, make_outcome):
        async def scenario():
            world = await seed.world()
            prime = await seed.continuity(world.id)
            other = await seed.continuity(world.id, name="What If")
            vol = await seed.character(world.id)
            await seed.event(world.id, other.id, "Elsewhere", "999 YK",
                             [make_outcome(vol.id, "motivation", "Peace")])
            event = await seed.event(world.id, prime.id, "Here", "990 YK",
                                     [make_outcome(vol.id, "motivation", "Revenge")])
            await EventStatePropagator(session_factory).propagate(event)
            return await seed.get(Entity, vol.id)

        vol = run(scenario())
        assert vol.get_type_specific_field("motivation") == "Revenge"

    def test_only_pairs_declared_by_trigger_are_recomputed(self, session_factory, seed, make_outcome):
        async def scenario():
            world = await seed.world()
            prime = await seed.continuity(world.id)
            vol = await seed.character(world.id, motivation="Untouched")
            await seed.event(world.id, prime.id, "Old", "990 YK",
                             [make_outcome(vol.id, "motivation", "Revenge")])
            trigger = await seed.event(world.id, prime.id, "New", "991 YK",
                                       [make_outcome(vol.id, "name", "Queen Vol")])
            result = await EventStatePropagator(session_factory).propagate(trigger)
            return result, await seed.get(Entity, vol.id)

        result, vol = run(scenario())
        assert vol.get_type_specific_field("motivation") == "Untouched"
        assert {a.field for a in result.applied} == {"name"}


class TestIdempotence:

    def test_second_run_applies_same_values_without_touching_rows(self, session_factory, seed, make_outcome):
        async def scenario():
            world = await seed.world()
            prime = await seed.continuity(world.id)
            vol = await seed.character(world.id)
            event = await seed.event(world.id, prime.id, "Coronation", "998 YK",
                                     [make_outcome(vol.id, "name", "Queen Vol"),
                                      make_outcome(vol.id, "description", "Rules Karrnath")])
            propagator = EventStatePropagator(session_factory)
            first = await propagator.propagate(event)
            after_first = await seed.get(Entity, vol.id)
            second = await propagator.propagate(event)
            after_second = await seed.get(Entity, vol.id)
            return first, second, after_first, after_second

        first, second, after_first, after_second = run(scenario())
        assert first.applied == second.applied
        assert after_second.name == after_first.name == "Queen Vol"
        assert after_second.modified_at == after_first.modified_at


class TestWarnings:
    """Every failure is reported per pair; nothing aborts the run."""

    def test_each_failure_kind_becomes_a_warning(self, session_factory, seed, make_outcome):
        async def scenario():
            world = await seed.world()
            prime = await seed.continuity(world.id)
            vol = await seed.character(world.id)
            note = await seed.entity(EntityType.NOTE, world.id, "Rumours")
            event = await seed.event(world.id, prime.id, "Chaos", "998 YK", [
                make_outcome("not-a-uuid", "name", "x"),
                make_outcome("00000000-0000-4000-8000-000000000000", "name", "x"),
                make_outcome(note.id, "description", "x"),
                make_outcome(vol.id, "ideology", "x"),
                make_outcome(vol.id, "name", "   "),
                make_outcome(vol.id, "motivation", "Revenge"),
            ])
            result = await EventStatePropagator(session_factory).propagate(event)
            return result, await seed.get(Entity, vol.id)

        result, vol = run(scenario())
        reasons = [w.reason for w in result.warnings]
        assert reasons == [
            "Invalid entity ID in outcome",
            "Referenced entity not found",
            "entity type does not support 'description'",
            "'ideology' is not valid for entity type character",
            "Name is required",
        ]
        assert [(a.field, a.to_value) for a in result.applied] == [("motivation", "Revenge")]
        assert vol.get_type_specific_field("motivation") == "Revenge"

    def test_trigger_without_in_world_time_warns(self, session_factory, seed, make_outcome):
        async def scenario():
            world = await seed.world()
            prime = await seed.continuity(world.id)
            vol = await seed.character(world.id)
            event = await seed.event(world.id, prime.id, "Undated", None,
                                     [make_outcome(vol.id, "name", "Queen Vol")])
            result = await EventStatePropagator(session_factory).propagate(event)
            return result, await seed.get(Entity, vol.id)

        result, vol = run(scenario())
        assert result.applied == []
        assert result.warnings[0].reason == "no events with inWorldTime found"
        assert vol.name == "Lady Vol"

    def test_save_failure_is_a_warning(self, session_factory, seed, make_outcome):
        async def scenario():
            world = await seed.world()
            prime = await seed.continuity(world.id)
            vol = await seed.character(world.id)
            event = await seed.event(world.id, prime.id, "Coronation", "998 YK",
                                     [make_outcome(vol.id, "name", "Queen Vol")])
            with patch.object(EntityRepository, "save", new=AsyncMock(side_effect=RepositoryError("disk full"))):
                return await EventStatePropagator(session_factory).propagate(event)

        result = run(scenario())
        assert result.applied == []
        assert result.warnings[0].reason == "Failed to save updated entity"

    def test_load_failure_warns_for_every_pair(self, session_factory, seed, make_outcome):
        async def scenario():
            world = await seed.world()
            prime = await seed.continuity(world.id)
            vol = await seed.character(world.id)
            event = await seed.event(world.id, prime.id, "Coronation", "998 YK",
                                     [make_outcome(vol.id, "name", "Queen Vol"),
                                      make_outcome(vol.id, "motivation", "Power")])
            propagator = EventStatePropagator(session_factory)
            with patch.object(propagator, "load_entries", new=AsyncMock(side_effect=RepositoryError("gone"))):
                return await propagator.propagate(event)

        result = run(scenario())
        assert len(result.warnings) == 2
        assert {w.reason for w in result.warnings} == {"Failed to load continuity events for resolution"}

    def test_event_without_outcomes_is_a_no_op(self, session_factory, seed):
        async def scenario():
            world = await seed.world()
            prime = await seed.continuity(world.id)
            event = await seed.event(world.id, prime.id, "Quiet day", "998 YK")
            return await EventStatePropagator(session_factory).propagate(event)

        result = run(scenario())
        assert result.applied == [] and result.warnings == []
