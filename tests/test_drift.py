"""Tests for drift detection, auto-resolution and GM dismissal."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from mnemora.errors import NotFoundError, RepositoryError
from mnemora.schemas import CreateEventRequest, ListDriftsRequest, ResolveDriftRequest, UpdateEntityRequest
from mnemora.services import drift as drift_module
from mnemora.services.drift import DriftDetector
from mnemora.services.entities import EntityService
from mnemora.utils.clock import as_utc


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def entities(session_factory, bus):
    return EntityService(session_factory, bus)


@pytest.fixture
def detector(session_factory):
    return DriftDetector(session_factory)


async def _world_with_claim(seed, entities, make_outcome, value="Revenge"):
    """A character whose motivation the Prime timeline sets to *value*."""
    world = await seed.world()
    prime = await seed.continuity(world.id)
    vol = await seed.character(world.id)
    await entities.create_event(CreateEventRequest(
        name="Betrayal", world_id=world.id, continuity_id=prime.id, in_world_time="990 YK",
        outcomes=[make_outcome(vol.id, "motivation", value)],
    ))
    return world, prime, vol


def _edit(vol, **fields):
    return UpdateEntityRequest(id=vol.id, type_specific_fields=fields)


class TestDetection:

    def test_manual_edit_away_from_timeline_creates_drift(self, entities, detector, seed, make_outcome):
        async def scenario():
            _, prime, vol = await _world_with_claim(seed, entities, make_outcome)
            dto = await entities.update_entity(_edit(vol, motivation="Peace"))
            return prime, dto, await detector.list_drifts(ListDriftsRequest(entity_id=vol.id))

        prime, dto, drifts = run(scenario())
        assert dto.drift.drifts_detected == 1
        assert len(drifts) == 1
        drift = drifts[0]
        assert drift.field == "motivation"
        assert drift.continuity_id == prime.id
        assert drift.event_derived_value == "Revenge"
        assert drift.current_value == "Peace"
        assert drift.resolved_at is None

    def test_edit_matching_timeline_is_not_drift(self, entities, detector, seed, make_outcome):
        async def scenario():
            _, _, vol = await _world_with_claim(seed, entities, make_outcome)
            await entities.update_entity(UpdateEntityRequest(id=vol.id, description="Unrelated"))
            return await detector.list_drifts(ListDriftsRequest(entity_id=vol.id, unresolved_only=False))

        assert run(scenario()) == []

    def test_redetection_updates_in_place(self, entities, detector, seed, make_outcome):
        async def scenario():
            _, _, vol = await _world_with_claim(seed, entities, make_outcome)
            await entities.update_entity(_edit(vol, motivation="Peace"))
            first = (await detector.list_drifts(ListDriftsRequest(entity_id=vol.id)))[0]
            await entities.update_entity(_edit(vol, motivation="Gold"))
            return first, await detector.list_drifts(ListDriftsRequest(entity_id=vol.id, unresolved_only=False))

        first, drifts = run(scenario())
        assert len(drifts) == 1
        assert drifts[0].id == first.id
        assert drifts[0].current_value == "Gold"
        assert as_utc(drifts[0].detected_at) == as_utc(first.detected_at)


class TestResolution:

    def test_converging_values_auto_resolve(self, entities, detector, seed, make_outcome):
        async def scenario():
            _, _, vol = await _world_with_claim(seed, entities, make_outcome)
            await entities.update_entity(_edit(vol, motivation="Peace"))
            dto = await entities.update_entity(_edit(vol, motivation="Revenge"))
            open_ = await detector.list_drifts(ListDriftsRequest(entity_id=vol.id))
            all_ = await detector.list_drifts(ListDriftsRequest(entity_id=vol.id, unresolved_only=False))
            return dto, open_, all_

        dto, open_, all_ = run(scenario())
        assert dto.drift.drifts_resolved == 1
        assert open_ == []
        assert all_[0].resolved_at is not None

    def test_new_event_agreeing_with_edit_settles_drift(self, entities, detector, seed, make_outcome):
        async def scenario():
            world, prime, vol = await _world_with_claim(seed, entities, make_outcome)
            await entities.update_entity(_edit(vol, motivation="Peace"))
            await entities.create_event(CreateEventRequest(
                name="Redemption", world_id=world.id, continuity_id=prime.id, in_world_time="995 YK",
                outcomes=[make_outcome(vol.id, "motivation", "Peace")],
            ))
            return await detector.list_drifts(ListDriftsRequest(entity_id=vol.id))

        assert run(scenario()) == []

    def test_dismissal_then_reopen(self, entities, detector, seed, make_outcome):
        async def scenario():
            _, _, vol = await _world_with_claim(seed, entities, make_outcome)
            await entities.update_entity(_edit(vol, motivation="Peace"))
            drift = (await detector.list_drifts(ListDriftsRequest(entity_id=vol.id)))[0]
            dismissed = await detector.resolve_drift(ResolveDriftRequest(drift_id=drift.id))
            again = await detector.resolve_drift(ResolveDriftRequest(drift_id=drift.id))
            after_dismissal = await detector.list_drifts(ListDriftsRequest(entity_id=vol.id))
            await entities.update_entity(_edit(vol, motivation="Gold"))
            reopened = await detector.list_drifts(ListDriftsRequest(entity_id=vol.id))
            return drift, dismissed, again, after_dismissal, reopened

        drift, dismissed, again, after_dismissal, reopened = run(scenario())
        assert dismissed.resolved_at is not None
        assert as_utc(again.resolved_at) == as_utc(dismissed.resolved_at)
        assert after_dismissal == []
        assert [d.id for d in reopened] == [drift.id]
        assert reopened[0].current_value == "Gold"
        assert as_utc(reopened[0].detected_at) > as_utc(drift.detected_at)

    def test_resolve_unknown(self, detector):
        with pytest.raises(NotFoundError):
            run(detector.resolve_drift(ResolveDriftRequest(drift_id="00000000-0000-4000-8000-000000000000")))


class TestIsolation:

    def test_drift_failure_never_blocks_the_edit(self, entities, seed, make_outcome):
        async def scenario():
            _, _, vol = await _world_with_claim(seed, entities, make_outcome)
            with patch.object(DriftDetector, "check_for_drifts", new=AsyncMock(side_effect=RepositoryError("x"))):
                return await entities.update_entity(_edit(vol, motivation="Peace"))

        dto = run(scenario())
        assert dto.type_specific_fields["motivation"] == "Peace"
        assert dto.drift is None

    def test_deleting_entity_removes_its_drifts(self, entities, detector, seed, make_outcome):
        async def scenario():
            _, _, vol = await _world_with_claim(seed, entities, make_outcome)
            await entities.update_entity(_edit(vol, motivation="Peace"))
            await entities.delete_entity(vol.id)
            return await detector.list_drifts(ListDriftsRequest(entity_id=vol.id, unresolved_only=False))

        assert run(scenario()) == []


class TestScanLimit:

    def test_truncated_world_scan_is_logged(self, session_factory, seed, make_outcome):
        async def scenario():
            world = await seed.world()
            prime = await seed.continuity(world.id)
            vol = await seed.character(world.id)
            for year in ("990 YK", "991 YK"):
                await seed.event(world.id, prime.id, year, year, [make_outcome(vol.id, "motivation", year)])
            with patch.object(drift_module.logger, "warning") as warning:
                await DriftDetector(session_factory, scan_limit=1).check_for_drifts(vol.id, world.id)
            return warning

        warning = run(scenario())
        warning.assert_called_once()
        assert warning.call_args.args[0] == "event scan truncated"
        assert warning.call_args.kwargs["extra"]["metadata"]["total"] == 2
