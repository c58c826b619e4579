"""Tests for quick notes and Stars & Wishes feedback."""

import asyncio

import pytest
from sqlalchemy import select

from mnemora.domain.session_notes import NoteVisibility, referenced_entity_count
from mnemora.errors import DomainValidationError, NotFoundError
from mnemora.models import QuickNote, SessionFeedback
from mnemora.schemas import AddQuickNoteRequest, RemoveQuickNoteRequest, StarsAndWishesInput
from mnemora.services.entities import EntityService
from mnemora.services.session_notes import SessionNoteService


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def notes(session_factory):
    return SessionNoteService(session_factory)


async def _session(seed):
    world = await seed.world()
    campaign = await seed.campaign(world.id)
    return world, await seed.session(world.id, campaign.id)


class TestQuickNotes:

    def test_add_trims_and_lists_in_capture_order(self, notes, seed):
        async def scenario():
            world, session = await _session(seed)
            vol = await seed.character(world.id)
            first = await notes.add_quick_note(AddQuickNoteRequest(
                session_id=session.id, content="  Vol lied about the shard  ", linked_entity_ids=[vol.id]))
            await notes.add_quick_note(AddQuickNoteRequest(
                session_id=session.id, content="Party owes the inn 5gp", visibility=NoteVisibility.PLAYERS))
            return vol, first, await notes.list_quick_notes(session.id)

        vol, first, listed = run(scenario())
        assert first.content == "Vol lied about the shard"
        assert first.visibility == NoteVisibility.GM_ONLY
        assert [n.content for n in listed] == ["Vol lied about the shard", "Party owes the inn 5gp"]
        assert listed[0].linked_entity_ids == [vol.id]
        assert listed[1].visibility == NoteVisibility.PLAYERS

    def test_content_rules(self, notes, seed):
        async def scenario():
            _, session = await _session(seed)
            errors = []
            for content in ("   ", "x" * 501):
                with pytest.raises(DomainValidationError) as exc:
                    await notes.add_quick_note(AddQuickNoteRequest(session_id=session.id, content=content))
                errors.append(exc.value)
            return errors

        blank, too_long = run(scenario())
        assert blank.message == "Note content is required"
        assert too_long.code == "VALIDATION_CONTENT"

    def test_notes_belong_to_sessions_only(self, notes, seed):
        async def scenario():
            world, _ = await _session(seed)
            vol = await seed.character(world.id)
            await notes.add_quick_note(AddQuickNoteRequest(session_id=vol.id, content="x"))

        with pytest.raises(DomainValidationError) as exc:
            run(scenario())
        assert exc.value.message == "Entity is not a session"

    def test_unknown_session(self, notes):
        with pytest.raises(NotFoundError):
            run(notes.list_quick_notes("00000000-0000-4000-8000-000000000000"))

    def test_remove_is_idempotent(self, notes, seed):
        async def scenario():
            _, session = await _session(seed)
            note = await notes.add_quick_note(AddQuickNoteRequest(session_id=session.id, content="Temp"))
            request = RemoveQuickNoteRequest(session_id=session.id, note_id=note.id)
            await notes.remove_quick_note(request)
            await notes.remove_quick_note(request)
            return await notes.list_quick_notes(session.id)

        assert run(scenario()) == []

    def test_deleting_the_session_removes_its_notes(self, notes, seed, session_factory, bus):
        async def scenario():
            _, session = await _session(seed)
            await notes.add_quick_note(AddQuickNoteRequest(session_id=session.id, content="Keep?"))
            await notes.record_feedback(session.id, StarsAndWishesInput(stars=["Combat"]))
            await EntityService(session_factory, bus).delete_entity(session.id)
            async with session_factory() as db:
                left = (await db.execute(select(QuickNote))).scalars().all()
                feedback = (await db.execute(select(SessionFeedback))).scalars().all()
            return left, feedback

        left, feedback = run(scenario())
        assert left == []
        assert feedback == []


class TestFeedback:

    def test_recording_replaces_previous_feedback(self, notes, seed):
        async def scenario():
            _, session = await _session(seed)
            await notes.record_feedback(session.id, StarsAndWishesInput(stars=["Old"], wishes=["Old wish"]))
            await notes.record_feedback(session.id, StarsAndWishesInput(
                stars=[" The heist ", "Roleplay"], wishes=["More downtime"]))
            return await notes.get_feedback(session.id)

        feedback = run(scenario())
        assert feedback.stars == ["The heist", "Roleplay"]
        assert feedback.wishes == ["More downtime"]
        assert feedback.collected_at is not None

    def test_no_feedback_yet(self, notes, seed):
        async def scenario():
            _, session = await _session(seed)
            return await notes.get_feedback(session.id)

        assert run(scenario()) is None

    def test_entry_rules(self):
        with pytest.raises(DomainValidationError) as empty_star:
            SessionNoteService.check_feedback(StarsAndWishesInput(stars=[" "]))
        with pytest.raises(DomainValidationError) as long_wish:
            SessionNoteService.check_feedback(StarsAndWishesInput(wishes=["w" * 201]))
        assert empty_star.value.message == "Star cannot be empty"
        assert empty_star.value.code == "VALIDATION_STARS"
        assert long_wish.value.code == "VALIDATION_WISHES"


def test_referenced_entity_count_is_distinct():
    assert referenced_entity_count([["a", "b"], ["b"], [], ["c"]]) == 3
