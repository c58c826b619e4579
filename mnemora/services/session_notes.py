"""Quick notes captured during a session, and the Stars & Wishes round at its end."""

from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mnemora.domain.fields import EntityType, new_id, parse_id
from mnemora.domain.session_notes import FeedbackType, validate_feedback, validate_note_content
from mnemora.errors import DomainValidationError, NotFoundError
from mnemora.models import Entity, QuickNote
from mnemora.repositories import EntityRepository, QuickNoteRepository
from mnemora.schemas.session_notes import (
    AddQuickNoteRequest,
    QuickNoteDTO,
    RemoveQuickNoteRequest,
    StarsAndWishesDTO,
    StarsAndWishesInput,
)
from mnemora.utils.clock import as_utc, utcnow
from mnemora.utils.logging_config import get_logger

logger = get_logger("mnemora.session_notes")


async def load_session(db: AsyncSession, raw_session_id: str) -> Entity:
    session_id = parse_id(raw_session_id, "session_id", "Session ID")
    entity = await EntityRepository(db).find_by_id(session_id)
    if entity is None:
        raise NotFoundError("Session", session_id)
    if entity.type != EntityType.SESSION:
        raise DomainValidationError("Entity is not a session", "session_id")
    return entity


class SessionNoteService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add_quick_note(self, request: AddQuickNoteRequest) -> QuickNoteDTO:
        content = validate_note_content(request.content)
        async with self.session_factory() as db:
            session = await load_session(db, request.session_id)
            note = QuickNote(
                id=new_id(),
                session_id=session.id,
                content=content,
                captured_at=utcnow(),
                linked_entity_ids=list(request.linked_entity_ids),
                visibility=request.visibility.value,
            )
            await QuickNoteRepository(db).save(note)

        logger.info("quick note added", extra={"session_id": session.id, "action": "add_note",
                                               "metadata": {"note_id": note.id}})
        return QuickNoteDTO.from_model(note)

    async def remove_quick_note(self, request: RemoveQuickNoteRequest) -> None:
        """Idempotent: removing a note that is already gone succeeds."""
        parse_id(request.session_id, "session_id", "Session ID")
        note_id = parse_id(request.note_id, "note_id", "Note ID")
        async with self.session_factory() as db:
            removed = await QuickNoteRepository(db).delete(note_id)
        if removed:
            logger.info("quick note removed", extra={"session_id": request.session_id, "action": "remove_note",
                                                     "metadata": {"note_id": note_id}})

    async def list_quick_notes(self, session_id: str) -> List[QuickNoteDTO]:
        async with self.session_factory() as db:
            session = await load_session(db, session_id)
            notes = await QuickNoteRepository(db).find_by_session(session.id)
        return [QuickNoteDTO.from_model(n) for n in notes]

    async def record_feedback(self, session_id: str, feedback: StarsAndWishesInput) -> StarsAndWishesDTO:
        """Replace the session's Stars & Wishes."""
        stars, wishes = self.check_feedback(feedback)
        collected_at = utcnow()
        async with self.session_factory() as db:
            await QuickNoteRepository(db).replace_feedback(session_id, stars, wishes, collected_at)
        return StarsAndWishesDTO(stars=stars, wishes=wishes, collected_at=collected_at)

    async def get_feedback(self, session_id: str) -> Optional[StarsAndWishesDTO]:
        async with self.session_factory() as db:
            session = await load_session(db, session_id)
            rows = await QuickNoteRepository(db).find_feedback(session.id)
        if not rows:
            return None
        return StarsAndWishesDTO(
            stars=[r.content for r in rows if r.feedback_type == FeedbackType.STAR.value],
            wishes=[r.content for r in rows if r.feedback_type == FeedbackType.WISH.value],
            collected_at=min(as_utc(r.collected_at) for r in rows),
        )

    @staticmethod
    def check_feedback(feedback: StarsAndWishesInput) -> Tuple[List[str], List[str]]:
        return (validate_feedback(feedback.stars, FeedbackType.STAR),
                validate_feedback(feedback.wishes, FeedbackType.WISH))
