"""
Session-run lifecycle.

At most one Session per Campaign is live at a time.  The live pointer is a
row in ``session_runs`` keyed by ``campaign_id``: starting a run inserts it,
ending a run deletes it and stamps ``ended_at``/``duration_seconds`` on the
Session in the same commit.  Because the pointer is durable, a process that
dies mid-session still reports the right live session after restart.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import List, Literal, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mnemora.domain.events import SessionRunEnded, SessionRunStarted
from mnemora.domain.fields import parse_id
from mnemora.domain.session_notes import referenced_entity_count
from mnemora.errors import (
    ConflictError,
    DomainValidationError,
    InvalidOperationError,
    NotFoundError,
    RepositoryError,
)
from mnemora.models import Entity, SessionRun
from mnemora.repositories import CampaignRepository, storage_errors
from mnemora.schemas.session_run import (
    ActiveSessionRunDTO,
    EndSessionRequest,
    EndSessionRunDTO,
    EndSessionRunRequest,
    GetActiveSessionRunRequest,
    SessionSummaryDTO,
    StartSessionRunRequest,
)
from mnemora.services.event_bus import EventBus
from mnemora.services.session_notes import SessionNoteService, load_session
from mnemora.utils.clock import as_utc, format_duration, utcnow
from mnemora.utils.logging_config import CampaignAdapter, get_logger

logger = get_logger("mnemora.session_runs")

# Compare-and-set rounds before a start that keeps losing races gives up
START_ATTEMPTS = 3


@dataclasses.dataclass(frozen=True)
class StartOutcome:
    kind: Literal["started", "already_active", "conflict"]
    started_at: Optional[datetime] = None
    active_session_id: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class EndOutcome:
    kind: Literal["ended", "already_ended", "not_active", "conflict"]
    active_session_id: Optional[str] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None


@dataclasses.dataclass(frozen=True)
class ActiveSessionRun:
    campaign_id: str
    session_id: str
    session_name: str
    started_at: datetime


class SessionRunTracker:
    """Store-level state machine: ``NoActiveSession`` <-> ``ActiveSession``.

    Callers validate the Session beforehand; the tracker only arbitrates the
    pointer.  A pointer whose Session is gone or already ended is stale and
    is replaced by the next ``start``.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    async def _pointer(db: AsyncSession, campaign_id: str, lock: bool = False) -> Optional[SessionRun]:
        stmt = select(SessionRun).where(SessionRun.campaign_id == campaign_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def _live_session(db: AsyncSession, run: SessionRun) -> Optional[Entity]:
        session = await db.get(Entity, run.session_id)
        if session is None or session.has_ended:
            return None
        return session

    async def _owner_outcome(self, db: AsyncSession, campaign_id: str, session_id: str) -> Optional[StartOutcome]:
        """Report whoever holds the pointer after this start lost a race.

        ``None`` means the pointer vanished in between and the start can be retried.
        """
        await db.rollback()
        owner = await self._pointer(db, campaign_id)
        if owner is None:
            return None
        if owner.session_id == session_id:
            return StartOutcome("already_active", started_at=as_utc(owner.started_at))
        return StartOutcome("conflict", active_session_id=owner.session_id)

    async def start(self, campaign_id: str, session_id: str, started_at: datetime) -> StartOutcome:
        for _ in range(START_ATTEMPTS):
            outcome = await self._try_start(campaign_id, session_id, started_at)
            if outcome is not None:
                return outcome
        raise RepositoryError("Failed to start session run")

    async def _try_start(self, campaign_id: str, session_id: str, started_at: datetime) -> Optional[StartOutcome]:
        log = CampaignAdapter(logger, campaign_id)
        async with self.session_factory() as db:
            async with storage_errors(db, "Failed to start session run"):
                current = await self._pointer(db, campaign_id, lock=True)
                if current is not None:
                    live = await self._live_session(db, current)
                    if live is not None and current.session_id == session_id:
                        return StartOutcome("already_active", started_at=as_utc(current.started_at))
                    if live is not None:
                        return StartOutcome("conflict", active_session_id=current.session_id)

                    stale_session_id = current.session_id
                    log.warning("replacing stale session run pointer", extra={"session_id": stale_session_id})
                    db.expunge(current)
                    # Only the pointer we saw; a concurrent start may already have replaced it
                    result = await db.execute(
                        delete(SessionRun)
                        .where(SessionRun.campaign_id == campaign_id,
                               SessionRun.session_id == stale_session_id)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        return await self._owner_outcome(db, campaign_id, session_id)

                db.add(SessionRun(campaign_id=campaign_id, session_id=session_id, started_at=started_at))
                session = await db.get(Entity, session_id)
                if session is not None:
                    session.started_at = started_at
                    session.touch()

                try:
                    await db.commit()
                except IntegrityError:
                    # Another start won the insert for this campaign
                    return await self._owner_outcome(db, campaign_id, session_id)

        return StartOutcome("started", started_at=as_utc(started_at))

    async def end(self, campaign_id: str, session_id: str, ended_at: datetime,
                  duration_seconds: int) -> EndOutcome:
        async with self.session_factory() as db:
            async with storage_errors(db, "Failed to end session run"):
                current = await self._pointer(db, campaign_id, lock=True)
                session = await db.get(Entity, session_id)
                already_ended = session is not None and session.has_ended

                if current is None or current.session_id != session_id:
                    if current is not None and await self._live_session(db, current) is not None:
                        return EndOutcome("conflict", active_session_id=current.session_id)
                    if already_ended:
                        return EndOutcome("already_ended", ended_at=as_utc(session.ended_at),
                                          duration_seconds=session.duration_seconds)
                    return EndOutcome("not_active")

                # Terminal fields are written once
                if session is not None and not already_ended:
                    session.ended_at = ended_at
                    session.duration_seconds = duration_seconds
                    session.touch()
                await db.delete(current)
                await db.commit()

        if already_ended:
            return EndOutcome("already_ended", ended_at=as_utc(session.ended_at),
                              duration_seconds=session.duration_seconds)
        return EndOutcome("ended", ended_at=as_utc(ended_at), duration_seconds=duration_seconds)

    async def get(self, campaign_id: str) -> Optional[ActiveSessionRun]:
        """Current live session of a campaign; never mutates the store."""
        async with self.session_factory() as db:
            async with storage_errors(db, "Failed to load active session run"):
                current = await self._pointer(db, campaign_id)
                if current is None:
                    return None
                session = await self._live_session(db, current)
        if session is None:
            CampaignAdapter(logger, campaign_id).warning(
                "ignoring stale session run pointer", extra={"session_id": current.session_id})
            return None
        return ActiveSessionRun(
            campaign_id=campaign_id,
            session_id=session.id,
            session_name=session.name,
            started_at=as_utc(current.started_at),
        )

    async def find_stale(self) -> List[SessionRun]:
        async with self.session_factory() as db:
            async with storage_errors(db, "Failed to scan session runs"):
                runs = (await db.execute(select(SessionRun))).scalars().all()
                return [run for run in runs if await self._live_session(db, run) is None]

    async def clear_stale(self) -> int:
        stale = await self.find_stale()
        if not stale:
            return 0
        cleared: List[SessionRun] = []
        async with self.session_factory() as db:
            async with storage_errors(db, "Failed to clear stale session runs"):
                for run in stale:
                    # Re-read under lock; the pointer may have moved on
                    current = await self._pointer(db, run.campaign_id, lock=True)
                    if current is not None and current.session_id == run.session_id:
                        await db.delete(current)
                        cleared.append(run)
                await db.commit()
        for run in cleared:
            CampaignAdapter(logger, run.campaign_id).info(
                "cleared stale session run pointer", extra={"session_id": run.session_id})
        return len(cleared)


class SessionRunService:
    """Use cases around the tracker: validation, error mapping, notifications."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], bus: EventBus,
                 tracker: Optional[SessionRunTracker] = None, notes: Optional[SessionNoteService] = None):
        self.session_factory = session_factory
        self.bus = bus
        self.tracker = tracker or SessionRunTracker(session_factory)
        self.notes = notes or SessionNoteService(session_factory)

    async def _load_session(self, raw_session_id: str) -> Entity:
        async with self.session_factory() as db:
            entity = await load_session(db, raw_session_id)
            if not entity.campaign_id or not await CampaignRepository(db).exists(entity.campaign_id):
                raise NotFoundError("Campaign", entity.campaign_id or "")
        return entity

    async def start_session_run(self, request: StartSessionRunRequest) -> ActiveSessionRunDTO:
        session = await self._load_session(request.session_id)
        if session.has_ended:
            raise InvalidOperationError("Cannot start a session that has already ended")

        log = CampaignAdapter(logger, session.campaign_id)
        outcome = await self.tracker.start(session.campaign_id, session.id, utcnow())
        if outcome.kind == "conflict":
            log.info("session run start refused", extra={"session_id": session.id, "action": "start",
                                                          "metadata": {"active_session_id": outcome.active_session_id}})
            raise ConflictError(
                f"Campaign already has an active session ({outcome.active_session_id})",
                active_session_id=outcome.active_session_id,
            )

        if outcome.kind == "started":
            log.info("session run started", extra={"session_id": session.id, "action": "start"})
            await self.bus.publish(SessionRunStarted(
                campaign_id=session.campaign_id,
                session_id=session.id,
                started_at=outcome.started_at,
            ))

        return ActiveSessionRunDTO(
            campaign_id=session.campaign_id,
            session_id=session.id,
            session_name=session.name,
            started_at=outcome.started_at,
        )

    async def _end(self, session: Entity, duration_seconds: int) -> EndOutcome:
        outcome = await self.tracker.end(session.campaign_id, session.id, utcnow(), duration_seconds)
        if outcome.kind == "conflict":
            raise ConflictError(
                f"Cannot end session: campaign has a different active session ({outcome.active_session_id})",
                active_session_id=outcome.active_session_id,
            )
        if outcome.kind == "ended":
            CampaignAdapter(logger, session.campaign_id).info(
                "session run ended",
                extra={"session_id": session.id, "action": "end",
                       "metadata": {"duration_seconds": outcome.duration_seconds}},
            )
            await self.bus.publish(SessionRunEnded(
                campaign_id=session.campaign_id,
                session_id=session.id,
                ended_at=outcome.ended_at,
                duration_seconds=outcome.duration_seconds,
            ))
        return outcome

    async def end_session_run(self, request: EndSessionRunRequest) -> EndSessionRunDTO:
        if request.duration_seconds < 0:
            raise DomainValidationError("Duration cannot be negative", "duration_seconds")
        session = await self._load_session(request.session_id)

        outcome = await self._end(session, request.duration_seconds)
        if outcome.kind == "not_active":
            raise InvalidOperationError("Cannot end session: session is not active")

        return EndSessionRunDTO(
            campaign_id=session.campaign_id,
            session_id=session.id,
            status=outcome.kind,
            ended_at=outcome.ended_at,
            duration_seconds=outcome.duration_seconds,
        )

    async def get_active_session_run(self, request: GetActiveSessionRunRequest) -> Optional[ActiveSessionRunDTO]:
        campaign_id = parse_id(request.campaign_id, "campaign_id", "Campaign ID")
        async with self.session_factory() as db:
            if not await CampaignRepository(db).exists(campaign_id):
                raise NotFoundError("Campaign", campaign_id)

        active = await self.tracker.get(campaign_id)
        if active is None:
            return None
        return ActiveSessionRunDTO(**dataclasses.asdict(active))

    async def end_session_with_summary(self, request: EndSessionRequest) -> SessionSummaryDTO:
        """End the run (if any) and summarise the session.

        Only a conflicting live session fails; a session that was never
        started or already ended still gets its summary.  Feedback is
        validated before the run ends and stored only once it has.
        """
        if request.duration_seconds < 0:
            raise DomainValidationError("Duration cannot be negative", "duration_seconds")
        session = await self._load_session(request.session_id)
        if request.stars_and_wishes is not None:
            self.notes.check_feedback(request.stars_and_wishes)

        await self._end(session, request.duration_seconds)

        feedback = None
        if request.stars_and_wishes is not None:
            feedback = await self.notes.record_feedback(session.id, request.stars_and_wishes)
        notes = await self.notes.list_quick_notes(session.id)

        return SessionSummaryDTO(
            session_id=session.id,
            session_name=session.name,
            duration_seconds=request.duration_seconds,
            duration_formatted=format_duration(request.duration_seconds),
            quick_notes=notes,
            stars_and_wishes=feedback,
            referenced_entity_count=referenced_entity_count(n.linked_entity_ids for n in notes),
        )
