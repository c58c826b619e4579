"""
Continuity use cases: root creation, branching, timeline reads, deletion.

A branch never copies its parent's Events.  Reading a branch's timeline
unions its own Events with every ancestor's Events up to the branch point,
walking ``branched_from_id`` with a visited set.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mnemora.config import get_settings
from mnemora.domain.events import ContinuityCreated, ContinuityDeleted, ContinuityUpdated
from mnemora.domain.fields import EntityType, parse_id, validate_name
from mnemora.domain.timeline import TimelineEntry, timeline_sort_key
from mnemora.errors import ConflictError, DomainValidationError, InvalidOperationError, NotFoundError
from mnemora.models import Continuity, Entity
from mnemora.repositories import (
    CampaignRepository,
    ContinuityRepository,
    EntityFilter,
    EntityRepository,
    WorldRepository,
)
from mnemora.schemas.continuity import (
    BranchContinuityRequest,
    CreateContinuityRequest,
    UpdateContinuityRequest,
)
from mnemora.services.event_bus import EventBus
from mnemora.utils.logging_config import get_logger

logger = get_logger("mnemora.continuities")


class ContinuityService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], bus: EventBus,
                 scan_limit: Optional[int] = None):
        self.session_factory = session_factory
        self.bus = bus
        self.scan_limit = scan_limit or get_settings().event_scan_limit

    async def create_continuity(self, request: CreateContinuityRequest) -> Continuity:
        if request.branched_from_id or request.branch_point_event_id:
            if not request.branched_from_id:
                raise DomainValidationError("Parent continuity is required for a branch", "branched_from_id")
            if not request.branch_point_event_id:
                raise DomainValidationError("Branch point event is required for a branch", "branch_point_event_id")
            return await self.branch_continuity(BranchContinuityRequest(
                name=request.name,
                parent_continuity_id=request.branched_from_id,
                branch_point_event_id=request.branch_point_event_id,
                description=request.description,
            ))

        name = validate_name(request.name)
        world_id = parse_id(request.world_id, "world_id", "World ID")

        async with self.session_factory() as db:
            if not await WorldRepository(db).exists(world_id):
                raise NotFoundError("World", world_id)
            continuity = Continuity.new(name=name, world_id=world_id, description=request.description)
            await ContinuityRepository(db).save(continuity)

        logger.info("continuity created", extra={"continuity_id": continuity.id, "action": "create"})
        await self.bus.publish(ContinuityCreated(
            continuity_id=continuity.id,
            world_id=continuity.world_id,
            name=continuity.name,
        ))
        return continuity

    async def branch_continuity(self, request: BranchContinuityRequest) -> Continuity:
        name = validate_name(request.name)
        parent_id = parse_id(request.parent_continuity_id, "parent_continuity_id", "Parent continuity ID")
        event_id = parse_id(request.branch_point_event_id, "branch_point_event_id", "Branch point event ID")

        async with self.session_factory() as db:
            continuities = ContinuityRepository(db)
            parent = await continuities.find_by_id(parent_id)
            if parent is None:
                raise NotFoundError("Continuity", parent_id)

            event = await EntityRepository(db).find_by_id(event_id)
            if event is None or event.type != EntityType.EVENT:
                raise NotFoundError("Event", event_id)
            if event.continuity_id != parent.id:
                raise DomainValidationError(
                    "Branch point event does not belong to the parent continuity", "branch_point_event_id")
            if not event.in_world_time:
                raise DomainValidationError(
                    "Branch point event must have an in-world time", "branch_point_event_id")

            await self._assert_acyclic(continuities, parent)

            continuity = Continuity.new(
                name=name,
                world_id=parent.world_id,
                description=request.description,
                branched_from_id=parent.id,
                branch_point_event_id=event.id,
            )
            await continuities.save(continuity)

        logger.info(
            "continuity branched",
            extra={"continuity_id": continuity.id, "action": "branch",
                   "metadata": {"parent_id": parent.id, "branch_point_event_id": event.id,
                                "branch_point_time": event.in_world_time}},
        )
        await self.bus.publish(ContinuityCreated(
            continuity_id=continuity.id,
            world_id=continuity.world_id,
            name=continuity.name,
            branched_from_id=parent.id,
        ))
        return continuity

    @staticmethod
    async def _assert_acyclic(continuities: ContinuityRepository, start: Continuity) -> None:
        visited = {start.id}
        node = start
        while node.branched_from_id:
            if node.branched_from_id in visited:
                raise InvalidOperationError(
                    f"Continuity ancestry of '{start.id}' contains a cycle; cannot branch from it")
            visited.add(node.branched_from_id)
            node = await continuities.find_by_id(node.branched_from_id)
            if node is None:
                return

    async def get_continuity(self, continuity_id: str) -> Continuity:
        continuity_id = parse_id(continuity_id, "continuity_id", "Continuity ID")
        async with self.session_factory() as db:
            continuity = await ContinuityRepository(db).find_by_id(continuity_id)
        if continuity is None:
            raise NotFoundError("Continuity", continuity_id)
        return continuity

    async def list_continuities(self, world_id: str) -> List[Continuity]:
        world_id = parse_id(world_id, "world_id", "World ID")
        async with self.session_factory() as db:
            if not await WorldRepository(db).exists(world_id):
                raise NotFoundError("World", world_id)
            return await ContinuityRepository(db).list_by_world(world_id)

    async def update_continuity(self, request: UpdateContinuityRequest) -> Continuity:
        continuity_id = parse_id(request.id, "id", "Continuity ID")
        changed: List[str] = []

        async with self.session_factory() as db:
            repo = ContinuityRepository(db)
            continuity = await repo.find_by_id(continuity_id)
            if continuity is None:
                raise NotFoundError("Continuity", continuity_id)

            if request.name is not None:
                name = validate_name(request.name)
                if name != continuity.name:
                    continuity.rename(name)
                    changed.append("name")
            if request.description is not None and request.description != continuity.description:
                continuity.update_description(request.description)
                changed.append("description")

            if changed:
                await repo.save(continuity)

        if changed:
            await self.bus.publish(ContinuityUpdated(continuity_id=continuity.id, changed_fields=tuple(changed)))
        return continuity

    async def delete_continuity(self, continuity_id: str) -> None:
        continuity_id = parse_id(continuity_id, "continuity_id", "Continuity ID")

        async with self.session_factory() as db:
            repo = ContinuityRepository(db)
            continuity = await repo.find_by_id(continuity_id)
            if continuity is None:
                raise NotFoundError("Continuity", continuity_id)

            event_count = await EntityRepository(db).count(
                EntityFilter(continuity_id=continuity_id, types=[EntityType.EVENT]))
            if event_count:
                raise ConflictError(
                    f"Cannot delete continuity: {event_count} event(s) still reference it. "
                    "Move or delete them first.")

            campaign_count = await CampaignRepository(db).count_by_continuity(continuity_id)
            if campaign_count:
                raise ConflictError(
                    f"Cannot delete continuity: {campaign_count} campaign(s) still reference it. "
                    "Reassign them first.")

            world_id = continuity.world_id
            await repo.delete(continuity)

        logger.info("continuity deleted", extra={"continuity_id": continuity_id, "action": "delete"})
        await self.bus.publish(ContinuityDeleted(continuity_id=continuity_id, world_id=world_id))

    async def get_timeline(self, continuity_id: str) -> List[Entity]:
        """Events visible from a continuity, in in-world order.

        Ancestor Events are included when their in-world time is at or before
        the tightest branch point seen so far on the way up the chain.
        """
        continuity_id = parse_id(continuity_id, "continuity_id", "Continuity ID")

        async with self.session_factory() as db:
            continuities = ContinuityRepository(db)
            entities = EntityRepository(db)

            node = await continuities.find_by_id(continuity_id)
            if node is None:
                raise NotFoundError("Continuity", continuity_id)

            events = await self._events_of(entities, node.id)
            visited = {node.id}
            cutoff: Optional[str] = None

            while node.branched_from_id:
                branch_point = await entities.find_by_id(node.branch_point_event_id) \
                    if node.branch_point_event_id else None
                if branch_point is None or not branch_point.in_world_time:
                    logger.warning("branch point missing; ancestor events omitted",
                                   extra={"continuity_id": node.id})
                    break
                point = branch_point.in_world_time
                cutoff = point if cutoff is None else min(cutoff, point)

                if node.branched_from_id in visited:
                    logger.warning("cycle in continuity ancestry", extra={"continuity_id": node.id})
                    break
                visited.add(node.branched_from_id)
                parent = await continuities.find_by_id(node.branched_from_id)
                if parent is None:
                    break

                events.extend(
                    e for e in await self._events_of(entities, parent.id)
                    if e.in_world_time and e.in_world_time <= cutoff
                )
                node = parent

        return sorted(events, key=lambda e: timeline_sort_key(TimelineEntry.from_event(e)))

    async def _events_of(self, entities: EntityRepository, continuity_id: str) -> List[Entity]:
        page = await entities.find_by_filter(
            EntityFilter(continuity_id=continuity_id, types=[EntityType.EVENT]),
            limit=self.scan_limit,
        )
        return list(page.items)
