"""
Event creation and the generic entity update/delete flows.

Saving an Event whose outcomes or in-world time changed triggers outcome
propagation; editing any other entity triggers a drift check on the fields
that changed.  Neither side effect can fail the edit itself.
"""

from __future__ import annotations

from typing import List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mnemora.domain.events import EntityCreated, EntityDeleted, EntityUpdated
from mnemora.domain.fields import Capability, EntityType, parse_id, validate_name
from mnemora.errors import ConflictError, DomainValidationError, MnemoraError, NotFoundError
from mnemora.models import Entity
from mnemora.repositories import (
    CampaignRepository,
    ContinuityRepository,
    DriftRepository,
    EntityRepository,
    QuickNoteRepository,
    WorldRepository,
)
from mnemora.schemas.entity import (
    CreateEventRequest,
    DriftCheckDTO,
    EntityDTO,
    EventDTO,
    PropagationResultDTO,
    UpdateEntityRequest,
)
from mnemora.services.drift import DriftCheckResult, DriftDetector
from mnemora.services.event_bus import EventBus
from mnemora.services.propagation import EventStatePropagator, PropagationResult
from mnemora.utils.logging_config import get_logger

logger = get_logger("mnemora.entities")

# Event fields whose change invalidates resolved outcome values
PROPAGATING_FIELDS = frozenset({"outcomes", "inWorldTime"})


class EntityService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bus: EventBus,
        propagator: Optional[EventStatePropagator] = None,
        drift_detector: Optional[DriftDetector] = None,
    ):
        self.session_factory = session_factory
        self.bus = bus
        self.propagator = propagator or EventStatePropagator(session_factory)
        self.drift_detector = drift_detector or DriftDetector(session_factory)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_event(self, request: CreateEventRequest) -> EventDTO:
        name = validate_name(request.name)
        world_id = parse_id(request.world_id, "world_id", "World ID")
        continuity_id = parse_id(request.continuity_id, "continuity_id", "Continuity ID")
        campaign_id = parse_id(request.campaign_id, "campaign_id", "Campaign ID") if request.campaign_id else None

        async with self.session_factory() as db:
            if not await WorldRepository(db).exists(world_id):
                raise NotFoundError("World", world_id)
            continuity = await ContinuityRepository(db).find_by_id(continuity_id)
            if continuity is None:
                raise NotFoundError("Continuity", continuity_id)
            if continuity.world_id != world_id:
                raise DomainValidationError("Continuity does not belong to this world", "continuity_id")
            if campaign_id and not await CampaignRepository(db).exists(campaign_id):
                raise NotFoundError("Campaign", campaign_id)

            event = Entity.new(
                type=EntityType.EVENT,
                name=name,
                world_id=world_id,
                campaign_id=campaign_id,
                continuity_id=continuity_id,
            )
            if request.description:
                event.update_description(request.description)
            if request.secrets:
                event.update_secrets(request.secrets)
            if request.tags:
                event.set_tags(request.tags)
            event.set_type_specific_field("inWorldTime", request.in_world_time)
            event.set_type_specific_field("realWorldAnchor", request.real_world_anchor)
            event.set_type_specific_field("involvedEntityIDs", ",".join(request.involved_entity_ids))
            event.set_type_specific_field("locationID", request.location_id)
            event.set_outcomes(list(request.outcomes))

            await EntityRepository(db).save(event)

        logger.info("event created", extra={"entity_id": event.id, "continuity_id": continuity_id,
                                            "action": "create"})
        propagation = await self._propagate(event)
        await self.bus.publish(EntityCreated(
            entity_id=event.id,
            entity_type=event.type.value,
            world_id=event.world_id,
            campaign_id=event.campaign_id,
        ))
        return EventDTO.from_model(event, propagation=PropagationResultDTO.from_result(propagation))

    # ------------------------------------------------------------------
    # Read / update / delete
    # ------------------------------------------------------------------

    async def get_entity(self, entity_id: str) -> Union[EntityDTO, EventDTO]:
        entity_id = parse_id(entity_id, "id", "Entity ID")
        async with self.session_factory() as db:
            entity = await EntityRepository(db).find_by_id(entity_id)
        if entity is None:
            raise NotFoundError("Entity", entity_id)
        return self._to_dto(entity)

    async def update_entity(self, request: UpdateEntityRequest) -> Union[EntityDTO, EventDTO]:
        entity_id = parse_id(request.id, "id", "Entity ID")

        async with self.session_factory() as db:
            repo = EntityRepository(db)
            entity = await repo.find_by_id(entity_id)
            if entity is None:
                raise NotFoundError("Entity", entity_id)

            changed = self._apply_updates(entity, request)
            if not changed:
                return self._to_dto(entity)
            await repo.save(entity)

        propagation: Optional[PropagationResult] = None
        drift: Optional[DriftCheckResult] = None
        if entity.type == EntityType.EVENT:
            if PROPAGATING_FIELDS.intersection(changed):
                propagation = await self._propagate(entity)
        else:
            drift = await self._check_drift(entity.id, entity.world_id, changed)

        await self.bus.publish(EntityUpdated(
            entity_id=entity.id,
            entity_type=entity.type.value,
            changed_fields=tuple(changed),
        ))
        return self._to_dto(
            entity,
            propagation=PropagationResultDTO.from_result(propagation) if propagation is not None else None,
            drift=DriftCheckDTO(drifts_detected=drift.detected, drifts_resolved=drift.resolved)
            if drift is not None else None,
        )

    @staticmethod
    def _apply_updates(entity: Entity, request: UpdateEntityRequest) -> List[str]:
        """Apply every requested change; returns the fields that really changed."""
        label = entity.type.value.capitalize()
        changed: List[str] = []

        if request.name is not None:
            if not entity.supports(Capability.RENAME):
                raise DomainValidationError(f"{label} entities cannot be renamed", "name")
            if entity.rename(request.name):
                changed.append("name")

        if request.description is not None:
            if not entity.supports(Capability.DESCRIPTION):
                raise DomainValidationError(f"{label} entities have no description", "description")
            if entity.update_description(request.description):
                changed.append("description")

        if request.secrets is not None:
            if not entity.supports(Capability.SECRETS):
                raise DomainValidationError(f"{label} entities have no secrets", "secrets")
            if entity.update_secrets(request.secrets):
                changed.append("secrets")

        if request.tags is not None and entity.set_tags(request.tags):
            changed.append("tags")

        for field, value in (request.type_specific_fields or {}).items():
            result = entity.set_type_specific_field(field, value)
            if result is None:
                raise DomainValidationError(
                    f"'{field}' is not valid for entity type {entity.type.value}", "type_specific_fields")
            if result:
                changed.append(field)

        if request.outcomes is not None:
            if entity.type != EntityType.EVENT:
                raise DomainValidationError("Only events carry outcomes", "outcomes")
            if entity.set_outcomes(list(request.outcomes)) and "outcomes" not in changed:
                changed.append("outcomes")

        return changed

    async def delete_entity(self, entity_id: str) -> None:
        entity_id = parse_id(entity_id, "id", "Entity ID")

        async with self.session_factory() as db:
            repo = EntityRepository(db)
            entity = await repo.find_by_id(entity_id)
            if entity is None:
                raise NotFoundError("Entity", entity_id)

            if entity.type == EntityType.EVENT:
                branches = await ContinuityRepository(db).count_branched_at(entity_id)
                if branches:
                    raise ConflictError(
                        f"Cannot delete event: {branches} continuity branch(es) start at it.")

            await DriftRepository(db).delete_by_entity(entity_id)
            if entity.type == EntityType.SESSION:
                await QuickNoteRepository(db).delete_all_for_session(entity_id)
            await repo.delete(entity)

        logger.info("entity deleted", extra={"entity_id": entity_id, "action": "delete",
                                             "metadata": {"type": entity.type.value}})
        await self.bus.publish(EntityDeleted(
            entity_id=entity_id,
            entity_type=entity.type.value,
            world_id=entity.world_id,
        ))

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    async def _propagate(self, event: Entity) -> PropagationResult:
        result = await self.propagator.propagate(event)
        # Targets now hold the winning values; settle their drifts
        for target_id in result.applied_entity_ids():
            fields = [a.field for a in result.applied if a.entity_id == target_id]
            await self._check_drift(target_id, event.world_id, fields)
        return result

    async def _check_drift(self, entity_id: str, world_id: str, fields: List[str]) -> Optional[DriftCheckResult]:
        try:
            return await self.drift_detector.check_for_drifts(entity_id, world_id, fields)
        except MnemoraError:
            logger.exception("drift check failed", extra={"entity_id": entity_id})
            return None

    @staticmethod
    def _to_dto(entity: Entity, **extra) -> Union[EntityDTO, EventDTO]:
        if entity.type == EntityType.EVENT:
            return EventDTO.from_model(entity, **extra)
        return EntityDTO.from_model(entity, **extra)
