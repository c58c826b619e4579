from datetime import datetime
from typing import List, Optional
from sqlalchemy import String, DateTime, ForeignKey, Text, JSON, Integer, UniqueConstraint, Index, Enum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, reconstructor

from mnemora.domain.fields import (
    Capability,
    EntityType,
    is_type_specific_field,
    new_id,
    supports,
    validate_name,
)
from mnemora.domain.outcomes import OUTCOMES_SCHEMA_VERSION, Outcome, outcomes_to_wire, parse_outcomes, serialize_outcomes
from mnemora.domain.session_notes import NoteVisibility
from mnemora.utils.clock import utcnow

class Base(DeclarativeBase):
    pass

class World(Base):
    __tablename__ = "worlds"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id) # Using UUID strings
    name: Mapped[str] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    world_id: Mapped[str] = mapped_column(ForeignKey("worlds.id", ondelete="CASCADE"), index=True)
    continuity_id: Mapped[Optional[str]] = mapped_column(ForeignKey("continuities.id"), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Continuity(Base):
    """A branch of a World's timeline.

    ``world_id``, ``branched_from_id`` and ``branch_point_event_id`` never
    change after creation.  A branch shares its ancestors' Events by
    reference; nothing is copied.
    """
    __tablename__ = "continuities"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    world_id: Mapped[str] = mapped_column(ForeignKey("worlds.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text, default="")
    branched_from_id: Mapped[Optional[str]] = mapped_column(ForeignKey("continuities.id", ondelete="SET NULL"), nullable=True)
    # Plain column: entities already reference continuities
    branch_point_event_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    @classmethod
    def new(cls, *, name: str, world_id: str, description: Optional[str] = None,
            branched_from_id: Optional[str] = None, branch_point_event_id: Optional[str] = None) -> "Continuity":
        now = utcnow()
        return cls(
            id=new_id(),
            world_id=world_id,
            name=validate_name(name),
            description=description or "",
            branched_from_id=branched_from_id,
            branch_point_event_id=branch_point_event_id,
            created_at=now,
            modified_at=now,
        )

    @property
    def is_branch(self) -> bool:
        return self.branched_from_id is not None

    def rename(self, new_name: str) -> None:
        self.name = validate_name(new_name)
        self.modified_at = utcnow()

    def update_description(self, content: str) -> None:
        self.description = content
        self.modified_at = utcnow()


class Entity(Base):
    """Every world entity variant lives in this table, discriminated by ``type``.

    Capabilities (rename, description, secrets, type-specific fields) come
    from ``ENTITY_CAPABILITIES``; setters return whether anything changed so
    that re-applying the same value leaves the row untouched.
    """
    __tablename__ = "entities"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    type: Mapped[EntityType] = mapped_column(Enum(EntityType, native_enum=False, length=20,
                                                               values_callable=lambda e: [m.value for m in e]), index=True)
    world_id: Mapped[str] = mapped_column(ForeignKey("worlds.id", ondelete="CASCADE"), index=True)
    campaign_id: Mapped[Optional[str]] = mapped_column(ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=True, index=True)
    continuity_id: Mapped[Optional[str]] = mapped_column(ForeignKey("continuities.id"), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text, default="")
    secrets: Mapped[str] = mapped_column(Text, default="")
    tags: Mapped[list] = mapped_column(JSON, default=list)
    type_specific_fields: Mapped[dict] = mapped_column(JSON, default=dict)

    # Event outcomes, versioned so the payload can evolve
    outcomes: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    outcomes_version: Mapped[int] = mapped_column(Integer, default=OUTCOMES_SCHEMA_VERSION)

    # Session run terminal fields
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_entities_continuity_type", "continuity_id", "type"),
    )

    @reconstructor
    def _init_on_load(self):
        self._outcome_cache = None

    @classmethod
    def new(cls, *, type: EntityType, name: str, world_id: str, campaign_id: Optional[str] = None,
            continuity_id: Optional[str] = None) -> "Entity":
        now = utcnow()
        return cls(
            id=new_id(),
            type=type,
            name=validate_name(name),
            world_id=world_id,
            campaign_id=campaign_id,
            continuity_id=continuity_id,
            description="",
            secrets="",
            tags=[],
            type_specific_fields={},
            outcomes=[] if type == EntityType.EVENT else None,
            outcomes_version=OUTCOMES_SCHEMA_VERSION,
            created_at=now,
            modified_at=now,
        )

    def touch(self) -> None:
        self.modified_at = utcnow()

    def supports(self, capability: Capability) -> bool:
        return supports(self.type, capability)

    # --- core fields ---

    def rename(self, new_name: str) -> bool:
        name = validate_name(new_name)
        if name == self.name:
            return False
        self.name = name
        self.touch()
        return True

    def update_description(self, content: str) -> bool:
        if content == self.description:
            return False
        self.description = content
        self.touch()
        return True

    def update_secrets(self, content: str) -> bool:
        if content == self.secrets:
            return False
        self.secrets = content
        self.touch()
        return True

    def set_tags(self, tags: List[str]) -> bool:
        cleaned: List[str] = []
        for tag in tags:
            tag = tag.strip()
            if tag and tag not in cleaned:
                cleaned.append(tag)
        if cleaned == list(self.tags or []):
            return False
        self.tags = cleaned
        self.touch()
        return True

    # --- type-specific fields ---

    def get_type_specific_field(self, field: str) -> Optional[str]:
        if field == "outcomes" and self.type == EntityType.EVENT:
            return serialize_outcomes(self.get_outcomes()) if self.outcomes else None
        return (self.type_specific_fields or {}).get(field)

    def set_type_specific_field(self, field: str, value: Optional[str]) -> Optional[bool]:
        """Set or clear a type-specific field.

        Returns ``None`` when *field* does not exist for this entity type,
        otherwise whether the stored value changed.
        """
        if not is_type_specific_field(self.type, field):
            return None
        if field == "outcomes":
            return self.set_outcomes(parse_outcomes(value))

        current = dict(self.type_specific_fields or {})
        if value is None or value == "":
            if field not in current:
                return False
            del current[field]
        else:
            if current.get(field) == value:
                return False
            current[field] = value
        self.type_specific_fields = current
        self.touch()
        return True

    @property
    def in_world_time(self) -> Optional[str]:
        return (self.type_specific_fields or {}).get("inWorldTime") or None

    # --- outcomes ---

    def get_outcomes(self) -> List[Outcome]:
        cached = getattr(self, "_outcome_cache", None)
        if cached is None:
            cached = parse_outcomes(self.outcomes)
            self._outcome_cache = cached
        return list(cached)

    def set_outcomes(self, outcomes: List[Outcome]) -> bool:
        """Replace the outcome list wholesale."""
        wire = outcomes_to_wire(outcomes)
        if wire == (self.outcomes or []):
            return False
        self.outcomes = wire
        self.outcomes_version = OUTCOMES_SCHEMA_VERSION
        self._outcome_cache = list(outcomes)
        self.touch()
        return True

    # --- session runs ---

    @property
    def has_ended(self) -> bool:
        return self.ended_at is not None or self.duration_seconds is not None


class SessionRun(Base):
    """The live-session pointer: present only while a campaign's session runs."""
    __tablename__ = "session_runs"

    campaign_id: Mapped[str] = mapped_column(ForeignKey("campaigns.id", ondelete="CASCADE"), primary_key=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("entities.id", ondelete="CASCADE"))
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class Drift(Base):
    __tablename__ = "entity_drifts"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    entity_id: Mapped[str] = mapped_column(String, index=True)
    continuity_id: Mapped[str] = mapped_column(ForeignKey("continuities.id", ondelete="CASCADE"), index=True)
    field: Mapped[str] = mapped_column(String(100))
    event_derived_value: Mapped[str] = mapped_column(Text)
    current_value: Mapped[str] = mapped_column(Text)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("entity_id", "continuity_id", "field", name="uix_entity_drift_field"),
    )

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


class QuickNote(Base):
    """A note captured at the table; immutable once written."""
    __tablename__ = "quick_notes"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(ForeignKey("entities.id", ondelete="CASCADE"), index=True)
    content: Mapped[str] = mapped_column(Text)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    linked_entity_ids: Mapped[list] = mapped_column(JSON, default=list)
    visibility: Mapped[str] = mapped_column(String(10), default=NoteVisibility.GM_ONLY.value)


class SessionFeedback(Base):
    """One star or wish; a session's feedback is replaced wholesale."""
    __tablename__ = "session_feedback"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(ForeignKey("entities.id", ondelete="CASCADE"), index=True)
    feedback_type: Mapped[str] = mapped_column(String(10))
    content: Mapped[str] = mapped_column(Text)
    # Keeps entries in the order they were given
    position: Mapped[int] = mapped_column(Integer, default=0)
    collected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
