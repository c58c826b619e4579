"""Entity variants, the capabilities each one supports, and field names."""

from __future__ import annotations

import enum
import uuid

from mnemora.errors import DomainValidationError

NAME_MIN_LENGTH = 1
NAME_MAX_LENGTH = 200


class EntityType(str, enum.Enum):
    CHARACTER = "character"
    LOCATION = "location"
    FACTION = "faction"
    SESSION = "session"
    NOTE = "note"
    EVENT = "event"


class Capability(str, enum.Enum):
    RENAME = "rename"
    DESCRIPTION = "description"
    SECRETS = "secrets"
    TYPE_FIELDS = "type_fields"


_FULL = frozenset({Capability.RENAME, Capability.DESCRIPTION, Capability.SECRETS, Capability.TYPE_FIELDS})

ENTITY_CAPABILITIES: dict[EntityType, frozenset[Capability]] = {
    EntityType.CHARACTER: _FULL,
    EntityType.LOCATION: _FULL,
    EntityType.FACTION: _FULL,
    EntityType.EVENT: _FULL,
    # Sessions keep a summary, not a description
    EntityType.SESSION: frozenset({Capability.RENAME, Capability.SECRETS, Capability.TYPE_FIELDS}),
    EntityType.NOTE: frozenset({Capability.RENAME, Capability.TYPE_FIELDS}),
}

TYPE_SPECIFIC_FIELD_NAMES: dict[EntityType, tuple[str, ...]] = {
    EntityType.CHARACTER: ("appearance", "personality", "motivation", "voiceMannerisms"),
    EntityType.LOCATION: ("appearance", "atmosphere", "notableFeatures"),
    EntityType.FACTION: ("ideology", "goals", "resources", "structure"),
    EntityType.NOTE: ("content",),
    EntityType.SESSION: ("prepNotes",),
    EntityType.EVENT: ("inWorldTime", "realWorldAnchor", "involvedEntityIDs", "locationID", "outcomes"),
}

# Core fields map onto a capability; anything else is type-specific
CORE_FIELD_CAPABILITIES = {
    "name": Capability.RENAME,
    "description": Capability.DESCRIPTION,
    "secrets": Capability.SECRETS,
}


def supports(entity_type: EntityType, capability: Capability) -> bool:
    return capability in ENTITY_CAPABILITIES[entity_type]


def is_type_specific_field(entity_type: EntityType, field: str) -> bool:
    return field in TYPE_SPECIFIC_FIELD_NAMES[entity_type]


def validate_name(value: str | None, field: str = "name") -> str:
    """Trim *value* and enforce the name length limits."""
    trimmed = (value or "").strip()
    if len(trimmed) < NAME_MIN_LENGTH:
        raise DomainValidationError("Name is required", field)
    if len(trimmed) > NAME_MAX_LENGTH:
        raise DomainValidationError(f"Name must be at most {NAME_MAX_LENGTH} characters", field)
    return trimmed


def parse_id(value: str | None, field: str, label: str) -> str:
    """Validate that *value* is a UUID string and return it normalised."""
    if not value or not value.strip():
        raise DomainValidationError(f"{label} is required", field)
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        raise DomainValidationError(f"Invalid {label.lower()}", field)


def is_valid_id(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, TypeError, AttributeError):
        return False
    return True


def new_id() -> str:
    return str(uuid.uuid4())
