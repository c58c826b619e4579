"""Field routing for outcome values.

An outcome names a field by string.  ``name``, ``description`` and
``secrets`` are core fields guarded by a capability; every other name is a
type-specific field of the target's variant.
"""

from __future__ import annotations

from typing import Optional

from mnemora.domain.fields import CORE_FIELD_CAPABILITIES, Capability, is_type_specific_field


class FieldRoutingError(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def apply_field_value(entity, field: str, value: str) -> bool:
    """Write *value* into ``entity.<field>``; returns whether it changed.

    Raises :class:`FieldRoutingError` when the entity cannot hold the field,
    and lets ``DomainValidationError`` from the rename path through.
    """
    capability = CORE_FIELD_CAPABILITIES.get(field)
    if capability is not None:
        if not entity.supports(capability):
            raise FieldRoutingError(f"entity type does not support '{field}'")
        if capability is Capability.RENAME:
            return entity.rename(value)
        if capability is Capability.DESCRIPTION:
            return entity.update_description(value)
        return entity.update_secrets(value)

    if not entity.supports(Capability.TYPE_FIELDS):
        raise FieldRoutingError(f"entity type does not support '{field}'")
    changed = entity.set_type_specific_field(field, value)
    if changed is None:
        raise FieldRoutingError(f"'{field}' is not valid for entity type {entity.type.value}")
    return changed


def read_field_value(entity, field: str) -> Optional[str]:
    """Current stored value of a routable field, or ``None`` if untracked."""
    capability = CORE_FIELD_CAPABILITIES.get(field)
    if capability is not None:
        if not entity.supports(capability):
            return None
        return getattr(entity, field) or ""
    if not is_type_specific_field(entity.type, field):
        return None
    return entity.get_type_specific_field(field) or ""


def is_tracked_field(entity, field: str) -> bool:
    capability = CORE_FIELD_CAPABILITIES.get(field)
    if capability is not None:
        return entity.supports(capability)
    return is_type_specific_field(entity.type, field)
