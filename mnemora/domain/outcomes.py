"""
Event outcomes: the state changes an Event claims for other entities.

Stored on the Event as a JSON array of
``{entityID, field, toValue, fromValue?, description?}`` objects and tagged
with ``OUTCOMES_SCHEMA_VERSION``.  Parsing is lenient: anything that is not
an array, and any entry missing one of the three required strings, is
dropped rather than rejected.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger("mnemora.outcomes")

OUTCOMES_SCHEMA_VERSION = 1


class Outcome(BaseModel):
    """A claim that, as of its Event, ``entity_id.field`` becomes ``to_value``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    entity_id: str = Field(..., alias="entityID")
    field: str
    to_value: str = Field(..., alias="toValue")
    from_value: Optional[str] = Field(default=None, alias="fromValue")
    description: Optional[str] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.entity_id, self.field)

    def to_wire(self) -> dict[str, str]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _is_outcome_entry(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    for key in ("entityID", "field", "toValue"):
        if not isinstance(entry.get(key), str):
            return False
    for key in ("fromValue", "description"):
        if key in entry and entry[key] is not None and not isinstance(entry[key], str):
            return False
    return True


def parse_outcomes(raw: str | list | None) -> List[Outcome]:
    """Parse a JSON string (or an already-decoded list) into outcomes."""
    if raw is None or raw == "":
        return []
    data: Any = raw
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return []
    if not isinstance(data, list):
        return []

    outcomes: List[Outcome] = []
    for entry in data:
        if not _is_outcome_entry(entry):
            continue
        try:
            outcomes.append(Outcome.model_validate(entry))
        except ValidationError:
            logger.debug("dropping malformed outcome entry: %r", entry)
    return outcomes


def outcomes_to_wire(outcomes: Iterable[Outcome]) -> list[dict[str, str]]:
    return [o.to_wire() for o in outcomes]


def serialize_outcomes(outcomes: Iterable[Outcome]) -> str:
    return json.dumps(outcomes_to_wire(outcomes))
