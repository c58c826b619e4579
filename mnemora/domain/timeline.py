"""Canonical value resolution over the Events of a continuity.

Both the outcome propagator and the drift detector decide "what does the
timeline say ``entity.field`` is" with :func:`resolve_latest`, working on
:class:`TimelineEntry` snapshots taken once per scan.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Iterable, Optional, Sequence, Tuple

from mnemora.domain.outcomes import Outcome
from mnemora.utils.clock import as_utc


@dataclasses.dataclass(frozen=True)
class TimelineEntry:
    """Read-only snapshot of the parts of an Event that resolution needs."""
    event_id: str
    continuity_id: str
    in_world_time: Optional[str]
    created_at: datetime
    outcomes: Tuple[Outcome, ...] = ()

    @classmethod
    def from_event(cls, event) -> "TimelineEntry":
        return cls(
            event_id=event.id,
            continuity_id=event.continuity_id,
            in_world_time=event.in_world_time,
            created_at=as_utc(event.created_at),
            outcomes=tuple(event.get_outcomes()),
        )


@dataclasses.dataclass(frozen=True)
class ResolvedValue:
    value: str
    event_id: str
    in_world_time: str


def resolve_latest(
    entries: Iterable[TimelineEntry],
    entity_id: str,
    field: str,
) -> Optional[ResolvedValue]:
    """Return the winning outcome value for ``(entity_id, field)``.

    Only Events carrying an in-world time take part.  The greatest in-world
    time wins; ties fall back to Event creation time, then Event ID, then the
    outcome's position inside its Event (later wins).
    """
    best_key = None
    best: Optional[ResolvedValue] = None

    for entry in entries:
        if not entry.in_world_time:
            continue
        for index, outcome in enumerate(entry.outcomes):
            if outcome.entity_id != entity_id or outcome.field != field:
                continue
            key = (entry.in_world_time, entry.created_at, entry.event_id, index)
            if best_key is None or key > best_key:
                best_key = key
                best = ResolvedValue(
                    value=outcome.to_value,
                    event_id=entry.event_id,
                    in_world_time=entry.in_world_time,
                )
    return best


def touched_pairs(outcomes: Sequence[Outcome]) -> list[tuple[str, str]]:
    """Distinct ``(entity_id, field)`` pairs in declaration order."""
    seen: dict[tuple[str, str], None] = {}
    for outcome in outcomes:
        seen.setdefault(outcome.key, None)
    return list(seen)


def group_by_continuity(entries: Iterable[TimelineEntry]) -> dict[str, list[TimelineEntry]]:
    grouped: dict[str, list[TimelineEntry]] = {}
    for entry in entries:
        grouped.setdefault(entry.continuity_id, []).append(entry)
    return grouped


def timeline_sort_key(entry: TimelineEntry):
    """Chronological order; Events without in-world time sort last."""
    return (entry.in_world_time is None, entry.in_world_time or "", entry.created_at, entry.event_id)
