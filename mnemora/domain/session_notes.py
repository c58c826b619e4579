"""
Table-side session notes.

Quick notes are captured during play and are never edited, only added or
removed.  Stars & Wishes is the end-of-session feedback round: what went
well and what players want next.
"""

from __future__ import annotations

import enum
from typing import Iterable, List

from mnemora.errors import DomainValidationError

NOTE_MAX_LENGTH = 500
FEEDBACK_ENTRY_MAX_LENGTH = 200


class NoteVisibility(str, enum.Enum):
    GM_ONLY = "gm_only"
    PLAYERS = "players"


class FeedbackType(str, enum.Enum):
    STAR = "star"
    WISH = "wish"


def validate_note_content(content: str | None) -> str:
    trimmed = (content or "").strip()
    if not trimmed:
        raise DomainValidationError("Note content is required", "content")
    if len(trimmed) > NOTE_MAX_LENGTH:
        raise DomainValidationError(f"Note must be at most {NOTE_MAX_LENGTH} characters", "content")
    return trimmed


def validate_feedback(entries: Iterable[str], kind: FeedbackType) -> List[str]:
    """Trim every star (or wish); an empty or oversized entry rejects the lot."""
    label = kind.value.capitalize()
    field = f"{kind.value}s"
    cleaned: List[str] = []
    for entry in entries:
        trimmed = entry.strip()
        if not trimmed:
            raise DomainValidationError(f"{label} cannot be empty", field)
        if len(trimmed) > FEEDBACK_ENTRY_MAX_LENGTH:
            raise DomainValidationError(f"{label} must be at most {FEEDBACK_ENTRY_MAX_LENGTH} characters", field)
        cleaned.append(trimmed)
    return cleaned


def referenced_entity_count(linked_ids: Iterable[Iterable[str]]) -> int:
    """Distinct entities linked across a set of notes."""
    seen = set()
    for ids in linked_ids:
        seen.update(ids)
    return len(seen)
