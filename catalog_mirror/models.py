"""Data model shared by the sync engine.

Subjects and characters are stored as opaque documents; the engine only
reads the fields it needs to make sync decisions (id, date, the nested
character reference list).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

__all__ = [
    "Subject",
    "CharacterRef",
    "Page",
    "SyncOptions",
    "SyncProgress",
    "SyncErrorRecord",
    "SyncResult",
    "RotationStatus",
    "round_half_up",
]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives.

    ``round()`` uses banker's rounding (``round(2.5) == 2``), which would
    shift cooldowns and percentages by one at exact halves.
    """
    return int(math.floor(value + 0.5))


@dataclass
class Subject:
    """A catalog subject as returned by the listing or detail endpoint."""

    id: int
    date: Optional[str] = None
    type: Optional[int] = None
    name: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Subject":
        """Build a subject from an upstream payload.

        Raises:
            ValueError: If the payload has no usable ``id``
        """
        if "id" not in payload:
            raise ValueError("Subject payload has no id")
        date = payload.get("date") or None
        return cls(
            id=int(payload["id"]),
            date=date,
            type=payload.get("type"),
            name=payload.get("name") or "",
            data=dict(payload),
        )

    def to_document(self) -> Dict[str, Any]:
        """Metadata document for the store, without the character list."""
        document = dict(self.data)
        document.pop("characters", None)
        document["id"] = self.id
        document["date"] = self.date
        if self.type is not None:
            document["type"] = self.type
        if self.name:
            document["name"] = self.name
        return document


@dataclass(frozen=True)
class CharacterRef:
    """Reference to a related character stored on a subject."""

    id: int
    name: str = ""
    relation: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CharacterRef":
        return cls(
            id=int(payload["id"]),
            name=payload.get("name") or "",
            relation=payload.get("relation"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "relation": self.relation}


@dataclass
class Page:
    """One page of a listing response."""

    items: List[Dict[str, Any]]
    total: int


@dataclass
class SyncOptions:
    """Per-run overrides accepted by every strategy."""

    cooldown_days: Optional[int] = None
    batch_size: Optional[int] = None
    skip_characters: bool = False


@dataclass
class SyncProgress:
    """Progress of a running strategy. Overwritten on every unit of work."""

    current: int = 0
    total: int = 0
    percentage: int = 0

    @classmethod
    def of(cls, current: int, total: int) -> "SyncProgress":
        if total > 0:
            current = min(current, total)
            percentage = round_half_up(current / total * 100)
        else:
            percentage = 0
        return cls(current=current, total=total, percentage=percentage)

    def to_dict(self) -> Dict[str, int]:
        return {
            "current": self.current,
            "total": self.total,
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class SyncErrorRecord:
    """One failure captured during a run."""

    id: int
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "error": self.error}


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one ``execute()`` call."""

    subjects_processed: int = 0
    characters_processed: int = 0
    errors: Tuple[SyncErrorRecord, ...] = ()
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subjects_processed": self.subjects_processed,
            "characters_processed": self.characters_processed,
            "errors": [e.to_dict() for e in self.errors],
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class RotationStatus:
    """Read-only view of the monthly rotation cursor."""

    current_month: int
    display_name: str
    next_month: int
    next_display_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_month": self.current_month,
            "display_name": self.display_name,
            "next_month": self.next_month,
            "next_display_name": self.next_display_name,
        }
