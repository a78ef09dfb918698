"""Document store for mirrored subjects and characters.

Defines the interface the sync engine writes through, plus two
implementations: an in-memory store and a directory of JSON documents.
The engine assumes upsert-by-id is atomic and idempotent here.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from catalog_mirror.models import CharacterRef, Subject

logger = logging.getLogger(__name__)

__all__ = ["DocumentStore", "MemoryDocumentStore", "JsonFileDocumentStore"]

Document = Dict[str, Any]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches(document: Document, filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True
    return all(document.get(key) == value for key, value in filters.items())


class DocumentStore(ABC):
    """Interface the sync engine uses to persist catalog records.

    Subclasses must implement all abstract methods.
    """

    @abstractmethod
    def upsert_subject_metadata(self, subject: Subject) -> None:
        """Insert or update a subject without touching its character list."""
        ...

    @abstractmethod
    def update_subject_characters(self, subject_id: int, characters: List[CharacterRef]) -> None:
        """Replace the character reference list stored on a subject."""
        ...

    @abstractmethod
    def upsert_character(self, character: Document) -> None:
        """Insert or update a character detail record."""
        ...

    @abstractmethod
    def find_subject(self, subject_id: int) -> Optional[Document]:
        ...

    @abstractmethod
    def find_character(self, character_id: int) -> Optional[Document]:
        ...

    @abstractmethod
    def count_subjects(self, filters: Optional[Dict[str, Any]] = None) -> int:
        ...

    @abstractmethod
    def count_characters(self) -> int:
        ...

    @abstractmethod
    def find_ids_missing_date(self, filters: Optional[Dict[str, Any]] = None) -> List[int]:
        """Ids of subjects whose date is null, empty or absent."""
        ...

    def statistics(self, subject_types: Iterable[int] = (1, 2, 3, 4, 6)) -> Dict[str, Any]:
        """Totals for the ``stats`` command."""
        return {
            "total_subjects": self.count_subjects(),
            "total_characters": self.count_characters(),
            "subjects_by_type": {t: self.count_subjects({"type": t}) for t in subject_types},
            "last_update": self._last_subject_update(),
        }

    def _last_subject_update(self) -> Optional[str]:
        return None


class MemoryDocumentStore(DocumentStore):
    """Thread-safe in-memory store."""

    def __init__(self) -> None:
        self._subjects: Dict[int, Document] = {}
        self._characters: Dict[int, Document] = {}
        self._lock = threading.RLock()

    def upsert_subject_metadata(self, subject: Subject) -> None:
        now = _now_iso()
        with self._lock:
            existing = self._subjects.get(subject.id)
            document = subject.to_document()
            if existing is not None:
                merged = dict(existing)
                merged.update(document)
                document = merged
            else:
                document["created_at"] = now
            document["updated_at"] = now
            self._write_subject(subject.id, document)
        logger.debug("Updated subject metadata for %s (%s)", subject.id, subject.name)

    def update_subject_characters(self, subject_id: int, characters: List[CharacterRef]) -> None:
        with self._lock:
            document = dict(self._subjects.get(subject_id) or {"id": subject_id, "created_at": _now_iso()})
            document["characters"] = [c.to_dict() for c in characters]
            document["updated_at"] = _now_iso()
            self._write_subject(subject_id, document)
        logger.debug("Updated %d characters for subject %s", len(characters), subject_id)

    def upsert_character(self, character: Document) -> None:
        character_id = int(character["id"])
        now = _now_iso()
        with self._lock:
            existing = self._characters.get(character_id)
            document = dict(character)
            document["created_at"] = existing.get("created_at", now) if existing else now
            document["updated_at"] = now
            self._write_character(character_id, document)
        logger.debug("Updated character %s (%s)", character_id, character.get("name"))

    def find_subject(self, subject_id: int) -> Optional[Document]:
        with self._lock:
            document = self._subjects.get(subject_id)
            return copy.deepcopy(document) if document is not None else None

    def find_character(self, character_id: int) -> Optional[Document]:
        with self._lock:
            document = self._characters.get(character_id)
            return copy.deepcopy(document) if document is not None else None

    def count_subjects(self, filters: Optional[Dict[str, Any]] = None) -> int:
        with self._lock:
            return sum(1 for d in self._subjects.values() if _matches(d, filters))

    def count_characters(self) -> int:
        with self._lock:
            return len(self._characters)

    def find_ids_missing_date(self, filters: Optional[Dict[str, Any]] = None) -> List[int]:
        with self._lock:
            return sorted(
                subject_id
                for subject_id, d in self._subjects.items()
                if not d.get("date") and _matches(d, filters)
            )

    def _last_subject_update(self) -> Optional[str]:
        with self._lock:
            stamps = [d["updated_at"] for d in self._subjects.values() if d.get("updated_at")]
        return max(stamps) if stamps else None

    def _write_subject(self, subject_id: int, document: Document) -> None:
        self._subjects[subject_id] = document

    def _write_character(self, character_id: int, document: Document) -> None:
        self._characters[character_id] = document


class JsonFileDocumentStore(MemoryDocumentStore):
    """Store keeping one JSON document per record under a data directory.

    Layout:
        <data_dir>/subjects/<id>.json
        <data_dir>/characters/<id>.json

    Documents are loaded into memory on construction; every write goes
    through to disk.
    """

    def __init__(self, data_dir: Union[str, Path]) -> None:
        super().__init__()
        self.data_dir = Path(data_dir)
        self._subjects_dir = self.data_dir / "subjects"
        self._characters_dir = self.data_dir / "characters"
        self._subjects = self._load_dir(self._subjects_dir)
        self._characters = self._load_dir(self._characters_dir)
        logger.info(
            "Loaded %d subjects and %d characters from %s",
            len(self._subjects),
            len(self._characters),
            self.data_dir,
        )

    @staticmethod
    def _load_dir(directory: Path) -> Dict[int, Document]:
        documents: Dict[int, Document] = {}
        if not directory.exists():
            return documents
        for path in directory.glob("*.json"):
            try:
                document = json.loads(path.read_text(encoding="utf-8"))
                documents[int(document["id"])] = document
            except (json.JSONDecodeError, KeyError, ValueError, OSError) as e:
                logger.warning("Skipping invalid document %s: %s", path, e)
        return documents

    @staticmethod
    def _dump(directory: Path, document_id: int, document: Document) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{document_id}.json"
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(document, ensure_ascii=False, default=str), encoding="utf-8")
        os.replace(tmp_path, path)

    def _write_subject(self, subject_id: int, document: Document) -> None:
        self._dump(self._subjects_dir, subject_id, document)
        super()._write_subject(subject_id, document)

    def _write_character(self, character_id: int, document: Document) -> None:
        self._dump(self._characters_dir, character_id, document)
        super()._write_character(character_id, document)
