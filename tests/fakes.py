"""In-memory doubles for the catalog, notifier and stores used across tests."""

from typing import Any, Dict, List, Optional

from catalog_mirror.lib.catalog import CatalogClient
from catalog_mirror.lib.errors import CatalogRequestError
from catalog_mirror.lib.store import MemoryDocumentStore
from catalog_mirror.models import Page, Subject


class FakeCatalog(CatalogClient):
    """In-memory catalog with scriptable page failures.

    ``fail_pages`` maps a listing offset to the number of times a page
    request at that offset fails before succeeding. Total lookups
    (``limit=1, offset=0``) are never failed.
    """

    def __init__(
        self,
        subjects: Optional[List[Dict[str, Any]]] = None,
        characters: Optional[Dict[int, List[Dict[str, Any]]]] = None,
    ):
        self.subjects = list(subjects or [])
        self.characters = dict(characters or {})
        self.fail_pages: Dict[int, int] = {}
        self.failing_characters: set = set()
        self.page_calls: List[Dict[str, Any]] = []
        self.character_calls: List[int] = []
        self.subject_calls: List[int] = []
        self.on_page = None

    def _filtered(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        result = []
        for subject in self.subjects:
            if "type" in filters and subject.get("type", 2) != filters["type"]:
                continue
            if "month" in filters:
                date = subject.get("date") or ""
                if len(date) < 7 or int(date[5:7]) != filters["month"]:
                    continue
            result.append(subject)
        return result

    def list_subjects(self, filters: Dict[str, Any], limit: int, offset: int) -> Page:
        self.page_calls.append({"filters": dict(filters), "limit": limit, "offset": offset})
        total_lookup = limit == 1 and offset == 0
        if not total_lookup and self.fail_pages.get(offset, 0) > 0:
            self.fail_pages[offset] -= 1
            raise CatalogRequestError("upstream timeout", path="/v0/subjects", status_code=503)
        if self.on_page is not None and not total_lookup:
            self.on_page(offset)
        subjects = self._filtered(filters)
        return Page(items=[dict(s) for s in subjects[offset : offset + limit]], total=len(subjects))

    def page_offsets(self) -> List[int]:
        """Offsets of every page request, excluding total lookups."""
        return [
            c["offset"] for c in self.page_calls if not (c["limit"] == 1 and c["offset"] == 0)
        ]

    def get_subject(self, subject_id: int) -> Dict[str, Any]:
        self.subject_calls.append(subject_id)
        for subject in self.subjects:
            if subject["id"] == subject_id:
                return dict(subject)
        raise CatalogRequestError(f"Subject {subject_id} not found", status_code=404)

    def list_characters(self, subject_id: int) -> List[Dict[str, Any]]:
        return list(self.characters.get(subject_id, []))

    def get_character(self, character_id: int) -> Dict[str, Any]:
        self.character_calls.append(character_id)
        if character_id in self.failing_characters:
            raise CatalogRequestError(f"Character {character_id} unavailable", status_code=500)
        return {"id": character_id, "name": f"Character {character_id}"}


class RecordingNotifier:
    """Notifier double that keeps every message."""

    def __init__(self, fail: bool = False):
        self.messages: List[tuple] = []
        self.fail = fail

    def notify(self, channel: str, message: str) -> bool:
        self.messages.append((channel, message))
        if self.fail:
            raise RuntimeError("chat service down")
        return True


def make_subjects(
    count: int,
    *,
    start_id: int = 1,
    date: Optional[str] = "2020-01-01",
) -> List[Dict[str, Any]]:
    return [
        {"id": start_id + i, "type": 2, "name": f"Subject {start_id + i}", "date": date}
        for i in range(count)
    ]


def seed_store(store: MemoryDocumentStore, count: int, *, date: Optional[str] = "2020-01-01") -> None:
    """Put ``count`` unrelated subjects into ``store``."""
    for payload in make_subjects(count, start_id=100000, date=date):
        store.upsert_subject_metadata(Subject.from_payload(payload))
