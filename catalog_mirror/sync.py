"""Per-subject synchronisation.

Syncing one subject means:
    1. upsert its metadata (the stored character list is left alone)
    2. list its related characters and store them as the subject's
       character reference list
    3. for every related character whose cached record is stale, fetch
       the detail record and upsert it

Failures are collected per subject or per character and returned; they
never stop sibling work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from catalog_mirror.lib.catalog import CatalogClient
from catalog_mirror.lib.cooldown import needs_refresh
from catalog_mirror.lib.store import DocumentStore
from catalog_mirror.models import CharacterRef, Subject, SyncErrorRecord

logger = logging.getLogger(__name__)

__all__ = ["SubjectSyncService", "SubjectSyncResult"]


@dataclass
class SubjectSyncResult:
    characters_processed: int = 0
    errors: List[SyncErrorRecord] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors


class SubjectSyncService:
    """Writes one subject and its stale characters to the document store."""

    def __init__(
        self,
        catalog: CatalogClient,
        store: DocumentStore,
        *,
        default_cooldown_days: int = 3,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.default_cooldown_days = default_cooldown_days

    def sync_subject(
        self,
        subject: Subject,
        *,
        cooldown_days: Optional[int] = None,
        skip_characters: bool = False,
    ) -> SubjectSyncResult:
        result = SubjectSyncResult()

        try:
            self.store.upsert_subject_metadata(subject)
        except Exception as exc:
            logger.error("Failed to store subject %s: %s", subject.id, exc)
            result.errors.append(
                SyncErrorRecord(subject.id, f"Failed to sync subject {subject.id}: {exc}")
            )
            return result

        if skip_characters:
            return result

        days = self.default_cooldown_days if cooldown_days is None else cooldown_days
        return self.sync_characters(subject.id, days, result)

    def sync_characters(
        self,
        subject_id: int,
        cooldown_days: int,
        result: Optional[SubjectSyncResult] = None,
    ) -> SubjectSyncResult:
        """Refresh the characters related to ``subject_id``."""
        result = result or SubjectSyncResult()
        logger.debug(
            "Syncing characters for subject %s with cooldown %d days",
            subject_id,
            cooldown_days,
        )

        try:
            related = self.catalog.list_characters(subject_id)
            if not related:
                logger.debug("No characters found for subject %s", subject_id)
                return result

            refs = [CharacterRef.from_payload(c) for c in related]
            self.store.update_subject_characters(subject_id, refs)
        except Exception as exc:
            logger.error("Error syncing characters for subject %s: %s", subject_id, exc)
            result.errors.append(
                SyncErrorRecord(
                    subject_id,
                    f"Error syncing characters for subject {subject_id}: {exc}",
                )
            )
            return result

        stale = [ref for ref in refs if needs_refresh(self.store, ref.id, cooldown_days)]
        if not stale:
            logger.debug("All characters for subject %s are within cooldown", subject_id)
            return result

        synced = 0
        for ref in stale:
            try:
                detail = self.catalog.get_character(ref.id)
                self.store.upsert_character(detail)
            except Exception as exc:
                logger.warning("Failed to sync character %s: %s", ref.id, exc)
                result.errors.append(
                    SyncErrorRecord(
                        ref.id,
                        f"Failed to sync character {ref.id} of subject {subject_id}: {exc}",
                    )
                )
                continue
            synced += 1

        result.characters_processed += synced
        logger.info(
            "Synced %d/%d stale characters for subject %s",
            synced,
            len(stale),
            subject_id,
        )
        return result
