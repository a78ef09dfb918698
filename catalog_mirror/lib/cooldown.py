"""Staleness rules for cached catalog records.

The cooldown is the minimum age a cached record must reach before it is
fetched again. Recently released subjects change often and get short
cooldowns; old subjects rarely change and get long ones.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional, Union

from catalog_mirror.models import round_half_up

if TYPE_CHECKING:
    from catalog_mirror.lib.store import DocumentStore

logger = logging.getLogger(__name__)

__all__ = ["CooldownPolicy", "needs_refresh", "parse_date", "utcnow"]

DateLike = Union[str, date, datetime, None]

YEAR = timedelta(days=365)
MAX_AGE_YEARS = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_date(value: DateLike) -> Optional[datetime]:
    """Parse an ISO date or datetime into an aware UTC datetime.

    Returns None for empty or unparsable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CooldownPolicy:
    """Maps a subject's release date to a refresh cooldown in days.

    Rules, in order:
        1. No usable date -> ``monthly_max``
        2. Older than ten years -> ``monthly_max``
        3. Otherwise interpolate between ``monthly_min`` (released now)
           and ``monthly_max`` (released ten years ago)

    Example:
        policy = CooldownPolicy(monthly_min=30, monthly_max=90)
        policy.cooldown_days("2024-04-01")  # somewhere in 30..90
        policy.cooldown_days(None)          # 90
    """

    def __init__(
        self,
        monthly_min: int = 30,
        monthly_max: int = 90,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if monthly_min > monthly_max:
            raise ValueError(
                f"monthly_min ({monthly_min}) must not exceed monthly_max ({monthly_max})"
            )
        self.monthly_min = monthly_min
        self.monthly_max = monthly_max
        self._clock = clock

    def cooldown_days(self, value: DateLike) -> int:
        entry_date = parse_date(value)
        if entry_date is None:
            return self.monthly_max

        years_diff = (self._clock() - entry_date) / YEAR
        if years_diff > MAX_AGE_YEARS:
            return self.monthly_max

        # Grows with age: newest -> monthly_min, ten years old -> monthly_max (matches rule 2).
        ratio = max(0.0, min(1.0, years_diff / MAX_AGE_YEARS))
        return round_half_up(
            self.monthly_min + (self.monthly_max - self.monthly_min) * ratio
        )


def needs_refresh(
    store: "DocumentStore",
    character_id: int,
    cooldown_days: int,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """Whether a character's cached record should be fetched again.

    True when the record is missing, when it is at least ``cooldown_days``
    old, or when the lookup itself fails.
    """
    try:
        document = store.find_character(character_id)
    except Exception as exc:
        logger.warning(
            "Could not check character %s, refreshing anyway: %s",
            character_id,
            exc,
        )
        return True

    if document is None:
        return True

    updated_at = parse_date(document.get("updated_at"))
    if updated_at is None:
        return True

    current = now or utcnow()
    return current - updated_at >= timedelta(days=cooldown_days)
