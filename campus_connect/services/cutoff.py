# Cutoff calculator: which delivery window an order placed "now" belongs to.
# Pure function over the shop's active slot minutes; no DB access, no wall clock.

from __future__ import annotations
from datetime import datetime
from typing import Iterable

from campus_connect.utils.timezone import compose_zoned, zoned_parts


def compute_next_cutoff(now: datetime, slot_minutes: Iterable[int], tzname: str) -> datetime | None:
    """Next cutoff strictly after `now` (local wall clock in `tzname`), as UTC.

    Picks the earliest slot later today; once every slot has passed, the earliest
    slot tomorrow. Returns None for an empty slot list: the shop does not batch.
    """
    minutes = sorted(set(slot_minutes))
    if not minutes:
        return None

    parts = zoned_parts(now, tzname)
    current = parts.minute_of_day

    later_today = [m for m in minutes if m > current]
    if later_today:
        return compose_zoned(parts.day_date, later_today[0], tzname)
    return compose_zoned(parts.day_date, minutes[0], tzname, day_offset=1)
