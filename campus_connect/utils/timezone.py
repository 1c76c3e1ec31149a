# campus_connect/utils/timezone.py

# Clock helpers for the scheduler: split an instant into zoned wall-clock parts,
# and compose a local day + minute-of-day (+ N days) back into a UTC instant.
# as_utc() normalizes DB timestamps (SQLite hands back naive UTC) to UTC-aware.

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")

@dataclass(frozen=True)
class ZonedParts:
    year: int
    month: int
    day: int
    hour: int
    minute: int

    @property
    def day_date(self) -> date:
        return date(self.year, self.month, self.day)

    @property
    def minute_of_day(self) -> int:
        return self.hour * 60 + self.minute

def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)

def zoned_parts(instant: datetime, tzname: str) -> ZonedParts:
    local = as_utc(instant).astimezone(ZoneInfo(tzname))
    return ZonedParts(local.year, local.month, local.day, local.hour, local.minute)

def compose_zoned(day: date, minute_of_day: int, tzname: str, day_offset: int = 0) -> datetime:
    """Local `day` (+ day_offset) at `minute_of_day`, returned as a UTC-aware instant."""
    hh, mm = divmod(minute_of_day, 60)
    local = datetime.combine(day + timedelta(days=day_offset), time(hh, mm)).replace(tzinfo=ZoneInfo(tzname))
    return local.astimezone(UTC)

def local_day_bounds(instant: datetime, tzname: str) -> tuple[datetime, datetime]:
    """[start, end) of the local calendar day containing `instant`, in UTC."""
    day = zoned_parts(instant, tzname).day_date
    return compose_zoned(day, 0, tzname), compose_zoned(day, 0, tzname, day_offset=1)
