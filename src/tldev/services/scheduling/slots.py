"""Map an instant onto a discrete slot of the daily notification window.

The window is expressed in local hours of a fixed UTC offset and may wrap
past midnight (e.g. 08:00 to 01:00). Instants are truncated to the minute,
so every instant inside the same slot resolves to the same result.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, timezone

from tldev.config import settings

MINUTES_PER_DAY = 24 * 60


class OutOfWindow(Exception):
    """The instant falls outside the notification window."""

    def __init__(self, local_time: datetime):
        self.local_time = local_time
        super().__init__(f"{local_time:%H:%M} is outside the notification window")


@dataclass(frozen=True)
class SlotConfig:
    timezone_offset: timedelta
    window_start_hour: int
    window_end_hour: int
    slot_count: int

    def __post_init__(self):
        for hour in (self.window_start_hour, self.window_end_hour):
            if not 0 <= hour <= 23:
                raise ValueError(f"Window hour out of range: {hour}")
        if self.window_start_hour == self.window_end_hour:
            raise ValueError("Window start and end must differ")
        if self.slot_count < 1:
            raise ValueError("slot_count must be at least 1")
        if self.slot_duration_minutes < 1:
            raise ValueError("Window is too short for the requested slot_count")

    @classmethod
    def from_settings(cls) -> SlotConfig:
        return cls(
            timezone_offset=timedelta(minutes=settings.push_timezone_offset_minutes),
            window_start_hour=settings.push_window_start_hour,
            window_end_hour=settings.push_window_end_hour,
            slot_count=settings.push_slot_count,
        )

    @property
    def tz(self) -> timezone:
        return timezone(self.timezone_offset)

    @property
    def wraps_midnight(self) -> bool:
        return self.window_end_hour < self.window_start_hour

    @property
    def total_minutes(self) -> int:
        return ((self.window_end_hour - self.window_start_hour) * 60) % MINUTES_PER_DAY

    @property
    def slot_duration_minutes(self) -> int:
        return self.total_minutes // self.slot_count


@dataclass(frozen=True)
class SlotResult:
    slot: int
    date: str
    local_time: datetime

    @property
    def local_time_label(self) -> str:
        return f"{self.local_time:%H:%M}"


def to_local(now: datetime, config: SlotConfig) -> datetime:
    if now.tzinfo is None:
        # Naive instants are UTC, matching how the store keeps timestamps.
        now = now.replace(tzinfo=UTC)
    return now.astimezone(config.tz).replace(second=0, microsecond=0)


def resolve_slot(now: datetime, config: SlotConfig) -> SlotResult:
    local = to_local(now, config)
    minute_of_day = local.hour * 60 + local.minute
    start_minute = config.window_start_hour * 60

    elapsed = (minute_of_day - start_minute) % MINUTES_PER_DAY
    if elapsed > config.total_minutes:
        raise OutOfWindow(local)

    window_date = local.date()
    if minute_of_day < start_minute:
        # Past midnight: the window opened on the previous calendar day.
        window_date -= timedelta(days=1)

    slot = min(elapsed // config.slot_duration_minutes, config.slot_count - 1)
    return SlotResult(slot=slot, date=window_date.isoformat(), local_time=local)
