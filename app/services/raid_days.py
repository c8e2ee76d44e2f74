# app/services/raid_days.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date as date_type, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import pytz

from app.core.config import Settings, get_settings
from app.services.presence import presence_priority


@dataclass(frozen=True)
class RaidDayConfig:
    """
    Where a raid day starts and ends.

    A raid day is the local date (in ``timezone``) of a raid's start time
    after subtracting ``offset_hours``. With the default offset of 5 a raid
    starting at 01:00 belongs to the previous evening.
    """

    timezone: str = "UTC"
    offset_hours: int = 5

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RaidDayConfig":
        settings = settings or get_settings()
        return cls(
            timezone=settings.DISPLAY_TIMEZONE,
            offset_hours=settings.RAID_DAY_OFFSET_HOURS,
        )

    @property
    def tzinfo(self) -> pytz.BaseTzInfo:
        return pytz.timezone(self.timezone)

    def to_local(self, value: datetime) -> datetime:
        """
        Convert an aware datetime into the configured timezone.

        Naive datetimes are assumed to be UTC.
        """
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(self.tzinfo)


@dataclass
class PlayerPresence:
    """
    One character's entry in a raid record.

    ``rank_id`` is the rank the character held for this raid (the snapshot,
    falling back to the current rank); ``current_rank_id`` is the rank held now.
    """

    character_id: int
    presence: int
    rank_id: Optional[int] = None
    playable_class: Optional[str] = None
    current_rank_id: Optional[int] = None


@dataclass
class RaidRecord:
    """
    One raid session, or several same-day sessions merged into one.

    ``players`` is keyed by character name.
    """

    code: str
    start_time: datetime
    players: Dict[str, PlayerPresence] = field(default_factory=dict)


def sort_raid_records(records: Iterable[RaidRecord]) -> List[RaidRecord]:
    """
    Return the records sorted by start time ascending.

    The sort is stable, so records sharing a start time keep their order.
    """
    return sorted(records, key=lambda record: record.start_time)


class RaidDayGrouper:
    """
    Collapses raid records that fall on the same raid day into one record.

    Rules
    -----
    - Records are grouped by ``raid_day(start_time)``.
    - A group of one passes through unchanged.
    - A larger group becomes one record whose code is the members' codes
      joined with ``+``, whose start time is the first member's, and whose
      players are the union of all members. A character listed more than once
      keeps the entry with the highest presence priority; ties keep the
      first one seen.

    Input must already be sorted ascending (see ``sort_raid_records``); the
    output keeps that order and is never longer than the input.
    """

    def __init__(self, config: Optional[RaidDayConfig] = None) -> None:
        self.config = config or RaidDayConfig()

    def raid_day(self, start_time: datetime) -> date_type:
        local = self.config.to_local(start_time)
        return (local - timedelta(hours=self.config.offset_hours)).date()

    def merge(self, records: Iterable[RaidRecord]) -> List[RaidRecord]:
        groups: Dict[date_type, List[RaidRecord]] = {}
        for record in records:
            groups.setdefault(self.raid_day(record.start_time), []).append(record)

        merged: List[RaidRecord] = []

        for group in groups.values():
            if len(group) == 1:
                merged.append(group[0])
                continue

            merged.append(self._merge_group(group))

        return merged

    def _merge_group(self, group: List[RaidRecord]) -> RaidRecord:
        players: Dict[str, PlayerPresence] = {}

        for record in group:
            for name, player in record.players.items():
                current = players.get(name)
                if current is None or presence_priority(player.presence) > presence_priority(
                    current.presence
                ):
                    players[name] = player

        return RaidRecord(
            code="+".join(record.code for record in group),
            start_time=group[0].start_time,
            players=players,
        )
