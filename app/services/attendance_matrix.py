# app/services/attendance_matrix.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date as date_type, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.report import Report
from app.schemas.attendance import AttendanceMatrix, MatrixRaid, MatrixRow
from app.services.attendance_calculator import (
    counting_rank_ids,
    counting_reports_stmt,
    load_raid_records,
    percentage_of,
)
from app.services.presence import is_attended
from app.services.raid_days import (
    RaidDayConfig,
    RaidDayGrouper,
    RaidRecord,
    sort_raid_records,
)


@dataclass(frozen=True)
class AttendanceMatrixFilters:
    """
    Server-side filters for the attendance matrix.

    Empty ``rank_ids`` means "ranks currently flagged to count attendance";
    empty ``guild_tag_ids`` means "tags flagged to count attendance".
    ``since_date`` is inclusive and ``before_date`` exclusive, both UTC.
    """

    rank_ids: Tuple[int, ...] = ()
    zone_ids: Tuple[int, ...] = ()
    guild_tag_ids: Tuple[int, ...] = ()
    since_date: Optional[datetime] = None
    before_date: Optional[datetime] = None

    @classmethod
    def from_local_dates(
        cls,
        config: RaidDayConfig,
        *,
        rank_ids: Iterable[int] = (),
        zone_ids: Iterable[int] = (),
        guild_tag_ids: Iterable[int] = (),
        since_date: Optional[date_type] = None,
        before_date: Optional[date_type] = None,
    ) -> "AttendanceMatrixFilters":
        """
        Build filters from calendar dates picked in the display timezone.

        ``since_date`` selects raid days after the given day (boundary at
        05:00 local on the following day); ``before_date`` selects raid days
        before the given day (boundary at 05:00 local that day).
        """
        return cls(
            rank_ids=tuple(rank_ids),
            zone_ids=tuple(zone_ids),
            guild_tag_ids=tuple(guild_tag_ids),
            since_date=(
                _raid_day_boundary(config, since_date + timedelta(days=1))
                if since_date is not None
                else None
            ),
            before_date=(
                _raid_day_boundary(config, before_date) if before_date is not None else None
            ),
        )


def _raid_day_boundary(config: RaidDayConfig, day: date_type) -> datetime:
    naive = datetime.combine(day, time(hour=config.offset_hours))
    return config.tzinfo.localize(naive).astimezone(timezone.utc)


class AttendanceMatrixBuilder:
    """
    Builds the raid-by-character attendance grid shown on the dashboard.

    Uses the same raid-day merge as ``AttendanceCalculator`` so a character's
    row percentage always equals their calculated attendance percentage for
    the same reports.
    """

    def __init__(self, db: AsyncSession, config: Optional[RaidDayConfig] = None) -> None:
        self.db = db
        self.config = config or RaidDayConfig()
        self.grouper = RaidDayGrouper(self.config)

    async def matrix_for_whole_guild(self) -> AttendanceMatrix:
        return await self.matrix_with_filters(AttendanceMatrixFilters())

    async def matrix_with_filters(self, filters: AttendanceMatrixFilters) -> AttendanceMatrix:
        if filters.guild_tag_ids:
            stmt = select(Report).where(Report.guild_tag_id.in_(filters.guild_tag_ids))
        else:
            stmt = counting_reports_stmt()

        if filters.zone_ids:
            stmt = stmt.where(Report.zone_id.in_(filters.zone_ids))

        if filters.since_date is not None:
            stmt = stmt.where(Report.start_time >= filters.since_date)

        if filters.before_date is not None:
            stmt = stmt.where(Report.start_time < filters.before_date)

        rank_ids = list(filters.rank_ids) or await counting_rank_ids(self.db)

        records = await load_raid_records(self.db, stmt, rank_ids)
        return self.build(records)

    def build(self, records: Iterable[RaidRecord]) -> AttendanceMatrix:
        """
        Build the matrix from raid records.

        Columns are merged raid days, newest first. For each character the
        cells before their first raid day are None; afterwards a cell is the
        character's presence (1 or 2) or 0 when absent or missing.
        """
        merged = self.grouper.merge(sort_raid_records(records))
        if not merged:
            return AttendanceMatrix(raids=[], rows=[])

        raids = [self._column(record) for record in reversed(merged)]

        # First pass: identity, rank and first chronological index per character.
        info: Dict[str, dict] = {}
        for index, record in enumerate(merged):
            for name, player in record.players.items():
                if name not in info:
                    info[name] = {
                        "id": player.character_id,
                        "rank_id": player.current_rank_id,
                        "playable_class": player.playable_class,
                        "first_index": index,
                    }

        # Second pass: walk the columns newest first, indexes stay chronological.
        rows: List[MatrixRow] = []
        for name, data in info.items():
            total_reports = 0
            reports_attended = 0
            attendance: List[Optional[int]] = []

            for index in range(len(merged) - 1, -1, -1):
                if index < data["first_index"]:
                    attendance.append(None)
                    continue

                total_reports += 1

                player = merged[index].players.get(name)
                if player is not None and is_attended(player.presence):
                    reports_attended += 1
                    attendance.append(int(player.presence))
                else:
                    attendance.append(0)

            rows.append(
                MatrixRow(
                    id=data["id"],
                    name=name,
                    rank_id=data["rank_id"],
                    playable_class=data["playable_class"],
                    percentage=percentage_of(reports_attended, total_reports),
                    attendance=attendance,
                )
            )

        rows.sort(key=lambda row: row.name)
        return AttendanceMatrix(raids=raids, rows=rows)

    def _column(self, record: RaidRecord) -> MatrixRaid:
        local = self.config.to_local(record.start_time)
        return MatrixRaid(
            code=record.code,
            date=local.strftime("%d/%m"),
            day_of_week=local.strftime("%a"),
        )
