# app/services/attendance_calculator.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.character import Character
from app.models.guild_rank import GuildRank
from app.models.guild_tag import GuildTag
from app.models.report import CharacterReportPresence, Report
from app.schemas.attendance import CharacterAttendanceStats
from app.services.presence import is_attended
from app.services.raid_days import (
    PlayerPresence,
    RaidDayConfig,
    RaidDayGrouper,
    RaidRecord,
    sort_raid_records,
)


class EmptyInputError(ValueError):
    """
    Raised when a caller explicitly asks for a computation over an empty
    selection (e.g. attendance for zero ranks). Callers should treat it as
    "nothing to compute", not as a failure of the system.
    """


def percentage_of(attended: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(attended / total * 100, 2)


def counting_reports_stmt() -> Select:
    """
    Reports whose guild tag is flagged to count towards attendance.
    """
    return (
        select(Report)
        .join(GuildTag, Report.guild_tag_id == GuildTag.id)
        .where(GuildTag.count_attendance.is_(True))
    )


async def counting_rank_ids(db: AsyncSession) -> List[int]:
    result = await db.execute(
        select(GuildRank.id).where(GuildRank.count_attendance.is_(True)).order_by(GuildRank.id)
    )
    return list(result.scalars().all())


async def load_raid_records(
    db: AsyncSession,
    reports_stmt: Select,
    rank_ids: Sequence[int],
    character_id: Optional[int] = None,
) -> List[RaidRecord]:
    """
    Build raid records for the reports selected by ``reports_stmt``.

    Every selected report becomes a record, even when none of its characters
    qualify; an empty raid day still counts against everyone already
    anchored before it. Players are limited to presence rows whose effective
    rank (the rank snapshotted on the row, else the character's current rank)
    is in ``rank_ids``, and optionally to a single character.
    """
    reports: List[Report] = list((await db.execute(reports_stmt)).scalars().unique().all())
    if not reports:
        return []

    records: Dict[str, RaidRecord] = {
        report.code: RaidRecord(code=report.code, start_time=report.start_time)
        for report in reports
    }

    if not rank_ids:
        return list(records.values())

    effective_rank = func.coalesce(CharacterReportPresence.rank_id, Character.rank_id)

    presence_stmt = (
        select(
            CharacterReportPresence.report_code,
            CharacterReportPresence.presence,
            Character.id,
            Character.name,
            Character.playable_class,
            effective_rank.label("effective_rank_id"),
            Character.rank_id.label("current_rank_id"),
        )
        .join(Character, CharacterReportPresence.character_id == Character.id)
        .where(CharacterReportPresence.report_code.in_(list(records.keys())))
        .where(effective_rank.in_(list(rank_ids)))
        .order_by(CharacterReportPresence.report_code, Character.name)
    )
    if character_id is not None:
        presence_stmt = presence_stmt.where(Character.id == character_id)

    for row in (await db.execute(presence_stmt)).all():
        records[row.report_code].players[row.name] = PlayerPresence(
            character_id=row.id,
            presence=row.presence,
            rank_id=row.effective_rank_id,
            playable_class=row.playable_class,
            current_rank_id=row.current_rank_id,
        )

    return list(records.values())


class AttendanceCalculator:
    """
    Computes per-character attendance statistics from persisted reports.

    Four entry points select which reports and characters are considered;
    the statistics themselves are always produced by ``calculate``:

    - ``whole_guild``: every counting report, characters in counting ranks.
    - ``for_ranks``: every counting report, characters in the given ranks.
    - ``for_character``: counting reports the character appears in while in
      a counting rank.
    - ``for_report``: a single report, when its guild tag counts.
    """

    def __init__(self, db: AsyncSession, config: Optional[RaidDayConfig] = None) -> None:
        self.db = db
        self.grouper = RaidDayGrouper(config)

    async def whole_guild(self) -> List[CharacterAttendanceStats]:
        rank_ids = await counting_rank_ids(self.db)

        # No counting ranks configured is a normal state, not misuse.
        if not rank_ids:
            return []

        return await self.for_ranks(rank_ids)

    async def for_ranks(self, rank_ids: Iterable[int]) -> List[CharacterAttendanceStats]:
        """
        Attendance for characters in the given ranks.

        Raises
        ------
        EmptyInputError
            If ``rank_ids`` is empty.
        """
        rank_ids = list(rank_ids)
        if not rank_ids:
            raise EmptyInputError(
                "At least one rank must be specified to calculate attendance for specific ranks."
            )

        records = await load_raid_records(self.db, counting_reports_stmt(), rank_ids)
        return self.calculate(records)

    async def for_character(self, character_id: int) -> List[CharacterAttendanceStats]:
        """
        Lifetime attendance for one character. Returns at most one entry.
        """
        rank_ids = await counting_rank_ids(self.db)
        if not rank_ids:
            return []

        effective_rank = func.coalesce(CharacterReportPresence.rank_id, Character.rank_id)
        appeared_in = (
            select(CharacterReportPresence.report_code)
            .join(Character, CharacterReportPresence.character_id == Character.id)
            .where(Character.id == character_id)
            .where(effective_rank.in_(rank_ids))
        )

        stmt = counting_reports_stmt().where(Report.code.in_(appeared_in))
        records = await load_raid_records(self.db, stmt, rank_ids, character_id=character_id)
        return self.calculate(records)

    async def for_report(self, code: str) -> List[CharacterAttendanceStats]:
        """
        Attendance restricted to one report. Returns an empty list when the
        report is unknown, untagged, or its tag does not count.
        """
        report = await self.db.get(Report, code)
        if report is None or report.guild_tag_id is None:
            return []

        tag = await self.db.get(GuildTag, report.guild_tag_id)
        if tag is None or not tag.count_attendance:
            return []

        rank_ids = await counting_rank_ids(self.db)
        stmt = select(Report).where(Report.code == code)
        records = await load_raid_records(self.db, stmt, rank_ids)
        return self.calculate(records)

    def calculate(self, records: Iterable[RaidRecord]) -> List[CharacterAttendanceStats]:
        """
        Compute attendance statistics from raid records.

        Steps
        -----
        1) Sort ascending and merge same-day raids.
        2) First pass: each character's ID and first raid day (anchor).
        3) Second pass: for each character, count raid days on or after the
           anchor (total) and those where they were present or benched
           (attended).
        4) percentage = attended / total * 100, rounded to 2 decimals.

        Results are sorted by character name.
        """
        merged = self.grouper.merge(sort_raid_records(records))
        if not merged:
            return []

        anchors: Dict[str, tuple[int, datetime]] = {}
        for record in merged:
            for name, player in record.players.items():
                if name not in anchors:
                    anchors[name] = (player.character_id, record.start_time)

        stats: List[CharacterAttendanceStats] = []

        for name, (character_id, first_attendance) in anchors.items():
            total_reports = 0
            reports_attended = 0

            for record in merged:
                if record.start_time < first_attendance:
                    continue

                total_reports += 1

                player = record.players.get(name)
                if player is not None and is_attended(player.presence):
                    reports_attended += 1

            stats.append(
                CharacterAttendanceStats(
                    id=character_id,
                    name=name,
                    first_attendance=first_attendance,
                    total_reports=total_reports,
                    reports_attended=reports_attended,
                    percentage=percentage_of(reports_attended, total_reports),
                )
            )

        return sorted(stats, key=lambda s: s.name)


def aggregate(
    stats_sets: Iterable[Iterable[CharacterAttendanceStats]],
) -> List[CharacterAttendanceStats]:
    """
    Combine attendance statistics computed over independent sources.

    For each character name: keep the first ID seen, keep the earliest
    first_attendance, sum total_reports and reports_attended, and recompute
    the percentage from the sums.
    """
    combined: Dict[str, CharacterAttendanceStats] = {}

    for stats_set in stats_sets:
        for stats in stats_set:
            current = combined.get(stats.name)
            if current is None:
                combined[stats.name] = stats.model_copy()
                continue

            current.first_attendance = min(current.first_attendance, stats.first_attendance)
            current.total_reports += stats.total_reports
            current.reports_attended += stats.reports_attended

    for stats in combined.values():
        stats.percentage = percentage_of(stats.reports_attended, stats.total_reports)

    return sorted(combined.values(), key=lambda s: s.name)
