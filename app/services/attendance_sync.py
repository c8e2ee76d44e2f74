# app/services/attendance_sync.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.character import Character
from app.models.guild_rank import GuildRank
from app.models.guild_tag import GuildTag
from app.models.report import CharacterReportPresence, Report
from app.schemas.sync import AttendanceSyncSummary, ReportSyncSummary
from app.services.attendance_calculator import EmptyInputError
from app.services.attendance_source import ExternalAttendanceSource, as_utc
from app.services.report_source import ReportSource

logger = logging.getLogger(__name__)


async def sync_reports(db: AsyncSession, source: ReportSource) -> ReportSyncSummary:
    """
    Fetch the report listing and upsert it into ``wcl_reports``.

    Behavior
    --------
    - Reports are matched by code; existing rows are updated in place.
    - A report is linked to its guild tag only when that tag is known
      locally; otherwise its tag link is cleared.
    """
    logger.info("Starting report sync (guild_tag_ids=%s)", list(source.query.guild_tag_ids))

    reports = await source.get()

    known_tag_ids = set((await db.execute(select(GuildTag.id))).scalars().all())

    created = 0
    updated = 0

    for remote in reports:
        report = await db.get(Report, remote.code)
        if report is None:
            report = Report(code=remote.code)
            db.add(report)
            created += 1
        else:
            updated += 1

        report.title = remote.title
        report.start_time = remote.start_time
        report.end_time = remote.end_time
        report.zone_id = remote.zone.id if remote.zone else None
        report.zone_name = remote.zone.name if remote.zone else None

        tag_id = remote.guild_tag.id if remote.guild_tag else None
        report.guild_tag_id = tag_id if tag_id in known_tag_ids else None

    await db.flush()
    await db.commit()

    logger.info(
        "Completed report sync: %d fetched, %d created, %d updated",
        len(reports),
        created,
        updated,
    )

    return ReportSyncSummary(
        reports_fetched=len(reports),
        reports_created=created,
        reports_updated=updated,
    )


async def sync_attendance(
    db: AsyncSession,
    source: ExternalAttendanceSource,
    since: Optional[datetime] = None,
    before: Optional[datetime] = None,
) -> AttendanceSyncSummary:
    """
    Stream attendance from Warcraft Logs into ``character_report_presence``.

    Steps
    -----
    1) Require at least one guild tag on the source.
    2) Read attendance lazily; keep records with ``since <= start_time <= before``.
    3) For each record whose report exists locally, upsert a presence row for
       every player matching a character in a counting rank. A new row (or one
       without a snapshot) records the character's current rank; an existing
       snapshot is never overwritten.

    Rows are never deleted.

    Raises
    ------
    EmptyInputError
        If the source has no guild tags.
    """
    if not source.query.guild_tag_ids:
        raise EmptyInputError("No guild tags configured for attendance tracking.")

    since = as_utc(since)
    before = as_utc(before)

    logger.info(
        "Starting attendance sync for %s",
        f"reports since {since.isoformat()}" if since else "all reports",
    )

    characters_result = await db.execute(
        select(Character)
        .join(GuildRank, Character.rank_id == GuildRank.id)
        .where(GuildRank.count_attendance.is_(True))
    )
    characters: Dict[str, Character] = {c.name: c for c in characters_result.scalars().all()}

    records_seen = 0
    reports_updated = 0
    rows_written = 0

    async for attendance in source.lazy():
        if since is not None and attendance.start_time < since:
            continue
        if before is not None and attendance.start_time > before:
            continue

        records_seen += 1

        report = await db.get(Report, attendance.code)
        if report is None:
            logger.debug("Skipping attendance for unknown report %s", attendance.code)
            continue

        written = 0
        for player in attendance.players:
            character = characters.get(player.name)
            if character is None:
                continue

            row = await db.get(
                CharacterReportPresence,
                {"character_id": character.id, "report_code": report.code},
            )
            if row is None:
                row = CharacterReportPresence(
                    character_id=character.id,
                    report_code=report.code,
                )
                db.add(row)

            row.presence = player.presence
            if row.rank_id is None:
                row.rank_id = character.rank_id
            written += 1

        if written:
            reports_updated += 1
            rows_written += written

    await db.flush()
    await db.commit()

    logger.info(
        "Completed attendance sync for %s. Processed %d attendance records.",
        f"reports since {since.isoformat()}" if since else "all reports",
        records_seen,
    )

    return AttendanceSyncSummary(
        since=since,
        before=before,
        records_seen=records_seen,
        reports_updated=reports_updated,
        rows_written=rows_written,
    )
