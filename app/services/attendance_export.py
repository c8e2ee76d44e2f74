# app/services/attendance_export.py
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from app.schemas.attendance import (
    CharacterAttendanceStats,
    PlayerAttendanceExport,
    PlayerAttendanceSummary,
)
from app.services.raid_days import RaidDayConfig

logger = logging.getLogger(__name__)


def build_player_attendance(
    stats: Iterable[CharacterAttendanceStats],
    config: Optional[RaidDayConfig] = None,
) -> List[PlayerAttendanceExport]:
    """
    Reshape attendance statistics into the addon export format.

    ``first_attendance`` is rendered as ISO-8601 in the display timezone.
    """
    config = config or RaidDayConfig()

    exported = [
        PlayerAttendanceExport(
            id=character.id,
            name=character.name,
            attendance=PlayerAttendanceSummary(
                first_attendance=config.to_local(character.first_attendance).isoformat(),
                attended=character.reports_attended,
                total=character.total_reports,
                percentage=character.percentage,
            ),
        )
        for character in stats
    ]

    logger.info("Built attendance export for %d characters", len(exported))
    return exported
