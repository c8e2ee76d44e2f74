# tests/test_attendance_export.py
from datetime import datetime, timezone

from app.schemas.attendance import CharacterAttendanceStats
from app.services.attendance_export import build_player_attendance
from app.services.raid_days import RaidDayConfig


def test_export_shape_and_local_first_attendance():
    stats = [
        CharacterAttendanceStats(
            id=42,
            name="Thrall",
            first_attendance=datetime(2025, 6, 1, 19, 0, tzinfo=timezone.utc),
            total_reports=12,
            reports_attended=10,
            percentage=83.33,
        )
    ]

    exported = build_player_attendance(stats, RaidDayConfig(timezone="Europe/Paris"))

    assert [e.model_dump() for e in exported] == [
        {
            "id": 42,
            "name": "Thrall",
            "attendance": {
                "first_attendance": "2025-06-01T21:00:00+02:00",
                "attended": 10,
                "total": 12,
                "percentage": 83.33,
            },
        }
    ]


def test_export_of_nothing_is_empty():
    assert build_player_attendance([]) == []
