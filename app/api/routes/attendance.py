# app/api/routes/attendance.py
from datetime import date as date_type
from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.attendance import (
    get_attendance_calculator,
    get_matrix_builder,
    get_raid_day_config,
)
from app.db.session import get_db
from app.models.report import Report
from app.schemas.attendance import (
    AttendanceMatrix,
    CharacterAttendanceStats,
    PlayerAttendanceExport,
)
from app.services.attendance_calculator import AttendanceCalculator, EmptyInputError
from app.services.attendance_export import build_player_attendance
from app.services.attendance_matrix import AttendanceMatrixBuilder, AttendanceMatrixFilters
from app.services.raid_days import RaidDayConfig

router = APIRouter(prefix="/attendance", tags=["Attendance"])


_STATS_EXAMPLE = [
    {
        "id": 42,
        "name": "Thrall",
        "first_attendance": "2025-06-01T19:00:00Z",
        "total_reports": 12,
        "reports_attended": 10,
        "percentage": 83.33,
    }
]


@router.get(
    "",
    response_model=list[CharacterAttendanceStats],
    status_code=HTTPStatus.OK,
    summary="Attendance for the whole guild",
    description=(
        "Attendance statistics for every character in a rank flagged to count "
        "attendance, over every report whose guild tag counts attendance.\n\n"
        "Same-day reports are merged into one raid day. Each character is only "
        "counted from the raid day of their first appearance onwards.\n\n"
        "Returns an empty list when no rank counts attendance."
    ),
    responses={
        200: {
            "description": "Attendance statistics, sorted by character name.",
            "content": {"application/json": {"example": _STATS_EXAMPLE}},
        },
    },
)
async def get_guild_attendance(
    calculator: AttendanceCalculator = Depends(get_attendance_calculator),
) -> list[CharacterAttendanceStats]:
    return await calculator.whole_guild()


@router.get(
    "/ranks",
    response_model=list[CharacterAttendanceStats],
    status_code=HTTPStatus.OK,
    summary="Attendance for characters in specific ranks",
    description=(
        "Attendance statistics restricted to presence rows whose effective rank "
        "(the rank recorded with the row, else the character's current rank) is "
        "one of `rank_ids`."
    ),
    responses={
        422: {"description": "No rank_ids supplied."},
    },
)
async def get_rank_attendance(
    rank_ids: list[int] = Query(
        default=[],
        description="Guild rank IDs to include. At least one is required.",
    ),
    calculator: AttendanceCalculator = Depends(get_attendance_calculator),
) -> list[CharacterAttendanceStats]:
    try:
        return await calculator.for_ranks(rank_ids)
    except EmptyInputError as exc:
        raise HTTPException(
            status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc


@router.get(
    "/characters/{character_id}",
    response_model=list[CharacterAttendanceStats],
    status_code=HTTPStatus.OK,
    summary="Lifetime attendance for one character",
    description=(
        "Attendance over the counting reports the character appears in. "
        "Returns at most one entry; an empty list when the character never "
        "appeared while in a counting rank."
    ),
)
async def get_character_attendance(
    character_id: int = Path(..., description="Database ID of the character.", ge=1),
    calculator: AttendanceCalculator = Depends(get_attendance_calculator),
) -> list[CharacterAttendanceStats]:
    return await calculator.for_character(character_id)


@router.get(
    "/reports/{code}",
    response_model=list[CharacterAttendanceStats],
    status_code=HTTPStatus.OK,
    summary="Attendance within a single report",
    description=(
        "Attendance statistics for one report. Empty when the report's guild tag "
        "does not count attendance."
    ),
    responses={
        404: {
            "description": "Report not found.",
            "content": {
                "application/json": {"example": {"detail": "Report 'aBcD1234' not found."}}
            },
        },
    },
)
async def get_report_attendance(
    code: str = Path(..., description="Warcraft Logs report code."),
    db: AsyncSession = Depends(get_db),
    calculator: AttendanceCalculator = Depends(get_attendance_calculator),
) -> list[CharacterAttendanceStats]:
    report = await db.get(Report, code)
    if report is None:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND,
            detail=f"Report '{code}' not found.",
        )

    return await calculator.for_report(code)


@router.get(
    "/matrix",
    response_model=AttendanceMatrix,
    status_code=HTTPStatus.OK,
    summary="Raid-by-character attendance matrix",
    description=(
        "Presence grid with one column per merged raid day (newest first) and one "
        "row per character.\n\n"
        "Cells are `null` before the character's first raid day, `0` when absent, "
        "`1` when present and `2` when benched.\n\n"
        "Defaults: ranks and guild tags flagged to count attendance, all zones, "
        "all dates. `since_date` keeps raid days after the given date; "
        "`before_date` keeps raid days before it. Dates are read in the display "
        "timezone."
    ),
    responses={
        200: {
            "description": "Attendance matrix.",
            "content": {
                "application/json": {
                    "example": {
                        "raids": [
                            {"code": "aBcD1234+eFgH5678", "date": "08/06", "day_of_week": "Sun"},
                            {"code": "iJkL9012", "date": "01/06", "day_of_week": "Sun"},
                        ],
                        "rows": [
                            {
                                "id": 42,
                                "name": "Thrall",
                                "rank_id": 3,
                                "playable_class": "Shaman",
                                "percentage": 50.0,
                                "attendance": [0, 1],
                            }
                        ],
                    }
                }
            },
        },
    },
)
async def get_attendance_matrix(
    rank_ids: list[int] = Query(default=[], description="Guild rank IDs to include."),
    zone_ids: list[int] = Query(default=[], description="Zone IDs to include."),
    guild_tag_ids: list[int] = Query(default=[], description="Guild tag IDs to include."),
    since_date: date_type | None = Query(
        default=None,
        description="Only raid days after this date (YYYY-MM-DD).",
    ),
    before_date: date_type | None = Query(
        default=None,
        description="Only raid days before this date (YYYY-MM-DD).",
    ),
    builder: AttendanceMatrixBuilder = Depends(get_matrix_builder),
    config: RaidDayConfig = Depends(get_raid_day_config),
) -> AttendanceMatrix:
    filters = AttendanceMatrixFilters.from_local_dates(
        config,
        rank_ids=rank_ids,
        zone_ids=zone_ids,
        guild_tag_ids=guild_tag_ids,
        since_date=since_date,
        before_date=before_date,
    )
    return await builder.matrix_with_filters(filters)


@router.get(
    "/export",
    response_model=list[PlayerAttendanceExport],
    status_code=HTTPStatus.OK,
    summary="Whole-guild attendance in addon export format",
    responses={
        200: {
            "description": "Export payload.",
            "content": {
                "application/json": {
                    "example": [
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
                }
            },
        },
    },
)
async def get_attendance_export(
    calculator: AttendanceCalculator = Depends(get_attendance_calculator),
    config: RaidDayConfig = Depends(get_raid_day_config),
) -> list[PlayerAttendanceExport]:
    stats = await calculator.whole_guild()
    return build_player_attendance(stats, config)
