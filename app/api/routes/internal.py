# app/api/routes/internal.py
from datetime import datetime
from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.attendance import get_wcl_client, get_wcl_guild_id
from app.api.dependencies.internal_auth import verify_internal_api_key
from app.core.config import get_settings
from app.db.session import get_db
from app.models.guild_tag import GuildTag
from app.schemas.sync import AttendanceSyncSummary, ReportSyncSummary
from app.services.attendance_calculator import EmptyInputError
from app.services.attendance_source import AttendanceQuery, ExternalAttendanceSource
from app.services.attendance_sync import sync_attendance, sync_reports
from app.services.report_source import ReportQuery, ReportSource
from app.services.warcraftlogs_client import (
    PartitionNotFoundError,
    RateLimitedError,
    TransportError,
    WarcraftLogsClient,
)

router = APIRouter(
    prefix="/internal",
    tags=["Internal"],
    dependencies=[Depends(verify_internal_api_key)],
)

_REMOTE_ERROR_RESPONSES = {
    401: {"description": "Missing or invalid internal API key (if configured)."},
    404: {"description": "Warcraft Logs reports the guild or guild tag does not exist."},
    429: {"description": "Warcraft Logs rate limit hit; requests are paused for one hour."},
    502: {"description": "Warcraft Logs request failed."},
}


def _http_error_for(exc: Exception) -> HTTPException:
    """
    Translate remote source errors into HTTP errors.
    """
    if isinstance(exc, PartitionNotFoundError):
        return HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc))
    if isinstance(exc, RateLimitedError):
        return HTTPException(status_code=HTTPStatus.TOO_MANY_REQUESTS, detail=str(exc))
    return HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=str(exc))


@router.post(
    "/sync-reports",
    response_model=ReportSyncSummary,
    status_code=HTTPStatus.OK,
    summary="Sync the Warcraft Logs report listing",
    description=(
        "Fetches every report for the locally known guild tags (or the whole guild "
        "when none are known) and upserts them by code.\n\n"
        "Intended to be called from a scheduler and protected via the "
        "`X-Internal-Api-Key` header when configured."
    ),
    responses=_REMOTE_ERROR_RESPONSES,
)
async def trigger_report_sync(
    since: datetime | None = Query(
        default=None,
        description="Only reports starting at or after this instant (ISO-8601).",
    ),
    before: datetime | None = Query(
        default=None,
        description="Only reports starting at or before this instant (ISO-8601).",
    ),
    db: AsyncSession = Depends(get_db),
    client: WarcraftLogsClient = Depends(get_wcl_client),
    guild_id: int = Depends(get_wcl_guild_id),
) -> ReportSyncSummary:
    tag_ids = (await db.execute(select(GuildTag.id).order_by(GuildTag.id))).scalars().all()

    source = ReportSource(
        client,
        guild_id,
        ReportQuery(guild_tag_ids=tuple(tag_ids), start_time=since, end_time=before),
        cache_ttl=get_settings().REPORTS_CACHE_TTL,
    )

    try:
        return await sync_reports(db, source)
    except (TransportError, PartitionNotFoundError) as exc:
        raise _http_error_for(exc) from exc


@router.post(
    "/sync-attendance",
    response_model=AttendanceSyncSummary,
    status_code=HTTPStatus.OK,
    summary="Sync attendance presence rows from Warcraft Logs",
    description=(
        "Streams attendance for every guild tag flagged to count attendance and "
        "writes one presence row per (character, report) for characters in "
        "counting ranks. Reports must have been synced first.\n\n"
        "`since` and `before` are inclusive bounds on report start time."
    ),
    responses={
        **_REMOTE_ERROR_RESPONSES,
        422: {"description": "No guild tag is flagged to count attendance."},
    },
)
async def trigger_attendance_sync(
    since: datetime | None = Query(
        default=None,
        description="Only reports starting at or after this instant (ISO-8601).",
    ),
    before: datetime | None = Query(
        default=None,
        description="Only reports starting at or before this instant (ISO-8601).",
    ),
    db: AsyncSession = Depends(get_db),
    client: WarcraftLogsClient = Depends(get_wcl_client),
    guild_id: int = Depends(get_wcl_guild_id),
) -> AttendanceSyncSummary:
    settings = get_settings()

    tag_ids = (
        await db.execute(
            select(GuildTag.id).where(GuildTag.count_attendance.is_(True)).order_by(GuildTag.id)
        )
    ).scalars().all()

    source = ExternalAttendanceSource(
        client,
        guild_id,
        AttendanceQuery(
            guild_tag_ids=tuple(tag_ids),
            since=since,
            page_limit=settings.ATTENDANCE_PAGE_LIMIT,
            multi_tag_page_limit=settings.MULTI_TAG_PAGE_LIMIT,
        ),
        cache_ttl=settings.ATTENDANCE_CACHE_TTL,
    )

    try:
        return await sync_attendance(db, source, since=since, before=before)
    except EmptyInputError as exc:
        raise HTTPException(
            status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except (TransportError, PartitionNotFoundError) as exc:
        raise _http_error_for(exc) from exc
