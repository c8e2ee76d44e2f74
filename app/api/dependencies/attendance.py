# app/api/dependencies/attendance.py
from http import HTTPStatus

from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.session import get_db
from app.services.attendance_calculator import AttendanceCalculator
from app.services.attendance_matrix import AttendanceMatrixBuilder
from app.services.raid_days import RaidDayConfig
from app.services.warcraftlogs_client import (
    TransportError,
    WarcraftLogsClient,
    get_warcraftlogs_client,
)


def get_raid_day_config() -> RaidDayConfig:
    return RaidDayConfig.from_settings()


def get_attendance_calculator(
    db: AsyncSession = Depends(get_db),
    config: RaidDayConfig = Depends(get_raid_day_config),
) -> AttendanceCalculator:
    return AttendanceCalculator(db, config)


def get_matrix_builder(
    db: AsyncSession = Depends(get_db),
    config: RaidDayConfig = Depends(get_raid_day_config),
) -> AttendanceMatrixBuilder:
    return AttendanceMatrixBuilder(db, config)


def get_wcl_client() -> WarcraftLogsClient:
    """
    Shared Warcraft Logs client; 500 when credentials are not configured.
    """
    try:
        return get_warcraftlogs_client()
    except TransportError as exc:
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc


def get_wcl_guild_id() -> int:
    settings = get_settings()
    if settings.WCL_GUILD_ID is None:
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail="WCL_GUILD_ID not configured for this environment.",
        )
    return settings.WCL_GUILD_ID
