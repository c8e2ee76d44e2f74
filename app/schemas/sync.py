# app/schemas/sync.py
from datetime import datetime

from pydantic import BaseModel, Field


class ReportSyncSummary(BaseModel):
    """
    Result of a report listing sync.
    """

    reports_fetched: int = Field(..., examples=[24])
    reports_created: int = Field(..., examples=[3])
    reports_updated: int = Field(..., examples=[21])


class AttendanceSyncSummary(BaseModel):
    """
    Result of an attendance sync.
    """

    since: datetime | None = Field(
        None,
        description="Inclusive lower bound on report start time (UTC), if any.",
        examples=["2025-06-01T00:00:00Z"],
    )
    before: datetime | None = Field(
        None,
        description="Inclusive upper bound on report start time (UTC), if any.",
        examples=[None],
    )
    records_seen: int = Field(
        ...,
        description="Attendance records read from Warcraft Logs within the window.",
        examples=[8],
    )
    reports_updated: int = Field(
        ...,
        description="Known reports that received at least one presence row.",
        examples=[7],
    )
    rows_written: int = Field(
        ...,
        description="Presence rows inserted or updated.",
        examples=[140],
    )
