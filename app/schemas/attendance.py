# app/schemas/attendance.py
from datetime import datetime

from pydantic import BaseModel, Field


class CharacterAttendanceStats(BaseModel):
    """
    Attendance statistics for a single character, counted from the raid day
    of their first appearance onwards.
    """

    id: int = Field(..., description="Database identifier of the character.", examples=[42])
    name: str = Field(..., description="Character name.", examples=["Thrall"])
    first_attendance: datetime = Field(
        ...,
        description="Start time (UTC) of the first raid day the character appears in.",
        examples=["2025-06-01T19:00:00Z"],
    )
    total_reports: int = Field(
        ...,
        description="Raid days on or after first_attendance.",
        examples=[12],
    )
    reports_attended: int = Field(
        ...,
        description="Raid days where the character was present or benched.",
        examples=[10],
    )
    percentage: float = Field(
        ...,
        description=(
            "reports_attended / total_reports * 100, rounded to 2 decimals. "
            "0.0 when total_reports is zero."
        ),
        examples=[83.33],
    )


class MatrixRaid(BaseModel):
    """
    One column of the attendance matrix (one merged raid day).
    """

    code: str = Field(
        ...,
        description="Report code, or several codes joined with '+' for merged raid days.",
        examples=["aBcD1234+eFgH5678"],
    )
    date: str = Field(..., description="Local date formatted as dd/mm.", examples=["01/06"])
    day_of_week: str = Field(..., description="Local short weekday name.", examples=["Sun"])


class MatrixRow(BaseModel):
    """
    One character's row in the attendance matrix.

    ``attendance`` is aligned with ``AttendanceMatrix.raids``: None before the
    character's first appearance, otherwise 0 (absent), 1 (present) or
    2 (benched).
    """

    id: int = Field(..., examples=[42])
    name: str = Field(..., examples=["Thrall"])
    rank_id: int | None = Field(None, examples=[3])
    playable_class: str | None = Field(None, examples=["Shaman"])
    percentage: float = Field(..., examples=[75.0])
    attendance: list[int | None] = Field(..., examples=[[1, 0, 2, None]])


class AttendanceMatrix(BaseModel):
    """
    Raid-by-character presence grid, newest raid day first.
    """

    raids: list[MatrixRaid] = Field(default_factory=list)
    rows: list[MatrixRow] = Field(default_factory=list)


class PlayerAttendanceSummary(BaseModel):
    first_attendance: str = Field(
        ...,
        description="ISO-8601 timestamp in the display timezone.",
        examples=["2025-06-01T21:00:00+02:00"],
    )
    attended: int = Field(..., examples=[10])
    total: int = Field(..., examples=[12])
    percentage: float = Field(..., examples=[83.33])


class PlayerAttendanceExport(BaseModel):
    """
    Export shape consumed by the addon data build.
    """

    id: int
    name: str
    attendance: PlayerAttendanceSummary
