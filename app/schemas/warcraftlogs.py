# app/schemas/warcraftlogs.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _from_epoch_ms(value: Any) -> Any:
    """
    Warcraft Logs sends timestamps as epoch milliseconds.
    """
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return value


class Zone(BaseModel):
    id: int
    name: str


class GuildTagRef(BaseModel):
    id: int
    name: str


class PlayerAttendance(BaseModel):
    """
    A player's presence in one attendance record: 1 = present,
    2 = present but benched, 0 = absent.
    """

    name: str
    presence: int


class GuildAttendance(BaseModel):
    """
    One raid night as returned by the guild attendance query.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    code: str
    start_time: datetime = Field(..., alias="startTime")
    players: List[PlayerAttendance] = Field(default_factory=list)
    zone: Optional[Zone] = None

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_start_time(cls, value: Any) -> Any:
        return _from_epoch_ms(value)

    def filter_players(self, player_names: Iterable[str]) -> "GuildAttendance":
        """
        Return a copy keeping only players whose name is in ``player_names``.
        """
        wanted = set(player_names)
        return self.model_copy(
            update={"players": [p for p in self.players if p.name in wanted]}
        )


class GuildAttendancePagination(BaseModel):
    """
    One page of guild attendance plus the API's pagination metadata.
    """

    model_config = ConfigDict(populate_by_name=True)

    data: List[GuildAttendance] = Field(default_factory=list)
    total: int = 0
    per_page: int = 0
    current_page: int = 1
    from_: int = Field(0, alias="from")
    to: int = 0
    last_page: int = 1
    has_more_pages: bool = False

    @field_validator("from_", "to", mode="before")
    @classmethod
    def _null_to_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class WarcraftLogsReport(BaseModel):
    """
    A report as returned by the reports listing query.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    code: str
    title: str = ""
    start_time: datetime = Field(..., alias="startTime")
    end_time: Optional[datetime] = Field(None, alias="endTime")
    guild_tag: Optional[GuildTagRef] = Field(None, alias="guildTag")
    zone: Optional[Zone] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_times(cls, value: Any) -> Any:
        return _from_epoch_ms(value)
