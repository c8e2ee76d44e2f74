# app/services/attendance_source.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from app.schemas.warcraftlogs import GuildAttendance, GuildAttendancePagination
from app.services.warcraftlogs_client import (
    GraphQLError,
    PartitionNotFoundError,
    TransportError,
    WarcraftLogsClient,
)

logger = logging.getLogger(__name__)


class SourceOrderError(TransportError):
    """
    Raised when an attendance page is not in descending start-time order while
    a ``since`` bound is set and iteration short-circuits. Iteration stops at the first record older than
    ``since``, which is only correct if the API delivers newest first.
    """


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def prefer_later_partition(existing: GuildAttendance, incoming: GuildAttendance) -> GuildAttendance:
    """
    Tie-break for a report code returned by more than one guild tag: the tag
    processed later wins.
    """
    return incoming


@dataclass(frozen=True)
class AttendanceQuery:
    """
    Immutable description of what to fetch from the attendance API.

    - ``guild_tag_ids``: tags to query, in order. Empty queries the guild as a whole.
    - ``since``: drop records starting before this instant.
    - ``before``: drop records starting after this instant.
    - ``player_names``: keep only these players; records left empty are dropped.
      None disables the filter.
    - ``zone_id``: filtered server-side.
    """

    guild_tag_ids: Tuple[int, ...] = ()
    since: Optional[datetime] = None
    before: Optional[datetime] = None
    player_names: Optional[Tuple[str, ...]] = None
    zone_id: Optional[int] = None
    page_limit: int = 25
    multi_tag_page_limit: int = 100
    max_pages_per_tag: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "guild_tag_ids", tuple(self.guild_tag_ids))
        object.__setattr__(self, "since", as_utc(self.since))
        object.__setattr__(self, "before", as_utc(self.before))
        if self.player_names is not None:
            object.__setattr__(self, "player_names", tuple(self.player_names))


class ExternalAttendanceSource:
    """
    Reads guild attendance from Warcraft Logs across one or more guild tags.

    Tags are independent partitions of the same guild's reports and can
    return the same report code. Two ways to consume them:

    - ``get()``: fetch every page of every tag, keep one record per code
      (``prefer_later_partition``), return sorted by start time ascending.
      Ordering of the remote pages does not matter here.
    - ``lazy()``: async iterator paging tag by tag; a code already yielded
      is skipped. Pages are fetched only as the consumer pulls, so stopping
      early leaves the remaining pages unfetched.

    Tags are always processed sequentially, in the order given.
    """

    def __init__(
        self,
        client: WarcraftLogsClient,
        guild_id: int,
        query: Optional[AttendanceQuery] = None,
        cache_ttl: Optional[float] = None,
    ) -> None:
        self.client = client
        self.guild_id = guild_id
        self.query = query or AttendanceQuery()
        self.cache_ttl = cache_ttl

    def _partitions(self) -> List[Optional[int]]:
        return list(self.query.guild_tag_ids) or [None]

    # ==================== Eager / lazy consumption ====================

    async def get(self) -> List[GuildAttendance]:
        records: Dict[str, GuildAttendance] = {}

        for tag_id in self._partitions():
            async for attendance in self.iter_partition(
                tag_id, self.query.page_limit, short_circuit=False
            ):
                existing = records.get(attendance.code)
                records[attendance.code] = (
                    attendance if existing is None else prefer_later_partition(existing, attendance)
                )

        return sorted(records.values(), key=lambda a: a.start_time)

    async def lazy(self) -> AsyncIterator[GuildAttendance]:
        seen_codes: set[str] = set()

        for tag_id in self._partitions():
            async for attendance in self.iter_partition(tag_id, self.query.page_limit):
                if attendance.code in seen_codes:
                    continue
                seen_codes.add(attendance.code)
                yield attendance

    async def first_attendance_date(self, player_name: str) -> Optional[datetime]:
        """
        Start time of the earliest record the player appears in, if any.
        """
        for record in await self.get():
            if any(player.name == player_name for player in record.players):
                return record.start_time
        return None

    async def iter_partition(
        self,
        guild_tag_id: Optional[int],
        limit: int,
        short_circuit: bool = True,
    ) -> AsyncIterator[GuildAttendance]:
        """
        Page through one tag, newest first, applying the query's filters.

        Records after ``before`` are skipped. With ``short_circuit`` the first
        record before ``since`` ends the iteration for this tag, since every
        later page is older still; pages out of order raise
        ``SourceOrderError``. Without it every page is read and records before
        ``since`` are skipped.
        """
        since = self.query.since
        before = self.query.before
        max_pages = self.query.max_pages_per_tag

        page = 1
        previous: Optional[datetime] = None

        while True:
            result = await self.fetch_page(page, limit, guild_tag_id)

            for attendance in result.data:
                if since is not None and short_circuit:
                    if previous is not None and attendance.start_time > previous:
                        raise SourceOrderError(
                            f"Attendance for guild tag {guild_tag_id} is not in descending "
                            f"start-time order (page {page}, report {attendance.code})"
                        )
                    previous = attendance.start_time

                    if attendance.start_time < since:
                        logger.debug(
                            "Stopping attendance iteration for tag %s at report %s (before since bound)",
                            guild_tag_id,
                            attendance.code,
                        )
                        return

                if since is not None and attendance.start_time < since:
                    continue
                if before is not None and attendance.start_time > before:
                    continue

                filtered = self._filter_players(attendance)
                if filtered is None:
                    continue

                yield filtered

            if not result.has_more_pages:
                return
            if max_pages is not None and page >= max_pages:
                return
            page += 1

    # ==================== Single page access ====================

    async def get_attendance_page(
        self,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> GuildAttendancePagination:
        """
        Fetch one page of attendance with the query's filters applied.

        With zero or one tag this is a single remote page. With several tags
        every tag is read (``multi_tag_page_limit`` records per request), the
        records are merged by code, sorted newest first, and the requested
        window is sliced in memory.
        """
        limit = limit or self.query.page_limit
        tags = self._partitions()

        if len(tags) <= 1:
            return await self.query_single_tag_attendance(page, limit, tags[0])

        return await self.query_multi_tag_attendance(page, limit)

    async def query_single_tag_attendance(
        self,
        page: int,
        limit: int,
        guild_tag_id: Optional[int],
    ) -> GuildAttendancePagination:
        pagination = await self.fetch_page(page, limit, guild_tag_id)

        since = self.query.since
        before = self.query.before
        data: List[GuildAttendance] = []

        for attendance in pagination.data:
            if since is not None and attendance.start_time < since:
                continue
            if before is not None and attendance.start_time > before:
                continue

            filtered = self._filter_players(attendance)
            if filtered is not None:
                data.append(filtered)

        return pagination.model_copy(update={"data": data})

    async def query_multi_tag_attendance(self, page: int, limit: int) -> GuildAttendancePagination:
        records: Dict[str, GuildAttendance] = {}

        for tag_id in self._partitions():
            async for attendance in self.iter_partition(tag_id, self.query.multi_tag_page_limit):
                existing = records.get(attendance.code)
                records[attendance.code] = (
                    attendance if existing is None else prefer_later_partition(existing, attendance)
                )

        ordered = sorted(records.values(), key=lambda a: a.start_time, reverse=True)

        total = len(ordered)
        offset = (page - 1) * limit
        window = ordered[offset:offset + limit]

        return GuildAttendancePagination(
            data=window,
            total=total,
            per_page=limit,
            current_page=page,
            from_=offset + 1 if total > 0 else 0,
            to=min(offset + len(window), total),
            last_page=math.ceil(total / limit) if total > 0 else 1,
            has_more_pages=offset + limit < total,
        )

    # ==================== API access ====================

    async def fetch_page(
        self,
        page: int,
        limit: int,
        guild_tag_id: Optional[int],
    ) -> GuildAttendancePagination:
        """
        Fetch one raw page of attendance for the guild (and tag, if given).

        Raises
        ------
        PartitionNotFoundError
            If the guild or tag does not exist.
        TransportError
            On any other API failure.
        """
        variables: Dict[str, Any] = {
            "id": self.guild_id,
            "page": page,
            "limit": limit,
        }
        if guild_tag_id is not None:
            variables["guildTagID"] = guild_tag_id
        if self.query.zone_id is not None:
            variables["zoneID"] = self.query.zone_id

        query = build_attendance_query(
            with_tag=guild_tag_id is not None,
            with_zone=self.query.zone_id is not None,
        )

        try:
            data = await self.client.query(query, variables, ttl=self.cache_ttl)
        except GraphQLError as exc:
            if exc.has_error_matching(r"does not exist") or exc.has_error_matching(r"not found"):
                raise PartitionNotFoundError(
                    f"Guild {self.guild_id} (tag {guild_tag_id}) not found"
                ) from exc
            raise

        attendance_data = ((data.get("guildData") or {}).get("guild") or {}).get("attendance")
        if attendance_data is None:
            raise PartitionNotFoundError(f"Guild {self.guild_id} (tag {guild_tag_id}) not found")

        return GuildAttendancePagination.model_validate(attendance_data)

    def _filter_players(self, attendance: GuildAttendance) -> Optional[GuildAttendance]:
        if self.query.player_names is None:
            return attendance

        filtered = attendance.filter_players(self.query.player_names)
        if not filtered.players:
            return None
        return filtered


def build_attendance_query(with_tag: bool = False, with_zone: bool = False) -> str:
    """
    Build the GraphQL query for one page of guild attendance.
    """
    variable_definitions = ["$id: Int!", "$page: Int", "$limit: Int"]
    attendance_args = ["page: $page", "limit: $limit"]

    if with_tag:
        variable_definitions.append("$guildTagID: Int")
        attendance_args.append("guildTagID: $guildTagID")

    if with_zone:
        variable_definitions.append("$zoneID: Int")
        attendance_args.append("zoneID: $zoneID")

    return f"""
    query GetGuildAttendance({", ".join(variable_definitions)}) {{
        guildData {{
            guild(id: $id) {{
                attendance({", ".join(attendance_args)}) {{
                    data {{
                        code
                        startTime
                        players {{
                            name
                            presence
                        }}
                        zone {{
                            id
                            name
                        }}
                    }}
                    total
                    per_page
                    current_page
                    from
                    to
                    last_page
                    has_more_pages
                }}
            }}
        }}
    }}
    """
