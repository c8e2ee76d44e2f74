# app/services/report_source.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from app.schemas.warcraftlogs import WarcraftLogsReport
from app.services.warcraftlogs_client import WarcraftLogsClient

logger = logging.getLogger(__name__)

REPORTS_PAGE_LIMIT = 100
REPORTS_CACHE_TTL = 300  # seconds


@dataclass(frozen=True)
class ReportQuery:
    guild_tag_ids: Tuple[int, ...] = ()
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "guild_tag_ids", tuple(self.guild_tag_ids))


def _epoch_ms(value: Optional[datetime]) -> Optional[float]:
    return value.timestamp() * 1000 if value is not None else None


class ReportSource:
    """
    Lists Warcraft Logs reports for the guild, one guild tag at a time.

    ``get()`` returns every report once, newest first; when two tags return
    the same code the later tag's copy is kept. ``lazy()`` yields reports as
    pages arrive and skips codes already yielded.
    """

    def __init__(
        self,
        client: WarcraftLogsClient,
        guild_id: int,
        query: Optional[ReportQuery] = None,
        cache_ttl: float = REPORTS_CACHE_TTL,
    ) -> None:
        self.client = client
        self.guild_id = guild_id
        self.query = query or ReportQuery()
        self.cache_ttl = cache_ttl

    def _partitions(self) -> List[Optional[int]]:
        return list(self.query.guild_tag_ids) or [None]

    async def get(self) -> List[WarcraftLogsReport]:
        reports: Dict[str, WarcraftLogsReport] = {}

        for tag_id in self._partitions():
            async for report in self.iter_partition(tag_id):
                reports[report.code] = report

        return sorted(reports.values(), key=lambda r: r.start_time, reverse=True)

    async def lazy(self) -> AsyncIterator[WarcraftLogsReport]:
        seen_codes: set[str] = set()

        for tag_id in self._partitions():
            async for report in self.iter_partition(tag_id):
                if report.code in seen_codes:
                    continue
                seen_codes.add(report.code)
                yield report

    async def iter_partition(self, guild_tag_id: Optional[int]) -> AsyncIterator[WarcraftLogsReport]:
        page = 1
        while True:
            reports, has_more_pages = await self.fetch_page(page, guild_tag_id)
            for report in reports:
                yield report

            if not has_more_pages:
                return
            page += 1

    async def fetch_page(
        self,
        page: int,
        guild_tag_id: Optional[int],
    ) -> Tuple[List[WarcraftLogsReport], bool]:
        variables: Dict[str, Any]
        if guild_tag_id is not None:
            variables = {"guildTagID": guild_tag_id}
        else:
            variables = {"guildID": self.guild_id}

        variables["page"] = page
        variables["limit"] = REPORTS_PAGE_LIMIT

        start_ms = _epoch_ms(self.query.start_time)
        end_ms = _epoch_ms(self.query.end_time)
        if start_ms is not None:
            variables["startTime"] = start_ms
        if end_ms is not None:
            variables["endTime"] = end_ms

        data = await self.client.query(
            build_reports_query(
                with_tag=guild_tag_id is not None,
                with_start=start_ms is not None,
                with_end=end_ms is not None,
            ),
            variables,
            ttl=self.cache_ttl,
        )

        reports_data = (data.get("reportData") or {}).get("reports") or {}
        reports = [WarcraftLogsReport.model_validate(item) for item in reports_data.get("data") or []]

        logger.debug(
            "Fetched %d reports (tag=%s, page=%d)", len(reports), guild_tag_id, page
        )
        return reports, bool(reports_data.get("has_more_pages"))


def build_reports_query(
    with_tag: bool = False,
    with_start: bool = False,
    with_end: bool = False,
) -> str:
    if with_tag:
        variable_definitions = ["$guildTagID: Int!"]
        reports_args = ["guildTagID: $guildTagID"]
    else:
        variable_definitions = ["$guildID: Int!"]
        reports_args = ["guildID: $guildID"]

    variable_definitions += ["$page: Int", "$limit: Int"]
    reports_args += ["page: $page", "limit: $limit"]

    if with_start:
        variable_definitions.append("$startTime: Float")
        reports_args.append("startTime: $startTime")

    if with_end:
        variable_definitions.append("$endTime: Float")
        reports_args.append("endTime: $endTime")

    return f"""
    query GetReports({", ".join(variable_definitions)}) {{
        reportData {{
            reports({", ".join(reports_args)}) {{
                data {{
                    code
                    title
                    startTime
                    endTime
                    guildTag {{
                        id
                        name
                    }}
                    zone {{
                        id
                        name
                    }}
                }}
                current_page
                has_more_pages
            }}
        }}
    }}
    """
