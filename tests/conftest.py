# tests/conftest.py
import os
import tempfile
from datetime import datetime

# Settings are read once on first import of the app; point them at a throwaway
# SQLite database before anything from `app` is imported.
_DB_DIR = tempfile.mkdtemp(prefix="raid_attendance_tests_")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["APP_ENV"] = "test"
os.environ.pop("INTERNAL_API_KEY", None)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.db.session import AsyncSessionLocal, init_db  # noqa: E402
from app.main import create_app  # noqa: E402
from app.models.character import Character  # noqa: E402
from app.models.guild_rank import GuildRank  # noqa: E402
from app.models.guild_tag import GuildTag  # noqa: E402
from app.models.report import CharacterReportPresence, Report  # noqa: E402


@pytest.fixture(scope="session")
def client() -> TestClient:
    """
    Shared TestClient fixture for all tests.

    Uses the application factory so the startup hook creates the schema.
    """
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def db_session():
    """
    Fresh schema plus an open session for one test.
    """
    await init_db()
    async with AsyncSessionLocal() as session:
        yield session


class GuildSeeder:
    """
    Small helper to insert guild data with sensible defaults.
    """

    def __init__(self, session) -> None:
        self.session = session

    async def rank(self, id: int, name: str = "", count_attendance: bool = True) -> GuildRank:
        rank = GuildRank(
            id=id,
            name=name or f"Rank {id}",
            position=id,
            count_attendance=count_attendance,
        )
        self.session.add(rank)
        await self.session.commit()
        return rank

    async def tag(self, id: int, name: str = "", count_attendance: bool = True) -> GuildTag:
        tag = GuildTag(id=id, name=name or f"Tag {id}", count_attendance=count_attendance)
        self.session.add(tag)
        await self.session.commit()
        return tag

    async def character(
        self,
        id: int,
        name: str,
        rank_id: int | None,
        playable_class: str | None = None,
    ) -> Character:
        character = Character(
            id=id,
            name=name,
            rank_id=rank_id,
            playable_class=playable_class,
        )
        self.session.add(character)
        await self.session.commit()
        return character

    async def report(
        self,
        code: str,
        start_time: datetime,
        guild_tag_id: int | None,
        zone_id: int | None = None,
    ) -> Report:
        report = Report(
            code=code,
            title=code,
            start_time=start_time,
            guild_tag_id=guild_tag_id,
            zone_id=zone_id,
        )
        self.session.add(report)
        await self.session.commit()
        return report

    async def presence(
        self,
        character_id: int,
        report_code: str,
        presence: int,
        rank_id: int | None = None,
    ) -> None:
        self.session.add(
            CharacterReportPresence(
                character_id=character_id,
                report_code=report_code,
                presence=presence,
                rank_id=rank_id,
            )
        )
        await self.session.commit()


@pytest_asyncio.fixture
async def seeder(db_session) -> GuildSeeder:
    return GuildSeeder(db_session)
