# app/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models in the Raid Attendance service.
    """
    pass


# Import ORM models so that Base.metadata is aware of them
# This import should stay at the bottom to avoid circular dependencies.
from app.models.guild_rank import GuildRank  # noqa: E402,F401
from app.models.guild_tag import GuildTag  # noqa: E402,F401
from app.models.character import Character  # noqa: E402,F401
from app.models.report import CharacterReportPresence, Report  # noqa: E402,F401
