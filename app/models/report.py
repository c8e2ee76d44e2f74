# app/models/report.py
from sqlalchemy import Column, ForeignKey, Integer, SmallInteger, String
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.db.types import UTCDateTime


class Report(Base):
    """
    A Warcraft Logs report, i.e. one logged raid session.
    """

    __tablename__ = "wcl_reports"

    code = Column(String(32), primary_key=True)
    title = Column(String(255), nullable=False, default="")

    start_time = Column(UTCDateTime, nullable=False, index=True)
    end_time = Column(UTCDateTime, nullable=True)

    guild_tag_id = Column(
        Integer,
        ForeignKey("wcl_guild_tags.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    zone_id = Column(Integer, nullable=True, index=True)
    zone_name = Column(String(128), nullable=True)

    guild_tag = relationship("GuildTag", back_populates="reports")
    presences = relationship(
        "CharacterReportPresence",
        back_populates="report",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Report code={self.code} start_time={self.start_time}>"


class CharacterReportPresence(Base):
    """
    Presence of one character in one report.

    ``presence``: 0 = absent, 1 = present, 2 = benched.
    ``rank_id`` snapshots the character's rank when the row was written, so
    later promotions or demotions do not rewrite history. When it is NULL the
    character's current rank is used instead.
    """

    __tablename__ = "character_report_presence"

    character_id = Column(
        Integer,
        ForeignKey("characters.id", ondelete="CASCADE"),
        primary_key=True,
    )
    report_code = Column(
        String(32),
        ForeignKey("wcl_reports.code", ondelete="CASCADE"),
        primary_key=True,
    )

    presence = Column(SmallInteger, nullable=False, default=0)

    rank_id = Column(
        Integer,
        ForeignKey("guild_ranks.id", ondelete="SET NULL"),
        nullable=True,
    )

    character = relationship("Character", back_populates="presences")
    report = relationship("Report", back_populates="presences")

    def __repr__(self) -> str:
        return (
            f"<CharacterReportPresence character_id={self.character_id} "
            f"report_code={self.report_code} presence={self.presence}>"
        )
