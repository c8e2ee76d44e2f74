# app/models/guild_tag.py
from sqlalchemy import Boolean, Column, Integer, String
from sqlalchemy.orm import relationship

from app.db.base import Base


class GuildTag(Base):
    """
    A Warcraft Logs guild tag. Reports are partitioned by tag on the remote
    side; only reports under tags flagged ``count_attendance`` feed the
    attendance statistics.

    The primary key is the remote tag ID.
    """

    __tablename__ = "wcl_guild_tags"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(128), nullable=False)
    count_attendance = Column(Boolean, nullable=False, default=False)

    reports = relationship("Report", back_populates="guild_tag")

    def __repr__(self) -> str:
        return (
            f"<GuildTag id={self.id} name={self.name!r} "
            f"count_attendance={self.count_attendance}>"
        )
