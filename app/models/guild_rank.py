# app/models/guild_rank.py
from sqlalchemy import Boolean, Column, Integer, String
from sqlalchemy.orm import relationship

from app.db.base import Base


class GuildRank(Base):
    """
    An in-game guild rank. Only characters holding a rank flagged with
    ``count_attendance`` are included in attendance statistics.
    """

    __tablename__ = "guild_ranks"

    id = Column(Integer, primary_key=True, index=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String(64), nullable=False)
    count_attendance = Column(Boolean, nullable=False, default=False)

    characters = relationship("Character", back_populates="rank")

    def __repr__(self) -> str:
        return (
            f"<GuildRank id={self.id} name={self.name!r} "
            f"count_attendance={self.count_attendance}>"
        )
