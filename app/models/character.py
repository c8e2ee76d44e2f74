# app/models/character.py
from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.db.base import Base


class Character(Base):
    """
    A guild member's character, keyed in attendance data by its name.
    """

    __tablename__ = "characters"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(64), nullable=False, unique=True, index=True)

    rank_id = Column(
        Integer,
        ForeignKey("guild_ranks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    playable_class = Column(String(32), nullable=True)
    is_main = Column(Boolean, nullable=False, default=False)

    rank = relationship("GuildRank", back_populates="characters")
    presences = relationship(
        "CharacterReportPresence",
        back_populates="character",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Character id={self.id} name={self.name!r} rank_id={self.rank_id}>"
