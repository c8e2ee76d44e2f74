# app/services/presence.py
from enum import IntEnum


class Presence(IntEnum):
    """
    Per-character presence in a report, as stored and as returned by
    Warcraft Logs.
    """

    ABSENT = 0
    PRESENT = 1
    BENCHED = 2


ATTENDED = (Presence.PRESENT, Presence.BENCHED)

_PRIORITY = {
    Presence.PRESENT: 2,
    Presence.BENCHED: 1,
}


def presence_priority(presence: int | None) -> int:
    """
    Rank a presence value when two same-day raids disagree (higher wins).

    Present beats benched, which beats absent. Missing and unknown values
    rank with absent.
    """
    return _PRIORITY.get(presence, 0)


def is_attended(presence: int | None) -> bool:
    return presence in ATTENDED
