# tests/test_attendance_calculator.py
from datetime import datetime, timedelta, timezone

import pytest

from app.schemas.attendance import CharacterAttendanceStats
from app.services.attendance_calculator import (
    AttendanceCalculator,
    EmptyInputError,
    aggregate,
    percentage_of,
)
from app.services.presence import Presence
from app.services.raid_days import PlayerPresence, RaidDayConfig, RaidRecord


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _weekly(n: int) -> list[datetime]:
    start = _utc(2025, 6, 1, 20, 0)
    return [start + timedelta(days=7 * i) for i in range(n)]


def test_percentage_rounding_and_zero_total():
    assert percentage_of(2, 3) == 66.67
    assert percentage_of(3, 3) == 100.0
    assert percentage_of(0, 0) == 0.0


def test_total_reports_anchored_at_first_appearance():
    """
    A character first seen in raid 3 of 5 is counted over 3 raid days.
    """
    starts = _weekly(5)
    records = []
    for index, start in enumerate(starts):
        players = {"Veteran": PlayerPresence(character_id=1, presence=Presence.PRESENT)}
        if index == 2:
            players["Recruit"] = PlayerPresence(character_id=2, presence=Presence.PRESENT)
        if index == 4:
            players["Recruit"] = PlayerPresence(character_id=2, presence=Presence.BENCHED)
        records.append(RaidRecord(code=f"R{index + 1}", start_time=start, players=players))

    calculator = AttendanceCalculator(db=None, config=RaidDayConfig())
    stats = {s.name: s for s in calculator.calculate(records)}

    recruit = stats["Recruit"]
    assert recruit.first_attendance == starts[2]
    assert recruit.total_reports == 3
    assert recruit.reports_attended == 2
    assert recruit.percentage == 66.67

    veteran = stats["Veteran"]
    assert veteran.total_reports == 5
    assert veteran.reports_attended == 5
    assert veteran.percentage == 100.0


def test_calculate_merges_same_day_raids_and_sorts_by_name():
    records = [
        RaidRecord(
            code="R2",
            start_time=_utc(2025, 6, 1, 23, 0),
            players={"Zed": PlayerPresence(character_id=2, presence=Presence.PRESENT)},
        ),
        RaidRecord(
            code="R1",
            start_time=_utc(2025, 6, 1, 20, 0),
            players={
                "Zed": PlayerPresence(character_id=2, presence=Presence.ABSENT),
                "Amy": PlayerPresence(character_id=1, presence=Presence.ABSENT),
            },
        ),
    ]

    stats = AttendanceCalculator(db=None).calculate(records)

    assert [s.name for s in stats] == ["Amy", "Zed"]
    assert stats[0].total_reports == 1
    assert stats[0].reports_attended == 0
    assert stats[0].percentage == 0.0
    assert stats[1].total_reports == 1
    assert stats[1].reports_attended == 1


def test_calculate_respects_bounds():
    starts = _weekly(4)
    presences = [Presence.PRESENT, Presence.ABSENT, 9, Presence.BENCHED]
    records = [
        RaidRecord(
            code=f"R{i}",
            start_time=start,
            players={"Alice": PlayerPresence(character_id=1, presence=presences[i])},
        )
        for i, start in enumerate(starts)
    ]

    for stats in AttendanceCalculator(db=None).calculate(records):
        assert 0 <= stats.percentage <= 100
        assert stats.reports_attended <= stats.total_reports

    assert AttendanceCalculator(db=None).calculate([]) == []


def test_aggregate_sums_and_keeps_earliest_first_attendance():
    early = _utc(2025, 5, 1, 20, 0)
    late = _utc(2025, 6, 1, 20, 0)

    first_set = [
        CharacterAttendanceStats(
            id=1, name="Alice", first_attendance=late,
            total_reports=4, reports_attended=3, percentage=75.0,
        ),
    ]
    second_set = [
        CharacterAttendanceStats(
            id=99, name="Alice", first_attendance=early,
            total_reports=6, reports_attended=2, percentage=33.33,
        ),
        CharacterAttendanceStats(
            id=2, name="Bob", first_attendance=late,
            total_reports=1, reports_attended=1, percentage=100.0,
        ),
    ]

    combined = aggregate([first_set, second_set])

    assert [s.name for s in combined] == ["Alice", "Bob"]
    alice = combined[0]
    assert alice.id == 1
    assert alice.first_attendance == early
    assert alice.total_reports == 10
    assert alice.reports_attended == 5
    assert alice.percentage == 50.0

    # inputs are not mutated
    assert first_set[0].total_reports == 4


# ---------------------------------------------------------------------------
# Database-backed entry points
# ---------------------------------------------------------------------------


async def _seed_basic_guild(seeder):
    """
    Ranks: 1 (raider, counts), 2 (social, does not count).
    Tags: 10 (main raid, counts), 20 (pugs, does not count).
    Reports R1..R3 weekly under tag 10, P1 under tag 20.
    """
    await seeder.rank(1, "Raider", count_attendance=True)
    await seeder.rank(2, "Social", count_attendance=False)
    await seeder.tag(10, "Main", count_attendance=True)
    await seeder.tag(20, "Pugs", count_attendance=False)

    await seeder.character(1, "Alice", rank_id=1, playable_class="Mage")
    await seeder.character(2, "Bob", rank_id=1, playable_class="Priest")
    await seeder.character(3, "Carl", rank_id=2, playable_class="Rogue")

    starts = _weekly(3)
    for index, start in enumerate(starts):
        await seeder.report(f"R{index + 1}", start, guild_tag_id=10)
    await seeder.report("P1", starts[0] + timedelta(days=2), guild_tag_id=20)

    await seeder.presence(1, "R1", Presence.PRESENT)
    await seeder.presence(1, "R2", Presence.ABSENT)
    await seeder.presence(1, "R3", Presence.BENCHED)
    await seeder.presence(2, "R2", Presence.PRESENT)
    await seeder.presence(3, "R1", Presence.PRESENT)
    await seeder.presence(1, "P1", Presence.PRESENT)
    return starts


@pytest.mark.asyncio
async def test_whole_guild_uses_counting_ranks_and_tags(db_session, seeder):
    await _seed_basic_guild(seeder)

    stats = await AttendanceCalculator(db_session).whole_guild()

    assert [s.name for s in stats] == ["Alice", "Bob"]
    alice, bob = stats
    assert (alice.total_reports, alice.reports_attended) == (3, 2)
    assert alice.percentage == 66.67
    # Bob first appears in R2 and has no row for R3
    assert (bob.total_reports, bob.reports_attended) == (2, 1)


@pytest.mark.asyncio
async def test_whole_guild_without_counting_ranks_is_empty(db_session, seeder):
    await seeder.rank(1, count_attendance=False)
    await seeder.tag(10)
    await seeder.character(1, "Alice", rank_id=1)
    await seeder.report("R1", _utc(2025, 6, 1, 20, 0), guild_tag_id=10)
    await seeder.presence(1, "R1", Presence.PRESENT)

    assert await AttendanceCalculator(db_session).whole_guild() == []


@pytest.mark.asyncio
async def test_for_ranks_with_empty_set_raises(db_session):
    with pytest.raises(EmptyInputError):
        await AttendanceCalculator(db_session).for_ranks([])


@pytest.mark.asyncio
async def test_for_ranks_filters_on_effective_rank(db_session, seeder):
    await _seed_basic_guild(seeder)

    stats = await AttendanceCalculator(db_session).for_ranks([2])

    assert [s.name for s in stats] == ["Carl"]
    assert stats[0].total_reports == 3


@pytest.mark.asyncio
async def test_rank_snapshot_wins_over_current_rank(db_session, seeder):
    """
    Dave was a raider for R1 and R2 and has since been demoted. His history
    still counts for the raider rank; nothing counts for the social rank.
    """
    await seeder.rank(1, count_attendance=True)
    await seeder.rank(2, count_attendance=False)
    await seeder.tag(10)
    await seeder.character(1, "Dave", rank_id=2)

    starts = _weekly(2)
    await seeder.report("R1", starts[0], guild_tag_id=10)
    await seeder.report("R2", starts[1], guild_tag_id=10)
    await seeder.presence(1, "R1", Presence.PRESENT, rank_id=1)
    await seeder.presence(1, "R2", Presence.ABSENT, rank_id=1)

    calculator = AttendanceCalculator(db_session)

    raiders = await calculator.for_ranks([1])
    assert len(raiders) == 1
    assert raiders[0].name == "Dave"
    assert (raiders[0].total_reports, raiders[0].reports_attended) == (2, 1)

    assert await calculator.for_ranks([2]) == []


@pytest.mark.asyncio
async def test_for_character_returns_single_entry(db_session, seeder):
    await _seed_basic_guild(seeder)

    stats = await AttendanceCalculator(db_session).for_character(2)

    assert len(stats) == 1
    assert stats[0].name == "Bob"
    assert stats[0].total_reports == 1
    assert stats[0].reports_attended == 1


@pytest.mark.asyncio
async def test_for_character_in_non_counting_rank_is_empty(db_session, seeder):
    await _seed_basic_guild(seeder)

    assert await AttendanceCalculator(db_session).for_character(3) == []


@pytest.mark.asyncio
async def test_for_report(db_session, seeder):
    await _seed_basic_guild(seeder)
    calculator = AttendanceCalculator(db_session)

    r2 = await calculator.for_report("R2")
    assert [(s.name, s.reports_attended) for s in r2] == [("Alice", 0), ("Bob", 1)]

    # tag 20 does not count attendance
    assert await calculator.for_report("P1") == []
    assert await calculator.for_report("UNKNOWN") == []
