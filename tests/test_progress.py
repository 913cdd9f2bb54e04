from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from iqra.models import DivisionScheme
from iqra.progress import MAX_READING_SESSIONS, ProgressStore


class Clock:
    def __init__(self, hour: int = 6) -> None:
        self.now = datetime(2024, 5, 10, hour, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def utc_days(local_timezone):
    local_timezone("UTC0")


def _read(store: ProgressStore, clock: Clock, verses: int = 3, minutes: int = 5, surah: int = 1) -> None:
    store.start_reading_session(DivisionScheme.SURAH)
    for ayah in range(1, verses + 1):
        store.update_session_progress(surah, ayah, juz=1, hizb=1, page=1)
    clock.advance(minutes=minutes)
    store.end_reading_session()


def test_division_progress_never_goes_backwards(storage) -> None:
    store = ProgressStore(storage, clock=Clock())
    store.record_division_read(DivisionScheme.SURAH, 1)
    store.record_division_read("surah", 2, progress=40, seconds=30)
    partial = store.record_division_read("surah", 2, progress=20, seconds=15)
    store.record_division_read(DivisionScheme.JUZ, 1)

    assert partial.progress == 40
    assert partial.completed is False
    assert partial.total_time == 45
    assert store.get_division_progress("juz", 1).completed is True
    assert store.get_division_progress(DivisionScheme.HIZB, 1) is None

    overall = store.get_overall_progress()
    assert (overall.completed_surahs, overall.completed_juz) == (1, 1)
    assert overall.completion_percentage == 1


def test_session_updates_daily_stats(storage) -> None:
    clock = Clock()
    store = ProgressStore(storage, clock=clock)
    store.start_reading_session("surah")
    store.update_session_progress(2, 1, juz=1, hizb=1, page=2)
    store.update_session_progress(2, 2, juz=1, hizb=1, page=2)
    store.update_session_progress(2, 6, juz=1, hizb=1, page=3)
    clock.advance(minutes=10)
    session = store.end_reading_session()

    assert session.duration == 600
    assert session.verses_read == 3
    assert session.surahs_visited == [2]
    assert session.pages_visited == [2, 3]
    assert store.current_session is None
    assert store.end_reading_session() is None

    today = store.daily_stats["2024-05-10"]
    assert (today.reading_time, today.verses_read, today.sessions_count) == (600, 3, 1)
    assert store.total_reading_time == 600
    assert store.average_session_duration == 600
    assert store.total_days_active == 1
    assert store.last_active_date == "2024-05-10"
    assert store.current_streak == 1


def test_update_session_without_session_is_ignored(storage) -> None:
    store = ProgressStore(storage, clock=Clock())
    store.update_session_progress(1, 1)
    assert store.current_session is None
    assert store.daily_stats == {}


def test_streak_counts_consecutive_local_days(storage) -> None:
    clock = Clock()
    store = ProgressStore(storage, clock=clock)
    for _ in range(3):
        _read(store, clock)
        clock.advance(days=1)
    assert (store.current_streak, store.best_streak) == (3, 3)

    # No reading yet today, yesterday still carries the streak
    assert store.calculate_streak() == 3

    clock.advance(days=2)
    assert store.calculate_streak() == 0
    _read(store, clock)
    assert (store.current_streak, store.best_streak) == (1, 3)


def test_streak_follows_local_calendar_day(storage, local_timezone) -> None:
    # 23:30 and 00:30 UTC fall on the same day three hours east
    local_timezone("AST-3")
    clock = Clock(hour=23)
    store = ProgressStore(storage, clock=clock)
    _read(store, clock, minutes=1)
    clock.advance(hours=1)
    _read(store, clock, minutes=1)
    assert list(store.daily_stats) == ["2024-05-11"]
    assert store.daily_stats["2024-05-11"].sessions_count == 2
    assert store.current_streak == 1


def test_achievements_unlock_once(storage) -> None:
    clock = Clock()
    store = ProgressStore(storage, clock=clock)
    assert store.check_achievements() == []

    store.mark_verse_as_read(1, 7, count=7)
    assert store.check_achievements() == ["First Steps"]
    assert store.check_achievements() == []

    store.record_division_read(DivisionScheme.SURAH, 1)
    _read(store, clock, minutes=31)
    unlocked = {a.id: a for a in store.achievements if a.unlocked}
    assert set(unlocked) == {"first_read", "surah_complete", "early_bird", "focused_reader"}
    assert unlocked["first_read"].unlocked_at == datetime(2024, 5, 10, 6, 30, tzinfo=timezone.utc)

    assert store.unlock_achievement("night_owl") is True
    assert store.unlock_achievement("no_such_thing") is False


def test_state_survives_reopen(storage) -> None:
    clock = Clock()
    store = ProgressStore(storage, clock=clock)
    store.mark_verse_as_read(18, 10)
    store.record_division_read(DivisionScheme.MUSHAF, 293, progress=50)
    store.update_daily_goal(10)
    _read(store, clock)
    store.start_reading_session(DivisionScheme.JUZ)

    reopened = ProgressStore(storage, clock=clock)
    assert (reopened.current_position.surah, reopened.current_position.ayah) == (18, 10)
    assert reopened.get_division_progress("mushaf", 293).progress == 50
    assert reopened.daily_goal == 10
    assert reopened.total_verses_read == 1
    assert len(reopened.reading_sessions) == 1
    assert reopened.daily_stats["2024-05-10"].verses_read == 3
    assert reopened.current_session is None
    assert [a.id for a in reopened.achievements if a.unlocked] == ["first_read", "early_bird"]


def test_invalid_saved_state_falls_back_to_defaults(storage, capsys) -> None:
    storage.save_state(ProgressStore.STORAGE_KEY, {"division_progress": {"surah": {"one": {}}}}, ProgressStore.VERSION)
    store = ProgressStore(storage, clock=Clock())
    assert store.division_progress[DivisionScheme.SURAH] == {}
    assert store.daily_goal == 5
    assert "Invalid reading progress data" in capsys.readouterr().err


def test_daily_goal_must_be_positive(storage) -> None:
    store = ProgressStore(storage, clock=Clock())
    with pytest.raises(ValueError):
        store.update_daily_goal(0)
    assert store.daily_goal == 5


def test_weekly_window_and_productivity(storage) -> None:
    clock = Clock()
    store = ProgressStore(storage, clock=clock)
    assert store.get_productivity_score() == 0
    _read(store, clock, verses=10, minutes=10)

    week = store.get_weekly_stats()
    assert len(week) == 7
    assert week[-1].date == "2024-05-10"
    assert week[0].date == "2024-05-04"
    assert [d.verses_read for d in week] == [0, 0, 0, 0, 0, 0, 10]
    assert len(store.get_monthly_stats()) == 30
    # 40/7 consistency, 20/7 goal, 20 session length, 20/30 streak
    assert store.get_productivity_score() == 32


def test_reading_habits(storage) -> None:
    clock = Clock(hour=18)
    store = ProgressStore(storage, clock=clock)
    assert store.get_reading_habits()["most_read_division"] == "surah"
    _read(store, clock)
    store.start_reading_session(DivisionScheme.JUZ)
    store.end_reading_session()
    store.start_reading_session(DivisionScheme.JUZ)
    store.end_reading_session()

    habits = store.get_reading_habits()
    assert habits["favorite_time"] == "evening"
    assert habits["most_read_division"] == "juz"
    assert habits["consistency_score"] == 14


def test_learning_insights_for_new_reader(storage) -> None:
    store = ProgressStore(storage, clock=Clock())
    insights = store.get_learning_insights()
    assert insights["strengths"] == []
    assert "Try reading for just 5 minutes daily to build consistency" in insights["suggestions"]
    assert "Start your day with some Quran reading" in insights["suggestions"]
    assert insights["milestones"] == ["Read 100 verses", "Complete 5 surahs"]


def test_session_history_is_capped(storage) -> None:
    clock = Clock()
    store = ProgressStore(storage, clock=clock)
    for _ in range(MAX_READING_SESSIONS + 3):
        store.start_reading_session("hizb")
        clock.advance(seconds=1)
        store.end_reading_session()
    assert len(store.reading_sessions) == MAX_READING_SESSIONS
    assert store.daily_stats["2024-05-10"].sessions_count == MAX_READING_SESSIONS + 3


def test_reset_clears_everything(storage) -> None:
    clock = Clock()
    store = ProgressStore(storage, clock=clock)
    _read(store, clock)
    store.reset()
    assert store.reading_sessions == []
    assert store.total_reading_time == 0
    assert not any(a.unlocked for a in store.achievements)
    assert ProgressStore(storage, clock=clock).daily_stats == {}
