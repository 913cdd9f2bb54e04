from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from iqra.metrics import MAX_EVENTS, MetricsStore, time_of_day


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 10, 6, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def test_session_lifecycle(storage) -> None:
    clock = Clock()
    store = MetricsStore(storage, clock=clock)
    store.start_session()
    store.track_page_view("/surah/1")
    store.track_page_view("/surah/2")
    store.track_event("audio_play", {"surah": 2})
    clock.advance(minutes=10)
    session = store.end_session()

    assert session.duration == 600
    assert session.page_views == 2
    assert session.interactions == 3
    assert session.pages == ["/surah/1", "/surah/2"]
    assert store.current_session is None
    assert store.end_session() is None

    metrics = store.get_metrics()
    assert metrics.total_sessions == 1
    assert metrics.total_time_spent == 600
    assert metrics.average_session_duration == 600
    assert metrics.pages_per_session == 2
    assert metrics.bounce_rate == 0


def test_reading_metrics_and_preferences(storage, local_timezone) -> None:
    local_timezone("UTC0")
    clock = Clock()
    store = MetricsStore(storage, clock=clock)
    store.track_event("reading_start", {"surah": 18})
    clock.advance(minutes=15)
    store.track_event("reading_end", {"surah": 18, "verses_read": 20}, duration=900)
    store.track_event("reading_start", {"surah": 36})
    store.track_event("reading_end", {"surah": 36, "verses_read": 5}, duration=300)
    store.track_event("bookmark_add", {"surah": 18})

    reading = store.get_metrics().reading
    assert reading.total_reading_sessions == 2
    assert reading.total_reading_time == 1200
    assert reading.average_reading_session_length == 600
    assert reading.verses_read == 25
    assert reading.favorite_surahs[0] == {"surah": 18, "count": 3}
    assert store.get_metrics().time_of_day_preference == "morning"
    assert store.get_metrics().feature_usage["reading_end"].average_duration == 600


def test_reading_hours_use_local_time(storage, local_timezone) -> None:
    # 19:00 UTC is 14:00 five hours west of Greenwich
    local_timezone("EST+5")
    clock = Clock()
    clock.now = datetime(2024, 5, 10, 19, 0, tzinfo=timezone.utc)
    store = MetricsStore(storage, clock=clock)
    store.track_event("reading_start", {"surah": 1})
    store.track_event("reading_end", {"surah": 1}, duration=60)

    metrics = store.get_metrics()
    assert metrics.reading.reading_pattern == {14: 2}
    assert metrics.time_of_day_preference == "afternoon"


def test_navigation_and_performance(storage) -> None:
    store = MetricsStore(storage, clock=Clock())
    store.track_page_view("/juz/1")
    store.track_page_view("/juz/2")
    store.track_page_view("/juz/1")
    store.track_page_view("/juz/2")
    store.track_performance("/juz/1", 120)
    store.track_performance("/juz/2", 300)
    store.track_performance("/juz/2", 100)

    metrics = store.get_metrics()
    assert metrics.navigation_patterns[0] == {"from": "/juz/1", "to": "/juz/2", "count": 2}
    assert metrics.average_page_load_time == pytest.approx(520 / 3)
    assert metrics.slowest_pages[0] == {"page": "/juz/2", "load_time": 200}
    assert metrics.most_used_features[0] == {"feature": "page_view", "usage": 4}


def test_active_use_windows(storage) -> None:
    clock = Clock()
    store = MetricsStore(storage, clock=clock)
    store.track_event("search_query")
    clock.advance(days=3)
    store.track_event("search_query")
    clock.advance(hours=1)
    metrics = store.get_metrics()
    assert metrics.daily_active_use == 1
    assert metrics.weekly_active_use == 2
    assert metrics.monthly_active_use == 2


def test_tracking_can_be_disabled(storage) -> None:
    store = MetricsStore(storage, clock=Clock())
    store.set_tracking_enabled(False)
    assert store.track_event("audio_play") is None
    store.track_page_view("/surah/1")
    assert store.events == []
    assert MetricsStore(storage).is_tracking_enabled is False


def test_event_cap(storage, monkeypatch) -> None:
    monkeypatch.setattr("iqra.metrics.MAX_EVENTS", 3)
    store = MetricsStore(storage, clock=Clock())
    for i in range(5):
        store.track_event("button_click", {"n": i})
    assert [e.metadata["n"] for e in store.events] == [4, 3, 2]
    assert MAX_EVENTS == 10000


def test_persistence_export_and_clear(storage) -> None:
    clock = Clock()
    store = MetricsStore(storage, clock=clock)
    store.start_session()
    store.track_error("boom", {"where": "reader"})
    store.end_session()

    reloaded = MetricsStore(storage, clock=clock)
    assert len(reloaded.events) == 1
    assert reloaded.events[0].metadata["error"] == "boom"
    assert len(reloaded.sessions) == 1

    exported = json.loads(reloaded.export_data())
    assert set(exported) == {"events", "sessions", "metrics", "exported_at"}
    assert exported["metrics"]["total_sessions"] == 1

    reloaded.clear_data()
    assert reloaded.events == []
    assert MetricsStore(storage).sessions == []


def test_session_analytics(storage) -> None:
    clock = Clock()
    store = MetricsStore(storage, clock=clock)
    store.start_session()
    store.track_event("audio_play")
    store.track_event("audio_play")
    clock.advance(minutes=2)
    store.end_session()
    analytics = store.get_session_analytics("week")
    assert analytics["events"] == 2
    assert analytics["sessions"] == 1
    assert analytics["avg_session_length"] == 120
    assert analytics["top_actions"] == {"audio_play": 2}
    with pytest.raises(ValueError):
        store.get_session_analytics("year")


@pytest.mark.parametrize("hour, label", [(5, "morning"), (12, "afternoon"), (18, "evening"), (22, "night"), (2, "night")])
def test_time_of_day(hour, label) -> None:
    assert time_of_day(hour) == label
