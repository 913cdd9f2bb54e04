# iqra/metrics.py
import json
import sys
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from colorama import Fore, Style
from pydantic import BaseModel, Field, ValidationError

from .storage import STORAGE_KEYS, LocalStorage

MAX_EVENTS = 10000
MAX_SESSIONS = 1000
# Only the most recent slice is written to disk
PERSISTED_EVENTS = 5000
PERSISTED_SESSIONS = 500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class UserEvent(BaseModel):
    id: str
    action: str
    timestamp: datetime
    session_id: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    page: str = ""
    duration: Optional[float] = None  # seconds


class SessionData(BaseModel):
    id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[float] = None  # seconds
    page_views: int = 0
    interactions: int = 0
    pages: List[str] = Field(default_factory=list)
    is_active: bool = True
    last_activity: datetime


class FeatureUsage(BaseModel):
    count: int = 0
    last_used: Optional[datetime] = None
    average_duration: Optional[float] = None


class ReadingMetrics(BaseModel):
    total_reading_sessions: int = 0
    total_reading_time: float = 0.0
    average_reading_session_length: float = 0.0
    verses_read: int = 0
    favorite_surahs: List[Dict[str, int]] = Field(default_factory=list)
    reading_pattern: Dict[int, int] = Field(default_factory=dict)  # hour -> events


class UserMetrics(BaseModel):
    total_sessions: int = 0
    average_session_duration: float = 0.0
    total_time_spent: float = 0.0
    pages_per_session: float = 0.0
    bounce_rate: float = 0.0
    daily_active_use: int = 0
    weekly_active_use: int = 0
    monthly_active_use: int = 0
    feature_usage: Dict[str, FeatureUsage] = Field(default_factory=dict)
    reading: ReadingMetrics = Field(default_factory=ReadingMetrics)
    most_used_features: List[Dict[str, Any]] = Field(default_factory=list)
    navigation_patterns: List[Dict[str, Any]] = Field(default_factory=list)
    average_page_load_time: float = 0.0
    slowest_pages: List[Dict[str, Any]] = Field(default_factory=list)
    most_accessed_pages: List[str] = Field(default_factory=list)
    time_of_day_preference: str = "evening"


def time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def calculate_metrics(events: List[UserEvent], sessions: List[SessionData], now: datetime) -> UserMetrics:
    """Summarise raw events and sessions. ``events`` is newest first."""
    completed = [s for s in sessions if s.end_time is not None]
    total_sessions = len(completed)
    total_time = sum(s.duration or 0.0 for s in completed)

    feature_usage: Dict[str, FeatureUsage] = {}
    for event in events:
        usage = feature_usage.setdefault(event.action, FeatureUsage())
        usage.count += 1
        if usage.last_used is None or event.timestamp > usage.last_used:
            usage.last_used = event.timestamp
        if event.duration:
            current = usage.average_duration or 0.0
            usage.average_duration = (current * (usage.count - 1) + event.duration) / usage.count

    reading_events = [e for e in events if e.action in ("reading_start", "reading_end")]
    reading_sessions = sum(1 for e in reading_events if e.action == "reading_start")
    reading_time = sum(e.duration or 0.0 for e in reading_events if e.action == "reading_end")
    surah_counts = Counter(e.metadata["surah"] for e in events if e.metadata.get("surah"))
    reading_hours = Counter(e.timestamp.astimezone().hour for e in reading_events)

    # Consecutive page views, oldest to newest
    chronological = list(reversed(events))
    transitions = Counter(
        (prev.page, cur.page)
        for prev, cur in zip(chronological, chronological[1:])
        if prev.action == "page_view" and cur.action == "page_view"
    )

    load_times: Dict[str, List[float]] = {}
    for event in events:
        if event.metadata.get("load_time"):
            load_times.setdefault(event.page, []).append(float(event.metadata["load_time"]))
    all_loads = [t for times in load_times.values() for t in times]
    slowest = sorted(
        ({"page": page, "load_time": sum(times) / len(times)} for page, times in load_times.items()),
        key=lambda item: item["load_time"], reverse=True,
    )[:5]

    page_views = Counter(e.page for e in events if e.action == "page_view")
    preference = "evening"
    if reading_hours:
        preference = time_of_day(reading_hours.most_common(1)[0][0])

    return UserMetrics(
        total_sessions=total_sessions,
        average_session_duration=total_time / total_sessions if total_sessions else 0.0,
        total_time_spent=total_time,
        pages_per_session=sum(s.page_views for s in completed) / total_sessions if total_sessions else 0.0,
        bounce_rate=(sum(1 for s in completed if s.page_views <= 1) / total_sessions * 100) if total_sessions else 0.0,
        daily_active_use=sum(1 for e in events if now - e.timestamp < timedelta(days=1)),
        weekly_active_use=sum(1 for e in events if now - e.timestamp < timedelta(days=7)),
        monthly_active_use=sum(1 for e in events if now - e.timestamp < timedelta(days=30)),
        feature_usage=feature_usage,
        reading=ReadingMetrics(
            total_reading_sessions=reading_sessions,
            total_reading_time=reading_time,
            average_reading_session_length=reading_time / reading_sessions if reading_sessions else 0.0,
            verses_read=sum(int(e.metadata.get("verses_read") or 0) for e in events),
            favorite_surahs=[{"surah": int(s), "count": c} for s, c in surah_counts.most_common(5)],
            reading_pattern=dict(reading_hours),
        ),
        most_used_features=[
            {"feature": name, "usage": usage.count}
            for name, usage in sorted(feature_usage.items(), key=lambda kv: kv[1].count, reverse=True)[:10]
        ],
        navigation_patterns=[
            {"from": src, "to": dst, "count": count}
            for (src, dst), count in transitions.most_common(10)
        ],
        average_page_load_time=sum(all_loads) / len(all_loads) if all_loads else 0.0,
        slowest_pages=slowest,
        most_accessed_pages=[page for page, _ in page_views.most_common(5)],
        time_of_day_preference=preference,
    )


class MetricsStore:
    """Local usage analytics: sessions, tracked events, and a computed summary.

    Nothing leaves the machine. Tracking can be switched off, in which case
    ``track_event`` and friends do nothing.
    """
    STORAGE_KEY = STORAGE_KEYS["USER_METRICS"]
    VERSION = 1

    def __init__(self, storage: LocalStorage, clock: Callable[[], datetime] = _utcnow):
        self.storage = storage
        self.clock = clock
        self.current_session: Optional[SessionData] = None
        self.current_page = ""
        self._defaults()
        self._load()

    def _defaults(self):
        self.events: List[UserEvent] = []
        self.sessions: List[SessionData] = []
        self.is_tracking_enabled = True
        self.enable_performance_tracking = True
        self.enable_error_tracking = True

    def _load(self):
        state = self.storage.load_state(self.STORAGE_KEY, self.VERSION)
        if not state:
            return
        try:
            self.events = [UserEvent(**e) for e in state.get("events", [])]
            self.sessions = [SessionData(**s) for s in state.get("sessions", [])]
        except (ValidationError, TypeError) as e:
            print(f"{Fore.YELLOW}Warning: User metrics data invalid, using default state: {e}{Style.RESET_ALL}", file=sys.stderr)
            self.storage.remove(self.STORAGE_KEY)
            self._defaults()
            return
        self.is_tracking_enabled = state.get("is_tracking_enabled", True)
        self.enable_performance_tracking = state.get("enable_performance_tracking", True)
        self.enable_error_tracking = state.get("enable_error_tracking", True)

    def _save(self):
        self.storage.save_state(self.STORAGE_KEY, {
            "events": [e.model_dump(mode="json") for e in self.events[:PERSISTED_EVENTS]],
            "sessions": [s.model_dump(mode="json") for s in self.sessions[:PERSISTED_SESSIONS]],
            "is_tracking_enabled": self.is_tracking_enabled,
            "enable_performance_tracking": self.enable_performance_tracking,
            "enable_error_tracking": self.enable_error_tracking,
        }, self.VERSION)

    def _replace_session(self, session: SessionData):
        self.current_session = session
        self.sessions = [session if s.id == session.id else s for s in self.sessions]

    # --- Sessions ---

    def start_session(self) -> SessionData:
        now = self.clock()
        session = SessionData(id=_new_id("session"), start_time=now, last_activity=now)
        self.current_session = session
        self.sessions = [session] + self.sessions[:MAX_SESSIONS - 1]
        self._save()
        return session

    def end_session(self) -> Optional[SessionData]:
        if self.current_session is None:
            return None
        end = self.clock()
        completed = self.current_session.model_copy(update={
            "end_time": end,
            "duration": (end - self.current_session.start_time).total_seconds(),
            "is_active": False,
        })
        self._replace_session(completed)
        self.current_session = None
        self._save()
        return completed

    # --- Tracking ---

    def track_event(self, action: str, metadata: Optional[Dict[str, Any]] = None,
                    duration: Optional[float] = None, page: Optional[str] = None) -> Optional[UserEvent]:
        if not self.is_tracking_enabled:
            return None
        now = self.clock()
        event = UserEvent(
            id=_new_id("event"),
            action=action,
            timestamp=now,
            session_id=self.current_session.id if self.current_session else "",
            metadata=metadata or {},
            page=self.current_page if page is None else page,
            duration=duration,
        )
        self.events = [event] + self.events[:MAX_EVENTS - 1]
        if self.current_session is not None:
            self._replace_session(self.current_session.model_copy(update={
                "interactions": self.current_session.interactions + 1,
                "last_activity": now,
            }))
        self._save()
        return event

    def track_page_view(self, page: str, referrer: Optional[str] = None):
        if not self.is_tracking_enabled:
            return
        self.current_page = page
        self.track_event("page_view", {"page": page, "referrer": referrer}, page=page)
        if self.current_session is not None:
            pages = list(self.current_session.pages)
            if page not in pages:
                pages.append(page)
            self._replace_session(self.current_session.model_copy(update={
                "page_views": self.current_session.page_views + 1,
                "pages": pages,
            }))
            self._save()

    def track_error(self, error: str, context: Optional[Dict[str, Any]] = None):
        if self.enable_error_tracking:
            self.track_event("error", {"error": error, "context": context})

    def track_performance(self, page: str, load_time: float):
        if self.enable_performance_tracking:
            self.track_event("performance", {"page": page, "load_time": load_time}, page=page)

    # --- Analytics ---

    def get_metrics(self) -> UserMetrics:
        return calculate_metrics(self.events, self.sessions, self.clock())

    def get_session_analytics(self, timeframe: str = "day") -> Dict[str, Any]:
        span = {"day": timedelta(days=1), "week": timedelta(days=7), "month": timedelta(days=30)}.get(timeframe)
        if span is None:
            raise ValueError(f"timeframe must be 'day', 'week' or 'month', got {timeframe!r}")
        since = self.clock() - span
        events = [e for e in self.events if e.timestamp >= since]
        sessions = [s for s in self.sessions if s.start_time >= since]
        return {
            "events": len(events),
            "sessions": len(sessions),
            "avg_session_length": sum(s.duration or 0.0 for s in sessions) / len(sessions) if sessions else 0.0,
            "top_actions": dict(Counter(e.action for e in events)),
        }

    def get_user_behavior_insights(self) -> List[str]:
        metrics = self.get_metrics()
        insights = []
        if metrics.reading.total_reading_sessions:
            insights.append(f"You've completed {metrics.reading.total_reading_sessions} reading sessions")
        insights.append(f"You prefer reading in the {metrics.time_of_day_preference}")
        if metrics.reading.favorite_surahs:
            insights.append(f"Surah {metrics.reading.favorite_surahs[0]['surah']} is your most frequently read")
        if metrics.average_session_duration > 0:
            insights.append(f"Your average session lasts {round(metrics.average_session_duration / 60)} minutes")
        return insights

    # --- Data management ---

    def export_data(self) -> str:
        return json.dumps({
            "events": [e.model_dump(mode="json") for e in self.events],
            "sessions": [s.model_dump(mode="json") for s in self.sessions],
            "metrics": self.get_metrics().model_dump(mode="json"),
            "exported_at": self.clock().isoformat(),
        }, ensure_ascii=False, indent=2)

    def clear_data(self):
        self.current_session = None
        self.current_page = ""
        self._defaults()
        self._save()

    def set_tracking_enabled(self, enabled: bool):
        self.is_tracking_enabled = enabled
        self._save()

    def reset(self):
        self.clear_data()
