# iqra/progress.py
import sys
import uuid
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from colorama import Fore, Style
from pydantic import BaseModel, Field

from .metrics import time_of_day
from .models import DivisionScheme
from .storage import STORAGE_KEYS, LocalStorage

MAX_READING_SESSIONS = 500
FOCUSED_SESSION = 1800  # seconds
GOOD_SESSION = 600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_date(moment: datetime) -> str:
    """Calendar day of ``moment`` in the local timezone, as YYYY-MM-DD."""
    return moment.astimezone().date().isoformat()


class ReadingPosition(BaseModel):
    surah: int = Field(ge=1, le=114)
    ayah: int = Field(ge=1)
    timestamp: datetime
    duration: Optional[float] = None  # seconds


class DivisionProgress(BaseModel):
    type: DivisionScheme
    id: int = Field(ge=1)
    completed: bool = False
    last_read: datetime
    total_time: float = 0.0  # seconds
    progress: float = Field(default=0.0, ge=0, le=100)


class ReadingSession(BaseModel):
    id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: float = 0.0
    verses_read: int = 0
    surahs_visited: List[int] = Field(default_factory=list)
    juz_visited: List[int] = Field(default_factory=list)
    hizb_visited: List[int] = Field(default_factory=list)
    pages_visited: List[int] = Field(default_factory=list)
    division_type: DivisionScheme


class DailyStats(BaseModel):
    date: str
    reading_time: float = 0.0
    verses_read: int = 0
    sessions_count: int = 0

    @property
    def active(self) -> bool:
        return self.reading_time > 0 or self.verses_read > 0


class Achievement(BaseModel):
    id: str
    title: str
    description: str
    icon: str
    category: str
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None


class OverallProgress(BaseModel):
    total_surahs: int = 114
    completed_surahs: int = 0
    total_juz: int = 30
    completed_juz: int = 0
    completion_percentage: int = 0


_ACHIEVEMENTS = [
    ("first_read", "First Steps", "Read your first verse", "🌟", "milestone"),
    ("daily_reader", "Daily Reader", "Read for 7 consecutive days", "📚", "streak"),
    ("surah_complete", "Surah Master", "Complete your first surah", "✨", "completion"),
    ("juz_complete", "Juz Champion", "Complete your first juz", "🏆", "completion"),
    ("early_bird", "Early Bird", "Read before 8 AM", "🌅", "time"),
    ("night_owl", "Night Reader", "Read after 9 PM", "🌙", "time"),
    ("focused_reader", "Focused Reader", "Read for 30+ minutes in one session", "🎯", "time"),
    ("consistent_reader", "Consistent Reader", "Read 25 of the last 30 days", "💪", "consistency"),
]


def default_achievements() -> List[Achievement]:
    return [
        Achievement(id=id_, title=title, description=description, icon=icon, category=category)
        for id_, title, description, icon, category in _ACHIEVEMENTS
    ]


class ProgressStore:
    """Reading position, per-division progress, reading sessions and streaks.

    Calendar days (daily stats, streaks) and hours (early bird, favourite
    reading time) are taken in the local timezone. The open session lives
    in memory only; a session still open when the process exits is lost.
    """
    STORAGE_KEY = STORAGE_KEYS["PROGRESS"]
    VERSION = 1

    def __init__(self, storage: LocalStorage, clock: Callable[[], datetime] = _utcnow):
        self.storage = storage
        self.clock = clock
        self.current_session: Optional[ReadingSession] = None
        self._set_defaults()
        self._load()

    def _set_defaults(self):
        self.current_position: Optional[ReadingPosition] = None
        self.division_progress: Dict[DivisionScheme, Dict[int, DivisionProgress]] = {s: {} for s in DivisionScheme}
        self.total_reading_time = 0.0
        self.daily_goal = 5  # verses per day
        self.current_streak = 0
        self.best_streak = 0
        self.total_verses_read = 0
        self.reading_sessions: List[ReadingSession] = []
        self.daily_stats: Dict[str, DailyStats] = {}
        self.achievements = default_achievements()
        self.favorite_reading_time = "evening"
        self.average_session_duration = 0.0
        self.total_days_active = 0
        self.last_active_date: Optional[str] = None

    def _load(self):
        state = self.storage.load_state(self.STORAGE_KEY, self.VERSION)
        if not state:
            return
        try:
            position = state.get("current_position")
            self.current_position = ReadingPosition(**position) if position else None
            for scheme in DivisionScheme:
                entries = state.get("division_progress", {}).get(scheme.value, {})
                self.division_progress[scheme] = {int(k): DivisionProgress(**v) for k, v in entries.items()}
            self.total_reading_time = float(state.get("total_reading_time", 0.0))
            self.daily_goal = int(state.get("daily_goal", 5))
            self.current_streak = int(state.get("current_streak", 0))
            self.best_streak = int(state.get("best_streak", 0))
            self.total_verses_read = int(state.get("total_verses_read", 0))
            self.reading_sessions = [ReadingSession(**s) for s in state.get("reading_sessions", [])]
            self.daily_stats = {k: DailyStats(**v) for k, v in state.get("daily_stats", {}).items()}
            saved = {a["id"]: Achievement(**a) for a in state.get("achievements", [])}
            # Achievements added after the data was saved start locked
            self.achievements = [saved.get(a.id, a) for a in default_achievements()]
            self.favorite_reading_time = state.get("favorite_reading_time", "evening")
            self.average_session_duration = float(state.get("average_session_duration", 0.0))
            self.total_days_active = int(state.get("total_days_active", 0))
            self.last_active_date = state.get("last_active_date")
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            print(f"{Fore.YELLOW}Warning: Invalid reading progress data, starting fresh: {e}{Style.RESET_ALL}", file=sys.stderr)
            self._set_defaults()

    def _save(self):
        self.storage.save_state(self.STORAGE_KEY, {
            "current_position": self.current_position.model_dump(mode="json") if self.current_position else None,
            "division_progress": {
                scheme.value: {str(k): v.model_dump(mode="json") for k, v in entries.items()}
                for scheme, entries in self.division_progress.items()
            },
            "total_reading_time": self.total_reading_time,
            "daily_goal": self.daily_goal,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "total_verses_read": self.total_verses_read,
            "reading_sessions": [s.model_dump(mode="json") for s in self.reading_sessions],
            "daily_stats": {k: v.model_dump(mode="json") for k, v in self.daily_stats.items()},
            "achievements": [a.model_dump(mode="json") for a in self.achievements],
            "favorite_reading_time": self.favorite_reading_time,
            "average_session_duration": self.average_session_duration,
            "total_days_active": self.total_days_active,
            "last_active_date": self.last_active_date,
        }, self.VERSION)

    # --- Position and divisions ---

    def update_current_position(self, surah: int, ayah: int, duration: Optional[float] = None) -> None:
        self.current_position = ReadingPosition(surah=surah, ayah=ayah, timestamp=self.clock(), duration=duration)
        self._save()

    def mark_verse_as_read(self, surah: int, ayah: int, count: int = 1) -> None:
        """Move the position to ``surah:ayah`` and count ``count`` verses as read."""
        self.current_position = ReadingPosition(surah=surah, ayah=ayah, timestamp=self.clock())
        self.total_verses_read += count
        self._save()

    def update_division_progress(self, division: DivisionProgress) -> None:
        self.division_progress[division.type][division.id] = division
        self._save()

    def get_division_progress(self, scheme, index: int) -> Optional[DivisionProgress]:
        return self.division_progress[DivisionScheme(scheme)].get(index)

    def record_division_read(self, scheme, index: int, progress: float = 100.0,
                             seconds: float = 0.0) -> DivisionProgress:
        """Merge a reading of one division. Progress and completion never go backwards."""
        scheme = DivisionScheme(scheme)
        existing = self.division_progress[scheme].get(index)
        progress = max(0.0, min(progress, 100.0))
        if existing:
            progress = max(progress, existing.progress)
        division = DivisionProgress(
            type=scheme,
            id=index,
            completed=progress >= 100 or bool(existing and existing.completed),
            last_read=self.clock(),
            total_time=(existing.total_time if existing else 0.0) + seconds,
            progress=progress,
        )
        self.update_division_progress(division)
        self.check_achievements()
        return division

    def get_overall_progress(self) -> OverallProgress:
        completed_surahs = sum(1 for p in self.division_progress[DivisionScheme.SURAH].values() if p.completed)
        completed_juz = sum(1 for p in self.division_progress[DivisionScheme.JUZ].values() if p.completed)
        return OverallProgress(
            completed_surahs=completed_surahs,
            completed_juz=completed_juz,
            completion_percentage=round(completed_surahs / 114 * 100),
        )

    # --- Totals and goals ---

    def increment_reading_time(self, seconds: float) -> None:
        self.total_reading_time += seconds
        self._save()

    def update_daily_goal(self, goal: int) -> None:
        if goal < 1:
            raise ValueError(f"daily goal must be at least 1 verse, got {goal}")
        self.daily_goal = goal
        self._save()

    def calculate_streak(self) -> int:
        """Count consecutive active days ending today, or yesterday if today has no reading yet."""
        streak = self._update_streak()
        self._save()
        return streak

    def _update_streak(self) -> int:
        today = date.fromisoformat(local_date(self.clock()))
        day = today
        if not self._is_active(day):
            day = today - timedelta(days=1)
        streak = 0
        while self._is_active(day):
            streak += 1
            day -= timedelta(days=1)
        self.current_streak = streak
        self.best_streak = max(self.best_streak, streak)
        return streak

    def _is_active(self, day: date) -> bool:
        stats = self.daily_stats.get(day.isoformat())
        return stats is not None and stats.active

    # --- Sessions ---

    def start_reading_session(self, division_type) -> ReadingSession:
        if self.current_session is not None:
            self.end_reading_session()
        self.current_session = ReadingSession(
            id=f"session_{uuid.uuid4().hex[:12]}",
            start_time=self.clock(),
            division_type=DivisionScheme(division_type),
        )
        return self.current_session

    def update_session_progress(self, surah: int, ayah: int, juz: Optional[int] = None,
                                hizb: Optional[int] = None, page: Optional[int] = None) -> None:
        session = self.current_session
        if session is None:
            return
        session.verses_read += 1
        for visited, value in ((session.surahs_visited, surah), (session.juz_visited, juz),
                               (session.hizb_visited, hizb), (session.pages_visited, page)):
            if value and value not in visited:
                visited.append(value)

    def end_reading_session(self) -> Optional[ReadingSession]:
        session = self.current_session
        if session is None:
            return None
        self.current_session = None
        end_time = self.clock()
        completed = session.model_copy(update={
            "end_time": end_time,
            "duration": max(0.0, (end_time - session.start_time).total_seconds()),
        })

        today = local_date(end_time)
        stats = self.daily_stats.get(today) or DailyStats(date=today)
        self.daily_stats[today] = stats.model_copy(update={
            "reading_time": stats.reading_time + completed.duration,
            "verses_read": stats.verses_read + completed.verses_read,
            "sessions_count": stats.sessions_count + 1,
        })

        self.reading_sessions.append(completed)
        self.reading_sessions = self.reading_sessions[-MAX_READING_SESSIONS:]
        self.average_session_duration = (
            sum(s.duration for s in self.reading_sessions) / len(self.reading_sessions)
        )
        self.total_reading_time += completed.duration
        self.total_days_active = sum(1 for s in self.daily_stats.values() if s.active)
        self.last_active_date = today
        self.favorite_reading_time = self.get_reading_habits()["favorite_time"]
        self._update_streak()
        if not self.check_achievements():
            self._save()
        return completed

    # --- Analytics ---

    def _stats_window(self, days: int) -> List[DailyStats]:
        today = date.fromisoformat(local_date(self.clock()))
        window = []
        for offset in range(days - 1, -1, -1):
            day = (today - timedelta(days=offset)).isoformat()
            window.append(self.daily_stats.get(day) or DailyStats(date=day))
        return window

    def get_weekly_stats(self) -> List[DailyStats]:
        """The last 7 local days, oldest first, today last."""
        return self._stats_window(7)

    def get_monthly_stats(self) -> List[DailyStats]:
        return self._stats_window(30)

    def get_reading_habits(self) -> Dict[str, Any]:
        slots = Counter(time_of_day(s.start_time.astimezone().hour) for s in self.reading_sessions)
        divisions = Counter(s.division_type.value for s in self.reading_sessions)
        active_days = sum(1 for day in self.get_weekly_stats() if day.active)
        return {
            "favorite_time": slots.most_common(1)[0][0] if slots else self.favorite_reading_time,
            "average_session": self.average_session_duration,
            "most_read_division": divisions.most_common(1)[0][0] if divisions else DivisionScheme.SURAH.value,
            "consistency_score": round(active_days / 7 * 100),
        }

    def check_achievements(self) -> List[str]:
        """Unlock every achievement whose condition now holds. Returns the new titles."""
        hours = [s.start_time.astimezone().hour for s in self.reading_sessions]
        conditions = {
            "first_read": lambda: self.total_verses_read > 0,
            "daily_reader": lambda: self.current_streak >= 7,
            "surah_complete": lambda: any(p.completed for p in self.division_progress[DivisionScheme.SURAH].values()),
            "juz_complete": lambda: any(p.completed for p in self.division_progress[DivisionScheme.JUZ].values()),
            "early_bird": lambda: any(5 <= h < 8 for h in hours),
            "night_owl": lambda: any(h >= 21 or h < 5 for h in hours),
            "focused_reader": lambda: any(s.duration >= FOCUSED_SESSION for s in self.reading_sessions),
            "consistent_reader": lambda: sum(1 for d in self.get_monthly_stats() if d.active) >= 25,
        }
        unlocked = []
        now = self.clock()
        for i, achievement in enumerate(self.achievements):
            check = conditions.get(achievement.id)
            if achievement.unlocked or check is None or not check():
                continue
            self.achievements[i] = achievement.model_copy(update={"unlocked": True, "unlocked_at": now})
            unlocked.append(achievement.title)
        if unlocked:
            self._save()
        return unlocked

    def unlock_achievement(self, achievement_id: str) -> bool:
        for i, achievement in enumerate(self.achievements):
            if achievement.id == achievement_id:
                if not achievement.unlocked:
                    self.achievements[i] = achievement.model_copy(update={"unlocked": True, "unlocked_at": self.clock()})
                    self._save()
                return True
        return False

    def get_productivity_score(self) -> int:
        """0-100: consistency 40, daily goal 20, session length 20, streak 20."""
        week = self.get_weekly_stats()
        active_days = sum(1 for day in week if day.active)
        average_verses = sum(day.verses_read for day in week) / 7
        score = active_days / 7 * 40
        score += min(average_verses / self.daily_goal, 1) * 20
        score += min(self.average_session_duration / GOOD_SESSION, 1) * 20
        score += min(self.current_streak / 30, 1) * 20
        return round(score)

    def get_learning_insights(self) -> Dict[str, List[str]]:
        habits = self.get_reading_habits()
        strengths: List[str] = []
        suggestions: List[str] = []
        milestones: List[str] = []

        if habits["consistency_score"] >= 80:
            strengths.append("Excellent reading consistency")
        if self.average_session_duration >= 900:
            strengths.append("Strong focus during reading sessions")
        if self.current_streak >= 14:
            strengths.append("Building great reading habits")

        if habits["consistency_score"] < 50:
            suggestions.append("Try reading for just 5 minutes daily to build consistency")
        if self.average_session_duration < 300:
            suggestions.append("Consider longer reading sessions for better retention")
        today = self.daily_stats.get(local_date(self.clock()))
        if today is None or today.reading_time == 0:
            suggestions.append("Start your day with some Quran reading")

        if self.total_verses_read < 100:
            milestones.append("Read 100 verses")
        elif self.total_verses_read < 500:
            milestones.append("Read 500 verses")
        elif self.total_verses_read < 1000:
            milestones.append("Read 1000 verses")

        completed_surahs = self.get_overall_progress().completed_surahs
        if completed_surahs < 5:
            milestones.append("Complete 5 surahs")
        elif completed_surahs < 20:
            milestones.append("Complete 20 surahs")

        return {"strengths": strengths, "suggestions": suggestions, "milestones": milestones}

    def reset(self) -> None:
        self.current_session = None
        self._set_defaults()
        self._save()
