# iqra/models.py
from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

LAST_SURAH = 114


class VerseAddress(BaseModel):
    """A (surah, ayah) pair, ordered surah-major then ayah-minor."""
    model_config = ConfigDict(frozen=True)

    surah: int = Field(ge=1, le=LAST_SURAH)
    ayah: int = Field(ge=1)

    @classmethod
    def parse(cls, key: str) -> "VerseAddress":
        """Parse a ``"surah:ayah"`` key such as ``"2:255"``."""
        surah, _, ayah = key.strip().partition(":")
        return cls(surah=int(surah), ayah=int(ayah))

    @property
    def key(self) -> str:
        return f"{self.surah}:{self.ayah}"

    def as_tuple(self) -> Tuple[int, int]:
        return (self.surah, self.ayah)

    def __lt__(self, other: "VerseAddress") -> bool:
        if not isinstance(other, VerseAddress):
            return NotImplemented
        return self.as_tuple() < other.as_tuple()

    def __le__(self, other: "VerseAddress") -> bool:
        if not isinstance(other, VerseAddress):
            return NotImplemented
        return self.as_tuple() <= other.as_tuple()

    def __gt__(self, other: "VerseAddress") -> bool:
        if not isinstance(other, VerseAddress):
            return NotImplemented
        return self.as_tuple() > other.as_tuple()

    def __ge__(self, other: "VerseAddress") -> bool:
        if not isinstance(other, VerseAddress):
            return NotImplemented
        return self.as_tuple() >= other.as_tuple()

    def __str__(self) -> str:
        return self.key


class DivisionScheme(str, Enum):
    SURAH = "surah"
    JUZ = "juz"
    HIZB = "hizb"
    MUSHAF = "mushaf"

    @property
    def max_index(self) -> int:
        return _SCHEME_MAX[self]

    @property
    def label(self) -> str:
        return _SCHEME_LABEL[self]


_SCHEME_MAX = {
    DivisionScheme.SURAH: 114,
    DivisionScheme.JUZ: 30,
    DivisionScheme.HIZB: 120,
    DivisionScheme.MUSHAF: 604,
}

_SCHEME_LABEL = {
    DivisionScheme.SURAH: "Surah",
    DivisionScheme.JUZ: "Juz",
    DivisionScheme.HIZB: "Hizb",
    DivisionScheme.MUSHAF: "Page",
}


class Division(BaseModel):
    model_config = ConfigDict(frozen=True)

    scheme: DivisionScheme
    index: int
    start: VerseAddress
    end: VerseAddress
    display_name: str

    def contains(self, address: VerseAddress) -> bool:
        return self.start <= address <= self.end


# --- Raw records, shaped like the bundled JSON files ---

class _Ranged(BaseModel):
    start_surah: int
    start_ayah: int
    end_surah: int
    end_ayah: int

    @property
    def start(self) -> VerseAddress:
        return VerseAddress(surah=self.start_surah, ayah=self.start_ayah)

    @property
    def end(self) -> VerseAddress:
        return VerseAddress(surah=self.end_surah, ayah=self.end_ayah)


class Surah(BaseModel):
    index: int
    name_ar: str
    name_en: str
    revelation_place: str   # "meccan" or "medinan"
    verses: int


class Juz(_Ranged):
    index: int
    name: str
    name_en: Optional[str] = None


class Hizb(_Ranged):
    index: int
    name: str
    name_en: Optional[str] = None
    juz: int
    quarter: int


class MushafPage(_Ranged):
    page: int


# --- Verse content ---

class Ayah(BaseModel):
    surah: int
    ayah: int
    text: str


class Translation(BaseModel):
    surah: int
    ayah: int
    text: str
    translator: Optional[str] = None


class Transliteration(BaseModel):
    surah: int
    ayah: int
    text: str


class SearchOptions(BaseModel):
    limit: Optional[int] = None
    surah: Optional[int] = None
    language: Optional[str] = None


class SearchResult(BaseModel):
    surah: int
    ayah: int
    text: str
    translation: Optional[str] = None
    highlight: Optional[str] = None


# --- User state ---

class Bookmark(BaseModel):
    id: str                 # "surah:ayah", dedup key
    surah: int
    ayah: int
    note: Optional[str] = None
    created_at: datetime
    last_read: Optional[datetime] = None


# --- Audio ---

RepeatMode = Literal[1, 3, "infinite"]

TTSVoice = Literal["alloy", "echo", "fable", "onyx", "nova", "shimmer"]
TTSFormat = Literal["mp3", "opus", "aac", "flac"]


class TTSOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    voice: Optional[TTSVoice] = None
    speed: Optional[float] = Field(default=None, ge=0.25, le=4.0)
    format: Optional[TTSFormat] = None

    def cache_token(self) -> str:
        """Serialized form used in the synthesis cache key."""
        return self.model_dump_json(exclude_none=True)


class AudioPlaybackState(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    is_playing: bool = False
    is_loading: bool = False
    current_surah: Optional[int] = None
    current_ayah: Optional[int] = None
    current_text: Optional[str] = None
    repeat_mode: RepeatMode = 1
    repeat_count: int = 0
    current_time: float = 0.0
    duration: float = 0.0
    error: Optional[str] = None
