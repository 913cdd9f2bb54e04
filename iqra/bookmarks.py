# iqra/bookmarks.py
import sys
from datetime import datetime, timezone
from typing import Callable, List, Optional

from colorama import Fore, Style
from pydantic import ValidationError

from .models import Bookmark, VerseAddress
from .storage import STORAGE_KEYS, LocalStorage


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookmarksStore:
    """Persisted bookmarks plus the last read position.

    ``id`` ("surah:ayah") is the dedup key: adding an existing verse again
    refreshes its note and ``last_read`` instead of creating a duplicate.
    """
    STORAGE_KEY = STORAGE_KEYS["BOOKMARKS"]
    VERSION = 1

    def __init__(self, storage: LocalStorage, clock: Callable[[], datetime] = _utcnow):
        self.storage = storage
        self.clock = clock
        self.bookmarks: List[Bookmark] = []
        self.last_read: Optional[VerseAddress] = None
        self._load()

    def _load(self):
        state = self.storage.load_state(self.STORAGE_KEY, self.VERSION)
        if not state:
            return
        try:
            self.bookmarks = [Bookmark(**b) for b in state.get("bookmarks", [])]
            last = state.get("last_read")
            self.last_read = VerseAddress(**last) if last else None
        except (ValidationError, TypeError) as e:
            print(f"{Fore.YELLOW}Warning: Invalid bookmark data, starting empty: {e}{Style.RESET_ALL}", file=sys.stderr)
            self.bookmarks = []
            self.last_read = None

    def _save(self):
        self.storage.save_state(self.STORAGE_KEY, {
            "bookmarks": [b.model_dump(mode="json") for b in self.bookmarks],
            "last_read": self.last_read.model_dump() if self.last_read else None,
        }, self.VERSION)

    @staticmethod
    def make_id(surah: int, ayah: int) -> str:
        return f"{surah}:{ayah}"

    def add_bookmark(self, surah: int, ayah: int, note: Optional[str] = None) -> Bookmark:
        bookmark_id = self.make_id(surah, ayah)
        now = self.clock()
        for i, existing in enumerate(self.bookmarks):
            if existing.id == bookmark_id:
                updated = existing.model_copy(update={"note": note, "last_read": now})
                self.bookmarks[i] = updated
                self._save()
                return updated

        bookmark = Bookmark(id=bookmark_id, surah=surah, ayah=ayah, note=note, created_at=now, last_read=now)
        self.bookmarks.append(bookmark)
        self._save()
        return bookmark

    def remove_bookmark(self, bookmark_id: str) -> None:
        self.bookmarks = [b for b in self.bookmarks if b.id != bookmark_id]
        self._save()

    def update_bookmark(self, bookmark_id: str, **updates) -> Optional[Bookmark]:
        # id, surah and ayah identify the verse and are never rewritten
        for key in ("id", "surah", "ayah"):
            updates.pop(key, None)
        for i, existing in enumerate(self.bookmarks):
            if existing.id == bookmark_id:
                self.bookmarks[i] = Bookmark(**{**existing.model_dump(), **updates})
                self._save()
                return self.bookmarks[i]
        return None

    def get_bookmark(self, surah: int, ayah: int) -> Optional[Bookmark]:
        bookmark_id = self.make_id(surah, ayah)
        return next((b for b in self.bookmarks if b.id == bookmark_id), None)

    def is_bookmarked(self, surah: int, ayah: int) -> bool:
        return self.get_bookmark(surah, ayah) is not None

    def set_last_read(self, surah: int, ayah: int) -> None:
        self.last_read = VerseAddress(surah=surah, ayah=ayah)
        bookmark = self.get_bookmark(surah, ayah)
        if bookmark:
            self.update_bookmark(bookmark.id, last_read=self.clock())
        else:
            self._save()

    def clear_bookmarks(self) -> None:
        self.bookmarks = []
        self.last_read = None
        self._save()
