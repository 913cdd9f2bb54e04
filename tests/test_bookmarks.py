from __future__ import annotations

from datetime import datetime, timedelta, timezone

from iqra.bookmarks import BookmarksStore
from iqra.models import VerseAddress


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, 20, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int) -> None:
        self.now += timedelta(minutes=minutes)


def test_adding_same_verse_twice_refreshes_instead_of_duplicating(storage) -> None:
    clock = Clock()
    store = BookmarksStore(storage, clock=clock)
    first = store.add_bookmark(2, 255, "Ayat al-Kursi")
    clock.advance(5)
    second = store.add_bookmark(2, 255)

    assert len(store.bookmarks) == 1
    assert second.id == "2:255"
    assert second.created_at == first.created_at
    assert second.last_read == clock.now
    assert second.last_read > first.last_read


def test_bookmarks_survive_reload(storage) -> None:
    clock = Clock()
    store = BookmarksStore(storage, clock=clock)
    store.add_bookmark(1, 1, "Opening")
    store.add_bookmark(36, 1)
    store.set_last_read(36, 12)

    reloaded = BookmarksStore(storage, clock=clock)
    assert [b.id for b in reloaded.bookmarks] == ["1:1", "36:1"]
    assert reloaded.get_bookmark(1, 1).note == "Opening"
    assert reloaded.get_bookmark(1, 1).created_at == clock.now
    assert reloaded.last_read == VerseAddress(surah=36, ayah=12)


def test_update_keeps_identity(storage) -> None:
    store = BookmarksStore(storage, clock=Clock())
    store.add_bookmark(18, 10)
    updated = store.update_bookmark("18:10", note="Cave", surah=99, id="x")
    assert updated.note == "Cave"
    assert updated.surah == 18
    assert updated.id == "18:10"
    assert store.update_bookmark("1:2", note="nope") is None


def test_remove_and_clear(storage) -> None:
    store = BookmarksStore(storage, clock=Clock())
    store.add_bookmark(1, 1)
    store.add_bookmark(1, 2)
    store.remove_bookmark("1:1")
    assert not store.is_bookmarked(1, 1)
    assert store.is_bookmarked(1, 2)
    store.clear_bookmarks()
    assert store.bookmarks == []
    assert BookmarksStore(storage).bookmarks == []


def test_set_last_read_touches_existing_bookmark(storage) -> None:
    clock = Clock()
    store = BookmarksStore(storage, clock=clock)
    store.add_bookmark(3, 7)
    clock.advance(60)
    store.set_last_read(3, 7)
    assert store.get_bookmark(3, 7).last_read == clock.now


def test_invalid_persisted_data_starts_empty(storage) -> None:
    storage.save_state(BookmarksStore.STORAGE_KEY, {"bookmarks": [{"id": "1:1"}]}, BookmarksStore.VERSION)
    store = BookmarksStore(storage)
    assert store.bookmarks == []
    assert store.last_read is None
