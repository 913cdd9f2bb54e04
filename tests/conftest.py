from __future__ import annotations

import time
from pathlib import Path

import pytest

from iqra.audio_manager import AudioBackend
from iqra.errors import AssetMissingError, PlaybackError
from iqra.navigator import Navigator
from iqra.storage import LocalStorage


class FakeBackend(AudioBackend):
    """Records every call instead of making sound."""

    def __init__(self, duration: float = 10.0) -> None:
        self.duration = duration
        self.loaded: list[Path] = []
        self.play_calls: list[float] = []
        self.pause_calls = 0
        self.unpause_calls = 0
        self.stop_calls = 0
        self.busy = True
        self.current_position = 0.0
        self.fail_load = False
        self.closed = False

    def load(self, path: Path) -> float:
        if self.fail_load:
            raise PlaybackError(f"cannot load {path}")
        self.loaded.append(Path(path))
        return self.duration

    def play(self, start: float = 0.0) -> None:
        self.play_calls.append(start)
        self.current_position = start

    def pause(self) -> None:
        self.pause_calls += 1

    def unpause(self) -> None:
        self.unpause_calls += 1

    def stop(self) -> None:
        self.stop_calls += 1

    def is_busy(self) -> bool:
        return self.busy

    def position(self) -> float:
        return self.current_position

    def close(self) -> None:
        self.closed = True


class FakeResolver:
    """Resolves every verse to a file under ``root`` except those in ``missing``."""

    def __init__(self, root: Path, missing: set | None = None) -> None:
        self.root = Path(root)
        self.missing = missing or set()
        self.requests: list[tuple[int, int]] = []

    async def resolve(self, surah: int, ayah: int) -> Path:
        self.requests.append((surah, ayah))
        if (surah, ayah) in self.missing:
            raise AssetMissingError(surah, ayah, "not in test fixture")
        return self.root / str(surah) / f"{ayah}.mp3"


@pytest.fixture(scope="session")
def navigator() -> Navigator:
    return Navigator()


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "storage")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def resolver(tmp_path) -> FakeResolver:
    return FakeResolver(tmp_path / "audio")


@pytest.fixture
def local_timezone(monkeypatch):
    """Switch the process-local timezone, e.g. ``local_timezone("AST-3")``."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")

    def use(tz: str) -> None:
        monkeypatch.setenv("TZ", tz)
        time.tzset()

    yield use
    monkeypatch.undo()
    time.tzset()
