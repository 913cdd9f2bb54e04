from __future__ import annotations

import json

import pytest

from iqra.errors import StorageCorruptionError
from iqra.settings_manager import SidebarStore
from iqra.storage import STORAGE_KEYS, LocalStorage


def test_set_get_remove(storage) -> None:
    assert storage.get("missing") is None
    storage.set("iqra-settings", {"theme": "dark", "names": ["الفاتحة"]})
    assert storage.get("iqra-settings") == {"theme": "dark", "names": ["الفاتحة"]}
    storage.remove("iqra-settings")
    assert storage.get("iqra-settings") is None
    # Removing twice is fine
    storage.remove("iqra-settings")


def test_corrupt_value_is_discarded(storage) -> None:
    path = storage.root / "iqra-bookmarks.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageCorruptionError) as excinfo:
        storage.read("iqra-bookmarks")
    assert "iqra-bookmarks" in str(excinfo.value)

    assert storage.get("iqra-bookmarks") is None
    assert not path.exists()


def test_named_helpers(storage) -> None:
    assert storage.is_valid("SETTINGS") is False
    assert storage.get_data("SETTINGS", {"theme": "system"}) == {"theme": "system"}
    storage.set_data("SETTINGS", {"theme": "light"})
    assert storage.is_valid("SETTINGS") is True
    assert storage.get_data("SETTINGS") == {"theme": "light"}
    storage.clear("SETTINGS")
    assert storage.get(STORAGE_KEYS["SETTINGS"]) is None


def test_clear_all_only_touches_known_keys(storage) -> None:
    for key in STORAGE_KEYS.values():
        storage.set(key, {"x": 1})
    storage.set("unrelated", 1)
    storage.clear_all()
    assert all(storage.get(key) is None for key in STORAGE_KEYS.values())
    assert storage.get("unrelated") == 1


def test_write_is_atomic_json(storage) -> None:
    storage.set("iqra-progress-storage", [1, 2, 3])
    files = sorted(p.name for p in storage.root.iterdir())
    assert files == ["iqra-progress-storage.json"]
    assert json.loads((storage.root / files[0]).read_text(encoding="utf-8")) == [1, 2, 3]


def test_versioned_state_envelope(storage) -> None:
    storage.save_state("sidebar-storage", {"is_collapsed": True}, version=2)
    assert storage.get("sidebar-storage") == {"state": {"is_collapsed": True}, "version": 2}
    assert storage.load_state("sidebar-storage", version=2) == {"is_collapsed": True}
    assert storage.load_state("sidebar-storage", version=3) is None


def test_unserializable_value_is_not_written(storage) -> None:
    storage.set("iqra-settings", {"bad": object()})
    assert storage.get("iqra-settings") is None
    assert list(storage.root.iterdir()) == []


def test_sidebar_persists_only_collapsed(tmp_path) -> None:
    storage = LocalStorage(tmp_path)
    sidebar = SidebarStore(storage)
    assert sidebar.is_collapsed is False
    sidebar.toggle_sidebar()
    sidebar.toggle_mobile_sidebar()
    assert sidebar.is_mobile_open is True

    reloaded = SidebarStore(storage)
    assert reloaded.is_collapsed is True
    assert reloaded.is_mobile_open is False
    reloaded.set_sidebar_collapsed(False)
    reloaded.set_mobile_sidebar_open(True)
    assert SidebarStore(storage).is_collapsed is False
