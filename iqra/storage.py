# iqra/storage.py
import json
import os
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from colorama import Fore, Style

from .errors import StorageCorruptionError

STORAGE_KEYS = {
    "SETTINGS": "iqra-settings",
    "PROGRESS": "iqra-progress-storage",
    "BOOKMARKS": "iqra-bookmarks",
    "SIDEBAR": "sidebar-storage",
    "STUDY_GROUPS": "iqra-study-groups",
    "USER_METRICS": "iqra-user-metrics",
}


class LocalStorage:
    """Key-value JSON storage, one file per key under ``root``.

    Mirrors browser localStorage semantics: ``get`` returns None for a
    missing key, and a value that no longer parses is discarded and treated
    as absent.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self._lock = threading.Lock()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"{Fore.RED}Critical Error creating storage directory {self.root}: {e}{Style.RESET_ALL}", file=sys.stderr)

    def _path(self, key: str) -> Path:
        safe_key = "".join(c for c in key if c.isalnum() or c in ('-', '_', '.'))
        return self.root / f"{safe_key}.json"

    def read(self, key: str) -> Optional[Any]:
        """Strict read: raises StorageCorruptionError on malformed data."""
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StorageCorruptionError(key, str(e)) from e

    def get(self, key: str) -> Optional[Any]:
        try:
            return self.read(key)
        except StorageCorruptionError as e:
            print(f"{Fore.YELLOW}Warning: {e}, using default value{Style.RESET_ALL}", file=sys.stderr)
            self.remove(key)
            return None
        except OSError as e:
            print(f"{Fore.YELLOW}Warning: Could not read storage key {key}: {e}{Style.RESET_ALL}", file=sys.stderr)
            return None

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix('.tmp')
        with self._lock:
            try:
                with open(tmp_path, 'w', encoding='utf-8') as f:
                    json.dump(value, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, path)
            except (OSError, TypeError, ValueError) as e:
                print(f"{Fore.RED}Failed to set storage data for key: {key}: {e}{Style.RESET_ALL}", file=sys.stderr)
                tmp_path.unlink(missing_ok=True)

    def remove(self, key: str) -> None:
        with self._lock:
            try:
                self._path(key).unlink(missing_ok=True)
            except OSError as e:
                print(f"{Fore.YELLOW}Warning: Could not remove storage key {key}: {e}{Style.RESET_ALL}", file=sys.stderr)

    # --- Helpers keyed by STORAGE_KEYS names ---

    def is_valid(self, name: str) -> bool:
        """True when the named key exists and holds valid JSON."""
        try:
            return self.read(STORAGE_KEYS[name]) is not None
        except (StorageCorruptionError, OSError):
            return False

    def get_data(self, name: str, default: Any = None) -> Any:
        value = self.get(STORAGE_KEYS[name])
        return default if value is None else value

    def set_data(self, name: str, value: Any) -> None:
        self.set(STORAGE_KEYS[name], value)

    def clear(self, name: str) -> None:
        self.remove(STORAGE_KEYS[name])
        print(f"Storage cleared for key: {name}")

    def clear_all(self) -> None:
        for key in STORAGE_KEYS.values():
            self.remove(key)
        print("All Iqra storage data cleared")

    # --- Versioned envelope used by the persisted stores ---

    def load_state(self, key: str, version: int = 1) -> Optional[Dict[str, Any]]:
        payload = self.get(key)
        if not isinstance(payload, dict) or not isinstance(payload.get("state"), dict):
            return None
        if payload.get("version", 0) != version:
            print(f"{Fore.YELLOW}Warning: Discarding {key} saved with version {payload.get('version')}{Style.RESET_ALL}", file=sys.stderr)
            return None
        return payload["state"]

    def save_state(self, key: str, state: Dict[str, Any], version: int = 1) -> None:
        self.set(key, {"state": state, "version": version})
