# iqra/utils.py
import os
import sys
from pathlib import Path

import platformdirs

# This file provides path helpers shared by the stores, the audio layer
# and the bundled reference data.

APP_NAME = "IqraReader"
APP_AUTHOR = "Iqra"


def get_app_path(resource_path: str = '', writable: bool = False) -> str:
    """
    Get the absolute path to a bundled resource or to a writable location.

    Args:
        resource_path: Relative path to a resource/directory.
                       Leave empty for the base directory itself.
        writable:
            If True: Returns a path inside the per-user data directory
                     (platformdirs). Use this for storage, audio and other
                     files the reader creates. Ensures the target directory
                     exists.
            If False: Returns a path relative to the installed ``iqra``
                      package. Use this for READ-ONLY bundled assets such
                      as ``database/juz.json``.

    Returns:
        Absolute path as a string.
    """
    if writable:
        base_path = platformdirs.user_data_dir(APP_NAME, APP_AUTHOR)
    elif getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS'):
        # PyInstaller bundles keep the package under _MEIPASS/iqra
        base_path = os.path.join(sys._MEIPASS, 'iqra')
    else:
        base_path = os.path.dirname(os.path.abspath(__file__))

    full_path = os.path.join(base_path, resource_path) if resource_path else base_path

    if writable:
        # A name with an extension is treated as a file: create its parent only
        if '.' in os.path.basename(resource_path) and not resource_path.endswith(('/', '\\')):
            target_dir = os.path.dirname(full_path)
        else:
            target_dir = full_path
        if target_dir:
            os.makedirs(target_dir, exist_ok=True)

    return full_path


def get_cache_dir(name: str) -> Path:
    """Per-user cache sub-directory (audio downloads, synthesized speech)."""
    path = Path(platformdirs.user_cache_dir(APP_NAME, APP_AUTHOR)) / name
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_path(filename: str = "config.json") -> Path:
    return Path(platformdirs.user_config_dir(APP_NAME, APP_AUTHOR)) / filename


def format_time(seconds: float) -> str:
    """Format seconds to MM:SS"""
    if seconds < 0:
        seconds = 0
    return f"{int(seconds // 60):02d}:{int(seconds % 60):02d}"
