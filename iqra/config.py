# iqra/config.py
import json
import os
import sys
from pathlib import Path
from typing import Mapping, Optional

from colorama import Fore, Style
from pydantic import BaseModel, Field, ValidationError

from .utils import get_app_path, get_cache_dir, get_config_path

# Environment variables override values read from config.json
ENV_OVERRIDES = {
    "OPENAI_API_KEY": "openai_api_key",
    "IQRA_DATA_DIR": "data_dir",
    "IQRA_AUDIO_DIR": "audio_dir",
    "IQRA_STORAGE_DIR": "storage_dir",
    "IQRA_RECITER_URL": "reciter_base_url",
    "IQRA_TTS_CACHE_SIZE": "tts_cache_size",
    "IQRA_HTTP_TIMEOUT": "http_timeout",
}


class AppConfig(BaseModel):
    """Runtime configuration for the reader."""
    openai_api_key: Optional[str] = None
    # Directory holding quran-uthmani.json, translations/ and transliterations/
    data_dir: Optional[Path] = None
    # Per-verse recitation files laid out as <audio_dir>/<surah>/<ayah>.mp3
    audio_dir: Optional[Path] = None
    storage_dir: Optional[Path] = None
    tts_cache_dir: Optional[Path] = None
    # e.g. https://everyayah.com/data/Alafasy_128kbps
    reciter_base_url: Optional[str] = None
    tts_cache_size: Optional[int] = Field(default=None, ge=1)
    http_timeout: float = Field(default=30.0, gt=0)
    tts_voice: str = "alloy"
    tts_speed: float = Field(default=1.0, ge=0.25, le=4.0)

    def resolved_data_dir(self) -> Path:
        return self.data_dir or Path(get_app_path('data', writable=True))

    def resolved_audio_dir(self) -> Path:
        return self.audio_dir or get_cache_dir('audio_cache')

    def resolved_storage_dir(self) -> Path:
        return self.storage_dir or Path(get_app_path('storage', writable=True))

    def resolved_tts_cache_dir(self) -> Path:
        return self.tts_cache_dir or get_cache_dir('tts_cache')


def load_config(path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load config.json (if present) and apply environment overrides.

    A missing file yields defaults; an unreadable or invalid one is reported
    and ignored.
    """
    config_path = Path(path) if path else get_config_path()
    env = os.environ if env is None else env

    raw = {}
    if config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise ValueError("top-level value must be an object")
        except (json.JSONDecodeError, ValueError, OSError) as e:
            print(f"{Fore.YELLOW}Warning: Could not load config file {config_path}: {e}{Style.RESET_ALL}", file=sys.stderr)
            raw = {}

    for env_name, field_name in ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value:
            raw[field_name] = value

    try:
        return AppConfig(**raw)
    except ValidationError as e:
        print(f"{Fore.YELLOW}Warning: Invalid configuration, using defaults: {e}{Style.RESET_ALL}", file=sys.stderr)
        # Keep the API key when only unrelated fields were invalid
        return AppConfig(openai_api_key=raw.get("openai_api_key") if isinstance(raw.get("openai_api_key"), str) else None)


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    config_path = Path(path) if path else get_config_path()
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w', encoding='utf-8') as f:
            json.dump(config.model_dump(mode="json", exclude_none=True), f, ensure_ascii=False, indent=2)
    except OSError as e:
        print(f"{Fore.RED}Error: Could not write config file {config_path}: {e}{Style.RESET_ALL}", file=sys.stderr)
