from __future__ import annotations

import json
from pathlib import Path

from iqra.config import AppConfig, load_config, save_config


def test_missing_file_gives_defaults(tmp_path) -> None:
    config = load_config(tmp_path / "config.json", env={})
    assert config == AppConfig()
    assert config.http_timeout == 30.0
    assert config.tts_cache_size is None


def test_file_values_and_env_overrides(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "audio_dir": str(tmp_path / "audio"),
        "reciter_base_url": "https://example.org/reciter",
        "tts_voice": "onyx",
    }), encoding="utf-8")
    env = {
        "OPENAI_API_KEY": "sk-test",
        "IQRA_TTS_CACHE_SIZE": "25",
        "IQRA_HTTP_TIMEOUT": "5",
        "IQRA_RECITER_URL": "https://mirror.example.org/reciter",
    }
    config = load_config(path, env=env)
    assert config.openai_api_key == "sk-test"
    assert config.tts_cache_size == 25
    assert config.http_timeout == 5.0
    assert config.reciter_base_url == "https://mirror.example.org/reciter"
    assert config.tts_voice == "onyx"
    assert config.resolved_audio_dir() == tmp_path / "audio"


def test_broken_file_is_ignored(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[1, 2", encoding="utf-8")
    config = load_config(path, env={"OPENAI_API_KEY": "sk-env"})
    assert config.openai_api_key == "sk-env"


def test_invalid_values_fall_back_but_keep_api_key(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"tts_cache_size": 0}), encoding="utf-8")
    config = load_config(path, env={"OPENAI_API_KEY": "sk-env"})
    assert config.tts_cache_size is None
    assert config.openai_api_key == "sk-env"


def test_save_and_load_round_trip(tmp_path) -> None:
    path = tmp_path / "nested" / "config.json"
    save_config(AppConfig(data_dir=Path("/srv/quran"), tts_speed=1.25), path)
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert "openai_api_key" not in saved
    config = load_config(path, env={})
    assert config.data_dir == Path("/srv/quran")
    assert config.tts_speed == 1.25
