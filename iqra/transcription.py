# iqra/transcription.py
from pathlib import Path
from typing import Union

import requests

from .errors import TranscriptionError

TRANSCRIPTION_ENDPOINT = "https://api.openai.com/v1/audio/transcriptions"
TRANSCRIPTION_MODEL = "whisper-1"


class TranscriptionClient:
    """Speech-to-text for pronunciation practice."""

    def __init__(self, api_key: str, timeout: float = 60.0, endpoint: str = TRANSCRIPTION_ENDPOINT,
                 session: requests.Session = None):
        self.api_key = api_key
        self.timeout = timeout
        self.endpoint = endpoint
        self.session = session or requests.Session()

    def transcribe(self, audio: Union[bytes, Path], language: str = "ar", filename: str = "recording.webm") -> str:
        """Send a recording and return the recognised text."""
        if isinstance(audio, Path):
            filename = audio.name
            try:
                audio = audio.read_bytes()
            except OSError as e:
                raise TranscriptionError(f"Could not read recording {audio}: {e}") from e
        if not audio:
            raise TranscriptionError("Empty recording")

        try:
            response = self.session.post(
                self.endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                data={"model": TRANSCRIPTION_MODEL, "language": language},
                files={"file": (filename, audio)},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise TranscriptionError(f"Speech recognition failed: {e}") from e
        except ValueError as e:
            raise TranscriptionError(f"Unexpected transcription response: {e}") from e

        if not isinstance(payload, dict):
            raise TranscriptionError(f"Unexpected transcription response: {type(payload).__name__}")
        return (payload.get("text") or "").strip()
