# iqra/errors.py
from typing import Optional


class IqraError(Exception):
    """Base class for errors raised inside the reader's services."""


class InvalidInputError(IqraError):
    """Empty or whitespace-only text handed to speech synthesis."""


class SynthesisError(IqraError):
    """Speech synthesis request failed (transport error or non-2xx response)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TranscriptionError(IqraError):
    """Speech transcription request failed."""


class AssetMissingError(IqraError):
    """Per-verse recitation audio could not be found or fetched."""

    def __init__(self, surah: int, ayah: int, reason: str = ""):
        message = f"Audio not found for Surah {surah}, Ayah {ayah}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.surah = surah
        self.ayah = ayah


class StorageCorruptionError(IqraError):
    """A persisted value could not be parsed back."""

    def __init__(self, key: str, reason: str = ""):
        super().__init__(f"Invalid storage data for key: {key}" + (f" ({reason})" if reason else ""))
        self.key = key


class PlaybackError(IqraError):
    """The audio output device refused to load or play a file."""
