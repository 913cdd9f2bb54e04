from __future__ import annotations

import pytest
import requests

from iqra.errors import TranscriptionError
from iqra.transcription import TranscriptionClient


class FakeResponse:
    def __init__(self, payload=None, status: int = 200) -> None:
        self.payload = payload
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def json(self):
        if self.payload is None:
            raise ValueError("No JSON object could be decoded")
        return self.payload


class FakeSession:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    def post(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        if self.error:
            raise self.error
        return self.response


def test_transcribe_posts_multipart_request() -> None:
    session = FakeSession(FakeResponse({"text": "  بسم الله  "}))
    client = TranscriptionClient("sk-test", session=session)
    assert client.transcribe(b"audio-bytes") == "بسم الله"

    call = session.calls[0]
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    assert call["data"] == {"model": "whisper-1", "language": "ar"}
    assert call["files"]["file"] == ("recording.webm", b"audio-bytes")
    assert call["timeout"] == 60.0


def test_transcribe_reads_path(tmp_path) -> None:
    recording = tmp_path / "take1.wav"
    recording.write_bytes(b"RIFF")
    session = FakeSession(FakeResponse({"text": "الحمد لله"}))
    client = TranscriptionClient("sk-test", session=session)
    assert client.transcribe(recording, language="ar") == "الحمد لله"
    assert session.calls[0]["files"]["file"] == ("take1.wav", b"RIFF")


@pytest.mark.parametrize("session", [
    FakeSession(FakeResponse({"error": "bad"}, status=401)),
    FakeSession(error=requests.ConnectionError("offline")),
    FakeSession(FakeResponse(None)),
    FakeSession(FakeResponse(["not", "an", "object"])),
    FakeSession(FakeResponse("plain text")),
])
def test_failures_raise_transcription_error(session) -> None:
    client = TranscriptionClient("sk-test", session=session)
    with pytest.raises(TranscriptionError):
        client.transcribe(b"audio")


def test_empty_or_missing_recording(tmp_path) -> None:
    client = TranscriptionClient("sk-test", session=FakeSession())
    with pytest.raises(TranscriptionError):
        client.transcribe(b"")
    with pytest.raises(TranscriptionError):
        client.transcribe(tmp_path / "missing.wav")
