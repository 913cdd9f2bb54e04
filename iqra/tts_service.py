# iqra/tts_service.py
import asyncio
import hashlib
import sys
from collections import OrderedDict
from pathlib import Path
from typing import Optional

import aiofiles
import aiohttp
from colorama import Fore, Style

from .errors import InvalidInputError, SynthesisError
from .models import TTSOptions

TTS_ENDPOINT = "https://api.openai.com/v1/audio/speech"
TTS_MODEL = "tts-1"


class TTSService:
    """Text-to-speech over the OpenAI speech endpoint, with a file-backed cache.

    Cache key is the exact ``(text, serialized options)`` pair. A hit whose
    file still exists never touches the network. Only successful syntheses
    are cached. With ``max_entries`` set, the least recently used entry is
    evicted and its file deleted.
    """

    def __init__(self, api_key: str, cache_dir: Path, max_entries: Optional[int] = None,
                 timeout: float = 30.0, endpoint: str = TTS_ENDPOINT):
        self.api_key = api_key
        self.cache_dir = Path(cache_dir)
        self.max_entries = max_entries
        self.timeout = timeout
        self.endpoint = endpoint
        self._cache: "OrderedDict[str, Path]" = OrderedDict()
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def cache_key(text: str, options: TTSOptions) -> str:
        return f"{text}-{options.cache_token()}"

    def cached_path(self, text: str, options: Optional[TTSOptions] = None) -> Optional[Path]:
        key = self.cache_key(text, options or TTSOptions())
        path = self._cache.get(key)
        if path is not None and path.exists():
            return path
        return None

    async def text_to_speech(self, text: str, options: Optional[TTSOptions] = None) -> Path:
        """Return a playable audio file for ``text``, synthesizing it if needed."""
        if not text or not text.strip():
            raise InvalidInputError("No text provided")
        options = options or TTSOptions()
        key = self.cache_key(text, options)

        path = self._cache.get(key)
        if path is not None:
            if path.exists():
                self._cache.move_to_end(key)
                return path
            # File went away underneath us, synthesize again
            del self._cache[key]

        audio = await self._request_speech(text, options)
        path = await self._write_audio(key, audio, options.format or "mp3")
        self._cache[key] = path
        self._evict()
        return path

    async def _request_speech(self, text: str, options: TTSOptions) -> bytes:
        payload = {
            "model": TTS_MODEL,
            "input": text,
            "voice": options.voice or "alloy",
            "speed": options.speed or 1.0,
            "response_format": options.format or "mp3",
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(self.endpoint, json=payload, headers=headers) as response:
                    if response.status < 200 or response.status >= 300:
                        await response.read()
                        raise SynthesisError(f"TTS API error: {response.reason or response.status}", status=response.status)
                    return await response.read()
        except aiohttp.ClientError as e:
            raise SynthesisError(f"TTS request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise SynthesisError(f"TTS request timed out after {self.timeout:.0f}s") from e

    async def _write_audio(self, key: str, audio: bytes, extension: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        path = self.cache_dir / f"{digest}.{extension}"
        try:
            async with aiofiles.open(path, mode='wb') as f:
                await f.write(audio)
        except OSError as e:
            raise SynthesisError(f"Could not cache synthesized audio: {e}") from e
        return path

    def _evict(self):
        if not self.max_entries:
            return
        while len(self._cache) > self.max_entries:
            _, path = self._cache.popitem(last=False)
            self._remove_file(path)

    @staticmethod
    def _remove_file(path: Path):
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            print(f"{Fore.YELLOW}Warning: Could not delete cached audio {path}: {e}{Style.RESET_ALL}", file=sys.stderr)

    def clear_cache(self):
        """Drop every cached entry and delete its file."""
        for path in self._cache.values():
            self._remove_file(path)
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    @staticmethod
    def preprocess_arabic_text(text: str) -> str:
        """Add a pause after Arabic commas and full stops for smoother speech."""
        return text.replace("،", "، ").replace("۔", "۔ ").strip()
