# iqra/audio_manager.py
import asyncio
import sys
import time
from pathlib import Path
from typing import Optional

import aiofiles
import aiohttp
import mutagen
import pygame
from colorama import Fore, Style
from mutagen.mp3 import MP3

from .errors import AssetMissingError, PlaybackError


class AudioBackend:
    """The single audio output handle the engine drives.

    Implementations raise PlaybackError when the device cannot load or play.
    """
    available = True

    def load(self, path: Path) -> float:
        """Load ``path`` and return its duration in seconds."""
        raise NotImplementedError

    def play(self, start: float = 0.0):
        raise NotImplementedError

    def pause(self):
        raise NotImplementedError

    def unpause(self):
        raise NotImplementedError

    def stop(self):
        raise NotImplementedError

    def is_busy(self) -> bool:
        raise NotImplementedError

    def position(self) -> float:
        raise NotImplementedError

    def close(self):
        pass


class PygameBackend(AudioBackend):
    """pygame.mixer.music output with wall-clock position tracking."""

    def __init__(self):
        try:
            pygame.mixer.init()
        except pygame.error as e:
            print(f"{Fore.RED}Error initializing pygame mixer: {e}")
            print(f"{Fore.YELLOW}Audio playback will be disabled.{Style.RESET_ALL}")
            self.available = False
        else:
            self.available = True
        self.current_file: Optional[Path] = None
        self.duration = 0.0
        self.start_time = 0.0
        self.paused_at: Optional[float] = None

    def _require_mixer(self):
        if not self.available:
            raise PlaybackError("Audio system not initialized")

    def load(self, path: Path) -> float:
        self._require_mixer()
        try:
            info = mutagen.File(str(path))
        except mutagen.MutagenError as e:
            raise PlaybackError(f"Error loading audio metadata for {Path(path).name}: {e}") from e
        if info is None or not getattr(info, "info", None) or info.info.length <= 0:
            raise PlaybackError(f"Cannot play audio: invalid duration or file error ({Path(path).name})")
        try:
            pygame.mixer.music.load(str(path))
        except pygame.error as e:
            raise PlaybackError(f"Error loading audio: {e}") from e
        self.current_file = Path(path)
        self.duration = info.info.length
        self.paused_at = None
        return self.duration

    def play(self, start: float = 0.0):
        self._require_mixer()
        if not self.current_file:
            raise PlaybackError("No audio loaded")
        start = max(0.0, min(start, max(self.duration - 0.1, 0.0)))
        try:
            pygame.mixer.music.play(start=start)
        except pygame.error as e:
            raise PlaybackError(f"Error playing audio: {e}") from e
        self.start_time = time.time() - start
        self.paused_at = None

    def pause(self):
        if not self.available or self.paused_at is not None:
            return
        try:
            pygame.mixer.music.pause()
        except pygame.error as e:
            print(f"{Fore.RED}Error pausing audio: {e}{Style.RESET_ALL}", file=sys.stderr)
            return
        self.paused_at = self.position()

    def unpause(self):
        if not self.available or self.paused_at is None:
            return
        try:
            pygame.mixer.music.unpause()
        except pygame.error as e:
            raise PlaybackError(f"Error resuming audio: {e}") from e
        # Shift the clock so position() continues from the paused point
        self.start_time = time.time() - self.paused_at
        self.paused_at = None

    def stop(self):
        if not self.available:
            return
        try:
            pygame.mixer.music.stop()
            pygame.mixer.music.unload()
        except pygame.error as e:
            print(f"{Fore.YELLOW}Note: Pygame mixer error during stop/unload: {e}{Style.RESET_ALL}", file=sys.stderr)
        self.current_file = None
        self.duration = 0.0
        self.start_time = 0.0
        self.paused_at = None

    def is_busy(self) -> bool:
        if not self.available or self.paused_at is not None:
            return False
        return pygame.mixer.music.get_busy()

    def position(self) -> float:
        if self.paused_at is not None:
            return self.paused_at
        if not self.current_file:
            return 0.0
        return min(time.time() - self.start_time, self.duration)

    def close(self):
        self.stop()
        if self.available:
            pygame.mixer.quit()


class VerseAudioResolver:
    """Finds the recitation file for one verse.

    Files live at ``<audio_dir>/<surah>/<ayah>.mp3``. When a file is missing
    and ``base_url`` is set, it is fetched from ``<base_url>/<sss><aaa>.mp3``
    (the everyayah.com layout), validated as MP3 and kept for next time.
    """

    def __init__(self, audio_dir: Path, base_url: Optional[str] = None,
                 timeout: float = 30.0, max_retries: int = 3):
        self.audio_dir = Path(audio_dir)
        self.base_url = base_url.rstrip('/') if base_url else None
        self.timeout = timeout
        self.max_retries = max_retries

    def local_path(self, surah: int, ayah: int) -> Path:
        return self.audio_dir / str(surah) / f"{ayah}.mp3"

    def remote_url(self, surah: int, ayah: int) -> Optional[str]:
        if not self.base_url:
            return None
        return f"{self.base_url}/{surah:03d}{ayah:03d}.mp3"

    @staticmethod
    def _is_valid_mp3(path: Path) -> bool:
        try:
            return path.stat().st_size > 0 and MP3(str(path)).info.length > 0
        except (OSError, mutagen.MutagenError):
            return False

    async def resolve(self, surah: int, ayah: int) -> Path:
        """Return a local file for the verse, downloading it if configured.

        Raises AssetMissingError when no usable file can be produced.
        """
        path = self.local_path(surah, ayah)
        if path.exists() and self._is_valid_mp3(path):
            return path

        url = self.remote_url(surah, ayah)
        if url is None:
            raise AssetMissingError(surah, ayah, "no local file and no reciter URL configured")
        return await self.download(url, path, surah, ayah)

    async def download(self, url: str, path: Path, surah: int, ayah: int) -> Path:
        temp_file = path.with_suffix('.tmp')
        path.parent.mkdir(parents=True, exist_ok=True)
        last_error = ""

        for attempt in range(self.max_retries):
            try:
                async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                    async with session.get(url, headers={'User-Agent': 'Mozilla/5.0', 'Accept': '*/*'}) as response:
                        if response.status in (403, 404):
                            raise AssetMissingError(surah, ayah, f"HTTP {response.status} from {url}")
                        response.raise_for_status()
                        async with aiofiles.open(temp_file, mode='wb') as f:
                            async for chunk in response.content.iter_chunked(8192):
                                await f.write(chunk)

                if not self._is_valid_mp3(temp_file):
                    raise ValueError("MP3 validation failed")
                temp_file.replace(path)
                return path
            except AssetMissingError:
                temp_file.unlink(missing_ok=True)
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, OSError) as e:
                last_error = str(e) or type(e).__name__
                temp_file.unlink(missing_ok=True)
            if attempt < self.max_retries - 1:
                await asyncio.sleep((attempt + 1) * 0.5)

        raise AssetMissingError(surah, ayah, f"download failed: {last_error}")
