# iqra/audio_engine.py
import asyncio
import sys
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from colorama import Fore, Style

from .audio_manager import AudioBackend, VerseAudioResolver
from .errors import AssetMissingError, InvalidInputError, PlaybackError, SynthesisError
from .models import AudioPlaybackState, RepeatMode, TTSOptions
from .tts_service import TTSService

Listener = Callable[[AudioPlaybackState], None]


class PlaybackEvent(str, Enum):
    LOAD_START = "load_start"
    CAN_PLAY = "can_play"
    STARTED = "started"
    PAUSED = "paused"
    ENDED = "ended"
    TIME_UPDATE = "time_update"
    FAILED = "failed"


class AudioEngine:
    """Owns the one audio output handle and the playback state behind it.

    Every ``play``/``play_text``/``stop``/``reset`` takes a new generation
    token. Lifecycle events are dispatched with the token of the request
    that produced them and are dropped when a newer request has started, so
    the last call always wins even if an older synthesis finishes later.

    ``poll_interval`` controls the progress monitor task; pass ``None`` to
    drive ``ended``/``time_update`` events by hand.
    """

    def __init__(self, backend: AudioBackend, resolver: VerseAudioResolver,
                 tts: Optional[TTSService] = None, poll_interval: Optional[float] = 0.1,
                 verse_count: Optional[Callable[[int], int]] = None):
        self.backend = backend
        self.resolver = resolver
        self.tts = tts
        self.poll_interval = poll_interval
        self.verse_count = verse_count
        self.state = AudioPlaybackState()
        self._generation = 0
        self._loaded_key: Optional[Tuple[int, int]] = None
        self._media_loaded = False
        self._paused = False
        self._pending_seek: Optional[float] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []

    @property
    def generation(self) -> int:
        return self._generation

    # --- Listeners ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(state)`` after every state change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            listener(self.state)

    # --- Event dispatch ---

    def dispatch(self, event: PlaybackEvent, token: int, **data) -> bool:
        """Apply a lifecycle event. Returns False when ``token`` is stale."""
        if token != self._generation:
            return False
        state = self.state
        if event is PlaybackEvent.LOAD_START:
            state.is_loading = True
            state.error = None
        elif event is PlaybackEvent.CAN_PLAY:
            state.is_loading = False
            state.duration = data.get("duration", state.duration)
        elif event is PlaybackEvent.STARTED:
            state.is_loading = False
            state.is_playing = True
        elif event is PlaybackEvent.PAUSED:
            state.is_playing = False
        elif event is PlaybackEvent.TIME_UPDATE:
            self.update_progress(data.get("current_time", state.current_time),
                                 data.get("duration", state.duration))
            return True
        elif event is PlaybackEvent.ENDED:
            state.current_time = state.duration
            self._handle_ended(token)
            return True
        elif event is PlaybackEvent.FAILED:
            state.is_loading = False
            state.is_playing = False
            state.error = data.get("error") or "Audio playback failed"
            self._media_loaded = False
            self._loaded_key = None
            self._paused = False
        self._notify()
        return True

    def _begin_request(self) -> int:
        """Invalidate whatever is in flight and silence the output."""
        self._generation += 1
        self._cancel_monitor()
        self.backend.stop()
        self._media_loaded = False
        self._loaded_key = None
        self._paused = False
        self._pending_seek = None
        return self._generation

    # --- Playback ---

    async def play_text(self, text: str, options: Optional[TTSOptions] = None):
        """Speak ``text`` through the TTS service. Errors end up in ``state.error``."""
        if not text or not text.strip():
            self.state.error = "No text provided"
            self._notify()
            return
        if self.tts is None:
            self.state.error = "TTS service not initialized. Please provide API key."
            self._notify()
            return

        token = self._begin_request()
        self.state.current_surah = None
        self.state.current_ayah = None
        self.state.current_time = 0.0
        self.state.repeat_count = 0
        self.dispatch(PlaybackEvent.LOAD_START, token)

        try:
            path = await self.tts.text_to_speech(self.tts.preprocess_arabic_text(text), options)
        except (SynthesisError, InvalidInputError) as e:
            if token == self._generation:
                print(f"{Fore.RED}Error: {e}{Style.RESET_ALL}", file=sys.stderr)
            self.dispatch(PlaybackEvent.FAILED, token, error=str(e))
            return

        if token != self._generation:
            return
        if self._start(token, path):
            self.state.current_text = text
            self._notify()

    async def play(self, surah: int, ayah: int):
        """Play the recitation of one verse, resuming in place if it is the paused item."""
        key = (surah, ayah)
        # Only an explicit pause() resumes; a finished track is loaded again
        if self._loaded_key == key and self._media_loaded and self._paused:
            self._resume()
            return

        token = self._begin_request()
        state = self.state
        state.current_surah = surah
        state.current_ayah = ayah
        state.current_text = None
        state.current_time = 0.0
        state.duration = 0.0
        state.repeat_count = 0
        self.dispatch(PlaybackEvent.LOAD_START, token)

        try:
            path = await self.resolver.resolve(surah, ayah)
        except AssetMissingError as e:
            if token != self._generation:
                return
            print(f"{Fore.YELLOW}Warning: {e}{Style.RESET_ALL}", file=sys.stderr)
            state.is_loading = False
            self._notify()
            return

        if token != self._generation:
            return
        if self._start(token, path):
            self._loaded_key = key

    def _start(self, token: int, path: Path) -> bool:
        try:
            duration = self.backend.load(path)
            self._media_loaded = True
            self.dispatch(PlaybackEvent.CAN_PLAY, token, duration=duration)
            self.backend.play(0.0)
        except PlaybackError as e:
            print(f"{Fore.RED}Error: {e}{Style.RESET_ALL}", file=sys.stderr)
            self.dispatch(PlaybackEvent.FAILED, token)
            return False
        self.dispatch(PlaybackEvent.STARTED, token)
        self._start_monitor(token)
        return True

    def _resume(self):
        self._generation += 1
        token = self._generation
        try:
            if self._pending_seek is not None:
                self.backend.play(self._pending_seek)
            else:
                self.backend.unpause()
        except PlaybackError as e:
            print(f"{Fore.RED}Error: {e}{Style.RESET_ALL}", file=sys.stderr)
            self.dispatch(PlaybackEvent.FAILED, token)
            return
        self._paused = False
        self._pending_seek = None
        self.dispatch(PlaybackEvent.STARTED, token)
        self._start_monitor(token)

    def _replay(self, token: int):
        try:
            self.backend.play(0.0)
        except PlaybackError as e:
            print(f"{Fore.RED}Error: {e}{Style.RESET_ALL}", file=sys.stderr)
            self.dispatch(PlaybackEvent.FAILED, token)
            return
        self.state.current_time = 0.0
        self.dispatch(PlaybackEvent.STARTED, token)

    def _handle_ended(self, token: int):
        state = self.state
        mode = state.repeat_mode
        if mode == "infinite":
            self._replay(token)
        elif mode > 1 and state.repeat_count < mode - 1:
            state.repeat_count += 1
            self._replay(token)
        else:
            # Advance but leave it to the caller to start the next verse
            self._paused = False
            self.next_ayah()
            self.dispatch(PlaybackEvent.PAUSED, token)

    def pause(self):
        if not self.state.is_playing:
            return
        self.backend.pause()
        self._paused = True
        self.state.current_time = self.backend.position()
        self.dispatch(PlaybackEvent.PAUSED, self._generation)

    def stop(self):
        self._begin_request()
        state = self.state
        state.is_playing = False
        state.is_loading = False
        state.current_time = 0.0
        state.current_surah = None
        state.current_ayah = None
        state.current_text = None
        state.repeat_count = 0
        self._notify()

    def reset(self):
        """Back to an idle engine with default repeat mode and no error."""
        self.stop()
        self.state.repeat_mode = 1
        self.state.duration = 0.0
        self.state.error = None
        self._notify()

    def seek(self, seconds: float):
        if not self._media_loaded:
            return
        target = max(0.0, min(seconds, self.state.duration))
        if self.state.is_playing:
            try:
                self.backend.play(target)
            except PlaybackError as e:
                print(f"{Fore.RED}Error: {e}{Style.RESET_ALL}", file=sys.stderr)
                self.dispatch(PlaybackEvent.FAILED, self._generation)
                return
        else:
            self._pending_seek = target
        self.update_progress(target, self.state.duration)

    # --- Plain state updates ---

    def set_repeat_mode(self, mode: RepeatMode):
        self.state.repeat_mode = mode
        self.state.repeat_count = 0
        self._notify()

    def update_progress(self, current_time: float, duration: float):
        self.state.current_time = current_time
        self.state.duration = duration
        self._notify()

    def _move_to_ayah(self, ayah: int):
        if self.state.is_playing:
            self.backend.stop()
            self.state.is_playing = False
        self._media_loaded = False
        self._loaded_key = None
        self._paused = False
        self._pending_seek = None
        self.state.current_ayah = ayah
        self.state.current_time = 0.0
        self.state.repeat_count = 0
        self._notify()

    def next_ayah(self):
        """Advance within the current surah. Crossing into the next surah is up to the caller."""
        state = self.state
        if state.current_surah is None or state.current_ayah is None:
            return
        if self.verse_count is not None and state.current_ayah >= self.verse_count(state.current_surah):
            return
        self._move_to_ayah(state.current_ayah + 1)

    def previous_ayah(self):
        if self.state.current_ayah is None or self.state.current_ayah <= 1:
            return
        self._move_to_ayah(self.state.current_ayah - 1)

    # --- Progress monitor ---

    def _start_monitor(self, token: int):
        if self.poll_interval is None:
            return
        self._cancel_monitor()
        self._monitor_task = asyncio.get_running_loop().create_task(self._monitor(token))

    def _cancel_monitor(self):
        task = self._monitor_task
        self._monitor_task = None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def _monitor(self, token: int):
        while self._generation == token and self.state.is_playing:
            await asyncio.sleep(self.poll_interval)
            if self._generation != token or not self.state.is_playing:
                break
            if self.backend.is_busy():
                self.dispatch(PlaybackEvent.TIME_UPDATE, token,
                              current_time=self.backend.position(), duration=self.state.duration)
            else:
                self.dispatch(PlaybackEvent.ENDED, token)

    async def wait_idle(self):
        """Wait until the current item finishes (or is paused or replaced)."""
        while self.state.is_playing or self.state.is_loading:
            await asyncio.sleep(self.poll_interval or 0.1)

    def close(self):
        self.stop()
        self.backend.close()
