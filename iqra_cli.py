# iqra_cli.py
import asyncio
import os
import shutil
import sys
from time import sleep
from typing import List, Optional, Tuple

from colorama import Fore, Style, init
from tqdm import tqdm

from iqra.audio_engine import AudioEngine
from iqra.audio_manager import PygameBackend, VerseAudioResolver
from iqra.bookmarks import BookmarksStore
from iqra.config import AppConfig, load_config
from iqra.errors import AssetMissingError
from iqra.metrics import MetricsStore
from iqra.models import DivisionScheme, TTSOptions, VerseAddress
from iqra.navigator import Navigator, get_navigator
from iqra.progress import ProgressStore
from iqra.quran_data_handler import QuranDataHandler
from iqra.settings_manager import SettingsMenu, SettingsStore, strip_ansi
from iqra.storage import LocalStorage
from iqra.tts_service import TTSService
from iqra.utils import format_time
from iqra.version import VERSION

IQRA_ASCII = r"""
  ___                    ____                _
 |_ _|__ _ _ __ __ _    |  _ \ ___  __ _  __| | ___ _ __
  | |/ _` | '__/ _` |   | |_) / _ \/ _` |/ _` |/ _ \ '__|
  | | (_| | | | (_| |   |  _ <  __/ (_| | (_| |  __/ |
 |___\__, |_|  \__,_|   |_| \_\___|\__,_|\__,_|\___|_|
        |_|
"""

COMMANDS = [
    ("r", "Read the current division"),
    ("n / p", "Next / previous division"),
    ("s <scheme>", "Switch scheme: surah, juz, hizb, mushaf"),
    ("j <n | s:a>", "Jump to a division number or a verse"),
    ("l", "List divisions of the current scheme"),
    ("a [s:a]", "Recite a verse (default: first verse shown)"),
    ("rep <1|3|inf>", "Repeat mode for recitation"),
    ("t <text>", "Speak text with text-to-speech"),
    ("bm", "Bookmarks"),
    ("set", "Settings"),
    ("dl <surah>", "Download recitation audio for a surah"),
    ("stats", "Your reading insights"),
    ("rev", "Toggle Arabic reversal (for terminals without RTL)"),
    ("q", "Quit"),
]


class IqraApp:
    def __init__(self, config: Optional[AppConfig] = None, navigator: Optional[Navigator] = None):
        self.config = config or load_config()
        self.term_size = shutil.get_terminal_size()
        self.navigator = navigator or get_navigator()
        self.storage = LocalStorage(self.config.resolved_storage_dir())
        self.data_handler = QuranDataHandler(self.config.resolved_data_dir(), self.navigator)
        self.settings = SettingsStore(self.storage)
        self.bookmarks = BookmarksStore(self.storage)
        self.metrics = MetricsStore(self.storage)
        self.progress = ProgressStore(self.storage)
        self.resolver = VerseAudioResolver(
            self.config.resolved_audio_dir(),
            base_url=self.config.reciter_base_url,
            timeout=self.config.http_timeout,
        )
        self._engine: Optional[AudioEngine] = None
        self.scheme = DivisionScheme.SURAH
        self.index = 1
        if self.bookmarks.last_read:
            division = self.navigator.locate(self.scheme, self.bookmarks.last_read)
            if division:
                self.index = division.index

    # --- Collaborators created on demand ---

    @property
    def engine(self) -> AudioEngine:
        if self._engine is None:
            tts = None
            if self.config.openai_api_key:
                tts = TTSService(
                    self.config.openai_api_key,
                    self.config.resolved_tts_cache_dir(),
                    max_entries=self.config.tts_cache_size,
                    timeout=self.config.http_timeout,
                )
            self._engine = AudioEngine(
                PygameBackend(), self.resolver, tts=tts,
                verse_count=self.navigator.surah_verse_count,
            )
        return self._engine

    # --- Display helpers ---

    def clear_terminal(self):
        os.system('cls' if os.name == 'nt' else 'clear')

    def display_header(self):
        print(Fore.RED + Style.BRIGHT + IQRA_ASCII + Style.RESET_ALL)
        print(Fore.WHITE + Style.DIM + f"  v{VERSION}".rjust(52) + Style.RESET_ALL)

    def display_commands(self):
        box_width = 55
        width = max(len(cmd) for cmd, _ in COMMANDS)
        print(Fore.RED + "╭─ " + Style.BRIGHT + Fore.GREEN + "📜 Available Commands")
        for cmd, desc in COMMANDS:
            pad = " " * (width - len(strip_ansi(cmd)))
            print(Fore.RED + f"│ → {Fore.CYAN}{cmd}{pad} : {Style.DIM}{Fore.WHITE}{desc}{Style.RESET_ALL}")
        print(Fore.RED + "╰" + "─" * box_width)

    def display_position(self):
        division = self.navigator.get_division(self.scheme, self.index)
        if division is None:
            return
        print(Fore.RED + "╭─ " + Style.BRIGHT + Fore.GREEN + f"📖 {self.scheme.label} {division.index}/{self.scheme.max_index}")
        print(Fore.RED + f"│ • {Fore.CYAN}Name:  {Fore.WHITE}{division.display_name}")
        print(Fore.RED + f"│ • {Fore.CYAN}Range: {Fore.WHITE}{division.start} → {division.end}")
        if self.bookmarks.last_read:
            print(Fore.RED + f"│ • {Fore.CYAN}Last read: {Fore.WHITE}{self.bookmarks.last_read}")
        print(Fore.RED + "╰" + "─" * 55)

    def read_division(self):
        ayahs = self.data_handler.get_division_ayahs(self.scheme, self.index)
        if not ayahs:
            print(Fore.RED + f"No verse text found under {self.data_handler.data_dir}. "
                  f"Add quran-uthmani.json there to read.")
            return
        self.finish_reading()
        self.progress.start_reading_session(self.scheme)
        self.metrics.track_event("reading_start", {
            "surah": ayahs[0].surah, "scheme": self.scheme.value, "index": self.index,
        })
        show_translation = self.settings.settings.show_translation
        language = self.settings.settings.translation_language
        translations = {}
        if show_translation:
            translations = {
                (t.surah, t.ayah): t.text
                for t in self.data_handler.get_division_translations(self.scheme, self.index, language)
            }
        width = self.term_size.columns
        for ayah in ayahs:
            marker = "🔖 " if self.bookmarks.is_bookmarked(ayah.surah, ayah.ayah) else ""
            print(Fore.RED + f"[{ayah.surah}:{ayah.ayah}] " + Fore.YELLOW + marker + Style.RESET_ALL)
            print(Fore.WHITE + Style.BRIGHT + self.data_handler.fix_arabic_text(ayah.text).rjust(width - 1))
            text = translations.get((ayah.surah, ayah.ayah))
            if text:
                print(Fore.CYAN + text)
            print()
            address = VerseAddress(surah=ayah.surah, ayah=ayah.ayah)
            self.progress.update_session_progress(
                ayah.surah, ayah.ayah,
                juz=self._division_index(DivisionScheme.JUZ, address),
                hizb=self._division_index(DivisionScheme.HIZB, address),
                page=self._division_index(DivisionScheme.MUSHAF, address),
            )
        last = ayahs[-1]
        self.bookmarks.set_last_read(last.surah, last.ayah)
        self.progress.mark_verse_as_read(last.surah, last.ayah, count=len(ayahs))
        self.progress.record_division_read(self.scheme, self.index)

    def finish_reading(self):
        """Close the open reading session, if any, and record how long it lasted."""
        session = self.progress.end_reading_session()
        if session is None:
            return
        self.metrics.track_event("reading_end", {
            "surah": session.surahs_visited[0] if session.surahs_visited else None,
            "verses_read": session.verses_read,
        }, duration=session.duration)

    def _division_index(self, scheme: DivisionScheme, address: VerseAddress) -> Optional[int]:
        division = self.navigator.locate(scheme, address)
        return division.index if division else None

    def list_divisions(self):
        divisions = self.navigator.divisions(self.scheme)
        cols = max(1, self.term_size.columns // 32)
        rows = []
        for i in range(0, len(divisions), cols):
            rows.append("".join(f"{Fore.CYAN}{d.index:>3}. {Fore.WHITE}{d.display_name[:24]:<26}" for d in divisions[i:i + cols]))
        print("\n".join(rows))

    # --- Navigation ---

    def go_to(self, scheme: DivisionScheme, index: int):
        self.finish_reading()
        self.scheme = scheme
        self.index = max(1, min(index, scheme.max_index))
        self.metrics.track_page_view(f"/{scheme.value}/{self.index}")

    def switch_scheme(self, name: str):
        try:
            target = DivisionScheme(name.strip().lower())
        except ValueError:
            print(Fore.RED + f"Unknown scheme '{name}'. Use surah, juz, hizb or mushaf.")
            return
        self.go_to(target, self.navigator.convert(self.scheme, self.index, target))

    def jump(self, arg: str):
        arg = arg.strip()
        if ":" in arg:
            address = self._parse_address(arg)
            if address is None:
                return
            division = self.navigator.locate(self.scheme, address)
            if division is None:
                print(Fore.RED + f"Verse {arg} is outside the Quran.")
                return
            self.go_to(self.scheme, division.index)
        elif arg.isdigit():
            self.go_to(self.scheme, int(arg))
        else:
            print(Fore.RED + "Enter a division number or a verse like 2:255.")

    def _parse_address(self, text: str) -> Optional[VerseAddress]:
        try:
            address = VerseAddress.parse(text)
        except ValueError:
            print(Fore.RED + f"Invalid verse reference '{text}'. Use surah:ayah, e.g. 2:255.")
            return None
        if address.ayah > self.navigator.surah_verse_count(address.surah):
            print(Fore.RED + f"Surah {address.surah} has only {self.navigator.surah_verse_count(address.surah)} ayahs.")
            return None
        return address

    # --- Audio ---

    async def _recite(self, surah: int, ayah: int):
        engine = self.engine
        await engine.play(surah, ayah)
        played = (surah, ayah)
        while True:
            await engine.wait_idle()
            state = engine.state
            if state.error:
                print(Fore.RED + f"❌ {state.error}")
                return
            position = (state.current_surah, state.current_ayah)
            if state.current_ayah is None or position == played or not self.settings.settings.auto_play:
                return
            played = position
            print(Fore.GREEN + f"▶ {position[0]}:{position[1]}")
            await engine.play(*position)

    def recite(self, arg: str):
        if not self.settings.settings.audio_enabled:
            print(Fore.YELLOW + "Audio is disabled in settings.")
            return
        if arg:
            address = self._parse_address(arg)
            if address is None:
                return
        else:
            division = self.navigator.get_division(self.scheme, self.index)
            address = division.start
        state = self.engine.state
        print(Fore.GREEN + f"▶ Reciting {address} " + Style.DIM + f"(repeat: {state.repeat_mode}, Ctrl+C to stop)")
        self.metrics.track_event("audio_play", {"surah": address.surah, "ayah": address.ayah})
        try:
            asyncio.run(self._recite(address.surah, address.ayah))
        except KeyboardInterrupt:
            self.engine.pause()
            print(Fore.YELLOW + f"\n⏸ Paused at {format_time(self.engine.state.current_time)}")
            self.metrics.track_event("audio_pause")

    def set_repeat(self, arg: str):
        mode = {"1": 1, "3": 3, "inf": "infinite", "infinite": "infinite"}.get(arg.strip().lower())
        if mode is None:
            print(Fore.RED + "Repeat mode must be 1, 3 or inf.")
            return
        self.engine.set_repeat_mode(mode)
        print(Fore.GREEN + f"✓ Repeat mode set to {mode}.")

    def speak(self, text: str):
        engine = self.engine
        voice = self.config.tts_voice if self.config.tts_voice in ("alloy", "echo", "fable", "onyx", "nova", "shimmer") else None
        options = TTSOptions(voice=voice, speed=self.config.tts_speed)

        async def run():
            await engine.play_text(text, options)
            await engine.wait_idle()

        try:
            asyncio.run(run())
        except KeyboardInterrupt:
            engine.stop()
        if engine.state.error:
            print(Fore.RED + f"❌ {engine.state.error}")

    async def _prefetch(self, surah: int, concurrency: int = 4) -> Tuple[int, List[int]]:
        semaphore = asyncio.Semaphore(concurrency)
        failed: List[int] = []
        total = self.navigator.surah_verse_count(surah)

        async def fetch(ayah: int):
            async with semaphore:
                try:
                    await self.resolver.resolve(surah, ayah)
                except AssetMissingError:
                    failed.append(ayah)
                pbar.update(1)

        with tqdm(total=total, desc=f"{Fore.RED}Downloading", unit="ayah", colour='red', ncols=80) as pbar:
            await asyncio.gather(*(fetch(a) for a in range(1, total + 1)))
        return total - len(failed), sorted(failed)

    def prefetch(self, arg: str):
        if not arg.strip().isdigit() or not 1 <= int(arg) <= 114:
            print(Fore.RED + "Enter a surah number between 1 and 114.")
            return
        if not self.resolver.base_url:
            print(Fore.YELLOW + "Set IQRA_RECITER_URL (or reciter_base_url in config.json) to download recitations.")
            return
        try:
            ok, failed = asyncio.run(self._prefetch(int(arg)))
        except KeyboardInterrupt:
            print(Fore.YELLOW + "\nDownload cancelled.")
            return
        print(Fore.GREEN + f"✓ {ok} ayahs ready in {self.resolver.audio_dir / arg.strip()}")
        if failed:
            print(Fore.YELLOW + f"Could not download ayahs: {', '.join(map(str, failed))}")

    # --- Bookmarks ---

    def bookmark_menu(self):
        while True:
            print(Fore.RED + "╭─ " + Style.BRIGHT + Fore.GREEN + "🔖 Bookmarks")
            if not self.bookmarks.bookmarks:
                print(Fore.RED + f"│ {Style.DIM}{Fore.WHITE}No bookmarks yet.")
            for b in self.bookmarks.bookmarks:
                note = f" {Style.DIM}- {b.note}" if b.note else ""
                print(Fore.RED + f"│ • {Fore.CYAN}{b.id:<8}{Fore.WHITE}{b.created_at:%Y-%m-%d}{note}{Style.RESET_ALL}")
            print(Fore.RED + "├" + "─" * 55)
            print(Fore.RED + f"│ → {Fore.CYAN}add <s:a> [note]{Fore.WHITE} : Add or refresh a bookmark")
            print(Fore.RED + f"│ → {Fore.CYAN}rm <s:a>{Fore.WHITE}         : Remove a bookmark")
            print(Fore.RED + f"│ → {Fore.CYAN}go <s:a>{Fore.WHITE}         : Open the division holding it")
            print(Fore.RED + f"│ → {Fore.CYAN}clear{Fore.WHITE}            : Remove all bookmarks")
            print(Fore.RED + f"│ → {Fore.CYAN}b{Fore.WHITE}                : Back")
            print(Fore.RED + "╰" + "─" * 55)
            try:
                line = input(Fore.RED + "  ❯ " + Fore.WHITE).strip()
            except (KeyboardInterrupt, EOFError):
                return
            cmd, _, rest = line.partition(" ")
            ref, _, note = rest.strip().partition(" ")
            if cmd in ("b", "back", "q"):
                return
            if cmd == "clear":
                self.bookmarks.clear_bookmarks()
                continue
            address = self._parse_address(ref) if ref else None
            if address is None:
                if cmd in ("add", "rm", "go") and not ref:
                    print(Fore.RED + "A verse reference like 2:255 is required.")
                elif cmd not in ("add", "rm", "go"):
                    print(Fore.YELLOW + "❌ Invalid option. Please try again.")
                continue
            if cmd == "add":
                self.bookmarks.add_bookmark(address.surah, address.ayah, note or None)
                self.metrics.track_event("bookmark_add", {"surah": address.surah})
                print(Fore.GREEN + f"✓ Bookmarked {address}")
            elif cmd == "rm":
                self.bookmarks.remove_bookmark(address.key)
                self.metrics.track_event("bookmark_remove", {"surah": address.surah})
            elif cmd == "go":
                division = self.navigator.locate(self.scheme, address)
                if division:
                    self.go_to(self.scheme, division.index)
                return
            else:
                print(Fore.YELLOW + "❌ Invalid option. Please try again.")

    def show_insights(self):
        self.metrics.end_session()
        insights = self.metrics.get_user_behavior_insights()
        self.metrics.start_session()
        print(Fore.RED + "╭─ " + Style.BRIGHT + Fore.GREEN + "📊 Insights")
        for line in insights:
            print(Fore.RED + f"│ • {Fore.WHITE}{line}")
        print(Fore.RED + "╰" + "─" * 55)

        progress = self.progress
        overall = progress.get_overall_progress()
        print(Fore.RED + "╭─ " + Style.BRIGHT + Fore.GREEN + "📈 Progress")
        print(Fore.RED + f"│ • {Fore.CYAN}Verses read: {Fore.WHITE}{progress.total_verses_read} (goal {progress.daily_goal}/day)")
        print(Fore.RED + f"│ • {Fore.CYAN}Streak:      {Fore.WHITE}{progress.current_streak} days (best {progress.best_streak})")
        print(Fore.RED + f"│ • {Fore.CYAN}Surahs:      {Fore.WHITE}{overall.completed_surahs}/{overall.total_surahs} ({overall.completion_percentage}%)")
        print(Fore.RED + f"│ • {Fore.CYAN}Juz:         {Fore.WHITE}{overall.completed_juz}/{overall.total_juz}")
        print(Fore.RED + f"│ • {Fore.CYAN}Time:        {Fore.WHITE}{format_time(progress.total_reading_time)}")
        print(Fore.RED + f"│ • {Fore.CYAN}Score:       {Fore.WHITE}{progress.get_productivity_score()}/100")
        week = "".join("█" if day.active else "·" for day in progress.get_weekly_stats())
        print(Fore.RED + f"│ • {Fore.CYAN}This week:   {Fore.WHITE}{week}")
        unlocked = [f"{a.icon} {a.title}" for a in progress.achievements if a.unlocked]
        if unlocked:
            print(Fore.RED + f"│ • {Fore.CYAN}Achievements: {Fore.WHITE}{', '.join(unlocked)}")
        for line in progress.get_learning_insights()["suggestions"]:
            print(Fore.RED + f"│ → {Style.DIM}{Fore.WHITE}{line}")
        print(Fore.RED + "╰" + "─" * 55)

    # --- Main loop ---

    def handle(self, line: str) -> bool:
        """Run one command. Returns False to quit."""
        cmd, _, arg = line.strip().partition(" ")
        cmd = cmd.lower()
        if cmd in ("q", "quit", "exit"):
            return False
        if cmd == "r":
            self.read_division()
        elif cmd == "n":
            self.go_to(self.scheme, self.navigator.step(self.scheme, self.index, "next"))
        elif cmd == "p":
            self.go_to(self.scheme, self.navigator.step(self.scheme, self.index, "prev"))
        elif cmd == "s":
            self.switch_scheme(arg)
        elif cmd == "j":
            self.jump(arg)
        elif cmd == "l":
            self.list_divisions()
        elif cmd == "a":
            self.recite(arg.strip())
        elif cmd == "rep":
            self.set_repeat(arg)
        elif cmd == "t":
            self.speak(arg)
        elif cmd == "bm":
            self.bookmark_menu()
        elif cmd == "set":
            SettingsMenu(self.settings).run()
            self.metrics.track_event("settings_change")
        elif cmd == "dl":
            self.prefetch(arg)
        elif cmd == "stats":
            self.show_insights()
        elif cmd == "rev":
            self.data_handler.toggle_arabic_reversal()
            print(Fore.GREEN + f"✓ Arabic reversal {'on' if self.data_handler.arabic_reversed else 'off'}.")
        elif cmd in ("h", "help", ""):
            self.display_commands()
        else:
            print(Fore.YELLOW + f"Unknown command '{cmd}'. Type 'h' for help.")
            sleep(0.5)
        return True

    def run(self):
        self.metrics.start_session()
        self.clear_terminal()
        self.display_header()
        self.display_commands()
        try:
            while True:
                self.display_position()
                try:
                    line = input(Fore.RED + "┌─ " + Style.BRIGHT + "Command" + Style.RESET_ALL + "\n" + Fore.RED + "└──╼ ❯ " + Fore.WHITE)
                except EOFError:
                    break
                if not self.handle(line):
                    break
        finally:
            self.finish_reading()
            self.metrics.end_session()
            if self._engine is not None:
                self._engine.close()


def main():
    init(autoreset=True)
    try:
        IqraApp().run()
        print(Fore.GREEN + "Assalamu alaikum 👋")
        sys.exit(0)
    except KeyboardInterrupt:
        print(Style.BRIGHT + Fore.YELLOW + "\n⚠ Interrupted.")
        sys.exit(1)


if __name__ == "__main__":
    main()
