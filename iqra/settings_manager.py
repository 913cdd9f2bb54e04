# iqra/settings_manager.py
import re
import sys
from typing import Literal

from colorama import Fore, Style
from pydantic import BaseModel, ConfigDict, ValidationError

from .storage import STORAGE_KEYS, LocalStorage

ArabicScript = Literal["uthmani", "indopak"]
FontSize = Literal["small", "medium", "large", "extra-large"]
Theme = Literal["light", "dark", "system"]


class Settings(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    theme: Theme = "system"
    arabic_script: ArabicScript = "uthmani"
    font_size: FontSize = "medium"
    show_translation: bool = True
    translation_language: str = "en"
    show_word_by_word: bool = False
    rtl: bool = False
    audio_enabled: bool = True
    auto_play: bool = False
    notifications: bool = True


class SettingsStore:
    """Reader preferences persisted under ``iqra-settings``."""
    STORAGE_KEY = STORAGE_KEYS["SETTINGS"]
    VERSION = 1

    def __init__(self, storage: LocalStorage):
        self.storage = storage
        self.settings = self._load()

    def _load(self) -> Settings:
        state = self.storage.load_state(self.STORAGE_KEY, self.VERSION)
        if not state:
            return Settings()
        try:
            return Settings(**state)
        except ValidationError as e:
            print(f"{Fore.YELLOW}Warning: Invalid settings data, using defaults: {e}{Style.RESET_ALL}", file=sys.stderr)
            return Settings()

    def save(self):
        self.storage.save_state(self.STORAGE_KEY, self.settings.model_dump(), self.VERSION)

    def set(self, name: str, value) -> None:
        """Validate and persist a single setting. Raises ValidationError on a bad value."""
        if name not in Settings.model_fields:
            raise KeyError(name)
        setattr(self.settings, name, value)
        self.save()

    def set_theme(self, theme: Theme): self.set("theme", theme)
    def set_arabic_script(self, script: ArabicScript): self.set("arabic_script", script)
    def set_font_size(self, size: FontSize): self.set("font_size", size)
    def set_show_translation(self, show: bool): self.set("show_translation", show)
    def set_translation_language(self, language: str): self.set("translation_language", language)
    def set_show_word_by_word(self, show: bool): self.set("show_word_by_word", show)
    def set_rtl(self, rtl: bool): self.set("rtl", rtl)
    def set_audio_enabled(self, enabled: bool): self.set("audio_enabled", enabled)
    def set_auto_play(self, auto_play: bool): self.set("auto_play", auto_play)
    def set_notifications(self, notifications: bool): self.set("notifications", notifications)

    def toggle(self, name: str) -> bool:
        current = getattr(self.settings, name)
        if not isinstance(current, bool):
            raise TypeError(f"Setting '{name}' is not a toggle")
        self.set(name, not current)
        return not current

    def reset(self):
        self.settings = Settings()
        self.save()


class SidebarStore:
    """Sidebar UI state. Only ``is_collapsed`` survives a restart."""
    STORAGE_KEY = STORAGE_KEYS["SIDEBAR"]
    VERSION = 0

    def __init__(self, storage: LocalStorage):
        self.storage = storage
        self.is_mobile_open = False
        state = storage.load_state(self.STORAGE_KEY, self.VERSION) or {}
        collapsed = state.get("is_collapsed", False)
        self.is_collapsed = collapsed if isinstance(collapsed, bool) else False

    def _save(self):
        self.storage.save_state(self.STORAGE_KEY, {"is_collapsed": self.is_collapsed}, self.VERSION)

    def toggle_sidebar(self):
        self.is_collapsed = not self.is_collapsed
        self._save()

    def toggle_mobile_sidebar(self):
        self.is_mobile_open = not self.is_mobile_open

    def set_sidebar_collapsed(self, collapsed: bool):
        self.is_collapsed = collapsed
        self._save()

    def set_mobile_sidebar_open(self, open_: bool):
        self.is_mobile_open = open_


def strip_ansi(s: str) -> str:
    ansi_escape = re.compile(r'\x1B[\[][0-?]*[ -/]*[@-~]')
    return ansi_escape.sub('', s)


class SettingsMenu:
    """Terminal menu over a SettingsStore."""

    TOGGLES = [
        ("show_translation", "Show translation"),
        ("show_word_by_word", "Word-by-word"),
        ("rtl", "Right-to-left layout"),
        ("audio_enabled", "Audio enabled"),
        ("auto_play", "Auto play next ayah"),
        ("notifications", "Notifications"),
    ]
    CHOICES = [
        ("theme", "Theme", ["light", "dark", "system"]),
        ("arabic_script", "Arabic script", ["uthmani", "indopak"]),
        ("font_size", "Font size", ["small", "medium", "large", "extra-large"]),
    ]

    def __init__(self, store: SettingsStore, input_func=input):
        self.store = store
        self.input = input_func

    def render(self) -> str:
        separator = "─" * 55
        settings = self.store.settings
        lines = [Fore.RED + "╭─ " + Style.BRIGHT + Fore.GREEN + "⚙️ Settings", Fore.RED + "├" + separator]

        labels = [label for _, label in self.TOGGLES] + [label for _, label, _ in self.CHOICES]
        label_width = max(len(label) for label in labels) + 2

        for i, (key, label) in enumerate(self.TOGGLES, start=1):
            status = getattr(settings, key)
            status_icon = Fore.GREEN + "✓" if status else Fore.RED + "✗"
            status_text = Fore.GREEN + "Enabled" if status else Fore.RED + "Disabled"
            pad = " " * (label_width - len(label))
            lines.append(Fore.RED + f"│   • {Fore.CYAN}{str(i).rjust(2)}{Fore.WHITE} : {label}{pad} : [{status_icon} {status_text}{Fore.WHITE}]")

        for key, label, options in self.CHOICES:
            pad = " " * (label_width - len(label))
            lines.append(Fore.RED + f"│   • {Fore.CYAN}{key[:2].rjust(2)}{Fore.WHITE} : {label}{pad} : {Fore.YELLOW}{getattr(settings, key)}{Fore.WHITE} ({'/'.join(options)})")

        lines.append(Fore.RED + f"│   • {Fore.CYAN} r{Fore.WHITE} : Reset to defaults")
        lines.append(Fore.RED + f"│   • {Fore.CYAN} b{Fore.WHITE} : Back")
        lines.append(Fore.RED + "╰" + separator + Style.RESET_ALL)
        return "\n".join(lines)

    def handle(self, choice: str) -> bool:
        """Apply one menu choice. Returns False when the user backs out."""
        choice = choice.strip().lower()
        if choice in ('b', 'back', 'q'):
            return False
        if choice == 'r':
            self.store.reset()
            print(f"{Fore.GREEN}✓ Settings reset.{Style.RESET_ALL}")
            return True
        if choice.isdigit():
            index = int(choice) - 1
            if 0 <= index < len(self.TOGGLES):
                key, label = self.TOGGLES[index]
                self.store.toggle(key)
                print(f"{Fore.GREEN}✓ Setting '{label}' updated.{Style.RESET_ALL}")
            else:
                print(Fore.RED + f"❌ Invalid number. Please enter 1-{len(self.TOGGLES)}.")
            return True
        for key, label, options in self.CHOICES:
            if choice == key[:2]:
                current = getattr(self.store.settings, key)
                next_value = options[(options.index(current) + 1) % len(options)]
                self.store.set(key, next_value)
                print(f"{Fore.GREEN}✓ {label} set to {next_value}.{Style.RESET_ALL}")
                return True
        print(Fore.YELLOW + "❌ Invalid option. Please try again.")
        return True

    def run(self):
        while True:
            print(self.render())
            try:
                choice = self.input(Fore.RED + "  ❯ " + Fore.WHITE)
            except (KeyboardInterrupt, EOFError):
                return
            if not self.handle(choice):
                return
