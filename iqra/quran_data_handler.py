# iqra/quran_data_handler.py
import json
import re
import sys
from pathlib import Path
from typing import Dict, List, Optional, Type, TypeVar

import arabic_reshaper
from bidi.algorithm import get_display
from colorama import Fore, Style
from pydantic import BaseModel, ValidationError

from .models import (
    Ayah, Hizb, Juz, MushafPage, SearchOptions, SearchResult, Surah,
    Translation, Transliteration,
)
from .navigator import Navigator, SchemeLike

Record = TypeVar("Record", Ayah, Translation, Transliteration)


class QuranDataHandler:
    """Verse text, translations and transliterations from local JSON files.

    Files are read lazily from ``data_dir``:

        quran-uthmani.json
        translations/<lang>_sahih.json
        transliterations/<lang>_transliteration.json

    Each is a flat list of ``{surah, ayah, text}`` records. A missing or
    malformed file is reported once and behaves as an empty dataset.
    """
    QURAN_FILENAME = "quran-uthmani.json"
    TRANSLATION_PATTERN = "translations/{language}_sahih.json"
    TRANSLITERATION_PATTERN = "transliterations/{language}_transliteration.json"
    DEFAULT_SEARCH_LIMIT = 50

    def __init__(self, data_dir: Path, navigator: Navigator):
        self.data_dir = Path(data_dir)
        self.navigator = navigator
        # file name -> {surah -> records}
        self._datasets: Dict[str, Dict[int, list]] = {}
        self.arabic_reversed = False

    # --- Reference lists ---

    def get_surahs(self) -> List[Surah]:
        return list(self.navigator.data.surahs)

    def get_juz(self) -> List[Juz]:
        return list(self.navigator.data.juz)

    def get_hizb(self) -> List[Hizb]:
        return list(self.navigator.data.hizb)

    def get_mushaf_pages(self) -> List[MushafPage]:
        return list(self.navigator.data.pages)

    def get_surah_info(self, surah_number: int) -> Optional[Surah]:
        return next((s for s in self.navigator.data.surahs if s.index == surah_number), None)

    # --- Loading ---

    def _load_dataset(self, filename: str, model: Type[BaseModel], label: str) -> Dict[int, list]:
        if filename in self._datasets:
            return self._datasets[filename]

        by_surah: Dict[int, list] = {}
        path = self.data_dir / filename
        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            for item in raw:
                record = model(**item)
                by_surah.setdefault(record.surah, []).append(record)
            for records in by_surah.values():
                records.sort(key=lambda r: r.ayah)
        except FileNotFoundError:
            print(f"{Fore.YELLOW}Warning: {label} file not found at {path}{Style.RESET_ALL}", file=sys.stderr)
        except json.JSONDecodeError as e:
            print(f"{Fore.RED}Error: Failed to parse {label} file ({path}): {e}{Style.RESET_ALL}", file=sys.stderr)
            by_surah = {}
        except (ValidationError, TypeError) as e:
            print(f"{Fore.RED}Error: Invalid {label} record in {path}: {e}{Style.RESET_ALL}", file=sys.stderr)
            by_surah = {}

        self._datasets[filename] = by_surah
        return by_surah

    def _quran(self) -> Dict[int, List[Ayah]]:
        return self._load_dataset(self.QURAN_FILENAME, Ayah, "Quran text")

    def _translations(self, language: str) -> Dict[int, List[Translation]]:
        return self._load_dataset(self.TRANSLATION_PATTERN.format(language=language), Translation, f"{language} translation")

    def _transliterations(self, language: str) -> Dict[int, List[Transliteration]]:
        return self._load_dataset(self.TRANSLITERATION_PATTERN.format(language=language), Transliteration, f"{language} transliteration")

    # --- Per surah / per verse ---

    def get_ayahs(self, surah: int) -> List[Ayah]:
        return list(self._quran().get(surah, []))

    def get_ayah(self, surah: int, ayah: int) -> Optional[Ayah]:
        return next((a for a in self.get_ayahs(surah) if a.ayah == ayah), None)

    def get_translations(self, surah: int, language: str = "en") -> List[Translation]:
        return list(self._translations(language).get(surah, []))

    def get_translation(self, surah: int, ayah: int, language: str = "en") -> Optional[Translation]:
        return next((t for t in self.get_translations(surah, language) if t.ayah == ayah), None)

    def get_transliterations(self, surah: int, language: str = "en") -> List[Transliteration]:
        return list(self._transliterations(language).get(surah, []))

    def get_transliteration(self, surah: int, ayah: int, language: str = "en") -> Optional[Transliteration]:
        return next((t for t in self.get_transliterations(surah, language) if t.ayah == ayah), None)

    # --- Per division (juz, hizb, mushaf page, or surah) ---

    def _slice(self, scheme: SchemeLike, index: int, by_surah: Dict[int, List[Record]]) -> List[Record]:
        division = self.navigator.get_division(scheme, index)
        if division is None:
            return []
        start, end = division.start, division.end
        collected = []
        for surah_num in range(start.surah, end.surah + 1):
            for record in by_surah.get(surah_num, []):
                if surah_num == start.surah and record.ayah < start.ayah:
                    continue
                if surah_num == end.surah and record.ayah > end.ayah:
                    continue
                collected.append(record)
        return collected

    def get_division_ayahs(self, scheme: SchemeLike, index: int) -> List[Ayah]:
        return self._slice(scheme, index, self._quran())

    def get_division_translations(self, scheme: SchemeLike, index: int, language: str = "en") -> List[Translation]:
        return self._slice(scheme, index, self._translations(language))

    def get_division_transliterations(self, scheme: SchemeLike, index: int, language: str = "en") -> List[Transliteration]:
        return self._slice(scheme, index, self._transliterations(language))

    # --- Search ---

    def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        """Case-insensitive substring search over the Arabic text."""
        if not query or not query.strip():
            return []
        options = options or SearchOptions()
        limit = options.limit or self.DEFAULT_SEARCH_LIMIT
        language = options.language or "en"
        term = query.strip().lower()

        quran = self._quran()
        surahs = [options.surah] if options.surah else sorted(quran)
        results: List[SearchResult] = []
        for surah_num in surahs:
            for ayah in quran.get(surah_num, []):
                if len(results) >= limit:
                    return results
                if term in ayah.text.lower():
                    translation = self.get_translation(ayah.surah, ayah.ayah, language)
                    results.append(SearchResult(
                        surah=ayah.surah,
                        ayah=ayah.ayah,
                        text=ayah.text,
                        translation=translation.text if translation else None,
                        highlight=self.highlight_text(ayah.text, term),
                    ))
        return results

    @staticmethod
    def highlight_text(text: str, term: str) -> str:
        pattern = re.compile(f"({re.escape(term)})", re.IGNORECASE)
        return pattern.sub(r"<mark>\1</mark>", text)

    # --- Display ---

    def toggle_arabic_reversal(self):
        """Toggles the arabic_reversed flag."""
        self.arabic_reversed = not self.arabic_reversed

    def fix_arabic_text(self, text: str) -> str:
        """Reshapes and applies BiDi algorithm, optionally reversing for display."""
        if not text:
            return ""
        try:
            bidi_text = str(get_display(arabic_reshaper.reshape(text)))
        except Exception as e:
            print(f"{Fore.YELLOW}Warning: Error processing Arabic text ('{text[:20]}...'): {e}{Style.RESET_ALL}", file=sys.stderr)
            return text
        if self.arabic_reversed:
            return "".join(reversed(bidi_text))
        return bidi_text
