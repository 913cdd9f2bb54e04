# iqra/navigator.py
import bisect
import json
import sys
from typing import Dict, List, Literal, Optional, Union

from colorama import Fore, Style
from pydantic import ValidationError

from .models import Division, DivisionScheme, Hizb, Juz, MushafPage, Surah, VerseAddress
from .utils import get_app_path

SchemeLike = Union[DivisionScheme, str]
Direction = Literal["prev", "next"]

DATABASE_FILES = {
    "surahs": "database/surahs.json",
    "juz": "database/juz.json",
    "hizb": "database/hizb.json",
    "mushaf": "database/mushaf-pages.json",
}


def _load_records(filename: str, model, label: str) -> list:
    """Load one bundled reference list. Failures are reported and yield []."""
    path = get_app_path(filename, writable=False)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
        return [model(**item) for item in raw]
    except FileNotFoundError:
        print(f"{Fore.RED}Fatal Error: {label} data not found at {path}{Style.RESET_ALL}", file=sys.stderr)
    except json.JSONDecodeError as e:
        print(f"{Fore.RED}Fatal Error: Failed to parse {label} data ({path}): {e}{Style.RESET_ALL}", file=sys.stderr)
    except (ValidationError, TypeError) as e:
        print(f"{Fore.RED}Fatal Error: Invalid {label} records in {path}: {e}{Style.RESET_ALL}", file=sys.stderr)
    return []


class ReferenceData:
    """The four read-only partition tables, loaded once."""

    def __init__(self, surahs: List[Surah], juz: List[Juz], hizb: List[Hizb], pages: List[MushafPage]):
        self.surahs = sorted(surahs, key=lambda s: s.index)
        self.juz = sorted(juz, key=lambda j: j.index)
        self.hizb = sorted(hizb, key=lambda h: h.index)
        self.pages = sorted(pages, key=lambda p: p.page)

    @classmethod
    def load_bundled(cls) -> "ReferenceData":
        return cls(
            surahs=_load_records(DATABASE_FILES["surahs"], Surah, "Surah"),
            juz=_load_records(DATABASE_FILES["juz"], Juz, "Juz"),
            hizb=_load_records(DATABASE_FILES["hizb"], Hizb, "Hizb"),
            pages=_load_records(DATABASE_FILES["mushaf"], MushafPage, "Mushaf page"),
        )


class Navigator:
    """Division lookup, stepping and cross-scheme conversion.

    Conversion between schemes is deliberately approximate: it answers
    "jump near here", not "which page holds this verse". Use ``locate`` for
    an exact containing-division lookup.
    """

    def __init__(self, data: Optional[ReferenceData] = None):
        self.data = data or ReferenceData.load_bundled()
        self._verse_counts: Dict[int, int] = {s.index: s.verses for s in self.data.surahs}
        self._records = {
            DivisionScheme.JUZ: {j.index: j for j in self.data.juz},
            DivisionScheme.HIZB: {h.index: h for h in self.data.hizb},
            DivisionScheme.MUSHAF: {p.page: p for p in self.data.pages},
        }
        self._divisions: Dict[DivisionScheme, List[Division]] = {
            scheme: self._build(scheme) for scheme in DivisionScheme
        }
        self._starts = {
            scheme: [d.start for d in divisions] for scheme, divisions in self._divisions.items()
        }
        problems = self.validate()
        if problems:
            print(f"{Fore.YELLOW}Warning: Reference data has {len(problems)} boundary problem(s); first: {problems[0]}{Style.RESET_ALL}", file=sys.stderr)

    # --- Construction ---

    def _build(self, scheme: DivisionScheme) -> List[Division]:
        if scheme is DivisionScheme.SURAH:
            return [
                Division(
                    scheme=scheme, index=s.index,
                    start=VerseAddress(surah=s.index, ayah=1),
                    end=VerseAddress(surah=s.index, ayah=s.verses),
                    display_name=f"{s.name_en} ({s.name_ar})",
                )
                for s in self.data.surahs
            ]
        if scheme is DivisionScheme.JUZ:
            return [
                Division(scheme=scheme, index=j.index, start=j.start, end=j.end,
                         display_name=j.name_en or j.name)
                for j in self.data.juz
            ]
        if scheme is DivisionScheme.HIZB:
            return [
                Division(scheme=scheme, index=h.index, start=h.start, end=h.end,
                         display_name=h.name_en or h.name)
                for h in self.data.hizb
            ]
        return [
            Division(scheme=scheme, index=p.page, start=p.start, end=p.end,
                     display_name=f"Page {p.page}")
            for p in self.data.pages
        ]

    # --- Verse-address helpers ---

    def surah_verse_count(self, surah: int) -> int:
        return self._verse_counts.get(surah, 0)

    @property
    def last_address(self) -> VerseAddress:
        last = max(self._verse_counts) if self._verse_counts else 114
        return VerseAddress(surah=last, ayah=self._verse_counts.get(last, 1))

    def following(self, address: VerseAddress) -> Optional[VerseAddress]:
        """The verse right after ``address`` (rolling into the next surah), or None at the end."""
        if address.ayah < self.surah_verse_count(address.surah):
            return VerseAddress(surah=address.surah, ayah=address.ayah + 1)
        if address.surah < 114 and (address.surah + 1) in self._verse_counts:
            return VerseAddress(surah=address.surah + 1, ayah=1)
        return None

    def preceding(self, address: VerseAddress) -> Optional[VerseAddress]:
        if address.ayah > 1:
            return VerseAddress(surah=address.surah, ayah=address.ayah - 1)
        if address.surah > 1 and (address.surah - 1) in self._verse_counts:
            return VerseAddress(surah=address.surah - 1, ayah=self.surah_verse_count(address.surah - 1))
        return None

    # --- Public contract ---

    @staticmethod
    def max_index(scheme: SchemeLike) -> int:
        return DivisionScheme(scheme).max_index

    def divisions(self, scheme: SchemeLike) -> List[Division]:
        return list(self._divisions[DivisionScheme(scheme)])

    def get_division(self, scheme: SchemeLike, index: int) -> Optional[Division]:
        """Division ``index`` of ``scheme``, or None when out of range."""
        scheme = DivisionScheme(scheme)
        if index < 1 or index > scheme.max_index:
            return None
        divisions = self._divisions[scheme]
        # Tables are dense and 1-based, fall back to a scan if one is not
        if index <= len(divisions) and divisions[index - 1].index == index:
            return divisions[index - 1]
        return next((d for d in divisions if d.index == index), None)

    def step(self, scheme: SchemeLike, current_index: int, direction: Direction) -> int:
        """Move one division back or forward, clamped to ``[1, max]``."""
        scheme = DivisionScheme(scheme)
        if direction == "prev":
            target = current_index - 1
        elif direction == "next":
            target = current_index + 1
        else:
            raise ValueError(f"direction must be 'prev' or 'next', got {direction!r}")
        if target < 1 or target > scheme.max_index:
            return self._clamp(scheme, current_index)
        return target

    def convert(self, from_scheme: SchemeLike, from_index: int, to_scheme: SchemeLike) -> int:
        """Best-effort position of ``from_scheme[from_index]`` in ``to_scheme``.

        Never fails; falls back to 1 when there is nothing better to go on.
        """
        from_scheme = DivisionScheme(from_scheme)
        to_scheme = DivisionScheme(to_scheme)
        if from_scheme is to_scheme:
            return self._clamp(to_scheme, from_index)
        if self.get_division(from_scheme, from_index) is None:
            return 1

        target = 1
        if to_scheme is DivisionScheme.SURAH:
            record = self._records[from_scheme].get(from_index)
            if record is not None:
                target = record.start_surah
        elif to_scheme is DivisionScheme.JUZ:
            if from_scheme is DivisionScheme.SURAH:
                juz = next((j for j in self.data.juz if j.start_surah <= from_index <= j.end_surah), None)
                target = juz.index if juz else 1
            elif from_scheme is DivisionScheme.HIZB:
                hizb = self._records[DivisionScheme.HIZB].get(from_index)
                target = hizb.juz if hizb else 1
        elif to_scheme is DivisionScheme.HIZB:
            if from_scheme is DivisionScheme.JUZ:
                # First quarter of the juz
                target = (from_index - 1) * 4 + 1
        elif to_scheme is DivisionScheme.MUSHAF:
            # Linear estimate, not a page lookup
            target = min(from_index * 5, DivisionScheme.MUSHAF.max_index)

        return self._clamp(to_scheme, target)

    def locate(self, scheme: SchemeLike, address: VerseAddress) -> Optional[Division]:
        """Exact division of ``scheme`` containing ``address``."""
        scheme = DivisionScheme(scheme)
        pos = bisect.bisect_right(self._starts[scheme], address) - 1
        if pos < 0:
            return None
        division = self._divisions[scheme][pos]
        return division if division.contains(address) else None

    def verse_range(self, scheme: SchemeLike, index: int) -> List[VerseAddress]:
        """Every verse address covered by a division, in order."""
        division = self.get_division(scheme, index)
        if division is None:
            return []
        addresses = []
        current = division.start
        while current is not None and current <= division.end:
            addresses.append(current)
            current = self.following(current)
        return addresses

    def validate(self) -> List[str]:
        """Check every scheme is contiguous and exhaustive; returns problems found."""
        problems = []
        first = VerseAddress(surah=1, ayah=1)
        last = self.last_address
        for scheme, divisions in self._divisions.items():
            if len(divisions) != scheme.max_index:
                problems.append(f"{scheme.value}: expected {scheme.max_index} divisions, found {len(divisions)}")
                continue
            if divisions[0].start != first:
                problems.append(f"{scheme.value} 1 starts at {divisions[0].start}")
            if divisions[-1].end != last:
                problems.append(f"{scheme.value} {scheme.max_index} ends at {divisions[-1].end}")
            for prev, nxt in zip(divisions, divisions[1:]):
                if self.following(prev.end) != nxt.start:
                    problems.append(f"{scheme.value} {prev.index} ends at {prev.end} but {nxt.index} starts at {nxt.start}")
        return problems

    @staticmethod
    def _clamp(scheme: DivisionScheme, index: int) -> int:
        return max(1, min(index, scheme.max_index))


_default_navigator: Optional[Navigator] = None


def get_navigator() -> Navigator:
    """Shared Navigator over the bundled tables (loaded on first use)."""
    global _default_navigator
    if _default_navigator is None:
        _default_navigator = Navigator()
    return _default_navigator
