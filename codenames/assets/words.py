from __future__ import annotations

import csv
import os
import random
import re
from dataclasses import dataclass
from pathlib import Path


def _norm_key(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip().casefold()


class AssetLoadError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class WordBank:
    """Pool of board words.

    Words are unique case-insensitively; the display spelling of the first occurrence wins.
    """

    words: tuple[str, ...]

    @staticmethod
    def from_words(words: list[str]) -> "WordBank":
        seen: set[str] = set()
        out: list[str] = []
        for w in words:
            word = re.sub(r"\s+", " ", w).strip()
            key = _norm_key(word)
            if not key or key in seen:
                continue
            seen.add(key)
            out.append(word.upper())
        return WordBank(words=tuple(out))

    def __len__(self) -> int:
        return len(self.words)

    def __contains__(self, item: object) -> bool:
        return isinstance(item, str) and any(_norm_key(item) == _norm_key(w) for w in self.words)

    def draw(self, n: int, rng: random.Random) -> list[str]:
        """Return `n` distinct words."""

        if n < 0:
            raise ValueError("n must be >= 0")
        if n > len(self.words):
            raise ValueError(f"Word bank has {len(self.words)} words, {n} requested")
        return rng.sample(self.words, k=n)


def load_words_csv(path: Path) -> WordBank:
    try:
        with path.open(encoding="utf-8-sig", newline="") as f:
            rows = [[c.strip() for c in row] for row in csv.reader(f)]
    except FileNotFoundError as e:
        raise AssetLoadError(f"Asset file not found: {path}") from e

    rows = [row for row in rows if any(row)]
    if not rows:
        raise AssetLoadError(f"Empty word CSV: {path}")

    header = [c.casefold() for c in rows[0]]
    if header[:1] != ["word"]:
        raise AssetLoadError(f"Unexpected header in {path}: {rows[0]}")

    return WordBank.from_words([row[0] for row in rows[1:] if row and row[0]])


_FALLBACK_WORDS = (
    "Agent", "Alps", "Anchor", "Apple", "Bank", "Bark", "Bat", "Bear", "Bell", "Berlin",
    "Board", "Bolt", "Bond", "Bridge", "Bug", "Cap", "Card", "Castle", "Cell", "Chair",
    "Check", "China", "Circle", "Cloak", "Club", "Code", "Comet", "Copper", "Crane", "Crown",
    "Dance", "Diamond", "Dragon", "Drill", "Eagle", "Engine", "Fair", "Fan", "Field", "Fire",
    "Flute", "Forest", "Ghost", "Glass", "Grace", "Horn", "Ice", "Iron", "Jet", "Key",
    "Knight", "Lemon", "Lion", "Lock", "March", "Mint", "Moon", "Nail", "Net", "Night",
)


def _fallback_words() -> WordBank:
    """Small built-in list used when `assets/words.csv` is missing."""

    return WordBank.from_words(list(_FALLBACK_WORDS))


def load_word_bank(*, root: Path) -> WordBank:
    # Set CODENAMES_STRICT_ASSETS=1 to fail instead of falling back.
    strict = os.getenv("CODENAMES_STRICT_ASSETS", "").strip().lower() in {"1", "true", "yes"}

    try:
        bank = load_words_csv(root / "assets" / "words.csv")
    except AssetLoadError:
        if strict:
            raise
        return _fallback_words()

    if len(bank) < 25:
        raise AssetLoadError(f"words.csv must contain at least 25 distinct words, found {len(bank)}")
    return bank
