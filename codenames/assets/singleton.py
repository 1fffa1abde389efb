from __future__ import annotations

from pathlib import Path

from codenames.assets.words import WordBank, load_word_bank


_WORDS: WordBank | None = None


def init_words(*, project_root: Path) -> WordBank:
    """Load the word bank once and cache it.

    Safe to call multiple times; subsequent calls return the already loaded instance.
    """

    global _WORDS
    if _WORDS is None:
        _WORDS = load_word_bank(root=project_root)
    return _WORDS


def reset_words_for_tests() -> None:
    global _WORDS
    _WORDS = None


def get_words() -> WordBank:
    if _WORDS is None:
        raise RuntimeError("Word bank not initialized. Call init_words() at startup.")
    return _WORDS
