from __future__ import annotations

from pathlib import Path

from codenames.assets.singleton import init_words
from codenames.assets.words import WordBank


def init_words_for_app() -> WordBank:
    # project root is two levels up from this file: codenames/assets/startup.py
    project_root = Path(__file__).resolve().parents[2]
    return init_words(project_root=project_root)
