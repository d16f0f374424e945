"""Text normalization and similarity scoring for title/artist matching.

Handles unicode composition, punctuation variants, casing and whitespace
so that "Don’t Stop" and "dont stop" compare as equal.
"""
from __future__ import annotations

import logging
import re
import unicodedata

from rapidfuzz import fuzz

logger = logging.getLogger(__name__)


def normalize_whitespace(text: str) -> str:
    """Normalize whitespace: collapse multiple spaces, remove leading/trailing."""
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def normalize_punctuation(text: str) -> str:
    """Normalize common punctuation variations."""
    # Smart quotes
    text = text.replace('“', '"').replace('”', '"')
    text = text.replace('‘', "'").replace('’', "'")

    # Dashes
    text = text.replace('–', '-').replace('—', '-')

    return text


def normalize_for_match(text: str | None) -> str:
    """Lowercase, drop punctuation and collapse whitespace.

    Args:
        text: Title or artist string (``None`` is treated as empty)

    Returns:
        Comparison key
    """
    if not text:
        return ""

    text = unicodedata.normalize('NFC', text)
    text = normalize_punctuation(text)
    text = text.lower()
    text = re.sub(r'[^\w\s]', '', text)
    return normalize_whitespace(text)


def similarity(a: str, b: str) -> float:
    """Normalized rapidfuzz similarity in the 0..1 range."""
    return fuzz.ratio(a, b) / 100.0


def song_key(title: str | None, artist: str | None) -> str:
    """The "<title> - <artist>" key used to line up CSV rows with songs."""
    return f"{(title or '').strip()} - {(artist or '').strip()}"
