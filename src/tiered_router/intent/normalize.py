"""Text normalization and tokenization for keyword matching.

All functions are pure: identical input yields identical output, which the
fast-path determinism guarantees rely on.
"""

from __future__ import annotations

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_EDGE_PUNCT = "¿?¡!.,;:\"'()[]{}«»…"

# Checked in order; the first matching suffix is stripped
_STEM_SUFFIXES: tuple[str, ...] = (
    # Spanish gerunds, nouns, adverbs, infinitives
    "iendo",
    "ando",
    "cion",
    "sion",
    "mente",
    "ar",
    "er",
    "ir",
    # English
    "ing",
    "tion",
    "ly",
)
_MIN_STEM_LEN = 2


def remove_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(text: str) -> str:
    """Lowercase, trim and strip diacritics."""
    return remove_accents((text or "").lower().strip())


def basic_stem(word: str) -> str:
    for suffix in _STEM_SUFFIXES:
        if word.endswith(suffix) and len(word) - len(suffix) >= _MIN_STEM_LEN:
            return word[: -len(suffix)]
    return word


def tokenize(text: str, stem: bool = False) -> list[str]:
    """Split normalized text into words longer than one character."""
    words: list[str] = []
    for raw in _WHITESPACE_RE.split(normalize(text)):
        word = raw.strip(_EDGE_PUNCT)
        if len(word) > 1:
            words.append(word)
    if stem:
        return [basic_stem(w) for w in words]
    return words
