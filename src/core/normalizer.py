"""Text normalization applied before any rule comparison (core domain)."""

from __future__ import annotations

import unicodedata
from typing import Optional


def _strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return unicodedata.normalize("NFC", stripped)


def _is_kept(ch: str) -> bool:
    category = unicodedata.category(ch)
    return category.startswith("L") or category == "Nd" or ch.isspace()


def normalize(text: Optional[str], fold_diacritics: bool = True) -> str:
    """Return the canonical comparison form of ``text``.

    Steps:
    - Optionally fold diacritics (NFD, drop combining marks, NFC).
    - Lowercase.
    - Keep only letters, decimal digits and whitespace.

    The result is idempotent and the function never raises, so "Don't" and
    "Café~" compare as "dont" and "cafe".
    """

    if not text:
        return ""
    if fold_diacritics:
        text = _strip_diacritics(text)
    return "".join(ch for ch in text.lower() if _is_kept(ch))
