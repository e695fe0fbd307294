from __future__ import annotations

import re
import unicodedata
from typing import Iterable

from .entities import Release


_PARENS_CHARS_PATTERN = re.compile(r"[\(\)\[\]\{\}]")
# Keep all unicode word characters and spaces; strip punctuation/symbols. Then remove underscores separately.
_NON_WORD_SPACE_PATTERN = re.compile(r"[^\w\s]", re.UNICODE)
_MULTISPACE_PATTERN = re.compile(r"\s+")


def _strip_diacritics(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text)
    return "".join(c for c in normalized if not unicodedata.combining(c))


def normalize_string(value: str) -> str:
    """Lowercase, strip diacritics and punctuation, collapse whitespace.

    Bracketed qualifiers are kept as words: "Song (Deluxe)" and "Song" are
    different releases, while "Song [Deluxe]" and "song - deluxe" are not.
    """
    value = value or ""
    value = _strip_diacritics(value)
    value = value.lower()
    value = value.replace("&", " and ")
    value = _PARENS_CHARS_PATTERN.sub(" ", value)
    value = _NON_WORD_SPACE_PATTERN.sub(" ", value)
    # Replace underscores that \w preserved
    value = value.replace("_", " ")
    value = _MULTISPACE_PATTERN.sub(" ", value).strip()
    return value


def normalize_artist_ids(artist_ids: Iterable[str]) -> str:
    return ",".join(sorted(a for a in artist_ids or [] if a))


def build_release_signature(release: Release) -> str:
    """Stable name signature of a release: normalized title plus its sorted artist ids."""
    return f"{normalize_string(release.title)}::{normalize_artist_ids(release.artist_ids)}"
