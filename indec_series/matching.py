"""Text normalization, code generation and fuzzy name matching."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

MAX_CODE_LENGTH = 20
MIN_REVERSE_MATCH = 3

FOOTNOTE_PATTERN = re.compile(r"\(\s*\d+\s*\)|\*+$")


def strip_accents(value: str) -> str:
    txt = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in txt if not unicodedata.combining(ch))


def normalize_text(value: Any) -> str:
    """Lowercase, accent-free, footnote-free text with collapsed whitespace."""
    if value is None:
        return ""
    txt = strip_accents(str(value).strip().lower())
    txt = FOOTNOTE_PATTERN.sub(" ", txt)
    txt = re.sub(r"\s+", " ", txt)
    return txt.strip()


def generate_code(name: str) -> str:
    """Short machine key for a category name.

    ``"Alimentos y bebidas no alcohólicas"`` becomes ``"ALIMENTOS"``: codes
    longer than 20 characters keep their first token when it has at least 8
    characters, else the first three characters of every token.
    """
    code = strip_accents(str(name)).upper()
    code = re.sub(r"\s+", "_", code.strip())
    code = re.sub(r"[^A-Z0-9_]", "", code)
    code = re.sub(r"_+", "_", code).strip("_")

    if len(code) <= MAX_CODE_LENGTH:
        return code

    parts = [part for part in code.split("_") if part]
    if len(parts) == 1:
        return parts[0][:MAX_CODE_LENGTH]
    if len(parts[0]) >= 8:
        return parts[0]
    return "_".join(part[:3] for part in parts)


@dataclass(frozen=True)
class NamePattern:
    """An expected entity name and the key it resolves to.

    ``aliases`` replace ``name`` as match terms when given; ``exact`` patterns
    only match on normalized equality.
    """

    name: str
    code: str
    category: str = "entity"
    aliases: Tuple[str, ...] = ()
    exact: bool = False

    @property
    def terms(self) -> Tuple[str, ...]:
        return self.aliases or (self.name,)


def _term_matches(text: str, term: str, exact: bool) -> bool:
    if not term:
        return False
    if exact:
        return text == term
    if term in text:
        return True
    return len(text) >= MIN_REVERSE_MATCH and text in term


def match_name(value: Any, patterns: Sequence[NamePattern]) -> Optional[NamePattern]:
    """First pattern (in order) whose terms contain or are contained in ``value``."""
    text = normalize_text(value)
    if not text:
        return None
    for pattern in patterns:
        for term in pattern.terms:
            if _term_matches(text, normalize_text(term), pattern.exact):
                return pattern
    return None


def patterns_from_names(names: Sequence[str], category: str = "entity", prefix: str = "") -> Tuple[NamePattern, ...]:
    """Build patterns whose codes come from ``generate_code``."""
    return tuple(
        NamePattern(name=name, code=f"{prefix}{generate_code(name)}", category=category)
        for name in names
    )
