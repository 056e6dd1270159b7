"""
Text comparison primitives used by the duplicate detector.

- normalize_text: canonical form for equality checks (lowercase, no
  punctuation, single spaces).
- parse_citation / citation_key: turn "Book Chapter:Verse[-Verse]" into a
  ParsedCitation, or a whitespace-free key for exact reference matching.
- citations_overlap: same book + chapter and intersecting verse ranges.
- is_soft_match: containment or significant-word overlap ratio.

Book names are only case/whitespace folded. "Psalm" and "Psalms" are different
books here; see DESIGN.md.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set

SOFT_MATCH_THRESHOLD = 0.6
SIGNIFICANT_WORD_MIN_LEN = 4

_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")

# "Matthew 1:1-3", "Psalm 23:1", "1 John 3:16-18", "Song of Solomon 2:4"
_CITATION_RE = re.compile(
    r"^(\d?\s*[A-Za-z]+(?:\s+[A-Za-z]+){0,2})\s+(\d+)\s*:\s*(\d+)(?:\s*[-–—]\s*(\d+))?$"
)


@dataclass(frozen=True)
class ParsedCitation:
    book: str
    chapter: int
    verse_start: int
    verse_end: int


def normalize_text(text: Optional[str]) -> str:
    if not text:
        return ""
    text = _PUNCT_RE.sub("", text.lower())
    # "_" survives \w, strip it like the rest of the punctuation
    text = text.replace("_", "")
    return _SPACE_RE.sub(" ", text).strip()


def _fold_book(book: str) -> str:
    return _SPACE_RE.sub(" ", book.lower()).strip()


def parse_citation(ref: Optional[str]) -> Optional[ParsedCitation]:
    """Parse a scripture-style reference. Returns None for free-form text."""
    if not ref:
        return None
    match = _CITATION_RE.match(ref.strip())
    if not match:
        return None

    book = _fold_book(match.group(1))
    chapter = int(match.group(2))
    start = int(match.group(3))
    end = int(match.group(4)) if match.group(4) else start
    if end < start:
        start, end = end, start
    return ParsedCitation(book=book, chapter=chapter, verse_start=start, verse_end=end)


def citation_key(ref: Optional[str]) -> str:
    """Exact-reference key. Catches the same verse returned in another translation."""
    if not ref:
        return ""
    return _SPACE_RE.sub("", ref.lower())


def citations_overlap(a: Optional[ParsedCitation], b: Optional[ParsedCitation]) -> bool:
    if a is None or b is None:
        return False
    if a.book != b.book or a.chapter != b.chapter:
        return False
    return a.verse_start <= b.verse_end and a.verse_end >= b.verse_start


def significant_words(normalized: str) -> List[str]:
    return [w for w in normalized.split(" ") if len(w) >= SIGNIFICANT_WORD_MIN_LEN]


def word_overlap_ratio(candidate: str, existing: str) -> float:
    return _overlap_ratio(
        significant_words(normalize_text(candidate)),
        set(significant_words(normalize_text(existing))),
    )


def _overlap_ratio(cand_words: Sequence[str], existing_words: Set[str]) -> float:
    if not cand_words:
        return 0.0
    matching = sum(1 for w in cand_words if w in existing_words)
    return matching / len(cand_words)


def soft_match_normalized(
    norm_cand: str,
    cand_words: Sequence[str],
    norm_existing: str,
    existing_words: Set[str],
    threshold: float = SOFT_MATCH_THRESHOLD,
) -> bool:
    """is_soft_match on pre-normalized inputs, for scanning a large corpus."""
    if not norm_cand or not norm_existing:
        return False

    if norm_cand == norm_existing:
        return True

    # Quotes often come back with a word trimmed or a clause added
    if norm_cand in norm_existing or norm_existing in norm_cand:
        return True

    return _overlap_ratio(cand_words, existing_words) >= threshold


def is_soft_match(candidate: str, existing: str, threshold: float = SOFT_MATCH_THRESHOLD) -> bool:
    norm_cand = normalize_text(candidate)
    norm_existing = normalize_text(existing)
    return soft_match_normalized(
        norm_cand,
        significant_words(norm_cand),
        norm_existing,
        set(significant_words(norm_existing)),
        threshold,
    )
