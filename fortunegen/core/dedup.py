"""
Layered duplicate detection.

A RunContext holds everything a candidate must differ from: the historical
baseline (archived items included) plus every item accepted earlier in the same
run. DuplicateDetector walks the cheap checks first and only asks the semantic
judge when all of them pass:

  1. exact      normalized content already seen
  2. citation   same reference key, or overlapping verse range (citation categories)
  3. soft       containment / significant-word overlap against any raw content
  4. semantic   LLM judge (categories with semantic_check only)

admit() folds an accepted candidate into the context right away, so the next
candidate of the same batch is checked against it.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Set

from loguru import logger

from .categories import strategy_for
from .models import BaselineItem, Candidate, SourceType
from .text import (
    SOFT_MATCH_THRESHOLD,
    ParsedCitation,
    citation_key,
    citations_overlap,
    normalize_text,
    parse_citation,
    significant_words,
    soft_match_normalized,
)

JUDGE_CONTEXT_LIMIT = 25


class DuplicateJudge(Protocol):
    def is_duplicate(self, candidate: str, prior_items: List[str]) -> bool: ...


@dataclass
class _SeenItem:
    content: str
    normalized: str
    words: Set[str]
    source_type: Optional[SourceType]
    author: Optional[str]
    reference: Optional[str]
    from_run: bool


@dataclass
class _SeenCitation:
    reference: str
    parsed: ParsedCitation


@dataclass
class DuplicateVerdict:
    accepted: bool
    reason: Optional[str] = None
    matched: Optional[str] = None

    def __bool__(self) -> bool:
        return self.accepted


@dataclass
class RunContext:
    """Run-scoped set of everything already seen. Not thread-safe; fork() per task."""
    normalized: Set[str] = field(default_factory=set)
    citation_keys: Set[str] = field(default_factory=set)
    citations: List[_SeenCitation] = field(default_factory=list)
    items: List[_SeenItem] = field(default_factory=list)

    @classmethod
    def from_baseline(cls, baseline: Iterable[BaselineItem]) -> "RunContext":
        ctx = cls()
        for item in baseline:
            ctx.add(
                item.content,
                source_type=item.source_type,
                author=item.author,
                reference=item.reference,
                from_run=False,
            )
        return ctx

    def fork(self) -> "RunContext":
        return copy.deepcopy(self)

    def __len__(self) -> int:
        return len(self.items)

    def add(
        self,
        content: str,
        source_type: Optional[SourceType] = None,
        author: Optional[str] = None,
        reference: Optional[str] = None,
        from_run: bool = True,
    ) -> None:
        normalized = normalize_text(content)
        if normalized:
            self.normalized.add(normalized)
        self.items.append(
            _SeenItem(
                content=content,
                normalized=normalized,
                words=set(significant_words(normalized)),
                source_type=source_type,
                author=author,
                reference=reference,
                from_run=from_run,
            )
        )
        if reference:
            key = citation_key(reference)
            if key:
                self.citation_keys.add(key)
            parsed = parse_citation(reference)
            if parsed is not None:
                self.citations.append(_SeenCitation(reference=reference, parsed=parsed))

    def add_candidate(self, candidate: Candidate) -> None:
        self.add(
            candidate.content,
            source_type=candidate.source_type,
            author=candidate.author,
            reference=candidate.reference,
            from_run=True,
        )

    def run_items(self) -> List[str]:
        return [i.content for i in self.items if i.from_run]

    def judge_context(self, source_type: SourceType, limit: int = JUDGE_CONTEXT_LIMIT) -> List[str]:
        """Prior items for the semantic judge: this run's acceptances first, newest first."""
        from_run = [i.content for i in reversed(self.items) if i.from_run]
        baseline = [
            i.content
            for i in reversed(self.items)
            if not i.from_run and i.source_type == source_type
        ]
        return (from_run + baseline)[:limit]

    # --- exclusion hints fed back into prompts ---

    def recent_references(self, source_type: SourceType, limit: int = 100) -> List[str]:
        refs = [
            i.reference
            for i in reversed(self.items)
            if i.reference and (i.source_type in (None, source_type))
        ]
        return list(dict.fromkeys(refs))[:limit]

    def known_authors(self, source_type: SourceType, limit: int = 30) -> List[str]:
        authors = [
            i.author
            for i in reversed(self.items)
            if i.author and i.source_type in (None, source_type)
        ]
        return list(dict.fromkeys(authors))[:limit]

    def samples(self, source_type: SourceType, limit: int = 20) -> List[str]:
        return [i.content for i in reversed(self.items) if i.source_type == source_type][:limit]


class DuplicateDetector:
    def __init__(
        self,
        judge: Optional[DuplicateJudge] = None,
        soft_match_threshold: float = SOFT_MATCH_THRESHOLD,
        judge_context_limit: int = JUDGE_CONTEXT_LIMIT,
        use_semantic: bool = True,
    ):
        self.judge = judge
        self.soft_match_threshold = soft_match_threshold
        self.judge_context_limit = judge_context_limit
        self.use_semantic = use_semantic
        self.judge_calls = 0

    def check(self, candidate: Candidate, context: RunContext) -> DuplicateVerdict:
        strategy = strategy_for(candidate.source_type)
        normalized = normalize_text(candidate.content)

        # Nothing left to compare once punctuation is gone
        if not normalized:
            return self._reject(candidate, "empty", None)

        # 1. Exact (normalized)
        if normalized in context.normalized:
            return self._reject(candidate, "exact", None)

        # 2. Reference key / verse range
        if strategy.has_citation and candidate.reference:
            key = citation_key(candidate.reference)
            if key and key in context.citation_keys:
                return self._reject(candidate, "citation", candidate.reference)

            parsed = parse_citation(candidate.reference)
            if parsed is not None:
                for seen in context.citations:
                    if citations_overlap(parsed, seen.parsed):
                        return self._reject(candidate, "overlap", seen.reference)

        # 3. Soft match against everything
        words = significant_words(normalized)
        for seen in context.items:
            if soft_match_normalized(normalized, words, seen.normalized, seen.words, self.soft_match_threshold):
                return self._reject(candidate, "soft", seen.content)

        # 4. Semantic judge
        if self.use_semantic and self.judge is not None and strategy.semantic_check:
            prior = context.judge_context(candidate.source_type, self.judge_context_limit)
            if prior:
                self.judge_calls += 1
                if self.judge.is_duplicate(candidate.content, prior):
                    return self._reject(candidate, "semantic", None)

        return DuplicateVerdict(accepted=True)

    def admit(self, candidate: Candidate, context: RunContext) -> DuplicateVerdict:
        verdict = self.check(candidate, context)
        if verdict.accepted:
            context.add_candidate(candidate)
        return verdict

    def filter(self, candidates: Iterable[Candidate], context: RunContext) -> List[Candidate]:
        """Sequentially admit candidates, returning the accepted ones in order."""
        return [c for c in candidates if self.admit(c, context).accepted]

    @staticmethod
    def _reject(candidate: Candidate, reason: str, matched: Optional[str]) -> DuplicateVerdict:
        if matched:
            logger.debug(f"Skipping {reason} match: \"{candidate.content[:50]}\" matches \"{matched[:50]}\"")
        else:
            logger.debug(f"Skipping {reason} match: \"{candidate.content[:50]}\"")
        return DuplicateVerdict(accepted=False, reason=reason, matched=matched)
