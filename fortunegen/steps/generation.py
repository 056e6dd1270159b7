"""
Candidate generation: one LLM request -> list[Candidate].

The prompt is picked from PROMPT_TMPL_BY_SOURCE_TYPE and gets three optional
blocks: a theme line, the Bible translation (citation categories) and an
exclusion list built from the RunContext (references, authors or samples,
depending on the category strategy).

The response is expected to be a JSON array of {content, author?, reference?},
possibly wrapped in a Markdown code fence. Cleaning mirrors the claim
extraction step: strip fences, strip trailing commas, json.loads. Anything that
is not a list of objects raises ParseError; individual bad entries are dropped.

Errors:
- GenerationError: the endpoint failed (raised by LLMService).
- ParseError: the answer was not a JSON array.
Both are recoverable; the calling loop skips the attempt.
"""

import json
import random
import re
import time
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from ..configs.preprompts import (
    PROMPT_EXCLUDE_AUTHORS,
    PROMPT_EXCLUDE_REFERENCES,
    PROMPT_EXCLUDE_SAMPLES,
    PROMPT_SYSTEM_GENERATE,
    PROMPT_THEME_BLOCK,
    PROMPT_TMPL_BY_SOURCE_TYPE,
)
from ..core.base import PipelineStep
from ..core.categories import strategy_for
from ..core.dedup import JUDGE_CONTEXT_LIMIT, DuplicateDetector, RunContext
from ..core.errors import ConfigError, ParseError
from ..core.llm import LLMService
from ..core.models import Candidate, GenerationState, SourceType, Theme
from ..core.text import SOFT_MATCH_THRESHOLD
from .judge import SemanticJudge

DEFAULT_TRANSLATION = "NIV"


def clean_json(content: str) -> str:
    """Strip Markdown code fences and trailing commas from an LLM JSON answer."""
    content = re.sub(r"^```(?:json)?\s*|\s*```$", "", content.strip(), flags=re.IGNORECASE)
    content = re.sub(r",\s*(?=[\]}])", "", content)
    return content.strip()


def _load_array(raw: str) -> List[Any]:
    cleaned = clean_json(raw or "")
    if not cleaned:
        raise ParseError("Empty response from generator")
    try:
        data = json.loads(cleaned)
    except ValueError:
        # chatty models wrap the array in prose
        start, end = cleaned.find("["), cleaned.rfind("]")
        if start == -1 or end <= start:
            raise ParseError(f"Response is not JSON: {cleaned[:120]!r}")
        try:
            data = json.loads(cleaned[start:end + 1])
        except ValueError as e:
            raise ParseError(f"Response is not valid JSON: {e}") from e

    if isinstance(data, dict):
        lists = [v for v in data.values() if isinstance(v, list)]
        if len(lists) == 1:
            data = lists[0]
    if not isinstance(data, list):
        raise ParseError(f"Expected a JSON array, got {type(data).__name__}")
    return data


def parse_candidates(raw: str, source_type: SourceType) -> List[Candidate]:
    strategy = strategy_for(source_type)
    candidates = []
    for entry in _load_array(raw):
        if isinstance(entry, str):
            entry = {"content": entry}
        if not isinstance(entry, dict):
            continue
        try:
            candidate = Candidate(
                content=entry.get("content") or entry.get("text") or "",
                source_type=source_type,
                author=entry.get("author"),
                reference=entry.get("reference") or entry.get("citation"),
            )
        except ValidationError:
            continue
        if strategy.requires_author and not candidate.author:
            logger.debug(f"Dropping quote without author: \"{candidate.content[:50]}\"")
            continue
        candidates.append(candidate)
    return candidates


def build_exclusion_block(source_type: SourceType, context: Optional[RunContext]) -> str:
    if context is None:
        return ""
    strategy = strategy_for(source_type)
    if strategy.exclusion == "references":
        refs = context.recent_references(source_type)
        return PROMPT_EXCLUDE_REFERENCES.format(items=", ".join(refs)) if refs else ""
    if strategy.exclusion == "authors":
        authors = context.known_authors(source_type)
        return PROMPT_EXCLUDE_AUTHORS.format(items=", ".join(authors)) if authors else ""
    samples = context.samples(source_type)
    if not samples:
        return ""
    return PROMPT_EXCLUDE_SAMPLES.format(items="\n".join(f'- "{s}"' for s in samples))


def build_prompt(
    source_type: SourceType,
    count: int,
    context: Optional[RunContext] = None,
    theme: Optional[Theme] = None,
    translation: Optional[str] = None,
    templates: Optional[Dict[SourceType, str]] = None,
) -> str:
    templates = templates or PROMPT_TMPL_BY_SOURCE_TYPE
    template = templates[SourceType(source_type)]
    theme_block = PROMPT_THEME_BLOCK.format(theme=Theme(theme).value) if theme else ""
    return template.format(
        count=count,
        theme_block=theme_block,
        translation=translation or DEFAULT_TRANSLATION,
        exclusion_block=build_exclusion_block(source_type, context),
    ).strip()


class CandidateGenerator:
    def __init__(
        self,
        llm: LLMService,
        model: str,
        max_tokens: Optional[int] = None,
        system_prompt: str = PROMPT_SYSTEM_GENERATE,
        templates: Optional[Dict[SourceType, str]] = None,
    ):
        self.llm = llm
        self.model = model
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt
        self.templates = templates

    def generate(
        self,
        source_type: SourceType,
        count: int,
        context: Optional[RunContext] = None,
        temperature: float = 0.8,
        theme: Optional[Theme] = None,
        translation: Optional[str] = None,
    ) -> List[Candidate]:
        prompt = build_prompt(source_type, count, context, theme, translation, self.templates)
        raw = self.llm.call(
            prompt=prompt,
            model=self.model,
            temperature=temperature,
            max_tokens=self.max_tokens,
            system=self.system_prompt,
        )
        return parse_candidates(raw, source_type)


class GenerationStep(PipelineStep):
    """Shared settings for the steps that call the generator.

    Config keys:
      - model: generator model id (required)
      - temperature: base sampling temperature (default 0.8)
      - max_tokens: optional completion cap
      - soft_match_threshold: word-overlap ratio for near duplicates (default 0.6)
      - judge: {"enabled": bool, "model": str, "fail_open": bool, "max_items": int}
      - max_runtime_seconds: wall-clock ceiling for the whole step (default 240)
      - seed: optional seed for category shuffling
    """

    def _settings(self, key: str, default: Any) -> Any:
        value = self.config.get(key)
        return default if value is None else value

    def _model(self) -> str:
        model = self.config.get("model")
        if not model:
            raise ConfigError(f"{self.step_name}: no generator model configured")
        return model

    def _deadline(self) -> float:
        return time.monotonic() + float(self._settings("max_runtime_seconds", 240))

    def _rng(self) -> random.Random:
        return random.Random(self.config.get("seed"))

    def _make_generator(self, llm: LLMService) -> CandidateGenerator:
        return CandidateGenerator(llm, model=self._model(), max_tokens=self.config.get("max_tokens"))

    def _make_judge(self, llm: LLMService) -> Optional[SemanticJudge]:
        judge_cfg = self.config.get("judge") or {}
        if not judge_cfg.get("enabled", True):
            return None
        return SemanticJudge(
            llm,
            model=judge_cfg.get("model") or self._model(),
            fail_open=judge_cfg.get("fail_open", True),
            max_items=int(judge_cfg.get("max_items", JUDGE_CONTEXT_LIMIT)),
        )

    def _make_detector(self, judge: Optional[SemanticJudge], use_semantic: bool = True) -> DuplicateDetector:
        return DuplicateDetector(
            judge=judge,
            soft_match_threshold=float(self._settings("soft_match_threshold", SOFT_MATCH_THRESHOLD)),
            judge_context_limit=judge.max_items if judge else JUDGE_CONTEXT_LIMIT,
            use_semantic=use_semantic,
        )

    def _run_context(self, state: GenerationState) -> RunContext:
        context = RunContext.from_baseline(state.baseline)
        # anything an earlier step already accepted in this run
        for item in state.accepted:
            context.add(item.content, item.source_type, item.author, item.reference, from_run=True)
        return context
