"""
Semantic duplicate judge.

Asks the LLM whether a candidate is the same specific question/statement as any
of up to 25 prior items. Used only after exact, citation and soft-match checks
passed, and only for categories where phrasing varies (affirmations, life
lessons, gratitude prompts, discussion starters).

Failure policy: with fail_open=True (default) any transport or parse failure
counts as "not a duplicate" and is logged. fail_open=False rejects instead.
Configuration errors (no model, no credential) are never absorbed.
"""

import re
from typing import List, Optional

from loguru import logger

from ..configs.preprompts import PROMPT_TMPL_JUDGE
from ..core.dedup import JUDGE_CONTEXT_LIMIT
from ..core.errors import GenerationError, SemanticJudgeError
from ..core.llm import LLMService

_ANSWER_RE = re.compile(r"^\W*(yes|no)\b", re.IGNORECASE)


def parse_judgement(reply: str) -> bool:
    match = _ANSWER_RE.match(reply or "")
    if not match:
        raise SemanticJudgeError(f"Unparsable judge answer: {(reply or '')[:80]!r}")
    return match.group(1).lower() == "yes"


class SemanticJudge:
    def __init__(
        self,
        llm: LLMService,
        model: str,
        fail_open: bool = True,
        max_items: int = JUDGE_CONTEXT_LIMIT,
        prompt_template: Optional[str] = None,
    ):
        self.llm = llm
        self.model = model
        self.fail_open = fail_open
        self.max_items = max_items
        self.prompt_template = prompt_template or PROMPT_TMPL_JUDGE
        self.failures = 0

    def build_prompt(self, candidate: str, prior_items: List[str]) -> str:
        existing = "\n".join(f"{i}. {text}" for i, text in enumerate(prior_items, 1))
        return self.prompt_template.format(candidate=candidate, existing=existing).strip()

    def judge(self, candidate: str, prior_items: List[str]) -> str:
        """Raw "YES"/"NO". Raises SemanticJudgeError on any failure."""
        prompt = self.build_prompt(candidate, prior_items[: self.max_items])
        try:
            reply = self.llm.call(prompt=prompt, model=self.model, temperature=0.0, max_tokens=5)
        except GenerationError as e:
            raise SemanticJudgeError(str(e)) from e
        return "YES" if parse_judgement(reply) else "NO"

    def is_duplicate(self, candidate: str, prior_items: List[str]) -> bool:
        if not prior_items:
            return False
        try:
            return self.judge(candidate, prior_items) == "YES"
        except SemanticJudgeError as e:
            self.failures += 1
            if self.fail_open:
                logger.warning(f"Semantic judge failed, treating as unique: {e}")
                return False
            logger.warning(f"Semantic judge failed, rejecting candidate: {e}")
            return True
