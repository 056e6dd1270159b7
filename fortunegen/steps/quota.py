"""
Single-category quota fulfillment.

REQUEST -> FILTER -> ACCUMULATE -> {CONTINUE | SATURATED | QUOTA_MET}

Each attempt asks for `remaining + request_buffer` candidates, runs them one by
one through the duplicate detector (sharing one RunContext, in order) and stops
when:
- the quota is met,
- `saturation_threshold` candidates in a row were rejected, counted across
  attempts and reset only by an acceptance (the topic is presumed exhausted
  at this specificity),
- `max_attempts` requests were made, or
- the wall-clock deadline passed.

Every retry raises the temperature by `temperature_step` (capped at
`max_temperature`). A failed or unparsable request is logged and counts as an
attempt. Falling short of the quota, even with zero items, is a valid outcome.
"""

import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from loguru import logger

from ..core.categories import strategy_for
from ..core.dedup import DuplicateDetector, RunContext
from ..core.errors import ConfigError, GenerationError, ParseError
from ..core.models import (
    AcceptedItem,
    FulfillmentOutcome,
    FulfillmentStatus,
    GenerationState,
    SourceType,
    Theme,
)
from .generation import CandidateGenerator, GenerationStep

DEFAULT_REQUEST_BUFFER = 5
DEFAULT_SATURATION_THRESHOLD = 15
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_TEMPERATURE = 0.8
DEFAULT_TEMPERATURE_STEP = 0.1
DEFAULT_MAX_TEMPERATURE = 1.3


def attempt_temperature(attempt: int, base: float, step: float, ceiling: float) -> float:
    return round(min(base + attempt * step, ceiling), 3)


def fulfill_quota(
    generator: CandidateGenerator,
    detector: DuplicateDetector,
    context: RunContext,
    source_type: SourceType,
    count: int,
    theme: Optional[Theme] = None,
    translation: Optional[str] = None,
    request_buffer: int = DEFAULT_REQUEST_BUFFER,
    saturation_threshold: int = DEFAULT_SATURATION_THRESHOLD,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_temperature: float = DEFAULT_BASE_TEMPERATURE,
    temperature_step: float = DEFAULT_TEMPERATURE_STEP,
    max_temperature: float = DEFAULT_MAX_TEMPERATURE,
    deadline: Optional[float] = None,
    on_attempt: Optional[Callable[[dict], None]] = None,
) -> Tuple[List[AcceptedItem], FulfillmentOutcome]:
    source_type = SourceType(source_type)
    strategy = strategy_for(source_type)
    item_translation = translation if strategy.uses_translation else None

    accepted: List[AcceptedItem] = []
    rejected = 0
    attempts = 0
    reason = "max_attempts"
    consecutive_rejections = 0

    while attempts < max_attempts and len(accepted) < count:
        if deadline is not None and time.monotonic() >= deadline:
            reason = "deadline"
            break

        remaining = count - len(accepted)
        temperature = attempt_temperature(attempts, base_temperature, temperature_step, max_temperature)
        attempts += 1

        try:
            candidates = generator.generate(
                source_type,
                remaining + request_buffer,
                context=context,
                temperature=temperature,
                theme=theme,
                translation=translation,
            )
        except (GenerationError, ParseError) as e:
            logger.warning(f"[{source_type.value}] attempt {attempts}/{max_attempts} skipped: {e}")
            if on_attempt:
                on_attempt({"attempt": attempts, "temperature": temperature, "error": str(e)})
            continue

        attempt_accepted = 0
        saturated = False
        for candidate in candidates:
            verdict = detector.admit(candidate, context)
            if verdict.accepted:
                accepted.append(AcceptedItem.from_candidate(candidate, theme, item_translation))
                attempt_accepted += 1
                consecutive_rejections = 0
                if len(accepted) >= count:
                    break
            else:
                rejected += 1
                consecutive_rejections += 1
                if consecutive_rejections >= saturation_threshold:
                    saturated = True
                    break

        if on_attempt:
            on_attempt({
                "attempt": attempts,
                "temperature": temperature,
                "requested": remaining + request_buffer,
                "returned": len(candidates),
                "accepted": attempt_accepted,
                "total_accepted": len(accepted),
                "saturated": saturated,
            })

        if saturated and len(accepted) < count:
            logger.info(
                f"[{source_type.value}] {consecutive_rejections} consecutive duplicates, "
                f"stopping with {len(accepted)}/{count}"
            )
            reason = "saturated"
            break

    if len(accepted) >= count:
        status, reason = FulfillmentStatus.QUOTA_MET, "quota_met"
    else:
        status = FulfillmentStatus.EXHAUSTED

    outcome = FulfillmentOutcome(
        source_type=source_type,
        status=status,
        reason=reason,
        requested=count,
        collected=len(accepted),
        attempts=attempts,
        rejected=rejected,
    )
    return accepted, outcome


# -------------------------------------------------------------------------
# STEP: Generate one category until the quota is met
# -------------------------------------------------------------------------
class QuotaFulfillmentStep(GenerationStep):
    """
    Extra config keys (see GenerationStep for the shared ones):
      - request_buffer: extra candidates per request (default 5)
      - saturation_threshold: consecutive rejections that end the loop (default 15)
      - max_attempts: generator requests per run (default 5)
      - temperature_step / max_temperature: diversity ramp per retry (0.1 / 1.3)
    """

    def execute(self, state: GenerationState) -> GenerationState:
        request = state.request
        if request.category == "all":
            raise ConfigError("generate_category needs a single category; use generate_all_categories for 'all'")
        source_type = SourceType(request.category)

        print(f"[{self.__class__.__name__}] Generating {request.count} x {source_type.value}...")

        context = self._run_context(state)
        judge = self._make_judge(self.llm)
        detector = self._make_detector(judge)

        items, outcome = fulfill_quota(
            self._make_generator(self.llm),
            detector,
            context,
            source_type,
            request.count,
            theme=request.theme,
            translation=request.translation,
            request_buffer=int(self._settings("request_buffer", DEFAULT_REQUEST_BUFFER)),
            saturation_threshold=int(self._settings("saturation_threshold", DEFAULT_SATURATION_THRESHOLD)),
            max_attempts=int(self._settings("max_attempts", DEFAULT_MAX_ATTEMPTS)),
            base_temperature=float(self._settings("temperature", DEFAULT_BASE_TEMPERATURE)),
            temperature_step=float(self._settings("temperature_step", DEFAULT_TEMPERATURE_STEP)),
            max_temperature=float(self._settings("max_temperature", DEFAULT_MAX_TEMPERATURE)),
            deadline=self._deadline(),
            on_attempt=lambda info: self.log_artifact(f"Attempt ({source_type.value})", info),
        )

        state.accepted.extend(items)
        state.outcomes.append(outcome)
        self.log_artifact("Fulfillment Outcome", outcome.model_dump(mode="json"))
        if judge is not None:
            self.log_artifact("Semantic Judge", {"calls": detector.judge_calls, "failures": judge.failures})

        print(
            f"[{self.__class__.__name__}] {source_type.value}: {outcome.collected}/{outcome.requested} "
            f"unique after {outcome.attempts} attempt(s) ({outcome.reason})."
        )
        state.generated_at = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        return state
