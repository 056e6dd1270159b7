"""
Multi-category generation ("all").

The requested total is split across the selected categories, each category gets
one generation request (allocation + overflow buffer) on a worker thread with
its own forked RunContext, and the merged, shuffled result gets one more
sequential duplicate pass to catch cross-category repeats (e.g. the same verse
returned as both bible_verse and proverbs).

No retries per category: falling short is reported in the outcomes, not fixed.
"""

import concurrent.futures
import random
import time
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from ..core.dedup import DuplicateDetector, RunContext
from ..core.errors import ConfigError, FortuneGenError
from ..core.llm import LLMService
from ..core.models import (
    AcceptedItem,
    Candidate,
    FulfillmentOutcome,
    FulfillmentStatus,
    GenerationState,
    MIN_ITEMS_PER_CATEGORY,
    SourceType,
)
from ..core.categories import strategy_for
from ..core.text import SOFT_MATCH_THRESHOLD
from .generation import GenerationStep

DEFAULT_OVERFLOW_BUFFER = 3
MIN_PER_CATEGORY = MIN_ITEMS_PER_CATEGORY


def allocate_counts(total: int, categories: Sequence[SourceType], rng: Optional[random.Random] = None) -> Dict[SourceType, int]:
    """Split `total` over `categories`, at least MIN_PER_CATEGORY each.

    The categories are shuffled and the first `total - per * k` of them get one
    extra, so the allocations always sum to `total`. A total too small to give
    every category its minimum raises ConfigError.
    """
    categories = list(dict.fromkeys(categories))
    if not categories:
        return {}
    rng = rng or random.Random()

    k = len(categories)
    if total < MIN_PER_CATEGORY * k:
        raise ConfigError(f"Cannot split {total} items over {k} categories (minimum {MIN_PER_CATEGORY} each)")
    per = max(MIN_PER_CATEGORY, total // k)
    remainder = total - per * k

    shuffled = categories[:]
    rng.shuffle(shuffled)
    allocation = {cat: per for cat in categories}
    for cat in shuffled[:remainder]:
        allocation[cat] += 1
    return allocation


def _as_candidate(item: AcceptedItem) -> Candidate:
    return Candidate(
        content=item.content,
        source_type=item.source_type,
        author=item.author,
        reference=item.reference,
    )


def merge_across_categories(
    items: List[AcceptedItem],
    soft_match_threshold: Optional[float] = None,
) -> List[AcceptedItem]:
    """Sequential exact/citation/soft pass over the merged batch. Order is kept."""
    kwargs = {} if soft_match_threshold is None else {"soft_match_threshold": soft_match_threshold}
    detector = DuplicateDetector(judge=None, use_semantic=False, **kwargs)
    context = RunContext()
    return [item for item in items if detector.admit(_as_candidate(item), context).accepted]


# -------------------------------------------------------------------------
# STEP: One pass per category, in parallel, then a batch-level merge
# -------------------------------------------------------------------------
class MultiCategoryStep(GenerationStep):
    """
    Extra config keys (see GenerationStep for the shared ones):
      - overflow_buffer: extra candidates per category request (default 3)
      - parallel: {"max_workers": int} or bool (default: one worker per category)
    """

    def execute(self, state: GenerationState) -> GenerationState:
        request = state.request
        categories = request.selected_categories()
        rng = self._rng()
        allocation = allocate_counts(request.count, categories, rng)

        print(
            f"[{self.__class__.__name__}] Generating {sum(allocation.values())} items "
            f"across {len(allocation)} categories..."
        )
        self.log_artifact("Allocation", {c.value: n for c, n in allocation.items()})

        base_context = self._run_context(state)
        overflow = int(self._settings("overflow_buffer", DEFAULT_OVERFLOW_BUFFER))
        tasks = [
            {
                "source_type": source_type,
                "allocation": n,
                "request_size": n + overflow,
                "context": base_context.fork(),
                "theme": request.theme,
                "translation": request.translation,
            }
            for source_type, n in allocation.items()
        ]

        results = self._run_tasks(tasks, self._deadline())

        merged: List[AcceptedItem] = []
        total_tokens = 0
        for task in tasks:
            result = results.get(task["source_type"])
            if not result:
                continue
            merged.extend(result["items"])
            total_tokens += int(result.get("tokens") or 0)
        self.add_step_tokens(total_tokens)

        rng.shuffle(merged)
        final = merge_across_categories(merged, float(self._settings("soft_match_threshold", SOFT_MATCH_THRESHOLD)))
        if len(final) < len(merged):
            logger.info(f"Removed {len(merged) - len(final)} cross-category duplicates")

        counts = Counter(item.source_type for item in final)
        distribution = {c.value: counts.get(c, 0) for c in allocation}

        for task in tasks:
            source_type = task["source_type"]
            result = results.get(source_type) or {}
            collected = counts.get(source_type, 0)
            state.outcomes.append(
                FulfillmentOutcome(
                    source_type=source_type,
                    status=FulfillmentStatus.QUOTA_MET if collected >= task["allocation"] else FulfillmentStatus.EXHAUSTED,
                    reason="single_pass",
                    requested=task["allocation"],
                    collected=collected,
                    attempts=1 if result else 0,
                    rejected=int(result.get("rejected") or 0),
                )
            )

        state.accepted.extend(final)
        state.per_category_distribution = distribution
        self.log_artifact("Distribution", distribution)

        print(f"[{self.__class__.__name__}] Accepted {len(final)} unique items: {distribution}")
        return state

    def _run_tasks(self, tasks: List[Dict[str, Any]], deadline: float) -> Dict[SourceType, Dict[str, Any]]:
        results: Dict[SourceType, Dict[str, Any]] = {}
        if not tasks:
            return results

        max_workers = self._resolve_max_workers(len(tasks))
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)
        try:
            future_map = {executor.submit(self._run_task, task): task["source_type"] for task in tasks}
            timeout = max(0.0, deadline - time.monotonic())
            done, not_done = concurrent.futures.wait(future_map, timeout=timeout)

            for future in done:
                source_type = future_map[future]
                try:
                    results[source_type] = future.result()
                except ConfigError:
                    raise
                except FortuneGenError as e:
                    logger.warning(f"[{source_type.value}] generation failed, contributing 0 items: {e}")
            for future in not_done:
                source_type = future_map[future]
                logger.warning(f"[{source_type.value}] timed out after {timeout:.0f}s, contributing 0 items")
        finally:
            # Stragglers keep running in the background; their results are dropped.
            executor.shutdown(wait=False, cancel_futures=True)
        return results

    def _run_task(self, task: Dict[str, Any]) -> Dict[str, Any]:
        source_type: SourceType = task["source_type"]
        context: RunContext = task["context"]
        request_theme = task.get("theme")
        translation = task.get("translation")

        # One client per worker; token counters are not shared
        llm = self._task_llm()
        generator = self._make_generator(llm)
        judge = self._make_judge(llm)
        detector = self._make_detector(judge)

        candidates = generator.generate(
            source_type,
            task["request_size"],
            context=context,
            temperature=float(self._settings("temperature", 0.8)),
            theme=request_theme,
            translation=translation,
        )

        item_translation = translation if strategy_for(source_type).uses_translation else None
        items: List[AcceptedItem] = []
        rejected = 0
        for candidate in candidates:
            if len(items) >= task["allocation"]:
                break
            if detector.admit(candidate, context).accepted:
                items.append(AcceptedItem.from_candidate(candidate, request_theme, item_translation))
            else:
                rejected += 1

        self.log_artifact(
            f"Category Result ({source_type.value})",
            {"returned": len(candidates), "accepted": len(items), "rejected": rejected},
        )
        return {
            "items": items,
            "rejected": rejected,
            "tokens": int(llm.token_usage.get("total_tokens") or 0),
        }

    def _task_llm(self) -> LLMService:
        return LLMService(self.config.get("llm_settings", {}), observer=self.observer)

    def _resolve_max_workers(self, task_count: int) -> int:
        parallel = self.config.get("parallel")
        max_workers = None
        if isinstance(parallel, dict):
            max_workers = parallel.get("max_workers")
        elif isinstance(parallel, bool) and not parallel:
            max_workers = 1
        elif isinstance(parallel, int):
            max_workers = parallel
        if not max_workers:
            return task_count
        return max(1, min(int(max_workers), task_count))
