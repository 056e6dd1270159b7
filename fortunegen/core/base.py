import time
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

from loguru import logger

from .llm import LLMService
from .models import GenerationState
from .logging import PipelineObserver


def _count_accepted(state: GenerationState) -> Dict[str, Any]:
    by_type: Dict[str, int] = {}
    for item in state.accepted:
        key = item.source_type.value
        by_type[key] = by_type.get(key, 0) + 1
    return {"total": len(state.accepted), "by_type": by_type}


class PipelineStep(ABC):
    def __init__(self, step_config: Dict[str, Any]):
        self.config = step_config
        self.step_name = self.config.get("name", self.__class__.__name__)
        self.debug = self.config.get("debug", False)

        self._llm_service = None
        self._step_tokens = 0

        # Injected by the orchestrator
        self.observer: Optional[PipelineObserver] = None
        self.store = None

    @property
    def llm(self) -> LLMService:
        if self._llm_service is None:
            self._llm_service = LLMService(
                self.config.get("llm_settings", {}),
                observer=self.observer
            )
        return self._llm_service

    def _reset_step_tokens(self) -> None:
        self._step_tokens = 0

    def add_step_tokens(self, tokens: int) -> None:
        self._step_tokens += int(tokens or 0)

    def run(self, state: GenerationState) -> GenerationState:
        """
        The standard execution wrapper.
        Handles timing, logging events, and stats tracking.
        DO NOT OVERRIDE. Override execute() instead.
        """
        start_time = time.time()
        accepted_before = _count_accepted(state)

        if self.observer:
            self.observer.on_step_start(self.step_name, self.config)

        self._reset_step_tokens()
        try:
            new_state = self.execute(state)
        except Exception as e:
            logger.error(f"Step {self.step_name} failed: {e}")
            raise
        accepted_after = _count_accepted(new_state)

        duration = time.time() - start_time
        tokens = int(self._llm_service.token_usage["total_tokens"]) if self._llm_service else 0
        tokens += int(self._step_tokens or 0)

        if self.observer:
            # Serialize state here so the Logger class remains decoupled from Pydantic
            state_json = new_state.model_dump_json(indent=2, exclude={"baseline"})
            self.observer.on_step_end(self.step_name, duration, tokens, state_json)

        # Internal execution stats for the final summary table
        new_state.execution_log.append({
            "step": self.step_name,
            "duration": duration,
            "tokens": tokens,
            "accepted_before": accepted_before["total"],
            "accepted_after": accepted_after["total"],
            "accepted_by_type": accepted_after["by_type"],
        })

        return new_state

    def log_artifact(self, label: str, data: Any):
        """
        Call this inside your execute() method to log intermediate data.
        """
        if self.observer:
            self.observer.on_artifact(label, data)

    @abstractmethod
    def execute(self, state: GenerationState) -> GenerationState:
        pass

