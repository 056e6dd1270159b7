from ..core.base import PipelineStep
from ..core.errors import ConfigError
from ..core.models import GenerationState


# -------------------------------------------------------------------------
# STEP: Read every stored item once, before generating
# -------------------------------------------------------------------------
class LoadBaselineStep(PipelineStep):
    """
    Config keys:
      - scope: "all" (default) or "requested"; "requested" limits the read to
        the request's categories. Text uniqueness is then only enforced within
        those categories.
    """

    def execute(self, state: GenerationState) -> GenerationState:
        if self.store is None:
            print(f"[{self.__class__.__name__}] No store configured, starting from an empty baseline.")
            state.baseline = []
            return state

        source_types = None
        if self.config.get("scope", "all") == "requested":
            source_types = state.request.selected_categories()

        state.baseline = self.store.fetch_baseline(source_types)
        archived = sum(1 for item in state.baseline if item.is_archived)
        print(f"[{self.__class__.__name__}] Loaded {len(state.baseline)} existing items ({archived} archived).")
        self.log_artifact("Baseline", {"items": len(state.baseline), "archived": archived})
        return state


# -------------------------------------------------------------------------
# STEP: Write the accepted batch once
# -------------------------------------------------------------------------
class PersistAcceptedStep(PipelineStep):
    """Inserts state.accepted in one batch. Failures raise PersistenceError and are not retried."""

    def execute(self, state: GenerationState) -> GenerationState:
        if not state.accepted:
            print(f"[{self.__class__.__name__}] Nothing to store.")
            return state
        if self.store is None:
            if self.config.get("required", True):
                raise ConfigError(f"{self.step_name}: no store configured")
            return state

        state.persisted_count = self.store.insert_accepted(list(state.accepted))
        print(f"[{self.__class__.__name__}] Stored {state.persisted_count} items.")
        return state
