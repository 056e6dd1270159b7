from typing import Dict, Any

from ..steps.fanout import MultiCategoryStep
from ..steps.persistence import LoadBaselineStep, PersistAcceptedStep
from ..steps.quota import QuotaFulfillmentStep
from .errors import ConfigError


class StepFactory:
    _registry = {
        "load_baseline": LoadBaselineStep,
        "generate_category": QuotaFulfillmentStep,
        "generate_all_categories": MultiCategoryStep,
        "persist_accepted": PersistAcceptedStep,
    }

    @classmethod
    def register(cls, name: str, step_class):
        cls._registry[name] = step_class

    @classmethod
    def create(cls, step_def: Dict[str, Any]):
        step_type = step_def["type"]
        step_config = step_def.get("settings", {})

        step_class = cls._registry.get(step_type)
        if not step_class:
            raise ConfigError(f"Step type '{step_type}' not registered.")

        return step_class(step_config)
