"""
Entry point used by callers (CLI, web handler, scheduled job).

run_generation(request) validates the request, checks the caller role, picks
the default pipeline for the category (single-category quota loop or
multi-category fan-out), runs it and returns the GenerationResult as a dict.
"""

from copy import deepcopy
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from .configs.default_config import apply_llm_settings, apply_model_overrides, config_for, llm_settings_from_env
from .core.errors import AuthError, ConfigError
from .core.models import GenerationRequest, GenerationState
from .core.orchestrator import PipelineOrchestrator
from .storage.store import FortuneStore, SQLiteFortuneStore


def parse_request(request: Union[GenerationRequest, Dict[str, Any]]) -> GenerationRequest:
    if isinstance(request, GenerationRequest):
        return request
    try:
        return GenerationRequest.model_validate(request or {})
    except ValidationError as e:
        raise ConfigError(f"Invalid generation request: {e}") from e


def check_role(request: GenerationRequest, config: Dict[str, Any]) -> None:
    """Only roles in config["allowed_roles"] may generate. No role given = trusted local caller."""
    allowed = config.get("allowed_roles")
    if not allowed or request.caller_role is None:
        return
    if request.caller_role.strip().lower() not in {r.lower() for r in allowed}:
        raise AuthError(f"Role '{request.caller_role}' may not generate content (allowed: {', '.join(allowed)})")


def prepare_config(request: GenerationRequest, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    category = request.category if request.category == "all" else request.category.value
    cfg = deepcopy(config) if config is not None else config_for(category)
    if "llm_settings" not in cfg:
        apply_llm_settings(cfg, llm_settings_from_env())
    apply_model_overrides(cfg)
    return cfg


def run_pipeline(
    request: Union[GenerationRequest, Dict[str, Any]],
    store: Optional[FortuneStore] = None,
    config: Optional[Dict[str, Any]] = None,
) -> GenerationState:
    request = parse_request(request)
    cfg = prepare_config(request, config)
    check_role(request, cfg)

    if store is None:
        store = SQLiteFortuneStore()

    orchestrator = PipelineOrchestrator(cfg, store=store)
    return orchestrator.run(GenerationState(request=request))


def run_generation(
    request: Union[GenerationRequest, Dict[str, Any]],
    store: Optional[FortuneStore] = None,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    state = run_pipeline(request, store=store, config=config)
    return state.to_result().model_dump(mode="json")
