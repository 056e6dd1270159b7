import os
from copy import deepcopy
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Default pipelines:
# 1) Load baseline (every stored item, archived included)
# 2) Generate
#    - one category: quota loop (retries, saturation exit)
#    - "all": one pass per category in parallel + cross-category merge
# 3) Persist accepted batch

BASE_MODEL = "gemma3:27b"
BASE_TEMPERATURE = 0.8
BASE_MAX_RUNTIME_SECONDS = 240
BASE_SOFT_MATCH_THRESHOLD = 0.6

BASE_JUDGE = {
    "enabled": True,
    "model": None,          # None -> same model as the generator
    "fail_open": True,      # judge errors count as "not a duplicate"
    "max_items": 25,
}

SINGLE_CATEGORY_CONFIG = {
    "name": "Fortune Generation",
    "debug": False,
    "allowed_roles": ["admin", "owner"],
    "steps": [
        {"type": "load_baseline", "settings": {"scope": "all"}},
        {
            "type": "generate_category",
            "settings": {
                "model": BASE_MODEL,
                "temperature": BASE_TEMPERATURE,
                "request_buffer": 5,
                "saturation_threshold": 15,
                "max_attempts": 5,
                "temperature_step": 0.1,
                "max_temperature": 1.3,
                "soft_match_threshold": BASE_SOFT_MATCH_THRESHOLD,
                "max_runtime_seconds": BASE_MAX_RUNTIME_SECONDS,
                "judge": deepcopy(BASE_JUDGE),
            },
        },
        {"type": "persist_accepted", "settings": {}},
    ],
}

ALL_CATEGORIES_CONFIG = {
    "name": "Fortune Generation (all categories)",
    "debug": False,
    "allowed_roles": ["admin", "owner"],
    "steps": [
        {"type": "load_baseline", "settings": {"scope": "all"}},
        {
            "type": "generate_all_categories",
            "settings": {
                "model": BASE_MODEL,
                "temperature": BASE_TEMPERATURE,
                "overflow_buffer": 3,
                "soft_match_threshold": BASE_SOFT_MATCH_THRESHOLD,
                "max_runtime_seconds": BASE_MAX_RUNTIME_SECONDS,
                "seed": None,
                "judge": deepcopy(BASE_JUDGE),
            },
        },
        {"type": "persist_accepted", "settings": {}},
    ],
}


def _first_env(*names: str) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def llm_settings_from_env(env_file: Optional[str] = None) -> Dict[str, str]:
    """Reads .env (if present) and returns llm_settings, {} when nothing is set."""
    load_dotenv(env_file)
    settings = {}
    base_url = _first_env("FORTUNEGEN_LLM_BASE_URL", "LLM_BASE_URL")
    api_key = _first_env("FORTUNEGEN_LLM_API_KEY", "LLM_API_KEY")
    if base_url:
        settings["base_url"] = base_url
    if api_key:
        settings["api_key"] = api_key
    return settings


def _apply_llm_settings_to_steps(steps: List[Any], llm_settings: Dict[str, str]) -> None:
    for step in steps:
        if not isinstance(step, dict):
            continue
        settings = step.setdefault("settings", {})
        settings["llm_settings"] = dict(llm_settings)


def apply_llm_settings(cfg: dict, llm_settings: Dict[str, str]) -> None:
    if not llm_settings:
        return
    cfg["llm_settings"] = dict(llm_settings)
    _apply_llm_settings_to_steps(cfg.get("steps", []) or [], llm_settings)


def apply_model_overrides(cfg: dict, model: Optional[str] = None, judge_model: Optional[str] = None) -> None:
    """Sets the generator/judge model on every generation step (env: FORTUNEGEN_MODEL / FORTUNEGEN_JUDGE_MODEL)."""
    model = model or os.environ.get("FORTUNEGEN_MODEL")
    judge_model = judge_model or os.environ.get("FORTUNEGEN_JUDGE_MODEL")
    for step in cfg.get("steps", []) or []:
        if step.get("type") not in ("generate_category", "generate_all_categories"):
            continue
        settings = step.setdefault("settings", {})
        if model:
            settings["model"] = model
        if judge_model:
            settings.setdefault("judge", {})["model"] = judge_model


def config_for(category: str) -> dict:
    """Fresh copy of the default pipeline for a request category ("all" or a SourceType value)."""
    base = ALL_CATEGORIES_CONFIG if category == "all" else SINGLE_CATEGORY_CONFIG
    return deepcopy(base)
