import re
from typing import Dict, Any, Set, List

import httpx

from .errors import ConfigError
from .llm import DEFAULT_BASE_URL


def validate_pipeline_models(config: Dict[str, Any]):
    """
    Checks every 'model' key of the pipeline config (generator and judge models)
    against the LLM endpoint's model list. Raises ConfigError when one is missing.
    """
    print("--- Validating Model Availability ---")

    models = _collect_models_recursive(config)
    if not models:
        print("    No LLM models ('model') found to validate.")
        return

    errors = _validate_llm_models(config, models)
    if errors:
        print("\n[CRITICAL] MODEL VALIDATION FAILED")
        for err in errors:
            print(f"   - {err}")
        print("-" * 40)
        raise ConfigError("Pipeline cannot start due to missing models.")

    print("[OK] All models validated successfully.")


def _collect_models_recursive(data: Any) -> Set[str]:
    models = set()
    if isinstance(data, dict):
        for k, v in data.items():
            if k == "model" and isinstance(v, str):
                models.add(v)
            else:
                models.update(_collect_models_recursive(v))
    elif isinstance(data, list):
        for item in data:
            models.update(_collect_models_recursive(item))
    return models


def _validate_llm_models(config: Dict, models: Set[str]) -> List[str]:
    """Checks if models are served by the OpenAI-compatible endpoint (or Ollama's native API)."""
    llm_settings = config.get("llm_settings", {})
    base_url = llm_settings.get("base_url") or DEFAULT_BASE_URL
    headers = {}
    if llm_settings.get("api_key"):
        headers["Authorization"] = f"Bearer {llm_settings['api_key']}"

    try:
        models_url = f"{base_url.rstrip('/')}/models"

        with httpx.Client(timeout=5.0, headers=headers) as client:
            resp = client.get(models_url)

            if resp.status_code == 404:
                # Fallback to Ollama native API
                alt_url = re.sub(r"/v1$", "", base_url.rstrip('/')) + "/api/tags"
                resp = client.get(alt_url)
                resp.raise_for_status()
                available_models = {m["name"] for m in resp.json().get("models", [])}
            else:
                resp.raise_for_status()
                available_models = {m["id"] for m in resp.json().get("data", [])}

    except (httpx.HTTPError, ValueError, KeyError) as e:
        print(f"    [WARNING] Could not connect to LLM server: {e}")
        return [f"LLM Server Unreachable: {e}"]

    missing = []
    for req in sorted(models):
        # Check exact match or :latest match
        if req not in available_models and f"{req}:latest" not in available_models:
            print(f"    [ERROR] LLM Model missing: {req}")
            missing.append(f"Missing LLM: {req}")
        else:
            print(f"    [OK] LLM: {req}")

    return missing
