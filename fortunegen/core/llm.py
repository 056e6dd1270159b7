import os
import threading
import uuid
from typing import Dict, Any, Optional, List, Union

import openai

from .errors import ConfigError, GenerationError
from .logging import PipelineObserver

DEFAULT_BASE_URL = "http://localhost:11434/v1"
DEFAULT_TIMEOUT = 60.0


def _is_local(base_url: str) -> bool:
    lower = (base_url or "").lower()
    return "localhost" in lower or "127.0.0.1" in lower or "11434" in lower


class LLMService:
    """Thin wrapper over any OpenAI-compatible chat endpoint (gateway, OpenAI, Ollama)."""

    def __init__(self, config: Dict[str, Any], observer: Optional[PipelineObserver] = None):
        self.base_url = config.get("base_url") or DEFAULT_BASE_URL
        self.api_key = config.get("api_key") or os.environ.get("FORTUNEGEN_LLM_API_KEY")
        if not self.api_key:
            if not _is_local(self.base_url):
                raise ConfigError(f"No API key configured for LLM endpoint {self.base_url}")
            self.api_key = "ollama"

        self.timeout = float(config.get("timeout", DEFAULT_TIMEOUT))
        self.client = openai.OpenAI(
            base_url=self.base_url,
            api_key=self.api_key,
            timeout=self.timeout,
            max_retries=int(config.get("max_retries", 1)),
        )

        self.observer = observer
        self._lock = threading.Lock()

        # Accumulators
        self.token_usage = {
            "prompt_tokens": 0,
            "completion_tokens": 0,
            "total_tokens": 0
        }

        # Ollama-specific, sent as options.num_ctx
        self.context_length = None
        ctx_val = config.get("context_length")
        if ctx_val is not None:
            ctx_val = int(ctx_val)
            if ctx_val <= 0:
                raise ConfigError("context_length must be a positive integer")
            self.context_length = ctx_val

    def call(self,
             prompt: str,
             model: str,
             temperature: float,
             max_tokens: Optional[int] = None,
             stop: Optional[Union[str, List[str]]] = None,
             system: Optional[str] = None,
             ) -> str:

        if not model:
            raise ConfigError("No model configured for LLM call")
        if max_tokens is not None and max_tokens <= 0:
            raise ValueError("max_tokens must be a positive integer")
        if temperature is None or temperature < 0:
            raise ValueError("temperature must be a positive float")

        call_id = uuid.uuid4().hex

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if stop is not None:
            kwargs["stop"] = stop
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if self.context_length is not None:
            kwargs["extra_body"] = {"options": {"num_ctx": self.context_length}}

        if self.observer:
            self.observer.on_artifact(
                "LLM Prompt",
                {
                    "call_id": call_id,
                    "model": model,
                    "temperature": temperature,
                    "max_tokens": max_tokens,
                    "system": system,
                    "prompt": prompt,
                },
            )

        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            if self.observer:
                self.observer.on_artifact(
                    "LLM Usage Stats",
                    {"call_id": call_id, "model": model, "error": str(e)},
                )
            raise GenerationError(f"LLM Service Error [Model: {model}]: {e}") from e

        # --- TRACK USAGE ---
        usage_data = {
            "call_id": call_id,
            "model": model,
            "prompt": None,
            "completion": None,
            "total": None,
        }
        if response.usage:
            u = response.usage
            with self._lock:
                self.token_usage["prompt_tokens"] += u.prompt_tokens
                self.token_usage["completion_tokens"] += u.completion_tokens
                self.token_usage["total_tokens"] += u.total_tokens
            usage_data["prompt"] = u.prompt_tokens
            usage_data["completion"] = u.completion_tokens
            usage_data["total"] = u.total_tokens

        if self.observer:
            self.observer.on_artifact("LLM Usage Stats", usage_data)

        if not response.choices:
            raise GenerationError(f"LLM Service Error [Model: {model}]: empty choices")
        content = response.choices[0].message.content
        return content.strip() if content else ""
