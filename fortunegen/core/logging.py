import json
import os
import sys
import threading
from datetime import datetime
from typing import Any, Dict, Protocol, Optional

from loguru import logger


class PipelineObserver(Protocol):
    def on_run_start(self, name: str, run_id: str): ...

    def on_step_start(self, step_name: str, config: Dict[str, Any]): ...

    def on_step_end(self, step_name: str, duration: float, tokens: int, state_json: str): ...

    def on_artifact(self, label: str, data: Any): ...

    def on_run_end(self, duration: float): ...

    def log_summary(self, summary_text: str): ...


class PipelineLogger:
    """loguru-backed observer.

    debug=True writes everything (step settings, artifacts, output state) to
    logs/fortunegen_debug_<run_id>.log and LLM prompts to a *_prompts.log next
    to it. Without debug only warnings and errors reach stderr.
    """

    def __init__(self, run_id: str, debug: bool = True, log_dir: Optional[str] = None):
        self.debug = debug
        self.run_id = run_id
        self.log_file = None
        self.prompt_log_file = None
        self._pending_prompts: Dict[str, Dict[str, str]] = {}
        self._lock = threading.RLock()

        # Reset loguru to clear default handlers
        logger.remove()

        if not self.debug:
            logger.add(sys.stderr, level="WARNING")
            return

        if log_dir is None:
            # .../fortunegen/core/logging.py -> <root>/logs
            package_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
            log_dir = os.path.join(os.path.dirname(package_dir), "logs")
        os.makedirs(log_dir, exist_ok=True)

        self.log_file = os.path.join(log_dir, f"fortunegen_debug_{run_id}.log")
        self.prompt_log_file = os.path.join(log_dir, f"fortunegen_debug_{run_id}_prompts.log")

        fmt = "<green>{time:H:mm:ss}</green> {level: <7}\n{message}\n"
        logger.add(self.log_file, format=fmt, level="DEBUG")
        logger.add(sys.stderr, format=fmt, level="ERROR")

    def _format_json(self, data: Any) -> str:
        try:
            s = json.dumps(data, indent=2, default=str)
            return s.replace("\\n", "\n      ")
        except (TypeError, ValueError):
            return str(data)

    def _truncate_large_strings(self, obj: Any, max_len: int = 500) -> Any:
        if isinstance(obj, str):
            if len(obj) > max_len:
                return obj[:max_len] + f"... [truncated {len(obj) - max_len} chars]"
            return obj
        if isinstance(obj, dict):
            return {k: self._truncate_large_strings(v, max_len) for k, v in obj.items()}
        if isinstance(obj, list):
            # the baseline can hold thousands of rows
            if len(obj) > 50:
                head = [self._truncate_large_strings(i, max_len) for i in obj[:50]]
                return head + [f"... [{len(obj) - 50} more items]"]
            return [self._truncate_large_strings(i, max_len) for i in obj]
        return obj

    def _log(self, text: str):
        if not self.debug or not text.strip():
            return
        logger.debug(text)

    def _append_prompt_log(self, text: str):
        if not self.prompt_log_file:
            return
        try:
            with self._lock:
                with open(self.prompt_log_file, "a", encoding="utf-8") as f:
                    f.write(text + "\n")
        except OSError as e:
            logger.warning(f"Prompt logging error: {e}")

    def _write_prompt_entry(self, timestamp: str, content: str, usage: Optional[Dict[str, Any]]):
        if isinstance(usage, dict):
            tokens_line = "TOKENS: " + " ".join(
                f"{k}={usage.get(k) if usage.get(k) is not None else '?'}"
                for k in ("prompt", "completion", "total")
            )
            if usage.get("error"):
                tokens_line += f" | ERROR: {usage['error']}"
        else:
            tokens_line = "TOKENS: unknown"
        self._append_prompt_log(f"{timestamp}\n>>> [LLM Prompt]\n{tokens_line}\n{content}\n{'=' * 80}")

    def _flush_prompt_entry(self, usage: Any):
        if not self.prompt_log_file:
            return
        with self._lock:
            call_id = usage.get("call_id") if isinstance(usage, dict) else None
            entry = self._pending_prompts.pop(call_id, None) if call_id else None
            if entry:
                self._write_prompt_entry(entry["timestamp"], entry["content"], usage)

    # -------------------------------------------------------------------------
    # PUBLIC EVENTS
    # -------------------------------------------------------------------------

    def on_run_start(self, name: str, run_id: str):
        divider = "=" * 80
        self._log(f"{divider}\nLAUNCHING GENERATION: {name} (ID: {run_id})\n{divider}")

    def on_step_start(self, step_name: str, config: Dict[str, Any]):
        safe_conf = {
            k: v for k, v in config.items()
            if k not in ("debug", "llm_settings", "prompt_templates")
        }
        msg = (
            f"START STEP: {step_name}\n"
            f"--- SETTINGS ---\n"
            f"{self._format_json(safe_conf)}\n"
            f"----------------"
        )
        self._log(msg)

    def on_step_end(self, step_name: str, duration: float, tokens: int, state_json: str):
        if not self.debug:
            return
        try:
            clean_json_str = self._format_json(self._truncate_large_strings(json.loads(state_json)))
        except ValueError:
            clean_json_str = state_json

        stats = f"DURATION: {duration:.4f}s"
        if tokens > 0:
            stats += f" | TOKENS: {tokens}"

        divider = "=" * 80
        msg = (
            f"--- OUTPUT STATE ---\n"
            f"{clean_json_str}\n"
            f"{divider}\n"
            f"FINISHED: {step_name} | {stats}\n"
            f"{divider}"
        )
        self._log(msg)

    def on_artifact(self, label: str, data: Any):
        if label == "LLM Prompt":
            if not self.debug:
                return
            with self._lock:
                timestamp = datetime.now().strftime("%H:%M:%S")
                prompt_data = dict(data) if isinstance(data, dict) else data
                call_id = prompt_data.pop("call_id", None) if isinstance(prompt_data, dict) else None
                content = self._format_json(prompt_data) if isinstance(prompt_data, (dict, list)) else str(prompt_data)
                if call_id:
                    self._pending_prompts[call_id] = {"timestamp": timestamp, "content": content}
                else:
                    self._write_prompt_entry(timestamp, content, usage=None)
            return

        if label == "LLM Usage Stats":
            self._flush_prompt_entry(data)

        content = self._format_json(data) if isinstance(data, (dict, list)) else str(data)
        self._log(f">>> [ARTIFACT] {label}\n{content}")

    def on_run_end(self, duration: float):
        with self._lock:
            for entry in list(self._pending_prompts.values()):
                self._write_prompt_entry(entry["timestamp"], entry["content"], usage=None)
            self._pending_prompts.clear()
        divider = "=" * 80
        self._log(f"{divider}\nTOTAL GENERATION TIME: {duration:.4f}s\n{divider}")

    def log_summary(self, summary_text: str):
        if not self.debug or not self.log_file:
            return
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write("\n" + summary_text + "\n")
        except OSError as e:
            logger.warning(f"Logging error: {e}")
