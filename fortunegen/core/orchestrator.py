import io
import time
from datetime import datetime
from typing import Dict, List

from rich import box
from rich.console import Console
from rich.table import Table

from .factory import StepFactory
from .logging import PipelineLogger
from .models import GenerationState


def build_step_table(state: GenerationState, title: str, total_duration: float) -> Table:
    """One row per executed step: time, tokens and how many items it added."""
    table = Table(title=f"STEPS: {title}", title_justify="left", box=box.ROUNDED)
    table.add_column("Step", no_wrap=True)
    table.add_column("Duration", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Added", justify="right")

    total_tokens = 0
    for entry in state.execution_log:
        tokens = int(entry.get("tokens") or 0)
        total_tokens += tokens
        added = int(entry.get("accepted_after", 0)) - int(entry.get("accepted_before", 0))
        table.add_row(
            str(entry.get("step", "?")),
            f"{float(entry.get('duration', 0.0)):.2f}s",
            str(tokens) if tokens else "-",
            f"+{added}" if added else "-",
        )

    table.add_section()
    table.add_row("TOTAL", f"{total_duration:.2f}s", str(total_tokens), str(len(state.accepted)))
    return table


def build_outcome_table(state: GenerationState) -> Table:
    """One row per generated category: quota vs. unique items collected."""
    table = Table(title="CATEGORIES", title_justify="left", box=box.ROUNDED)
    table.add_column("Category", no_wrap=True)
    table.add_column("Collected", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Rejected", justify="right")
    table.add_column("Stopped", justify="left")

    for outcome in state.outcomes:
        style = None if outcome.collected >= outcome.requested else "yellow"
        table.add_row(
            outcome.source_type.value,
            f"{outcome.collected}/{outcome.requested}",
            str(outcome.attempts),
            str(outcome.rejected),
            outcome.reason,
            style=style,
        )
    return table


def render_summary(state: GenerationState, title: str, total_duration: float, console: Console) -> None:
    console.print(build_step_table(state, title, total_duration))
    if state.outcomes:
        console.print(build_outcome_table(state))


class PipelineOrchestrator:
    """Builds the configured steps and runs them in order over one GenerationState."""

    def __init__(self, config: Dict, store=None, observer=None):
        self.config = config
        self.name = config.get("name", "Generation")
        self.run_id = config.get("run_id") or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.debug = config.get("debug", False)
        self.store = store
        self.show_summary = config.get("show_summary", True)

        self.logger = observer or PipelineLogger(self.run_id, debug=self.debug)
        self.steps = [self._build_step(step_def) for step_def in config.get("steps", [])]

    def _build_step(self, step_def: Dict):
        # run-wide settings unless the step sets its own
        settings = step_def.setdefault("settings", {})
        settings.setdefault("debug", self.debug)
        if "llm_settings" in self.config:
            settings.setdefault("llm_settings", self.config["llm_settings"])

        step = StepFactory.create(step_def)
        step.observer = self.logger
        step.store = self.store
        return step

    def run(self, initial_state: GenerationState) -> GenerationState:
        self.logger.on_run_start(self.name, self.run_id)
        print(f"--- {self.name} (ID={self.run_id}) ---")

        started = time.time()
        state = initial_state
        for step in self.steps:
            state = step.run(state)
        total_duration = time.time() - started

        self.logger.on_run_end(total_duration)

        if self.show_summary:
            render_summary(state, self.name, total_duration, Console())
        self.logger.log_summary(self.summary_text(state, total_duration))
        return state

    def summary_text(self, state: GenerationState, total_duration: float) -> str:
        buffer = io.StringIO()
        render_summary(state, self.name, total_duration, Console(file=buffer, no_color=True, width=120))
        return buffer.getvalue()

    def step_names(self) -> List[str]:
        return [step.step_name for step in self.steps]
