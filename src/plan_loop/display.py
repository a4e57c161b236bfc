# display.py
# All terminal output for the orchestration engine.
#
# The engine never formats strings: it calls named Reporter methods. The base
# Reporter is silent, so the engine runs headless in tests and services;
# ConsoleReporter renders the same events with rich. Swap the reporter to
# change the entire UI.
#
# Colour language:
#   cyan    orchestration / routing events
#   blue    planner calls and plans
#   yellow  recovery, budget and context editing
#   green   success / confirmed
#   red     failures, halts
#   magenta analysis results and phase transitions

import json

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from plan_loop.models import AutomationResult, BudgetStats, ExecutedStepRecord, Plan, Step


class Reporter:
    """Progress observer. Every hook is a no-op; override what you need."""

    def run_started(self, goal: str, session_id: str) -> None:
        pass

    def thinking(self, message: str) -> None:
        pass

    def plan_generated(self, plan: Plan, label: str) -> None:
        pass

    def step_started(self, step_number: int, step: Step, index: int, total: int) -> None:
        pass

    def step_completed(self, record: ExecutedStepRecord) -> None:
        pass

    def step_failed(self, record: ExecutedStepRecord) -> None:
        pass

    def analysis_returned(self, step: Step) -> None:
        pass

    def phase_completed(self, phase_number: int) -> None:
        pass

    def recovery_started(self, attempt: int, max_attempts: int) -> None:
        pass

    def budget(self, stats: BudgetStats) -> None:
        pass

    def context_edited(self, cleared_count: int, cleared_tokens: int) -> None:
        pass

    def halt(self, message: str) -> None:
        pass

    def run_finished(self, result: AutomationResult) -> None:
        pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Console renderer
# ---------------------------------------------------------------------------


class ConsoleReporter(Reporter):
    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def run_started(self, goal: str, session_id: str) -> None:
        self.console.print()
        self.console.print(Rule(f"[cyan]SESSION {session_id[:8]}[/cyan]", style="cyan"))
        self.console.print(
            Panel(f"[white]{goal}[/white]", title=_label("GOAL", "cyan"), border_style="cyan", padding=(0, 2))
        )

    def thinking(self, message: str) -> None:
        self.console.print(_label("PLANNER", "blue"), f"[blue] {message}[/blue]")

    def plan_generated(self, plan: Plan, label: str) -> None:
        table = Table(
            box=box.SIMPLE_HEAVY,
            border_style="blue",
            show_header=True,
            header_style="bold blue",
            padding=(0, 1),
        )
        table.add_column("#", justify="center", width=4)
        table.add_column("Tool", style="bold white", width=16)
        table.add_column("Input", style="dim white")

        for step in plan.steps:
            table.add_row(str(step.order + 1), step.tool_name, _mono(json.dumps(step.input), 60))

        self.console.print()
        self.console.print(
            Panel(
                table,
                title=_label(f"{label.upper()} PLAN: {plan.plan_type.value.upper()}", "blue"),
                subtitle=f"[dim]{_mono(plan.analysis, 100)}[/dim]" if plan.analysis else None,
                border_style="blue",
                padding=(0, 1),
            )
        )

    def step_started(self, step_number: int, step: Step, index: int, total: int) -> None:
        self.console.print(
            f"[dim]  [{index + 1}/{total}][/dim] [bold white]Step {step_number}[/bold white]"
            f" [cyan]→ {step.tool_name}[/cyan] [dim]{_mono(json.dumps(step.input), 80)}[/dim]"
        )

    def step_completed(self, record: ExecutedStepRecord) -> None:
        summary = ""
        if record.result is not None and record.result.effects is not None and record.result.effects.summary:
            summary = f" [dim]{_mono(record.result.effects.summary, 80)}[/dim]"
        self.console.print(f"    [green]✔ {record.tool_name}[/green]{summary}")

    def step_failed(self, record: ExecutedStepRecord) -> None:
        self.console.print(f"    [red]✘ {record.tool_name}: {record.error or 'Unknown error'}[/red]")

    def analysis_returned(self, step: Step) -> None:
        self.console.print(
            _label("ANALYSIS", "magenta"),
            f"[magenta] Plan ended on {step.tool_name}; returning page state to the planner.[/magenta]",
        )

    def phase_completed(self, phase_number: int) -> None:
        self.console.print(_label("PHASE", "magenta"), f"[magenta] Phase {phase_number} complete.[/magenta]")

    def recovery_started(self, attempt: int, max_attempts: int) -> None:
        self.console.print()
        self.console.print(
            _label("RECOVERY", "yellow"),
            f"[yellow] Attempt {attempt}/{max_attempts}: reporting failure and requesting a new plan…[/yellow]",
        )

    def budget(self, stats: BudgetStats) -> None:
        self.console.print(
            f"[dim]  context ≈ {stats.total_tokens:,} tokens"
            f" (messages {stats.message_tokens:,}, tools {stats.tool_schema_tokens:,},"
            f" static {stats.static_prompt_tokens:,}), {stats.remaining_capacity:,} remaining[/dim]"
        )

    def context_edited(self, cleared_count: int, cleared_tokens: int) -> None:
        self.console.print(
            _label("CONTEXT", "yellow"),
            f"[yellow] Cleared {cleared_count} old action pairs (≈{cleared_tokens:,} tokens).[/yellow]",
        )

    def halt(self, message: str) -> None:
        self.console.print()
        self.console.print(Panel(f"[bold red]{message}[/bold red]", title=_label("HALT", "red"), border_style="red"))

    def run_finished(self, result: AutomationResult) -> None:
        color = "green" if result.success else "red"
        status = "SUCCESS" if result.success else "FAILED"
        lines = [
            f"[bold {color}]{status}[/bold {color}]",
            f"[dim]Steps executed   :[/dim] {result.total_steps_executed}",
            f"[dim]Recovery attempts:[/dim] {result.recovery_attempts}",
            f"[dim]Phases           :[/dim] {result.phase_number}",
            f"[dim]Tokens           :[/dim] {result.usage.input_tokens:,} in / {result.usage.output_tokens:,} out"
            f" (cache {result.usage.cache_read_tokens:,} read, {result.usage.cache_write_tokens:,} write)",
            f"[dim]Cost             :[/dim] ${result.usage.total_cost:.4f}",
        ]
        if result.error:
            lines.append(f"[red]{result.error}[/red]")
        self.console.print()
        self.console.print(
            Panel("\n".join(lines), title=_label("RESULT", color), border_style=color, padding=(1, 4))
        )
