# prompts.py
# Instruction profiles and requester-turn text.
#
# Two system profiles: PLANNING (initial plans and continuations) and
# RECOVERY (after a failed step). Everything else here renders the text
# block that accompanies a requester turn.

import json
from enum import Enum
from xml.sax.saxutils import escape

from plan_loop.models import ActionOutcome, CompletedPhase, ExecutedStepRecord, Step


class Profile(str, Enum):
    PLANNING = "planning"
    RECOVERY = "recovery"


# ---------------------------------------------------------------------------
# System Prompts
# ---------------------------------------------------------------------------

PLANNING_SYSTEM_PROMPT = """\
You are an expert browser automation planner.

You will receive the user's automation goal, the available browser automation
tools and, when present, a recorded session showing how the user accomplished a
similar task manually. The recording is REFERENCE MATERIAL: use it to learn the
goal, the pages involved and the selectors available. Do not replicate it blindly.

Respond with tool calls that form ONE plan:
  - Take the shortest, most direct path to the goal. Skip steps that do not
    change the outcome (scrolling just to look, redundant navigation).
  - Use pure CSS selectors and always provide backup selectors.
  - Call declare_plan_metadata in every plan to state its type:
      INTERMEDIATE: you must execute some steps and inspect the result before
                    deciding what comes next. End the plan with exactly one
                    analysis tool (extract_context or take_snapshot).
      FINAL:        the plan completes the entire remaining goal.

When an intermediate plan finishes you will receive the results of every tool
call and be asked for the next plan. When the goal is already achieved, reply
with text only and no tool calls.\
"""

RECOVERY_SYSTEM_PROMPT = """\
You are a browser automation recovery specialist working inside an ACTIVE
automation session that has just encountered an error.

You are NOT starting from scratch: some steps already succeeded.

  1. Understand the error: which step failed, what it was trying to do, and
     the exact error message and suggestions.
  2. Inspect the CURRENT browser state before trusting the old plan. If you
     need to see the page, end your plan with extract_context or take_snapshot
     and you will receive the result before planning further.
  3. Generate a NEW plan that continues from the current state. Do not repeat
     steps that already succeeded. Choose selectors from the observed page,
     not from the failed plan.
  4. Call declare_plan_metadata to state whether the plan is INTERMEDIATE or
     FINAL.

When the goal is already achieved, reply with text only and no tool calls.\
"""

SYSTEM_PROMPTS = {
    Profile.PLANNING: PLANNING_SYSTEM_PROMPT,
    Profile.RECOVERY: RECOVERY_SYSTEM_PROMPT,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _format_history(records: list[ExecutedStepRecord]) -> str:
    """Render the step log as one line per executed step."""
    if not records:
        return "- (no steps executed yet)"
    lines: list[str] = []
    for record in records:
        status = "SUCCESS" if record.success else "FAILED"
        summary = ""
        if record.result is not None and record.result.effects is not None and record.result.effects.summary:
            summary = f" ({record.result.effects.summary})"
        lines.append(f"- Step {record.step_number}: {record.tool_name} - {status}{summary}")
    return "\n".join(lines)


def _location(outcome: ActionOutcome | None) -> str:
    if outcome is None or not outcome.current_url:
        return "- URL unknown"
    return f"- Current URL: {outcome.current_url}"


# ---------------------------------------------------------------------------
# Requester turns
# ---------------------------------------------------------------------------


def build_goal_prompt(goal: str, has_reference: bool) -> str:
    if has_reference:
        return (
            "I have provided a recorded session above showing how I manually accomplished a similar task.\n\n"
            f"**My automation goal:**\n{goal}\n\n"
            "Please analyze the recorded session and create the plan that accomplishes my goal. "
            "Generate ALL tool calls needed for that specific FINAL or INTERMEDIATE plan."
        )
    return (
        f"**My automation goal:**\n{goal}\n\n"
        "Please create the plan that accomplishes this goal. "
        "Generate ALL tool calls needed for that specific FINAL or INTERMEDIATE plan."
    )


def build_error_report(
    goal: str,
    failed_step: Step,
    failed_step_number: int,
    outcome: ActionOutcome,
    history: list[ExecutedStepRecord],
) -> str:
    """Structured report of a failed step for the recovery planner."""
    error = outcome.error
    lines = [
        "**AUTOMATION ERROR ENCOUNTERED**",
        "",
        "**Original Goal:**",
        goal,
        "",
        "**Execution Progress:**",
        _format_history(history),
        "",
        "**Failed Step:**",
        f"- Step {failed_step_number}: {failed_step.tool_name}",
        f"- Parameters: {json.dumps(failed_step.input, indent=2)}",
        "",
        "**Error Details:**",
        f"- Message: {error.message if error else 'Unknown error'}",
    ]
    if error is not None:
        lines.append(f"- Code: {error.code}")
        if error.details is not None:
            lines.append(f"- Details: {error.details.model_dump_json(exclude_none=True)}")
            if error.details.suggestions:
                lines.append(f"- Suggestions: {', '.join(error.details.suggestions)}")
    succeeded = sum(1 for record in history if record.success)
    lines += [
        "",
        "**Current State:**",
        _location(outcome),
        "",
        "**Your Task:**",
        "1. Analyze what went wrong. You may use the analysis tools (extract_context, take_snapshot).",
        "2. Generate a NEW plan that starts from the CURRENT state, completes the remaining work, "
        "uses selectors from the observed page and avoids the error that just occurred.",
        "",
        f"Remember: {succeeded} steps have already completed successfully. Focus on what remains.",
    ]
    return "\n".join(lines)


def build_analysis_prompt(goal: str, history: list[ExecutedStepRecord], outcome: ActionOutcome | None) -> str:
    return "\n".join(
        [
            "**ANALYSIS RESULT RETURNED**",
            "",
            "**Original Goal:**",
            goal,
            "",
            "**Executed Steps:**",
            _format_history(history),
            "",
            "**Current State:**",
            _location(outcome),
            "",
            "The page state you requested is in the last tool result above. Use it to choose accurate "
            "selectors and generate the next plan from the CURRENT state.",
        ]
    )


def build_phase_prompt(
    goal: str,
    phase: CompletedPhase,
    history: list[ExecutedStepRecord],
    outcome: ActionOutcome | None,
) -> str:
    return "\n".join(
        [
            "**INTERMEDIATE PLAN COMPLETED SUCCESSFULLY**",
            "",
            "**Original Goal:**",
            goal,
            "",
            f"**Completed Plan Analysis (phase {phase.phase_number}):**",
            phase.plan.analysis or "(none)",
            "",
            f"**Executed Steps ({phase.steps_executed} in this phase):**",
            _format_history(history),
            "",
            "**Current State:**",
            _location(outcome),
            "",
            "**Your Task:**",
            "1. Analyze the extracted context in the tool results above.",
            "2. Generate the NEXT plan from the current state: INTERMEDIATE only if you must execute "
            "and analyze again, FINAL if you can now complete the remaining goal.",
        ]
    )


def build_recovery_complete_prompt(goal: str, history: list[ExecutedStepRecord], outcome: ActionOutcome | None) -> str:
    return "\n".join(
        [
            "**RECOVERY PLAN COMPLETED**",
            "",
            "**Original Goal:**",
            goal,
            "",
            "**Executed Steps:**",
            _format_history(history),
            "",
            "**Current State:**",
            _location(outcome),
            "",
            "Decide from the current state what remains. If the goal is achieved reply with text only; "
            "otherwise generate the next plan.",
        ]
    )


# ---------------------------------------------------------------------------
# Reference context
# ---------------------------------------------------------------------------


def format_recorded_session(name: str, actions: list[dict], description: str = "") -> str:
    """Render a prior manual run as XML for the cacheable reference context."""
    lines = [
        "<recorded_session>",
        "<metadata>",
        f"  <name>{escape(name)}</name>",
        f"  <description>{escape(description)}</description>",
        f"  <total_actions>{len(actions)}</total_actions>",
        "</metadata>",
        "<actions>",
    ]
    for index, action in enumerate(actions, start=1):
        kind = escape(str(action.get("type", "unknown")))
        lines.append(f'  <action step="{index}" type="{kind}">')
        for key in ("url", "selector", "value", "text"):
            if action.get(key) is not None:
                lines.append(f"    <{key}>{escape(str(action[key]))}</{key}>")
        lines.append("  </action>")
    lines += ["</actions>", "</recorded_session>"]
    return "\n".join(lines)
