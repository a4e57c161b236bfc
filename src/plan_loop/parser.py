# parser.py
# Planner response → Plan.
#
# Pure transformation: no side effects, no I/O. Parsing the same response
# twice always yields equal plans.

import json
import re

from plan_loop.exceptions import PlanValidationError
from plan_loop.models import ActionRequestBlock, Plan, PlannerResponse, PlanType, Step, TextBlock
from plan_loop.registry import ToolRegistry

_INTERMEDIATE_KEYWORDS = (
    "then analyze",
    "then check",
    "then verify",
    "capture viewport snapshot",
    "need to analyze",
    "need to check",
    "partial plan",
    "intermediate step",
    "will continue",
    "then proceed",
    "after analyzing",
)

_REASONING_KEYWORDS = ("intermediate", "final", "partial", "complete", "analyze", "context", "then", "after")


class PlanParser:
    """Converts planner content blocks into an ordered, validated Plan."""

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    def parse(self, response: PlannerResponse) -> Plan:
        """
        Build a Plan from the response blocks.

        Text blocks concatenate into the analysis; action requests become steps
        in response order. A plan-metadata declaration sets the plan type and is
        kept aside so it can be acknowledged, but is never a step.
        """
        texts: list[str] = []
        steps: list[Step] = []
        declared_type: PlanType | None = None
        metadata_call_id: str | None = None
        metadata_position = 0
        declared_reasoning: str | None = None

        for block in response.content:
            if isinstance(block, TextBlock):
                texts.append(block.text)
            elif isinstance(block, ActionRequestBlock):
                if block.name == self._registry.metadata_tool:
                    if metadata_call_id is not None:
                        raise PlanValidationError("Plan metadata declared more than once.")
                    metadata_call_id = block.id
                    metadata_position = len(steps)
                    declared_type = _coerce_plan_type(block.input.get("planType"))
                    declared_reasoning = block.input.get("reasoning")
                    continue
                steps.append(
                    Step(
                        tool_name=block.name,
                        tool_call_id=block.id,
                        input=block.input,
                        order=len(steps),
                    )
                )
            else:
                raise TypeError(f"Unexpected block in planner response: {block!r}")

        analysis = "\n".join(texts).strip()
        plan_type = declared_type or self._detect_plan_type(analysis, steps)

        return Plan(
            steps=tuple(steps),
            analysis=analysis,
            plan_type=plan_type,
            reasoning=declared_reasoning or _extract_reasoning(analysis),
            metadata_call_id=metadata_call_id,
            metadata_position=metadata_position,
        )

    def validate(self, plan: Plan) -> None:
        """Raise PlanValidationError if the plan cannot be executed."""
        if plan.total_steps == 0:
            raise PlanValidationError("Plan has no automation steps; it is not executable.")

        known = self._registry.names()
        for step in plan.steps:
            if step.tool_name not in known:
                raise PlanValidationError(f"Unknown tool: {step.tool_name} at step index {step.order}")

    def parse_and_validate(self, response: PlannerResponse) -> Plan:
        plan = self.parse(response)
        self.validate(plan)
        return plan

    def _detect_plan_type(self, analysis: str, steps: list[Step]) -> PlanType:
        if steps and self._registry.is_analysis_tool(steps[-1].tool_name):
            return PlanType.INTERMEDIATE
        lowered = analysis.lower()
        if any(keyword in lowered for keyword in _INTERMEDIATE_KEYWORDS):
            return PlanType.INTERMEDIATE
        return PlanType.FINAL

    @staticmethod
    def summarize(plan: Plan) -> str:
        """Human-readable plan summary."""
        if not plan.steps:
            return "No automation steps generated"

        lines = [f"Automation Plan ({plan.total_steps} steps, {plan.plan_type.value}):", ""]
        if plan.analysis:
            lines += ["Analysis:", plan.analysis, ""]
        lines.append("Steps:")
        for step in plan.steps:
            lines.append(f"{step.order + 1}. {step.tool_name}")
            lines.append(f"   Input: {json.dumps(step.input)}")
        return "\n".join(lines)


def _coerce_plan_type(value: object) -> PlanType | None:
    try:
        return PlanType(str(value).lower())
    except ValueError:
        return None


def _extract_reasoning(analysis: str) -> str | None:
    sentences = re.split(r"[.!?]\s+", analysis)
    matches = [s for s in sentences if any(k in s.lower() for k in _REASONING_KEYWORDS)]
    return ". ".join(matches[:2]) if matches else None
