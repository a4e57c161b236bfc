# executor.py
# PlanExecutor: walks the current plan in order against the action surface.
#
# It records every outcome on the session and reports how the walk ended; it
# never talks to the planner. Deciding what happens next is the
# orchestrator's job.

import threading
import time
from dataclasses import dataclass
from enum import Enum

from plan_loop.actions import ActionExecutor
from plan_loop.display import Reporter
from plan_loop.exceptions import ActionExecutionError, TransportError
from plan_loop.models import ActionError, ActionErrorDetails, ActionOutcome, Step
from plan_loop.registry import ToolRegistry
from plan_loop.session import SessionState


class ExecutionStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    ANALYSIS_TERMINATED = "analysis_terminated"
    LIMIT_REACHED = "limit_reached"
    CANCELLED = "cancelled"


@dataclass
class ExecutionOutcome:
    status: ExecutionStatus
    step: Step | None = None
    failure: ActionExecutionError | None = None


def _failed_outcome(step: Step, code: str, message: str, suggestions: list[str] | None = None) -> ActionOutcome:
    return ActionOutcome(
        success=False,
        tool_name=step.tool_name,
        error=ActionError(code=code, message=message, details=ActionErrorDetails(suggestions=suggestions)),
        timestamp=time.time(),
    )


class PlanExecutor:
    def __init__(
        self,
        action_executor: ActionExecutor,
        registry: ToolRegistry,
        max_total_steps: int = 100,
        reporter: Reporter | None = None,
    ) -> None:
        self._actions = action_executor
        self._registry = registry
        self._max_total_steps = max_total_steps
        self._reporter = reporter or Reporter()

    def execute(self, session: SessionState, cancel_event: threading.Event | None = None) -> ExecutionOutcome:
        """
        Execute session.current_plan step by step.

        Stops at the first failure, at a trailing analysis step, at the step
        ceiling, or when cancel_event is set. TransportError from the action
        surface propagates.
        """
        plan = session.current_plan
        if plan is None:
            raise ValueError("No plan to execute.")

        total = plan.total_steps
        for index, step in enumerate(plan.steps):
            if cancel_event is not None and cancel_event.is_set():
                return ExecutionOutcome(ExecutionStatus.CANCELLED, step=step)

            if len(session.executed_steps) >= self._max_total_steps:
                return ExecutionOutcome(ExecutionStatus.LIMIT_REACHED, step=step)

            self._reporter.step_started(session.next_step_number, step, index, total)
            outcome = self._dispatch(step)

            error = None if outcome.success else (outcome.error.message if outcome.error else "Tool execution failed")
            record = session.record_step(
                tool_name=step.tool_name,
                tool_call_id=step.tool_call_id,
                success=outcome.success,
                result=outcome,
                error=error,
            )

            if not outcome.success:
                self._reporter.step_failed(record)
                failure = ActionExecutionError(f"Step {record.step_number} ({step.tool_name}) failed: {error}", outcome)
                return ExecutionOutcome(ExecutionStatus.FAILED, step=step, failure=failure)

            self._reporter.step_completed(record)

            # Only a trailing analysis step pauses the plan; earlier ones run normally.
            if self._registry.is_analysis_tool(step.tool_name) and index == total - 1:
                return ExecutionOutcome(ExecutionStatus.ANALYSIS_TERMINATED, step=step)

        return ExecutionOutcome(ExecutionStatus.COMPLETED)

    def _dispatch(self, step: Step) -> ActionOutcome:
        validation = self._registry.validate(step.tool_name, step.input)
        if not validation.valid:
            return _failed_outcome(step, "INVALID_PARAMETERS", "; ".join(validation.errors), validation.errors)

        try:
            return self._actions.execute(step.tool_name, step.input)
        except TransportError:
            raise
        except Exception as exc:
            return _failed_outcome(step, "EXECUTION_ERROR", str(exc))
