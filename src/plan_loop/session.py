# session.py
# SessionState: the single mutable record of one automation run.
#
# Owned by one Orchestrator.run() call. Handlers receive it by reference and
# mutate it only through these operations. Never shared between runs.

import uuid
from typing import TYPE_CHECKING

from plan_loop.context import estimate_message
from plan_loop.messages import check_acknowledgements
from plan_loop.models import (
    ActionOutcome,
    CompletedPhase,
    ConversationMessage,
    ExecutedStepRecord,
    Plan,
    PlanType,
)

if TYPE_CHECKING:
    from plan_loop.store import SessionStore


class SessionState:
    def __init__(
        self,
        goal: str,
        reference_context: str | None = None,
        max_recovery_attempts: int = 7,
        store: "SessionStore | None" = None,
    ) -> None:
        self.session_id = uuid.uuid4().hex
        self.goal = goal
        self.reference_context = reference_context

        self.messages: list[ConversationMessage] = []
        self.executed_steps: list[ExecutedStepRecord] = []

        self.current_plan: Plan | None = None
        self.plan_started_at = 0

        self.phase_number = 1
        self.completed_phase_plans: list[CompletedPhase] = []

        self.is_in_recovery = False
        self.recovery_attempts = 0
        self.max_recovery_attempts = max_recovery_attempts

        self.is_complete = False
        self.final_success = False
        self.final_error: str | None = None

        self._store = store
        if store is not None:
            store.create(self)

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    def set_plan(self, plan: Plan) -> None:
        """Replace the active plan. Records from here on belong to it."""
        self.current_plan = plan
        self.plan_started_at = len(self.executed_steps)

    def current_plan_records(self) -> list[ExecutedStepRecord]:
        return self.executed_steps[self.plan_started_at :]

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    def append_message(self, message: ConversationMessage) -> None:
        previous = self.messages[-1] if self.messages else None
        check_acknowledgements(previous, message)
        if not message.token_estimate:
            message.token_estimate = estimate_message(message)
        self.messages.append(message)
        if self._store is not None:
            self._store.add_message(self.session_id, message)

    def replace_messages(self, messages: list[ConversationMessage]) -> None:
        """Swap in an edited history. Only context editing calls this."""
        self.messages = list(messages)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def record_step(
        self,
        tool_name: str,
        tool_call_id: str,
        success: bool,
        result: ActionOutcome | None = None,
        error: str | None = None,
    ) -> ExecutedStepRecord:
        """Append to the step log, assigning the next global step number."""
        step_number = self.executed_steps[-1].step_number + 1 if self.executed_steps else 1
        record = ExecutedStepRecord(
            step_number=step_number,
            tool_name=tool_name,
            tool_call_id=tool_call_id,
            success=success,
            result=result,
            error=error,
        )
        self.executed_steps.append(record)
        if self._store is not None:
            self._store.add_step(self.session_id, record)
        return record

    @property
    def next_step_number(self) -> int:
        return self.executed_steps[-1].step_number + 1 if self.executed_steps else 1

    def last_outcome(self) -> ActionOutcome | None:
        for record in reversed(self.executed_steps):
            if record.result is not None:
                return record.result
        return None

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def mark_phase_complete(self) -> None:
        """Close the current intermediate plan and move to the next phase."""
        plan = self.current_plan
        if plan is None or plan.plan_type is not PlanType.INTERMEDIATE:
            raise ValueError("Only a finished intermediate plan completes a phase.")
        self.completed_phase_plans.append(
            CompletedPhase(phase_number=self.phase_number, plan=plan, steps_executed=plan.total_steps)
        )
        self.phase_number += 1

    def last_completed_phase(self) -> CompletedPhase | None:
        return self.completed_phase_plans[-1] if self.completed_phase_plans else None

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def enter_recovery(self) -> None:
        self.is_in_recovery = True

    def exit_recovery(self) -> None:
        self.is_in_recovery = False

    def increment_recovery_attempts(self) -> None:
        if self.recovery_attempts >= self.max_recovery_attempts:
            raise ValueError("Recovery attempts would exceed the configured maximum.")
        self.recovery_attempts += 1

    def recovery_budget_exhausted(self) -> bool:
        return self.recovery_attempts >= self.max_recovery_attempts

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def mark_complete(self, success: bool, error: str | None = None) -> None:
        self.is_complete = True
        self.final_success = success
        self.final_error = error
        if self._store is not None:
            self._store.update(self)
