# orchestrator.py
# Iterative automation orchestrator.
#
# The Orchestrator is the composition root. The planner is a passive
# responder and this class owns all control flow: it asks for a plan, hands it
# to the executor, and routes whatever stopped the walk to recovery or
# continuation until the goal is reached or a terminal condition hits.
#
# Control flow:
#   goal → initial plan → execute
#   → failed?            recovery plan (bounded) → execute
#   → analysis step?     page state back to planner → execute
#   → intermediate done? next phase → execute
#   → final done         result
#
# All terminal output is delegated to the reporter. No formatting here.

import threading

from plan_loop.actions import ActionExecutor
from plan_loop.client import LLMClient
from plan_loop.context import ContextManager
from plan_loop.continuation import ContinuationHandler, ContinuationReason
from plan_loop.display import Reporter
from plan_loop.exceptions import (
    AutomationCancelled,
    PlanValidationError,
    RecoveryExhausted,
    StepLimitExceeded,
    TransportError,
)
from plan_loop.executor import ExecutionStatus, PlanExecutor
from plan_loop.messages import build_acknowledgements, rejected_result, requester_turn
from plan_loop.models import AutomationResult, PlanType, Role
from plan_loop.planner import Planner
from plan_loop.recovery import ErrorRecoveryHandler
from plan_loop.registry import ToolRegistry
from plan_loop.session import SessionState
from plan_loop.settings import Settings
from plan_loop.store import SessionStore
from plan_loop.usage import UsageTracker

# Run-level failures become AutomationResult.error. Anything else propagates.
_TERMINAL_ERRORS = (PlanValidationError, TransportError, RecoveryExhausted, StepLimitExceeded, AutomationCancelled)


class Orchestrator:
    """
    Drives one automation goal to completion.

    Collaborators are shared across runs; every piece of per-run state lives
    on the SessionState created inside run(), so independent runs may use
    the same Orchestrator from separate threads.

    Example:
        orchestrator = Orchestrator(
            llm_client=OpenRouterClient(model="anthropic/claude-sonnet-4.5"),
            action_executor=HttpActionExecutor("http://localhost:8765"),
        )
        result = orchestrator.run("Log in and open the billing page.")
    """

    def __init__(
        self,
        llm_client: LLMClient,
        action_executor: ActionExecutor,
        registry: ToolRegistry | None = None,
        context_manager: ContextManager | None = None,
        settings: Settings | None = None,
        reporter: Reporter | None = None,
        store: SessionStore | None = None,
    ) -> None:
        self._client = llm_client
        self._actions = action_executor
        self._registry = registry or ToolRegistry()
        self._context = context_manager or ContextManager()
        self._settings = settings or Settings()
        self._reporter = reporter or Reporter()
        self._store = store

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(
        self,
        goal: str,
        reference_context: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AutomationResult:
        """
        Full pipeline entry point.

        Returns an AutomationResult in all cases: success, recovery
        exhaustion, step ceiling, cancellation, invalid plans and transport
        failures are all reported through `error`.
        """
        session = SessionState(
            goal,
            reference_context=reference_context,
            max_recovery_attempts=self._settings.max_recovery_attempts,
            store=self._store,
        )
        usage = UsageTracker()
        planner = Planner(self._client, self._registry, self._context, usage, self._reporter, self._store)
        self._reporter.run_started(goal, session.session_id)

        analysis: str | None = None
        try:
            plan = planner.initial_plan(session)
            session.set_plan(plan)
            self._reporter.plan_generated(plan, "initial")
            analysis = self._drive(session, planner, cancel_event)
        except _TERMINAL_ERRORS as exc:
            self._reporter.halt(str(exc))
            self._acknowledge_outstanding(session)
            session.mark_complete(False, str(exc))

        if analysis is None and session.current_plan is not None:
            analysis = session.current_plan.analysis or None

        result = AutomationResult(
            success=session.final_success,
            session_id=session.session_id,
            plan=session.current_plan,
            executed_steps=list(session.executed_steps),
            error=session.final_error,
            analysis=analysis,
            usage=usage.total,
            recovery_attempts=session.recovery_attempts,
            total_steps_executed=len(session.executed_steps),
            phase_number=session.phase_number,
        )
        self._reporter.run_finished(result)
        return result

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _drive(
        self,
        session: SessionState,
        planner: Planner,
        cancel_event: threading.Event | None,
    ) -> str | None:
        """Execute plans until one finishes the goal. Returns the final analysis text."""
        executor = PlanExecutor(self._actions, self._registry, self._settings.max_total_steps, self._reporter)
        recovery = ErrorRecoveryHandler(planner, self._reporter)
        continuation = ContinuationHandler(planner, self._reporter)
        analysis = session.current_plan.analysis or None

        while True:
            outcome = executor.execute(session, cancel_event)

            if outcome.status is ExecutionStatus.FAILED:
                if session.recovery_budget_exhausted():
                    raise RecoveryExhausted(
                        f"Recovery attempts exhausted ({session.max_recovery_attempts}). "
                        f"Last failure: {outcome.failure}"
                    )
                plan = recovery.handle(session, outcome.step, outcome.failure.outcome)
                analysis = plan.analysis or analysis
                continue

            if outcome.status is ExecutionStatus.LIMIT_REACHED:
                raise StepLimitExceeded(f"Step limit reached ({self._settings.max_total_steps} steps).")

            if outcome.status is ExecutionStatus.CANCELLED:
                raise AutomationCancelled("Automation cancelled before completion.")

            if outcome.status is ExecutionStatus.ANALYSIS_TERMINATED:
                self._reporter.analysis_returned(outcome.step)
                reason = ContinuationReason.ANALYSIS_TERMINATED
            elif session.is_in_recovery:
                reason = ContinuationReason.RECOVERY_PLAN_COMPLETE
            elif session.current_plan.plan_type is PlanType.INTERMEDIATE:
                reason = ContinuationReason.INTERMEDIATE_PHASE_COMPLETE
            else:
                session.mark_complete(True)
                return analysis

            resumed = continuation.resume(session, reason)
            analysis = resumed.analysis or analysis
            if resumed.concluded:
                session.mark_complete(True)
                return analysis

    def _acknowledge_outstanding(self, session: SessionState) -> None:
        """
        Answer the requests of a trailing planner turn so the conversation can be resumed.

        The active plan's turn is acknowledged step by step; a turn that was
        rejected before becoming the plan gets an error result per request.
        """
        last = session.messages[-1] if session.messages else None
        if last is None or last.role is not Role.PLANNER or not last.requests():
            return

        plan = session.current_plan
        requests = last.requests()
        if plan is not None and plan.request_ids() == [request.id for request in requests]:
            results = build_acknowledgements(plan, session.current_plan_records())
        else:
            results = [rejected_result(request) for request in requests]
        session.append_message(requester_turn(results))
