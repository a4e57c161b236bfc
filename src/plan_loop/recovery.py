# recovery.py
# ErrorRecoveryHandler: turns a failed step into a replacement plan.

from plan_loop.display import Reporter
from plan_loop.messages import build_acknowledgements, requester_turn
from plan_loop.models import ActionOutcome, Plan, Step
from plan_loop.planner import Planner
from plan_loop.prompts import Profile, build_error_report
from plan_loop.session import SessionState


class ErrorRecoveryHandler:
    def __init__(self, planner: Planner, reporter: Reporter | None = None) -> None:
        self._planner = planner
        self._reporter = reporter or Reporter()

    def handle(self, session: SessionState, failed_step: Step, outcome: ActionOutcome) -> Plan:
        """
        Report the failure and install the planner's replacement plan.

        Every request of the interrupted plan is answered: executed steps with
        their real outcome, unreached steps as not executed. The error report
        rides in the same requester turn. The caller has already checked that
        a recovery attempt is available.
        """
        plan = session.current_plan
        if plan is None:
            raise ValueError("No plan available for recovery.")

        session.increment_recovery_attempts()
        self._reporter.recovery_started(session.recovery_attempts, session.max_recovery_attempts)

        failed_record = next(r for r in reversed(session.executed_steps) if r.tool_call_id == failed_step.tool_call_id)
        results = build_acknowledgements(plan, session.current_plan_records())
        report = build_error_report(
            goal=session.goal,
            failed_step=failed_step,
            failed_step_number=failed_record.step_number,
            outcome=outcome,
            history=session.executed_steps,
        )
        session.append_message(requester_turn(results, report))

        response = self._planner.request(session, Profile.RECOVERY, "Analyzing the failure and replanning…")
        new_plan = self._planner.parser.parse_and_validate(response)

        session.set_plan(new_plan)
        session.enter_recovery()
        self._reporter.plan_generated(new_plan, "recovery")
        return new_plan
