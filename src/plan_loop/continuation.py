# continuation.py
# ContinuationHandler: resumes the conversation after a plan stops on purpose.
#
# Three reasons share one flow: acknowledge the whole plan, add a prompt that
# says what happened, ask for the next plan. They differ only in the prompt
# text and the instruction profile.

from dataclasses import dataclass
from enum import Enum

from plan_loop.display import Reporter
from plan_loop.messages import build_acknowledgements, requester_turn
from plan_loop.models import Plan
from plan_loop.planner import Planner
from plan_loop.prompts import (
    Profile,
    build_analysis_prompt,
    build_phase_prompt,
    build_recovery_complete_prompt,
)
from plan_loop.session import SessionState


class ContinuationReason(str, Enum):
    ANALYSIS_TERMINATED = "analysis_terminated"
    INTERMEDIATE_PHASE_COMPLETE = "intermediate_phase_complete"
    RECOVERY_PLAN_COMPLETE = "recovery_plan_complete"


@dataclass
class ContinuationResult:
    plan: Plan | None
    concluded: bool = False
    analysis: str = ""


_THINKING = {
    ContinuationReason.ANALYSIS_TERMINATED: "Reading the page state and planning the next steps…",
    ContinuationReason.INTERMEDIATE_PHASE_COMPLETE: "Intermediate plan done; planning the next phase…",
    ContinuationReason.RECOVERY_PLAN_COMPLETE: "Recovery plan done; deciding what remains…",
}


class ContinuationHandler:
    def __init__(self, planner: Planner, reporter: Reporter | None = None) -> None:
        self._planner = planner
        self._reporter = reporter or Reporter()

    def resume(self, session: SessionState, reason: ContinuationReason) -> ContinuationResult:
        """
        Acknowledge the finished plan and install the planner's next one.

        A reply with no steps means the planner considers the goal achieved;
        the result is then `concluded` and no plan is installed.
        """
        plan = session.current_plan
        if plan is None:
            raise ValueError("No plan available to continue from.")

        if reason is ContinuationReason.INTERMEDIATE_PHASE_COMPLETE:
            session.mark_phase_complete()
            self._reporter.phase_completed(session.phase_number - 1)

        results = build_acknowledgements(plan, session.current_plan_records())
        session.append_message(requester_turn(results, self._prompt(session, reason)))

        response = self._planner.request(session, self._profile(session, reason), _THINKING[reason])
        if reason is ContinuationReason.RECOVERY_PLAN_COMPLETE:
            session.exit_recovery()

        next_plan = self._planner.parser.parse(response)
        if next_plan.total_steps == 0:
            if next_plan.metadata_call_id:
                session.append_message(requester_turn(build_acknowledgements(next_plan, [])))
            return ContinuationResult(plan=None, concluded=True, analysis=next_plan.analysis)

        self._planner.parser.validate(next_plan)
        session.set_plan(next_plan)
        self._reporter.plan_generated(next_plan, reason.value.replace("_", " "))
        return ContinuationResult(plan=next_plan, analysis=next_plan.analysis)

    @staticmethod
    def _profile(session: SessionState, reason: ContinuationReason) -> Profile:
        if reason is ContinuationReason.RECOVERY_PLAN_COMPLETE:
            return Profile.RECOVERY
        if reason is ContinuationReason.ANALYSIS_TERMINATED and session.is_in_recovery:
            return Profile.RECOVERY
        return Profile.PLANNING

    @staticmethod
    def _prompt(session: SessionState, reason: ContinuationReason) -> str:
        outcome = session.last_outcome()
        if reason is ContinuationReason.ANALYSIS_TERMINATED:
            return build_analysis_prompt(session.goal, session.executed_steps, outcome)
        if reason is ContinuationReason.INTERMEDIATE_PHASE_COMPLETE:
            phase = session.last_completed_phase()
            return build_phase_prompt(session.goal, phase, session.executed_steps, outcome)
        return build_recovery_complete_prompt(session.goal, session.executed_steps, outcome)
