# messages.py
# Builds the requester turns that answer a planner turn.
#
# Every action request in a planner turn gets exactly one action result in the
# next requester turn, in the same order. check_acknowledgements() enforces
# that before anything is appended to the conversation.

import json

from plan_loop.exceptions import AcknowledgementMismatchError
from plan_loop.models import (
    ActionRequestBlock,
    ActionResultBlock,
    ConversationMessage,
    ExecutedStepRecord,
    Plan,
    Role,
    Step,
    TextBlock,
)
from plan_loop.registry import ANALYSIS_TOOLS

NOT_EXECUTED = "Not executed - automation stopped before reaching this step"
PLAN_REJECTED = "Not executed - the plan containing this request was rejected"


def _metadata_ack(plan: Plan) -> ActionResultBlock:
    return ActionResultBlock(request_id=plan.metadata_call_id, content=f"recorded planType: {plan.plan_type.value}")


def _analysis_payload(record: ExecutedStepRecord) -> str:
    outcome = record.result
    data = None
    if outcome is not None:
        data = outcome.environment_snapshot if outcome.environment_snapshot is not None else outcome.value
    return json.dumps(data, indent=2, default=str)


def result_for_record(step: Step, record: ExecutedStepRecord) -> ActionResultBlock:
    """The real outcome of an executed step, as the planner should see it."""
    if not record.success:
        message = record.error
        if message is None and record.result is not None and record.result.error is not None:
            message = record.result.error.message
        return ActionResultBlock(
            request_id=step.tool_call_id,
            content=json.dumps({"error": message or "Unknown error", "toolName": step.tool_name}),
            is_error=True,
        )

    if step.tool_name in ANALYSIS_TOOLS:
        return ActionResultBlock(request_id=step.tool_call_id, content=_analysis_payload(record))

    summary = None
    if record.result is not None and record.result.effects is not None:
        summary = record.result.effects.summary
    return ActionResultBlock(
        request_id=step.tool_call_id,
        content=json.dumps(
            {
                "success": True,
                "message": f"{step.tool_name} executed successfully",
                "summary": summary or f"Completed {step.tool_name}",
            }
        ),
    )


def not_executed_result(step: Step) -> ActionResultBlock:
    return ActionResultBlock(
        request_id=step.tool_call_id,
        content=json.dumps({"success": False, "error": NOT_EXECUTED, "toolName": step.tool_name}),
        is_error=True,
    )


def rejected_result(request: ActionRequestBlock, reason: str = PLAN_REJECTED) -> ActionResultBlock:
    """Answer a request from a planner turn that never became the active plan."""
    return ActionResultBlock(
        request_id=request.id,
        content=json.dumps({"success": False, "error": reason, "toolName": request.name}),
        is_error=True,
    )


def build_acknowledgements(plan: Plan, records: list[ExecutedStepRecord]) -> list[ActionResultBlock]:
    """
    One result per request the planner issued for `plan`, in issue order.

    Records are matched to steps by call id. Steps with no record (never
    reached) get a synthetic not-executed result.
    """
    by_call_id = {record.tool_call_id: record for record in records}
    results = []
    for step in plan.steps:
        record = by_call_id.get(step.tool_call_id)
        results.append(result_for_record(step, record) if record is not None else not_executed_result(step))
    if plan.metadata_call_id:
        results.insert(plan.metadata_position, _metadata_ack(plan))
    return results


def requester_turn(results: list[ActionResultBlock], text: str | None = None) -> ConversationMessage:
    content: list = list(results)
    if text:
        content.append(TextBlock(text=text))
    return ConversationMessage(role=Role.REQUESTER, content=content)


def check_acknowledgements(previous: ConversationMessage | None, message: ConversationMessage) -> None:
    """Raise AcknowledgementMismatchError unless `message` answers `previous` exactly."""
    if message.role is not Role.REQUESTER:
        return

    expected = [request.id for request in previous.requests()] if previous is not None else []
    answered = [result.request_id for result in message.results()]

    if previous is not None and previous.role is not Role.PLANNER and answered:
        raise AcknowledgementMismatchError("Action results must follow a planner turn.")
    if answered != expected:
        raise AcknowledgementMismatchError(
            f"Action results {answered} do not match the preceding action requests {expected}."
        )
