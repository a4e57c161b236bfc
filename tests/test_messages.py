import json

from helpers import call, metadata, response
from plan_loop.messages import NOT_EXECUTED, build_acknowledgements, requester_turn
from plan_loop.models import ActionOutcome, ExecutedStepRecord, Role
from plan_loop.parser import PlanParser
from plan_loop.registry import ToolRegistry


def _plan(*blocks):
    return PlanParser(ToolRegistry()).parse(response(*blocks))


def _record(number: int, call_id: str, tool: str, success: bool = True, **outcome) -> ExecutedStepRecord:
    return ExecutedStepRecord(
        step_number=number,
        tool_name=tool,
        tool_call_id=call_id,
        success=success,
        result=ActionOutcome(success=success, tool_name=tool, **outcome),
        error=None if success else "Selector not found",
    )


def test_acknowledgements_cover_every_request_in_issue_order():
    plan = _plan(
        call("a", "navigate", url="u"),
        metadata("m", "final"),
        call("b", "click", selector="#x", backupSelectors=[]),
        call("c", "wait", duration=1),
    )
    records = [_record(1, "a", "navigate"), _record(2, "b", "click", success=False)]

    results = build_acknowledgements(plan, records)

    assert [r.request_id for r in results] == plan.request_ids() == ["a", "m", "b", "c"]
    assert results[1].content == "recorded planType: final"
    assert json.loads(results[0].content)["success"] is True
    assert json.loads(results[2].content) == {"error": "Selector not found", "toolName": "click"}
    assert results[2].is_error is True
    assert json.loads(results[3].content)["error"] == NOT_EXECUTED


def test_records_are_matched_by_call_id_not_tool_name():
    plan = _plan(call("a", "click", selector="#1", backupSelectors=[]), call("b", "click", selector="#2", backupSelectors=[]))
    records = [_record(7, "b", "click", success=False)]

    results = build_acknowledgements(plan, records)

    assert NOT_EXECUTED in results[0].content
    assert results[1].is_error is True
    assert "Selector not found" in results[1].content


def test_analysis_result_carries_snapshot():
    plan = _plan(call("a", "extract_context"))
    records = [_record(1, "a", "extract_context", environment_snapshot={"title": "Cart"}, value="ignored")]

    results = build_acknowledgements(plan, records)

    assert json.loads(results[0].content) == {"title": "Cart"}


def test_analysis_result_falls_back_to_value():
    plan = _plan(call("a", "take_snapshot"))
    records = [_record(1, "a", "take_snapshot", value="data:image/png;base64,AAA")]

    assert json.loads(build_acknowledgements(plan, records)[0].content) == "data:image/png;base64,AAA"


def test_requester_turn_appends_text_after_results():
    plan = _plan(call("a", "navigate", url="u"))
    message = requester_turn(build_acknowledgements(plan, []), "report")

    assert message.role is Role.REQUESTER
    assert [block.type for block in message.content] == ["action_result", "text"]
