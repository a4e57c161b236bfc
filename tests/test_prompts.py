from plan_loop.models import ActionError, ActionErrorDetails, ActionOutcome, ExecutedStepRecord, Step
from plan_loop.prompts import build_error_report, build_goal_prompt, format_recorded_session


def test_goal_prompt_mentions_recording_only_when_present():
    assert "recorded session" in build_goal_prompt("Buy milk", has_reference=True)
    assert "recorded session" not in build_goal_prompt("Buy milk", has_reference=False)
    assert "Buy milk" in build_goal_prompt("Buy milk", has_reference=False)


def test_error_report_lists_progress_and_error_details():
    history = [
        ExecutedStepRecord(step_number=1, tool_name="navigate", tool_call_id="a", success=True),
        ExecutedStepRecord(step_number=2, tool_name="click", tool_call_id="b", success=False, error="gone"),
    ]
    outcome = ActionOutcome(
        success=False,
        tool_name="click",
        error=ActionError(code="TIMEOUT", message="gone", details=ActionErrorDetails(suggestions=["#alt", "#other"])),
        current_url="https://shop.test",
    )
    step = Step(tool_name="click", tool_call_id="b", input={"selector": "#buy"}, order=1)

    report = build_error_report("Buy milk", step, 2, outcome, history)

    assert "- Step 1: navigate - SUCCESS" in report
    assert "- Step 2: click - FAILED" in report
    assert "- Code: TIMEOUT" in report
    assert "- Suggestions: #alt, #other" in report
    assert "- Current URL: https://shop.test" in report
    assert "Remember: 1 steps have already completed successfully." in report


def test_recorded_session_is_escaped_xml():
    xml = format_recorded_session(
        "Checkout <demo>",
        [{"type": "navigate", "url": "https://shop.test?a=1&b=2"}, {"type": "click", "selector": "#buy"}],
    )
    assert "<name>Checkout &lt;demo&gt;</name>" in xml
    assert "<total_actions>2</total_actions>" in xml
    assert "<url>https://shop.test?a=1&amp;b=2</url>" in xml
    assert '<action step="2" type="click">' in xml
