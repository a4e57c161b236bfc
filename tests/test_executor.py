import threading
from unittest.mock import MagicMock

import pytest

from helpers import ScriptedActions, call, failed, ok, response
from plan_loop.display import Reporter
from plan_loop.exceptions import ActionExecutionError, TransportError
from plan_loop.executor import ExecutionStatus, PlanExecutor
from plan_loop.parser import PlanParser
from plan_loop.registry import ToolRegistry
from plan_loop.session import SessionState


def _session(*blocks) -> SessionState:
    session = SessionState("goal")
    session.set_plan(PlanParser(ToolRegistry()).parse(response(*blocks)))
    return session


def _executor(actions, **kwargs) -> PlanExecutor:
    return PlanExecutor(actions, ToolRegistry(), **kwargs)


def test_completes_every_step_in_order():
    actions = ScriptedActions()
    session = _session(call("a", "navigate", url="u"), call("b", "wait", duration=1))

    outcome = _executor(actions).execute(session)

    assert outcome.status is ExecutionStatus.COMPLETED
    assert [name for name, _ in actions.calls] == ["navigate", "wait"]
    assert [r.tool_call_id for r in session.executed_steps] == ["a", "b"]


def test_stops_at_first_failure():
    actions = ScriptedActions([ok("navigate"), failed("click", "No such element")])
    session = _session(
        call("a", "navigate", url="u"),
        call("b", "click", selector="#x", backupSelectors=[]),
        call("c", "wait", duration=1),
    )

    outcome = _executor(actions).execute(session)

    assert outcome.status is ExecutionStatus.FAILED
    assert outcome.step.tool_call_id == "b"
    assert isinstance(outcome.failure, ActionExecutionError)
    assert outcome.failure.outcome.error.message == "No such element"
    assert "Step 2 (click) failed" in str(outcome.failure)
    assert len(session.executed_steps) == 2
    assert session.executed_steps[-1].error == "No such element"


def test_trailing_analysis_step_pauses():
    session = _session(call("a", "navigate", url="u"), call("b", "extract_context"))
    outcome = _executor(ScriptedActions()).execute(session)

    assert outcome.status is ExecutionStatus.ANALYSIS_TERMINATED
    assert outcome.step.tool_name == "extract_context"


def test_analysis_step_mid_plan_does_not_pause():
    session = _session(call("a", "take_snapshot"), call("b", "navigate", url="u"))
    assert _executor(ScriptedActions()).execute(session).status is ExecutionStatus.COMPLETED


def test_step_ceiling_counts_the_whole_session():
    session = _session(call("a", "navigate", url="u"), call("b", "navigate", url="u"))
    session.record_step("navigate", "earlier", True)

    outcome = _executor(ScriptedActions(), max_total_steps=2).execute(session)

    assert outcome.status is ExecutionStatus.LIMIT_REACHED
    assert outcome.step.tool_call_id == "b"
    assert len(session.executed_steps) == 2


def test_cancel_event_checked_before_each_step():
    cancel = threading.Event()
    cancel.set()
    actions = ScriptedActions()

    outcome = _executor(actions).execute(_session(call("a", "navigate", url="u")), cancel)

    assert outcome.status is ExecutionStatus.CANCELLED
    assert actions.calls == []


def test_invalid_parameters_become_a_failed_step():
    actions = ScriptedActions()
    session = _session(call("a", "navigate"))

    outcome = _executor(actions).execute(session)

    assert outcome.status is ExecutionStatus.FAILED
    assert outcome.failure.outcome.error.code == "INVALID_PARAMETERS"
    assert "Missing required parameter: url" in session.executed_steps[0].error
    assert actions.calls == []


def test_unexpected_executor_exception_becomes_a_failed_step():
    actions = ScriptedActions([RuntimeError("browser crashed")])
    outcome = _executor(actions).execute(_session(call("a", "navigate", url="u")))

    assert outcome.status is ExecutionStatus.FAILED
    assert outcome.failure.outcome.error.code == "EXECUTION_ERROR"
    assert outcome.failure.outcome.error.message == "browser crashed"


def test_transport_error_propagates():
    actions = ScriptedActions([TransportError("down")])
    with pytest.raises(TransportError):
        _executor(actions).execute(_session(call("a", "navigate", url="u")))


def test_reporter_is_notified_per_step():
    reporter = MagicMock(spec=Reporter)
    session = _session(call("a", "navigate", url="u"), call("b", "click", selector="#x", backupSelectors=[]))
    actions = ScriptedActions([ok("navigate"), failed("click")])

    _executor(actions, reporter=reporter).execute(session)

    assert reporter.step_started.call_count == 2
    reporter.step_started.assert_any_call(2, session.current_plan.steps[1], 1, 2)
    reporter.step_completed.assert_called_once()
    reporter.step_failed.assert_called_once()
