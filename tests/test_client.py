from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from helpers import call
from plan_loop.client import OpenRouterClient, from_wire_response, to_wire_messages
from plan_loop.exceptions import PlanValidationError, TransportError
from plan_loop.models import (
    ActionRequestBlock,
    ActionResultBlock,
    CacheBreakpoint,
    ConversationMessage,
    Role,
    TextBlock,
    ToolSchema,
)

SCHEMAS = [
    ToolSchema(name="navigate", description="Go", input_schema={"type": "object"}),
    ToolSchema(name="click", description="Click", input_schema={"type": "object"}),
]


def _completion(content=None, tool_calls=None, usage=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)


def _tool_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def _client(completion=None, side_effect=None):
    sdk = MagicMock()
    sdk.chat.completions.create.return_value = completion or _completion(content="done")
    if side_effect is not None:
        sdk.chat.completions.create.side_effect = side_effect
    return OpenRouterClient(model="test/model", client=sdk), sdk


# ---------------------------------------------------------------------------
# Wire mapping
# ---------------------------------------------------------------------------


def test_planner_turn_becomes_assistant_tool_calls():
    message = ConversationMessage(
        role=Role.PLANNER, content=[TextBlock(text="Plan"), call("a", "navigate", url="https://x.test")]
    )

    wire = to_wire_messages([message])

    assert wire == [
        {
            "role": "assistant",
            "content": "Plan",
            "tool_calls": [
                {
                    "id": "a",
                    "type": "function",
                    "function": {"name": "navigate", "arguments": '{"url": "https://x.test"}'},
                }
            ],
        }
    ]


def test_requester_turn_becomes_tool_messages_then_user_text():
    message = ConversationMessage(
        role=Role.REQUESTER,
        content=[ActionResultBlock(request_id="a", content="ok"), TextBlock(text="next?")],
        cache_boundary=True,
    )

    wire = to_wire_messages([message])

    assert wire[0] == {"role": "tool", "tool_call_id": "a", "content": "ok"}
    assert wire[1]["role"] == "user"
    assert wire[1]["content"][-1] == {"type": "text", "text": "next?", "cache_control": {"type": "ephemeral"}}


def test_cache_boundary_on_tool_only_turn():
    message = ConversationMessage(
        role=Role.REQUESTER, content=[ActionResultBlock(request_id="a", content="ok")], cache_boundary=True
    )
    wire = to_wire_messages([message])
    assert wire[0]["content"] == [{"type": "text", "text": "ok", "cache_control": {"type": "ephemeral"}}]


def test_requester_turn_cannot_carry_requests():
    message = ConversationMessage(role=Role.REQUESTER, content=[ActionRequestBlock(id="a", name="navigate")])
    with pytest.raises(TypeError):
        to_wire_messages([message])


def test_response_maps_text_tool_calls_and_usage():
    usage = SimpleNamespace(
        prompt_tokens=1_000_000,
        completion_tokens=0,
        prompt_tokens_details=SimpleNamespace(cached_tokens=10, cache_write_tokens=20),
    )
    completion = _completion(
        content="  Opening the page. ",
        tool_calls=[_tool_call("a", "navigate", '{"url": "https://x.test"}'), _tool_call("b", "extract_context", "")],
        usage=usage,
    )

    planner_response = from_wire_response(completion)

    assert planner_response.content[0] == TextBlock(text="Opening the page.")
    assert planner_response.content[1] == ActionRequestBlock(id="a", name="navigate", input={"url": "https://x.test"})
    assert planner_response.content[2].input == {}
    assert planner_response.usage.input_tokens == 999_970
    assert planner_response.usage.cache_read_tokens == 10
    assert planner_response.usage.cache_write_tokens == 20
    assert planner_response.usage.total_cost == pytest.approx((999_970 * 3.0 + 10 * 0.30 + 20 * 3.75) / 1_000_000)


def test_malformed_arguments_are_a_validation_error():
    completion = _completion(tool_calls=[_tool_call("a", "navigate", "{url: nope}")])
    with pytest.raises(PlanValidationError, match="malformed arguments"):
        from_wire_response(completion)


def test_missing_usage_is_zero():
    assert from_wire_response(_completion(content="hi")).usage.input_tokens == 0


def test_fully_cached_prompt_is_billed_at_cache_read_rate():
    usage = SimpleNamespace(
        prompt_tokens=1_000_000,
        completion_tokens=0,
        prompt_tokens_details=SimpleNamespace(cached_tokens=1_000_000),
    )

    planner_usage = from_wire_response(_completion(content="hi", usage=usage)).usage

    assert planner_usage.input_tokens == 0
    assert planner_usage.cache_read_tokens == 1_000_000
    assert planner_usage.total_cost == pytest.approx(0.30)


# ---------------------------------------------------------------------------
# OpenRouterClient
# ---------------------------------------------------------------------------


def test_create_plan_sends_system_goal_and_cache_markers():
    client, sdk = _client()

    client.create_plan(
        "static",
        "goal",
        SCHEMAS,
        cacheable_context="<recorded/>",
        breakpoints=[CacheBreakpoint(kind="tools", position=2), CacheBreakpoint(kind="system", position=2)],
    )

    kwargs = sdk.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test/model"
    system, user = kwargs["messages"]
    assert system["content"][0] == {"type": "text", "text": "static"}
    assert system["content"][1]["cache_control"] == {"type": "ephemeral"}
    assert user == {"role": "user", "content": "goal"}
    assert "cache_control" not in kwargs["tools"][0]
    assert kwargs["tools"][-1]["cache_control"] == {"type": "ephemeral"}
    assert kwargs["tools"][0]["function"]["name"] == "navigate"


def test_continue_conversation_without_breakpoints_has_no_cache_markers():
    client, sdk = _client()
    history = [ConversationMessage(role=Role.REQUESTER, content=[TextBlock(text="goal")])]

    client.continue_conversation("static", history, SCHEMAS)

    kwargs = sdk.chat.completions.create.call_args.kwargs
    assert len(kwargs["messages"]) == 2
    assert all("cache_control" not in tool for tool in kwargs["tools"])


def test_sdk_errors_become_transport_errors():
    error = openai.APIConnectionError(request=httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions"))
    client, _ = _client(side_effect=error)

    with pytest.raises(TransportError, match="Planner request failed"):
        client.create_plan("static", "goal", SCHEMAS)
