# client.py
# Planner transport: the LLMClient contract and its OpenRouter implementation.
#
# The engine speaks in ConversationMessage blocks; this module is the only
# place that knows the OpenAI chat wire format. Transient failures (timeouts,
# 429s, 5xx) are retried by the SDK with bounded exponential backoff; whatever
# still fails surfaces as TransportError.

import json
import os
from typing import Any, Protocol

import openai
from openai import OpenAI

from plan_loop.exceptions import PlanValidationError, TransportError
from plan_loop.models import (
    ActionRequestBlock,
    ActionResultBlock,
    CacheBreakpoint,
    ConversationMessage,
    PlannerResponse,
    Role,
    TextBlock,
    ToolSchema,
    Usage,
)
from plan_loop.usage import UsageTracker

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
_EPHEMERAL = {"type": "ephemeral"}


class LLMClient(Protocol):
    def create_plan(
        self,
        static_prompt: str,
        goal_prompt: str,
        tool_schemas: list[ToolSchema],
        cacheable_context: str | None = None,
        breakpoints: list[CacheBreakpoint] | None = None,
    ) -> PlannerResponse: ...

    def continue_conversation(
        self,
        static_prompt: str,
        messages: list[ConversationMessage],
        tool_schemas: list[ToolSchema],
        cacheable_context: str | None = None,
        breakpoints: list[CacheBreakpoint] | None = None,
    ) -> PlannerResponse: ...


# ---------------------------------------------------------------------------
# Wire format helpers
# ---------------------------------------------------------------------------


def _has(breakpoints: list[CacheBreakpoint] | None, kind: str) -> bool:
    return any(bp.kind == kind for bp in breakpoints or [])


def _system_message(static_prompt: str, cacheable_context: str | None, cache_context: bool) -> dict:
    parts: list[dict[str, Any]] = [{"type": "text", "text": static_prompt}]
    if cacheable_context:
        part: dict[str, Any] = {"type": "text", "text": f"\n\n{cacheable_context}"}
        if cache_context:
            part["cache_control"] = _EPHEMERAL
        parts.append(part)
    return {"role": "system", "content": parts}


def _tool_definitions(tool_schemas: list[ToolSchema], cache_tools: bool) -> list[dict]:
    tools = [
        {
            "type": "function",
            "function": {
                "name": schema.name,
                "description": schema.description,
                "parameters": schema.input_schema,
            },
        }
        for schema in tool_schemas
    ]
    if tools and cache_tools:
        tools[-1]["cache_control"] = _EPHEMERAL
    return tools


def _text_part(text: str, cached: bool) -> dict:
    part: dict[str, Any] = {"type": "text", "text": text}
    if cached:
        part["cache_control"] = _EPHEMERAL
    return part


def to_wire_messages(messages: list[ConversationMessage]) -> list[dict]:
    """Map engine messages onto OpenAI chat messages (assistant tool_calls / tool results)."""
    wire: list[dict] = []
    for message in messages:
        if message.role is Role.PLANNER:
            text = "\n".join(b.text for b in message.content if isinstance(b, TextBlock))
            entry: dict[str, Any] = {"role": "assistant", "content": text or None}
            calls = [
                {
                    "id": block.id,
                    "type": "function",
                    "function": {"name": block.name, "arguments": json.dumps(block.input)},
                }
                for block in message.requests()
            ]
            if calls:
                entry["tool_calls"] = calls
            wire.append(entry)
            continue

        emitted: list[dict] = []
        for block in message.content:
            if isinstance(block, ActionResultBlock):
                emitted.append({"role": "tool", "tool_call_id": block.request_id, "content": block.content})
            elif isinstance(block, TextBlock):
                emitted.append({"role": "user", "content": [_text_part(block.text, False)]})
            else:
                raise TypeError(f"Requester turns cannot carry {block.type} blocks.")

        if message.cache_boundary and emitted:
            last = emitted[-1]
            if last["role"] == "tool":
                last["content"] = [_text_part(last["content"], True)]
            else:
                last["content"][-1]["cache_control"] = _EPHEMERAL
        wire.extend(emitted)
    return wire


def from_wire_response(response: Any) -> PlannerResponse:
    """Map an OpenAI chat completion onto a PlannerResponse."""
    message = response.choices[0].message
    content: list = []
    if message.content and message.content.strip():
        content.append(TextBlock(text=message.content.strip()))

    for call in message.tool_calls or []:
        raw = call.function.arguments or "{}"
        try:
            arguments = json.loads(raw, strict=False)
        except json.JSONDecodeError as exc:
            raise PlanValidationError(
                f"Tool call {call.id} ({call.function.name}) has malformed arguments: {exc}\nPayload: {raw}"
            ) from exc
        content.append(ActionRequestBlock(id=call.id, name=call.function.name, input=arguments))

    return PlannerResponse(content=content, usage=_usage(response))


def _usage(response: Any) -> Usage:
    raw = getattr(response, "usage", None)
    if raw is None:
        return Usage()
    details = getattr(raw, "prompt_tokens_details", None)
    # prompt_tokens already includes the cached and cache-written tokens.
    cached = (getattr(details, "cached_tokens", 0) or 0) if details else 0
    written = (getattr(details, "cache_write_tokens", 0) or 0) if details else 0
    usage = Usage(
        input_tokens=max((raw.prompt_tokens or 0) - cached - written, 0),
        output_tokens=raw.completion_tokens or 0,
        cache_read_tokens=cached,
        cache_write_tokens=written,
    )
    return usage.model_copy(update={"total_cost": UsageTracker.cost(usage)})


# ---------------------------------------------------------------------------
# OpenRouter client
# ---------------------------------------------------------------------------


class OpenRouterClient:
    """
    LLMClient over the OpenAI SDK pointed at OpenRouter.

    Example:
        client = OpenRouterClient(model="anthropic/claude-sonnet-4.5")
        response = client.create_plan(prompt, goal, registry.schemas())
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str = OPENROUTER_BASE_URL,
        max_tokens: int = 8192,
        max_retries: int = 3,
        client: OpenAI | None = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._client = client or OpenAI(
            base_url=base_url,
            api_key=api_key or os.getenv("OPENROUTER_API_KEY"),
            max_retries=max_retries,
        )

    def _complete(self, messages: list[dict], tools: list[dict]) -> PlannerResponse:
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                max_tokens=self._max_tokens,
                messages=messages,
                tools=tools,
            )
        except openai.APIError as exc:
            raise TransportError(f"Planner request failed: {exc}") from exc
        return from_wire_response(response)

    def create_plan(
        self,
        static_prompt: str,
        goal_prompt: str,
        tool_schemas: list[ToolSchema],
        cacheable_context: str | None = None,
        breakpoints: list[CacheBreakpoint] | None = None,
    ) -> PlannerResponse:
        messages = [
            _system_message(static_prompt, cacheable_context, _has(breakpoints, "system")),
            {"role": "user", "content": goal_prompt},
        ]
        return self._complete(messages, _tool_definitions(tool_schemas, _has(breakpoints, "tools")))

    def continue_conversation(
        self,
        static_prompt: str,
        messages: list[ConversationMessage],
        tool_schemas: list[ToolSchema],
        cacheable_context: str | None = None,
        breakpoints: list[CacheBreakpoint] | None = None,
    ) -> PlannerResponse:
        wire = [_system_message(static_prompt, cacheable_context, _has(breakpoints, "system"))]
        wire += to_wire_messages(messages)
        return self._complete(wire, _tool_definitions(tool_schemas, _has(breakpoints, "tools")))
