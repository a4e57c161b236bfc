# helpers.py
# Scripted collaborators and block builders shared by the test modules.

from plan_loop.models import (
    ActionError,
    ActionErrorDetails,
    ActionOutcome,
    ActionRequestBlock,
    PlannerResponse,
    TextBlock,
    Usage,
)


def text(value: str) -> TextBlock:
    return TextBlock(text=value)


def call(call_id: str, name: str, **params) -> ActionRequestBlock:
    return ActionRequestBlock(id=call_id, name=name, input=params)


def metadata(call_id: str, plan_type: str, **params) -> ActionRequestBlock:
    return ActionRequestBlock(id=call_id, name="declare_plan_metadata", input={"planType": plan_type, **params})


def response(*blocks, usage: Usage | None = None) -> PlannerResponse:
    return PlannerResponse(content=list(blocks), usage=usage or Usage())


def ok(tool_name: str, **fields) -> ActionOutcome:
    return ActionOutcome(success=True, tool_name=tool_name, **fields)


def failed(tool_name: str, message: str = "Element not found", code: str = "ELEMENT_NOT_FOUND") -> ActionOutcome:
    return ActionOutcome(
        success=False,
        tool_name=tool_name,
        error=ActionError(code=code, message=message, details=ActionErrorDetails(suggestions=["Try #alt"])),
        current_url="https://shop.test/cart",
    )


class ScriptedPlanner:
    """LLMClient that replays canned responses and keeps a copy of every request."""

    def __init__(self, responses: list[PlannerResponse]) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []

    def create_plan(self, static_prompt, goal_prompt, tool_schemas, cacheable_context=None, breakpoints=None):
        self.calls.append(
            {
                "method": "create_plan",
                "static_prompt": static_prompt,
                "goal_prompt": goal_prompt,
                "cacheable_context": cacheable_context,
                "breakpoints": list(breakpoints or []),
            }
        )
        return self._next()

    def continue_conversation(self, static_prompt, messages, tool_schemas, cacheable_context=None, breakpoints=None):
        self.calls.append(
            {
                "method": "continue_conversation",
                "static_prompt": static_prompt,
                "messages": [message.model_copy(deep=True) for message in messages],
                "cacheable_context": cacheable_context,
                "breakpoints": list(breakpoints or []),
            }
        )
        return self._next()

    def _next(self) -> PlannerResponse:
        if not self.responses:
            raise AssertionError("Planner called more often than scripted.")
        return self.responses.pop(0)


class ScriptedActions:
    """ActionExecutor that replays outcomes in order, then succeeds."""

    def __init__(self, script: list | None = None, on_execute=None) -> None:
        self.script = list(script or [])
        self.on_execute = on_execute
        self.calls: list[tuple[str, dict]] = []

    def execute(self, tool_name: str, params: dict) -> ActionOutcome:
        self.calls.append((tool_name, params))
        if self.on_execute is not None:
            self.on_execute(tool_name, params)
        if not self.script:
            return ok(tool_name)
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item
