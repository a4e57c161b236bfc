# registry.py
# Tool registry: the browser action catalogue offered to the planner.
# The engine never executes these; it validates plans against them and
# forwards calls to the action surface by name.

from plan_loop.models import ToolSchema, ToolValidation

METADATA_TOOL = "declare_plan_metadata"

# Tools that report environment state instead of changing it. A plan ending on
# one of these pauses for replanning.
ANALYSIS_TOOLS = frozenset({"extract_context", "take_snapshot"})

# Selector syntax the action surface does not understand (Playwright / jQuery).
_INVALID_SELECTOR_PATTERNS = (":has-text(", ":visible", ":enabled", ":contains(", ":has(", ":text(")

_SELECTOR_FIELDS = {
    "selector": {"type": "string", "description": "Primary CSS selector. Pure CSS only."},
    "backupSelectors": {
        "type": "array",
        "items": {"type": "string"},
        "description": "Alternative CSS selectors, each using a different strategy.",
    },
}


TOOLS: dict[str, ToolSchema] = {
    tool.name: tool
    for tool in (
        ToolSchema(
            name=METADATA_TOOL,
            description=(
                "REQUIRED: declare whether this plan is INTERMEDIATE (execute, then analyze "
                "results before continuing) or FINAL (completes the entire goal). Call it "
                "alongside your automation tools in every plan."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "planType": {"type": "string", "enum": ["intermediate", "final"]},
                    "reasoning": {"type": "string"},
                },
                "required": ["planType"],
            },
        ),
        ToolSchema(
            name="navigate",
            description="Navigate to a URL and wait for the page to load. Always use complete https:// URLs.",
            input_schema={
                "type": "object",
                "properties": {
                    "url": {"type": "string"},
                    "waitUntil": {"type": "string", "enum": ["load", "domcontentloaded", "networkidle"]},
                    "timeout": {"type": "number"},
                },
                "required": ["url"],
            },
        ),
        ToolSchema(
            name="click",
            description=(
                "Click an element. Use valid CSS selectors (ids, attributes, data-testid, aria) "
                "and provide backup selectors. Elements are scrolled into view automatically."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    **_SELECTOR_FIELDS,
                    "text": {"type": "string", "description": "Expected element text, used for verification."},
                    "waitForElement": {"type": "number"},
                    "verifyVisible": {"type": "boolean"},
                },
                "required": ["selector", "backupSelectors"],
            },
        ),
        ToolSchema(
            name="type",
            description="Type text into an input with native-like input simulation.",
            input_schema={
                "type": "object",
                "properties": {
                    **_SELECTOR_FIELDS,
                    "text": {"type": "string"},
                    "clearFirst": {"type": "boolean"},
                    "pressEnter": {"type": "boolean"},
                    "waitForElement": {"type": "number"},
                },
                "required": ["selector", "text"],
            },
        ),
        ToolSchema(
            name="select",
            description="Choose an option in a <select> element by value or label.",
            input_schema={
                "type": "object",
                "properties": {**_SELECTOR_FIELDS, "value": {"type": "string"}, "label": {"type": "string"}},
                "required": ["selector"],
            },
        ),
        ToolSchema(
            name="checkbox",
            description="Set a checkbox or radio input to the requested state.",
            input_schema={
                "type": "object",
                "properties": {**_SELECTOR_FIELDS, "checked": {"type": "boolean"}},
                "required": ["selector", "checked"],
            },
        ),
        ToolSchema(
            name="wait",
            description="Pause for a fixed duration in milliseconds.",
            input_schema={
                "type": "object",
                "properties": {"duration": {"type": "number"}},
                "required": ["duration"],
            },
        ),
        ToolSchema(
            name="waitForElement",
            description="Wait until an element matching the selector is present.",
            input_schema={
                "type": "object",
                "properties": {**_SELECTOR_FIELDS, "timeout": {"type": "number"}},
                "required": ["selector"],
            },
        ),
        ToolSchema(
            name="keyPress",
            description="Press a key, optionally with modifiers, on the focused element or a target.",
            input_schema={
                "type": "object",
                "properties": {
                    "key": {"type": "string"},
                    "modifiers": {"type": "array", "items": {"type": "string"}},
                    "selector": {"type": "string"},
                },
                "required": ["key"],
            },
        ),
        ToolSchema(
            name="scroll",
            description="Scroll the page by an amount or to an element.",
            input_schema={
                "type": "object",
                "properties": {
                    "direction": {"type": "string", "enum": ["up", "down"]},
                    "amount": {"type": "number"},
                    "toElement": {"type": "string"},
                },
            },
        ),
        ToolSchema(
            name="submit",
            description="Submit a form, preferably by clicking its submit button.",
            input_schema={
                "type": "object",
                "properties": {
                    "formSelector": {"type": "string"},
                    "submitButtonSelector": {"type": "string"},
                },
            },
        ),
        ToolSchema(
            name="extract_context",
            description=(
                "ANALYSIS tool: extract browser and DOM context for decision-making. Place it as "
                "the LAST step of an intermediate plan; use at most one analysis tool per plan."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "full": {"type": "boolean"},
                    "scrollTo": {"description": '"current", "top", "bottom", a Y offset, or {"element": ...}'},
                },
            },
        ),
        ToolSchema(
            name="take_snapshot",
            description="ANALYSIS tool: capture a viewport screenshot. Place it as the LAST step of the plan.",
            input_schema={
                "type": "object",
                "properties": {"scrollTo": {"description": "Where to scroll before capturing."}},
            },
        ),
    )
}


class ToolRegistry:
    """Enumerable tool schemas plus the classification the engine needs."""

    def __init__(self, tools: dict[str, ToolSchema] | None = None) -> None:
        self._tools = dict(TOOLS if tools is None else tools)

    def schemas(self) -> list[ToolSchema]:
        return list(self._tools.values())

    def names(self) -> set[str]:
        return set(self._tools)

    def get(self, name: str) -> ToolSchema | None:
        return self._tools.get(name)

    @property
    def metadata_tool(self) -> str:
        return METADATA_TOOL

    def is_analysis_tool(self, name: str) -> bool:
        return name in ANALYSIS_TOOLS

    def validate(self, tool_name: str, params: dict) -> ToolValidation:
        """Check required parameters and reject non-CSS selector syntax."""
        tool = self._tools.get(tool_name)
        if tool is None:
            return ToolValidation(valid=False, errors=[f"Unknown tool: {tool_name}"])

        errors: list[str] = []
        for required in tool.input_schema.get("required", []):
            if required not in params:
                errors.append(f"Missing required parameter: {required}")

        selector = params.get("selector")
        if tool_name in ("click", "type") and isinstance(selector, str):
            if any(pattern in selector for pattern in _INVALID_SELECTOR_PATTERNS):
                errors.append(
                    f'Invalid selector syntax: "{selector}". Use pure CSS selectors and the '
                    "'text' parameter for text matching."
                )

        return ToolValidation(valid=not errors, errors=errors)
