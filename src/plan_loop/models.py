# models.py
# Data contracts for the iterative automation engine.
# No business logic lives here, only schema and validation.

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Conversation content
# ---------------------------------------------------------------------------


class Role(str, Enum):
    REQUESTER = "requester"
    PLANNER = "planner"


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ActionRequestBlock(BaseModel):
    """A tool call issued by the planner. Must be answered by exactly one result."""

    type: Literal["action_request"] = "action_request"
    id: str = Field(..., description="Correlation token assigned by the planner.")
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ActionResultBlock(BaseModel):
    type: Literal["action_result"] = "action_result"
    request_id: str = Field(..., description="Id of the action request being answered.")
    content: str
    is_error: bool = False


Block = Annotated[
    Union[TextBlock, ActionRequestBlock, ActionResultBlock],
    Field(discriminator="type"),
]


class ConversationMessage(BaseModel):
    role: Role
    content: list[Block] = Field(default_factory=list)
    cache_boundary: bool = False
    token_estimate: int = 0

    def requests(self) -> list[ActionRequestBlock]:
        return [b for b in self.content if isinstance(b, ActionRequestBlock)]

    def results(self) -> list[ActionResultBlock]:
        return [b for b in self.content if isinstance(b, ActionResultBlock)]


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class PlanType(str, Enum):
    INTERMEDIATE = "intermediate"
    FINAL = "final"


class Step(BaseModel):
    """A single action node in an execution plan."""

    model_config = ConfigDict(frozen=True)

    tool_name: str = Field(..., description="Tool name; must exist in the registry.")
    tool_call_id: str
    input: dict[str, Any] = Field(default_factory=dict)
    order: int = Field(..., ge=0, description="0-based position within the plan.")


class Plan(BaseModel):
    """A complete plan emitted by the planner in one turn. Replaced, never edited."""

    model_config = ConfigDict(frozen=True)

    steps: tuple[Step, ...] = ()
    analysis: str = ""
    plan_type: PlanType = PlanType.FINAL
    reasoning: str | None = None
    metadata_call_id: str | None = Field(
        default=None,
        description="Call id of the plan-metadata declaration; acknowledged, never executed.",
    )
    metadata_position: int = Field(default=0, ge=0, description="Number of steps issued before the declaration.")

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def request_ids(self) -> list[str]:
        """Every call id the planner issued for this plan, in issue order."""
        ids = [step.tool_call_id for step in self.steps]
        if self.metadata_call_id:
            ids.insert(self.metadata_position, self.metadata_call_id)
        return ids


class CompletedPhase(BaseModel):
    phase_number: int
    plan: Plan
    steps_executed: int


# ---------------------------------------------------------------------------
# Action surface outcomes
# ---------------------------------------------------------------------------


class ActionErrorDetails(BaseModel):
    suggestions: list[str] | None = None
    last_error: str | None = None


class ActionError(BaseModel):
    code: str = "UNKNOWN"
    message: str = "Unknown error"
    details: ActionErrorDetails | None = None


class ActionEffects(BaseModel):
    model_config = ConfigDict(extra="allow")

    summary: str | None = None


class ActionOutcome(BaseModel):
    """What the action surface reports back for one executed tool call."""

    success: bool
    tool_name: str
    elapsed_ms: float = 0.0
    effects: ActionEffects | None = None
    error: ActionError | None = None
    value: Any = None
    environment_snapshot: Any = None
    timestamp: float = 0.0
    location_id: str = ""
    current_url: str = ""


class ExecutedStepRecord(BaseModel):
    """Immutable log entry produced after each executed step."""

    model_config = ConfigDict(frozen=True)

    step_number: int = Field(..., ge=1, description="Global, strictly increasing.")
    tool_name: str
    tool_call_id: str
    success: bool
    result: ActionOutcome | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Planner responses and usage
# ---------------------------------------------------------------------------


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int = 0
    cache_read_tokens: int = 0
    total_cost: float = 0.0


class PlannerResponse(BaseModel):
    content: list[Annotated[Union[TextBlock, ActionRequestBlock], Field(discriminator="type")]] = Field(
        default_factory=list
    )
    usage: Usage = Field(default_factory=Usage)


# ---------------------------------------------------------------------------
# Budget and caching
# ---------------------------------------------------------------------------


class BudgetStats(BaseModel):
    total_tokens: int
    message_tokens: int
    tool_schema_tokens: int
    static_prompt_tokens: int
    remaining_capacity: int


class CacheBreakpoint(BaseModel):
    kind: Literal["tools", "system", "messages"]
    position: int
    message_index: int | None = None


class ToolSchema(BaseModel):
    name: str
    description: str
    input_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ToolValidation(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------


class AutomationResult(BaseModel):
    """Returned to the caller in every case, success or not."""

    success: bool
    session_id: str
    plan: Plan | None = None
    executed_steps: list[ExecutedStepRecord] = Field(default_factory=list)
    error: str | None = None
    analysis: str | None = None
    usage: Usage = Field(default_factory=Usage)
    recovery_attempts: int = 0
    total_steps_executed: int = 0
    phase_number: int = 1
