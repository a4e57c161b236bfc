# context.py
# Token budget estimation, cache-boundary placement and context editing.
#
# Token counts here are a character-based heuristic (≈4 chars per token), a
# stand-in for a real tokenizer. They steer the budget; they are not billing.

import json
import math
from typing import TYPE_CHECKING, NamedTuple

from pydantic import BaseModel, Field

from plan_loop.models import BudgetStats, CacheBreakpoint, ConversationMessage, Role, ToolSchema
from plan_loop.registry import ANALYSIS_TOOLS

if TYPE_CHECKING:
    from plan_loop.session import SessionState

CHARS_PER_TOKEN = 4


class ContextConfig(BaseModel):
    trigger_threshold: int = Field(150_000, description="Edit history once the estimate reaches this.")
    keep_recent_pairs: int = Field(3, ge=1, description="Request/result pairs left in place when editing.")
    min_savings: int = Field(10_000, description="Clear nothing unless at least this many tokens go.")
    never_clear_tools: frozenset[str] = Field(default=ANALYSIS_TOOLS)
    max_context_tokens: int = 200_000
    min_cache_tokens: int = Field(1_024, description="Smallest block worth a cache boundary.")
    history_cache_min_messages: int = 4


class EditResult(NamedTuple):
    edited_messages: list[ConversationMessage]
    cleared_count: int
    cleared_tokens: int


class PreparedContext(NamedTuple):
    stats: BudgetStats
    breakpoints: list[CacheBreakpoint]
    edit: EditResult | None


class _Pair(NamedTuple):
    planner_index: int
    requester_index: int
    tool_names: tuple[str, ...]
    tokens: int


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_message(message: ConversationMessage) -> int:
    payload = json.dumps([block.model_dump() for block in message.content], ensure_ascii=False)
    return estimate_tokens(payload)


def _estimate_schemas(tool_schemas: list[ToolSchema]) -> int:
    return estimate_tokens(json.dumps([schema.model_dump() for schema in tool_schemas], ensure_ascii=False))


class ContextManager:
    """Keeps the planner conversation inside the token budget."""

    def __init__(self, config: ContextConfig | None = None) -> None:
        self.config = config or ContextConfig()

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    def calculate_stats(
        self,
        messages: list[ConversationMessage],
        static_prompt: str,
        tool_schemas: list[ToolSchema],
        reference_context: str | None = None,
    ) -> BudgetStats:
        static_tokens = estimate_tokens(static_prompt) + estimate_tokens(reference_context or "")
        schema_tokens = _estimate_schemas(tool_schemas)
        message_tokens = sum(message.token_estimate or estimate_message(message) for message in messages)
        total = static_tokens + schema_tokens + message_tokens
        return BudgetStats(
            total_tokens=total,
            message_tokens=message_tokens,
            tool_schema_tokens=schema_tokens,
            static_prompt_tokens=static_tokens,
            remaining_capacity=self.config.max_context_tokens - total,
        )

    # ------------------------------------------------------------------
    # Cache boundaries
    # ------------------------------------------------------------------

    def plan_cache_boundaries(
        self,
        tool_schemas: list[ToolSchema],
        reference_context: str | None,
        messages: list[ConversationMessage],
    ) -> list[CacheBreakpoint]:
        """
        Decide which stable content gets a cache boundary.

        Tool schemas and the reference context are marked only when large enough
        to be worth caching; the history boundary is whatever
        mark_history_boundary() last placed.
        """
        breakpoints: list[CacheBreakpoint] = []
        if tool_schemas and _estimate_schemas(tool_schemas) >= self.config.min_cache_tokens:
            breakpoints.append(CacheBreakpoint(kind="tools", position=len(tool_schemas)))
        if reference_context and estimate_tokens(reference_context) >= self.config.min_cache_tokens:
            breakpoints.append(CacheBreakpoint(kind="system", position=2))
        for index, message in enumerate(messages):
            if message.cache_boundary:
                breakpoints.append(CacheBreakpoint(kind="messages", position=index + 1, message_index=index))
        return breakpoints

    def mark_history_boundary(self, messages: list[ConversationMessage]) -> int | None:
        """Move the single history boundary to the latest requester message."""
        for message in messages:
            message.cache_boundary = False

        if len(messages) < self.config.history_cache_min_messages:
            return None

        for index in range(len(messages) - 1, -1, -1):
            if messages[index].role is Role.REQUESTER:
                messages[index].cache_boundary = True
                return index
        return None

    # ------------------------------------------------------------------
    # Context editing
    # ------------------------------------------------------------------

    def should_edit(self, stats: BudgetStats) -> bool:
        return stats.total_tokens >= self.config.trigger_threshold

    def apply_editing(self, messages: list[ConversationMessage]) -> EditResult:
        """
        Drop the oldest clearable request/result pairs.

        Pairs touching a never-clear tool are set aside first; of the rest, the
        oldest `len(pairs) - keep_recent_pairs` go. The newest pair carries the
        prompt the planner is about to answer and is never cleared. If the
        chosen pairs add up to less than min_savings, the history is returned
        untouched: a small trim would invalidate the cached prefix for almost no gain.
        """
        pairs = self._find_pairs(messages)
        keep = self.config.keep_recent_pairs
        clearable = [
            pair for pair in pairs[:-1] if not any(name in self.config.never_clear_tools for name in pair.tool_names)
        ]
        eligible = clearable[: max(0, len(pairs) - keep)]

        cleared_tokens = sum(pair.tokens for pair in eligible)
        if not eligible or cleared_tokens < self.config.min_savings:
            return EditResult(list(messages), 0, 0)

        removed = {pair.planner_index for pair in eligible} | {pair.requester_index for pair in eligible}
        edited = [message for index, message in enumerate(messages) if index not in removed]
        return EditResult(edited, len(eligible), cleared_tokens)

    def _find_pairs(self, messages: list[ConversationMessage]) -> list[_Pair]:
        pairs: list[_Pair] = []
        for index in range(len(messages) - 1):
            current, following = messages[index], messages[index + 1]
            if current.role is not Role.PLANNER or following.role is not Role.REQUESTER:
                continue
            requests = current.requests()
            if not requests or not following.results():
                continue
            pairs.append(
                _Pair(
                    planner_index=index,
                    requester_index=index + 1,
                    tool_names=tuple(request.name for request in requests),
                    tokens=(current.token_estimate or estimate_message(current))
                    + (following.token_estimate or estimate_message(following)),
                )
            )
        return pairs

    # ------------------------------------------------------------------
    # Per-call hook
    # ------------------------------------------------------------------

    def prepare(self, session: "SessionState", static_prompt: str, tool_schemas: list[ToolSchema]) -> PreparedContext:
        """Edit the session's history if over budget, then place cache boundaries."""
        stats = self.calculate_stats(session.messages, static_prompt, tool_schemas, session.reference_context)
        edit: EditResult | None = None

        if self.should_edit(stats):
            edit = self.apply_editing(session.messages)
            if edit.cleared_count:
                session.replace_messages(edit.edited_messages)
                stats = self.calculate_stats(session.messages, static_prompt, tool_schemas, session.reference_context)

        self.mark_history_boundary(session.messages)
        breakpoints = self.plan_cache_boundaries(tool_schemas, session.reference_context, session.messages)
        return PreparedContext(stats, breakpoints, edit)
