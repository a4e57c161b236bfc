# planner.py
# One place for every round trip to the planner.
#
# Each turn: budget the context, call the LLM client, append the planner
# reply to the conversation, account usage, parse. Recovery and continuation
# handlers differ only in what they append before calling request().

import time

from plan_loop.client import LLMClient
from plan_loop.context import ContextManager
from plan_loop.display import Reporter
from plan_loop.models import ConversationMessage, Plan, PlannerResponse, Role, TextBlock
from plan_loop.parser import PlanParser
from plan_loop.prompts import SYSTEM_PROMPTS, Profile, build_goal_prompt
from plan_loop.registry import ToolRegistry
from plan_loop.session import SessionState
from plan_loop.store import CacheMetadata, SessionStore
from plan_loop.usage import UsageTracker


class Planner:
    def __init__(
        self,
        llm_client: LLMClient,
        registry: ToolRegistry,
        context_manager: ContextManager,
        usage: UsageTracker,
        reporter: Reporter | None = None,
        store: SessionStore | None = None,
    ) -> None:
        self._client = llm_client
        self._registry = registry
        self._context = context_manager
        self._usage = usage
        self._reporter = reporter or Reporter()
        self._store = store
        self.parser = PlanParser(registry)

    def initial_plan(self, session: SessionState) -> Plan:
        """Send the goal with the planning profile. The first plan must be executable."""
        goal_prompt = build_goal_prompt(session.goal, session.reference_context is not None)
        session.append_message(ConversationMessage(role=Role.REQUESTER, content=[TextBlock(text=goal_prompt)]))

        static_prompt = SYSTEM_PROMPTS[Profile.PLANNING]
        schemas = self._registry.schemas()
        prepared = self._context.prepare(session, static_prompt, schemas)
        self._reporter.budget(prepared.stats)
        self._reporter.thinking("Generating automation plan…")

        response = self._client.create_plan(
            static_prompt,
            goal_prompt,
            schemas,
            cacheable_context=session.reference_context,
            breakpoints=prepared.breakpoints,
        )
        self._record(session, response, prepared.breakpoints)
        return self.parser.parse_and_validate(response)

    def request(self, session: SessionState, profile: Profile, thinking: str) -> PlannerResponse:
        """Continue the conversation as it stands and return the planner's reply."""
        static_prompt = SYSTEM_PROMPTS[profile]
        schemas = self._registry.schemas()
        prepared = self._context.prepare(session, static_prompt, schemas)
        if prepared.edit is not None and prepared.edit.cleared_count:
            self._reporter.context_edited(prepared.edit.cleared_count, prepared.edit.cleared_tokens)
        self._reporter.budget(prepared.stats)
        self._reporter.thinking(thinking)

        response = self._client.continue_conversation(
            static_prompt,
            session.messages,
            schemas,
            cacheable_context=session.reference_context,
            breakpoints=prepared.breakpoints,
        )
        self._record(session, response, prepared.breakpoints)
        return response

    def _record(self, session: SessionState, response: PlannerResponse, breakpoints: list) -> None:
        session.append_message(ConversationMessage(role=Role.PLANNER, content=list(response.content)))
        self._usage.add(response.usage)
        if self._store is None:
            return
        previous = self._store.get_cache_metadata(session.session_id)
        last_hit = previous.last_cache_hit if previous is not None else None
        self._store.update_cache_metadata(
            CacheMetadata(
                session_id=session.session_id,
                cached_context=session.reference_context,
                breakpoints=breakpoints,
                last_cache_hit=time.time() if response.usage.cache_read_tokens else last_hit,
            )
        )
