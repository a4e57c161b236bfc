# run.py
# Entry point. Config and wiring only. No logic lives here.
#
# Swap PLAN_LOOP_MODEL for any OpenRouter-supported model.
# https://openrouter.ai/models
#
# PLAN_LOOP_ACTION_URL must point at a running action surface that accepts
# POST /execute {"tool": ..., "params": {...}}.

from plan_loop.actions import HttpActionExecutor
from plan_loop.client import OpenRouterClient
from plan_loop.display import ConsoleReporter
from plan_loop.orchestrator import Orchestrator
from plan_loop.settings import Settings
from plan_loop.store import InMemorySessionStore

# Example goals: one single-plan, one that needs page analysis mid-way.
GOALS = [
    # Single final plan: the page structure is predictable
    "Open https://example.com and follow the 'More information...' link.",

    # Intermediate plan: the planner has to read the results before choosing
    "Search https://duckduckgo.com for 'pydantic discriminated unions' and open "
    "the first result from the official documentation.",
]


def main() -> None:
    settings = Settings.from_env()
    client = OpenRouterClient(
        model=settings.model,
        api_key=settings.api_key,
        base_url=settings.base_url,
        max_tokens=settings.max_tokens,
        max_retries=settings.max_retries,
    )
    actions = HttpActionExecutor(settings.action_url)
    orchestrator = Orchestrator(
        llm_client=client,
        action_executor=actions,
        settings=settings,
        reporter=ConsoleReporter(),
        store=InMemorySessionStore(),
    )

    try:
        for goal in GOALS:
            result = orchestrator.run(goal)
            print(f"\n[RESULT]\n{result.analysis or result.error}\n")
    finally:
        actions.close()


if __name__ == "__main__":
    main()
