# actions.py
# Action surface client: the ActionExecutor contract and an HTTP implementation.
#
# The browser itself lives in a separate automation process; this module only
# forwards one tool call per request and maps the reply onto ActionOutcome.

import time
from typing import Protocol

import httpx
from pydantic import ValidationError

from plan_loop.exceptions import TransportError
from plan_loop.models import ActionError, ActionOutcome


class ActionExecutor(Protocol):
    def execute(self, tool_name: str, params: dict) -> ActionOutcome: ...


class HttpActionExecutor:
    """
    POSTs {"tool": name, "params": {...}} to <base_url>/execute.

    A reply with any HTTP status below 500 is an outcome, even a failed one.
    Connection failures, timeouts and 5xx replies raise TransportError.
    """

    def __init__(self, base_url: str, timeout: float = 60.0, client: httpx.Client | None = None) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def execute(self, tool_name: str, params: dict) -> ActionOutcome:
        started = time.perf_counter()
        try:
            response = self._client.post("/execute", json={"tool": tool_name, "params": params})
        except httpx.HTTPError as exc:
            raise TransportError(f"Action surface unreachable while running {tool_name}: {exc}") from exc

        if response.status_code >= 500:
            raise TransportError(f"Action surface returned {response.status_code} for {tool_name}.")

        elapsed_ms = (time.perf_counter() - started) * 1000
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            return ActionOutcome(
                success=False,
                tool_name=tool_name,
                elapsed_ms=elapsed_ms,
                error=ActionError(code="MALFORMED_RESPONSE", message=response.text[:500]),
                timestamp=time.time(),
            )

        data.setdefault("tool_name", tool_name)
        data.setdefault("elapsed_ms", elapsed_ms)
        data.setdefault("timestamp", time.time())
        if response.status_code >= 400 and "success" not in data:
            data["success"] = False

        try:
            return ActionOutcome.model_validate(data)
        except ValidationError as exc:
            return ActionOutcome(
                success=False,
                tool_name=tool_name,
                elapsed_ms=elapsed_ms,
                error=ActionError(code="MALFORMED_RESPONSE", message=str(exc)),
                timestamp=time.time(),
            )

    def close(self) -> None:
        self._client.close()
