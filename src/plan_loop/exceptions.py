# exceptions.py
# Error taxonomy for the orchestration engine.
#
# Recoverable failures never escape the orchestrator loop; everything else is
# converted into AutomationResult.error, except AcknowledgementMismatchError,
# which signals a bug and always propagates.

from plan_loop.models import ActionOutcome


class AutomationError(Exception):
    """Base class for every error raised by the engine."""


class PlanValidationError(AutomationError):
    """Raised when a plan has no steps or names an unknown tool. Non-recoverable."""


class ActionExecutionError(AutomationError):
    """Raised when the action surface reports a failed step. Recoverable."""

    def __init__(self, message: str, outcome: ActionOutcome) -> None:
        super().__init__(message)
        self.outcome = outcome


class RecoveryExhausted(AutomationError):
    """Raised when a failure occurs with no recovery attempts left. Terminal."""


class StepLimitExceeded(AutomationError):
    """Raised when the per-session step ceiling is hit. Always fatal."""


class TransportError(AutomationError):
    """Raised when the planner or the action surface cannot be reached. Fatal for the run."""


class AcknowledgementMismatchError(AutomationError):
    """Raised when action results would not match the preceding action requests. A bug, never a runtime condition."""


class AutomationCancelled(AutomationError):
    """Raised when the caller's cancel event is set between steps. Terminal."""
