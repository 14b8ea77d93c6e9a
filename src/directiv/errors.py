"""Error taxonomy shared by the orchestration core."""

from __future__ import annotations

from typing import Any


class DirectivError(RuntimeError):
    """Base class for orchestration errors."""


class RemoteServiceError(DirectivError):
    """Raised when the issue tracker or review system rejects a request."""

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class RateLimitError(RemoteServiceError):
    """Raised when a remote service reports that the rate limit was exceeded."""


class LifecycleError(DirectivError):
    """Raised when a start or stop sequence cannot complete."""


class TaskBusyError(DirectivError):
    """Raised when a lifecycle action is already in flight for the same task."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"An action is already running for '{identifier}'")
        self.identifier = identifier


class PreconditionError(DirectivError):
    """Base class for signals the caller can answer with a targeted remedy."""


class CheckoutDirtyError(PreconditionError):
    """Raised when stopping a task whose checkout has uncommitted changes."""

    def __init__(self, identifier: str, path: str) -> None:
        super().__init__(
            f"Checkout for '{identifier}' at {path} has uncommitted changes; "
            "confirm to remove it anyway"
        )
        self.identifier = identifier
        self.path = path


class RelationNotSyncedError(PreconditionError):
    """Raised when deleting a relation that the server has not confirmed yet."""

    def __init__(self, relation_id: str) -> None:
        super().__init__("Blocking link is still syncing; try again in a moment")
        self.relation_id = relation_id


class SelfRelationError(PreconditionError):
    """Raised when a task is asked to block itself."""

    def __init__(self, task_id: str) -> None:
        super().__init__("A task cannot block itself")
        self.task_id = task_id


class RelationMutationError(DirectivError):
    """Raised after a failed relation mutation has been rolled back."""


def _message_of(value: Any) -> str:
    message = getattr(value, "message", None)
    if isinstance(message, str):
        return message
    if isinstance(value, dict):
        candidate = value.get("message")
        if isinstance(candidate, str):
            return candidate
    return str(value) if value is not None else ""


def is_rate_limit_error(error: Any) -> bool:
    """Heuristically decide whether ``error`` reports an exceeded rate limit."""

    if error is None:
        return False
    if isinstance(error, RateLimitError):
        return True
    if getattr(error, "status_code", None) == 429:
        return True

    if "rate limit" in _message_of(error).lower():
        return True

    errors = getattr(error, "errors", None)
    if errors is None and isinstance(error, dict):
        errors = error.get("errors")
    if isinstance(errors, list):
        for item in errors:
            if not isinstance(item, dict):
                continue
            extensions = item.get("extensions") or {}
            if extensions.get("code") == "RATELIMITED":
                return True
            if "rate limit" in str(item.get("message", "")).lower():
                return True

    response = getattr(error, "response", None)
    if response is None and isinstance(error, dict):
        response = error.get("response")
    if response is not None and response is not error:
        return is_rate_limit_error(response)
    return False


__all__ = [
    "CheckoutDirtyError",
    "DirectivError",
    "LifecycleError",
    "PreconditionError",
    "RateLimitError",
    "RelationMutationError",
    "RelationNotSyncedError",
    "RemoteServiceError",
    "SelfRelationError",
    "TaskBusyError",
    "is_rate_limit_error",
]
