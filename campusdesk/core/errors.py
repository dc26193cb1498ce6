"""
Workflow Errors

Typed failures raised by the engine. Every command either returns its
result or raises one of these; nothing is retried or swallowed internally.
"""


class WorkflowError(Exception):
    """Base class for all engine errors."""


class ValidationError(WorkflowError):
    """Malformed input, e.g. an empty item list."""


class PermissionDenied(WorkflowError):
    """The actor's role is not authorized for the action."""


class InvalidTransition(WorkflowError):
    """The requested status edge is not in the transition table."""


class NotFound(WorkflowError):
    """No entity exists with the given id."""


class ConflictStale(WorkflowError):
    """
    The stored version no longer matches the version the caller read.

    The caller must re-read before trying again.
    """

    def __init__(self, message: str, expected_version: int | None = None, actual_version: int | None = None):
        super().__init__(message)
        self.expected_version = expected_version
        self.actual_version = actual_version


class AlreadyClaimed(WorkflowError):
    """Another claim is live on the item (or won the race for it)."""


class NotAvailable(WorkflowError):
    """The item is in a state that can never be claimed again."""


class NotInClaimedState(WorkflowError):
    """A claim decision was requested for an item with no live claim."""


class UpstreamUnavailable(WorkflowError):
    """The backing store could not be reached."""
