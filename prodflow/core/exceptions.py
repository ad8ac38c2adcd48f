"""
Service-wide exception hierarchy.

Every service raises one of these four kinds. Blueprints register handlers
against them once and map them to consistent HTTP status codes:

    ValidationError   → 400  malformed or missing input
    NotFoundError     → 404  referenced row does not exist
    StateError        → 409  workflow invariant violated (stale client, lost race)
    PersistenceError  → 500  underlying store failure

None of them is retried by the engine. A caller may safely re-issue an
advance/revert after a PersistenceError: if the first attempt landed, the
retry fails with StateError instead of advancing twice.

Usage:
    from prodflow.core.exceptions import NotFoundError, StateError

    raise NotFoundError(resource="Activity", resource_id=42)
    raise StateError("Department 'impressao' is not active for activity 7")
"""


class WorkflowError(Exception):
    """Base class for every error kind surfaced by the services."""


class NotFoundError(WorkflowError):
    """Raised when a referenced activity, record, user or notification is missing.

    Args:
        resource: Human-readable entity name (e.g. "Activity", "ProgressRecord").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(WorkflowError):
    """Raised when input is malformed or missing.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class StateError(WorkflowError):
    """Raised when a transition would violate the workflow invariants.

    Typical causes: the targeted department is not the active one, a revert
    from the first department, or a conditional write that lost a race.
    """

    def __init__(
        self,
        message: str,
        activity_id: int | None = None,
        department: str | None = None,
    ) -> None:
        self.activity_id = activity_id
        self.department = department
        super().__init__(message)


class PersistenceError(WorkflowError):
    """Raised when the underlying store fails for reasons unrelated to input or state."""

    def __init__(self, message: str, operation: str | None = None) -> None:
        self.operation = operation
        super().__init__(message)
