"""JSON error bodies shared by every blueprint.

    return api_error(E.NOT_FOUND, "Activity not found")
    return api_error(E.CONFLICT_STATE, "Department 'impressao' is not active",
                     details={"department": "impressao"})

Body shape: ``{"error": <message>, "code": <ERR_*>, "details": {...}}``;
``details`` is omitted when empty.
"""

from __future__ import annotations

from flask import jsonify

from prodflow.core.exceptions import NotFoundError, PersistenceError, StateError, ValidationError


class E:
    """Error codes, grouped by the HTTP status they default to."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    # non-active department, lost race, foreign notification
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE: dict[str, int] = {
    **dict.fromkeys((E.VALIDATION_REQUIRED, E.VALIDATION_INVALID), 400),
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_STATE: 409,
    **dict.fromkeys((E.DATABASE, E.INTERNAL), 500),
}


def api_error(code: str, message: str, *, status: int | None = None,
              details: dict | None = None):
    """Build ``(response, status)`` for a view to return.

    ``status`` overrides the code's default; unknown codes map to 400.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)


def _state_details(exc: StateError) -> dict | None:
    details = {}
    if exc.activity_id is not None:
        details["activity_id"] = exc.activity_id
    if exc.department is not None:
        details["department"] = exc.department
    return details or None


def register_workflow_error_handlers(bp) -> None:
    """Attach handlers for the four service error kinds to ``bp``."""

    @bp.errorhandler(ValidationError)
    def _on_validation(exc):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)

    @bp.errorhandler(NotFoundError)
    def _on_not_found(exc):
        return api_error(E.NOT_FOUND, str(exc))

    @bp.errorhandler(StateError)
    def _on_state(exc):
        return api_error(E.CONFLICT_STATE, str(exc), details=_state_details(exc))

    @bp.errorhandler(PersistenceError)
    def _on_persistence(exc):
        return api_error(E.DATABASE, "Database error", details={"operation": exc.operation})
