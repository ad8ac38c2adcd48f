"""Input helpers shared by the services and blueprints.

clean_text:  str-or-None field → stripped str, ValidationError on any other type
json_body:   request JSON object, ValidationError when the body is not an object
"""

from __future__ import annotations

from flask import request

from prodflow.core.exceptions import ValidationError


def clean_text(value, field: str, *, required: bool = True, lower: bool = False) -> str | None:
    """Normalise a free-text field coming from a JSON body.

    ``None`` and blank strings count as missing. Numbers, lists and objects
    are rejected outright rather than coerced.

    Raises:
        ValidationError: Wrong type, or missing while *required*.
    """
    if value is None:
        text = ""
    elif isinstance(value, str):
        text = value.strip()
    else:
        raise ValidationError(
            f"{field} must be a string",
            details={field: f"expected string, got {type(value).__name__}"},
        )
    if lower:
        text = text.lower()
    if not text:
        if required:
            raise ValidationError(f"{field} is required", details={field: "must not be empty"})
        return None
    return text


def json_body() -> dict:
    """The request's JSON object; an absent or unparsable body reads as ``{}``."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
