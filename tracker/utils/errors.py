"""JSON error envelope shared by every blueprint.

Body shape: ``{"error": <message>, "code": <ERR_...>, "details"?: {...}}``

    return api_error(E.VALIDATION_REQUIRED, "title is required")
    return api_error(E.VALIDATION_RULE, "Unknown workflow: x", details={"workflow_key": "..."})
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Machine-readable error codes."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"   # field missing or empty
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"     # malformed value or body shape
    VALIDATION_RULE = "ERR_VALIDATION_RULE"           # well-formed but breaks a tracker rule
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT = "ERR_CONFLICT"
    EXTERNAL_IO = "ERR_EXTERNAL_IO"                   # data store unreachable or failing
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT: 409,
    E.EXTERNAL_IO: 502,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(response, status)`` for a Flask view; status defaults from the code."""
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_BY_CODE.get(code, 400)
