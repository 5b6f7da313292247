"""Standardised API error responses.

Usage
-----
    from decisionhub.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Process instance not found")
    return api_error(E.VALIDATION_INVALID, "Invalid vote selection",
                     details={"selectedProposalIds": ["..."]})
"""

from __future__ import annotations

from flask import jsonify

from decisionhub.core.exceptions import (
    CommonError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Permissions – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.INTERNAL: 500,
}

# Exception type -> error code, most specific first
_EXCEPTION_CODES: tuple[tuple[type[CommonError], str], ...] = (
    (NotFoundError, E.NOT_FOUND),
    (ValidationError, E.VALIDATION_INVALID),
    (UnauthorizedError, E.FORBIDDEN),
    (ConflictError, E.CONFLICT_DUPLICATE),
)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Field-level errors keyed by field name.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def error_from_exception(error: CommonError):
    """Build the JSON response for a domain exception."""
    for exc_type, code in _EXCEPTION_CODES:
        if isinstance(error, exc_type):
            details = getattr(error, "details", None)
            return api_error(code, str(error), status=error.status_code, details=details)
    return api_error(E.INTERNAL, str(error) or "Internal server error", status=500)
