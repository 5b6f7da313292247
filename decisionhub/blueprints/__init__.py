"""
Decision Engine
Blueprint registry helpers.
"""

from flask import request

from decisionhub.core.exceptions import ValidationError


def json_body() -> dict:
    """Parsed JSON object body, or {} when absent.

    Raises ValidationError when the body is JSON but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def string_list(data: dict, key: str) -> list[str]:
    """Required list-of-strings field; raises ValidationError otherwise."""
    value = data.get(key)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{key} must be a list of strings", details={key: ["Must be a list of strings"]})
    return value


def register_error_handlers(bp):
    """Map the domain exception taxonomy to JSON responses on ``bp``."""
    from decisionhub.auth import AuthenticationRequired
    from decisionhub.core.exceptions import CommonError
    from decisionhub.utils.errors import E, api_error, error_from_exception

    @bp.errorhandler(CommonError)
    def _handle_domain_error(error: CommonError):
        return error_from_exception(error)

    @bp.errorhandler(AuthenticationRequired)
    def _handle_unauthenticated(error: AuthenticationRequired):
        return api_error(E.UNAUTHENTICATED, error.message)
