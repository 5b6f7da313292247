"""
Caller identity for decision endpoints.

The JWT middleware puts the bearer token's subject (an individual profile id)
on ``g.jwt_profile_id``. Views that act on behalf of a member call
``resolve_current_profile_id()`` or use ``@require_profile``.
"""

import functools

from flask import g

from decisionhub.models import db
from decisionhub.models.access import Profile
from decisionhub.utils.errors import E, api_error


class AuthenticationRequired(Exception):
    """No valid bearer token, or its subject is not a known profile."""

    def __init__(self, message: str = "Authentication required"):
        self.message = message
        super().__init__(message)


def resolve_current_profile_id() -> str:
    """Return the caller's individual profile id or raise AuthenticationRequired."""
    profile_id = getattr(g, "jwt_profile_id", None)
    if not profile_id:
        raise AuthenticationRequired(getattr(g, "jwt_error", None) or "Authentication required")
    if db.session.get(Profile, profile_id) is None:
        raise AuthenticationRequired("Unknown profile")
    return profile_id


def require_profile(f):
    """Decorator: reject with 401 unless a valid bearer token is present.

    The resolved id is stored on ``g.profile_id``.
    """

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        try:
            g.profile_id = resolve_current_profile_id()
        except AuthenticationRequired as exc:
            return api_error(E.UNAUTHENTICATED, exc.message)
        return f(*args, **kwargs)

    return decorated
