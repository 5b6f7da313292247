"""
Roles Blueprint — decision capabilities and role permission bitfields.

Endpoints:
  GET  /api/v1/decisions/roles/<id>/decision-capabilities   — decoded decision bits
  PUT  /api/v1/decisions/roles/<id>/decision-capabilities   — replace decision bits (CRUD kept)
  PUT  /api/v1/decisions/roles/<id>/decision-roles          — full decisions-zone write (READ forced)
  PUT  /api/v1/decisions/roles/<id>/permissions             — replace ACRUD bits (decision bits kept)

Bitfields are never exposed raw; requests and responses carry capability
dicts. Editing requires ``profile: ADMIN`` on the role's profile; global
roles are read-only.
"""

import logging

from flask import Blueprint, g, jsonify

from decisionhub.auth import require_profile
from decisionhub.blueprints import json_body, register_error_handlers
from decisionhub.core.exceptions import ValidationError
from decisionhub.services import access_service
from decisionhub.services.permissions import ACRUD_KEYS, DECISION_KEYS, PERMISSION_BITS

logger = logging.getLogger(__name__)

roles_bp = Blueprint("roles", __name__, url_prefix="/api/v1/decisions/roles")

register_error_handlers(roles_bp)

_ALL_KEYS = tuple(key for key, _ in PERMISSION_BITS)


def _caps_from_body(allowed: tuple[str, ...], wrapper: str) -> dict:
    """Boolean capability dict from ``body[wrapper]``; unknown keys rejected."""
    data = json_body()
    caps = data.get(wrapper)
    if not isinstance(caps, dict):
        raise ValidationError(f"{wrapper} is required", details={wrapper: ["Must be an object"]})

    errors = {}
    for key, value in caps.items():
        if key not in allowed:
            errors[key] = [f"Unknown capability; expected one of {list(allowed)}"]
        elif not isinstance(value, bool):
            errors[key] = ["Must be a boolean"]
    if errors:
        raise ValidationError("Invalid capabilities", details=errors)
    return caps


@roles_bp.route("/<role_id>/decision-capabilities", methods=["GET"])
@require_profile
def get_decision_capabilities(role_id):
    return jsonify(access_service.get_decision_capabilities(role_id)), 200


@roles_bp.route("/<role_id>/decision-capabilities", methods=["PUT"])
@require_profile
def update_decision_capabilities(role_id):
    """Body: {decisionPermissions: {inviteMembers, review, submitProposals, vote}}"""
    caps = _caps_from_body(DECISION_KEYS, "decisionPermissions")
    result = access_service.update_decision_capabilities(role_id, caps, g.profile_id)
    return jsonify(result), 200


@roles_bp.route("/<role_id>/decision-roles", methods=["PUT"])
@require_profile
def update_decision_roles(role_id):
    """Body: {permissions: {<any of the 9 capability keys>: bool}}"""
    perms = _caps_from_body(_ALL_KEYS, "permissions")
    result = access_service.update_decision_roles(role_id, perms, g.profile_id)
    return jsonify(result), 200


@roles_bp.route("/<role_id>/permissions", methods=["PUT"])
@require_profile
def update_role_permission(role_id):
    """Body: {permissions: {admin, create, read, update, delete}}"""
    acrud = _caps_from_body(ACRUD_KEYS, "permissions")
    result = access_service.update_role_permission(role_id, acrud, g.profile_id)
    return jsonify(result), 200
