"""
Access Service — role lookup, capability assertion and role permission edits.

Capabilities live in AccessRolePermission.permission, one packed integer per
(role, zone); see decisionhub.services.permissions for the layout. A member's
effective capability in a zone is the OR of all their roles' bitfields.

Usage:
    from decisionhub.services.access_service import assert_access, get_profile_user_roles
    from decisionhub.services import permissions as P

    roles = get_profile_user_roles(instance.profile_id, profile_id)
    assert_access([{"decisions": P.ADMIN}, {"decisions": P.VOTE}], roles)
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from decisionhub.core.exceptions import NotFoundError, UnauthorizedError, ValidationError
from decisionhub.models import db
from decisionhub.models.access import (
    VALID_ZONES,
    ZONE_DECISIONS,
    ZONE_PROFILE,
    AccessRole,
    AccessRolePermission,
    AccessZone,
    ProfileUser,
)
from decisionhub.services import permissions as P

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Role lookup / assertion
# ---------------------------------------------------------------------------


def get_profile_user_roles(profile_id: str | None, member_profile_id: str) -> list[AccessRole]:
    """Roles held by ``member_profile_id`` inside ``profile_id``; [] when not a member."""
    if not profile_id:
        return []
    membership = db.session.execute(
        select(ProfileUser).where(
            ProfileUser.profile_id == profile_id,
            ProfileUser.member_profile_id == member_profile_id,
        )
    ).scalar_one_or_none()
    if membership is None:
        return []
    return list(membership.roles)


def zone_bits(roles: list[AccessRole], zone: str) -> int:
    granted = 0
    for role in roles:
        granted |= role.permission_for_zone(zone)
    return granted


def has_access(required, roles: list[AccessRole]) -> bool:
    """True when any alternative in ``required`` is fully granted.

    ``required`` is a ``{zone: bits}`` dict or a list of such dicts; within
    one dict every zone must be satisfied.
    """
    alternatives = [required] if isinstance(required, dict) else list(required)
    for alternative in alternatives:
        if all(P.has_bits(zone_bits(roles, zone), bits) for zone, bits in alternative.items()):
            return True
    return False


def assert_access(required, roles: list[AccessRole]) -> None:
    """Raise UnauthorizedError unless ``roles`` satisfy one of ``required``."""
    if not has_access(required, roles):
        raise UnauthorizedError("You do not have permission to perform this action")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_role(role_id: str) -> AccessRole:
    role = db.session.get(AccessRole, role_id)
    if role is None:
        raise NotFoundError(resource="AccessRole", resource_id=role_id)
    return role


def _get_or_create_zone(name: str) -> AccessZone:
    if name not in VALID_ZONES:
        raise ValidationError(f"Unknown access zone '{name}'", details={"zone": [f"Must be one of {sorted(VALID_ZONES)}"]})
    zone = db.session.execute(select(AccessZone).where(AccessZone.name == name)).scalar_one_or_none()
    if zone is None:
        zone = AccessZone(name=name)
        db.session.add(zone)
        db.session.flush()
    return zone


def _get_zone_permission(role: AccessRole, zone_name: str, *, create: bool = False) -> AccessRolePermission | None:
    for zp in role.zone_permissions:
        if zp.zone is not None and zp.zone.name == zone_name:
            return zp
    if not create:
        return None
    zp = AccessRolePermission(role=role, zone=_get_or_create_zone(zone_name), permission=0)
    db.session.add(zp)
    return zp


def _assert_can_edit_role(role: AccessRole, acting_profile_id: str) -> None:
    """Global roles are read-only; profile roles need ``profile: ADMIN``."""
    if role.is_global:
        raise UnauthorizedError("Global roles cannot be modified")
    acting_roles = get_profile_user_roles(role.profile_id, acting_profile_id)
    assert_access({ZONE_PROFILE: P.ADMIN}, acting_roles)


def _role_result(role: AccessRole, bits: int) -> dict:
    return {
        "roleId": role.id,
        "name": role.name,
        "decisionPermissions": P.from_decision_bitfield(bits),
    }


# ---------------------------------------------------------------------------
# Decision capabilities
# ---------------------------------------------------------------------------


def get_decision_capabilities(role_id: str) -> dict:
    role = _get_role(role_id)
    return P.from_decision_bitfield(role.permission_for_zone(ZONE_DECISIONS))


def update_decision_capabilities(role_id: str, caps: dict, acting_profile_id: str) -> dict:
    """Replace decision bits of a role, keeping its CRUD bits.

    The admin bit is cleared: capability editing never grants admin.
    """
    role = _get_role(role_id)
    _assert_can_edit_role(role, acting_profile_id)

    zp = _get_zone_permission(role, ZONE_DECISIONS, create=True)
    decision_caps = {k: bool(caps.get(k)) for k in P.DECISION_KEYS}
    zp.permission = P.update_decision_bits(zp.permission or 0, decision_caps)
    db.session.commit()

    logger.info(
        "Decision capabilities updated",
        extra={"role_id": role.id, "profile_id": acting_profile_id, "permission": zp.permission},
    )
    return _role_result(role, zp.permission)


def update_decision_roles(role_id: str, perms: dict, acting_profile_id: str) -> dict:
    """Write the full decisions-zone bitfield for a role; READ is forced on."""
    role = _get_role(role_id)
    _assert_can_edit_role(role, acting_profile_id)

    zp = _get_zone_permission(role, ZONE_DECISIONS, create=True)
    zp.permission = P.decision_role_bits(perms)
    db.session.commit()

    logger.info(
        "Decision role permissions written",
        extra={"role_id": role.id, "profile_id": acting_profile_id, "permission": zp.permission},
    )
    return {
        **_role_result(role, zp.permission),
        "permissions": P.decode(zp.permission),
    }


def update_role_permission(role_id: str, acrud: dict, acting_profile_id: str) -> dict:
    """Replace ACRUD bits in the decisions zone, keeping decision bits."""
    role = _get_role(role_id)
    _assert_can_edit_role(role, acting_profile_id)

    zp = _get_zone_permission(role, ZONE_DECISIONS, create=True)
    zp.permission = P.update_acrud_bits(zp.permission or 0, acrud)
    db.session.commit()

    logger.info(
        "Role permission updated",
        extra={"role_id": role.id, "profile_id": acting_profile_id, "permission": zp.permission},
    )
    return {**role.to_dict(), "permissions": P.from_acrud_bitfield(zp.permission)}
