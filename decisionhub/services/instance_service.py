"""
Decision Instance Service — launch, transition, delete and next steps.

Launching an instance creates its own "decision" Profile. The launching
member joins it with the Admin role; a Member role with propose/vote rights
is created alongside so organizers can invite voters.

Delete rules:
    - No transition history yet → hard delete, together with the instance's
      decision profile, its roles and memberships.
    - Any history → status "cancelled" (history must stay auditable).
    - Already cancelled → no-op, reported as "cancelled".
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from decisionhub.core.exceptions import CommonError, NotFoundError, ValidationError
from decisionhub.models import db
from decisionhub.models.access import (
    ZONE_DECISIONS,
    ZONE_PROFILE,
    AccessRole,
    AccessRolePermission,
    AccessZone,
    Profile,
    ProfileUser,
)
from decisionhub.models.decision import (
    DecisionProcess,
    ProcessInstance,
    StateTransitionHistory,
)
from decisionhub.services import permissions as P
from decisionhub.services.access_service import assert_access, get_profile_user_roles
from decisionhub.services.process_state import current_state, current_state_id_for, next_steps

logger = logging.getLogger(__name__)

ADMIN_ROLE_NAME = "Admin"
MEMBER_ROLE_NAME = "Member"

_ADMIN_DECISION_CAPS = {
    "delete": True, "update": True, "read": True, "create": True, "admin": True,
    "inviteMembers": True, "review": True, "submitProposals": True, "vote": True,
}
_MEMBER_DECISION_CAPS = {"read": True, "submitProposals": True, "vote": True}

TRANSITION_REQUIRED_ACCESS = [{ZONE_DECISIONS: P.ADMIN}, {ZONE_PROFILE: P.ADMIN}]
DELETE_REQUIRED_ACCESS = {ZONE_PROFILE: P.ADMIN}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_instance(instance_id: str) -> ProcessInstance:
    instance = db.session.get(ProcessInstance, instance_id)
    if instance is None:
        raise NotFoundError(resource="ProcessInstance", resource_id=instance_id)
    return instance


def _zone(name: str) -> AccessZone:
    zone = db.session.execute(select(AccessZone).where(AccessZone.name == name)).scalar_one_or_none()
    if zone is None:
        zone = AccessZone(name=name)
        db.session.add(zone)
    return zone


def _create_role(profile: Profile, name: str, grants: dict[str, int]) -> AccessRole:
    role = AccessRole(profile_id=profile.id, name=name)
    db.session.add(role)
    for zone_name, bits in grants.items():
        db.session.add(AccessRolePermission(role=role, zone=_zone(zone_name), permission=bits))
    return role


def _history_count(instance_id: str) -> int:
    return db.session.execute(
        select(func.count()).select_from(StateTransitionHistory).where(
            StateTransitionHistory.process_instance_id == instance_id
        )
    ).scalar_one()


def _transition_allowed(transitions: list[dict], from_state_id: str | None, to_state_id: str) -> bool:
    for transition in transitions:
        if transition.get("to") != to_state_id:
            continue
        source = transition.get("from")
        if isinstance(source, list):
            if from_state_id in source:
                return True
        elif source == from_state_id:
            return True
    return False


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def create_instance(
    process_id: str,
    owner_profile_id: str,
    name: str,
    instance_data: dict | None = None,
) -> ProcessInstance:
    """Launch a process. The first state becomes current when none is given."""
    process = db.session.get(DecisionProcess, process_id)
    if process is None:
        raise NotFoundError(resource="DecisionProcess", resource_id=process_id)
    if not (name or "").strip():
        raise ValidationError("Instance name is required", details={"name": ["This field is required"]})

    states = process.states
    if not states:
        raise ValidationError(
            "Process has no states", details={"processSchema": ["At least one state is required"]}
        )

    data = dict(instance_data or {})
    state_id = data.get("currentStateId") or states[0].get("id")
    if current_state(states, state_id) is None:
        raise ValidationError(
            f"Unknown state '{state_id}'", details={"currentStateId": [f"State '{state_id}' is not defined"]}
        )
    data["currentStateId"] = state_id

    profile = Profile(profile_type="decision", name=name.strip())
    db.session.add(profile)
    db.session.flush()

    admin_role = _create_role(profile, ADMIN_ROLE_NAME, {
        ZONE_PROFILE: P.ACRUD_MASK,
        ZONE_DECISIONS: P.decision_role_bits(_ADMIN_DECISION_CAPS),
    })
    _create_role(profile, MEMBER_ROLE_NAME, {
        ZONE_PROFILE: P.READ,
        ZONE_DECISIONS: P.decision_role_bits(_MEMBER_DECISION_CAPS),
    })

    owner = ProfileUser(profile_id=profile.id, member_profile_id=owner_profile_id)
    owner.roles.append(admin_role)
    db.session.add(owner)

    instance = ProcessInstance(
        process_id=process.id,
        name=name.strip(),
        owner_profile_id=owner_profile_id,
        profile_id=profile.id,
        instance_data=data,
        current_state_id=state_id,
        status="published",
    )
    db.session.add(instance)
    db.session.commit()

    logger.info(
        "Process instance created",
        extra={"process_instance_id": instance.id, "profile_id": owner_profile_id, "state_id": state_id},
    )
    return instance


def transition_instance(
    instance_id: str,
    to_state_id: str,
    profile_id: str,
    transition_data: dict | None = None,
) -> ProcessInstance:
    """Move an instance to ``to_state_id`` and record history atomically.

    When the process declares ``transitions``, one of them must lead from the
    current state to the target.
    """
    instance = _get_instance(instance_id)
    assert_access(TRANSITION_REQUIRED_ACCESS, get_profile_user_roles(instance.profile_id, profile_id))

    if instance.status in ("cancelled", "completed"):
        raise ValidationError(f"Instance is {instance.status}")

    states = instance.process.states
    if current_state(states, to_state_id) is None:
        raise ValidationError(
            f"Unknown state '{to_state_id}'", details={"toStateId": [f"State '{to_state_id}' is not defined"]}
        )

    from_state_id = current_state_id_for(instance)
    transitions = instance.process.transitions
    if transitions and not _transition_allowed(transitions, from_state_id, to_state_id):
        raise ValidationError(
            "Invalid transition",
            details={"toStateId": [f"No transition from '{from_state_id}' to '{to_state_id}'"]},
        )

    now = datetime.now(timezone.utc)
    data = dict(instance.instance_data or {})
    state_data = dict(data.get("stateData") or {})
    state_data[to_state_id] = {"enteredAt": now.isoformat(), "metadata": transition_data or {}}
    data["currentStateId"] = to_state_id
    data["stateData"] = state_data

    try:
        instance.instance_data = data
        instance.current_state_id = to_state_id
        db.session.add(StateTransitionHistory(
            process_instance_id=instance.id,
            from_state_id=from_state_id,
            to_state_id=to_state_id,
            transition_data=transition_data or {},
            triggered_by_profile_id=profile_id,
            transitioned_at=now,
        ))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("State transition failed", extra={"process_instance_id": instance_id})
        raise CommonError("Failed to execute transition")

    logger.info(
        "Process instance transitioned",
        extra={
            "process_instance_id": instance.id,
            "profile_id": profile_id,
            "from_state_id": from_state_id,
            "to_state_id": to_state_id,
        },
    )
    return instance


def _delete_decision_profile(profile_id: str) -> None:
    """Remove an instance's own profile with its memberships and roles."""
    for membership in db.session.execute(
        select(ProfileUser).where(ProfileUser.profile_id == profile_id)
    ).scalars():
        db.session.delete(membership)
    db.session.flush()

    for role in db.session.execute(
        select(AccessRole).where(AccessRole.profile_id == profile_id)
    ).scalars():
        db.session.delete(role)
    db.session.flush()

    profile = db.session.get(Profile, profile_id)
    if profile is not None:
        db.session.delete(profile)


def delete_instance(instance_id: str, profile_id: str) -> dict:
    instance = _get_instance(instance_id)
    assert_access(DELETE_REQUIRED_ACCESS, get_profile_user_roles(instance.profile_id, profile_id))

    if _history_count(instance.id) == 0:
        try:
            decision_profile_id = instance.profile_id
            db.session.delete(instance)
            db.session.flush()
            if decision_profile_id:
                _delete_decision_profile(decision_profile_id)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Process instance delete failed", extra={"process_instance_id": instance_id})
            raise CommonError("Failed to delete process instance")
        action = "deleted"
    elif instance.status == "cancelled":
        action = "cancelled"
    else:
        instance.status = "cancelled"
        db.session.commit()
        action = "cancelled"

    logger.info(
        "Process instance removed",
        extra={"process_instance_id": instance_id, "profile_id": profile_id, "action": action},
    )
    return {"success": True, "action": action, "instanceId": instance_id}


def get_instance_next_steps(instance_id: str) -> list[dict]:
    instance = _get_instance(instance_id)
    data = dict(instance.instance_data or {})
    data.setdefault("currentStateId", instance.current_state_id)
    return next_steps(instance.process.states, data)
