"""
Voting Service — ballot submission, voting status and selection checks.

One VoteSubmission per (process instance, member). The service pre-checks
for an existing ballot to give a friendly error, but the database constraint
uq_vote_submission_instance_profile is the real guarantee: a concurrent
duplicate surfaces as IntegrityError on flush and is reported as
ConflictError("already voted").

The ballot row and its VoteProposalSelection rows are written in a single
transaction. Any failure rolls back both, so a partial ballot is never
visible.

Signature: base64 of ``{"proposalIds": sorted ids, "userId", "timestamp"}``.
It is an integrity marker for audits (see ``verify_vote_signature``), not a
cryptographic commitment; no key is involved.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from decisionhub.core.exceptions import (
    CommonError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from decisionhub.models import db
from decisionhub.models.access import ZONE_DECISIONS, ZONE_PROFILE
from decisionhub.models.decision import (
    VOTABLE_PROPOSAL_STATUSES,
    ProcessInstance,
    Proposal,
    VoteProposalSelection,
    VoteSubmission,
)
from decisionhub.services import permissions as P
from decisionhub.services.access_service import assert_access, get_profile_user_roles
from decisionhub.services.process_state import (
    current_phase_config,
    resolve_max_votes,
)
from decisionhub.services.schema_registry import validate_vote_selection

logger = logging.getLogger(__name__)

VOTE_REQUIRED_ACCESS = [{ZONE_DECISIONS: P.ADMIN}, {ZONE_DECISIONS: P.VOTE}]
READ_REQUIRED_ACCESS = [{ZONE_DECISIONS: P.READ}, {ZONE_PROFILE: P.READ}]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_instance(process_instance_id: str) -> ProcessInstance:
    instance = db.session.get(ProcessInstance, process_instance_id)
    if instance is None or instance.process is None:
        raise NotFoundError(resource="ProcessInstance", resource_id=process_instance_id)
    return instance


def _member_roles(instance: ProcessInstance, profile_id: str) -> list:
    if not instance.profile_id:
        raise NotFoundError(resource="DecisionProfile", resource_id=instance.id)
    return get_profile_user_roles(instance.profile_id, profile_id)


def _resolve_voting_config(instance: ProcessInstance) -> tuple[dict, str]:
    """Run the current phase through the schema registry.

    Returns ``(votingConfig, schemaType)``.
    """
    phase = current_phase_config(instance, instance.process.states)
    if phase is None:
        raise ValidationError("Current state not found")

    payload = {
        "allowProposals": phase["allowProposals"],
        "allowDecisions": phase["allowDecisions"],
        "instanceData": {"maxVotesPerMember": resolve_max_votes(instance.instance_data)},
        "schemaType": "simple",
    }
    registry = current_app.extensions["schema_registry"]
    result = registry.process_schema(payload)
    if not result["isValid"]:
        raise ValidationError(
            "Invalid process schema",
            details={"processSchema": result["validationResult"]["errors"]},
        )
    return result["votingConfig"], result["schemaType"]


def _find_submission(process_instance_id: str, profile_id: str) -> VoteSubmission | None:
    return db.session.execute(
        select(VoteSubmission).where(
            VoteSubmission.process_instance_id == process_instance_id,
            VoteSubmission.submitted_by_profile_id == profile_id,
        )
    ).scalar_one_or_none()


def _eligible_proposal_ids(process_instance_id: str) -> list[str]:
    return list(
        db.session.execute(
            select(Proposal.id).where(
                Proposal.process_instance_id == process_instance_id,
                Proposal.status.in_(VOTABLE_PROPOSAL_STATUSES),
            )
        ).scalars()
    )


def _utc_iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def create_vote_signature(proposal_ids: list[str], profile_id: str, timestamp: str) -> str:
    payload = {
        "proposalIds": sorted(proposal_ids),
        "userId": profile_id,
        "timestamp": timestamp,
    }
    return base64.b64encode(json.dumps(payload, separators=(",", ":")).encode()).decode()


def _insert_selections(submission: VoteSubmission, proposal_ids: list[str]) -> None:
    for proposal_id in proposal_ids:
        db.session.add(VoteProposalSelection(vote_submission_id=submission.id, proposal_id=proposal_id))
    db.session.flush()


def _serialize_submission(submission: VoteSubmission, selected_ids: list[str]) -> dict:
    vote_data = submission.vote_data or {}
    return {
        "id": submission.id,
        "processInstanceId": submission.process_instance_id,
        "userId": submission.submitted_by_profile_id,
        "selectedProposalIds": selected_ids,
        "createdAt": submission._iso(submission.created_at),
        "signature": submission.signature,
        "schemaVersion": vote_data.get("schemaVersion"),
        "schemaType": vote_data.get("schemaType"),
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def submit_vote(
    process_instance_id: str,
    selected_proposal_ids: list[str],
    profile_id: str,
    *,
    schema_version: str | None = None,
    custom_data: dict | None = None,
    user_agent: str | None = None,
) -> dict:
    """Record a member's ballot exactly once.

    Raises:
        NotFoundError: Instance, its process or its decision profile is missing.
        UnauthorizedError: Member holds neither decisions ADMIN nor VOTE.
        ValidationError: No current state, voting closed, or bad selection
            (``details["selectedProposalIds"]`` lists every failing rule).
        ConflictError: The member already voted on this instance.
        CommonError: Unexpected storage failure; nothing was written.
    """
    instance = _get_instance(process_instance_id)
    assert_access(VOTE_REQUIRED_ACCESS, _member_roles(instance, profile_id))

    voting_config, schema_type = _resolve_voting_config(instance)
    if not voting_config["allowDecisions"]:
        raise ValidationError("Voting is not currently allowed for this process")

    if _find_submission(instance.id, profile_id) is not None:
        raise ConflictError(
            resource="VoteSubmission",
            field="submitted_by_profile_id",
            value=profile_id,
            message="You have already voted in this process",
        )

    selected = list(selected_proposal_ids or [])
    validation = validate_vote_selection(
        selected, voting_config["maxVotesPerMember"], _eligible_proposal_ids(instance.id)
    )
    if not validation["isValid"]:
        raise ValidationError(
            "Invalid vote selection",
            details={"selectedProposalIds": validation["errors"]},
        )

    now = datetime.now(timezone.utc)
    signature = create_vote_signature(selected, profile_id, _utc_iso(now))
    vote_data = {
        "schemaVersion": schema_version or current_app.config.get("VOTE_SCHEMA_VERSION", "1.0.0"),
        "schemaType": schema_type,
        "submissionMetadata": {
            "timestamp": _utc_iso(now),
            "userAgent": user_agent or "unknown",
        },
        "validationSignature": signature,
    }

    submission = VoteSubmission(
        process_instance_id=instance.id,
        submitted_by_profile_id=profile_id,
        vote_data=vote_data,
        custom_data=custom_data,
        signature=signature,
        created_at=now,
    )
    try:
        db.session.add(submission)
        db.session.flush()  # unique constraint fires here
        _insert_selections(submission, selected)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if _find_submission(process_instance_id, profile_id) is not None:
            logger.info(
                "Duplicate vote rejected by constraint",
                extra={"process_instance_id": process_instance_id, "profile_id": profile_id},
            )
            raise ConflictError(
                resource="VoteSubmission",
                field="submitted_by_profile_id",
                value=profile_id,
                message="You have already voted in this process",
            )
        logger.exception(
            "Vote insert violated an integrity constraint",
            extra={"process_instance_id": process_instance_id, "profile_id": profile_id},
        )
        raise CommonError("Failed to submit vote")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Vote submission failed",
            extra={"process_instance_id": process_instance_id, "profile_id": profile_id},
        )
        raise CommonError("Failed to submit vote")

    logger.info(
        "Vote submitted",
        extra={
            "process_instance_id": instance.id,
            "profile_id": profile_id,
            "vote_submission_id": submission.id,
            "selection_count": len(selected),
        },
    )
    return _serialize_submission(submission, selected)


def get_voting_status(process_instance_id: str, profile_id: str) -> dict:
    """Viewer's ballot (if any) plus the current voting configuration. Read-only."""
    instance = _get_instance(process_instance_id)
    assert_access(READ_REQUIRED_ACCESS, _member_roles(instance, profile_id))
    voting_config, schema_type = _resolve_voting_config(instance)

    submission = _find_submission(instance.id, profile_id)
    vote_submission = None
    selected_proposals = None
    if submission is not None:
        selections = submission.selections
        vote_submission = _serialize_submission(submission, [s.proposal_id for s in selections])
        selected_proposals = [
            {
                "id": s.proposal.id,
                "title": s.proposal.title,
                "amount": (s.proposal.proposal_data or {}).get("amount"),
            }
            for s in selections
        ]

    return {
        "hasVoted": submission is not None,
        "voteSubmission": vote_submission,
        "selectedProposals": selected_proposals,
        "votingConfiguration": {
            "allowDecisions": voting_config["allowDecisions"],
            "maxVotesPerMember": voting_config["maxVotesPerMember"],
            "schemaType": schema_type,
            "isReadOnly": submission is not None or not voting_config["allowDecisions"],
        },
    }


def validate_vote_selection_for_instance(
    process_instance_id: str,
    selected_proposal_ids: list[str],
    profile_id: str,
) -> dict:
    """Dry-run of ``submit_vote`` validation. Never writes."""
    instance = _get_instance(process_instance_id)
    assert_access(READ_REQUIRED_ACCESS, _member_roles(instance, profile_id))
    voting_config, schema_type = _resolve_voting_config(instance)

    selected = list(selected_proposal_ids or [])
    eligible = _eligible_proposal_ids(instance.id)
    result = validate_vote_selection(selected, voting_config["maxVotesPerMember"], eligible)

    errors = list(result["errors"])
    if not voting_config["allowDecisions"]:
        errors.insert(0, "Voting is not currently allowed for this process")
    if _find_submission(instance.id, profile_id) is not None:
        errors.insert(0, "You have already voted in this process")

    eligible_set = set(eligible)
    proposal_validation = [
        {
            "proposalId": pid,
            "isValid": pid in eligible_set,
            "errors": [] if pid in eligible_set else ["Proposal is not eligible for voting in this process"],
        }
        for pid in selected
    ]

    return {
        "isValid": not errors,
        "errors": errors,
        "maxVotesAllowed": voting_config["maxVotesPerMember"],
        "schemaConstraints": {
            "schemaType": schema_type,
            "allowDecisions": voting_config["allowDecisions"],
        },
        "proposalValidation": proposal_validation,
    }


def verify_vote_signature(submission: VoteSubmission) -> dict:
    """Compare the stored signature payload with the stored selection rows.

    Detects selection rows altered after submission. Returns
    ``{isValid, signedAt, mismatches[]}``.
    """
    try:
        payload = json.loads(base64.b64decode(submission.signature or "", validate=True))
    except (binascii.Error, ValueError):
        return {"isValid": False, "signedAt": None, "mismatches": ["signature"]}
    if not isinstance(payload, dict):
        return {"isValid": False, "signedAt": None, "mismatches": ["signature"]}

    mismatches = []
    if sorted(payload.get("proposalIds") or []) != sorted(submission.selected_proposal_ids):
        mismatches.append("proposalIds")
    if payload.get("userId") != submission.submitted_by_profile_id:
        mismatches.append("userId")

    return {
        "isValid": not mismatches,
        "signedAt": payload.get("timestamp"),
        "mismatches": mismatches,
    }
