"""
Results Service — vote tally and proposal selection.

``aggregate_vote_data`` counts VoteProposalSelection rows per proposal of an
instance. A selection function turns that tally into the proposals that
succeed; the process schema names one with ``selectionFunctionId``
("default" when absent).

Built-in selection functions:
    default  every submitted or approved proposal, in submission order
    top-n    the ``selectionCount`` proposals (default 10) with the most
             votes; ties go to the earlier proposal

``process_results`` runs the selection once and stores it under
``instanceData.results``. Later calls return the stored results unchanged.

Usage:
    registry = current_app.extensions["selection_registry"]
    registry.register("majority", my_selector)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from decisionhub.core.exceptions import CommonError, NotFoundError, ValidationError
from decisionhub.models import db
from decisionhub.models.access import ZONE_DECISIONS, ZONE_PROFILE
from decisionhub.models.decision import (
    ProcessInstance,
    Proposal,
    VoteProposalSelection,
    VoteSubmission,
)
from decisionhub.services import permissions as P
from decisionhub.services.access_service import assert_access, get_profile_user_roles

logger = logging.getLogger(__name__)

DEFAULT_SELECTION_FUNCTION = "default"
DEFAULT_SELECTION_COUNT = 10

READ_REQUIRED_ACCESS = [{ZONE_DECISIONS: P.READ}, {ZONE_PROFILE: P.READ}]
PROCESS_REQUIRED_ACCESS = [{ZONE_DECISIONS: P.ADMIN}, {ZONE_PROFILE: P.ADMIN}]

# (tally rows in submission order, instance) -> selected proposal ids
SelectionFunction = Callable[[list[dict], ProcessInstance], list[str]]


# ═══════════════════════════════════════════════════════════════
# Selection functions
# ═══════════════════════════════════════════════════════════════


def select_submitted(tally: list[dict], instance: ProcessInstance) -> list[str]:
    return [row["proposalId"] for row in tally if row["status"] in ("submitted", "approved")]


def select_top_n(tally: list[dict], instance: ProcessInstance) -> list[str]:
    schema = instance.process.process_schema or {}
    count = schema.get("selectionCount", DEFAULT_SELECTION_COUNT)
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        count = DEFAULT_SELECTION_COUNT
    # sorted() is stable, so equal vote counts keep submission order
    ranked = sorted(tally, key=lambda row: -row["voteCount"])
    return [row["proposalId"] for row in ranked[:count]]


class SelectionRegistry:
    """Named selection functions. Last registration wins."""

    def __init__(self):
        self._functions: dict[str, SelectionFunction] = {}

    def register(self, selection_id: str, fn: SelectionFunction) -> None:
        if selection_id in self._functions:
            logger.info("Selection function replaced: %s", selection_id)
        self._functions[selection_id] = fn

    def get(self, selection_id: str) -> SelectionFunction | None:
        return self._functions.get(selection_id)

    def get_all_ids(self) -> list[str]:
        return list(self._functions)


def build_default_selection_registry() -> SelectionRegistry:
    registry = SelectionRegistry()
    registry.register(DEFAULT_SELECTION_FUNCTION, select_submitted)
    registry.register("top-n", select_top_n)
    return registry


# ═══════════════════════════════════════════════════════════════
# Tally
# ═══════════════════════════════════════════════════════════════


def aggregate_vote_data(process_instance_id: str) -> dict[str, dict]:
    """Per-proposal vote counts for one instance, in submission order.

    Every proposal of the instance appears, with ``voteCount`` 0 when nobody
    picked it.
    """
    counts = dict(
        db.session.execute(
            select(VoteProposalSelection.proposal_id, func.count())
            .join(VoteSubmission, VoteSubmission.id == VoteProposalSelection.vote_submission_id)
            .where(VoteSubmission.process_instance_id == process_instance_id)
            .group_by(VoteProposalSelection.proposal_id)
        ).all()
    )
    proposals = db.session.execute(
        select(Proposal)
        .where(Proposal.process_instance_id == process_instance_id)
        .order_by(Proposal.created_at, Proposal.id)
    ).scalars()

    return {
        p.id: {
            "proposalId": p.id,
            "title": p.title,
            "status": p.status,
            "voteCount": counts.get(p.id, 0),
        }
        for p in proposals
    }


def _count_ballots(process_instance_id: str) -> int:
    return db.session.execute(
        select(func.count(VoteSubmission.id)).where(VoteSubmission.process_instance_id == process_instance_id)
    ).scalar_one()


# ═══════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════


def _get_instance(process_instance_id: str) -> ProcessInstance:
    instance = db.session.get(ProcessInstance, process_instance_id)
    if instance is None or instance.process is None:
        raise NotFoundError(resource="ProcessInstance", resource_id=process_instance_id)
    return instance


def _selection_function(instance: ProcessInstance) -> tuple[str, SelectionFunction]:
    selection_id = (instance.process.process_schema or {}).get("selectionFunctionId") or DEFAULT_SELECTION_FUNCTION
    registry = current_app.extensions["selection_registry"]
    fn = registry.get(selection_id)
    if fn is None:
        raise ValidationError(
            f"Selection function not found: {selection_id}",
            details={"selectionFunctionId": [f"Available: {', '.join(registry.get_all_ids())}"]},
        )
    return selection_id, fn


def get_instance_results(process_instance_id: str, profile_id: str) -> dict:
    """Live tally plus the current selection outcome. Read-only."""
    instance = _get_instance(process_instance_id)
    assert_access(READ_REQUIRED_ACCESS, get_profile_user_roles(instance.profile_id, profile_id))

    selection_id, fn = _selection_function(instance)
    tally = list(aggregate_vote_data(instance.id).values())

    return {
        "processInstanceId": instance.id,
        "selectionFunctionId": selection_id,
        "selectedProposalIds": fn(tally, instance),
        "totalBallots": _count_ballots(instance.id),
        "tally": sorted(tally, key=lambda row: -row["voteCount"]),
        "storedResults": (instance.instance_data or {}).get("results"),
    }


def process_results(process_instance_id: str, profile_id: str) -> dict:
    """Run the selection function once and store it in ``instanceData.results``.

    Raises:
        NotFoundError: Instance or its process is missing.
        UnauthorizedError: Caller is not an organizer of the instance.
        ValidationError: The process names an unregistered selection function.
        CommonError: The results could not be stored.
    """
    instance = _get_instance(process_instance_id)
    assert_access(PROCESS_REQUIRED_ACCESS, get_profile_user_roles(instance.profile_id, profile_id))

    stored = (instance.instance_data or {}).get("results")
    if stored:
        logger.info("Results already processed", extra={"process_instance_id": instance.id})
        return stored

    selection_id, fn = _selection_function(instance)
    tally = list(aggregate_vote_data(instance.id).values())
    results = {
        "selectedProposalIds": fn(tally, instance),
        "executedAt": datetime.now(timezone.utc).isoformat(),
        "selectionFunctionId": selection_id,
        "voteCounts": {row["proposalId"]: row["voteCount"] for row in tally},
    }

    try:
        data = dict(instance.instance_data or {})
        data["results"] = results
        instance.instance_data = data
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Storing results failed", extra={"process_instance_id": instance.id})
        raise CommonError("Failed to process results")

    logger.info(
        "Results processed",
        extra={
            "process_instance_id": instance.id,
            "profile_id": profile_id,
            "selection_count": len(results["selectedProposalIds"]),
        },
    )
    return results
