"""
Decision Models — processes, instances, proposals and ballots.

DecisionProcess.process_schema holds the phase definitions:

    {
        "states": [
            {"id": "submission", "name": "Submission",
             "config": {"allowProposals": true, "allowDecisions": false},
             "phase": {"startDate": "2025-05-01", "endDate": "2025-05-31"}},
            ...
        ],
        "transitions": [{"from": "submission", "to": "review"}, ...],
        "proposalTemplate": {...JSON Schema...},
        "rubricTemplate": {...JSON Schema...}
    }

Array order of ``states`` is the canonical phase order.

Business rules:
- One VoteSubmission per (process_instance_id, submitted_by_profile_id),
  enforced by uq_vote_submission_instance_profile. The service pre-check only
  produces a friendlier error; the constraint is the real guarantee.
- VoteProposalSelection rows are only written in the same transaction as
  their parent VoteSubmission.
- Ballots are immutable: there is no update or retraction path.
"""

from datetime import datetime, timezone

from decisionhub.models import db
from decisionhub.models.base import UUIDModel

# ── Constants ─────────────────────────────────────────────────────────────────

INSTANCE_STATUSES = frozenset({"draft", "published", "completed", "cancelled"})

PROPOSAL_STATUSES = frozenset({"draft", "submitted", "under_review", "approved", "rejected"})

# Proposals that have left draft and were not rejected can receive votes
VOTABLE_PROPOSAL_STATUSES = frozenset({"submitted", "under_review", "approved"})


class DecisionProcess(UUIDModel):
    """Reusable decision-process definition (schema of phases/states)."""

    __tablename__ = "decision_processes"

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    process_schema = db.Column(db.JSON, nullable=False, default=dict)
    created_by_profile_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )

    instances = db.relationship("ProcessInstance", back_populates="process", lazy="dynamic")

    @property
    def states(self) -> list[dict]:
        return list((self.process_schema or {}).get("states") or [])

    @property
    def transitions(self) -> list[dict]:
        return list((self.process_schema or {}).get("transitions") or [])

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "processSchema": self.process_schema or {},
            "createdByProfileId": self.created_by_profile_id,
            "createdAt": self._iso(self.created_at),
        }


class ProcessInstance(UUIDModel):
    """One running execution of a DecisionProcess for an organization."""

    __tablename__ = "process_instances"

    process_id = db.Column(
        db.String(36), db.ForeignKey("decision_processes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False)
    owner_profile_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # The instance's own identity profile; members and roles hang off it
    profile_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True
    )
    instance_data = db.Column(db.JSON, nullable=False, default=dict)
    current_state_id = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="draft")

    process = db.relationship("DecisionProcess", back_populates="instances")
    proposals = db.relationship(
        "Proposal", back_populates="process_instance", lazy="dynamic", cascade="all, delete-orphan"
    )
    transition_history = db.relationship(
        "StateTransitionHistory", back_populates="process_instance", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "processId": self.process_id,
            "name": self.name,
            "ownerProfileId": self.owner_profile_id,
            "profileId": self.profile_id,
            "instanceData": self.instance_data or {},
            "currentStateId": self.current_state_id,
            "status": self.status,
            "createdAt": self._iso(self.created_at),
            "updatedAt": self._iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<ProcessInstance {self.id} state={self.current_state_id} {self.status}>"


class StateTransitionHistory(UUIDModel):
    """Append-only log of executed state transitions."""

    __tablename__ = "state_transition_history"

    process_instance_id = db.Column(
        db.String(36), db.ForeignKey("process_instances.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_state_id = db.Column(db.String(100), nullable=True)
    to_state_id = db.Column(db.String(100), nullable=False)
    transition_data = db.Column(db.JSON, nullable=False, default=dict)
    triggered_by_profile_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    transitioned_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    process_instance = db.relationship("ProcessInstance", back_populates="transition_history")

    def to_dict(self):
        return {
            "id": self.id,
            "processInstanceId": self.process_instance_id,
            "fromStateId": self.from_state_id,
            "toStateId": self.to_state_id,
            "transitionData": self.transition_data or {},
            "triggeredByProfileId": self.triggered_by_profile_id,
            "transitionedAt": self._iso(self.transitioned_at),
        }


class Proposal(UUIDModel):
    __tablename__ = "proposals"

    process_instance_id = db.Column(
        db.String(36), db.ForeignKey("process_instances.id", ondelete="CASCADE"), nullable=False
    )
    submitted_by_profile_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = db.Column(db.String(20), nullable=False, default="draft")
    proposal_data = db.Column(db.JSON, nullable=False, default=dict)

    __table_args__ = (
        db.Index("ix_proposals_process_status", "process_instance_id", "status"),
    )

    process_instance = db.relationship("ProcessInstance", back_populates="proposals")

    @property
    def title(self) -> str:
        return (self.proposal_data or {}).get("title") or "Untitled"

    def to_dict(self):
        return {
            "id": self.id,
            "processInstanceId": self.process_instance_id,
            "submittedByProfileId": self.submitted_by_profile_id,
            "status": self.status,
            "proposalData": self.proposal_data or {},
            "createdAt": self._iso(self.created_at),
        }


class VoteSubmission(UUIDModel):
    """A member's final ballot for one process instance."""

    __tablename__ = "decision_vote_submissions"

    process_instance_id = db.Column(
        db.String(36), db.ForeignKey("process_instances.id", ondelete="CASCADE"), nullable=False
    )
    submitted_by_profile_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    # {schemaVersion, schemaType, submissionMetadata{timestamp,userAgent}, validationSignature}
    vote_data = db.Column(db.JSON, nullable=False)
    custom_data = db.Column(db.JSON, nullable=True)
    signature = db.Column(db.Text, nullable=True, comment="Mirror of vote_data.validationSignature")

    __table_args__ = (
        db.UniqueConstraint(
            "process_instance_id", "submitted_by_profile_id",
            name="uq_vote_submission_instance_profile",
        ),
    )

    selections = db.relationship(
        "VoteProposalSelection", back_populates="vote_submission", lazy="select",
        cascade="all, delete-orphan",
    )

    @property
    def selected_proposal_ids(self) -> list[str]:
        return [s.proposal_id for s in self.selections]

    def to_dict(self):
        return {
            "id": self.id,
            "processInstanceId": self.process_instance_id,
            "submittedByProfileId": self.submitted_by_profile_id,
            "voteData": self.vote_data or {},
            "customData": self.custom_data,
            "signature": self.signature,
            "createdAt": self._iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<VoteSubmission {self.id} instance={self.process_instance_id} by={self.submitted_by_profile_id}>"


class VoteProposalSelection(db.Model):
    __tablename__ = "decision_vote_proposals"

    vote_submission_id = db.Column(
        db.String(36), db.ForeignKey("decision_vote_submissions.id", ondelete="CASCADE"), primary_key=True
    )
    proposal_id = db.Column(
        db.String(36), db.ForeignKey("proposals.id", ondelete="CASCADE"), primary_key=True
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    vote_submission = db.relationship("VoteSubmission", back_populates="selections")
    proposal = db.relationship("Proposal")

    def to_dict(self):
        return {
            "voteSubmissionId": self.vote_submission_id,
            "proposalId": self.proposal_id,
        }
