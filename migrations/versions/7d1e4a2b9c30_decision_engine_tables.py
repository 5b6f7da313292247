"""decision_engine_tables

Creates the decision engine schema:
  - profiles, access_zones, access_roles, access_role_permissions
  - profile_users, profile_user_roles
  - decision_processes, process_instances, state_transition_history
  - proposals
  - decision_vote_submissions: unique (process_instance_id, submitted_by_profile_id)
  - decision_vote_proposals: one row per selected proposal

Revision ID: 7d1e4a2b9c30
Revises:
Create Date: 2026-10-19 09:12:41.318201
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7d1e4a2b9c30'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    # ── Access model ──────────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("profile_type", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_table(
        "access_zones",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "access_roles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("profile_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["profile_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("profile_id", "name", name="uq_access_role_profile_name"),
    )
    op.create_index("ix_access_roles_profile_id", "access_roles", ["profile_id"])
    op.create_table(
        "access_role_permissions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("role_id", sa.String(length=36), nullable=False),
        sa.Column("zone_id", sa.String(length=36), nullable=False),
        sa.Column(
            "permission", sa.Integer(), nullable=False,
            comment="Bits 0-4 ACRUD+admin, bits 5-8 decision capabilities",
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["role_id"], ["access_roles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["zone_id"], ["access_zones.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("role_id", "zone_id", name="uq_access_role_zone"),
    )
    op.create_table(
        "profile_users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("profile_id", sa.String(length=36), nullable=False),
        sa.Column("member_profile_id", sa.String(length=36), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["profile_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["member_profile_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("profile_id", "member_profile_id", name="uq_profile_user"),
    )
    op.create_index("ix_profile_users_profile_id", "profile_users", ["profile_id"])
    op.create_index("ix_profile_users_member_profile_id", "profile_users", ["member_profile_id"])
    op.create_table(
        "profile_user_roles",
        sa.Column("profile_user_id", sa.String(length=36), nullable=False),
        sa.Column("role_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["profile_user_id"], ["profile_users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["access_roles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("profile_user_id", "role_id"),
    )

    # ── Processes & instances ─────────────────────────────────────────────
    op.create_table(
        "decision_processes",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("process_schema", sa.JSON(), nullable=False),
        sa.Column("created_by_profile_id", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by_profile_id"], ["profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "process_instances",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("process_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("owner_profile_id", sa.String(length=36), nullable=False),
        sa.Column("profile_id", sa.String(length=36), nullable=True),
        sa.Column("instance_data", sa.JSON(), nullable=False),
        sa.Column("current_state_id", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["process_id"], ["decision_processes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["owner_profile_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["profile_id"], ["profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_process_instances_process_id", "process_instances", ["process_id"])
    op.create_index("ix_process_instances_owner_profile_id", "process_instances", ["owner_profile_id"])
    op.create_index("ix_process_instances_profile_id", "process_instances", ["profile_id"])
    op.create_table(
        "state_transition_history",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("process_instance_id", sa.String(length=36), nullable=False),
        sa.Column("from_state_id", sa.String(length=100), nullable=True),
        sa.Column("to_state_id", sa.String(length=100), nullable=False),
        sa.Column("transition_data", sa.JSON(), nullable=False),
        sa.Column("triggered_by_profile_id", sa.String(length=36), nullable=True),
        sa.Column("transitioned_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["process_instance_id"], ["process_instances.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["triggered_by_profile_id"], ["profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_state_transition_history_process_instance_id",
        "state_transition_history", ["process_instance_id"],
    )

    # ── Proposals & ballots ───────────────────────────────────────────────
    op.create_table(
        "proposals",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("process_instance_id", sa.String(length=36), nullable=False),
        sa.Column("submitted_by_profile_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("proposal_data", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["process_instance_id"], ["process_instances.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["submitted_by_profile_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_proposals_process_status", "proposals", ["process_instance_id", "status"])
    op.create_index("ix_proposals_submitted_by_profile_id", "proposals", ["submitted_by_profile_id"])
    op.create_table(
        "decision_vote_submissions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("process_instance_id", sa.String(length=36), nullable=False),
        sa.Column("submitted_by_profile_id", sa.String(length=36), nullable=False),
        sa.Column("vote_data", sa.JSON(), nullable=False),
        sa.Column("custom_data", sa.JSON(), nullable=True),
        sa.Column(
            "signature", sa.Text(), nullable=True,
            comment="Mirror of vote_data.validationSignature",
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["process_instance_id"], ["process_instances.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["submitted_by_profile_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "process_instance_id", "submitted_by_profile_id",
            name="uq_vote_submission_instance_profile",
        ),
    )
    op.create_table(
        "decision_vote_proposals",
        sa.Column("vote_submission_id", sa.String(length=36), nullable=False),
        sa.Column("proposal_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["vote_submission_id"], ["decision_vote_submissions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("vote_submission_id", "proposal_id"),
    )


def downgrade():
    op.drop_table("decision_vote_proposals")
    op.drop_table("decision_vote_submissions")
    op.drop_index("ix_proposals_submitted_by_profile_id", table_name="proposals")
    op.drop_index("ix_proposals_process_status", table_name="proposals")
    op.drop_table("proposals")
    op.drop_index("ix_state_transition_history_process_instance_id", table_name="state_transition_history")
    op.drop_table("state_transition_history")
    op.drop_index("ix_process_instances_profile_id", table_name="process_instances")
    op.drop_index("ix_process_instances_owner_profile_id", table_name="process_instances")
    op.drop_index("ix_process_instances_process_id", table_name="process_instances")
    op.drop_table("process_instances")
    op.drop_table("decision_processes")
    op.drop_table("profile_user_roles")
    op.drop_index("ix_profile_users_member_profile_id", table_name="profile_users")
    op.drop_index("ix_profile_users_profile_id", table_name="profile_users")
    op.drop_table("profile_users")
    op.drop_table("access_role_permissions")
    op.drop_index("ix_access_roles_profile_id", table_name="access_roles")
    op.drop_table("access_roles")
    op.drop_table("access_zones")
    op.drop_table("profiles")
