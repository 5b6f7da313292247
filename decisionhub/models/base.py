"""
UUIDModel — abstract base for decision-engine tables.

Every decision table is keyed by a UUID string (profiles are shared with
the wider platform, which hands out UUIDs) and carries created/updated
timestamps. Inherit from UUIDModel instead of db.Model directly.
"""

import uuid
from datetime import datetime, timezone

from decisionhub.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class UUIDModel(db.Model):
    """Abstract base: UUID primary key plus created_at / updated_at."""
    __abstract__ = True

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    @staticmethod
    def _iso(value):
        return value.isoformat() if value else None
