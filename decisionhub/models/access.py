"""
Access Models — profiles, access zones, roles and per-zone permission bitfields.

Profiles are the identity unit of the platform: an individual member has an
"individual" profile, an organization or a running decision instance has its
own profile. Members join a profile through ProfileUser and receive roles via
ProfileUserRole.

A role grants capabilities per access zone ("decisions", "profile") as a
single packed integer; decisionhub.services.permissions documents the bit layout.
"""

from decisionhub.models import db
from decisionhub.models.base import UUIDModel

VALID_PROFILE_TYPES = frozenset({"individual", "org", "decision"})

ZONE_DECISIONS = "decisions"
ZONE_PROFILE = "profile"
VALID_ZONES = frozenset({ZONE_DECISIONS, ZONE_PROFILE})


# ═══════════════════════════════════════════════════════════════
# 1. PROFILES
# ═══════════════════════════════════════════════════════════════
class Profile(UUIDModel):
    __tablename__ = "profiles"

    profile_type = db.Column(db.String(20), nullable=False, default="individual")
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.profile_type,
            "name": self.name,
            "slug": self.slug,
        }

    def __repr__(self) -> str:
        return f"<Profile {self.id} {self.profile_type}:{self.name}>"


# ═══════════════════════════════════════════════════════════════
# 2. ACCESS ZONES
# ═══════════════════════════════════════════════════════════════
class AccessZone(UUIDModel):
    __tablename__ = "access_zones"

    name = db.Column(db.String(50), unique=True, nullable=False)  # e.g. "decisions"
    description = db.Column(db.Text)


# ═══════════════════════════════════════════════════════════════
# 3. ROLES
# ═══════════════════════════════════════════════════════════════
class AccessRole(UUIDModel):
    __tablename__ = "access_roles"

    # NULL = global role shared by every profile; global roles are read-only
    profile_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)

    __table_args__ = (
        db.UniqueConstraint("profile_id", "name", name="uq_access_role_profile_name"),
    )

    zone_permissions = db.relationship(
        "AccessRolePermission", back_populates="role", lazy="select", cascade="all, delete-orphan"
    )

    @property
    def is_global(self) -> bool:
        return self.profile_id is None

    def permission_for_zone(self, zone_name: str) -> int:
        for zp in self.zone_permissions:
            if zp.zone is not None and zp.zone.name == zone_name:
                return zp.permission
        return 0

    def to_dict(self):
        return {
            "id": self.id,
            "profileId": self.profile_id,
            "name": self.name,
            "description": self.description,
            "isGlobal": self.is_global,
        }


# ═══════════════════════════════════════════════════════════════
# 4. ROLE ↔ ZONE PERMISSION (packed bitfield)
# ═══════════════════════════════════════════════════════════════
class AccessRolePermission(UUIDModel):
    __tablename__ = "access_role_permissions"

    role_id = db.Column(
        db.String(36), db.ForeignKey("access_roles.id", ondelete="CASCADE"), nullable=False
    )
    zone_id = db.Column(
        db.String(36), db.ForeignKey("access_zones.id", ondelete="CASCADE"), nullable=False
    )
    permission = db.Column(
        db.Integer,
        nullable=False,
        default=0,
        comment="Bits 0-4 ACRUD+admin, bits 5-8 decision capabilities",
    )

    __table_args__ = (
        db.UniqueConstraint("role_id", "zone_id", name="uq_access_role_zone"),
    )

    role = db.relationship("AccessRole", back_populates="zone_permissions")
    zone = db.relationship("AccessZone")


# ═══════════════════════════════════════════════════════════════
# 5. PROFILE MEMBERSHIP
# ═══════════════════════════════════════════════════════════════
class ProfileUser(UUIDModel):
    __tablename__ = "profile_users"

    profile_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    member_profile_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )

    __table_args__ = (
        db.UniqueConstraint("profile_id", "member_profile_id", name="uq_profile_user"),
    )

    roles = db.relationship(
        "AccessRole",
        secondary="profile_user_roles",
        lazy="select",
    )


class ProfileUserRole(db.Model):
    __tablename__ = "profile_user_roles"

    profile_user_id = db.Column(
        db.String(36), db.ForeignKey("profile_users.id", ondelete="CASCADE"), primary_key=True
    )
    role_id = db.Column(
        db.String(36), db.ForeignKey("access_roles.id", ondelete="CASCADE"), primary_key=True
    )
