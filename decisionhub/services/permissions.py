"""
Decision Role Permissions — packed bitfield codec.

One integer per (role, access zone) stores every capability a role grants:

    bit  value  capability
    0      1    delete
    1      2    update
    2      4    read
    3      8    create
    4     16    admin
    5     32    inviteMembers
    6     64    review
    7    128    submitProposals
    8    256    vote

The layout is shared with other services reading the same table and must
never be renumbered without a data migration.

Usage:
    from decisionhub.services.permissions import encode, decode, update_decision_bits

    bits = encode({"read": True, "vote": True})        # 260
    caps = decode(bits)                                 # {"delete": False, ..., "vote": True}
    new_bits = update_decision_bits(bits, {"review": True})
"""

DELETE = 1 << 0
UPDATE = 1 << 1
READ = 1 << 2
CREATE = 1 << 3
ADMIN = 1 << 4
INVITE_MEMBERS = 1 << 5
REVIEW = 1 << 6
SUBMIT_PROPOSALS = 1 << 7
VOTE = 1 << 8

# (capability key, bit) in bit order
PERMISSION_BITS: tuple[tuple[str, int], ...] = (
    ("delete", DELETE),
    ("update", UPDATE),
    ("read", READ),
    ("create", CREATE),
    ("admin", ADMIN),
    ("inviteMembers", INVITE_MEMBERS),
    ("review", REVIEW),
    ("submitProposals", SUBMIT_PROPOSALS),
    ("vote", VOTE),
)

ACRUD_KEYS = ("delete", "update", "read", "create", "admin")
DECISION_KEYS = ("inviteMembers", "review", "submitProposals", "vote")

CRUD_MASK = DELETE | UPDATE | READ | CREATE
ACRUD_MASK = CRUD_MASK | ADMIN
DECISION_MASK = INVITE_MEMBERS | REVIEW | SUBMIT_PROPOSALS | VOTE
ALL_BITS = ACRUD_MASK | DECISION_MASK


def _check_range(value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Permission bitfield must be an int, got {type(value).__name__}")
    if value < 0 or value & ~ALL_BITS:
        raise ValueError(f"Permission bitfield {value} is outside the 9-bit layout")


def encode(caps: dict) -> int:
    """OR-fold every truthy capability into one integer. Unknown keys are ignored."""
    value = 0
    for key, bit in PERMISSION_BITS:
        if caps.get(key):
            value |= bit
    return value


def decode(value: int) -> dict:
    """Expand a bitfield into the full 9-key capability dict."""
    _check_range(value)
    return {key: bool(value & bit) for key, bit in PERMISSION_BITS}


def to_decision_bitfield(caps: dict) -> int:
    """Encode only the decision capabilities (bits 5-8)."""
    return encode({k: caps.get(k, False) for k in DECISION_KEYS})


def from_decision_bitfield(value: int) -> dict:
    """Decode only the decision capabilities, ignoring ACRUD bits."""
    decoded = decode(value)
    return {k: decoded[k] for k in DECISION_KEYS}


def from_acrud_bitfield(value: int) -> dict:
    decoded = decode(value)
    return {k: decoded[k] for k in ACRUD_KEYS}


def update_decision_bits(existing: int, caps: dict) -> int:
    """Replace admin + decision bits, keeping CRUD bits 0-3 untouched.

    ``caps`` may carry any subset of the 9 keys; CRUD keys in it are ignored.
    """
    _check_range(existing)
    new_bits = encode({k: caps.get(k, False) for k in ("admin",) + DECISION_KEYS})
    return (existing & CRUD_MASK) | new_bits


def update_acrud_bits(existing: int, caps: dict) -> int:
    """Replace ACRUD + admin bits, keeping decision bits 5-8 untouched."""
    _check_range(existing)
    new_bits = encode({k: caps.get(k, False) for k in ACRUD_KEYS})
    return (existing & DECISION_MASK) | new_bits


def decision_role_bits(caps: dict) -> int:
    """Full bitfield for a decision role; READ is always on.

    A decision role without read access cannot see the process it grants
    capabilities on.
    """
    return encode(caps) | READ


def has_bits(granted: int, required: int) -> bool:
    """True when every bit of ``required`` is set in ``granted``."""
    return (granted & required) == required
