"""
Shared pytest fixtures for the decision engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - owner / voter: individual profiles
    - process / instance: a three-phase process launched in its voting phase

Factory helpers (``make_profile``, ``make_proposal``, ``add_member`` ...)
commit their rows: services roll the session back on storage failures, and
uncommitted fixture rows would disappear with it.
"""

import pytest

from decisionhub import create_app
from decisionhub.models import db as _db
from decisionhub.models.access import Profile, ProfileUser
from decisionhub.models.decision import DecisionProcess, Proposal
from decisionhub.services import instance_service
from decisionhub.services.jwt_service import generate_access_token


PROCESS_STATES = [
    {
        "id": "submission",
        "name": "Submission",
        "config": {"allowProposals": True, "allowDecisions": False},
        "phase": {"startDate": "2025-05-01", "endDate": "2025-05-31"},
    },
    {
        "id": "voting",
        "name": "Voting",
        "config": {"allowProposals": False, "allowDecisions": True},
        "phase": {"startDate": "2025-06-01", "endDate": "2025-06-15"},
    },
    {
        "id": "results",
        "name": "Results",
        "config": {"allowProposals": False, "allowDecisions": False},
    },
]

PROCESS_TRANSITIONS = [
    {"from": "submission", "to": "voting"},
    {"from": ["submission", "voting"], "to": "results"},
]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factory helpers ──────────────────────────────────────────────────────


def make_profile(name: str = "Member", profile_type: str = "individual") -> Profile:
    profile = Profile(name=name, profile_type=profile_type)
    _db.session.add(profile)
    _db.session.commit()
    return profile


def make_process(states=None, transitions=None, name: str = "Participatory Budget") -> DecisionProcess:
    schema = {"states": PROCESS_STATES if states is None else states}
    if transitions is not None:
        schema["transitions"] = transitions
    process = DecisionProcess(name=name, process_schema=schema)
    _db.session.add(process)
    _db.session.commit()
    return process


def make_proposal(instance, author, title: str = "Proposal", status: str = "submitted", **data) -> Proposal:
    proposal = Proposal(
        process_instance_id=instance.id,
        submitted_by_profile_id=author.id,
        status=status,
        proposal_data={"title": title, "description": f"{title} description", **data},
    )
    _db.session.add(proposal)
    _db.session.commit()
    return proposal


def find_role(instance, name: str):
    from sqlalchemy import select

    from decisionhub.models.access import AccessRole

    return _db.session.execute(
        select(AccessRole).where(AccessRole.profile_id == instance.profile_id, AccessRole.name == name)
    ).scalar_one()


def add_member(instance, member: Profile, role_name: str = instance_service.MEMBER_ROLE_NAME) -> ProfileUser:
    """Join ``member`` to the instance's decision profile with one of its seeded roles."""
    membership = ProfileUser(profile_id=instance.profile_id, member_profile_id=member.id)
    membership.roles.append(find_role(instance, role_name))
    _db.session.add(membership)
    _db.session.commit()
    return membership


def auth_headers(profile_id: str) -> dict:
    return {"Authorization": f"Bearer {generate_access_token(profile_id)}"}


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def owner() -> Profile:
    return make_profile("Organizer")


@pytest.fixture()
def voter() -> Profile:
    return make_profile("Voter")


@pytest.fixture()
def process() -> DecisionProcess:
    return make_process(transitions=PROCESS_TRANSITIONS)


@pytest.fixture()
def instance(process, owner):
    """Instance sitting in the voting phase, limited to 3 votes per member."""
    return instance_service.create_instance(
        process.id,
        owner.id,
        "Budget 2025",
        instance_data={"currentStateId": "voting", "fieldValues": {"maxVotesPerMember": 3}},
    )


@pytest.fixture()
def proposals(instance, owner) -> list[Proposal]:
    return [make_proposal(instance, owner, title=f"Proposal {i}", amount=i * 1000) for i in range(1, 6)]
