"""
Tests for vote tallying and result selection.

Covers:
  - aggregate_vote_data: counts per proposal, zero for unpicked, other instances ignored
  - default selection: submitted / approved proposals only
  - top-n selection: most votes first, selectionCount honoured
  - SelectionRegistry: built-ins, last registration wins, custom function used
  - get_instance_results: read-only tally, unknown selection function, access
  - process_results: stored once, organizer only
"""

import pytest
from conftest import add_member, make_profile, make_proposal

from decisionhub.core.exceptions import NotFoundError, UnauthorizedError, ValidationError
from decisionhub.models import db
from decisionhub.services import instance_service, results_service, voting_service
from decisionhub.services.results_service import (
    SelectionRegistry,
    aggregate_vote_data,
    build_default_selection_registry,
)


def _members(instance, count: int) -> list:
    members = []
    for i in range(count):
        member = make_profile(f"Voter {i}")
        add_member(instance, member)
        members.append(member)
    return members


def _use_selection(process, **schema) -> None:
    process.process_schema = {**process.process_schema, **schema}
    db.session.commit()


@pytest.fixture()
def ballots(instance, proposals):
    """Three ballots: Proposal 1 ×3, Proposal 2 ×2, Proposal 3 ×1, the rest unpicked."""
    first, second, third = _members(instance, 3)
    voting_service.submit_vote(instance.id, [p.id for p in proposals[:3]], first.id)
    voting_service.submit_vote(instance.id, [p.id for p in proposals[:2]], second.id)
    voting_service.submit_vote(instance.id, [proposals[0].id], third.id)
    return proposals


class TestAggregateVoteData:
    def test_counts_per_proposal(self, instance, ballots):
        data = aggregate_vote_data(instance.id)

        assert {pid: row["voteCount"] for pid, row in data.items()} == {
            ballots[0].id: 3,
            ballots[1].id: 2,
            ballots[2].id: 1,
            ballots[3].id: 0,
            ballots[4].id: 0,
        }
        assert data[ballots[0].id]["title"] == "Proposal 1"
        assert data[ballots[0].id]["status"] == "submitted"

    def test_other_instances_not_counted(self, process, owner, instance, ballots):
        other = instance_service.create_instance(process.id, owner.id, "Other", {"currentStateId": "voting"})
        elsewhere = make_proposal(other, owner, title="Elsewhere")
        (member,) = _members(other, 1)
        voting_service.submit_vote(other.id, [elsewhere.id], member.id)

        assert list(aggregate_vote_data(other.id)) == [elsewhere.id]
        assert aggregate_vote_data(other.id)[elsewhere.id]["voteCount"] == 1
        assert aggregate_vote_data(instance.id)[ballots[0].id]["voteCount"] == 3

    def test_instance_without_proposals(self, instance):
        assert aggregate_vote_data(instance.id) == {}


class TestSelectionFunctions:
    def test_default_keeps_submitted_and_approved(self, instance, owner):
        submitted = make_proposal(instance, owner, title="Submitted")
        approved = make_proposal(instance, owner, title="Approved", status="approved")
        make_proposal(instance, owner, title="Draft", status="draft")
        make_proposal(instance, owner, title="In review", status="under_review")

        result = results_service.get_instance_results(instance.id, owner.id)

        assert result["selectionFunctionId"] == "default"
        assert set(result["selectedProposalIds"]) == {submitted.id, approved.id}

    def test_top_n_by_votes(self, process, instance, owner, ballots):
        _use_selection(process, selectionFunctionId="top-n", selectionCount=2)

        result = results_service.get_instance_results(instance.id, owner.id)

        assert result["selectionFunctionId"] == "top-n"
        assert result["selectedProposalIds"] == [ballots[0].id, ballots[1].id]

    def test_top_n_default_count(self, process, instance, owner, ballots):
        _use_selection(process, selectionFunctionId="top-n")

        selected = results_service.get_instance_results(instance.id, owner.id)["selectedProposalIds"]

        assert len(selected) == 5
        assert selected[:3] == [ballots[0].id, ballots[1].id, ballots[2].id]

    def test_unknown_selection_function(self, process, instance, owner):
        _use_selection(process, selectionFunctionId="lottery")

        with pytest.raises(ValidationError, match="lottery") as exc_info:
            results_service.get_instance_results(instance.id, owner.id)
        assert "selectionFunctionId" in exc_info.value.details


class TestSelectionRegistry:
    def test_built_in_functions(self):
        assert build_default_selection_registry().get_all_ids() == ["default", "top-n"]

    def test_last_registration_wins(self):
        registry = SelectionRegistry()

        def first(tally, instance):
            return []

        def second(tally, instance):
            return ["x"]

        registry.register("pick", first)
        registry.register("pick", second)

        assert registry.get("pick") is second
        assert registry.get("missing") is None
        assert registry.get_all_ids() == ["pick"]

    def test_custom_function_used(self, app, monkeypatch, process, instance, owner, ballots):
        registry = build_default_selection_registry()
        registry.register("single-winner", lambda tally, inst: [max(tally, key=lambda r: r["voteCount"])["proposalId"]])
        monkeypatch.setitem(app.extensions, "selection_registry", registry)
        _use_selection(process, selectionFunctionId="single-winner")

        result = results_service.get_instance_results(instance.id, owner.id)

        assert result["selectedProposalIds"] == [ballots[0].id]


class TestGetInstanceResults:
    def test_tally_is_read_only(self, instance, owner, ballots):
        result = results_service.get_instance_results(instance.id, owner.id)

        assert result["processInstanceId"] == instance.id
        assert result["totalBallots"] == 3
        assert [row["voteCount"] for row in result["tally"]] == [3, 2, 1, 0, 0]
        assert result["tally"][0]["proposalId"] == ballots[0].id
        assert result["storedResults"] is None
        assert "results" not in instance.instance_data

    def test_member_can_read(self, instance, voter, ballots):
        add_member(instance, voter)
        assert results_service.get_instance_results(instance.id, voter.id)["totalBallots"] == 3

    def test_non_member_rejected(self, instance, voter):
        with pytest.raises(UnauthorizedError):
            results_service.get_instance_results(instance.id, voter.id)

    def test_unknown_instance(self, owner):
        with pytest.raises(NotFoundError):
            results_service.get_instance_results("missing", owner.id)


class TestProcessResults:
    def test_results_stored_once(self, process, instance, owner, ballots):
        _use_selection(process, selectionFunctionId="top-n", selectionCount=1)

        first = results_service.process_results(instance.id, owner.id)

        assert first["selectedProposalIds"] == [ballots[0].id]
        assert first["selectionFunctionId"] == "top-n"
        assert first["voteCounts"][ballots[0].id] == 3
        assert first["executedAt"]
        assert instance.instance_data["results"] == first

        # a late ballot does not change results that were already processed
        (late,) = _members(instance, 1)
        voting_service.submit_vote(instance.id, [ballots[4].id], late.id)

        assert results_service.process_results(instance.id, owner.id) == first
        assert results_service.get_instance_results(instance.id, owner.id)["storedResults"] == first

    def test_keeps_other_instance_data(self, instance, owner, ballots):
        results_service.process_results(instance.id, owner.id)

        assert instance.instance_data["currentStateId"] == "voting"
        assert instance.instance_data["fieldValues"] == {"maxVotesPerMember": 3}

    def test_member_cannot_process(self, instance, voter, ballots):
        add_member(instance, voter)

        with pytest.raises(UnauthorizedError):
            results_service.process_results(instance.id, voter.id)

        assert "results" not in instance.instance_data
