"""
Tests for process state resolution.

Covers:
  - current_state: lookup by id, missing / unknown id
  - next_steps: later states with phase.startDate only, array order kept
  - next_steps: unknown current state → []
  - current_phase_config / current_state_id_for on an instance
  - resolve_max_votes precedence, numeric strings and configured default
"""

from types import SimpleNamespace

import pytest

from decisionhub.services.process_state import (
    DEFAULT_MAX_VOTES_PER_MEMBER,
    current_phase_config,
    current_state,
    current_state_id_for,
    next_steps,
    resolve_max_votes,
)

STATES = [
    {"id": "submission", "name": "Submission"},
    {"id": "review", "name": "Review"},
    {"id": "voting", "name": "Voting", "phase": {"startDate": "2025-06-01"},
     "config": {"allowDecisions": True}},
    {"id": "results", "name": "Results"},
]


class TestCurrentState:
    def test_found(self):
        assert current_state(STATES, "review")["name"] == "Review"

    @pytest.mark.parametrize("state_id", [None, "", "archived"])
    def test_not_found(self, state_id):
        assert current_state(STATES, state_id) is None


class TestNextSteps:
    def test_only_scheduled_later_states(self):
        assert next_steps(STATES, {"currentStateId": "review"}) == [STATES[2]]

    def test_order_is_array_order(self):
        states = [
            {"id": "a"},
            {"id": "b", "phase": {"startDate": "2025-09-01"}},
            {"id": "c", "phase": {"startDate": "2025-01-01"}},
        ]
        assert [s["id"] for s in next_steps(states, {"currentStateId": "a"})] == ["b", "c"]

    def test_last_state_has_no_next_steps(self):
        assert next_steps(STATES, {"currentStateId": "results"}) == []

    @pytest.mark.parametrize("instance_data", [None, {}, {"currentStateId": "archived"}])
    def test_unknown_current_state(self, instance_data):
        assert next_steps(STATES, instance_data) == []


class TestInstanceHelpers:
    def test_instance_data_wins_over_column(self):
        instance = SimpleNamespace(instance_data={"currentStateId": "voting"}, current_state_id="review")
        assert current_state_id_for(instance) == "voting"

    def test_column_used_when_data_missing(self):
        instance = SimpleNamespace(instance_data=None, current_state_id="review")
        assert current_state_id_for(instance) == "review"

    def test_phase_config(self):
        instance = SimpleNamespace(instance_data={"currentStateId": "voting"}, current_state_id=None)
        assert current_phase_config(instance, STATES) == {"allowProposals": False, "allowDecisions": True}

    def test_phase_config_unknown_state(self):
        instance = SimpleNamespace(instance_data={"currentStateId": "archived"}, current_state_id=None)
        assert current_phase_config(instance, STATES) is None


class TestResolveMaxVotes:
    def test_field_values_take_precedence(self):
        data = {"fieldValues": {"maxVotesPerMember": 2}, "maxVotesPerMember": 9}
        assert resolve_max_votes(data) == 2

    def test_top_level_value(self):
        assert resolve_max_votes({"maxVotesPerMember": 4}) == 4

    def test_integral_float_accepted(self):
        assert resolve_max_votes({"fieldValues": {"maxVotesPerMember": 5.0}}) == 5

    def test_numeric_string_accepted(self):
        assert resolve_max_votes({"fieldValues": {"maxVotesPerMember": "5"}}) == 5
        assert resolve_max_votes({"maxVotesPerMember": " 4 "}) == 4

    @pytest.mark.parametrize(
        "data",
        [None, {}, {"maxVotesPerMember": True}, {"maxVotesPerMember": "four"}, {"maxVotesPerMember": "2.5"}],
    )
    def test_default(self, data):
        assert resolve_max_votes(data) == DEFAULT_MAX_VOTES_PER_MEMBER == 3

    def test_configured_default(self, app):
        app.config["DEFAULT_MAX_VOTES_PER_MEMBER"] = 7
        try:
            assert resolve_max_votes({}) == 7
        finally:
            app.config["DEFAULT_MAX_VOTES_PER_MEMBER"] = DEFAULT_MAX_VOTES_PER_MEMBER
