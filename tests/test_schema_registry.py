"""
Tests for the decision-process schema registry and voting dialect forms.

Covers:
  - detect_schema_type: explicit schemaType wins over handler probing
  - detect_schema_type: first matching handler, then "unknown"
  - process_schema: malformed input reported, never raised
  - simple / advanced extraction (additionalConfig, proposal field merge)
  - custom handler registration and last-wins replacement
  - validate_vote_selection: limit, foreign ids, duplicates, empty
  - create_schema_signature / validate_schema_compatibility
  - voting_schemas: defaults, dot-path bindings, form validation

Marker: unit (no database).
"""

import pytest

from decisionhub.services import voting_schemas
from decisionhub.services.schema_registry import (
    SchemaHandler,
    SchemaRegistry,
    build_default_registry,
    create_schema_signature,
    extract_proposal_config,
    extract_voting_config,
    register_custom_schema,
    validate_schema_compatibility,
    validate_schema_structure,
    validate_vote_selection,
)

pytestmark = pytest.mark.unit


def _schema(**overrides) -> dict:
    data = {
        "allowProposals": False,
        "allowDecisions": True,
        "instanceData": {"maxVotesPerMember": 3},
    }
    data.update(overrides)
    return data


@pytest.fixture()
def registry() -> SchemaRegistry:
    return build_default_registry()


class TestDetection:
    def test_builtin_types_in_registration_order(self, registry):
        assert registry.get_all_schema_types() == ["default", "simple", "advanced"]

    def test_explicit_schema_type_wins(self, registry):
        # Body would match the default handler; the discriminator still wins
        assert registry.detect_schema_type(_schema(schemaType="advanced")) == "advanced"

    def test_explicit_unregistered_type_is_returned_verbatim(self, registry):
        assert registry.detect_schema_type(_schema(schemaType="ranked-choice")) == "ranked-choice"

    def test_probing_picks_first_matching_handler(self, registry):
        assert registry.detect_schema_type(_schema()) == "default"

    def test_nothing_matches_returns_unknown(self, registry):
        assert registry.detect_schema_type({"allowProposals": "yes"}) == "unknown"
        assert registry.detect_schema_type(None) == "unknown"


class TestProcessSchema:
    def test_simple_schema(self, registry):
        result = registry.process_schema(_schema(schemaType="simple"))

        assert result["isValid"] is True
        assert result["schemaType"] == "simple"
        voting = result["votingConfig"]
        assert voting["allowDecisions"] is True
        assert voting["maxVotesPerMember"] == 3
        assert voting["schemaType"] == "simple"
        assert result["proposalConfig"]["requiredFields"] == ["title", "description"]
        assert result["validationResult"]["errors"] == []

    def test_unregistered_type_falls_back_to_default_handler(self, registry):
        result = registry.process_schema(_schema(schemaType="ranked-choice"))

        assert result["isValid"] is True
        assert result["schemaType"] == "ranked-choice"
        assert result["votingConfig"]["schemaType"] == "default"

    def test_malformed_input_is_reported_not_raised(self, registry):
        result = registry.process_schema({"allowProposals": "yes", "instanceData": {}})

        assert result["isValid"] is False
        assert "votingConfig" not in result
        validation = result["validationResult"]
        assert validation["schemaType"] == "invalid"
        assert validation["supportedProperties"] == []
        assert any("allowDecisions" in e for e in validation["errors"])

    def test_non_dict_input(self, registry):
        result = registry.process_schema(None)
        assert result["isValid"] is False
        assert result["schemaType"] == "unknown"

    def test_negative_max_votes_rejected(self, registry):
        result = registry.process_schema(_schema(instanceData={"maxVotesPerMember": -1}))
        assert result["isValid"] is False
        assert any(e.startswith("instanceData.maxVotesPerMember") for e in result["validationResult"]["errors"])

    def test_advanced_merges_extra_config(self, registry):
        data = _schema(
            schemaType="advanced",
            advancedVotingConfig={"weightedVoting": True, "quorumPercentage": 40},
            advancedProposalConfig={
                "requiredFields": ["title", "budget"],
                "fieldConstraints": {"budget": {"type": "number", "min": 100}},
            },
        )
        result = registry.process_schema(data)

        assert result["isValid"] is True
        additional = result["votingConfig"]["additionalConfig"]
        assert additional["weightedVoting"] is True
        assert additional["quorumPercentage"] == 40
        proposal = result["proposalConfig"]
        assert proposal["requiredFields"] == ["title", "description", "budget"]
        assert proposal["fieldConstraints"]["budget"] == {"type": "number", "min": 100}
        assert proposal["schemaType"] == "advanced"


class TestExtractors:
    def test_additional_config_omitted_when_empty(self):
        config = extract_voting_config(_schema())
        assert "additionalConfig" not in config
        assert config["schemaType"] == "unknown"

    def test_additional_config_collects_extra_keys(self):
        config = extract_voting_config(_schema(ballotStyle="cards"), "simple")
        assert config["additionalConfig"] == {"ballotStyle": "cards"}

    def test_proposal_config_merges_block(self):
        config = extract_proposal_config(
            _schema(proposalConfig={"optionalFields": ["location"], "requiredFields": ["impact"]})
        )
        assert config["requiredFields"] == ["title", "description", "impact"]
        assert config["optionalFields"][-1] == "location"
        assert config["fieldConstraints"]["title"]["maxLength"] == 200

    def test_structure_lists_supported_properties(self):
        result = validate_schema_structure(_schema(schemaType="simple", proposalConfig={}))
        assert result["isValid"] is True
        assert result["supportedProperties"] == [
            "allowProposals", "allowDecisions", "instanceData", "schemaType", "proposalConfig",
        ]


class TestRegistration:
    def _ranked_handler(self) -> SchemaHandler:
        return SchemaHandler(
            schema_type="ranked",
            validate=lambda data: isinstance(data, dict) and data.get("schemaType") == "ranked",
            extract_voting_config=lambda data: {
                **extract_voting_config(data, "ranked"),
                "ranking": True,
            },
            extract_proposal_config=lambda data: extract_proposal_config(data, "ranked"),
        )

    def test_custom_handler_is_used(self, registry):
        register_custom_schema(registry, self._ranked_handler())

        result = registry.process_schema(_schema(schemaType="ranked"))

        assert "ranked" in registry.get_all_schema_types()
        assert result["isValid"] is True
        assert result["votingConfig"]["ranking"] is True

    def test_replacement_is_last_wins_and_keeps_position(self, registry):
        replacement = SchemaHandler(
            schema_type="simple",
            validate=lambda data: True,
            extract_voting_config=lambda data: {"replaced": True},
            extract_proposal_config=lambda data: {},
        )
        registry.register_handler(replacement)

        assert registry.get_handler("simple") is replacement
        assert registry.get_all_schema_types() == ["default", "simple", "advanced"]

    def test_get_handler_or_default(self, registry):
        assert registry.get_handler("missing") is None
        assert registry.get_handler_or_default("missing") is registry.default_handler


class TestVoteSelection:
    AVAILABLE = ["p1", "p2", "p3", "p4", "p5"]

    def test_over_limit_rejected(self):
        result = validate_vote_selection(["p1", "p2", "p3", "p4"], 3, self.AVAILABLE)
        assert result["isValid"] is False
        assert result["errors"] == ["Cannot select more than 3 proposals"]

    def test_within_limit_accepted(self):
        assert validate_vote_selection(["p1", "p2"], 3, self.AVAILABLE) == {"isValid": True, "errors": []}

    def test_foreign_id_rejects_whole_selection(self):
        result = validate_vote_selection(["p1", "elsewhere"], 3, self.AVAILABLE)
        assert result["isValid"] is False
        assert result["errors"] == ["Invalid proposal IDs: elsewhere"]

    def test_empty_selection(self):
        result = validate_vote_selection([], 3, self.AVAILABLE)
        assert result["errors"] == ["At least one proposal must be selected"]

    def test_duplicates_rejected(self):
        result = validate_vote_selection(["p1", "p1"], 3, self.AVAILABLE)
        assert result["errors"] == ["Duplicate proposal IDs: p1"]

    def test_every_failing_rule_reported(self):
        result = validate_vote_selection(["x", "x", "p1"], 2, self.AVAILABLE)
        assert len(result["errors"]) == 3


class TestSignatureAndCompatibility:
    def test_signature_is_stable_and_sensitive(self):
        a = create_schema_signature(_schema(schemaType="simple", extra=1))
        b = create_schema_signature(_schema())
        c = create_schema_signature(_schema(instanceData={"maxVotesPerMember": 5}))
        assert a == b
        assert a != c

    def test_compatibility(self):
        assert validate_schema_compatibility(_schema(), ["allowDecisions"]) == {
            "isCompatible": True,
            "missingProperties": [],
        }
        result = validate_schema_compatibility(_schema(), ["allowDecisions", "quorum"])
        assert result == {"isCompatible": False, "missingProperties": ["quorum"]}


class TestVotingForms:
    def test_unknown_dialect_falls_back_to_default(self):
        assert voting_schemas.get_voting_schema("nope") is voting_schemas.DEFAULT_SCHEMA
        assert voting_schemas.get_voting_schema("advanced")["defaults"]["maxVotesPerMember"] == 5

    def test_merge_with_defaults(self):
        merged = voting_schemas.merge_with_defaults({"maxVotesPerMember": 7}, voting_schemas.SIMPLE_SCHEMA)
        assert merged == {"maxVotesPerMember": 7, "allowProposals": True, "allowDecisions": True}

    def test_apply_bindings_skips_state_transforms(self):
        patch = voting_schemas.apply_bindings(
            {"maxVotesPerMember": 4, "allowDecisions": False}, voting_schemas.SIMPLE_SCHEMA
        )
        assert patch == {"instanceData": {"fieldValues": {"maxVotesPerMember": 4}}}

    def test_special_bindings(self):
        special = voting_schemas.get_special_bindings(voting_schemas.ADVANCED_SCHEMA)
        assert set(special) == {"allowProposals", "allowDecisions"}

    def test_dot_paths(self):
        obj = {}
        voting_schemas.set_value_by_path(obj, "a.b.c", 1)
        assert obj == {"a": {"b": {"c": 1}}}
        assert voting_schemas.get_value_by_path(obj, "a.b.c") == 1
        assert voting_schemas.get_value_by_path(obj, "a.x.c") is None
        assert voting_schemas.get_value_by_path("nope", "a") is None

    def test_form_validation(self):
        definition = voting_schemas.ADVANCED_SCHEMA
        assert voting_schemas.validate_form_data(dict(definition["defaults"]), definition) == {}

        errors = voting_schemas.validate_form_data({"maxVotesPerMember": 0, "quorumPercentage": 120}, definition)
        assert set(errors) == {"maxVotesPerMember", "quorumPercentage"}

        errors = voting_schemas.validate_form_data({}, definition)
        assert "maxVotesPerMember" in errors
