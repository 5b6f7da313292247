"""
Voting dialect form definitions and binding helpers.

Each dialect ships a JSON-Schema form, default values and a binding table
mapping form fields onto dot-paths of the process schema. Bindings with a
non-direct ``transform`` (e.g. ``stateConfig``) are applied by the caller,
because their target depends on which state is being edited.
"""

from __future__ import annotations

import copy

from jsonschema import Draft7Validator

_BASE_FORM_PROPERTIES = {
    "maxVotesPerMember": {
        "type": "number",
        "title": "Maximum Votes Per Member",
        "description": "How many proposals can each member vote for?",
        "minimum": 1,
    },
    "allowProposals": {"type": "boolean", "title": "Allow Proposals"},
    "allowDecisions": {"type": "boolean", "title": "Allow Voting"},
}

_BASE_BINDINGS = {
    "maxVotesPerMember": {"target": "instanceData.fieldValues.maxVotesPerMember"},
    "allowProposals": {"target": "states.$.config.allowProposals", "transform": "stateConfig"},
    "allowDecisions": {"target": "states.$.config.allowDecisions", "transform": "stateConfig"},
}

SIMPLE_SCHEMA = {
    "schemaType": "simple",
    "name": "Simple Voting",
    "description": "Basic approval voting where members can vote for multiple proposals up to a limit.",
    "formSchema": {
        "type": "object",
        "title": "Configure Voting Settings",
        "required": ["maxVotesPerMember"],
        "properties": copy.deepcopy(_BASE_FORM_PROPERTIES),
    },
    "defaults": {"maxVotesPerMember": 3, "allowProposals": True, "allowDecisions": True},
    "bindings": copy.deepcopy(_BASE_BINDINGS),
}

ADVANCED_SCHEMA = {
    "schemaType": "advanced",
    "name": "Advanced Voting",
    "description": "Advanced voting with weighted votes, delegation, and quorum requirements.",
    "formSchema": {
        "type": "object",
        "title": "Configure Advanced Voting Settings",
        "required": ["maxVotesPerMember"],
        "properties": {
            **copy.deepcopy(_BASE_FORM_PROPERTIES),
            "weightedVoting": {"type": "boolean", "title": "Enable Weighted Voting"},
            "allowDelegation": {"type": "boolean", "title": "Allow Vote Delegation"},
            "quorumPercentage": {
                "type": ["number", "null"],
                "title": "Quorum Percentage",
                "minimum": 0,
                "maximum": 100,
            },
        },
    },
    "defaults": {
        "maxVotesPerMember": 5,
        "allowProposals": True,
        "allowDecisions": True,
        "weightedVoting": False,
        "allowDelegation": False,
        "quorumPercentage": None,
    },
    "bindings": {
        **copy.deepcopy(_BASE_BINDINGS),
        "weightedVoting": {"target": "instanceData.fieldValues.weightedVoting"},
        "allowDelegation": {"target": "instanceData.fieldValues.allowDelegation"},
        "quorumPercentage": {"target": "instanceData.fieldValues.quorumPercentage"},
    },
}

DEFAULT_SCHEMA = {
    "schemaType": "default",
    "name": "Default Voting",
    "description": "Standard voting configuration.",
    "formSchema": {
        "type": "object",
        "title": "Configure Voting Settings",
        "required": ["maxVotesPerMember"],
        "properties": copy.deepcopy(_BASE_FORM_PROPERTIES),
    },
    "defaults": {"maxVotesPerMember": 3, "allowProposals": True, "allowDecisions": True},
    "bindings": copy.deepcopy(_BASE_BINDINGS),
}

VOTING_SCHEMA_DEFINITIONS = (SIMPLE_SCHEMA, ADVANCED_SCHEMA, DEFAULT_SCHEMA)


def get_voting_schema(schema_type: str) -> dict:
    """Dialect definition by type; unknown types get the default dialect."""
    for definition in VOTING_SCHEMA_DEFINITIONS:
        if definition["schemaType"] == schema_type:
            return definition
    return DEFAULT_SCHEMA


def get_value_by_path(obj, path: str):
    if not isinstance(obj, dict):
        return None
    current = obj
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def set_value_by_path(obj: dict, path: str, value) -> None:
    parts = path.split(".")
    current = obj
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def merge_with_defaults(form_data: dict, definition: dict) -> dict:
    return {**definition["defaults"], **(form_data or {})}


def get_special_bindings(definition: dict) -> dict:
    return {
        field: binding
        for field, binding in definition["bindings"].items()
        if binding.get("transform", "direct") != "direct"
    }


def apply_bindings(form_data: dict, definition: dict) -> dict:
    """Map direct-bound form values onto a fresh process-schema fragment."""
    result: dict = {}
    for field, binding in definition["bindings"].items():
        if field not in form_data:
            continue
        if binding.get("transform", "direct") != "direct":
            continue
        set_value_by_path(result, binding["target"], form_data[field])
    return result


def validate_form_data(form_data: dict, definition: dict) -> dict[str, str]:
    """Field-keyed errors for a dialect form; empty dict when valid."""
    errors: dict[str, str] = {}
    for err in Draft7Validator(definition["formSchema"]).iter_errors(form_data):
        if err.validator == "required":
            field = err.message.split("'")[1]
        else:
            field = ".".join(str(p) for p in err.absolute_path) or "_root"
        errors.setdefault(field, err.message)
    return errors
