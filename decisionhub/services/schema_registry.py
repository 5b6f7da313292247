"""
Decision Process Schema Registry — classify, validate and extract configs.

A decision-process configuration (``DecisionProcessSchema``) is a plain dict:

    {
        "schemaType": "simple",              # optional discriminator
        "allowProposals": true,
        "allowDecisions": true,
        "instanceData": {"maxVotesPerMember": 3},
        "proposalConfig": {...},             # optional, any dialect
        "advancedVotingConfig": {...},       # optional, "advanced" only
        "advancedProposalConfig": {...}      # optional, "advanced" only
    }

Each dialect is served by a SchemaHandler. The registry is built once by the
application factory (``build_default_registry``) and kept on
``app.extensions["schema_registry"]``; custom dialects can be registered late
with ``register_custom_schema``.

Nothing in this module raises on malformed input: invalid data is reported
through ``{"isValid": False, "validationResult": {...}}``.

Usage:
    registry = current_app.extensions["schema_registry"]
    result = registry.process_schema(payload)
    if result["isValid"]:
        max_votes = result["votingConfig"]["maxVotesPerMember"]
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass

from jsonschema import Draft7Validator

logger = logging.getLogger(__name__)

UNKNOWN_SCHEMA_TYPE = "unknown"
DEFAULT_SCHEMA_TYPE = "default"

BASE_PROPERTIES = ("allowProposals", "allowDecisions", "instanceData")

# Structural shape every dialect shares; extra top-level keys are allowed
DECISION_PROCESS_JSON_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["allowProposals", "allowDecisions", "instanceData"],
    "properties": {
        "schemaType": {"type": "string"},
        "allowProposals": {"type": "boolean"},
        "allowDecisions": {"type": "boolean"},
        "instanceData": {
            "type": "object",
            "required": ["maxVotesPerMember"],
            "properties": {
                "maxVotesPerMember": {"type": "integer", "minimum": 0},
            },
        },
        "proposalConfig": {"type": "object"},
        "advancedVotingConfig": {"type": "object"},
        "advancedProposalConfig": {"type": "object"},
    },
    "additionalProperties": True,
}

_STRUCTURE_VALIDATOR = Draft7Validator(DECISION_PROCESS_JSON_SCHEMA)

_DEFAULT_FIELD_CONSTRAINTS = {
    "title": {"type": "string", "minLength": 1, "maxLength": 200},
    "description": {"type": "string", "minLength": 1, "maxLength": 5000},
    "amount": {"type": "number", "min": 0},
    "category": {"type": "string"},
}


# ═══════════════════════════════════════════════════════════════
# Validators / extractors shared by every dialect
# ═══════════════════════════════════════════════════════════════


def is_valid_decision_process_schema(data) -> bool:
    """Type guard for the DecisionProcessSchema base shape."""
    if not isinstance(data, dict):
        return False
    if not isinstance(data.get("allowProposals"), bool):
        return False
    if not isinstance(data.get("allowDecisions"), bool):
        return False
    instance_data = data.get("instanceData")
    if not isinstance(instance_data, dict):
        return False
    max_votes = instance_data.get("maxVotesPerMember")
    return isinstance(max_votes, int) and not isinstance(max_votes, bool) and max_votes >= 0


def extract_supported_properties(data: dict) -> list[str]:
    extra = [key for key in data if key not in BASE_PROPERTIES]
    return [*BASE_PROPERTIES, *extra]


def validate_schema_structure(data) -> dict:
    """Structural validation with jsonschema.

    Returns a SchemaValidationResult:
    ``{isValid, schemaType, errors[], supportedProperties[]}``.
    """
    errors = sorted(_STRUCTURE_VALIDATOR.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    if errors:
        messages = []
        for err in errors:
            path = ".".join(str(p) for p in err.absolute_path)
            messages.append(f"{path}: {err.message}" if path else err.message)
        return {
            "isValid": False,
            "schemaType": "invalid",
            "errors": messages,
            "supportedProperties": [],
        }

    return {
        "isValid": True,
        "schemaType": str(data["schemaType"]) if "schemaType" in data else UNKNOWN_SCHEMA_TYPE,
        "errors": [],
        "supportedProperties": extract_supported_properties(data),
    }


def extract_voting_config(data: dict, schema_type: str = UNKNOWN_SCHEMA_TYPE) -> dict:
    """Build the VotingConfig for a validated schema.

    Every top-level key outside the base properties ends up in
    ``additionalConfig``; the key is omitted when there are none.
    """
    config = {
        "allowProposals": data["allowProposals"],
        "allowDecisions": data["allowDecisions"],
        "maxVotesPerMember": data["instanceData"]["maxVotesPerMember"],
        "schemaType": schema_type,
    }
    additional = {k: v for k, v in data.items() if k not in BASE_PROPERTIES}
    if additional:
        config["additionalConfig"] = additional
    return config


def extract_proposal_config(data: dict, schema_type: str = UNKNOWN_SCHEMA_TYPE) -> dict:
    config = {
        "requiredFields": ["title", "description"],
        "optionalFields": ["amount", "category", "schemaSpecificData"],
        "fieldConstraints": {k: dict(v) for k, v in _DEFAULT_FIELD_CONSTRAINTS.items()},
        "schemaType": schema_type,
        "allowProposals": data["allowProposals"],
    }

    proposal_config = data.get("proposalConfig")
    if isinstance(proposal_config, dict):
        if isinstance(proposal_config.get("requiredFields"), list):
            config["requiredFields"] = config["requiredFields"] + proposal_config["requiredFields"]
        if isinstance(proposal_config.get("optionalFields"), list):
            config["optionalFields"] = config["optionalFields"] + proposal_config["optionalFields"]
        if isinstance(proposal_config.get("fieldConstraints"), dict):
            config["fieldConstraints"].update(proposal_config["fieldConstraints"])

    return config


def validate_vote_selection(
    selected_proposal_ids: list[str],
    max_votes_per_member: int,
    available_proposal_ids: list[str],
) -> dict:
    """Check a ballot selection. Reports every failing rule, not just the first."""
    errors: list[str] = []

    if not selected_proposal_ids:
        errors.append("At least one proposal must be selected")

    if len(selected_proposal_ids) > max_votes_per_member:
        errors.append(f"Cannot select more than {max_votes_per_member} proposals")

    available = set(available_proposal_ids)
    invalid = [pid for pid in selected_proposal_ids if pid not in available]
    if invalid:
        errors.append(f"Invalid proposal IDs: {', '.join(invalid)}")

    seen: set[str] = set()
    duplicates = []
    for pid in selected_proposal_ids:
        if pid in seen:
            duplicates.append(pid)
        seen.add(pid)
    if duplicates:
        errors.append(f"Duplicate proposal IDs: {', '.join(duplicates)}")

    return {"isValid": not errors, "errors": errors}


def create_schema_signature(data: dict) -> str:
    """Stable fingerprint of the vote-relevant part of a schema."""
    normalized = {
        "allowProposals": data["allowProposals"],
        "allowDecisions": data["allowDecisions"],
        "maxVotesPerMember": data["instanceData"]["maxVotesPerMember"],
    }
    return base64.b64encode(json.dumps(normalized, separators=(",", ":")).encode()).decode()


def validate_schema_compatibility(data: dict, required_properties: list[str]) -> dict:
    missing = [prop for prop in required_properties if prop not in data]
    return {"isCompatible": not missing, "missingProperties": missing}


# ═══════════════════════════════════════════════════════════════
# Handlers
# ═══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SchemaHandler:
    """One schema dialect: detection predicate plus extractors."""

    schema_type: str
    validate: Callable[[object], bool]
    extract_voting_config: Callable[[dict], dict]
    extract_proposal_config: Callable[[dict], dict]
    validate_schema: Callable[[object], dict] = validate_schema_structure


def _dialect_predicate(schema_type: str) -> Callable[[object], bool]:
    def _validate(data) -> bool:
        return is_valid_decision_process_schema(data) and data.get("schemaType") == schema_type

    return _validate


def _dedup(items: list) -> list:
    out = []
    for item in items:
        if item not in out:
            out.append(item)
    return out


def _advanced_voting_config(data: dict) -> dict:
    config = extract_voting_config(data, "advanced")
    advanced = data.get("advancedVotingConfig")
    if isinstance(advanced, dict):
        config["additionalConfig"] = {**config.get("additionalConfig", {}), **advanced}
    return config


def _advanced_proposal_config(data: dict) -> dict:
    config = extract_proposal_config(data, "advanced")
    advanced = data.get("advancedProposalConfig")
    if isinstance(advanced, dict):
        if isinstance(advanced.get("requiredFields"), list):
            config["requiredFields"] = _dedup(config["requiredFields"] + advanced["requiredFields"])
        if isinstance(advanced.get("optionalFields"), list):
            config["optionalFields"] = _dedup(config["optionalFields"] + advanced["optionalFields"])
        if isinstance(advanced.get("fieldConstraints"), dict):
            config["fieldConstraints"] = {**config["fieldConstraints"], **advanced["fieldConstraints"]}
    return config


def make_default_handler() -> SchemaHandler:
    return SchemaHandler(
        schema_type=DEFAULT_SCHEMA_TYPE,
        validate=is_valid_decision_process_schema,
        extract_voting_config=lambda data: extract_voting_config(data, DEFAULT_SCHEMA_TYPE),
        extract_proposal_config=lambda data: extract_proposal_config(data, DEFAULT_SCHEMA_TYPE),
    )


simple_schema_handler = SchemaHandler(
    schema_type="simple",
    validate=_dialect_predicate("simple"),
    extract_voting_config=lambda data: extract_voting_config(data, "simple"),
    extract_proposal_config=lambda data: extract_proposal_config(data, "simple"),
)

advanced_schema_handler = SchemaHandler(
    schema_type="advanced",
    validate=_dialect_predicate("advanced"),
    extract_voting_config=_advanced_voting_config,
    extract_proposal_config=_advanced_proposal_config,
)


# ═══════════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════════


class SchemaRegistry:
    """Named SchemaHandlers with a designated default.

    Registration is additive and last-wins per schema type. Insertion order
    is the order ``detect_schema_type`` probes handlers in; re-registering an
    existing type keeps its original position.
    """

    def __init__(self, default_handler: SchemaHandler | None = None):
        self._handlers: dict[str, SchemaHandler] = {}
        self.default_handler = default_handler or make_default_handler()
        self.register_handler(self.default_handler)

    def register_handler(self, handler: SchemaHandler) -> None:
        if handler.schema_type in self._handlers:
            logger.info("Schema handler replaced", extra={"schema_type": handler.schema_type})
        self._handlers[handler.schema_type] = handler

    def get_handler(self, schema_type: str) -> SchemaHandler | None:
        return self._handlers.get(schema_type)

    def get_handler_or_default(self, schema_type: str) -> SchemaHandler:
        return self._handlers.get(schema_type) or self.default_handler

    def get_all_schema_types(self) -> list[str]:
        return list(self._handlers)

    def detect_schema_type(self, data) -> str:
        """Explicit ``schemaType`` wins verbatim, else first matching handler."""
        if isinstance(data, dict) and "schemaType" in data:
            return str(data["schemaType"])

        for schema_type, handler in self._handlers.items():
            if handler.validate(data):
                return schema_type

        return UNKNOWN_SCHEMA_TYPE

    def process_schema(self, data) -> dict:
        """Classify + validate + extract. Never raises for malformed input."""
        schema_type = self.detect_schema_type(data)
        handler = self.get_handler_or_default(schema_type)

        validation_result = handler.validate_schema(data)
        if not validation_result["isValid"] or not handler.validate(data):
            logger.debug(
                "Decision process schema rejected",
                extra={"schema_type": schema_type, "errors": validation_result["errors"]},
            )
            return {
                "schemaType": schema_type,
                "isValid": False,
                "validationResult": validation_result,
            }

        return {
            "schemaType": schema_type,
            "isValid": True,
            "votingConfig": handler.extract_voting_config(data),
            "proposalConfig": handler.extract_proposal_config(data),
            "validationResult": validation_result,
        }


def build_default_registry() -> SchemaRegistry:
    """Registry with the built-in default, simple and advanced dialects."""
    registry = SchemaRegistry()
    registry.register_handler(simple_schema_handler)
    registry.register_handler(advanced_schema_handler)
    return registry


def register_custom_schema(registry: SchemaRegistry, handler: SchemaHandler) -> None:
    registry.register_handler(handler)
    logger.info("Custom schema registered", extra={"schema_type": handler.schema_type})
