"""
Decision Blueprint — ballots, results, instance lifecycle, schemas and templates.

Endpoints:
  POST   /api/v1/decisions/instances/<id>/votes            — submit ballot (201)
  GET    /api/v1/decisions/instances/<id>/votes/status     — viewer's voting status
  POST   /api/v1/decisions/instances/<id>/votes/validate   — dry-run a selection
  GET    /api/v1/decisions/instances/<id>/results            — vote tally and selection outcome
  POST   /api/v1/decisions/instances/<id>/results            — run selection once and store it
  GET    /api/v1/decisions/instances/<id>/next-steps       — upcoming phases
  POST   /api/v1/decisions/instances/<id>/transitions      — move to another state
  DELETE /api/v1/decisions/instances/<id>                  — delete or cancel
  POST   /api/v1/decisions/schemas/process                 — classify/validate a schema
  GET    /api/v1/decisions/schemas/voting/<type>           — voting dialect form definition
  POST   /api/v1/decisions/schemas/voting/<type>/bindings  — apply voting form to a schema
  POST   /api/v1/decisions/templates/compile               — compile proposal/rubric template
  POST   /api/v1/decisions/templates/validate              — check proposal data against a template

Every endpoint needs ``Authorization: Bearer <JWT>`` except the pure
schema/template endpoints. Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, g, jsonify, request

from decisionhub import limiter
from decisionhub.auth import require_profile
from decisionhub.blueprints import json_body, register_error_handlers, string_list
from decisionhub.core.exceptions import ValidationError
from decisionhub.services import instance_service, results_service, voting_service
from decisionhub.services.template_compiler import (
    ProposalDataValidator,
    compile_proposal_template,
    compile_rubric_template,
    get_rubric_scoring_info,
)
from decisionhub.services.voting_schemas import (
    apply_bindings,
    get_special_bindings,
    get_voting_schema,
    merge_with_defaults,
    validate_form_data,
)

logger = logging.getLogger(__name__)

decision_bp = Blueprint("decisions", __name__, url_prefix="/api/v1/decisions")

register_error_handlers(decision_bp)


def _vote_limit():
    return current_app.config.get("VOTE_RATE_LIMIT", "30/minute")


# ═══════════════════════════════════════════════════════════════
# Voting
# ═══════════════════════════════════════════════════════════════


@decision_bp.route("/instances/<instance_id>/votes", methods=["POST"])
@limiter.limit(_vote_limit)
@require_profile
def submit_vote(instance_id):
    """Submit the caller's ballot.

    Body: {selectedProposalIds: [str], schemaVersion?, customData?}
    Returns: VoteSubmission summary (201).
    """
    data = json_body()
    selected = string_list(data, "selectedProposalIds")
    custom_data = data.get("customData")
    if custom_data is not None and not isinstance(custom_data, dict):
        raise ValidationError("customData must be an object", details={"customData": ["Must be an object"]})

    result = voting_service.submit_vote(
        instance_id,
        selected,
        g.profile_id,
        schema_version=data.get("schemaVersion"),
        custom_data=custom_data,
        user_agent=request.headers.get("User-Agent"),
    )
    return jsonify(result), 201


@decision_bp.route("/instances/<instance_id>/votes/status", methods=["GET"])
@require_profile
def voting_status(instance_id):
    return jsonify(voting_service.get_voting_status(instance_id, g.profile_id)), 200


@decision_bp.route("/instances/<instance_id>/votes/validate", methods=["POST"])
@require_profile
def validate_selection(instance_id):
    """Dry-run selection check. Always 200; see ``isValid`` in the body."""
    data = json_body()
    selected = string_list(data, "selectedProposalIds")
    result = voting_service.validate_vote_selection_for_instance(instance_id, selected, g.profile_id)
    return jsonify(result), 200


# ═══════════════════════════════════════════════════════════════
# Results
# ═══════════════════════════════════════════════════════════════


@decision_bp.route("/instances/<instance_id>/results", methods=["GET"])
@require_profile
def instance_results(instance_id):
    """Live tally and selection outcome; never writes."""
    return jsonify(results_service.get_instance_results(instance_id, g.profile_id)), 200


@decision_bp.route("/instances/<instance_id>/results", methods=["POST"])
@require_profile
def process_results(instance_id):
    """Run the process's selection function once and store the outcome."""
    return jsonify(results_service.process_results(instance_id, g.profile_id)), 200


# ═══════════════════════════════════════════════════════════════
# Instance lifecycle
# ═══════════════════════════════════════════════════════════════


@decision_bp.route("/instances/<instance_id>/next-steps", methods=["GET"])
@require_profile
def next_steps(instance_id):
    steps = instance_service.get_instance_next_steps(instance_id)
    return jsonify({"items": steps, "total": len(steps)}), 200


@decision_bp.route("/instances/<instance_id>/transitions", methods=["POST"])
@require_profile
def transition(instance_id):
    """Body: {toStateId: str, transitionData?: {}}"""
    data = json_body()
    to_state_id = data.get("toStateId")
    to_state_id = to_state_id.strip() if isinstance(to_state_id, str) else ""
    if not to_state_id:
        raise ValidationError("toStateId is required", details={"toStateId": ["This field is required"]})

    instance = instance_service.transition_instance(
        instance_id, to_state_id, g.profile_id, data.get("transitionData") or {}
    )
    return jsonify(instance.to_dict()), 200


@decision_bp.route("/instances/<instance_id>", methods=["DELETE"])
@require_profile
def delete_instance(instance_id):
    return jsonify(instance_service.delete_instance(instance_id, g.profile_id)), 200


# ═══════════════════════════════════════════════════════════════
# Schemas & templates (pure, no persistence)
# ═══════════════════════════════════════════════════════════════


@decision_bp.route("/schemas/process", methods=["POST"])
def process_schema():
    """Classify and validate a decision-process schema. Never 4xx on bad schema data."""
    registry = current_app.extensions["schema_registry"]
    payload = request.get_json(silent=True)
    return jsonify(registry.process_schema(payload)), 200


@decision_bp.route("/schemas/voting/<schema_type>", methods=["GET"])
def voting_form_definition(schema_type):
    """Form schema, defaults and bindings of a voting dialect (default when unknown)."""
    return jsonify(get_voting_schema(schema_type)), 200


@decision_bp.route("/schemas/voting/<schema_type>/bindings", methods=["POST"])
def apply_voting_form(schema_type):
    """Body: {formData: {...}}. Merges defaults, validates, applies direct bindings.

    Returns ``{isValid, errors, formData, schemaPatch, stateBindings}``.
    ``stateBindings`` lists the per-state fields the caller applies itself.
    """
    data = json_body()
    form_data = data.get("formData") or {}
    if not isinstance(form_data, dict):
        raise ValidationError("formData must be an object", details={"formData": ["Must be an object"]})

    definition = get_voting_schema(schema_type)
    merged = merge_with_defaults(form_data, definition)
    errors = validate_form_data(merged, definition)
    return jsonify({
        "isValid": not errors,
        "errors": errors,
        "formData": merged,
        "schemaPatch": apply_bindings(merged, definition) if not errors else {},
        "stateBindings": get_special_bindings(definition),
    }), 200


@decision_bp.route("/templates/compile", methods=["POST"])
def compile_template():
    """Body: {kind: "proposal"|"rubric", template: {...}}"""
    data = json_body()
    kind = data.get("kind", "proposal")
    template = data.get("template") or {}

    if kind == "proposal":
        fields = compile_proposal_template(template)
        return jsonify({"fields": [f.to_dict() for f in fields]}), 200
    if kind == "rubric":
        fields = compile_rubric_template(template)
        return jsonify({
            "fields": [f.to_dict() for f in fields],
            "scoring": get_rubric_scoring_info(template),
        }), 200

    raise ValidationError("Unknown template kind", details={"kind": ["Must be 'proposal' or 'rubric'"]})


@decision_bp.route("/templates/validate", methods=["POST"])
def validate_proposal_data():
    """Body: {template: {...}, proposalData: {...}}. Field-keyed errors, always 200."""
    data = json_body()
    validator = ProposalDataValidator(data.get("template") or {})
    errors = validator.validate(data.get("proposalData") or {})
    return jsonify({"isValid": not errors, "errors": errors}), 200
