"""
Proposal / Rubric Template Compiler.

Templates are JSON-Schema documents with two vendor extensions:

    - ``x-format`` on each property: renderer hint ("short-text", "long-text",
      "dropdown", "money", ...). Defaults to "short-text".
    - ``x-field-order`` on the root: explicit field order. Keys not listed
      follow in declaration order; listed keys without a property are skipped.

Compilation is pure and never raises on malformed templates. A proposal
template missing a required system field only logs a warning.

Usage:
    from decisionhub.services.template_compiler import compile_proposal_template

    fields = compile_proposal_template(process.process_schema["proposalTemplate"])
    for f in fields:
        render(f.key, f.format, f.schema)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from decisionhub.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

SYSTEM_FIELD_KEYS = frozenset({"title", "category", "budget"})
REQUIRED_SYSTEM_FIELDS = frozenset({"title"})

DEFAULT_FIELD_FORMAT = "short-text"


@dataclass
class FieldDescriptor:
    key: str
    format: str
    is_system: bool
    schema: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        out = asdict(self)
        out["isSystem"] = out.pop("is_system")
        return out


def _properties(template) -> dict:
    if not isinstance(template, dict):
        return {}
    props = template.get("properties") or {}
    return props if isinstance(props, dict) else {}


def ordered_keys(template) -> list[str]:
    """Explicit ``x-field-order`` keys that exist (deduped), then the rest."""
    props = _properties(template)
    explicit = template.get("x-field-order") if isinstance(template, dict) else None

    ordered: list[str] = []
    if isinstance(explicit, list):
        for key in explicit:
            if isinstance(key, str) and key in props and key not in ordered:
                ordered.append(key)
    for key in props:
        if key not in ordered:
            ordered.append(key)
    return ordered


def _compile(template, *, is_proposal: bool) -> list[FieldDescriptor]:
    props = _properties(template)
    fields = []
    for key in ordered_keys(template):
        schema = props[key] if isinstance(props[key], dict) else {}
        fields.append(
            FieldDescriptor(
                key=key,
                format=schema.get("x-format") or DEFAULT_FIELD_FORMAT,
                is_system=is_proposal and key in SYSTEM_FIELD_KEYS,
                schema=schema,
            )
        )
    return fields


def compile_proposal_template(template) -> list[FieldDescriptor]:
    """Ordered field descriptors for a proposal form; system fields flagged."""
    props = _properties(template)
    if not props:
        return []

    for key in sorted(REQUIRED_SYSTEM_FIELDS):
        if key not in props:
            logger.warning("Proposal template is missing system field", extra={"field": key})

    return _compile(template, is_proposal=True)


def compile_rubric_template(template) -> list[FieldDescriptor]:
    """Ordered criteria descriptors for a reviewer rubric."""
    return _compile(template, is_proposal=False)


# ═══════════════════════════════════════════════════════════════
# Rubric scoring
# ═══════════════════════════════════════════════════════════════


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def infer_criterion_type(schema: dict) -> str | None:
    """Classify a rubric criterion: scored, yes_no, dropdown, long_text."""
    if not isinstance(schema, dict):
        return None
    if schema.get("type") == "integer" and _is_number(schema.get("maximum")):
        return "scored"

    fmt = schema.get("x-format")
    if fmt == "dropdown":
        options = schema.get("oneOf")
        if not isinstance(options, list):
            options = []
        consts = [opt.get("const") for opt in options if isinstance(opt, dict)]
        # const may be any JSON value; only plain strings can spell yes/no
        if all(isinstance(c, str) for c in consts) and set(consts) == {"yes", "no"}:
            return "yes_no"
        return "dropdown"
    if fmt == "long-text":
        return "long_text"
    return None


def get_rubric_scoring_info(template) -> dict:
    """Criteria list, total achievable points and a per-format count.

    A criterion is scored when it is an integer with a numeric ``maximum``;
    everything else is qualitative and worth 0 points.
    """
    criteria = []
    summary: dict[str, int] = {}
    total = 0

    for descriptor in compile_rubric_template(template):
        schema = descriptor.schema
        scored = infer_criterion_type(schema) == "scored"
        max_points = schema["maximum"] if scored else 0
        total += max_points
        summary[descriptor.format] = summary.get(descriptor.format, 0) + 1
        criteria.append({
            "key": descriptor.key,
            "title": schema.get("title") or descriptor.key,
            "format": descriptor.format,
            "scored": scored,
            "maxPoints": max_points,
        })

    return {"criteria": criteria, "totalPoints": total, "summary": summary}


# ═══════════════════════════════════════════════════════════════
# Proposal data validation
# ═══════════════════════════════════════════════════════════════


class ProposalDataValidator:
    """Validate proposal data against its proposal template with jsonschema.

    Collects every error, keyed by field, so a form can show them all at once.
    A template that is not itself a valid JSON Schema yields a single
    ``_template`` error instead of raising.
    """

    def __init__(self, template: dict):
        self.template = template if isinstance(template, dict) else {}
        self.template_error: str | None = None
        try:
            Draft7Validator.check_schema(self.template)
        except SchemaError as exc:
            self.template_error = f"Invalid proposal template: {exc.message}"
            logger.debug("Proposal template rejected: %s", exc.message)
        self._validator = Draft7Validator(self.template)

    def _label(self, key: str) -> str:
        prop = _properties(self.template).get(key)
        if isinstance(prop, dict) and prop.get("title"):
            return prop["title"]
        return key

    def validate(self, data: dict) -> dict[str, str]:
        if self.template_error:
            return {"_template": self.template_error}

        errors: dict[str, str] = {}
        for err in self._validator.iter_errors(data or {}):
            if err.validator == "required":
                key = err.message.split("'")[1]
                message = f"{self._label(key)} is required"
            else:
                path = [str(p) for p in err.absolute_path]
                key = path[0] if path else "_root"
                message = err.message
            errors.setdefault(key, message)
        return errors

    def assert_valid(self, data: dict) -> None:
        errors = self.validate(data)
        if errors:
            raise ValidationError(
                "Proposal data does not match the proposal template",
                details={k: [v] for k, v in errors.items()},
            )
