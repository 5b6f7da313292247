"""
Process state resolution — current phase and upcoming phases.

``states`` is the ``processSchema.states`` list of a DecisionProcess. Its array
order is the canonical phase order presented to members as "what happens
next"; there is no separate sort key.
"""

from __future__ import annotations

from flask import current_app

DEFAULT_MAX_VOTES_PER_MEMBER = 3


def current_state(states: list[dict], current_state_id: str | None) -> dict | None:
    if not current_state_id:
        return None
    for state in states or []:
        if isinstance(state, dict) and state.get("id") == current_state_id:
            return state
    return None


def _state_index(states: list[dict], state_id: str | None) -> int:
    for idx, state in enumerate(states or []):
        if isinstance(state, dict) and state.get("id") == state_id:
            return idx
    return -1


def next_steps(states: list[dict], instance_data: dict | None) -> list[dict]:
    """States after the current one that have a scheduled ``phase.startDate``.

    Returns ``[]`` when the current state id is missing or unknown.
    """
    current_id = (instance_data or {}).get("currentStateId")
    idx = _state_index(states, current_id)
    if idx < 0:
        return []

    upcoming = []
    for state in states[idx + 1:]:
        phase = state.get("phase") or {}
        if phase.get("startDate"):
            upcoming.append(state)
    return upcoming


def current_state_id_for(instance) -> str | None:
    """``instanceData.currentStateId`` wins over the column mirror."""
    data = instance.instance_data or {}
    return data.get("currentStateId") or instance.current_state_id


def current_phase_config(instance, states: list[dict]) -> dict | None:
    """``{allowProposals, allowDecisions}`` for the instance's current state."""
    state = current_state(states, current_state_id_for(instance))
    if state is None:
        return None
    config = state.get("config") or {}
    return {
        "allowProposals": bool(config.get("allowProposals", False)),
        "allowDecisions": bool(config.get("allowDecisions", False)),
    }


def _default_max_votes() -> int:
    try:
        return int(current_app.config.get("DEFAULT_MAX_VOTES_PER_MEMBER", DEFAULT_MAX_VOTES_PER_MEMBER))
    except RuntimeError:
        # Outside an application context
        return DEFAULT_MAX_VOTES_PER_MEMBER


def resolve_max_votes(instance_data: dict | None) -> int:
    """Per-instance vote limit.

    ``fieldValues.maxVotesPerMember`` (set through the voting form bindings)
    takes precedence over a top-level ``maxVotesPerMember``. Integral numbers
    and numeric strings count; otherwise the configured default applies.
    """
    data = instance_data or {}
    field_values = data.get("fieldValues") or {}
    for candidate in (field_values.get("maxVotesPerMember"), data.get("maxVotesPerMember")):
        if isinstance(candidate, bool):
            continue
        if isinstance(candidate, int):
            return candidate
        if isinstance(candidate, str):
            # form posts may carry numbers as text, e.g. "5"
            try:
                candidate = float(candidate)
            except ValueError:
                continue
        if isinstance(candidate, float) and candidate.is_integer():
            return int(candidate)
    return _default_max_votes()
