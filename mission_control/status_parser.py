"""Decode ``gt status --json`` output into a canonical StatusSnapshot.

Accepted shapes:

- flat:   ``{"name": ..., "agents": [...]}``
- nested: ``{"name": ..., "agents": [...hq agents], "rigs": [{"name": ..., "agents": [...]}]}``
- bare:   ``[...agents]`` (older gt releases)

Anything else, including invalid JSON, becomes the empty snapshot.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .constants import DEFAULT_FLEET_NAME
from .errors import ParseFailure
from .models import Agent, AgentRole, RoleCounts, StatusSnapshot, StatusSummary
from .rules import first_match

logger = logging.getLogger(__name__)

_COORDINATOR_HINTS = {"mayor", "coordinator"}
_HEALTH_CHECK_HINTS = {"deacon", "health-check", "health_check"}


def empty_snapshot() -> StatusSnapshot:
    return StatusSnapshot(name=DEFAULT_FLEET_NAME)


def derive_role(name: str, hint: str | None = None) -> AgentRole:
    """Classify an agent from its name and the optional role gt reported."""
    lname = (name or "").lower()
    lhint = (hint or "").lower()
    if lname == "mayor" or lhint in _COORDINATOR_HINTS:
        return AgentRole.COORDINATOR
    if lname == "deacon" or lhint in _HEALTH_CHECK_HINTS:
        return AgentRole.HEALTH_CHECKER
    if "witness" in lname or lhint == "witness":
        return AgentRole.PATROL
    if lhint == "polecat" or "polecat" in lname:
        return AgentRole.WORKER
    if lhint == "crew":
        return AgentRole.CREW_MEMBER
    return AgentRole.UNKNOWN


def _as_count(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _optional_str(value: Any) -> str | None:
    return str(value) if value not in (None, "") else None


def _to_agent(raw: Any, rig: str | None = None) -> Agent | None:
    if not isinstance(raw, dict) or not raw.get("name"):
        return None
    name = str(raw["name"])
    return Agent(
        name=name,
        address=str(raw.get("address") or ""),
        session=_optional_str(raw.get("session")),
        role=derive_role(name, raw.get("role")),
        running=bool(raw.get("running")),
        has_work=bool(raw.get("has_work")),
        unread_mail=_as_count(raw.get("unread_mail")),
        first_subject=_optional_str(raw.get("first_subject")),
        rig=rig,
    )


def _normalize(name: Any, groups: list[tuple[str | None, Any]]) -> StatusSnapshot:
    """Flatten agent groups into one snapshot.

    An agent listed more than once (same address, else same name) keeps the
    values of its last occurrence.
    """
    agents: dict[str, Agent] = {}
    rigs: list[str] = []
    for rig, raw_agents in groups:
        if rig and rig not in rigs:
            rigs.append(rig)
        if not isinstance(raw_agents, list):
            continue
        for raw in raw_agents:
            agent = _to_agent(raw, rig)
            if agent:
                agents[agent.address or agent.name] = agent
    return StatusSnapshot(
        name=str(name) if name else DEFAULT_FLEET_NAME,
        agents=list(agents.values()),
        rigs=rigs,
    )


def _bare_shape(data: Any) -> StatusSnapshot | None:
    if isinstance(data, list):
        return _normalize(None, [(None, data)])
    return None


def _nested_shape(data: Any) -> StatusSnapshot | None:
    if not isinstance(data, dict) or not isinstance(data.get("rigs"), list):
        return None
    groups: list[tuple[str | None, Any]] = [(None, data.get("agents"))]
    for rig in data["rigs"]:
        if isinstance(rig, dict):
            groups.append((_optional_str(rig.get("name")), rig.get("agents")))
    return _normalize(data.get("name"), groups)


def _flat_shape(data: Any) -> StatusSnapshot | None:
    if not isinstance(data, dict):
        return None
    return _normalize(data.get("name"), [(None, data.get("agents"))])


_SHAPES = (_bare_shape, _nested_shape, _flat_shape)


def decode_json(text: str) -> Any:
    try:
        return json.loads(text.strip() or "{}")
    except ValueError as e:
        raise ParseFailure(f"Invalid JSON: {e}") from e


def parse_status(text: str) -> StatusSnapshot:
    """Parse status output. Never raises; bad input gives the empty snapshot."""
    try:
        data = decode_json(text or "")
    except ParseFailure as e:
        logger.debug("Unparseable status output: %s", e)
        return empty_snapshot()
    return first_match(_SHAPES, data) or empty_snapshot()


def summarize(snapshot: StatusSnapshot) -> StatusSummary:
    """Totals across the fleet and per role."""
    summary = StatusSummary(total_agents=len(snapshot.agents))
    for agent in snapshot.agents:
        counts = summary.by_role.setdefault(agent.role.value, RoleCounts())
        counts.total += 1
        counts.unread_mail += agent.unread_mail
        summary.total_unread_mail += agent.unread_mail
        if agent.running:
            counts.running += 1
            summary.running_agents += 1
        if agent.has_work:
            counts.with_work += 1
            summary.agents_with_work += 1
    return summary
