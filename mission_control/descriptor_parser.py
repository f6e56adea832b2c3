"""Pull ``field: value`` pairs out of agent issue descriptions.

Agent issues carry their metadata as free text, e.g.::

    role_type: refinery
    rig: editor_gt5
    agent_state: active
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache

from .constants import AGENT_ISSUE_TYPE, AGENT_STATE_TO_STATUS, REFINERY_ROLE_TYPE
from .models import Issue, RefineryDescriptor

REFINERY_FIELDS = ("role_type", "rig", "agent_state")


@lru_cache(maxsize=32)
def _field_re(name: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(name)}:\s*(.+)")


def parse_field(text: str, name: str) -> str | None:
    match = _field_re(name).search(text or "")
    return match.group(1).strip() if match else None


def parse_fields(text: str, names: Iterable[str]) -> dict[str, str]:
    """Return the fields present in ``text``; absent fields are left out."""
    found = {}
    for name in names:
        value = parse_field(text, name)
        if value is not None:
            found[name] = value
    return found


def refinery_status(agent_state: str | None) -> str:
    return AGENT_STATE_TO_STATUS.get(agent_state or "", "idle")


def parse_refinery(issue: Issue) -> RefineryDescriptor | None:
    """Describe a refinery agent, or return None if the issue is anything else."""
    if issue.issue_type != AGENT_ISSUE_TYPE:
        return None
    fields = parse_fields(issue.description, REFINERY_FIELDS)
    if fields.get("role_type") != REFINERY_ROLE_TYPE:
        return None
    agent_state = fields.get("agent_state") or "idle"
    return RefineryDescriptor(
        id=issue.id,
        name=issue.title,
        rig=fields.get("rig", ""),
        status=refinery_status(agent_state),
        agent_state=agent_state,
    )
