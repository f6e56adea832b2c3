"""Read the beads issue store (newline-delimited JSON) and derive convoys."""

from __future__ import annotations

import json
import logging
from typing import Any

from .constants import CONVOY_ISSUE_TYPE
from .models import Convoy, ConvoyProgress, Issue

logger = logging.getLogger(__name__)


def parse_jsonl(text: str) -> list[dict]:
    """Decode one JSON object per line, dropping lines that are not objects."""
    records = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except ValueError:
            logger.debug("Skipping malformed issue line: %.80s", line)
            continue
        if isinstance(record, dict):
            records.append(record)
    return records


def _dependency_ids(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    ids = []
    for dep in raw:
        if isinstance(dep, str):
            ids.append(dep)
        elif isinstance(dep, dict):
            target = dep.get("depends_on_id") or dep.get("id")
            if target:
                ids.append(str(target))
    return ids


def _priority(raw: Any) -> int | None:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _optional_str(value: Any) -> str | None:
    return str(value) if value else None


def to_issue(raw: dict) -> Issue | None:
    if not raw.get("id"):
        return None
    labels = raw.get("labels")
    return Issue(
        id=str(raw["id"]),
        title=str(raw.get("title") or ""),
        description=str(raw.get("description") or ""),
        status=str(raw.get("status") or "open"),
        priority=_priority(raw.get("priority")),
        issue_type=str(raw.get("issue_type") or "task"),
        assignee=_optional_str(raw.get("assignee")),
        labels=[str(label) for label in labels] if isinstance(labels, list) else [],
        dependencies=_dependency_ids(raw.get("dependencies")),
        created_at=_optional_str(raw.get("created_at")),
        updated_at=_optional_str(raw.get("updated_at")),
    )


def parse_issues(text: str) -> list[Issue]:
    return [issue for issue in map(to_issue, parse_jsonl(text)) if issue]


def build_convoys(issues: list[Issue]) -> list[Convoy]:
    """Turn convoy issues into Convoys with progress over the issues they track.

    A convoy is completed once it is closed or all tracked issues are; it is
    stalled when blocked; otherwise active.
    """
    by_id = {issue.id: issue for issue in issues}
    convoys = []
    for issue in issues:
        if issue.issue_type != CONVOY_ISSUE_TYPE:
            continue
        tracked = issue.dependencies
        completed = sum(1 for i in tracked if i in by_id and by_id[i].status == "closed")
        if issue.status == "closed" or (tracked and completed == len(tracked)):
            status = "completed"
        elif issue.status == "blocked":
            status = "stalled"
        else:
            status = "active"
        convoys.append(
            Convoy(
                id=issue.id,
                title=issue.title,
                status=status,
                issues=list(tracked),
                progress=ConvoyProgress(completed=completed, total=len(tracked)),
                assignee=issue.assignee,
                created_at=issue.created_at,
                updated_at=issue.updated_at,
            )
        )
    return convoys
