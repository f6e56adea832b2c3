"""Parse the table printed by ``gt mq list <rig>``.

Example::

    📋 Merge queue for 'editor_gt5':
    ID             SCORE PRI  CONVOY       BRANCH                   STATUS        AGE
    ─────────────────────────────────────────────────────────────────────────────────
    e5-pmc7       1202.8 P2   (none)       crew/Emma5               ready          2h
"""

from __future__ import annotations

import re

from .models import MergeQueue, QueueItem

_SKIP_PREFIXES = ("ID", "─", "📋")

# ID  SCORE  PRI  CONVOY  BRANCH  STATUS ...
_ROW_RE = re.compile(r"^(\S+)\s+[\d.]+\s+\S+\s+\S+\s+(\S+)\s+(\S+)")


def parse_queue_row(line: str) -> QueueItem | None:
    """Parse one data row; the status column is used as the title."""
    trimmed = line.strip()
    if not trimmed or trimmed.startswith(_SKIP_PREFIXES):
        return None
    match = _ROW_RE.match(trimmed)
    if not match:
        return None
    return QueueItem(id=match.group(1), branch=match.group(2), title=match.group(3))


def parse_merge_queue(text: str) -> MergeQueue:
    items = [item for item in map(parse_queue_row, (text or "").splitlines()) if item]
    return MergeQueue(count=len(items), items=items)
