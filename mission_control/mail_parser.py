"""Parse ``gt mail inbox`` output.

``--json`` output is preferred. Older ``gt`` builds only print text, one
message per line, in either of two layouts::

    [unread] mayor: Budget review
    abc123 | deacon | Status update | 2025-01-01

Lines in neither layout are dropped.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from functools import partial
from typing import Any

from .models import Mailbox, MailMessage
from .rules import first_match

logger = logging.getLogger(__name__)

_FROM_SUBJECT_RE = re.compile(r"^\s*(\[unread\])?\s*(\S+):\s*(.+)")
_PIPE_RE = re.compile(r"^\s*(\S+)\s*\|\s*(\S+)\s*\|\s*(.+?)\s*\|\s*(.+)")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _from_json(index: int, raw: Any, address: str) -> MailMessage:
    msg = raw if isinstance(raw, dict) else {}
    read = msg.get("read")
    return MailMessage(
        id=str(msg.get("id") or f"msg-{index}"),
        sender=str(msg.get("from") or "unknown"),
        to=str(msg.get("to") or address),
        subject=str(msg.get("subject") or "(no subject)"),
        body=str(msg.get("body") or msg.get("content") or ""),
        timestamp=str(msg.get("timestamp") or msg.get("date") or _now_iso()),
        read=bool(read) if read is not None else not msg.get("unread"),
    )


def _from_subject_rule(line: str, *, index: int, address: str) -> MailMessage | None:
    match = _FROM_SUBJECT_RE.match(line)
    if not match:
        return None
    return MailMessage(
        id=f"msg-{index}",
        sender=match.group(2),
        to=address,
        subject=match.group(3),
        timestamp=_now_iso(),
        read=match.group(1) is None,
    )


def _pipe_rule(line: str, *, index: int, address: str) -> MailMessage | None:
    match = _PIPE_RE.match(line)
    if not match:
        return None
    return MailMessage(
        id=match.group(1),
        sender=match.group(2),
        to=address,
        subject=match.group(3),
        timestamp=match.group(4).strip(),
        read=True,
    )


_LINE_RULES = (_from_subject_rule, _pipe_rule)


def parse_text_inbox(text: str, address: str) -> Mailbox:
    """Scan plain-text inbox lines."""
    lines = [line for line in text.splitlines() if line.strip()]
    messages: list[MailMessage] = []
    for i, line in enumerate(lines):
        rules = [partial(rule, index=i, address=address) for rule in _LINE_RULES]
        msg = first_match(rules, line)
        if msg:
            messages.append(msg)
    return Mailbox(messages=messages, unread_count=sum(1 for m in messages if not m.read))


def parse_inbox(text: str, address: str) -> Mailbox:
    """Parse inbox output in any supported format. Never raises."""
    text = text or ""
    try:
        data = json.loads(text.strip() or "[]")
    except ValueError:
        return parse_text_inbox(text, address)

    if not isinstance(data, list):
        logger.debug("Inbox JSON for %s is not a list; treating as empty", address)
        return Mailbox()
    messages = [_from_json(i, raw, address) for i, raw in enumerate(data)]
    return Mailbox(messages=messages, unread_count=sum(1 for m in messages if not m.read))
