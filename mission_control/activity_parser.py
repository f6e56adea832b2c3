"""
Classify what an agent is doing from the tail of its tmux pane.

The pane shows an interactive coding-agent UI. In priority order we look for:

1. a thinking spinner:   ``✻ Reticulating… (ctrl+c to interrupt · 1m 12s)``
2. a tool invocation:    ``⏺ Bash(npm test)``
3. a running command:    ``Running…``
4. an idle prompt ``❯`` with the last few lines of the agent's reply above it
5. the last non-empty line
6. nothing at all

Every input, including an empty buffer, yields exactly one classification.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from .constants import (
    CHROME_PREFIXES,
    CHROME_SUBSTRINGS,
    LAST_LINE_MAX_LEN,
    PROMPT_GLYPH,
    RUNNING_MARKERS,
    SEPARATOR_MARKER,
    THINKING_GLYPHS,
    TOOL_ARGS_MAX_LEN,
    TOOL_GLYPH,
    WAITING_CONTENT_LINES,
    WAITING_CONTENT_MAX_LEN,
)
from .models import ActivityClassification
from .rules import first_match, scan

_THINKING_RE = re.compile(
    rf"[{THINKING_GLYPHS}]\s+(.+?)\s*(?:…|\.\.\.)\s*"
    r"(?:\((?:ctrl\+c to interrupt\s*·\s*)?(\d+m?\s*\d*s?))?"
)
_TOOL_RE = re.compile(rf"{TOOL_GLYPH}\s+(\w+)\((.+?)\)")
_LOGO_RE = re.compile(r"^[▐▛▜▘▝]+$")

NO_OUTPUT = "No output"
AT_PROMPT = "At prompt"
RUNNING_COMMAND = "Running command..."


def _truncate(text: str, limit: int) -> str:
    """Cut to ``limit`` characters, ellipsis included."""
    return text if len(text) <= limit else text[: limit - 3] + "..."


# ── Per-line rules, tried on each line from newest to oldest ──────────────────


def thinking_rule(line: str) -> ActivityClassification | None:
    match = _THINKING_RE.search(line)
    if not match:
        return None
    duration = match.group(2)
    return ActivityClassification(
        activity=match.group(1).strip(),
        duration=duration.strip() if duration else None,
    )


def tool_rule(line: str) -> ActivityClassification | None:
    match = _TOOL_RE.search(line)
    if not match:
        return None
    tool, args = match.group(1), match.group(2)
    if len(args) > TOOL_ARGS_MAX_LEN:
        args = args[:TOOL_ARGS_MAX_LEN] + "..."
    return ActivityClassification(activity=f"{tool}: {args}", tool=tool)


def running_rule(line: str) -> ActivityClassification | None:
    if any(marker in line for marker in RUNNING_MARKERS):
        return ActivityClassification(activity=RUNNING_COMMAND)
    return None


LINE_RULES = (thinking_rule, tool_rule, running_rule)


# ── Whole-buffer rules ────────────────────────────────────────────────────────


def _is_chrome(trimmed: str) -> bool:
    if not trimmed:
        return True
    if trimmed.startswith(CHROME_PREFIXES):
        return True
    if any(s in trimmed for s in CHROME_SUBSTRINGS):
        return True
    if _LOGO_RE.match(trimmed):
        return True
    return trimmed.startswith(PROMPT_GLYPH) and len(trimmed) < 3


def active_rule(lines: Sequence[str]) -> ActivityClassification | None:
    return scan(LINE_RULES, reversed(lines))


def prompt_rule(lines: Sequence[str]) -> ActivityClassification | None:
    """Idle at the prompt: summarize the reply that preceded it."""
    output = "\n".join(lines)
    busy_glyphs = THINKING_GLYPHS + TOOL_GLYPH
    if PROMPT_GLYPH not in output or any(g in output for g in busy_glyphs):
        return None
    content = [line.strip() for line in lines if not _is_chrome(line.strip())]
    last = " ".join(content[-WAITING_CONTENT_LINES:]).strip()
    if last:
        return ActivityClassification(activity=f"Waiting: {_truncate(last, WAITING_CONTENT_MAX_LEN)}")
    return ActivityClassification(activity=AT_PROMPT)


def last_line_rule(lines: Sequence[str]) -> ActivityClassification | None:
    for line in reversed(lines):
        if line.strip() and SEPARATOR_MARKER not in line:
            return ActivityClassification(activity=line.strip()[:LAST_LINE_MAX_LEN])
    return None


BUFFER_RULES = (active_rule, prompt_rule, last_line_rule)


def classify_activity(lines: Sequence[str]) -> ActivityClassification:
    """Classify a scrollback buffer, oldest line first."""
    return first_match(BUFFER_RULES, list(lines)) or ActivityClassification(activity=NO_OUTPUT)


def classify_output(text: str) -> ActivityClassification:
    return classify_activity((text or "").split("\n"))
