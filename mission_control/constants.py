"""
Centralised constants for the Mission Control backend.

All magic numbers, timeouts, file-system paths, and terminal glyphs live
here so they are easy to find, tune, and test.
"""

from __future__ import annotations

import os

# ── Network & server ──────────────────────────────────────────────────────────

DEFAULT_PORT = 5112
"""Default HTTP port for the dashboard server."""

LOCALHOST = "127.0.0.1"
"""Bind address. The dashboard is local-only."""

POLL_INTERVAL_ENV_VAR = "MISSION_CONTROL_POLL_INTERVAL"
"""Hands the CLI's --poll-interval to the server process."""

# ── File-system paths & workspace discovery ──────────────────────────────────

CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".mission-control")
CONFIG_PATH = os.path.join(CONFIG_DIR, "config.json")

ROOT_ENV_VAR = "GT_BASE_PATH"
"""Environment override for the fleet root. Always wins when set."""

WORKSPACE_MARKER = ".gt"
"""Directory whose presence marks the root of a fleet workspace."""

MAX_ROOT_SEARCH_DEPTH = 10
"""How many ancestors of cwd to check for the workspace marker."""

ISSUES_FILE = os.path.join(".beads", "issues.jsonl")
"""Issue store, relative to the resolved root."""

# ── Cache & polling intervals (seconds) ──────────────────────────────────────

STATUS_CACHE_TTL = 5.0
"""How long a ``gt status --json`` result stays fresh. Matches DEFAULT_POLL_INTERVAL."""

DEFAULT_POLL_INTERVAL = 5.0
"""Default interval between timer-driven polls."""

MAIL_CACHE_TTL = 10.0
"""Mailbox cache lifetime; mail is polled half as often as status."""

ISSUES_CACHE_TTL = 5.0
"""Issue/convoy/refinery cache lifetime."""

# ── Subprocess timeouts (seconds) ────────────────────────────────────────────

DEFAULT_COMMAND_TIMEOUT = 10.0
"""Timeout applied when a caller does not pass one."""

STATUS_TIMEOUT = 15.0
"""Timeout for the global ``gt status --json`` call."""

MAIL_TIMEOUT = 10.0
MERGE_QUEUE_TIMEOUT = 5.0
CAPTURE_TIMEOUT = 3.0
"""Timeout for a single ``tmux capture-pane``."""

SESSION_OUTPUT_TIMEOUT = 5.0
NUKE_TIMEOUT = 30.0
"""Destroying a worker touches worktrees and branches; give it longer."""

# ── Commands ─────────────────────────────────────────────────────────────────

GT_BINARY = "gt"
TMUX_BINARY = "tmux"
STATUS_COMMAND = (GT_BINARY, "status", "--json")
EMPTY_JSON = "{}"
"""Fed to the status parser when the status command itself failed."""

DEFAULT_FLEET_NAME = "Gas Town"
DEFAULT_MAIL_ADDRESS = "overseer"
MISSING_BINARY_EXIT_CODE = 127

SAFE_NAME_PATTERN = r"^[A-Za-z0-9_][A-Za-z0-9_-]*$"
"""Names interpolated into commands must match this. No leading dash, so never a flag."""

SAFETY_CHECK_MARKERS: tuple[str, ...] = (
    "uncommitted",
    "unpushed",
    "merge request",
    "work on hook",
    "safety check",
)
"""Substrings in a failed nuke's output that mean the tool refused on purpose."""

NOT_FOUND_MARKERS: tuple[str, ...] = ("not found", "does not exist")

# ── Terminal activity classification ─────────────────────────────────────────

CAPTURE_TAIL_LINES = 20
"""Scrollback lines kept from each pane capture."""

THINKING_GLYPHS = "✻✶✢"
TOOL_GLYPH = "⏺"
PROMPT_GLYPH = "❯"
RUNNING_MARKERS: tuple[str, ...] = ("Running…", "Running...")

TOOL_ARGS_MAX_LEN = 50
"""Tool arguments longer than this are cut and suffixed with '...'."""

WAITING_CONTENT_MAX_LEN = 80
WAITING_CONTENT_LINES = 3
LAST_LINE_MAX_LEN = 60

CHROME_PREFIXES: tuple[str, ...] = ("─", "│", "╭", "╰")
"""Line prefixes that are box drawing, not content."""

CHROME_SUBSTRINGS: tuple[str, ...] = (
    "bypass permissions",
    "shift+tab",
    "⏵⏵",
    "/ide for",
)
"""Status-bar hints shown below the prompt."""

SEPARATOR_MARKER = "───"

# ── Descriptor fields ────────────────────────────────────────────────────────

REFINERY_ROLE_TYPE = "refinery"
AGENT_ISSUE_TYPE = "agent"
CONVOY_ISSUE_TYPE = "convoy"

AGENT_STATE_TO_STATUS: dict[str, str] = {
    "active": "processing",
    "error": "error",
    "idle": "idle",
}
"""Maps a descriptor's ``agent_state`` to a refinery status. Anything else is idle."""
