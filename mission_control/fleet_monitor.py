"""
Fleet data sources behind the API.

FleetMonitor turns ``gt``/``tmux`` commands and the issue store into typed
collections. Status goes through the StatusCoalescer; every other resource
has its own ClientCache.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from collections.abc import Callable

from .activity_parser import classify_activity
from .client_cache import ClientCache
from .command_runner import CommandRunner
from .constants import (
    CAPTURE_TAIL_LINES,
    CAPTURE_TIMEOUT,
    DEFAULT_MAIL_ADDRESS,
    GT_BINARY,
    ISSUES_CACHE_TTL,
    ISSUES_FILE,
    MAIL_CACHE_TTL,
    MAIL_TIMEOUT,
    MERGE_QUEUE_TIMEOUT,
    NOT_FOUND_MARKERS,
    NUKE_TIMEOUT,
    SAFE_NAME_PATTERN,
    SAFETY_CHECK_MARKERS,
    SESSION_OUTPUT_TIMEOUT,
    STATUS_CACHE_TTL,
    TMUX_BINARY,
)
from .descriptor_parser import parse_refinery
from .errors import ExecutionError, ExecutionFailure, InvalidName, SafetyCheckRefused
from .issue_parser import build_convoys, parse_issues
from .mail_parser import parse_inbox
from .models import (
    Agent,
    AgentActivity,
    AgentRole,
    CommandResult,
    Convoy,
    Issue,
    Mailbox,
    MergeQueue,
    Refinery,
    StatusSnapshot,
    StatusSummary,
)
from .queue_parser import parse_merge_queue
from .root_resolver import RootResolver
from .status_coalescer import StatusCoalescer
from .status_parser import summarize

logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(SAFE_NAME_PATTERN)
_MAIL_ADDRESS_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_./@-]*$")


def validate_name(name: str, what: str = "name") -> str:
    """Reject names that could smuggle flags or paths into a command."""
    if not isinstance(name, str) or not _SAFE_NAME_RE.match(name):
        raise InvalidName(f"Invalid {what}: {name!r}")
    return name


def is_not_found(error: ExecutionFailure) -> bool:
    """Whether a failed command complained about a missing target."""
    text = f"{error} {error.output}".lower()
    return any(marker in text for marker in NOT_FOUND_MARKERS)


class FleetMonitor:
    """Typed, cached access to everything the dashboard shows."""

    def __init__(
        self,
        resolver: RootResolver | None = None,
        runner: CommandRunner | None = None,
        coalescer: StatusCoalescer | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        enable_cache: bool = True,
    ):
        self.resolver = resolver or RootResolver()
        self.runner = runner or CommandRunner(self.resolver)
        self.coalescer = coalescer or StatusCoalescer(self.runner, clock=clock)
        self._tmux_available: bool | None = None

        def cache(fetch, ttl, empty):
            return ClientCache(fetch, ttl=ttl, empty=empty, enabled=enable_cache, clock=clock)

        self._issues: ClientCache[list[Issue]] = cache(self._load_issues, ISSUES_CACHE_TTL, list)
        self._convoys: ClientCache[list[Convoy]] = cache(self._load_convoys, ISSUES_CACHE_TTL, list)
        self._refineries: ClientCache[list[Refinery]] = cache(
            self._load_refineries, ISSUES_CACHE_TTL, list
        )
        self._mail: ClientCache[Mailbox] = cache(self._load_mailbox, MAIL_CACHE_TTL, Mailbox)
        self._activities: ClientCache[list[AgentActivity]] = cache(
            self._load_activities, STATUS_CACHE_TTL, list
        )

    # ── Status ──────────────────────────────────────────────────────────────

    async def status(self) -> StatusSnapshot | None:
        return await self.coalescer.get()

    async def summary(self) -> StatusSummary | None:
        snapshot = await self.status()
        return summarize(snapshot) if snapshot is not None else None

    async def agents(self, role: AgentRole) -> list[Agent]:
        snapshot = await self.status()
        if snapshot is None:
            return []
        return [agent for agent in snapshot.agents if agent.role is role]

    async def workers(self) -> list[Agent]:
        return await self.agents(AgentRole.WORKER)

    async def witnesses(self) -> list[Agent]:
        return await self.agents(AgentRole.PATROL)

    async def crew(self) -> list[Agent]:
        return await self.agents(AgentRole.CREW_MEMBER)

    # ── Terminal activity ───────────────────────────────────────────────────

    def tmux_available(self) -> bool:
        if self._tmux_available is None:
            self._tmux_available = self.runner.which(TMUX_BINARY) is not None
        return self._tmux_available

    async def capture_pane(self, session: str) -> list[str]:
        """The last few non-blank scrollback lines of a session, oldest first."""
        result = await self.runner.execute(
            [TMUX_BINARY, "capture-pane", "-t", session, "-p"], timeout=CAPTURE_TIMEOUT
        )
        return result.stdout.rstrip().split("\n")[-CAPTURE_TAIL_LINES:]

    async def activity(self, agent: Agent) -> AgentActivity | None:
        if not agent.session:
            return None
        try:
            lines = await self.capture_pane(agent.session)
        except ExecutionError as e:
            logger.debug("No pane for %s: %s", agent.session, e)
            return None
        classified = classify_activity(lines)
        return AgentActivity(
            session=agent.session,
            name=agent.name,
            role=agent.role.value,
            activity=classified.activity,
            duration=classified.duration,
            tool=classified.tool,
        )

    async def activities(self) -> list[AgentActivity]:
        if not self.tmux_available():
            return []
        return await self._activities.get()

    async def _load_activities(self, _key) -> list[AgentActivity]:
        snapshot = await self.status()
        if snapshot is None:
            return []
        live = [a for a in snapshot.agents if a.session and a.running]
        results = await asyncio.gather(*(self.activity(a) for a in live))
        return [r for r in results if r is not None]

    async def session_output(self, session: str) -> str:
        """Raw pane contents, with ANSI escapes, for the session viewer."""
        validate_name(session, "session")
        try:
            result = await self.runner.execute(
                [TMUX_BINARY, "capture-pane", "-ep", "-t", session], timeout=SESSION_OUTPUT_TIMEOUT
            )
        except ExecutionError as e:
            logger.warning("tmux capture-pane failed for %s: %s", session, e)
            return (
                f"Unable to capture session for {session}.\n\n"
                "The agent may not have an active tmux session.\n\n"
                f"You can attach manually using: gt attach {session}"
            )
        return result.stdout or "(No output available)"

    # ── Mail ────────────────────────────────────────────────────────────────

    async def mailbox(self, address: str = DEFAULT_MAIL_ADDRESS) -> Mailbox:
        if not _MAIL_ADDRESS_RE.match(address or ""):
            raise InvalidName(f"Invalid mail address: {address!r}")
        return await self._mail.get(address)

    async def _load_mailbox(self, address: str) -> Mailbox:
        for argv in (
            [GT_BINARY, "mail", "inbox", address, "--json"],
            [GT_BINARY, "mail", "inbox", address],
        ):
            try:
                result = await self.runner.execute(argv, timeout=MAIL_TIMEOUT)
            except ExecutionError as e:
                logger.debug("Inbox command failed for %s: %s", address, e)
                continue
            return parse_inbox(result.stdout, address)
        logger.warning("Could not read inbox for %s", address)
        return Mailbox()

    # ── Issues, convoys, refineries ─────────────────────────────────────────

    def issues_path(self) -> str:
        return os.path.join(self.resolver.resolve(), ISSUES_FILE)

    def _read_issues_file(self) -> str | None:
        path = self.issues_path()
        if not os.path.exists(path):
            logger.debug("No issue store at %s", path)
            return None
        with open(path, encoding="utf-8", errors="replace") as f:
            return f.read()

    async def issues(self) -> list[Issue]:
        return await self._issues.get()

    async def _load_issues(self, _key) -> list[Issue] | None:
        try:
            content = await asyncio.to_thread(self._read_issues_file)
        except OSError as e:
            logger.warning("Could not read issue store: %s", e)
            return None
        return parse_issues(content) if content else None

    async def convoys(self) -> list[Convoy]:
        return await self._convoys.get()

    async def _load_convoys(self, _key) -> list[Convoy]:
        return build_convoys(await self.issues())

    async def merge_queue(self, rig: str) -> MergeQueue:
        validate_name(rig, "rig")
        try:
            result = await self.runner.execute(
                [GT_BINARY, "mq", "list", rig], timeout=MERGE_QUEUE_TIMEOUT
            )
        except ExecutionError as e:
            logger.warning("Error getting merge queue for %s: %s", rig, e)
            return MergeQueue()
        return parse_merge_queue(result.stdout)

    async def refineries(self) -> list[Refinery]:
        return await self._refineries.get()

    async def _load_refineries(self, _key) -> list[Refinery]:
        issues, snapshot = await asyncio.gather(self.issues(), self.status())
        descriptors = {}
        for descriptor in filter(None, map(parse_refinery, issues)):
            descriptors.setdefault(descriptor.rig, descriptor)

        rigs = list(snapshot.rigs) if snapshot else []
        rigs += [rig for rig in descriptors if rig and rig not in rigs]
        rigs = [rig for rig in rigs if _SAFE_NAME_RE.match(rig)]
        queues = await asyncio.gather(*(self.merge_queue(rig) for rig in rigs))

        refineries = []
        for rig, queue in zip(rigs, queues):
            descriptor = descriptors.get(rig)
            refineries.append(
                Refinery(
                    id=descriptor.id if descriptor else f"refinery-{rig}",
                    name=descriptor.name if descriptor else f"{rig} Refinery",
                    rig=rig,
                    status=descriptor.status if descriptor else "idle",
                    agent_state=descriptor.agent_state if descriptor else "idle",
                    queue_depth=queue.count,
                    queue_items=queue.items,
                )
            )
        return refineries

    # ── Control ─────────────────────────────────────────────────────────────

    async def nuke_worker(self, rig: str, name: str, force: bool = False) -> CommandResult:
        """Destroy a worker's session, worktree and branch.

        ``gt`` refuses when the worker has unsaved work; that refusal is
        raised as SafetyCheckRefused so the caller can offer ``force``.
        """
        validate_name(rig, "rig")
        validate_name(name, "worker name")
        argv = [GT_BINARY, "polecat", "nuke", f"{rig}/{name}"]
        if force:
            argv.append("--force")
        try:
            result = await self.runner.execute(argv, timeout=NUKE_TIMEOUT)
        except ExecutionFailure as e:
            text = f"{e} {e.output}".lower()
            if any(marker in text for marker in SAFETY_CHECK_MARKERS):
                raise SafetyCheckRefused(
                    f"Safety check failed for {name}. The worker has uncommitted work, "
                    "unpushed changes, or active merge requests.",
                    details=e.output or str(e),
                ) from e
            raise
        self.invalidate()
        return result

    def invalidate(self) -> None:
        """Drop every cached resource, status included."""
        self.coalescer.invalidate()
        for cache in (self._issues, self._convoys, self._refineries, self._mail, self._activities):
            cache.invalidate(all_keys=True)

    def reset_root(self) -> None:
        """Re-resolve the fleet root (after the config file changed)."""
        self.resolver.reset()
        self._tmux_available = None
        self.invalidate()


__all__ = ["FleetMonitor", "is_not_found", "validate_name"]
