"""Typed data models for Mission Control."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class AgentRole(str, Enum):
    """What an agent does in the fleet. Never left ambiguous: unknown is a value."""

    COORDINATOR = "coordinator"
    HEALTH_CHECKER = "health_checker"
    PATROL = "patrol"
    WORKER = "worker"
    CREW_MEMBER = "crew_member"
    UNKNOWN = "unknown"


class PollState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    FETCHING = "fetching"


@dataclass
class Agent:
    """One monitored agent as reported by ``gt status --json``."""

    name: str
    address: str = ""
    session: str | None = None
    role: AgentRole = AgentRole.UNKNOWN
    running: bool = False
    has_work: bool = False
    unread_mail: int = 0
    first_subject: str | None = None
    rig: str | None = None


@dataclass
class StatusSnapshot:
    """One internally consistent read of the fleet."""

    name: str
    agents: list[Agent] = field(default_factory=list)
    rigs: list[str] = field(default_factory=list)


@dataclass
class RoleCounts:
    total: int = 0
    running: int = 0
    with_work: int = 0
    unread_mail: int = 0


@dataclass
class StatusSummary:
    """Aggregate counts over a snapshot, overall and per role."""

    total_agents: int = 0
    running_agents: int = 0
    agents_with_work: int = 0
    total_unread_mail: int = 0
    by_role: dict[str, RoleCounts] = field(default_factory=dict)


@dataclass
class CacheEntry(Generic[T]):
    """A cached value and when it was stored (monotonic seconds)."""

    value: T
    timestamp: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp < self.ttl


@dataclass
class ActivityClassification:
    """What an agent's terminal shows it doing right now."""

    activity: str
    duration: str | None = None
    tool: str | None = None


@dataclass
class AgentActivity:
    session: str
    name: str
    role: str
    activity: str
    duration: str | None = None
    tool: str | None = None


@dataclass
class QueueItem:
    """A row of a merge-queue listing."""

    id: str
    branch: str | None = None
    title: str | None = None


@dataclass
class MergeQueue:
    count: int = 0
    items: list[QueueItem] = field(default_factory=list)


@dataclass
class MailMessage:
    id: str
    sender: str
    to: str
    subject: str
    body: str = ""
    timestamp: str = ""
    read: bool = True


@dataclass
class Mailbox:
    messages: list[MailMessage] = field(default_factory=list)
    unread_count: int = 0


@dataclass
class RefineryDescriptor:
    """Refinery fields recovered from an agent issue's free-text description."""

    id: str
    name: str
    rig: str = ""
    status: str = "idle"  # 'processing' | 'error' | 'idle'
    agent_state: str = "idle"


@dataclass
class Refinery:
    id: str
    name: str
    rig: str
    status: str = "idle"
    agent_state: str = "idle"
    queue_depth: int = 0
    queue_items: list[QueueItem] = field(default_factory=list)


@dataclass
class Issue:
    """One record of the beads issue store."""

    id: str
    title: str = ""
    description: str = ""
    status: str = "open"
    priority: int | None = None
    issue_type: str = "task"
    assignee: str | None = None
    labels: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class ConvoyProgress:
    completed: int = 0
    total: int = 0


@dataclass
class Convoy:
    """A tracked batch of issues."""

    id: str
    title: str
    status: str = "active"  # 'active' | 'completed' | 'stalled'
    issues: list[str] = field(default_factory=list)
    progress: ConvoyProgress = field(default_factory=ConvoyProgress)
    assignee: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class DashboardConfig:
    """Contents of ~/.mission-control/config.json that the backend reads."""

    gt_base_path: str | None = None
    bin_paths: list[str] = field(default_factory=list)


@dataclass
class ResolvedRoot:
    path: str
    bin_search_dirs: list[str] = field(default_factory=list)


@dataclass
class CommandResult:
    stdout: str = ""
    stderr: str = ""
