"""
Pydantic response models for the Mission Control API.

These define the JSON shapes for all API endpoints and give us
automatic OpenAPI schema generation + Swagger UI.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .models import AgentRole, PollState

# ── Status (/api/status, /api/status/summary) ────────────────────────────────


class AgentResponse(BaseModel):
    """One agent in the fleet snapshot."""

    name: str
    address: str = ""
    session: str | None = None
    role: AgentRole = AgentRole.UNKNOWN
    running: bool = False
    has_work: bool = False
    unread_mail: int = 0
    first_subject: str | None = None
    rig: str | None = None


class StatusSnapshotResponse(BaseModel):
    """GET /api/status."""

    name: str
    agents: list[AgentResponse] = Field(default_factory=list)
    rigs: list[str] = Field(default_factory=list)


class RoleCountsResponse(BaseModel):
    total: int = 0
    running: int = 0
    with_work: int = 0
    unread_mail: int = 0


class StatusSummaryResponse(BaseModel):
    """GET /api/status/summary: fleet-wide and per-role totals."""

    total_agents: int = 0
    running_agents: int = 0
    agents_with_work: int = 0
    total_unread_mail: int = 0
    by_role: dict[str, RoleCountsResponse] = Field(default_factory=dict)


# ── Terminal activity ────────────────────────────────────────────────────────


class ActivityResponse(BaseModel):
    session: str
    name: str
    role: str
    activity: str
    duration: str | None = None
    tool: str | None = None


class ActivitiesResponse(BaseModel):
    """GET /api/agents/activity."""

    activities: list[ActivityResponse] = Field(default_factory=list)
    tmux_available: bool = False


class SessionOutputResponse(BaseModel):
    session: str
    output: str


# ── Mail (/api/mail/inbox) ───────────────────────────────────────────────────


class MailMessageResponse(BaseModel):
    """A message; ``sender`` is serialized as ``from``."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    sender: str = Field(serialization_alias="from")
    to: str
    subject: str
    body: str = ""
    timestamp: str = ""
    read: bool = True


class MailboxResponse(BaseModel):
    messages: list[MailMessageResponse] = Field(default_factory=list)
    unread_count: int = 0


# ── Merge queues and refineries ──────────────────────────────────────────────


class QueueItemResponse(BaseModel):
    id: str
    branch: str | None = None
    title: str | None = None


class MergeQueueResponse(BaseModel):
    """GET /api/merge-queue/{rig}."""

    count: int = 0
    items: list[QueueItemResponse] = Field(default_factory=list)


class RefineryResponse(BaseModel):
    id: str
    name: str
    rig: str
    status: str = "idle"
    agent_state: str = "idle"
    queue_depth: int = 0
    queue_items: list[QueueItemResponse] = Field(default_factory=list)


# ── Issues and convoys ───────────────────────────────────────────────────────


class IssueResponse(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    status: str = "open"
    priority: int | None = None
    issue_type: str = "task"
    assignee: str | None = None
    labels: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


class ConvoyProgressResponse(BaseModel):
    completed: int = 0
    total: int = 0


class ConvoyResponse(BaseModel):
    id: str
    title: str
    status: str = "active"
    issues: list[str] = Field(default_factory=list)
    progress: ConvoyProgressResponse = Field(default_factory=ConvoyProgressResponse)
    assignee: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


# ── Control and server metadata ──────────────────────────────────────────────


class ResolvedRootResponse(BaseModel):
    """GET /api/root."""

    path: str
    bin_search_dirs: list[str] = Field(default_factory=list)
    issues_path: str = ""


class ActionResponse(BaseModel):
    """Result of a POST action endpoint."""

    success: bool
    message: str = ""
    output: str | None = None
    details: str | None = None
    can_force: bool = False


class PollerResponse(BaseModel):
    """GET /api/poller: state of the background status poller."""

    state: PollState
    enabled: bool
    interval: float
    is_loading: bool
    error: str | None = None
    updated_at: float | None = None
    fetch_count: int = 0
    summary: StatusSummaryResponse = Field(default_factory=StatusSummaryResponse)


class ServerInfoResponse(BaseModel):
    """Server metadata from GET /api/server-info."""

    pid: int
    port: str
    version: str = ""
