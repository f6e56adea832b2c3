"""
Mission Control: FastAPI web application.

Serves a live view of the agent fleet:
  - Fleet status and per-role summary
  - What each agent's terminal is doing right now
  - Mailboxes, merge queues, refineries, issues and convoys
  - Guarded worker teardown
  - Auto-generated OpenAPI docs at /docs
"""

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .__version__ import __version__
from .constants import DEFAULT_MAIL_ADDRESS, DEFAULT_POLL_INTERVAL, POLL_INTERVAL_ENV_VAR
from .errors import (
    CoalescedFetchFailure,
    ExecutionError,
    ExecutionFailure,
    InvalidName,
    SafetyCheckRefused,
)
from .fleet_monitor import FleetMonitor, is_not_found
from .models import StatusSnapshot
from .polling import PollingController
from .schemas import (
    ActionResponse,
    ActivitiesResponse,
    AgentResponse,
    ConvoyResponse,
    IssueResponse,
    MailboxResponse,
    MergeQueueResponse,
    PollerResponse,
    RefineryResponse,
    ResolvedRootResponse,
    ServerInfoResponse,
    SessionOutputResponse,
    StatusSnapshotResponse,
    StatusSummaryResponse,
)
from .status_parser import empty_snapshot, summarize

logger = logging.getLogger(__name__)

# ── Shared state ─────────────────────────────────────────────────────────────


def _poll_interval_from_env() -> float:
    raw = os.environ.get(POLL_INTERVAL_ENV_VAR)
    if not raw:
        return DEFAULT_POLL_INTERVAL
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring bad %s=%r", POLL_INTERVAL_ENV_VAR, raw)
        return DEFAULT_POLL_INTERVAL


monitor = FleetMonitor()


async def _poll_status() -> StatusSnapshot:
    snapshot = await monitor.status()
    if snapshot is None:
        raise CoalescedFetchFailure("Fleet status unavailable")
    return snapshot


poller: PollingController[StatusSnapshot] = PollingController(
    _poll_status, interval=_poll_interval_from_env(), empty=empty_snapshot
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Keep the status cache warm while the server is up."""
    poller.enable()
    try:
        yield
    finally:
        poller.disable()


# ── App setup ────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Mission Control",
    version=__version__,
    description="Live status of an agent fleet: agents, activity, mail and merge queues.",
    lifespan=lifespan,
)


@app.exception_handler(InvalidName)
async def invalid_name_handler(_request: Request, exc: InvalidName):
    return JSONResponse({"error": str(exc)}, status_code=400)


def _error(message: str, status_code: int, details: str | None = None) -> JSONResponse:
    body = {"error": message}
    if details:
        body["details"] = details
    return JSONResponse(body, status_code=status_code)


# ── Status routes ────────────────────────────────────────────────────────────


@app.get("/api/status", response_model=StatusSnapshotResponse)
async def api_status():
    """Current fleet snapshot (cached, shared with every other consumer)."""
    snapshot = await monitor.status()
    if snapshot is None:
        return _error("Fleet status unavailable", 503)
    return asdict(snapshot)


@app.get("/api/status/summary", response_model=StatusSummaryResponse)
async def api_status_summary():
    summary = await monitor.summary()
    if summary is None:
        return _error("Fleet status unavailable", 503)
    return asdict(summary)


@app.get("/api/workers", response_model=list[AgentResponse])
async def api_workers():
    return [asdict(a) for a in await monitor.workers()]


@app.get("/api/witnesses", response_model=list[AgentResponse])
async def api_witnesses():
    return [asdict(a) for a in await monitor.witnesses()]


@app.get("/api/crew", response_model=list[AgentResponse])
async def api_crew():
    return [asdict(a) for a in await monitor.crew()]


# ── Terminal routes ──────────────────────────────────────────────────────────


@app.get("/api/agents/activity", response_model=ActivitiesResponse)
async def api_activity():
    """What every running agent's terminal shows right now."""
    activities = await monitor.activities()
    return {
        "activities": [asdict(a) for a in activities],
        "tmux_available": monitor.tmux_available(),
    }


@app.get("/api/sessions/{session}/output", response_model=SessionOutputResponse)
async def api_session_output(session: str):
    return {"session": session, "output": await monitor.session_output(session)}


# ── Mail, queues, issues ─────────────────────────────────────────────────────


@app.get("/api/mail/inbox", response_model=MailboxResponse)
async def api_mail_inbox(address: str = DEFAULT_MAIL_ADDRESS):
    return asdict(await monitor.mailbox(address))


@app.get("/api/merge-queue/{rig}", response_model=MergeQueueResponse)
async def api_merge_queue(rig: str):
    return asdict(await monitor.merge_queue(rig))


@app.get("/api/refineries", response_model=list[RefineryResponse])
async def api_refineries():
    return [asdict(r) for r in await monitor.refineries()]


@app.get("/api/issues", response_model=list[IssueResponse])
async def api_issues():
    return [asdict(i) for i in await monitor.issues()]


@app.get("/api/convoys", response_model=list[ConvoyResponse])
async def api_convoys():
    return [asdict(c) for c in await monitor.convoys()]


# ── Control routes ───────────────────────────────────────────────────────────


@app.post("/api/workers/{rig}/{name}/nuke", response_model=ActionResponse)
async def api_nuke_worker(rig: str, name: str, force: bool = False):
    """Tear down a worker. Refused without ``force`` if it has unsaved work."""
    try:
        result = await monitor.nuke_worker(rig, name, force=force)
    except SafetyCheckRefused as e:
        return JSONResponse(
            {"success": False, "message": str(e), "details": e.details, "can_force": True},
            status_code=400,
        )
    except ExecutionFailure as e:
        status_code = 404 if is_not_found(e) else 500
        return JSONResponse(
            {"success": False, "message": str(e), "details": e.output or None},
            status_code=status_code,
        )
    except ExecutionError as e:
        return JSONResponse({"success": False, "message": str(e)}, status_code=500)
    return {"success": True, "message": f"Nuked {rig}/{name}", "output": result.stdout}


@app.post("/api/cache/invalidate", response_model=ActionResponse)
async def api_invalidate():
    monitor.invalidate()
    return {"success": True, "message": "Caches cleared"}


@app.get("/api/root", response_model=ResolvedRootResponse)
async def api_root():
    """Where ``gt`` commands run and where binaries are searched for."""
    root = monitor.resolver.resolved()
    return {**asdict(root), "issues_path": monitor.issues_path()}


@app.post("/api/root/reset", response_model=ResolvedRootResponse)
async def api_root_reset():
    """Forget the memoized root (e.g. after editing the config file)."""
    monitor.reset_root()
    return await api_root()


# ── Poller ───────────────────────────────────────────────────────────────────


def _poller_state() -> dict:
    return {
        "state": poller.state,
        "enabled": poller.enabled,
        "interval": poller.interval,
        "is_loading": poller.is_loading,
        "error": str(poller.error) if poller.error else None,
        "updated_at": poller.updated_at,
        "fetch_count": poller.fetch_count,
        "summary": asdict(summarize(poller.data)),
    }


@app.get("/api/poller", response_model=PollerResponse)
async def api_poller():
    """State of the background status poller and its last good data."""
    return _poller_state()


@app.post("/api/poller/refresh", response_model=PollerResponse)
async def api_poller_refresh():
    await poller.refresh()
    return _poller_state()


@app.get("/api/server-info", response_model=ServerInfoResponse)
def server_info(request: Request):
    """Return server metadata including PID."""
    host = request.headers.get("host", "localhost:5112")
    return {"pid": os.getpid(), "port": host.split(":")[-1], "version": __version__}
