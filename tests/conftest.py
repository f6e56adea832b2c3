"""Shared pytest fixtures for the test suite."""

import asyncio
import json

import pytest

from mission_control.errors import ExecutionFailure
from mission_control.models import CommandResult
from mission_control.root_resolver import RootResolver


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeRunner:
    """Stands in for CommandRunner: records argv and replays scripted output.

    ``responses`` maps an argv tuple to stdout text, or to an exception to
    raise. Unknown commands fail like a missing binary. When ``gate`` is set,
    every call blocks until the event fires.
    """

    def __init__(self, responses=None, available=("gt", "tmux")):
        self.responses = dict(responses or {})
        self.available = set(available)
        self.calls = []
        self.gate = None

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.available else None

    async def execute(self, argv, *, timeout=10.0, cwd=None):
        argv = tuple(argv)
        self.calls.append(argv)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        response = self.responses.get(argv)
        if response is None:
            raise ExecutionFailure(" ".join(argv), 127, stderr="command not found")
        if isinstance(response, BaseException):
            raise response
        return CommandResult(stdout=response)

    def count(self, *argv):
        return self.calls.count(tuple(argv))


STATUS_ARGV = ("gt", "status", "--json")

STATUS_JSON = json.dumps(
    {
        "name": "Test Town",
        "agents": [
            {"name": "mayor", "address": "mayor/", "session": "gt-mayor", "running": True},
            {"name": "deacon", "address": "deacon/", "session": "gt-deacon", "running": False},
        ],
        "rigs": [
            {
                "name": "editor",
                "agents": [
                    {
                        "name": "witness",
                        "address": "editor/witness",
                        "session": "gt-editor-witness",
                        "running": True,
                    },
                    {
                        "name": "Toast",
                        "address": "editor/polecats/Toast",
                        "session": "gt-editor-Toast",
                        "role": "polecat",
                        "running": True,
                        "has_work": True,
                        "unread_mail": 2,
                        "first_subject": "Fix the build",
                    },
                    {
                        "name": "Emma",
                        "address": "editor/crew/Emma",
                        "session": "gt-editor-Emma",
                        "role": "crew",
                        "running": False,
                        "unread_mail": 1,
                    },
                ],
            }
        ],
    }
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def runner():
    return FakeRunner({STATUS_ARGV: STATUS_JSON})


@pytest.fixture
def workspace(tmp_path):
    """A fleet root with the .gt marker and an empty issue store."""
    root = tmp_path / "town"
    (root / ".gt").mkdir(parents=True)
    (root / ".beads").mkdir()
    (root / ".beads" / "issues.jsonl").write_text("", encoding="utf-8")
    return root


@pytest.fixture
def resolver(workspace, tmp_path):
    """Resolver pinned to ``workspace`` through the environment override."""
    return RootResolver(
        config_path=str(tmp_path / "missing-config.json"),
        env={"GT_BASE_PATH": str(workspace), "PATH": "/usr/bin"},
    )


def write_issues(workspace, issues):
    """Write issue dicts to the workspace's issues.jsonl."""
    path = workspace / ".beads" / "issues.jsonl"
    with open(path, "w", encoding="utf-8") as f:
        for issue in issues:
            f.write(json.dumps(issue) + "\n")
    return str(path)
