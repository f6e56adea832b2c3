"""Tests for fleet_monitor.py: resources assembled from commands and the issue store."""

import json

import pytest

from mission_control.errors import ExecutionFailure, InvalidName, SafetyCheckRefused
from mission_control.fleet_monitor import FleetMonitor, is_not_found, validate_name
from mission_control.models import AgentRole

from .conftest import STATUS_ARGV, STATUS_JSON, FakeRunner, write_issues

MQ_TABLE = """\
ID             SCORE PRI  CONVOY       BRANCH                   STATUS        AGE
─────────────────────────────────────────────────────────────────────────────────
e5-pmc7       1202.8 P2   (none)       crew/Emma5               ready          2h
"""


def capture_argv(session):
    return ("tmux", "capture-pane", "-t", session, "-p")


@pytest.fixture
def monitor(resolver, runner, clock):
    return FleetMonitor(resolver, runner, clock=clock)


# ---------------------------------------------------------------------------
# validate_name / is_not_found
# ---------------------------------------------------------------------------


class TestValidateName:
    @pytest.mark.parametrize("name", ["editor", "Toast", "gt-editor_2"])
    def test_accepts_safe_names(self, name):
        assert validate_name(name) == name

    @pytest.mark.parametrize("name", ["", "-rf", "a b", "../x", "a;b", "editor/Toast", None])
    def test_rejects_unsafe_names(self, name):
        with pytest.raises(InvalidName):
            validate_name(name, "rig")

    def test_invalid_name_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_name("$(rm)")

    def test_is_not_found(self):
        assert is_not_found(ExecutionFailure("gt", 1, stderr="polecat Toast not found"))
        assert not is_not_found(ExecutionFailure("gt", 1, stderr="permission denied"))


# ---------------------------------------------------------------------------
# Status-derived views
# ---------------------------------------------------------------------------


class TestStatusViews:
    @pytest.mark.asyncio
    async def test_role_filters(self, monitor):
        assert [a.name for a in await monitor.workers()] == ["Toast"]
        assert [a.name for a in await monitor.witnesses()] == ["witness"]
        assert [a.name for a in await monitor.crew()] == ["Emma"]

    @pytest.mark.asyncio
    async def test_views_share_one_status_call(self, monitor, runner):
        await monitor.workers()
        await monitor.crew()
        await monitor.summary()
        assert runner.count(*STATUS_ARGV) == 1

    @pytest.mark.asyncio
    async def test_summary(self, monitor):
        summary = await monitor.summary()
        assert summary.total_agents == 5
        assert summary.by_role[AgentRole.WORKER.value].total == 1

    @pytest.mark.asyncio
    async def test_views_empty_when_status_unavailable(self, resolver, clock, monkeypatch):
        monitor = FleetMonitor(resolver, FakeRunner(), clock=clock)

        async def broken():
            return None

        monkeypatch.setattr(monitor.coalescer, "get", broken)
        assert await monitor.workers() == []
        assert await monitor.summary() is None


# ---------------------------------------------------------------------------
# Activities and session output
# ---------------------------------------------------------------------------


class TestActivities:
    @pytest.mark.asyncio
    async def test_captures_running_agents_with_sessions(self, monitor, runner):
        runner.responses[capture_argv("gt-mayor")] = "\n".join(
            ["planning", "⏺ Bash(gt convoy list)", "", ""]
        )
        runner.responses[capture_argv("gt-editor-Toast")] = "✻ Cogitating… (12s)\n"
        activities = await monitor.activities()

        by_name = {a.name: a for a in activities}
        # witness capture fails and is skipped; deacon and Emma are not running
        assert set(by_name) == {"mayor", "Toast"}
        assert by_name["mayor"].tool == "Bash"
        assert by_name["mayor"].role == "coordinator"
        assert by_name["Toast"].activity == "Cogitating"
        assert by_name["Toast"].duration == "12s"
        assert capture_argv("gt-deacon") not in runner.calls

    @pytest.mark.asyncio
    async def test_capture_keeps_last_lines(self, monitor, runner):
        runner.responses[capture_argv("s1")] = "\n".join(f"line {i}" for i in range(30)) + "\n\n\n"
        lines = await monitor.capture_pane("s1")
        assert len(lines) == 20
        assert lines[-1] == "line 29"
        assert lines[0] == "line 10"

    @pytest.mark.asyncio
    async def test_no_tmux_means_no_activities(self, resolver, clock):
        runner = FakeRunner({STATUS_ARGV: STATUS_JSON}, available=("gt",))
        monitor = FleetMonitor(resolver, runner, clock=clock)
        assert await monitor.activities() == []
        assert not monitor.tmux_available()
        assert not any(argv[0] == "tmux" for argv in runner.calls)

    @pytest.mark.asyncio
    async def test_session_output(self, monitor, runner):
        runner.responses[("tmux", "capture-pane", "-ep", "-t", "gt-mayor")] = "\x1b[1mhello\x1b[0m"
        assert await monitor.session_output("gt-mayor") == "\x1b[1mhello\x1b[0m"

    @pytest.mark.asyncio
    async def test_session_output_failure_explains(self, monitor):
        output = await monitor.session_output("gt-ghost")
        assert "Unable to capture session for gt-ghost" in output
        assert "gt attach gt-ghost" in output

    @pytest.mark.asyncio
    async def test_session_output_validates_name(self, monitor):
        with pytest.raises(InvalidName):
            await monitor.session_output("-t evil")


# ---------------------------------------------------------------------------
# Mail
# ---------------------------------------------------------------------------


class TestMailbox:
    @pytest.mark.asyncio
    async def test_json_inbox(self, monitor, runner):
        runner.responses[("gt", "mail", "inbox", "overseer", "--json")] = json.dumps(
            [{"id": "m1", "from": "mayor", "subject": "Hi", "read": False}]
        )
        box = await monitor.mailbox()
        assert box.unread_count == 1
        assert box.messages[0].to == "overseer"

    @pytest.mark.asyncio
    async def test_falls_back_to_text(self, monitor, runner):
        runner.responses[("gt", "mail", "inbox", "mayor/")] = "[unread] deacon: Patrol report\n"
        box = await monitor.mailbox("mayor/")
        assert box.messages[0].sender == "deacon"
        assert ("gt", "mail", "inbox", "mayor/", "--json") in runner.calls

    @pytest.mark.asyncio
    async def test_both_commands_failing_gives_empty_mailbox(self, monitor):
        box = await monitor.mailbox("overseer")
        assert box.messages == []

    @pytest.mark.asyncio
    async def test_cached_per_address(self, monitor, runner, clock):
        runner.responses[("gt", "mail", "inbox", "overseer", "--json")] = "[]"
        first = await monitor.mailbox()
        clock.advance(9.0)
        assert await monitor.mailbox() is first
        clock.advance(1.0)
        assert await monitor.mailbox() is not first

    @pytest.mark.asyncio
    async def test_rejects_flag_like_address(self, monitor):
        with pytest.raises(InvalidName):
            await monitor.mailbox("--all")


# ---------------------------------------------------------------------------
# Issues, convoys, merge queues, refineries
# ---------------------------------------------------------------------------


class TestIssueStore:
    @pytest.mark.asyncio
    async def test_reads_issues_from_root(self, monitor, workspace):
        write_issues(workspace, [{"id": "gt-1", "title": "One"}, {"id": "gt-2", "title": "Two"}])
        assert [i.id for i in await monitor.issues()] == ["gt-1", "gt-2"]

    @pytest.mark.asyncio
    async def test_missing_store_is_empty(self, monitor, workspace):
        (workspace / ".beads" / "issues.jsonl").unlink()
        assert await monitor.issues() == []

    @pytest.mark.asyncio
    async def test_convoys(self, monitor, workspace):
        write_issues(
            workspace,
            [
                {"id": "cv-1", "title": "Launch", "issue_type": "convoy", "dependencies": ["gt-1", "gt-2"]},
                {"id": "gt-1", "status": "closed"},
                {"id": "gt-2"},
            ],
        )
        convoy = (await monitor.convoys())[0]
        assert convoy.title == "Launch"
        assert (convoy.progress.completed, convoy.progress.total) == (1, 2)


class TestMergeQueues:
    @pytest.mark.asyncio
    async def test_merge_queue(self, monitor, runner):
        runner.responses[("gt", "mq", "list", "editor")] = MQ_TABLE
        queue = await monitor.merge_queue("editor")
        assert queue.count == 1
        assert queue.items[0].branch == "crew/Emma5"

    @pytest.mark.asyncio
    async def test_merge_queue_failure_is_empty(self, monitor):
        queue = await monitor.merge_queue("editor")
        assert queue.count == 0

    @pytest.mark.asyncio
    async def test_merge_queue_validates_rig(self, monitor, runner):
        with pytest.raises(InvalidName):
            await monitor.merge_queue("--help")
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_refineries_join_descriptors_and_queues(self, monitor, runner, workspace):
        runner.responses[("gt", "mq", "list", "editor")] = MQ_TABLE
        write_issues(
            workspace,
            [
                {
                    "id": "gt-editor-refinery",
                    "title": "Editor Refinery",
                    "issue_type": "agent",
                    "description": "role_type: refinery\nrig: editor\nagent_state: active\n",
                },
                {
                    "id": "gt-docs-refinery",
                    "title": "Docs Refinery",
                    "issue_type": "agent",
                    "description": "role_type: refinery\nrig: docs\n",
                },
                {
                    "id": "gt-witness",
                    "issue_type": "agent",
                    "description": "role_type: witness\nrig: editor\n",
                },
            ],
        )
        refineries = await monitor.refineries()
        assert [r.rig for r in refineries] == ["editor", "docs"]
        editor, docs = refineries
        assert editor.name == "Editor Refinery"
        assert editor.status == "processing"
        assert editor.queue_depth == 1
        assert docs.status == "idle"
        assert docs.queue_depth == 0

    @pytest.mark.asyncio
    async def test_rig_without_descriptor_gets_placeholder(self, monitor, runner):
        refinery = (await monitor.refineries())[0]
        assert refinery.id == "refinery-editor"
        assert refinery.name == "editor Refinery"
        assert refinery.status == "idle"


# ---------------------------------------------------------------------------
# nuke_worker / invalidate
# ---------------------------------------------------------------------------

NUKE_ARGV = ("gt", "polecat", "nuke", "editor/Toast")


class TestNukeWorker:
    @pytest.mark.asyncio
    async def test_safety_refusal(self, monitor, runner):
        runner.responses[NUKE_ARGV] = ExecutionFailure(
            "gt polecat nuke editor/Toast", 1, stderr="Error: Toast has uncommitted changes"
        )
        with pytest.raises(SafetyCheckRefused) as exc_info:
            await monitor.nuke_worker("editor", "Toast")
        assert "uncommitted changes" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_force(self, monitor, runner):
        runner.responses[(*NUKE_ARGV, "--force")] = "Nuked editor/Toast\n"
        result = await monitor.nuke_worker("editor", "Toast", force=True)
        assert result.stdout == "Nuked editor/Toast\n"

    @pytest.mark.asyncio
    async def test_other_failures_propagate(self, monitor, runner):
        runner.responses[NUKE_ARGV] = ExecutionFailure("gt", 1, stderr="polecat not found")
        with pytest.raises(ExecutionFailure):
            await monitor.nuke_worker("editor", "Toast")

    @pytest.mark.asyncio
    async def test_success_invalidates_status(self, monitor, runner):
        runner.responses[NUKE_ARGV] = "ok"
        await monitor.status()
        await monitor.nuke_worker("editor", "Toast")
        await monitor.status()
        assert runner.count(*STATUS_ARGV) == 2

    @pytest.mark.asyncio
    async def test_validates_names(self, monitor, runner):
        with pytest.raises(InvalidName):
            await monitor.nuke_worker("editor", "Toast --force")
        assert runner.calls == []


class TestInvalidate:
    @pytest.mark.asyncio
    async def test_invalidate_drops_every_cache(self, monitor, runner, workspace):
        write_issues(workspace, [{"id": "gt-1"}])
        issues = await monitor.issues()
        await monitor.status()
        monitor.invalidate()
        assert await monitor.issues() is not issues
        assert runner.count(*STATUS_ARGV) == 1
        await monitor.status()
        assert runner.count(*STATUS_ARGV) == 2

    @pytest.mark.asyncio
    async def test_reset_root_rereads_root(self, tmp_path, runner, clock):
        from mission_control.root_resolver import RootResolver

        first = tmp_path / "first"
        (first / ".gt").mkdir(parents=True)
        second = tmp_path / "second"
        (second / ".gt").mkdir(parents=True)
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"gtBasePath": str(first)}))
        monitor = FleetMonitor(RootResolver(config_path=str(config), env={}), runner, clock=clock)

        assert monitor.issues_path().startswith(str(first))
        config.write_text(json.dumps({"gtBasePath": str(second)}))
        monitor.reset_root()
        assert monitor.issues_path().startswith(str(second))
