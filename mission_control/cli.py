"""
Mission Control - CLI entry point.
Provides start, stop, status and watch subcommands.
"""

import argparse
import asyncio
import logging
import os
import signal
import subprocess
import sys
import time

from .constants import DEFAULT_POLL_INTERVAL, DEFAULT_PORT, LOCALHOST, POLL_INTERVAL_ENV_VAR

PKG_DIR = os.path.dirname(os.path.abspath(__file__))
PID_FILE = os.path.join(PKG_DIR, ".mission-control.pid")

from .__version__ import __repository__, __version__  # noqa: E402

BANNER = f"""\
  Mission Control v{__version__}
  {__repository__}
  Open http://localhost:{{port}}
"""

APP_PATH = "mission_control.dashboard_api:app"


def _read_pid_file() -> int | None:
    """Read PID from the PID file, returning None if corrupt or missing."""
    if not os.path.exists(PID_FILE):
        return None
    try:
        with open(PID_FILE, encoding="utf-8") as f:
            return int(f.read().strip())
    except (ValueError, OSError):
        return None


def _write_pid_file(pid: int) -> None:
    with open(PID_FILE, "w", encoding="utf-8") as f:
        f.write(str(pid))


def _clear_pid_file() -> None:
    if os.path.exists(PID_FILE):
        os.remove(PID_FILE)


def _live_pid() -> int | None:
    """PID of the running server. A PID file naming a dead process is removed."""
    pid = _read_pid_file()
    if pid is None:
        return None
    try:
        os.kill(pid, 0)
    except OSError:
        _clear_pid_file()
        return None
    return pid


def _serve_argv(port: int, poll_interval: float) -> list[str]:
    # Run as a module so the package's relative imports resolve
    pkg = __spec__.parent if __spec__ else "mission_control"
    return [
        sys.executable,
        "-m",
        f"{pkg}.cli",
        "_serve",
        "--port",
        str(port),
        "--poll-interval",
        str(poll_interval),
    ]


def _run_server(port: int, poll_interval: float) -> None:
    import uvicorn

    os.environ[POLL_INTERVAL_ENV_VAR] = str(poll_interval)
    uvicorn.run(APP_PATH, host=LOCALHOST, port=port, log_level="warning")


def cmd_serve(args):
    """Internal: run the uvicorn server in-process (used by --background)."""
    _run_server(args.port, args.poll_interval)


def cmd_start(args):
    """Start the dashboard server."""
    pid = _live_pid()
    if pid is not None:
        print(f"Mission Control already running (PID {pid}) at http://localhost:{args.port}")
        return

    if not args.background:
        _write_pid_file(os.getpid())
        try:
            print(BANNER.format(port=args.port))
            _run_server(args.port, args.poll_interval)
        finally:
            _clear_pid_file()
        return

    proc = subprocess.Popen(  # pylint: disable=consider-using-with
        _serve_argv(args.port, args.poll_interval),
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    _write_pid_file(proc.pid)
    print(f"Mission Control started in background (PID {proc.pid})")
    print(BANNER.format(port=args.port))


def cmd_stop(_args):
    """Stop the dashboard server."""
    pid = _live_pid()
    if pid is None:
        print("Mission Control is not running.")
        return
    try:
        os.kill(pid, signal.SIGTERM)
    except OSError as e:
        print(f"Could not stop process {pid}: {e}")
    else:
        print(f"Mission Control stopped (PID {pid}).")
    _clear_pid_file()


def cmd_status(_args):
    """Report whether the dashboard is running."""
    pid = _live_pid()
    if pid is None:
        print("Mission Control is not running.")
    else:
        print(f"Mission Control is running (PID {pid})")


# ── watch ────────────────────────────────────────────────────────────────────


def format_poll(poller) -> str:
    """One line describing the latest poll, e.g. for a terminal watcher."""
    from .status_parser import summarize

    summary = summarize(poller.data)
    stamp = time.strftime("%H:%M:%S", time.localtime(poller.updated_at or time.time()))
    line = (
        f"[{stamp}] {poller.data.name}: {summary.total_agents} agents, "
        f"{summary.running_agents} running, {summary.agents_with_work} with work, "
        f"{summary.total_unread_mail} unread"
    )
    if poller.error is not None:
        line += f" (stale: {poller.error})"
    return line


async def watch(interval: float, monitor=None) -> None:
    """Poll fleet status forever, printing a summary line after every poll."""
    from .errors import CoalescedFetchFailure
    from .fleet_monitor import FleetMonitor
    from .polling import PollingController
    from .status_parser import empty_snapshot

    monitor = monitor or FleetMonitor()

    async def fetch():
        snapshot = await monitor.status()
        if snapshot is None:
            raise CoalescedFetchFailure("Fleet status unavailable")
        return snapshot

    poller = PollingController(
        fetch,
        interval=interval,
        empty=empty_snapshot,
        on_update=lambda p: print(format_poll(p), flush=True),
    )
    poller.enable()
    try:
        await asyncio.Event().wait()
    finally:
        poller.disable()


def cmd_watch(args):
    """Print a fleet summary line on every poll until interrupted."""
    try:
        asyncio.run(watch(args.interval))
    except KeyboardInterrupt:
        pass


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="mission-control",
        description="Mission Control - live status of your agent fleet",
        epilog=(
            "Examples:\n"
            "  mission-control start                  Start in foreground\n"
            "  mission-control start --background     Start as background process\n"
            "  mission-control start -b --port 8080   Background on custom port\n"
            "  mission-control stop                   Stop the background server\n"
            "  mission-control status                 Check if server is running\n"
            "  mission-control watch --interval 10    Print a summary every 10s\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output")
    sub = parser.add_subparsers(dest="command")

    start_p = sub.add_parser("start", help="Start the dashboard web server")
    start_p.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port to listen on (default: {DEFAULT_PORT})",
    )
    start_p.add_argument(
        "--background", "-b", action="store_true", help="Run as a background process (detached)"
    )
    start_p.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between status polls, 0 to disable (default: {DEFAULT_POLL_INTERVAL})",
    )

    sub.add_parser("stop", help="Stop the background dashboard server")
    sub.add_parser("status", help="Check if the dashboard server is running")

    watch_p = sub.add_parser("watch", help="Print a fleet summary line on every poll")
    watch_p.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between polls (default: {DEFAULT_POLL_INTERVAL})",
    )

    serve_p = sub.add_parser("_serve", help=argparse.SUPPRESS)
    serve_p.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve_p.add_argument("--poll-interval", type=float, default=DEFAULT_POLL_INTERVAL)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not args.command:
        parser.print_help()
        return

    {
        "start": cmd_start,
        "_serve": cmd_serve,
        "stop": cmd_stop,
        "status": cmd_status,
        "watch": cmd_watch,
    }[args.command](args)


if __name__ == "__main__":
    main()
