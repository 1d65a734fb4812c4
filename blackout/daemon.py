"""Background daemon: periodic schedule acquisition and notification evaluation.

Two independent jobs run on their own threads and cadences:
  - acquisition: forced snapshot refresh every 5 minutes
  - notification: one evaluation tick every minute

A failed iteration is logged and the job waits for its next tick.

Usage:
    python -m blackout daemon --config ops/configs/default.yaml
    python -m blackout daemon --stop      # stop running daemon
    python -m blackout daemon --status
"""

import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from blackout.config.schema import BlackoutConfig
from blackout.ingest.cache_manager import CacheManager, build_cache_manager
from blackout.notify.engine import NotificationEngine, build_notification_engine
from blackout.notify.transport import build_transport

logger = logging.getLogger(__name__)

PID_DIR = Path("data")
PID_FILE = PID_DIR / "daemon.pid"
STATE_FILE = PID_DIR / "daemon_state.json"
STATE_SAVE_INTERVAL = 30
STOP_TIMEOUT = 60


class PeriodicJob:
    """Calls func every interval seconds until stop_event is set."""

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], object],
        stop_event: threading.Event,
    ):
        self.name = name
        self.interval = interval
        self.func = func
        self.stop_event = stop_event
        self.total_runs = 0
        self.total_successes = 0
        self.total_failures = 0
        self.last_run_at: str | None = None
        self.running = False

    def run_once(self) -> bool:
        """Execute a single iteration. Returns True on success."""
        self.total_runs += 1
        self.last_run_at = datetime.now(UTC).isoformat()
        self.running = True
        try:
            self.func()
        except Exception:
            self.total_failures += 1
            logger.exception("%s job iteration #%d failed", self.name, self.total_runs)
            return False
        finally:
            self.running = False
        self.total_successes += 1
        return True

    def run(self) -> None:
        logger.info("%s job started (every %ss)", self.name, self.interval)
        while not self.stop_event.is_set():
            started = time.monotonic()
            self.run_once()
            elapsed = time.monotonic() - started
            self.stop_event.wait(max(0.0, self.interval - elapsed))
        logger.info("%s job stopped", self.name)

    def stats(self) -> dict:
        return {
            "interval": self.interval,
            "total_runs": self.total_runs,
            "total_successes": self.total_successes,
            "total_failures": self.total_failures,
            "last_run_at": self.last_run_at,
        }


class BlackoutDaemon:
    """Runs the acquisition and notification jobs with signal handling and a PID file."""

    def __init__(
        self,
        config: BlackoutConfig,
        db_path: str = "data/blackouts.db",
        cache: CacheManager | None = None,
        engine: NotificationEngine | None = None,
    ):
        self.config = config
        self.db_path = db_path
        self.cache = cache or build_cache_manager(config, db_path)
        self.engine = engine or build_notification_engine(
            config, db_path, self.cache, build_transport(config.telegram)
        )
        self._stop = threading.Event()
        self._started_at: str | None = None
        self.jobs = [
            PeriodicJob(
                "acquisition", config.ops.fetch_interval_seconds, self._acquire, self._stop
            ),
            PeriodicJob(
                "notification", config.ops.notify_interval_seconds, self._notify, self._stop
            ),
        ]

    def _acquire(self) -> None:
        snapshot = self.cache.get_snapshot(force_refresh=True)
        logger.info(
            "Background fetch completed: %d groups captured at %s",
            len(snapshot.groups), snapshot.captured_at.isoformat(),
        )

    def _notify(self) -> None:
        self.engine.evaluate()

    def start(self) -> None:
        """Start both jobs and block until a stop signal arrives."""
        self._check_not_already_running()
        self._write_pid()
        self._setup_signals()
        self._started_at = datetime.now(UTC).isoformat()

        threads = [
            threading.Thread(target=job.run, name=f"{job.name}-job", daemon=True)
            for job in self.jobs
        ]
        for t in threads:
            t.start()

        logger.info("Daemon started, pid=%d", os.getpid())
        print(f"🔄 Blackout daemon started (pid {os.getpid()})")
        print("   Stop: python -m blackout daemon --stop")

        try:
            while not self._stop.wait(STATE_SAVE_INTERVAL):
                self._save_state()
        except KeyboardInterrupt:
            logger.info("Daemon interrupted by keyboard")
            self._stop.set()
        finally:
            for t in threads:
                t.join(timeout=STOP_TIMEOUT)
            self._cleanup()

    def stop(self) -> None:
        self._stop.set()

    def _setup_signals(self) -> None:
        """SIGTERM and SIGINT stop both jobs after their current iteration."""
        def _stop(signum: int, frame: object) -> None:
            sig_name = signal.Signals(signum).name
            busy = [job.name for job in self.jobs if job.running]
            logger.info("Received %s, stopping jobs (busy: %s)", sig_name, busy or "none")
            print(f"\n⏹️  Received {sig_name}, waiting for {', '.join(busy) or 'idle jobs'}...")
            self._stop.set()

        for signum in (signal.SIGTERM, signal.SIGINT):
            signal.signal(signum, _stop)

    def _check_not_already_running(self) -> None:
        """Exit if another daemon owns the PID file; drop the file if its owner is gone."""
        pid = _read_pid()
        if pid is None:
            return
        alive = _pid_alive(pid)
        if alive is False:
            logger.info("Removing stale PID file for pid %d", pid)
            PID_FILE.unlink(missing_ok=True)
            return
        if alive is None:
            print(f"❌ Blackout daemon may be running (pid {pid}), can't verify.")
        else:
            print(f"❌ Blackout daemon already running (pid {pid}). Stop it first:")
            print("   python -m blackout daemon --stop")
        sys.exit(1)

    def _write_pid(self) -> None:
        PID_DIR.mkdir(parents=True, exist_ok=True)
        PID_FILE.write_text(str(os.getpid()))

    def _save_state(self) -> None:
        """Persist job stats for status reporting."""
        state = {
            "pid": os.getpid(),
            "started_at": self._started_at,
            "jobs": {job.name: job.stats() for job in self.jobs},
            "last_update": datetime.now(UTC).isoformat(),
        }
        PID_DIR.mkdir(parents=True, exist_ok=True)
        STATE_FILE.write_text(json.dumps(state, indent=2))

    def _cleanup(self) -> None:
        PID_FILE.unlink(missing_ok=True)
        self._save_state()
        summary = ", ".join(
            f"{job.name} {job.total_successes}/{job.total_runs} ok" for job in self.jobs
        )
        logger.info("Daemon stopped: %s", summary)
        print(f"⏹️  Daemon stopped: {summary}")


def _read_pid() -> int | None:
    """PID from the PID file; a corrupt file is removed and treated as absent."""
    if not PID_FILE.exists():
        return None
    try:
        return int(PID_FILE.read_text().strip())
    except ValueError:
        logger.warning("Corrupt PID file %s, removing", PID_FILE)
        PID_FILE.unlink(missing_ok=True)
        return None


def _pid_alive(pid: int) -> bool | None:
    """True if the process exists, False if not, None if it can't be signalled."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return None
    return True


def _load_state() -> dict | None:
    if not STATE_FILE.exists():
        return None
    try:
        state = json.loads(STATE_FILE.read_text())
    except json.JSONDecodeError:
        logger.warning("Unreadable daemon state file %s", STATE_FILE)
        return None
    return state if isinstance(state, dict) else None


def _job_lines(state: dict) -> list[str]:
    lines = []
    for name, stats in state.get("jobs", {}).items():
        lines.append(
            f"  {name}: every {stats.get('interval', '?')}s, "
            f"{stats.get('total_runs', 0)} runs, "
            f"{stats.get('total_successes', 0)} ok, "
            f"{stats.get('total_failures', 0)} failed, "
            f"last {stats.get('last_run_at') or 'never'}"
        )
    return lines


def stop_daemon(timeout: int = STOP_TIMEOUT) -> int:
    """Send SIGTERM, wait for both jobs to wind down, then report their final counters."""
    pid = _read_pid()
    if pid is None:
        print("No daemon running (no PID file found)")
        return 1

    if _pid_alive(pid) is False:
        print(f"Daemon not running (stale pid {pid}), cleaning up")
        PID_FILE.unlink(missing_ok=True)
        STATE_FILE.unlink(missing_ok=True)
        return 0

    print(f"Stopping daemon (pid {pid})...")
    os.kill(pid, signal.SIGTERM)

    for _ in range(timeout):
        time.sleep(1)
        if _pid_alive(pid) is False:
            break
    else:
        print(f"⚠️  Daemon didn't stop in {timeout}s, sending SIGKILL")
        os.kill(pid, signal.SIGKILL)
        PID_FILE.unlink(missing_ok=True)
        return 0

    PID_FILE.unlink(missing_ok=True)
    print("✅ Daemon stopped")
    state = _load_state()
    if state is not None:
        for line in _job_lines(state):
            print(line)
    return 0


def daemon_status() -> int:
    """Print daemon status from state file."""
    state = _load_state()
    if state is None:
        print("No daemon state found")
        return 1

    pid = state.get("pid", "?")
    running = isinstance(pid, int) and _pid_alive(pid) is not False

    status_icon = "🟢" if running else "🔴"
    print(f"{status_icon} Daemon {'running' if running else 'stopped'}")
    print(f"  PID: {pid}")
    print(f"  Started: {state.get('started_at', '?')}")
    for line in _job_lines(state):
        print(line)
    print(f"  Last update: {state.get('last_update', '?')}")
    return 0
