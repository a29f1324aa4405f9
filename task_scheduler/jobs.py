"""
Command execution for scheduled tasks.

Runs a task's script or command line to completion, captures its output,
and turns the result into a single Outcome. A task never runs twice at
the same time: each run holds the task's own lock for its whole duration.

Process failures (cannot start, non-zero exit, killed by a signal) are
recorded as failed outcomes and never propagate out of the executor.
"""

import logging
import shlex
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from task_scheduler.tasks import Task

logger = logging.getLogger(__name__)

DEFAULT_SHELL = "/bin/bash"


class JobExecutionError(Exception):
    """Raised when a task's process fails."""

    def __init__(self, message: str, stdout: bytes = b"", returncode: Optional[int] = None):
        super().__init__(message)
        self.stdout = stdout
        self.returncode = returncode


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class OverlapPolicy(str, Enum):
    """
    What a tick does when the previous run of its task is still going.

    QUEUE waits for the lock. SKIP gives up on the tick straight away.
    """
    QUEUE = "queue"
    SKIP = "skip"


@dataclass(frozen=True)
class Outcome:
    """Result of one execution attempt."""
    task: str
    status: OutcomeStatus
    detail: str  # captured output on success, error message on failure
    output: bytes = b""
    returncode: Optional[int] = None
    started_at: datetime = field(default_factory=datetime.now)
    timestamp: datetime = field(default_factory=datetime.now)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task': self.task,
            'status': self.status.value,
            'detail': self.detail,
            'returncode': self.returncode,
            'started_at': self.started_at.isoformat(),
            'timestamp': self.timestamp.isoformat(),
            'duration_seconds': round(self.duration_seconds, 3),
        }


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode(errors="replace").rstrip("\n")


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


class CommandExecutor:
    """
    Runs tasks one at a time per task and reports every outcome.

    The executor is shared by all tasks; the exclusion it enforces is
    per task, through each Task's own lock.
    """

    def __init__(
        self,
        recorder,
        shell: str = DEFAULT_SHELL,
        overlap_policy: OverlapPolicy = OverlapPolicy.QUEUE
    ):
        """
        Initialize command executor.

        Args:
            recorder: Receives one Outcome per execution (see task_scheduler.recorder)
            shell: Interpreter used to run shell script tasks
            overlap_policy: Whether a busy task queues or skips new ticks
        """
        self.recorder = recorder
        self.shell = shell
        self.overlap_policy = OverlapPolicy(overlap_policy)
        self.job_stats: Dict[str, Dict[str, Any]] = {}
        self._stats_lock = threading.Lock()
        self._stopping = threading.Event()

    def stop(self):
        """Refuse new runs. Runs already in progress finish normally."""
        self._stopping.set()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def build_command(self, task: Task) -> List[str]:
        """
        Build the argument vector for a task.

        Scripts run through the configured shell with the script path as
        the only argument. Commands are split like a shell command line.

        Raises:
            JobExecutionError: If the command line cannot be parsed
        """
        if task.is_script:
            return [self.shell, task.identity.strip()]

        try:
            argv = shlex.split(task.identity)
        except ValueError as e:
            raise JobExecutionError(f"Cannot parse command line: {e}") from e

        if not argv:
            raise JobExecutionError("Command line is empty")
        return argv

    def execute_command(self, argv: List[str], task_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Run a process to completion.

        Standard output is buffered in full; standard error is kept only
        to explain failures.

        Args:
            argv: Program and arguments
            task_name: Name of the task (for logging)

        Returns:
            Dict with stdout, stderr, returncode

        Raises:
            JobExecutionError: If the process cannot start, exits non-zero,
                or is killed by a signal
        """
        log_prefix = f"[{task_name}] " if task_name else ""
        logger.debug(f"{log_prefix}Executing: {argv}")

        try:
            process = subprocess.run(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise JobExecutionError(f"Failed to start: {e}") from e

        if process.returncode < 0:
            raise JobExecutionError(
                f"Command killed by signal {_signal_name(-process.returncode)}",
                stdout=process.stdout,
                returncode=process.returncode
            )

        if process.returncode != 0:
            stderr = _decode(process.stderr)
            message = f"Command failed with exit code {process.returncode}"
            if stderr:
                message = f"{message}: {stderr}"
            raise JobExecutionError(message, stdout=process.stdout, returncode=process.returncode)

        return {
            'stdout': process.stdout,
            'stderr': process.stderr,
            'returncode': process.returncode
        }

    def run(self, task: Task, job_id: Optional[str] = None) -> Optional[Outcome]:
        """
        Run one execution attempt of a task.

        Holds the task's lock for the whole run and releases it on every
        path. Under OverlapPolicy.SKIP a busy task is left alone and None
        is returned without recording anything. Once the executor is
        stopped, a tick that was waiting for the lock gives up as soon as
        it gets it.

        Args:
            task: Task to run
            job_id: Key for this task's statistics (defaults to the identity)

        Returns:
            The recorded Outcome, or None if the tick was skipped
        """
        stats_key = job_id or task.identity

        if self.stopping:
            return None

        if self.overlap_policy == OverlapPolicy.SKIP:
            if not task.lock.acquire(blocking=False):
                logger.warning(f"[{task.identity}] Previous run still in progress, skipping tick")
                self._update_stats(stats_key, None)
                return None
        else:
            task.lock.acquire()

        try:
            if self.stopping:
                logger.debug(f"[{task.identity}] Executor stopped, dropping queued tick")
                return None
            outcome = self._execute(task)
            self._update_stats(stats_key, outcome)
            self._record(outcome)
            return outcome
        finally:
            task.lock.release()

    def _execute(self, task: Task) -> Outcome:
        started_at = datetime.now()
        start = time.monotonic()

        try:
            argv = self.build_command(task)
            result = self.execute_command(argv, task_name=task.identity)

        except JobExecutionError as e:
            return Outcome(
                task=task.identity,
                status=OutcomeStatus.FAILURE,
                detail=str(e),
                output=e.stdout or b"",
                returncode=e.returncode,
                started_at=started_at,
                timestamp=datetime.now(),
                duration_seconds=time.monotonic() - start
            )

        except Exception as e:
            logger.error(f"[{task.identity}] Unexpected execution error: {e}", exc_info=True)
            return Outcome(
                task=task.identity,
                status=OutcomeStatus.FAILURE,
                detail=f"Execution failed: {e}",
                started_at=started_at,
                timestamp=datetime.now(),
                duration_seconds=time.monotonic() - start
            )

        return Outcome(
            task=task.identity,
            status=OutcomeStatus.SUCCESS,
            detail=_decode(result['stdout']),
            output=result['stdout'] or b"",
            returncode=result['returncode'],
            started_at=started_at,
            timestamp=datetime.now(),
            duration_seconds=time.monotonic() - start
        )

    def _record(self, outcome: Outcome):
        try:
            self.recorder.record(outcome)
        except Exception as e:
            logger.error(f"[{outcome.task}] Failed to record outcome: {e}", exc_info=True)

    def _update_stats(self, key: str, outcome: Optional[Outcome]):
        with self._stats_lock:
            stats = self.job_stats.setdefault(key, {
                'runs': 0,
                'successes': 0,
                'failures': 0,
                'skipped': 0,
                'last_status': None,
                'last_duration_seconds': None,
                'last_run': None,
            })

            if outcome is None:
                stats['skipped'] += 1
                return

            stats['runs'] += 1
            if outcome.succeeded:
                stats['successes'] += 1
            else:
                stats['failures'] += 1
            stats['last_status'] = outcome.status.value
            stats['last_duration_seconds'] = round(outcome.duration_seconds, 3)
            stats['last_run'] = outcome.timestamp.isoformat()

    def get_job_stats(self, key: Optional[str] = None) -> Dict[str, Any]:
        """
        Get task execution statistics.

        Args:
            key: Job id (or task identity for runs without one), or None for all

        Returns:
            Statistics dictionary (a copy)
        """
        with self._stats_lock:
            if key:
                return dict(self.job_stats.get(key, {}))
            return {name: dict(stats) for name, stats in self.job_stats.items()}
