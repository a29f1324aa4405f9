"""
Core scheduler service using APScheduler.

Each task gets its own interval job that fires every task.interval seconds
for as long as the process lives. A tick hands the task to the shared
CommandExecutor on a worker thread and the scheduler goes straight back to
waiting, so a slow or hung run never delays any tick.

Overlap is resolved per task by the executor (the task's lock). How many
ticks of one task may be waiting on that lock at once is capped by the
job's max_instances; ticks beyond the cap are refused and logged.
"""

import logging
import signal
import sys
import threading
import time
from typing import Any, Dict, List, Optional, Sequence

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_MAX_INSTANCES,
    EVENT_JOB_MISSED,
    EVENT_JOB_SUBMITTED,
)
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler

from task_scheduler.config import ExecutionConfig
from task_scheduler.jobs import CommandExecutor, Outcome
from task_scheduler.recorder import LogRecorder, OutcomeRecorder
from task_scheduler.tasks import MIN_INTERVAL, ConfigurationError, Task, is_valid_interval

logger = logging.getLogger(__name__)


class TaskLoop:
    """
    The recurring schedule of a single task.

    Registers one interval job with the scheduler and counts every tick
    it fires, including ticks refused because the task already had as
    many runs pending as it is allowed.
    """

    def __init__(self, task: Task, executor: CommandExecutor, job_id: str):
        self.task = task
        self.executor = executor
        self.job_id = job_id
        self._ticks = 0
        self._lock = threading.Lock()

    @property
    def ticks(self) -> int:
        with self._lock:
            return self._ticks

    def note_tick(self, count: int = 1):
        with self._lock:
            self._ticks += count

    def dispatch(self) -> Optional[Outcome]:
        """Job function: one execution attempt of this loop's task."""
        return self.executor.run(self.task, job_id=self.job_id)

    def schedule(self, scheduler, max_instances: int):
        """Register this loop's interval job with the scheduler."""
        scheduler.add_job(
            self.dispatch,
            'interval',
            seconds=self.task.interval,
            id=self.job_id,
            name=self.task.identity,
            max_instances=max_instances,
            coalesce=False,
            misfire_grace_time=None,
            replace_existing=True
        )
        logger.info(
            f"Scheduled '{self.task.identity}' ({self.task.kind.value}) "
            f"every {self.task.interval:g}s"
        )


class SchedulerService:
    """
    Owns the task set and runs one TaskLoop per task.

    The task set is fixed for the life of the service. In foreground mode
    the scheduler blocks the calling thread, which keeps the process alive.
    """

    def __init__(
        self,
        tasks: Sequence[Task],
        recorder: Optional[OutcomeRecorder] = None,
        execution: Optional[ExecutionConfig] = None,
        foreground: bool = False
    ):
        """
        Initialize scheduler service.

        Args:
            tasks: The complete task set
            recorder: Receives every execution outcome (defaults to LogRecorder)
            execution: Shell and overlap settings (defaults from environment)
            foreground: If True, use blocking scheduler (for foreground mode)

        Raises:
            ConfigurationError: If the task set is empty or any interval is unusable
        """
        self.tasks = self._validate_tasks(tasks)
        self.execution = execution or ExecutionConfig()
        self.recorder = recorder or LogRecorder()
        self.foreground = foreground

        self.executor = CommandExecutor(
            self.recorder,
            shell=self.execution.shell,
            overlap_policy=self.execution.policy
        )

        self.loops: List[TaskLoop] = [
            TaskLoop(task, self.executor, job_id=f"task-{index}")
            for index, task in enumerate(self.tasks)
        ]
        self._loops_by_id = {loop.job_id: loop for loop in self.loops}

        # Every task can have all of its allowed runs in flight at once
        # without waiting on a worker held by another task.
        self.max_instances = self.execution.instances_per_task()
        max_workers = self.max_instances * len(self.loops)

        executors = {
            'default': ThreadPoolExecutor(max_workers)
        }

        job_defaults = {
            'coalesce': False,  # Every tick counts
            'max_instances': self.max_instances,
            'misfire_grace_time': None  # Run late rather than never
        }

        if foreground:
            self.scheduler = BlockingScheduler(executors=executors, job_defaults=job_defaults)
        else:
            self.scheduler = BackgroundScheduler(executors=executors, job_defaults=job_defaults)

        self._setup_event_listeners()

        logger.info(
            f"Scheduler initialized with {len(self.tasks)} task(s), "
            f"{max_workers} worker(s), overlap policy '{self.execution.policy.value}'"
        )

    @staticmethod
    def _validate_tasks(tasks: Sequence[Task]) -> List[Task]:
        tasks = list(tasks or [])
        if not tasks:
            raise ConfigurationError("No tasks to schedule")

        for task in tasks:
            if not isinstance(task.interval, (int, float)) or not is_valid_interval(task.interval):
                raise ConfigurationError(
                    f"Task '{task.identity}': interval must be a finite number of seconds "
                    f"no shorter than {MIN_INTERVAL:g}, got {task.interval}"
                )
        return tasks

    def _setup_event_listeners(self):
        """Setup APScheduler event listeners for tick counting and logging."""

        def tick_listener(event):
            loop = self._loops_by_id.get(event.job_id)
            if loop is not None:
                # A late submission carries one run time per overdue tick
                loop.note_tick(len(event.scheduled_run_times) or 1)

        def max_instances_listener(event):
            loop = self._loops_by_id.get(event.job_id)
            name = loop.task.identity if loop else event.job_id
            logger.warning(
                f"[{name}] Tick refused: {self.max_instances} run(s) already in flight"
            )

        def job_error_listener(event):
            logger.error(f"Job '{event.job_id}' raised exception: {event.exception}")

        def job_missed_listener(event):
            logger.warning(f"Job '{event.job_id}' missed scheduled run time")

        self.scheduler.add_listener(tick_listener, EVENT_JOB_SUBMITTED | EVENT_JOB_MAX_INSTANCES)
        self.scheduler.add_listener(max_instances_listener, EVENT_JOB_MAX_INSTANCES)
        self.scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)
        self.scheduler.add_listener(job_missed_listener, EVENT_JOB_MISSED)

    def _setup_signal_handlers(self):
        """Setup signal handlers for shutdown."""

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            self.stop()
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def start(self):
        """
        Register every task loop and start the scheduler.

        In foreground mode this call blocks until the scheduler is shut down.
        """
        if self.scheduler.running:
            logger.warning("Scheduler is already running")
            return

        for loop in self.loops:
            loop.schedule(self.scheduler, self.max_instances)

        logger.info("Starting scheduler...")
        self.scheduler.start()

    def serve_forever(self):
        """
        Run until the process is terminated.

        Installs SIGINT/SIGTERM handlers, then keeps the calling thread
        resident: the blocking scheduler holds it in foreground mode, a
        sleep loop holds it otherwise.
        """
        self._setup_signal_handlers()
        self.start()

        while self.scheduler.running:
            time.sleep(1)

    def stop(self, wait: bool = False):
        """
        Stop the scheduler.

        Args:
            wait: If True, wait for running tasks to complete

        Ticks still waiting for their task's lock are dropped either way.
        """
        self.executor.stop()
        if self.scheduler.running:
            logger.info("Stopping scheduler...")
            self.scheduler.shutdown(wait=wait)
            logger.info("Scheduler stopped")
        else:
            logger.warning("Scheduler is not running")

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_jobs(self) -> List[Dict[str, Any]]:
        """
        Get list of all scheduled task loops.

        Returns:
            List of job information dictionaries
        """
        jobs = []
        for loop in self.loops:
            job = self.scheduler.get_job(loop.job_id)
            next_run = getattr(job, 'next_run_time', None) if job else None
            jobs.append({
                'id': loop.job_id,
                'task': loop.task.identity,
                'kind': loop.task.kind.value,
                'interval_seconds': loop.task.interval,
                'next_run': next_run.isoformat() if next_run else None,
                'ticks': loop.ticks
            })
        return jobs

    def tick_counts(self) -> Dict[str, int]:
        """Ticks fired so far, by job id."""
        return {loop.job_id: loop.ticks for loop in self.loops}
