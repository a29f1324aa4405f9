"""
Interval Task Scheduler

Runs a fixed set of shell scripts and commands forever, each on its own
recurring interval, using APScheduler interval jobs.

Features:
- One independent schedule per task
- A task never overlaps with itself (queue or skip while busy)
- Buffered output capture with one success/failure outcome per run
- Failed runs are logged and never disturb any schedule
"""

from task_scheduler.tasks import Task, TaskKind, ConfigurationError, InvalidTaskError, build_tasks
from task_scheduler.jobs import CommandExecutor, Outcome, OutcomeStatus, OverlapPolicy
from task_scheduler.recorder import LogRecorder, MemoryRecorder, OutcomeRecorder
from task_scheduler.config import SchedulerConfig, ExecutionConfig, parse_duration
from task_scheduler.service import SchedulerService, TaskLoop

__version__ = "0.1.0"
__all__ = [
    "Task",
    "TaskKind",
    "ConfigurationError",
    "InvalidTaskError",
    "build_tasks",
    "CommandExecutor",
    "Outcome",
    "OutcomeStatus",
    "OverlapPolicy",
    "LogRecorder",
    "MemoryRecorder",
    "OutcomeRecorder",
    "SchedulerConfig",
    "ExecutionConfig",
    "parse_duration",
    "SchedulerService",
    "TaskLoop",
]
