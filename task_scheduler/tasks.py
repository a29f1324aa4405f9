"""
Task definitions for the scheduler.

A Task is one entry in the fixed job set: the command string or script
path to run, how often to run it, and the lock that keeps it from
overlapping with itself. The set is built once at startup and never
changes while the scheduler is running.
"""

import math
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

# Suffixes that mark an identity as a script file rather than a command line
SCRIPT_SUFFIXES = (".sh",)

# Shortest interval the interval trigger can represent (one microsecond)
MIN_INTERVAL = 1e-6


class ConfigurationError(Exception):
    """Raised when the scheduler cannot start with the given configuration."""
    pass


class InvalidTaskError(ConfigurationError, ValueError):
    """Raised when a task definition is rejected at construction time."""
    pass


class TaskKind(str, Enum):
    SHELL_SCRIPT = "shell_script"
    COMMAND = "command"


def classify_task(identity: str, script_suffixes: Sequence[str] = SCRIPT_SUFFIXES) -> TaskKind:
    """
    Decide whether an identity names a script file or a command line.

    Args:
        identity: Command string or script path
        script_suffixes: File suffixes treated as shell scripts

    Returns:
        TaskKind.SHELL_SCRIPT if the identity ends with a script suffix,
        otherwise TaskKind.COMMAND
    """
    if identity.strip().endswith(tuple(script_suffixes)):
        return TaskKind.SHELL_SCRIPT
    return TaskKind.COMMAND


def is_valid_interval(seconds: float) -> bool:
    """True for a finite interval of at least MIN_INTERVAL seconds."""
    return math.isfinite(seconds) and seconds >= MIN_INTERVAL


@dataclass(frozen=True)
class Task:
    """
    A single recurring job.

    The identity doubles as the task's display name in logs. The lock is
    owned by this task alone and is the only mutable part of it.
    """
    identity: str
    interval: float  # seconds between ticks
    kind: Optional[TaskKind] = None
    lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        if not isinstance(self.identity, str) or not self.identity.strip():
            raise InvalidTaskError("Task identity cannot be empty")

        interval = self.interval
        if isinstance(interval, timedelta):
            interval = interval.total_seconds()
        try:
            interval = float(interval)
        except (TypeError, ValueError):
            raise InvalidTaskError(
                f"Task '{self.identity}': interval must be a number of seconds, got {self.interval!r}"
            )
        if not is_valid_interval(interval):
            raise InvalidTaskError(
                f"Task '{self.identity}': interval must be a finite number of seconds "
                f"no shorter than {MIN_INTERVAL:g}, got {interval}"
            )
        object.__setattr__(self, "interval", interval)

        if self.kind is None:
            object.__setattr__(self, "kind", classify_task(self.identity))

    @property
    def is_script(self) -> bool:
        return self.kind == TaskKind.SHELL_SCRIPT


def build_tasks(
    pairs: Iterable[Tuple[str, Union[float, timedelta]]],
    script_suffixes: Sequence[str] = SCRIPT_SUFFIXES
) -> List[Task]:
    """
    Build the task set from (identity, interval) pairs.

    Args:
        pairs: Task identities with their intervals (seconds or timedelta)
        script_suffixes: File suffixes treated as shell scripts

    Returns:
        List of tasks in input order

    Raises:
        InvalidTaskError: On the first pair that is not a valid task
    """
    tasks = []
    for identity, interval in pairs:
        identity = (identity or "").strip()
        kind = classify_task(identity, script_suffixes) if identity else None
        tasks.append(Task(identity=identity, interval=interval, kind=kind))
    return tasks
