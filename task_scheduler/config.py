"""
Scheduler configuration management.

Handles everything that turns user input into validated task definitions:
- duration strings ("300ms", "1h30m") into seconds
- task files with one "<task> <duration>" row per line
- an optional JSON settings file plus environment variable overrides
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from task_scheduler.jobs import DEFAULT_SHELL, OverlapPolicy
from task_scheduler.tasks import MIN_INTERVAL, SCRIPT_SUFFIXES, ConfigurationError, is_valid_interval

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_LOG_FILE = "./task-scheduler.log"

# Environment variables
ENV_CONFIG_PATH = "TASK_SCHEDULER_CONFIG_PATH"
ENV_LOG_FILE = "TASK_SCHEDULER_LOG_FILE"
ENV_LOG_LEVEL = "TASK_SCHEDULER_LOG_LEVEL"
ENV_SHELL = "TASK_SCHEDULER_SHELL"
ENV_OVERLAP = "TASK_SCHEDULER_OVERLAP"
ENV_MAX_QUEUED = "TASK_SCHEDULER_MAX_QUEUED"

# Seconds per duration unit
_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,  # U+00B5 micro sign
    'μs': 1e-6,  # U+03BC greek mu
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


class DurationError(ConfigurationError, ValueError):
    """Raised when a duration string cannot be used."""
    pass


def parse_duration(text: str) -> float:
    """
    Parse a duration string into seconds.

    Accepts a sequence of decimal numbers, each with a unit suffix, such as
    "300ms", "1.5h" or "2h45m10s". Valid units are "ns", "us" (or "µs"),
    "ms", "s", "m" and "h". A bare "0" is allowed.

    Args:
        text: Duration string

    Returns:
        Duration in seconds

    Raises:
        DurationError: If the string is malformed or negative
    """
    raw = (text or "").strip()
    if not raw:
        raise DurationError("Duration is empty")

    body = raw
    negative = False
    if body[0] in "+-":
        negative = body[0] == "-"
        body = body[1:]

    if body == "0":
        return 0.0
    if not body:
        raise DurationError(f"Invalid duration: {raw!r}")

    total = 0.0
    pos = 0
    while pos < len(body):
        match = _DURATION_PART.match(body, pos)
        if not match:
            raise DurationError(f"Invalid duration: {raw!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if negative and total > 0:
        raise DurationError(
            f"Duration cannot be negative: {raw!r}. Tasks can't be scheduled in the past"
        )
    return total


def parse_duration_list(text: Optional[str]) -> List[float]:
    """Parse a comma separated list of durations, ignoring blank entries."""
    if not text:
        return []
    return [parse_duration(part) for part in text.split(",") if part.strip()]


def parse_task_row(row: str) -> Tuple[str, float]:
    """
    Parse one task file row of the form "<task> <duration>".

    The duration is the last whitespace separated token, so commands may
    carry their own arguments: "ping -c3 example.com 5m".

    Raises:
        ConfigurationError: If the row is malformed or its interval is not positive
    """
    parts = row.strip().rsplit(None, 1)
    if len(parts) != 2:
        raise ConfigurationError(f"Invalid row, expected '<task> <duration>': {row!r}")

    identity, duration_text = parts
    interval = parse_duration(duration_text)
    if not is_valid_interval(interval):
        raise ConfigurationError(f"Interval must be at least {MIN_INTERVAL:g}s: {row!r}")
    return identity.strip(), interval


def parse_task_file(path: str) -> List[Tuple[str, float]]:
    """
    Read task definitions from a file.

    Blank lines and lines starting with '#' are ignored. Rows that cannot be
    parsed are logged and skipped. A file that cannot be read is logged and
    contributes no tasks.

    Args:
        path: Path to the task file

    Returns:
        List of (identity, interval_seconds) pairs in file order
    """
    task_file = Path(path).expanduser()
    try:
        lines = task_file.read_text().splitlines()
    except OSError as e:
        logger.error(
            f"ERROR!: Failed to open taskfile at {task_file}. "
            f"Not running tasks defined in this file: {e}"
        )
        return []

    pairs = []
    for lineno, line in enumerate(lines, start=1):
        row = line.strip()
        if not row or row.startswith("#"):
            continue
        try:
            pairs.append(parse_task_row(row))
        except ConfigurationError as e:
            logger.warning(f"Skipping line {lineno} of {task_file}: {e}")

    logger.info(f"Read {len(pairs)} task(s) from {task_file}")
    return pairs


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not an integer")
        return default


@dataclass
class TaskConfig:
    """A task definition from the settings file."""
    command: str
    interval: float  # seconds


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = None  # Set dynamically in __post_init__
    file: str = None  # Set dynamically in __post_init__

    def __post_init__(self):
        if self.level is None:
            self.level = os.environ.get(ENV_LOG_LEVEL, "INFO")
        if self.file is None:
            self.file = os.environ.get(ENV_LOG_FILE, DEFAULT_LOG_FILE)


@dataclass
class ExecutionConfig:
    """How tasks are run and how overlapping ticks are handled."""
    shell: str = None
    script_suffixes: List[str] = field(default_factory=lambda: list(SCRIPT_SUFFIXES))
    overlap_policy: str = None
    max_queued: int = None  # waiting ticks allowed per task under the queue policy

    def __post_init__(self):
        if self.shell is None:
            self.shell = os.environ.get(ENV_SHELL, DEFAULT_SHELL)
        if self.overlap_policy is None:
            self.overlap_policy = os.environ.get(ENV_OVERLAP, OverlapPolicy.QUEUE.value)
        if self.max_queued is None:
            self.max_queued = _env_int(ENV_MAX_QUEUED, 1)

    @property
    def policy(self) -> OverlapPolicy:
        return OverlapPolicy(str(self.overlap_policy).lower())

    def instances_per_task(self) -> int:
        """Concurrent submissions allowed per task: the running one plus any queued."""
        if self.policy == OverlapPolicy.SKIP:
            return 1
        return 1 + max(0, int(self.max_queued))


class SchedulerConfig:
    """
    Scheduler configuration manager.

    Loads settings from an optional JSON file, with environment variable
    overrides for anything the file leaves out.

    Configuration path priority:
    1. Explicit config_path argument
    2. TASK_SCHEDULER_CONFIG_PATH environment variable
    3. None (defaults and environment only)

    File format:
        {
          "tasks": [{"command": "backup.sh", "interval": "1h"}],
          "logging": {"level": "INFO", "file": "./task-scheduler.log"},
          "execution": {"shell": "/bin/bash", "overlap_policy": "queue", "max_queued": 1}
        }
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize scheduler configuration.

        Args:
            config_path: Path to configuration file. If None, uses env var or nothing.

        Raises:
            ConfigurationError: If a configuration file was named but cannot be loaded
        """
        if config_path:
            self.config_path = Path(config_path).expanduser()
        elif os.environ.get(ENV_CONFIG_PATH):
            self.config_path = Path(os.environ[ENV_CONFIG_PATH]).expanduser()
        else:
            self.config_path = None

        self.tasks: List[TaskConfig] = []
        self.logging: LoggingConfig = LoggingConfig()
        self.execution: ExecutionConfig = ExecutionConfig()

        if self.config_path is not None:
            if not self.config_path.exists():
                raise ConfigurationError(f"Config file not found: {self.config_path}")
            self.load()

    def load(self):
        """Load configuration from the JSON file."""
        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to load config from {self.config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {self.config_path} must contain a JSON object")

        self.tasks = []
        for index, task_data in enumerate(data.get('tasks', [])):
            try:
                self.tasks.append(self._load_task(task_data))
            except (ConfigurationError, KeyError, TypeError) as e:
                logger.error(f"Skipping task #{index} in {self.config_path}: {e}")

        try:
            if 'logging' in data:
                self.logging = LoggingConfig(**data['logging'])
            if 'execution' in data:
                self.execution = ExecutionConfig(**data['execution'])
        except TypeError as e:
            raise ConfigurationError(f"Invalid section in {self.config_path}: {e}") from e

        logger.info(f"Loaded {len(self.tasks)} task(s) from {self.config_path}")

    @staticmethod
    def _load_task(task_data: Dict[str, Any]) -> TaskConfig:
        command = str(task_data['command']).strip()
        if not command:
            raise ConfigurationError("'command' cannot be empty")

        interval = task_data['interval']
        if isinstance(interval, str):
            interval = parse_duration(interval)
        interval = float(interval)
        if not is_valid_interval(interval):
            raise ConfigurationError(
                f"Task '{command}': 'interval' must be a finite number of seconds "
                f"no shorter than {MIN_INTERVAL:g}"
            )

        return TaskConfig(command=command, interval=interval)

    def task_pairs(self) -> List[Tuple[str, float]]:
        """Task definitions as (identity, interval_seconds) pairs."""
        return [(task.command, task.interval) for task in self.tasks]

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.execution.shell or not str(self.execution.shell).strip():
            errors.append("execution: 'shell' cannot be empty")

        try:
            self.execution.policy
        except ValueError:
            allowed = ", ".join(p.value for p in OverlapPolicy)
            errors.append(
                f"execution: 'overlap_policy' must be one of {allowed}, "
                f"got {self.execution.overlap_policy!r}"
            )

        try:
            if int(self.execution.max_queued) < 0:
                errors.append("execution: 'max_queued' cannot be negative")
        except (TypeError, ValueError):
            errors.append(f"execution: 'max_queued' must be an integer, got {self.execution.max_queued!r}")

        suffixes = self.execution.script_suffixes
        if not isinstance(suffixes, (list, tuple)) or not all(isinstance(s, str) and s for s in suffixes):
            errors.append("execution: 'script_suffixes' must be a list of non-empty strings")

        if not isinstance(logging.getLevelName(str(self.logging.level).upper()), int):
            errors.append(f"logging: unknown level {self.logging.level!r}")

        return errors

    def __repr__(self):
        return f"SchedulerConfig(tasks={len(self.tasks)}, path={self.config_path})"
