"""
Command-line interface for the task scheduler.

Collects task definitions from flags, a task file and an optional JSON
settings file, sets up logging, and runs the scheduler in the foreground
until the process is terminated.

Examples:
    task-scheduler --tasks "echo hello,/opt/jobs/backup.sh" --durations "10s,1h"
    task-scheduler --file /etc/task-scheduler/tasks.txt --logs /var/log/task-scheduler.log
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from task_scheduler.config import (
    DEFAULT_LOG_FILE,
    SchedulerConfig,
    parse_duration_list,
    parse_task_file,
)
from task_scheduler.jobs import OverlapPolicy
from task_scheduler.service import SchedulerService
from task_scheduler.tasks import ConfigurationError, build_tasks

logger = logging.getLogger(__name__)


def setup_logging(log_file: str = DEFAULT_LOG_FILE, level: str = "INFO") -> Path:
    """
    Setup logging configuration.

    Falls back to the default log file if the requested one cannot be
    opened.

    Returns:
        Path of the log file in use

    Raises:
        ConfigurationError: If not even the default log file can be opened
    """
    numeric_level = logging.getLevelName(str(level).upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    log_path = Path(log_file).expanduser()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
    except OSError as e:
        default_path = Path(DEFAULT_LOG_FILE)
        if log_path == default_path:
            raise ConfigurationError(f"Cannot open log file {log_path}: {e}") from e

        print(
            f"Cannot open log file {log_path}: {e}. Falling back to {default_path}",
            file=sys.stderr
        )
        try:
            file_handler = logging.FileHandler(default_path)
        except OSError as fallback_error:
            raise ConfigurationError(
                f"Cannot open fallback log file {default_path}: {fallback_error}"
            ) from fallback_error
        log_path = default_path

    file_handler.setLevel(numeric_level)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    ))

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    return log_path


def collect_task_pairs(args, config: SchedulerConfig) -> List[Tuple[str, float]]:
    """
    Gather task definitions in order: flags, then task file, then settings file.

    Raises:
        ConfigurationError: If flag tasks and durations do not line up or a
            duration is invalid
    """
    identities = [t.strip() for t in (args.tasks or "").split(",") if t.strip()]
    durations = parse_duration_list(args.durations)

    if len(identities) != len(durations):
        raise ConfigurationError(
            f"Got {len(identities)} task(s) but {len(durations)} duration(s); "
            f"every task in --tasks needs a matching entry in --durations"
        )

    pairs = list(zip(identities, durations))

    if args.file:
        logger.info(f"Reading tasks file {args.file}")
        pairs.extend(parse_task_file(args.file))

    pairs.extend(config.task_pairs())
    return pairs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="task-scheduler",
        description="Run commands and shell scripts forever, each on its own interval",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--tasks',
        type=str,
        default="",
        help='Comma separated list of tasks to run. Each is a command or a path to a local script file (.sh)'
    )
    parser.add_argument(
        '--durations',
        type=str,
        default="",
        help='Comma separated list of durations to wait between runs (e.g. "30s,1h5m"), '
             'in the same order as --tasks'
    )
    parser.add_argument(
        '--file',
        type=str,
        help='Task file with one task per line: "/path/to/script.sh 2h5m10s"'
    )
    parser.add_argument(
        '--logs',
        type=str,
        help=f'Where to write application logs (default: {DEFAULT_LOG_FILE})'
    )
    parser.add_argument(
        '-c', '--config',
        type=str,
        help='Path to a JSON settings file'
    )
    parser.add_argument(
        '--overlap',
        choices=[p.value for p in OverlapPolicy],
        help='What to do when a task is still running at its next tick (default: queue)'
    )
    parser.add_argument(
        '--max-queued',
        type=int,
        help='Ticks allowed to wait per task under the queue policy (default: 1)'
    )
    parser.add_argument(
        '--shell',
        type=str,
        help='Interpreter used for script tasks (default: /bin/bash)'
    )
    parser.add_argument(
        '--check',
        action='store_true',
        help='Validate the configuration, list the tasks and exit'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    return parser


def _fail(message: str):
    logger.error(f"ERROR!: {message}")
    print(f"task-scheduler: {message}", file=sys.stderr)
    sys.exit(1)


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = SchedulerConfig(args.config)
    except ConfigurationError as e:
        _fail(str(e))

    # Flags win over the settings file and environment
    if args.logs:
        config.logging.file = args.logs
    if args.verbose:
        config.logging.level = "DEBUG"
    if args.overlap:
        config.execution.overlap_policy = args.overlap
    if args.max_queued is not None:
        config.execution.max_queued = args.max_queued
    if args.shell:
        config.execution.shell = args.shell

    try:
        log_path = setup_logging(config.logging.file, config.logging.level)
    except ConfigurationError as e:
        _fail(str(e))

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"  - {error}")
        _fail("Configuration validation failed: " + "; ".join(errors))

    try:
        pairs = collect_task_pairs(args, config)
        tasks = build_tasks(pairs, script_suffixes=config.execution.script_suffixes)
        service = SchedulerService(
            tasks,
            execution=config.execution,
            foreground=not args.check
        )
    except ConfigurationError as e:
        _fail(str(e))

    if args.check:
        print(f"\n{len(service.tasks)} task(s) configured:\n")
        for job in service.get_jobs():
            print(f"  {job['task']}")
            print(f"    Kind: {job['kind']}")
            print(f"    Every: {job['interval_seconds']:g}s")
        print(f"\nLogs: {log_path}")
        return

    logger.info(f"Logging to {log_path}")
    logger.info("Running in foreground mode. Press Ctrl+C to stop.")
    service.serve_forever()


if __name__ == '__main__':
    main()
