#!/usr/bin/env python3
"""
Basic Usage Examples for the task scheduler

This script shows how to embed the scheduler in another program instead
of running the task-scheduler command.
"""

import logging
import sys
import time
from pathlib import Path

# Add parent directory to path for imports (if running as standalone script)
sys.path.insert(0, str(Path(__file__).parent.parent))

from task_scheduler import (
    ExecutionConfig,
    MemoryRecorder,
    SchedulerService,
    build_tasks,
    parse_duration,
)


def example_1_run_for_a_while():
    """Example 1: Run two tasks for a few seconds and inspect the outcomes"""
    print("\n" + "=" * 60)
    print("Example 1: Run tasks in the background")
    print("=" * 60)

    tasks = build_tasks([
        ("echo hello", parse_duration("500ms")),
        ("date +%T", parse_duration("1s")),
    ])
    recorder = MemoryRecorder()

    service = SchedulerService(tasks, recorder=recorder)
    service.start()
    time.sleep(3.2)
    service.stop(wait=True)

    for outcome in recorder.outcomes():
        print(f"  {outcome.timestamp:%H:%M:%S.%f} {outcome.task}: {outcome.status.value} - {outcome.detail}")

    print(f"\nTicks per task: {service.tick_counts()}")


def example_2_skip_while_busy():
    """Example 2: A slow task with the skip overlap policy"""
    print("\n" + "=" * 60)
    print("Example 2: Skip ticks while the previous run is still going")
    print("=" * 60)

    tasks = build_tasks([("sleep 1", 0.25)])
    recorder = MemoryRecorder()

    service = SchedulerService(
        tasks,
        recorder=recorder,
        execution=ExecutionConfig(overlap_policy="skip")
    )
    service.start()
    time.sleep(2.6)
    service.stop(wait=True)

    ticks = service.tick_counts()["task-0"]
    print(f"\n{ticks} ticks fired, {len(recorder)} run(s) completed")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    example_1_run_for_a_while()
    example_2_skip_while_busy()
