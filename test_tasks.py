"""
Tests for task definitions and kind classification.
"""

from datetime import timedelta

import pytest

from task_scheduler.tasks import (
    MIN_INTERVAL,
    ConfigurationError,
    InvalidTaskError,
    Task,
    TaskKind,
    build_tasks,
    classify_task,
    is_valid_interval,
)


def test_script_suffix_is_shell_script():
    for _ in range(3):
        assert classify_task("script.sh") == TaskKind.SHELL_SCRIPT
    assert classify_task("/opt/jobs/backup.sh") == TaskKind.SHELL_SCRIPT


def test_command_line_is_command():
    for _ in range(3):
        assert classify_task("ping -c3 host") == TaskKind.COMMAND
    assert classify_task("echo hello") == TaskKind.COMMAND
    # a script with arguments is run as a command line
    assert classify_task("script.sh --verbose") == TaskKind.COMMAND


def test_custom_script_suffixes():
    assert classify_task("job.bash", script_suffixes=(".sh", ".bash")) == TaskKind.SHELL_SCRIPT
    assert classify_task("job.bash") == TaskKind.COMMAND


def test_kind_is_derived_at_construction():
    task = Task("cleanup.sh", 5)
    assert task.kind == TaskKind.SHELL_SCRIPT
    assert task.is_script

    task = Task("date", 5)
    assert task.kind == TaskKind.COMMAND
    assert not task.is_script


def test_task_is_immutable():
    task = Task("date", 5)
    with pytest.raises(AttributeError):
        task.interval = 10


@pytest.mark.parametrize("interval", [
    0, -1, -0.5, timedelta(0), timedelta(seconds=-3),
    float("nan"), float("inf"), float("-inf"), 1e-9,
])
def test_unusable_interval_rejected(interval):
    with pytest.raises(InvalidTaskError):
        Task("echo hello", interval)


def test_invalid_task_error_is_configuration_error():
    with pytest.raises(ConfigurationError):
        Task("echo hello", 0)


@pytest.mark.parametrize("identity", ["", "   "])
def test_empty_identity_rejected(identity):
    with pytest.raises(InvalidTaskError):
        Task(identity, 1)


def test_non_numeric_interval_rejected():
    with pytest.raises(InvalidTaskError):
        Task("echo hello", "soon")


def test_timedelta_interval_converted_to_seconds():
    task = Task("echo hello", timedelta(minutes=1, milliseconds=500))
    assert task.interval == pytest.approx(60.5)


def test_each_task_owns_its_lock():
    a = Task("echo a", 1)
    b = Task("echo a", 1)
    assert a.lock is not b.lock
    # the lock takes no part in equality
    assert a == b

    a.lock.acquire()
    try:
        assert not b.lock.locked()
    finally:
        a.lock.release()


def test_build_tasks_preserves_order():
    tasks = build_tasks([("run.sh", 1), ("echo hi", 2.5), ("uptime", timedelta(seconds=3))])

    assert [t.identity for t in tasks] == ["run.sh", "echo hi", "uptime"]
    assert [t.kind for t in tasks] == [TaskKind.SHELL_SCRIPT, TaskKind.COMMAND, TaskKind.COMMAND]
    assert [t.interval for t in tasks] == [1.0, 2.5, 3.0]


def test_build_tasks_uses_given_suffixes():
    tasks = build_tasks([("job.bash", 1)], script_suffixes=(".bash",))
    assert tasks[0].kind == TaskKind.SHELL_SCRIPT


def test_build_tasks_fails_fast():
    with pytest.raises(InvalidTaskError):
        build_tasks([("echo ok", 1), ("echo bad", 0)])


def test_shortest_interval_is_one_microsecond():
    assert Task("echo hello", MIN_INTERVAL).interval == MIN_INTERVAL
    with pytest.raises(InvalidTaskError):
        Task("echo hello", MIN_INTERVAL / 2)


@pytest.mark.parametrize("seconds, valid", [
    (1, True),
    (0.5, True),
    (MIN_INTERVAL, True),
    (0, False),
    (-2, False),
    (float("nan"), False),
    (float("inf"), False),
])
def test_is_valid_interval(seconds, valid):
    assert is_valid_interval(seconds) is valid


def test_build_tasks_allows_repeated_identity():
    tasks = build_tasks([("echo hi", 1), ("echo hi", 5)])
    assert [t.interval for t in tasks] == [1.0, 5.0]
    assert tasks[0].lock is not tasks[1].lock
