"""
Tests for duration parsing, task files and the settings file.
"""

import json

import pytest

from task_scheduler.config import (
    DEFAULT_LOG_FILE,
    DurationError,
    ExecutionConfig,
    LoggingConfig,
    SchedulerConfig,
    parse_duration,
    parse_duration_list,
    parse_task_file,
    parse_task_row,
)
from task_scheduler.jobs import OverlapPolicy
from task_scheduler.tasks import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "TASK_SCHEDULER_CONFIG_PATH",
        "TASK_SCHEDULER_LOG_FILE",
        "TASK_SCHEDULER_LOG_LEVEL",
        "TASK_SCHEDULER_SHELL",
        "TASK_SCHEDULER_OVERLAP",
        "TASK_SCHEDULER_MAX_QUEUED",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.mark.parametrize("text, seconds", [
    ("100ms", 0.1),
    ("5s", 5.0),
    ("1.5h", 5400.0),
    ("2h5m10s", 7510.0),
    ("1m30s", 90.0),
    ("250us", 0.00025),
    ("250µs", 0.00025),
    ("1500ns", 0.0000015),
    (".5s", 0.5),
    ("+10s", 10.0),
    (" 3s ", 3.0),
    ("0", 0.0),
    ("0s", 0.0),
])
def test_parse_duration(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "   ", "10", "5 s", "1d", "s", "1h-5m", "abc", "-", "1.2.3s"])
def test_parse_duration_rejects_malformed(text):
    with pytest.raises(DurationError):
        parse_duration(text)


def test_parse_duration_rejects_negative():
    with pytest.raises(DurationError, match="negative"):
        parse_duration("-5s")


def test_duration_error_is_configuration_error():
    with pytest.raises(ConfigurationError):
        parse_duration("soon")


def test_parse_duration_list():
    assert parse_duration_list("1s, 2m,,") == [1.0, 120.0]
    assert parse_duration_list("") == []
    assert parse_duration_list(None) == []


def test_parse_task_row_allows_command_arguments():
    assert parse_task_row("ping -c3 example.com 5m") == ("ping -c3 example.com", 300.0)
    assert parse_task_row("/etc/path/to/my/script.sh 2h5m10s") == ("/etc/path/to/my/script.sh", 7510.0)


@pytest.mark.parametrize("row", ["onlyonetoken", "echo hi 0s", "echo hi soon", "echo hi 1ns", "echo hi 999ns"])
def test_parse_task_row_rejects_bad_rows(row):
    with pytest.raises(ConfigurationError):
        parse_task_row(row)


def test_parse_task_file_skips_malformed_rows(tmp_path):
    task_file = tmp_path / "tasks.txt"
    task_file.write_text(
        "# nightly jobs\n"
        "/opt/jobs/backup.sh 2h\n"
        "\n"
        "not-a-valid-row\n"
        "echo hello 100ms\n"
        "uptime forever\n"
        "date 0s\n"
        "df -h 1m\n"
    )

    assert parse_task_file(str(task_file)) == [
        ("/opt/jobs/backup.sh", 7200.0),
        ("echo hello", 0.1),
        ("df -h", 60.0),
    ]


def test_parse_task_file_missing_file(tmp_path):
    assert parse_task_file(str(tmp_path / "nope.txt")) == []


def test_defaults_without_config_file():
    config = SchedulerConfig()

    assert config.config_path is None
    assert config.tasks == []
    assert config.logging.file == DEFAULT_LOG_FILE
    assert config.logging.level == "INFO"
    assert config.execution.shell == "/bin/bash"
    assert config.execution.policy == OverlapPolicy.QUEUE
    assert config.execution.max_queued == 1
    assert config.execution.script_suffixes == [".sh"]
    assert config.validate() == []


def test_load_config_file(tmp_path):
    config_file = tmp_path / "scheduler.json"
    config_file.write_text(json.dumps({
        "tasks": [
            {"command": "echo hello", "interval": "100ms"},
            {"command": "backup.sh", "interval": 3600},
            {"command": "broken", "interval": "-1s"},
            {"interval": "5s"},
        ],
        "logging": {"level": "DEBUG"},
        "execution": {"overlap_policy": "skip", "shell": "/usr/bin/bash"},
    }))

    config = SchedulerConfig(str(config_file))

    assert config.task_pairs() == [("echo hello", 0.1), ("backup.sh", 3600.0)]
    assert config.logging.level == "DEBUG"
    assert config.logging.file == DEFAULT_LOG_FILE
    assert config.execution.policy == OverlapPolicy.SKIP
    assert config.execution.shell == "/usr/bin/bash"
    assert config.validate() == []


def test_config_path_from_environment(tmp_path, monkeypatch):
    config_file = tmp_path / "scheduler.json"
    config_file.write_text(json.dumps({"tasks": [{"command": "date", "interval": "1m"}]}))
    monkeypatch.setenv("TASK_SCHEDULER_CONFIG_PATH", str(config_file))

    config = SchedulerConfig()
    assert config.config_path == config_file
    assert config.task_pairs() == [("date", 60.0)]


def test_missing_config_file_is_an_error(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        SchedulerConfig(str(tmp_path / "missing.json"))


def test_invalid_json_is_an_error(tmp_path):
    config_file = tmp_path / "scheduler.json"
    config_file.write_text("{not json")

    with pytest.raises(ConfigurationError):
        SchedulerConfig(str(config_file))


def test_unknown_section_key_is_an_error(tmp_path):
    config_file = tmp_path / "scheduler.json"
    config_file.write_text(json.dumps({"execution": {"workers": 4}}))

    with pytest.raises(ConfigurationError):
        SchedulerConfig(str(config_file))


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("TASK_SCHEDULER_LOG_FILE", "/tmp/custom.log")
    monkeypatch.setenv("TASK_SCHEDULER_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("TASK_SCHEDULER_SHELL", "/bin/sh")
    monkeypatch.setenv("TASK_SCHEDULER_OVERLAP", "skip")
    monkeypatch.setenv("TASK_SCHEDULER_MAX_QUEUED", "4")

    logging_config = LoggingConfig()
    execution = ExecutionConfig()

    assert logging_config.file == "/tmp/custom.log"
    assert logging_config.level == "WARNING"
    assert execution.shell == "/bin/sh"
    assert execution.policy == OverlapPolicy.SKIP
    assert execution.max_queued == 4


def test_bad_max_queued_environment_falls_back(monkeypatch):
    monkeypatch.setenv("TASK_SCHEDULER_MAX_QUEUED", "lots")
    assert ExecutionConfig().max_queued == 1


def test_instances_per_task():
    assert ExecutionConfig(overlap_policy="queue", max_queued=1).instances_per_task() == 2
    assert ExecutionConfig(overlap_policy="queue", max_queued=0).instances_per_task() == 1
    assert ExecutionConfig(overlap_policy="skip", max_queued=5).instances_per_task() == 1


def test_validate_reports_every_problem():
    config = SchedulerConfig()
    config.execution = ExecutionConfig(
        shell="", overlap_policy="drop", max_queued=-1, script_suffixes=[""]
    )
    config.logging = LoggingConfig(level="LOUD")

    errors = config.validate()
    assert len(errors) == 5
    assert any("shell" in e for e in errors)
    assert any("overlap_policy" in e for e in errors)
    assert any("max_queued" in e for e in errors)
    assert any("script_suffixes" in e for e in errors)
    assert any("LOUD" in e for e in errors)


def test_non_finite_intervals_in_config_file_are_skipped(tmp_path):
    config_file = tmp_path / "scheduler.json"
    # json.dumps writes these as the NaN / Infinity literals json.load accepts
    config_file.write_text(json.dumps({
        "tasks": [
            {"command": "echo nan", "interval": float("nan")},
            {"command": "echo inf", "interval": float("inf")},
            {"command": "echo tiny", "interval": 1e-9},
            {"command": "echo ok", "interval": 1},
        ],
    }))

    config = SchedulerConfig(str(config_file))
    assert config.task_pairs() == [("echo ok", 1.0)]


def test_parse_task_row_accepts_one_microsecond():
    assert parse_task_row("echo hi 1us") == ("echo hi", pytest.approx(1e-6))
