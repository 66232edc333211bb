from unittest import mock

from worker_supervisor.local.console import execute_command
from worker_supervisor.local.probe_client import ProbeResult
from worker_supervisor.local.supervisor import WorkerState

from .conftest import SLEEPER, posix_only


def test_status_of_a_stopped_worker(make_supervisor, capsys):
    supervisor = make_supervisor(SLEEPER)

    assert execute_command("status", [], supervisor) is False

    out = capsys.readouterr().out
    assert "State    : STOPPED" in out
    assert "PID" not in out


def test_exit_asks_the_console_to_quit(make_supervisor):
    assert execute_command("exit", [], make_supervisor(SLEEPER)) is True


def test_unknown_command_is_reported(make_supervisor, capsys):
    assert execute_command("launch", [], make_supervisor(SLEEPER)) is False
    assert "Unknown command: 'launch'" in capsys.readouterr().out


def test_help_lists_the_commands(make_supervisor, capsys):
    execute_command("help", [], make_supervisor(SLEEPER))
    out = capsys.readouterr().out
    for command in ("start", "stop", "restart", "status", "probe", "wait-ready", "config"):
        assert f"  {command}" in out


def test_probe_requires_a_running_worker(make_supervisor, capsys):
    execute_command("probe", [], make_supervisor(SLEEPER))
    assert "not running" in capsys.readouterr().out


@posix_only
def test_start_status_probe_stop(make_supervisor, capsys):
    supervisor = make_supervisor(SLEEPER)

    execute_command("start", [], supervisor)
    assert supervisor.status().state is WorkerState.RUNNING
    assert "Worker is RUNNING." in capsys.readouterr().out

    execute_command("status", [], supervisor)
    out = capsys.readouterr().out
    assert f"PID      : {supervisor.status().pid}" in out
    assert "Listen   : http://127.0.0.1:8080" in out

    with mock.patch("worker_supervisor.local.console.handler.probe_worker",
                    return_value=ProbeResult(ok=False, error="Connection error: refused")) as probe:
        execute_command("probe", [], supervisor)
    probe.assert_called_once()
    assert "Probe failed: Connection error: refused" in capsys.readouterr().out

    execute_command("stop", [], supervisor)
    assert supervisor.status().state is WorkerState.STOPPED
    assert "Worker is STOPPED." in capsys.readouterr().out


def test_config_set_goes_through_merged_settings(make_supervisor, capsys):
    with mock.patch("worker_supervisor.local.console.handler.config") as config:
        config.update_setting.return_value = (True, "Setting 'PROBE_TIMEOUT' updated to '3.0'.")
        execute_command("config", ["set", "probe_timeout", "3"], make_supervisor(SLEEPER))

    config.update_setting.assert_called_once_with("PROBE_TIMEOUT", "3")
    assert "updated" in capsys.readouterr().out
