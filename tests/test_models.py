import dataclasses
import signal

import pytest

from worker_supervisor.local.supervisor import ExitEvent, SupervisorStatus, WorkerSpec, WorkerState


def _spec(**kwargs):
    return WorkerSpec(
        name="rust_server",
        artifact_name="librust_server.so",
        bundle_dir="/opt/bundle",
        install_path="/var/lib/app/bin/rust_server",
        port=8080,
        **kwargs,
    )


def test_spec_is_immutable():
    spec = _spec(env={"A": "1"})
    with pytest.raises(dataclasses.FrozenInstanceError):
        spec.port = 9090
    with pytest.raises(TypeError):
        spec.env["A"] = "2"


def test_spec_does_not_share_the_callers_mapping():
    env = {"A": "1"}
    spec = _spec(env=env)
    env["A"] = "changed"
    assert spec.env["A"] == "1"


def test_environment_overrides_include_log_hint_and_port():
    overrides = _spec(log_level="debug").environment_overrides()
    assert overrides["RUST_LOG"] == "debug"
    assert overrides["SERVER_PORT"] == "8080"


def test_explicit_env_wins_over_generated_variables():
    overrides = _spec(env={"RUST_LOG": "trace", "EXTRA": "x"}).environment_overrides()
    assert overrides["RUST_LOG"] == "trace"
    assert overrides["EXTRA"] == "x"


def test_paths_are_derived_from_spec():
    spec = _spec()
    assert str(spec.artifact_path).endswith("librust_server.so")
    assert spec.install_dir == spec.install_path.parent


def test_exit_event_for_normal_exit():
    event = ExitEvent(handle_id=1, pid=10, returncode=3, duration=1.5)
    assert event.exit_code == 3
    assert event.signal is None
    assert not event.clean
    assert event.describe() == "exit code 3"


def test_exit_event_for_signal_death():
    event = ExitEvent(handle_id=1, pid=10, returncode=-signal.SIGKILL, duration=0.1)
    assert event.exit_code is None
    assert event.signal == signal.SIGKILL
    assert "SIGKILL" in event.describe()


def test_status_description_shows_failure_reason_and_stall():
    failed = SupervisorStatus(state=WorkerState.FAILED, reason="Bundled artifact missing.")
    assert failed.describe() == "FAILED (Bundled artifact missing.)"
    stalled = SupervisorStatus(state=WorkerState.STOPPING, stalled=True)
    assert "STALLED" in stalled.describe()
    assert not stalled.is_running
