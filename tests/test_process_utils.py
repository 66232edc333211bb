import os
import logging
from pathlib import Path

import pytest

from worker_supervisor.local.supervisor import LaunchError
from worker_supervisor.local.supervisor.installer import ArtifactInstaller
from worker_supervisor.local.supervisor.process_utils import build_environment, launch_worker

from .conftest import SLEEPER, posix_only, wait_until

ENV_DUMP = "#!/bin/sh\nenv > env.txt\npwd > cwd.txt\n"
CHATTY = "#!/bin/sh\necho listening on 8080\necho disk almost full >&2\n"


def _read_env(path: Path) -> dict:
    pairs = (line.split("=", 1) for line in path.read_text().splitlines() if "=" in line)
    return {key: value for key, value in pairs}


def test_build_environment_merges_over_ambient(make_spec, monkeypatch):
    monkeypatch.setenv("AMBIENT_ONLY", "kept")
    monkeypatch.setenv("SHARED_VAR", "ambient")
    spec = make_spec(SLEEPER, env={"SHARED_VAR": "override"}, port=9191)

    env = build_environment(spec)

    assert env["AMBIENT_ONLY"] == "kept"
    assert env["SHARED_VAR"] == "override"
    assert env["SERVER_PORT"] == "9191"
    assert env["RUST_LOG"] == "info"


@posix_only
def test_worker_gets_environment_and_working_directory(make_spec, monkeypatch):
    monkeypatch.setenv("SHARED_VAR", "ambient")
    spec = make_spec(ENV_DUMP, env={"SHARED_VAR": "override"})
    path = ArtifactInstaller().ensure_installed(spec)

    handle = launch_worker(path, spec)
    assert handle.process.wait(timeout=5) == 0

    env = _read_env(spec.install_dir / "env.txt")
    assert env["SHARED_VAR"] == "override"
    assert env["SERVER_PORT"] == "8080"
    assert env["RUST_LOG"] == "info"
    assert Path((spec.install_dir / "cwd.txt").read_text().strip()).resolve() == spec.install_dir.resolve()


@posix_only
def test_launch_returns_without_waiting_for_the_worker(make_spec):
    spec = make_spec(SLEEPER)
    path = ArtifactInstaller().ensure_installed(spec)

    handle = launch_worker(path, spec)
    try:
        assert handle.process.poll() is None
        assert handle.pid == handle.process.pid
        assert handle.proc is not None and handle.proc.pid == handle.pid
    finally:
        handle.process.kill()
        handle.process.wait(timeout=5)


def test_missing_executable_raises_launch_error(tmp_path, make_spec):
    spec = make_spec(SLEEPER)
    with pytest.raises(LaunchError):
        launch_worker(tmp_path / "nowhere" / "worker", spec)


@posix_only
def test_unrunnable_executable_raises_launch_error(make_spec):
    spec = make_spec(b"\x00\x01\x02 not a program")
    path = ArtifactInstaller().ensure_installed(spec)
    with pytest.raises(LaunchError, match="Cannot start"):
        launch_worker(path, spec)


@posix_only
def test_not_executable_file_raises_launch_error(make_spec):
    spec = make_spec(SLEEPER)
    path = ArtifactInstaller().ensure_installed(spec)
    os.chmod(path, 0o644)
    with pytest.raises(LaunchError):
        launch_worker(path, spec)


@posix_only
def test_worker_output_is_logged_under_its_name(make_spec, caplog):
    caplog.set_level(logging.INFO, logger="proc.chatty")
    spec = make_spec(CHATTY, name="chatty")
    path = ArtifactInstaller().ensure_installed(spec)

    handle = launch_worker(path, spec)
    assert handle.process.wait(timeout=5) == 0

    def logged():
        return {(r.name, r.levelno, r.getMessage()) for r in caplog.records}

    assert wait_until(lambda: len([r for r in caplog.records if r.name == "proc.chatty"]) == 2)
    assert ("proc.chatty", logging.INFO, "listening on 8080") in logged()
    assert ("proc.chatty", logging.WARNING, "disk almost full") in logged()
