import sys
import time
from pathlib import Path
from typing import Callable, List

import psutil
import pytest

from worker_supervisor.local.supervisor import RestartPolicy, WorkerSpec, WorkerSupervisor
from worker_supervisor.local.supervisor.process_utils import launch_worker

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="worker scripts are POSIX shell scripts")

# Runs until signalled; SIGTERM ends it.
SLEEPER = "#!/bin/sh\nexec sleep 30\n"
# Ignores SIGTERM once 'ready' exists in its working directory.
STUBBORN = "#!/bin/sh\ntrap '' TERM\ntouch ready\nexec sleep 30\n"
CLEAN_EXIT = "#!/bin/sh\nexit 0\n"
CRASH = "#!/bin/sh\nexit 3\n"


def crash_first(times: int) -> str:
    """A worker that exits with code 3 on its first `times` runs, then keeps running."""
    return (
        "#!/bin/sh\n"
        "n=$(cat runs 2>/dev/null || echo 0)\n"
        "n=$((n+1))\n"
        "echo $n > runs\n"
        f"if [ \"$n\" -le {times} ]; then exit 3; fi\n"
        "exec sleep 30\n"
    )


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def is_alive(pid: int) -> bool:
    """True for a live, non-zombie process."""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


class CountingLauncher:
    """Wraps launch_worker and remembers every PID it started."""

    def __init__(self, launch=launch_worker):
        self._launch = launch
        self.pids: List[int] = []

    def __call__(self, path, spec):
        handle = self._launch(path, spec)
        self.pids.append(handle.pid)
        return handle

    @property
    def count(self) -> int:
        return len(self.pids)


@pytest.fixture
def make_spec(tmp_path: Path):
    def _make(script, name: str = "worker", **kwargs) -> WorkerSpec:
        bundle_dir = tmp_path / "bundle"
        bundle_dir.mkdir(exist_ok=True)
        artifact = bundle_dir / f"{name}.bin"
        if isinstance(script, bytes):
            artifact.write_bytes(script)
        else:
            artifact.write_text(script)
        kwargs.setdefault("port", 8080)
        return WorkerSpec(
            name=name,
            artifact_name=artifact.name,
            bundle_dir=bundle_dir,
            install_path=tmp_path / "install" / name,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_supervisor(make_spec):
    created: List[WorkerSupervisor] = []

    def _make(script, policy: RestartPolicy = None, grace_period: float = 3.0,
              kill_timeout: float = 3.0, launcher=None, **spec_kwargs) -> WorkerSupervisor:
        kwargs = {"launcher": launcher} if launcher is not None else {}
        supervisor = WorkerSupervisor(
            make_spec(script, **spec_kwargs),
            policy=policy,
            grace_period=grace_period,
            kill_timeout=kill_timeout,
            **kwargs,
        )
        created.append(supervisor)
        return supervisor

    yield _make
    for supervisor in created:
        supervisor.close()
