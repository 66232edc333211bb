import os
import queue
import signal

from worker_supervisor.local.supervisor import monitor
from worker_supervisor.local.supervisor.installer import ArtifactInstaller
from worker_supervisor.local.supervisor.process_utils import launch_worker

from .conftest import SLEEPER, posix_only

pytestmark = posix_only


def _launch(make_spec, script):
    spec = make_spec(script)
    return launch_worker(ArtifactInstaller().ensure_installed(spec), spec)


def test_exit_event_carries_exit_code_and_duration(make_spec):
    handle = _launch(make_spec, "#!/bin/sh\nexit 7\n")
    events = queue.Queue()

    monitor.watch(handle, events.put).join(timeout=5)

    event = events.get_nowait()
    assert event.handle_id == handle.id
    assert event.pid == handle.pid
    assert event.exit_code == 7
    assert event.duration >= 0
    assert events.empty()


def test_signal_death_is_reported_as_signal(make_spec):
    handle = _launch(make_spec, SLEEPER)
    events = queue.Queue()
    thread = monitor.watch(handle, events.put)

    os.kill(handle.pid, signal.SIGKILL)
    thread.join(timeout=5)

    event = events.get_nowait()
    assert event.exit_code is None
    assert event.signal == signal.SIGKILL
    assert not event.clean


def test_monitor_runs_in_its_own_daemon_thread(make_spec):
    handle = _launch(make_spec, SLEEPER)
    events = queue.Queue()
    thread = monitor.watch(handle, events.put)
    try:
        assert thread.daemon
        assert thread.is_alive()
        assert events.empty()
    finally:
        handle.process.kill()
        thread.join(timeout=5)
    assert events.qsize() == 1
