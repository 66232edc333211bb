import time
import logging
import threading
from typing import Callable

from worker_supervisor.local.supervisor.models import ExitEvent, WorkerHandle

log = logging.getLogger(__name__)


def _wait_for_exit(handle: WorkerHandle, deliver: Callable[[ExitEvent], None]) -> None:
    """
    Blocks until the worker process terminates, then delivers its ExitEvent.
    Runs in a dedicated background thread, once per handle.
    """
    returncode = handle.process.wait()
    event = ExitEvent(
        handle_id=handle.id,
        pid=handle.pid,
        returncode=returncode,
        duration=time.monotonic() - handle.started_monotonic,
    )
    log.info(f"Worker (PID: {handle.pid}) exited with {event.describe()} after {event.duration:.2f}s.")
    deliver(event)


def watch(handle: WorkerHandle, deliver: Callable[[ExitEvent], None]) -> threading.Thread:
    """
    Starts a thread that reports the exit of the given worker exactly once.

    :param handle: The worker to watch.
    :param deliver: Called with the ExitEvent, typically a queue's `put`.
    :return: The started monitor thread.
    """
    monitor_thread = threading.Thread(
        target=_wait_for_exit,
        args=(handle, deliver),
        daemon=True,
        name=f"WorkerMonitorThread-{handle.pid}",
    )
    monitor_thread.start()
    return monitor_thread
