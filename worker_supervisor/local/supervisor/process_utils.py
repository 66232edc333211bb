import os
import sys
import time
import psutil
import logging
import threading
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from worker_supervisor.local.supervisor.errors import LaunchError
from worker_supervisor.local.supervisor.models import WorkerHandle, WorkerSpec

log = logging.getLogger(__name__)


#* --- Process Creation ---
def _get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific creation flags for subprocess.Popen."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.DETACHED_PROCESS | subprocess.CREATE_NO_WINDOW}
    # A session of its own keeps terminal signals aimed at the supervisor away from the worker.
    return {"start_new_session": True}

def build_environment(spec: WorkerSpec) -> Dict[str, str]:
    """Returns the ambient environment with the worker's variables merged over it."""
    env = dict(os.environ)
    env.update(spec.environment_overrides())
    return env

def _read_pipe(pipe, process_name: str, level: int):
    """Target function for reader threads. Reads and logs lines from a subprocess pipe."""
    proc_logger = logging.getLogger(f"proc.{process_name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").strip()
            if line:
                proc_logger.log(level, line)
    except Exception as e:
        proc_logger.debug(f"Pipe reader for {process_name} stream exited: {e}")
    finally:
        pipe.close()

def log_process_output(process: subprocess.Popen, name: str):
    """Starts background threads to consume and log a process's stdout/stderr."""
    if process.stdout:
        threading.Thread(
            target=_read_pipe, args=(process.stdout, name, logging.INFO),
            daemon=True, name=f"{name}-stdout"
        ).start()
    if process.stderr:
        threading.Thread(
            target=_read_pipe, args=(process.stderr, name, logging.WARNING),
            daemon=True, name=f"{name}-stderr"
        ).start()

def launch_worker(path: Path, spec: WorkerSpec) -> WorkerHandle:
    """
    Starts the worker executable as a child process and returns its handle.

    The call does not wait for the worker to become ready.

    :param path: The installed executable.
    :param spec: The worker spec supplying arguments and environment.
    :raises LaunchError: If the OS refuses to create the process.
    """
    log.info(f"Starting process: {spec.name}...")
    args = [str(path), *spec.args]
    try:
        p = subprocess.Popen(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            cwd=str(path.parent.resolve()),
            env=build_environment(spec),
            **_get_popen_creation_flags(),
        )
    except (OSError, ValueError) as e:
        log.error(f"Failed to start process '{spec.name}': {e}")
        raise LaunchError(f"Cannot start '{path}': {e}") from e

    try:
        proc = psutil.Process(p.pid)
    except psutil.Error:
        # Already gone; the monitor will still report its exit.
        proc = None

    handle = WorkerHandle(
        pid=p.pid,
        started_at=datetime.now(),
        started_monotonic=time.monotonic(),
        process=p,
        proc=proc,
    )
    log_process_output(p, spec.name)
    log.info(f"{spec.name} started successfully with PID: {p.pid}")
    return handle
