import psutil
import logging
from typing import List

from worker_supervisor.local.supervisor.models import WorkerHandle

log = logging.getLogger(__name__)


def identify_processes_to_stop(handle: WorkerHandle) -> List[psutil.Process]:
    """
    Collects the worker process and all of its descendants.

    The worker comes last so its children are signalled before it can reap them.

    :param handle: The handle of the running worker.
    :return: A list of psutil.Process objects to be stopped.
    """
    proc = handle.proc
    if proc is None:
        return []
    try:
        children = proc.children(recursive=True)
    except psutil.NoSuchProcess:
        log.debug(f"Worker {handle.pid} no longer exists, skipping children retrieval.")
        return []
    except psutil.Error as e:
        log.warning(f"Could not list children of worker {handle.pid}: {e}")
        children = []
    return [*children, proc]


def _signal_processes(processes: List[psutil.Process], forceful: bool) -> int:
    """Sends SIGTERM (or SIGKILL) to each process; returns how many were signalled."""
    signalled = 0
    for proc in processes:
        try:
            if forceful:
                log.warning(f"Killing stubborn process (PID {proc.pid}).")
                proc.kill()
            else:
                log.debug(f"Sending SIGTERM to PID {proc.pid}")
                proc.terminate()
            signalled += 1
        except psutil.NoSuchProcess:
            log.debug(f"Process {proc.pid} no longer exists, skipping.")
        except psutil.AccessDenied as e:
            log.error(f"Not allowed to signal process {proc.pid}: {e}")
    return signalled


def _signal_popen(handle: WorkerHandle, forceful: bool) -> bool:
    """Signals the worker through its Popen object when psutil has no hold on it."""
    if handle.process.poll() is not None:
        return False
    try:
        if forceful:
            log.warning(f"Killing stubborn process (PID {handle.pid}).")
            handle.process.kill()
        else:
            handle.process.terminate()
    except OSError as e:
        log.error(f"Could not signal worker {handle.pid}: {e}")
        return False
    return True


def request_graceful_termination(handle: WorkerHandle) -> None:
    """Asks the worker and its children to terminate. Does not wait."""
    if handle.proc is None:
        signalled = _signal_popen(handle, forceful=False)
    else:
        signalled = _signal_processes(identify_processes_to_stop(handle), forceful=False)
    if signalled:
        log.info(f"Graceful termination requested for worker (PID {handle.pid}).")


def force_kill(handle: WorkerHandle) -> None:
    """Forcefully kills the worker and whatever children are left. Does not wait."""
    if handle.proc is None:
        if handle.process.poll() is None:
            log.warning(f"Worker (PID {handle.pid}) did not terminate gracefully. Forcing shutdown...")
            _signal_popen(handle, forceful=True)
        return
    processes = identify_processes_to_stop(handle)
    if not processes:
        return
    log.warning(f"Worker (PID {handle.pid}) did not terminate gracefully. Forcing shutdown...")
    _signal_processes(processes, forceful=True)
