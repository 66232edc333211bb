import queue
import logging
import threading
from typing import Any, Callable, List, Optional

from worker_supervisor.local.supervisor import monitor, shutdown
from worker_supervisor.local.supervisor.errors import SupervisorError
from worker_supervisor.local.supervisor.installer import ArtifactInstaller
from worker_supervisor.local.supervisor.models import (
    ExitEvent, RestartDecision, SupervisorStatus, WorkerHandle, WorkerSpec, WorkerState,
)
from worker_supervisor.local.supervisor.policy import RestartPolicy
from worker_supervisor.local.supervisor.process_utils import launch_worker

log = logging.getLogger(__name__)

StatusListener = Callable[[SupervisorStatus], None]


class WorkerSupervisor:
    """
    Owns the lifecycle of a single worker process.

    All state lives behind one condition variable. The monitor thread of each
    worker only posts its ExitEvent to a queue; a dedicated dispatcher thread
    applies those events under the lock, so a stop in flight and a natural
    exit can never both decide the next state. Callers get immutable
    SupervisorStatus snapshots; `status()` never takes the lock.

    `start()`, `stop()` and `status()` never raise: every outcome, including
    install and launch failures, is reported through the returned status.
    """

    def __init__(
        self,
        spec: WorkerSpec,
        policy: Optional[RestartPolicy] = None,
        grace_period: float = 5.0,
        kill_timeout: float = 5.0,
        installer: Optional[ArtifactInstaller] = None,
        launcher: Callable[..., WorkerHandle] = launch_worker,
    ) -> None:
        """
        :param spec: The worker to supervise.
        :param policy: What to do after the worker exits on its own.
        :param grace_period: Seconds a stopping worker gets before it is killed.
        :param kill_timeout: Seconds to wait for a killed worker's exit before reporting a stall.
        :param installer: Puts the executable in place; an ArtifactInstaller by default.
        :param launcher: Starts the executable; `launch_worker` by default.
        """
        self.spec = spec
        self.policy = policy or RestartPolicy()
        self.grace_period = grace_period
        self.kill_timeout = kill_timeout
        self._installer = installer or ArtifactInstaller()
        self._launch = launcher

        self._cond = threading.Condition(threading.Lock())
        self._events: "queue.Queue[Optional[ExitEvent]]" = queue.Queue()
        self._dispatcher: Optional[threading.Thread] = None
        self._listeners: List[StatusListener] = []

        self._state = WorkerState.STOPPED
        self._reason: Optional[str] = None
        self._handle: Optional[WorkerHandle] = None
        self._stop_requested = False
        self._stalled = False
        self._restarts = 0
        self._consecutive_failures = 0
        self._status = SupervisorStatus(state=WorkerState.STOPPED)

    @classmethod
    def from_settings(cls, config: Any = None) -> "WorkerSupervisor":
        """Builds a supervisor from the merged application settings."""
        if config is None:
            from worker_supervisor.local.config import effective_settings as config
        return cls(
            WorkerSpec.from_settings(config),
            policy=RestartPolicy.from_settings(config),
            grace_period=config.GRACEFUL_SHUTDOWN_TIMEOUT,
            kill_timeout=config.FORCED_KILL_TIMEOUT,
        )

    #* --- Caller-facing operations ---
    def status(self) -> SupervisorStatus:
        """Returns the latest snapshot. Never blocks."""
        return self._status

    def start(self) -> SupervisorStatus:
        """Installs and launches the worker unless it is already up."""
        with self._cond:
            if self._state in (WorkerState.STARTING, WorkerState.RUNNING):
                log.info(f"Worker '{self.spec.name}' is already running.")
                return self._status
            if self._state is WorkerState.STOPPING:
                log.warning(f"Worker '{self.spec.name}' is still stopping. Start request ignored.")
                return self._status

            self._ensure_dispatcher()
            self._stop_requested = False
            self._consecutive_failures = 0
            self._launch_locked()
            return self._status

    def stop(self) -> SupervisorStatus:
        """
        Stops the worker: graceful termination first, a forced kill once the
        grace period has elapsed. Returns when the worker has exited, or with
        a stalled STOPPING status if even the kill produced no exit.
        """
        with self._cond:
            if self._state in (WorkerState.STOPPED, WorkerState.FAILED):
                return self._status

            self._stop_requested = True
            if self._state is WorkerState.RESTART_PENDING:
                log.info("Stop requested while a restart was pending. Discarding the restart.")
                self._set_state(WorkerState.STOPPED)
                return self._status

            handle = self._handle
            if self._state is WorkerState.RUNNING:
                log.info(f"Stopping worker '{self.spec.name}' (PID {handle.pid})...")
                self._set_state(WorkerState.STOPPING)
                shutdown.request_graceful_termination(handle)

            if self._cond.wait_for(self._has_left_stopping, timeout=self.grace_period):
                log.info(f"Worker '{self.spec.name}' stopped.")
                return self._status

            log.warning(
                f"Worker '{self.spec.name}' did not exit within the {self.grace_period}s grace period."
            )
            shutdown.force_kill(handle)
            if self._cond.wait_for(self._has_left_stopping, timeout=self.kill_timeout):
                log.info(f"Worker '{self.spec.name}' stopped after forced termination.")
                return self._status

            log.critical(
                f"Worker '{self.spec.name}' (PID {handle.pid}) did not exit after forced termination."
            )
            self._set_state(WorkerState.STOPPING, stalled=True)
            return self._status

    def restart(self) -> SupervisorStatus:
        self.stop()
        return self.start()

    def close(self) -> None:
        """Stops the worker and the event dispatcher thread."""
        self.stop()
        with self._cond:
            dispatcher = self._dispatcher
            self._dispatcher = None
        if dispatcher is not None:
            self._events.put(None)
            dispatcher.join(timeout=self.grace_period + self.kill_timeout)

    def wait_for_state(self, *states: WorkerState, timeout: Optional[float] = None) -> bool:
        """Blocks until the supervisor is in one of the given states, or the timeout expires."""
        with self._cond:
            return self._cond.wait_for(lambda: self._state in states, timeout=timeout)

    def subscribe(self, listener: StatusListener) -> None:
        """
        Registers a callback invoked with every new status snapshot.

        Listeners run while the supervisor lock is held and must not call
        back into start() or stop().
        """
        with self._cond:
            self._listeners.append(listener)

    def unsubscribe(self, listener: StatusListener) -> None:
        with self._cond:
            if listener in self._listeners:
                self._listeners.remove(listener)

    #* --- Internals (lock held) ---
    def _has_left_stopping(self) -> bool:
        return self._state is not WorkerState.STOPPING

    def _set_state(self, state: WorkerState, reason: Optional[str] = None, stalled: bool = False) -> None:
        previous = self._state
        self._state = state
        self._reason = reason
        self._stalled = stalled
        handle = self._handle
        self._status = SupervisorStatus(
            state=state,
            reason=reason,
            port=self.spec.port if state is WorkerState.RUNNING else None,
            pid=handle.pid if handle else None,
            started_at=handle.started_at if handle else None,
            restarts=self._restarts,
            consecutive_failures=self._consecutive_failures,
            stalled=stalled,
        )
        log.debug(f"Supervisor state: {previous.value} -> {state.value}")
        self._cond.notify_all()

        for listener in list(self._listeners):
            try:
                listener(self._status)
            except Exception as e:
                log.error(f"Status listener {listener!r} failed: {e}", exc_info=True)

    def _launch_locked(self) -> None:
        """Drives install then launch, ending in RUNNING or FAILED."""
        self._set_state(WorkerState.STARTING)
        try:
            path = self._installer.ensure_installed(self.spec)
            handle = self._launch(path, self.spec)
        except SupervisorError as e:
            log.error(f"Worker '{self.spec.name}' failed to start: {e}")
            self._set_state(WorkerState.FAILED, reason=str(e))
            return
        except Exception as e:
            log.critical(f"Unexpected error while starting worker '{self.spec.name}': {e}", exc_info=True)
            self._set_state(WorkerState.FAILED, reason=f"Unexpected error: {e}")
            return

        self._handle = handle
        self._set_state(WorkerState.RUNNING)
        monitor.watch(handle, self._events.put)

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher is not None and self._dispatcher.is_alive():
            return
        self._dispatcher = threading.Thread(
            target=self._dispatch_events, daemon=True, name="SupervisorEventThread"
        )
        self._dispatcher.start()

    #* --- Event dispatch ---
    def _dispatch_events(self) -> None:
        """Applies worker exit events one at a time until a None sentinel arrives."""
        while True:
            event = self._events.get()
            if event is None:
                break
            try:
                self._on_exit(event)
            except Exception as e:
                log.critical(f"Critical error while handling worker exit: {e}", exc_info=True)

    def _on_exit(self, event: ExitEvent) -> None:
        with self._cond:
            handle = self._handle
            if handle is None or handle.id != event.handle_id:
                log.debug(f"Ignoring exit event for stale worker handle {event.handle_id}.")
                return
            self._handle = None

            if self._state is WorkerState.STOPPING:
                self._set_state(WorkerState.STOPPED)
                return

            if event.duration >= self.policy.reset_after:
                self._consecutive_failures = 0
            failures = self._consecutive_failures if event.clean else self._consecutive_failures + 1
            decision = self.policy.decide(event.exit_code, self._stop_requested, failures)

            if decision is RestartDecision.GIVE_UP:
                log.info(f"Worker '{self.spec.name}' exited with {event.describe()}. Not restarting.")
                self._set_state(WorkerState.STOPPED)
                return

            self._consecutive_failures = failures
            if decision is RestartDecision.FAIL:
                reason = f"Worker crashed {failures} times in a row (last: {event.describe()})."
                log.critical(f"{reason} Halting restart attempts.")
                self._set_state(WorkerState.FAILED, reason=reason)
                return

            log.warning(
                f"Worker '{self.spec.name}' crashed with {event.describe()}. Restart attempt #{failures}..."
            )
            self._set_state(WorkerState.RESTART_PENDING)
            delay = self.policy.backoff(failures)
            if delay > 0:
                log.info(f"Relaunching worker '{self.spec.name}' in {delay:.1f}s.")
                self._cond.wait_for(lambda: self._state is not WorkerState.RESTART_PENDING, timeout=delay)
                if self._state is not WorkerState.RESTART_PENDING:
                    log.info("Pending restart was pre-empted.")
                    return

            self._restarts += 1
            self._launch_locked()
