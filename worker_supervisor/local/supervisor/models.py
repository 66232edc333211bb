"""
Value types shared by the supervisor and its helper modules.

`WorkerSpec` is the immutable launch configuration, `WorkerHandle` stands
for one live worker process, `ExitEvent` is the single notification of that
process's termination, and `SupervisorStatus` is the snapshot handed out to
callers.
"""
import enum
import itertools
import signal
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

import psutil

_handle_ids = itertools.count(1)


class WorkerState(enum.Enum):
    """Lifecycle states of the supervised worker."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    RESTART_PENDING = "restart_pending"
    FAILED = "failed"


class RestartDecision(enum.Enum):
    """Outcome of the restart policy for one exit."""
    RESTART = "restart"
    GIVE_UP = "give_up"
    FAIL = "fail"


@dataclass(frozen=True)
class WorkerSpec:
    """Immutable description of the worker: where it comes from, where it goes and how it runs."""
    name: str
    artifact_name: str
    bundle_dir: Path
    install_path: Path
    port: int
    host: str = "127.0.0.1"
    log_level: str = "info"
    log_env_var: str = "RUST_LOG"
    port_env_var: str = "SERVER_PORT"
    env: Mapping[str, str] = field(default_factory=dict)
    args: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "bundle_dir", Path(self.bundle_dir))
        object.__setattr__(self, "install_path", Path(self.install_path))
        object.__setattr__(self, "env", MappingProxyType({str(k): str(v) for k, v in self.env.items()}))
        object.__setattr__(self, "args", tuple(self.args))

    @property
    def artifact_path(self) -> Path:
        """Location of the bundled, read-only copy of the worker executable."""
        return self.bundle_dir / self.artifact_name

    @property
    def install_dir(self) -> Path:
        return self.install_path.parent

    def environment_overrides(self) -> Mapping[str, str]:
        """The variables handed to the worker on top of the ambient environment."""
        overrides = {
            self.log_env_var: self.log_level,
            self.port_env_var: str(self.port),
        }
        overrides.update(self.env)
        return overrides

    @classmethod
    def from_settings(cls, config: Any) -> "WorkerSpec":
        """Builds a spec from a settings object such as `effective_settings`."""
        return cls(
            name=config.WORKER_NAME,
            artifact_name=config.WORKER_ARTIFACT_NAME,
            bundle_dir=config.BUNDLE_DIR,
            install_path=config.WORKER_INSTALL_PATH,
            port=config.WORKER_PORT,
            host=config.WORKER_HOST,
            log_level=config.WORKER_LOG_LEVEL,
            log_env_var=config.WORKER_LOG_ENV_VAR,
            port_env_var=config.WORKER_PORT_ENV_VAR,
            args=tuple(config.WORKER_ARGS),
        )


@dataclass(frozen=True, eq=False)
class WorkerHandle:
    """One running worker process. Identity is the handle id, never reused."""
    pid: int
    started_at: datetime
    started_monotonic: float
    process: subprocess.Popen = field(repr=False)
    proc: Optional[psutil.Process] = field(default=None, repr=False)
    id: int = field(default_factory=lambda: next(_handle_ids))


@dataclass(frozen=True)
class ExitEvent:
    """The one-time notification that a worker process has terminated."""
    handle_id: int
    pid: int
    returncode: int
    duration: float

    @property
    def exit_code(self) -> Optional[int]:
        """The process exit code, or None when it was killed by a signal."""
        return self.returncode if self.returncode >= 0 else None

    @property
    def signal(self) -> Optional[int]:
        return -self.returncode if self.returncode < 0 else None

    @property
    def clean(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        if self.signal is not None:
            try:
                name = signal.Signals(self.signal).name
            except ValueError:
                name = str(self.signal)
            return f"killed by signal {name}"
        return f"exit code {self.exit_code}"


@dataclass(frozen=True)
class SupervisorStatus:
    """Read-only snapshot of the supervisor, safe to hand to any thread."""
    state: WorkerState
    reason: Optional[str] = None
    port: Optional[int] = None
    pid: Optional[int] = None
    started_at: Optional[datetime] = None
    restarts: int = 0
    consecutive_failures: int = 0
    stalled: bool = False

    @property
    def is_running(self) -> bool:
        return self.state is WorkerState.RUNNING

    def describe(self) -> str:
        text = self.state.value.upper()
        if self.state is WorkerState.FAILED and self.reason:
            text += f" ({self.reason})"
        if self.stalled:
            text += " [STALLED: worker did not exit after forced termination]"
        return text
