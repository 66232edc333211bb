"""
The Supervisor package.
Manages the lifecycle of the single worker subprocess.

This package contains the central WorkerSupervisor class and its helper
modules, which together install, start, watch, restart and stop the worker.
"""
from .errors import InstallError, LaunchError, SupervisorError
from .models import ExitEvent, RestartDecision, SupervisorStatus, WorkerHandle, WorkerSpec, WorkerState
from .policy import RestartPolicy
from .supervisor import WorkerSupervisor

__all__ = [
    'WorkerSupervisor', 'WorkerSpec', 'WorkerHandle', 'WorkerState', 'SupervisorStatus',
    'ExitEvent', 'RestartDecision', 'RestartPolicy',
    'SupervisorError', 'InstallError', 'LaunchError',
]
