import logging
from typing import List, Optional

from worker_supervisor.local.supervisor import SupervisorStatus, WorkerSupervisor
from worker_supervisor.local.console.handler import (
    display_status, handle_config_command, handle_probe_command, handle_wait_ready_command,
    print_help, toggle_verbose_logging,
)

log = logging.getLogger(__name__)
_supervisor: Optional[WorkerSupervisor] = None


def get_supervisor() -> WorkerSupervisor:
    """Returns the console's supervisor, building it from settings on first use."""
    global _supervisor
    if _supervisor is None:
        _supervisor = WorkerSupervisor.from_settings()
    return _supervisor


def _report(status: SupervisorStatus) -> None:
    print(f"Worker is {status.describe()}.")


def execute_command(command: str, args: List[str], supervisor: Optional[WorkerSupervisor] = None) -> bool:
    """
    Executes a single command from the user.

    :param command: The main command string (e.g., 'start', 'config').
    :param args: A list of arguments for the command.
    :param supervisor: The supervisor to act on; the console's own by default.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    supervisor = supervisor or get_supervisor()
    command_map = {
        "start": lambda: _report(supervisor.start()),
        "stop": lambda: _report(supervisor.stop()),
        "restart": lambda: _report(supervisor.restart()),
        "status": lambda: display_status(supervisor),
        "probe": lambda: handle_probe_command(supervisor),
        "wait-ready": lambda: handle_wait_ready_command(supervisor),
        "config": lambda: handle_config_command(args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
    }

    if command == "exit":
        return True
    if command in command_map:
        command_map[command]()
    else:
        print(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
    return False
