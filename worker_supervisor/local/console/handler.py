import logging
import psutil
from datetime import datetime
from typing import List

from worker_supervisor.local.config import effective_settings as config
from worker_supervisor.local.probe_client import probe_worker, wait_until_ready
from worker_supervisor.local.supervisor import WorkerState, WorkerSupervisor

log = logging.getLogger(__name__)


def _config_show():
    """Displays the modifiable settings and their current values."""
    print("\n--- Current Supervisor Configuration ---")
    for key in sorted(config.MODIFIABLE_SETTINGS):
        print(f"  {key} = {getattr(config, key, 'N/A')}")
    print("---")
    print("Use 'config set <KEY> <VALUE>' to change a setting.")
    print("Changes apply the next time the console is started.")
    print("---------------------------------------\n")

def _config_set(args: List[str]):
    """Changes one modifiable setting and persists it."""
    if len(args) < 2:
        print("Usage: config set <SETTING_NAME> <VALUE>")
        return
    key, value_str = args[0].upper(), " ".join(args[1:])
    _, message = config.update_setting(key, value_str)
    print(message)

def _config_help():
    """Displays help for the config command."""
    print("\nConfig Command Help:")
    print("  config show                - Display all modifiable settings.")
    print("  config set KEY VALUE       - Change a setting. Applies on next console start.")
    print("  config help                - Show this help message.")

def handle_config_command(args: List[str]) -> None:
    """
    Handles all sub-commands for the 'config' command-line interface.

    :param args: A list of string arguments following the 'config' command.
    """
    sub_command = args[0].lower() if args else "show"

    if sub_command == "show":
        _config_show()
    elif sub_command == "set":
        _config_set(args[1:])
    elif sub_command == "help":
        _config_help()
    else:
        print(f"Unknown config sub-command: '{sub_command}'. Type 'config help' for available commands.")

def display_status(supervisor: WorkerSupervisor) -> None:
    """Displays the supervisor state and, when the worker is up, its resource usage."""
    status = supervisor.status()
    print("\n--- Worker Status ---")
    print(f"  Worker   : {supervisor.spec.name}")
    print(f"  State    : {status.describe()}")

    if status.pid is not None:
        line = f"  PID      : {status.pid}"
        try:
            p = psutil.Process(status.pid)
            cpu = p.cpu_percent(interval=0.1)
            mem = p.memory_info().rss
            line += f" | CPU: {cpu:.1f}% | MEM: {mem/1024/1024:.1f} MB"
        except psutil.NoSuchProcess:
            line += " (exited)"
        except psutil.AccessDenied:
            line += " (Access Denied)"
        print(line)
    if status.port is not None:
        print(f"  Listen   : http://{supervisor.spec.host}:{status.port}")
    if status.started_at is not None:
        uptime = datetime.now() - status.started_at
        print(f"  Started  : {status.started_at:%Y-%m-%d %H:%M:%S} (up {str(uptime).split('.')[0]})")
    print(f"  Restarts : {status.restarts} (consecutive failures: {status.consecutive_failures})")
    print("-" * 21 + "\n")

def handle_probe_command(supervisor: WorkerSupervisor) -> None:
    """Probes the worker's liveness endpoint once and prints the answer."""
    if supervisor.status().state is not WorkerState.RUNNING:
        print("Worker is not running. Nothing to probe.")
        return
    spec = supervisor.spec
    result = probe_worker(spec.host, spec.port, config.WORKER_HEALTH_PATH, config.PROBE_TIMEOUT)
    if result.ok:
        print(f"Worker answered {result.status_code}:\n{result.body}")
    else:
        print(f"Probe failed: {result.error}")

def handle_wait_ready_command(supervisor: WorkerSupervisor) -> None:
    """Blocks until the worker answers its liveness endpoint or the readiness timeout expires."""
    if supervisor.status().state is not WorkerState.RUNNING:
        print("Worker is not running. Use 'start' first.")
        return
    spec = supervisor.spec
    result = wait_until_ready(
        spec.host, spec.port, config.WORKER_HEALTH_PATH,
        timeout=config.READINESS_TIMEOUT,
        interval=config.READINESS_POLL_INTERVAL,
        probe_timeout=config.PROBE_TIMEOUT,
    )
    print("Worker is ready." if result.ok else f"Worker is not ready: {result.error}")

def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    config.VERBOSE_LOGGING = not config.VERBOSE_LOGGING
    new_level = logging.DEBUG if config.VERBOSE_LOGGING else logging.INFO

    # Reconfigure the console handler's level directly
    root_logger = logging.getLogger()
    found_handler = False
    for handler in root_logger.handlers:
        if isinstance(handler, logging.StreamHandler):
            handler.setLevel(new_level)
            found_handler = True
            break

    status = "ON" if config.VERBOSE_LOGGING else "OFF"
    if found_handler:
        print(f"Verbose console logging is now {status}.")
    else:
        print("Could not find console handler to modify level.")

def print_help():
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  start                  - Install (first run only) and start the worker.")
    print("  stop                   - Stop the worker, forcing it after the grace period.")
    print("  restart                - Stop and then start the worker.")
    print("  status                 - Show the worker state, PID and resource usage.")
    print("  probe                  - Call the worker's liveness endpoint once.")
    print("  wait-ready             - Wait until the worker answers its liveness endpoint.")
    print("  config <cmd>           - Manage configuration. Use 'config help' for more details.")
    print("  verbose                - Toggle detailed DEBUG log output in the console.")
    print("  exit                   - Stop the worker and exit the console.")
    print()
