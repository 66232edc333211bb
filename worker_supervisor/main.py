import sys
import logging
import threading
import setproctitle

# Basic console logger for messages BEFORE full setup is complete.
# This logger will be replaced by the full setup later.
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)-8s - [console] - %(message)s',
    stream=sys.stdout
)
log = logging.getLogger("console")

import worker_supervisor.local.console as console
from worker_supervisor.log.setup import setup_logging
from worker_supervisor.local.supervisor import WorkerState

# --- Global State ---
CONSOLE_LOCK = threading.Lock()
PROCESS_TITLE = "Worker Supervisor - Console"
# The supervisor lives only as long as this process, so one-off invocations
# cannot reach a worker started by another one.
ONE_SHOT_COMMANDS = ("run", "start", "config", "help")


def run_foreground() -> None:
    """Starts the worker and supervises it until it stops for good or the user interrupts."""
    supervisor = console.get_supervisor()
    supervisor.start()
    try:
        supervisor.wait_for_state(WorkerState.STOPPED, WorkerState.FAILED)
        log.info(f"Worker is {supervisor.status().describe()}. Leaving foreground mode.")
    except KeyboardInterrupt:
        log.warning("Interrupted by user. Stopping the worker...")
    finally:
        supervisor.close()


def main() -> None:
    """The main entry point for the console application."""
    setproctitle.setproctitle(PROCESS_TITLE)
    setup_logging(logging.INFO)

    # Non-interactive mode for one-off commands
    if len(sys.argv) > 1:
        command, args = sys.argv[1].lower(), sys.argv[2:]
        if "--verbose" in args:
            console.toggle_verbose_logging()
            args.remove("--verbose")

        if command not in ONE_SHOT_COMMANDS:
            print(
                f"'{command}' is only available in the interactive console. "
                f"Use 'run' to supervise the worker in the foreground."
            )
            sys.exit(2)
        if command in ("run", "start"):
            run_foreground()
        else:
            console.execute_command(command, args)
        return

    # Interactive mode
    print("--- Worker Supervisor Console ---")
    print("Type 'help' for a list of commands.")
    supervisor = console.get_supervisor()
    print(f"Worker is currently {supervisor.status().describe()}.")

    try:
        while True:
            try:
                # The input prompt must be outside the lock to not block background threads
                command_line_str = input("> ")
            except EOFError:
                break
            except KeyboardInterrupt:
                log.warning("\nExiting console due to KeyboardInterrupt.")
                break

            with CONSOLE_LOCK:
                if not command_line_str.strip():
                    continue
                command_line = command_line_str.strip().split()
                command, args = command_line[0].lower(), command_line[1:]
                log.debug(f"Received command: {command}, args: {args}")
                try:
                    if console.execute_command(command, args):
                        break
                except Exception as e:
                    log.error(f"An unexpected error occurred in the console: {e}", exc_info=True)
    finally:
        supervisor.close()

if __name__ == "__main__":
    main()
    print("Exiting worker supervisor console. See you next time!")
