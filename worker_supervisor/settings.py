"""
This module contains the configuration settings for the worker supervisor.
It defines paths, worker launch settings, restart policy knobs and logging
configuration. Values can be overridden through environment variables or a
`.env` file in the working directory.
"""

import os
import sys
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't', 'yes', 'y')


#* --- Core Paths ---
SRC_DIR = pathlib.Path(__file__).resolve().parent
DATA_DIR = pathlib.Path(os.getenv("WORKER_DATA_DIR", str(pathlib.Path.home() / ".worker-supervisor")))
BIN_DIR = DATA_DIR / "bin"
# Read-only storage the worker artifact is shipped in.
BUNDLE_DIR = pathlib.Path(os.getenv("WORKER_BUNDLE_DIR", str(SRC_DIR / "bundled")))
OVERRIDES_JSON_PATH = DATA_DIR / "overrides.json"

#* --- Worker Definition ---
WORKER_NAME = os.getenv("WORKER_NAME", "rust_server")
WORKER_ARTIFACT_NAME = os.getenv("WORKER_ARTIFACT_NAME", "librust_server.so")
WORKER_INSTALL_PATH = pathlib.Path(os.getenv("WORKER_INSTALL_PATH", str(BIN_DIR / WORKER_NAME)))
if sys.platform == "win32" and not WORKER_INSTALL_PATH.suffix:
    WORKER_INSTALL_PATH = WORKER_INSTALL_PATH.with_suffix(".exe")
WORKER_ARGS = os.getenv("WORKER_ARGS", "").split()

#* --- Worker Network Settings ---
WORKER_HOST = os.getenv("WORKER_HOST", "127.0.0.1")
WORKER_PORT = int(os.getenv("WORKER_PORT", "8080"))
WORKER_HEALTH_PATH = os.getenv("WORKER_HEALTH_PATH", "/ping")

#* --- Worker Environment ---
# Names of the variables the worker reads its verbosity and port from.
WORKER_LOG_ENV_VAR = os.getenv("WORKER_LOG_ENV_VAR", "RUST_LOG")
WORKER_PORT_ENV_VAR = os.getenv("WORKER_PORT_ENV_VAR", "SERVER_PORT")
WORKER_LOG_LEVEL = os.getenv("WORKER_LOG_LEVEL", "info")

#* --- Supervisor Settings ---
GRACEFUL_SHUTDOWN_TIMEOUT = float(os.getenv("GRACEFUL_SHUTDOWN_TIMEOUT", "5"))  # seconds before force-killing
FORCED_KILL_TIMEOUT = float(os.getenv("FORCED_KILL_TIMEOUT", "5"))              # seconds to wait for the kill to land
# 0 disables backoff: a crashed worker is relaunched immediately.
RESTART_BACKOFF_BASE = float(os.getenv("RESTART_BACKOFF_BASE", "0"))
RESTART_BACKOFF_MAX = float(os.getenv("RESTART_BACKOFF_MAX", "30"))
# 0 means no ceiling: crashed workers are restarted forever.
MAX_CONSECUTIVE_FAILURES = int(os.getenv("MAX_CONSECUTIVE_FAILURES", "0"))
RESTART_RESET_AFTER = float(os.getenv("RESTART_RESET_AFTER", "30"))            # uptime that clears the failure count

#* --- Liveness Probe Settings ---
PROBE_TIMEOUT = float(os.getenv("PROBE_TIMEOUT", "2"))
READINESS_TIMEOUT = float(os.getenv("READINESS_TIMEOUT", "15"))
READINESS_POLL_INTERVAL = 0.5

#* --- Logging ---
VERBOSE_LOGGING = False
LOG_BUFFER_FLUSH_INTERVAL = 10
LOKI_ENABLED = _env_bool("LOKI_ENABLED", "False")
LOKI_URL = os.getenv("LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("LOKI_ORG_ID", "fake")

#* --- MODIFIABLE SETTINGS (Changeable via the 'config' command) ---
MODIFIABLE_SETTINGS = {
    # Worker
    "WORKER_PORT", "WORKER_LOG_LEVEL", "WORKER_HEALTH_PATH",
    # Shutdown
    "GRACEFUL_SHUTDOWN_TIMEOUT", "FORCED_KILL_TIMEOUT",
    # Restart policy
    "RESTART_BACKOFF_BASE", "RESTART_BACKOFF_MAX",
    "MAX_CONSECUTIVE_FAILURES", "RESTART_RESET_AFTER",
    # Probe
    "PROBE_TIMEOUT", "READINESS_TIMEOUT",
}
