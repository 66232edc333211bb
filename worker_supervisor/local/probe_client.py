import time
import logging
import requests
from dataclasses import dataclass
from typing import Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one liveness probe. `error` is set whenever `ok` is False."""
    ok: bool
    status_code: Optional[int] = None
    body: str = ""
    error: Optional[str] = None


def probe_worker(host: str, port: int, path: str = "/ping", timeout: float = 2.0) -> ProbeResult:
    """
    Sends a single GET request to the worker's liveness endpoint.

    A 2xx answer is returned verbatim. A non-2xx answer and a connection
    failure are reported with distinct error strings.

    :param host: The host the worker listens on.
    :param port: The port the worker listens on.
    :param path: The liveness endpoint path.
    :param timeout: Request timeout in seconds.
    :return: A ProbeResult describing the answer.
    """
    url = f"http://{host}:{port}/{path.lstrip('/')}"
    try:
        response = requests.get(url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        log.debug(f"Liveness probe to '{url}' failed: {e}")
        return ProbeResult(ok=False, error=f"Connection error: {e}")

    if 200 <= response.status_code < 300:
        log.debug(f"Liveness probe to '{url}' answered {response.status_code}.")
        return ProbeResult(ok=True, status_code=response.status_code, body=response.text)

    log.warning(f"Liveness probe to '{url}' answered HTTP {response.status_code}.")
    return ProbeResult(
        ok=False,
        status_code=response.status_code,
        body=response.text,
        error=f"HTTP {response.status_code}: {response.text}",
    )


def wait_until_ready(host: str, port: int, path: str = "/ping", timeout: float = 15.0,
                     interval: float = 0.5, probe_timeout: float = 2.0) -> ProbeResult:
    """
    Polls the liveness endpoint until it answers 2xx or the timeout expires.

    :return: The first successful ProbeResult, or the last failed one.
    """
    log.info(f"Waiting for worker at {host}:{port}...")
    deadline = time.monotonic() + timeout
    result = ProbeResult(ok=False, error="Not probed yet")
    while True:
        result = probe_worker(host, port, path, probe_timeout)
        if result.ok:
            log.info("Worker is up and answering its liveness endpoint.")
            return result
        if time.monotonic() + interval > deadline:
            break
        time.sleep(interval)

    log.error(f"Worker did not become available after {timeout} seconds: {result.error}")
    return result
