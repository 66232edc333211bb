import sys
import socket
import logging
import threading
import requests
from collections import deque
from typing import Any, Deque, Dict, List, Optional

internal_log = logging.getLogger("LokiHandler.Internal")


class LokiHandler(logging.Handler):
    """
    A logging handler that ships records to a Grafana Loki instance
    in batches using a background thread.
    """
    def __init__(self, url: str, org_id: Optional[str] = None, flush_interval: float = 10,
                 batch_size: int = 200, job: str = "worker-supervisor"):
        """
        :param url: The base URL of the Loki instance.
        :param org_id: The tenant ID for Loki, sent as 'X-Scope-OrgID'.
        :param flush_interval: Seconds between periodic flushes.
        :param batch_size: Number of buffered records that triggers an immediate flush.
        :param job: Value of the 'job' stream label.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.org_id = org_id
        self.job = job
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.log_buffer: Deque[Dict[str, Any]] = deque()
        self.buffer_lock = threading.Lock()
        self.hostname = socket.gethostname() or "unknown-host"

        self.stop_event = threading.Event()
        self.flush_thread = threading.Thread(target=self._periodic_flush, daemon=True, name="LokiFlushThread")
        self.flush_thread.start()

    def _periodic_flush(self) -> None:
        """Flushes the buffer every `flush_interval` seconds until the handler is closed."""
        while not self.stop_event.wait(self.flush_interval):
            self.flush()
        self.flush()

    def _labels(self, record: logging.LogRecord) -> Dict[str, str]:
        labels = {
            "job": self.job,
            "level": record.levelname.lower(),
            "hostname": self.hostname,
            "logger": record.name,
        }
        # Worker output is logged under 'proc.<worker name>'.
        if record.name.startswith("proc."):
            labels["worker"] = record.name.split(".", 1)[1]
        return labels

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = record.getMessage() if record.name.startswith("proc.") else self.format(record)
            entry = {
                "stream": self._labels(record),
                "values": [[str(int(record.created * 1e9)), msg]],
            }
            with self.buffer_lock:
                self.log_buffer.append(entry)
                full = len(self.log_buffer) >= self.batch_size
            if full:
                self.flush()
        except Exception as e:
            print(f"ERROR: LokiHandler failed to process a log record: {e}", file=sys.stderr)

    def flush(self) -> None:
        """Sends every buffered record to Loki in one push request."""
        with self.buffer_lock:
            if not self.log_buffer:
                return
            logs_to_send: List[Dict[str, Any]] = list(self.log_buffer)
            self.log_buffer.clear()

        headers = {"Content-Type": "application/json"}
        if self.org_id:
            headers["X-Scope-OrgID"] = self.org_id
        try:
            response = requests.post(self.url, json={"streams": logs_to_send}, headers=headers, timeout=5)
            # 204 No Content is the success status for a Loki push.
            if response.status_code != 204:
                internal_log.error(f"Loki returned non-204 status: {response.status_code} - {response.text}")
        except requests.exceptions.RequestException as e:
            print(f"ERROR: Could not send logs to Loki at {self.url}: {e}", file=sys.stderr)

    def close(self) -> None:
        self.stop_event.set()
        if self.flush_thread.is_alive() and self.flush_thread is not threading.current_thread():
            self.flush_thread.join(timeout=self.flush_interval + 5)
        super().close()
