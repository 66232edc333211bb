from dataclasses import dataclass
from typing import Any, Optional

from worker_supervisor.local.supervisor.models import RestartDecision


@dataclass(frozen=True)
class RestartPolicy:
    """
    Decides what happens after the worker exits.

    With the defaults a crashed worker is relaunched immediately and forever.
    A positive `backoff_base` delays each relaunch exponentially, capped at
    `backoff_max`; a positive `max_consecutive_failures` turns the decision
    into FAIL once that many crashes happened in a row.

    :param backoff_base: Delay before the first relaunch, in seconds.
    :param backoff_max: Upper bound for the relaunch delay, in seconds.
    :param max_consecutive_failures: Crash ceiling, 0 for none.
    :param reset_after: Uptime in seconds after which a crash no longer counts as consecutive.
    """
    backoff_base: float = 0.0
    backoff_max: float = 30.0
    max_consecutive_failures: int = 0
    reset_after: float = 30.0

    def decide(self, exit_code: Optional[int], explicit_stop_requested: bool, consecutive_failures: int) -> RestartDecision:
        """
        :param exit_code: The worker's exit code, None for a signal-based death.
        :param explicit_stop_requested: Whether a stop was in flight when it exited.
        :param consecutive_failures: Crashes in a row, including this one.
        """
        if explicit_stop_requested:
            return RestartDecision.GIVE_UP
        if exit_code == 0:
            return RestartDecision.GIVE_UP
        if self.max_consecutive_failures and consecutive_failures >= self.max_consecutive_failures:
            return RestartDecision.FAIL
        return RestartDecision.RESTART

    def backoff(self, consecutive_failures: int) -> float:
        """Seconds to wait before relaunching after the given number of crashes in a row."""
        if self.backoff_base <= 0 or consecutive_failures <= 0:
            return 0.0
        return min(self.backoff_base * (2 ** (consecutive_failures - 1)), self.backoff_max)

    @classmethod
    def from_settings(cls, config: Any) -> "RestartPolicy":
        return cls(
            backoff_base=config.RESTART_BACKOFF_BASE,
            backoff_max=config.RESTART_BACKOFF_MAX,
            max_consecutive_failures=config.MAX_CONSECUTIVE_FAILURES,
            reset_after=config.RESTART_RESET_AFTER,
        )
