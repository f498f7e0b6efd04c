"""Backoff controller for quota violations.

The sleep after a quota violation grows linearly with the number of
consecutive failed runs. When max_failed_runs is configured, reaching it
resets the counter instead of sleeping, so the delay never grows without
bound.
"""

import logging
import threading

logger = logging.getLogger(__name__)


def stoppable_sleep(seconds: float, stop_event: threading.Event) -> bool:
    """Sleep for up to `seconds`, waking as soon as stop_event is set.

    Args:
        seconds: Maximum time to sleep
        stop_event: Event signalling shutdown

    Returns:
        True if the sleep ended because of a stop request
    """
    if seconds <= 0:
        return stop_event.is_set()
    return stop_event.wait(timeout=seconds)


class BackoffController:
    """Tracks consecutive quota violations and sleeps accordingly."""

    def __init__(
        self, backoff_time: float, max_failed_runs: int, stop_event: threading.Event
    ) -> None:
        """Initialize the controller.

        Args:
            backoff_time: Seconds per failed run; 0 disables backoff
            max_failed_runs: Failed runs before the counter resets; 0 disables
            stop_event: Event that interrupts a backoff sleep
        """
        self.backoff_time = backoff_time
        self.max_failed_runs = max_failed_runs
        self.failed_runs = 0
        self._stop_event = stop_event

    def is_enabled(self) -> bool:
        return self.backoff_time > 0

    def _max_failed_runs_reached(self) -> bool:
        return self.max_failed_runs > 0 and self.failed_runs == self.max_failed_runs

    def on_quota_violation(self) -> float:
        """Record a failed run and sleep for the resulting backoff.

        Returns:
            The sleep duration in seconds, 0 when the counter was reset
        """
        self.failed_runs += 1

        if self._max_failed_runs_reached():
            logger.info("Maximum number of failed runs reached. Resetting backoff delay")
            self.failed_runs = 0
            return 0

        sleep_duration = self.failed_runs * self.backoff_time
        logger.warning(f"Sleeping for {sleep_duration} seconds")
        stoppable_sleep(sleep_duration, self._stop_event)
        return sleep_duration

    def on_success(self) -> None:
        """Clear accumulated backoff after a successful page fetch."""
        if self.is_enabled() and self.failed_runs > 0:
            logger.debug("Resetting failed runs counter to 0.")
            self.failed_runs = 0
