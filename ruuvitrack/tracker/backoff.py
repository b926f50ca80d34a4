"""Process-wide failure backoff and circuit breaker."""

import logging

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 24 * 60 * 60.0

# 2**64 seconds is far past any sane max_delay
_MAX_EXPONENT = 64


class BackoffController:
    """Counts consecutive delivery failures across all sensors.

    Failures from any sensor grow the delay applied to every sensor's next
    interval. A single success resets the streak. Once the streak reaches
    failure_threshold the circuit trips and the caller is expected to stop.
    """

    def __init__(
        self,
        failure_threshold: int,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.consecutive_failures = 0

    def current_delay(self) -> float:
        """Delay in seconds for the current failure streak."""
        exponent = min(self.consecutive_failures, _MAX_EXPONENT)
        return min((2 ** exponent) * self.base_delay, self.max_delay)

    def on_success(self) -> None:
        if self.consecutive_failures:
            logger.info(
                f"Delivery recovered after {self.consecutive_failures} consecutive failures"
            )
        self.consecutive_failures = 0

    def on_failure(self) -> bool:
        """Record a failed delivery.

        Returns:
            True if the failure streak has reached the circuit-breaker threshold.
        """
        self.consecutive_failures += 1
        tripped = self.consecutive_failures >= self.failure_threshold
        if tripped:
            logger.critical(
                f"Circuit breaker tripped after {self.consecutive_failures} "
                f"consecutive delivery failures"
            )
        else:
            logger.warning(
                f"Delivery failure streak {self.consecutive_failures}/{self.failure_threshold}, "
                f"backoff now {self.current_delay():.0f}s"
            )
        return tripped
