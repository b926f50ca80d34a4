"""Per-sensor delivery throttling."""

import logging
import random
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# A long failure streak must not park a sensor for longer than a day
DEFAULT_CAP_DELAY = 24 * 60 * 60.0


@dataclass
class ThrottleEntry:
    """When the next delivery for one sensor is allowed."""
    next_eligible_at: float


class ThrottleLedger:
    """Tracks the next eligible delivery time of every sensor seen so far.

    Times are plain floats on whatever clock the caller uses (the tracker
    uses the event loop's monotonic clock). Entries are created on the
    first accepted reading and live for the rest of the process.
    """

    def __init__(
        self,
        cap_delay: float = DEFAULT_CAP_DELAY,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the ledger.

        Args:
            cap_delay: Upper bound on the backoff delay added to an interval.
            rng: Random source for jitter. Defaults to an unseeded Random.
        """
        self.cap_delay = cap_delay
        self._rng = rng or random.Random()
        self._entries: Dict[str, ThrottleEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: str) -> bool:
        return identity in self._entries

    def next_eligible_at(self, identity: str) -> Optional[float]:
        entry = self._entries.get(identity)
        return entry.next_eligible_at if entry else None

    def is_eligible(self, identity: str, now: float) -> bool:
        """True if the sensor has never been scheduled or its wait is over."""
        entry = self._entries.get(identity)
        if entry is None:
            return True
        return now >= entry.next_eligible_at

    def remaining(self, identity: str, now: float) -> float:
        """Seconds until the sensor becomes eligible again (0 if it already is)."""
        entry = self._entries.get(identity)
        if entry is None:
            return 0.0
        return max(0.0, entry.next_eligible_at - now)

    def schedule_next(
        self,
        identity: str,
        now: float,
        base_interval: float,
        jitter_max: float,
        backoff_delay: float,
    ) -> float:
        """Compute and store the next eligible time for a sensor.

        Jitter is subtracted from the base interval so sensors that report
        in lockstep drift apart; the backoff delay only lengthens it.

        Args:
            identity: Sensor identity (MAC address).
            now: Time of the delivery decision.
            base_interval: Nominal seconds between deliveries.
            jitter_max: Largest random amount taken off the interval.
            backoff_delay: Extra delay from the backoff controller.

        Returns:
            The stored next eligible time.
        """
        jitter = self._rng.uniform(0.0, jitter_max) if jitter_max > 0 else 0.0
        backoff = min(max(backoff_delay, 0.0), self.cap_delay)
        next_at = now + base_interval - jitter + backoff

        entry = self._entries.get(identity)
        if entry is None:
            entry = ThrottleEntry(next_eligible_at=next_at)
            self._entries[identity] = entry
        else:
            entry.next_eligible_at = max(entry.next_eligible_at, next_at)

        logger.debug(
            f"{identity} next delivery in {entry.next_eligible_at - now:.1f}s "
            f"(jitter -{jitter:.1f}s, backoff +{backoff:.0f}s)"
        )
        return entry.next_eligible_at
