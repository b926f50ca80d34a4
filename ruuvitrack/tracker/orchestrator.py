"""Delivery decisions for incoming sensor readings."""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Iterable, Optional, Protocol, Sequence, Set

from ruuvitrack.shared.models import Reading

from .backoff import BackoffController
from .identity_filter import is_in_scope, normalize_identity
from .throttle import ThrottleLedger
from .transport import DeliveryResult

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def submit(self, reading: Reading) -> DeliveryResult:
        ...


class DeliveryState(Enum):
    """Lifecycle of a single reading."""
    RECEIVED = "received"
    FILTERED = "filtered"
    THROTTLED = "throttled"
    SCHEDULED = "scheduled"
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    HALTED = "halted"


class DeliveryOrchestrator:
    """Decides, reading by reading, what gets sent to the transport.

    Everything runs on one asyncio loop. process() never awaits, so the
    throttle ledger is updated before the delivery task starts and a slow
    delivery cannot let a second reading for the same sensor through.
    """

    def __init__(
        self,
        transport: Transport,
        ledger: ThrottleLedger,
        backoff: BackoffController,
        allow_list: Sequence[str] = (),
        base_interval: float = 600.0,
        jitter_max: float = 10.0,
        benign_error_codes: Iterable[str] = (),
        on_circuit_trip: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the orchestrator.

        Args:
            transport: Object with an async submit(reading) -> DeliveryResult.
            ledger: Per-sensor throttle state.
            backoff: Shared failure backoff and circuit breaker.
            allow_list: Normalized MAC addresses to deliver; empty means all.
            base_interval: Nominal seconds between deliveries per sensor.
            jitter_max: Largest random reduction of the interval.
            benign_error_codes: Server error codes that mean the reading was
                already recorded; these don't count as failures.
            on_circuit_trip: Called once when the circuit breaker trips.
            clock: Time source used when process() gets no explicit time.
        """
        self.transport = transport
        self.ledger = ledger
        self.backoff = backoff
        self.allow_list = tuple(allow_list)
        self.base_interval = base_interval
        self.jitter_max = jitter_max
        self.benign_error_codes = frozenset(benign_error_codes)
        self.on_circuit_trip = on_circuit_trip
        self.clock = clock

        self._warned: Set[str] = set()
        self._pending: Set[asyncio.Task] = set()
        self._halted = False

    @property
    def halted(self) -> bool:
        return self._halted

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def process(self, reading: Reading, now: Optional[float] = None) -> DeliveryState:
        """Handle one incoming reading.

        Must be called from within the running event loop, since accepted
        readings are dispatched as tasks.

        Returns:
            FILTERED, THROTTLED or HALTED if the reading was dropped,
            DISPATCHED if a delivery task was started.
        """
        if self._halted:
            return DeliveryState.HALTED

        identity = normalize_identity(reading.identity)

        if not is_in_scope(identity, self.allow_list):
            if identity not in self._warned:
                logger.info(f"{identity} Filtering out responses from this Ruuvi")
                self._warned.add(identity)
            return DeliveryState.FILTERED

        logger.debug(f"{identity} {reading.summary()}")

        if now is None:
            now = self.clock()

        if not self.ledger.is_eligible(identity, now):
            logger.debug(
                f"{identity} Skipping update (rate limit), "
                f"next in {self.ledger.remaining(identity, now):.0f}s"
            )
            return DeliveryState.THROTTLED

        self.ledger.schedule_next(
            identity,
            now,
            self.base_interval,
            self.jitter_max,
            self.backoff.current_delay(),
        )

        task = asyncio.get_running_loop().create_task(self._deliver(identity, reading))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return DeliveryState.DISPATCHED

    async def _deliver(self, identity: str, reading: Reading) -> DeliveryState:
        try:
            result = await self.transport.submit(reading)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"{identity} Unexpected error while sending data")
            result = DeliveryResult(ok=False, reason=f"{e.__class__.__name__}: {e}")

        return self.record_outcome(identity, result)

    def record_outcome(self, identity: str, result: DeliveryResult) -> DeliveryState:
        """Feed a delivery outcome into the backoff controller."""
        if self._halted:
            return DeliveryState.HALTED

        if result.ok:
            logger.info(f"{identity} Saved data")
            self.backoff.on_success()
            return DeliveryState.SUCCEEDED

        if result.code is not None and result.code in self.benign_error_codes:
            logger.info(f"{identity} Server already has this update ({result.code})")
            return DeliveryState.SUCCEEDED

        if result.has_response:
            logger.error(f"{identity} Error updating sensor: {result.describe()}")
        else:
            logger.error(f"{identity} Error updating sensor (no response): {result.describe()}")

        if self.backoff.on_failure():
            self._halted = True
            if self.on_circuit_trip is not None:
                self.on_circuit_trip()
            return DeliveryState.HALTED
        return DeliveryState.FAILED

    async def drain(self) -> None:
        """Wait for all in-flight deliveries to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel_pending(self) -> int:
        """Abandon in-flight deliveries. Returns how many were cancelled."""
        pending = [task for task in self._pending if not task.done()]
        for task in pending:
            task.cancel()
        return len(pending)
