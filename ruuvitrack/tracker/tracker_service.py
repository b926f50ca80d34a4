"""RuuviTag tracker service - main orchestrator."""

import asyncio
import logging
import signal
from typing import Callable, Optional

from ruuvitrack.shared.models import Reading

from .backoff import BackoffController
from .config import TrackerConfig
from .discovery import RuuviScanner
from .orchestrator import DeliveryOrchestrator
from .throttle import ThrottleLedger
from .transport import HTTPTransport

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_VERIFY_FAILED = 2
EXIT_CIRCUIT_TRIPPED = 3


class RuuviTracker:
    """Main service that forwards RuuviTag readings to the collection endpoint."""

    def __init__(
        self,
        config: TrackerConfig,
        transport=None,
        scanner_factory: Callable[..., RuuviScanner] = RuuviScanner,
        handle_signals: bool = False,
    ):
        """Initialize the tracker.

        Args:
            config: Configuration object.
            transport: Transport with open/close/verify/submit. Defaults to
                an HTTPTransport built from config.
            scanner_factory: Builds the discovery source; called with the
                same keyword arguments as RuuviScanner.
            handle_signals: Stop cleanly on SIGINT/SIGTERM.
        """
        self.config = config
        self.transport = transport or HTTPTransport(
            url=config.url,
            token=config.token or "",
            request_timeout=config.request_timeout,
        )
        self.scanner_factory = scanner_factory
        self.handle_signals = handle_signals

        self.orchestrator: Optional[DeliveryOrchestrator] = None
        self.scanner: Optional[RuuviScanner] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._exit_code = EXIT_OK

    def _on_found(self, identity: str) -> None:
        logger.info(f"Found new RuuviTag {identity}")

    def _on_warning(self, message: str) -> None:
        logger.warning(f"Discovery warning: {message}")

    def _on_reading(self, reading: Reading) -> None:
        if self.orchestrator is not None:
            self.orchestrator.process(reading)

    def _on_circuit_trip(self) -> None:
        logger.critical(
            f"Giving up after {self.config.failure_threshold} consecutive delivery failures"
        )
        self._request_stop(EXIT_CIRCUIT_TRIPPED)

    def _request_stop(self, exit_code: int) -> None:
        if self._stop_event is None or self._stop_event.is_set():
            return
        self._exit_code = exit_code
        self._stop_event.set()

    def stop(self) -> None:
        """Ask a running tracker to shut down normally."""
        self._request_stop(EXIT_OK)

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        def signal_handler(signum: signal.Signals) -> None:
            logger.info(f"Received {signum.name}, shutting down...")
            self.stop()

        for signum in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Cannot install handler for {signum.name}")

    def _build_orchestrator(self) -> DeliveryOrchestrator:
        config = self.config
        return DeliveryOrchestrator(
            transport=self.transport,
            ledger=ThrottleLedger(cap_delay=config.backoff_cap),
            backoff=BackoffController(
                failure_threshold=config.failure_threshold,
                base_delay=config.backoff_base,
                max_delay=config.backoff_cap,
            ),
            allow_list=config.filter,
            base_interval=config.base_interval,
            jitter_max=config.jitter_max,
            benign_error_codes=config.benign_error_codes,
            on_circuit_trip=self._on_circuit_trip,
            clock=asyncio.get_running_loop().time,
        )

    async def run(self) -> int:
        """Run the tracker until timeout, signal or circuit trip.

        Returns:
            Process exit code.
        """
        self._stop_event = asyncio.Event()
        self._exit_code = EXIT_OK

        if self.handle_signals:
            self._setup_signal_handlers()

        await self.transport.open()
        try:
            result = await self.transport.verify()
            if not result.ok:
                logger.error("API returned an error. Is your API token correct?")
                logger.error(result.describe())
                return EXIT_VERIFY_FAILED

            self.orchestrator = self._build_orchestrator()
            self.scanner = self.scanner_factory(
                on_reading=self._on_reading,
                on_found=self._on_found,
                on_warning=self._on_warning,
                scanning_mode=self.config.ble.scanning_mode,
                adapter=self.config.ble.adapter,
            )
            await self.scanner.start()

            if self.config.filter:
                logger.info(f"Forwarding only {', '.join(self.config.filter)}")
            logger.info("ruuvitrack is running. Press Ctrl+C to stop.")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.timeout)
            except asyncio.TimeoutError:
                logger.info(f"Shutting down after {self.config.timeout:g} seconds")

            return self._exit_code
        finally:
            await self._shutdown()

    async def _shutdown(self) -> None:
        if self.scanner is not None:
            await self.scanner.stop()

        if self.orchestrator is not None:
            abandoned = self.orchestrator.cancel_pending()
            if abandoned:
                logger.info(f"Abandoning {abandoned} in-flight deliveries")
            await self.orchestrator.drain()

        await self.transport.close()
        logger.info("ruuvitrack stopped.")


def run_tracker(config: TrackerConfig) -> int:
    """Run the tracker service.

    Args:
        config: Loaded configuration with a token.

    Returns:
        Process exit code.
    """
    logger.info(
        "Starting ruuvitrack. It might take a minute to start getting data from RuuviTags."
    )

    tracker = RuuviTracker(config, handle_signals=True)

    try:
        return asyncio.run(tracker.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_OK
    except Exception as e:
        logger.error(f"Error: {e}")
        return EXIT_ERROR
