"""RuuviTag tracker - forwards throttled sensor readings over HTTP."""

from .backoff import BackoffController
from .cli import main
from .orchestrator import DeliveryOrchestrator, DeliveryState
from .throttle import ThrottleLedger
from .tracker_service import RuuviTracker

__all__ = [
    "BackoffController",
    "DeliveryOrchestrator",
    "DeliveryState",
    "RuuviTracker",
    "ThrottleLedger",
    "main",
]
