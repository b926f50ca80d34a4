"""Shared fixtures for ruuvitrack tests."""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

import pytest

from ruuvitrack.shared.models import Reading
from ruuvitrack.tracker.transport import DeliveryResult

OK = DeliveryResult(ok=True, status=201)


def failure(status: Optional[int] = 500, code: Optional[str] = None) -> DeliveryResult:
    """Build a failed DeliveryResult, with or without a server response."""
    if status is None:
        return DeliveryResult(ok=False, reason="ClientConnectorError: connection refused")
    detail = {"code": code} if code else {"detail": "server error"}
    return DeliveryResult(ok=False, status=status, detail=detail)


class FakeTransport:
    """In-memory transport returning scripted results."""

    def __init__(
        self,
        results: Optional[List[DeliveryResult]] = None,
        verify_result: DeliveryResult = OK,
        default: DeliveryResult = OK,
    ):
        self.results = list(results or [])
        self.verify_result = verify_result
        self.default = default
        self.submitted: List[Reading] = []
        self.opened = False
        self.closed = False

    async def open(self) -> None:
        self.opened = True

    async def close(self) -> None:
        self.closed = True

    async def verify(self) -> DeliveryResult:
        return self.verify_result

    async def submit(self, reading: Reading) -> DeliveryResult:
        self.submitted.append(reading)
        if self.results:
            return self.results.pop(0)
        return self.default


class BlockingTransport(FakeTransport):
    """Transport whose submissions hang until released."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.release = asyncio.Event()
        self.cancelled = 0

    async def submit(self, reading: Reading) -> DeliveryResult:
        self.submitted.append(reading)
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return self.default


def make_reading(identity: str = "AA:BB:CC:DD:EE:FF", **overrides) -> Reading:
    values = dict(
        identity=identity,
        temperature=21.33,
        humidity=41.105,
        pressure=103288,
        battery_mv=2964,
        observed_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return Reading(**values)


@pytest.fixture
def reading_factory():
    return make_reading


@pytest.fixture
def transport_factory():
    return FakeTransport


@pytest.fixture
def blocking_transport_factory():
    return BlockingTransport


@pytest.fixture
def failure_result():
    return failure


@pytest.fixture
def ok_result():
    return OK
