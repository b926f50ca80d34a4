"""HTTP transport for sensor readings."""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp

from ruuvitrack.shared.models import Reading

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Outcome of a single HTTP exchange with the collection endpoint.

    status and detail are only set when the server answered; reason
    describes failures where no response was received.
    """
    ok: bool
    status: Optional[int] = None
    detail: Any = None
    reason: Optional[str] = None

    @property
    def has_response(self) -> bool:
        return self.status is not None

    @property
    def code(self) -> Optional[str]:
        """Application error code from a structured error body, if any."""
        if isinstance(self.detail, dict):
            code = self.detail.get("code")
            return str(code) if code is not None else None
        return None

    def describe(self) -> str:
        if self.has_response:
            if isinstance(self.detail, (dict, list)):
                body = json.dumps(self.detail, indent=2)
            else:
                body = str(self.detail)
            return f"HTTP {self.status}: {body}"
        return self.reason or "unknown error"


def iso_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-01-01T12:00:00.000Z."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def create_sensor_payload(
    reading: Reading,
    sent_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Create the JSON body submitted for a reading.

    Args:
        reading: The reading to forward.
        sent_at: Submission time (defaults to now). This is the time of
            sending, not the time the advertisement was observed.

    Returns:
        Payload dictionary.
    """
    return {
        "mac": reading.identity,
        "temperature": reading.temperature,
        "humidity": reading.humidity,
        "pressure": reading.pressure,
        "battery": reading.battery_mv,
        "time_at": iso_timestamp(sent_at),
    }


class HTTPTransport:
    """Submits readings to the collection endpoint using aiohttp."""

    def __init__(self, url: str, token: str, request_timeout: float = 10.0):
        """Initialize the transport.

        Args:
            url: Collection endpoint URL.
            token: API token, sent as 'Authorization: Token <token>'.
            request_timeout: Total timeout per request in seconds.
        """
        self.url = url
        self.token = token
        self.request_timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def open(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Authorization": f"Token {self.token}"},
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HTTPTransport":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("HTTPTransport is not open")
        return self._session

    @staticmethod
    async def _read_detail(response: aiohttp.ClientResponse) -> Any:
        text = await response.text()
        try:
            return json.loads(text)
        except ValueError:
            return text

    async def _request(self, method: str, **kwargs) -> DeliveryResult:
        try:
            async with self.session.request(method, self.url, **kwargs) as response:
                if 200 <= response.status < 300:
                    return DeliveryResult(ok=True, status=response.status)
                detail = await self._read_detail(response)
                return DeliveryResult(ok=False, status=response.status, detail=detail)
        except asyncio.TimeoutError:
            return DeliveryResult(
                ok=False, reason=f"request timed out after {self.request_timeout}s"
            )
        except aiohttp.ClientError as e:
            return DeliveryResult(ok=False, reason=f"{e.__class__.__name__}: {e}")

    async def submit(self, reading: Reading) -> DeliveryResult:
        """POST a reading to the collection endpoint."""
        payload = create_sensor_payload(reading)
        logger.debug(f"Submitting {payload} to {self.url}")
        return await self._request("POST", json=payload)

    async def verify(self) -> DeliveryResult:
        """GET the endpoint once to check the URL and API token."""
        logger.debug(f"Verifying credentials against {self.url}")
        return await self._request("GET")
