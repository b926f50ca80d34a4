"""Tests for the aiohttp transport against an in-process server."""

import asyncio
from datetime import datetime, timezone

import pytest
from aiohttp import test_utils, web

from ruuvitrack.tracker.transport import (
    DeliveryResult,
    HTTPTransport,
    create_sensor_payload,
    iso_timestamp,
)

PATH = "/api/data/"


def make_app(received, post_status=201, post_body=None, get_status=200, delay=0.0):
    async def post(request: web.Request) -> web.Response:
        received.append(
            {
                "authorization": request.headers.get("Authorization"),
                "json": await request.json(),
            }
        )
        if delay:
            await asyncio.sleep(delay)
        return web.json_response(post_body or {"status": "ok"}, status=post_status)

    async def get(request: web.Request) -> web.Response:
        received.append({"authorization": request.headers.get("Authorization")})
        if get_status >= 400:
            return web.json_response({"detail": "Invalid token."}, status=get_status)
        return web.json_response([], status=get_status)

    app = web.Application()
    app.router.add_post(PATH, post)
    app.router.add_get(PATH, get)
    return app


def test_iso_timestamp_uses_milliseconds_and_z() -> None:
    moment = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)

    assert iso_timestamp(moment) == "2024-01-02T03:04:05.678Z"


def test_payload_has_exactly_the_wire_fields(reading_factory) -> None:
    sent_at = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)

    payload = create_sensor_payload(reading_factory("AA:BB", rssi=-80), sent_at)

    assert payload == {
        "mac": "AA:BB",
        "temperature": 21.33,
        "humidity": 41.105,
        "pressure": 103288,
        "battery": 2964,
        "time_at": "2024-05-06T07:08:09.000Z",
    }


def test_delivery_result_code_and_description() -> None:
    result = DeliveryResult(ok=False, status=400, detail={"code": "sensor_already_updated"})

    assert result.has_response
    assert result.code == "sensor_already_updated"
    assert "HTTP 400" in result.describe()
    assert DeliveryResult(ok=False, status=500, detail="oops").code is None
    assert DeliveryResult(ok=False, reason="refused").describe() == "refused"


@pytest.mark.asyncio
async def test_submit_posts_payload_with_token(reading_factory) -> None:
    received = []
    async with test_utils.TestServer(make_app(received)) as server:
        url = str(server.make_url(PATH))
        async with HTTPTransport(url, "secret") as transport:
            result = await transport.submit(reading_factory("AA:BB"))

    assert result.ok
    assert result.status == 201
    assert received[0]["authorization"] == "Token secret"
    body = received[0]["json"]
    assert set(body) == {"mac", "temperature", "humidity", "pressure", "battery", "time_at"}
    assert body["mac"] == "AA:BB"
    assert body["time_at"].endswith("Z")


@pytest.mark.asyncio
async def test_submit_rejection_carries_response_detail(reading_factory) -> None:
    received = []
    app = make_app(received, post_status=400, post_body={"code": "sensor_already_updated"})
    async with test_utils.TestServer(app) as server:
        async with HTTPTransport(str(server.make_url(PATH)), "secret") as transport:
            result = await transport.submit(reading_factory("AA:BB"))

    assert not result.ok
    assert result.status == 400
    assert result.code == "sensor_already_updated"


@pytest.mark.asyncio
async def test_submit_without_response(reading_factory) -> None:
    async with test_utils.TestServer(make_app([])) as server:
        url = str(server.make_url(PATH))
    # Server is gone now; the connection is refused

    async with HTTPTransport(url, "secret") as transport:
        result = await transport.submit(reading_factory("AA:BB"))

    assert not result.ok
    assert not result.has_response
    assert result.reason


@pytest.mark.asyncio
async def test_submit_timeout(reading_factory) -> None:
    async with test_utils.TestServer(make_app([], delay=0.5)) as server:
        transport = HTTPTransport(str(server.make_url(PATH)), "secret", request_timeout=0.05)
        async with transport:
            result = await transport.submit(reading_factory("AA:BB"))

    assert not result.ok
    assert "timed out" in result.reason


@pytest.mark.asyncio
async def test_verify_success_and_failure() -> None:
    received = []
    async with test_utils.TestServer(make_app(received)) as server:
        async with HTTPTransport(str(server.make_url(PATH)), "good") as transport:
            ok = await transport.verify()

    async with test_utils.TestServer(make_app(received, get_status=401)) as server:
        async with HTTPTransport(str(server.make_url(PATH)), "bad") as transport:
            rejected = await transport.verify()

    assert ok.ok
    assert not rejected.ok
    assert rejected.status == 401
    assert rejected.detail == {"detail": "Invalid token."}
    assert [r["authorization"] for r in received] == ["Token good", "Token bad"]


@pytest.mark.asyncio
async def test_transport_must_be_open(reading_factory) -> None:
    transport = HTTPTransport("http://localhost/", "secret")

    with pytest.raises(RuntimeError):
        await transport.submit(reading_factory("AA:BB"))


@pytest.mark.asyncio
async def test_non_2xx_status_is_a_failure(reading_factory) -> None:
    async def not_modified(request: web.Request) -> web.Response:
        return web.Response(status=304)

    app = web.Application()
    app.router.add_post(PATH, not_modified)
    async with test_utils.TestServer(app) as server:
        async with HTTPTransport(str(server.make_url(PATH)), "secret") as transport:
            result = await transport.submit(reading_factory("AA:BB"))

    assert not result.ok
    assert result.status == 304
    assert result.has_response
