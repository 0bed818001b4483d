"""Tests for the ip-api.com enrichment provider."""

from __future__ import annotations

import httpx
import pytest

from api_saver.enrichment.provider import IpApiProvider


def _provider(handler) -> IpApiProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return IpApiProvider(url_template="http://geo.test/json/{address}", client=client)


@pytest.mark.asyncio
async def test_lookup_success_parses_fields() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(
            200,
            json={
                "status": "success",
                "country": "Bangladesh",
                "regionName": "Dhaka Division",
                "city": "Dhaka",
                "zip": "1000",
                "isp": "Example ISP",
                "org": "Example Org",
                "as": "AS64500 Example",
                "timezone": "Asia/Dhaka",
                "lat": 23.7,
                "lon": 90.4,
            },
        )

    result = await _provider(handler).lookup("103.153.28.60")

    assert seen == ["http://geo.test/json/103.153.28.60"]
    assert result.ok is True
    assert result.provider == "ip-api.com"
    assert result.city == "Dhaka"
    assert result.region == "Dhaka Division"
    assert result.postal == "1000"
    assert result.asn == "AS64500 Example"
    assert result.lat == 23.7
    assert result.lon == 90.4


@pytest.mark.asyncio
async def test_lookup_provider_reported_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "fail", "message": "private range"})

    result = await _provider(handler).lookup("10.0.0.1")

    assert result.ok is False
    assert result.error == "private range"


@pytest.mark.asyncio
async def test_lookup_malformed_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>nope</html>")

    result = await _provider(handler).lookup("198.51.100.1")

    assert result.ok is False
    assert result.error == "malformed response"


@pytest.mark.asyncio
async def test_lookup_non_object_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["not", "an", "object"])

    result = await _provider(handler).lookup("198.51.100.1")

    assert result.ok is False


@pytest.mark.asyncio
async def test_lookup_http_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="busy")

    result = await _provider(handler).lookup("198.51.100.1")

    assert result.ok is False
    assert result.provider == "ip-api.com"


@pytest.mark.asyncio
async def test_lookup_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    result = await _provider(handler).lookup("198.51.100.1")

    assert result.ok is False
    assert result.error == "lookup timed out"


@pytest.mark.asyncio
async def test_lookup_connection_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    result = await _provider(handler).lookup("198.51.100.1")

    assert result.ok is False
    assert "refused" in result.error
