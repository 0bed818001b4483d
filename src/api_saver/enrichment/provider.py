"""Remote geo/ISP metadata providers."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from api_saver.telemetry.models import EnrichmentResult

logger = logging.getLogger(__name__)

IP_API_URL = "http://ip-api.com/json/{address}"


class EnrichmentProvider(Protocol):
    name: str

    async def lookup(self, address: str) -> EnrichmentResult: ...


def _text(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None or value == "":
        return None
    return str(value)


def _number(payload: dict[str, Any], key: str) -> float | None:
    value = payload.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


class IpApiProvider:
    """Lookup against the ip-api.com JSON endpoint.

    Every failure mode (transport error, timeout, non-2xx status, non-JSON
    body, ``status != "success"``) is returned as an error-tagged result
    rather than raised, so the caller can cache it.
    """

    name = "ip-api.com"

    def __init__(
        self,
        url_template: str = IP_API_URL,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url_template = url_template
        self._timeout = timeout_seconds
        self._client = client

    async def lookup(self, address: str) -> EnrichmentResult:
        url = self._url_template.format(address=address)
        try:
            if self._client is not None:
                resp = await self._client.get(url, timeout=self._timeout)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(url, timeout=self._timeout)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.TimeoutException:
            logger.warning("Enrichment lookup timed out for %s", address)
            return EnrichmentResult.failure(self.name, "lookup timed out")
        except httpx.HTTPError as e:
            logger.warning("Enrichment lookup failed for %s: %s", address, e)
            return EnrichmentResult.failure(self.name, str(e))
        except ValueError as e:
            logger.warning("Enrichment response for %s is not JSON: %s", address, e)
            return EnrichmentResult.failure(self.name, "malformed response")

        if not isinstance(payload, dict):
            return EnrichmentResult.failure(self.name, "malformed response")
        if payload.get("status") != "success":
            return EnrichmentResult.failure(
                self.name, str(payload.get("message") or "API Error")
            )

        return EnrichmentResult(
            provider=self.name,
            country=_text(payload, "country"),
            region=_text(payload, "regionName"),
            city=_text(payload, "city"),
            postal=_text(payload, "zip"),
            isp=_text(payload, "isp"),
            org=_text(payload, "org"),
            asn=_text(payload, "as"),
            timezone=_text(payload, "timezone"),
            lat=_number(payload, "lat"),
            lon=_number(payload, "lon"),
        )
