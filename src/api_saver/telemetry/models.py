"""Data models for telemetry records and enrichment results."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

UNKNOWN = "Unknown"


@dataclass(frozen=True)
class EnrichmentResult:
    """Geo/ISP metadata for one network address."""

    provider: str
    ok: bool = True
    error: str | None = None
    country: str | None = None
    region: str | None = None
    city: str | None = None
    postal: str | None = None
    isp: str | None = None
    org: str | None = None
    asn: str | None = None
    timezone: str | None = None
    lat: float | None = None
    lon: float | None = None

    @classmethod
    def local(cls) -> "EnrichmentResult":
        return cls(
            provider="local",
            country="Local",
            city="Local",
            isp="Local",
            lat=0.0,
            lon=0.0,
        )

    @classmethod
    def failure(cls, provider: str, message: str) -> "EnrichmentResult":
        return cls(provider=provider, ok=False, error=message or "enrichment failed")

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class TelemetryRecord:
    """One completed request."""

    ts: str
    service: str
    method: str
    path: str
    status: int
    duration_ms: int
    client_id: str
    ip: str
    ua: str = ""
    referer: str = ""
    body_preview: str | None = None
    ip_info: EnrichmentResult | None = None

    def to_log_dict(self) -> dict[str, Any]:
        """Shape written to the JSON-lines log."""
        data: dict[str, Any] = {
            "ts": self.ts,
            "service": self.service,
            "method": self.method,
            "path": self.path,
            "status": self.status,
            "durationMs": self.duration_ms,
            "clientId": self.client_id,
            "ip": self.ip,
            "ua": self.ua,
            "referer": self.referer,
        }
        if self.body_preview is not None:
            data["bodyPreview"] = self.body_preview
        if self.ip_info is not None:
            data["ipInfo"] = self.ip_info.to_dict()
        return data

    def to_traffic_document(self, raw_address: str) -> dict[str, Any]:
        """Full document for the ``traffic`` collection, keyed on the raw address."""
        info = self.ip_info if self.ip_info is not None and self.ip_info.ok else None
        return {
            "ip": raw_address,
            "isp": info.isp if info else UNKNOWN,
            "org": info.org if info else None,
            "country": info.country if info else UNKNOWN,
            "region": info.region if info else None,
            "city": info.city if info else UNKNOWN,
            "postal": info.postal if info else None,
            "timezone": info.timezone if info else None,
            "lat": info.lat if info else None,
            "lon": info.lon if info else None,
            "userAgent": self.ua,
            "path": self.path,
            "method": self.method,
            "status": self.status,
            "durationMs": self.duration_ms,
            "timestamp": self.ts,
            "degraded": False,
        }

    def to_degraded_document(self, raw_address: str) -> dict[str, Any]:
        """Minimal fallback document used when the full write fails."""
        return {
            "ip": raw_address,
            "timestamp": self.ts,
            "path": self.path,
            "method": self.method,
            "userAgent": self.ua,
            "degraded": True,
        }
