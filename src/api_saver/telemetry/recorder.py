"""Request telemetry recorder.

The recorder observes three points of a request's lifecycle:

1. ``start``: monotonic start time, client address, body preview.
2. ``complete``: the response has been sent, so status and duration are known.
3. ``finalize``: runs in a background task, never awaited by the request
   path. Enriches the raw address and writes to both sinks concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Callable

from api_saver.config import TelemetrySettings
from api_saver.enrichment.cache import EnrichmentCache
from api_saver.telemetry.models import TelemetryRecord
from api_saver.telemetry.sinks import JsonlLogSink, StoreSink
from api_saver.utils.http import resolve_client_address
from api_saver.utils.masking import AddressFormatter
from api_saver.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "…(truncated)"
ANONYMOUS = "anonymous"

# Methods whose bodies are not previewed.
_NO_PREVIEW_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

ClientIdentifier = Callable[[Mapping[str, str]], "str | None"]


def default_identify_client(headers: Mapping[str, str]) -> str | None:
    return headers.get("x-api-key") or headers.get("authorization")


def build_body_preview(body: bytes | str | None, max_bytes: int) -> str | None:
    """Return a size-bounded preview of a request body.

    Bodies over ``max_bytes`` are cut at the byte budget and annotated with
    :data:`TRUNCATION_MARKER`; shorter bodies are returned unmodified.
    """
    if body is None:
        return None
    raw = body.encode("utf-8") if isinstance(body, str) else bytes(body)
    if not raw:
        return None
    if len(raw) > max_bytes:
        return raw[:max_bytes].decode("utf-8", errors="ignore") + TRUNCATION_MARKER
    if isinstance(body, str):
        return body
    return raw.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class RequestInfo:
    """Transport-agnostic view of an inbound request."""

    method: str
    path: str
    headers: Mapping[str, str]
    transport_address: str | None = None
    body: bytes | None = None


@dataclass(frozen=True)
class RequestCapture:
    """State captured when a request starts."""

    started_at: float
    method: str
    path: str
    raw_address: str
    formatted_address: str
    client_id: str
    user_agent: str
    referer: str
    body_preview: str | None


class TelemetryRecorder:
    def __init__(
        self,
        config: TelemetrySettings,
        enrichment: EnrichmentCache | None,
        log_sink: JsonlLogSink,
        store_sink: StoreSink,
        identify_client: ClientIdentifier = default_identify_client,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._formatter = AddressFormatter(config.ip_mode, config.ip_hash_salt)
        self._enrichment = enrichment
        self._log_sink = log_sink
        self._store_sink = store_sink
        self._identify_client = identify_client
        self._clock = clock
        self._excluded = tuple(config.excluded_paths)
        self._pending: set[asyncio.Task[None]] = set()

    def is_excluded(self, path: str) -> bool:
        return any(excluded in path for excluded in self._excluded)

    def _client_id(self, headers: Mapping[str, str]) -> str:
        try:
            return str(self._identify_client(headers) or ANONYMOUS)
        except Exception:
            logger.debug("Client identifier raised; recording as anonymous", exc_info=True)
            return ANONYMOUS

    def start(self, info: RequestInfo) -> RequestCapture:
        raw_address = resolve_client_address(info.headers, info.transport_address)
        method = info.method.upper()
        preview = None
        if method not in _NO_PREVIEW_METHODS:
            preview = build_body_preview(info.body, self.config.max_body_bytes)
        return RequestCapture(
            started_at=self._clock(),
            method=method,
            path=info.path,
            raw_address=raw_address,
            formatted_address=self._formatter.format(raw_address),
            client_id=self._client_id(info.headers),
            user_agent=info.headers.get("user-agent", ""),
            referer=info.headers.get("referer", ""),
            body_preview=preview,
        )

    def complete(self, capture: RequestCapture, status_code: int) -> TelemetryRecord:
        duration_ms = int((self._clock() - capture.started_at) * 1000)
        return TelemetryRecord(
            ts=utc_now_iso(),
            service=self.config.service_name,
            method=capture.method,
            path=capture.path,
            status=status_code,
            duration_ms=max(duration_ms, 0),
            client_id=capture.client_id,
            ip=capture.formatted_address,
            ua=capture.user_agent,
            referer=capture.referer,
            body_preview=capture.body_preview,
        )

    async def finalize(self, record: TelemetryRecord, raw_address: str) -> None:
        """Enrich ``record`` and write it to both sinks. Never raises."""
        try:
            if self._enrichment is not None and self._enrichment.enabled:
                try:
                    # Enrichment always sees the raw address, whatever the log format.
                    record.ip_info = await self._enrichment.resolve(raw_address)
                except Exception as e:
                    logger.warning("Enrichment failed for %s: %s", raw_address, e)

            results = await asyncio.gather(
                self._log_sink.write(record),
                self._store_sink.write(record, raw_address),
                return_exceptions=True,
            )
            for sink, outcome in zip(("log", "store"), results):
                if isinstance(outcome, BaseException):
                    logger.error(
                        "Telemetry %s sink raised for %s %s: %s",
                        sink,
                        record.method,
                        record.path,
                        outcome,
                    )
        except Exception:
            logger.exception("Telemetry finalization failed for %s %s", record.method, record.path)

    def schedule(self, record: TelemetryRecord, raw_address: str) -> asyncio.Task[None]:
        """Run :meth:`finalize` in the background without blocking the caller."""
        task = asyncio.get_running_loop().create_task(self.finalize(record, raw_address))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for all scheduled finalizations (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
