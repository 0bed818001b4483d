"""Tests for the JSON-lines and store telemetry sinks."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from api_saver.storage.db import TRAFFIC
from api_saver.telemetry.models import EnrichmentResult, TelemetryRecord
from api_saver.telemetry.sinks import JsonlLogSink, StoreSink, log_file_name


def _record(**overrides) -> TelemetryRecord:
    data = {
        "ts": "2026-01-01T00:00:00.000Z",
        "service": "test-api",
        "method": "POST",
        "path": "/api/items",
        "status": 201,
        "duration_ms": 12,
        "client_id": "anonymous",
        "ip": "198.51.100.0",
        "ua": "pytest",
        "referer": "",
    }
    data.update(overrides)
    return TelemetryRecord(**data)


def test_log_file_name():
    assert log_file_name("svc") == "usage-svc.jsonl"
    assert log_file_name("svc", prefix="audit") == "audit-svc.jsonl"


@pytest.mark.asyncio
async def test_log_sink_appends_one_line_per_record(tmp_path):
    sink = JsonlLogSink(str(tmp_path / "logs"), "test-api")

    assert await sink.write(_record(body_preview='{"a":1}'))
    assert await sink.write(_record(path="/second", ip_info=EnrichmentResult.local()))

    lines = sink.path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first, second = (json.loads(line) for line in lines)
    assert first["durationMs"] == 12
    assert first["bodyPreview"] == '{"a":1}'
    assert "ipInfo" not in first
    assert second["path"] == "/second"
    assert second["ipInfo"]["city"] == "Local"


@pytest.mark.asyncio
async def test_log_sink_failure_is_swallowed(tmp_path):
    sink = JsonlLogSink(str(tmp_path), "test-api")
    with patch.object(sink, "_append", side_effect=OSError("disk full")):
        assert await sink.write(_record()) is False


@pytest.mark.asyncio
async def test_store_sink_writes_full_document(store):
    info = EnrichmentResult(provider="fake", country="Japan", city="Tokyo", isp="NTT")
    record = _record(ip_info=info)

    assert await StoreSink(store).write(record, "198.51.100.7")

    doc = (await store.find(TRAFFIC))[0]
    assert doc["ip"] == "198.51.100.7"
    assert doc["city"] == "Tokyo"
    assert doc["userAgent"] == "pytest"
    assert doc["degraded"] is False


@pytest.mark.asyncio
async def test_store_sink_marks_unknown_geo_for_failed_enrichment(store):
    record = _record(ip_info=EnrichmentResult.failure("fake", "boom"))

    await StoreSink(store).write(record, "198.51.100.7")

    doc = (await store.find(TRAFFIC))[0]
    assert doc["country"] == "Unknown"
    assert doc["city"] == "Unknown"


@pytest.mark.asyncio
async def test_store_sink_falls_back_to_degraded_record():
    fake_store = AsyncMock()
    fake_store.insert.side_effect = [RuntimeError("validation failed"), "doc-id"]

    stored_full = await StoreSink(fake_store).write(_record(), "198.51.100.7")

    assert stored_full is False
    assert fake_store.insert.await_count == 2
    collection, degraded = fake_store.insert.await_args_list[1].args
    assert collection == TRAFFIC
    assert degraded == {
        "ip": "198.51.100.7",
        "timestamp": "2026-01-01T00:00:00.000Z",
        "path": "/api/items",
        "method": "POST",
        "userAgent": "pytest",
        "degraded": True,
    }


@pytest.mark.asyncio
async def test_store_sink_gives_up_quietly_when_store_unreachable():
    fake_store = AsyncMock()
    fake_store.insert.side_effect = ConnectionError("store offline")

    assert await StoreSink(fake_store).write(_record(), "198.51.100.7") is False
    assert fake_store.insert.await_count == 2
