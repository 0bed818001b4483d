from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path

import pytest

from api_saver.config import (
    AdminSettings,
    EnrichmentSettings,
    Settings,
    StorageSettings,
    TelemetrySettings,
)
from api_saver.storage.db import AsyncDocumentStore, DocumentStore
from api_saver.telemetry.models import EnrichmentResult


class FakeProvider:
    """Enrichment provider that counts lookups and returns a fixed result."""

    name = "fake"

    def __init__(self, result: EnrichmentResult | None = None, delay: float = 0.0) -> None:
        self.calls: list[str] = []
        self.result = result or EnrichmentResult(
            provider="fake", country="Bangladesh", city="Dhaka", isp="ExampleNet"
        )
        self.delay = delay

    async def lookup(self, address: str) -> EnrichmentResult:
        self.calls.append(address)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> None:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def sync_store(tmp_path: Path):
    store = DocumentStore(str(tmp_path / "store.sqlite"))
    yield store
    store.close()


@pytest.fixture
def store(sync_store: DocumentStore) -> AsyncDocumentStore:
    return AsyncDocumentStore(sync_store)


@pytest.fixture
def app_settings(tmp_path: Path) -> Settings:
    return Settings(
        telemetry=TelemetrySettings(
            service_name="test-api",
            log_dir=str(tmp_path / "logs"),
            max_body_bytes=64,
        ),
        enrichment=EnrichmentSettings(ttl_seconds=60),
        storage=StorageSettings(
            sqlite_path=str(tmp_path / "store.sqlite"),
            settings_file=str(tmp_path / "settings.json"),
        ),
        admin=AdminSettings(admin_key="admin-secret", log_viewer_token="log-secret"),
    )
