"""Application context assembly."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from api_saver.config import Settings, load_settings
from api_saver.enrichment.cache import EnrichmentCache
from api_saver.enrichment.provider import EnrichmentProvider, IpApiProvider
from api_saver.settings.manager import SettingsManager
from api_saver.storage.db import AsyncDocumentStore, DocumentStore
from api_saver.telemetry.recorder import TelemetryRecorder
from api_saver.telemetry.sinks import JsonlLogSink, StoreSink


@dataclass
class AppContext:
    """Application-wide dependency container.

    Built once at startup and handed to the HTTP layer explicitly; nothing
    here is looked up through module globals.
    """

    settings: Settings
    store: AsyncDocumentStore
    settings_manager: SettingsManager
    enrichment: EnrichmentCache
    recorder: TelemetryRecorder

    def close(self) -> None:
        self.store.close()


def build_app_context(
    settings: Settings | None = None,
    *,
    store: AsyncDocumentStore | None = None,
    provider: EnrichmentProvider | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppContext:
    settings = settings or load_settings()

    if store is None:
        store = AsyncDocumentStore(
            DocumentStore(settings.storage.sqlite_path, wal=settings.storage.sqlite_wal)
        )

    settings_manager = SettingsManager(
        settings.storage.settings_file,
        store=store,
        environ=environ,
    )

    enrichment_settings = settings.enrichment
    if provider is None:
        provider = IpApiProvider(
            url_template=enrichment_settings.provider_url,
            timeout_seconds=enrichment_settings.timeout_seconds,
        )
    enrichment = EnrichmentCache(
        provider,
        ttl_seconds=enrichment_settings.ttl_seconds,
        lookup_timeout_seconds=enrichment_settings.timeout_seconds * 2,
        max_entries=enrichment_settings.max_entries,
        enabled=enrichment_settings.enabled,
    )

    telemetry = settings.telemetry
    recorder = TelemetryRecorder(
        telemetry,
        enrichment,
        JsonlLogSink(telemetry.log_dir, telemetry.service_name, telemetry.log_file_prefix),
        StoreSink(store),
    )

    return AppContext(
        settings=settings,
        store=store,
        settings_manager=settings_manager,
        enrichment=enrichment,
        recorder=recorder,
    )
