"""Telemetry sinks: the append-only JSON-lines log and the durable store."""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path

from api_saver.storage.db import TRAFFIC, AsyncDocumentStore
from api_saver.telemetry.models import TelemetryRecord
from api_saver.utils.serialization import dumps_line

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".jsonl"


def log_file_name(service_name: str, prefix: str = "usage") -> str:
    return f"{prefix}-{service_name}{LOG_SUFFIX}"


class JsonlLogSink:
    """Append one JSON document per line to a service-named file."""

    def __init__(self, log_dir: str, service_name: str, prefix: str = "usage") -> None:
        self._dir = Path(log_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self.path = self._dir / log_file_name(service_name, prefix)
        self._lock = threading.Lock()

    def _append(self, line: str) -> None:
        with self._lock:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    async def write(self, record: TelemetryRecord) -> bool:
        """Append ``record``. Returns False when the write failed."""
        try:
            line = dumps_line(record.to_log_dict())
            await asyncio.to_thread(self._append, line)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error("Telemetry log write to %s failed: %s", self.path, e)
            return False


class StoreSink:
    """Persist records to the ``traffic`` collection with a degraded fallback."""

    def __init__(self, store: AsyncDocumentStore) -> None:
        self._store = store

    async def write(self, record: TelemetryRecord, raw_address: str) -> bool:
        """Insert the full document, or the minimal one if that fails.

        Returns True when the full document was stored.
        """
        try:
            await self._store.insert(TRAFFIC, record.to_traffic_document(raw_address))
            return True
        except Exception as e:
            logger.warning(
                "Traffic store write failed for %s %s: %s; storing degraded record",
                record.method,
                record.path,
                e,
            )

        try:
            await self._store.insert(TRAFFIC, record.to_degraded_document(raw_address))
        except Exception as e:
            logger.error(
                "Degraded traffic store write failed for %s %s: %s",
                record.method,
                record.path,
                e,
            )
        return False
