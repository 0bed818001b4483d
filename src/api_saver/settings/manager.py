"""Live configuration document reconciled across memory, a local file and the store.

Lifecycle:

1. Construction reads the local snapshot file (best effort).
2. :meth:`SettingsManager.reconcile` runs once before serving traffic and
   decides which replica is authoritative:

   - the store holds a document: adopt it and overwrite the file;
   - else the file gave a non-empty document: seed the store with it;
   - else stay empty.

   Environment overrides are applied last and live only in memory.
3. :meth:`SettingsManager.update` merges into memory and writes through to
   both replicas. Updates are applied one at a time, so the replicas end
   up holding the same document as memory.

Reads never touch storage. The in-memory document is the source of truth
once loaded, even when a replica write fails.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from api_saver.storage.db import SETTINGS, AsyncDocumentStore

logger = logging.getLogger(__name__)

# Bookkeeping written by the store; never part of the live document.
STORAGE_INTERNAL_FIELDS = frozenset({"_id", "__v", "createdAt", "updatedAt"})

# (environment variable, key under credentials.gmailAccount)
EMAIL_OVERRIDE_ENV = (
    ("GMAIL_EMAIL", "email"),
    ("GMAIL_CLIENT_ID", "clientId"),
    ("GMAIL_CLIENT_SECRET", "clientSecret"),
    ("GMAIL_REFRESH_TOKEN", "refreshToken"),
)


def strip_internal_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in STORAGE_INTERNAL_FIELDS}


def _deep_merge(base: dict[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Build the in-memory overlay for outbound-email credentials.

    Applied only when both ``GMAIL_EMAIL`` and ``GMAIL_CLIENT_ID`` are set.
    """
    env = os.environ if environ is None else environ
    if not env.get("GMAIL_EMAIL") or not env.get("GMAIL_CLIENT_ID"):
        return {}
    account = {field: env.get(var) for var, field in EMAIL_OVERRIDE_ENV}
    return {"credentials": {"gmailAccount": account}}


class SettingsManager:
    def __init__(
        self,
        file_path: str | Path,
        store: AsyncDocumentStore | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._file_path = Path(file_path)
        self._store = store
        self._environ = environ
        self._lock = threading.Lock()
        # Serializes merge-then-write so replicas apply updates in order.
        self._write_lock = asyncio.Lock()
        self._document: dict[str, Any] = self._load_file()
        self._overrides: dict[str, Any] = {}
        self.using_store = False
        self.reconciled = False

    @property
    def file_path(self) -> Path:
        return self._file_path

    def _load_file(self) -> dict[str, Any]:
        if not self._file_path.exists():
            return {}
        try:
            data = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Failed to load settings file %s: %s", self._file_path, e)
            return {}
        if not isinstance(data, dict):
            logger.error("Settings file %s does not hold an object; ignoring", self._file_path)
            return {}
        return strip_internal_fields(data)

    def _write_file(self, data: Mapping[str, Any]) -> bool:
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(strip_internal_fields(data), indent=2, ensure_ascii=False)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._file_path.parent,
                prefix=self._file_path.name + ".",
                suffix=".tmp",
                delete=False,
            ) as handle:
                handle.write(payload)
                tmp_name = handle.name
            try:
                os.replace(tmp_name, self._file_path)
            except OSError:
                Path(tmp_name).unlink(missing_ok=True)
                raise
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save settings file %s: %s", self._file_path, e)
            return False

    async def _save_file(self, data: Mapping[str, Any]) -> bool:
        return await asyncio.to_thread(self._write_file, data)

    async def _save_store(self, data: Mapping[str, Any]) -> bool:
        if self._store is None:
            return False
        try:
            await self._store.upsert_one(SETTINGS, strip_internal_fields(data))
            logger.info("Settings updated in store")
            return True
        except Exception as e:
            logger.error("Failed to update settings in store: %s", e)
            return False

    async def reconcile(self) -> None:
        """Establish the authoritative document. Store failures are non-fatal."""
        async with self._write_lock:
            await self._reconcile_replicas()

        overrides = env_overrides(self._environ)
        with self._lock:
            self._overrides = overrides
        if overrides:
            logger.info("Email credentials loaded from environment variables")
        self.reconciled = True

    async def _reconcile_replicas(self) -> None:
        if self._store is not None:
            try:
                stored = await self._store.find_one(SETTINGS)
                if stored:
                    clean = strip_internal_fields(stored)
                    with self._lock:
                        self._document = clean
                    await self._save_file(clean)
                    self.using_store = True
                    logger.info("Settings loaded from store")
                else:
                    with self._lock:
                        seed = copy.deepcopy(self._document)
                    if seed:
                        await self._store.upsert_one(SETTINGS, seed)
                        self.using_store = True
                        logger.info("Settings seeded to store from %s", self._file_path)
            except Exception as e:
                self.using_store = False
                logger.error("Failed to sync settings with store: %s", e)

    def get(self) -> dict[str, Any]:
        """Current configuration, overrides applied. Never touches storage."""
        with self._lock:
            return _deep_merge(copy.deepcopy(self._document), self._overrides)

    def get_value(self, *path: str, default: Any = None) -> Any:
        node: Any = self.get()
        for key in path:
            if not isinstance(node, Mapping) or key not in node:
                return default
            node = node[key]
        return node

    async def update(self, partial: Mapping[str, Any]) -> dict[str, Any]:
        """Shallow-merge ``partial`` and write through to the file and the store.

        Replica failures are logged; the in-memory update stands regardless.
        """
        if not isinstance(partial, Mapping):
            raise TypeError("Settings update must be a mapping")
        async with self._write_lock:
            with self._lock:
                self._document = {**self._document, **strip_internal_fields(partial)}
                snapshot = copy.deepcopy(self._document)

            await asyncio.gather(
                self._save_file(snapshot),
                self._save_store(snapshot),
            )
        return self.get()
