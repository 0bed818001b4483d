"""Admin endpoints over the settings document and the traffic collection."""

from __future__ import annotations

import json
import logging
import math

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from api_saver.settings.manager import SettingsManager
from api_saver.storage.db import TRAFFIC, AsyncDocumentStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 500


def _positive_int(value: str | None, default: int) -> int:
    try:
        parsed = int(value) if value else default
    except ValueError:
        return default
    return parsed if parsed > 0 else default


class AdminRoutes:
    def __init__(self, settings_manager: SettingsManager, store: AsyncDocumentStore) -> None:
        self.settings_manager = settings_manager
        self.store = store

    async def get_settings(self, request: Request) -> Response:
        return JSONResponse({"status": True, "data": self.settings_manager.get()})

    async def update_settings(self, request: Request) -> Response:
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JSONResponse(
                status_code=400, content={"status": False, "error": "Invalid JSON body"}
            )
        if not isinstance(payload, dict):
            return JSONResponse(
                status_code=400,
                content={"status": False, "error": "Settings must be a JSON object"},
            )
        await self.settings_manager.update(payload)
        return JSONResponse({"status": True, "message": "Settings updated successfully"})

    async def list_traffic(self, request: Request) -> Response:
        limit = min(_positive_int(request.query_params.get("limit"), DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
        page = _positive_int(request.query_params.get("page"), 1)
        try:
            total = await self.store.count(TRAFFIC)
            visits = await self.store.find(TRAFFIC, limit=limit, skip=(page - 1) * limit)
        except Exception as e:
            logger.warning("Traffic listing from store failed: %s", e)
            return JSONResponse({"status": True, "data": [], "source": "local"})
        return JSONResponse(
            {
                "status": True,
                "data": visits,
                "pagination": {
                    "total": total,
                    "page": page,
                    "pages": math.ceil(total / limit),
                },
                "source": "db",
            }
        )

    def routes(self, prefix: str = "/api/admin") -> list[Route]:
        return [
            Route(f"{prefix}/settings", endpoint=self.get_settings, methods=["GET"]),
            Route(f"{prefix}/settings", endpoint=self.update_settings, methods=["POST"]),
            Route(f"{prefix}/traffic", endpoint=self.list_traffic, methods=["GET"]),
        ]
