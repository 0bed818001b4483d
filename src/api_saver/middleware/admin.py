"""Shared-key guard for the admin API."""

from __future__ import annotations

import logging
import secrets
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..settings.manager import SettingsManager
from ..utils.http import get_client_address

logger = logging.getLogger(__name__)

ADMIN_KEY_HEADER = "x-admin-key"


class AdminKeyMiddleware(BaseHTTPMiddleware):
    """Reject admin requests whose ``x-admin-key`` does not match.

    The expected key is read from the live configuration
    (``apiSettings.adminKey``) on every request so that updates take effect
    immediately; ``fallback_key`` is used when the configuration has none.
    An empty expected key rejects every admin request.
    """

    def __init__(
        self,
        app: Callable,
        settings_manager: SettingsManager,
        fallback_key: str = "",
        protected_prefix: str = "/api/admin",
    ) -> None:
        super().__init__(app)
        self.settings_manager = settings_manager
        self.fallback_key = fallback_key
        self.protected_prefix = protected_prefix

    def _expected_key(self) -> str:
        configured = self.settings_manager.get_value("apiSettings", "adminKey")
        return str(configured or self.fallback_key or "")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not request.url.path.startswith(self.protected_prefix):
            return await call_next(request)

        expected = self._expected_key()
        provided = request.headers.get(ADMIN_KEY_HEADER, "")
        if not expected or not secrets.compare_digest(provided.encode(), expected.encode()):
            logger.warning(
                "Admin access denied for %s from %s",
                request.url.path,
                get_client_address(request),
            )
            return JSONResponse(
                status_code=403,
                content={"status": False, "message": "Admin Access Required"},
            )
        return await call_next(request)
