"""Telemetry capture middleware."""

from __future__ import annotations

import logging
from typing import Callable

from starlette.background import BackgroundTask, BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..telemetry.recorder import RequestCapture, RequestInfo, TelemetryRecorder

logger = logging.getLogger(__name__)

_NO_BODY_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def _chain_background(
    existing: BackgroundTask | None, task: BackgroundTask
) -> BackgroundTask:
    if existing is None:
        return task
    if isinstance(existing, BackgroundTasks):
        existing.tasks.append(task)
        return existing
    return BackgroundTasks(tasks=[existing, task])


class TelemetryMiddleware(BaseHTTPMiddleware):
    """
    Records one telemetry event per completed request.

    - Excluded (internal polling) paths pass straight through
    - The record is assembled once the response body has been sent
    - Enrichment and sink writes run in a background task the response
      never waits for
    """

    def __init__(
        self,
        app: Callable,
        recorder: TelemetryRecorder,
        enabled: bool = True,
    ) -> None:
        super().__init__(app)
        self.recorder = recorder
        self.enabled = enabled

    async def _capture(self, request: Request) -> RequestCapture | None:
        try:
            body = None
            if request.method.upper() not in _NO_BODY_METHODS:
                body = await request.body()
            return self.recorder.start(
                RequestInfo(
                    method=request.method,
                    path=request.url.path,
                    headers=request.headers,
                    transport_address=request.client.host if request.client else None,
                    body=body,
                )
            )
        except Exception as e:
            logger.warning("Telemetry capture failed for %s: %s", request.url.path, e)
            return None

    async def _finish(self, capture: RequestCapture, status_code: int) -> None:
        try:
            record = self.recorder.complete(capture, status_code)
            self.recorder.schedule(record, capture.raw_address)
        except Exception:
            logger.exception("Failed to schedule telemetry for %s", capture.path)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled or self.recorder.is_excluded(request.url.path):
            return await call_next(request)

        capture = await self._capture(request)
        if capture is None:
            return await call_next(request)

        try:
            response = await call_next(request)
        except Exception:
            await self._finish(capture, 500)
            raise

        response.background = _chain_background(
            response.background,
            BackgroundTask(self._finish, capture, response.status_code),
        )
        return response
