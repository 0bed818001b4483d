"""Token-protected viewer for the JSON-lines telemetry logs."""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections import deque
from pathlib import Path

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from api_saver.telemetry.sinks import LOG_SUFFIX
from api_saver.utils.serialization import safe_json_loads

logger = logging.getLogger(__name__)

LOG_TOKEN_HEADER = "x-log-token"
DEFAULT_TAIL_LINES = 100
MAX_TAIL_LINES = 2000


def clamp_lines(value: str | None) -> int:
    try:
        lines = int(value) if value not in (None, "") else DEFAULT_TAIL_LINES
    except ValueError:
        lines = DEFAULT_TAIL_LINES
    return min(max(lines, 1), MAX_TAIL_LINES)


def list_log_files(log_dir: Path) -> list[str]:
    return sorted(p.name for p in log_dir.iterdir() if p.is_file() and p.name.endswith(LOG_SUFFIX))


def tail_records(path: Path, lines: int) -> list[object]:
    """Last ``lines`` lines of ``path``, parsed; malformed lines are skipped."""
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        last = deque((line for line in handle if line.strip()), maxlen=lines)
    parsed = (safe_json_loads(line) for line in last)
    return [item for item in parsed if item is not None]


class LogViewer:
    def __init__(self, log_dir: str, access_token: str) -> None:
        self.log_dir = Path(log_dir)
        self._token = access_token
        if not access_token:
            logger.warning("Log viewer access token is empty; all requests will be rejected")

    def _authorized(self, request: Request) -> bool:
        provided = request.query_params.get("token") or request.headers.get(LOG_TOKEN_HEADER) or ""
        if not self._token:
            return False
        return secrets.compare_digest(provided.encode(), self._token.encode())

    @staticmethod
    def _unauthorized() -> JSONResponse:
        return JSONResponse(status_code=401, content={"ok": False, "error": "unauthorized"})

    async def list_files(self, request: Request) -> Response:
        if not self._authorized(request):
            return self._unauthorized()
        try:
            files = await asyncio.to_thread(list_log_files, self.log_dir)
        except OSError as e:
            logger.error("Log viewer failed to list %s: %s", self.log_dir, e)
            return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
        return JSONResponse({"ok": True, "files": files})

    async def tail(self, request: Request) -> Response:
        if not self._authorized(request):
            return self._unauthorized()

        requested = request.query_params.get("file", "")
        lines = clamp_lines(request.query_params.get("lines"))
        if not requested.endswith(LOG_SUFFIX):
            return JSONResponse(status_code=400, content={"ok": False, "error": "invalid file"})

        name = Path(requested).name
        full_path = self.log_dir / name
        if not full_path.is_file():
            return JSONResponse(status_code=404, content={"ok": False, "error": "not found"})

        try:
            data = await asyncio.to_thread(tail_records, full_path, lines)
        except OSError as e:
            logger.error("Log viewer failed to read %s: %s", full_path, e)
            return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
        return JSONResponse({"ok": True, "file": name, "lines": len(data), "data": data})

    def routes(self, prefix: str = "/admin/system-logs") -> list[Route]:
        return [
            Route(f"{prefix}/", endpoint=self.list_files, methods=["GET"]),
            Route(f"{prefix}/tail", endpoint=self.tail, methods=["GET"]),
        ]
