"""Starlette HTTP server assembly."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from api_saver.app import AppContext, build_app_context
from api_saver.middleware.admin import AdminKeyMiddleware
from api_saver.middleware.telemetry import TelemetryMiddleware
from api_saver.transport.admin_routes import AdminRoutes
from api_saver.transport.log_viewer import LogViewer

logger = logging.getLogger(__name__)


def create_http_app(context: AppContext | None = None) -> Starlette:
    """Create the HTTP application around an application context."""
    ctx = context or build_app_context()
    settings = ctx.settings

    # Order: Telemetry -> AdminKey
    # Telemetry is outermost so rejected admin calls are still recorded.
    middleware = [
        Middleware(
            TelemetryMiddleware,
            recorder=ctx.recorder,
            enabled=settings.telemetry.enabled,
        ),
        Middleware(
            AdminKeyMiddleware,
            settings_manager=ctx.settings_manager,
            fallback_key=settings.admin.admin_key,
        ),
    ]

    async def health_handler(request: Request) -> Response:
        return JSONResponse({"status": "healthy"})

    admin = AdminRoutes(ctx.settings_manager, ctx.store)
    viewer = LogViewer(settings.telemetry.log_dir, settings.admin.log_viewer_token)

    routes = [
        Route("/health", endpoint=health_handler, methods=["GET"]),
        *admin.routes(),
        *viewer.routes(),
    ]

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Starting api-saver HTTP server...")
        await ctx.settings_manager.reconcile()
        logger.info(
            "Settings reconciled (store=%s, file=%s)",
            "on" if ctx.settings_manager.using_store else "off",
            ctx.settings_manager.file_path,
        )
        try:
            yield
        finally:
            logger.info("Stopping api-saver HTTP server...")
            await ctx.recorder.drain()
            ctx.close()

    app = Starlette(
        routes=routes,
        middleware=middleware,
        lifespan=lifespan,
    )
    app.state.context = ctx
    return app
