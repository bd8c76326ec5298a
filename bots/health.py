"""Minimal HTTP liveness endpoint for the hosting platform."""

from __future__ import annotations

import logging

from aiohttp import web

log = logging.getLogger(__name__)

HEALTH_TEXT = "Bot is running\n"


async def handle_health(_request: web.Request) -> web.Response:
    return web.Response(text=HEALTH_TEXT, content_type="text/plain")


def build_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/", handle_health)
    app.router.add_get("/healthz", handle_health)
    return app


async def start_health_server(port: int) -> web.AppRunner:
    runner = web.AppRunner(build_app())
    await runner.setup()
    site = web.TCPSite(runner, host="0.0.0.0", port=port)
    await site.start()
    log.info("HTTP health server listening on %s", port)
    return runner


__all__ = ["build_app", "handle_health", "start_health_server"]
