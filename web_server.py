"""
web_server.py — HTTP front end for the analyzer.

Runs as an aiohttp web server in a single asyncio event loop; every request
is an independent coroutine. The pipeline and the report builder are stored
on the app at construction time, never looked up globally.

Endpoints:
  POST /analyse      multipart upload (field "image") → analysis JSON
                     ?detailed=1 adds the advice block
  POST /report       multipart upload (field "image") → text/plain report
                     as a download attachment
  GET  /health       plain-text health check (for uptime monitors / nginx)

Errors:
  400  missing/empty "image" field, or a body that is not multipart
  413  upload larger than MAX_UPLOAD_MB
  422  /report when the analysis failed (there is nothing to report on)
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from aiohttp import web

import config
from pipeline import ClassificationPipeline
from report import build_report, report_filename
from soil_result import SoilAnalysisResult

logger = logging.getLogger(__name__)

PIPELINE_KEY = web.AppKey("pipeline", ClassificationPipeline)
REPORT_KEY   = web.AppKey("report_builder", Callable[[SoilAnalysisResult], str])
MAX_BYTES_KEY = web.AppKey("max_upload_bytes", int)

_TRUE = ("1", "true", "yes")


async def read_upload(request: web.Request) -> tuple[bytes, str]:
    """Return (image bytes, declared file name) from the "image" multipart field."""
    limit = request.app[MAX_BYTES_KEY]
    if request.content_length and request.content_length > limit:
        raise web.HTTPRequestEntityTooLarge(max_size=limit, actual_size=request.content_length)
    if not request.content_type.startswith("multipart/"):
        raise web.HTTPBadRequest(text="Expected a multipart/form-data upload.")

    reader = await request.multipart()
    async for part in reader:
        if part.name != "image":
            continue
        # Streamed multipart bodies bypass client_max_size, so count here
        data = bytearray()
        while chunk := await part.read_chunk():
            data.extend(chunk)
            if len(data) > limit:
                raise web.HTTPRequestEntityTooLarge(max_size=limit, actual_size=len(data))
        if not data:
            raise web.HTTPBadRequest(text="The uploaded image is empty.")
        return bytes(data), part.filename or ""
    raise web.HTTPBadRequest(text='Missing multipart field "image".')


# ── Request handlers ───────────────────────────────────────────────────────────

async def handle_analyse(request: web.Request) -> web.Response:
    image, file_name = await read_upload(request)
    pipeline = request.app[PIPELINE_KEY]
    logger.info("Analyse request: %r (%d bytes)", file_name, len(image))

    if request.query.get("detailed", "").lower() in _TRUE:
        return web.json_response(await pipeline.analyse_detailed(image, file_name))

    result = await pipeline.analyse(image, file_name)
    return web.json_response(result.to_dict())


async def handle_report(request: web.Request) -> web.Response:
    image, file_name = await read_upload(request)
    result = await request.app[PIPELINE_KEY].analyse(image, file_name)
    if result.error:
        raise web.HTTPUnprocessableEntity(text=result.error_message, content_type="text/plain")

    text = request.app[REPORT_KEY](result)
    return web.Response(
        text=text,
        content_type="text/plain",
        charset="utf-8",
        headers={"Content-Disposition": f'attachment; filename="{report_filename(result)}"'},
    )


async def handle_health(request: web.Request) -> web.Response:
    """Health check — returns 200 OK and which backends are wired."""
    remote = request.app[PIPELINE_KEY].remote
    backend = remote.name if remote else "heuristic only"
    return web.Response(text=f"OK — {backend}", content_type="text/plain")


# ── App factory ────────────────────────────────────────────────────────────────

def build_web_app(
    pipeline: ClassificationPipeline,
    report_builder: Callable[[SoilAnalysisResult], str] = build_report,
    max_upload_bytes: Optional[int] = None,
) -> web.Application:
    limit = max_upload_bytes or config.MAX_UPLOAD_MB * 1024 * 1024
    app = web.Application(client_max_size=limit)
    app[MAX_BYTES_KEY] = limit
    app[PIPELINE_KEY] = pipeline
    app[REPORT_KEY] = report_builder
    app.router.add_post("/analyse", handle_analyse)
    app.router.add_post("/report",  handle_report)
    app.router.add_get("/health",   handle_health)
    return app


async def start_web_server(
    pipeline: ClassificationPipeline,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> web.AppRunner:
    """Start the web server. Returns runner so caller can shut it down cleanly."""
    app    = build_web_app(pipeline)
    runner = web.AppRunner(app, access_log=logger)
    await runner.setup()
    site = web.TCPSite(runner, host or config.WEB_HOST, port or config.WEB_PORT)
    await site.start()
    logger.info("🌱 Soil analyzer listening on %s:%d", host or config.WEB_HOST, port or config.WEB_PORT)
    return runner
