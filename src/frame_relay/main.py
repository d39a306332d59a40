"""
FrameRelay Main Application
===========================

FastAPI entry point for the frame relay.

Producers upload length-prefixed JPEG frames over a streaming POST; the
relay decodes them and fans them out to every viewer connected to the
/view WebSocket, together with presence snapshots of which producers are
live.

Endpoints:
    GET  /                - Service information
    GET  /health          - Liveness probe
    GET  /metrics         - Relay counters
    POST /stream/{kind}   - Producer upload (kind: screen | webcam)
    WS   /view            - Viewer push channel
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from frame_relay.config import settings
from frame_relay.middleware import RequestLogMiddleware
from frame_relay.models.stream import StreamKind
from frame_relay.relay import RelayHub, TerminationReason, ViewerConnection


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_hub: Optional[RelayHub] = None
_startup_time: float = 0.0


def get_hub() -> RelayHub:
    """The process-wide relay, created on first use."""
    global _hub
    if _hub is None:
        _hub = RelayHub(settings.relay)
    return _hub


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _hub, _startup_time

    _startup_time = time.time()
    _hub = RelayHub(settings.relay)
    logger.info(f"Starting {settings.service.name} {settings.service.version}")
    logger.info(
        f"Max frame size: {settings.relay.max_frame_size} bytes, "
        f"viewer queue: {settings.relay.viewer_queue_size}"
    )

    yield

    logger.info("Shutting down gracefully...")
    _hub.shutdown()
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="FrameRelay",
    description="Live screen/webcam frame relay",
    version=settings.service.version,
    lifespan=lifespan,
)

if settings.logging.log_requests:
    app.add_middleware(RequestLogMiddleware)


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception) -> PlainTextResponse:
    """Last-resort handler: log and answer 500, keep the process alive."""
    logger.error(f"Unhandled error in {request.method} {request.url.path}: {exc}", exc_info=exc)
    return PlainTextResponse("Internal Server Error", status_code=500)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "FrameRelay",
        "name": settings.service.name,
        "version": settings.service.version,
        "status": "running",
        "stream_kinds": [kind.value for kind in StreamKind],
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe. Always 200 while the process is serving."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Relay counters for observability."""
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        **get_hub().metrics(),
    })


@app.post("/stream/{kind}")
async def upload_stream(
    kind: str,
    request: Request,
    client_id: Optional[str] = Query(default=None, alias="clientId"),
) -> Response:
    """
    Producer upload: a live body of [u32 BE length][payload] frames.

    Answers 200 with an empty body once the stream ends normally, 400 when
    clientId is missing, 404 for an unknown stream kind. A stream cut short
    by the idle timeout gets 408; any other error or disconnect gets 500.
    """
    try:
        stream_kind = StreamKind.parse(kind)
    except ValueError:
        logger.warning(f"Unknown stream kind: {kind}")
        return PlainTextResponse("Not Found", status_code=404)

    if not client_id:
        logger.warning(f"Missing clientId for /stream/{stream_kind.value}")
        return PlainTextResponse("Missing clientId", status_code=400)

    hub = get_hub()
    session = hub.open_session(client_id, stream_kind)
    try:
        reason = await session.run(request.stream())
    finally:
        hub.close_session(session)

    if reason is TerminationReason.END:
        return Response(status_code=200)
    if session.timed_out:
        return PlainTextResponse("Request Timeout", status_code=408)
    return PlainTextResponse("Stream Error", status_code=500)


# =============================================================================
# WebSocket Endpoints
# =============================================================================

async def _pump_viewer(websocket: WebSocket, viewer: ViewerConnection) -> None:
    """Write queued messages to the socket until the viewer is closed."""
    hub = get_hub()
    try:
        async for message in viewer:
            await websocket.send_text(message)
        # closed by the broadcaster (too slow, or shutdown)
        await websocket.close(code=1013)
    except Exception as e:
        logger.debug(f"Send to viewer {viewer.viewer_id} failed: {e}")
    finally:
        hub.unsubscribe_viewer(viewer)


def _handle_viewer_message(viewer: ViewerConnection, text: str) -> None:
    """Inbound viewer messages are optional; only refresh does anything."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return
    if isinstance(data, dict) and data.get("type") == "refresh":
        get_hub().broadcaster.send_snapshot(viewer)


@app.websocket("/view")
async def view_stream(websocket: WebSocket) -> None:
    """Viewer push channel: presence snapshots and frames."""
    await websocket.accept()
    hub = get_hub()
    viewer = hub.subscribe_viewer()
    sender = asyncio.create_task(
        _pump_viewer(websocket, viewer),
        name=f"viewer_{viewer.viewer_id}",
    )

    try:
        while not viewer.closed:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("text") is not None:
                _handle_viewer_message(viewer, message["text"])
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"Viewer {viewer.viewer_id} error: {e}")
    finally:
        hub.unsubscribe_viewer(viewer)
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Serve the relay with uvicorn."""
    import uvicorn

    uvicorn.run(
        "frame_relay.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run()
