"""FastAPI application exposing the viewer websocket and a liveness probe."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Mapping, Optional

from fastapi import FastAPI, Response, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from ..monitoring.logger import get_logger
from .state import ViewerChannel

if TYPE_CHECKING:
    from ..ingestion.event_listener import LaunchMonitor

logger = get_logger(__name__)


async def _drain_outbox(websocket: WebSocket, channel: ViewerChannel) -> None:
    while True:
        text = await channel.outbox.get()
        await websocket.send_text(text)


def _frame_text(message: Mapping[str, Any]) -> Optional[str]:
    """Text of a viewer frame; binary frames are read as UTF-8."""

    text = message.get("text")
    if text is not None:
        return text
    data = message.get("bytes")
    if data is None:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def create_app(monitor: "LaunchMonitor", manage_lifecycle: bool = True) -> FastAPI:
    """Build the relay app; its lifespan starts and stops *monitor*."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            await monitor.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await monitor.stop()

    app = FastAPI(title="Solana Launch Monitor", version="1.0.0", lifespan=lifespan)
    origins = monitor.config.server.allowed_origins
    if origins:
        if "*" in origins:
            logger.warning("CORS is open to every origin")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials="*" not in origins,
            allow_methods=["GET"],
            allow_headers=["*"],
        )

    @app.get("/healthz")
    async def healthz() -> Response:
        return Response(status_code=200)

    @app.websocket("/")
    async def viewer(websocket: WebSocket) -> None:
        await websocket.accept()
        hub = monitor.hub
        channel = hub.register()
        for message in monitor.welcome_messages():
            hub.send(channel, message)
        writer = asyncio.create_task(_drain_outbox(websocket, channel), name=f"{channel.id}-writer")
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = _frame_text(message)
                if text is None:
                    logger.warning("Dropping unreadable frame from %s", channel.id)
                    continue
                monitor.submit_viewer_message(channel, text)
        except WebSocketDisconnect:
            pass
        finally:
            hub.unregister(channel)
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)

    return app


__all__ = ["create_app"]
