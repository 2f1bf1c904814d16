"""Main entry point for the Parley application.

``app`` is the FastAPI application. ``asgi_app`` wraps it with the
Socket.IO server and is what uvicorn should serve.
"""

from __future__ import annotations

import logging

import socketio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from parley import __version__
from parley.api.v1 import (
    auth_router,
    chats_router,
    logs_router,
    messages_router,
    polls_router,
    tags_router,
    users_router,
)
from parley.core.logging import configure_logging
from parley.core.settings import settings
from parley.db.session import SessionLocal, create_tables
from parley.realtime.gateway import RealtimeGateway
from parley.services.errors import ChatError

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=f"{settings.app_name} API",
    description="Realtime team chat with groups, polls and presence",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(auth_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(chats_router, prefix="/api/v1")
app.include_router(messages_router, prefix="/api/v1")
app.include_router(polls_router, prefix="/api/v1")
app.include_router(logs_router, prefix="/api/v1")
app.include_router(tags_router, prefix="/api/v1")


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Map service errors onto HTTP status codes without leaking internals."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Socket.IO server sharing the process with the HTTP API
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.cors_origins_for_socket,
    ping_timeout=settings.socket_ping_timeout,
    ping_interval=settings.socket_ping_interval,
)
app.state.gateway = RealtimeGateway(sio, SessionLocal)


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    if settings.auto_create_tables:
        create_tables()
    gateway: RealtimeGateway = app.state.gateway
    await gateway.dispatcher.rearm_pending()
    logger.info("%s %s started", settings.app_name, __version__)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    gateway: RealtimeGateway = app.state.gateway
    gateway.dispatcher.stop()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": f"{settings.app_name} API",
        "version": __version__,
        "docs": "/docs",
        "socket": "/socket.io",
    }


asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("parley.main:asgi_app", host="0.0.0.0", port=8000, reload=settings.debug)
