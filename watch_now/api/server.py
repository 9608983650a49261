"""FastAPI app factory and a background uvicorn server for the status API."""

from __future__ import annotations

import logging
import socket
import threading

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import settings
from ..core.state import StateStore
from .status_routes import status_router

logger = logging.getLogger(__name__)


def create_app(store: StateStore, sse_heartbeat: float | None = None) -> FastAPI:
    app = FastAPI(
        title="watch-now - Development Monitor",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.state.store = store
    app.state.sse_heartbeat = sse_heartbeat if sse_heartbeat is not None else settings.sse_heartbeat

    app.include_router(status_router, prefix="/api")
    return app


class ApiServer:
    """Runs uvicorn in a daemon thread on a socket bound up front.

    Binding before starting means ``port`` is known immediately, even when
    an ephemeral port (0) was requested.
    """

    def __init__(self, app: FastAPI, host: str = "127.0.0.1", port: int = 0) -> None:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        self._sock = socket.socket(family, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind((host, port))
        self.host = host
        self.port: int = self._sock.getsockname()[1]

        config = uvicorn.Config(app, log_level="warning", lifespan="off")
        self._server = uvicorn.Server(config)
        self._thread: threading.Thread | None = None

    @property
    def url(self) -> str:
        host = "localhost" if self.host in ("0.0.0.0", "127.0.0.1", "::") else self.host
        return f"http://{host}:{self.port}"

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [self._sock]},
            name="watch-now-api",
            daemon=True,
        )
        self._thread.start()
        logger.info("API server started on %s", self.url)

    def stop(self, timeout: float = 5.0) -> None:
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._sock.close()
        logger.info("API server stopped")
