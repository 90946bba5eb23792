"""
HTTP monitoring endpoint for a running gateway.

Handles:
- GET /health: liveness, connection state and player identity
- GET /stats: gateway counters (sessions, messages, quota usage, step time)

The server runs in a daemon thread next to the simulation loop and only
reads the gateway's counters.
"""

import logging
import threading
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .gateway import PlayerGateway

logger = logging.getLogger(__name__)


def create_monitor_app(gateway: PlayerGateway) -> FastAPI:
    """
    Create FastAPI application exposing a gateway's state.

    Args:
        gateway: Gateway to report on

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(title="Player Gateway Monitor")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "connected": gateway.connected,
            "player_id": gateway.player_id,
            "team": gateway.team.value,
            "port": gateway.port,
        }

    @app.get("/stats")
    async def stats():
        """Gateway statistics."""
        return gateway.get_stats()

    return app


class MonitorServer:
    """uvicorn server for the monitoring app, running in a background thread."""

    def __init__(self, gateway: PlayerGateway, port: int, host: str = "0.0.0.0"):
        """
        Initialize monitor server.

        Args:
            gateway: Gateway to report on
            port: HTTP port
            host: Bind address
        """
        self.host = host
        self.port = port
        self.app = create_monitor_app(gateway)
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(target=self._server.run, daemon=True)
        self._thread.start()
        logger.info(f"Monitor available on http://{self.host}:{self.port}/health")

    def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        self._server = None
