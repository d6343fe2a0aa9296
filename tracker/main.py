"""Entry point for the Tracker service."""

import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request

from common.http_errors import install_exception_handlers, install_request_logging
from common.logging_config import setup_logging
from tracker.config import (
    TRACKER_HOST,
    TRACKER_PORT,
    PEER_TTL_SECONDS,
    SWEEP_INTERVAL_SECONDS,
    validate_liveness_settings,
)
from tracker.file_directory import FileDirectory
from tracker.file_routes import router as file_router
from tracker.registry import RegistryStore
from tracker.routes import router as peer_router
from tracker.sweeper import LivenessSweeper

logger = setup_logging('tracker')


def create_app(
    ttl_seconds: Optional[float] = None,
    sweep_interval_seconds: Optional[float] = None,
    clock: Callable[[], float] = time.time
) -> FastAPI:
    """
    Build the Tracker application with its own registry and sweeper.

    Args:
        ttl_seconds: Peer liveness TTL (default: PEER_TTL_SECONDS)
        sweep_interval_seconds: Time between sweeps (default: SWEEP_INTERVAL_SECONDS)
        clock: Source of epoch timestamps shared by registry and sweeper

    Raises:
        ValueError: If the TTL is not larger than the sweep interval
    """
    ttl_seconds = PEER_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    sweep_interval_seconds = SWEEP_INTERVAL_SECONDS if sweep_interval_seconds is None else sweep_interval_seconds
    validate_liveness_settings(ttl_seconds, sweep_interval_seconds)

    registry = RegistryStore(ttl_seconds=ttl_seconds, clock=clock)
    file_directory = FileDirectory(registry, clock=clock)
    sweeper = LivenessSweeper(
        registry=registry,
        ttl_seconds=ttl_seconds,
        interval_seconds=sweep_interval_seconds,
        clock=clock
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Tracker service starting up...")
        await sweeper.start()
        yield
        logger.info("Tracker service shutting down...")
        await sweeper.stop()

    app = FastAPI(
        title="P2P Tracker",
        description="Directory of online peers for direct peer-to-peer file sharing",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.registry = registry
    app.state.sweeper = sweeper
    app.state.file_directory = file_directory

    install_request_logging(app, logger)
    install_exception_handlers(app, logger)
    app.include_router(peer_router)
    app.include_router(file_router)

    @app.get("/health")
    async def health_check(request: Request):
        """
        Health check endpoint.
        """
        return {
            "status": "healthy",
            "service": "tracker",
            "peers": len(request.app.state.registry),
            "file_holdings": len(request.app.state.file_directory)
        }

    return app


app = create_app()


def main() -> None:
    """
    Start the Tracker with uvicorn.
    """
    uvicorn.run(
        "tracker.main:app",
        host=TRACKER_HOST,
        port=TRACKER_PORT
    )


if __name__ == "__main__":
    main()
