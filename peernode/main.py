"""Entry point for the Peer Node service.
Loads the local file store, serves the transfer API and announces itself to the tracker.
"""

import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request

from common.http_errors import install_exception_handlers, install_request_logging
from common.logging_config import setup_logging
from peernode.config import (
    PEER_NAME,
    PEER_HOST,
    PEER_PORT,
    PEER_STORAGE_PATH,
    TRACKER_URL,
    HEARTBEAT_INTERVAL_SECONDS,
    MAX_CONCURRENT_TRANSFERS,
    MAX_UPLOAD_BYTES,
    default_advertise_addr,
)
from peernode.file_store import FileStore
from peernode.peer_client import PeerClient
from peernode.presence import PresenceService
from peernode.routes import router as transfer_router
from peernode.tracker_client import TrackerClient
from peernode.transfer_limiter import TransferLimiter

logger = setup_logging('peernode')


def create_app(
    storage_path: Optional[str] = None,
    name: Optional[str] = None,
    advertise_addr: Optional[str] = None,
    tracker_url: Optional[str] = None,
    heartbeat_interval: Optional[float] = None,
    max_concurrent_transfers: Optional[int] = None,
    max_upload_bytes: Optional[int] = None,
    clock: Callable[[], float] = time.time
) -> FastAPI:
    """
    Build a Peer Node application.

    Every argument defaults to the matching setting in peernode.config.
    An empty tracker_url runs the node standalone (no registration).
    """
    storage_path = PEER_STORAGE_PATH if storage_path is None else storage_path
    name = PEER_NAME if name is None else name
    tracker_url = TRACKER_URL if tracker_url is None else tracker_url
    heartbeat_interval = HEARTBEAT_INTERVAL_SECONDS if heartbeat_interval is None else heartbeat_interval
    max_concurrent_transfers = (
        MAX_CONCURRENT_TRANSFERS if max_concurrent_transfers is None else max_concurrent_transfers
    )
    max_upload_bytes = MAX_UPLOAD_BYTES if max_upload_bytes is None else max_upload_bytes

    file_store = FileStore(Path(storage_path), clock=clock)
    transfer_limiter = TransferLimiter(max_concurrent_transfers)

    tracker_client = None
    presence_service = None
    if tracker_url:
        tracker_client = TrackerClient(tracker_url)
        presence_service = PresenceService(
            tracker_client=tracker_client,
            name=name,
            advertise_addr=advertise_addr or default_advertise_addr(),
            interval=heartbeat_interval,
            file_store=file_store
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Peer node '{name}' starting up...")

        count = file_store.load()
        logger.info(f"Serving {count} shared file(s) from {file_store.root}")

        if presence_service:
            await presence_service.start()
        else:
            logger.info("No tracker configured - running in standalone mode")

        yield

        logger.info(f"Peer node '{name}' shutting down...")
        if presence_service:
            await presence_service.stop()
            logger.info("Presence service stopped")

    app = FastAPI(
        title="P2P Peer Node",
        description="Shares files directly with other peers",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.peer_name = name
    app.state.file_store = file_store
    app.state.transfer_limiter = transfer_limiter
    app.state.peer_client = PeerClient()
    app.state.tracker_client = tracker_client
    app.state.presence_service = presence_service
    app.state.max_upload_bytes = max_upload_bytes

    install_request_logging(app, logger)
    install_exception_handlers(app, logger)
    app.include_router(transfer_router)

    @app.get("/health")
    async def health_check(request: Request):
        """
        Health check endpoint.
        """
        presence = request.app.state.presence_service
        return {
            "status": "healthy",
            "service": "peernode",
            "name": request.app.state.peer_name,
            "tracker_state": presence.state if presence else "standalone",
            "active_transfers": request.app.state.transfer_limiter.active
        }

    return app


def main() -> None:
    """
    Start the Peer Node with uvicorn.
    """
    uvicorn.run(
        create_app(),
        host=PEER_HOST,
        port=PEER_PORT
    )


if __name__ == "__main__":
    main()
