"""Tracker directory API routes."""

from typing import List

from fastapi import APIRouter, Depends, Request

from common.logging_config import get_logger
from tracker.registry import RegistryStore
from tracker.schemas import (
    ErrorResponse,
    PeerNameRequest,
    PeerResponse,
    PeerSummary,
    RegisterRequest,
    UnregisterResponse,
)

logger = get_logger(__name__)

router = APIRouter(tags=["Peers"])


def get_registry(request: Request) -> RegistryStore:
    """Dependency returning the registry owned by the running app."""
    return request.app.state.registry


@router.post(
    "/register",
    response_model=PeerResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def register_peer(
    payload: RegisterRequest,
    registry: RegistryStore = Depends(get_registry)
):
    """
    Register a peer under a unique name.

    Returns the authoritative stored record, so clients do not need a
    follow-up /list call to learn their registered address.

    Raises:
        - 400: Malformed body, empty name or invalid host:port address
        - 409: Name held by a peer that is still live
    """
    record = registry.register(payload.name, payload.address)
    return PeerResponse.from_record(record)


@router.get("/list", response_model=List[PeerSummary])
async def list_peers(registry: RegistryStore = Depends(get_registry)):
    """
    Return the peer directory in registration order.
    """
    return [PeerSummary(name=record.name, address=record.address) for record in registry.list()]


@router.post(
    "/unregister_peer",
    response_model=UnregisterResponse,
    responses={400: {"model": ErrorResponse}},
)
async def unregister_peer(
    payload: PeerNameRequest,
    registry: RegistryStore = Depends(get_registry)
):
    """
    Remove a peer from the directory.

    Unknown names also answer 200: the caller's goal (peer absent) holds either way.
    """
    removed = registry.unregister(payload.peer)
    return UnregisterResponse(peer=payload.peer, removed=removed)


@router.post(
    "/heartbeat",
    response_model=PeerResponse,
    responses={404: {"model": ErrorResponse}},
)
async def heartbeat(
    payload: PeerNameRequest,
    registry: RegistryStore = Depends(get_registry)
):
    """
    Refresh a peer's last_seen timestamp.

    Raises:
        - 404: Peer unknown or already evicted; it must register again
    """
    record = registry.refresh(payload.peer)
    return PeerResponse.from_record(record)
