"""Tracker file directory routes: which peers serve which files."""

from typing import List

from fastapi import APIRouter, Depends, Query, Request

from common.logging_config import get_logger
from tracker.file_directory import FileDirectory
from tracker.schemas import (
    ErrorResponse,
    FileHoldingResponse,
    FilePeerResponse,
    RegisterFileRequest,
    UnregisterFileRequest,
    UnregisterFileResponse,
)

logger = get_logger(__name__)

router = APIRouter(tags=["Files"])


def get_file_directory(request: Request) -> FileDirectory:
    """Dependency returning the file directory owned by the running app."""
    return request.app.state.file_directory


@router.post(
    "/register_file",
    response_model=FileHoldingResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def register_file(
    payload: RegisterFileRequest,
    directory: FileDirectory = Depends(get_file_directory)
):
    """
    Announce that a registered peer serves a file.

    Raises:
        - 400: Malformed hash, file name or size
        - 404: Peer not registered (register first, then announce)
    """
    holding = directory.announce(payload.peer, payload.hash, payload.file_name, payload.size_bytes)
    return FileHoldingResponse.from_holding(holding)


@router.post("/unregister_file", response_model=UnregisterFileResponse)
async def unregister_file(
    payload: UnregisterFileRequest,
    directory: FileDirectory = Depends(get_file_directory)
):
    """
    Withdraw a peer's announcement of a file, by content hash or file name.

    Unknown peers or files answer 200 with removed=0.
    """
    removed = directory.withdraw(payload.peer, payload.file)
    return UnregisterFileResponse(peer=payload.peer, file=payload.file, removed=removed)


@router.get("/file_peers", response_model=List[FilePeerResponse])
async def file_peers(
    file: str = Query(..., min_length=1, description="Content hash or file name"),
    directory: FileDirectory = Depends(get_file_directory)
):
    """
    List registered peers serving a file, in announcement order.

    An unknown file yields an empty list.
    """
    return [
        FilePeerResponse(
            name=record.name,
            address=record.address,
            hash=holding.content_hash,
            file_name=holding.file_name,
            size_bytes=holding.size_bytes
        )
        for holding, record in directory.holders(file)
    ]
