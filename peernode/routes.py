"""Peer Transfer API routes: share, download, list and fetch."""

import mimetypes
from typing import Any, Dict, List
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from common.constants import CONTENT_HASH_HEADER, MULTIPART_OVERHEAD_BYTES
from common.exceptions import (
    ChecksumMismatchError,
    InvalidArgumentError,
    PeerNotFoundError,
    PeerUnavailableError,
    SharedFileNotFoundError,
    UploadTooLargeError,
)
from common.logging_config import get_logger
from common.types import SharedFile
from peernode.file_store import FileStore
from peernode.multipart_upload import UPLOAD_FIELD_NAME, MultipartUpload
from peernode.peer_client import PeerClient
from peernode.schemas import (
    ErrorResponse,
    FetchRequest,
    ListSharedFilesResponse,
    SharedFileResponse,
)
from peernode.transfer_limiter import TransferLimiter

logger = get_logger(__name__)

router = APIRouter(tags=["Transfers"])


def get_file_store(request: Request) -> FileStore:
    """Dependency returning the node's file store."""
    return request.app.state.file_store


def get_transfer_limiter(request: Request) -> TransferLimiter:
    """Dependency returning the node's transfer limiter."""
    return request.app.state.transfer_limiter


def get_peer_client(request: Request) -> PeerClient:
    """Dependency returning the client used for peer-to-peer fetches."""
    return request.app.state.peer_client


def _content_disposition(file_name: str) -> str:
    fallback = file_name.encode("ascii", "replace").decode("ascii").replace('"', "'")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name, safe='')}"


async def _announce(request: Request, shared_file: SharedFile) -> None:
    presence = request.app.state.presence_service
    if presence is not None:
        await presence.announce(shared_file)


async def _holder_addresses(request: Request, identifier: str) -> List[Dict[str, Any]]:
    tracker_client = request.app.state.tracker_client
    if tracker_client is None:
        raise InvalidArgumentError("No tracker configured; fetch by 'address' or 'peer' instead")
    holders = [
        holder for holder in await tracker_client.find_file_peers(identifier)
        if holder.get("name") != request.app.state.peer_name
    ]
    if not holders:
        raise SharedFileNotFoundError(f"No registered peer serves '{identifier}'")
    return holders


@router.post(
    "/share",
    response_model=SharedFileResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {
                "multipart/form-data": {
                    "schema": {
                        "type": "object",
                        "required": [UPLOAD_FIELD_NAME],
                        "properties": {UPLOAD_FIELD_NAME: {"type": "string", "format": "binary"}},
                    }
                }
            },
        }
    },
)
async def share_file(
    request: Request,
    store: FileStore = Depends(get_file_store),
    limiter: TransferLimiter = Depends(get_transfer_limiter)
):
    """
    Share a file with other peers.

    The multipart body is streamed into the store as it arrives; the size
    limit and the transfer slot apply before and while it is read.

    Parameters:
        - file: File to share (multipart/form-data)

    Returns:
        - hash: SHA-256 content hash, the identifier for /download
        - file_name, size_bytes, stored_at

    Raises:
        - 400: Missing file, malformed body, or upload over the size limit
        - 500: Storage failure (no partial file is kept)
        - 503: Too many concurrent transfers
    """
    max_upload_bytes = request.app.state.max_upload_bytes
    content_length = request.headers.get("content-length", "")
    if (
        max_upload_bytes is not None
        and content_length.isascii()
        and content_length.isdigit()
        and int(content_length) > max_upload_bytes + MULTIPART_OVERHEAD_BYTES
    ):
        raise UploadTooLargeError(
            f"Upload of {content_length} bytes exceeds limit of {max_upload_bytes} bytes"
        )

    upload = MultipartUpload(store, request.headers.get("content-type"), max_bytes=max_upload_bytes)
    with limiter.slot():
        shared_file = await upload.receive(request)

    await _announce(request, shared_file)
    return SharedFileResponse.from_shared_file(shared_file)


@router.get(
    "/download/{identifier:path}",
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def download_file(
    identifier: str,
    store: FileStore = Depends(get_file_store),
    limiter: TransferLimiter = Depends(get_transfer_limiter)
):
    """
    Stream a shared file by content hash or, failing that, by file name.

    Returns:
        - StreamingResponse with file data and X-Content-SHA256 header

    Raises:
        - 404: No file matches the identifier
        - 503: Too many concurrent transfers
    """
    limiter.acquire()
    try:
        shared_file, pieces = store.get(identifier)
    except BaseException:
        limiter.release()
        raise

    media_type = mimetypes.guess_type(shared_file.file_name)[0] or "application/octet-stream"

    return StreamingResponse(
        limiter.guard_stream(pieces),
        media_type=media_type,
        headers={
            "Content-Disposition": _content_disposition(shared_file.file_name),
            "Content-Length": str(shared_file.size_bytes),
            CONTENT_HASH_HEADER: shared_file.content_hash,
        }
    )


@router.get("/files", response_model=ListSharedFilesResponse)
async def list_files(store: FileStore = Depends(get_file_store)):
    """
    List metadata of every file this peer shares, in ingestion order.
    """
    return ListSharedFilesResponse(
        files=[SharedFileResponse.from_shared_file(shared_file) for shared_file in store.list()]
    )


@router.post(
    "/fetch",
    response_model=SharedFileResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def fetch_file(
    payload: FetchRequest,
    request: Request,
    store: FileStore = Depends(get_file_store),
    limiter: TransferLimiter = Depends(get_transfer_limiter),
    peer_client: PeerClient = Depends(get_peer_client)
):
    """
    Download a file from another peer into this peer's store, so it is shared from here too.

    Parameters:
        - identifier: Content hash or file name on the remote peer
        - address: Remote peer host:port, or
        - peer: Remote peer name, resolved through the tracker, or
        - neither: ask the tracker which peers serve the file and try them in order

    Raises:
        - 400: Both address and peer given, malformed address, or no tracker to ask
        - 404: Peer unknown to the tracker, file not on the remote peer, or no holder
        - 502: Remote peer or tracker unreachable, or content hash mismatch
        - 503: Too many concurrent transfers
    """
    if payload.address and payload.peer:
        raise InvalidArgumentError("Provide at most one of 'address' or 'peer'")

    max_bytes = request.app.state.max_upload_bytes

    if payload.address or payload.peer:
        address = payload.address
        if payload.peer:
            tracker_client = request.app.state.tracker_client
            if tracker_client is None:
                raise InvalidArgumentError("No tracker configured; fetch by address instead")
            entry = await tracker_client.find_peer(payload.peer)
            if entry is None:
                raise PeerNotFoundError(f"Peer '{payload.peer}' is not in the tracker directory")
            address = entry["address"]

        with limiter.slot():
            shared_file = await peer_client.fetch(address, payload.identifier, store, max_bytes=max_bytes)
    else:
        holders = await _holder_addresses(request, payload.identifier)
        with limiter.slot():
            for i, holder in enumerate(holders):
                try:
                    shared_file = await peer_client.fetch(
                        holder["address"], holder["hash"], store, max_bytes=max_bytes
                    )
                    break
                except (PeerUnavailableError, ChecksumMismatchError, SharedFileNotFoundError) as e:
                    if i == len(holders) - 1:
                        raise
                    logger.warning(f"Holder {holder['name']} failed for '{payload.identifier}': {e}; trying next")

    await _announce(request, shared_file)
    return SharedFileResponse.from_shared_file(shared_file)
