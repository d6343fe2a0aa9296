"""Pydantic schemas for Peer Transfer API requests and responses."""

from typing import List, Optional

from pydantic import BaseModel

from common.types import SharedFile


class SharedFileResponse(BaseModel):
    """Response model for a stored file; hash is the download identifier."""
    hash: str
    file_name: str
    size_bytes: int
    stored_at: str

    @classmethod
    def from_shared_file(cls, shared_file: SharedFile) -> "SharedFileResponse":
        return cls(**shared_file.to_dict())


class ListSharedFilesResponse(BaseModel):
    """Response model for the local file listing."""
    files: List[SharedFileResponse]


class FetchRequest(BaseModel):
    """Request model for fetching a file from another peer.

    At most one of address or peer may be set. Peer names are resolved
    through the tracker directory; with neither, the tracker is asked which
    peers serve the file.
    """
    identifier: str
    address: Optional[str] = None
    peer: Optional[str] = None


class ErrorResponse(BaseModel):
    """Response model for errors."""
    detail: str
    code: str
