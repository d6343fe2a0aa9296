"""Pydantic schemas for Tracker API requests and responses."""

from pydantic import BaseModel, Field

from common.types import FileHolding, PeerRecord


class RegisterRequest(BaseModel):
    """Request model for peer registration."""
    name: str
    address: str


class PeerResponse(BaseModel):
    """Response model for a stored peer record."""
    name: str
    address: str
    registered_at: str
    last_seen: str
    status: str

    @classmethod
    def from_record(cls, record: PeerRecord) -> "PeerResponse":
        return cls(**record.to_dict())


class PeerSummary(BaseModel):
    """Directory entry returned by /list."""
    name: str
    address: str


class PeerNameRequest(BaseModel):
    """Request model for unregister and heartbeat."""
    peer: str


class UnregisterResponse(BaseModel):
    """Response model for peer removal."""
    peer: str
    removed: bool


class RegisterFileRequest(BaseModel):
    """Request model for announcing a shared file."""
    peer: str
    hash: str
    file_name: str
    size_bytes: int = Field(ge=0)


class FileHoldingResponse(BaseModel):
    """Response model for a stored file announcement."""
    peer: str
    hash: str
    file_name: str
    size_bytes: int
    announced_at: str

    @classmethod
    def from_holding(cls, holding: FileHolding) -> "FileHoldingResponse":
        return cls(**holding.to_dict())


class UnregisterFileRequest(BaseModel):
    """Request model for withdrawing a file; file is a content hash or file name."""
    peer: str
    file: str


class UnregisterFileResponse(BaseModel):
    """Response model for file withdrawal."""
    peer: str
    file: str
    removed: int


class FilePeerResponse(BaseModel):
    """A registered peer serving a file, as returned by /file_peers."""
    name: str
    address: str
    hash: str
    file_name: str
    size_bytes: int


class ErrorResponse(BaseModel):
    """Response model for errors."""
    detail: str
    code: str
