"""Shared data type definitions (PeerRecord, SharedFile, FileHolding)."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

PEER_STATUS_ACTIVE = "active"


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class PeerRecord:
    """
    Directory entry for a registered peer.

    Records are immutable; the registry replaces them on refresh.
    """
    name: str
    address: str
    registered_at: float
    last_seen: float
    status: str = PEER_STATUS_ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "registered_at": _iso(self.registered_at),
            "last_seen": _iso(self.last_seen),
            "status": self.status,
        }


@dataclass(frozen=True)
class SharedFile:
    """
    Metadata for a file held in a peer's content-addressed store.
    """
    content_hash: str
    file_name: str
    size_bytes: int
    stored_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.content_hash,
            "file_name": self.file_name,
            "size_bytes": self.size_bytes,
            "stored_at": _iso(self.stored_at),
        }


@dataclass(frozen=True)
class FileHolding:
    """
    Tracker directory entry: one peer announcing that it serves one file.
    """
    peer: str
    content_hash: str
    file_name: str
    size_bytes: int
    announced_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "peer": self.peer,
            "hash": self.content_hash,
            "file_name": self.file_name,
            "size_bytes": self.size_bytes,
            "announced_at": _iso(self.announced_at),
        }
