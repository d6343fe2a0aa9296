"""SHA-256 content hashes: the identity of every shared file."""

import hashlib
import re

_SHA256_HEX = re.compile(r"^[0-9a-f]{64}$")


def is_content_hash(value: str) -> bool:
    """Return True if value looks like a lowercase SHA-256 hex digest."""
    return bool(_SHA256_HEX.match(value))


class ContentHasher:
    """Running SHA-256 and byte count over the pieces of one file."""

    def __init__(self):
        self._sha256 = hashlib.sha256()
        self.size = 0

    def update(self, piece: bytes) -> None:
        self._sha256.update(piece)
        self.size += len(piece)

    def hexdigest(self) -> str:
        return self._sha256.hexdigest()
