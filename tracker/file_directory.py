"""Tracker-side directory of which peers serve which files."""

import threading
import time
from collections import OrderedDict
from typing import Callable, List, Tuple

from common.content_hash import is_content_hash
from common.exceptions import InvalidArgumentError, PeerNotFoundError
from common.logging_config import get_logger
from common.types import FileHolding, PeerRecord
from tracker.registry import RegistryStore

logger = get_logger(__name__)

MAX_FILE_NAME_LENGTH = 255


class FileDirectory:
    """
    Thread-safe index of file announcements, keyed by (peer, content hash).

    Holdings only exist for registered peers: announcing requires a record in
    the registry, and every removal from the registry (unregister, sweep,
    re-join) drops that peer's holdings. Both paths take the directory lock,
    so an announce racing an eviction either lands before the cleanup or is
    rejected.
    """

    def __init__(self, registry: RegistryStore, clock: Callable[[], float] = time.time):
        """
        Args:
            registry: Peer registry used to validate announcers and resolve addresses
            clock: Source of epoch timestamps
        """
        self.registry = registry
        self._clock = clock
        self._holdings: "OrderedDict[Tuple[str, str], FileHolding]" = OrderedDict()
        self._lock = threading.Lock()
        registry.add_removal_listener(self.remove_peers)

    def announce(self, peer: str, content_hash: str, file_name: str, size_bytes: int) -> FileHolding:
        """
        Record that a registered peer serves a file.

        Announcing the same content again refreshes the entry.

        Raises:
            InvalidArgumentError: Malformed hash, name or size
            PeerNotFoundError: The peer is not registered
        """
        peer = peer.strip()
        if not is_content_hash(content_hash):
            raise InvalidArgumentError(f"'{content_hash}' is not a SHA-256 hex digest")
        file_name = file_name.strip()
        if not file_name or len(file_name) > MAX_FILE_NAME_LENGTH:
            raise InvalidArgumentError(f"File name must be 1 to {MAX_FILE_NAME_LENGTH} characters")
        if size_bytes < 0:
            raise InvalidArgumentError("File size must not be negative")

        with self._lock:
            if self.registry.get(peer) is None:
                raise PeerNotFoundError(f"Peer '{peer}' is not registered")
            holding = FileHolding(
                peer=peer,
                content_hash=content_hash,
                file_name=file_name,
                size_bytes=size_bytes,
                announced_at=self._clock()
            )
            self._holdings.pop((peer, content_hash), None)
            self._holdings[(peer, content_hash)] = holding

        logger.info(f"Peer {peer} serves '{file_name}' ({content_hash})")
        return holding

    def withdraw(self, peer: str, identifier: str) -> int:
        """
        Remove a peer's holdings matching a content hash or file name.

        Returns:
            Number of holdings removed (0 for unknown peer or file)
        """
        peer = peer.strip()
        with self._lock:
            keys = [
                key for key, holding in self._holdings.items()
                if holding.peer == peer and self._matches(holding, identifier)
            ]
            for key in keys:
                del self._holdings[key]

        if keys:
            logger.info(f"Peer {peer} withdrew '{identifier}'")
        return len(keys)

    def holders(self, identifier: str) -> List[Tuple[FileHolding, PeerRecord]]:
        """
        Find registered peers serving a file, in announcement order.

        A 64-hex identifier matches by content hash; if nothing matches, or for
        any other identifier, it matches by file name.

        Returns:
            (holding, peer record) pairs for peers still in the registry
        """
        with self._lock:
            holdings = list(self._holdings.values())

        matches = []
        if is_content_hash(identifier):
            matches = [h for h in holdings if h.content_hash == identifier]
        if not matches:
            matches = [h for h in holdings if h.file_name == identifier]

        result = []
        for holding in matches:
            record = self.registry.get(holding.peer)
            if record is not None:
                result.append((holding, record))
        return result

    def remove_peers(self, names: List[str]) -> None:
        """Drop every holding of the given peers."""
        gone = set(names)
        with self._lock:
            keys = [key for key in self._holdings if key[0] in gone]
            for key in keys:
                del self._holdings[key]

        if keys:
            logger.info(f"Dropped {len(keys)} file holding(s) of removed peer(s): {', '.join(sorted(gone))}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._holdings)

    @staticmethod
    def _matches(holding: FileHolding, identifier: str) -> bool:
        return holding.content_hash == identifier or holding.file_name == identifier
