"""In-memory registry of online peers with uniqueness and liveness eviction."""

import threading
import time
from collections import OrderedDict
from dataclasses import replace
from typing import Callable, List, Optional

from common.address import normalize_address
from common.constants import MAX_PEER_NAME_LENGTH
from common.exceptions import InvalidArgumentError, PeerConflictError, PeerNotFoundError
from common.logging_config import get_logger
from common.types import PeerRecord

logger = get_logger(__name__)


def validate_peer_name(name: str) -> str:
    """
    Trim and validate a peer name.

    Args:
        name: Name supplied by the registering client

    Returns:
        Trimmed name

    Raises:
        InvalidArgumentError: If the name is empty, too long or not printable
    """
    if not isinstance(name, str):
        raise InvalidArgumentError("Peer name must be a string")
    name = name.strip()
    if not name:
        raise InvalidArgumentError("Peer name must not be empty")
    if len(name) > MAX_PEER_NAME_LENGTH:
        raise InvalidArgumentError(f"Peer name exceeds {MAX_PEER_NAME_LENGTH} characters")
    if not name.isprintable():
        raise InvalidArgumentError("Peer name contains non-printable characters")
    return name


class RegistryStore:
    """
    Thread-safe directory of active peers, keyed by name.

    Records are kept in registration order. The lock guards only dictionary
    operations and is never held across I/O, so listing and registering
    callers contend for a bounded critical section.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time):
        """
        Args:
            ttl_seconds: Maximum staleness before a record may be replaced or swept
            clock: Source of epoch timestamps (injectable for tests)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._peers: "OrderedDict[str, PeerRecord]" = OrderedDict()
        self._lock = threading.Lock()
        self._removal_listeners: List[Callable[[List[str]], None]] = []

    def add_removal_listener(self, listener: Callable[[List[str]], None]) -> None:
        """
        Subscribe to record removals.

        The listener is called, outside the registry lock, with the names whose
        record was unregistered, swept, or replaced by a re-join.
        """
        self._removal_listeners.append(listener)

    def register(self, name: str, address: str) -> PeerRecord:
        """
        Register a peer under a unique name.

        A record whose last_seen is older than the TTL but has not been swept
        yet is replaced as a re-join and moves to the end of the order.

        Returns:
            The stored record

        Raises:
            InvalidArgumentError: If name or address is malformed
            PeerConflictError: If a live peer already holds the name
        """
        name = validate_peer_name(name)
        address = normalize_address(address)

        with self._lock:
            now = self._clock()
            existing = self._peers.get(name)
            if existing is not None:
                if now - existing.last_seen <= self.ttl_seconds:
                    raise PeerConflictError(f"Peer name '{name}' is already registered")
                del self._peers[name]
                rejoined = True
            else:
                rejoined = False

            record = PeerRecord(name=name, address=address, registered_at=now, last_seen=now)
            self._peers[name] = record

        if rejoined:
            logger.info(f"Peer re-joined over stale record: {name} @ {address}")
            self._notify_removed([name])
        else:
            logger.info(f"Peer registered: {name} @ {address}")
        return record

    def refresh(self, name: str) -> PeerRecord:
        """
        Update last_seen for a registered peer (heartbeat).

        Raises:
            PeerNotFoundError: If no record exists for the name
        """
        name = name.strip() if isinstance(name, str) else name
        with self._lock:
            existing = self._peers.get(name)
            if existing is None:
                raise PeerNotFoundError(f"Peer '{name}' is not registered")
            record = replace(existing, last_seen=self._clock())
            self._peers[name] = record

        logger.debug(f"Heartbeat from {name}")
        return record

    def list(self) -> List[PeerRecord]:
        """Return a point-in-time snapshot of all records in registration order."""
        with self._lock:
            return list(self._peers.values())

    def get(self, name: str) -> Optional[PeerRecord]:
        """Return the record registered under name, or None."""
        with self._lock:
            return self._peers.get(name)

    def unregister(self, name: str) -> bool:
        """
        Remove a peer. Removing an unknown name is not an error.

        Returns:
            True if a record was removed, False if the name was unknown
        """
        name = name.strip() if isinstance(name, str) else name
        with self._lock:
            removed = self._peers.pop(name, None) is not None

        if removed:
            logger.info(f"Peer unregistered: {name}")
            self._notify_removed([name])
        else:
            logger.debug(f"Unregister for unknown peer ignored: {name}")
        return removed

    def sweep(self, now: float, ttl: float) -> int:
        """
        Remove every record whose last_seen is more than ttl seconds before now.

        Returns:
            Number of evicted records
        """
        with self._lock:
            stale = [name for name, record in self._peers.items() if now - record.last_seen > ttl]
            for name in stale:
                del self._peers[name]

        if stale:
            logger.info(f"Evicted {len(stale)} stale peer(s): {', '.join(stale)}")
            self._notify_removed(stale)
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._peers)

    def _notify_removed(self, names: List[str]) -> None:
        for listener in self._removal_listeners:
            listener(names)
