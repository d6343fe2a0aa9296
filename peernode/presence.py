"""Keeps a Peer Node registered and alive in the Tracker directory."""

import asyncio
from typing import Optional

from common.exceptions import (
    InvalidArgumentError,
    P2PException,
    PeerConflictError,
    PeerNotFoundError,
    TrackerUnavailableError,
)
from common.logging_config import get_logger
from common.types import SharedFile
from peernode.file_store import FileStore
from peernode.tracker_client import TrackerClient

logger = get_logger(__name__)

STATE_UNREGISTERED = "unregistered"
STATE_REGISTERING = "registering"
STATE_ACTIVE = "active"


class PresenceService:
    """
    Registers the node with the tracker and sends periodic heartbeats.

    State as observed by the tracker: unregistered -> registering -> active,
    back to registering when a heartbeat reports the peer was evicted, and
    unregistered after stop().
    """

    def __init__(
        self,
        tracker_client: TrackerClient,
        name: str,
        advertise_addr: str,
        interval: float,
        file_store: Optional[FileStore] = None
    ):
        """
        Args:
            tracker_client: Client for the tracker API
            name: Peer name to register under
            advertise_addr: host:port at which this node's transfer API is reachable
            interval: Seconds between heartbeats (must be below the tracker TTL)
            file_store: Store whose files are announced after each registration
        """
        self.tracker_client = tracker_client
        self.name = name
        self.advertise_addr = advertise_addr
        self.interval = interval
        self.file_store = file_store
        self.state = STATE_UNREGISTERED
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the registration/heartbeat background task."""
        if self._running:
            return
        self._running = True
        self.state = STATE_REGISTERING
        self._task = asyncio.create_task(self._presence_loop())
        logger.info(f"Presence service started - name={self.name}, addr={self.advertise_addr}")

    async def stop(self) -> None:
        """Stop heartbeating and unregister from the tracker."""
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        try:
            await self.tracker_client.unregister(self.name)
            logger.info(f"Unregistered '{self.name}' from tracker")
        except Exception as e:
            logger.warning(f"Unregister from tracker failed: {e}")
        self.state = STATE_UNREGISTERED

    async def tick(self) -> None:
        """
        Perform one presence step: register if not active, else heartbeat.
        """
        if self.state != STATE_ACTIVE:
            await self._register()
            return

        try:
            await self.tracker_client.heartbeat(self.name)
            logger.debug(f"Heartbeat for '{self.name}' succeeded")
        except PeerNotFoundError:
            logger.warning(f"Tracker evicted '{self.name}', registering again")
            self.state = STATE_REGISTERING
            await self._register()

    async def _register(self) -> None:
        self.state = STATE_REGISTERING
        try:
            record = await self.tracker_client.register(self.name, self.advertise_addr)
        except PeerConflictError as e:
            logger.warning(f"Registration conflict for '{self.name}': {e}; will retry")
            return
        except InvalidArgumentError as e:
            logger.error(f"Tracker rejected registration of '{self.name}': {e}")
            return

        self.state = STATE_ACTIVE
        logger.info(f"Registered with tracker as '{record.get('name')}' @ {record.get('address')}")

        if self.file_store is not None:
            for shared_file in self.file_store.list():
                await self.announce(shared_file)

    async def announce(self, shared_file: SharedFile) -> bool:
        """
        Tell the tracker this peer serves shared_file.

        Failures are logged, not raised: the next registration announces
        every stored file again.

        Returns:
            True if the tracker recorded the announcement
        """
        if self.state != STATE_ACTIVE:
            return False
        try:
            await self.tracker_client.register_file(self.name, shared_file)
        except P2PException as e:
            logger.warning(f"Announcing '{shared_file.file_name}' to tracker failed: {e}")
            return False
        logger.debug(f"Announced '{shared_file.file_name}' ({shared_file.content_hash})")
        return True

    async def _presence_loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except TrackerUnavailableError as e:
                logger.warning(f"Tracker unavailable: {e}")
            except Exception as e:
                logger.error(f"Presence update failed: {e}", exc_info=True)

            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
