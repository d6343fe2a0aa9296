"""HTTP client for a Peer Node's calls to the Tracker."""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp

from common.constants import TRACKER_TIMEOUT_SECONDS
from common.exceptions import (
    InvalidArgumentError,
    PeerConflictError,
    PeerNotFoundError,
    TrackerUnavailableError,
)
from common.logging_config import get_logger
from common.types import SharedFile

logger = get_logger(__name__)


class TrackerClient:
    """
    aiohttp client for the Tracker directory API.

    Maps tracker status codes back to the shared exception taxonomy so
    callers can tell conflicts and bad input from transient failures.
    """

    def __init__(self, base_url: str, timeout: float = TRACKER_TIMEOUT_SECONDS):
        """
        Args:
            base_url: Tracker base URL (e.g., 'http://127.0.0.1:9500')
            timeout: Total timeout per request in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def register(self, name: str, address: str) -> Dict[str, Any]:
        """
        Register this peer.

        Returns:
            The stored peer record as returned by the tracker

        Raises:
            PeerConflictError: Name held by a live peer
            InvalidArgumentError: Tracker rejected name or address
            TrackerUnavailableError: Network failure or unexpected status
        """
        return await self._post("/register", {"name": name, "address": address})

    async def heartbeat(self, name: str) -> Dict[str, Any]:
        """
        Refresh this peer's liveness.

        Raises:
            PeerNotFoundError: Tracker no longer knows the peer
            TrackerUnavailableError: Network failure or unexpected status
        """
        return await self._post("/heartbeat", {"peer": name})

    async def unregister(self, name: str) -> bool:
        """
        Remove this peer from the directory.

        Returns:
            True if the tracker removed a record
        """
        data = await self._post("/unregister_peer", {"peer": name})
        return bool(data.get("removed"))

    async def list_peers(self) -> List[Dict[str, str]]:
        """Return the tracker's peer directory."""
        return await self._request("GET", "/list")

    async def find_peer(self, name: str) -> Optional[Dict[str, str]]:
        """Look up a peer's directory entry by name."""
        for peer in await self.list_peers():
            if peer.get("name") == name:
                return peer
        return None

    async def register_file(self, name: str, shared_file: SharedFile) -> Dict[str, Any]:
        """
        Announce that this peer serves a file.

        Raises:
            PeerNotFoundError: Tracker no longer knows the peer
            TrackerUnavailableError: Network failure or unexpected status
        """
        return await self._post("/register_file", {
            "peer": name,
            "hash": shared_file.content_hash,
            "file_name": shared_file.file_name,
            "size_bytes": shared_file.size_bytes,
        })

    async def find_file_peers(self, identifier: str) -> List[Dict[str, Any]]:
        """Return registered peers serving a file, by content hash or file name."""
        return await self._request("GET", "/file_peers", params={"file": identifier})

    async def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        return await self._request("POST", path, json=payload)

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(
                    method,
                    url,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    **kwargs
                ) as resp:
                    if resp.status == 200:
                        return await resp.json()
                    detail = await self._error_detail(resp)
        except asyncio.TimeoutError as e:
            raise TrackerUnavailableError(f"Tracker request {method} {path} timed out") from e
        except aiohttp.ClientError as e:
            raise TrackerUnavailableError(f"Tracker request {method} {path} failed: {e}") from e

        if resp.status == 409:
            raise PeerConflictError(detail)
        if resp.status == 404:
            raise PeerNotFoundError(detail)
        if resp.status == 400:
            raise InvalidArgumentError(detail)
        raise TrackerUnavailableError(f"Tracker returned {resp.status} for {method} {path}: {detail}")

    @staticmethod
    async def _error_detail(resp: aiohttp.ClientResponse) -> str:
        try:
            data = await resp.json(content_type=None)
            return str(data.get("detail", data))
        except (ValueError, aiohttp.ContentTypeError, AttributeError):
            return await resp.text()
