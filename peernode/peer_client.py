"""Client for fetching shared files directly from another Peer Node."""

import asyncio
from typing import Optional
from urllib.parse import quote

import aiohttp

from common.address import normalize_address
from common.content_hash import is_content_hash
from common.constants import (
    CONTENT_HASH_HEADER,
    PEER_TRANSFER_TIMEOUT_SECONDS,
    STREAM_PIECE_SIZE_BYTES,
)
from common.exceptions import (
    ChecksumMismatchError,
    PeerUnavailableError,
    SharedFileNotFoundError,
)
from common.logging_config import get_logger
from common.types import SharedFile
from peernode.file_store import FileStore

logger = get_logger(__name__)


class PeerClient:
    """
    Downloads a file from a remote peer's transfer API into the local store.

    The body is streamed piece by piece into FileStore.ingest, so the local
    copy only becomes visible after the whole body arrived and its hash
    matched.
    """

    def __init__(
        self,
        timeout: float = PEER_TRANSFER_TIMEOUT_SECONDS,
        piece_size: int = STREAM_PIECE_SIZE_BYTES
    ):
        self.timeout = timeout
        self.piece_size = piece_size

    async def fetch(
        self,
        address: str,
        identifier: str,
        store: FileStore,
        max_bytes: Optional[int] = None
    ) -> SharedFile:
        """
        Fetch a file from the peer at address and store it locally.

        Args:
            address: Remote peer host:port
            identifier: Content hash or file name on the remote peer
            store: Local store receiving the file
            max_bytes: Optional size limit for the download

        Returns:
            The locally stored SharedFile

        Raises:
            InvalidArgumentError: If address is malformed
            SharedFileNotFoundError: Remote peer does not have the file
            ChecksumMismatchError: Received bytes do not match the advertised hash
            PeerUnavailableError: Connection failure or unexpected status
        """
        address = normalize_address(address)
        url = f"http://{address}/download/{quote(identifier, safe='')}"
        expected_hash = identifier if is_content_hash(identifier) else None

        logger.info(f"Fetching '{identifier}' from {address}")
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url,
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    if resp.status == 404:
                        raise SharedFileNotFoundError(f"Peer {address} has no file matching '{identifier}'")
                    if resp.status != 200:
                        raise PeerUnavailableError(f"Peer {address} returned {resp.status} for '{identifier}'")

                    advertised_hash = resp.headers.get(CONTENT_HASH_HEADER)
                    if expected_hash and advertised_hash and advertised_hash != expected_hash:
                        raise ChecksumMismatchError(
                            f"Peer {address} advertised {advertised_hash} for requested hash {expected_hash}"
                        )
                    expected_hash = expected_hash or advertised_hash

                    file_name = identifier
                    if resp.content_disposition and resp.content_disposition.filename:
                        file_name = resp.content_disposition.filename

                    shared_file = await self._receive(resp, store, file_name, expected_hash, max_bytes)

        except asyncio.TimeoutError as e:
            raise PeerUnavailableError(f"Fetching '{identifier}' from {address} timed out") from e
        except aiohttp.ClientError as e:
            raise PeerUnavailableError(f"Fetching '{identifier}' from {address} failed: {e}") from e

        logger.info(f"Fetched '{shared_file.file_name}' ({shared_file.size_bytes} bytes) from {address}")
        return shared_file

    async def _receive(
        self,
        resp: aiohttp.ClientResponse,
        store: FileStore,
        file_name: str,
        expected_hash: Optional[str],
        max_bytes: Optional[int]
    ) -> SharedFile:
        # Ingest steps are blocking file I/O; each runs in the default executor.
        loop = asyncio.get_running_loop()
        upload = store.ingest(file_name, expected_hash=expected_hash, max_bytes=max_bytes)
        await loop.run_in_executor(None, upload.open)
        try:
            async for piece in resp.content.iter_chunked(self.piece_size):
                await loop.run_in_executor(None, upload.write, piece)
            return await loop.run_in_executor(None, upload.commit)
        except BaseException as e:
            upload.abort(e)
            raise
