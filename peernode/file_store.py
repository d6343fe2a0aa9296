"""Content-addressed local storage for the files a peer shares.

Layout under the storage root:

    blobs/<hash[:2]>/<hash>   published file contents
    tmp/<uuid>.part           in-progress ingests, never visible to get()
    index.json                SharedFile metadata
"""

import os
import threading
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Iterator, List, Optional, Tuple

from common.content_hash import ContentHasher, is_content_hash
from common.constants import STREAM_PIECE_SIZE_BYTES
from common.exceptions import (
    ChecksumMismatchError,
    SharedFileNotFoundError,
    StorageIOError,
    UploadTooLargeError,
)
from common.logging_config import get_logger
from common.types import SharedFile
from peernode.file_index import FileIndex

logger = get_logger(__name__)

TEMP_SUFFIX = ".part"


class Ingest:
    """
    A single in-progress upload into the store.

    Bytes are hashed while being written to a private temp file. commit()
    publishes the file at its content-addressed path; abort() deletes the
    temp file and nothing is published. Every step is blocking file I/O,
    so async callers run each one in a worker thread.

    Usage:
        with store.ingest("report.pdf") as upload:
            for piece in pieces:
                upload.write(piece)
        shared_file = upload.result
    """

    def __init__(
        self,
        store: "FileStore",
        file_name: str,
        expected_hash: Optional[str] = None,
        max_bytes: Optional[int] = None
    ):
        self.store = store
        self.file_name = file_name
        self.expected_hash = expected_hash
        self.max_bytes = max_bytes
        self.result: Optional[SharedFile] = None
        self._tmp_path = store.tmp_dir / f"{uuid.uuid4().hex}{TEMP_SUFFIX}"
        self._file: Optional[BinaryIO] = None
        self._hasher = ContentHasher()
        self._finished = False

    @property
    def bytes_written(self) -> int:
        return self._hasher.size

    @property
    def finished(self) -> bool:
        """True once the upload was committed or aborted."""
        return self._finished

    def open(self) -> "Ingest":
        """
        Create the private temp file.

        Raises:
            StorageIOError: If the temp file cannot be created
        """
        try:
            self.store.tmp_dir.mkdir(parents=True, exist_ok=True)
            self._file = open(self._tmp_path, 'xb')
        except OSError as e:
            self._finished = True
            raise StorageIOError(f"Cannot create temporary file for '{self.file_name}': {e}") from e
        return self

    def write(self, piece: bytes) -> None:
        """
        Append a piece of the upload.

        Raises:
            UploadTooLargeError: If the upload grows past max_bytes
            StorageIOError: If the temp file cannot be written
        """
        if not piece:
            return
        if self.max_bytes is not None and self.bytes_written + len(piece) > self.max_bytes:
            raise UploadTooLargeError(
                f"Upload '{self.file_name}' exceeds limit of {self.max_bytes} bytes"
            )
        try:
            self._file.write(piece)
        except OSError as e:
            raise StorageIOError(f"Write failed for '{self.file_name}': {e}") from e
        self._hasher.update(piece)

    def commit(self) -> SharedFile:
        """
        Flush the temp file to disk and publish it.

        The temp file is gone afterwards whether or not publication succeeded.

        Returns:
            The stored SharedFile (the existing one for duplicate content)

        Raises:
            ChecksumMismatchError: If the content does not match expected_hash
            StorageIOError: If the file cannot be flushed or published
        """
        self._finished = True
        try:
            self._file.flush()
            os.fsync(self._file.fileno())
            self._file.close()
        except OSError as e:
            self._close_quietly()
            self._discard()
            raise StorageIOError(f"Cannot finish writing '{self.file_name}': {e}") from e

        try:
            self.result = self.store._publish(
                tmp_path=self._tmp_path,
                file_name=self.file_name,
                content_hash=self._hasher.hexdigest(),
                size_bytes=self.bytes_written,
                expected_hash=self.expected_hash
            )
        finally:
            self._discard()
        return self.result

    def abort(self, reason: Optional[BaseException] = None) -> None:
        """Delete the temp file. Does nothing once the upload is finished."""
        if self._finished:
            return
        self._finished = True
        self._close_quietly()
        self._discard()
        cause = f"{type(reason).__name__}: {reason}" if reason is not None else "aborted"
        logger.warning(
            f"Discarded partial upload '{self.file_name}' after {self.bytes_written} bytes: {cause}"
        )

    def __enter__(self) -> "Ingest":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.abort(exc)
        else:
            self.commit()
        return False

    def _close_quietly(self) -> None:
        if self._file is None:
            return
        try:
            self._file.close()
        except OSError as e:
            logger.debug(f"Closing temp file {self._tmp_path} failed: {e}")

    def _discard(self) -> None:
        try:
            self._tmp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to remove temp file {self._tmp_path}: {e}")


class FileStore:
    """
    Per-peer content-addressed store of shared files.

    Concurrent ingests write to distinct temp files; publication and index
    updates are serialised by a lock that is never held while streaming.
    """

    def __init__(
        self,
        root: Path,
        piece_size: int = STREAM_PIECE_SIZE_BYTES,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            root: Storage directory owned by this peer
            piece_size: Size of pieces yielded when reading (default 64KB)
            clock: Source of epoch timestamps for stored_at
        """
        self.root = Path(root)
        self.blobs_dir = self.root / "blobs"
        self.tmp_dir = self.root / "tmp"
        self.index_path = self.root / "index.json"
        self.piece_size = piece_size
        self._clock = clock
        self._index = FileIndex()
        self._lock = threading.Lock()

    def blob_path(self, content_hash: str) -> Path:
        return self.blobs_dir / content_hash[:2] / content_hash

    def load(self) -> int:
        """
        Prepare the storage directory and load the index.

        Removes temp files left by interrupted ingests, falls back to
        rebuilding the index from the blob directory when index.json is
        missing or unreadable, and reconciles index entries with blobs on disk.

        Returns:
            Number of shared files available
        """
        self.blobs_dir.mkdir(parents=True, exist_ok=True)
        self.tmp_dir.mkdir(parents=True, exist_ok=True)

        removed = 0
        for leftover in self.tmp_dir.glob(f"*{TEMP_SUFFIX}"):
            leftover.unlink(missing_ok=True)
            removed += 1
        if removed:
            logger.info(f"Removed {removed} partial upload(s) from previous run")

        with self._lock:
            try:
                loaded = self._index.load_from_disk(self.index_path)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load index from disk: {e}")
                loaded = False

            if not loaded:
                self._index.rebuild(self._scan_blobs())
            else:
                self._reconcile()

            self._save_index()
            return len(self._index)

    def ingest(
        self,
        file_name: str,
        expected_hash: Optional[str] = None,
        max_bytes: Optional[int] = None
    ) -> Ingest:
        """
        Start an incremental upload. See Ingest.

        Args:
            file_name: Name supplied by the uploader
            expected_hash: If given, publication fails unless the content matches
            max_bytes: Optional upload size limit
        """
        return Ingest(self, file_name, expected_hash=expected_hash, max_bytes=max_bytes)

    def put(
        self,
        file_name: str,
        pieces: Iterable[bytes],
        max_bytes: Optional[int] = None
    ) -> SharedFile:
        """
        Store a file from an iterable of byte pieces.

        Returns:
            The stored SharedFile (the existing one if the content was already stored)
        """
        with self.ingest(file_name, max_bytes=max_bytes) as upload:
            for piece in pieces:
                upload.write(piece)
        return upload.result

    def resolve(self, identifier: str) -> SharedFile:
        """
        Resolve an identifier by content hash, else by first matching file name.

        Raises:
            SharedFileNotFoundError: If nothing matches
        """
        with self._lock:
            shared_file = self._index.get(identifier) if is_content_hash(identifier) else None
            if shared_file is None:
                shared_file = self._index.find_by_name(identifier)
        if shared_file is None:
            raise SharedFileNotFoundError(f"No shared file matches '{identifier}'")
        return shared_file

    def get(self, identifier: str) -> Tuple[SharedFile, Iterator[bytes]]:
        """
        Open a shared file for sequential reading.

        Returns:
            Tuple of (metadata, iterator of byte pieces)

        Raises:
            SharedFileNotFoundError: If nothing matches or the blob is gone
            StorageIOError: If the blob cannot be opened
        """
        shared_file = self.resolve(identifier)
        path = self.blob_path(shared_file.content_hash)
        try:
            handle = open(path, 'rb')
        except FileNotFoundError:
            logger.error(f"Blob missing for indexed file {shared_file.content_hash}")
            raise SharedFileNotFoundError(f"No shared file matches '{identifier}'")
        except OSError as e:
            raise StorageIOError(f"Cannot open '{shared_file.file_name}': {e}") from e

        return shared_file, self._read_pieces(handle)

    def list(self) -> List[SharedFile]:
        """Return metadata for all shared files in ingestion order."""
        with self._lock:
            return self._index.all()

    def _read_pieces(self, handle: BinaryIO) -> Iterator[bytes]:
        try:
            while True:
                piece = handle.read(self.piece_size)
                if not piece:
                    break
                yield piece
        finally:
            handle.close()

    def _publish(
        self,
        tmp_path: Path,
        file_name: str,
        content_hash: str,
        size_bytes: int,
        expected_hash: Optional[str]
    ) -> SharedFile:
        if expected_hash is not None and content_hash != expected_hash:
            raise ChecksumMismatchError(
                f"Content of '{file_name}' hashed to {content_hash}, expected {expected_hash}"
            )

        with self._lock:
            existing = self._index.get(content_hash)
            if existing is not None:
                logger.info(f"Content {content_hash} already shared as '{existing.file_name}'")
                return existing

            blob_path = self.blob_path(content_hash)
            try:
                blob_path.parent.mkdir(parents=True, exist_ok=True)
                os.replace(tmp_path, blob_path)
            except OSError as e:
                raise StorageIOError(f"Cannot publish '{file_name}': {e}") from e

            shared_file = SharedFile(
                content_hash=content_hash,
                file_name=file_name,
                size_bytes=size_bytes,
                stored_at=self._clock()
            )
            self._index.add(shared_file)
            self._save_index()

        logger.info(f"Stored '{file_name}' ({size_bytes} bytes) as {content_hash}")
        return shared_file

    def _save_index(self) -> None:
        # A stale index is repaired from the blob directory on the next load.
        try:
            self._index.save_to_disk(self.index_path)
        except OSError as e:
            logger.error(f"Failed to persist file index: {e}")

    def _scan_blobs(self) -> List[Tuple[str, int, float]]:
        blobs = []
        for path in self.blobs_dir.glob("*/*"):
            if path.is_file() and is_content_hash(path.name):
                stat = path.stat()
                blobs.append((path.name, stat.st_size, stat.st_mtime))
        return blobs

    def _reconcile(self) -> None:
        on_disk = {blob[0]: blob for blob in self._scan_blobs()}

        for shared_file in self._index.all():
            if shared_file.content_hash not in on_disk:
                logger.warning(f"Dropping index entry without blob: {shared_file.content_hash}")
                self._index.remove(shared_file.content_hash)

        for content_hash, size_bytes, stored_at in on_disk.values():
            if content_hash not in self._index:
                logger.warning(f"Indexing unlisted blob {content_hash}")
                self._index.add(SharedFile(
                    content_hash=content_hash,
                    file_name=content_hash,
                    size_bytes=size_bytes,
                    stored_at=stored_at
                ))
