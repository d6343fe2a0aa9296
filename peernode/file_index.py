"""In-memory index: content_hash -> SharedFile metadata, persisted as JSON."""

import json
import os
from collections import OrderedDict
from dataclasses import asdict
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from common.logging_config import get_logger
from common.types import SharedFile

logger = get_logger(__name__)


class FileIndex:
    """
    Index of shared files in ingestion order.

    Not thread-safe on its own; FileStore serialises access.
    """

    def __init__(self):
        self._files: "OrderedDict[str, SharedFile]" = OrderedDict()

    def add(self, shared_file: SharedFile) -> None:
        self._files[shared_file.content_hash] = shared_file

    def get(self, content_hash: str) -> Optional[SharedFile]:
        return self._files.get(content_hash)

    def remove(self, content_hash: str) -> bool:
        return self._files.pop(content_hash, None) is not None

    def find_by_name(self, file_name: str) -> Optional[SharedFile]:
        """
        Return the first file, in ingestion order, stored under file_name.
        """
        for shared_file in self._files.values():
            if shared_file.file_name == file_name:
                return shared_file
        return None

    def all(self) -> List[SharedFile]:
        return list(self._files.values())

    def __contains__(self, content_hash: str) -> bool:
        return content_hash in self._files

    def __len__(self) -> int:
        return len(self._files)

    def load_from_disk(self, path: Path) -> bool:
        """
        Load index entries from a JSON file.

        Args:
            path: Path to JSON index file

        Returns:
            True if loaded, False if the file doesn't exist

        Raises:
            ValueError: If the file is corrupted
        """
        if not path.exists():
            logger.warning(f"Index file not found at {path}")
            return False

        with open(path, 'r') as f:
            data = json.load(f)

        try:
            entries = [SharedFile(**entry) for entry in data.get('files', [])]
        except (AttributeError, TypeError) as e:
            raise ValueError(f"Malformed index file {path}: {e}")

        self._files.clear()
        for entry in entries:
            self._files[entry.content_hash] = entry

        logger.info(f"Loaded {len(self._files)} shared files from index file")
        return True

    def save_to_disk(self, path: Path) -> None:
        """
        Persist index to a JSON file, replacing the previous file atomically.

        Raises:
            OSError: If write operation fails
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {'files': [asdict(entry) for entry in self._files.values()]}

        tmp_path = path.with_suffix('.json.tmp')
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)

        logger.debug(f"Saved {len(self._files)} shared files to index file")

    def rebuild(self, blobs: Iterable[Tuple[str, int, float]]) -> int:
        """
        Rebuild index from stored blobs.
        WARNING: Original file names are lost; the content hash is used instead.

        Args:
            blobs: (content_hash, size_bytes, stored_at) for each blob on disk

        Returns:
            Number of files added to index
        """
        logger.info("Rebuilding index from blob directory...")

        self._files.clear()
        for content_hash, size_bytes, stored_at in sorted(blobs, key=lambda blob: blob[2]):
            self._files[content_hash] = SharedFile(
                content_hash=content_hash,
                file_name=content_hash,
                size_bytes=size_bytes,
                stored_at=stored_at
            )

        logger.info(f"Rebuilt index with {len(self._files)} files")
        return len(self._files)
