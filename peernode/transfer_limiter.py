"""Bounds the number of concurrent transfers a peer node serves."""

import threading
from contextlib import contextmanager
from typing import Iterator

from common.exceptions import ResourceExhaustedError
from common.logging_config import get_logger

logger = get_logger(__name__)


class TransferLimiter:
    """
    Counting limiter that rejects instead of queueing.

    Transfers beyond the bound fail fast with ResourceExhaustedError so the
    client can retry later, keeping memory and file descriptors bounded.
    """

    def __init__(self, max_transfers: int):
        if max_transfers < 1:
            raise ValueError(f"max_transfers must be at least 1, got {max_transfers}")
        self.max_transfers = max_transfers
        self._active = 0
        self._lock = threading.Lock()

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    def acquire(self) -> None:
        """
        Take a transfer slot.

        Raises:
            ResourceExhaustedError: If all slots are taken
        """
        with self._lock:
            if self._active >= self.max_transfers:
                raise ResourceExhaustedError(
                    f"Transfer limit of {self.max_transfers} concurrent transfers reached"
                )
            self._active += 1

    def release(self) -> None:
        with self._lock:
            if self._active == 0:
                logger.warning("Transfer slot released more times than acquired")
                return
            self._active -= 1

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold a transfer slot for the duration of the with-block."""
        self.acquire()
        try:
            yield
        finally:
            self.release()

    def guard_stream(self, pieces: Iterator[bytes]) -> "GuardedStream":
        """Wrap a response stream that owns an already-acquired slot."""
        return GuardedStream(self, pieces)


class GuardedStream:
    """
    Iterator that releases its transfer slot exactly once.

    Release happens when the stream is exhausted, raises, is closed, or is
    garbage collected without ever being iterated (client gone before the
    body was sent).
    """

    def __init__(self, limiter: TransferLimiter, pieces: Iterator[bytes]):
        self._limiter = limiter
        self._pieces = iter(pieces)
        self._released = False

    def __iter__(self) -> "GuardedStream":
        return self

    def __next__(self) -> bytes:
        try:
            return next(self._pieces)
        except BaseException:
            self.close()
            raise

    def close(self) -> None:
        if self._released:
            return
        self._released = True
        close = getattr(self._pieces, "close", None)
        if close is not None:
            close()
        self._limiter.release()

    def __del__(self):
        self.close()
