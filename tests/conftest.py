"""Shared pytest fixtures for all tests."""

import pytest

from peernode.file_store import FileStore
from tracker.registry import RegistryStore

TEST_TTL_SECONDS = 30.0


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """
    Create a controllable clock.

    Returns:
        FakeClock starting at a fixed epoch
    """
    return FakeClock()


@pytest.fixture
def registry(clock):
    """
    Create an empty registry driven by the fake clock.

    Returns:
        RegistryStore with a 30 second TTL
    """
    return RegistryStore(ttl_seconds=TEST_TTL_SECONDS, clock=clock)


@pytest.fixture
def file_store(tmp_path, clock):
    """
    Create a loaded file store in a temporary directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        FileStore rooted at tmp_path / 'shared'
    """
    store = FileStore(tmp_path / 'shared', piece_size=4, clock=clock)
    store.load()
    return store

