"""Unit tests for the tracker file directory."""

import pytest

from common.exceptions import InvalidArgumentError, PeerNotFoundError
from tracker.file_directory import FileDirectory

TEST_TTL_SECONDS = 30.0
HASH_A = 'a' * 64
HASH_B = 'b' * 64


@pytest.fixture
def directory(registry, clock):
    """Create a file directory over the shared registry with alice and bob registered."""
    registry.register('alice', '127.0.0.1:8001')
    registry.register('bob', '127.0.0.1:8002')
    return FileDirectory(registry, clock=clock)


class TestAnnounce:
    """Test announcing holdings."""

    def test_announce_records_holding(self, directory, clock):
        holding = directory.announce('alice', HASH_A, 'a.txt', 3)

        assert holding.peer == 'alice'
        assert holding.content_hash == HASH_A
        assert holding.file_name == 'a.txt'
        assert holding.size_bytes == 3
        assert holding.announced_at == clock.now
        assert len(directory) == 1

    def test_unregistered_peer_cannot_announce(self, directory):
        with pytest.raises(PeerNotFoundError):
            directory.announce('ghost', HASH_A, 'a.txt', 3)

        assert len(directory) == 0

    @pytest.mark.parametrize('content_hash,file_name,size_bytes', [
        ('not-a-hash', 'a.txt', 3),
        ('A' * 64, 'a.txt', 3),
        (HASH_A, '   ', 3),
        (HASH_A, 'n' * 256, 3),
        (HASH_A, 'a.txt', -1),
    ])
    def test_malformed_announce_rejected(self, directory, content_hash, file_name, size_bytes):
        with pytest.raises(InvalidArgumentError):
            directory.announce('alice', content_hash, file_name, size_bytes)

    def test_reannounce_replaces_and_moves_to_end(self, directory, clock):
        directory.announce('alice', HASH_A, 'a.txt', 3)
        directory.announce('bob', HASH_A, 'a.txt', 3)
        clock.advance(5)

        directory.announce('alice', HASH_A, 'renamed.txt', 3)

        holders = directory.holders(HASH_A)
        assert [h.peer for h, _ in holders] == ['bob', 'alice']
        assert holders[1][0].file_name == 'renamed.txt'
        assert holders[1][0].announced_at == clock.now
        assert len(directory) == 2


class TestHolders:
    """Test looking up who serves a file."""

    def test_by_hash_returns_records_in_announce_order(self, directory):
        directory.announce('bob', HASH_A, 'a.txt', 3)
        directory.announce('alice', HASH_A, 'copy-of-a.txt', 3)
        directory.announce('alice', HASH_B, 'b.txt', 5)

        holders = directory.holders(HASH_A)

        assert [(h.peer, r.address) for h, r in holders] == [
            ('bob', '127.0.0.1:8002'),
            ('alice', '127.0.0.1:8001'),
        ]

    def test_by_name(self, directory):
        directory.announce('alice', HASH_A, 'a.txt', 3)
        directory.announce('bob', HASH_B, 'b.txt', 5)

        holders = directory.holders('b.txt')

        assert [(h.peer, h.content_hash) for h, _ in holders] == [('bob', HASH_B)]

    def test_hash_shaped_name_falls_back_to_name(self, directory):
        directory.announce('alice', HASH_A, HASH_B, 3)

        holders = directory.holders(HASH_B)

        assert [h.content_hash for h, _ in holders] == [HASH_A]

    def test_unknown_file_is_empty(self, directory):
        assert directory.holders('missing.txt') == []


class TestWithdraw:
    """Test explicit withdrawal."""

    def test_withdraw_by_hash_and_name(self, directory):
        directory.announce('alice', HASH_A, 'a.txt', 3)
        directory.announce('alice', HASH_B, 'b.txt', 5)
        directory.announce('bob', HASH_A, 'a.txt', 3)

        assert directory.withdraw('alice', HASH_A) == 1
        assert directory.withdraw('alice', 'b.txt') == 1

        assert [h.peer for h, _ in directory.holders(HASH_A)] == ['bob']
        assert directory.holders(HASH_B) == []

    def test_withdraw_unknown_is_zero(self, directory):
        assert directory.withdraw('alice', 'missing.txt') == 0
        assert directory.withdraw('ghost', HASH_A) == 0


class TestRegistryCleanup:
    """Holdings disappear with the peer record."""

    def test_unregister_drops_holdings(self, directory, registry):
        directory.announce('alice', HASH_A, 'a.txt', 3)
        directory.announce('bob', HASH_A, 'a.txt', 3)

        registry.unregister('alice')

        assert [h.peer for h, _ in directory.holders(HASH_A)] == ['bob']
        assert len(directory) == 1

    def test_sweep_drops_holdings(self, directory, registry, clock):
        directory.announce('alice', HASH_A, 'a.txt', 3)
        directory.announce('bob', HASH_B, 'b.txt', 5)
        clock.advance(TEST_TTL_SECONDS + 1)
        registry.refresh('bob')

        registry.sweep(clock.now, TEST_TTL_SECONDS)

        assert directory.holders(HASH_A) == []
        assert len(directory) == 1

    def test_rejoin_drops_old_holdings(self, directory, registry, clock):
        directory.announce('alice', HASH_A, 'a.txt', 3)
        clock.advance(TEST_TTL_SECONDS + 1)

        registry.register('alice', '127.0.0.1:9001')

        assert directory.holders(HASH_A) == []
        directory.announce('alice', HASH_A, 'a.txt', 3)
        assert directory.holders(HASH_A)[0][1].address == '127.0.0.1:9001'
