"""Unit tests for the tracker registry store."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from common.exceptions import InvalidArgumentError, PeerConflictError, PeerNotFoundError
from tracker.registry import RegistryStore, validate_peer_name

TEST_TTL_SECONDS = 30.0


class TestRegister:
    """Test registration, uniqueness and re-join."""

    def test_fresh_name_is_registered(self, registry, clock):
        record = registry.register("alice", "127.0.0.1:8001")

        assert record.name == "alice"
        assert record.address == "127.0.0.1:8001"
        assert record.registered_at == clock.now
        assert record.last_seen == clock.now
        assert record.status == "active"
        assert registry.get("alice") == record

    def test_duplicate_live_name_conflicts(self, registry, clock):
        registry.register("alice", "127.0.0.1:8001")
        clock.advance(TEST_TTL_SECONDS - 1)

        with pytest.raises(PeerConflictError):
            registry.register("alice", "127.0.0.1:9999")

        assert registry.get("alice").address == "127.0.0.1:8001"

    def test_duplicate_with_same_address_still_conflicts(self, registry):
        registry.register("alice", "127.0.0.1:8001")

        with pytest.raises(PeerConflictError):
            registry.register("alice", "127.0.0.1:8001")

    def test_stale_record_is_replaced_as_rejoin(self, registry, clock):
        registry.register("alice", "127.0.0.1:8001")
        registry.register("bob", "127.0.0.1:8002")
        clock.advance(TEST_TTL_SECONDS + 1)
        registry.refresh("bob")

        record = registry.register("alice", "127.0.0.1:9999")

        assert record.address == "127.0.0.1:9999"
        assert record.registered_at == clock.now
        assert [r.name for r in registry.list()] == ["bob", "alice"]

    def test_name_is_trimmed(self, registry):
        record = registry.register("  alice  ", "127.0.0.1:8001")

        assert record.name == "alice"
        with pytest.raises(PeerConflictError):
            registry.register("alice", "127.0.0.1:8002")

    @pytest.mark.parametrize("name", ["", "   ", "a" * 65, "bad\nname", "tab\tname"])
    def test_invalid_names_rejected(self, registry, name):
        with pytest.raises(InvalidArgumentError):
            registry.register(name, "127.0.0.1:8001")
        assert len(registry) == 0

    @pytest.mark.parametrize("address", ["", "127.0.0.1", "127.0.0.1:", ":8001", "host:0", "host:70000", "::1:8001"])
    def test_invalid_addresses_rejected(self, registry, address):
        with pytest.raises(InvalidArgumentError):
            registry.register("alice", address)
        assert len(registry) == 0

    def test_validate_peer_name_rejects_non_string(self):
        with pytest.raises(InvalidArgumentError):
            validate_peer_name(None)


class TestRefresh:
    """Test heartbeat refresh."""

    def test_refresh_updates_last_seen_only(self, registry, clock):
        original = registry.register("alice", "127.0.0.1:8001")
        clock.advance(10)

        refreshed = registry.refresh("alice")

        assert refreshed.last_seen == original.last_seen + 10
        assert refreshed.registered_at == original.registered_at
        assert original.last_seen != refreshed.last_seen

    def test_refresh_unknown_peer(self, registry):
        with pytest.raises(PeerNotFoundError):
            registry.refresh("ghost")

    def test_refresh_keeps_registration_order(self, registry):
        registry.register("alice", "127.0.0.1:8001")
        registry.register("bob", "127.0.0.1:8002")

        registry.refresh("alice")

        assert [r.name for r in registry.list()] == ["alice", "bob"]


class TestListAndUnregister:
    """Test listing snapshots and idempotent removal."""

    def test_list_empty(self, registry):
        assert registry.list() == []

    def test_list_is_registration_order(self, registry):
        for i, name in enumerate(["carol", "alice", "bob"]):
            registry.register(name, f"127.0.0.1:{8001 + i}")

        assert [r.name for r in registry.list()] == ["carol", "alice", "bob"]

    def test_list_is_a_snapshot(self, registry):
        registry.register("alice", "127.0.0.1:8001")
        snapshot = registry.list()

        registry.register("bob", "127.0.0.1:8002")
        registry.unregister("alice")

        assert [r.name for r in snapshot] == ["alice"]

    def test_unregister_then_register_again(self, registry):
        registry.register("alice", "127.0.0.1:8001")

        assert registry.unregister("alice") is True
        assert "alice" not in [r.name for r in registry.list()]

        record = registry.register("alice", "127.0.0.1:9999")
        assert record.address == "127.0.0.1:9999"

    def test_unregister_is_idempotent(self, registry):
        registry.register("alice", "127.0.0.1:8001")

        assert registry.unregister("alice") is True
        assert registry.unregister("alice") is False
        assert registry.unregister("never-seen") is False


class TestSweep:
    """Test TTL eviction."""

    def test_sweep_evicts_only_stale_records(self, registry, clock):
        registry.register("alice", "127.0.0.1:8001")
        clock.advance(20)
        registry.register("bob", "127.0.0.1:8002")
        clock.advance(15)

        evicted = registry.sweep(clock.now, TEST_TTL_SECONDS)

        assert evicted == 1
        assert [r.name for r in registry.list()] == ["bob"]

    def test_sweep_boundary_is_exclusive(self, registry, clock):
        registry.register("alice", "127.0.0.1:8001")
        clock.advance(TEST_TTL_SECONDS)

        assert registry.sweep(clock.now, TEST_TTL_SECONDS) == 0
        assert len(registry) == 1

    def test_refreshed_peer_survives_sweep(self, registry, clock):
        registry.register("alice", "127.0.0.1:8001")
        clock.advance(25)
        registry.refresh("alice")
        clock.advance(25)

        assert registry.sweep(clock.now, TEST_TTL_SECONDS) == 0

    def test_sweep_empty_registry(self, registry, clock):
        assert registry.sweep(clock.now, TEST_TTL_SECONDS) == 0


class TestConcurrency:
    """Test registry behaviour under concurrent callers."""

    def test_concurrent_distinct_registrations_are_all_listed(self):
        registry = RegistryStore(ttl_seconds=TEST_TTL_SECONDS)
        names = [f"peer-{i}" for i in range(200)]

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(lambda item: registry.register(item[1], f"10.0.0.1:{9000 + item[0]}"), enumerate(names)))

        listed = [r.name for r in registry.list()]
        assert len(listed) == len(names)
        assert sorted(listed) == sorted(names)

    def test_concurrent_same_name_has_single_winner(self):
        registry = RegistryStore(ttl_seconds=TEST_TTL_SECONDS)
        barrier = threading.Barrier(8)
        outcomes = []
        outcomes_lock = threading.Lock()

        def attempt(port):
            barrier.wait()
            try:
                registry.register("alice", f"127.0.0.1:{port}")
                result = "created"
            except PeerConflictError:
                result = "conflict"
            with outcomes_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt, args=(8001 + i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("created") == 1
        assert outcomes.count("conflict") == 7
        assert len(registry.list()) == 1

    def test_list_during_writes_has_no_duplicates(self):
        registry = RegistryStore(ttl_seconds=TEST_TTL_SECONDS)
        stop = threading.Event()
        duplicates = []

        def reader():
            while not stop.is_set():
                names = [r.name for r in registry.list()]
                if len(names) != len(set(names)):
                    duplicates.append(names)

        reader_thread = threading.Thread(target=reader)
        reader_thread.start()
        try:
            for i in range(300):
                registry.register(f"peer-{i % 20}-{i}", "10.0.0.1:9000")
                if i % 3 == 0:
                    registry.unregister(f"peer-{i % 20}-{i}")
        finally:
            stop.set()
            reader_thread.join()

        assert duplicates == []
        assert len(registry) == 200
