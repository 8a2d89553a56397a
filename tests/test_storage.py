"""
Universal Storage Tests

Tiers are exercised with an injected millisecond clock so expiry can be
tested without sleeping.
"""

import json
from typing import List, Optional

import pytest

from storefront_search.storage.backends import (
    DirectoryBackend,
    MemoryBackend,
    SessionBackend,
    StorageBackend,
    StorageBackendError,
    StorageCorruptEntryError,
    StorageQuotaExceededError,
)
from storefront_search.storage.universal import (
    ADDRESS_KEY,
    CHECKOUT_STATE_KEY,
    CUSTOMER_KEY,
    PERSISTENT_CHECKOUT_KEY,
    UniversalStorage,
)


MINUTE_MS = 60 * 1000


class MsClock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance_minutes(self, minutes: float) -> None:
        self.now += int(minutes * MINUTE_MS)


class BrokenBackend(StorageBackend):
    """A tier that raises on every call, like disabled browser storage."""

    name = "durable"

    def __init__(self) -> None:
        self.calls = 0

    def _fail(self):
        self.calls += 1
        raise StorageBackendError("storage disabled")

    def read(self, key: str) -> Optional[str]:
        self._fail()

    def write(self, key: str, raw: str) -> None:
        self._fail()

    def delete(self, key: str) -> None:
        self._fail()

    def keys(self) -> List[str]:
        return []


class FlakyBackend(MemoryBackend):
    """Passes the startup probe, then fails every real write."""

    name = "durable"

    def __init__(self) -> None:
        super().__init__()
        self.write_attempts = 0

    def write(self, key: str, raw: str) -> None:
        if key.startswith("__"):
            return super().write(key, raw)
        self.write_attempts += 1
        raise StorageQuotaExceededError("quota exceeded")


@pytest.fixture
def clock():
    return MsClock()


@pytest.fixture
def tiers(tmp_path):
    durable = DirectoryBackend(tmp_path / "durable")
    session = DirectoryBackend(tmp_path / "session")
    session.name = "session"
    memory = MemoryBackend()
    return durable, session, memory


# ---------------------------------------------------------------------
# Round trips and expiry
# ---------------------------------------------------------------------

def test_round_trip_within_ttl(tiers, clock):
    storage = UniversalStorage(tiers, clock=clock)

    assert storage.set_item("k", {"a": 1}, 60) is True
    clock.advance_minutes(59)

    assert storage.get_item("k") == {"a": 1}


def test_expired_item_reads_as_absent_and_is_removed(tiers, clock):
    durable, session, memory = tiers
    storage = UniversalStorage(tiers, clock=clock)

    storage.set_item("k", "v", 60)
    clock.advance_minutes(61)

    assert storage.get_item("k") is None
    assert durable.read("k") is None
    assert memory.read("k") is None


def test_item_without_expiration_never_expires(tiers, clock):
    storage = UniversalStorage(tiers, clock=clock)

    storage.set_item("k", "v")
    clock.advance_minutes(60 * 24 * 365)

    assert storage.get_item("k") == "v"


def test_envelope_shape(tiers, clock):
    durable, _, memory = tiers
    storage = UniversalStorage(tiers, clock=clock)

    storage.set_item("k", [1, 2], 1)

    envelope = json.loads(durable.read("k"))
    assert envelope == {
        "value": [1, 2],
        "timestamp": clock.now,
        "expiresAt": clock.now + MINUTE_MS,
    }
    # Safety net always receives the write
    assert memory.read("k") == durable.read("k")


def test_durable_tier_wins_over_later_tiers(tiers, clock):
    durable, _, memory = tiers
    storage = UniversalStorage(tiers, clock=clock)

    storage.set_item("k", "fresh")
    memory.write("k", json.dumps({"value": "old", "timestamp": 1}))

    assert storage.get_item("k") == "fresh"


# ---------------------------------------------------------------------
# Tier failures
# ---------------------------------------------------------------------

def test_broken_durable_tier_falls_back_to_memory(clock):
    broken = BrokenBackend()
    storage = UniversalStorage([broken, MemoryBackend()], clock=clock)

    assert storage.is_available("durable") is False
    assert storage.set_item("k", "v", 60) is True
    assert storage.get_item("k") == "v"

    # Disabled at probe time, never touched again
    calls_after_probe = broken.calls
    storage.set_item("k2", "v2")
    storage.get_item("k2")
    assert broken.calls == calls_after_probe


def test_write_failure_downgrades_tier_permanently(clock):
    flaky = FlakyBackend()
    memory = MemoryBackend()
    storage = UniversalStorage([flaky, memory], clock=clock)

    assert storage.is_available("durable") is True

    storage.set_item("a", 1)
    storage.set_item("b", 2)

    assert flaky.write_attempts == 1
    assert storage.is_available("durable") is False
    assert storage.get_item("a") == 1
    assert storage.get_item("b") == 2


def test_corrupt_entry_falls_through_to_next_tier(tiers, clock):
    durable, _, memory = tiers
    storage = UniversalStorage(tiers, clock=clock)

    storage.set_item("k", "good")
    durable.write("k", "{not json")

    assert storage.get_item("k") == "good"
    assert storage.is_available("durable") is True


def test_undecodable_file_is_skipped_without_disabling_tier(tiers, clock):
    durable, _, memory = tiers
    storage = UniversalStorage(tiers, clock=clock)

    storage.set_item("k", "good")
    (durable.root / "k.json").write_bytes(b"\xff\xfe garbage")

    assert storage.get_item("k") == "good"
    assert storage.is_available("durable") is True

    # The durable tier keeps serving other keys
    storage.set_item("fresh", 1)
    assert json.loads(durable.read("fresh"))["value"] == 1


def test_unserializable_value_is_not_stored(tiers, clock):
    durable, _, memory = tiers
    storage = UniversalStorage(tiers, clock=clock)
    storage.set_item("k", "previous")

    assert storage.set_item("k", object(), 60) is True

    assert storage.get_item("k") is None
    assert memory.read("k") is None
    assert storage.is_available("durable") is True


def test_corrupt_entry_everywhere_reads_as_none(clock):
    memory = MemoryBackend()
    storage = UniversalStorage([memory], clock=clock)

    memory.write("k", "garbage")

    assert storage.get_item("k") is None


# ---------------------------------------------------------------------
# Removal
# ---------------------------------------------------------------------

def test_remove_item_clears_every_tier(tiers, clock):
    durable, session, memory = tiers
    storage = UniversalStorage(tiers, clock=clock)

    storage.set_item("k", "v")
    session.write("k", durable.read("k"))
    storage.remove_item("k")

    assert durable.read("k") is None
    assert session.read("k") is None
    assert memory.read("k") is None


def test_remove_item_tolerates_broken_tier(clock):
    storage = UniversalStorage([BrokenBackend(), MemoryBackend()], clock=clock)

    storage.set_item("k", "v")
    storage.remove_item("k")

    assert storage.get_item("k") is None


def test_clear_only_removes_checkout_family(tiers, clock):
    storage = UniversalStorage(tiers, clock=clock)

    for key in (CUSTOMER_KEY, ADDRESS_KEY, CHECKOUT_STATE_KEY, PERSISTENT_CHECKOUT_KEY):
        storage.set_item(key, {"saved": key})

    storage.clear()

    assert storage.get_item(CUSTOMER_KEY) is None
    assert storage.get_item(ADDRESS_KEY) is None
    assert storage.get_item(CHECKOUT_STATE_KEY) is None
    assert storage.get_item(PERSISTENT_CHECKOUT_KEY) == {"saved": PERSISTENT_CHECKOUT_KEY}


def test_status_reports_tiers(clock):
    memory = MemoryBackend()
    storage = UniversalStorage([BrokenBackend(), memory], clock=clock)
    storage.set_item("k", "v")

    status = storage.get_status()

    assert status["durable"] is False
    assert status["memory_entries"] == 1
    assert status["capabilities"] == {"durable": False, "memory": True}


def test_requires_a_tier():
    with pytest.raises(ValueError):
        UniversalStorage([])


# ---------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------

class TestDirectoryBackend:
    def test_keys_are_encoded_into_file_names(self, tmp_path):
        backend = DirectoryBackend(tmp_path)

        backend.write("last-delivery-app/url?x=1", "data")

        assert backend.read("last-delivery-app/url?x=1") == "data"
        assert backend.keys() == ["last-delivery-app/url?x=1"]
        assert len(list(tmp_path.glob("*.tmp"))) == 0

    def test_missing_key_reads_none(self, tmp_path):
        assert DirectoryBackend(tmp_path).read("nope") is None

    def test_undecodable_entry_raises_corrupt_error(self, tmp_path):
        backend = DirectoryBackend(tmp_path)
        (tmp_path / "bad.json").write_bytes(b"\xff\xfe garbage")

        with pytest.raises(StorageCorruptEntryError):
            backend.read("bad")

    def test_quota_is_enforced(self, tmp_path):
        backend = DirectoryBackend(tmp_path, quota_bytes=10)

        backend.write("a", "12345")
        with pytest.raises(StorageQuotaExceededError):
            backend.write("b", "1234567")

        # Overwriting an existing key only counts the new size
        backend.write("a", "1234567890")
        assert backend.read("a") == "1234567890"

    def test_unwritable_root_fails_probe(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        assert DirectoryBackend(blocker / "store").probe() is False


def test_session_backend_discarded_on_close():
    backend = SessionBackend()
    backend.write("k", "v")
    root = backend.root
    assert root.exists()

    backend.close()

    assert not root.exists()
