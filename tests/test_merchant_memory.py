"""
Tests for the merchant learning store.
"""
import json
import threading

import pytest

from finsight.ml.merchant_memory import MerchantLearningStore, SnapshotError, merchant_key
from finsight.ml.schemas import TransactionCategory as C


@pytest.fixture
def store():
    return MerchantLearningStore(min_confidence=0.7, min_frequency=2)


def test_merchant_key_normalizes_case_and_spacing():
    assert merchant_key("  Big   Bazaar ") == "big bazaar"
    assert merchant_key(None) == ""


def test_first_observation_starts_at_half_confidence(store):
    entry = store.reinforce("Swiggy", C.FOOD, 0.2)
    assert entry.confidence == 0.5
    assert entry.frequency == 1


def test_first_observation_keeps_higher_score(store):
    entry = store.reinforce("Swiggy", C.FOOD, 0.65)
    assert entry.confidence == pytest.approx(0.65)


def test_agreement_raises_confidence_up_to_one(store):
    for _ in range(10):
        entry = store.reinforce("Swiggy", C.FOOD, 0.9)
    assert entry.confidence == 1.0
    assert entry.frequency == 10


def test_disagreement_lowers_confidence_but_keeps_category(store):
    store.reinforce("Swiggy", C.FOOD, 0.5)
    entry = store.reinforce("Swiggy", C.SHOPPING, 0.9)

    assert entry.category == C.FOOD
    assert entry.confidence == pytest.approx(0.4)
    assert entry.frequency == 2


def test_confidence_never_drops_below_zero(store):
    store.reinforce("Swiggy", C.FOOD, 0.5)
    for _ in range(10):
        entry = store.reinforce("Swiggy", C.BILLS, 0.5)
    assert entry.confidence == 0.0


def test_lookup_requires_both_thresholds(store):
    store.reinforce("Swiggy", C.FOOD, 0.9)
    store.reinforce("Swiggy", C.FOOD, 0.9)
    # confidence 1.0 but frequency 2 is not above the minimum
    assert store.lookup("Swiggy") is None

    store.reinforce("Swiggy", C.FOOD, 0.9)
    assert store.lookup("swiggy") == C.FOOD


def test_lookup_unknown_or_empty_merchant(store):
    assert store.lookup("Nobody") is None
    assert store.lookup("") is None
    assert store.lookup(None) is None


def test_blank_merchant_is_ignored(store):
    assert store.reinforce("   ", C.FOOD, 0.9) is None
    assert store.teach("", C.FOOD) is None
    assert len(store) == 0


def test_teach_overrides_existing_memory(store):
    store.reinforce("Amazon", C.SHOPPING, 0.9)
    entry = store.teach("Amazon", C.ENTERTAINMENT)

    assert entry.confidence == 1.0
    assert entry.frequency == 10
    assert store.lookup("AMAZON") == C.ENTERTAINMENT


def test_returned_entries_are_copies(store):
    store.teach("Amazon", C.SHOPPING)
    entry = store.get("Amazon")
    entry.confidence = 0.1
    assert store.get("Amazon").confidence == 1.0


def test_stats(store):
    store.teach("Amazon", C.SHOPPING)
    store.reinforce("Swiggy", C.FOOD, 0.5)

    stats = store.stats()
    assert stats["total_merchants"] == 2
    assert stats["category_distribution"] == {"Shopping": 1, "Food": 1}
    assert stats["average_confidence"] == pytest.approx(0.75)
    assert stats["trusted_merchants"] == 1


def test_forget_and_reset(store):
    store.teach("Amazon", C.SHOPPING)
    store.teach("Swiggy", C.FOOD)

    assert store.forget("amazon") is True
    assert store.forget("amazon") is False
    assert "Swiggy" in store

    store.reset()
    assert len(store) == 0


def test_snapshot_round_trip_preserves_entries(store):
    store.teach("Amazon", C.SHOPPING)
    store.reinforce("Swiggy", C.FOOD, 0.6)

    restored = MerchantLearningStore.from_snapshot(store.to_snapshot())

    assert restored.entries() == store.entries()


def test_snapshot_format(store):
    store.reinforce("Big Bazaar", C.SHOPPING, 0.6)
    assert store.to_snapshot() == {
        "version": 1,
        "merchants": {
            "big bazaar": {
                "merchant": "Big Bazaar",
                "category": "Shopping",
                "confidence": 0.6,
                "frequency": 1,
            }
        },
    }


@pytest.mark.parametrize(
    "snapshot",
    [
        [],
        {"version": 2, "merchants": {}},
        {"version": 1, "merchants": []},
        {"version": 1, "merchants": {"amazon": {"category": "Groceries", "confidence": 1, "frequency": 1}}},
        {"version": 1, "merchants": {"amazon": {"category": "Shopping", "confidence": 1.5, "frequency": 1}}},
        {"version": 1, "merchants": {"amazon": {"category": "Shopping", "frequency": 1}}},
        {"version": 1, "merchants": {"amazon": "Shopping"}},
    ],
)
def test_invalid_snapshot_raises_and_keeps_state(store, snapshot):
    store.teach("Swiggy", C.FOOD)

    with pytest.raises(SnapshotError):
        store.restore(snapshot)

    assert store.lookup("Swiggy") == C.FOOD


def test_flush_and_load(store, tmp_path):
    store.teach("Amazon", C.SHOPPING)
    path = store.flush(tmp_path / "memory" / "merchants.json")

    assert json.loads(path.read_text())["merchants"]["amazon"]["category"] == "Shopping"

    loaded = MerchantLearningStore()
    loaded.load(path)
    assert loaded.lookup("Amazon") == C.SHOPPING


def test_load_rejects_corrupt_file(store, tmp_path):
    path = tmp_path / "merchants.json"
    path.write_text("{not json")

    with pytest.raises(SnapshotError):
        store.load(path)


def test_concurrent_reinforcement_does_not_lose_updates(store):
    def worker():
        for _ in range(100):
            store.reinforce("Swiggy", C.FOOD, 0.5)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.get("Swiggy").frequency == 800
