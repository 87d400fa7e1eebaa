"""
Merchant learning store.

Keeps a confidence-weighted merchant -> category memory that is reinforced
every time the categorizer decides on a merchant, and overridden when a user
teaches the correct category. Confidence is a bounded running signal, not a
calibrated probability.

The store never decides when to persist. Callers take a snapshot
(``to_snapshot`` / ``flush``) and restore it (``from_snapshot`` / ``load``)
whenever it suits them.
"""

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from finsight.core.config import settings
from finsight.ml.schemas import MerchantMemory, TransactionCategory

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

CONFIDENCE_STEP = 0.1
INITIAL_MIN_CONFIDENCE = 0.5
TAUGHT_CONFIDENCE = 1.0
TAUGHT_FREQUENCY = 10


class SnapshotError(ValueError):
    """Raised when a learning snapshot cannot be decoded."""


def merchant_key(merchant: Optional[str]) -> str:
    if not merchant:
        return ""
    return re.sub(r"\s+", " ", merchant.lower()).strip()


def _clamp(value: float) -> float:
    # Rounded so repeated +/- steps do not drift away from the 0.1 grid.
    return round(min(1.0, max(0.0, value)), 6)


class MerchantLearningStore:
    """
    Thread-safe merchant memory.

    Reads and writes go through a single lock, so two interleaved
    ``reinforce`` calls for the same merchant cannot lose an update.
    """

    def __init__(
        self,
        min_confidence: Optional[float] = None,
        min_frequency: Optional[int] = None,
    ):
        self.min_confidence = (
            settings.LEARNING_MIN_CONFIDENCE if min_confidence is None else min_confidence
        )
        self.min_frequency = (
            settings.LEARNING_MIN_FREQUENCY if min_frequency is None else min_frequency
        )
        self._entries: Dict[str, MerchantMemory] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, merchant: str) -> bool:
        with self._lock:
            return merchant_key(merchant) in self._entries

    def lookup(self, merchant: Optional[str]) -> Optional[TransactionCategory]:
        """
        Return the learned category when the memory is trusted enough.

        ``None`` tells the caller to fall back to the keyword matcher.
        """
        with self._lock:
            entry = self._entries.get(merchant_key(merchant))

        if entry and entry.confidence > self.min_confidence and entry.frequency > self.min_frequency:
            return entry.category
        return None

    def get(self, merchant: Optional[str]) -> Optional[MerchantMemory]:
        with self._lock:
            entry = self._entries.get(merchant_key(merchant))
            return entry.model_copy() if entry else None

    def reinforce(
        self,
        merchant: Optional[str],
        category: TransactionCategory,
        observed_score: float,
    ) -> Optional[MerchantMemory]:
        """
        Record a categorization decision for ``merchant``.

        Unseen merchants start at ``max(0.5, observed_score)`` with frequency 1.
        Known merchants gain 0.1 confidence when the decision agrees with the
        stored category and lose 0.1 otherwise; frequency always grows by one.
        """
        key = merchant_key(merchant)
        if not key:
            return None

        with self._lock:
            existing = self._entries.get(key)

            if existing is None:
                entry = MerchantMemory(
                    merchant_key=key,
                    merchant=merchant.strip(),
                    category=category,
                    confidence=_clamp(max(INITIAL_MIN_CONFIDENCE, observed_score or 0.0)),
                    frequency=1,
                )
            else:
                step = CONFIDENCE_STEP if existing.category == category else -CONFIDENCE_STEP
                entry = existing.model_copy(update={
                    "confidence": _clamp(existing.confidence + step),
                    "frequency": existing.frequency + 1,
                })

            self._entries[key] = entry
            return entry.model_copy()

    def teach(self, merchant: Optional[str], category: TransactionCategory) -> Optional[MerchantMemory]:
        """Explicit user override: full confidence and a high frequency."""
        key = merchant_key(merchant)
        if not key:
            return None

        entry = MerchantMemory(
            merchant_key=key,
            merchant=merchant.strip(),
            category=category,
            confidence=TAUGHT_CONFIDENCE,
            frequency=TAUGHT_FREQUENCY,
        )
        with self._lock:
            self._entries[key] = entry

        logger.info(f"Taught merchant {key!r} -> {category.value}")
        return entry.model_copy()

    def forget(self, merchant: Optional[str]) -> bool:
        with self._lock:
            return self._entries.pop(merchant_key(merchant), None) is not None

    def reset(self) -> None:
        with self._lock:
            self._entries = {}
        logger.info("Merchant memory reset")

    def entries(self) -> List[MerchantMemory]:
        with self._lock:
            return [self._entries[key].model_copy() for key in sorted(self._entries)]

    def stats(self) -> Dict[str, Any]:
        entries = self.entries()
        distribution: Dict[str, int] = {}
        for entry in entries:
            distribution[entry.category.value] = distribution.get(entry.category.value, 0) + 1

        average = sum(e.confidence for e in entries) / len(entries) if entries else 0.0
        return {
            "total_merchants": len(entries),
            "category_distribution": distribution,
            "average_confidence": round(average, 4),
            "trusted_merchants": sum(
                1 for e in entries
                if e.confidence > self.min_confidence and e.frequency > self.min_frequency
            ),
        }

    # --- Snapshots -------------------------------------------------------

    def to_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            merchants = {
                key: {
                    "merchant": entry.merchant,
                    "category": entry.category.value,
                    "confidence": entry.confidence,
                    "frequency": entry.frequency,
                }
                for key, entry in sorted(self._entries.items())
            }
        return {"version": SNAPSHOT_VERSION, "merchants": merchants}

    def restore(self, snapshot: Dict[str, Any]) -> None:
        """Replace the whole memory with ``snapshot`` in one swap."""
        entries = _decode_snapshot(snapshot)
        with self._lock:
            self._entries = entries
        logger.info(f"Restored merchant memory with {len(entries)} merchants")

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any], **kwargs) -> "MerchantLearningStore":
        store = cls(**kwargs)
        store.restore(snapshot)
        return store

    def flush(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self.to_snapshot(), indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(path)
        logger.info(f"Flushed merchant memory to {path}")
        return path

    def load(self, path: Union[str, Path]) -> None:
        path = Path(path)
        try:
            snapshot = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise SnapshotError(f"Snapshot {path} is not valid JSON: {e}") from e
        self.restore(snapshot)


def _decode_snapshot(snapshot: Any) -> Dict[str, MerchantMemory]:
    if not isinstance(snapshot, dict):
        raise SnapshotError("Snapshot must be a mapping")

    version = snapshot.get("version")
    if version != SNAPSHOT_VERSION:
        raise SnapshotError(f"Unsupported snapshot version: {version!r}")

    merchants = snapshot.get("merchants", {})
    if not isinstance(merchants, dict):
        raise SnapshotError("Snapshot 'merchants' must be a mapping")

    entries: Dict[str, MerchantMemory] = {}
    for raw_key, data in merchants.items():
        key = merchant_key(raw_key)
        if not key or not isinstance(data, dict):
            raise SnapshotError(f"Invalid snapshot entry for {raw_key!r}")
        try:
            entries[key] = MerchantMemory(
                merchant_key=key,
                merchant=data.get("merchant") or raw_key,
                category=TransactionCategory(data["category"]),
                confidence=float(data["confidence"]),
                frequency=int(data["frequency"]),
            )
        except (KeyError, ValueError, TypeError, ValidationError) as e:
            raise SnapshotError(f"Invalid snapshot entry for {raw_key!r}: {e}") from e

    return entries
