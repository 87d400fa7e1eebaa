"""
Persistence for the merchant learning store.

The store itself only knows snapshots; this module maps a snapshot to
``MerchantMemories`` rows and back. Saving is a full sync: rows are upserted
by merchant key and rows the store no longer holds are deleted.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from finsight.db.models import MerchantMemory
from finsight.ml.merchant_memory import SNAPSHOT_VERSION, MerchantLearningStore

logger = logging.getLogger(__name__)


async def load_learning_store(
    session: AsyncSession,
    store: Optional[MerchantLearningStore] = None,
) -> MerchantLearningStore:
    """Restore ``store`` (or a new one) from the persisted rows."""
    result = await session.execute(select(MerchantMemory).order_by(MerchantMemory.MerchantKey))
    rows = result.scalars().all()

    snapshot = {
        "version": SNAPSHOT_VERSION,
        "merchants": {
            row.MerchantKey: {
                "merchant": row.Merchant,
                "category": row.Category,
                "confidence": row.Confidence,
                "frequency": row.Frequency,
            }
            for row in rows
        },
    }

    store = store if store is not None else MerchantLearningStore()
    store.restore(snapshot)
    logger.info(f"Loaded {len(rows)} merchant memories from database")
    return store


async def save_learning_store(session: AsyncSession, store: MerchantLearningStore) -> int:
    """Write the store's current snapshot; returns the number of merchants saved."""
    merchants = store.to_snapshot()["merchants"]

    result = await session.execute(select(MerchantMemory))
    existing = {row.MerchantKey: row for row in result.scalars().all()}

    stale = [key for key in existing if key not in merchants]
    if stale:
        await session.execute(delete(MerchantMemory).where(MerchantMemory.MerchantKey.in_(stale)))

    now = datetime.utcnow()
    for key, data in merchants.items():
        row = existing.get(key)
        if row is None:
            session.add(MerchantMemory(
                MerchantKey=key,
                Merchant=data["merchant"],
                Category=data["category"],
                Confidence=data["confidence"],
                Frequency=data["frequency"],
                CreatedOn=now,
            ))
            continue

        row.Merchant = data["merchant"]
        row.Category = data["category"]
        row.Confidence = data["confidence"]
        row.Frequency = data["frequency"]
        row.LastModifiedOn = now

    await session.commit()
    logger.info(f"Saved {len(merchants)} merchant memories, removed {len(stale)}")
    return len(merchants)
