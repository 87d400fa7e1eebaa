"""
Tests for persisting the merchant learning store through SQLAlchemy.
"""
import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from finsight.db.database import Base
from finsight.db.models import MerchantMemory as MerchantMemoryRow
from finsight.db.repository import load_learning_store, save_learning_store
from finsight.ml.merchant_memory import MerchantLearningStore, SnapshotError
from finsight.ml.schemas import TransactionCategory as C


@pytest.fixture
def run_with_session(tmp_path):
    """Run ``func(session)`` against a fresh SQLite database."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'repository.db'}"

    def _run(func):
        async def main():
            engine = create_async_engine(url)
            try:
                async with engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
                sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
                async with sessions() as session:
                    return await func(session)
            finally:
                await engine.dispose()

        return asyncio.run(main())

    return _run


def test_save_then_load(run_with_session):
    store = MerchantLearningStore()
    store.teach("Amazon", C.SHOPPING)
    store.reinforce("Swiggy", C.FOOD, 0.6)

    assert run_with_session(lambda session: save_learning_store(session, store)) == 2

    loaded = run_with_session(load_learning_store)

    assert loaded.entries() == store.entries()
    assert loaded.lookup("amazon") == C.SHOPPING


def test_save_updates_and_removes_rows(run_with_session):
    store = MerchantLearningStore()
    store.teach("Amazon", C.SHOPPING)
    store.teach("Swiggy", C.FOOD)
    run_with_session(lambda session: save_learning_store(session, store))

    store.forget("Amazon")
    store.teach("Swiggy", C.SHOPPING)
    run_with_session(lambda session: save_learning_store(session, store))

    async def rows(session):
        result = await session.execute(select(MerchantMemoryRow))
        return {row.MerchantKey: row.Category for row in result.scalars().all()}

    assert run_with_session(rows) == {"swiggy": "Shopping"}


def test_load_into_existing_store_replaces_contents(run_with_session):
    saved = MerchantLearningStore()
    saved.teach("Amazon", C.SHOPPING)
    run_with_session(lambda session: save_learning_store(session, saved))

    store = MerchantLearningStore()
    store.teach("Zomato", C.FOOD)
    result = run_with_session(lambda session: load_learning_store(session, store))

    assert result is store
    assert [e.merchant_key for e in store.entries()] == ["amazon"]


def test_invalid_rows_raise_snapshot_error(run_with_session):
    async def corrupt(session):
        session.add(MerchantMemoryRow(
            MerchantKey="amazon", Merchant="Amazon", Category="Groceries", Confidence=1.0, Frequency=3,
        ))
        await session.commit()
        return await load_learning_store(session)

    with pytest.raises(SnapshotError):
        run_with_session(corrupt)
