"""
Shared fixtures.

The service reads its settings at import time, so the test database is
configured here before anything imports ``main`` or ``finsight``.
"""
import itertools
import os
import tempfile
from datetime import datetime

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="finsight-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["LOG_FORMAT"] = "text"
os.environ["LOG_LEVEL"] = "WARNING"

from finsight.ml.schemas import Direction, Transaction, TransactionCategory  # noqa: E402


@pytest.fixture
def make_tx():
    """Factory for transactions with sequential ids."""
    counter = itertools.count(1)

    def _make(
        amount,
        category=TransactionCategory.OTHER,
        date=None,
        merchant=None,
        description="",
        direction=Direction.DEBIT,
        id=None,
    ):
        return Transaction(
            id=id or f"tx-{next(counter)}",
            amount=amount,
            category=category,
            date=date or datetime(2024, 6, 3, 12, 0),
            merchant=merchant,
            description=description,
            direction=direction,
        )

    return _make


@pytest.fixture
def series(make_tx):
    """Debits of one category on consecutive days, oldest first."""
    def _series(amounts, category=TransactionCategory.FOOD, start=datetime(2024, 6, 1, 12, 0), merchant=None):
        return [
            make_tx(
                amount,
                category=category,
                date=datetime.fromordinal(start.toordinal() + i).replace(hour=start.hour),
                merchant=merchant,
            )
            for i, amount in enumerate(amounts)
        ]

    return _series
