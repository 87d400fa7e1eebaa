"""
Spending Anomaly Detector for FinSight.

Flags unusually large debits with a per-category z-score test and merchants
that show up suspiciously often. Statistics are recomputed from the supplied
transaction window on every call; nothing is cached between calls and no
randomness is involved, so the same window always yields the same anomalies.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from finsight.core.config import settings
from finsight.ml.merchant_memory import merchant_key
from finsight.ml.schemas import (
    Anomaly,
    AnomalyType,
    CategoryStatistics,
    Severity,
    Transaction,
    TransactionCategory,
)

logger = logging.getLogger(__name__)

MERCHANT_FREQUENCY_CONFIDENCE = 0.7
MAX_CONFIDENCE = 0.95


class SpendingAnomalyDetector:
    """
    Detects spending anomalies over debit transactions.

    1. Group debits by category, skipping groups below ``min_samples``
    2. Population mean / standard deviation per group
    3. Flag amounts with ``z > zscore_threshold`` and ``amount > mean * mean_multiplier``
    4. Flag merchants with more than ``merchant_frequency`` debits
    """

    def __init__(
        self,
        min_samples: Optional[int] = None,
        zscore_threshold: Optional[float] = None,
        mean_multiplier: Optional[float] = None,
        merchant_frequency: Optional[int] = None,
    ):
        self.min_samples = min_samples if min_samples is not None else settings.ANOMALY_MIN_SAMPLES
        self.zscore_threshold = zscore_threshold if zscore_threshold is not None else settings.ANOMALY_ZSCORE_THRESHOLD
        self.mean_multiplier = mean_multiplier if mean_multiplier is not None else settings.ANOMALY_MEAN_MULTIPLIER
        self.merchant_frequency = merchant_frequency if merchant_frequency is not None else settings.ANOMALY_MERCHANT_FREQUENCY
        self.medium_zscore = settings.ANOMALY_MEDIUM_ZSCORE
        self.high_zscore = settings.ANOMALY_HIGH_ZSCORE

    def detect(self, transactions: Sequence[Transaction]) -> List[Anomaly]:
        anomalies, _ = self.detect_with_status(transactions)
        return anomalies

    def detect_with_status(
        self, transactions: Sequence[Transaction]
    ) -> Tuple[List[Anomaly], str]:
        """
        Detect anomalies and report whether there was enough data to judge.

        Returns:
            Tuple of (anomalies, status) where status is ``sufficient_data``
            when at least one category had enough samples, else
            ``insufficient_data``.
        """
        if not transactions:
            logger.debug("Empty transactions list provided")
            return [], 'insufficient_data'

        statistics = self.category_statistics(transactions)
        groups = _group_debits(transactions)

        anomalies: List[Anomaly] = []
        for stats in statistics:
            if stats.standard_deviation == 0:
                logger.debug(f"Zero variance for {stats.category.value}, skipping")
                continue
            anomalies.extend(self._unusual_spending(stats, groups[stats.category]))

        anomalies.extend(self._merchant_frequency(transactions))

        status = 'sufficient_data' if statistics else 'insufficient_data'
        anomalies.sort(key=lambda a: (-a.confidence, a.id))

        logger.info(
            f"Anomaly detection complete: {len(anomalies)} anomalies found "
            f"across {len(statistics)} categories, status: {status}"
        )
        return anomalies, status

    def category_statistics(self, transactions: Sequence[Transaction]) -> List[CategoryStatistics]:
        """Mean and population standard deviation for every category with enough debits."""
        statistics = []
        for category, group in _group_debits(transactions).items():
            if len(group) < self.min_samples:
                logger.debug(
                    f"Insufficient samples for {category.value}: "
                    f"{len(group)} < {self.min_samples}"
                )
                continue

            amounts = np.array([t.amount for t in group], dtype=float)
            statistics.append(CategoryStatistics(
                category=category,
                mean=float(np.mean(amounts)),
                standard_deviation=float(np.std(amounts)),
                count=len(group),
                sample_amounts=[float(a) for a in amounts],
            ))
        return statistics

    def _unusual_spending(
        self, stats: CategoryStatistics, group: List[Transaction]
    ) -> List[Anomaly]:
        anomalies = []
        threshold_amount = stats.mean * self.mean_multiplier
        category = stats.category.value

        for transaction in group:
            z_score = abs(transaction.amount - stats.mean) / stats.standard_deviation
            if not (z_score > self.zscore_threshold and transaction.amount > threshold_amount):
                continue

            anomalies.append(Anomaly(
                id=f"unusual-{transaction.id}",
                type=AnomalyType.UNUSUAL_SPENDING,
                severity=self._severity(z_score),
                category=stats.category,
                amount=transaction.amount,
                z_score=round(z_score, 4),
                confidence=round(min(MAX_CONFIDENCE, z_score / 4), 4),
                description=(
                    f"Unusually high {category} spending: ₹{transaction.amount:,.2f} "
                    f"({z_score:.1f} standard deviations above your usual ₹{stats.mean:,.2f})"
                ),
                recommendation=(
                    f"Review this {category} transaction. Consider if this was necessary "
                    f"or if you can reduce similar expenses."
                ),
                transaction_id=transaction.id,
                merchant=transaction.merchant,
            ))
            logger.info(
                f"Anomaly detected: {category} transaction {transaction.id} "
                f"amount={transaction.amount:.2f} z={z_score:.2f}"
            )
        return anomalies

    def _merchant_frequency(self, transactions: Sequence[Transaction]) -> List[Anomaly]:
        counts: Dict[str, int] = defaultdict(int)
        totals: Dict[str, float] = defaultdict(float)
        names: Dict[str, str] = {}

        for t in transactions:
            key = merchant_key(t.merchant)
            if not t.is_debit or not key:
                continue
            counts[key] += 1
            totals[key] += t.amount
            names.setdefault(key, t.merchant.strip())

        anomalies = []
        for key, frequency in counts.items():
            if frequency <= self.merchant_frequency:
                continue
            name = names[key]
            anomalies.append(Anomaly(
                id=f"merchant-{key}",
                type=AnomalyType.MERCHANT_FREQUENCY,
                severity=Severity.MEDIUM,
                amount=round(totals[key], 2),
                confidence=MERCHANT_FREQUENCY_CONFIDENCE,
                description=f"Frequent transactions with {name}: {frequency} times",
                recommendation=(
                    "Review if these frequent transactions are necessary. "
                    "Consider setting up alerts for this merchant."
                ),
                merchant=name,
            ))
        return anomalies

    def _severity(self, z_score: float) -> Severity:
        if z_score > self.high_zscore:
            return Severity.HIGH
        if z_score > self.medium_zscore:
            return Severity.MEDIUM
        return Severity.LOW

    def format_message(self, anomaly: Anomaly) -> str:
        """Format a user-facing one-liner for an anomaly."""
        if anomaly.type == AnomalyType.MERCHANT_FREQUENCY:
            return f"{anomaly.description}. {anomaly.recommendation}"

        category = anomaly.category.value if anomaly.category else "this category"
        level = {
            Severity.HIGH: "far above",
            Severity.MEDIUM: "well above",
            Severity.LOW: "above",
        }[anomaly.severity]
        amount = f"₹{anomaly.amount:,.2f}" if anomaly.amount is not None else "A payment"
        return f"{amount} on {category} is {level} your usual spending."


def _group_debits(transactions: Sequence[Transaction]) -> Dict[TransactionCategory, List[Transaction]]:
    """Debits grouped by category, in category declaration order."""
    grouped: Dict[TransactionCategory, List[Transaction]] = defaultdict(list)
    for t in transactions:
        if t.is_debit:
            grouped[t.category].append(t)
    return {category: grouped[category] for category in TransactionCategory if category in grouped}
