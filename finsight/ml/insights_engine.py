"""
Insights engine for FinSight.

Composes the pattern analyzer, anomaly detector, recommendation generator
and habits profile into one report with a risk score and an estimate of how
much could be saved. Pure orchestration; nothing here performs I/O.
"""

import logging
from typing import List, Optional, Sequence

from finsight.ml.anomaly_detector import SpendingAnomalyDetector
from finsight.ml.pattern_analyzer import SpendingPatternAnalyzer
from finsight.ml.recommendations import RecommendationGenerator
from finsight.ml.schemas import (
    AnalysisReport,
    Anomaly,
    FinancialInsight,
    PatternAnalysis,
    Recommendation,
    Severity,
    Transaction,
)
from finsight.ml.spending_habits import SpendingHabitsAnalyzer

logger = logging.getLogger(__name__)

SEVERITY_RISK = {Severity.HIGH: 15, Severity.MEDIUM: 8, Severity.LOW: 3}
MAX_RISK_SCORE = 100

MONTHLY_CHANGE_INSIGHT = 15.0


class InsightsEngine:
    """Builds an ``AnalysisReport`` from a transaction window."""

    def __init__(
        self,
        analyzer: Optional[SpendingPatternAnalyzer] = None,
        detector: Optional[SpendingAnomalyDetector] = None,
        generator: Optional[RecommendationGenerator] = None,
        habits: Optional[SpendingHabitsAnalyzer] = None,
    ):
        self.analyzer = analyzer or SpendingPatternAnalyzer()
        self.detector = detector or SpendingAnomalyDetector()
        self.generator = generator or RecommendationGenerator()
        self.habits = habits or SpendingHabitsAnalyzer()

    def analyze(
        self,
        transactions: Sequence[Transaction],
        window_days: Optional[int] = None,
    ) -> AnalysisReport:
        """
        Anomalies, category statistics, habits and the risk score cover the
        window only. Predictions, like trends and monthly change, read the
        full history.
        """
        if not transactions:
            logger.debug("No transactions supplied, returning empty report")
            return AnalysisReport()

        window = self.analyzer.window(transactions, window_days)
        patterns = self.analyzer.analyze(transactions, window_days=window_days)
        statistics = self.detector.category_statistics(window)
        anomalies = self.detector.detect(window)
        recommendations = self.generator.generate(patterns, statistics)

        report = AnalysisReport(
            predictions=self.analyzer.predict(transactions),
            anomalies=anomalies,
            recommendations=recommendations,
            insights=generate_insights(patterns),
            patterns=patterns,
            habits=self.habits.profile(window),
            risk_score=risk_score(anomalies, patterns),
            savings_opportunity=savings_opportunity(recommendations),
        )

        logger.info(
            f"Analysis report ready: {len(anomalies)} anomalies, "
            f"{len(recommendations)} recommendations, risk_score={report.risk_score}"
        )
        return report


def risk_score(anomalies: Sequence[Anomaly], patterns: PatternAnalysis) -> int:
    """0-100; anomalies add by severity, spending close to income adds more."""
    score = sum(SEVERITY_RISK[a.severity] for a in anomalies)

    if patterns.total_income > 0:
        spend_ratio = patterns.total_spending / patterns.total_income
        if spend_ratio > 0.9:
            score += 20
        elif spend_ratio > 0.8:
            score += 10

    return min(MAX_RISK_SCORE, score)


def savings_opportunity(recommendations: Sequence[Recommendation]) -> float:
    return float(sum(r.potential_savings or 0.0 for r in recommendations))


def generate_insights(patterns: PatternAnalysis) -> List[FinancialInsight]:
    insights = []

    change = patterns.monthly_change
    if change is not None and abs(change.percentage_change) > MONTHLY_CHANGE_INSIGHT:
        increased = change.percentage_change > 0
        insights.append(FinancialInsight(
            id="monthly-change",
            type="trend",
            title="Significant Spending Change",
            description=(
                f"Your spending has {'increased' if increased else 'decreased'} by "
                f"{abs(change.percentage_change):.1f}% compared to last month"
            ),
            impact="negative" if increased else "positive",
            actionable=increased,
        ))

    if patterns.weekend_skew.is_high:
        insights.append(FinancialInsight(
            id="weekend-spending",
            type="pattern",
            title="High Weekend Spending",
            description=(
                f"₹{patterns.weekend_skew.weekend_total:,.0f} of your spending happens on weekends"
            ),
            impact="neutral",
            actionable=True,
        ))

    if patterns.top_merchant is not None and patterns.top_merchant.count > 1:
        top = patterns.top_merchant
        insights.append(FinancialInsight(
            id="top-merchant",
            type="pattern",
            title="Most Visited Merchant",
            description=f"You paid {top.merchant} {top.count} times for ₹{top.total:,.0f} in total",
            impact="neutral",
            actionable=False,
        ))

    return insights
