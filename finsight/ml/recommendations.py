"""
Recommendation generator for FinSight.

Each rule is an independent threshold check over the pattern analysis and
category statistics. Rules never look at each other's output; the generator
only concatenates, orders by priority and truncates.
"""

import logging
from typing import Callable, List, Optional, Sequence

from finsight.core.config import settings
from finsight.ml.schemas import (
    CategoryStatistics,
    PatternAnalysis,
    Priority,
    Recommendation,
    TransactionCategory,
    Trend,
)

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}

MIN_LIMIT = 4
MAX_LIMIT = 8

RIDE_SHARE_MERCHANTS = ("uber", "ola", "rapido")

Rule = Callable[[PatternAnalysis, Sequence[CategoryStatistics]], List[Recommendation]]


def high_concentration(analysis: PatternAnalysis, statistics) -> List[Recommendation]:
    return [
        Recommendation(
            id=f"high-category-{share.category.value}",
            title=f"{share.category.value} Spending Alert",
            description=(
                f"{share.category.value} accounts for {share.percentage:.1f}% of your spending. "
                f"Consider setting a budget limit."
            ),
            priority=Priority.HIGH,
            type="budget",
            category=share.category,
        )
        for share in analysis.concentration_ratios
        if share.percentage > 35
    ]


# (category, share threshold %, priority, savings fraction, title, action items)
_CATEGORY_SAVINGS = (
    (
        TransactionCategory.FOOD, 25, Priority.HIGH, 0.20, "Optimize Food Expenses",
        "Consider meal planning and cooking at home.",
        ["Plan weekly meals in advance", "Cook at home more frequently",
         "Use grocery coupons and offers", "Avoid impulse food orders"],
    ),
    (
        TransactionCategory.TRANSPORT, 20, Priority.MEDIUM, 0.15, "Reduce Transportation Costs",
        "Consider public transport or carpooling.",
        ["Use public transportation when possible", "Consider carpooling for regular routes",
         "Walk or cycle for short distances", "Plan trips to reduce fuel consumption"],
    ),
    (
        TransactionCategory.ENTERTAINMENT, 15, Priority.LOW, 0.25, "Optimize Entertainment Spending",
        "Look for budget-friendly alternatives.",
        ["Look for free entertainment options", "Use subscription services efficiently",
         "Take advantage of discounts and offers", "Consider group activities to split costs"],
    ),
)


def category_savings(analysis: PatternAnalysis, statistics) -> List[Recommendation]:
    recommendations = []
    for category, threshold, priority, fraction, title, advice, actions in _CATEGORY_SAVINGS:
        share = analysis.share_of(category)
        if share is None or share.percentage <= threshold:
            continue
        recommendations.append(Recommendation(
            id=f"savings-{category.value}",
            title=title,
            description=(
                f"{category.value} is {round(share.percentage)}% of your total expenses. {advice}"
            ),
            priority=priority,
            type="spending",
            category=category,
            potential_savings=float(round(share.amount * fraction)),
            action_items=list(actions),
        ))
    return recommendations


def rising_trends(analysis: PatternAnalysis, statistics) -> List[Recommendation]:
    return [
        Recommendation(
            id=f"trend-{category.value}",
            title=f"Rising {category.value} Costs",
            description=(
                f"Your {category.value} spending is trending upward. Review recent "
                f"transactions to identify opportunities for savings."
            ),
            priority=Priority.MEDIUM,
            type="budget",
            category=category,
        )
        for category, trend in analysis.trend_by_category.items()
        if trend == Trend.INCREASING
    ]


def frequent_food_orders(analysis: PatternAnalysis, statistics) -> List[Recommendation]:
    food = analysis.share_of(TransactionCategory.FOOD)
    if food is None or food.count <= 20:
        return []
    return [Recommendation(
        id="food-delivery-optimization",
        title="Food Delivery Savings",
        description=(
            "You order food frequently. Consider meal prep or cooking at home "
            "2-3 times a week to save ₹3,000-5,000 monthly."
        ),
        priority=Priority.MEDIUM,
        type="savings",
        category=TransactionCategory.FOOD,
    )]


def ride_share_usage(analysis: PatternAnalysis, statistics) -> List[Recommendation]:
    rides = sum(
        count for merchant, count in analysis.merchant_frequency.items()
        if any(name in merchant.lower() for name in RIDE_SHARE_MERCHANTS)
    )
    if rides <= 15:
        return []
    return [Recommendation(
        id="transport-optimization",
        title="Transportation Savings",
        description=(
            "Frequent ride-sharing detected. Consider public transport or monthly "
            "passes to save up to 60% on transport costs."
        ),
        priority=Priority.MEDIUM,
        type="savings",
        category=TransactionCategory.TRANSPORT,
    )]


def weekend_spending(analysis: PatternAnalysis, statistics) -> List[Recommendation]:
    percentage = analysis.weekend_skew.weekend_percentage
    if percentage <= 40:
        return []
    return [Recommendation(
        id="weekend-spending",
        title="Weekend Spending Control",
        description=(
            f"{percentage:.1f}% of your spending happens on weekends. "
            f"Plan weekend activities within a set budget."
        ),
        priority=Priority.LOW,
        type="budget",
    )]


def savings_rate(analysis: PatternAnalysis, statistics) -> List[Recommendation]:
    rate = analysis.savings_rate
    if rate is None:
        return []

    if rate < 0.2:
        return [Recommendation(
            id="improve-savings-rate",
            title="Improve Savings Rate",
            description=(
                f"Your savings rate is {round(max(0.0, rate) * 100)}%. Aim for at least "
                f"20% to build financial security."
            ),
            priority=Priority.HIGH,
            type="savings",
            action_items=[
                "Create a monthly budget and stick to it",
                "Automate savings transfers",
                "Reduce unnecessary subscriptions",
                "Look for additional income sources",
            ],
        )]

    if rate > 0.3:
        return [Recommendation(
            id="start-investing",
            title="Start Investing Your Savings",
            description=(
                f"You have good savings habits! Consider investing "
                f"{round((rate - 0.2) * 100)}% of income for wealth building."
            ),
            priority=Priority.HIGH,
            type="investment",
            action_items=[
                "Start SIP in mutual funds",
                "Consider investing in index funds",
                "Learn about stock market basics",
                "Diversify across asset classes",
            ],
        )]

    return []


def spending_reduced(analysis: PatternAnalysis, statistics) -> List[Recommendation]:
    change = analysis.monthly_change
    if change is None or change.percentage_change >= -10:
        return []
    return [Recommendation(
        id="positive-trend",
        title="Great Progress!",
        description=(
            f"You've reduced spending by {abs(change.percentage_change):.1f}% this month. "
            f"Keep up the good work!"
        ),
        priority=Priority.LOW,
        type="savings",
    )]


def volatile_categories(analysis: PatternAnalysis, statistics) -> List[Recommendation]:
    return [
        Recommendation(
            id=f"volatile-{stats.category.value}",
            title=f"Unpredictable {stats.category.value} Spending",
            description=(
                f"Your {stats.category.value} payments vary a lot (average ₹{stats.mean:,.0f}). "
                f"An earlier budget alert can catch spikes before they add up."
            ),
            priority=Priority.LOW,
            type="budget",
            category=stats.category,
        )
        for stats in statistics
        if stats.coefficient_of_variation > 0.5
    ]


DEFAULT_RULES: Sequence[Rule] = (
    high_concentration,
    category_savings,
    rising_trends,
    frequent_food_orders,
    ride_share_usage,
    weekend_spending,
    savings_rate,
    spending_reduced,
    volatile_categories,
)


class RecommendationGenerator:
    """Runs every rule, orders by priority (high > medium > low) and caps the list."""

    def __init__(self, limit: Optional[int] = None, rules: Optional[Sequence[Rule]] = None):
        if limit is None:
            limit = settings.RECOMMENDATION_LIMIT
        if not MIN_LIMIT <= limit <= MAX_LIMIT:
            raise ValueError(f"Recommendation limit must be between {MIN_LIMIT} and {MAX_LIMIT}")
        self.limit = limit
        self.rules = tuple(rules) if rules is not None else tuple(DEFAULT_RULES)

    def generate(
        self,
        analysis: PatternAnalysis,
        statistics: Sequence[CategoryStatistics] = (),
    ) -> List[Recommendation]:
        recommendations: List[Recommendation] = []
        for rule in self.rules:
            recommendations.extend(rule(analysis, statistics))

        # sort() is stable, so rule order decides within a priority level
        recommendations.sort(key=lambda r: PRIORITY_ORDER[r.priority])

        logger.info(
            f"Generated {len(recommendations)} recommendations, returning top {self.limit}"
        )
        return recommendations[:self.limit]
