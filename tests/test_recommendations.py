"""
Tests for the recommendation rules and their ordering.
"""
import pytest

from finsight.ml.recommendations import RecommendationGenerator
from finsight.ml.schemas import (
    CategorySpending,
    CategoryStatistics,
    MonthlyChange,
    PatternAnalysis,
    Priority,
    Trend,
    TransactionCategory as C,
    WeekendSkew,
)


def share(category, percentage, amount=None, count=1):
    return CategorySpending(
        category=category,
        amount=amount if amount is not None else percentage * 100,
        count=count,
        percentage=percentage,
    )


@pytest.fixture
def generator():
    return RecommendationGenerator(limit=8)


def ids(recommendations):
    return [r.id for r in recommendations]


def test_no_signals_no_recommendations(generator):
    assert generator.generate(PatternAnalysis()) == []


def test_high_category_share(generator):
    analysis = PatternAnalysis(concentration_ratios=[share(C.SHOPPING, 60), share(C.BILLS, 40)])

    recommendations = generator.generate(analysis)

    assert ids(recommendations) == ["high-category-Shopping", "high-category-Bills"]
    assert all(r.priority == Priority.HIGH for r in recommendations)


def test_share_at_threshold_is_not_flagged(generator):
    analysis = PatternAnalysis(concentration_ratios=[share(C.SHOPPING, 35), share(C.BILLS, 65)])
    assert "high-category-Shopping" not in ids(generator.generate(analysis))


def test_food_savings_estimate(generator):
    analysis = PatternAnalysis(concentration_ratios=[share(C.FOOD, 30, amount=6000), share(C.BILLS, 70)])

    food = next(r for r in generator.generate(analysis) if r.id == "savings-Food")

    assert food.priority == Priority.HIGH
    assert food.potential_savings == 1200
    assert food.action_items


@pytest.mark.parametrize(
    "category, percentage, priority, savings",
    [
        (C.TRANSPORT, 21, Priority.MEDIUM, 315),
        (C.ENTERTAINMENT, 16, Priority.LOW, 400),
    ],
)
def test_category_savings_priorities(generator, category, percentage, priority, savings):
    analysis = PatternAnalysis(concentration_ratios=[share(category, percentage)])

    recommendation = next(r for r in generator.generate(analysis) if r.id == f"savings-{category.value}")

    assert recommendation.priority == priority
    assert recommendation.potential_savings == savings


def test_increasing_trend(generator):
    analysis = PatternAnalysis(trend_by_category={C.FOOD: Trend.INCREASING, C.BILLS: Trend.STABLE})
    recommendations = generator.generate(analysis)
    assert ids(recommendations) == ["trend-Food"]
    assert recommendations[0].priority == Priority.MEDIUM


def test_frequent_food_orders(generator):
    analysis = PatternAnalysis(concentration_ratios=[share(C.FOOD, 20, count=21)])
    assert "food-delivery-optimization" in ids(generator.generate(analysis))


def test_ride_share_usage_counts_all_providers(generator):
    analysis = PatternAnalysis(merchant_frequency={"Uber": 10, "Ola Cabs": 6, "Amazon": 30})
    assert ids(generator.generate(analysis)) == ["transport-optimization"]

    analysis = PatternAnalysis(merchant_frequency={"Uber": 10, "Rapido": 5})
    assert generator.generate(analysis) == []


def test_weekend_spending(generator):
    analysis = PatternAnalysis(weekend_skew=WeekendSkew(weekend_percentage=45, is_high=True))
    recommendations = generator.generate(analysis)
    assert ids(recommendations) == ["weekend-spending"]
    assert recommendations[0].priority == Priority.LOW


@pytest.mark.parametrize(
    "rate, expected",
    [
        (0.1, ["improve-savings-rate"]),
        (-0.5, ["improve-savings-rate"]),
        (0.25, []),
        (0.4, ["start-investing"]),
        (None, []),
    ],
)
def test_savings_rate(generator, rate, expected):
    assert ids(generator.generate(PatternAnalysis(savings_rate=rate))) == expected


def test_reduced_spending_is_acknowledged(generator):
    change = MonthlyChange(
        current_month="2024-06", previous_month="2024-05",
        current_total=800, previous_total=1000, percentage_change=-20,
    )
    assert ids(generator.generate(PatternAnalysis(monthly_change=change))) == ["positive-trend"]


def test_volatile_category_statistics(generator):
    statistics = [
        CategoryStatistics(category=C.SHOPPING, mean=1000, standard_deviation=800, count=6),
        CategoryStatistics(category=C.BILLS, mean=1000, standard_deviation=100, count=6),
    ]
    assert ids(generator.generate(PatternAnalysis(), statistics)) == ["volatile-Shopping"]


def test_sorted_by_priority_and_truncated():
    analysis = PatternAnalysis(
        concentration_ratios=[share(C.FOOD, 40, count=25), share(C.TRANSPORT, 30), share(C.ENTERTAINMENT, 30)],
        trend_by_category={C.FOOD: Trend.INCREASING, C.TRANSPORT: Trend.INCREASING},
        weekend_skew=WeekendSkew(weekend_percentage=50, is_high=True),
        savings_rate=0.05,
    )

    full = RecommendationGenerator(limit=8).generate(analysis)
    short = RecommendationGenerator(limit=4).generate(analysis)

    order = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}
    assert [order[r.priority] for r in full] == sorted(order[r.priority] for r in full)
    assert len(full) == 8
    assert ids(short) == ids(full)[:4]
    assert ids(short) == [
        "high-category-Food",
        "savings-Food",
        "improve-savings-rate",
        "savings-Transport",
    ]


@pytest.mark.parametrize("limit", [3, 9])
def test_limit_out_of_range(limit):
    with pytest.raises(ValueError):
        RecommendationGenerator(limit=limit)


def test_zero_limit_is_rejected():
    with pytest.raises(ValueError):
        RecommendationGenerator(limit=0)
