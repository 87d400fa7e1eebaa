"""
Domain types shared by the categorization and insight engines.

Transactions are supplied by the caller and never mutated; every other
model here is derived from a transaction window (plus merchant memory)
and can be recomputed at any time.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransactionCategory(str, Enum):
    FOOD = "Food"
    TRANSPORT = "Transport"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    BILLS = "Bills"
    TRANSFER = "Transfer"
    OTHER = "Other"


class Direction(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class PaymentMethod(str, Enum):
    UPI = "UPI"
    CARD = "Card"
    NET_BANKING = "Net Banking"
    CASH = "Cash"
    WALLET = "Wallet"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class AnomalyType(str, Enum):
    UNUSUAL_SPENDING = "unusualSpending"
    MERCHANT_FREQUENCY = "merchantFrequency"


class Transaction(BaseModel):
    """A single bank/UPI movement as supplied by the transaction store."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    description: str = Field(default="", max_length=2000)
    category: TransactionCategory = TransactionCategory.OTHER
    date: datetime
    direction: Direction = Direction.DEBIT
    merchant: Optional[str] = Field(default=None, max_length=255)
    method: PaymentMethod = PaymentMethod.UPI
    raw_text: Optional[str] = Field(default=None, max_length=5000)

    @property
    def is_debit(self) -> bool:
        return self.direction == Direction.DEBIT

    def with_category(self, category: TransactionCategory) -> "Transaction":
        return self.model_copy(update={"category": category})


class MerchantMemory(BaseModel):
    merchant_key: str
    merchant: str
    category: TransactionCategory
    confidence: float = Field(..., ge=0.0, le=1.0)
    frequency: int = Field(..., ge=1)


class CategoryStatistics(BaseModel):
    category: TransactionCategory
    mean: float
    standard_deviation: float
    count: int
    sample_amounts: List[float] = Field(default_factory=list)

    @property
    def coefficient_of_variation(self) -> float:
        return self.standard_deviation / self.mean if self.mean > 0 else 0.0


class Anomaly(BaseModel):
    id: str
    type: AnomalyType
    severity: Severity
    category: Optional[TransactionCategory] = None
    amount: Optional[float] = None
    z_score: Optional[float] = None
    confidence: float
    description: str
    recommendation: str
    transaction_id: Optional[str] = None
    merchant: Optional[str] = None


class Recommendation(BaseModel):
    id: str
    title: str
    description: str
    priority: Priority
    type: str = "budget"
    category: Optional[TransactionCategory] = None
    potential_savings: Optional[float] = None
    action_items: List[str] = Field(default_factory=list)


class CategorySpending(BaseModel):
    category: TransactionCategory
    amount: float
    count: int
    percentage: float


class WeekendSkew(BaseModel):
    weekend_total: float = 0.0
    weekday_total: float = 0.0
    ratio: Optional[float] = None  # None when there is no weekday spending
    weekend_percentage: float = 0.0
    is_high: bool = False


class MerchantSummary(BaseModel):
    merchant: str
    count: int
    total: float


class MonthlyChange(BaseModel):
    current_month: str
    previous_month: str
    current_total: float
    previous_total: float
    percentage_change: float


class PatternAnalysis(BaseModel):
    window_days: Optional[int] = None
    trend_by_category: Dict[TransactionCategory, Trend] = Field(default_factory=dict)
    concentration_ratios: List[CategorySpending] = Field(default_factory=list)
    weekend_skew: WeekendSkew = Field(default_factory=WeekendSkew)
    top_merchant: Optional[MerchantSummary] = None
    merchant_frequency: Dict[str, int] = Field(default_factory=dict)
    frequent_merchants: List[MerchantSummary] = Field(default_factory=list)
    monthly_change: Optional[MonthlyChange] = None
    total_spending: float = 0.0
    total_income: float = 0.0
    savings_rate: Optional[float] = None

    def share_of(self, category: TransactionCategory) -> Optional[CategorySpending]:
        for entry in self.concentration_ratios:
            if entry.category == category:
                return entry
        return None


class SpendingPrediction(BaseModel):
    category: TransactionCategory
    predicted_amount: float
    confidence: float
    trend: Trend
    factors: List[str] = Field(default_factory=list)


class SpendingHabits(BaseModel):
    peak_spending_hour: int = 12
    peak_spending_day: str = "Saturday"
    average_transaction_amount: float = 0.0
    most_frequent_category: TransactionCategory = TransactionCategory.OTHER
    spending_consistency: str = "consistent"


class BudgetSuggestion(BaseModel):
    category: TransactionCategory
    suggested_budget: float
    current_spending: float
    confidence: float
    alert_threshold: int
    reasoning: str


class FinancialInsight(BaseModel):
    id: str
    type: str
    title: str
    description: str
    impact: str  # positive, negative, neutral
    actionable: bool = True


class AnalysisReport(BaseModel):
    predictions: List[SpendingPrediction] = Field(default_factory=list)
    anomalies: List[Anomaly] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    insights: List[FinancialInsight] = Field(default_factory=list)
    patterns: PatternAnalysis = Field(default_factory=PatternAnalysis)
    habits: SpendingHabits = Field(default_factory=SpendingHabits)
    risk_score: int = 0
    savings_opportunity: float = 0.0
