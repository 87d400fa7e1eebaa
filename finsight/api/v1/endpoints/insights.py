import logging
from fastapi import APIRouter, Depends, HTTPException, status as http_status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Callable, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime

from finsight.db.database import get_db
from finsight.db.repository import load_learning_store, save_learning_store
from finsight.core.config import settings
from finsight.api.v1.deps import CategorizerService, get_categorizer_service, get_learning_store
from finsight.ml.anomaly_detector import SpendingAnomalyDetector
from finsight.ml.budget_advisor import BudgetAdvisor
from finsight.ml.insights_engine import InsightsEngine
from finsight.ml.merchant_memory import MerchantLearningStore
from finsight.ml.pattern_analyzer import SpendingPatternAnalyzer
from finsight.ml.recommendations import RecommendationGenerator
from finsight.ml.schemas import (
    AnalysisReport,
    Anomaly,
    BudgetSuggestion,
    MerchantMemory,
    PatternAnalysis,
    Recommendation,
    Transaction,
    TransactionCategory,
)
from finsight.ml.metrics import metrics

logger = logging.getLogger(__name__)
router = APIRouter()


class TransactionsRequest(BaseModel):
    """Request model carrying a transaction window."""
    transactions: List[Transaction] = Field(default_factory=list, max_length=10000)
    window_days: Optional[int] = Field(
        default=None,
        ge=1,
        le=365,
        description="Days before the latest transaction to analyze (1-365); all when omitted"
    )


class CategorizeRequest(BaseModel):
    transactions: List[Transaction] = Field(..., max_length=10000)
    learn: bool = Field(default=True, description="Feed decisions into merchant memory")


class CategorizeResponse(BaseModel):
    transactions: List[Transaction]
    learned_merchants: int


class ClassifyRequest(BaseModel):
    """Request model for classifying free text."""
    text: str = Field(default="", max_length=2000)
    merchant: Optional[str] = Field(default=None, max_length=255)
    amount: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)


class ClassifyResponse(BaseModel):
    category: TransactionCategory
    score: float
    scores: Dict[TransactionCategory, float]
    keywords: List[Dict[str, Any]]
    learned: bool


class AnomalyResponse(BaseModel):
    anomalies: List[Anomaly]
    messages: List[str]
    status: str
    statusMessage: str


class TeachRequest(BaseModel):
    merchant: str = Field(..., min_length=1, max_length=255)
    category: TransactionCategory

    @field_validator('merchant')
    @classmethod
    def validate_merchant(cls, v):
        """Reject merchants that are only whitespace."""
        if not v.strip():
            raise ValueError('merchant must not be blank')
        return v


class KeywordRequest(BaseModel):
    category: TransactionCategory
    keyword: str = Field(..., min_length=1, max_length=100)
    remove: bool = False


def _run(operation: str, transactions: List[Transaction], func: Callable[[], Any], anomalies=None):
    """Run an engine call, recording metrics and turning failures into 500s."""
    start_time = datetime.utcnow()
    try:
        result = func()
    except Exception as e:
        processing_time = (datetime.utcnow() - start_time).total_seconds()
        metrics.record_run(operation, len(transactions), processing_time, success=False)
        logger.error(f"Unexpected error in {operation}: {e}", exc_info=True)
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"An unexpected error occurred during {operation.replace('_', ' ')}"
        )

    processing_time = (datetime.utcnow() - start_time).total_seconds()
    metrics.record_run(
        operation,
        len(transactions),
        processing_time,
        anomalies_count=anomalies(result) if anomalies else 0,
    )
    return result


@router.get(
    "/status",
    summary="Service health status",
    description="Returns the operational status, metrics and configuration of the insights service"
)
async def insights_status(store: MerchantLearningStore = Depends(get_learning_store)):
    """Get service status and metrics."""
    return {
        "status": "operational",
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "features": {
            "categorization": "available",
            "merchant_learning": "available",
            "anomaly_detection": "available",
            "pattern_analysis": "available",
            "recommendations": "available",
        },
        "metrics": metrics.get_stats(),
        "learning": store.stats(),
        "configuration": {
            "min_samples": settings.ANOMALY_MIN_SAMPLES,
            "zscore_threshold": settings.ANOMALY_ZSCORE_THRESHOLD,
            "mean_multiplier": settings.ANOMALY_MEAN_MULTIPLIER,
            "merchant_frequency": settings.ANOMALY_MERCHANT_FREQUENCY,
            "learning_min_confidence": settings.LEARNING_MIN_CONFIDENCE,
            "learning_min_frequency": settings.LEARNING_MIN_FREQUENCY,
            "recommendation_limit": settings.RECOMMENDATION_LIMIT,
        }
    }


@router.post(
    "/categorize",
    response_model=CategorizeResponse,
    summary="Categorize transactions",
    description="Assigns a category to every transaction using merchant memory and keyword rules"
)
async def categorize_transactions(
    request: CategorizeRequest,
    service: CategorizerService = Depends(get_categorizer_service),
):
    if request.learn:
        categorizer = service.categorizer
        categorized = _run(
            "categorization", request.transactions,
            lambda: categorizer.categorize_many(request.transactions),
        )
    else:
        matcher = service.matcher
        categorized = _run(
            "categorization", request.transactions,
            lambda: [
                t.with_category(matcher.classify(t.description or t.raw_text, t.merchant, t.amount))
                for t in request.transactions
            ],
        )

    return CategorizeResponse(transactions=categorized, learned_merchants=len(service.store))


@router.post(
    "/classify",
    response_model=ClassifyResponse,
    summary="Classify a description",
    description="Classifies free text, merchant and amount into a category without learning"
)
async def classify_text(
    request: ClassifyRequest,
    service: CategorizerService = Depends(get_categorizer_service),
):
    learned = service.store.lookup(request.merchant) if request.merchant else None
    matcher = service.matcher
    category, score = matcher.best_match(request.text, request.merchant, request.amount)

    return ClassifyResponse(
        category=learned or category,
        score=round(score, 4),
        scores={c: round(s, 4) for c, s in matcher.scores(request.text, request.merchant, request.amount).items()},
        keywords=matcher.top_keywords(request.text),
        learned=learned is not None,
    )


@router.post(
    "/anomalies",
    response_model=AnomalyResponse,
    summary="Detect spending anomalies",
    description="Flags unusually large debits and unusually frequent merchants",
    responses={
        200: {"description": "Anomaly detection completed successfully"},
        422: {"description": "Invalid request parameters"},
        500: {"description": "Internal server error"}
    }
)
async def detect_anomalies(request: TransactionsRequest):
    detector = SpendingAnomalyDetector()
    anomalies, status = _run(
        "anomaly_detection", request.transactions,
        lambda: detector.detect_with_status(request.transactions),
        anomalies=lambda result: len(result[0]),
    )

    status_messages = {
        'sufficient_data': '',
        'insufficient_data': (
            'Not enough transaction data to analyze. '
            f'Each category needs at least {detector.min_samples} transactions.'
        ),
    }

    return AnomalyResponse(
        anomalies=anomalies,
        messages=[detector.format_message(a) for a in anomalies],
        status=status,
        statusMessage=status_messages.get(status, ''),
    )


@router.post(
    "/patterns",
    response_model=PatternAnalysis,
    summary="Analyze spending patterns",
)
async def analyze_patterns(request: TransactionsRequest):
    analyzer = SpendingPatternAnalyzer()
    return _run(
        "pattern_analysis", request.transactions,
        lambda: analyzer.analyze(request.transactions, window_days=request.window_days),
    )


@router.post(
    "/recommendations",
    response_model=List[Recommendation],
    summary="Generate recommendations",
)
async def generate_recommendations(request: TransactionsRequest):
    analyzer = SpendingPatternAnalyzer()
    detector = SpendingAnomalyDetector()
    generator = RecommendationGenerator()

    def generate():
        analysis = analyzer.analyze(request.transactions, window_days=request.window_days)
        window = analyzer.window(request.transactions, request.window_days)
        return generator.generate(analysis, detector.category_statistics(window))

    return _run("recommendations", request.transactions, generate)


@router.post(
    "/report",
    response_model=AnalysisReport,
    summary="Full spending analysis",
    description="Predictions, anomalies, recommendations, insights, habits and risk score in one report"
)
async def analysis_report(request: TransactionsRequest):
    engine = InsightsEngine()
    return _run(
        "report", request.transactions,
        lambda: engine.analyze(request.transactions, window_days=request.window_days),
        anomalies=lambda report: len(report.anomalies),
    )


@router.post(
    "/budgets",
    response_model=List[BudgetSuggestion],
    summary="Suggest monthly budgets",
)
async def suggest_budgets(request: TransactionsRequest):
    advisor = BudgetAdvisor()
    return _run("budget_suggestions", request.transactions, lambda: advisor.suggest(request.transactions))


@router.post("/learning/teach", response_model=MerchantMemory)
async def teach_merchant(
    request: TeachRequest,
    store: MerchantLearningStore = Depends(get_learning_store),
):
    entry = store.teach(request.merchant, request.category)
    if entry is None:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail="Merchant name is required"
        )
    return entry


@router.get("/learning/stats", response_model=Dict[str, Any])
async def learning_stats(store: MerchantLearningStore = Depends(get_learning_store)):
    return store.stats()


@router.get("/learning/merchants", response_model=List[MerchantMemory])
async def learned_merchants(store: MerchantLearningStore = Depends(get_learning_store)):
    return store.entries()


@router.post("/learning/flush", response_model=Dict[str, Any])
async def flush_learning(
    db: AsyncSession = Depends(get_db),
    store: MerchantLearningStore = Depends(get_learning_store),
):
    saved = await save_learning_store(db, store)
    return {"status": "flushed", "merchants": saved}


@router.post("/learning/reload", response_model=Dict[str, Any])
async def reload_learning(
    db: AsyncSession = Depends(get_db),
    store: MerchantLearningStore = Depends(get_learning_store),
):
    await load_learning_store(db, store)
    return {"status": "reloaded", "merchants": len(store)}


@router.post("/learning/reset", response_model=Dict[str, Any])
async def reset_learning(store: MerchantLearningStore = Depends(get_learning_store)):
    store.reset()
    return {"status": "reset", "merchants": 0}


@router.post("/rules/keywords", response_model=Dict[str, Any])
async def update_keywords(
    request: KeywordRequest,
    service: CategorizerService = Depends(get_categorizer_service),
):
    if request.remove:
        rules = service.remove_keyword(request.category, request.keyword)
    else:
        rules = service.add_keyword(request.category, request.keyword)

    return {
        "category": request.category,
        "keywords": list(rules.keywords_for(request.category)),
    }
