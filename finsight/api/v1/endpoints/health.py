import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from datetime import datetime
from typing import Dict, Any

from finsight.db.database import get_db
from finsight.core.config import settings
from finsight.api.v1.deps import CategorizerService, get_categorizer_service
from finsight.ml.metrics import metrics

logger = logging.getLogger(__name__)
router = APIRouter()


def _service_info() -> Dict[str, Any]:
    return {
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "timestamp": datetime.utcnow().isoformat(),
    }


async def _database_check(db: AsyncSession) -> Dict[str, Any]:
    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        return {"status": "connected"}
    except Exception as e:
        logger.warning(f"Readiness database check failed: {e}")
        return {"status": "disconnected", "error": str(e)}


@router.get("/", response_model=Dict[str, Any])
async def health_check():
    return {"status": "healthy", **_service_info()}


@router.get("/ready", response_model=Dict[str, Any])
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    service: CategorizerService = Depends(get_categorizer_service),
):
    """Ready when the database answers and the active rule set is not empty."""
    database = await _database_check(db)
    learning = service.store.stats()

    checks = {
        "database": database["status"],
        "rules": "loaded" if len(service.rules) else "empty",
    }
    ready = database["status"] == "connected" and checks["rules"] == "loaded"

    payload = {
        "status": "ready" if ready else "not_ready",
        **_service_info(),
        "checks": checks,
        "database": database["status"],
        "rule_count": len(service.rules),
        "merchants_learned": learning["total_merchants"],
        "trusted_merchants": learning["trusted_merchants"],
        "runs": metrics.total_requests,
    }
    if "error" in database:
        payload["error"] = database["error"]
    return payload


@router.get("/live", response_model=Dict[str, Any])
async def liveness_check():
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
    }
