from fastapi import APIRouter
from finsight.api.v1.endpoints import health, insights

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(insights.router, prefix="/insights", tags=["insights"])
