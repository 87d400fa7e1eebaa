from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn

from finsight.core.config import settings
from finsight.core.logging import setup_logging
from finsight.api.v1.router import api_router
from finsight.api.v1.deps import get_learning_store
from finsight.middleware.error_handler import ErrorHandlerMiddleware
from finsight.db.database import AsyncSessionLocal, init_db, close_db
from finsight.db.repository import load_learning_store, save_learning_store

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Insights Service...")
    try:
        await init_db()
    except Exception as e:
        logger.warning(f"Database initialization failed: {e}")

    store = get_learning_store()
    try:
        async with AsyncSessionLocal() as session:
            await load_learning_store(session, store)
    except Exception as e:
        logger.warning(f"Merchant memory not loaded, starting empty: {e}")
        store.reset()

    logger.info("Insights Service started successfully")
    yield
    logger.info("Shutting down Insights Service...")

    if settings.LEARNING_PERSIST_ON_SHUTDOWN:
        try:
            async with AsyncSessionLocal() as session:
                await save_learning_store(session, store)
        except Exception as e:
            logger.error(f"Failed to persist merchant memory: {e}", exc_info=True)

    try:
        await close_db()
    except Exception as e:
        logger.warning(f"Error closing database: {e}")
    logger.info("Insights Service shut down")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Transaction categorization and spending insights for FinSight",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(ErrorHandlerMiddleware)
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "running",
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info",
    )
