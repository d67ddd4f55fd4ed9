from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portfolio_ai.routers import chat, jd_match, knowledge, retrieval
from portfolio_ai.utils.logging_config import configure_for_environment, get_logger
from portfolio_ai.middleware.error_handlers import (
    ExceptionHandlerMiddleware,
    RequestLoggingMiddleware,
    PerformanceMiddleware,
)
from portfolio_ai.services.db import get_capabilities, init_indexes, resolve_capabilities, set_capabilities, StoreCapabilities
from portfolio_ai.utils.exceptions import SchemaDriftError

configure_for_environment()
logger = get_logger(__name__)


async def pin_capabilities():
    """Resolve store capabilities; vector drift degrades to the local scan, anything else to the safe defaults."""
    try:
        try:
            await resolve_capabilities()
        except SchemaDriftError as e:
            logger.warning(f"{e.message}; falling back to local vector scan")
            await resolve_capabilities(force_local=True)
    except Exception as e:
        logger.warning(f"Could not inspect chunk store, using conservative capabilities: {e}")
        set_capabilities(StoreCapabilities(vector_search=False, text_index=False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create indexes and probe store capabilities before serving."""
    logger.info("Portfolio AI API starting up...")

    try:
        await init_indexes()
    except Exception as e:
        logger.warning(f"Index creation failed, continuing without it: {e}")

    await pin_capabilities()

    logger.info("Portfolio AI API startup completed")
    yield
    logger.info("Portfolio AI API shutting down...")


app = FastAPI(title="Portfolio AI API", version="1.0.0", lifespan=lifespan)

# added last runs outermost
app.add_middleware(PerformanceMiddleware, slow_request_threshold=2.0)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(ExceptionHandlerMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
@app.head("/")
async def root():
    return {"message": "Welcome to the Portfolio AI API", "version": "1.0.0", "status": "ok"}


@app.get("/health")
@app.head("/health")
async def health_check():
    """Liveness plus the resolved chunk-store capabilities"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "store": get_capabilities().to_dict(),
    }


app.include_router(retrieval.router, prefix="/api", tags=["retrieval"])
app.include_router(chat.router, prefix="/api", tags=["chat"])
app.include_router(jd_match.router, prefix="/api", tags=["jd-match"])
app.include_router(knowledge.router, prefix="/api/admin", tags=["admin"])
