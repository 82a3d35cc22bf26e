# src/main.py
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator
import uvicorn as uv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from core.config import settings
from db.database import create_tables, engine, disconnect_db
from utils.exception_handler import setup_exception_handlers
from utils.logger import configure_file_logging, setup_logger
from utils.rate_limiter import limiter
from routes import (
    identity_router,
    patients_router,
    providers_router,
    health_records_router,
    share_requests_router,
    stats_router,
)

if settings.ENVIRONMENT != "testing":
    configure_file_logging("app.log")

logger = setup_logger("SERVER")


async def check_db_connection() -> bool:
    """Check database connection health with proper cleanup"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create tables on startup, release the engine on shutdown"""
    logger.info("Starting Personal Health Record Service...")

    try:
        await create_tables()

        if await check_db_connection():
            logger.info("Database connection verified")

        logger.info("Application startup complete")
        yield

    except Exception as e:
        logger.error(f"Startup failed: {str(e)}")
        raise
    finally:
        logger.info("Closing database connection")
        await disconnect_db()
        logger.info("Shutting down application...")


app = FastAPI(
    title="Personal Health Record Service",
    description="Patient-owned health records with consent-based provider access",
    version=f"{settings.API_VERSION}.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# Rate limiting configuration; breaches are rendered by the exception handlers
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

# Exception handling
setup_exception_handlers(app)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining"],
)


app.include_router(identity_router, prefix=settings.API_PREFIX)
app.include_router(patients_router, prefix=settings.API_PREFIX)
app.include_router(providers_router, prefix=settings.API_PREFIX)
app.include_router(health_records_router, prefix=settings.API_PREFIX)
app.include_router(share_requests_router, prefix=settings.API_PREFIX)
app.include_router(stats_router, prefix=settings.API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "message": "Personal Health Record Service API",
        "status": "healthy",
        "version": app.version,
    }


@app.get("/health")
async def health_check():
    """Detailed health check endpoint"""
    db_healthy = await check_db_connection()
    return {
        "status": "healthy" if db_healthy else "degraded",
        "database": "connected" if db_healthy else "disconnected",
        "rate_limiting": "enabled" if settings.RATE_LIMIT_ENABLED else "disabled",
        "environment": settings.ENVIRONMENT,
    }


if __name__ == "__main__":
    # Configure reload directories more precisely
    watch_dirs = [
        os.path.join("core"),
        os.path.join("routes"),
        os.path.join("models"),
        os.path.join("schemas"),
        os.path.join("services"),
        os.path.join("utils"),
        os.path.join("db"),
    ]

    uv.run(
        "main:app",
        host=settings.UVICORN_HOST,
        port=settings.UVICORN_PORT,
        reload=settings.RELOAD,
        reload_dirs=watch_dirs,
        reload_excludes=["*.pyc", "*.tmp", "*.swp"],
        workers=1 if settings.RELOAD else settings.WORKERS_COUNT,
        log_level="info",
        access_log=True,
        timeout_graceful_shutdown=10,
    )
