"""
LedgerPulse API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings
from dashboard.scheduler import RefreshScheduler
from dashboard.triggers import AsyncioIntervalTimer, LocalChangeEventSource
from ledger.base import build_ledger_client

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("LedgerPulse API starting up", version=settings.app_version, ledger=settings.ledger_backend)
    ledger = build_ledger_client(settings)
    change_source = LocalChangeEventSource()
    scheduler = RefreshScheduler.from_settings(
        settings,
        ledger,
        timer=AsyncioIntervalTimer(settings.refresh_interval_seconds),
        change_source=change_source,
    )
    app.state.change_source = change_source
    app.state.scheduler = scheduler
    await scheduler.start()
    try:
        yield
    finally:
        await scheduler.aclose()
        await ledger.close()
        logger.info("LedgerPulse API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Live supply-chain KPIs from an append-only ledger",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import dashboard

app.include_router(dashboard.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for Cloud Run / load balancers."""
    scheduler = getattr(app.state, "scheduler", None)
    return {
        "status": "healthy",
        "version": settings.app_version,
        "refresh_state": scheduler.state.value if scheduler is not None else "stopped",
    }
