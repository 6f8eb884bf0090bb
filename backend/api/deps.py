"""
LedgerPulse API Dependencies

Dependency injection for the refresh scheduler and the change feed that
the app lifespan builds and parks on app.state.
"""

from fastapi import HTTPException, Request, status

from dashboard.scheduler import RefreshScheduler
from dashboard.triggers import LocalChangeEventSource


def get_scheduler(request: Request) -> RefreshScheduler:
    """Return the running scheduler, or 503 while the app is starting/stopping."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None or scheduler.disposed:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dashboard refresh engine is not running",
        )
    return scheduler


def get_change_source(request: Request) -> LocalChangeEventSource:
    change_source = getattr(request.app.state, "change_source", None)
    if change_source is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Change feed is not available",
        )
    return change_source
