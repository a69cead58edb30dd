"""Health check endpoints."""

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from taskflow.config import get_settings
from taskflow.db.session import DBSession

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check(db: DBSession) -> dict[str, str]:
    """Liveness plus database reachability."""
    try:
        await db.execute(text("SELECT 1"))
        database = "healthy"
    except SQLAlchemyError as e:
        database = f"unhealthy: {e.__class__.__name__}"

    return {
        "status": "healthy" if database == "healthy" else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": database,
    }
