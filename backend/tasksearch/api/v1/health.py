"""Health check endpoints."""

from fastapi import APIRouter
from sqlalchemy import text

from tasksearch.config import get_settings
from tasksearch.db.session import DBSession

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(db: DBSession) -> dict[str, str | dict[str, str]]:
    """Readiness check including database connectivity and search mode."""
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    overall_status = "healthy" if all(v == "healthy" for v in checks.values()) else "unhealthy"

    return {
        "status": overall_status,
        "version": settings.app_version,
        "checks": checks,
        "search": {
            "semantic": "enabled" if settings.semantic_search_enabled else "disabled",
            "embedding_provider": settings.embedding_provider,
            "keyword_fallback": "allowed" if settings.allow_keyword_fallback else "disabled",
        },
    }
