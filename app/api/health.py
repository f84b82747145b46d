import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import redis

from app.database import engine
from app.utils.cache import cache_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


def _check_database() -> tuple[bool, str]:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True, ""
    except SQLAlchemyError as e:
        logger.warning(f"Database readiness check failed: {e}")
        return False, str(e)


def _check_cache() -> tuple[bool, str]:
    if not cache_service.enabled:
        return True, "disabled"
    try:
        cache_service.client.ping()
        return True, ""
    except redis.RedisError as e:
        logger.warning(f"Redis readiness check failed: {e}")
        return False, str(e)


@router.get(
    "/",
    summary="Health check",
    description="Liveness check; does not touch any dependency."
)
def health_check():
    """Simple health check."""
    return {"status": "healthy"}


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check that the database and the Redis cache are reachable."
)
def readiness_check():
    """
    Readiness check for all dependencies.

    A disabled cache counts as ready.
    """
    checks = {}
    for name, check in (("database", _check_database), ("redis", _check_cache)):
        ok, detail = check()
        checks[name] = ok
        if detail:
            checks[f"{name}_detail"] = detail

    ready = checks["database"] and checks["redis"]
    return {
        "status": "ready" if ready else "not_ready",
        "checks": checks
    }


@router.get(
    "/cache/stats",
    summary="Cache statistics",
    description="Get Redis cache statistics."
)
def cache_stats():
    """Get cache statistics."""
    if not cache_service.enabled:
        return {"enabled": False}
    try:
        info = cache_service.client.info()
        return {
            "enabled": True,
            "connected_clients": info.get("connected_clients"),
            "used_memory": info.get("used_memory_human"),
            "total_keys": cache_service.client.dbsize(),
            "uptime_seconds": info.get("uptime_in_seconds")
        }
    except redis.RedisError as e:
        return {"enabled": True, "error": str(e)}
