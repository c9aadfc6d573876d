"""
Health check endpoints with storage backend monitoring.
"""

import time

from fastapi import APIRouter, Depends

from reviewreply.config import settings
from reviewreply.db.pool import db_health_check
from reviewreply.repositories.base import Store
from reviewreply.routes.dependencies import store_dependency

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "reviewreply-backend"}


@router.get("/readyz")
async def readyz(store: Store = Depends(store_dependency)):
    """
    Readiness check for the storage backend and required configuration.
    """
    checks = {}
    overall_ok = True

    # 1) Storage
    t0 = time.time()
    if store.backend == "postgres":
        try:
            db_health = await db_health_check()
            is_healthy = db_health.get("healthy", False)
            checks["database"] = {
                "ok": is_healthy,
                "latency_ms": round((time.time() - t0) * 1000, 1),
            }
            if "pool_stats" in db_health:
                checks["database"]["pool_stats"] = db_health["pool_stats"]
            if "warnings" in db_health:
                checks["database"]["warnings"] = db_health["warnings"]
            if not is_healthy:
                checks["database"]["error"] = db_health.get("error", "Database unhealthy")
            overall_ok = overall_ok and is_healthy
        except Exception as e:
            checks["database"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
            overall_ok = False
    else:
        checks["storage"] = {"ok": True, "backend": store.backend, "data_dir": settings.DATA_DIR}

    # 2) Configuration
    config_issues = []
    if not settings.OPENAI_API_KEY:
        config_issues.append("OPENAI_API_KEY not set")
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        config_issues.append("GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET not set")

    config_ok = not config_issues
    checks["configuration"] = {
        "ok": config_ok,
        "issues": config_issues or None,
        "environment": settings.environment,
        "auto_reply_enabled": settings.AUTO_REPLY_ENABLED,
        "campaigns_available": store.backend == "postgres",
    }
    overall_ok = overall_ok and config_ok

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
