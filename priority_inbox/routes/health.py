"""
Health check endpoints with database pool and rule set status.
"""

import time

from fastapi import APIRouter, Request

from priority_inbox.config import settings
from priority_inbox.db.pool import db_health_check

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "priority-inbox"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check covering the database pool and the loaded rule set.
    """
    checks = {}
    overall_ok = True

    # 1) Database pool
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)

        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }

        if "pool_stats" in db_health:
            pool_stats = db_health["pool_stats"]
            checks["database"].update(
                {
                    "pool_size": pool_stats.get("pool_size", 0),
                    "pool_available": pool_stats.get("pool_available", 0),
                    "pool_utilization_percent": pool_stats.get("pool_utilization_percent", 0),
                }
            )

        if "warnings" in db_health:
            checks["database"]["warnings"] = db_health["warnings"]

        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")

        overall_ok = overall_ok and is_healthy

    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 2) Rule set
    config = getattr(request.app.state, "priority_config", None)
    rules_ok = config is not None
    checks["rules"] = {
        "ok": rules_ok,
        "path": str(settings.rules_path()),
        "version": config.version if config else None,
        "classification_rules": len(config.classification_rules) if config else 0,
    }
    overall_ok = overall_ok and rules_ok

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
