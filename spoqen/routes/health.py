# spoqen/routes/health.py
"""
Health check endpoints.
"""

from fastapi import APIRouter, Request

from spoqen.config import settings

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "spoqen-dashboard"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check.

    The Vapi credential is required for dashboard metrics; rate limiter
    table sizes are reported so runaway key growth is visible.
    """
    checks = {}

    checks["vapi"] = {
        "ok": bool(settings.VAPI_PRIVATE_KEY),
        "calls_url": settings.vapi_calls_url(),
    }
    if not settings.VAPI_PRIVATE_KEY:
        checks["vapi"]["error"] = "VAPI_PRIVATE_KEY not configured"

    limiters = getattr(request.app.state, "rate_limiters", None)
    if limiters is not None:
        tables = {}
        for limiter in limiters.all():
            stats = limiter.get_stats()
            tables[limiter.config.key_prefix] = {
                "total_entries": stats.total_entries,
                "last_cleanup": stats.last_cleanup,
            }

        checks["rate_limiters"] = {
            "ok": True,
            "enabled": settings.RATE_LIMIT_ENABLED,
            "tables": tables,
        }
    else:
        checks["rate_limiters"] = {"ok": False, "error": "Rate limiters not initialized"}

    overall_ok = all(check["ok"] for check in checks.values())
    return {"overall_ok": overall_ok, "checks": checks}
