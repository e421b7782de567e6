# app/routes/health.py
"""
Health check endpoints.
"""

from fastapi import APIRouter

from app.config import settings

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "comms-history"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check for remote API configuration.

    Graph tokens come from callers, so only the mailbox list is checked there.
    """
    checks = {
        "dialpad": {
            "ok": bool(settings.DIALPAD_BEARER_TOKEN),
            "base_url": settings.DIALPAD_API_BASE_URL,
        },
        "graph": {
            "ok": True,
            "base_url": settings.GRAPH_API_BASE_URL,
            "mailboxes_configured": len(settings.GRAPH_MAILBOXES),
        },
    }
    if not settings.DIALPAD_BEARER_TOKEN:
        checks["dialpad"]["error"] = "DIALPAD_BEARER_TOKEN not set"

    overall_ok = all(check["ok"] for check in checks.values())
    return {"overall_ok": overall_ok, "checks": checks}
