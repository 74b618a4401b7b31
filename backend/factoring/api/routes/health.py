from fastapi import APIRouter
from sqlalchemy import text

from factoring.config import settings
from factoring.core.observability import uptime_seconds, utc_now_iso
from factoring.database import SessionLocal

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", summary="Healthcheck")
def healthcheck():
    """Liveness. Keep payload stable for monitoring systems."""
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "time": utc_now_iso(),
        "uptime_seconds": round(uptime_seconds(), 2),
        "version": getattr(settings, "build_version", None),
    }


@router.get("/db", summary="Database readiness")
def database_readiness():
    db = SessionLocal()
    try:
        db.execute(text("select 1"))
        return {"status": "ok"}
    finally:
        db.close()
