from __future__ import annotations

from fastapi import APIRouter

from proposal_engine.config import settings
from proposal_engine.version import APP_VERSION


router = APIRouter()


@router.get("/")
def root() -> dict[str, str]:
    return {"service": "proposal-engine", "status": "running", "version": APP_VERSION}


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "environment": settings.app_env}


@router.get("/ready")
def ready() -> dict[str, object]:
    # The engine holds no connections or caches, so readiness only reports config.
    return {
        "status": "ready",
        "environment": settings.app_env,
        "checks": {"engine": {"ok": True, "min_content_chars": settings.min_content_chars}},
    }
