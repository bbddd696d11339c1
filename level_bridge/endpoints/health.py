"""Health and readiness endpoints."""

import logging

from fastapi import APIRouter, HTTPException
from sqlalchemy import text

from common.db import get_engine

from ..bridge import get_bridge

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health")
def health():
    """Liveness: always returns ok if process is running."""
    bridge = get_bridge()
    if bridge is None:
        return {"status": "ok", "bridge": None}
    return {"status": "ok", "bridge": bridge.health_check()}


@router.get("/ping")
def ping():
    return {"status": "ok", "message": "pong"}


@router.get("/ready")
def ready():
    """Readiness: checks DB connectivity and that the bridge is running."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("[HEALTH] Readiness DB check failed")
        raise HTTPException(status_code=503, detail="not ready")

    bridge = get_bridge()
    if bridge is None or not bridge.is_running:
        raise HTTPException(status_code=503, detail="bridge not running")
    return {"status": "ready"}
