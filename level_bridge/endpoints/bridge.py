"""Bridge control endpoints (reload / stats)."""

import logging

from fastapi import APIRouter, HTTPException

from ..bridge import Bridge, get_bridge
from .schemas import BridgeStatsOut, ReloadResult

router = APIRouter(prefix="/bridge", tags=["bridge"])
logger = logging.getLogger(__name__)


def _require_bridge() -> Bridge:
    bridge = get_bridge()
    if bridge is None:
        raise HTTPException(status_code=503, detail="bridge not running")
    return bridge


@router.post("/reload", response_model=ReloadResult)
def reload_bridge():
    """Resincroniza suscripciones tras un cambio de configuración."""
    bridge = _require_bridge()
    result = bridge.reload()
    if not result.ok:
        # No exponer detalles internos al cliente
        raise HTTPException(status_code=500, detail="reload failed")
    return ReloadResult(ok=True, sync=result.to_dict())


@router.get("/stats", response_model=BridgeStatsOut)
def bridge_stats():
    bridge = _require_bridge()
    try:
        return BridgeStatsOut(**bridge.stats.to_dict())
    except Exception:
        logger.exception("[BRIDGE] Stats failed")
        raise HTTPException(status_code=500, detail="stats unavailable")
