"""API HTTP del bridge: salud, stats y recarga a demanda.

    uvicorn level_bridge.main:app
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .bridge import start_bridge, stop_bridge
from .endpoints.bridge import router as bridge_router
from .endpoints.health import router as health_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if os.getenv("BRIDGE_AUTOSTART", "true").strip().lower() in ("1", "true", "yes", "on"):
        start_bridge()
    else:
        logger.info("[BRIDGE] Autostart disabled by BRIDGE_AUTOSTART")
    try:
        yield
    finally:
        stop_bridge()


app = FastAPI(title="Level Bridge Service", version=__version__, lifespan=lifespan)
app.include_router(health_router)
app.include_router(bridge_router)
