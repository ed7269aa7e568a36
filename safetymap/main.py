"""SafetyMap Africa: FastAPI app for incident reports with remote/local sync."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from safetymap.config import settings
from safetymap.pipelines.auto_scan import is_running as auto_scan_running
from safetymap.pipelines.auto_scan import start_auto_scan, stop_auto_scan
from safetymap.routers import admin, chat, reports, ws
from safetymap.services.sync_coordinator import build_coordinator, get_coordinator, set_coordinator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sync coordinator and its consumers; stop them on shutdown."""
    from safetymap.services.graph_db import GraphDatabase

    coordinator = build_coordinator()
    set_coordinator(coordinator)
    coordinator.add_snapshot_listener(ws.connection_manager.broadcast_snapshot)
    await coordinator.start()
    await start_auto_scan(coordinator, settings.auto_scan_interval_minutes)
    logger.info("SafetyMap backend started (backend: %s)", coordinator.backend_name)
    yield
    await stop_auto_scan()
    coordinator.stop()
    set_coordinator(None)
    GraphDatabase.get_instance().close()
    logger.info("SafetyMap backend stopped")


app = FastAPI(
    title="SafetyMap Africa",
    description="Situational-awareness incident map backend",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reports.router)
app.include_router(admin.router)
app.include_router(chat.router)
app.include_router(ws.router)


@app.get("/health")
async def health():
    """Health check."""
    coordinator = get_coordinator()
    return {
        "status": "ok",
        "backend": coordinator.backend_name,
        "phase": coordinator.state.phase.value,
        "offline_mode": coordinator.state.fallback_engaged,
        "auto_scan": auto_scan_running(),
    }
