"""WebSocket router: /ws/reports streams report snapshots."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from safetymap.models.report import Report
from safetymap.services.sync_coordinator import get_coordinator

router = APIRouter(tags=["ws"])
logger = logging.getLogger(__name__)


def snapshot_message(reports: list[Report], last_updated: Optional[int]) -> dict[str, Any]:
    return {
        "type": "snapshot",
        "reports": [r.to_document() for r in reports],
        "lastUpdated": last_updated,
    }


@dataclass
class ConnectionManager:
    """Open /ws/reports sockets."""

    connections: set[Any] = field(default_factory=set)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def connect(self, websocket: Any) -> None:
        async with self._lock:
            self.connections.add(websocket)

    async def disconnect(self, websocket: Any) -> None:
        async with self._lock:
            self.connections.discard(websocket)

    async def broadcast(self, message: dict[str, Any]) -> None:
        dead: set[Any] = set()
        async with self._lock:
            conns = set(self.connections)
        for ws in conns:
            try:
                await ws.send_json(message)
            except Exception:
                dead.add(ws)
        for ws in dead:
            async with self._lock:
                self.connections.discard(ws)

    async def broadcast_snapshot(self, reports: list[Report], last_updated: Optional[int]) -> None:
        await self.broadcast(snapshot_message(reports, last_updated))


connection_manager = ConnectionManager()


@router.websocket("/ws/reports")
async def ws_reports(websocket: WebSocket):
    """On connect send the current snapshot; then one message per committed change."""
    await websocket.accept()
    await connection_manager.connect(websocket)
    try:
        coordinator = get_coordinator()
        reports = await coordinator.current_reports()
        await websocket.send_json(snapshot_message(reports, coordinator.last_updated))
        while True:
            try:
                _ = await websocket.receive_text()
            except WebSocketDisconnect:
                break
    finally:
        await connection_manager.disconnect(websocket)
