"""Admin router: access-code check, AI scan, AI cleanup, seeding, audit trail."""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from safetymap.config import settings
from safetymap.pipelines.auto_scan import scan_and_sync
from safetymap.services import ai
from safetymap.services.sync_coordinator import SyncCoordinator, get_coordinator
from safetymap.utils.audit import get_audit_log, log_action

router = APIRouter(prefix="/api", tags=["admin"])
logger = logging.getLogger(__name__)

ACCESS_CODE_HEADER = "X-Access-Code"


class AccessCheck(BaseModel):
    code: str


def is_privileged(code: Optional[str]) -> bool:
    """Shared-secret check. An unset admin code disables privileged access entirely."""
    if not settings.admin_access_code or not code:
        return False
    return hmac.compare_digest(code.encode(), settings.admin_access_code.encode())


async def require_admin(x_access_code: Optional[str] = Header(default=None)) -> str:
    if not is_privileged(x_access_code):
        raise HTTPException(status_code=403, detail="Access code required")
    return "admin"


@router.post("/admin/verify")
async def verify_access(body: AccessCheck):
    """Lets the UI unlock admin controls."""
    return {"valid": is_privileged(body.code)}


@router.post("/scan")
async def scan_threats(
    actor: str = Depends(require_admin),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Run an AI threat scan and ingest the unique results as verified reports."""
    try:
        scanned, added = await scan_and_sync(coordinator)
    except ai.ScanError as e:
        raise HTTPException(status_code=502, detail=f"Threat scan failed: {e}")
    log_action(actor, "scan", affected=added, backend=coordinator.backend_name)
    return {"scanned": scanned, "added": added, "backend": coordinator.backend_name}


@router.post("/cleanup")
async def cleanup_duplicates(
    actor: str = Depends(require_admin),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """AI-assisted duplicate removal. Always 0 on the local store."""
    removed = await coordinator.run_bulk_cleanup()
    log_action(actor, "cleanup", affected=removed, backend=coordinator.backend_name)
    return {"removed": removed, "backend": coordinator.backend_name}


@router.post("/seed")
async def seed_reports(
    actor: str = Depends(require_admin),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Insert the bootstrap incidents if the active store is empty. Idempotent."""
    seeded = await coordinator.seed_if_empty()
    log_action(actor, "seed", affected=int(seeded), backend=coordinator.backend_name)
    return {"status": "seeded" if seeded else "skipped", "backend": coordinator.backend_name}


@router.get("/admin/audit")
async def audit_trail(limit: int = 100, actor: str = Depends(require_admin)):
    return [e.as_dict() for e in get_audit_log(limit)]
