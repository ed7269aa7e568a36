"""Reports router: GET/POST /api/reports, PATCH /api/reports/{report_id}/status."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from safetymap.models.report import Report, ReportCreate, ReportStatus, ReportsSnapshot, StatusUpdate
from safetymap.routers.admin import is_privileged, require_admin
from safetymap.services.sync_coordinator import SyncCoordinator, get_coordinator
from safetymap.utils.audit import log_action

router = APIRouter(prefix="/api", tags=["reports"])
logger = logging.getLogger(__name__)


@router.get("/reports", response_model=ReportsSnapshot)
async def list_reports(
    status: Optional[ReportStatus] = None,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Current snapshot, optionally only one moderation status (map views ask for verified)."""
    reports = await coordinator.current_reports()
    if status is not None:
        reports = [r for r in reports if r.status == status]
    return ReportsSnapshot(reports=reports, last_updated=coordinator.last_updated)


@router.post("/reports", response_model=Report, status_code=201)
async def submit_report(
    body: ReportCreate,
    x_access_code: Optional[str] = Header(default=None),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Manual submission. Pending for the public, verified when an admin submits it."""
    privileged = is_privileged(x_access_code)
    try:
        report = await coordinator.submit_report(body, privileged=privileged)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if privileged:
        log_action("admin", "report_submitted", report.id, backend=coordinator.backend_name)
    return report


@router.patch("/reports/{report_id}/status", status_code=204)
async def update_report_status(
    report_id: str,
    body: StatusUpdate,
    actor: str = Depends(require_admin),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Moderation. Dismissing deletes the report permanently."""
    await coordinator.update_status(report_id, body.status)
    log_action(actor, f"status_{body.status.value}", report_id, backend=coordinator.backend_name)
