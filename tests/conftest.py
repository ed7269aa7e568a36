"""Shared fixtures: report factory, in-memory store, temp local store."""
import asyncio
from typing import Optional, Sequence

import pytest

from safetymap.event_bus import ChangeChannel, reset_channels
from safetymap.models.report import Coordinates, Report, ReportStatus, Severity, ZoneType
from safetymap.services.local_store import LocalStore
from safetymap.services.normalize import now_ms
from safetymap.services.store_base import BackendError, PersistenceBackend
from safetymap.utils.audit import clear_audit_log

HOUR_MS = 60 * 60 * 1000


def make_report(
    title: str = "Abduction in X",
    description: str = "Gunmen abducted travellers on the highway.",
    lat: float = 10.0,
    lng: float = 7.0,
    ztype: ZoneType = ZoneType.SUSPECTED_KIDNAPPING,
    timestamp: Optional[int] = None,
    id: Optional[str] = None,
    status: ReportStatus = ReportStatus.VERIFIED,
    **extra,
) -> Report:
    return Report(
        id=id,
        type=ztype,
        title=title,
        description=description,
        position=Coordinates(lat=lat, lng=lng),
        radius=2000,
        timestamp=now_ms() if timestamp is None else timestamp,
        severity=Severity.HIGH,
        status=status,
        **extra,
    )


class MemoryStore(PersistenceBackend):
    """
    In-memory backend with switches for the failure modes the coordinator
    must survive: a snapshot that never arrives, snapshot errors, failing writes.
    """

    def __init__(self, name: str = "memory", reports: Sequence[Report] = ()) -> None:
        super().__init__(ChangeChannel(name))
        self.name = name
        self.reports: list[Report] = list(reports)
        self.last_updated: Optional[int] = None
        self.gate: Optional[asyncio.Event] = None
        self.snapshot_error: Optional[BackendError] = None
        self.fail_writes = False
        self.write_calls = 0
        self.snapshot_reads = 0

    @property
    def channel(self) -> ChangeChannel:
        return self._channel

    async def load_snapshot(self, initial: bool = False):
        self.snapshot_reads += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.snapshot_error is not None:
            raise self.snapshot_error
        return list(self.reports), self.last_updated

    async def fetch_reports(self, since_ms=None):
        if since_ms is None:
            return list(self.reports)
        return [r for r in self.reports if r.timestamp > since_ms]

    def _check_write(self) -> None:
        self.write_calls += 1
        if self.fail_writes:
            raise BackendError(BackendError.UNAVAILABLE, "write refused")

    async def _insert(self, reports):
        self._check_write()
        self.reports = list(reports) + self.reports

    async def _patch_status(self, report_id, status):
        self._check_write()
        self.reports = [r.model_copy(update={"status": status}) if r.id == report_id else r for r in self.reports]

    async def _delete(self, report_ids):
        self._check_write()
        before = len(self.reports)
        self.reports = [r for r in self.reports if r.id not in set(report_ids)]
        return before - len(self.reports)

    async def _touch(self, ts):
        self.last_updated = ts


@pytest.fixture(autouse=True)
def _isolate_globals():
    reset_channels()
    clear_audit_log()
    yield
    reset_channels()


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "store.json"


@pytest.fixture
def local_store(store_path):
    return LocalStore(store_path)
