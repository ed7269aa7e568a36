"""Local report store: one JSON file of named entries, shared by every instance on the same path."""
import json
import logging
import os
from pathlib import Path
from typing import Optional, Sequence

from safetymap.event_bus import ChangeChannel, channel_for
from safetymap.models.report import Report, ReportStatus
from safetymap.seed_data import initial_reports, missing_seed_reports
from safetymap.services.normalize import now_ms
from safetymap.services.store_base import PersistenceBackend

logger = logging.getLogger(__name__)

REPORTS_KEY = "safetyMap_reports"
LAST_UPDATED_KEY = "safetyMap_lastUpdated"


class LocalStore(PersistenceBackend):
    """
    Same-device fallback store.

    The file holds two entries: the JSON-serialized report array and the
    last-updated epoch ms as a string. Writes signal a payload-less change on a
    channel keyed by the file path; every subscriber re-reads both entries.
    Read and write errors propagate to the caller. Bulk cleanup is not wired
    here and always removes nothing.
    """

    name = "local"

    def __init__(self, path: str | Path, channel: Optional[ChangeChannel] = None) -> None:
        self.path = Path(path)
        super().__init__(channel or channel_for(str(self.path.resolve())))

    # --- named entries ---

    def _read_entries(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        return json.loads(text) if text.strip() else {}

    def _write_entry(self, key: str, value: str) -> None:
        entries = self._read_entries()
        entries[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(entries), encoding="utf-8")
        os.replace(tmp, self.path)

    def _read_reports(self) -> Optional[list[Report]]:
        """Stored reports, or None when the entry has never been written."""
        raw = self._read_entries().get(REPORTS_KEY)
        if raw is None:
            return None
        return [Report.model_validate(d) for d in json.loads(raw)]

    def _write_reports(self, reports: Sequence[Report]) -> None:
        self._write_entry(REPORTS_KEY, json.dumps([r.to_document() for r in reports]))

    # --- backend contract ---

    async def load_snapshot(self, initial: bool = False) -> tuple[list[Report], Optional[int]]:
        reports = self._read_reports()
        if reports is None:
            reports = initial_reports()
            self._write_reports(reports)
        elif initial:
            missing = missing_seed_reports({r.id for r in reports if r.id})
            if missing:
                logger.info("Patching %d missing bootstrap reports into local store", len(missing))
                reports = missing + reports
                self._write_reports(reports)
        stored_ts = self._read_entries().get(LAST_UPDATED_KEY)
        return reports, int(stored_ts) if stored_ts else now_ms()

    async def fetch_reports(self, since_ms: Optional[int] = None) -> list[Report]:
        reports = self._read_reports() or []
        if since_ms is None:
            return reports
        return [r for r in reports if r.timestamp > since_ms]

    async def _insert(self, reports: Sequence[Report]) -> None:
        # Newest writes first, as rendered
        self._write_reports(list(reports) + (self._read_reports() or []))

    async def _patch_status(self, report_id: str, status: ReportStatus) -> None:
        current = self._read_reports() or []
        self._write_reports([
            r.model_copy(update={"status": status}) if r.id == report_id else r
            for r in current
        ])

    async def _delete(self, report_ids: Sequence[str]) -> int:
        current = self._read_reports() or []
        doomed = set(report_ids)
        kept = [r for r in current if r.id not in doomed]
        self._write_reports(kept)
        return len(current) - len(kept)

    async def _touch(self, ts: int) -> None:
        self._write_entry(LAST_UPDATED_KEY, str(ts))
