"""Remote report store on Neo4j, with change push to in-process subscribers."""
import asyncio
import logging
from typing import Any, Callable, Optional, Sequence, TypeVar

from neo4j.exceptions import AuthError, DriverError, Forbidden, Neo4jError, ServiceUnavailable, SessionExpired

from safetymap.config import settings
from safetymap.event_bus import ChangeChannel
from safetymap.models.report import Report, ReportStatus
from safetymap.seed_data import initial_reports
from safetymap.services import report_queries
from safetymap.services.normalize import now_ms
from safetymap.services.store_base import BackendError, DuplicateAdvisor, PersistenceBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")


def classify_error(e: Exception) -> BackendError:
    """Map driver exceptions onto backend error codes."""
    if isinstance(e, BackendError):
        return e
    if isinstance(e, (AuthError, Forbidden)):
        return BackendError(BackendError.PERMISSION_DENIED, str(e))
    if isinstance(e, (ServiceUnavailable, SessionExpired)):
        return BackendError(BackendError.UNAVAILABLE, str(e))
    return BackendError(BackendError.INTERNAL, str(e))


class RemoteStore(PersistenceBackend):
    """
    Reports as (:Report) nodes. The driver is synchronous, so every call runs
    in the default executor. Each committed write re-pushes the full snapshot
    to every live subscriber.
    """

    name = "remote"

    def __init__(
        self,
        driver: Any,
        advisor: Optional[DuplicateAdvisor] = None,
        channel: Optional[ChangeChannel] = None,
        dedup_window_days: Optional[int] = None,
    ) -> None:
        super().__init__(channel or ChangeChannel("remote"))
        self._driver = driver
        self._advisor = advisor
        self.dedup_window_days = settings.sync_window_days if dedup_window_days is None else dedup_window_days

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        if self._driver is None:
            raise BackendError(BackendError.UNAVAILABLE, "Neo4j driver not initialized")

        def _in_session() -> T:
            with self._driver.session() as session:
                return fn(session, *args)

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, _in_session)
        except (Neo4jError, DriverError) as e:
            raise classify_error(e) from e

    @staticmethod
    def _to_reports(docs: list[dict[str, Any]]) -> list[Report]:
        return [Report.model_validate(d) for d in docs]

    async def load_snapshot(self, initial: bool = False) -> tuple[list[Report], Optional[int]]:
        reports = await self.fetch_reports()
        if not reports:
            # Seeds carry fixed ids, so concurrent subscribers seeding is harmless
            await self._seed_quietly()
            reports = await self.fetch_reports()
        try:
            last_updated = await self._run(report_queries.get_last_updated)
        except BackendError as e:
            if e.is_connectivity:
                raise
            logger.debug("Metadata read failed, leaving last-updated unset: %s", e)
            last_updated = None
        return reports, last_updated

    async def _seed_quietly(self) -> None:
        await self._insert(initial_reports())
        await self._touch(now_ms())

    async def fetch_reports(self, since_ms: Optional[int] = None) -> list[Report]:
        docs = await self._run(report_queries.fetch_reports, since_ms)
        return self._to_reports(docs)

    async def count(self) -> int:
        return await self._run(report_queries.count_reports)

    async def _insert(self, reports: Sequence[Report]) -> None:
        await self._run(report_queries.upsert_reports, [r.to_document() for r in reports])

    async def _patch_status(self, report_id: str, status: ReportStatus) -> None:
        found = await self._run(report_queries.set_status, report_id, status.value)
        if not found:
            logger.info("Status update for unknown report %s ignored", report_id)

    async def _delete(self, report_ids: Sequence[str]) -> int:
        return await self._run(report_queries.delete_reports, list(report_ids))

    async def _touch(self, ts: int) -> None:
        try:
            await self._run(report_queries.set_last_updated, ts)
        except BackendError as e:
            logger.debug("Last-updated write failed: %s", e)

    async def run_bulk_cleanup(self) -> int:
        """
        Ask the duplicate advisor about the full report set and delete what it
        names in one transaction. Best effort: any failure returns 0.
        """
        if self._advisor is None:
            return 0
        try:
            reports = await self.fetch_reports()
            if len(reports) < 2:
                return 0
            known = {r.id for r in reports}
            ids = [i for i in await self._advisor(reports) if i in known]
            if not ids:
                return 0
            logger.info("Advisor identified %d duplicates to remove", len(ids))
            removed = await self._delete(ids)
            await self.notify_changed()
            return removed
        except Exception as e:
            logger.exception("Smart deduplication failed: %s", e)
            return 0
