"""Persistence backend contract shared by the remote and local report stores."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Sequence

from safetymap.event_bus import ChangeChannel, call_listener
from safetymap.models.report import Report, ReportStatus
from safetymap.pipelines.dedup import filter_unique
from safetymap.seed_data import initial_reports
from safetymap.services.normalize import now_ms
from safetymap.utils.ids import generate_report_id

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000

ReportsCallback = Callable[[list[Report]], Any]
TimestampCallback = Callable[[int], Any]
ErrorCallback = Callable[["BackendError"], Any]
SnapshotCallback = Callable[[list[Report], Optional[int]], Any]
Unsubscribe = Callable[[], None]


class BackendError(Exception):
    """A store operation failed. `code` tells connectivity problems from the rest."""

    PERMISSION_DENIED = "permission-denied"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code

    @property
    def is_connectivity(self) -> bool:
        return self.code in (self.PERMISSION_DENIED, self.UNAVAILABLE)


class _Listener:
    def __init__(
        self,
        on_reports: ReportsCallback,
        on_last_updated: TimestampCallback,
        on_error: Optional[ErrorCallback],
        on_snapshot: Optional[SnapshotCallback] = None,
    ) -> None:
        self.on_reports = on_reports
        self.on_last_updated = on_last_updated
        self.on_error = on_error
        self.on_snapshot = on_snapshot
        self.active = True

    async def deliver(self, reports: list[Report], last_updated: Optional[int]) -> None:
        # Re-checked after every await: unsubscribe may land mid-delivery
        if not self.active:
            return
        pending = call_listener(self.on_reports, reports)
        if pending is not None:
            await pending
        if last_updated is not None and self.active:
            pending = call_listener(self.on_last_updated, last_updated)
            if pending is not None:
                await pending
        if self.on_snapshot is not None and self.active:
            pending = call_listener(self.on_snapshot, reports, last_updated)
            if pending is not None:
                await pending

    async def fail(self, error: "BackendError") -> None:
        if not self.active:
            return
        if self.on_error is None:
            logger.error("Subscription error with no handler: %s", error)
            return
        pending = call_listener(self.on_error, error)
        if pending is not None:
            await pending


class PersistenceBackend(ABC):
    """
    Report store with push updates.

    Subclasses provide raw reads and writes; subscription, change notification,
    seeding and batch ingestion are shared here.
    """

    name = "backend"
    # Days of history compared against scanned candidates; None compares everything
    dedup_window_days: Optional[int] = None

    def __init__(self, channel: ChangeChannel) -> None:
        self._channel = channel

    # --- subscription ---

    def subscribe(
        self,
        on_reports: ReportsCallback,
        on_last_updated: TimestampCallback,
        on_error: Optional[ErrorCallback] = None,
        on_snapshot: Optional[SnapshotCallback] = None,
    ) -> Unsubscribe:
        """
        Deliver the current snapshot as soon as the loop runs, then again after
        every committed change. `on_snapshot`, if given, receives the reports and
        timestamp together after both callbacks. Must be called from a running event loop.
        """
        listener = _Listener(on_reports, on_last_updated, on_error, on_snapshot)

        async def refresh() -> None:
            await self._refresh(listener)

        off = self._channel.on(refresh)
        first_read = asyncio.get_running_loop().create_task(self._refresh(listener, initial=True))

        def unsubscribe() -> None:
            if not listener.active:
                return
            listener.active = False
            off()
            if not first_read.done():
                first_read.cancel()

        return unsubscribe

    async def _refresh(self, listener: _Listener, initial: bool = False) -> None:
        if not listener.active:
            return
        try:
            reports, last_updated = await self.load_snapshot(initial=initial)
        except BackendError as e:
            await listener.fail(e)
            return
        except Exception as e:
            logger.exception("%s snapshot read failed: %s", self.name, e)
            await listener.fail(BackendError(BackendError.INTERNAL, str(e)))
            return
        await listener.deliver(reports, last_updated)

    async def notify_changed(self) -> None:
        await self._channel.emit()

    # --- raw storage, implemented per backend ---

    @abstractmethod
    async def load_snapshot(self, initial: bool = False) -> tuple[list[Report], Optional[int]]:
        """
        Reports newest first plus last-updated epoch ms (None if unknown).
        `initial` is True for the first read of a new subscription.
        """

    @abstractmethod
    async def fetch_reports(self, since_ms: Optional[int] = None) -> list[Report]:
        """Reports with timestamp > since_ms (all when None), newest first."""

    @abstractmethod
    async def _insert(self, reports: Sequence[Report]) -> None:
        ...

    @abstractmethod
    async def _patch_status(self, report_id: str, status: ReportStatus) -> None:
        ...

    @abstractmethod
    async def _delete(self, report_ids: Sequence[str]) -> int:
        ...

    @abstractmethod
    async def _touch(self, ts: int) -> None:
        """Record the last-updated timestamp."""

    async def count(self) -> int:
        return len(await self.fetch_reports())

    # --- operations ---

    async def add_report(self, report: Report) -> Report:
        """Persist one report, assigning an id if it has none. Returns the stored report."""
        if not report.id:
            report = report.model_copy(update={"id": generate_report_id()})
        await self._insert([report])
        await self._touch(now_ms())
        await self.notify_changed()
        return report

    async def update_status(self, report_id: str, status: ReportStatus) -> None:
        """Dismissed deletes the report; other statuses patch it. Unknown ids are a no-op."""
        if status == ReportStatus.DISMISSED:
            await self._delete([report_id])
        else:
            await self._patch_status(report_id, status)
        await self.notify_changed()

    async def seed_if_empty(self) -> bool:
        """Insert the bootstrap set when the store holds no reports. Returns True if seeded."""
        if await self.count() > 0:
            return False
        logger.info("%s store is empty, seeding bootstrap reports", self.name)
        await self._insert(initial_reports())
        await self._touch(now_ms())
        await self.notify_changed()
        return True

    async def sync_threats(self, candidates: Sequence[Report]) -> int:
        """
        Insert scanned candidates that do not duplicate stored reports, stamped
        verified. Seeds first when the store is empty. Returns the number added.
        """
        await self.seed_if_empty()
        since = None
        if self.dedup_window_days is not None:
            since = now_ms() - self.dedup_window_days * DAY_MS
        existing = await self.fetch_reports(since)
        unique = filter_unique(candidates, existing)
        if not unique:
            logger.info("No new unique threats among %d candidates", len(candidates))
            return 0

        logger.info("Syncing %d new unique threats to %s store", len(unique), self.name)
        stamped = [
            r.model_copy(update={"status": ReportStatus.VERIFIED, "id": r.id or generate_report_id()})
            for r in unique
        ]
        await self._insert(stamped)
        await self._touch(now_ms())
        await self.notify_changed()
        return len(stamped)

    async def run_bulk_cleanup(self) -> int:
        """AI-assisted duplicate removal. Only the remote store wires the advisor."""
        return 0


DuplicateAdvisor = Callable[[list[Report]], Awaitable[list[str]]]
