"""Sync coordinator: routes reads and writes to the active store, fails over remote -> local once."""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from safetymap.event_bus import call_listener
from safetymap.models.report import Report, ReportStatus
from safetymap.services.normalize import Candidate, normalize_batch, normalize_candidate
from safetymap.services.store_base import (
    BackendError,
    PersistenceBackend,
    ReportsCallback,
    SnapshotCallback,
    TimestampCallback,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0


class Phase(str, Enum):
    UNBOUND = "unbound"
    CONNECTING_REMOTE = "connecting_remote"
    BOUND_REMOTE = "bound_remote"
    BOUND_LOCAL = "bound_local"  # Terminal for the process


@dataclass
class ConnectionState:
    """Backend selection for one coordinator. Only the failover transition writes it."""

    phase: Phase = Phase.UNBOUND
    fallback_engaged: bool = False
    fallback_reason: Optional[str] = None

    def engage_fallback(self, reason: str) -> bool:
        """Flip to the local store. True only for the call that performed the flip."""
        if self.fallback_engaged:
            return False
        self.fallback_engaged = True
        self.fallback_reason = reason
        self.phase = Phase.BOUND_LOCAL
        return True


class Subscription:
    """
    One UI callback pair bound to whichever store is active. Calling the handle
    unsubscribes; repeated calls are harmless and no callback fires afterwards.
    """

    def __init__(
        self,
        coordinator: "SyncCoordinator",
        on_reports: ReportsCallback,
        on_last_updated: TimestampCallback,
        on_snapshot: Optional[SnapshotCallback] = None,
    ) -> None:
        self._coordinator = coordinator
        self._on_reports = on_reports
        self._on_last_updated = on_last_updated
        self._on_snapshot = on_snapshot
        self._unsubscribe_backend: Optional[Unsubscribe] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._generation = 0
        self.backend_name: Optional[str] = None
        self.active = True

    def __call__(self) -> None:
        self.close()

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        self._cancel_timer()
        self._detach()
        self._coordinator._forget(self)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _detach(self) -> None:
        # Bumping the generation mutes deliveries already in flight from the old store
        self._generation += 1
        if self._unsubscribe_backend is not None:
            unsubscribe, self._unsubscribe_backend = self._unsubscribe_backend, None
            unsubscribe()

    def _attach(
        self,
        backend: PersistenceBackend,
        on_first_snapshot: Optional[Callable[["Subscription"], None]] = None,
        on_error: Optional[Callable[[BackendError], Any]] = None,
    ) -> None:
        self._detach()
        generation = self._generation
        self.backend_name = backend.name

        def live() -> bool:
            return self.active and self._generation == generation

        async def reports_cb(reports: list[Report]) -> None:
            if not live():
                return
            if on_first_snapshot is not None:
                on_first_snapshot(self)
            pending = call_listener(self._on_reports, reports)
            if pending is not None:
                await pending

        async def last_updated_cb(ts: int) -> None:
            if not live():
                return
            pending = call_listener(self._on_last_updated, ts)
            if pending is not None:
                await pending

        async def snapshot_cb(reports: list[Report], ts: Optional[int]) -> None:
            if not live() or self._on_snapshot is None:
                return
            pending = call_listener(self._on_snapshot, reports, ts)
            if pending is not None:
                await pending

        async def error_cb(error: BackendError) -> None:
            if live() and on_error is not None:
                on_error(error)

        self._unsubscribe_backend = backend.subscribe(reports_cb, last_updated_cb, error_cb, snapshot_cb)


class SyncCoordinator:
    """
    Strategy over two stores. Reads bind one store per subscription; writes try
    the active store and, while remote-bound, retry once on the local store
    after failing over. Local failures propagate.
    """

    def __init__(
        self,
        local: PersistenceBackend,
        remote: Optional[PersistenceBackend] = None,
        state: Optional[ConnectionState] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
    ) -> None:
        self._local = local
        self._remote = remote
        self._state = state or ConnectionState()
        self._connect_timeout = connect_timeout
        self._subscriptions: list[Subscription] = []
        self._service_subscription: Optional[Subscription] = None
        self._snapshot_listeners: list[Callable[[list[Report], Optional[int]], Awaitable[None]]] = []
        self.latest_reports: Optional[list[Report]] = None
        self.last_updated: Optional[int] = None

    # --- backend selection ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def active_backend(self) -> PersistenceBackend:
        if self._remote is None or self._state.fallback_engaged:
            return self._local
        return self._remote

    @property
    def backend_name(self) -> str:
        return self.active_backend.name

    def _fail_over(self, reason: str) -> bool:
        """Swap every live subscription to the local store. Runs at most once."""
        if not self._state.engage_fallback(reason):
            return False
        logger.warning("Switching to offline mode: %s", reason)
        for sub in list(self._subscriptions):
            sub._cancel_timer()
            sub._attach(self._local)
        return True

    def _on_remote_error(self, error: BackendError) -> None:
        if error.is_connectivity:
            self._fail_over(f"remote subscription error ({error.code})")
        else:
            logger.error("Remote snapshot error: %s", error)

    def _on_first_remote_snapshot(self, sub: Subscription) -> None:
        sub._cancel_timer()
        if self._state.phase == Phase.CONNECTING_REMOTE:
            self._state.phase = Phase.BOUND_REMOTE
            logger.info("Bound to remote store")

    def _on_connect_timeout(self, sub: Subscription) -> None:
        sub._timer = None
        if sub.active and self._remote is not None and sub.backend_name == self._remote.name:
            self._fail_over(f"no remote snapshot within {self._connect_timeout:.1f}s")

    def _forget(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    # --- read path ---

    def subscribe(
        self,
        on_reports: ReportsCallback,
        on_last_updated: TimestampCallback,
        on_snapshot: Optional[SnapshotCallback] = None,
    ) -> Subscription:
        """Deliver report snapshots to one callback pair, across any failover. Needs a running loop."""
        sub = Subscription(self, on_reports, on_last_updated, on_snapshot)
        self._subscriptions.append(sub)
        if self.active_backend is self._local:
            self._state.phase = Phase.BOUND_LOCAL
            sub._attach(self._local)
            return sub

        if self._state.phase == Phase.UNBOUND:
            self._state.phase = Phase.CONNECTING_REMOTE
        loop = asyncio.get_running_loop()
        sub._timer = loop.call_later(self._connect_timeout, self._on_connect_timeout, sub)
        sub._attach(self._remote, self._on_first_remote_snapshot, self._on_remote_error)
        return sub

    async def start(self) -> None:
        """Open the coordinator's own subscription that keeps `latest_reports` current."""
        if self._service_subscription is not None:
            return

        def on_reports(reports: list[Report]) -> None:
            self.latest_reports = reports

        def on_last_updated(ts: int) -> None:
            self.last_updated = ts

        async def on_snapshot(reports: list[Report], ts: Optional[int]) -> None:
            # A backend without a timestamp keeps the last known one
            for listener in list(self._snapshot_listeners):
                try:
                    await listener(reports, self.last_updated)
                except Exception as e:
                    logger.exception("Snapshot listener failed: %s", e)

        self._service_subscription = self.subscribe(on_reports, on_last_updated, on_snapshot)

    def add_snapshot_listener(self, listener: Callable[[list[Report], Optional[int]], Awaitable[None]]) -> None:
        self._snapshot_listeners.append(listener)

    def stop(self) -> None:
        for sub in list(self._subscriptions):
            sub.close()
        self._service_subscription = None

    async def current_reports(self) -> list[Report]:
        """Last pushed snapshot, or a direct snapshot read when nothing has arrived yet."""
        if self.latest_reports is not None:
            return self.latest_reports
        reports, _ = await self._dispatch("load_snapshot", lambda b: b.load_snapshot(initial=True))
        return reports

    # --- write path ---

    async def _dispatch(self, operation: str, call: Callable[[PersistenceBackend], Awaitable[T]]) -> T:
        backend = self.active_backend
        try:
            return await call(backend)
        except Exception as e:
            if backend is self._local:
                raise
            logger.warning("Remote %s failed, falling back to local store: %s", operation, e)
            self._fail_over(f"{operation} failed")
            return await call(self._local)

    async def add_report(self, report: Report) -> Report:
        return await self._dispatch("add_report", lambda b: b.add_report(report))

    async def submit_report(self, body: Candidate, privileged: bool = False) -> Report:
        """Manual submission: pending, or verified when a privileged session submits it."""
        status = ReportStatus.VERIFIED if privileged else ReportStatus.PENDING
        report = normalize_candidate(body, status=status, manual=True)
        return await self.add_report(report)

    async def update_status(self, report_id: str, status: ReportStatus) -> None:
        await self._dispatch("update_status", lambda b: b.update_status(report_id, status))

    async def sync_threats(self, candidates: Sequence[Candidate]) -> int:
        """Normalize scanned candidates, stamp them verified, and insert the unique ones."""
        reports = normalize_batch(list(candidates), status=ReportStatus.VERIFIED)
        # Always delegated, empty or not; the backend seeds an empty store first
        return await self._dispatch("sync_threats", lambda b: b.sync_threats(reports))

    async def seed_if_empty(self) -> bool:
        return await self._dispatch("seed_if_empty", lambda b: b.seed_if_empty())

    async def run_bulk_cleanup(self) -> int:
        """Best effort; never raises."""
        try:
            return await self.active_backend.run_bulk_cleanup()
        except Exception as e:
            logger.exception("Bulk cleanup failed: %s", e)
            return 0


_coordinator: Optional[SyncCoordinator] = None


def set_coordinator(coordinator: Optional[SyncCoordinator]) -> None:
    global _coordinator
    _coordinator = coordinator


def get_coordinator() -> SyncCoordinator:
    """FastAPI dependency: the coordinator created at startup."""
    if _coordinator is None:
        raise RuntimeError("Sync coordinator not initialized")
    return _coordinator


def build_coordinator() -> SyncCoordinator:
    """Wire stores from settings: remote when Neo4j is configured, local always."""
    from safetymap.config import settings
    from safetymap.services import ai
    from safetymap.services.graph_db import GraphDatabase
    from safetymap.services.local_store import LocalStore
    from safetymap.services.remote_store import RemoteStore

    local = LocalStore(settings.local_store_path)
    driver = GraphDatabase.get_instance().driver
    remote = RemoteStore(driver, advisor=ai.identify_duplicate_ids) if driver else None
    return SyncCoordinator(
        local,
        remote,
        connect_timeout=settings.remote_connect_timeout_seconds,
    )
