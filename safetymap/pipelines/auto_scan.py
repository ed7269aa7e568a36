"""Automated threat scan: AI scan then batch ingestion on a fixed interval."""
import asyncio
import logging

from safetymap.services import ai
from safetymap.services.sync_coordinator import SyncCoordinator
from safetymap.utils.audit import log_action

logger = logging.getLogger(__name__)

_scan_task: asyncio.Task | None = None


async def scan_and_sync(coordinator: SyncCoordinator) -> tuple[int, int]:
    """One scan pass. Returns (scanned, added). ScanError propagates."""
    candidates = await ai.scan_for_threats()
    added = await coordinator.sync_threats(candidates)
    return len(candidates), added


async def _scan_loop(coordinator: SyncCoordinator, interval_seconds: float) -> None:
    """Sleep, scan, repeat. A failed pass is logged and the next one still runs."""
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            logger.info("Auto-initiating threat scan")
            scanned, added = await scan_and_sync(coordinator)
            log_action("system", "auto_scan", affected=added, backend=coordinator.backend_name)
            logger.info("Automated scan: %d candidates, %d added", scanned, added)
        except asyncio.CancelledError:
            break
        except ai.ScanError as e:
            logger.warning("Automated threat scan failed: %s", e)
        except Exception:
            logger.exception("Automated threat scan error")


async def start_auto_scan(coordinator: SyncCoordinator, interval_minutes: float) -> None:
    """Start the periodic scan. An interval of 0 or less disables it."""
    global _scan_task
    if interval_minutes <= 0:
        logger.info("Automated threat scan disabled")
        return
    _scan_task = asyncio.create_task(_scan_loop(coordinator, interval_minutes * 60))
    logger.info("Automated threat scan every %.1f minutes", interval_minutes)


async def stop_auto_scan() -> None:
    """Cancel the periodic scan and wait for it to finish."""
    global _scan_task
    if _scan_task:
        _scan_task.cancel()
        try:
            await _scan_task
        except asyncio.CancelledError:
            pass
        _scan_task = None
        logger.info("Automated threat scan stopped")


def is_running() -> bool:
    return _scan_task is not None and not _scan_task.done()
