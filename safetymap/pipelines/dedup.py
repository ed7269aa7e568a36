"""Duplicate detection for incoming reports: id, source URL, exact text, space-time."""
import logging
from typing import Iterable, Sequence

from safetymap.models.report import Report
from safetymap.utils.geo import distance_km

logger = logging.getLogger(__name__)

DUPLICATE_RADIUS_KM = 5
DUPLICATE_WINDOW_HOURS = 48

_WINDOW_MS = DUPLICATE_WINDOW_HOURS * 60 * 60 * 1000


def matches(candidate: Report, existing: Report) -> bool:
    """True if `candidate` describes the same incident as `existing`."""
    # Id: only seed/sample data is ever re-inserted with a known id
    if candidate.id and existing.id and candidate.id == existing.id:
        return True
    # Same article
    if candidate.source_url and existing.source_url and candidate.source_url == existing.source_url:
        return True
    # Same text, case-sensitive
    if candidate.title == existing.title and candidate.description == existing.description:
        return True
    # Same kind of event, close in space and time
    if candidate.type == existing.type:
        if abs(candidate.timestamp - existing.timestamp) >= _WINDOW_MS:
            return False
        return distance_km(candidate.position, existing.position) < DUPLICATE_RADIUS_KM
    return False


def is_duplicate(candidate: Report, existing: Iterable[Report]) -> bool:
    return any(matches(candidate, e) for e in existing)


def filter_unique(candidates: Sequence[Report], existing: Sequence[Report]) -> list[Report]:
    """
    Drop candidates that duplicate an existing report or an earlier accepted
    candidate of the same batch.
    """
    seen = list(existing)
    unique: list[Report] = []
    for c in candidates:
        if is_duplicate(c, seen):
            logger.debug("Dropping duplicate candidate %r", c.title)
            continue
        unique.append(c)
        seen.append(c)
    return unique
