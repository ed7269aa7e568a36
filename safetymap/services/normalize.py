"""Turn manual submissions and AI scan output into complete Report objects.

All default policy for incoming reports lives here.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Union

from pydantic import ValidationError

from safetymap.models.report import Report, ReportCreate, ReportStatus, Severity, ZoneType

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_M = 2000
DEFAULT_SEVERITY = Severity.HIGH
DEFAULT_CONFIDENCE = "Medium"
DEFAULT_TYPE = ZoneType.SUSPECTED_KIDNAPPING

# Manual submissions: severity follows the zone type
MANUAL_CONFIDENCE = "Manual Input"
MANUAL_CRITICAL_TYPES = frozenset({ZoneType.BOKO_HARAM_ACTIVITY})

# snake_case / scan-output spellings -> stored camelCase keys
_KEY_ALIASES = {
    "abducted_count": "abductedCount",
    "data_confidence": "dataConfidence",
    "confidence": "dataConfidence",
    "source_url": "sourceUrl",
    "video_url": "videoUrl",
    "image_url": "imageUrl",
    "media_urls": "mediaUrls",
    "view_count": "viewCount",
    "comment_count": "commentCount",
    "vote_counts": "voteCounts",
}

Candidate = Union[Report, ReportCreate, dict[str, Any]]


def now_ms() -> int:
    return int(time.time() * 1000)


def _parse_date_ms(value: Any) -> int | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def _coerce_enum(enum_cls, value: Any, default):
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return default
    for variant in (value, value.strip().lower(), value.strip().upper()):
        try:
            return enum_cls(variant)
        except ValueError:
            continue
    return default


def _as_dict(raw: Candidate) -> dict[str, Any]:
    if isinstance(raw, (Report, ReportCreate)):
        return raw.model_dump(by_alias=True, exclude_none=True)
    if not isinstance(raw, dict):
        raise ValueError(f"Unsupported candidate of type {type(raw).__name__}")
    data: dict[str, Any] = {}
    for key, value in raw.items():
        data[_KEY_ALIASES.get(key, key)] = value
    return data


def _manual_severity(ztype: ZoneType) -> Severity:
    return Severity.CRITICAL if ztype in MANUAL_CRITICAL_TYPES else Severity.MEDIUM


def normalize_candidate(
    raw: Candidate,
    status: ReportStatus = ReportStatus.PENDING,
    manual: bool = False,
) -> Report:
    """
    Build a Report from a partial candidate, applying the documented defaults:
    radius 2000 m, severity high, confidence "Medium", timestamp now.
    Manual submissions instead default severity from the zone type (critical
    for insurgent activity, else medium) and confidence to "Manual Input".
    Raises ValueError when title, description or position is missing.
    """
    data = _as_dict(raw)

    position = data.get("position")
    if position is None and data.get("lat") is not None and data.get("lng") is not None:
        position = {"lat": data["lat"], "lng": data["lng"]}
    if position is None:
        raise ValueError("Candidate has no position")
    if not data.get("title") or not data.get("description"):
        raise ValueError("Candidate is missing title or description")

    timestamp = data.get("timestamp")
    if timestamp is None:
        timestamp = _parse_date_ms(data.get("date")) or now_ms()

    radius = data.get("radius")
    if radius is None or (isinstance(radius, (int, float)) and radius < 0):
        radius = DEFAULT_RADIUS_M

    fields = {
        k: v for k, v in data.items()
        if k not in ("lat", "lng", "date", "status", "position", "timestamp", "radius", "type", "severity")
    }
    ztype = _coerce_enum(ZoneType, data.get("type"), DEFAULT_TYPE)
    default_severity = _manual_severity(ztype) if manual else DEFAULT_SEVERITY
    default_confidence = MANUAL_CONFIDENCE if manual else DEFAULT_CONFIDENCE
    fields.update(
        position=position,
        timestamp=int(timestamp),
        radius=radius,
        type=ztype,
        severity=_coerce_enum(Severity, data.get("severity"), default_severity),
        status=status,
    )
    if fields.get("dataConfidence") is None:
        fields["dataConfidence"] = default_confidence

    try:
        return Report.model_validate(fields)
    except ValidationError as e:
        raise ValueError(f"Invalid report candidate: {e}") from e


def normalize_batch(raws: list[Candidate], status: ReportStatus = ReportStatus.VERIFIED) -> list[Report]:
    """Normalize scan output, skipping (and logging) candidates that cannot be repaired."""
    reports = []
    for raw in raws:
        try:
            reports.append(normalize_candidate(raw, status=status))
        except ValueError as e:
            logger.warning("Skipping malformed candidate: %s", e)
    return reports
