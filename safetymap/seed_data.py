"""Bootstrap incidents so a fresh store never renders an empty map."""
from safetymap.models.report import Coordinates, Report, ReportStatus, Severity, ZoneType
from safetymap.services.normalize import now_ms

HOUR_MS = 60 * 60 * 1000

# Load-time patching re-adds the bootstrap set when one of these is missing
DEMO_REPORT_IDS = ("video-demo-kano", "image-demo-jos")

# (id, type, title, description, (lat, lng), radius_m, hours_ago, severity, abducted, confidence, extra)
SEED_INCIDENTS = [
    (
        "video-demo-kano",
        ZoneType.SUSPECTED_KIDNAPPING,
        "Security Operations in Kano",
        "Joint task force operations captured on video dispersing bandit groups in the Falgore Forest region.",
        (11.8000, 8.5000),
        4000,
        2,
        Severity.HIGH,
        0,
        "High",
        {"video_url": "https://www.youtube.com/watch?v=J_CQlqC1qGM"},
    ),
    (
        "image-demo-jos",
        ZoneType.EVENT_GATHERING,
        "Peace Rally in Jos",
        "Large public gathering for peace observed in Jos city center. Heavy security presence verified.",
        (9.9326, 8.8911),
        1000,
        5,
        Severity.LOW,
        0,
        "High",
        {
            "image_url": "https://upload.wikimedia.org/wikipedia/commons/thumb/c/c5/"
            "Jos_Nigeria_Street_View.jpg/1200px-Jos_Nigeria_Street_View.jpg",
        },
    ),
    (
        "2",
        ZoneType.SUSPECTED_KIDNAPPING,
        "High Risk Zone",
        "Multiple reports of suspicious vehicle stops along the Kaduna-Abuja highway.",
        (10.0000, 7.5000),
        5000,
        12,
        Severity.HIGH,
        12,
        "Medium",
        {},
    ),
    (
        "4",
        ZoneType.BOKO_HARAM_ACTIVITY,
        "Insurgent Sighting",
        "Unverified reports of movement in the Sambisa Forest fringe.",
        (11.5000, 13.0000),
        10000,
        48,
        Severity.CRITICAL,
        5,
        "Low",
        {},
    ),
]


def initial_reports(now: int | None = None) -> list[Report]:
    """The bootstrap set, timestamped relative to `now` (epoch ms). Always verified."""
    now = now_ms() if now is None else now
    reports = []
    for rid, ztype, title, desc, (lat, lng), radius, hours_ago, severity, abducted, confidence, extra in SEED_INCIDENTS:
        reports.append(Report(
            id=rid,
            type=ztype,
            title=title,
            description=desc,
            position=Coordinates(lat=lat, lng=lng),
            radius=radius,
            timestamp=now - hours_ago * HOUR_MS,
            severity=severity,
            status=ReportStatus.VERIFIED,
            abducted_count=abducted,
            data_confidence=confidence,
            **extra,
        ))
    return reports


def missing_seed_reports(existing_ids: set[str], now: int | None = None) -> list[Report]:
    """Bootstrap records absent from `existing_ids`, or [] when every demo record is present."""
    if all(rid in existing_ids for rid in DEMO_REPORT_IDS):
        return []
    return [r for r in initial_reports(now) if r.id not in existing_ids]
