"""Report models for incident map data."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ZoneType(str, Enum):
    EVENT_GATHERING = "EVENT_GATHERING"
    SUSPECTED_KIDNAPPING = "SUSPECTED_KIDNAPPING"
    BOKO_HARAM_ACTIVITY = "BOKO_HARAM_ACTIVITY"  # Insurgent activity
    MILITARY_CHECKPOINT = "MILITARY_CHECKPOINT"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ReportStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    DISMISSED = "dismissed"  # Modeled as deletion, never stored
    RESOLVED = "resolved"


class _CamelModel(BaseModel):
    """Stored and served with camelCase keys (abductedCount, sourceUrl, ...)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinates(_CamelModel):
    lat: float
    lng: float


class VoteCounts(_CamelModel):
    confirm: int = Field(default=0, ge=0)
    recovered: int = Field(default=0, ge=0)
    fake: int = Field(default=0, ge=0)


class Report(_CamelModel):
    id: Optional[str] = None
    type: ZoneType
    title: str
    description: str
    position: Coordinates
    radius: float = Field(ge=0)
    timestamp: int
    severity: Severity
    status: ReportStatus = ReportStatus.PENDING
    abducted_count: Optional[int] = Field(default=None, ge=0)
    data_confidence: Optional[str] = None
    source_url: Optional[str] = None
    video_url: Optional[str] = None
    image_url: Optional[str] = None
    media_urls: list[str] = Field(default_factory=list)
    view_count: Optional[int] = None
    comment_count: Optional[int] = None
    vote_counts: Optional[VoteCounts] = None

    def to_document(self) -> dict:
        """Serialize the way both stores persist a report."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ReportCreate(_CamelModel):
    """Request body for POST /api/reports."""

    type: ZoneType
    title: str
    description: str
    position: Coordinates
    radius: Optional[float] = Field(default=None, ge=0)
    timestamp: Optional[int] = None
    severity: Optional[Severity] = None
    abducted_count: Optional[int] = Field(default=None, ge=0)
    data_confidence: Optional[str] = None
    source_url: Optional[str] = None
    video_url: Optional[str] = None
    image_url: Optional[str] = None
    media_urls: list[str] = Field(default_factory=list)


class StatusUpdate(_CamelModel):
    status: ReportStatus


class ReportsSnapshot(_CamelModel):
    reports: list[Report]
    last_updated: Optional[int] = None
