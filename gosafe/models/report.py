from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

# Hazard kinds the mobile client can submit (keep these names exactly)
CATEGORIES = ("pothole", "accident", "roadblock", "police", "flood", "construction")
SEVERITIES = (1, 2, 3)

PENDING = "pending"
VERIFIED = "verified"
REJECTED = "rejected"
EXPIRED = "expired"
STATUSES = (PENDING, VERIFIED, REJECTED, EXPIRED)
TERMINAL_STATUSES = frozenset({VERIFIED, REJECTED, EXPIRED})

CONFIRM = "confirm"
DENY = "deny"
ACTIONS = (CONFIRM, DENY)

Category = Literal["pothole", "accident", "roadblock", "police", "flood", "construction"]
Status = Literal["pending", "verified", "rejected", "expired"]
Action = Literal["confirm", "deny"]


class GeoPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(..., description="[longitude, latitude]")


# Payload coming FROM the mobile app. Severity and coordinates are left as Any
# so ReportService checks them; pydantic would coerce `true` or "36.8".
class LocationIn(BaseModel):
    coordinates: List[Any] = Field(..., description="[longitude, latitude]")


class ReportIn(BaseModel):
    type: str = Field(..., description="Hazard category")
    location: LocationIn
    description: str
    severity: Any = Field(..., description="1 (minor) to 3 (dangerous)")
    photos: List[str] = Field(default_factory=list, description="data: URIs or already-hosted URLs")


class Report(BaseModel):
    id: str
    author_id: str
    category: Category
    location: GeoPoint
    zone_id: Optional[str] = Field(None, description="H3 cell used by the proximity index")
    description: str
    photos: List[str] = Field(default_factory=list)
    severity: int
    status: Status = "pending"
    confirmations: int = 0
    denials: int = 0
    credibility_score: int = 0
    created_at: str
    updated_at: str
    expires_at: str
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class Vote(BaseModel):
    report_id: str
    voter_id: str
    action: Action
    created_at: str


class Pagination(BaseModel):
    total: int
    page: int
    pages: int


class ReportPage(BaseModel):
    reports: List[Report]
    pagination: Pagination


def iso_utc(dt: datetime) -> str:
    """Fixed-width UTC ISO string, so stored timestamps compare correctly as text."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")
