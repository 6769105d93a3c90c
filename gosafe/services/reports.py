# gosafe/services/reports.py
"""
Report lifecycle: creation, crowd voting, deletion, listing and expiry.

A report starts `pending`. Each accepted vote bumps one tally, recomputes the
credibility score and may move the report to `verified` or `rejected`. Reports
still pending when `expires_at` passes are moved to `expired` by the sweep.
The three non-pending statuses are final.
"""
from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from numbers import Real
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple

from gosafe.errors import ConflictError, ForbiddenError, NotFoundError, StaleReportError, ValidationError
from gosafe.models.report import (
    ACTIONS,
    CATEGORIES,
    CONFIRM,
    DENY,
    PENDING,
    REJECTED,
    SEVERITIES,
    STATUSES,
    VERIFIED,
    Pagination,
    Report,
    ReportPage,
    iso_utc,
)
from gosafe.models.user import ELEVATED_ROLES
from gosafe.services import credibility
from gosafe.services.h3_utils import SpatialIndex
from gosafe.services.ledger import VoteLedger, ensure_not_author
from gosafe.services.rewards import ParticipationReward
from gosafe.services.storage import store_photos
from gosafe.settings import Settings

log = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class Thresholds:
    verify_min_confirmations: int = 3
    verify_min_score: int = 70
    reject_min_denials: int = 5
    reject_max_score: int = 30

    @classmethod
    def from_settings(cls, settings: Settings) -> "Thresholds":
        return cls(
            verify_min_confirmations=settings.verify_min_confirmations,
            verify_min_score=settings.verify_min_score,
            reject_min_denials=settings.reject_min_denials,
            reject_max_score=settings.reject_max_score,
        )


def next_status(confirmations: int, denials: int, score: int, thresholds: Thresholds) -> str:
    """Status a pending report should hold for the given tallies."""
    if confirmations >= thresholds.verify_min_confirmations and score >= thresholds.verify_min_score:
        return VERIFIED
    if denials >= thresholds.reject_min_denials and score < thresholds.reject_max_score:
        return REJECTED
    return PENDING


def tally_update(report: Report, action: str, thresholds: Thresholds, now_iso: str) -> Dict[str, Any]:
    """Fields to write on `report` once a vote with `action` is ledgered."""
    confirmations = report.confirmations + (1 if action == CONFIRM else 0)
    denials = report.denials + (1 if action == DENY else 0)
    new_score = credibility.score(confirmations, denials)
    return {
        "confirmations": confirmations,
        "denials": denials,
        "credibility_score": new_score,
        "status": next_status(confirmations, denials, new_score, thresholds),
        "updated_at": now_iso,
    }


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def validate_location(location: Any) -> Tuple[float, float]:
    """[longitude, latitude] -> (lng, lat) floats, or ValidationError."""
    if isinstance(location, dict):
        location = location.get("coordinates")
    if not isinstance(location, (list, tuple)) or len(location) != 2:
        raise ValidationError("Location must have coordinates [longitude, latitude]")
    if not all(_is_number(v) and math.isfinite(v) for v in location):
        raise ValidationError("Location coordinates must be finite numbers")

    lng, lat = float(location[0]), float(location[1])
    if not -180.0 <= lng <= 180.0 or not -90.0 <= lat <= 90.0:
        raise ValidationError("Location must be [longitude, latitude] in degrees")
    return lng, lat


class ReportService:
    def __init__(
        self,
        store,
        settings: Optional[Settings] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        blob_store=None,
        spatial: Optional[SpatialIndex] = None,
        ledger: Optional[VoteLedger] = None,
        rewards: Optional[ParticipationReward] = None,
    ):
        self.store = store
        self.settings = settings or Settings()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.thresholds = Thresholds.from_settings(self.settings)
        self.blob_store = blob_store
        self.spatial = spatial or SpatialIndex(store, self.settings.h3_resolution)
        self.ledger = ledger or VoteLedger(store, clock=self.clock)
        self.rewards = rewards or ParticipationReward(
            store,
            report_reward=self.settings.reward_report,
            confirm_reward=self.settings.reward_confirm,
        )

    # ---------- create ----------

    def create_report(
        self,
        author_id: str,
        category: str,
        location: Any,
        description: str,
        severity: int,
        photos: Iterable[str] = (),
    ) -> Report:
        if not author_id:
            raise ValidationError("Author is required")
        if category not in CATEGORIES:
            raise ValidationError(f"Type must be one of {', '.join(CATEGORIES)}")
        if not _is_number(severity) or severity not in SEVERITIES:
            raise ValidationError("Severity must be 1, 2, or 3")
        lng, lat = validate_location(location)

        if not isinstance(description, str) or not description.strip():
            raise ValidationError("Description is required")
        description = description.strip()
        if len(description) > self.settings.description_max_length:
            raise ValidationError(
                f"Description must be at most {self.settings.description_max_length} characters"
            )

        photo_urls = list(photos or [])[: self.settings.max_photos]
        if self.blob_store is not None:
            photo_urls = store_photos(self.blob_store, photo_urls, self.settings.max_photos)

        now = self.clock()
        report = Report(
            id=str(uuid.uuid4()),
            author_id=author_id,
            category=category,
            location={"type": "Point", "coordinates": [lng, lat]},
            zone_id=self.spatial.zone_for(lng, lat),
            description=description,
            photos=photo_urls,
            severity=int(severity),
            status=PENDING,
            confirmations=0,
            denials=0,
            credibility_score=0,
            created_at=iso_utc(now),
            updated_at=iso_utc(now),
            expires_at=iso_utc(now + timedelta(days=self.settings.report_ttl_days)),
            version=0,
        )
        self.store.put_report(report.model_dump())
        log.info("Report %s created by %s (%s, severity %d)", report.id, author_id, category, report.severity)

        self.rewards.on_report_created(author_id)
        return report

    # ---------- read ----------

    def get_report(self, report_id: str) -> Report:
        item = self.store.get_report(report_id)
        if not item:
            raise NotFoundError("Report not found")
        return Report.model_validate(item)

    def list_reports(
        self,
        near: Optional[Sequence[float]] = None,
        radius_m: float = 5000,
        status: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 50,
        page: int = 1,
    ) -> ReportPage:
        """
        Reports around `near` ([lng, lat]) closest first, or all reports newest
        first. Optional status/category filters, then page/limit slicing.
        """
        if status is not None and status not in STATUSES:
            raise ValidationError(f"Status must be one of {', '.join(STATUSES)}")
        if category is not None and category not in CATEGORIES:
            raise ValidationError(f"Type must be one of {', '.join(CATEGORIES)}")
        if not 1 <= limit <= MAX_PAGE_SIZE or page < 1:
            raise ValidationError(f"limit must be 1-{MAX_PAGE_SIZE} and page >= 1")

        if near is not None:
            lng, lat = validate_location(list(near))
            if not 0 < radius_m <= self.settings.max_search_radius_m:
                raise ValidationError(f"radius must be between 0 and {self.settings.max_search_radius_m} metres")
            try:
                hits = self.spatial.near_reports(lng, lat, radius_m)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
            items = [item for item, _ in hits]
            if status:
                items = [r for r in items if r.get("status") == status]
            if category:
                items = [r for r in items if r.get("category") == category]
        else:
            items = self.store.list_reports(status=status, category=category)

        total = len(items)
        start = (page - 1) * limit
        return ReportPage(
            reports=[Report.model_validate(r) for r in items[start:start + limit]],
            pagination=Pagination(total=total, page=page, pages=math.ceil(total / limit)),
        )

    # ---------- votes ----------

    def apply_vote(self, report_id: str, voter_id: str, action: str) -> Report:
        """
        Ledger the vote and apply its tally/status change as one conditional
        write. If another vote on the same report lands first, re-read and try
        again with the fresh tallies.
        """
        if action not in ACTIONS:
            raise ValidationError(f"Action must be one of {', '.join(ACTIONS)}")

        for attempt in range(1, self.settings.vote_max_attempts + 1):
            report = self.get_report(report_id)
            ensure_not_author(voter_id, report.author_id)
            if report.is_terminal:
                raise ValidationError(f"Report is {report.status}; voting is closed")

            update = tally_update(report, action, self.thresholds, iso_utc(self.clock()))
            try:
                self.ledger.cast_vote(
                    report_id,
                    voter_id,
                    action,
                    report.author_id,
                    report_update=update,
                    expected_version=report.version,
                )
            except StaleReportError:
                log.debug("Report %s changed under vote (attempt %d), retrying", report_id, attempt)
                continue

            updated = report.model_copy(update={**update, "version": report.version + 1})
            if updated.status != PENDING:
                log.info(
                    "Report %s -> %s (confirmations=%d denials=%d score=%d)",
                    report_id, updated.status, updated.confirmations, updated.denials, updated.credibility_score,
                )
            self.rewards.on_vote(voter_id, action)
            return updated

        raise ConflictError("Report is receiving many votes right now, please retry")

    def confirm(self, report_id: str, voter_id: str) -> Report:
        return self.apply_vote(report_id, voter_id, CONFIRM)

    def deny(self, report_id: str, voter_id: str) -> Report:
        return self.apply_vote(report_id, voter_id, DENY)

    # ---------- delete ----------

    def delete_report(self, report_id: str, requester_id: str, requester_role: str) -> None:
        report = self.get_report(report_id)
        if report.author_id != requester_id and requester_role not in ELEVATED_ROLES:
            raise ForbiddenError("You can only delete your own reports")
        if not self.store.delete_report(report_id):
            raise NotFoundError("Report not found")
        log.info("Report %s deleted by %s (%s)", report_id, requester_id, requester_role)

    # ---------- expiry ----------

    def expire_due_reports(self, now: Optional[datetime] = None) -> int:
        """Move every pending report past its expiry to `expired`. Safe to re-run."""
        now_iso = iso_utc(now or self.clock())
        expired = 0
        for report_id in self.store.due_for_expiry(now_iso):
            if self.store.expire_report(report_id, now_iso):
                expired += 1
        log.info("Expiry sweep at %s: %d report(s) expired", now_iso, expired)
        return expired
