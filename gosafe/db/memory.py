# gosafe/db/memory.py
"""
In-process store with the same contract as DynamoStore. Used for local runs
(STORE_BACKEND=memory) and the test-suite.

Votes on one report are serialized by that report's lock; different reports
never contend.
"""
from __future__ import annotations

import copy
import threading
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from gosafe.errors import DuplicateVoteError, StaleReportError
from gosafe.models.report import EXPIRED, PENDING


class MemoryStore:
    def __init__(self) -> None:
        self._reports: Dict[str, Dict[str, Any]] = {}
        self._votes: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._users: Dict[str, Dict[str, Any]] = {}
        self._guard = threading.Lock()
        self._report_locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, report_id: str) -> threading.Lock:
        with self._guard:
            lock = self._report_locks.get(report_id)
            if lock is None:
                lock = self._report_locks[report_id] = threading.Lock()
            return lock

    def _existing_lock(self, report_id: str) -> Optional[threading.Lock]:
        # read paths must not create locks for ids that were never stored
        with self._guard:
            return self._report_locks.get(report_id)

    # ---------- reports ----------

    def put_report(self, item: Dict[str, Any]) -> None:
        with self._lock_for(item["id"]), self._guard:
            self._reports[item["id"]] = copy.deepcopy(item)

    def get_report(self, report_id: str) -> Optional[Dict[str, Any]]:
        lock = self._existing_lock(report_id)
        if lock is None:
            return None
        with lock:
            item = self._reports.get(report_id)
            return copy.deepcopy(item) if item else None

    def delete_report(self, report_id: str) -> bool:
        lock = self._existing_lock(report_id)
        if lock is None:
            return False
        with lock, self._guard:
            self._report_locks.pop(report_id, None)
            return self._reports.pop(report_id, None) is not None

    def list_reports(self, status: Optional[str] = None, category: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._guard:
            items = [copy.deepcopy(r) for r in self._reports.values()]
        if status:
            items = [r for r in items if r.get("status") == status]
        if category:
            items = [r for r in items if r.get("category") == category]
        items.sort(key=lambda r: r.get("created_at", ""), reverse=True)
        return items

    def reports_in_zones(self, zone_ids: Iterable[str]) -> List[Dict[str, Any]]:
        wanted = set(zone_ids)
        with self._guard:
            return [copy.deepcopy(r) for r in self._reports.values() if r.get("zone_id") in wanted]

    # ---------- votes ----------

    def get_vote(self, report_id: str, voter_id: str) -> Optional[Dict[str, Any]]:
        with self._guard:
            vote = self._votes.get((report_id, voter_id))
            return dict(vote) if vote else None

    def commit_vote(
        self,
        vote: Dict[str, Any],
        report_update: Optional[Dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> None:
        """
        Insert the vote and, if given, apply `report_update` to its report as one
        unit. Raises DuplicateVoteError if the voter already voted, or
        StaleReportError if the report is gone, left `pending`, or moved past
        `expected_version`.
        """
        key = (vote["report_id"], vote["voter_id"])
        if report_update is None:
            lock = self._lock_for(vote["report_id"])
        else:
            lock = self._existing_lock(vote["report_id"])
            if lock is None:
                raise StaleReportError(vote["report_id"])
        with lock:
            if key in self._votes:
                raise DuplicateVoteError("You have already voted on this report")

            if report_update is not None:
                report = self._reports.get(vote["report_id"])
                if (
                    report is None
                    or report.get("status") != PENDING
                    or report.get("version", 0) != expected_version
                ):
                    raise StaleReportError(vote["report_id"])
                report.update(report_update)
                report["version"] = expected_version + 1

            with self._guard:
                self._votes[key] = dict(vote)

    # ---------- expiry sweep ----------

    def due_for_expiry(self, now_iso: str) -> List[str]:
        with self._guard:
            return [
                r["id"] for r in self._reports.values()
                if r.get("status") == PENDING and r.get("expires_at", "") <= now_iso
            ]

    def expire_report(self, report_id: str, now_iso: str) -> bool:
        lock = self._existing_lock(report_id)
        if lock is None:
            return False
        with lock:
            report = self._reports.get(report_id)
            if report is None or report.get("status") != PENDING or report.get("expires_at", "") > now_iso:
                return False
            report["status"] = EXPIRED
            report["updated_at"] = now_iso
            report["version"] = report.get("version", 0) + 1
            return True

    # ---------- users ----------

    def put_user(self, item: Dict[str, Any]) -> None:
        with self._guard:
            self._users[item["user_id"]] = dict(item)

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._guard:
            user = self._users.get(user_id)
            return dict(user) if user else None

    def add_reputation(self, user_id: str, amount: Decimal) -> None:
        with self._guard:
            user = self._users.setdefault(user_id, {"user_id": user_id, "reputation": Decimal("0")})
            user["reputation"] = Decimal(str(user.get("reputation", 0))) + amount
