# gosafe/services/ledger.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, NamedTuple, Optional

from gosafe.errors import SelfVoteError, ValidationError
from gosafe.models.report import ACTIONS, Vote, iso_utc


class VoteResult(NamedTuple):
    action: str
    vote: Vote


def ensure_not_author(voter_id: str, report_author_id: str) -> None:
    if voter_id == report_author_id:
        raise SelfVoteError("You cannot vote on your own report")


class VoteLedger:
    """
    One vote per (report, voter), forever. The uniqueness check and the insert
    happen inside a single store call, together with whatever report update the
    caller wants committed alongside the vote.
    """

    def __init__(self, store, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def cast_vote(
        self,
        report_id: str,
        voter_id: str,
        action: str,
        report_author_id: str,
        report_update: Optional[Dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> VoteResult:
        ensure_not_author(voter_id, report_author_id)
        if action not in ACTIONS:
            raise ValidationError(f"Action must be one of {', '.join(ACTIONS)}")

        vote = Vote(
            report_id=report_id,
            voter_id=voter_id,
            action=action,
            created_at=iso_utc(self.clock()),
        )
        # raises DuplicateVoteError / StaleReportError
        self.store.commit_vote(vote.model_dump(), report_update, expected_version)
        return VoteResult(action=action, vote=vote)

    def has_voted(self, report_id: str, voter_id: str) -> bool:
        return self.store.get_vote(report_id, voter_id) is not None
