# gosafe/services/rewards.py
from __future__ import annotations

import logging
from decimal import Decimal

from gosafe.models.report import CONFIRM

log = logging.getLogger(__name__)


class ParticipationReward:
    """
    Reputation bumps for taking part. Best-effort: a failed update is logged
    and dropped, it never fails the report or vote that triggered it.

    Denials earn nothing. That mirrors the deployed behaviour and may well be an
    oversight; it is kept until product decides otherwise.
    """

    def __init__(self, store, report_reward: Decimal = Decimal("1"), confirm_reward: Decimal = Decimal("0.5")):
        self.store = store
        self.report_reward = Decimal(str(report_reward))
        self.confirm_reward = Decimal(str(confirm_reward))

    def on_report_created(self, author_id: str) -> bool:
        return self._grant(author_id, self.report_reward, "report_created")

    def on_vote(self, voter_id: str, action: str) -> bool:
        if action != CONFIRM:
            return False
        return self._grant(voter_id, self.confirm_reward, "confirm")

    def _grant(self, user_id: str, amount: Decimal, reason: str) -> bool:
        if amount == 0:
            return False
        try:
            self.store.add_reputation(user_id, amount)
            return True
        except Exception:
            log.exception("Reputation update failed (user=%s, +%s, %s)", user_id, amount, reason)
            return False
