"""First-click-wins arbitration for the pending button of a team."""
from __future__ import annotations

import logging
from enum import Enum

from .errors import StaleClickError
from .models import Installation, WinRecord
from .scheduler import Scheduler
from .store import Store

logger = logging.getLogger(__name__)


class ClickOutcome(str, Enum):
    WON = "won"
    ALREADY_RESOLVED = "already_resolved"


class ClickArbitrator:
    """
    Decides who clicked first.

    The decision is a single conditional write keyed on the pending message id:
    it clears the id, arms the next cycle and appends the win record together.
    Whichever worker's write lands first wins; every other click on the same
    message finds the id gone and changes nothing.
    """

    def __init__(self, store: Store, scheduler: Scheduler):
        self.store = store
        self.scheduler = scheduler

    def _pending(self, team_id: str, message_id: str) -> Installation:
        inst = self.store.get_installation(team_id)
        if inst is None or not inst.scheduled.pending or inst.scheduled.message_id != message_id:
            raise StaleClickError(f"message {message_id} is not pending for team {team_id}")
        return inst

    def resolve_click(self, team_id: str, message_id: str, user_id: str, click_instant: float) -> ClickOutcome:
        try:
            inst = self._pending(team_id, message_id)
        except StaleClickError as e:
            logger.debug("stale click user=%s: %s", user_id, e)
            return ClickOutcome.ALREADY_RESOLVED

        record = WinRecord(team_id=team_id, user_id=user_id, timestamp=int(click_instant))
        rearmed = self.scheduler.rearmed(inst, click_instant)
        if not self.store.resolve_pending(team_id, message_id, rearmed, record):
            logger.debug("lost click race team=%s user=%s", team_id, user_id)
            return ClickOutcome.ALREADY_RESOLVED

        logger.info(
            "winner team=%s user=%s message=%s next_fire_ts=%s",
            team_id, user_id, message_id, rearmed.timestamp,
        )
        return ClickOutcome.WON
