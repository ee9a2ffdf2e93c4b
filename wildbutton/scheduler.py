"""
The fire/re-arm cycle.

``Scheduler.tick(now)`` is stateless with respect to time and installations:
it reads every installation from the store, and all of its writes are
conditional, so two ticks racing each other (or a tick racing the ``announce``
command) post at most one message per cycle.

Cycle of one installation:

    armed      fire_ts=T, message_id=""         tick at T claims, posts
    pending    fire_ts=T, message_id=ts, next=N  first click wins
    armed      fire_ts=N, message_id=""         ...

A pending message nobody clicks expires once N arrives.
"""
from __future__ import annotations

import logging
import random
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol

from .errors import ConflictError, DeliveryError, InvalidScheduleError
from .interval import next_fire_time, same_local_day
from .models import Installation, Scheduled
from .store import Store

logger = logging.getLogger(__name__)


class Messenger(Protocol):
    def post_button_message(self, inst: Installation) -> str: ...


class PostStatus(str, Enum):
    POSTED = "posted"
    CLAIMED_ELSEWHERE = "claimed_elsewhere"
    FAILED = "failed"


@dataclass(frozen=True)
class PostResult:
    status: PostStatus
    message_id: str = ""
    next_timestamp: Optional[int] = None


class Scheduler:
    def __init__(
        self,
        store: Store,
        messenger: Messenger,
        max_delivery_failures: int = 5,
        claim_timeout: int = 300,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.messenger = messenger
        self.max_delivery_failures = max_delivery_failures
        self.claim_timeout = claim_timeout
        self.rng = rng or random.Random()

    # -------------------------
    # Tick
    # -------------------------

    def tick(self, now: Optional[float] = None) -> List[PostResult]:
        now = int(time.time() if now is None else now)
        results = []
        for inst in self.store.list_installations():
            try:
                result = self._tick_installation(inst, now)
            except Exception:
                # one broken team must not stop the others
                logger.exception("tick failed team=%s", inst.team_id)
                continue
            if result is not None:
                results.append(result)
        return results

    def _tick_installation(self, inst: Installation, now: int) -> Optional[PostResult]:
        sched = inst.scheduled

        if sched.timestamp is None and not sched.pending:
            self.arm(inst, now)
            return None

        if sched.pending:
            if sched.next_timestamp is None or sched.next_timestamp > now:
                return None
            expired = Scheduled(timestamp=sched.next_timestamp)
            if not self.store.conditional_update_scheduled(inst.team_id, sched.message_id, expired):
                return None
            logger.info("button expired unclicked team=%s message=%s", inst.team_id, sched.message_id)
            inst = inst.with_scheduled(expired)
            sched = expired

        if sched.timestamp > now:
            return None
        if inst.manual_announce:
            return None
        return self.post_now(inst, now)

    def arm(self, inst: Installation, now: float) -> bool:
        """Give an installation without a fire time its first one."""
        try:
            fire = next_fire_time(inst, now, rng=self.rng, skip_today=self._posted_today(inst, now))
        except InvalidScheduleError as e:
            logger.warning("cannot schedule team=%s: %s", inst.team_id, e)
            return False
        armed = Scheduled(timestamp=fire)
        if not self.store.conditional_update_scheduled(inst.team_id, "", armed, expected_timestamp=None):
            return False
        logger.info("armed team=%s fire_ts=%s", inst.team_id, fire)
        return True

    # -------------------------
    # Posting
    # -------------------------

    def post_now(self, inst: Installation, now: Optional[float] = None) -> PostResult:
        """
        Post the button for ``inst`` unless someone else already is. Used by
        the tick for due installations and by the ``announce`` command.
        """
        now = int(time.time() if now is None else now)
        token = uuid.uuid4().hex
        if not self.store.claim_post(
            inst.team_id, token, now, self.claim_timeout, expected_timestamp=inst.scheduled.timestamp
        ):
            logger.debug("post already claimed team=%s", inst.team_id)
            return PostResult(PostStatus.CLAIMED_ELSEWHERE)

        try:
            message_id = self.messenger.post_button_message(inst)
        except DeliveryError as e:
            failures = self.store.record_delivery_failure(inst.team_id, token, self.max_delivery_failures)
            if failures is not None and failures >= self.max_delivery_failures:
                logger.error(
                    "team=%s needs attention: %d consecutive failed posts: %s", inst.team_id, failures, e
                )
            else:
                logger.warning("post failed team=%s failures=%s: %s", inst.team_id, failures, e)
            return PostResult(PostStatus.FAILED)

        upcoming = inst.scheduled.timestamp
        # announced ahead of time: the post replaces the regular fire time
        fire_ts = upcoming if upcoming is not None and upcoming <= now else now
        try:
            following = next_fire_time(inst, now, rng=self.rng, skip_today=True)
        except InvalidScheduleError as e:
            logger.warning("no next fire time team=%s: %s", inst.team_id, e)
            following = None

        posted = Scheduled(timestamp=fire_ts, message_id=message_id, next_timestamp=following)
        if not self.store.complete_post(
            inst.team_id, token, posted, posted_at=now, expected_timestamp=upcoming
        ):
            # the claim timed out and was taken over while we were posting
            logger.warning("lost post claim team=%s message=%s", inst.team_id, message_id)
            return PostResult(PostStatus.CLAIMED_ELSEWHERE, message_id=message_id)

        logger.info("posted team=%s message=%s next_fire_ts=%s", inst.team_id, message_id, following)
        return PostResult(PostStatus.POSTED, message_id=message_id, next_timestamp=following)

    # -------------------------
    # Re-arming
    # -------------------------

    def _posted_today(self, inst: Installation, now: float) -> bool:
        # a team gets at most one button per local day
        return inst.last_posted_at is not None and same_local_day(inst.timezone, inst.last_posted_at, now)

    def rearmed(self, inst: Installation, now: float) -> Scheduled:
        """The ``scheduled`` value to commit once the pending message resolves."""
        following = inst.scheduled.next_timestamp
        if following is None or following <= now:
            try:
                following = next_fire_time(inst, now, rng=self.rng, skip_today=True)
            except InvalidScheduleError as e:
                logger.warning("not re-arming team=%s: %s", inst.team_id, e)
                following = None
        return Scheduled(timestamp=following)

    def rearm(self, team_id: str, now: Optional[float] = None) -> Installation:
        """
        Recompute the fire time after a configuration change. While a message
        is pending only its successor is recomputed.

        Raises InvalidScheduleError if the new configuration cannot fire and
        ConflictError if a message got posted in the meantime.
        """
        now = int(time.time() if now is None else now)
        inst = self.store.get_installation(team_id)
        if inst is None:
            raise ConflictError(f"Team {team_id} is not installed")
        if inst.scheduled.pending:
            following = next_fire_time(inst, now, rng=self.rng, skip_today=True)
            new = Scheduled(inst.scheduled.timestamp, inst.scheduled.message_id, following)
            expected = inst.scheduled.message_id
        else:
            fire = next_fire_time(inst, now, rng=self.rng, skip_today=self._posted_today(inst, now))
            new = Scheduled(timestamp=fire)
            expected = ""
        if not self.store.conditional_update_scheduled(
            team_id, expected, new, expected_timestamp=inst.scheduled.timestamp
        ):
            raise ConflictError(f"Schedule of team {team_id} changed concurrently")
        return inst.with_scheduled(new)
