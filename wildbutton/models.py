from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional

# Monday is the most significant bit, Sunday the least: 0b1111100 is Mon–Fri.
ALL_WEEKDAYS = 0b1111111
DEFAULT_WEEKDAYS = 0b1111100
DEFAULT_INTERVAL_START = 9 * 3600   # 09:00
DEFAULT_INTERVAL_END = 16 * 3600    # 16:00
DEFAULT_TIMEZONE = "Europe/Copenhagen"
SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class Scheduled:
    timestamp: Optional[int] = None       # fire instant of the pending or most recent message
    message_id: str = ""                  # Slack ts of the pending message, "" when none
    next_timestamp: Optional[int] = None  # computed at post time, committed on resolution

    @property
    def pending(self) -> bool:
        return bool(self.message_id)


@dataclass(frozen=True)
class Installation:
    team_id: str
    access_token: str
    team_name: str = ""
    bot_user_id: str = ""
    app_id: str = ""
    authed_user_id: str = ""
    channel: str = ""
    manual_announce: bool = False
    weekdays: int = DEFAULT_WEEKDAYS
    interval_start: int = DEFAULT_INTERVAL_START
    interval_end: int = DEFAULT_INTERVAL_END
    timezone: str = DEFAULT_TIMEZONE
    scheduled: Scheduled = field(default_factory=Scheduled)
    # operational state owned by the scheduler
    claim_token: str = ""
    claimed_at: Optional[int] = None
    delivery_failures: int = 0
    needs_attention: bool = False
    # instant of the last successful post, keeps re-arming off that local day
    last_posted_at: Optional[int] = None

    def with_scheduled(self, scheduled: Scheduled) -> "Installation":
        return replace(self, scheduled=scheduled)


@dataclass(frozen=True)
class WinRecord:
    team_id: str
    user_id: str
    timestamp: int
