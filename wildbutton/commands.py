"""
Slash command routing.

``/wildbutton <text>`` is parsed into one of a fixed set of commands; anything
unrecognised becomes USAGE. Configuration commands are reserved for the user
who installed the app.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .blocks import HELP_TEXT, USAGE_TEXT, schedule_text, stats_blocks
from .errors import ConflictError, InvalidScheduleError
from .interval import format_clock, format_weekdays, parse_interval, parse_weekdays, validate
from .models import Installation
from .scheduler import PostStatus, Scheduler
from .stats import compute_stats
from .store import Store

logger = logging.getLogger(__name__)


class CommandKind(str, Enum):
    HELP = "help"
    STATS = "stats"
    USAGE = "usage"
    ANNOUNCE = "announce"
    NEXT = "next"
    CHANNEL = "channel"
    WEEKDAYS = "weekdays"
    INTERVAL = "interval"
    TIMEZONE = "timezone"
    MANUAL = "manual"


ADMIN_COMMANDS = {
    CommandKind.ANNOUNCE,
    CommandKind.CHANNEL,
    CommandKind.WEEKDAYS,
    CommandKind.INTERVAL,
    CommandKind.TIMEZONE,
    CommandKind.MANUAL,
}


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    argument: str = ""


@dataclass(frozen=True)
class Reply:
    text: str = ""
    blocks: Optional[List[Dict[str, Any]]] = None


def parse_command(text: str) -> Command:
    name, _, argument = (text or "").strip().partition(" ")
    try:
        kind = CommandKind(name.lower())
    except ValueError:
        return Command(CommandKind.USAGE)
    return Command(kind, argument.strip())


class CommandRouter:
    def __init__(self, store: Store, scheduler: Scheduler, clock: Callable[[], float] = time.time):
        self.store = store
        self.scheduler = scheduler
        self.clock = clock
        self._handlers = {
            CommandKind.HELP: self._help,
            CommandKind.STATS: self._stats,
            CommandKind.USAGE: self._usage,
            CommandKind.ANNOUNCE: self._announce,
            CommandKind.NEXT: self._next,
            CommandKind.CHANNEL: self._channel,
            CommandKind.WEEKDAYS: self._weekdays,
            CommandKind.INTERVAL: self._interval,
            CommandKind.TIMEZONE: self._timezone,
            CommandKind.MANUAL: self._manual,
        }

    def handle(self, team_id: str, user_id: str, channel_id: str, text: str) -> Reply:
        command = parse_command(text)
        logger.debug("command team=%s user=%s kind=%s", team_id, user_id, command.kind.value)
        inst = self.store.get_installation(team_id)
        if command.kind in ADMIN_COMMANDS:
            if inst is None:
                return Reply("Wild Button is not installed in this workspace.")
            if user_id != inst.authed_user_id:
                return Reply("Only the person who installed Wild Button can do that.")
        return self._handlers[command.kind](inst, command, team_id, channel_id)

    # -------------------------
    # Everyone
    # -------------------------

    def _help(self, inst, command, team_id, channel_id) -> Reply:
        return Reply(HELP_TEXT)

    def _usage(self, inst, command, team_id, channel_id) -> Reply:
        return Reply(USAGE_TEXT)

    def _stats(self, inst, command, team_id, channel_id) -> Reply:
        stats = compute_stats(self.store, team_id)
        return Reply("STATISTICS", stats_blocks(stats, inst.timezone if inst else "UTC"))

    def _next(self, inst, command, team_id, channel_id) -> Reply:
        if inst is None:
            return Reply("Wild Button is not installed in this workspace.")
        return Reply(schedule_text(inst))

    # -------------------------
    # Admin
    # -------------------------

    def _announce(self, inst: Installation, command, team_id, channel_id) -> Reply:
        if inst.scheduled.pending:
            return Reply("There is already a button waiting to be clicked.")
        result = self.scheduler.post_now(inst, self.clock())
        if result.status is PostStatus.POSTED:
            return Reply("The wild button is out!")
        if result.status is PostStatus.FAILED:
            return Reply("I couldn't post the button. Is the bot invited to the channel?")
        return Reply("Somebody else is already posting the button.")

    def _channel(self, inst: Installation, command, team_id, channel_id) -> Reply:
        self.store.update_config(team_id, channel=channel_id)
        return Reply(f"The wild button will appear in <#{channel_id}>.")

    def _manual(self, inst: Installation, command, team_id, channel_id) -> Reply:
        value = command.argument.lower()
        if value not in ("on", "off"):
            return Reply("Usage: `/wildbutton manual on` or `/wildbutton manual off`")
        self.store.update_config(team_id, manual_announce=value == "on")
        if value == "on":
            return Reply("Manual mode on: the button only appears when you `announce` it.")
        return Reply("Manual mode off: the button appears on its own again.")

    def _weekdays(self, inst: Installation, command, team_id, channel_id) -> Reply:
        try:
            mask = parse_weekdays(command.argument)
        except ValueError as e:
            return Reply(f"{e}. Example: `/wildbutton weekdays mon-fri`")
        return self._reconfigure(inst, weekdays=mask)

    def _interval(self, inst: Installation, command, team_id, channel_id) -> Reply:
        try:
            start, end = parse_interval(command.argument)
        except ValueError as e:
            return Reply(f"{e}. Example: `/wildbutton interval 09:00-16:00`")
        return self._reconfigure(inst, interval_start=start, interval_end=end)

    def _timezone(self, inst: Installation, command, team_id, channel_id) -> Reply:
        return self._reconfigure(inst, timezone=command.argument)

    def _reconfigure(self, inst: Installation, **changes) -> Reply:
        candidate = replace(inst, **changes)
        try:
            validate(candidate)
        except InvalidScheduleError as e:
            return Reply(f"That schedule can never fire: {e}")

        self.store.update_config(inst.team_id, **changes)
        try:
            updated = self.scheduler.rearm(inst.team_id, self.clock())
        except (ConflictError, InvalidScheduleError) as e:
            logger.warning("re-arm after config change failed team=%s: %s", inst.team_id, e)
            return Reply("Saved, but the button is busy right now. The new schedule applies from the next round.")

        return Reply(
            f"Saved. {format_weekdays(updated.weekdays)}, "
            f"{format_clock(updated.interval_start)}-{format_clock(updated.interval_end)} "
            f"({updated.timezone}).\n{schedule_text(updated)}"
        )
