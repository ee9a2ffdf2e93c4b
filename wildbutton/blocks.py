"""Block Kit payloads and reply texts."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from .interval import format_clock, format_weekdays
from .models import Installation
from .stats import Stats

BUTTON_ACTION_ID = "wild_button"

HELP_TEXT = (
    "*Wild Button* is a totally useless game. Once a day, at a random moment, "
    "a button appears. Whoever clicks it first wins. That's it.\n"
    "• `/wildbutton stats` shows who has won the most\n"
    "• `/wildbutton help` shows this text\n"
    "Admins can also use `announce`, `next`, `channel`, `weekdays mon-fri`, "
    "`interval 09:00-16:00`, `timezone Europe/Copenhagen` and `manual on|off`."
)

USAGE_TEXT = (
    "Sorry, I didn't understand you. Try `/wildbutton help` or `/wildbutton stats`."
)

TOO_SLOW_TEXT = "Too slow! Somebody beat you to it."

MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


def button_blocks(fire_ts: Optional[int]) -> List[Dict[str, Any]]:
    return [
        {"type": "section", "text": {"type": "mrkdwn", "text": "*A wild button appears!*"}},
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "action_id": BUTTON_ACTION_ID,
                    "text": {"type": "plain_text", "text": "Click me!", "emoji": True},
                    "value": str(fire_ts or ""),
                    "style": "primary",
                }
            ],
        },
    ]


def winner_blocks(user_id: str, reaction_seconds: Optional[float] = None) -> List[Dict[str, Any]]:
    text = f"🏆 <@{user_id}> clicked the wild button first!"
    if reaction_seconds is not None and reaction_seconds >= 0:
        text += f" ({reaction_seconds:.1f}s after it appeared)"
    return [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]


def _when(ts: int, tz: str) -> str:
    return datetime.fromtimestamp(ts, ZoneInfo(tz)).strftime("%Y-%m-%d %H:%M")


def stats_blocks(stats: Stats, tz: str = "UTC") -> List[Dict[str, Any]]:
    blocks: List[Dict[str, Any]] = [
        {"type": "section", "text": {"type": "mrkdwn", "text": "*STATISTICS*"}}
    ]
    if not stats.leaderboard:
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": "Nobody has won yet."}})
        return blocks

    lines = []
    for rank, entry in enumerate(stats.leaderboard, start=1):
        medal = MEDALS.get(rank, f"{rank:>2}.")
        lines.append(f"{medal} {entry.wins} <@{entry.user_id}>")
    blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(lines)}})

    summary = f"{stats.total_wins} button{'s' if stats.total_wins != 1 else ''} clicked"
    summary += f" • first win {_when(stats.first_win, tz)} • latest win {_when(stats.last_win, tz)}"
    blocks.append({"type": "context", "elements": [{"type": "mrkdwn", "text": summary}]})
    return blocks


def schedule_text(inst: Installation) -> str:
    lines = [
        f"Channel: {'<#' + inst.channel + '>' if inst.channel else 'not set'}",
        f"Days: {format_weekdays(inst.weekdays)}",
        f"Interval: {format_clock(inst.interval_start)}-{format_clock(inst.interval_end)} ({inst.timezone})",
        f"Manual announce: {'on' if inst.manual_announce else 'off'}",
    ]
    sched = inst.scheduled
    if sched.pending:
        lines.append("A button is out there right now, go click it!")
    elif sched.timestamp is not None:
        lines.append(f"Next button: {_when(sched.timestamp, inst.timezone)}")
    else:
        lines.append("No button is scheduled.")
    if inst.needs_attention:
        lines.append(f"⚠️ The last {inst.delivery_failures} posts failed.")
    return "\n".join(lines)
