"""Leaderboard statistics derived from a team's win records."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol, Sequence, Tuple

from .models import WinRecord


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: str
    wins: int
    first_win: int


@dataclass(frozen=True)
class Stats:
    leaderboard: Tuple[LeaderboardEntry, ...] = ()
    total_wins: int = 0
    first_win: Optional[int] = None
    last_win: Optional[int] = None


class WinHistory(Protocol):
    def list_win_records(self, team_id: str, since: Optional[int] = None) -> Sequence[WinRecord]: ...


def aggregate(records: Iterable[WinRecord]) -> Stats:
    """
    Count wins per user. Most wins first; equal counts are ordered by who won
    first, then by user id so the result never depends on input order.
    """
    counts: Dict[str, int] = {}
    firsts: Dict[str, int] = {}
    total = 0
    first_win: Optional[int] = None
    last_win: Optional[int] = None
    for r in records:
        total += 1
        counts[r.user_id] = counts.get(r.user_id, 0) + 1
        if r.user_id not in firsts or r.timestamp < firsts[r.user_id]:
            firsts[r.user_id] = r.timestamp
        first_win = r.timestamp if first_win is None else min(first_win, r.timestamp)
        last_win = r.timestamp if last_win is None else max(last_win, r.timestamp)

    leaderboard = sorted(
        (LeaderboardEntry(user, n, firsts[user]) for user, n in counts.items()),
        key=lambda e: (-e.wins, e.first_win, e.user_id),
    )
    return Stats(tuple(leaderboard), total, first_win, last_win)


def compute_stats(store: WinHistory, team_id: str, since: Optional[int] = None) -> Stats:
    return aggregate(store.list_win_records(team_id, since=since))
