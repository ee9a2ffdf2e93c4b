"""
SQLite persistence for installations and win records.

Every cross-worker guarantee (one post per cycle, one winner per message, one
pending message per team) is an ``UPDATE ... WHERE`` on the installation row
whose ``rowcount`` tells the caller whether it won. Nothing here holds state
between calls; each operation opens its own connection.
"""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from .models import Installation, Scheduled, WinRecord

SCHEMA = """
CREATE TABLE IF NOT EXISTS installations(
  team_id           TEXT PRIMARY KEY,
  team_name         TEXT NOT NULL DEFAULT '',
  access_token      TEXT NOT NULL,
  bot_user_id       TEXT NOT NULL DEFAULT '',
  app_id            TEXT NOT NULL DEFAULT '',
  authed_user_id    TEXT NOT NULL DEFAULT '',
  channel           TEXT NOT NULL DEFAULT '',
  manual_announce   INTEGER NOT NULL DEFAULT 0,
  weekdays          INTEGER NOT NULL,
  interval_start    INTEGER NOT NULL,  -- seconds since local midnight
  interval_end      INTEGER NOT NULL,
  timezone          TEXT NOT NULL,
  fire_ts           INTEGER,           -- epoch seconds, NULL when un-armed
  message_id        TEXT NOT NULL DEFAULT '',  -- Slack ts of the pending button
  next_fire_ts      INTEGER,           -- computed at post time, committed on win
  claim_token       TEXT NOT NULL DEFAULT '',
  claimed_at        INTEGER,
  delivery_failures INTEGER NOT NULL DEFAULT 0,
  needs_attention   INTEGER NOT NULL DEFAULT 0,
  last_posted_at    INTEGER,
  installed_at      TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS wins(
  id       INTEGER PRIMARY KEY AUTOINCREMENT,
  team_id  TEXT NOT NULL,
  user_id  TEXT NOT NULL,
  won_at   INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_wins_team ON wins(team_id, won_at);
"""

CONFIG_COLUMNS = ("channel", "manual_announce", "weekdays", "interval_start", "interval_end", "timezone")

# marks "do not compare" for optional conditions
_ANY = object()


def _row_to_installation(row: sqlite3.Row) -> Installation:
    return Installation(
        team_id=row["team_id"],
        team_name=row["team_name"],
        access_token=row["access_token"],
        bot_user_id=row["bot_user_id"],
        app_id=row["app_id"],
        authed_user_id=row["authed_user_id"],
        channel=row["channel"],
        manual_announce=bool(row["manual_announce"]),
        weekdays=row["weekdays"],
        interval_start=row["interval_start"],
        interval_end=row["interval_end"],
        timezone=row["timezone"],
        scheduled=Scheduled(
            timestamp=row["fire_ts"],
            message_id=row["message_id"],
            next_timestamp=row["next_fire_ts"],
        ),
        claim_token=row["claim_token"],
        claimed_at=row["claimed_at"],
        delivery_failures=row["delivery_failures"],
        needs_attention=bool(row["needs_attention"]),
        last_posted_at=row["last_posted_at"],
    )


class Store:
    def __init__(self, path: str, timeout: float = 10.0):
        self.path = path
        self.timeout = timeout

    @contextmanager
    def _get_conn(self) -> Iterator[sqlite3.Connection]:
        # writers take the write lock up front so concurrent writers queue
        conn = sqlite3.connect(self.path, timeout=self.timeout, isolation_level="IMMEDIATE")
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_schema(self) -> None:
        with self._get_conn() as c:
            c.executescript(SCHEMA)

    # -------------------------
    # Installations
    # -------------------------

    def save_installation(self, inst: Installation) -> Installation:
        """
        Insert a new installation, or refresh the credentials of an existing
        one. A reinstall keeps the team's configuration and live schedule.
        """
        with self._get_conn() as c:
            c.execute(
                """
                INSERT INTO installations(team_id, team_name, access_token, bot_user_id, app_id,
                                          authed_user_id, channel, manual_announce, weekdays,
                                          interval_start, interval_end, timezone, fire_ts,
                                          message_id, next_fire_ts, installed_at)
                VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
                ON CONFLICT(team_id) DO UPDATE SET
                  team_name=excluded.team_name,
                  access_token=excluded.access_token,
                  bot_user_id=excluded.bot_user_id,
                  app_id=excluded.app_id,
                  authed_user_id=excluded.authed_user_id,
                  channel=CASE WHEN installations.channel = '' THEN excluded.channel
                               ELSE installations.channel END
                """,
                (
                    inst.team_id, inst.team_name, inst.access_token, inst.bot_user_id, inst.app_id,
                    inst.authed_user_id, inst.channel, int(inst.manual_announce), inst.weekdays,
                    inst.interval_start, inst.interval_end, inst.timezone, inst.scheduled.timestamp,
                    inst.scheduled.message_id, inst.scheduled.next_timestamp,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            row = c.execute("SELECT * FROM installations WHERE team_id=?", (inst.team_id,)).fetchone()
        return _row_to_installation(row)

    def get_installation(self, team_id: str) -> Optional[Installation]:
        with self._get_conn() as c:
            row = c.execute("SELECT * FROM installations WHERE team_id=?", (team_id,)).fetchone()
        return _row_to_installation(row) if row else None

    def list_installations(self) -> List[Installation]:
        with self._get_conn() as c:
            rows = c.execute("SELECT * FROM installations ORDER BY team_id").fetchall()
        return [_row_to_installation(r) for r in rows]

    def delete_installation(self, team_id: str) -> bool:
        with self._get_conn() as c:
            cur = c.execute("DELETE FROM installations WHERE team_id=?", (team_id,))
            return cur.rowcount == 1

    def update_config(self, team_id: str, **changes) -> Optional[Installation]:
        unknown = set(changes) - set(CONFIG_COLUMNS)
        if unknown:
            raise ValueError(f"Not configuration fields: {sorted(unknown)}")
        if changes:
            assignments = ", ".join(f"{name}=?" for name in changes)
            values = [int(v) if isinstance(v, bool) else v for v in changes.values()]
            with self._get_conn() as c:
                c.execute(
                    f"UPDATE installations SET {assignments} WHERE team_id=?",
                    (*values, team_id),
                )
        return self.get_installation(team_id)

    # -------------------------
    # Scheduled state (conditional writes)
    # -------------------------

    def conditional_update_scheduled(
        self,
        team_id: str,
        expected_message_id: str,
        new: Scheduled,
        expected_timestamp=_ANY,
    ) -> bool:
        """Replace ``scheduled`` if the pending message id (and optionally the
        fire timestamp) still hold the expected values. False means conflict."""
        sql = """
            UPDATE installations SET fire_ts=?, message_id=?, next_fire_ts=?
            WHERE team_id=? AND message_id=?
        """
        params = [new.timestamp, new.message_id, new.next_timestamp, team_id, expected_message_id]
        if expected_timestamp is not _ANY:
            sql += " AND fire_ts IS ?"
            params.append(expected_timestamp)
        with self._get_conn() as c:
            return c.execute(sql, params).rowcount == 1

    def claim_post(
        self, team_id: str, token: str, now: int, claim_timeout: int, expected_timestamp=_ANY
    ) -> bool:
        """Take the right to post for this cycle. Only possible while nothing is
        pending, no other claim is younger than ``claim_timeout`` and (when
        given) the fire timestamp is still ``expected_timestamp``."""
        sql = """
            UPDATE installations SET claim_token=?, claimed_at=?
            WHERE team_id=? AND message_id=''
              AND (claim_token='' OR claimed_at IS NULL OR claimed_at <= ?)
        """
        params = [token, now, team_id, now - claim_timeout]
        if expected_timestamp is not _ANY:
            sql += " AND fire_ts IS ?"
            params.append(expected_timestamp)
        with self._get_conn() as c:
            return c.execute(sql, params).rowcount == 1

    def complete_post(
        self,
        team_id: str,
        token: str,
        scheduled: Scheduled,
        posted_at: Optional[int] = None,
        expected_timestamp=_ANY,
    ) -> bool:
        sql = """
            UPDATE installations
            SET fire_ts=?, message_id=?, next_fire_ts=?, claim_token='', claimed_at=NULL,
                delivery_failures=0, needs_attention=0,
                last_posted_at=COALESCE(?, last_posted_at)
            WHERE team_id=? AND claim_token=? AND message_id=''
        """
        params = [
            scheduled.timestamp, scheduled.message_id, scheduled.next_timestamp, posted_at, team_id, token,
        ]
        if expected_timestamp is not _ANY:
            sql += " AND fire_ts IS ?"
            params.append(expected_timestamp)
        with self._get_conn() as c:
            return c.execute(sql, params).rowcount == 1

    def record_delivery_failure(self, team_id: str, token: str, max_failures: int) -> Optional[int]:
        """Release the claim and count the failure. Returns the consecutive
        failure count, or None if the claim was no longer ours."""
        with self._get_conn() as c:
            cur = c.execute(
                """
                UPDATE installations
                SET claim_token='', claimed_at=NULL,
                    delivery_failures=delivery_failures + 1,
                    needs_attention=CASE WHEN delivery_failures + 1 >= ? THEN 1 ELSE needs_attention END
                WHERE team_id=? AND claim_token=?
                """,
                (max_failures, team_id, token),
            )
            if cur.rowcount != 1:
                return None
            row = c.execute(
                "SELECT delivery_failures FROM installations WHERE team_id=?", (team_id,)
            ).fetchone()
        return row["delivery_failures"]

    def resolve_pending(
        self, team_id: str, expected_message_id: str, new: Scheduled, record: WinRecord
    ) -> bool:
        """Clear the pending message and append the win in one transaction.
        Exactly one caller per message id gets True."""
        if not expected_message_id:
            return False
        with self._get_conn() as c:
            cur = c.execute(
                """
                UPDATE installations SET fire_ts=?, message_id=?, next_fire_ts=?
                WHERE team_id=? AND message_id=?
                """,
                (new.timestamp, new.message_id, new.next_timestamp, team_id, expected_message_id),
            )
            if cur.rowcount != 1:
                return False
            self._insert_win(c, record)
        return True

    # -------------------------
    # Win records
    # -------------------------

    @staticmethod
    def _insert_win(c: sqlite3.Connection, record: WinRecord) -> None:
        c.execute(
            "INSERT INTO wins(team_id, user_id, won_at) VALUES(?,?,?)",
            (record.team_id, record.user_id, record.timestamp),
        )

    def append_win_record(self, record: WinRecord) -> None:
        with self._get_conn() as c:
            self._insert_win(c, record)

    def list_win_records(self, team_id: str, since: Optional[int] = None) -> List[WinRecord]:
        sql = "SELECT team_id, user_id, won_at FROM wins WHERE team_id=?"
        params: list = [team_id]
        if since is not None:
            sql += " AND won_at >= ?"
            params.append(since)
        sql += " ORDER BY won_at ASC, id ASC"
        with self._get_conn() as c:
            rows = c.execute(sql, params).fetchall()
        return [WinRecord(r["team_id"], r["user_id"], r["won_at"]) for r in rows]
