"""OAuth v2 install callback: exchange the code, store the team, arm it."""
from __future__ import annotations

import logging
import time
from typing import Optional

from slack_sdk.errors import SlackClientError
from slack_sdk.web.client import WebClient

from .config import Config
from .errors import InstallError
from .models import Installation
from .scheduler import Scheduler
from .store import Store

logger = logging.getLogger(__name__)


def install(
    code: str,
    config: Config,
    store: Store,
    scheduler: Scheduler,
    client: Optional[WebClient] = None,
    now: Optional[float] = None,
) -> Installation:
    if not code:
        raise InstallError("Missing OAuth code")
    client = client or WebClient()
    try:
        resp = client.oauth_v2_access(
            client_id=config.client_id,
            client_secret=config.client_secret,
            code=code,
            redirect_uri=config.redirect_uri,
        )
    except (SlackClientError, OSError) as e:
        raise InstallError(f"oauth.v2.access failed: {e}") from e

    team = resp.get("team") or {}
    if not team.get("id") or not resp.get("access_token"):
        raise InstallError("oauth.v2.access returned no team or token")

    inst = store.save_installation(
        Installation(
            team_id=team["id"],
            team_name=team.get("name", ""),
            access_token=resp["access_token"],
            bot_user_id=resp.get("bot_user_id", ""),
            app_id=resp.get("app_id", ""),
            authed_user_id=(resp.get("authed_user") or {}).get("id", ""),
            channel=(resp.get("incoming_webhook") or {}).get("channel_id", ""),
        )
    )
    logger.info("installed team=%s (%s)", inst.team_id, inst.team_name)

    if inst.scheduled.timestamp is None and not inst.scheduled.pending:
        scheduler.arm(inst, time.time() if now is None else now)
    return store.get_installation(inst.team_id)
