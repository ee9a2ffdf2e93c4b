"""Slack Bolt listeners: the slash command, the button and uninstall events."""
from __future__ import annotations

import time
from typing import Callable, Optional

from slack_bolt import App
from slack_bolt.authorization import AuthorizeResult

from .blocks import BUTTON_ACTION_ID, TOO_SLOW_TEXT
from .click import ClickArbitrator, ClickOutcome
from .commands import CommandRouter
from .config import Config
from .errors import DeliveryError
from .messaging import SlackMessenger
from .store import Store

COMMAND = "/wildbutton"


def _reaction_seconds(message_id: str, clicked_at: float) -> Optional[float]:
    # a Slack message ts is the posting instant
    try:
        return clicked_at - float(message_id)
    except ValueError:
        return None


def create_bolt_app(
    config: Config,
    store: Store,
    router: CommandRouter,
    arbitrator: ClickArbitrator,
    messenger: SlackMessenger,
    clock: Callable[[], float] = time.time,
    process_before_response: bool = False,
) -> App:
    def authorize(enterprise_id, team_id, logger):
        inst = store.get_installation(team_id)
        if inst is None:
            logger.warning("No installation for team %s", team_id)
            return None
        return AuthorizeResult(
            enterprise_id=enterprise_id,
            team_id=team_id,
            bot_token=inst.access_token,
            bot_user_id=inst.bot_user_id,
        )

    app = App(
        signing_secret=config.signing_secret,
        authorize=authorize,
        process_before_response=process_before_response,
    )

    @app.command(COMMAND)
    def on_command(ack, command, logger):
        reply = router.handle(
            command["team_id"], command["user_id"], command.get("channel_id", ""), command.get("text", "")
        )
        ack(text=reply.text, blocks=reply.blocks)

    @app.action(BUTTON_ACTION_ID)
    def on_click(ack, body, logger):
        ack()
        clicked_at = clock()
        team_id = body["team"]["id"]
        user_id = body["user"]["id"]
        message_id = (body.get("message") or {}).get("ts") or body["container"]["message_ts"]

        outcome = arbitrator.resolve_click(team_id, message_id, user_id, clicked_at)
        inst = store.get_installation(team_id)
        if inst is None:
            return
        try:
            if outcome is ClickOutcome.WON:
                messenger.announce_winner(inst, message_id, user_id, _reaction_seconds(message_id, clicked_at))
            else:
                channel = (body.get("channel") or {}).get("id") or inst.channel
                messenger.send_ephemeral(inst, channel, user_id, TOO_SLOW_TEXT)
        except DeliveryError as e:
            logger.warning("Click reply failed for team %s: %s", team_id, e)

    @app.event("app_uninstalled")
    def on_uninstalled(body, logger):
        if store.delete_installation(body["team_id"]):
            logger.info("Uninstalled from team %s", body["team_id"])

    @app.event("tokens_revoked")
    def on_tokens_revoked(body, event, logger):
        if event.get("tokens", {}).get("bot") and store.delete_installation(body["team_id"]):
            logger.info("Bot token revoked, removed team %s", body["team_id"])

    return app
