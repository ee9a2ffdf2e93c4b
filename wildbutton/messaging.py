"""Outbound Slack Web API calls, one bot token per installation."""
from __future__ import annotations

import logging
from typing import Callable, Optional

from slack_sdk.errors import SlackClientError
from slack_sdk.web.client import WebClient

from .blocks import button_blocks, winner_blocks
from .errors import DeliveryError
from .models import Installation

logger = logging.getLogger(__name__)


class SlackMessenger:
    def __init__(self, client_factory: Callable[[str], WebClient] = lambda token: WebClient(token=token)):
        self._client_factory = client_factory

    def _client(self, inst: Installation) -> WebClient:
        return self._client_factory(inst.access_token)

    def post_button_message(self, inst: Installation) -> str:
        """Post the button into the team's channel and return the message ts."""
        if not inst.channel:
            raise DeliveryError(f"No channel configured for team {inst.team_id}")
        try:
            resp = self._client(inst).chat_postMessage(
                channel=inst.channel,
                text="A wild button appears!",
                blocks=button_blocks(inst.scheduled.timestamp),
            )
        except (SlackClientError, OSError) as e:
            raise DeliveryError(f"chat.postMessage failed for team {inst.team_id}: {e}") from e
        return resp["ts"]

    def announce_winner(
        self, inst: Installation, message_id: str, user_id: str, reaction_seconds: Optional[float] = None
    ) -> None:
        try:
            self._client(inst).chat_update(
                channel=inst.channel,
                ts=message_id,
                text=f"<@{user_id}> clicked the wild button first!",
                blocks=winner_blocks(user_id, reaction_seconds),
            )
        except (SlackClientError, OSError) as e:
            raise DeliveryError(f"chat.update failed for team {inst.team_id}: {e}") from e

    def send_ephemeral(self, inst: Installation, channel: str, user_id: str, text: str) -> None:
        try:
            self._client(inst).chat_postEphemeral(channel=channel, user=user_id, text=text)
        except (SlackClientError, OSError) as e:
            raise DeliveryError(f"chat.postEphemeral failed for team {inst.team_id}: {e}") from e
