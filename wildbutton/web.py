"""HTTP surface: FastAPI routes in front of the Bolt app."""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict
from urllib.parse import parse_qs

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from slack_bolt import App
from slack_bolt.adapter.fastapi import SlackRequestHandler

from .blocks import BUTTON_ACTION_ID
from .errors import InstallError

logger = logging.getLogger(__name__)


def is_button_click(payload: Dict[str, Any]) -> bool:
    actions = payload.get("actions") or []
    return (
        payload.get("type") == "block_actions"
        and len(actions) == 1
        and actions[0].get("action_id") == BUTTON_ACTION_ID
    )


def create_api(bolt_app: App, install: Callable[[str], Any]) -> FastAPI:
    api = FastAPI()
    handler = SlackRequestHandler(bolt_app)

    @api.get("/", response_class=PlainTextResponse)
    def root():
        return "Wild Button API is ready"

    @api.get("/auth", response_class=PlainTextResponse)
    def auth(code: str = "", state: str = ""):
        try:
            inst = install(code)
        except InstallError as e:
            logger.warning("install failed: %s", e)
            return PlainTextResponse("Installation failed, please try again.", status_code=400)
        return f"Installation success! Wild Button is ready in {inst.team_name or 'your workspace'}."

    @api.post("/commands")
    async def commands(req: Request):
        return await handler.handle(req)

    @api.post("/events")
    async def events(req: Request):
        return await handler.handle(req)

    @api.post("/interactive")
    async def interactive(req: Request):
        form = parse_qs((await req.body()).decode("utf-8"))
        try:
            payload = json.loads(form.get("payload", ["{}"])[0])
        except ValueError:
            payload = {}
        if not isinstance(payload, dict) or not is_button_click(payload):
            return PlainTextResponse("Unsupported interaction", status_code=400)
        return await handler.handle(req)

    return api
