"""
Slackbot: Wild Button

Features
- Once per configured day, at a random moment inside the team's time window, a button appears
- The first person to click it wins; everybody after that is too slow
- /wildbutton stats shows the all-time leaderboard for the workspace
- Per-team weekdays, interval and timezone, configurable by the installing user
- Manual mode: the button only appears on `/wildbutton announce`
- SQLite persistence (file path configurable via env)

Quick Start
1) Create a Slack app with bot token scopes: chat:write, commands (incoming-webhook optional)
2) Interactivity Request URL: https://YOUR_HOST/interactive
   Slash command /wildbutton: https://YOUR_HOST/commands
   Event subscriptions (app_uninstalled, tokens_revoked): https://YOUR_HOST/events
   OAuth redirect URL: https://YOUR_HOST/auth
3) Export env vars (see wildbutton/config.py) and run:  python app.py
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from apscheduler.schedulers.background import BackgroundScheduler
from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler

from wildbutton.bolt import create_bolt_app
from wildbutton.click import ClickArbitrator
from wildbutton.commands import CommandRouter
from wildbutton.config import Config
from wildbutton.install import install
from wildbutton.messaging import SlackMessenger
from wildbutton.scheduler import Scheduler
from wildbutton.store import Store

logger = logging.getLogger("wildbutton")


@dataclass
class Services:
    config: Config
    store: Store
    scheduler: Scheduler
    bolt_app: App


def build(config: Config) -> Services:
    store = Store(config.db_path)
    store.init_schema()
    messenger = SlackMessenger()
    scheduler = Scheduler(
        store,
        messenger,
        max_delivery_failures=config.max_delivery_failures,
        claim_timeout=config.claim_timeout,
    )
    router = CommandRouter(store, scheduler)
    arbitrator = ClickArbitrator(store, scheduler)
    bolt_app = create_bolt_app(config, store, router, arbitrator, messenger)
    return Services(config, store, scheduler, bolt_app)


def start_ticker(services: Services) -> BackgroundScheduler:
    ticker = BackgroundScheduler(timezone="UTC")
    ticker.add_job(
        services.scheduler.tick,
        "interval",
        seconds=services.config.tick_seconds,
        id="wildbutton-tick",
        max_instances=1,
        coalesce=True,
    )
    ticker.start()
    logger.info("Ticking every %ss", services.config.tick_seconds)
    return ticker


# -------------------------
# Socket Mode worker or HTTP server
# -------------------------

if __name__ == "__main__":
    config = Config.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    services = build(config)
    start_ticker(services)

    if config.use_socket_mode:
        if not config.app_token:
            raise SystemExit("APP_LEVEL_TOKEN is required when USE_SOCKET_MODE=true")
        logger.info("Starting Slack bot in Socket Mode")
        SocketModeHandler(services.bolt_app, config.app_token).start()
    else:
        import uvicorn

        from wildbutton.web import create_api

        api = create_api(
            services.bolt_app,
            lambda code: install(code, config, services.store, services.scheduler),
        )
        logger.info("Starting HTTP server on :%s", config.port)
        uvicorn.run(api, host="0.0.0.0", port=config.port)
