"""
Environment configuration.

Env Vars
- SLACK_SIGNING_SECRET
- SLACK_CLIENT_ID, SLACK_CLIENT_SECRET (OAuth install)
- SLACK_REDIRECT_URI (optional, must match the app's OAuth settings)
- APP_LEVEL_TOKEN (xapp-...)  # if using Socket Mode
- USE_SOCKET_MODE=true|false (default false)
- DB_PATH (optional, default './wildbutton.db')
- TICK_SECONDS (default 30)
- MAX_DELIVERY_FAILURES (default 5)
- CLAIM_TIMEOUT_SECONDS (default 300)
- PORT (default 3000)
- LOG_LEVEL (default INFO)
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Config:
    signing_secret: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    app_token: Optional[str] = None
    use_socket_mode: bool = False
    db_path: str = "./wildbutton.db"
    tick_seconds: int = 30
    max_delivery_failures: int = 5
    claim_timeout: int = 300
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Config":
        if dotenv:
            load_dotenv()
        return cls(
            signing_secret=os.getenv("SLACK_SIGNING_SECRET"),
            client_id=os.getenv("SLACK_CLIENT_ID"),
            client_secret=os.getenv("SLACK_CLIENT_SECRET"),
            redirect_uri=os.getenv("SLACK_REDIRECT_URI"),
            app_token=os.getenv("APP_LEVEL_TOKEN"),
            use_socket_mode=_flag("USE_SOCKET_MODE", "false"),
            db_path=os.getenv("DB_PATH", "./wildbutton.db"),
            tick_seconds=int(os.getenv("TICK_SECONDS", "30")),
            max_delivery_failures=int(os.getenv("MAX_DELIVERY_FAILURES", "5")),
            claim_timeout=int(os.getenv("CLAIM_TIMEOUT_SECONDS", "300")),
            port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )
