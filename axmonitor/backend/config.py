"""
backend/config.py

Application configuration via Pydantic Settings.
All values can be overridden with environment variables or a .env file.

Quick start — create a .env file in your project root:
    ENVIRONMENTS=PRD=http://ax-prd-monitor:5000/api/metrics/current,TST=http://ax-tst-monitor:5000/api/metrics/current
    EVALUATION_INTERVAL_SECONDS=60
    WEBHOOK_URLS=teams=https://example.webhook.office.com/webhookb2/...
    ACTION_EXECUTOR_URL=http://ax-agent:8081
"""

from __future__ import annotations

import json
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_pairs(v: str) -> dict[str, str]:
    """Parse ``a=1,b=2`` (or a JSON object) into a dict."""
    v = v.strip()
    if v.startswith("{"):
        return json.loads(v)
    pairs: dict[str, str] = {}
    for item in v.split(","):
        if not item.strip():
            continue
        name, sep, value = item.partition("=")
        if not sep:
            raise ValueError(f"expected name=value, got {item!r}")
        pairs[name.strip()] = value.strip()
    return pairs


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Monitored environments: name → metric snapshot URL
    ENVIRONMENTS: Annotated[dict[str, str], NoDecode] = {
        "PRD": "http://localhost:5000/api/metrics/current",
    }

    # Evaluation cycle
    EVALUATION_INTERVAL_SECONDS: int = 60
    SNAPSHOT_TIMEOUT_SECONDS: float = 10.0

    # Correlation
    REFIRE_SUPPRESSION_SECONDS: int = 900   # 15 min; flapping metrics re-use the open alert
    CORRELATION_WINDOW_SECONDS: int = 300
    # "type_a+type_b" pairs that belong to the same incident when close in time
    CORRELATION_RELATIONSHIPS: Annotated[list[str], NoDecode] = [
        "cpu_high+blocking_chain_high",
    ]

    # Escalation / notifications
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0
    # channel → webhook URL (Teams, ticketing, ...)
    WEBHOOK_URLS: Annotated[dict[str, str], NoDecode] = {}

    # Remediation
    ACTION_EXECUTOR_URL: str = ""          # empty → dry-run executor
    ACTION_EXECUTOR_TOKEN: str = ""
    REMEDIATION_DEFAULT_WINDOW_SECONDS: int = 3600
    REMEDIATION_DEFAULT_TIMEOUT_SECONDS: int = 300
    EXECUTION_HISTORY_LIMIT: int = 100

    # Storage: one SQLite file per environment
    DB_DIR: str = "data"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("ENVIRONMENTS", "WEBHOOK_URLS", mode="before")
    @classmethod
    def parse_pairs(cls, v):
        if isinstance(v, str):
            return _parse_pairs(v)
        return v

    @field_validator("CORRELATION_RELATIONSHIPS", mode="before")
    @classmethod
    def parse_relationships(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    def db_path_for(self, environment: str) -> str:
        return f"{self.DB_DIR}/{environment.lower()}.db"


settings = Settings()
