"""Configuration models for Elkbot.

Settings are loaded once at startup: an optional YAML file provides the
base values, an optional `.env` file is loaded into the environment, and
environment variables override both.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class SlackBotConfig(BaseModel):
    """Slack connection and command settings."""

    prefix: str = Field(default="elk!", description="Prefix that marks a message as a bot command")
    bot_token: Optional[str] = Field(default=None, description="Bot OAuth token (xoxb-...)")
    app_token: Optional[str] = Field(default=None, description="App-level token for Socket Mode (xapp-...)")
    owner_id: Optional[str] = Field(default=None, description="The only user allowed to run commands")


class QdrantConfig(BaseModel):
    """Configuration for the Qdrant index service."""

    url: str = "http://localhost:6333"
    api_key: Optional[str] = None
    collection_prefix: str = Field(default="", description="Prefix prepended to every collection name")
    timeout: Optional[int] = None


class IngestConfig(BaseModel):
    """Backlog ingestion settings."""

    page_size: int = Field(default=100, ge=1, le=1000, description="Messages per history page")
    max_pages: Optional[int] = Field(default=None, ge=1, description="Stop after this many pages (unbounded if unset)")
    history_rpm: float = Field(default=45.0, description="Target RPM for conversations.history (Tier 3)")
    history_cap: float = Field(default=60.0, description="Max RPM for conversations.history")
    rate_limit_retries: int = Field(default=5, description="Retries on HTTP 429 honoring Retry-After")


class MetricsConfig(BaseModel):
    """Prometheus exporter settings."""

    port: Optional[int] = Field(default=None, description="Serve metrics on this port when set")


class ElkbotConfig(BaseModel):
    """Main configuration for Elkbot."""

    log_level: str = "INFO"
    slack: SlackBotConfig = Field(default_factory=SlackBotConfig)
    qdrant: QdrantConfig = Field(default_factory=QdrantConfig)
    ingest: IngestConfig = Field(default_factory=IngestConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


# Environment variable -> (section, field). A None section targets the root model.
ENV_OVERRIDES: Dict[str, tuple] = {
    "ELKBOT_PREFIX": ("slack", "prefix"),
    "ELKBOT_TOKEN": ("slack", "bot_token"),
    "ELKBOT_APP_TOKEN": ("slack", "app_token"),
    "ELKBOT_OWNER_ID": ("slack", "owner_id"),
    "ELKBOT_LOG_LEVEL": (None, "log_level"),
    "ELKBOT_PAGE_SIZE": ("ingest", "page_size"),
    "ELKBOT_MAX_PAGES": ("ingest", "max_pages"),
    "ELKBOT_METRICS_PORT": ("metrics", "port"),
    "QDRANT_URL": ("qdrant", "url"),
    "QDRANT_API_KEY": ("qdrant", "api_key"),
    "QDRANT_COLLECTION_PREFIX": ("qdrant", "collection_prefix"),
}


class ConfigLoader:
    """Utility class for loading configuration from YAML and the environment."""

    @staticmethod
    def load(path: Optional[str] = None, env_file: Optional[str] = None) -> ElkbotConfig:
        """Load configuration.

        Args:
            path: Optional path to a YAML configuration file. A missing file
                yields defaults.
            env_file: Optional `.env` file. Values already present in the
                process environment are not overridden by it.

        Returns:
            ElkbotConfig: Loaded configuration object.
        """
        raw_data: Dict[str, Any] = {}
        if path:
            p = Path(path)
            if p.exists():
                with open(p, "r") as f:
                    raw_data = yaml.safe_load(f) or {}

        if env_file:
            load_dotenv(env_file)

        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value is None or value == "":
                continue
            if section is None:
                raw_data[key] = value
            else:
                target = raw_data.setdefault(section, {}) or {}
                target[key] = value
                raw_data[section] = target

        return ElkbotConfig(**raw_data)
