"""Runtime configuration, read from ``AGENT_AUDIT_*`` environment variables."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import __version__


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AGENT_AUDIT_", env_file=".env", extra="ignore")

    user_agent: str = Field(
        default=f"Mozilla/5.0 (compatible; AgentAudit/{__version__}; +https://github.com/agent-audit/agent-audit)",
        description="User-Agent sent with every request.",
    )
    request_timeout: float = Field(default=30.0, gt=0, description="Page fetch timeout in seconds.")
    anonymous_timeout: float = Field(default=15.0, gt=0, description="Page fetch timeout for anonymous scans.")
    resource_timeout: float = Field(default=10.0, gt=0, description="Timeout for llms.txt, robots.txt, etc.")
    max_concurrent: int = Field(default=3, ge=1, description="Maximum simultaneous page fetches per crawl.")
    default_max_pages: int = Field(default=5, ge=1)
    anonymous_max_pages: int = Field(default=3, ge=1)
    cache_ttl_hours: float = Field(default=24.0, ge=0, description="Freshness window for completed audits.")
    log_level: str = "WARNING"
    log_json: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
