"""Configuration handling for the Reddit content collector."""

import math
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from reddit_collector.exceptions import ConfigurationError


DEFAULT_USER_AGENT = "reddit_collector/0.1 (thread ingestion for content aggregation)"


def _is_positive_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


@dataclass
class RateLimitConfig:
    """Rate limiting configuration."""

    max_requests_per_minute: int = 100
    min_remaining_calls: int = 5
    sleep_buffer_sec: int = 2
    default_retry_after_sec: int = 60


@dataclass
class StreamConfig:
    """Cursor pagination settings for streaming collection."""

    page_size: int = 100
    max_pages: int = 10
    page_delay_sec: float = 1.0
    gap_threshold_sec: int = 3600


@dataclass
class WindowConfig:
    """Historical window sizing settings."""

    target_items: int = 750
    min_days: int = 7
    max_days: int = 60
    default_items_per_day: float = 20.0
    smoothing_factor: float = 0.3
    # Estimated posts per day for known subreddits
    posting_volumes: Dict[str, float] = field(
        default_factory=lambda: {"austinfood": 15.0, "FoodNYC": 40.0}
    )


@dataclass
class RetrievalConfig:
    """Thread retrieval settings."""

    comment_limit: int = 500
    comment_sort: str = "top"
    comment_depth: Optional[int] = None
    delay_between_requests_sec: float = 1.0
    max_comment_depth: int = 200


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""

    enable_prometheus: bool = False
    prometheus_port: int = 8000


@dataclass
class Config:
    """Application configuration combining environment variables and YAML config."""

    # Reddit API credentials from environment
    client_id: str = ""
    client_secret: str = ""
    username: str = ""
    password: str = ""
    user_agent: str = DEFAULT_USER_AGENT

    # Endpoints and transport
    auth_url: str = "https://www.reddit.com/api/v1/access_token"
    api_base_url: str = "https://oauth.reddit.com"
    permalink_base_url: str = "https://reddit.com"
    request_timeout_sec: float = 10.0

    log_level: str = "INFO"
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    window: WindowConfig = field(default_factory=WindowConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_files(cls, config_path: str, env_path: Optional[str] = None) -> "Config":
        """
        Load configuration from YAML file and environment variables.

        Args:
            config_path: Path to YAML configuration file
            env_path: Optional path to .env file (defaults to .env in current directory)

        Returns:
            Config instance with merged configuration
        """
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        config = cls()

        config.client_id = os.getenv("REDDIT_CLIENT_ID", "")
        config.client_secret = os.getenv("REDDIT_CLIENT_SECRET", "")
        config.username = os.getenv("REDDIT_USERNAME", "")
        config.password = os.getenv("REDDIT_PASSWORD", "")
        config.user_agent = os.getenv("REDDIT_USER_AGENT", DEFAULT_USER_AGENT)

        if os.path.exists(config_path):
            with open(config_path, "r", encoding="utf-8") as file:
                yaml_config = yaml.safe_load(file)

            if yaml_config:
                config._merge(yaml_config)

        return config

    def _merge(self, yaml_config: Dict[str, Any]) -> None:
        """Merge a parsed YAML mapping into this config, section by section."""
        sections = {
            "rate_limit": RateLimitConfig,
            "stream": StreamConfig,
            "window": WindowConfig,
            "retrieval": RetrievalConfig,
            "monitoring": MonitoringConfig,
        }

        for key, value in yaml_config.items():
            if key in sections:
                if isinstance(value, dict):
                    section = getattr(self, key)
                    known = {f.name for f in fields(section)}
                    for sub_key, sub_value in value.items():
                        if sub_key in known:
                            setattr(section, sub_key, sub_value)
            elif hasattr(self, key):
                setattr(self, key, value)

    def validate(self) -> List[str]:
        """
        Validate configuration and return a list of validation errors.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.client_id:
            errors.append("Missing REDDIT_CLIENT_ID in environment")
        if not self.client_secret:
            errors.append("Missing REDDIT_CLIENT_SECRET in environment")
        if not self.username:
            errors.append("Missing REDDIT_USERNAME in environment")
        if not self.password:
            errors.append("Missing REDDIT_PASSWORD in environment")
        if not self.user_agent:
            errors.append("REDDIT_USER_AGENT must not be empty")

        if self.request_timeout_sec <= 0:
            errors.append("request_timeout_sec must be greater than 0")
        if self.rate_limit.max_requests_per_minute <= 0:
            errors.append("rate_limit.max_requests_per_minute must be greater than 0")
        if not 1 <= self.stream.page_size <= 100:
            errors.append("stream.page_size must be between 1 and 100")
        if self.stream.max_pages < 1:
            errors.append("stream.max_pages must be at least 1")
        if self.window.min_days <= 0 or self.window.min_days > self.window.max_days:
            errors.append("window.min_days must be positive and not exceed window.max_days")
        if self.window.default_items_per_day <= 0:
            errors.append("window.default_items_per_day must be greater than 0")
        volumes = self.window.posting_volumes or {}
        if not isinstance(volumes, dict):
            errors.append("window.posting_volumes must map subreddit names to posts per day")
        else:
            for name, volume in volumes.items():
                if not _is_positive_number(volume):
                    errors.append(f"window.posting_volumes.{name} must be a positive number")

        return errors

    def ensure_valid(self) -> None:
        """Raise ConfigurationError if validate() reports any problem."""
        errors = self.validate()
        if errors:
            raise ConfigurationError("Invalid configuration: " + "; ".join(errors))
