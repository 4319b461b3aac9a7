"""Configuration management."""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


DEFAULT_API_URL = "https://api.github.com"
DEFAULT_DATA_DIR = os.path.join(os.path.expanduser("~"), ".github-inbox")


@dataclass
class GitHubConfig:
    """GitHub API configuration."""
    token: str
    api_url: str = DEFAULT_API_URL
    user_agent: str = "github-inbox-agent"
    timeout_seconds: float = 30.0


@dataclass
class CacheConfig:
    """Request cache configuration."""
    ttl_seconds: float = 300.0        # 5 minutes
    flush_delay_seconds: float = 1.0  # coalescing window for disk writes
    persist: bool = True


@dataclass
class InboxConfig:
    """Working set (inbox) configuration."""
    max_active: int = 10
    expand_step: int = 10
    include_types: List[str] = field(default_factory=list)  # e.g. ["Issue"]; empty means all
    page_size: int = 50       # per_page for full pagination
    sync_page_size: int = 50  # per_page for the single-page refresh


@dataclass
class AppConfig:
    """Complete application configuration."""
    data_dir: str
    github: GitHubConfig
    cache: CacheConfig
    inbox: InboxConfig

    @property
    def storage_path(self) -> str:
        return os.path.join(self.data_dir, "github-notifications.json")

    @property
    def cache_path(self) -> str:
        return os.path.join(self.data_dir, "request-cache.json")


def _parse_list_env(key: str, default: List[str]) -> List[str]:
    """Parse comma-separated list from environment variable."""
    value = os.getenv(key, "")
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool_env(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> AppConfig:
    """
    Load configuration from environment variables.

    Raises:
        ValueError: If required configuration values are missing or invalid.
    """
    data_dir = os.path.expanduser(os.getenv("DATA_DIR", DEFAULT_DATA_DIR))

    # GitHub configuration
    token = os.getenv("GITHUB_TOKEN", "").strip()
    api_url = os.getenv("GITHUB_API_URL", DEFAULT_API_URL).rstrip("/")
    user_agent = os.getenv("GITHUB_USER_AGENT", "github-inbox-agent")
    timeout_seconds = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

    # Cache configuration
    cache_ttl = float(os.getenv("CACHE_TTL_SECONDS", "300"))
    cache_flush_delay = float(os.getenv("CACHE_FLUSH_DELAY_SECONDS", "1.0"))
    cache_persist = _parse_bool_env("CACHE_PERSIST", True)

    # Inbox configuration
    max_active = int(os.getenv("MAX_ACTIVE", "10"))
    expand_step = int(os.getenv("INBOX_EXPAND_STEP", "10"))
    include_types = _parse_list_env("INCLUDE_TYPES", [])
    page_size = int(os.getenv("PAGE_SIZE", "50"))
    sync_page_size = int(os.getenv("SYNC_PAGE_SIZE", "50"))

    # Validate required fields
    missing = []
    if not token:
        missing.append("GITHUB_TOKEN")

    if missing:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    if max_active < 1:
        raise ValueError(f"MAX_ACTIVE must be at least 1, got {max_active}")
    # GitHub caps per_page at 100
    if not 1 <= page_size <= 100 or not 1 <= sync_page_size <= 100:
        raise ValueError("PAGE_SIZE and SYNC_PAGE_SIZE must be between 1 and 100")

    return AppConfig(
        data_dir=data_dir,
        github=GitHubConfig(
            token=token,
            api_url=api_url,
            user_agent=user_agent,
            timeout_seconds=timeout_seconds,
        ),
        cache=CacheConfig(
            ttl_seconds=cache_ttl,
            flush_delay_seconds=cache_flush_delay,
            persist=cache_persist,
        ),
        inbox=InboxConfig(
            max_active=max_active,
            expand_step=expand_step,
            include_types=include_types,
            page_size=page_size,
            sync_page_size=sync_page_size,
        ),
    )
