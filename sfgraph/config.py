"""Configuration paths and runtime settings for sfgraph."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

BASE_DIR = Path(os.environ.get("SFGRAPH_HOME", str(Path.home() / ".sfgraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

DEFAULT_ORGANIZATION = "IBMSC"
PUBLIC_API_BASE = "https://api.github.com"

# Request pipeline
MAX_CONCURRENT_REQUESTS = 2
REQUEST_INTERVAL_SECONDS = 0.5
REQUEST_TIMEOUT_SECONDS = 20.0
MAX_RETRIES = 3
BACKOFF_BASE_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 5.0
RATE_LIMIT_DELAY_SECONDS = 2.0

# Cache lifetimes (seconds)
CONTENTS_TTL = 10 * 60
FILE_CONTENT_TTL = 30 * 60
SEARCH_TTL = 5 * 60

# Dependents scan
BATCH_SIZE = 10
BATCH_CONCURRENCY = 5
BATCH_PAUSE_SECONDS = 0.1

DEFAULT_MAX_DEPTH = 2
SEARCH_PAGE_SIZE = 50

# LLM defaults (WatsonX is the house model service)
LLM_PROVIDER = "watsonx"
LLM_MODEL = "ibm/granite-3-8b-instruct"
WATSONX_URL = "https://us-south.ml.cloud.ibm.com"
WATSONX_VERSION = "2023-05-29"


def api_base_from_url(github_url: Optional[str]) -> str:
    """GitHub Enterprise serves its REST API under ``/api/v3``."""
    if github_url:
        return f"{github_url.rstrip('/')}/api/v3"
    return PUBLIC_API_BASE


@dataclass
class Settings:
    """Everything the client and analyzer need, resolved once per process."""

    api_base: str = PUBLIC_API_BASE
    token: Optional[str] = None
    organization: str = DEFAULT_ORGANIZATION

    max_concurrent_requests: int = MAX_CONCURRENT_REQUESTS
    request_interval: float = REQUEST_INTERVAL_SECONDS
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    max_retries: int = MAX_RETRIES
    backoff_base: float = BACKOFF_BASE_SECONDS
    backoff_max: float = BACKOFF_MAX_SECONDS
    rate_limit_delay: float = RATE_LIMIT_DELAY_SECONDS

    contents_ttl: float = CONTENTS_TTL
    file_content_ttl: float = FILE_CONTENT_TTL
    search_ttl: float = SEARCH_TTL

    batch_size: int = BATCH_SIZE
    batch_concurrency: int = BATCH_CONCURRENCY
    batch_pause: float = BATCH_PAUSE_SECONDS
    max_depth: int = DEFAULT_MAX_DEPTH

    llm: Dict[str, Any] = field(default_factory=dict)

    @property
    def web_base(self) -> str:
        """Browser-facing host, used to build blob URLs."""
        if self.api_base == PUBLIC_API_BASE:
            return "https://github.com"
        return self.api_base.replace("/api/v3", "")


def load_settings(**overrides: Any) -> Settings:
    """Merge defaults, ``~/.sfgraph/config.toml`` and the environment.

    Environment variables win over the file; keyword overrides win over both.
    """
    from .config_manager import load_full_config

    file_config = load_full_config()
    github = file_config.get("github", {})
    analysis = file_config.get("analysis", {})
    llm = dict(file_config.get("llm", {}))

    github_url = os.environ.get("GITHUB_URL") or github.get("url")
    settings = Settings(
        api_base=api_base_from_url(github_url),
        token=os.environ.get("GITHUB_TOKEN") or github.get("token"),
        organization=os.environ.get("SFGRAPH_ORG") or github.get("organization", DEFAULT_ORGANIZATION),
    )

    for key, value in analysis.items():
        if hasattr(settings, key):
            setattr(settings, key, value)

    llm.setdefault("provider", LLM_PROVIDER)
    llm.setdefault("model", LLM_MODEL)
    if os.environ.get("WATSONX_API_KEY"):
        llm["api_key"] = os.environ["WATSONX_API_KEY"]
    if os.environ.get("WATSONX_PROJECT_ID"):
        llm["project_id"] = os.environ["WATSONX_PROJECT_ID"]
    if llm["provider"] == "watsonx":
        llm.setdefault("endpoint", os.environ.get("WATSONX_URL", WATSONX_URL))
    settings.llm = llm

    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


def ensure_base_dirs() -> None:
    """Create the configuration directory if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
