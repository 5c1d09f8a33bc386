"""Configuration manager for sfgraph using TOML files."""

from __future__ import annotations

from typing import Any, Dict, Optional

import toml

from . import config


# Default configurations for each section
DEFAULT_CONFIGS = {
    "github": {
        "url": "",
        "organization": config.DEFAULT_ORGANIZATION,
    },
    "llm": {
        "provider": config.LLM_PROVIDER,
        "model": config.LLM_MODEL,
        "endpoint": config.WATSONX_URL,
    },
    "analysis": {
        "max_depth": config.DEFAULT_MAX_DEPTH,
        "max_concurrent_requests": config.MAX_CONCURRENT_REQUESTS,
        "request_interval": config.REQUEST_INTERVAL_SECONDS,
    },
}


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections).

    Returns an empty dict when the file is missing or unreadable.
    """
    if not config.CONFIG_FILE.exists():
        return {}
    try:
        with open(config.CONFIG_FILE, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError):
        return {}


def _save_full_config(data: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    config.ensure_base_dirs()
    try:
        with open(config.CONFIG_FILE, "w") as f:
            toml.dump(data, f)
        return True
    except OSError:
        return False


def load_section(section: str) -> Dict[str, Any]:
    """Return one section merged over its defaults."""
    merged = dict(DEFAULT_CONFIGS.get(section, {}))
    merged.update(load_full_config().get(section, {}))
    return merged


def save_github_config(
    url: str = "",
    organization: str = "",
    token: Optional[str] = None,
) -> bool:
    """Save GitHub connection settings.

    Preserves other sections (e.g. ``[llm]``) in the file.

    Args:
        url: GitHub Enterprise host (``https://github.example.com``); empty for github.com
        organization: Default organisation for bare repository names
        token: Personal access token; omitted tokens keep the stored value

    Returns:
        True if saved successfully, False otherwise
    """
    data = load_full_config()
    github = data.get("github", {})
    github["url"] = url
    if organization:
        github["organization"] = organization
    if token:
        github["token"] = token
    data["github"] = github
    return _save_full_config(data)


def save_llm_config(provider: str, model: str, api_key: str = "", endpoint: str = "", project_id: str = "") -> bool:
    """Save LLM configuration, keeping the ``[github]`` and ``[analysis]`` sections."""
    data = load_full_config()
    data["llm"] = {"provider": provider, "model": model}
    if api_key:
        data["llm"]["api_key"] = api_key
    if endpoint:
        data["llm"]["endpoint"] = endpoint
    if project_id:
        data["llm"]["project_id"] = project_id
    return _save_full_config(data)
