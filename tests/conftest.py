"""Pytest configuration and fixtures for sfgraph tests."""

from __future__ import annotations

import re
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import unquote

import httpx
import pytest

from sfgraph.config import Settings
from sfgraph.github_client import GitHubContentClient
from sfgraph.models import DependencyNode

from salesforce_samples import (
    AUDIT_LOG,
    AUDIT_LOG_PATH,
    HANDLER_PATH,
    HANDLER_TEST_PATH,
    MY_HANDLER,
    MY_HANDLER_TEST,
    MY_TRIGGER,
    TRIGGER_PATH,
)

API_BASE = "https://api.github.test"
RAW_BASE = "https://raw.github.test"


class FakeGitHub:
    """In-memory GitHub serving repository contents through httpx.MockTransport.

    ``repos`` maps ``"org/repo"`` to ``{path: text}``. ``scripted`` maps a URL
    path to a list of status codes (or exceptions) returned before the real
    response.
    """

    def __init__(self, repos: Dict[str, Dict[str, str]]):
        self.repos = repos
        self.scripted: Dict[str, List] = defaultdict(list)
        self.requests: List[httpx.Request] = []
        self.tree_status: Optional[int] = None

    # ------------------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self, settings: Settings, **kwargs) -> GitHubContentClient:
        http = httpx.AsyncClient(transport=self.transport())
        return GitHubContentClient(settings, http_client=http, **kwargs)

    def count(self, fragment: str) -> int:
        return sum(1 for request in self.requests if fragment in str(request.url))

    # ------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = unquote(request.url.path)

        if self.scripted.get(path):
            scripted = self.scripted[path].pop(0)
            if isinstance(scripted, Exception):
                raise scripted
            return httpx.Response(scripted, json={"message": "scripted"})

        if request.url.host == "raw.github.test":
            return self._raw(path)

        if path == "/search/code":
            return self._search(request.url.params.get("q", ""))

        match = re.match(r"^/repos/([^/]+)/([^/]+)(?:/(.*))?$", path)
        if not match:
            return httpx.Response(404, json={"message": "Not Found"})
        full_name = f"{match.group(1)}/{match.group(2)}"
        rest = match.group(3) or ""
        files = self.repos.get(full_name)
        if files is None:
            return httpx.Response(404, json={"message": "Not Found"})

        if rest == "":
            return httpx.Response(200, json={"full_name": full_name, "default_branch": "main"})
        if rest.startswith("git/trees/"):
            if self.tree_status:
                return httpx.Response(self.tree_status, json={"message": "tree unavailable"})
            tree = [{"path": p, "type": "blob", "size": len(text)} for p, text in files.items()]
            return httpx.Response(200, json={"tree": tree, "truncated": False})
        if rest.startswith("contents"):
            return self._contents(full_name, files, rest[len("contents/"):])
        return httpx.Response(404, json={"message": "Not Found"})

    def _entry(self, full_name: str, path: str, text: str) -> dict:
        return {
            "type": "file",
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "size": len(text),
            "download_url": f"{RAW_BASE}/{full_name}/main/{path}?token=abc",
            "html_url": f"https://github.test/{full_name}/blob/main/{path}",
        }

    def _contents(self, full_name: str, files: Dict[str, str], path: str) -> httpx.Response:
        if path in files:
            return httpx.Response(200, json=self._entry(full_name, path, files[path]))

        prefix = path.rstrip("/") + "/"
        children = {}
        for file_path, text in files.items():
            if not file_path.startswith(prefix):
                continue
            remainder = file_path[len(prefix):]
            head = remainder.split("/", 1)[0]
            if "/" in remainder:
                children[head] = {"type": "dir", "name": head, "path": prefix + head, "size": 0}
            else:
                children[head] = self._entry(full_name, file_path, text)
        if not children:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=list(children.values()))

    def _raw(self, path: str) -> httpx.Response:
        match = re.match(r"^/([^/]+/[^/]+)/main/(.*)$", path)
        if match and match.group(2) in self.repos.get(match.group(1), {}):
            return httpx.Response(200, text=self.repos[match.group(1)][match.group(2)])
        return httpx.Response(404, text="Not Found")

    def _search(self, query: str) -> httpx.Response:
        tokens = query.split()
        repo = next((t[len("repo:"):] for t in tokens if t.startswith("repo:")), "")
        name = tokens[-1] if tokens else ""
        items = []
        for path, text in self.repos.get(repo, {}).items():
            lines = [line for line in text.splitlines() if name in line]
            if lines:
                items.append({
                    "path": path,
                    "html_url": f"https://github.test/{repo}/blob/main/{path}",
                    "text_matches": [{"fragment": lines[0]}],
                })
        return httpx.Response(200, json={"total_count": len(items), "items": items})


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch):
    """Point the config file at a temp dir and drop credentials from the environment."""
    home = tmp_path / "sfgraph-home"
    monkeypatch.setattr("sfgraph.config.BASE_DIR", home)
    monkeypatch.setattr("sfgraph.config.CONFIG_FILE", home / "config.toml")
    for var in ("GITHUB_TOKEN", "GITHUB_URL", "SFGRAPH_ORG", "WATSONX_API_KEY", "WATSONX_PROJECT_ID", "WATSONX_URL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def settings() -> Settings:
    """Settings with every delay zeroed so retries and batches run instantly."""
    return Settings(
        api_base=API_BASE,
        token="test-token",
        organization="acme",
        request_interval=0,
        backoff_base=0,
        backoff_max=0,
        rate_limit_delay=0,
        batch_pause=0,
    )


@pytest.fixture
def salesforce_repos() -> Dict[str, Dict[str, str]]:
    return {
        "acme/core": {
            TRIGGER_PATH: MY_TRIGGER,
            HANDLER_PATH: MY_HANDLER,
            HANDLER_TEST_PATH: MY_HANDLER_TEST,
            "force-app/main/default/classes/MyHandler.cls-meta.xml": "<ApexClass/>",
            "README.md": "# core",
        },
        "acme/shared": {
            AUDIT_LOG_PATH: AUDIT_LOG,
        },
    }


@pytest.fixture
def fake_github(salesforce_repos) -> FakeGitHub:
    return FakeGitHub(salesforce_repos)


@pytest.fixture
def github_for():
    """Factory for a FakeGitHub over caller-supplied repositories."""
    return FakeGitHub


@pytest.fixture
def apex_node():
    """Factory for an Apex node in repository ``r``."""

    def _make(name: str = "Foo.cls", path: Optional[str] = None, node_type: str = "apex") -> DependencyNode:
        path = path or f"force-app/main/default/classes/{name}"
        return DependencyNode(id=f"r:{path}", name=name, path=path, type=node_type, repo="r")

    return _make
