"""Tests for code-search discovery."""

import asyncio

import httpx
import pytest

from salesforce_samples import HANDLER_PATH, HANDLER_TEST_PATH, TRIGGER_PATH
from sfgraph.errors import AuthenticationError, RateLimitError, TransientNetworkError
from sfgraph.patterns import DependencyPattern, search_patterns
from sfgraph.search import SearchDiscovery

APEX_ONLY = [p for p in search_patterns() if p.type == "Apex Class"]


def _search(fake_github, settings, search_repo, patterns=None):
    async def scenario():
        async with fake_github.client(settings) as client:
            return await SearchDiscovery(client).search(search_repo, HANDLER_PATH, "acme/core", patterns)

    return asyncio.run(scenario())


def test_hits_become_nodes_and_links(fake_github, settings):
    """Each hit becomes a node linked from the target, tests as 'tests' links."""
    nodes, links = _search(fake_github, settings, "acme/core", APEX_ONLY)

    ids = {node.id for node in nodes}
    assert ids == {f"acme/core:{TRIGGER_PATH}", f"acme/core:{HANDLER_TEST_PATH}"}

    by_target = {link.target: link for link in links}
    test_link = by_target[f"acme/core:{HANDLER_TEST_PATH}"]
    assert test_link.type == "tests"
    assert test_link.strength == 1.0
    assert test_link.source == f"acme/core:{HANDLER_PATH}"
    assert test_link.code_snippet == "private class MyHandlerTest {"
    assert by_target[f"acme/core:{TRIGGER_PATH}"].type == "references"


def test_query_shape(fake_github, settings):
    """Query is repo qualifier, pattern qualifier, then the target name."""
    _search(fake_github, settings, "acme/core", APEX_ONLY)

    query = fake_github.requests[0].url.params["q"]
    assert query == "repo:acme/core extension:cls MyHandler"


def test_low_priority_patterns_are_skipped(fake_github, settings):
    """Low priority patterns never reach the search API."""
    low = DependencyPattern("Docs", "low", (), "extension:md", "Documentation")
    nodes, links = _search(fake_github, settings, "acme/core", [low])

    assert nodes == [] and links == []
    assert fake_github.requests == []


def test_failed_pattern_is_skipped(fake_github, settings):
    """A server error on one pattern leaves the others running."""
    fake_github.scripted["/search/code"] = [500]

    nodes, links = _search(fake_github, settings, "acme/core")

    # the first pattern failed, later ones still ran
    assert nodes
    assert links


def test_authentication_error_aborts(fake_github, settings):
    """A rejected token stops the search instead of skipping the pattern."""
    fake_github.scripted["/search/code"] = [401]

    with pytest.raises(AuthenticationError):
        _search(fake_github, settings, "acme/core")


def test_exhausted_rate_limit_aborts(fake_github, settings):
    """A 403 that survives the retry is not treated as an empty pattern."""
    fake_github.scripted["/search/code"] = [403, 403]

    with pytest.raises(RateLimitError):
        _search(fake_github, settings, "acme/core")
    assert fake_github.count("/search/code") == 2


def test_exhausted_network_retries_abort(fake_github, settings):
    """Network failures past the last retry abort the search."""
    request = httpx.Request("GET", "https://api.github.test/search/code")
    fake_github.scripted["/search/code"] = [
        httpx.ConnectError("refused", request=request) for _ in range(settings.max_retries + 1)
    ]

    with pytest.raises(TransientNetworkError):
        _search(fake_github, settings, "acme/core")


def test_duplicate_links_collapse(fake_github, settings):
    """Patterns hitting the same file yield one link per type."""
    _, links = _search(fake_github, settings, "acme/core")

    keys = [(link.source, link.target, link.type) for link in links]
    assert len(keys) == len(set(keys))
