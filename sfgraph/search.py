"""Search-first discovery: GitHub code search for files mentioning a target."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from .errors import GitHubAPIError, is_fatal
from .github_client import GitHubContentClient
from .models import DependencyLink, DependencyNode
from .patterns import DependencyPattern, link_type_for_pattern, priority_strength, search_patterns
from .salesforce import base_name, extract_identifier, infer_salesforce_type, parse_repository_name

logger = logging.getLogger(__name__)


class SearchDiscovery:
    """Finds candidate related files with one code search per catalog entry."""

    def __init__(self, client: GitHubContentClient):
        self.client = client

    async def search(
        self,
        search_repo: str,
        target_file: str,
        target_repo: str,
        patterns: Optional[List[DependencyPattern]] = None,
    ) -> Tuple[List[DependencyNode], List[DependencyLink]]:
        """Return hit nodes in *search_repo* and links from the target to them.

        A failing pattern is logged and skipped. Authentication failures and
        exhausted rate-limit or network retries abort the whole search.
        """
        org, repo = parse_repository_name(search_repo, self.client.settings.organization)
        target_name = extract_identifier(target_file)
        source_id = f"{target_repo}:{target_file}"

        nodes: Dict[str, DependencyNode] = {}
        links: Dict[Tuple[str, str, str], DependencyLink] = {}

        for pattern in patterns if patterns is not None else search_patterns():
            if pattern.priority == "low":
                continue
            query = f"repo:{org}/{repo} {pattern.search_query} {target_name}"
            logger.info("Searching %s for pattern %s", search_repo, pattern.type)
            try:
                results = await self.client.search_code(query)
            except GitHubAPIError as exc:
                if is_fatal(exc):
                    raise
                logger.warning("Search failed for pattern %s: %s", pattern.type, exc)
                continue

            for item in results.get("items", []):
                path = item["path"]
                node_id = f"{search_repo}:{path}"
                if node_id == source_id:
                    continue
                if node_id not in nodes:
                    nodes[node_id] = DependencyNode(
                        id=node_id,
                        name=base_name(path),
                        path=path,
                        type=infer_salesforce_type(path, pattern.type),
                        repo=search_repo,
                        url=item.get("html_url"),
                    )

                link_type = link_type_for_pattern(pattern.type, path)
                if not link_type or (source_id, node_id, link_type) in links:
                    continue

                snippet = None
                text_matches = item.get("text_matches") or []
                if text_matches and text_matches[0].get("fragment"):
                    snippet = text_matches[0]["fragment"].strip()

                links[(source_id, node_id, link_type)] = DependencyLink(
                    source=source_id,
                    target=node_id,
                    type=link_type,
                    strength=priority_strength(pattern.priority),
                    code_snippet=snippet,
                    file_name=base_name(target_file),
                    target_file_name=base_name(path),
                )

        logger.debug("Search in %s found %d files and %d links", search_repo, len(nodes), len(links))
        return list(nodes.values()), list(links.values())
