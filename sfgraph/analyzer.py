"""Dependency graph construction across one or more Salesforce repositories.

The analyzer owns no global state: every call to :meth:`analyze_dependencies`
works on a fresh :class:`_RunState`, while the GitHub client (and its caches)
may be shared between runs.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any, Dict, List, Optional, Set, Tuple

from .config import Settings, load_settings
from .errors import (
    AuthenticationError,
    GitHubAPIError,
    NotFoundError,
    TargetFileNotFoundError,
    is_fatal,
)
from .extractor import DependencyExtractor, extract_methods, extract_properties, is_abstract, is_interface
from .github_client import GitHubContentClient
from .insights import InsightGenerator
from .llm import LocalLLM
from .models import (
    AnalysisOptions,
    CrossRepoAnalysis,
    DependencyGraph,
    DependencyLink,
    DependencyNode,
    FileListItem,
    FileListResponse,
    GraphMetadata,
    PerformanceMetrics,
)
from .rate_limiter import gather_limited
from .salesforce import (
    LEGACY_LISTING_DIRS,
    base_name,
    candidate_paths,
    detect_file_type,
    extract_identifier,
    is_salesforce_file,
    needs_file_lookup,
    parse_repository_name,
    strip_apex_extension,
)
from .search import SearchDiscovery

logger = logging.getLogger(__name__)


@dataclass
class _RunState:
    """Nodes, links and bookkeeping for a single analysis."""

    options: AnalysisOptions
    nodes: Dict[str, DependencyNode] = field(default_factory=dict)
    links: List[DependencyLink] = field(default_factory=list)
    # class name -> node id it resolved to (file or placeholder)
    resolved: Dict[str, str] = field(default_factory=dict)
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    started: float = field(default_factory=time.perf_counter)
    _link_keys: Set[tuple] = field(default_factory=set)

    def add_node(self, node: DependencyNode) -> bool:
        if node.id in self.nodes:
            return False
        self.nodes[node.id] = node
        return True

    def add_link(self, link: DependencyLink) -> bool:
        key = link.key()
        if key in self._link_keys:
            return False
        self._link_keys.add(key)
        self.links.append(link)
        return True


class DependencyAnalyzer:
    """Builds dependency graphs from GitHub-hosted Salesforce sources."""

    def __init__(
        self,
        client: GitHubContentClient,
        settings: Optional[Settings] = None,
        llm: Optional[LocalLLM] = None,
        extractor: Optional[DependencyExtractor] = None,
    ):
        self.client = client
        self.settings = settings or client.settings
        self.llm = llm
        self.extractor = extractor or DependencyExtractor()
        self.search = SearchDiscovery(client)
        self._last_metrics = PerformanceMetrics()

    @property
    def metrics(self) -> PerformanceMetrics:
        """Performance counters of the most recent analysis."""
        return self._last_metrics

    # ------------------------------------------------------------------
    # Repository listing
    # ------------------------------------------------------------------

    async def list_repository_files(self, repository: str, organization: Optional[str] = None) -> FileListResponse:
        """Salesforce source files of *repository*, grouped by file type."""
        org, repo = parse_repository_name(repository, organization or self.settings.organization)
        try:
            tree = await self.client.list_tree(org, repo)
        except AuthenticationError:
            raise
        except GitHubAPIError as exc:
            logger.warning("Tree listing failed for %s/%s, walking folders instead: %s", org, repo, exc)
            return await self._list_repository_files_legacy(org, repo, repository)

        response = FileListResponse()
        for item in tree:
            path = item.get("path", "")
            if item.get("type") != "blob" or not is_salesforce_file(path):
                continue
            name = base_name(path)
            response.add(FileListItem(
                name=name,
                path=path,
                type=detect_file_type(name, path),
                size=item.get("size") or 0,
                url=f"{self.settings.web_base}/{org}/{repo}/blob/main/{path}",
                repo=f"{org}/{repo}",
            ))
        response.sort()
        logger.info("Listed %d Salesforce files in %s/%s", response.total_count, org, repo)
        return response

    async def _list_repository_files_legacy(self, org: str, repo: str, repository: str) -> FileListResponse:
        response = FileListResponse()

        for folder in LEGACY_LISTING_DIRS:
            try:
                entries = await self.client.get_contents(org, repo, folder)
            except NotFoundError:
                continue
            except GitHubAPIError as exc:
                if is_fatal(exc):
                    raise
                logger.debug("Skipping %s in %s/%s: %s", folder, org, repo, exc)
                continue

            for entry in entries:
                if entry.get("type") == "file" and not entry["name"].endswith("-meta.xml"):
                    response.add(self._listing_item(entry, entry["name"], repository))
                elif entry.get("type") == "dir" and "/lwc" in folder:
                    try:
                        bundle = await self.client.get_contents(org, repo, entry["path"])
                    except GitHubAPIError as exc:
                        if is_fatal(exc):
                            raise
                        logger.warning("Failed to list LWC bundle %s: %s", entry["path"], exc)
                        continue
                    for child in bundle:
                        if child.get("type") == "file" and not child["name"].endswith("-meta.xml"):
                            response.add(self._listing_item(child, f"{entry['name']}/{child['name']}", repository))

        response.sort()
        return response

    @staticmethod
    def _listing_item(entry: Dict[str, Any], name: str, repository: str) -> FileListItem:
        return FileListItem(
            name=name,
            path=entry["path"],
            type=detect_file_type(entry["name"], entry["path"]),
            size=entry.get("size") or 0,
            url=entry.get("html_url") or "",
            repo=repository,
        )

    # ------------------------------------------------------------------
    # Analysis entry points
    # ------------------------------------------------------------------

    async def analyze_dependencies(self, options: AnalysisOptions) -> DependencyGraph:
        """Target file, its transitive dependencies and its dependents.

        Raises:
            TargetFileNotFoundError: when the target cannot be fetched.
            AuthenticationError, RateLimitError, TransientNetworkError:
                propagated from the client.
        """
        state = _RunState(options)
        snapshot = self._counter_snapshot()
        await self._build(state)
        cross_repo = self.analyze_cross_repository(state.links, state.nodes)
        self._finish_metrics(state, snapshot)
        return self._graph(state, cross_repo)

    async def analyze_dependencies_with_insights(self, options: AnalysisOptions) -> DependencyGraph:
        """Code-search discovery plus the full analysis, scored by the insight generator."""
        state = _RunState(options)
        snapshot = self._counter_snapshot()

        ordered_repos = [options.target_repo] + [r for r in options.repositories if r != options.target_repo]
        found_nodes: List[DependencyNode] = []
        found_links: List[DependencyLink] = []
        for repository in ordered_repos:
            nodes, links = await self.search.search(repository, options.target_file, options.target_repo)
            logger.info("Search in %s found %d nodes and %d links", repository, len(nodes), len(links))
            found_nodes.extend(nodes)
            found_links.extend(links)

        await self._build(state)

        for node in found_nodes:
            state.add_node(node)
        for link in found_links:
            state.add_link(link)

        cross_repo = self.analyze_cross_repository(state.links, state.nodes)
        llm = self.llm
        if llm is not None and options.selected_model:
            llm = LocalLLM.from_config({**self.settings.llm, "provider": llm.provider_name}, model=options.selected_model)
        insights = await InsightGenerator(llm).generate(
            list(state.nodes.values()), state.links, cross_repo, options.target_file, options.target_repo
        )

        self._finish_metrics(state, snapshot)
        graph = self._graph(state, cross_repo)
        graph.metadata.performance = state.metrics
        graph.metadata.insights = insights
        logger.info(
            "Analysis of %s complete: score %.1f, %d nodes, %d links",
            options.target_file, insights.complexity_score, len(graph.nodes), len(graph.links),
        )
        return graph

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _build(self, state: _RunState) -> None:
        options = state.options
        org, repo = parse_repository_name(options.target_repo, self.settings.organization)

        metadata = await self.client.get_file_metadata(org, repo, options.target_file)
        if not metadata or not metadata.get("download_url"):
            raise TargetFileNotFoundError(f"Could not fetch metadata for file: {options.target_file}")
        content = await self.client.get_file_content(metadata["download_url"])
        if content is None:
            raise TargetFileNotFoundError(f"Could not fetch content for file: {options.target_file}")
        state.metrics.files_fetched += 1

        target = self._make_node(options.target_repo, options.target_file, metadata, content, options.include_content)
        state.add_node(target)
        state.resolved[extract_identifier(target.name)] = target.id
        logger.info("Analyzing %s (depth %d)", target.id, options.max_depth)

        before = len(state.links)
        await self._traverse(state, content, target, 0)
        state.metrics.dependencies_found = len(state.links) - before

        await self._find_dependents(state, target)

    async def _traverse(self, state: _RunState, content: str, node: DependencyNode, depth: int) -> None:
        options = state.options
        if depth >= options.max_depth:
            return

        for candidate in self.extractor.extract(content, node, options.include_method_level):
            link = candidate.link
            resolved_id = state.resolved.get(candidate.target_class)
            if resolved_id is not None:
                link.target = resolved_id
                state.add_link(link)
                continue

            found = await self._find_dependency_file(candidate.target_class, options.repositories)
            if found is None:
                state.resolved[candidate.target_class] = candidate.target_id
                state.add_node(DependencyNode(
                    id=candidate.target_id,
                    name=candidate.target_class,
                    path=candidate.target_class,
                    type="lwc" if link.type == "import" else "apex",
                    repo=node.repo,
                    placeholder=True,
                ))
                state.add_link(link)
                continue

            repository, path, metadata, dep_content = found
            dep_node = self._make_node(repository, path, metadata, dep_content, options.include_content)
            state.resolved[candidate.target_class] = dep_node.id
            link.target = dep_node.id
            state.add_link(link)
            if state.add_node(dep_node):
                state.metrics.files_fetched += 1
                await self._traverse(state, dep_content, dep_node, depth + 1)

    async def _find_dependency_file(
        self, class_name: str, repositories: List[str]
    ) -> Optional[Tuple[str, str, Dict[str, Any], str]]:
        """First conventional location of *class_name* that exists in any repository."""
        if not needs_file_lookup(class_name):
            return None

        for repository in repositories:
            org, repo = parse_repository_name(repository, self.settings.organization)
            for path in candidate_paths(class_name):
                try:
                    metadata = await self.client.get_file_metadata(org, repo, path)
                    if not metadata or not metadata.get("download_url"):
                        continue
                    content = await self.client.get_file_content(metadata["download_url"])
                except GitHubAPIError as exc:
                    if is_fatal(exc):
                        raise
                    logger.debug("Lookup of %s in %s failed: %s", path, repository, exc)
                    continue
                if content is not None:
                    logger.debug("Resolved %s to %s:%s", class_name, repository, path)
                    return repository, path, metadata, content
        return None

    async def _find_dependents(self, state: _RunState, target: DependencyNode) -> None:
        options = state.options
        target_name = strip_apex_extension(target.name)
        logger.info("Looking for files that depend on %s", target_name)

        for repository in options.repositories:
            try:
                listing = await self.list_repository_files(repository)
            except GitHubAPIError as exc:
                if is_fatal(exc):
                    raise
                logger.warning("Could not list %s for dependents: %s", repository, exc)
                continue

            pending = [
                item for item in listing.all_files()
                if item.type in options.file_types
                and not (item.path == target.path and repository == target.repo)
                and f"{repository}:{item.path}" not in state.nodes
            ]
            logger.debug("Scanning %d files in %s", len(pending), repository)

            batch_size = max(1, self.settings.batch_size)
            for start in range(0, len(pending), batch_size):
                batch = pending[start:start + batch_size]
                results = await gather_limited(
                    [partial(self._check_dependent, state, repository, item, target, target_name) for item in batch],
                    self.settings.batch_concurrency,
                )
                for item, result in zip(batch, results):
                    if isinstance(result, BaseException):
                        if is_fatal(result) or not isinstance(result, Exception):
                            raise result
                        logger.warning("Error checking file %s: %s", item.path, result)
                        continue
                    if result is None:
                        continue
                    node, links = result
                    if state.add_node(node):
                        state.metrics.dependents_found += 1
                        logger.info("Found dependent: %s -> %s", node.name, target_name)
                    for link in links:
                        state.add_link(link)

                if start + batch_size < len(pending) and self.settings.batch_pause:
                    await asyncio.sleep(self.settings.batch_pause)

    async def _check_dependent(
        self,
        state: _RunState,
        repository: str,
        item: FileListItem,
        target: DependencyNode,
        target_name: str,
    ) -> Optional[Tuple[DependencyNode, List[DependencyLink]]]:
        org, repo = parse_repository_name(repository, self.settings.organization)
        metadata = await self.client.get_file_metadata(org, repo, item.path)
        if not metadata:
            return None
        content = await self.client.get_file_content(metadata.get("download_url"))
        if content is None:
            return None
        state.metrics.files_fetched += 1

        source_id = f"{repository}:{item.path}"
        links = self.extractor.find_references_to(content, target_name, target, source_id, item.name)
        if not links:
            return None
        node = self._make_node(repository, item.path, metadata, content, state.options.include_content)
        node.name = item.name
        return node, links

    # ------------------------------------------------------------------
    # Graph assembly
    # ------------------------------------------------------------------

    @staticmethod
    def _make_node(
        repository: str,
        path: str,
        metadata: Dict[str, Any],
        content: str,
        include_content: bool,
    ) -> DependencyNode:
        name = base_name(path)
        node = DependencyNode(
            id=f"{repository}:{path}",
            name=name,
            path=path,
            type=detect_file_type(name, path),
            repo=repository,
            url=metadata.get("html_url"),
            size=metadata.get("size"),
            content=content if include_content else None,
        )
        if node.type in ("apex", "test"):
            node.methods = extract_methods(content)
            node.properties = extract_properties(content)
            node.is_interface = is_interface(content)
            node.is_abstract = is_abstract(content)
        return node

    @staticmethod
    def analyze_cross_repository(
        links: List[DependencyLink], node_map: Dict[str, DependencyNode]
    ) -> CrossRepoAnalysis:
        """Links whose endpoints live in different repositories, plus shared names."""
        analysis = CrossRepoAnalysis()
        for link in links:
            source = node_map.get(link.source)
            target = node_map.get(link.target)
            if source is None or target is None or source.repo == target.repo:
                continue
            analysis.cross_repo_links.append(link)
            analysis.relationships.setdefault(source.repo, set()).add(target.repo)

        repos_by_name: Dict[str, Set[str]] = {}
        for node in node_map.values():
            repos_by_name.setdefault(node.name, set()).add(node.repo)
        analysis.shared_components = sorted(name for name, repos in repos_by_name.items() if len(repos) > 1)

        if analysis.cross_repo_links:
            logger.info(
                "Found %d cross-repository dependencies between %d repositories",
                len(analysis.cross_repo_links), len(analysis.relationships),
            )
        return analysis

    @staticmethod
    def _graph(state: _RunState, cross_repo: CrossRepoAnalysis) -> DependencyGraph:
        options = state.options
        nodes = list(state.nodes.values())
        metadata = GraphMetadata(
            repositories=list(options.repositories),
            timestamp=datetime.now(timezone.utc).isoformat(),
            node_count=len(nodes),
            link_count=len(state.links),
            analyzed_file=options.target_file,
            analysis_depth=options.max_depth,
            cross_repo_link_count=len(cross_repo.cross_repo_links),
        )
        return DependencyGraph(nodes=nodes, links=list(state.links), metadata=metadata)

    # ------------------------------------------------------------------
    # Metrics + cache management
    # ------------------------------------------------------------------

    def _counter_snapshot(self) -> Tuple[int, int, int]:
        stats = self.client.cache_stats().values()
        return (
            sum(s["hits"] for s in stats),
            sum(s["misses"] for s in stats),
            self.client.api_calls,
        )

    def _finish_metrics(self, state: _RunState, snapshot: Tuple[int, int, int]) -> None:
        hits, misses, api_calls = self._counter_snapshot()
        metrics = state.metrics
        metrics.cache_hits = hits - snapshot[0]
        metrics.cache_misses = misses - snapshot[1]
        metrics.api_calls = api_calls - snapshot[2]
        metrics.total_time_ms = (time.perf_counter() - state.started) * 1000
        self._last_metrics = metrics
        logger.debug("Run metrics: %s", metrics.to_dict())

    def cache_stats(self) -> Dict[str, Dict[str, Any]]:
        return self.client.cache_stats()

    def clear_all_caches(self) -> None:
        self.client.clear_caches()
        logger.info("All caches cleared")

    def clean_expired_caches(self) -> int:
        removed = self.client.cleanup()
        logger.debug("Removed %d expired cache entries", removed)
        return removed

    def invalidate_repository_cache(self, repository: str) -> int:
        removed = self.client.invalidate_repository(repository)
        logger.info("Invalidated %d cache entries for %s", removed, repository)
        return removed


async def analyze_dependencies(
    options: AnalysisOptions,
    settings: Optional[Settings] = None,
    with_insights: bool = False,
    llm: Optional[LocalLLM] = None,
) -> DependencyGraph:
    """One-shot analysis with a client that lives for this call only."""
    settings = settings or load_settings()
    async with GitHubContentClient(settings) as client:
        analyzer = DependencyAnalyzer(client, settings, llm=llm)
        if with_insights:
            return await analyzer.analyze_dependencies_with_insights(options)
        return await analyzer.analyze_dependencies(options)


async def list_repository_files(repository: str, settings: Optional[Settings] = None) -> FileListResponse:
    settings = settings or load_settings()
    async with GitHubContentClient(settings) as client:
        return await DependencyAnalyzer(client, settings).list_repository_files(repository)
