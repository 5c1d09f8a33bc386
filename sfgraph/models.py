"""Core data models shared by the client, extractor, analyzer and exporters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

FILE_TYPES = ("apex", "lwc", "test", "other")

LINK_TYPES = (
    "import",
    "extends",
    "implements",
    "references",
    "tests",
    "method-call",
    "wire",
    "imperative-apex",
    "soql-query",
    "database-operation",
    "schema-reference",
    "field-reference",
    "trigger-context",
    "system-method",
    "custom-settings",
    "wire-service",
)


def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass
class DependencyNode:
    id: str
    name: str
    path: str
    type: str
    repo: str
    url: Optional[str] = None
    size: Optional[int] = None
    methods: Optional[List[str]] = None
    properties: Optional[List[str]] = None
    is_interface: Optional[bool] = None
    is_abstract: Optional[bool] = None
    content: Optional[str] = None
    placeholder: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "repo": self.repo,
            "url": self.url,
            "size": self.size,
            "methods": self.methods,
            "properties": self.properties,
            "isInterface": self.is_interface,
            "isAbstract": self.is_abstract,
            "content": self.content,
            "placeholder": self.placeholder or None,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DependencyNode":
        return cls(
            id=data["id"],
            name=data["name"],
            path=data["path"],
            type=data.get("type", "other"),
            repo=data["repo"],
            url=data.get("url"),
            size=data.get("size"),
            methods=data.get("methods"),
            properties=data.get("properties"),
            is_interface=data.get("isInterface"),
            is_abstract=data.get("isAbstract"),
            content=data.get("content"),
            placeholder=bool(data.get("placeholder", False)),
        )


@dataclass
class DependencyLink:
    source: str
    target: str
    type: str
    strength: float
    source_method: Optional[str] = None
    target_method: Optional[str] = None
    details: Optional[str] = None
    line_number: Optional[int] = None
    code_snippet: Optional[str] = None
    context_lines: Optional[List[str]] = None
    file_name: Optional[str] = None
    target_file_name: Optional[str] = None

    def __post_init__(self):
        if self.type not in LINK_TYPES:
            raise ValueError(f"Unknown link type: {self.type}")

    def key(self) -> tuple:
        """Identity used when merging link sets from several discovery passes."""
        return (self.source, self.target, self.type, self.line_number, self.target_method)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "source": self.source,
            "target": self.target,
            "type": self.type,
            "strength": self.strength,
            "sourceMethod": self.source_method,
            "targetMethod": self.target_method,
            "details": self.details,
            "lineNumber": self.line_number,
            "codeSnippet": self.code_snippet,
            "contextLines": self.context_lines,
            "fileName": self.file_name,
            "targetFileName": self.target_file_name,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DependencyLink":
        return cls(
            source=data["source"],
            target=data["target"],
            type=data["type"],
            strength=data.get("strength", 0),
            source_method=data.get("sourceMethod"),
            target_method=data.get("targetMethod"),
            details=data.get("details"),
            line_number=data.get("lineNumber"),
            code_snippet=data.get("codeSnippet"),
            context_lines=data.get("contextLines"),
            file_name=data.get("fileName"),
            target_file_name=data.get("targetFileName"),
        )


@dataclass
class DependencyCandidate:
    """A dependency the extractor found but the analyzer has not resolved yet."""

    target_class: str
    target_id: str
    link: DependencyLink


@dataclass
class PerformanceMetrics:
    files_fetched: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    api_calls: int = 0
    dependencies_found: int = 0
    dependents_found: int = 0
    total_time_ms: float = 0.0

    @property
    def cache_efficiency(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        if lookups == 0:
            return 0.0
        return self.cache_hits / lookups * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filesFetched": self.files_fetched,
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "apiCalls": self.api_calls,
            "dependenciesFound": self.dependencies_found,
            "dependentsFound": self.dependents_found,
            "totalTime": round(self.total_time_ms, 1),
            "cacheEfficiency": round(self.cache_efficiency, 1),
        }


@dataclass
class AnalysisInsights:
    complexity_score: float = 0.0
    risk_factors: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    patterns: List[str] = field(default_factory=list)
    ai_insights: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "complexityScore": self.complexity_score,
            "riskFactors": self.risk_factors,
            "recommendations": self.recommendations,
            "patterns": self.patterns,
            "aiInsights": self.ai_insights,
        })


@dataclass
class CrossRepoAnalysis:
    cross_repo_links: List[DependencyLink] = field(default_factory=list)
    relationships: Dict[str, Set[str]] = field(default_factory=dict)
    shared_components: List[str] = field(default_factory=list)


@dataclass
class GraphMetadata:
    repositories: List[str]
    timestamp: str
    node_count: int
    link_count: int
    analyzed_file: str
    analysis_depth: int
    cross_repo_link_count: int = 0
    performance: Optional[PerformanceMetrics] = None
    insights: Optional[AnalysisInsights] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "repositories": self.repositories,
            "timestamp": self.timestamp,
            "nodeCount": self.node_count,
            "linkCount": self.link_count,
            "crossRepoLinkCount": self.cross_repo_link_count,
            "analyzedFile": self.analyzed_file,
            "analysisDepth": self.analysis_depth,
            "performance": self.performance.to_dict() if self.performance else None,
            "insights": self.insights.to_dict() if self.insights else None,
        })


@dataclass
class DependencyGraph:
    nodes: List[DependencyNode]
    links: List[DependencyLink]
    metadata: GraphMetadata

    def node_ids(self) -> Set[str]:
        return {node.id for node in self.nodes}

    def get_node(self, node_id: str) -> Optional[DependencyNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "links": [link.to_dict() for link in self.links],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DependencyGraph":
        meta = data.get("metadata", {})
        nodes = [DependencyNode.from_dict(n) for n in data.get("nodes", [])]
        links = [DependencyLink.from_dict(l) for l in data.get("links", [])]
        metadata = GraphMetadata(
            repositories=meta.get("repositories", []),
            timestamp=meta.get("timestamp", ""),
            node_count=meta.get("nodeCount", len(nodes)),
            link_count=meta.get("linkCount", len(links)),
            analyzed_file=meta.get("analyzedFile", ""),
            analysis_depth=meta.get("analysisDepth", 0),
            cross_repo_link_count=meta.get("crossRepoLinkCount", 0),
        )
        return cls(nodes=nodes, links=links, metadata=metadata)


@dataclass
class FileListItem:
    name: str
    path: str
    type: str
    size: int
    url: str
    repo: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "size": self.size,
            "url": self.url,
            "repo": self.repo,
        }


@dataclass
class FileListResponse:
    files: Dict[str, List[FileListItem]] = field(
        default_factory=lambda: {file_type: [] for file_type in FILE_TYPES}
    )
    total_count: int = 0

    def add(self, item: FileListItem) -> None:
        self.files[item.type].append(item)
        self.total_count += 1

    def sort(self) -> None:
        for items in self.files.values():
            items.sort(key=lambda item: item.name.lower())

    def all_files(self) -> List[FileListItem]:
        return [item for file_type in FILE_TYPES for item in self.files[file_type]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": {key: [item.to_dict() for item in items] for key, items in self.files.items()},
            "totalCount": self.total_count,
        }


@dataclass
class AnalysisOptions:
    repositories: List[str]
    target_file: str
    target_repo: str
    max_depth: int = 2
    include_method_level: bool = True
    include_content: bool = False
    selected_model: Optional[str] = None
    file_types: List[str] = field(default_factory=lambda: list(FILE_TYPES))
