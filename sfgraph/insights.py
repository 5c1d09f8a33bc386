"""Complexity scoring, risk heuristics and optional LLM narrative for a graph."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import List, Optional

from .llm import LocalLLM
from .models import AnalysisInsights, CrossRepoAnalysis, DependencyLink, DependencyNode

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """You are a senior Salesforce architect analyzing dependencies for a specific file. Provide contextual insights based on the actual dependency relationships discovered.

Target File Analysis: {target_file}
Repository: {target_repo}

Dependency Context:
- Files that depend on this file: {incoming_count}
- Files this file depends on: {outgoing_count}
- Cross-repository connections: {cross_count}

Specific Dependencies Found:
{incoming}

{outgoing}

Overall Statistics:
- Total Files in Analysis: {node_count}
- Total Dependencies: {link_count}
- Cross-Repository Links: {cross_count}
- Complexity Score: {score}/100

Dependency Patterns:
- Method Calls: {method_calls}
- SOQL Queries: {soql}
- Database Operations: {database}
- Schema References: {schema}
- Test Coverage: {tests}

Risk Factors:
{risks}

Please provide a targeted analysis specifically for {target_file}:

**File-Specific Insights:**
- Analyze the role of {target_file} in the codebase architecture
- Identify if this file is a critical dependency or highly coupled component
- Comment on the specific dependency patterns found for this file

**Impact Assessment:**
- Evaluate potential impact of changes to {target_file}
- Identify cascade effects based on incoming dependencies
- Assess architectural risks specific to this file's dependencies

**Targeted Recommendations:**
- Provide specific recommendations for {target_file}
- Focus on dependency optimization and maintainability
- Suggest refactoring opportunities if high coupling is detected

**Dependency Management:**
- Recommend strategies for managing this file's dependencies
- Suggest monitoring approaches for dependency changes
- Identify opportunities to reduce coupling or improve modularity

Focus on actionable insights that help developers understand and manage the dependencies of {target_file} specifically."""


def complexity_score(node_count: int, link_count: int, cross_repo_count: int, shared_count: int) -> float:
    return min(100.0, node_count * 2 + link_count * 1.5 + cross_repo_count * 5 + shared_count * 3)


class InsightGenerator:
    """Heuristic insights, optionally extended with an LLM narrative."""

    def __init__(self, llm: Optional[LocalLLM] = None):
        self.llm = llm

    async def generate(
        self,
        nodes: List[DependencyNode],
        links: List[DependencyLink],
        cross_repo: CrossRepoAnalysis,
        target_file: str,
        target_repo: str,
    ) -> AnalysisInsights:
        insights = self.heuristics(nodes, links, cross_repo)

        if self.llm is not None:
            prompt = self.build_prompt(nodes, links, cross_repo, insights, target_file, target_repo)
            try:
                narrative = await asyncio.to_thread(self.llm.explain, prompt)
            except Exception as exc:
                logger.warning("Failed to generate AI insights: %s", exc)
                narrative = None
            if narrative:
                insights.ai_insights = narrative
                logger.info("AI insights generated with %s", self.llm.provider_name)
            else:
                logger.warning("LLM returned no insights, keeping heuristic insights only")

        return insights

    def heuristics(
        self,
        nodes: List[DependencyNode],
        links: List[DependencyLink],
        cross_repo: CrossRepoAnalysis,
    ) -> AnalysisInsights:
        counts = Counter(link.type for link in links)
        cross_count = len(cross_repo.cross_repo_links)
        shared_count = len(cross_repo.shared_components)

        insights = AnalysisInsights(
            complexity_score=complexity_score(len(nodes), len(links), cross_count, shared_count)
        )

        if cross_count > 0:
            insights.risk_factors.append(f"{cross_count} cross-repository dependencies detected")
        if len(links) > len(nodes) * 3:
            insights.risk_factors.append("High coupling detected - many dependencies per component")
        if shared_count > 0:
            insights.risk_factors.append(f"{shared_count} components with duplicate names across repositories")

        pattern_messages = [
            ("method-call", "{} direct method calls identified"),
            ("soql-query", "{} SOQL queries found - database dependencies"),
            ("tests", "{} test coverage dependencies"),
            ("database-operation", "{} database operations detected"),
            ("schema-reference", "{} schema references found"),
            ("trigger-context", "{} trigger context usages identified"),
        ]
        for link_type, message in pattern_messages:
            if counts[link_type]:
                insights.patterns.append(message.format(counts[link_type]))

        if insights.complexity_score > 70:
            insights.recommendations.append("Consider refactoring to reduce complexity")
        if cross_count > 5:
            insights.recommendations.append("Review cross-repository dependencies for consolidation opportunities")
        if counts["tests"] == 0:
            insights.recommendations.append("Add test coverage for better dependency validation")
        if counts["soql-query"] > 10:
            insights.recommendations.append("Consider implementing data access layers to centralize SOQL queries")
        if counts["database-operation"] > 5:
            insights.recommendations.append("Consider implementing a centralized data service layer")
        if counts["schema-reference"] > 15:
            insights.recommendations.append("Review schema dependencies for potential consolidation")

        return insights

    @staticmethod
    def build_prompt(
        nodes: List[DependencyNode],
        links: List[DependencyLink],
        cross_repo: CrossRepoAnalysis,
        insights: AnalysisInsights,
        target_file: str,
        target_repo: str,
    ) -> str:
        counts = Counter(link.type for link in links)
        incoming = [link for link in links if target_file in link.target]
        outgoing = [link for link in links if target_file in link.source]

        if incoming:
            incoming_text = f"INCOMING (files that use {target_file}):\n" + "\n".join(
                f"- {link.source} ({link.type}): {link.details or 'Direct dependency'}" for link in incoming[:5]
            )
        else:
            incoming_text = "No incoming dependencies found"

        if outgoing:
            outgoing_text = f"OUTGOING (files used by {target_file}):\n" + "\n".join(
                f"- {link.target} ({link.type}): {link.details or 'Uses component'}" for link in outgoing[:5]
            )
        else:
            outgoing_text = "No outgoing dependencies found"

        return PROMPT_TEMPLATE.format(
            target_file=target_file,
            target_repo=target_repo,
            incoming_count=len(incoming),
            outgoing_count=len(outgoing),
            cross_count=len(cross_repo.cross_repo_links),
            incoming=incoming_text,
            outgoing=outgoing_text,
            node_count=len(nodes),
            link_count=len(links),
            score=insights.complexity_score,
            method_calls=counts["method-call"],
            soql=counts["soql-query"],
            database=counts["database-operation"],
            schema=counts["schema-reference"],
            tests=counts["tests"],
            risks="\n".join(f"- {risk}" for risk in insights.risk_factors),
        )
