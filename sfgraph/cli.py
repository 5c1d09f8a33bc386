"""Typer-based CLI for Salesforce dependency analysis on GitHub."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__, config, config_manager
from .analyzer import analyze_dependencies, list_repository_files
from .errors import SfGraphError
from .graph_export import export_dot, export_html, export_json, load_graph
from .llm import LocalLLM
from .models import FILE_TYPES, AnalysisOptions, DependencyGraph

console = Console()

app = typer.Typer(
    help="🔗 sfgraph: Salesforce dependency graphs across GitHub repositories.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

DEFAULT_MODELS = {
    "watsonx": config.LLM_MODEL,
    "ollama": "granite3-dense:8b",
    "openai": "gpt-4o-mini",
}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"sfgraph v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
):
    """Map Apex, trigger and LWC dependencies across repositories."""
    _configure_logging(verbose)


def _fail(message: str) -> None:
    console.print(f"[red]❌ {escape(message)}[/red]")
    raise typer.Exit(code=1)


@app.command("files")
def list_files(
    repository: str = typer.Argument(..., help="Repository as 'org/repo' or bare 'repo'."),
    org: Optional[str] = typer.Option(None, "--org", "-o", help="Organization for bare repository names."),
):
    """List Salesforce source files of a repository, grouped by type."""
    overrides = {"organization": org} if org else {}
    settings = config.load_settings(**overrides)

    try:
        listing = asyncio.run(list_repository_files(repository, settings))
    except SfGraphError as exc:
        _fail(str(exc))

    if listing.total_count == 0:
        console.print(f"[yellow]No Salesforce files found in {repository}.[/yellow]")
        return

    for file_type in FILE_TYPES:
        items = listing.files[file_type]
        if not items:
            continue
        table = Table(title=f"{file_type} ({len(items)})", show_lines=False)
        table.add_column("Name", style="cyan")
        table.add_column("Path", style="dim")
        table.add_column("Size", justify="right")
        for item in items:
            table.add_row(item.name, item.path, str(item.size))
        console.print(table)

    console.print(f"[bold]{listing.total_count}[/bold] files in {repository}")


@app.command("analyze")
def analyze(
    target_file: str = typer.Argument(..., help="Path of the file to analyze inside --repo."),
    repo: str = typer.Option(..., "--repo", "-r", help="Repository containing the target file."),
    search: List[str] = typer.Option([], "--search", "-s", help="Additional repositories to search (repeatable)."),
    depth: int = typer.Option(config.DEFAULT_MAX_DEPTH, "--depth", "-d", min=1, help="Maximum traversal depth."),
    no_methods: bool = typer.Option(False, "--no-methods", help="Skip method-level call extraction."),
    content: bool = typer.Option(False, "--content", help="Embed file content in graph nodes."),
    insights: bool = typer.Option(False, "--insights", help="Run code search and produce complexity insights."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="LLM model for AI insights."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the graph as JSON."),
):
    """Build the dependency graph of TARGET_FILE."""
    repositories = [repo] + [r for r in search if r != repo]
    options = AnalysisOptions(
        repositories=repositories,
        target_file=target_file,
        target_repo=repo,
        max_depth=depth,
        include_method_level=not no_methods,
        include_content=content,
        selected_model=model,
    )
    settings = config.load_settings()
    llm = LocalLLM.from_config(settings.llm, model=model) if insights else None

    try:
        with console.status(f"Analyzing {target_file}..."):
            graph = asyncio.run(analyze_dependencies(options, settings, with_insights=insights, llm=llm))
    except SfGraphError as exc:
        _fail(str(exc))

    _print_summary(graph)

    if output:
        export_json(graph, output)
        console.print(f"[green]✅ Graph written to {output}[/green]")


def _print_summary(graph: DependencyGraph) -> None:
    meta = graph.metadata
    table = Table(title=f"Dependencies of {meta.analyzed_file}")
    table.add_column("Source", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Target", style="green")
    table.add_column("Line", justify="right")
    for link in sorted(graph.links, key=lambda l: (l.source, l.type, l.target)):
        table.add_row(link.source, link.type, link.target, str(link.line_number or ""))
    console.print(table)

    console.print(
        f"Nodes: [bold]{meta.node_count}[/bold] | Links: [bold]{meta.link_count}[/bold] | "
        f"Cross-repo: [bold]{meta.cross_repo_link_count}[/bold] | Depth: {meta.analysis_depth}"
    )

    if meta.insights:
        lines = [f"Complexity score: [bold]{meta.insights.complexity_score:.1f}[/bold]/100"]
        lines += [f"⚠️  {risk}" for risk in meta.insights.risk_factors]
        lines += [f"• {pattern}" for pattern in meta.insights.patterns]
        lines += [f"💡 {rec}" for rec in meta.insights.recommendations]
        console.print(Panel("\n".join(lines), title="Insights", border_style="blue"))
        if meta.insights.ai_insights:
            console.print(Panel(meta.insights.ai_insights, title="AI insights", border_style="green"))

    if meta.performance:
        perf = meta.performance
        console.print(
            f"[dim]{perf.api_calls} API calls, {perf.files_fetched} files, "
            f"cache efficiency {perf.cache_efficiency:.1f}%, {perf.total_time_ms:.0f} ms[/dim]"
        )


@app.command("export")
def export_graph(
    graph_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Graph JSON written by 'analyze -o'."),
    format: str = typer.Option("dot", "--format", "-f", help="Export format: dot, html or json."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (defaults next to input)."),
    focus: str = typer.Option("", "--focus", help="Only nodes matching this text and their neighbours."),
):
    """Convert a saved graph to DOT, HTML or JSON."""
    format = format.lower()
    if format not in ("dot", "html", "json"):
        raise typer.BadParameter("Format must be one of: dot, html, json.")

    graph = load_graph(graph_file)
    target = output or graph_file.with_suffix(f".{format}")
    if format == "dot":
        export_dot(graph, target, focus=focus)
    elif format == "html":
        export_html(graph, target, focus=focus)
    else:
        export_json(graph, target)
    console.print(f"[green]✅ Exported {format} to {target}[/green]")


@app.command("show-config")
def show_config():
    """Show the effective GitHub and LLM configuration."""
    settings = config.load_settings()

    table = Table(title="sfgraph configuration", show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Config file", str(config.CONFIG_FILE))
    table.add_row("GitHub API", settings.api_base)
    table.add_row("Organization", settings.organization)
    table.add_row("GitHub token", _mask(settings.token))
    table.add_row("Max depth", str(settings.max_depth))
    table.add_row("LLM provider", str(settings.llm.get("provider", "")))
    table.add_row("LLM model", str(settings.llm.get("model", "")))
    if settings.llm.get("endpoint"):
        table.add_row("LLM endpoint", settings.llm["endpoint"])
    table.add_row("LLM API key", _mask(settings.llm.get("api_key")))
    console.print(table)


def _mask(secret: Optional[str]) -> str:
    if not secret:
        return "(not set)"
    return secret[:4] + "•" * min(max(len(secret) - 4, 0), 16)


@app.command("set-github")
def set_github(
    url: str = typer.Option("", "--url", help="GitHub Enterprise URL; empty for github.com."),
    org: str = typer.Option("", "--org", help="Default organization."),
    token: Optional[str] = typer.Option(None, "--token", "-t", help="Personal access token."),
):
    """Save GitHub connection settings."""
    if config_manager.save_github_config(url=url, organization=org, token=token):
        console.print("[green]✅ GitHub settings saved.[/green]")
        console.print(f"  API: {config.api_base_from_url(url or None)}")
    else:
        _fail("Failed to save configuration!")


@app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help="LLM provider: watsonx, ollama or openai."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name."),
    api_key: str = typer.Option("", "--api-key", "-k", help="API key for cloud providers."),
    endpoint: str = typer.Option("", "--endpoint", "-e", help="Custom endpoint URL."),
    project_id: str = typer.Option("", "--project-id", help="WatsonX project id."),
):
    """Configure the LLM used for AI insights."""
    provider = provider.lower().strip()
    if provider not in DEFAULT_MODELS:
        _fail(f"Unknown provider '{provider}'. Choose from: {', '.join(DEFAULT_MODELS)}")

    resolved_model = model or DEFAULT_MODELS[provider]
    if config_manager.save_llm_config(provider, resolved_model, api_key, endpoint, project_id):
        console.print(f"[green]✅ LLM provider set to: {provider} ({resolved_model})[/green]")
    else:
        _fail("Failed to save configuration!")


if __name__ == "__main__":
    app()
