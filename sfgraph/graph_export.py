"""Graph export helpers for JSON, DOT and simple standalone HTML outputs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List

from .models import DependencyGraph, DependencyLink, DependencyNode


def export_json(graph: DependencyGraph, output_file: Path) -> None:
    output_file.write_text(json.dumps(graph.to_dict(), indent=2), encoding="utf-8")


def load_graph(path: Path) -> DependencyGraph:
    """Read a graph previously written by :func:`export_json`."""
    return DependencyGraph.from_dict(json.loads(path.read_text(encoding="utf-8")))


def export_dot(graph: DependencyGraph, output_file: Path, focus: str = "") -> None:
    nodes = {node.id: node for node in graph.nodes}
    selected = _focused_subgraph(nodes, graph.links, focus)

    lines = ["digraph SalesforceDependencies {"]
    lines.append("  rankdir=LR;")

    for node_id in selected["nodes"]:
        node = nodes[node_id]
        label = f"{node.type}\\n{node.name}"
        style = ", style=dashed" if node.placeholder else ""
        lines.append(f'  "{_esc(node_id)}" [label="{_esc(label)}"{style}];')

    for link in selected["links"]:
        lines.append(
            f'  "{_esc(link.source)}" -> "{_esc(link.target)}" [label="{_esc(link.type)}"];'
        )

    lines.append("}")
    output_file.write_text("\n".join(lines), encoding="utf-8")


def export_html(graph: DependencyGraph, output_file: Path, focus: str = "") -> None:
    nodes = {node.id: node for node in graph.nodes}
    selected = _focused_subgraph(nodes, graph.links, focus)
    graph_payload = {
        "nodes": [
            {
                "id": node_id,
                "label": f"{nodes[node_id].type}: {nodes[node_id].name}",
                "title": f"{nodes[node_id].repo}/{nodes[node_id].path}",
            }
            for node_id in selected["nodes"]
        ],
        "edges": [
            {"src": link.source, "dst": link.target, "link_type": link.type, "strength": link.strength}
            for link in selected["links"]
        ],
        "metadata": graph.metadata.to_dict(),
    }
    output_file.write_text(_basic_html_export(graph_payload), encoding="utf-8")


def _basic_html_export(graph_payload: dict) -> str:
    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>Salesforce Dependency Graph</title>
  <style>
    body {{ font-family: ui-monospace, SFMono-Regular, Menlo, monospace; margin: 20px; }}
    #container {{ display: grid; grid-template-columns: 1fr 1fr; gap: 18px; }}
    .panel {{ border: 1px solid #ddd; border-radius: 8px; padding: 10px; }}
    ul {{ list-style: none; padding: 0; margin: 0; }}
    li {{ margin: 4px 0; }}
  </style>
</head>
<body>
  <h1>Dependencies of <span id="target"></span></h1>
  <div id="container">
    <div class="panel">
      <h2>Nodes</h2>
      <ul id="nodes"></ul>
    </div>
    <div class="panel">
      <h2>Links</h2>
      <ul id="edges"></ul>
    </div>
  </div>
  <script>
    const graph = {json.dumps(graph_payload)};
    document.getElementById('target').textContent = graph.metadata.analyzedFile || '';
    const nodesEl = document.getElementById('nodes');
    const edgesEl = document.getElementById('edges');
    graph.nodes.forEach(n => {{
      const li = document.createElement('li');
      li.textContent = `${{n.label}} (${{n.title}})`;
      nodesEl.appendChild(li);
    }});
    graph.edges.forEach(e => {{
      const li = document.createElement('li');
      li.textContent = `${{e.src}} --${{e.link_type}}--> ${{e.dst}}`;
      edgesEl.appendChild(li);
    }});
  </script>
</body>
</html>
"""


def _focused_subgraph(
    nodes: Dict[str, DependencyNode], links: List[DependencyLink], focus: str
) -> Dict[str, List]:
    known = [link for link in links if link.source in nodes and link.target in nodes]
    if not focus:
        return {"nodes": list(nodes.keys()), "links": known}

    focus_ids = {node_id for node_id, node in nodes.items() if focus in node_id or focus in node.name}
    if not focus_ids:
        return {"nodes": list(nodes.keys()), "links": known}

    link_subset = [link for link in known if link.source in focus_ids or link.target in focus_ids]
    node_subset = set(focus_ids)
    for link in link_subset:
        node_subset.add(link.source)
        node_subset.add(link.target)
    return {"nodes": sorted(node_subset), "links": link_subset}


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
