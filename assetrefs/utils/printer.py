"""Console rendering of reference search results."""
from typing import Any, Dict, List

from rich.console import Console
from rich.markup import escape
from rich.tree import Tree as RichTree

from ..analyzer.graph_decoder import NodeRecord, Tree
from ..analyzer.project import AssetReferenceReport

RULE = '----' * 36
ASSET_KIND_LABELS = {
    'scene': 'Scene',
    'prefab': 'Prefab',
    'animation': 'Animation',
    'material': 'Material',
    'font': 'Font',
}


def display_url(url: str) -> str:
    """Strip the `db://` scheme and a trailing `.meta`."""
    url = url.replace('db://', '', 1)
    if url.endswith('.meta'):
        url = url[:-len('.meta')]
    return url


def format_report(report: AssetReferenceReport, show_node: bool = True) -> List[str]:
    """Build the report as rich-markup lines.

    Node-level references (scenes, prefabs) are grouped before file-level
    references (animations, materials, fonts).
    """
    node_lines: List[str] = []
    asset_lines: List[str] = []
    node_count = 0
    asset_count = 0

    for result in report.results:
        url = escape(display_url(result.file_url))
        label = ASSET_KIND_LABELS.get(result.asset_kind, result.asset_kind)
        if result.refs is not None:
            node_lines.append(f"   · 📺 [cyan]\\[{label}][/cyan] {url}")
            for ref in result.refs:
                node_count += 1
                if not show_node:
                    continue
                line = f"       💾 [green]\\[Node][/green] {escape(ref.node_path)}"
                if ref.component:
                    line += f"  →  💿 [magenta]\\[Component][/magenta] {escape(ref.component)}"
                if ref.property:
                    line += f"  →  🎲 [yellow]\\[Property][/yellow] {escape(ref.property)}"
                node_lines.append(line)
        else:
            asset_count += 1
            asset_lines.append(f"   · 📦 [cyan]\\[{label}][/cyan] {url}")

    lines = ["[bold blue]🔎 Reference results >>>[/bold blue]"]
    if node_lines:
        lines.append(f"  📙 [bold]Node references × {node_count}[/bold]")
        lines.extend(node_lines)
    if asset_lines:
        lines.append(f"  📘 [bold]Asset references × {asset_count}[/bold]")
        lines.extend(asset_lines)
    lines.append(RULE)
    return lines


def print_report(report: AssetReferenceReport, console: Console, show_node: bool = True):
    """Print a report, or a 'no references' notice when it is empty."""
    if not report.results:
        console.print(f"[dim]🔎 No references found for[/dim] {escape(report.asset.short_url)}")
        console.print(RULE)
        return
    for line in format_report(report, show_node=show_node):
        console.print(line)


def report_to_dict(report: AssetReferenceReport) -> Dict[str, Any]:
    """JSON-friendly form of a report."""
    return {
        'uuid': report.asset.uuid,
        'search_id': report.search_id,
        'type': report.asset.type,
        'url': report.asset.url,
        'path': report.asset.path,
        'refs': [result.to_dict() for result in report.results],
    }


def render_tree(tree: Tree, title: str) -> RichTree:
    """Rich tree view of a decoded scene/prefab, one line per node."""
    root = RichTree(f"[bold]{escape(title)}[/bold] [dim]({tree.kind.value}, root #{tree.root_id})[/dim]")

    def add(parent: RichTree, node: NodeRecord):
        components = ', '.join(escape(str(c.get('__type__', '?'))) for c in node.components)
        label = f"{escape(node.name)} [dim]#{node.id}[/dim]"
        if components:
            label += f" [magenta]{components}[/magenta]"
        if node.prefab_link:
            label += " [cyan](prefab)[/cyan]"
        branch = parent.add(label)
        for child in node.children:
            add(branch, child)

    for node in tree.nodes:
        add(root, node)
    return root
