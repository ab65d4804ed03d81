from __future__ import annotations

import time

import networkx as nx
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from ripple.core.cascade import CascadeNetwork, EffectRelationship, RelationshipType
from ripple.core.consequence import CascadingEffect, Consequence, ImpactLevel
from ripple.renderer.visualization import CascadeVisualizationData


LEVEL_COLORS = {
    ImpactLevel.MINOR: "grey62",
    ImpactLevel.MODERATE: "yellow",
    ImpactLevel.MAJOR: "dark_orange",
    ImpactLevel.SIGNIFICANT: "red",
    ImpactLevel.CRITICAL: "bold red",
}

EDGE_ICONS = {
    RelationshipType.DIRECT: "-->",
    RelationshipType.INDIRECT: "~~>",
    RelationshipType.AMPLIFYING: "++>",
    RelationshipType.MITIGATING: "-/>",
}

HEADER = "RIPPLE -- Cascading Effects"


def _format_probability(prob: float) -> str:
    return f"{prob * 100:.1f}%"


def _primary_label(consequence: Consequence) -> str:
    kind = consequence.type.value if consequence.type else "unclassified"
    color = LEVEL_COLORS.get(consequence.impact.level, "white") if consequence.impact else "white"
    text = escape(consequence.description or consequence.id)
    return f"[{color}](*) {text}  ({kind})[/{color}]"


def _effect_label(effect: CascadingEffect, rel: EffectRelationship | None) -> str:
    color = LEVEL_COLORS.get(effect.impact.level, "white")
    icon = EDGE_ICONS.get(rel.relationship_type, "-->") if rel else "-->"
    systems = ", ".join(effect.impact.affected_systems)
    return (f"[{color}]{icon} {escape(effect.description)}  "
            f"({_format_probability(effect.probability)}, +{effect.delay / 1000:.1f}s, "
            f"{systems})[/{color}]")


def _add_children(graph: nx.DiGraph, node_id: str, parent_tree: Tree,
                  depth: int, max_visible_depth: int | None) -> None:
    if max_visible_depth is not None and depth > max_visible_depth:
        return
    for child_id in graph.successors(node_id):
        effect = graph.nodes[child_id]["data"]
        rel = graph.edges[node_id, child_id]["data"]
        branch = parent_tree.add(_effect_label(effect, rel))
        _add_children(graph, child_id, branch, depth + 1, max_visible_depth)


def build_cascade_tree(network: CascadeNetwork, action_label: str = "Player Action",
                       max_visible_depth: int | None = None) -> Tree:
    """Rich tree of the cascade, optionally cut at a given cascade level."""
    graph = network.as_digraph()
    tree = Tree(f"[bold white](*) {escape(action_label)}[/bold white]")
    for consequence in network.primary_consequences:
        branch = tree.add(_primary_label(consequence))
        _add_children(graph, consequence.id, branch, 1, max_visible_depth)
    return tree


def _print_header(console: Console) -> None:
    console.print()
    console.print(Panel(Text(HEADER, style="bold cyan"), border_style="cyan", expand=False))
    console.print()


def render_cascade(network: CascadeNetwork, console: Console | None = None,
                   animated: bool = True, action_label: str = "Player Action") -> None:
    if console is None:
        console = Console()

    if animated:
        _render_animated(network, console, action_label)
    else:
        _print_header(console)
        console.print(build_cascade_tree(network, action_label))

    meta = network.metadata
    console.print()
    console.print(f"  [dim]{meta.total_effects} effects | depth {meta.max_depth} | "
                  f"{meta.processing_time_ms:.1f} ms[/dim]")
    console.print()


def _render_animated(network: CascadeNetwork, console: Console,
                     action_label: str) -> None:
    """Reveal the cascade one level at a time."""
    for level in range(network.metadata.max_depth + 1):
        console.clear()
        _print_header(console)
        console.print(build_cascade_tree(network, action_label, max_visible_depth=level))
        time.sleep(0.4)


def render_visualization_summary(data: CascadeVisualizationData,
                                 console: Console | None = None) -> None:
    if console is None:
        console = Console()

    progression = data.temporal_progression
    console.print(Panel(Text("Timeline", style="bold magenta"),
                        border_style="magenta", expand=False))
    console.print(f"  Duration: [bold]{progression.total_duration / 1000:.1f}s[/bold] "
                  f"over {len(progression.key_frames)} key frames")
    peak = max((len(kf.active_connections) for kf in progression.key_frames), default=0)
    max_active = max(1, peak)
    for kf in progression.key_frames:
        active = len(kf.active_connections)
        bar = "#" * int(active / max_active * 30)
        console.print(f"  {kf.time / 1000:5.1f}s  [cyan]{bar}[/cyan] {active}")
    console.print()

    if data.cross_region_effects:
        table = Table(title="Cross-region effects", title_justify="left")
        table.add_column("Node")
        table.add_column("From")
        table.add_column("To")
        table.add_column("Travel", justify="right")
        for effect in data.cross_region_effects:
            table.add_row(effect.node_id[:8], escape(effect.source_region),
                          escape(effect.target_region),
                          f"{effect.travel_time / 1000:.1f}s")
        console.print(table)
        console.print()

    if data.emergent_opportunities:
        console.print("  [bold green]Emergent opportunities[/bold green]")
        for opportunity in data.emergent_opportunities:
            console.print(f"  [green]*[/green] {opportunity.title}: "
                          f"[dim]{opportunity.description}[/dim]")
        console.print()

    meta = data.metadata
    console.print(f"  [dim]{meta.total_nodes} nodes | {meta.total_connections} connections | "
                  f"depth {meta.max_cascade_depth} | {meta.dropped_effects} dropped[/dim]")
    console.print()
