"""
Run output
==========
Machine-readable JSON summary of a run and a PNG map of which routines were
patched in which file.
"""

import json
from datetime import datetime, timezone
from pathlib import Path

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import networkx as nx

from . import __version__


# region JSON Report

def format_json(reports, summary=None, dry_run=False):
    """Render the reports of one run (and its job counters) as JSON text."""
    out = {
        "tool": "friendlyamd",
        "version": __version__,
        "generated": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        "files_patched": len(reports),
        "routines_patched": sum(len(r.patched_routines) for r in reports),
        "files": [r.to_dict() for r in sorted(reports, key=lambda r: str(r.original_path))],
    }
    if summary is not None:
        out["jobs"] = {
            "started": summary.started,
            "succeeded": summary.succeeded,
            "failed": summary.failed,
        }
    return json.dumps(out, indent=2)


def write_json_report(reports, path, summary=None, dry_run=False):
    path = Path(path)
    path.write_text(format_json(reports, summary, dry_run))
    return path

# endregion JSON Report


# region Visualization

def build_patch_graph(reports):
    """File -> signature DiGraph; file nodes are keyed on the full path and
    labelled with the file name, edges carry the patched offsets."""
    G = nx.DiGraph()
    for report in reports:
        file_node = str(report.original_path)
        for routine in report.patched_routines:
            G.add_node(file_node, color='#5865F2', label=Path(file_node).name)
            G.add_node(routine.name, color='#ED4245', label=routine.name)
            if G.has_edge(file_node, routine.name):
                G[file_node][routine.name]['label'] += f", 0x{routine.offset:X}"
            else:
                G.add_edge(file_node, routine.name, label=f"0x{routine.offset:X}")
    return G


def generate_patch_graph(reports, out_dir):
    """Draw build_patch_graph(reports) into out_dir/patch_graph.png.

    Returns the PNG path, or None if no report has any routine.
    """
    G = build_patch_graph(reports)
    if len(G.nodes) == 0:
        return None

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    viz_path = out_dir / 'patch_graph.png'

    plt.figure(figsize=(14, 9))
    try:
        pos = nx.spring_layout(G, k=2.5, iterations=60, seed=42)
        colors = [G.nodes[n].get('color', '#99AAB5') for n in G.nodes()]
        labels = nx.get_node_attributes(G, 'label')
        nx.draw(G, pos, labels=labels, with_labels=True, node_color=colors, node_size=2800,
                font_size=7, font_weight='bold', arrows=True, edge_color='#72767D',
                arrowsize=15, font_color='white', edgecolors='#2C2F33', linewidths=1.5)
        edge_labels = nx.get_edge_attributes(G, 'label')
        nx.draw_networkx_edge_labels(G, pos, edge_labels, font_size=7, font_color='#B9BBBE')
        plt.title("Patched Routines", fontsize=14, fontweight='bold', color='#FFFFFF')
        plt.gca().set_facecolor('#36393F')
        plt.gcf().set_facecolor('#2C2F33')
        plt.axis('off')
        plt.savefig(viz_path, dpi=150, bbox_inches='tight', facecolor='#2C2F33')
    finally:
        plt.close()
    return viz_path

# endregion Visualization
