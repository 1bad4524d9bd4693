from __future__ import annotations

import json
import time
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

import pandas as pd

from .graph import GraphModel
from .models import SimilarityEdge, Site
from .params import LayoutParams
from .similarity import edge_lookup, edges_to_frame, similarity_matrix, top_similar
from .utils import log

Positions = Dict[str, Tuple[float, float]]


def layout_frame(sites: Sequence[Site], positions: Positions, model: Optional[GraphModel] = None) -> pd.DataFrame:
    deg = {}
    if model is not None:
        counts = model.degree()
        deg = {n.id: int(counts[n.index]) for n in model.nodes}
    rows = []
    for s in sites:
        x, y = positions.get(s.id, (float("nan"), float("nan")))
        rows.append(
            {
                "site_id": s.id,
                "name": s.name,
                "district": s.location.district,
                "coordinates_verified": bool(s.location.verified),
                "x": x,
                "y": y,
                "degree": deg.get(s.id, 0),
            }
        )
    return pd.DataFrame(
        rows,
        columns=["site_id", "name", "district", "coordinates_verified", "x", "y", "degree"],
    )


def write_layout_chart(
    model: GraphModel, positions: Positions, out_path: Path, params: LayoutParams
) -> None:
    """Node-link snapshot of the layout at 300 DPI (diagnostic only)."""
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    fig = plt.figure(figsize=(params.width / 100.0, params.height / 100.0))
    ax = fig.add_subplot(111)
    for link in model.links:
        x0, y0 = positions[link.source.id]
        x1, y1 = positions[link.target.id]
        ax.plot([x0, x1], [y0, y1], color="#9ca3af", alpha=0.6,
                linewidth=max(0.5, (link.score ** 0.5) * 5.0), zorder=1)
    if model.nodes:
        xs = [positions[n.id][0] for n in model.nodes]
        ys = [positions[n.id][1] for n in model.nodes]
        ax.scatter(xs, ys, s=200, c="#c45a30", edgecolors="white", linewidths=2, zorder=2)
        for n, x, y in zip(model.nodes, xs, ys):
            ax.annotate(n.site.name, (x, y), xytext=(10, 0), textcoords="offset points",
                        fontsize=8, va="center")
    ax.set_xlim(0, params.width)
    ax.set_ylim(params.height, 0)  # screen coordinates: y grows downwards
    ax.set_aspect("equal")
    ax.set_axis_off()
    ax.set_title("Inter-site affinity graph")
    fig.tight_layout()
    fig.savefig(out_path, dpi=300)
    plt.close(fig)


def write_outputs(
    sites: Sequence[Site],
    edges: Sequence[SimilarityEdge],
    positions: Positions,
    out_dir: Path,
    params: LayoutParams,
    prefix: str = "affinity",
    model: Optional[GraphModel] = None,
    simulation_info: Optional[Dict[str, object]] = None,
    chart: bool = True,
) -> Dict[str, Path]:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    written: Dict[str, Path] = {}

    edges_path = out_dir / f"{prefix}_edges.csv"
    edges_to_frame(edges, threshold=params.threshold).to_csv(
        edges_path, index=False, encoding="utf-8"
    )
    written["edges"] = edges_path
    log(f"Wrote CSV: {edges_path}")

    matrix_path = out_dir / f"{prefix}_matrix.csv"
    similarity_matrix(sites, edges).to_csv(matrix_path, encoding="utf-8")
    written["matrix"] = matrix_path
    log(f"Wrote matrix CSV: {matrix_path}")

    layout_path = out_dir / f"{prefix}_layout.csv"
    layout_frame(sites, positions, model).to_csv(layout_path, index=False, encoding="utf-8")
    written["layout"] = layout_path
    log(f"Wrote layout CSV: {layout_path}")

    # JSON summary: per site top matches + parameters
    summary: Dict[str, object] = {
        "params": asdict(params),
        "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "simulation": simulation_info or {},
        "n_sites": len(sites),
        "n_pairs": len(edges),
        "n_links": len(model.links) if model is not None else None,
        "sites": {},
    }
    lookup = edge_lookup(edges)
    for s in sites:
        summary["sites"][s.id] = {
            "name": s.name,
            "district": s.location.district,
            "coordinates_verified": bool(s.location.verified),
            "chronology": [c.value for c in s.chronology],
            "position": list(positions[s.id]) if s.id in positions else None,
            "top_matches": [
                {"site_id": other.id, "name": other.name, "score": sc}
                for other, sc in top_similar(s, sites, n=3, lookup=lookup)
            ],
        }
    json_path = out_dir / f"{prefix}_summary.json"
    json_path.write_text(
        json.dumps(summary, ensure_ascii=False, indent=2), encoding="utf-8"
    )
    written["summary"] = json_path
    log(f"Wrote JSON: {json_path}")

    if chart and model is not None:
        chart_path = out_dir / f"{prefix}_layout.jpg"
        try:
            write_layout_chart(model, positions, chart_path, params)
            written["chart"] = chart_path
            log(f"Wrote chart: {chart_path}")
        except Exception as e:
            log(f"WARN: Could not write layout chart: {e}")

    return written
