"""
Site affinity graph
===================

This script:
1) Loads site records (a JSON file, or the bundled Tamil Nadu reference sites)
2) Scores every pair of sites by shared artifact materials
3) Builds the thresholded node-link graph and runs the force layout to
   convergence
4) Writes outputs:
   - CSV with all scored pairs, the similarity matrix and the final layout
   - JSON summary per site (top matches + parameters)
   - a 300 DPI JPG snapshot of the layout
"""

from __future__ import annotations

import argparse
import time
from pathlib import Path
from typing import List, Optional

from .catalog import SAMPLE_SITES, load_sites_json
from .graph import build_graph
from .outputs import write_outputs
from .params import DEFAULT_ALPHA_DECAY, LayoutParams, validate_params
from .similarity import compute_similarity
from .simulation import ForceSimulator
from .utils import log


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        description="Cultural affinity graph for archaeological sites"
    )
    ap.add_argument(
        "--sites",
        type=str,
        default=None,
        help="JSON file with site records (default: bundled reference sites).",
    )
    ap.add_argument(
        "--threshold",
        type=float,
        default=0.2,
        help="Minimum similarity (exclusive) for a graph link (default: 0.2).",
    )
    ap.add_argument(
        "--charge-strength",
        type=float,
        default=-400.0,
        help="Many-body strength; negative repels (default: -400).",
    )
    ap.add_argument(
        "--link-distance",
        type=float,
        default=220.0,
        help="Link rest length (default: 220).",
    )
    ap.add_argument(
        "--collide-radius",
        type=float,
        default=50.0,
        help="Collision radius per node (default: 50).",
    )
    ap.add_argument(
        "--center-strength",
        type=float,
        default=None,
        help="Centering strength (default: from params).",
    )
    ap.add_argument(
        "--alpha-decay",
        type=float,
        default=DEFAULT_ALPHA_DECAY,
        help=f"Cooling factor per tick (default: {DEFAULT_ALPHA_DECAY:.4f}).",
    )
    ap.add_argument(
        "--alpha-min",
        type=float,
        default=0.001,
        help="Stop when alpha drops below this (default: 0.001).",
    )
    ap.add_argument(
        "--velocity-decay",
        type=float,
        default=None,
        help="Friction per tick (default: from params).",
    )
    ap.add_argument(
        "--use-link-weights",
        action="store_true",
        help="Scale link strength by similarity score.",
    )
    ap.add_argument(
        "--max-ticks",
        type=int,
        default=10_000,
        help="Upper bound on simulation ticks (default: 10000).",
    )
    ap.add_argument("--seed", type=int, default=0, help="Jiggle RNG seed.")
    ap.add_argument(
        "--no-chart",
        action="store_true",
        help="Disable the JPG layout chart.",
    )
    ap.add_argument(
        "--out-dir", type=str, default="out", help="Output directory (default: ./out)."
    )
    ap.add_argument(
        "--prefix", type=str, default="affinity", help="Output filename prefix."
    )
    return ap.parse_args(argv)


def params_from_args(args: argparse.Namespace) -> LayoutParams:
    params = LayoutParams(
        threshold=float(args.threshold),
        charge_strength=float(args.charge_strength),
        link_distance=float(args.link_distance),
        collide_radius=float(args.collide_radius),
        alpha_decay=float(args.alpha_decay),
        alpha_min=float(args.alpha_min),
        use_link_weights=bool(args.use_link_weights),
        seed=int(args.seed),
    )

    # Optional overrides (keep params as single source of truth by default)
    if args.center_strength is not None:
        params.center_strength = float(args.center_strength)
    if args.velocity_decay is not None:
        params.velocity_decay = float(args.velocity_decay)

    return validate_params(params)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    params = params_from_args(args)

    if args.sites:
        sites = load_sites_json(Path(args.sites))
    else:
        sites = list(SAMPLE_SITES)
        log(f"Using {len(sites)} bundled reference sites")

    edges = compute_similarity(sites)
    model = build_graph(
        sites, edges, threshold=params.threshold, link_distance=params.link_distance
    )

    log("Running force layout...")
    t0 = time.time()
    sim = ForceSimulator(model, params)
    ticks = sim.run(max_ticks=int(args.max_ticks))
    log(
        f"Layout done: {ticks} ticks, alpha={sim.alpha:.5f}, state={sim.state.value} "
        f"(t={time.time() - t0:.2f}s)"
    )

    write_outputs(
        sites,
        edges,
        sim.positions(),
        out_dir=Path(args.out_dir).resolve(),
        params=params,
        prefix=str(args.prefix),
        model=model,
        simulation_info={
            "ticks": ticks,
            "alpha": sim.alpha,
            "state": sim.state.value,
        },
        chart=not args.no_chart,
    )
    sim.dispose()

    log("Done.")


if __name__ == "__main__":
    main()
