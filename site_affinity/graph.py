"""
Node/link model for the force layout.

``build_graph`` is the only place where string site ids are resolved: every
``GraphLink`` holds direct references to its two ``GraphNode`` objects (and
therefore their arena indices), so the simulator never meets an unresolved
endpoint.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .models import SimilarityEdge, Site
from .utils import log


@dataclass(eq=False)
class GraphNode:
    site: Site
    index: int
    x: Optional[float] = None
    y: Optional[float] = None
    vx: float = 0.0
    vy: float = 0.0
    fx: Optional[float] = None
    fy: Optional[float] = None

    @property
    def id(self) -> str:
        return self.site.id

    @property
    def pinned(self) -> bool:
        return self.fx is not None and self.fy is not None


@dataclass(eq=False)
class GraphLink:
    source: GraphNode
    target: GraphNode
    score: float
    distance: float

    @property
    def index_pair(self) -> Tuple[int, int]:
        return self.source.index, self.target.index


@dataclass
class GraphModel:
    """Nodes and links of one layout. After editing ``nodes`` or ``links``,
    hand the model to ``ForceSimulator.set_graph`` again."""

    nodes: List[GraphNode] = field(default_factory=list)
    links: List[GraphLink] = field(default_factory=list)

    @property
    def index(self) -> Dict[str, GraphNode]:
        # rebuilt per access so it never lags behind ``nodes``
        return {n.id: n for n in self.nodes}

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def node(self, site_id: str) -> GraphNode:
        return self.index[site_id]

    def degree(self) -> np.ndarray:
        deg = np.zeros(len(self.nodes), dtype=np.int64)
        for link in self.links:
            deg[link.source.index] += 1
            deg[link.target.index] += 1
        return deg


def build_graph(
    sites: Sequence[Site],
    edges: Iterable[SimilarityEdge],
    threshold: float = 0.2,
    link_distance: float = 220.0,
) -> GraphModel:
    """One node per site; one link per edge with score > threshold whose
    endpoints both exist. Stale, self and duplicate edges are dropped."""
    nodes: List[GraphNode] = []
    index: Dict[str, GraphNode] = {}
    for i, site in enumerate(sites):
        if site.id in index:
            raise ValueError(f"Duplicate site id in working set: {site.id}")
        node = GraphNode(site=site, index=i)
        nodes.append(node)
        index[site.id] = node

    links: List[GraphLink] = []
    seen = set()
    below = dangling = dup = 0
    for e in edges:
        s = float(e.score)
        if math.isnan(s) or not s > threshold:
            below += 1
            continue
        src = index.get(e.source_id)
        tgt = index.get(e.target_id)
        if src is None or tgt is None:
            dangling += 1
            continue
        if src is tgt or e.key in seen:
            dup += 1
            continue
        seen.add(e.key)
        links.append(
            GraphLink(source=src, target=tgt, score=s, distance=float(link_distance))
        )

    if dangling:
        log(f"Graph: dropped {dangling} edge(s) referencing sites not in the working set")
    log(
        f"Graph: {len(nodes)} nodes, {len(links)} links "
        f"(threshold>{threshold}, {below} below, {dup} self/duplicate)"
    )
    return GraphModel(nodes=nodes, links=links)
