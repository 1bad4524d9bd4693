"""
Material-overlap similarity between sites.

score(a, b) = |materials(a) & materials(b)| / |materials(a) | materials(b)|,
with 0.0 when neither site has any artifact material. Deterministic and
explainable: ``shared_materials`` returns the exact overlap behind a score.
"""

from __future__ import annotations

import time
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np
import pandas as pd

from .models import SimilarityEdge, Site
from .utils import log


def material_set(site: Site) -> Set[str]:
    out: Set[str] = set()
    for art in site.artifacts:
        m = (art.material or "").strip().lower()
        if m:
            out.add(m)
    return out


def score(a: Site, b: Site) -> float:
    ma = material_set(a)
    mb = material_set(b)
    union = ma | mb
    if not union:
        return 0.0
    return len(ma & mb) / len(union)


def shared_materials(a: Site, b: Site) -> List[str]:
    return sorted(material_set(a) & material_set(b))


def _incidence(sites: Sequence[Site]) -> Tuple[np.ndarray, List[str]]:
    """Site x material 0/1 matrix (rows follow ``sites``, columns sorted)."""
    sets = [material_set(s) for s in sites]
    vocab = sorted(set().union(*sets)) if sets else []
    col = {m: j for j, m in enumerate(vocab)}
    M = np.zeros((len(sites), len(vocab)), dtype=np.int64)
    for i, ms in enumerate(sets):
        for m in ms:
            M[i, col[m]] = 1
    return M, vocab


def compute_similarity(sites: Sequence[Site]) -> List[SimilarityEdge]:
    """Score every unordered pair (i < j) of the working set in one pass.

    Always a full recomputation; callers rerun it whenever sites are added,
    edited or removed.
    """
    n = len(sites)
    if n < 2:
        return []

    t0 = time.time()
    M, vocab = _incidence(sites)
    inter = M @ M.T
    sizes = M.sum(axis=1)
    union = sizes[:, None] + sizes[None, :] - inter
    with np.errstate(divide="ignore", invalid="ignore"):
        S = np.where(union > 0, inter / np.maximum(union, 1), 0.0)

    vocab_arr = np.array(vocab, dtype=object)
    edges: List[SimilarityEdge] = []
    iu, ju = np.triu_indices(n, k=1)
    for i, j in zip(iu.tolist(), ju.tolist()):
        both = np.flatnonzero(M[i] & M[j])
        edges.append(
            SimilarityEdge(
                source_id=sites[i].id,
                target_id=sites[j].id,
                score=float(S[i, j]),
                shared=[str(m) for m in vocab_arr[both]],
            )
        )

    log(
        f"Similarity: {len(edges):,} pairs over {n} sites, "
        f"{len(vocab)} materials (t={time.time() - t0:.2f}s)"
    )
    return edges


def edge_lookup(edges: Iterable[SimilarityEdge]) -> Dict[FrozenSet[str], SimilarityEdge]:
    return {e.key: e for e in edges}


def similarity_matrix(
    sites: Sequence[Site], edges: Iterable[SimilarityEdge]
) -> pd.DataFrame:
    """Square score matrix indexed by site id; diagonal 1.0, missing pairs 0.0."""
    ids = [s.id for s in sites]
    pos = {sid: k for k, sid in enumerate(ids)}
    mat = np.eye(len(ids), dtype=float)
    for e in edges:
        i = pos.get(e.source_id)
        j = pos.get(e.target_id)
        if i is None or j is None or i == j:
            continue
        mat[i, j] = mat[j, i] = float(e.score)
    return pd.DataFrame(mat, index=ids, columns=ids)


def top_similar(
    site: Site,
    sites: Sequence[Site],
    n: int = 3,
    lookup: Optional[Dict[FrozenSet[str], SimilarityEdge]] = None,
) -> List[Tuple[Site, float]]:
    """The ``n`` most similar other sites, highest score first (ties keep input order).

    With ``lookup`` (from ``edge_lookup``) scores are read from the edges
    instead of being recomputed; pairs missing from it score 0.0.
    """
    if lookup is None:
        scored = [(s, score(site, s)) for s in sites if s.id != site.id]
    else:
        scored = []
        for s in sites:
            if s.id == site.id:
                continue
            e = lookup.get(frozenset((site.id, s.id)))
            scored.append((s, float(e.score) if e is not None else 0.0))
    scored.sort(key=lambda x: x[1], reverse=True)
    return scored[: max(0, n)]


def edges_to_frame(
    edges: Iterable[SimilarityEdge], threshold: float | None = None
) -> pd.DataFrame:
    rows = []
    for e in edges:
        row = {
            "source_id": e.source_id,
            "target_id": e.target_id,
            "score": float(e.score),
            "shared_materials": "|".join(e.shared),
            "explanation": e.explanation or "",
        }
        if threshold is not None:
            row["in_graph"] = bool(e.score > threshold)
        rows.append(row)
    cols = ["source_id", "target_id", "score", "shared_materials", "explanation"]
    if threshold is not None:
        cols.append("in_graph")
    return pd.DataFrame(rows, columns=cols)
