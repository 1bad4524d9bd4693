"""Cultural affinity between archaeological sites: material-overlap scoring
and a force-directed site graph."""

from .graph import GraphLink, GraphModel, GraphNode, build_graph
from .interaction import DragController
from .models import Artifact, Chronology, Location, SimilarityEdge, Site
from .normalize import (
    derive_site_id,
    map_chronology,
    normalize_chronology,
    normalize_site_record,
    unique_site_id,
)
from .params import LayoutParams, validate_params
from .similarity import compute_similarity, score, shared_materials, similarity_matrix
from .simulation import (
    AsyncioScheduler,
    ForceSimulator,
    ManualScheduler,
    SimulationState,
)

__version__ = "0.1.0"

__all__ = [
    "Artifact",
    "AsyncioScheduler",
    "Chronology",
    "DragController",
    "ForceSimulator",
    "GraphLink",
    "GraphModel",
    "GraphNode",
    "LayoutParams",
    "Location",
    "ManualScheduler",
    "SimilarityEdge",
    "SimulationState",
    "Site",
    "build_graph",
    "compute_similarity",
    "derive_site_id",
    "map_chronology",
    "normalize_chronology",
    "normalize_site_record",
    "score",
    "shared_materials",
    "similarity_matrix",
    "unique_site_id",
    "validate_params",
]
