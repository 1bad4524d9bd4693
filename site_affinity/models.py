"""
Site records and similarity edges.

These are the canonical shapes shared by every stage: the normalizer
produces ``Site`` objects, the similarity engine turns pairs of them into
``SimilarityEdge`` objects, and the graph builder consumes both.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional


class Chronology(str, Enum):
    MEGALITHIC = "Megalithic"
    SANGAM = "Sangam Age"
    EARLY_HISTORIC = "Early Historic"
    MEDIEVAL = "Medieval"
    UNKNOWN = "Unknown Period"


ARTIFACT_CATEGORIES = ("pottery", "bead", "tool", "coin", "ornament", "other")


@dataclass
class Artifact:
    name: str
    material: str
    category: str = "other"
    description: str = ""

    @classmethod
    def from_dict(cls, d: Dict[str, object]) -> "Artifact":
        return cls(
            name=str(d.get("name", "") or ""),
            material=str(d.get("material", "") or ""),
            category=str(d.get("category", "other") or "other"),
            description=str(d.get("description", "") or ""),
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "material": self.material,
            "category": self.category,
            "description": self.description,
        }


@dataclass
class Location:
    lat: float
    lng: float
    district: str = "Unspecified"
    # False when lat/lng are a fallback value rather than reported coordinates.
    verified: bool = True


@dataclass
class Site:
    id: str
    name: str
    location: Location
    chronology: List[Chronology] = field(default_factory=list)
    description: str = ""
    artifacts: List[Artifact] = field(default_factory=list)
    structures: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Dict[str, object]) -> "Site":
        """Build a Site from an already-canonical record (e.g. a saved catalog).

        Chronology values must be canonical labels ("Megalithic", ...);
        raw free text goes through ``normalize.normalize_site_record`` instead.
        """
        if "id" not in d or not str(d["id"]).strip():
            raise ValueError(f"Site record has no id: {d.get('name', '?')}")
        loc = d.get("location") or {}
        return cls(
            id=str(d["id"]).strip(),
            name=str(d.get("name", "") or ""),
            location=Location(
                lat=float(loc.get("lat", 0.0)),
                lng=float(loc.get("lng", 0.0)),
                district=str(loc.get("district", "Unspecified") or "Unspecified"),
                verified=bool(loc.get("verified", True)),
            ),
            chronology=[Chronology(c) for c in (d.get("chronology") or [])],
            description=str(d.get("description", "") or ""),
            artifacts=[Artifact.from_dict(a) for a in (d.get("artifacts") or [])],
            structures=[str(s) for s in (d.get("structures") or [])],
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "location": {
                "lat": self.location.lat,
                "lng": self.location.lng,
                "district": self.location.district,
                "verified": self.location.verified,
            },
            "chronology": [c.value for c in self.chronology],
            "description": self.description,
            "artifacts": [a.to_dict() for a in self.artifacts],
            "structures": list(self.structures),
        }


@dataclass
class SimilarityEdge:
    source_id: str
    target_id: str
    score: float
    shared: List[str] = field(default_factory=list)
    explanation: Optional[str] = None

    @property
    def key(self) -> FrozenSet[str]:
        return frozenset((self.source_id, self.target_id))

    def other(self, site_id: str) -> str:
        return self.target_id if site_id == self.source_id else self.source_id
