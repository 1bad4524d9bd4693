"""
Entity normalisation for site records
=====================================

Two independent jobs:

1) Chronology mapping: noisy free-text period labels ("Iron Age urn burials",
   "Sangam period", ...) are mapped onto the fixed ``Chronology`` taxonomy by
   ordered keyword groups. The first group with a matching keyword wins, so
   the order of ``CHRONOLOGY_KEYWORDS`` is part of the behaviour.
2) Identifier derivation: ``{name}-{district}-{hash}`` with a short base-36
   rolling hash. This is an interactive-session identifier, not a digest.

``normalize_site_record`` glues both together for records coming out of the
(external) extraction step.
"""

from __future__ import annotations

import re
import time
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .models import ARTIFACT_CATEGORIES, Artifact, Chronology, Location, Site
from .utils import clean_text, log, to_float


# ---------------------------------------------------------------------
# Chronology mapping
# ---------------------------------------------------------------------
CHRONOLOGY_KEYWORDS: Tuple[Tuple[Chronology, Tuple[str, ...]], ...] = (
    (
        Chronology.MEGALITHIC,
        ("megalithic", "megalith", "ironage", "urnburial", "megalithicage",
         "cist", "dolmen", "menhir"),
    ),
    (
        Chronology.SANGAM,
        ("sangam", "sangamage", "sangamperiod", "earlysangam", "earlytamil",
         "cheran", "cholan", "pandiyan", "tamizh"),
    ),
    (
        Chronology.EARLY_HISTORIC,
        ("earlyhistoric", "earlyhistorical", "earlyhistoricperiod",
         "historicperiod", "earlydynastic", "indoroman", "buddhist", "jain",
         "maurya", "satavahana", "palaeography"),
    ),
    (
        Chronology.MEDIEVAL,
        ("medieval", "medival", "chola", "pandya", "pallava", "middleages",
         "laterhistoric", "vijayanagara", "nayaka", "islamic", "sultanate"),
    ),
)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_NON_ALNUM_RUN_RE = re.compile(r"[^a-z0-9]+")


def _squash(raw: object) -> str:
    return _NON_ALNUM_RE.sub("", str(raw or "").lower())


def map_chronology(raw: object) -> Chronology:
    text = _squash(raw)
    if not text:
        return Chronology.UNKNOWN
    for category, keywords in CHRONOLOGY_KEYWORDS:
        if any(k in text for k in keywords):
            return category
    return Chronology.UNKNOWN


def normalize_chronology(labels: Optional[Iterable[object]]) -> List[Chronology]:
    """Map raw labels, dedupe (first-seen order) and tidy the UNKNOWN sentinel."""
    if isinstance(labels, str):
        labels = [labels]
    mapped = [map_chronology(x) for x in (labels or [])]
    unique = list(dict.fromkeys(mapped))
    if len(unique) > 1:
        unique = [c for c in unique if c is not Chronology.UNKNOWN]
    return unique or [Chronology.UNKNOWN]


# ---------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------
def slugify(s: object) -> str:
    s = str(s or "").strip().lower()
    return _NON_ALNUM_RUN_RE.sub("-", s)


def string_to_hash(s: str) -> str:
    """32-bit rolling hash (h*31 + code, signed wrap), as an unsigned base-36 string.

    Codes are UTF-16 code units, so characters outside the BMP count as
    their two surrogates.
    """
    h = 0
    for code in np.frombuffer(s.encode("utf-16-le"), dtype="<u2").tolist():
        h = (h * 31 + code) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return np.base_repr(abs(h), base=36).lower()


def now_ms() -> int:
    return int(time.time() * 1000)


def derive_site_id(name: str, district: str, salt: object = None) -> str:
    """``{name}-{district}-{hash}``; pure for a given salt (default: now in ms)."""
    n = slugify(name)
    d = slugify(district)
    if salt is None:
        salt = now_ms()
    return f"{n}-{d}-{string_to_hash(f'{n}-{d}-{salt}')}"


def unique_site_id(
    name: str,
    district: str,
    existing_ids: Iterable[str] = (),
    salt: Optional[int] = None,
    max_attempts: int = 1000,
) -> str:
    taken = set(existing_ids)
    base = now_ms() if salt is None else int(salt)
    for attempt in range(max_attempts):
        sid = derive_site_id(name, district, base + attempt)
        if sid not in taken:
            if attempt:
                log(f"WARN: id collision for '{name}' ({district}); re-salted {attempt}x")
            return sid
    raise ValueError(
        f"Could not derive a unique id for '{name}' after {max_attempts} salts"
    )


# ---------------------------------------------------------------------
# Record normalisation
# ---------------------------------------------------------------------
DEFAULT_COORDINATES = (10.0, 78.0)


def resolve_coordinates(
    lat: object, lng: object, default: Tuple[float, float] = DEFAULT_COORDINATES
) -> Tuple[float, float, bool]:
    """Return (lat, lng, verified). Unparseable or out-of-range values fall back
    to ``default`` with verified=False."""
    la = to_float(lat)
    ln = to_float(lng)
    verified = True
    if la is None or not -90.0 <= la <= 90.0:
        la, verified = float(default[0]), False
    if ln is None or not -180.0 <= ln <= 180.0:
        ln, verified = float(default[1]), False
    return la, ln, verified


def normalize_category(raw: object) -> str:
    c = clean_text(raw).lower()
    if c in ARTIFACT_CATEGORIES:
        return c
    # tolerate plurals ("beads", "coins")
    if c.endswith("s") and c[:-1] in ARTIFACT_CATEGORIES:
        return c[:-1]
    return "other"


def _normalize_artifacts(items: Optional[Sequence[object]]) -> List[Artifact]:
    out: List[Artifact] = []
    for a in items or []:
        if not isinstance(a, dict):
            continue
        out.append(
            Artifact(
                name=clean_text(a.get("name")),
                material=clean_text(a.get("material")),
                category=normalize_category(a.get("category")),
                description=clean_text(a.get("description")),
            )
        )
    return out


def normalize_site_record(
    record: Dict[str, object],
    existing_ids: Iterable[str] = (),
    salt: Optional[int] = None,
) -> Site:
    """Turn an extracted record into a canonical Site.

    The record has the extraction shape: name, description,
    location{lat,lng,district}, chronology (free text list), artifacts,
    structures. Any of these may be missing.
    """
    salt = now_ms() if salt is None else int(salt)

    name = clean_text(record.get("name")) or f"Site-{salt}"
    description = clean_text(record.get("description")) or "No description provided."

    loc = record.get("location") or {}
    if not isinstance(loc, dict):
        loc = {}
    district = clean_text(loc.get("district")) or "Unspecified"
    lat, lng, verified = resolve_coordinates(loc.get("lat"), loc.get("lng"))
    if not verified:
        log(f"WARN: coordinates for '{name}' unverified; using default ({lat}, {lng})")

    structures = [clean_text(s) for s in (record.get("structures") or [])]

    return Site(
        id=unique_site_id(name, district, existing_ids, salt=salt),
        name=name,
        location=Location(lat=lat, lng=lng, district=district, verified=verified),
        chronology=normalize_chronology(record.get("chronology")),
        description=description,
        artifacts=_normalize_artifacts(record.get("artifacts")),
        structures=[s for s in structures if s],
    )
