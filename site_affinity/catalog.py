"""
Site catalog: bundled reference sites, JSON loading/saving and filtering.

JSON files hold a list of site records in the shape

    {"id": ..., "name": ..., "location": {"lat", "lng", "district"},
     "chronology": [...], "description": ..., "artifacts": [...],
     "structures": [...]}

Records without an ``id`` are treated as freshly extracted and go through
``normalize_site_record``; chronology labels are always re-normalised.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .models import Artifact, Chronology, Location, Site
from .normalize import (
    normalize_chronology,
    normalize_site_record,
    now_ms,
    resolve_coordinates,
)
from .utils import log


# ---------------------------------------------------------------------
# Reference sites (Tamil Nadu)
# ---------------------------------------------------------------------
SAMPLE_SITES: List[Site] = [
    Site(
        id="adichanallur",
        name="Adichanallur",
        location=Location(lat=8.6291, lng=77.8765, district="Thoothukudi"),
        chronology=[Chronology.MEGALITHIC],
        description="An extensive urn-burial site containing a vast number of "
        "skeletal remains and iron artifacts.",
        artifacts=[
            Artifact("Urns", "Terracotta", "pottery", "Large burial urns often containing skeletons."),
            Artifact("Swords", "Iron", "tool", "Double-edged iron swords found in burials."),
            Artifact("Gold Diadems", "Gold", "ornament", "Small gold leaf ornaments for the forehead."),
        ],
        structures=["Urn burial pits", "Habitation mounds"],
    ),
    Site(
        id="keezhadi",
        name="Keezhadi",
        location=Location(lat=9.8631, lng=78.1883, district="Sivaganga"),
        chronology=[Chronology.SANGAM, Chronology.EARLY_HISTORIC],
        description="A large urban settlement showing advanced civic planning "
        "and Tamil-Brahmi script.",
        artifacts=[
            Artifact("Tamil-Brahmi Potsherds", "Terracotta", "pottery", "Pottery inscribed with personal names."),
            Artifact("Glass Beads", "Glass", "bead", "Evidence of local manufacturing of luxury items."),
            Artifact("Game Pieces", "Terracotta", "other", "Dice and hopscotches indicating leisure activities."),
        ],
        structures=["Brick walls", "Ring wells", "Open drainage system"],
    ),
    Site(
        id="kodumanal",
        name="Kodumanal",
        location=Location(lat=11.1090, lng=77.4580, district="Erode"),
        chronology=[Chronology.MEGALITHIC, Chronology.SANGAM],
        description="A major industrial and trade center specializing in "
        "semi-precious stone beads and iron smelting.",
        artifacts=[
            Artifact("Carnelian Beads", "Carnelian", "bead", "Etched beads indicating trade with Indus region."),
            Artifact("Iron Furnaces", "Iron", "other", "Remains of high-quality steel production."),
            Artifact("Punch-marked Coins", "Silver", "coin", "Early Indian coinage used in trade."),
        ],
        structures=["Stone circles", "Iron smelting furnaces", "Cist burials"],
    ),
    Site(
        id="arikamedu",
        name="Arikamedu",
        location=Location(lat=11.8942, lng=79.8290, district="Puducherry"),
        chronology=[Chronology.EARLY_HISTORIC],
        description="An Indo-Roman trading station on the Coromandel coast.",
        artifacts=[
            Artifact("Amphorae", "Terracotta", "pottery", "Mediterranean wine jars."),
            Artifact("Rouletted Ware", "Terracotta", "pottery", "Fine pottery with concentric machine-turned patterns."),
            Artifact("Arretine Ware", "Terracotta", "pottery", "Red glazed Italian pottery."),
        ],
        structures=["Warehouse remains", "Brick tanks", "Wharfs"],
    ),
    Site(
        id="porunthal",
        name="Porunthal",
        location=Location(lat=10.5100, lng=77.4800, district="Dindigul"),
        chronology=[Chronology.SANGAM],
        description="Noted for the discovery of paddy in grave urns and rich "
        "bead deposits.",
        artifacts=[
            Artifact("Paddy Grains", "Organic", "other", "Carbonized rice found in burial urns."),
            Artifact("Banded Agate Beads", "Agate", "bead", "High quality imported semi-precious stones."),
            Artifact("Graffiti Pottery", "Terracotta", "pottery", "Post-firing markings on black and red ware."),
        ],
        structures=["Habitation mounds", "Megalithic burials"],
    ),
]


# ---------------------------------------------------------------------
# Loading / saving
# ---------------------------------------------------------------------
def _resolved_location(rec: Dict[str, object]) -> Dict[str, object]:
    """Location of a stored record with lat/lng checked; a stored
    ``verified: false`` is kept, unparseable coordinates force it."""
    loc = rec.get("location") or {}
    if not isinstance(loc, dict):
        loc = {}
    lat, lng, ok = resolve_coordinates(loc.get("lat"), loc.get("lng"))
    if not ok:
        log(
            f"WARN: coordinates for '{rec.get('id')}' unverified; "
            f"using default ({lat}, {lng})"
        )
    return {**loc, "lat": lat, "lng": lng, "verified": ok and bool(loc.get("verified", True))}


def sites_from_records(
    records: Iterable[Dict[str, object]], salt: Optional[int] = None
) -> List[Site]:
    base = now_ms() if salt is None else int(salt)
    sites: List[Site] = []
    ids = set()
    for k, rec in enumerate(records):
        if not isinstance(rec, dict):
            raise ValueError(f"Site record #{k} is not an object: {rec!r}")
        if str(rec.get("id") or "").strip():
            chron = normalize_chronology(rec.get("chronology"))
            try:
                site = Site.from_dict(
                    {
                        **rec,
                        "location": _resolved_location(rec),
                        "chronology": [c.value for c in chron],
                    }
                )
            except (TypeError, AttributeError) as e:
                raise ValueError(f"Site record #{k} ({rec.get('id')}) is malformed: {e}") from e
        else:
            site = normalize_site_record(rec, existing_ids=ids, salt=base + k)
        if site.id in ids:
            raise ValueError(f"Duplicate site id: {site.id}")
        ids.add(site.id)
        sites.append(site)
    return sites


def load_sites_json(path: Union[str, Path], salt: Optional[int] = None) -> List[Site]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing file: {path}")
    data = json.loads(path.read_text(encoding="utf-8-sig"))
    if isinstance(data, dict) and "sites" in data:
        data = data["sites"]
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of site records")
    sites = sites_from_records(data, salt=salt)
    log(f"Loaded {len(sites):,} sites from {path}")
    return sites


def save_sites_json(sites: Sequence[Site], path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps([s.to_dict() for s in sites], ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    log(f"Wrote sites JSON: {path}")
    return path


# ---------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------
def filter_sites(
    sites: Sequence[Site],
    search: str = "",
    district: str = "",
    chronology: Optional[Union[Chronology, str]] = None,
) -> List[Site]:
    term = (search or "").strip().lower()
    if isinstance(chronology, str) and chronology:
        chronology = Chronology(chronology)
    out = []
    for s in sites:
        if term and term not in s.name.lower() and term not in s.description.lower():
            continue
        if district and s.location.district != district:
            continue
        if chronology and chronology not in s.chronology:
            continue
        out.append(s)
    return out


def unique_districts(sites: Sequence[Site]) -> List[str]:
    return sorted({s.location.district for s in sites if s.location.district})
