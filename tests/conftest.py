import copy

import pytest

from site_affinity.catalog import SAMPLE_SITES
from site_affinity.models import Artifact, Chronology, Location, Site


def make_site(site_id, materials=(), district="Test"):
    return Site(
        id=site_id,
        name=site_id.title(),
        location=Location(lat=10.0, lng=78.0, district=district),
        chronology=[Chronology.UNKNOWN],
        artifacts=[Artifact(name=f"{m} item", material=m) for m in materials],
    )


@pytest.fixture
def sample_sites():
    return copy.deepcopy(SAMPLE_SITES)


@pytest.fixture
def site_factory():
    return make_site
