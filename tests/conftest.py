import sys
import os
import pytest

# Project root: needed for FarmInfo, farm_data, map_view, etc.
_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
# agents/ subdir: imported directly so ConciergeAgent, RouteAgent, LocationAgent
# can be imported by name in tests without going through the package.
_agents_dir = os.path.join(_root, "agents")
for _p in (_root, _agents_dir):
    if _p not in sys.path:
        sys.path.insert(0, _p)

from FarmInfo import Category, FarmRecord, Itinerary, ItineraryStep, Owner, Product
from database import VisitedStore, init_db


def make_farm(farm_id, lat=46.0, lng=13.0, categories=(Category.WINE,), connections=()):
    return FarmRecord(
        id=farm_id,
        name=f"Azienda {farm_id}",
        address=f"Via {farm_id} 1, Udine",
        description="Azienda di prova",
        logo=f"https://example.test/{farm_id}.png",
        specialty="Prodotti tipici",
        lat=lat,
        lng=lng,
        products=[Product(name=f"{c.value} {farm_id}", category=c) for c in categories],
        owners=[Owner(name="Anna", role="Titolare", photo_url="https://example.test/anna.png")],
        connections=list(connections),
    )


@pytest.fixture
def farms():
    """Three connected farms; c points to a farm that does not exist."""
    return [
        make_farm("a", 46.0, 13.0, (Category.WINE,), ("b",)),
        make_farm("b", 46.1, 13.1, (Category.CHEESE,), ("a", "c")),
        make_farm("c", 46.2, 13.2, (Category.HONEY,), ("zz",)),
    ]


@pytest.fixture
def itinerary():
    return Itinerary(
        title="Vini e formaggi",
        description="Una giornata tra cantine e latterie",
        steps=[
            ItineraryStep(farm_id="a", reason="Degustazione"),
            ItineraryStep(farm_id="b", reason="Formaggi di malga"),
        ],
    )


@pytest.fixture
def engine(tmp_path):
    return init_db(f"sqlite:///{tmp_path / 'test.db'}")


@pytest.fixture
def visited_store(engine):
    return VisitedStore(engine)
