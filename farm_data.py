"""
Farm directory - the bundled TerreFVG catalog, loaded once at import time
"""
import json
import logging
import os

from FarmInfo import Category, FarmRecord

logger = logging.getLogger(__name__)

CATALOG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data", "farms.json")

# Filter chips, in display order
FILTER_CATEGORIES = [
    {"id": Category.WINE, "label": "🍷 Vino", "color": "#fee2e2"},
    {"id": Category.CHEESE, "label": "🧀 Formaggi", "color": "#fef9c3"},
    {"id": Category.MEAT, "label": "🥩 Carne", "color": "#ffe4e6"},
    {"id": Category.VEGETABLE, "label": "🥕 Ortofrutta", "color": "#dcfce7"},
    {"id": Category.HONEY, "label": "🍯 Miele", "color": "#fef3c7"},
    {"id": Category.OIL, "label": "🫒 Olio", "color": "#ecfccb"},
]

# Badge colors for the product list in the detail sheet
CATEGORY_COLORS = {
    Category.WINE: ("#fee2e2", "#b91c1c"),
    Category.CHEESE: ("#fef9c3", "#a16207"),
    Category.VEGETABLE: ("#dcfce7", "#15803d"),
}
DEFAULT_CATEGORY_COLOR = ("#f3f4f6", "#374151")


def load_catalog(path=CATALOG_PATH):
    """Read the catalog file into an immutable tuple of FarmRecord."""
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    farms = tuple(FarmRecord.from_dict(entry) for entry in raw)

    known = {farm.id for farm in farms}
    for farm in farms:
        for target in farm.connections:
            if target not in known:
                logger.debug("Farm %s connects to unknown farm %s", farm.id, target)
    return farms


FARMS = load_catalog()


def farms_by_id(farms=FARMS) -> dict[str, FarmRecord]:
    return {farm.id: farm for farm in farms}


def get_farm(farm_id, farms=FARMS):
    """Look up a farm by id, None when the id is not in the catalog."""
    for farm in farms:
        if farm.id == farm_id:
            return farm
    return None


def filter_farms(farms, active_filters):
    """Keep farms selling at least one product in the active categories.

    An empty filter set means no filtering.
    """
    if not active_filters:
        return list(farms)
    wanted = {Category(c) for c in active_filters}
    return [farm for farm in farms if farm.categories() & wanted]


def catalog_projection(farms=FARMS) -> list[dict]:
    """Compact per-farm context for the concierge prompt (never the full record)."""
    return [
        {
            "id": farm.id,
            "name": farm.name,
            "specialty": farm.specialty,
            "products": farm.product_names(),
            "location": farm.address,
        }
        for farm in farms
    ]


def category_color(category):
    return CATEGORY_COLORS.get(category, DEFAULT_CATEGORY_COLOR)
