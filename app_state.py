"""
Application shell state.

One AppState per browser session (kept in st.session_state). State flows
down to the map and the overlays as read-only views; user intents come back
up through the methods below.
"""
from enum import Enum
from typing import Optional

from FarmInfo import Category, FarmRecord, Itinerary
from database import VisitedStore
from farm_data import FARMS, filter_farms, get_farm


class AppMode(str, Enum):
    EXPLORE = "EXPLORE"
    AI_CONCIERGE = "AI_CONCIERGE"
    PASSPORT = "PASSPORT"


class AppState:
    def __init__(self, visited: VisitedStore, farms=FARMS):
        self.farms = tuple(farms)
        self.visited = visited
        self.selected_farm_id: Optional[str] = None
        self.active_filters: set[Category] = set()
        self.active_itinerary: Optional[Itinerary] = None
        self.mode = AppMode.EXPLORE

    # -- filters --------------------------------------------------------------

    def toggle_filter(self, category) -> None:
        category = Category(category)
        if category in self.active_filters:
            self.active_filters.discard(category)
        else:
            self.active_filters.add(category)

    def reset_filters(self) -> None:
        self.active_filters.clear()

    def displayed_farms(self) -> list[FarmRecord]:
        return filter_farms(self.farms, self.active_filters)

    def summary_line(self) -> str:
        count = len(self.displayed_farms())
        return f"{count} Aziende {'filtrate' if self.active_filters else 'connesse'}."

    # -- selection ------------------------------------------------------------

    def select_farm(self, farm_id: str) -> None:
        if get_farm(farm_id, self.farms) is not None:
            self.selected_farm_id = farm_id

    def clear_selection(self) -> None:
        self.selected_farm_id = None

    def selected_farm(self) -> Optional[FarmRecord]:
        if self.selected_farm_id is None:
            return None
        return get_farm(self.selected_farm_id, self.farms)

    # -- visited --------------------------------------------------------------

    def check_in(self) -> bool:
        """Check in at the selected farm; False when nothing changed."""
        farm = self.selected_farm()
        if farm is None:
            return False
        return self.visited.check_in(farm.id)

    def has_visited(self, farm_id: str) -> bool:
        return self.visited.has_visited(farm_id)

    def visited_farms(self) -> list[FarmRecord]:
        farms = (get_farm(farm_id, self.farms) for farm_id in self.visited.visited)
        return [farm for farm in farms if farm is not None]

    # -- itinerary ------------------------------------------------------------

    def apply_itinerary(self, itinerary: Itinerary) -> None:
        self.active_itinerary = itinerary
        self.mode = AppMode.EXPLORE

    def clear_itinerary(self) -> None:
        self.active_itinerary = None

    def highlighted_ids(self) -> list[str]:
        if self.active_itinerary is None:
            return []
        return self.active_itinerary.farm_ids()

    def itinerary_stops(self) -> list[tuple[int, FarmRecord, str]]:
        """(number, farm, reason) for each step whose farm exists."""
        if self.active_itinerary is None:
            return []
        stops = []
        for number, step in enumerate(self.active_itinerary.steps, 1):
            farm = get_farm(step.farm_id, self.farms)
            if farm is not None:
                stops.append((number, farm, step.reason))
        return stops

    # -- modes ----------------------------------------------------------------

    def open_concierge(self) -> None:
        self.mode = AppMode.AI_CONCIERGE

    def close_concierge(self) -> None:
        self.mode = AppMode.EXPLORE

    def open_passport(self) -> None:
        self.mode = AppMode.PASSPORT
