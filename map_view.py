"""
Map view - keeps Leaflet markers and connection lines in step with the
displayed farm list and the itinerary highlight set.

The map surface is created once and then reconciled on every update instead
of being rebuilt, so markers keep their identity (open popups, hover state)
for as long as their farm stays in the list:

    view = MapView(FoliumSurface(), on_select=state.select_farm)
    view.update(state.displayed_farms(), state.highlighted_ids())
    st_folium(view.surface.map, ...)

Lines carry no identity and are redrawn from scratch on each update.
"""
from __future__ import annotations

import html
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Protocol, Sequence

import folium
from branca.element import Element, MacroElement
from folium.utilities import validate_location
from jinja2 import Template

from FarmInfo import FarmRecord

logger = logging.getLogger(__name__)

# Friuli Venezia Giulia: (south, west), (north, east)
HOME_BOUNDS = ((45.5, 12.0), (46.8, 14.0))
HOME_CENTER = (46.1, 13.0)
HOME_ZOOM = 9
MIN_ZOOM = 8

GOOGLE_TILES = "https://{s}.google.com/vt/lyrs=m&x={x}&y={y}&z={z}"
GOOGLE_SUBDOMAINS = ["mt0", "mt1", "mt2", "mt3"]

LINE_STYLE = {"color": "#8a6a5c", "weight": 2, "opacity": 0.5, "dash_array": "5, 10"}

RESIZE_LISTENER_KEY = "resize_listener"

HIGHLIGHT_Z_OFFSET = 1000
CLICK_TOLERANCE = 1e-5

MARKER_CSS = """
<style>
.farm-marker { position: relative; display: flex; align-items: center; justify-content: center; }
.farm-badge { position: relative; width: 40px; height: 40px; border-radius: 50%; overflow: hidden;
  background: #fff; box-shadow: 0 2px 6px rgba(0,0,0,.3); cursor: pointer; transition: transform .2s; }
.farm-badge img { width: 100%; height: 100%; object-fit: cover; }
.farm-badge.neutral { border: 2px solid #fff; }
.farm-badge.neutral:hover { transform: scale(1.1); }
.farm-badge.highlighted { border: 2px solid #dc2626; transform: scale(1.25); }
.farm-halo { position: absolute; width: 100%; height: 100%; border-radius: 50%;
  background: rgba(239,68,68,.3); animation: farm-ping 1s cubic-bezier(0,0,.2,1) infinite; }
.farm-label { position: absolute; bottom: -28px; left: 50%; transform: translateX(-50%);
  background: rgba(255,255,255,.9); padding: 1px 6px; border-radius: 4px; border: 1px solid #e5e7eb;
  white-space: nowrap; font-size: 10px; font-weight: bold; color: #1f2937; pointer-events: none; }
@keyframes farm-ping { 75%, 100% { transform: scale(2); opacity: 0; } }
</style>
"""


# ---------------------------------------------------------------------------
# Marker visuals
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MarkerStyle:
    html: str
    tooltip: str
    highlighted: bool
    z_offset: int
    icon_size: tuple[int, int] = (40, 40)
    icon_anchor: tuple[int, int] = (20, 20)


def marker_style(farm: FarmRecord, highlighted: bool) -> MarkerStyle:
    """Visual descriptor for a farm marker.

    Highlighted markers are enlarged with a red border, a pulsing halo and a
    permanent name label, and stack above the rest. Plain markers are a
    neutral badge that grows a little on hover.
    """
    name = html.escape(farm.name)
    logo = html.escape(farm.logo, quote=True)
    halo = '<div class="farm-halo"></div>' if highlighted else ""
    label = f'<div class="farm-label">{name}</div>' if highlighted else ""
    badge_class = "highlighted" if highlighted else "neutral"
    markup = (
        f'<div class="farm-marker">{halo}'
        f'<div class="farm-badge {badge_class}"><img src="{logo}" alt="{name}"/></div>'
        f"{label}</div>"
    )
    return MarkerStyle(
        html=markup,
        tooltip=farm.name,
        highlighted=highlighted,
        z_offset=HIGHLIGHT_Z_OFFSET if highlighted else 0,
    )


# ---------------------------------------------------------------------------
# Surface
# ---------------------------------------------------------------------------

class MapSurface(Protocol):
    """What the view needs from an interactive map library."""

    def add_marker(self, lat: float, lng: float, style: MarkerStyle,
                   on_click: Callable[[], None]) -> Any: ...

    def update_marker(self, handle: Any, lat: float, lng: float, style: MarkerStyle) -> None: ...

    def remove_marker(self, handle: Any) -> None: ...

    def add_line(self, start: tuple[float, float], end: tuple[float, float]) -> Any: ...

    def remove_line(self, handle: Any) -> None: ...

    def invalidate_size(self) -> None: ...

    def dispose(self) -> None: ...


class _ZoomControl(MacroElement):
    _template = Template("""
        {% macro script(this, kwargs) %}
            L.control.zoom({position: {{ this.position|tojson }}}).addTo({{ this._parent.get_name() }});
        {% endmacro %}
    """)

    def __init__(self, position="topright"):
        super().__init__()
        self._name = "ZoomControl"
        self.position = position


class _ResizeListener(MacroElement):
    _template = Template("""
        {% macro script(this, kwargs) %}
            function {{ this.get_name() }}() {
                {{ this._parent.get_name() }}.invalidateSize();
            }
            window.addEventListener("resize", {{ this.get_name() }});
        {% endmacro %}
    """)

    def __init__(self):
        super().__init__()
        self._name = "ResizeListener"


class _InvalidateSize(MacroElement):
    _template = Template("""
        {% macro script(this, kwargs) %}
            setTimeout(function() { {{ this._parent.get_name() }}.invalidateSize(); }, 0);
        {% endmacro %}
    """)

    def __init__(self):
        super().__init__()
        self._name = "InvalidateSize"


class FoliumSurface:
    """Leaflet map built with folium, bounded to the home region.

    Panning is clamped to HOME_BOUNDS (viscosity 1.0, so the edge is hard).
    Connection lines live in their own feature group, which Leaflet draws in
    the overlay pane underneath the marker pane.
    """

    def __init__(self):
        (south, west), (north, east) = HOME_BOUNDS
        m = folium.Map(
            location=list(HOME_CENTER),
            zoom_start=HOME_ZOOM,
            min_zoom=MIN_ZOOM,
            tiles=None,
            zoom_control=False,
            max_bounds=True,
            min_lat=south,
            max_lat=north,
            min_lon=west,
            max_lon=east,
            max_bounds_viscosity=1.0,
        )
        folium.TileLayer(
            tiles=GOOGLE_TILES,
            attr="&copy; Google Maps",
            name="Google Maps",
            max_zoom=20,
            subdomains=GOOGLE_SUBDOMAINS,
        ).add_to(m)
        m.add_child(_ZoomControl("topright"))
        m.get_root().header.add_child(Element(MARKER_CSS), name="farm_marker_css")

        m.add_child(_ResizeListener(), name=RESIZE_LISTENER_KEY)

        self._connections = folium.FeatureGroup(name="connections", control=False)
        m.add_child(self._connections, name="connections")

        self._map: Optional[folium.Map] = m
        # Children are stored under keys chosen here: get_name() changes
        # whenever st_folium re-renders the map.
        self._counter = itertools.count(1)
        self._keys: dict[int, str] = {}
        self._handlers: dict[str, Callable[[], None]] = {}
        self._styles: dict[str, MarkerStyle] = {}

    # -- lifecycle ------------------------------------------------------------

    @property
    def map(self) -> folium.Map:
        if self._map is None:
            raise RuntimeError("map surface has been disposed")
        return self._map

    @property
    def disposed(self) -> bool:
        return self._map is None

    def invalidate_size(self) -> None:
        self.map.add_child(_InvalidateSize(), name="invalidate_size")

    def dispose(self) -> None:
        if self._map is None:
            return
        self._map._children.pop(RESIZE_LISTENER_KEY, None)
        self._keys.clear()
        self._handlers.clear()
        self._styles.clear()
        self._map = None

    # -- markers --------------------------------------------------------------

    @staticmethod
    def _icon(style: MarkerStyle) -> folium.DivIcon:
        return folium.DivIcon(
            html=style.html,
            icon_size=style.icon_size,
            icon_anchor=style.icon_anchor,
            class_name="custom-farm-marker",
        )

    @staticmethod
    def _set_icon(marker: folium.Marker, icon: folium.DivIcon) -> None:
        for name, child in list(marker._children.items()):
            if isinstance(child, folium.DivIcon):
                del marker._children[name]
        marker.add_child(icon)
        marker.icon = icon

    def _attach(self, parent, child, prefix) -> str:
        key = f"{prefix}_{next(self._counter)}"
        parent.add_child(child, name=key)
        self._keys[id(child)] = key
        return key

    def _detach(self, parent, handle) -> Optional[str]:
        key = self._keys.pop(id(handle), None)
        if key is not None:
            parent._children.pop(key, None)
        return key

    def add_marker(self, lat, lng, style, on_click):
        marker = folium.Marker(location=[lat, lng], tooltip=style.tooltip)
        self._set_icon(marker, self._icon(style))
        marker.options["zIndexOffset"] = style.z_offset
        key = self._attach(self.map, marker, "farm_marker")
        self._handlers[key] = on_click
        self._styles[key] = style
        return marker

    def update_marker(self, handle, lat, lng, style):
        key = self._keys[id(handle)]
        handle.location = validate_location([lat, lng])
        if self._styles.get(key) != style:
            self._set_icon(handle, self._icon(style))
        handle.options["zIndexOffset"] = style.z_offset
        self._styles[key] = style

    def remove_marker(self, handle):
        key = self._detach(self.map, handle)
        self._handlers.pop(key, None)
        self._styles.pop(key, None)

    def style_of(self, handle) -> Optional[MarkerStyle]:
        return self._styles.get(self._keys.get(id(handle)))

    def markers(self) -> list[folium.Marker]:
        return [c for c in self.map._children.values() if isinstance(c, folium.Marker)]

    def dispatch_click(self, lat, lng) -> bool:
        """Route a clicked position (st_folium's last_object_clicked) to its marker."""
        for key, marker in list(self.map._children.items()):
            if not isinstance(marker, folium.Marker):
                continue
            m_lat, m_lng = marker.location
            if abs(m_lat - lat) <= CLICK_TOLERANCE and abs(m_lng - lng) <= CLICK_TOLERANCE:
                handler = self._handlers.get(key)
                if handler is not None:
                    handler()
                    return True
        return False

    # -- lines ----------------------------------------------------------------

    def add_line(self, start, end):
        line = folium.PolyLine(locations=[list(start), list(end)], **LINE_STYLE)
        self._attach(self._connections, line, "connection")
        return line

    def remove_line(self, handle):
        self._detach(self._connections, handle)

    def lines(self) -> list[folium.PolyLine]:
        return list(self._connections._children.values())


# ---------------------------------------------------------------------------
# View
# ---------------------------------------------------------------------------

class MapView:
    """Reconciles a MapSurface against (farm list, highlight set) snapshots."""

    def __init__(self, surface: Optional[MapSurface] = None,
                 on_select: Optional[Callable[[str], None]] = None):
        self.surface = surface if surface is not None else FoliumSurface()
        self.on_select = on_select
        self.markers_by_id: dict[str, Any] = {}
        self.connection_lines: list[Any] = []
        self.closed = False
        # the container usually has its final size only after mount
        self.surface.invalidate_size()

    def _click_handler(self, farm_id: str) -> Callable[[], None]:
        def handler():
            # on_select is read at click time so the owner can rebind it
            if self.on_select is not None and not self.closed:
                self.on_select(farm_id)
        return handler

    def update(self, farms: Sequence[FarmRecord], highlighted_ids: Iterable[str] = ()) -> None:
        if self.closed:
            logger.debug("Ignoring update on a closed map view")
            return

        highlighted = set(highlighted_ids)
        present = {farm.id: farm for farm in farms}

        for line in self.connection_lines:
            self.surface.remove_line(line)
        self.connection_lines = []

        for farm in farms:
            for target_id in farm.connections:
                target = present.get(target_id)
                if target is None:
                    continue
                line = self.surface.add_line(farm.coordinates(), target.coordinates())
                self.connection_lines.append(line)

        for farm in farms:
            style = marker_style(farm, farm.id in highlighted)
            marker = self.markers_by_id.get(farm.id)
            if marker is not None:
                self.surface.update_marker(marker, farm.lat, farm.lng, style)
            else:
                self.markers_by_id[farm.id] = self.surface.add_marker(
                    farm.lat, farm.lng, style, self._click_handler(farm.id),
                )

        for farm_id in list(self.markers_by_id):
            if farm_id not in present:
                self.surface.remove_marker(self.markers_by_id.pop(farm_id))

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.markers_by_id.clear()
        self.connection_lines = []
        self.surface.dispose()
