"""
Unit tests for map_view.py

Tests cover:
- marker_style() visuals for plain and highlighted farms
- MapView.update() reconciliation against a recording surface
  (marker identity, pruning, highlight toggles, connection lines)
- Click dispatch and close() lifecycle
- FoliumSurface against a real folium map, including st_folium renders
  between updates
"""
import pytest
from streamlit_folium import st_folium

from conftest import make_farm
from map_view import (
    HIGHLIGHT_Z_OFFSET,
    RESIZE_LISTENER_KEY,
    LINE_STYLE,
    FoliumSurface,
    MapView,
    marker_style,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeMarker:
    def __init__(self, lat, lng, style, on_click):
        self.lat = lat
        self.lng = lng
        self.style = style
        self.on_click = on_click
        self.removed = False


class FakeLine:
    def __init__(self, start, end):
        self.start = start
        self.end = end


class FakeSurface:
    """Records every call the view makes."""

    def __init__(self):
        self.markers = []
        self.lines = []
        self.added = 0
        self.updated = 0
        self.disposed = 0
        self.invalidated = 0

    def add_marker(self, lat, lng, style, on_click):
        marker = FakeMarker(lat, lng, style, on_click)
        self.markers.append(marker)
        self.added += 1
        return marker

    def update_marker(self, handle, lat, lng, style):
        handle.lat, handle.lng, handle.style = lat, lng, style
        self.updated += 1

    def remove_marker(self, handle):
        handle.removed = True
        self.markers.remove(handle)

    def add_line(self, start, end):
        line = FakeLine(start, end)
        self.lines.append(line)
        return line

    def remove_line(self, handle):
        self.lines.remove(handle)

    def invalidate_size(self):
        self.invalidated += 1

    def dispose(self):
        self.disposed += 1


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def selected():
    return []


@pytest.fixture
def view(surface, selected):
    return MapView(surface, on_select=selected.append)


def _segments(surface):
    return {(line.start, line.end) for line in surface.lines}


# ---------------------------------------------------------------------------
# marker_style
# ---------------------------------------------------------------------------

class TestMarkerStyle:
    def test_plain_marker_is_neutral(self):
        style = marker_style(make_farm("a"), highlighted=False)
        assert style.highlighted is False
        assert style.z_offset == 0
        assert "neutral" in style.html
        assert "farm-halo" not in style.html
        assert "farm-label" not in style.html

    def test_highlighted_marker_has_halo_and_label(self):
        style = marker_style(make_farm("a"), highlighted=True)
        assert style.z_offset == HIGHLIGHT_Z_OFFSET
        assert "farm-halo" in style.html
        assert '<div class="farm-label">Azienda a</div>' in style.html

    def test_name_is_escaped(self):
        farm = make_farm("<b>")
        style = marker_style(farm, highlighted=True)
        assert "<b>" not in style.html
        assert "&lt;b&gt;" in style.html

    def test_tooltip_is_farm_name(self):
        assert marker_style(make_farm("a"), False).tooltip == "Azienda a"

    def test_same_input_same_style(self):
        farm = make_farm("a")
        assert marker_style(farm, True) == marker_style(farm, True)
        assert marker_style(farm, True) != marker_style(farm, False)


# ---------------------------------------------------------------------------
# MapView.update - markers
# ---------------------------------------------------------------------------

class TestMarkerReconciliation:
    def test_one_marker_per_farm(self, view, surface, farms):
        view.update(farms)
        assert set(view.markers_by_id) == {"a", "b", "c"}
        assert len(surface.markers) == 3

    def test_marker_position_matches_farm(self, view, farms):
        view.update(farms)
        marker = view.markers_by_id["b"]
        assert (marker.lat, marker.lng) == (46.1, 13.1)

    def test_surviving_marker_keeps_identity(self, view, surface, farms):
        view.update(farms)
        before = view.markers_by_id["a"]
        view.update(farms[:2])
        assert view.markers_by_id["a"] is before
        assert surface.added == 3

    def test_removed_farm_marker_is_pruned(self, view, surface, farms):
        view.update(farms)
        gone = view.markers_by_id["c"]
        view.update(farms[:2])
        assert "c" not in view.markers_by_id
        assert gone.removed is True
        assert gone not in surface.markers

    def test_returning_farm_gets_fresh_marker(self, view, farms):
        view.update(farms)
        first = view.markers_by_id["c"]
        view.update(farms[:2])
        view.update(farms)
        assert view.markers_by_id["c"] is not first

    def test_empty_list_clears_everything(self, view, surface, farms):
        view.update(farms)
        view.update([])
        assert view.markers_by_id == {}
        assert surface.markers == []
        assert surface.lines == []

    def test_highlight_toggle_restyles_in_place(self, view, surface, farms):
        view.update(farms)
        marker = view.markers_by_id["a"]
        view.update(farms, ["a"])
        assert view.markers_by_id["a"] is marker
        assert marker.style.highlighted is True
        assert marker.style.z_offset == HIGHLIGHT_Z_OFFSET
        view.update(farms, [])
        assert marker.style.highlighted is False
        assert marker.style.z_offset == 0

    def test_highlight_ids_not_displayed_are_ignored(self, view, farms):
        view.update(farms[:1], ["b", "nope"])
        assert set(view.markers_by_id) == {"a"}
        assert view.markers_by_id["a"].style.highlighted is False


# ---------------------------------------------------------------------------
# MapView.update - connection lines
# ---------------------------------------------------------------------------

class TestConnectionLines:
    def test_lines_follow_connections_between_displayed_farms(self, view, surface, farms):
        view.update(farms)
        assert _segments(surface) == {
            ((46.0, 13.0), (46.1, 13.1)),  # a -> b
            ((46.1, 13.1), (46.0, 13.0)),  # b -> a
            ((46.1, 13.1), (46.2, 13.2)),  # b -> c
        }

    def test_dangling_connection_draws_nothing(self, view, surface, farms):
        view.update(farms[2:])
        assert surface.lines == []

    def test_lines_to_hidden_farms_are_dropped(self, view, surface, farms):
        view.update(farms)
        view.update([farms[0], farms[2]])
        assert surface.lines == []
        assert view.connection_lines == []

    def test_lines_are_rebuilt_not_accumulated(self, view, surface, farms):
        view.update(farms)
        view.update(farms)
        view.update(farms)
        assert len(surface.lines) == 3
        assert view.connection_lines == surface.lines


# ---------------------------------------------------------------------------
# Clicks and lifecycle
# ---------------------------------------------------------------------------

class TestClicksAndClose:
    def test_new_view_asks_for_size_recalculation(self, view, surface):
        assert surface.invalidated == 1

    def test_click_reports_farm_id(self, view, selected, farms):
        view.update(farms)
        view.markers_by_id["b"].on_click()
        assert selected == ["b"]

    def test_rebound_selection_callback_is_used(self, view, farms):
        view.update(farms)
        later = []
        view.on_select = later.append
        view.markers_by_id["a"].on_click()
        assert later == ["a"]

    def test_close_disposes_surface_once(self, view, surface, farms):
        view.update(farms)
        view.close()
        view.close()
        assert surface.disposed == 1
        assert view.markers_by_id == {}

    def test_update_after_close_is_noop(self, view, surface, farms):
        view.close()
        view.update(farms)
        assert surface.added == 0

    def test_click_after_close_is_ignored(self, view, selected, farms):
        view.update(farms)
        handler = view.markers_by_id["a"].on_click
        view.close()
        handler()
        assert selected == []


# ---------------------------------------------------------------------------
# FoliumSurface
# ---------------------------------------------------------------------------

class TestFoliumSurface:
    def test_map_is_bounded_to_region(self):
        surface = FoliumSurface()
        html = surface.map.get_root().render()
        assert "maxBoundsViscosity" in html
        assert "maxBounds" in html
        assert "mt0" in html

    def test_markers_and_lines_render(self, farms):
        surface = FoliumSurface()
        view = MapView(surface)
        view.update(farms, ["a"])
        assert len(surface.markers()) == 3
        assert len(surface.lines()) == 3
        html = surface.map.get_root().render()
        assert "farm-halo" in html
        assert "farm-badge" in html

    def test_highlight_sets_z_index_offset(self, farms):
        surface = FoliumSurface()
        view = MapView(surface)
        view.update(farms, ["b"])
        assert view.markers_by_id["b"].options["zIndexOffset"] == HIGHLIGHT_Z_OFFSET
        assert view.markers_by_id["a"].options["zIndexOffset"] == 0

    def test_update_keeps_same_folium_marker(self, farms):
        surface = FoliumSurface()
        view = MapView(surface)
        view.update(farms)
        marker = view.markers_by_id["a"]
        view.update(farms, ["a"])
        assert view.markers_by_id["a"] is marker
        assert surface.style_of(marker).highlighted is True
        assert marker.icon is not None

    def test_remove_marker_detaches_from_map(self, farms):
        surface = FoliumSurface()
        view = MapView(surface)
        view.update(farms)
        view.update(farms[:1])
        assert len(surface.markers()) == 1
        assert surface.lines() == []

    def test_line_style(self, farms):
        surface = FoliumSurface()
        MapView(surface).update(farms)
        html = surface.map.get_root().render()
        assert LINE_STYLE["dash_array"] in html
        assert LINE_STYLE["color"] in html

    def test_dispatch_click_selects_matching_marker(self, farms):
        selected = []
        surface = FoliumSurface()
        MapView(surface, on_select=selected.append).update(farms)
        assert surface.dispatch_click(46.1, 13.1) is True
        assert selected == ["b"]

    def test_dispatch_click_elsewhere_does_nothing(self, farms):
        selected = []
        surface = FoliumSurface()
        MapView(surface, on_select=selected.append).update(farms)
        assert surface.dispatch_click(45.9, 12.5) is False
        assert selected == []

    def test_resize_listener_rendered_until_dispose(self):
        surface = FoliumSurface()
        MapView(surface)
        html = surface.map.get_root().render()
        assert 'addEventListener("resize"' in html
        assert "invalidateSize()" in html

    def test_dispose_releases_map(self):
        surface = FoliumSurface()
        surface.dispose()
        assert surface.disposed is True
        with pytest.raises(RuntimeError):
            surface.map
        surface.dispose()

    def test_dispose_detaches_resize_listener(self):
        surface = FoliumSurface()
        m = surface.map
        surface.dispose()
        assert RESIZE_LISTENER_KEY not in m._children


# ---------------------------------------------------------------------------
# FoliumSurface rendered by st_folium between updates
# ---------------------------------------------------------------------------

def _render(surface):
    st_folium(surface.map, key="farm_map", returned_objects=["last_object_clicked"])


class TestFoliumSurfaceAcrossRenders:
    def test_pruned_markers_leave_the_map(self, farms):
        surface = FoliumSurface()
        view = MapView(surface)
        view.update(farms)
        _render(surface)
        view.update(farms[:1])
        assert list(view.markers_by_id) == ["a"]
        assert len(surface.markers()) == 1
        assert surface.lines() == []

    def test_lines_do_not_pile_up(self, farms):
        surface = FoliumSurface()
        view = MapView(surface)
        for _ in range(3):
            view.update(farms)
            _render(surface)
        assert len(surface.lines()) == 3

    def test_click_still_selects_after_render(self, farms):
        selected = []
        surface = FoliumSurface()
        view = MapView(surface, on_select=selected.append)
        view.update(farms)
        _render(surface)
        assert surface.dispatch_click(46.1, 13.1) is True
        assert selected == ["b"]

    def test_highlight_after_render_restyles_same_marker(self, farms):
        surface = FoliumSurface()
        view = MapView(surface)
        view.update(farms)
        marker = view.markers_by_id["a"]
        _render(surface)
        view.update(farms, ["a"])
        assert view.markers_by_id["a"] is marker
        assert surface.style_of(marker).highlighted is True
        assert marker.options["zIndexOffset"] == HIGHLIGHT_Z_OFFSET

    def test_dispose_after_render_detaches_resize_listener(self, farms):
        surface = FoliumSurface()
        MapView(surface).update(farms)
        _render(surface)
        m = surface.map
        surface.dispose()
        assert RESIZE_LISTENER_KEY not in m._children
