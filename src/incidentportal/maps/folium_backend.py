"""``MapBackend`` implementation on folium.

folium builds static Leaflet documents, so this backend records the map
state (markers, heat layer, viewport, open popup) and builds a fresh
``folium.Map`` whenever HTML is requested.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import folium
from folium.plugins import HeatMap

logger = logging.getLogger(__name__)

LatLng = tuple[float, float]

HEAT_GRADIENT = {0.0: "blue", 0.2: "cyan", 0.4: "lime", 0.6: "yellow", 0.8: "orange", 1.0: "red"}


@dataclass
class FoliumMarker:
    """Marker handle handed back to the synchronizer."""

    lat: float
    lng: float
    popup_html: str
    tooltip: str
    open: bool = False


class FoliumMapBackend:
    """Map backend producing a standalone HTML page via folium."""

    def __init__(self, tiles: str = "OpenStreetMap", popup_max_width: int = 300) -> None:
        self.tiles = tiles
        self.popup_max_width = popup_max_width
        self.markers: list[FoliumMarker] = []
        self.heat: list[tuple[float, float, float]] = []
        self.heat_options: dict = {}
        self.bounds: list[LatLng] | None = None
        self.padding = 0
        self.max_zoom: int | None = None
        self.created = False
        self._center: LatLng | None = None
        self._zoom: int | None = None

    @property
    def center(self) -> LatLng | None:
        return self._center

    @property
    def zoom(self) -> int | None:
        return self._zoom

    def create(self, center: LatLng, zoom: int) -> None:
        self.created = True
        self._center = center
        self._zoom = zoom

    def clear_markers(self) -> None:
        self.markers = []

    def add_marker(self, lat: float, lng: float, popup_html: str, tooltip: str) -> FoliumMarker:
        marker = FoliumMarker(lat=lat, lng=lng, popup_html=popup_html, tooltip=tooltip)
        self.markers.append(marker)
        return marker

    def set_view(self, center: LatLng, zoom: int) -> None:
        self._center = center
        self._zoom = zoom
        self.bounds = None

    def fit_bounds(
        self, points: Sequence[LatLng], padding: int, max_zoom: int | None = None
    ) -> None:
        lats = [p[0] for p in points]
        lngs = [p[1] for p in points]
        self.bounds = [(min(lats), min(lngs)), (max(lats), max(lngs))]
        self.padding = padding
        self.max_zoom = max_zoom
        self._center = ((min(lats) + max(lats)) / 2, (min(lngs) + max(lngs)) / 2)

    def open_popup(self, marker: FoliumMarker) -> None:
        for m in self.markers:
            m.open = m is marker

    def show_heat(
        self, triples: Sequence[tuple[float, float, float]], radius: int, blur: int
    ) -> None:
        self.heat = [tuple(t) for t in triples]
        self.heat_options = {"radius": radius, "blur": blur}

    def clear_heat(self) -> None:
        self.heat = []
        self.heat_options = {}

    def dispose(self) -> None:
        self.clear_markers()
        self.clear_heat()
        self.bounds = None
        self.created = False

    def build(self) -> folium.Map:
        """Build a folium map reflecting the current state.

        Raises:
            RuntimeError: The map was never created or has been disposed
        """
        if not self.created:
            raise RuntimeError("Map has not been created")

        m = folium.Map(location=list(self._center), zoom_start=self._zoom, tiles=self.tiles)

        if self.markers:
            layer = folium.FeatureGroup(name="Incidents").add_to(m)
            for marker in self.markers:
                folium.Marker(
                    [marker.lat, marker.lng],
                    popup=folium.Popup(
                        marker.popup_html, max_width=self.popup_max_width, show=marker.open
                    ),
                    tooltip=marker.tooltip,
                ).add_to(layer)

        if self.heat:
            HeatMap(
                [list(t) for t in self.heat],
                name="Density",
                min_opacity=0.4,
                max_zoom=17,
                gradient=HEAT_GRADIENT,
                **self.heat_options,
            ).add_to(m)

        if self.bounds:
            m.fit_bounds(
                [list(p) for p in self.bounds],
                padding=(self.padding, self.padding),
                max_zoom=self.max_zoom,
            )
        return m

    def render_html(self) -> str:
        """Full standalone HTML document for the current map."""
        return self.build().get_root().render()

    def save(self, path: str | Path) -> Path:
        """Write the map to an HTML file."""
        path = Path(path)
        self.build().save(str(path))
        logger.info("Wrote map with %d markers to %s", len(self.markers), path)
        return path
