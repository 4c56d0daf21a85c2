"""Keeps a map view in step with the visible incidents.

The map library is an external, stateful dependency, so it sits behind the
narrow ``MapBackend`` protocol. ``MapSynchronizer`` owns the policy: which
records get a marker, how the viewport is fitted afterwards, the id→marker
side map used by ``focus_on``, and the lifecycle
``UNINITIALIZED → READY → DISPOSED``.

Calls that arrive in the wrong state are ignored (logged at debug level). In
particular, a request that completes after the hosting view went away may
still call ``redraw``; the disposed synchronizer drops it.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

from jinja2 import Environment, FileSystemLoader

from incidentportal.core.config import Settings, get_settings
from incidentportal.incidents.models import Incident
from incidentportal.maps.heatmap import HeatPoint, build_heat_points, heat_triples

logger = logging.getLogger(__name__)

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
_jinja_env = Environment(loader=FileSystemLoader(_TEMPLATES_DIR), autoescape=True)

HEAT_RADIUS = 40
HEAT_BLUR = 25

LatLng = tuple[float, float]


class MapState(StrEnum):
    """Lifecycle of a synchronized map."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DISPOSED = "disposed"


class MapBackend(Protocol):
    """Operations the synchronizer needs from a map implementation."""

    @property
    def center(self) -> LatLng | None: ...

    @property
    def zoom(self) -> int | None: ...

    def create(self, center: LatLng, zoom: int) -> None: ...

    def clear_markers(self) -> None: ...

    def add_marker(self, lat: float, lng: float, popup_html: str, tooltip: str) -> Any: ...

    def set_view(self, center: LatLng, zoom: int) -> None: ...

    def fit_bounds(
        self, points: Sequence[LatLng], padding: int, max_zoom: int | None = None
    ) -> None: ...

    def open_popup(self, marker: Any) -> None: ...

    def show_heat(
        self, triples: Sequence[tuple[float, float, float]], radius: int, blur: int
    ) -> None: ...

    def clear_heat(self) -> None: ...

    def dispose(self) -> None: ...


@dataclass(frozen=True)
class PlacedMarker:
    """A marker drawn for one incident."""

    handle: Any
    lat: float
    lng: float


def render_popup(incident: Incident) -> str:
    """HTML summary of an incident for its marker popup."""
    return _jinja_env.get_template("popup.html").render(incident=incident)


class MapSynchronizer:
    """Draws markers (or a heat layer) for the visible incidents.

    Usage::

        sync = MapSynchronizer(FoliumMapBackend())
        sync.mount()
        sync.redraw(view.page_items)
        sync.focus_on(12)
        sync.dispose()
    """

    def __init__(self, backend: MapBackend, settings: Settings | None = None) -> None:
        self.backend = backend
        self.settings = settings or get_settings()
        self.region = self.settings.region
        self.state = MapState.UNINITIALIZED
        self.heat_mode = False
        self._markers: dict[int, PlacedMarker] = {}
        self._drawn: tuple[Incident, ...] | None = None

    @property
    def marker_ids(self) -> list[int]:
        """Ids of incidents that currently have a marker, in draw order."""
        return list(self._markers)

    @property
    def is_ready(self) -> bool:
        return self.state is MapState.READY

    def mount(self) -> bool:
        """Create the map at the default center and zoom.

        Returns:
            True if the map was created by this call
        """
        if self.state is not MapState.UNINITIALIZED:
            logger.debug("mount() ignored in state %s", self.state)
            return False
        self.backend.create(self.settings.default_center, self.settings.default_zoom)
        self.state = MapState.READY
        return True

    def mappable(self, incidents: Iterable[Incident]) -> list[Incident]:
        """Incidents that can get a marker: coordinates known and inside the region."""
        return [i for i in incidents if i.is_mappable(self.region)]

    def redraw(self, incidents: Sequence[Incident]) -> bool:
        """Replace all markers with one per mappable incident, then fit the view.

        One marker: center on it at the single-marker zoom. Several: fit the
        viewport around all of them. None: back to the default view. An
        unchanged input does not touch the map.

        Returns:
            True if the map was redrawn
        """
        if not self.is_ready:
            logger.debug("redraw() ignored in state %s", self.state)
            return False

        snapshot = tuple(incidents)
        if snapshot == self._drawn and not self.heat_mode:
            return False

        if self.heat_mode:
            self.backend.clear_heat()
            self.heat_mode = False
        self.backend.clear_markers()
        self._markers = {}

        for incident in self.mappable(snapshot):
            handle = self.backend.add_marker(
                incident.lat,
                incident.lng,
                render_popup(incident),
                f"#{incident.id} {incident.status_label}",
            )
            self._markers[incident.id] = PlacedMarker(handle, incident.lat, incident.lng)

        self._drawn = snapshot
        self._fit([(m.lat, m.lng) for m in self._markers.values()])
        logger.debug("Drew %d of %d incidents", len(self._markers), len(snapshot))
        return True

    def _fit(self, points: list[LatLng]) -> None:
        if not points:
            self.backend.set_view(self.settings.default_center, self.settings.default_zoom)
        elif len(points) == 1:
            self.backend.set_view(points[0], self.settings.single_marker_zoom)
        else:
            self.backend.fit_bounds(points, self.settings.fit_padding)

    def focus_on(self, incident_id: int) -> bool:
        """Center on an incident's marker at close zoom and open its popup.

        Unknown ids (not visible, not mappable) leave the map untouched.

        Returns:
            True if a marker was focused
        """
        if not self.is_ready:
            return False
        placed = self._markers.get(incident_id)
        if placed is None:
            logger.debug("No marker for incident %s", incident_id)
            return False
        self.backend.set_view((placed.lat, placed.lng), self.settings.focus_zoom)
        self.backend.open_popup(placed.handle)
        return True

    def show_heatmap(self, raws: Iterable) -> list[HeatPoint]:
        """Replace the markers with a density layer built from raw heatmap points.

        Points outside the valid region are drawn too; see ``heat_breakdown``
        for the table that flags them.

        Returns:
            Points that were drawn (empty when not ready)
        """
        if not self.is_ready:
            logger.debug("show_heatmap() ignored in state %s", self.state)
            return []

        self.backend.clear_markers()
        self._markers = {}
        self._drawn = None
        self.backend.clear_heat()
        self.heat_mode = True

        points = build_heat_points(raws, self.region)
        if not points:
            logger.info("No heat points to draw")
            self.backend.set_view(self.settings.default_center, self.settings.default_zoom)
            return points

        self.backend.show_heat(
            heat_triples(points, self.settings.heat_midpoint), radius=HEAT_RADIUS, blur=HEAT_BLUR
        )
        self.backend.fit_bounds(
            [(p.lat, p.lng) for p in points],
            self.settings.fit_padding,
            max_zoom=self.settings.heat_max_zoom,
        )
        outside = sum(1 for p in points if not p.inside)
        if outside:
            logger.info("%d of %d heat points lie outside the region", outside, len(points))
        return points

    def dispose(self) -> None:
        """Release the map. Every later call is a no-op."""
        if self.state is MapState.DISPOSED:
            return
        if self.state is MapState.READY:
            self.backend.dispose()
        self._markers = {}
        self._drawn = None
        self.state = MapState.DISPOSED
