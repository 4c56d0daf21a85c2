"""Map synchronization and heatmap rendering."""

from incidentportal.maps.folium_backend import FoliumMapBackend
from incidentportal.maps.heatmap import HeatBreakdown, HeatPoint, heat_breakdown, normalize_weights
from incidentportal.maps.synchronizer import MapBackend, MapState, MapSynchronizer

__all__ = [
    "FoliumMapBackend",
    "HeatBreakdown",
    "HeatPoint",
    "MapBackend",
    "MapState",
    "MapSynchronizer",
    "heat_breakdown",
    "normalize_weights",
]
