"""Heatmap points, weight normalization and the tabular breakdown.

Heatmap data comes from the statistics endpoint as loosely shaped points
(``{"latitud": .., "longitud": .., "cantidad": ..}`` and friends). Points
outside the valid region are still rendered; they are only flagged, and they
always count towards the totals.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from incidentportal.core import normalize as norm
from incidentportal.core.config import Region

logger = logging.getLogger(__name__)

DEFAULT_MIDPOINT = 0.5

# Weight of a point, tried in order; a point with none of them weighs 1
_WEIGHT_ACCESSORS = norm.keys("count", "cantidad", "value")

INSIDE = "inside"
OUTSIDE = "outside"
NO_COORDINATES = "no coordinates"


@dataclass(frozen=True)
class HeatPoint:
    """A weighted location. ``inside`` tells whether it lies in the valid region."""

    lat: float
    lng: float
    weight: float
    inside: bool


@dataclass(frozen=True)
class BreakdownRow:
    """One line of the heatmap detail table."""

    index: int
    lat: float | None
    lng: float | None
    weight: float
    location: str


@dataclass(frozen=True)
class HeatBreakdown:
    """Detail table plus the summary counters shown beneath it."""

    rows: tuple[BreakdownRow, ...]
    total_weight: float
    locations: int
    inside: int
    outside: int


def point_weight(raw: dict, default: float = 1.0) -> float:
    """Weight of a raw point (``count``, ``cantidad`` or ``value``)."""
    for accessor in _WEIGHT_ACCESSORS:
        value = accessor(raw)
        if value is None:
            continue
        return norm.coerce_float(value) or 0.0
    return default


def build_heat_points(raws: Iterable, region: Region) -> list[HeatPoint]:
    """Turn raw heatmap data into drawable points.

    Records without usable coordinates cannot be drawn and are skipped here;
    ``heat_breakdown`` still lists them.
    """
    points = []
    skipped = 0
    for raw in raws:
        record = norm.normalize(raw)
        if record is None or not record.has_coordinates:
            skipped += 1
            continue
        points.append(
            HeatPoint(
                lat=record.lat,
                lng=record.lng,
                weight=point_weight(raw),
                inside=region.contains(record.lat, record.lng),
            )
        )
    if skipped:
        logger.debug("Skipped %d heat points without coordinates", skipped)
    return points


def normalize_weights(
    weights: Sequence[float], midpoint: float = DEFAULT_MIDPOINT
) -> list[float]:
    """Scale weights to ``[0, 1]`` by the maximum.

    When the maximum is zero (or negative), every weight becomes ``midpoint``.
    """
    if not weights:
        return []
    top = max(weights)
    if top <= 0:
        return [midpoint] * len(weights)
    return [max(0.0, w / top) for w in weights]


def heat_triples(
    points: Sequence[HeatPoint], midpoint: float = DEFAULT_MIDPOINT
) -> list[tuple[float, float, float]]:
    """``(lat, lng, intensity)`` triples ready for a density layer."""
    scaled = normalize_weights([p.weight for p in points], midpoint)
    return [(p.lat, p.lng, w) for p, w in zip(points, scaled, strict=True)]


def heat_breakdown(raws: Sequence, region: Region) -> HeatBreakdown:
    """Build the detail table for a heatmap.

    Every input point gets a row; the totals include points outside the
    region and points without coordinates.
    """
    rows = []
    inside = outside = 0
    total = 0.0
    for index, raw in enumerate(raws, start=1):
        record = norm.normalize(raw)
        lat = record.lat if record else None
        lng = record.lng if record else None
        weight = point_weight(raw, default=0.0) if isinstance(raw, dict) else 0.0

        if lat is None:
            location = NO_COORDINATES
            outside += 1
        elif region.contains(lat, lng):
            location = INSIDE
            inside += 1
        else:
            location = OUTSIDE
            outside += 1

        total += weight
        rows.append(BreakdownRow(index=index, lat=lat, lng=lng, weight=weight, location=location))

    return HeatBreakdown(
        rows=tuple(rows),
        total_weight=total,
        locations=len(rows),
        inside=inside,
        outside=outside,
    )
