"""Normalization of heterogeneous backend records.

The backend (and its statistics endpoints) does not agree on field names:
an id may arrive as ``id``, ``reporteId`` or ``entity_id``, a latitude as
``latitud``, ``lat`` or ``y``, and so on. This module is the single place that
knows those spellings. Every semantic field has an ordered tuple of accessor
functions in ``FIELD_ACCESSORS``; the first accessor that yields a usable value
wins.

Everything here is pure and total: functions never raise on odd input, they
return ``None`` (or a best-effort value) instead.
"""

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from dateutil import parser as dateparser

from incidentportal.core.config import Region

logger = logging.getLogger(__name__)

Accessor = Callable[[Mapping], Any]

NOT_AVAILABLE = "N/A"
ANONYMOUS = "anonymous"

# Fixed, total mapping for boolean status flags
STATUS_LABELS: dict[bool, str] = {True: "attended", False: "pending"}


def key(name: str) -> Accessor:
    """Accessor reading a top-level key."""

    def _get(raw: Mapping) -> Any:
        return raw.get(name)

    _get.__name__ = f"key({name})"
    return _get


def nested(parent: str, name: str) -> Accessor:
    """Accessor reading ``raw[parent][name]`` when ``raw[parent]`` is a mapping."""

    def _get(raw: Mapping) -> Any:
        sub = raw.get(parent)
        if isinstance(sub, Mapping):
            return sub.get(name)
        return None

    _get.__name__ = f"nested({parent}.{name})"
    return _get


def keys(*names: str) -> tuple[Accessor, ...]:
    """Build a tuple of top-level accessors, in order."""
    return tuple(key(n) for n in names)


FIELD_ACCESSORS: dict[str, tuple[Accessor, ...]] = {
    "id": keys(
        "id",
        "entityId",
        "entity_id",
        "emergenciaId",
        "emergencia_id",
        "reporteId",
        "reporte_id",
        "alertaId",
        "idAlerta",
        "comentarioId",
        "_id",
    ),
    "lat": keys("latitud", "lat", "latitude", "y"),
    "lng": keys("longitud", "lng", "longitude", "x"),
    "metric": keys("count", "cantidad", "value", "total", "cantidadTotal", "cantidad_registros"),
    "label": keys(
        "tipo", "estado", "region", "regionName", "label", "name", "nombre", "nivel", "atendido"
    )
    + (
        nested("region", "nombre"),
        nested("region", "name"),
        nested("region", "regionName"),
        nested("region", "label"),
    ),
    "author_name": (
        nested("usuario", "nombre"),
        nested("usuario", "name"),
        nested("user", "name"),
        nested("author", "name"),
        key("nombre"),
        key("authorName"),
    ),
    "author_id": (
        nested("usuario", "usuarioId"),
        nested("usuario", "id"),
        nested("user", "id"),
        nested("author", "id"),
        key("usuarioId"),
        key("usuario_id"),
        key("userId"),
        key("user_id"),
    ),
    "region_name": (
        nested("region", "nombre"),
        nested("region", "name"),
        nested("region", "regionName"),
        key("regionName"),
        key("regionNombre"),
    ),
    "created_at": keys(
        "fecha",
        "createdAt",
        "fechaCreacion",
        "fecha_alerta",
        "fechaAlerta",
        "created_at",
        "timestamp",
    ),
}


def _is_present(value: Any) -> bool:
    return value is not None and value != ""


def resolve(raw: Mapping, field: str) -> Any:
    """Return the first present value for a semantic field, or None."""
    for accessor in FIELD_ACCESSORS.get(field, ()):
        value = accessor(raw)
        if _is_present(value):
            return value
    return None


def coerce_float(value: Any) -> float | None:
    """Convert a number or numeric string to a finite float.

    Booleans are not numbers here, and NaN/infinity are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return result if math.isfinite(result) else None


def coerce_int(value: Any) -> int | None:
    """Convert a value to an integer id, or None if it isn't integral."""
    number = coerce_float(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


_TRUE_STRINGS = frozenset({"true", "1", "yes", "si", "sí", "atendido", "attended"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "", "pendiente", "pending", "null", "none"})


def coerce_bool(value: Any, default: bool = False) -> bool:
    """Interpret a flag that may arrive as a bool, a number or a string.

    ``"false"``, ``"0"`` and ``0`` are False. Unrecognized values give ``default``.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, int | float):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    return default


# Envelope keys some deployments wrap collections in
COLLECTION_WRAPPERS: tuple[str, ...] = ("results", "data", "content", "items")


def unwrap_collection(data: Any) -> list | None:
    """Return the list inside a collection answer, or None if ``data`` isn't one.

    Accepts a bare list or an envelope such as ``{"content": [...]}``.
    """
    if isinstance(data, list):
        return data
    if isinstance(data, Mapping):
        for wrapper in COLLECTION_WRAPPERS:
            if isinstance(data.get(wrapper), list):
                return data[wrapper]
    return None


def status_label(value: Any) -> str:
    """Human label for a status value.

    Booleans go through ``STATUS_LABELS``; ``None`` counts as pending;
    anything else is stringified as-is.
    """
    if isinstance(value, bool):
        return STATUS_LABELS[value]
    if value is None:
        return STATUS_LABELS[False]
    return str(value)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a backend timestamp (ISO string, free-form string or epoch millis)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, int | float):
        try:
            return datetime.fromtimestamp(value / 1000)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            return dateparser.parse(value)
        except (ValueError, OverflowError):
            logger.debug("Unparseable timestamp: %r", value)
            return None
    return None


def author_name(raw: Mapping) -> str:
    """Display name of a record's author, ``"anonymous"`` when absent."""
    name = resolve(raw, "author_name")
    return str(name) if _is_present(name) else ANONYMOUS


def author_id(raw: Mapping) -> str | None:
    """Author id of a record as a string, or None."""
    value = resolve(raw, "author_id")
    return str(value) if _is_present(value) else None


def region_name(raw: Mapping) -> str:
    """Name of the region a record is filed under, empty when absent."""
    name = resolve(raw, "region_name")
    if not _is_present(name) and isinstance(raw.get("region"), str):
        name = raw["region"]
    return str(name) if _is_present(name) else ""


@dataclass(frozen=True)
class NormalizedRecord:
    """Canonical view of an incident, statistics bucket or heatmap point."""

    id: int | str | None
    lat: float | None
    lng: float | None
    metric_value: float | None
    label: str
    mappable: bool

    @property
    def has_coordinates(self) -> bool:
        """True when both coordinates resolved to finite numbers."""
        return self.lat is not None and self.lng is not None


def _label(raw: Mapping, lat: float | None, lng: float | None) -> str:
    for accessor in FIELD_ACCESSORS["label"]:
        value = accessor(raw)
        if isinstance(value, bool):
            return status_label(value)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, int | float):
            return str(value)

    if lat is not None and lng is not None:
        return f"{lat:.3f}, {lng:.3f}"

    for value in raw.values():
        if isinstance(value, str) and value:
            return value
    return NOT_AVAILABLE


def _metric(raw: Mapping) -> float | None:
    for accessor in FIELD_ACCESSORS["metric"]:
        value = coerce_float(accessor(raw))
        if value is not None:
            return value
    return None


def normalize(raw: Any, region: Region | None = None) -> NormalizedRecord | None:
    """Extract ``id/lat/lng/metric_value/label`` from a record of unknown shape.

    Args:
        raw: Incident, statistics bucket or heatmap point as decoded from JSON
        region: Valid bounding region; when given, ``mappable`` also requires
            the coordinates to fall inside it

    Returns:
        NormalizedRecord, or None when ``raw`` is not a mapping. Records
        without usable coordinates come back with ``mappable=False``.
    """
    if not isinstance(raw, Mapping):
        return None

    raw_id = resolve(raw, "id")
    record_id = coerce_int(raw_id)
    if record_id is None and _is_present(raw_id) and not isinstance(raw_id, bool):
        record_id = str(raw_id)

    lat = coerce_float(resolve(raw, "lat"))
    lng = coerce_float(resolve(raw, "lng"))
    if lat is None or lng is None:
        lat = lng = None

    mappable = lat is not None and (region is None or region.contains(lat, lng))

    return NormalizedRecord(
        id=record_id,
        lat=lat,
        lng=lng,
        metric_value=_metric(raw),
        label=_label(raw, lat, lng),
        mappable=mappable,
    )
