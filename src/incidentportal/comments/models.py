"""Comment model and parent-relation resolution."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from incidentportal.core import normalize as norm
from incidentportal.incidents.models import AuthorRef, IncidentKind

# Where a comment may carry its parent's id, per parent kind, tried in order.
# Keys are kind-specific so a report comment never matches emergency #N.
PARENT_ACCESSORS: dict[IncidentKind, tuple[norm.Accessor, ...]] = {
    IncidentKind.REPORT: (
        norm.nested("reporte", "reporteId"),
        *norm.keys("reporteId", "reporte_id", "reportId", "report_id", "reporte", "report"),
    ),
    IncidentKind.EMERGENCY: (
        norm.nested("emergencia", "emergenciaId"),
        *norm.keys(
            "emergenciaId",
            "emergencia_id",
            "emergencyId",
            "emergency_id",
            "emergencia",
            "emergency",
        ),
    ),
    IncidentKind.ALERT: (
        norm.nested("alerta", "alertaId"),
        *norm.keys("alertaId", "idAlerta", "alerta_id", "alertId", "alert_id", "alerta", "alert"),
    ),
}

# Query parameter spellings for scoped comment listings, per parent kind
PARENT_QUERY_PARAMS: dict[IncidentKind, tuple[str, ...]] = {
    IncidentKind.REPORT: ("reporteId", "reportId", "report_id"),
    IncidentKind.EMERGENCY: ("emergenciaId", "emergencyId", "emergency_id"),
    IncidentKind.ALERT: ("alertaId", "alertId", "alert_id"),
}

# Keys inside a nested parent object
PARENT_OBJECT_KEYS: tuple[str, ...] = (
    "reporteId",
    "emergenciaId",
    "alertaId",
    "id",
    "reporte_id",
    "reportId",
    "emergencia_id",
    "emergencyId",
    "idAlerta",
)

_BODY_KEYS = ("texto", "contenido", "mensaje", "body", "text")
_COMMENT_ID_KEYS = ("comentarioId", "id", "comentario_id", "_id")


def parent_id_of(raw: Mapping, kind: IncidentKind) -> str | None:
    """Resolve a comment's parent id of the given kind as a string, or None."""
    for accessor in PARENT_ACCESSORS[kind]:
        candidate = accessor(raw)
        if candidate is None or candidate == "" or isinstance(candidate, bool):
            continue
        if isinstance(candidate, Mapping):
            for name in PARENT_OBJECT_KEYS:
                value = candidate.get(name)
                if value is not None and value != "":
                    return _id_string(value)
            continue
        return _id_string(candidate)
    return None


def _id_string(value: Any) -> str:
    number = norm.coerce_int(value)
    return str(number) if number is not None else str(value)


def belongs_to(raw: Any, parent_id: int | str, kind: IncidentKind) -> bool:
    """Check whether a raw comment belongs to the ``kind`` incident ``parent_id``."""
    if not isinstance(raw, Mapping):
        return False
    return parent_id_of(raw, kind) == _id_string(parent_id)


def is_unparented(raw: Any) -> bool:
    """True for a comment mapping that names no parent of any kind."""
    return isinstance(raw, Mapping) and all(parent_id_of(raw, k) is None for k in IncidentKind)


class Comment(BaseModel):
    """A comment on an incident."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    parent_kind: IncidentKind = IncidentKind.REPORT
    parent_incident_id: int | None = None
    author: AuthorRef = Field(default_factory=AuthorRef)
    body: str = ""
    created_at: datetime | None = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, data: Mapping, kind: IncidentKind = IncidentKind.REPORT) -> Comment:
        """Create from API response data of any known shape, under a ``kind`` parent."""
        comment_id = next(
            (norm.coerce_int(data[k]) for k in _COMMENT_ID_KEYS if data.get(k) is not None),
            None,
        )
        body = next((str(data[k]) for k in _BODY_KEYS if data.get(k) not in (None, "")), "")
        return cls(
            id=comment_id,
            parent_kind=kind,
            parent_incident_id=norm.coerce_int(parent_id_of(data, kind)),
            author=AuthorRef.from_api(dict(data)),
            body=body,
            created_at=norm.parse_timestamp(norm.resolve(data, "created_at")),
            raw=dict(data),
        )
