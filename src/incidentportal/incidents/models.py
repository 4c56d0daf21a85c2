"""Pydantic models for emergencies, reports and alerts."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from incidentportal.core import normalize as norm
from incidentportal.core.config import Region
from incidentportal.errors import InputValidationError

# Report workflow, in order. Toggling advances to the next state and wraps.
REPORT_WORKFLOW: tuple[str, ...] = ("pendiente", "en_proceso", "resuelto")

# Alert levels offered when an alert is created or edited
ALERT_LEVELS: tuple[str, ...] = ("Verde", "Amarillo", "Naranja", "Rojo")

# Alert level (lower-cased) → severity bucket
ALERT_SEVERITY: dict[str, str] = {
    "rojo": "critical",
    "critico": "critical",
    "crítico": "critical",
    "naranja": "high",
    "alto": "high",
    "alta": "high",
    "amarillo": "medium",
    "medio": "medium",
    "media": "medium",
    "verde": "low",
    "bajo": "low",
    "baja": "low",
}
UNKNOWN_SEVERITY = "unknown"


def alert_severity(level: str | None) -> str:
    """Severity bucket of an alert level (``critical``/``high``/``medium``/``low``)."""
    return ALERT_SEVERITY.get((level or "").strip().lower(), UNKNOWN_SEVERITY)


class IncidentKind(StrEnum):
    """The incident families served by the backend."""

    EMERGENCY = "emergencia"
    REPORT = "reporte"
    ALERT = "alerta"

    @property
    def collection(self) -> str:
        """Path segment of the REST collection."""
        return f"{self.value}s"

    @property
    def path(self) -> str:
        """Collection endpoint (single records live at ``{path}/{id}``)."""
        return f"/api/{self.collection}"

    @property
    def list_path(self) -> str:
        """Endpoint returning the whole collection."""
        if self is IncidentKind.ALERT:
            return f"{self.path}/getAllAlert"
        return self.path

    @property
    def create_path(self) -> str:
        """Endpoint accepting new records."""
        if self is IncidentKind.ALERT:
            return f"{self.path}/createAlert"
        return self.path

    @property
    def id_field(self) -> str:
        """Name the backend uses for this kind's id."""
        return f"{self.value}Id"

    @property
    def api_fields(self) -> dict[str, str]:
        """Model field name → backend field name."""
        return _API_FIELDS[self]

    @property
    def editable_fields(self) -> frozenset[str]:
        """Model fields an edit may touch; status only changes through a toggle."""
        return frozenset(self.api_fields) - {"status"}

    @property
    def has_status_workflow(self) -> bool:
        """False for alerts, which carry a level instead of a status."""
        return self is not IncidentKind.ALERT

    @property
    def authors_may_edit(self) -> bool:
        """Alerts are managed by admins only."""
        return self is not IncidentKind.ALERT


_API_FIELDS: dict[IncidentKind, dict[str, str]] = {
    IncidentKind.EMERGENCY: {
        "description": "mensaje",
        "lat": "latitud",
        "lng": "longitud",
        "status": "atendido",
    },
    IncidentKind.REPORT: {
        "description": "descripcion",
        "category": "tipo",
        "lat": "latitud",
        "lng": "longitud",
        "status": "estado",
    },
    IncidentKind.ALERT: {
        "title": "titulo",
        "description": "descripcion",
        "level": "nivel",
    },
}


_DESCRIPTION_KEYS = ("mensaje", "descripcion", "description", "message")


class AuthorRef(BaseModel):
    """Reference to the user who wrote a record."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str = norm.ANONYMOUS

    @classmethod
    def from_api(cls, data: dict) -> AuthorRef:
        """Resolve the author from any of the known payload shapes."""
        return cls(id=norm.author_id(data), name=norm.author_name(data))


class AttachmentRef(BaseModel):
    """Photo attached to a report: a direct URL, a binary id, or both."""

    model_config = ConfigDict(frozen=True)

    url: str | None = None
    photo_id: str | None = None


class Incident(BaseModel):
    """An emergency, a report or an alert.

    Instances are immutable. The store replaces whole records when the
    server confirms a change, so readers never observe a half-applied update.
    """

    model_config = ConfigDict(frozen=True)

    kind: IncidentKind
    id: int
    lat: float | None = None
    lng: float | None = None
    status: bool | str = False
    author: AuthorRef = Field(default_factory=AuthorRef)
    description: str = ""
    category: str = ""
    title: str = ""
    level: str = ""
    region_name: str = ""
    created_at: datetime | None = None
    attachment: AttachmentRef | None = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @property
    def status_label(self) -> str:
        """Human label for the status (``attended``/``pending`` for booleans).

        Alerts have no status workflow; their level stands in for it.
        """
        if self.kind is IncidentKind.ALERT:
            return self.level or norm.NOT_AVAILABLE
        return norm.status_label(self.status)

    @property
    def severity(self) -> str:
        """Severity bucket of an alert's level; ``unknown`` for other kinds."""
        return alert_severity(self.level)

    @property
    def has_coordinates(self) -> bool:
        """True when both coordinates are known."""
        return self.lat is not None and self.lng is not None

    def is_mappable(self, region: Region | None = None) -> bool:
        """True when coordinates are finite and (if given) inside the region."""
        if not self.has_coordinates:
            return False
        return region is None or region.contains(self.lat, self.lng)

    def next_status(self) -> bool | str:
        """Status after a toggle: booleans flip, report states advance."""
        if isinstance(self.status, bool):
            return not self.status
        try:
            index = REPORT_WORKFLOW.index(self.status.lower())
        except ValueError:
            return REPORT_WORKFLOW[0]
        return REPORT_WORKFLOW[(index + 1) % len(REPORT_WORKFLOW)]

    @classmethod
    def from_api(cls, data: dict, kind: IncidentKind) -> Incident | None:
        """Create from API response data.

        Returns None when no integer id can be resolved; such a payload
        cannot take part in an id-keyed collection.
        """
        record = norm.normalize(data)
        if record is None or not isinstance(record.id, int):
            return None

        level = ""
        if kind is IncidentKind.EMERGENCY:
            status: bool | str = norm.coerce_bool(data.get("atendido"))
            category = str(data.get("tipo") or IncidentKind.EMERGENCY.value)
        elif kind is IncidentKind.ALERT:
            status = False
            category = ""
            level = str(data.get("nivel") or "")
        else:
            status = str(data.get("estado") or REPORT_WORKFLOW[0])
            category = str(data.get("tipo") or "")

        description = next(
            (str(data[k]) for k in _DESCRIPTION_KEYS if data.get(k) not in (None, "")), ""
        )

        attachment = None
        url = data.get("fotoUrl") or data.get("photoUrl")
        photo_id = data.get("fotoId") or data.get("photoId")
        if url or photo_id:
            attachment = AttachmentRef(
                url=str(url) if url else None,
                photo_id=str(photo_id) if photo_id else None,
            )

        return cls(
            kind=kind,
            id=record.id,
            lat=record.lat,
            lng=record.lng,
            status=status,
            author=AuthorRef.from_api(data),
            description=description,
            category=category,
            title=str(data.get("titulo") or data.get("title") or ""),
            level=level,
            region_name=norm.region_name(data),
            created_at=norm.parse_timestamp(norm.resolve(data, "created_at")),
            attachment=attachment,
            raw=dict(data),
        )

    @staticmethod
    def to_api_patch(kind: IncidentKind, patch: dict[str, Any]) -> dict[str, Any]:
        """Translate a model-level patch into backend field names.

        Keys without a mapping for ``kind`` pass through unchanged, so callers
        may send raw backend fields. Edits are checked against
        ``IncidentKind.editable_fields`` before they get here.
        """
        mapping = kind.api_fields
        return {mapping.get(k, k): v for k, v in patch.items()}


def build_create_payload(
    kind: IncidentKind,
    *,
    user_id: str,
    description: str,
    lat: float,
    lng: float,
    category: str = "",
    photo_url: str | None = None,
) -> dict[str, Any]:
    """Request body for a new emergency or report (id omitted)."""
    if kind is IncidentKind.ALERT:
        raise ValueError("Alerts are built with build_alert_payload")
    payload: dict[str, Any] = {
        "usuario": {"usuarioId": user_id},
        "latitud": float(lat),
        "longitud": float(lng),
    }
    if kind is IncidentKind.EMERGENCY:
        payload["mensaje"] = description
        payload["atendido"] = False
    else:
        payload["tipo"] = category
        payload["descripcion"] = description
        payload["fecha"] = datetime.now().isoformat()
        payload["fotoUrl"] = photo_url
    return payload


def build_alert_payload(
    *,
    user_id: str,
    title: str,
    description: str,
    level: str,
    region_id: int | str | None = None,
) -> dict[str, Any]:
    """Request body for a new alert.

    Raises:
        InputValidationError: Title, description or level is empty
    """
    title = (title or "").strip()
    description = (description or "").strip()
    level = (level or "").strip()
    if not title or not description or not level:
        raise InputValidationError("Title, description and level are required")
    numeric_user = norm.coerce_int(user_id)
    return {
        "titulo": title,
        "descripcion": description,
        "nivel": level,
        "region": {"regionId": norm.coerce_int(region_id)},
        "usuario": {"usuarioId": numeric_user if numeric_user is not None else user_id},
    }
