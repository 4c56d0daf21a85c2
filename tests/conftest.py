"""Shared pytest fixtures."""

from unittest.mock import AsyncMock

import pytest

from incidentportal.core.config import Settings
from incidentportal.core.notify import NotificationCenter
from incidentportal.core.session import Session
from incidentportal.incidents.models import Incident, IncidentKind

BASE_URL = "http://portal.test"


class FakeClock:
    """Manually advanced clock for notification expiry."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePortalClient:
    """Stand-in for PortalClient with awaitable mocks for every request helper."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.get_json = AsyncMock(return_value=[])
        self.post_json = AsyncMock(return_value=None)
        self.send_json = AsyncMock(return_value=None)
        self.delete = AsyncMock(return_value=None)
        self.get_bytes = AsyncMock(return_value=(b"", "application/octet-stream"))


class FakeMapBackend:
    """Records every call made by the map synchronizer."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.markers: list[dict] = []
        self.heat: list[tuple[float, float, float]] = []
        self.disposed = False
        self.opened = None
        self._center = None
        self._zoom = None

    @property
    def center(self):
        return self._center

    @property
    def zoom(self):
        return self._zoom

    def create(self, center, zoom):
        self.calls.append(("create", center, zoom))
        self._center, self._zoom = center, zoom

    def clear_markers(self):
        self.calls.append(("clear_markers",))
        self.markers = []

    def add_marker(self, lat, lng, popup_html, tooltip):
        marker = {"lat": lat, "lng": lng, "popup": popup_html, "tooltip": tooltip}
        self.markers.append(marker)
        self.calls.append(("add_marker", lat, lng))
        return marker

    def set_view(self, center, zoom):
        self.calls.append(("set_view", center, zoom))
        self._center, self._zoom = center, zoom

    def fit_bounds(self, points, padding, max_zoom=None):
        self.calls.append(("fit_bounds", list(points), padding, max_zoom))

    def open_popup(self, marker):
        self.calls.append(("open_popup",))
        self.opened = marker

    def show_heat(self, triples, radius, blur):
        self.calls.append(("show_heat", radius, blur))
        self.heat = list(triples)

    def clear_heat(self):
        self.calls.append(("clear_heat",))
        self.heat = []

    def dispose(self):
        self.calls.append(("dispose",))
        self.disposed = True

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def settings():
    """Settings pointing at a fake backend, isolated from the environment."""
    return Settings(_env_file=None, base_url=BASE_URL, auth_token="test-token")


@pytest.fixture
def fake_client(settings):
    """PortalClient stand-in."""
    return FakePortalClient(settings)


@pytest.fixture
def fake_backend():
    """Recording map backend."""
    return FakeMapBackend()


@pytest.fixture
def clock():
    """Controllable clock."""
    return FakeClock()


@pytest.fixture
def notifier(clock):
    """Notification center on a fake clock."""
    return NotificationCenter(ttl=3.0, timer=clock)


@pytest.fixture
def admin():
    """Administrator session."""
    return Session(user_id="1", display_name="Admin", role="admin")


@pytest.fixture
def citizen():
    """Ordinary user session."""
    return Session(user_id="7", display_name="Ana", role="usuario")


@pytest.fixture
def raw_emergencies():
    """Emergency payloads as the backend sends them."""
    return [
        {
            "emergenciaId": 1,
            "mensaje": "Flooding on main road",
            "latitud": 13.70,
            "longitud": -89.20,
            "atendido": False,
            "usuario": {"usuarioId": 7, "nombre": "Ana"},
            "fecha": "2024-05-01T10:00:00",
        },
        {
            "id": 2,
            "mensaje": "Fire near school",
            "lat": "13.80",
            "lng": "-89.10",
            "atendido": True,
            "usuario": {"usuarioId": 8, "nombre": "Luis"},
        },
        {
            "entity_id": 3,
            "mensaje": "No location given",
            "atendido": False,
        },
    ]


@pytest.fixture
def raw_reports():
    """Report payloads as the backend sends them."""
    return [
        {
            "reporteId": 10,
            "tipo": "bache",
            "descripcion": "Deep pothole",
            "estado": "pendiente",
            "latitud": 13.69,
            "longitud": -89.19,
            "usuario": {"usuarioId": 7, "nombre": "Ana"},
            "fotoId": 99,
        },
        {
            "reporteId": 11,
            "tipo": "alumbrado",
            "descripcion": "Street light out",
            "estado": "en_proceso",
            "latitude": 40.0,
            "longitude": -3.7,
            "usuario": {"usuarioId": 8, "nombre": "Luis"},
            "fotoUrl": "http://cdn.test/11.jpg",
        },
    ]


@pytest.fixture
def raw_alerts():
    """Alert payloads as the backend sends them."""
    return [
        {
            "alertaId": 20,
            "titulo": "Heavy rain",
            "descripcion": "Rain expected tonight",
            "nivel": "Amarillo",
            "fecha_alerta": "2024-05-03T18:00:00",
            "region": {"regionId": 1, "nombre": "San Salvador"},
            "usuario": {"usuarioId": 1, "nombre": "Admin"},
        },
        {
            "idAlerta": 21,
            "titulo": "Storm surge",
            "descripcion": "Stay away from the coast",
            "nivel": "ROJO",
            "region": {"regionId": 2, "nombre": "La Libertad"},
            "usuario": {"usuarioId": 1, "nombre": "Admin"},
        },
    ]


def _make_incident(
    incident_id: int,
    *,
    kind: IncidentKind = IncidentKind.EMERGENCY,
    lat: float | None = 13.7,
    lng: float | None = -89.2,
    status: bool | str = False,
    author_id: str | None = "7",
    author_name: str = "Ana",
    description: str = "",
    category: str = "",
    title: str = "",
    level: str = "",
    region_name: str = "",
) -> Incident:
    """Build an Incident directly, bypassing payload parsing."""
    return Incident(
        kind=kind,
        id=incident_id,
        lat=lat,
        lng=lng,
        status=status,
        author={"id": author_id, "name": author_name},
        description=description or f"Incident {incident_id}",
        category=category or kind.value,
        title=title,
        level=level,
        region_name=region_name,
    )


@pytest.fixture
def make_incident():
    """Factory for Incident instances."""
    return _make_incident
