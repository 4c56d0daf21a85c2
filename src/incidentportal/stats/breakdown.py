"""Aggregate statistics served by the backend.

Each statistics endpoint returns a list of buckets whose shape varies by
endpoint (``{"tipo": "bache", "cantidad": 4}``, ``{"atendido": true,
"count": 9}``, ``{"region": {"nombre": "Centro"}, "total": 2}`` ...). The
normalizer turns every bucket into a ``LabelCount``.
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from incidentportal.api.client import PortalClient
from incidentportal.core import normalize as norm

logger = logging.getLogger(__name__)

# Series name -> endpoint
STATISTICS_ENDPOINTS: dict[str, str] = {
    "report_types": "/api/reportes/estadisticas/tipos",
    "report_states": "/api/reportes/estadisticas/estados",
    "report_regions": "/api/reportes/estadisticas/regiones",
    "alert_levels": "/api/estadisticas/alertas/niveles",
    "alert_regions": "/api/estadisticas/alertas/regiones",
    "emergencies_attended": "/api/estadisticas/emergencias/atendidos",
}
HEATMAP_ENDPOINT = "/api/reportes/estadisticas/heatmap"


@dataclass(frozen=True)
class LabelCount:
    """One bucket of a statistics series."""

    label: str
    count: float


@dataclass(frozen=True)
class Bar:
    """A bucket with its width relative to the largest bucket of its series."""

    label: str
    count: float
    ratio: float


@dataclass
class StatisticsSnapshot:
    """Everything the statistics page shows, fetched in one go."""

    series: dict[str, list[LabelCount]] = field(default_factory=dict)
    heatmap: list[dict] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        """True when every endpoint answered."""
        return not self.errors


def label_count(raw: Any) -> LabelCount:
    """Normalize a statistics bucket to a label and a count."""
    record = norm.normalize(raw)
    if record is None:
        return LabelCount(label=norm.NOT_AVAILABLE, count=0)

    count = record.metric_value
    if count is None:
        # No known count field: fall back to the first plain number
        count = next(
            (
                float(v)
                for v in raw.values()
                if isinstance(v, int | float) and not isinstance(v, bool) and v
            ),
            0.0,
        )
    return LabelCount(label=record.label, count=count)


def to_series(data: Any) -> list[LabelCount]:
    """Normalize an endpoint answer (expected to be a list) to a series."""
    if not isinstance(data, list):
        return []
    return [label_count(item) for item in data]


def bars(series: Sequence[LabelCount]) -> list[Bar]:
    """Bar widths as fractions of the largest count (never dividing by less than 1)."""
    top = max([item.count for item in series] + [1])
    return [Bar(label=item.label, count=item.count, ratio=item.count / top) for item in series]


class StatisticsClient:
    """Fetches all statistics series concurrently.

    Usage::

        async with PortalClient() as client:
            snapshot = await StatisticsClient(client).fetch_all()
            for bar in bars(snapshot.series["report_types"]):
                print(bar.label, bar.ratio)
    """

    def __init__(
        self, client: PortalClient, endpoints: Mapping[str, str] | None = None
    ) -> None:
        self.client = client
        self.endpoints = dict(endpoints or STATISTICS_ENDPOINTS)

    async def fetch_all(self) -> StatisticsSnapshot:
        """Fetch every series plus the heatmap points.

        A failing endpoint does not fail the others: its series is empty and
        the error is recorded in ``StatisticsSnapshot.errors``.
        """
        names = [*self.endpoints, "heatmap"]
        urls = [*self.endpoints.values(), HEATMAP_ENDPOINT]
        results = await asyncio.gather(
            *(self.client.get_json(url) for url in urls), return_exceptions=True
        )

        snapshot = StatisticsSnapshot()
        for name, url, result in zip(names, urls, results, strict=True):
            if isinstance(result, Exception):
                logger.warning("Statistics endpoint %s failed: %s", url, result)
                snapshot.errors[name] = str(result)
                result = []
            if name == "heatmap":
                points = result if isinstance(result, list) else []
                snapshot.heatmap = [p for p in points if isinstance(p, dict)]
            else:
                snapshot.series[name] = to_series(result)
        return snapshot
