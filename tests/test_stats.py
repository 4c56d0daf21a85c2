"""Tests for incidentportal.stats.breakdown module."""

import httpx
import respx

from incidentportal.api.client import PortalClient
from incidentportal.errors import RemoteError
from incidentportal.stats.breakdown import (
    HEATMAP_ENDPOINT,
    STATISTICS_ENDPOINTS,
    LabelCount,
    StatisticsClient,
    bars,
    label_count,
    to_series,
)

BASE_URL = "http://portal.test"


class TestLabelCount:
    """Tests for bucket normalization."""

    def test_type_bucket(self):
        assert label_count({"tipo": "bache", "cantidad": 4}) == LabelCount("bache", 4)

    def test_boolean_bucket(self):
        assert label_count({"atendido": True, "count": 9}) == LabelCount("attended", 9)

    def test_nested_region(self):
        assert label_count({"region": {"nombre": "Centro"}, "total": 2}) == LabelCount(
            "Centro", 2
        )

    def test_first_number_fallback(self):
        assert label_count({"nivel": "alto", "n": 3}) == LabelCount("alto", 3)

    def test_non_mapping(self):
        assert label_count(None) == LabelCount("N/A", 0)

    def test_to_series_ignores_non_lists(self):
        assert to_series({"tipo": "x"}) == []
        assert len(to_series([{"tipo": "a"}, {"tipo": "b"}])) == 2


class TestBars:
    """Tests for bar ratios."""

    def test_ratios_against_max(self):
        result = bars([LabelCount("a", 2), LabelCount("b", 4)])
        assert [b.ratio for b in result] == [0.5, 1.0]

    def test_zero_counts_do_not_divide_by_zero(self):
        result = bars([LabelCount("a", 0), LabelCount("b", 0)])
        assert [b.ratio for b in result] == [0.0, 0.0]

    def test_small_counts_use_floor_of_one(self):
        assert bars([LabelCount("a", 0.5)])[0].ratio == 0.5

    def test_empty(self):
        assert bars([]) == []


class TestStatisticsClient:
    """Tests for concurrent fetching."""

    async def test_partial_failure(self, fake_client):
        async def answer(url, params=None):
            if url == STATISTICS_ENDPOINTS["alert_levels"]:
                raise RemoteError("boom", 500)
            if url == HEATMAP_ENDPOINT:
                return [{"lat": 13.7, "lng": -89.2, "count": 1}, "junk"]
            return [{"tipo": "x", "cantidad": 1}]

        fake_client.get_json.side_effect = answer

        snapshot = await StatisticsClient(fake_client).fetch_all()

        assert snapshot.series["alert_levels"] == []
        assert snapshot.series["report_types"] == [LabelCount("x", 1)]
        assert snapshot.heatmap == [{"lat": 13.7, "lng": -89.2, "count": 1}]
        assert set(snapshot.errors) == {"alert_levels"}
        assert snapshot.complete is False
        assert fake_client.get_json.await_count == len(STATISTICS_ENDPOINTS) + 1

    @respx.mock
    async def test_over_http(self, settings):
        for url in STATISTICS_ENDPOINTS.values():
            respx.get(f"{BASE_URL}{url}").mock(return_value=httpx.Response(200, json=[]))
        respx.get(f"{BASE_URL}{HEATMAP_ENDPOINT}").mock(
            return_value=httpx.Response(200, json=[{"latitud": 13.7, "longitud": -89.2}])
        )
        async with PortalClient(settings=settings) as client:
            snapshot = await StatisticsClient(client).fetch_all()

        assert snapshot.complete is True
        assert len(snapshot.heatmap) == 1
        assert set(snapshot.series) == set(STATISTICS_ENDPOINTS)
