"""Tests for incidentportal.comments package."""

import httpx
import pytest
import respx

from incidentportal.api.client import PortalClient
from incidentportal.comments.models import Comment, belongs_to, is_unparented, parent_id_of
from incidentportal.comments.reconciler import CommentReconciler
from incidentportal.core.session import Session
from incidentportal.errors import (
    InputValidationError,
    PermissionDeniedError,
    RemoteError,
    UnauthenticatedError,
)
from incidentportal.incidents.models import IncidentKind

BASE_URL = "http://portal.test"

GLOBAL_COMMENTS = [
    {"id": 100, "mensaje": "First", "reporte": {"reporteId": 1}, "usuario": {"usuarioId": 7}},
    {"id": 101, "mensaje": "Second", "reporteId": "1", "usuario": {"usuarioId": 8}},
    {"id": 102, "mensaje": "Elsewhere", "reporte": {"reporteId": 2}},
]


def _only_global(global_items):
    """get_json side effect: every candidate fails except the global list."""

    async def answer(url, params=None):
        if url == "/api/comentarios":
            return global_items
        raise RemoteError(f"GET {url} returned 404", 404)

    return answer


class TestParentResolution:
    """Tests for parent relation lookup."""

    @pytest.mark.parametrize(
        ("raw", "kind"),
        [
            ({"reporte": {"reporteId": 1}}, IncidentKind.REPORT),
            ({"reporteId": 1}, IncidentKind.REPORT),
            ({"reporte_id": "1"}, IncidentKind.REPORT),
            ({"reportId": 1.0}, IncidentKind.REPORT),
            ({"report_id": 1}, IncidentKind.REPORT),
            ({"reporte": 1}, IncidentKind.REPORT),
            ({"report": {"id": 1}}, IncidentKind.REPORT),
            ({"emergencia": {"emergenciaId": 1}}, IncidentKind.EMERGENCY),
            ({"emergencyId": "1"}, IncidentKind.EMERGENCY),
            ({"alerta": {"alertaId": 1}}, IncidentKind.ALERT),
            ({"idAlerta": 1}, IncidentKind.ALERT),
        ],
    )
    def test_known_shapes(self, raw, kind):
        assert parent_id_of(raw, kind) == "1"
        assert belongs_to(raw, 1, kind) is True
        assert belongs_to(raw, "1", kind) is True

    def test_mismatch(self):
        assert belongs_to({"reporteId": 2}, 1, IncidentKind.REPORT) is False

    def test_parent_of_other_kind_does_not_match(self):
        raw = {"reporte": {"reporteId": 3}}
        assert parent_id_of(raw, IncidentKind.EMERGENCY) is None
        assert belongs_to(raw, 3, IncidentKind.EMERGENCY) is False
        assert belongs_to({"emergenciaId": 3}, 3, IncidentKind.REPORT) is False

    def test_no_relation(self):
        assert parent_id_of({"mensaje": "hi"}, IncidentKind.REPORT) is None
        assert is_unparented({"mensaje": "hi"}) is True
        assert is_unparented({"reporteId": 3}) is False
        assert is_unparented({"emergencia": {"emergenciaId": 3}}) is False

    def test_non_mapping(self):
        assert belongs_to("junk", 1, IncidentKind.REPORT) is False
        assert is_unparented("junk") is False


class TestCommentFromApi:
    """Tests for Comment.from_api()."""

    def test_fields(self):
        comment = Comment.from_api(
            {
                "comentarioId": 5,
                "texto": "Still there",
                "reporte": {"reporteId": 1},
                "usuario": {"usuarioId": 7, "nombre": "Ana"},
                "fecha": "2024-05-02T08:30:00",
            }
        )
        assert comment.id == 5
        assert comment.body == "Still there"
        assert comment.parent_incident_id == 1
        assert comment.author.id == "7"
        assert comment.author.name == "Ana"
        assert comment.created_at.day == 2


class TestLoadThread:
    """Tests for CommentReconciler.load_thread()."""

    async def test_global_endpoint_filtered_by_parent(self, fake_client, citizen):
        fake_client.get_json.side_effect = _only_global(GLOBAL_COMMENTS)
        reconciler = CommentReconciler(fake_client, citizen)

        thread = await reconciler.load_thread(1)

        assert len(thread) == 2
        assert all(c.parent_incident_id == 1 for c in thread)
        assert [c.id for c in thread] == [100, 101]

    async def test_candidates_tried_in_order(self, fake_client, citizen):
        fake_client.get_json.side_effect = _only_global([])
        reconciler = CommentReconciler(fake_client, citizen)

        await reconciler.load_thread(1)

        urls = [call.args[0] for call in fake_client.get_json.await_args_list]
        assert urls == [
            "/api/reportes/1/comentarios",
            "/api/comentarios?reporteId=1",
            "/api/comentarios?reportId=1",
            "/api/comentarios?report_id=1",
            "/api/comentarios",
        ]

    async def test_first_answer_wins(self, fake_client, citizen):
        fake_client.get_json.return_value = [{"id": 1, "mensaje": "hi", "reporteId": 4}]
        reconciler = CommentReconciler(fake_client, citizen)

        thread = await reconciler.load_thread(4)

        assert len(thread) == 1
        assert fake_client.get_json.await_count == 1

    async def test_scoped_endpoint_keeps_unparented(self, fake_client, citizen):
        fake_client.get_json.return_value = [
            {"id": 1, "mensaje": "no parent field"},
            {"id": 2, "mensaje": "wrong parent", "reporteId": 9},
        ]
        reconciler = CommentReconciler(fake_client, citizen)

        thread = await reconciler.load_thread(4)

        assert [c.id for c in thread] == [1]
        assert thread[0].parent_incident_id == 4

    async def test_global_endpoint_drops_unparented(self, fake_client, citizen):
        fake_client.get_json.side_effect = _only_global([{"id": 1, "mensaje": "orphan"}])
        reconciler = CommentReconciler(fake_client, citizen)
        assert await reconciler.load_thread(4) == ()

    async def test_all_candidates_fail_is_empty(self, fake_client, citizen):
        fake_client.get_json.side_effect = RemoteError("down", 503)
        reconciler = CommentReconciler(fake_client, citizen)

        assert await reconciler.load_thread(1) == ()
        assert fake_client.get_json.await_count == 5

    async def test_single_object_answer(self, fake_client, citizen):
        fake_client.get_json.return_value = {"id": 3, "mensaje": "alone", "reporteId": 1}
        reconciler = CommentReconciler(fake_client, citizen)
        thread = await reconciler.load_thread(1)
        assert [c.id for c in thread] == [3]

    async def test_thread_cached(self, fake_client, citizen):
        fake_client.get_json.side_effect = _only_global(GLOBAL_COMMENTS)
        reconciler = CommentReconciler(fake_client, citizen)
        assert reconciler.thread(1) == ()
        thread = await reconciler.load_thread(1)
        assert reconciler.thread("1") == thread

    async def test_emergency_parent(self, fake_client, citizen):
        fake_client.get_json.return_value = []
        reconciler = CommentReconciler(fake_client, citizen, IncidentKind.EMERGENCY)
        await reconciler.load_thread(3)
        fake_client.get_json.assert_awaited_once_with("/api/emergencias/3/comentarios")

    async def test_emergency_thread_ignores_report_comments(self, fake_client, citizen):
        fake_client.get_json.side_effect = _only_global(
            [
                {"id": 1, "mensaje": "report comment", "reporte": {"reporteId": 3}},
                {"id": 2, "mensaje": "emergency comment", "emergencia": {"emergenciaId": 3}},
            ]
        )
        reconciler = CommentReconciler(fake_client, citizen, IncidentKind.EMERGENCY)

        thread = await reconciler.load_thread(3)

        assert [c.id for c in thread] == [2]
        assert thread[0].parent_kind is IncidentKind.EMERGENCY
        assert thread[0].parent_incident_id == 3

    async def test_emergency_thread_with_only_report_comments_is_empty(
        self, fake_client, citizen
    ):
        fake_client.get_json.side_effect = _only_global(
            [{"id": 1, "mensaje": "report comment", "reporte": {"reporteId": 3}}]
        )
        reconciler = CommentReconciler(fake_client, citizen, IncidentKind.EMERGENCY)
        assert await reconciler.load_thread(3) == ()

    async def test_scoped_endpoint_drops_other_kind(self, fake_client, citizen):
        fake_client.get_json.return_value = [
            {"id": 1, "mensaje": "report comment", "reporteId": 3},
            {"id": 2, "mensaje": "no parent field"},
        ]
        reconciler = CommentReconciler(fake_client, citizen, IncidentKind.EMERGENCY)
        thread = await reconciler.load_thread(3)
        assert [c.id for c in thread] == [2]

    async def test_emergency_candidates_use_emergency_params(self, fake_client, citizen):
        reconciler = CommentReconciler(fake_client, citizen, IncidentKind.EMERGENCY)
        assert reconciler.candidate_urls(3) == [
            "/api/emergencias/3/comentarios",
            "/api/comentarios?emergenciaId=3",
            "/api/comentarios?emergencyId=3",
            "/api/comentarios?emergency_id=3",
            "/api/comentarios",
        ]

    async def test_alert_candidates(self, fake_client, citizen):
        reconciler = CommentReconciler(fake_client, citizen, IncidentKind.ALERT)
        urls = reconciler.candidate_urls(8)
        assert urls[0] == "/api/alertas/8/comentarios"
        assert "/api/comentarios?alertaId=8" in urls

    async def test_custom_template_with_id_field(self, fake_client, citizen):
        reconciler = CommentReconciler(
            fake_client,
            citizen,
            IncidentKind.EMERGENCY,
            endpoint_templates=["/api/{collection}/comentarios?{id_field}={parent_id}"],
        )
        assert reconciler.candidate_urls(3) == ["/api/emergencias/comentarios?emergenciaId=3"]

    async def test_wrapped_answer_unwrapped(self, fake_client, citizen):
        fake_client.get_json.return_value = {
            "content": [
                {"id": 1, "mensaje": "first", "reporteId": 4},
                {"id": 2, "mensaje": "second", "reporteId": 4},
            ],
            "totalElements": 2,
        }
        reconciler = CommentReconciler(fake_client, citizen)

        thread = await reconciler.load_thread(4)

        assert [c.id for c in thread] == [1, 2]

    async def test_wrapped_global_answer_filtered(self, fake_client, citizen):
        fake_client.get_json.side_effect = _only_global({"data": GLOBAL_COMMENTS})
        reconciler = CommentReconciler(fake_client, citizen)
        thread = await reconciler.load_thread(2)
        assert [c.id for c in thread] == [102]

    @respx.mock
    async def test_over_http(self, settings, citizen):
        respx.get(f"{BASE_URL}/api/reportes/1/comentarios").mock(
            return_value=httpx.Response(404)
        )
        respx.get(f"{BASE_URL}/api/comentarios?reporteId=1").mock(
            return_value=httpx.Response(200, json=GLOBAL_COMMENTS)
        )
        async with PortalClient(settings=settings) as client:
            thread = await CommentReconciler(client, citizen).load_thread(1)

        assert [c.id for c in thread] == [100, 101]


class TestAddComment:
    """Tests for CommentReconciler.add()."""

    async def test_posts_and_reloads(self, fake_client, citizen):
        fake_client.post_json.return_value = {"weird": "shape"}
        fake_client.get_json.return_value = [{"id": 9, "mensaje": "New", "reporteId": 1}]
        reconciler = CommentReconciler(fake_client, citizen)

        thread = await reconciler.add(1, "  New  ")

        fake_client.post_json.assert_awaited_once_with(
            "/api/comentarios",
            {"mensaje": "New", "usuario": {"usuarioId": "7"}, "reporte": {"reporteId": 1}},
        )
        assert [c.id for c in thread] == [9]

    async def test_emergency_payload(self, fake_client, citizen):
        reconciler = CommentReconciler(fake_client, citizen, IncidentKind.EMERGENCY)
        await reconciler.add(3, "hi")
        payload = fake_client.post_json.await_args.args[1]
        assert payload["emergencia"] == {"emergenciaId": 3}

    async def test_requires_user(self, fake_client):
        reconciler = CommentReconciler(fake_client, Session.anonymous())
        with pytest.raises(UnauthenticatedError):
            await reconciler.add(1, "hello")
        fake_client.post_json.assert_not_awaited()

    async def test_requires_body(self, fake_client, citizen):
        reconciler = CommentReconciler(fake_client, citizen)
        with pytest.raises(InputValidationError):
            await reconciler.add(1, "   ")
        fake_client.post_json.assert_not_awaited()


class TestEditDeleteComment:
    """Tests for per-comment permission checks."""

    def _comment(self, author_id):
        return Comment.from_api(
            {"id": 50, "mensaje": "text", "reporteId": 1, "usuario": {"usuarioId": author_id}}
        )

    async def test_author_can_edit(self, fake_client, citizen):
        reconciler = CommentReconciler(fake_client, citizen)
        await reconciler.edit(self._comment(7), "fixed typo")
        fake_client.send_json.assert_awaited_once_with(
            "PUT", "/api/comentarios/50", {"mensaje": "fixed typo"}
        )

    async def test_other_user_cannot_edit(self, fake_client, citizen):
        reconciler = CommentReconciler(fake_client, citizen)
        with pytest.raises(PermissionDeniedError):
            await reconciler.edit(self._comment(8), "mine")
        fake_client.send_json.assert_not_awaited()

    async def test_admin_can_delete_any(self, fake_client, admin):
        fake_client.get_json.return_value = []
        reconciler = CommentReconciler(fake_client, admin)

        thread = await reconciler.delete(self._comment(8))

        fake_client.delete.assert_awaited_once_with("/api/comentarios/50")
        assert thread == ()

    async def test_other_user_cannot_delete(self, fake_client, citizen):
        reconciler = CommentReconciler(fake_client, citizen)
        with pytest.raises(PermissionDeniedError):
            await reconciler.delete(self._comment(8))
        fake_client.delete.assert_not_awaited()

    async def test_blank_edit_rejected(self, fake_client, citizen):
        reconciler = CommentReconciler(fake_client, citizen)
        with pytest.raises(InputValidationError):
            await reconciler.edit(self._comment(7), "")
