"""
Tests for the HTTP surface
File: tests/test_routes.py
"""

from datetime import timezone

import pytest
from fastapi.testclient import TestClient

from guidetrack import app
from guidetrack.dependencies import get_dashboard_service, get_pdf_renderer
from guidetrack.errors import ReportRenderError, UpstreamFetchError
from guidetrack.routes import catalog, guides, highlights
from guidetrack.services import firestore
from guidetrack.services.dashboard import DashboardService

ORIGIN_ROWS = [
    {"guia": "1", "conductor": "Juan", "capacidad": "10", "destino": "Santiago"},
    {"guia": "2", "conductor": "Juan", "capacidad": "10", "destino": "Santiago"},
]
DESTINATION_ROWS = [
    {"guideNumber": "1", "destination": "Santiago", "date": "2024-05-01T09:00:00+00:00"},
    {"guideNumber": "2", "destination": "Santiago", "date": "2024-05-01T09:45:00+00:00"},
    {"guideNumber": "3", "destination": "Santiago", "date": "2024-05-01T10:00:00+00:00"},
]
QUERY = {"startDate": "2024-05-01", "endDate": "2024-05-01", "destino": "Santiago"}

class FakeRenderer:
    def __init__(self, fail=False):
        self.fail = fail
        self.pages = []

    async def render(self, html_content):
        if self.fail:
            raise ReportRenderError("browser crashed")
        self.pages.append(html_content)
        return b"%PDF-1.4 fake"

def use_service(fetch_origin=lambda filters: ORIGIN_ROWS, fetch_destination=lambda uid: DESTINATION_ROWS):
    service = DashboardService(fetch_origin, fetch_destination, timezone.utc)
    app.dependency_overrides[get_dashboard_service] = lambda: service

def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"

def test_non_bearer_header_is_rejected():
    response = TestClient(app).get("/v1/guides", headers={"Authorization": "Basic abc"})
    assert response.status_code == 401

class TestGuides:
    """Guide records, the offline queue and attachments."""

    def test_create(self, client, monkeypatch):
        monkeypatch.setattr(guides, "save_guide_record", lambda uid, record: {"id": "doc-1", **record})
        response = client.post("/v1/guides", json={"guideNumber": " 123 ", "destination": "Santiago"})

        assert response.status_code == 201
        assert response.json()["id"] == "doc-1"
        assert response.json()["guideNumber"] == "123"

    def test_empty_guide_number(self, client):
        assert client.post("/v1/guides", json={"guideNumber": "   "}).status_code == 422

    def test_queue_then_sync(self, client, monkeypatch):
        def offline(uid, record):
            raise UpstreamFetchError("firestore", "unavailable")

        monkeypatch.setattr(guides, "save_guide_record", offline)
        queued = client.post("/v1/guides", json={"guideNumber": "7"}).json()
        assert queued["synced"] is False
        assert [r["guideNumber"] for r in client.get("/v1/guides/pending").json()["records"]] == ["7"]

        received = []

        def sync(uid, records, on_saved=None):
            received.extend(records)
            for record in records:
                on_saved(record)
            return {"success": True, "message": f"{len(records)} registros sincronizados correctamente",
                    "records": records, "syncedLocalIds": [], "failed": 0}

        monkeypatch.setattr(guides, "sync_guide_records", sync)
        response = client.post("/v1/guides/sync", json={"records": [{"guideNumber": "8", "synced": False}]})

        assert response.json()["success"] is True
        assert [r["guideNumber"] for r in received] == ["7", "8"]
        assert client.get("/v1/guides/pending").json()["records"] == []

    def test_partial_sync_is_not_repeated(self, client, monkeypatch):
        def offline(uid, record):
            raise UpstreamFetchError("firestore", "unavailable")

        monkeypatch.setattr(guides, "save_guide_record", offline)
        client.post("/v1/guides", json={"guideNumber": "A1"})
        client.post("/v1/guides", json={"guideNumber": "A2"})

        saved = []
        failures = {"A2": 1}

        def flaky(uid, payload):
            number = payload["guideNumber"]
            if failures.get(number):
                failures[number] -= 1
                raise UpstreamFetchError("firestore", "No se pudo guardar el registro.")
            saved.append(number)
            return {"id": f"doc-{number}", **payload}

        monkeypatch.setattr(firestore, "save_guide_record", flaky)
        first = client.post("/v1/guides/sync", json={"records": []})

        assert first.status_code == 200
        assert first.json()["success"] is False
        assert first.json()["failed"] == 1
        assert [r["guideNumber"] for r in client.get("/v1/guides/pending").json()["records"]] == ["A2"]

        second = client.post("/v1/guides/sync", json={"records": []})

        assert second.json()["success"] is True
        assert saved == ["A1", "A2"]
        assert client.get("/v1/guides/pending").json()["records"] == []

    def test_sync_total_failure(self, client, monkeypatch):
        def offline(uid, record):
            raise UpstreamFetchError("firestore", "unavailable")

        monkeypatch.setattr(firestore, "save_guide_record", offline)
        response = client.post("/v1/guides/sync", json={"records": [{"guideNumber": "9"}]})
        assert response.status_code == 502

    def test_sync_with_nothing_pending(self, client, monkeypatch):
        monkeypatch.setattr(firestore, "save_guide_record", lambda uid, payload: pytest.fail("unexpected save"))

        empty = client.post("/v1/guides/sync", json={"records": []}).json()
        assert empty["success"] is False
        assert empty["message"] == "No hay registros para sincronizar"

        done = client.post("/v1/guides/sync", json={"records": [{"guideNumber": "1", "synced": True}]}).json()
        assert done["success"] is True
        assert done["records"] == []
        assert done["message"] == "0 registros sincronizados correctamente"

    def test_list_upstream_error(self, client, monkeypatch):
        def broken(uid):
            raise UpstreamFetchError("firestore", "No se pudieron obtener las guías.")

        monkeypatch.setattr(guides, "get_guide_records", broken)
        response = client.get("/v1/guides")
        assert response.status_code == 502
        assert response.json()["detail"] == "No se pudieron obtener las guías."

    def test_unknown_guide(self, client, monkeypatch):
        monkeypatch.setattr(guides, "get_guide_record", lambda uid, record_id: None)
        assert client.get("/v1/guides/missing").status_code == 404

    def test_attachment_type(self, client):
        files = {"attachment": ("notes.txt", b"hello", "text/plain")}
        assert client.post("/v1/guides/attachments", files=files).status_code == 415

    def test_attachment_upload(self, client, monkeypatch):
        monkeypatch.setattr(guides, "upload_guide_attachment",
                            lambda uid, data, content_type, guide_number: f"guides/{uid}/{guide_number}.png")
        files = {"attachment": ("guide.png", b"\x89PNG", "image/png")}
        response = client.post("/v1/guides/attachments", params={"guide_number": "55"}, files=files)

        assert response.status_code == 201
        assert response.json() == {"object": "guides/user-1/55.png", "contentType": "image/png"}

    def test_attachment_url(self, client, monkeypatch):
        monkeypatch.setattr(guides, "get_signed_url", lambda name: f"https://signed.example/{name}")
        response = client.get("/v1/guides/attachments/url", params={"object": "guides/user-1/55.png"})
        assert response.json()["url"] == "https://signed.example/guides/user-1/55.png"

        other = client.get("/v1/guides/attachments/url", params={"object": "guides/user-2/1.png"})
        assert other.status_code == 403

    def test_ocr(self, client, monkeypatch):
        monkeypatch.setattr(guides, "extract_text", lambda content: "GUIA 123")
        files = {"image": ("guide.jpg", b"\xff\xd8", "image/jpeg")}
        assert client.post("/v1/guides/ocr", files=files).json() == {"text": "GUIA 123"}

class TestDashboard:
    """Reconciliation and intervals over HTTP."""

    def test_compare(self, client):
        use_service()
        response = client.get("/v1/dashboard/compare", params=QUERY)

        assert response.status_code == 200
        data = response.json()
        assert data["totals"] == {"origin": 2, "destination": 3, "matches": 2, "differences": 1}
        assert data["reconciliation"]["missingInOrigin"][0]["guideNumber"] == "3"
        assert data["filters"]["destino"] == "Santiago"
        assert data["intervals"][0]["conductor"] == "Juan"
        assert data["intervals"][0]["intervals"][0]["minutes"] == 45

    def test_upstream_failure(self, client):
        def broken(filters):
            raise UpstreamFetchError("transport_api", "No se pudieron obtener las guías de ubicación.")

        use_service(fetch_origin=broken)
        response = client.get("/v1/dashboard/compare", params=QUERY)
        assert response.status_code == 502

    def test_inverted_range(self, client):
        use_service()
        response = client.get("/v1/dashboard/compare", params={"startDate": "2024-05-02", "endDate": "2024-05-01"})
        assert response.status_code == 422

class TestReports:
    """HTML and PDF report endpoints."""

    def test_html_requires_intervals(self, client):
        response = client.post("/v1/reports/intervals/html", json={"summary": {}})
        assert response.status_code == 400
        assert response.json()["detail"] == "El cuerpo debe incluir la lista de intervalos."

    def test_html(self, client):
        response = client.post("/v1/reports/intervals/html", json={"intervals": []})
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "No hay datos para mostrar." in response.text

    def test_html_tolerates_malformed_rows(self, client):
        body = {"intervals": [{"conductor": "Juan", "intervals": ["x"], "receptions": "abc"}],
                "summary": {"maxIntervalColumns": 10 ** 9, "highlight": []}}
        response = client.post("/v1/reports/intervals/html", json=body)

        assert response.status_code == 200
        assert "Juan" in response.text

        as_dict = client.post("/v1/reports/intervals/html", json={"intervals": {"conductor": "Juan"}})
        assert as_dict.status_code == 400

    def test_pdf(self, client):
        renderer = FakeRenderer()
        app.dependency_overrides[get_pdf_renderer] = lambda: renderer
        response = client.post("/v1/reports/intervals/pdf", json={"intervals": []})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert "intervalos-por-conductor.pdf" in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    def test_pdf_failure(self, client):
        app.dependency_overrides[get_pdf_renderer] = lambda: FakeRenderer(fail=True)
        assert client.post("/v1/reports/intervals/pdf", json={"intervals": []}).status_code == 500

    def test_report_for_filters(self, client):
        renderer = FakeRenderer()
        app.dependency_overrides[get_pdf_renderer] = lambda: renderer
        use_service()
        response = client.get("/v1/reports/intervals", params=QUERY)

        assert response.status_code == 200
        assert "Juan" in renderer.pages[0]
        assert "45.0 min" in renderer.pages[0]

class TestHighlightsAndCatalog:
    """Route highlights and cached catalog proxies."""

    def test_missing_highlight(self, client, monkeypatch):
        monkeypatch.setattr(highlights, "get_route_highlight", lambda destination, sub, origin: None)
        response = client.get("/v1/route-highlights", params={"destino": "Santiago", "ubicacion": "Planta"})
        assert response.status_code == 404

    def test_highlight_requires_content(self, client):
        body = {"destination": "Santiago", "origin": "Planta"}
        assert client.put("/v1/route-highlights", json=body).status_code == 422

    def test_transport_destinations_are_cached(self, client, monkeypatch):
        calls = []

        def fetch():
            calls.append(1)
            return [{"destino": "Santiago", "subdestinos": ["Centro"]}]

        monkeypatch.setattr(catalog.transport_api, "fetch_transport_destinations", fetch)
        first = client.get("/v1/catalog/transport/destinos").json()
        second = client.get("/v1/catalog/transport/destinos").json()

        assert first == second == {"data": [{"destino": "Santiago", "subdestinos": ["Centro"]}]}
        assert len(calls) == 1

    def test_transport_by_guide(self, client, monkeypatch):
        monkeypatch.setattr(catalog.transport_api, "fetch_transport_by_guide", lambda guide: [{"guia": guide}])
        response = client.get("/v1/catalog/transport/guides/42")
        assert response.json() == {"query": "42", "count": 1, "data": [{"guia": "42"}]}
