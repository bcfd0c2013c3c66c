"""HTTP-level tests for the FastAPI app, with the browser and S3 replaced."""

import io
from unittest.mock import MagicMock

import fitz
import pytest
from fastapi.testclient import TestClient
from pypdf import PdfReader

from main import app, get_service
from template_fill.errors import RenderError
from template_fill.object_storage import ObjectStorage

from .conftest import INVOICE_HTML

ZONES = {
    "templateName": "contract.pdf",
    "zones": [
        {"id": "1", "name": "client", "x": 50, "y": 50, "width": 200, "height": 20, "page": 1},
        {"id": "2", "name": "total_ht", "x": 50, "y": 100, "width": 200, "height": 20, "page": 1},
    ],
}

VARIABLES = {
    "templateName": "invoice.html",
    "variables": [
        {"id": "1", "name": "client_name", "selector": "#client_name", "type": "text"},
        {"id": "2", "name": "total_ttc", "selector": "#total_ttc", "type": "text"},
    ],
}

LINE_ITEMS = [
    {"description": "Audit", "quantity": 2, "price": 100},
    {"description": "Suivi", "quantity": 1, "price": "50"},
]


@pytest.fixture
def client(service):
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def templates(store, blank_pdf, form_pdf):
    store.save_upload("contract.pdf", blank_pdf)
    store.save_upload("form.pdf", form_pdf)
    store.save_upload("invoice.html", INVOICE_HTML.encode("utf-8"))
    return store


def _pdf_text(content: bytes) -> str:
    doc = fitz.open(stream=content, filetype="pdf")
    try:
        return doc[0].get_text()
    finally:
        doc.close()


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


class TestTemplates:
    def test_upload_and_list(self, client):
        upload = ("invoice.html", INVOICE_HTML.encode("utf-8"), "text/html")

        response = client.post("/api/upload", files={"file": upload})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["filename"] == "invoice.html"
        assert body["message"] == "HTML uploadé avec succès"
        assert client.get("/api/upload").json() == {"success": True, "files": ["invoice.html"]}

    def test_upload_rejects_other_types(self, client):
        response = client.post("/api/upload", files={"file": ("notes.txt", b"hello", "text/plain")})

        assert response.status_code == 400
        assert "error" in response.json()

    def test_serves_document_inline(self, client, templates):
        response = client.get("/documents/invoice.html")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert response.headers["content-disposition"] == 'inline; filename="invoice.html"'

    def test_missing_document(self, client):
        assert client.get("/documents/missing.pdf").status_code == 404

    def test_nested_document_path_is_rejected(self, client):
        assert client.get("/documents/zones/contract.pdf").status_code == 400


class TestDefinitions:
    def test_zones_round_trip(self, client):
        saved = client.post("/api/zones", json=ZONES)

        assert saved.json() == {"success": True, "message": "Zones sauvegardées avec succès", "zonesCount": 2}
        zones = client.get("/api/zones", params={"template": "contract.pdf"}).json()["zones"]
        assert [z["name"] for z in zones] == ["client", "total_ht"]

    def test_zones_for_unknown_template_are_empty(self, client):
        assert client.get("/api/zones", params={"template": "new.pdf"}).json() == {"success": True, "zones": []}

    def test_zones_require_template_param(self, client):
        assert client.get("/api/zones").status_code == 400

    def test_invalid_zone_is_rejected(self, client):
        payload = {"templateName": "contract.pdf", "zones": [dict(ZONES["zones"][0], page=0)]}

        assert client.post("/api/zones", json=payload).status_code == 400

    def test_variables_round_trip(self, client):
        saved = client.post("/api/html-variables", json=VARIABLES)

        assert saved.json()["variablesCount"] == 2
        variables = client.get("/api/html-variables", params={"template": "invoice.html"}).json()["variables"]
        assert variables[0] == {"id": "1", "name": "client_name", "selector": "#client_name", "type": "text"}


class TestWebhookValidation:
    @pytest.mark.parametrize(
        "path",
        [
            "/api/webhook/fill-pdf",
            "/api/webhook/fill-pdf-custom",
            "/api/webhook/fill-html",
            "/api/webhook/fill-html-pdf",
            "/api/webhook/fill-html-auto",
            "/api/webhook/fill-html-upload",
        ],
    )
    def test_missing_template_name(self, client, path):
        response = client.post(path, json={"fields": {"a": 1}})

        assert response.status_code == 400
        assert response.json()["error"] == "Le nom du template est requis"

    def test_missing_fields(self, client):
        response = client.post("/api/webhook/fill-pdf-custom", json={"templateName": "contract.pdf", "fields": {}})

        assert response.status_code == 400
        assert response.json()["error"] == "Les champs à remplir sont requis"

    def test_wrong_template_type(self, client, templates):
        response = client.post("/api/webhook/fill-pdf", json={"templateName": "invoice.html", "fields": {"a": 1}})

        assert response.status_code == 400

    def test_nested_field_objects_are_rejected(self, client):
        payload = {"templateName": "invoice.html", "fields": {"client": {"name": "ACME"}}}

        assert client.post("/api/webhook/fill-html", json=payload).status_code == 400

    def test_invalid_primary_color(self, client, templates):
        payload = {"templateName": "invoice.html", "fields": {"a": 1}, "primaryColor": "red"}

        assert client.post("/api/webhook/fill-html-auto", json=payload).status_code == 400

    def test_unknown_template(self, client):
        response = client.post("/api/webhook/fill-pdf-custom", json={"templateName": "nope.pdf", "fields": {"a": 1}})

        assert response.status_code == 404

    def test_zones_not_defined(self, client, templates):
        response = client.post("/api/webhook/fill-pdf-custom", json={"templateName": "contract.pdf", "fields": {"a": 1}})

        assert response.status_code == 404
        assert "contract.pdf" in response.json()["error"]

    def test_variables_not_defined(self, client, templates):
        response = client.post("/api/webhook/fill-html", json={"templateName": "invoice.html", "fields": {"a": 1}})

        assert response.status_code == 404


class TestPdfWebhooks:
    def test_describe_form(self, client, templates):
        body = client.get("/api/webhook/fill-pdf", params={"template": "form.pdf"}).json()

        assert body["success"] is True
        assert {f["name"] for f in body["fields"]} == {"name", "agree"}

    def test_fill_form(self, client, templates):
        response = client.post(
            "/api/webhook/fill-pdf", json={"templateName": "form.pdf", "fields": {"name": "Alice"}}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == 'attachment; filename="filled_form.pdf"'
        assert PdfReader(io.BytesIO(response.content)).get_fields()["name"]["/V"] == "Alice"

    def test_fill_zones_with_derived_totals(self, client, templates):
        client.post("/api/zones", json=ZONES)

        response = client.post(
            "/api/webhook/fill-pdf-custom",
            json={"templateName": "contract.pdf", "fields": {"client": "ACME", "prestations": LINE_ITEMS}},
        )

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="filled_contract.pdf"'
        text = _pdf_text(response.content)
        assert "ACME" in text
        assert "250.00" in text

    def test_zone_page_out_of_range(self, client, templates):
        client.post(
            "/api/zones",
            json={"templateName": "contract.pdf", "zones": [dict(ZONES["zones"][0], page=2)]},
        )

        response = client.post(
            "/api/webhook/fill-pdf-custom", json={"templateName": "contract.pdf", "fields": {"client": "ACME"}}
        )

        assert response.status_code == 400


class TestHtmlWebhooks:
    def test_fill_declared_html(self, client, templates):
        client.post("/api/html-variables", json=VARIABLES)

        response = client.post(
            "/api/webhook/fill-html",
            json={"templateName": "invoice.html", "fields": {"client_name": "ACME", "prestations": LINE_ITEMS}},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert response.headers["content-disposition"] == 'attachment; filename="filled_invoice.html"'
        assert '<h1 id="client_name">ACME</h1>' in response.text
        assert '<p id="total_ttc">300.00€</p>' in response.text

    def test_fill_declared_html_to_pdf(self, client, templates, renderer):
        client.post("/api/html-variables", json=VARIABLES)

        response = client.post(
            "/api/webhook/fill-html-pdf",
            json={"templateName": "invoice.html", "fields": {"client_name": "ACME"}},
        )

        assert response.status_code == 200
        assert response.content == renderer.result
        assert response.headers["content-disposition"] == 'attachment; filename="filled_invoice.pdf"'
        assert "ACME" in renderer.calls[0]

    def test_fill_auto(self, client, templates, renderer):
        response = client.post(
            "/api/webhook/fill-html-auto",
            json={
                "templateName": "invoice.html",
                "fields": {"client_name": "ACME", "prestations": LINE_ITEMS},
                "primaryColor": "#ff0000",
            },
        )

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="facture_invoice.pdf"'
        html = renderer.calls[0]
        assert '<h1 id="client_name">ACME</h1>' in html
        assert "<td>Audit</td><td>2</td><td>100</td><td>200.00€</td>" in html
        assert '<p id="total_ttc">300.00€</p>' in html
        assert "--primary-color: #ff0000;" in html

    def test_upload_envelope(self, client, service):
        s3 = MagicMock()
        service.object_storage = ObjectStorage(
            bucket="invoices",
            public_base_url="https://cdn.example.com",
            s3_client=s3,
            clock=lambda: 1700000000.0,
        )
        service.store.save_upload("invoice.html", INVOICE_HTML.encode("utf-8"))

        response = client.post(
            "/api/webhook/fill-html-upload", json={"templateName": "invoice.html", "fields": {"client_name": "A"}}
        )

        assert response.json() == {
            "success": True,
            "pdfUrl": "https://cdn.example.com/filled/facture_invoice_1700000000000.pdf",
            "fileName": "facture_invoice_1700000000000.pdf",
        }
        s3.put_object.assert_called_once()

    def test_upload_falls_back_to_pdf(self, client, templates, renderer):
        response = client.post(
            "/api/webhook/fill-html-upload", json={"templateName": "invoice.html", "fields": {"client_name": "A"}}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content == renderer.result

    def test_retryable_render_failure(self, client, templates, renderer):
        renderer.error = RenderError("Render queue is full; retry shortly.", retryable=True)

        response = client.post(
            "/api/webhook/fill-html-auto", json={"templateName": "invoice.html", "fields": {"client_name": "A"}}
        )

        assert response.status_code == 504
        assert response.headers["retry-after"] == "5"
        assert response.json()["retryable"] is True

    def test_unexpected_failure_is_reported(self, client, templates, renderer):
        renderer.error = RuntimeError("browser exploded")

        response = client.post(
            "/api/webhook/fill-html-auto", json={"templateName": "invoice.html", "fields": {"client_name": "A"}}
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Erreur lors du remplissage du HTML", "details": "browser exploded"}
