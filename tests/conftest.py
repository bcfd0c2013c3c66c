"""Shared fixtures: temporary document store, PDF builders and a fake renderer."""

from pathlib import Path
from typing import List, Optional

import fitz
import pytest

from template_fill.config import Settings
from template_fill.object_storage import ObjectStorage
from template_fill.renderer import BaseRenderer
from template_fill.service import TemplateFillService
from template_fill.storage import DocumentStore

A4_WIDTH = 595
A4_HEIGHT = 842

INVOICE_HTML = """<!DOCTYPE html>
<html>
<head>
<style>
:root { --primary-color: #112233; }
h1 { color: var(--primary-color); }
</style>
</head>
<body>
<h1 id="client_name">Client</h1>
<p class="invoice_number">000</p>
<span data-field="invoice_date">date</span>
<table>
<tbody>
<tr><td>desc</td><td>qty</td><td>price</td><td>total</td></tr>
</tbody>
</table>
<p id="total_ht">0</p><p id="tva">0</p><p id="total_ttc">0</p>
</body>
</html>
"""


class FakeRenderer(BaseRenderer):
    def __init__(self, result: bytes = b"%PDF-1.7 fake", error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: List[str] = []

    def render_html_to_pdf(self, html, options=None, deadline=None):
        self.calls.append(html)
        if self.error is not None:
            raise self.error
        return self.result


def build_blank_pdf(pages: int = 1) -> bytes:
    doc = fitz.open()
    for _ in range(pages):
        doc.new_page(width=A4_WIDTH, height=A4_HEIGHT)
    data = doc.tobytes()
    doc.close()
    return data


def build_form_pdf() -> bytes:
    doc = fitz.open()
    page = doc.new_page(width=A4_WIDTH, height=A4_HEIGHT)

    text = fitz.Widget()
    text.field_name = "name"
    text.field_type = fitz.PDF_WIDGET_TYPE_TEXT
    text.rect = fitz.Rect(50, 50, 250, 70)
    page.add_widget(text)

    checkbox = fitz.Widget()
    checkbox.field_name = "agree"
    checkbox.field_type = fitz.PDF_WIDGET_TYPE_CHECKBOX
    checkbox.rect = fitz.Rect(50, 100, 65, 115)
    page.add_widget(checkbox)

    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def blank_pdf() -> bytes:
    return build_blank_pdf()


@pytest.fixture
def form_pdf() -> bytes:
    return build_form_pdf()


@pytest.fixture
def documents_dir(tmp_path) -> Path:
    return tmp_path / "documents"


@pytest.fixture
def store(documents_dir) -> DocumentStore:
    return DocumentStore(documents_dir)


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def service(documents_dir, store, renderer) -> TemplateFillService:
    settings = Settings(documents_dir=documents_dir)
    return TemplateFillService(
        settings=settings,
        store=store,
        renderer=renderer,
        object_storage=ObjectStorage(bucket=None),
    )
