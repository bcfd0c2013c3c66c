"""
High-level service that exposes template filling to the FastAPI layer.

Responsibilities
----------------
* validate fill requests and load templates + definitions from the store
* run the derived invoice fields before zone / selector resolution
* fill PDF forms, PDF zones and HTML templates
* render filled HTML to PDF and optionally push the result to S3
* enforce a per-request deadline across parse, fill and render
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from . import form_filler, html_filler, zone_filler
from .calculator import apply_derived_fields
from .config import Settings
from .deadline import Deadline
from .errors import UploadError, ValidationError
from .fieldmap import FieldMap
from .object_storage import ObjectStorage, UploadedObject
from .renderer import BaseRenderer, PlaywrightRenderer
from .storage import DocumentStore

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
HTML_MEDIA_TYPE = "text/html; charset=utf-8"


@dataclass(frozen=True)
class FilledArtifact:
    content: Union[bytes, str]
    media_type: str
    filename: str


def _stem(template_name: str) -> str:
    return template_name.rsplit(".", 1)[0] if "." in template_name else template_name


class TemplateFillService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[DocumentStore] = None,
        renderer: Optional[BaseRenderer] = None,
        object_storage: Optional[ObjectStorage] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.store = store or DocumentStore(Path(self.settings.documents_dir))
        self.renderer = renderer or PlaywrightRenderer(
            max_concurrent=self.settings.render_max_concurrent,
            queue_timeout_ms=self.settings.render_queue_timeout_ms,
            render_timeout_ms=self.settings.render_timeout_ms,
            executable_path=self.settings.chromium_executable,
        )
        self.object_storage = object_storage or ObjectStorage(
            bucket=self.settings.s3_bucket,
            prefix=self.settings.s3_prefix,
            public_base_url=self.settings.s3_public_base_url,
            url_expires=self.settings.s3_url_expires,
            region=self.settings.aws_region,
        )

    # ------------------------------------------------------------------
    # Request validation
    # ------------------------------------------------------------------
    @staticmethod
    def _check_request(template_name: str, fields: Optional[FieldMap], extension: str) -> None:
        if not template_name:
            raise ValidationError("Le nom du template est requis", details="missing_template_name")
        if not fields:
            raise ValidationError("Les champs à remplir sont requis", details="missing_fields")
        if not template_name.endswith(extension):
            raise ValidationError(
                f"Le template doit être un fichier {extension}",
                details=f"unexpected_template_type: {template_name}",
            )

    def _new_deadline(self) -> Deadline:
        return Deadline(self.settings.request_deadline_ms)

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------
    def describe_form_fields(self, template_name: str) -> List[Dict[str, str]]:
        if not template_name:
            raise ValidationError("Le paramètre template est requis", details="missing_template_name")
        return form_filler.list_form_fields(self.store.read_template(template_name))

    def fill_form_pdf(self, template_name: str, fields: FieldMap) -> FilledArtifact:
        self._check_request(template_name, fields, ".pdf")
        deadline = self._new_deadline()
        template = self.store.read_template(template_name)
        deadline.check("form fill")
        pdf_bytes = form_filler.fill_form(template, fields)
        return FilledArtifact(pdf_bytes, PDF_MEDIA_TYPE, f"filled_{template_name}")

    def fill_zone_pdf(self, template_name: str, fields: FieldMap) -> FilledArtifact:
        self._check_request(template_name, fields, ".pdf")
        deadline = self._new_deadline()
        template = self.store.read_template(template_name)
        zones = self.store.require_zones(template_name)
        apply_derived_fields(fields, self.settings.currency_suffix)
        deadline.check("zone fill")
        pdf_bytes = zone_filler.fill_zones(template, zones, fields)
        logger.info("Zone fill of %s produced %d bytes", template_name, len(pdf_bytes))
        return FilledArtifact(pdf_bytes, PDF_MEDIA_TYPE, f"filled_{template_name}")

    # ------------------------------------------------------------------
    # HTML
    # ------------------------------------------------------------------
    def _declared_html(
        self, template_name: str, fields: FieldMap, primary_color: Optional[str], deadline: Deadline
    ) -> str:
        html = self.store.read_html_template(template_name)
        variables = self.store.require_variables(template_name)
        apply_derived_fields(fields, self.settings.currency_suffix)
        deadline.check("html fill")
        return html_filler.fill_declared(html, variables, fields, primary_color=primary_color)

    def _auto_html(
        self, template_name: str, fields: FieldMap, primary_color: Optional[str], deadline: Deadline
    ) -> str:
        html = self.store.read_html_template(template_name)
        apply_derived_fields(fields, self.settings.currency_suffix)
        deadline.check("html fill")
        return html_filler.fill_auto(html, fields, primary_color=primary_color)

    def fill_html(
        self, template_name: str, fields: FieldMap, primary_color: Optional[str] = None
    ) -> FilledArtifact:
        self._check_request(template_name, fields, ".html")
        filled = self._declared_html(template_name, fields, primary_color, self._new_deadline())
        return FilledArtifact(filled, HTML_MEDIA_TYPE, f"filled_{template_name}")

    def fill_html_pdf(
        self, template_name: str, fields: FieldMap, primary_color: Optional[str] = None
    ) -> FilledArtifact:
        self._check_request(template_name, fields, ".html")
        deadline = self._new_deadline()
        filled = self._declared_html(template_name, fields, primary_color, deadline)
        pdf_bytes = self.renderer.render_html_to_pdf(filled, deadline=deadline)
        return FilledArtifact(pdf_bytes, PDF_MEDIA_TYPE, f"filled_{_stem(template_name)}.pdf")

    def fill_html_auto_pdf(
        self, template_name: str, fields: FieldMap, primary_color: Optional[str] = None
    ) -> FilledArtifact:
        self._check_request(template_name, fields, ".html")
        deadline = self._new_deadline()
        filled = self._auto_html(template_name, fields, primary_color, deadline)
        pdf_bytes = self.renderer.render_html_to_pdf(filled, deadline=deadline)
        return FilledArtifact(pdf_bytes, PDF_MEDIA_TYPE, f"facture_{_stem(template_name)}.pdf")

    def fill_html_auto_upload(
        self, template_name: str, fields: FieldMap, primary_color: Optional[str] = None
    ) -> Union[UploadedObject, FilledArtifact]:
        """Render like ``fill_html_auto_pdf`` and upload the result.

        A failed upload is not an error for the caller: the PDF bytes are
        returned instead of the storage envelope.
        """
        artifact = self.fill_html_auto_pdf(template_name, fields, primary_color=primary_color)
        try:
            return self.object_storage.upload_pdf(f"facture_{_stem(template_name)}", artifact.content)
        except UploadError as exc:
            logger.warning("Upload failed (%s); returning the PDF directly", exc.details)
            return artifact
