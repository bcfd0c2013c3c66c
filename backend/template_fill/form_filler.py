"""
Low-level PDF utilities for filling AcroForm-based templates.

Fields are addressed by their fully qualified name and filled according to
the widget type declared in the form: text, checkbox, dropdown / list box or
radio group. A field that is missing from the form, or whose value does not
fit the widget, is logged and skipped; the rest of the form is still filled.
"""

from __future__ import annotations

import io
import logging
from typing import Any, Dict, List, Optional

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from .errors import TemplateParseError
from .fieldmap import FieldMap, is_scalar, stringify

logger = logging.getLogger(__name__)

# Field flag bits, PDF 32000-1 tables 226 and 230 (1-based bit positions)
FLAG_RADIO = 1 << 15
FLAG_PUSHBUTTON = 1 << 16
FLAG_COMBO = 1 << 17
FLAG_EDIT = 1 << 18

CHECKBOX_OFF = "/Off"
CHECKBOX_TRUE_STRINGS = ("true", "1")


def _read_pdf(template: bytes) -> PdfReader:
    try:
        reader = PdfReader(io.BytesIO(template), strict=False)
        # force the xref / page tree to load so that broken files fail here
        len(reader.pages)
        return reader
    except (PyPdfError, ValueError) as exc:
        raise TemplateParseError("Le template PDF est illisible", details=str(exc)) from exc


def field_kind(field: Dict[str, Any]) -> str:
    field_type = field.get("/FT")
    flags = int(field.get("/Ff", 0) or 0)
    if field_type == "/Tx":
        return "text"
    if field_type == "/Btn":
        if flags & FLAG_RADIO:
            return "radio"
        if flags & FLAG_PUSHBUTTON:
            return "button"
        return "checkbox"
    if field_type == "/Ch":
        return "dropdown" if flags & FLAG_COMBO else "listbox"
    if field_type == "/Sig":
        return "signature"
    return "unknown"


def is_checked(value: Any) -> bool:
    if value is True:
        return True
    if isinstance(value, str):
        return value in CHECKBOX_TRUE_STRINGS
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 1
    return False


def _on_state(field: Dict[str, Any]) -> str:
    for state in field.get("/_States_", []) or []:
        if state != CHECKBOX_OFF:
            return str(state)
    return "/Yes"


def _choice_options(field: Dict[str, Any]) -> List[str]:
    options = []
    for option in field.get("/Opt", []) or []:
        if isinstance(option, (list, tuple)) and option:
            options.append(str(option[0]))
        else:
            options.append(str(option))
    return options


def _normalize_field_value(name: str, field: Dict[str, Any], value: Any) -> Optional[str]:
    """Translate a payload value into what pypdf expects for this widget."""
    kind = field_kind(field)

    if kind == "text":
        return stringify(value)

    if kind == "checkbox":
        return _on_state(field) if is_checked(value) else CHECKBOX_OFF

    if kind in ("dropdown", "listbox"):
        choice = stringify(value)
        options = _choice_options(field)
        editable = int(field.get("/Ff", 0) or 0) & FLAG_EDIT
        if options and choice not in options and not editable:
            logger.warning("Impossible de remplir le champ %r: option %r inconnue", name, choice)
            return None
        return choice

    if kind == "radio":
        choice = stringify(value)
        state = choice if choice.startswith("/") else f"/{choice}"
        states = [str(s) for s in field.get("/_States_", []) or []]
        if states and state not in states:
            logger.warning("Impossible de remplir le champ %r: option %r inconnue", name, choice)
            return None
        return state

    logger.warning("Impossible de remplir le champ %r: type %s non supporté", name, kind)
    return None


def list_form_fields(template: bytes) -> List[Dict[str, str]]:
    reader = _read_pdf(template)
    fields = reader.get_fields() or {}
    return [{"name": name, "type": field_kind(field)} for name, field in fields.items()]


def fill_form(template: bytes, fields: FieldMap) -> bytes:
    """
    Fill the template's form fields by name.

    Args:
        template: Bytes of the PDF template.
        fields: Mapping of form field name -> value.

    Returns:
        Bytes of the filled PDF. Fields stay editable (the form is not
        flattened).
    """
    reader = _read_pdf(template)
    form_fields = reader.get_fields() or {}
    if not form_fields:
        logger.warning("PDF template has no fillable form fields")

    fill_data: Dict[str, str] = {}
    for name, value in fields.items():
        if name not in form_fields:
            logger.warning("Impossible de remplir le champ %r: champ absent du formulaire", name)
            continue
        if value is None or not is_scalar(value):
            logger.warning("Impossible de remplir le champ %r: valeur non scalaire", name)
            continue
        normalized = _normalize_field_value(name, form_fields[name], value)
        if normalized is not None:
            fill_data[name] = normalized

    try:
        writer = PdfWriter(clone_from=reader)
        if fill_data:
            for page in writer.pages:
                if "/Annots" not in page:
                    continue
                writer.update_page_form_field_values(page, fill_data, auto_regenerate=False)
            writer.set_need_appearances_writer(True)

        buffer = io.BytesIO()
        writer.write(buffer)
    except PyPdfError as exc:
        raise TemplateParseError("Erreur lors du remplissage du formulaire PDF", details=str(exc)) from exc

    logger.info("Filled %d of %d requested form fields", len(fill_data), len(fields))
    return buffer.getvalue()
