"""
Coordinate-based PDF filling.

Zones are drawn by the editor on top of a rendered page, so their origin is
the top-left corner of the page with y growing downwards. PDF user space has
its origin bottom-left; the text baseline is computed in that space and then
handed to PyMuPDF, which addresses pages from the top-left again.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

import fitz  # PyMuPDF

from .errors import TemplateParseError, ValidationError
from .fieldmap import FieldMap, is_scalar, stringify
from .models import Zone

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 12
FONT_NAME = "helv"  # Helvetica, base-14
TEXT_COLOR = (0, 0, 0)
PADDING = 2


def text_x(zone: Zone, text_width: float) -> float:
    if zone.alignment == "center":
        return zone.x + (zone.width - text_width) / 2
    if zone.alignment == "right":
        return zone.x + zone.width - text_width - PADDING
    return zone.x + PADDING


def baseline_from_bottom(zone: Zone, page_height: float) -> float:
    return page_height - zone.y - zone.height + PADDING


def open_pdf(template: bytes) -> fitz.Document:
    try:
        doc = fitz.open(stream=template, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        raise TemplateParseError("Le template PDF est illisible", details=str(exc)) from exc
    if doc.page_count == 0:
        doc.close()
        raise TemplateParseError("Le template PDF est illisible", details="document has no pages")
    return doc


def _zones_to_draw(zones: Iterable[Zone], fields: FieldMap) -> List[Zone]:
    selected = []
    for zone in zones:
        value = fields.get(zone.name)
        if value is None:
            continue
        if not is_scalar(value):
            logger.debug("Zone %s skipped: field value is a list", zone.name)
            continue
        selected.append(zone)
    return selected


def fill_zones(template: bytes, zones: Iterable[Zone], fields: FieldMap) -> bytes:
    """Draw each field value inside its zone and return the new PDF bytes.

    Zones whose field is missing or null are left blank. A zone pointing past
    the last page rejects the request before anything is drawn.
    """
    zones = list(zones)
    doc = open_pdf(template)
    try:
        to_draw = _zones_to_draw(zones, fields)
        for zone in to_draw:
            if zone.page > doc.page_count:
                raise ValidationError(
                    f"La zone '{zone.name}' référence la page {zone.page} "
                    f"mais le document n'en contient que {doc.page_count}",
                    details=f"zone_page_out_of_range: {zone.name}",
                )

        for zone in to_draw:
            page = doc[zone.page - 1]
            page_height = page.rect.height
            text = stringify(fields[zone.name])
            font_size = zone.font_size or DEFAULT_FONT_SIZE

            text_width = fitz.get_text_length(text, fontname=FONT_NAME, fontsize=font_size)
            x = text_x(zone, text_width)
            y = page_height - baseline_from_bottom(zone, page_height)

            page.insert_text(
                fitz.Point(x, y),
                text,
                fontsize=font_size,
                fontname=FONT_NAME,
                color=TEXT_COLOR,
            )

        logger.info("Drew %d of %d zones", len(to_draw), len(zones))
        return doc.tobytes(deflate=True, no_new_id=True)
    finally:
        doc.close()
