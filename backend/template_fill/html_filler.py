"""
Selector-based HTML filling.

Two modes share the same parsed tree and serialisation:

* declared: every field is bound to a CSS selector by a saved variable
  definition; list variables clone a template node once per record and
  look up each sub-field by ``data-field``, by class, then by cell position.
* auto: no definitions. Scalars are looked up by id, class, then
  ``data-field``; lists fill the first ``<tbody>`` positionally, cell N
  receiving the record's N-th value in key order.

Anything that cannot be located is skipped so that a template and a payload
can drift apart without breaking the automation that posts the payload.
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any, Iterable, List, Optional

import soupsieve
from bs4 import BeautifulSoup, Tag

from .fieldmap import FieldMap, Record, is_record_list, stringify
from .models import Variable

logger = logging.getLogger(__name__)

PARSER = "lxml"
PRIMARY_COLOR_PATTERN = re.compile(r"--primary-color:\s*#[0-9a-fA-F]{6};")


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, PARSER)


def serialize_html(soup: BeautifulSoup) -> str:
    return str(soup)


def set_text(element: Tag, value: Any) -> None:
    element.string = stringify(value)


def select_one(root: Tag, selector: str) -> Optional[Tag]:
    try:
        return root.select_one(selector)
    except soupsieve.SelectorSyntaxError as exc:
        logger.debug("Ignoring invalid selector %r: %s", selector, exc)
        return None


# ----------------------------------------------------------------------
# Declared variables
# ----------------------------------------------------------------------
def find_list_field(node: Tag, field_name: str, index: int) -> Optional[Tag]:
    """Locate the element of a cloned list node that receives ``field_name``."""
    match = node.find(attrs={"data-field": field_name})
    if match is not None:
        return match
    match = node.find(class_=field_name)
    if match is not None:
        return match
    if node.name == "tr":
        cells = node.find_all("td", recursive=False)
        if index < len(cells):
            return cells[index]
    return None


def expand_list(soup: BeautifulSoup, variable: Variable, records: List[Record]) -> int:
    """Replace the template node with one populated clone per record."""
    template_node = select_one(soup, variable.selector)
    if template_node is None:
        logger.debug("List variable %s: selector %r matched nothing", variable.name, variable.selector)
        return 0
    parent = template_node.parent
    if parent is None or isinstance(parent, BeautifulSoup):
        return 0

    template_node.extract()
    list_fields = variable.list_fields or []

    for record in records:
        clone = copy.copy(template_node)
        for index, field_name in enumerate(list_fields):
            value = record.get(field_name) if isinstance(record, dict) else None
            if value is None:
                continue
            target = find_list_field(clone, field_name, index)
            if target is None:
                logger.debug("List variable %s: no element for %s", variable.name, field_name)
                continue
            set_text(target, value)
        parent.append(clone)
    return len(records)


def apply_variables(soup: BeautifulSoup, variables: Iterable[Variable], fields: FieldMap) -> int:
    filled = 0
    for variable in variables:
        value = fields.get(variable.name)
        if value is None:
            continue

        if variable.type == "text":
            element = select_one(soup, variable.selector)
            if element is None:
                logger.debug("Variable %s: selector %r matched nothing", variable.name, variable.selector)
                continue
            if is_record_list(value):
                continue
            set_text(element, value)
            filled += 1
        elif variable.type == "list" and is_record_list(value):
            expand_list(soup, variable, value)
            filled += 1
    return filled


# ----------------------------------------------------------------------
# Auto resolution
# ----------------------------------------------------------------------
def find_auto_target(soup: BeautifulSoup, field_name: str) -> Optional[Tag]:
    element = soup.find(id=field_name)
    if element is None:
        element = soup.find(class_=field_name)
    if element is None:
        element = soup.find(attrs={"data-field": field_name})
    return element


def fill_first_tbody(soup: BeautifulSoup, records: List[Record]) -> bool:
    tbody = soup.find("tbody")
    if tbody is None:
        return False
    template_row = tbody.find("tr")
    if template_row is None:
        return False

    template_row = copy.copy(template_row)
    tbody.clear()

    for record in records:
        row = copy.copy(template_row)
        cells = row.find_all("td")
        values = list(record.values()) if isinstance(record, dict) else []
        for cell, value in zip(cells, values):
            if value is not None:
                set_text(cell, value)
        tbody.append(row)
    return True


def apply_auto(soup: BeautifulSoup, fields: FieldMap) -> int:
    filled = 0
    for field_name, value in fields.items():
        if value is None:
            continue
        if is_record_list(value):
            if fill_first_tbody(soup, value):
                filled += 1
            continue
        element = find_auto_target(soup, field_name)
        if element is None:
            continue
        set_text(element, value)
        filled += 1
    return filled


# ----------------------------------------------------------------------
# Theming
# ----------------------------------------------------------------------
def apply_primary_color(soup: BeautifulSoup, primary_color: str) -> bool:
    style = soup.find("style")
    if style is None:
        return False
    css = style.get_text()
    if not css:
        return False
    themed, count = PRIMARY_COLOR_PATTERN.subn(f"--primary-color: {primary_color};", css, count=1)
    if not count:
        return False
    style.string = themed
    return True


# ----------------------------------------------------------------------
# Entry points
# ----------------------------------------------------------------------
def fill_declared(
    html: str,
    variables: Iterable[Variable],
    fields: FieldMap,
    primary_color: Optional[str] = None,
) -> str:
    soup = parse_html(html)
    filled = apply_variables(soup, variables, fields)
    if primary_color:
        apply_primary_color(soup, primary_color)
    logger.info("Filled %d declared variables", filled)
    return serialize_html(soup)


def fill_auto(html: str, fields: FieldMap, primary_color: Optional[str] = None) -> str:
    soup = parse_html(html)
    filled = apply_auto(soup, fields)
    if primary_color:
        apply_primary_color(soup, primary_color)
    logger.info("Auto-filled %d of %d fields", filled, len(fields))
    return serialize_html(soup)
