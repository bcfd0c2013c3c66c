"""
File-system storage for templates and their zone / variable definitions.

Layout under the documents root::

    documents/
        invoice.html
        contract.pdf
        zones/contract.pdf.json        {"templateName": ..., "zones": [...]}
        variables/invoice.html.json    {"templateName": ..., "variables": [...]}
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import List, Tuple, Type, TypeVar

from cachetools import TTLCache
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import NotFoundError, TemplateParseError, ValidationError
from .models import Variable, VariableSet, Zone, ZoneSet

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".pdf", ".html")

DefinitionSet = TypeVar("DefinitionSet", ZoneSet, VariableSet)


def validate_filename(filename: str) -> str:
    """Reject path traversal and anything that is not a PDF or HTML name."""
    if not filename:
        raise ValidationError("Le nom du fichier est requis")
    if ".." in filename or "/" in filename or "\\" in filename:
        raise ValidationError("Nom de fichier invalide", details=f"invalid_filename: {filename}")
    if not filename.endswith(ALLOWED_EXTENSIONS):
        raise ValidationError(
            "Seuls les fichiers PDF et HTML sont autorisés",
            details=f"unsupported_extension: {filename}",
        )
    return filename


class DocumentStore:
    """Handles the documents root, uploads and definition files."""

    def __init__(self, root: Path, cache_ttl: int = 300):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.zones_dir = self.root / "zones"
        self.variables_dir = self.root / "variables"
        # path -> ((mtime_ns, size), parsed definition set)
        self._definitions: TTLCache = TTLCache(maxsize=256, ttl=cache_ttl)
        self._definitions_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------
    def save_upload(self, filename: str, data: bytes) -> Path:
        validate_filename(filename)
        target = self.root / filename
        with target.open("wb") as f:
            f.write(data)
        logger.info("Stored template %s (%d bytes)", filename, len(data))
        return target

    def list_documents(self) -> List[str]:
        return sorted(
            p.name for p in self.root.iterdir() if p.is_file() and p.name.endswith(ALLOWED_EXTENSIONS)
        )

    def template_path(self, filename: str) -> Path:
        validate_filename(filename)
        return self.root / filename

    def read_template(self, filename: str) -> bytes:
        path = self.template_path(filename)
        if not path.is_file():
            raise NotFoundError(f"Template introuvable: {filename}", details=f"template_not_found: {filename}")
        with path.open("rb") as f:
            return f.read()

    def read_html_template(self, filename: str) -> str:
        return self.read_template(filename).decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # Zone / variable definitions
    # ------------------------------------------------------------------
    def load_zones(self, template_name: str) -> List[Zone]:
        zone_set = self._load_definitions(self.zones_dir, template_name, ZoneSet)
        return zone_set.zones if zone_set else []

    def load_variables(self, template_name: str) -> List[Variable]:
        variable_set = self._load_definitions(self.variables_dir, template_name, VariableSet)
        return variable_set.variables if variable_set else []

    def require_zones(self, template_name: str) -> List[Zone]:
        zone_set = self._load_definitions(self.zones_dir, template_name, ZoneSet)
        if zone_set is None:
            raise NotFoundError(
                f"Aucune zone définie pour le template {template_name}. "
                "Utilisez l'éditeur pour définir les zones.",
                details=f"zones_not_found: {template_name}",
            )
        return zone_set.zones

    def require_variables(self, template_name: str) -> List[Variable]:
        variable_set = self._load_definitions(self.variables_dir, template_name, VariableSet)
        if variable_set is None:
            raise NotFoundError(
                f"Aucune variable définie pour le template {template_name}. "
                "Utilisez l'éditeur pour définir les variables.",
                details=f"variables_not_found: {template_name}",
            )
        return variable_set.variables

    def save_zones(self, zone_set: ZoneSet) -> Path:
        return self._save_definitions(self.zones_dir, zone_set)

    def save_variables(self, variable_set: VariableSet) -> Path:
        return self._save_definitions(self.variables_dir, variable_set)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _definition_path(self, directory: Path, template_name: str) -> Path:
        if not template_name or ".." in template_name or "/" in template_name or "\\" in template_name:
            raise ValidationError("Nom de template invalide", details=f"invalid_template_name: {template_name}")
        return directory / f"{template_name}.json"

    def _load_definitions(self, directory: Path, template_name: str, model: Type[DefinitionSet]):
        path = self._definition_path(directory, template_name)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None

        key = str(path)
        version: Tuple[int, int] = (stat.st_mtime_ns, stat.st_size)
        with self._definitions_lock:
            cached = self._definitions.get(key)
        if cached is not None and cached[0] == version:
            return cached[1]

        try:
            with path.open("r", encoding="utf-8") as f:
                parsed = model.model_validate(json.load(f))
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            logger.error("Malformed definition file %s: %s", path, exc)
            raise TemplateParseError(
                f"Définitions invalides pour le template {template_name}",
                details=str(exc),
            ) from exc

        with self._definitions_lock:
            self._definitions[key] = (version, parsed)
        return parsed

    def _save_definitions(self, directory: Path, definitions: BaseModel) -> Path:
        path = self._definition_path(directory, definitions.template_name)
        directory.mkdir(parents=True, exist_ok=True)
        payload = definitions.model_dump(by_alias=True, exclude_none=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        with self._definitions_lock:
            self._definitions.pop(str(path), None)
        logger.info("Saved definitions %s", path)
        return path
