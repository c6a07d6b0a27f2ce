"""
schema/validator.py: structural and JSON Schema validation for schema documents.

Two layers run on every load:

1. ``check_document``: the hard requirements on the raw document (``model``,
   ``table``, non-empty ``fields``, model name matching the requested one,
   unique field names).  Messages name the offending key.
2. ``validate_document``: the normalized document against the packaged JSON
   Schemas (``schemas/model.schema.json`` + ``schemas/_defs.schema.json``).

``validate_schema_file`` / ``validate_schema_dir`` collect the same findings as
:class:`ValidationIssue` objects for the ``schemacrud schema validate`` command,
plus advisory warnings (unknown field types, incomplete relationships).
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as JsonSchemaError
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from schemacrud.core.types import get_storage_type, is_known_type
from schemacrud.errors import ConfigError
from schemacrud.schema.models import MODEL_NAME_PATTERN, RELATIONSHIP_TYPES
from schemacrud.schema.normalizer import normalize_document

logger = logging.getLogger(__name__)

_SCHEMAS_DIR = Path(__file__).parent / "schemas"

_SCHEMA_FILES = ("_defs.schema.json", "model.schema.json")

DOCUMENT_SUFFIXES = (".json", ".yaml", ".yml")

REQUIRED_KEYS = ("model", "table", "fields")


# ---------------------------------------------------------------------------
# Public data types
# ---------------------------------------------------------------------------


@dataclass
class ValidationIssue:
    """A single validation finding for a schema document."""

    file: Path
    message: str
    path: str = ""          # location within the document, e.g. "fields/name/type"
    severity: str = "error" # "error" | "warning"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.file}{loc}: {self.message}"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_schema(name: str) -> dict[str, Any]:
    with (_SCHEMAS_DIR / name).open() as fh:
        return json.load(fh)


@lru_cache(maxsize=1)
def _load_registry() -> Registry:
    """Build a jsonschema Registry containing the packaged schemas."""
    resources = []
    for name in _SCHEMA_FILES:
        schema = _load_schema(name)
        resources.append(
            (schema["$id"], Resource(contents=schema, specification=DRAFT202012))
        )
    return Registry().with_resources(resources)


@lru_cache(maxsize=1)
def _document_validator() -> Draft202012Validator:
    return Draft202012Validator(_load_schema("model.schema.json"), registry=_load_registry())


def _json_path(error: JsonSchemaError) -> str:
    """Convert a jsonschema ValidationError path to a readable string."""
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return "/".join(parts).replace("/[", "[")


def _field_names(fields: Any, model: str) -> list[str]:
    """Field names in declaration order; every definition must be an object."""
    names = []
    if isinstance(fields, list):
        for index, entry in enumerate(fields):
            if not isinstance(entry, dict):
                raise ConfigError(
                    f"Schema for model '{model}' has a field at index {index} that is not an object"
                )
            names.append(str(entry.get("name", "")))
        return names
    for name, definition in fields.items():
        # null means "all defaults"
        if definition is not None and not isinstance(definition, dict):
            raise ConfigError(f"Schema for model '{model}' field '{name}' must be an object")
        names.append(str(name))
    return names


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def check_document(document: Any, model: str) -> None:
    """Check the hard structural requirements of a raw schema document.

    Args:
        document: The parsed (not yet normalized) document.
        model: The model name the caller asked for.

    Raises:
        ConfigError: Naming the missing or mismatched key.
    """
    if not isinstance(document, dict):
        raise ConfigError(f"Schema for model '{model}' must be an object")

    for key in REQUIRED_KEYS:
        if key not in document:
            raise ConfigError(f"Schema for model '{model}' is missing required field: {key}")

    if document["model"] != model:
        raise ConfigError(
            f"Schema model name '{document['model']}' does not match requested model '{model}'"
        )
    if not isinstance(model, str) or not MODEL_NAME_PATTERN.match(model):
        raise ConfigError(f"Schema model name '{model}' is not a valid identifier")

    fields = document["fields"]
    if not isinstance(fields, (dict, list)) or not fields:
        raise ConfigError(f"Schema for model '{model}' must have a non-empty 'fields' array")

    seen: set[str] = set()
    for index, name in enumerate(_field_names(fields, model)):
        if not name:
            raise ConfigError(f"Schema for model '{model}' has a field without a name at index {index}")
        if name in seen:
            raise ConfigError(f"Schema for model '{model}' defines field '{name}' more than once")
        seen.add(name)


def validate_document(document: dict[str, Any], model: str) -> None:
    """Validate a normalized document against the JSON Schema.

    Raises:
        ConfigError: For the first violation, with its location.
    """
    errors = sorted(_document_validator().iter_errors(document), key=lambda e: [str(p) for p in e.path])
    if errors:
        first = errors[0]
        loc = _json_path(first)
        where = f" at {loc}" if loc else ""
        raise ConfigError(f"Schema for model '{model}' is invalid{where}: {first.message}")


def read_document(path: Path) -> Any:
    """Parse a JSON or YAML schema document.

    Raises:
        ConfigError: If the file cannot be parsed.
    """
    try:
        with path.open(encoding="utf-8") as fh:
            if path.suffix == ".json":
                return json.load(fh)
            return yaml.safe_load(fh)
    except (json.JSONDecodeError, yaml.YAMLError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Could not parse schema file {path}: {exc}") from exc


def _advisories(file: Path, document: dict[str, Any]) -> list[ValidationIssue]:
    """Warnings for things that load fine but are probably mistakes."""
    issues: list[ValidationIssue] = []

    for name, field_def in document["fields"].items():
        field_type = field_def.get("type", "string")
        if not is_known_type(field_type):
            issues.append(ValidationIssue(
                file=file,
                path=f"fields/{name}/type",
                message=f"Unknown field type '{field_type}', treated as string",
                severity="warning",
            ))
        elif field_def.get("searchable") and get_storage_type(field_type) not in ("string", "text"):
            issues.append(ValidationIssue(
                file=file,
                path=f"fields/{name}/searchable",
                message=f"Searchable field of type '{field_type}' uses exact match, not LIKE",
                severity="warning",
            ))

    for index, relationship in enumerate(document["relationships"]):
        cls = RELATIONSHIP_TYPES.get(relationship.get("type"))
        if cls is None:
            continue
        for key in cls.required_keys:
            if not relationship.get(key):
                issues.append(ValidationIssue(
                    file=file,
                    path=f"relationships[{index}]",
                    message=(
                        f"Relationship '{relationship.get('name')}' is missing '{key}' "
                        "and will fail when resolved"
                    ),
                    severity="warning",
                ))

    return issues


def validate_schema_file(path: Path, model: str | None = None) -> list[ValidationIssue]:
    """
    Validate a single schema document file.

    Args:
        path:  Path to a ``.json``/``.yaml``/``.yml`` document.
        model: Expected model name. Defaults to the file stem.

    Returns:
        A list of :class:`ValidationIssue` objects (empty on success).
    """
    model = model or path.stem
    try:
        raw = read_document(path)
    except ConfigError as exc:
        return [ValidationIssue(file=path, message=exc.message)]

    if raw is None:
        return [ValidationIssue(file=path, message="File is empty or contains only whitespace")]

    try:
        check_document(raw, model)
    except ConfigError as exc:
        return [ValidationIssue(file=path, message=exc.message)]

    document = normalize_document(raw)
    issues = [
        ValidationIssue(file=path, message=error.message, path=_json_path(error))
        for error in sorted(
            _document_validator().iter_errors(document), key=lambda e: [str(p) for p in e.path]
        )
    ]
    if not issues:
        issues.extend(_advisories(path, document))
    return issues


def iter_schema_files(schema_dir: Path) -> list[Path]:
    """Schema documents at the root and one level of connection subdirectories."""
    files = [p for p in sorted(schema_dir.iterdir()) if p.suffix in DOCUMENT_SUFFIXES]
    for subdir in sorted(p for p in schema_dir.iterdir() if p.is_dir()):
        files.extend(p for p in sorted(subdir.iterdir()) if p.suffix in DOCUMENT_SUFFIXES)
    return files


def validate_schema_dir(schema_dir: Path, *, strict: bool = False) -> list[ValidationIssue]:
    """
    Validate every schema document under *schema_dir*.

    Args:
        schema_dir: Root schema directory.
        strict:     If ``True``, warnings are escalated to errors.

    Returns:
        A flat list of :class:`ValidationIssue` objects across all files.
        Empty list means all files are valid.
    """
    if not schema_dir.is_dir():
        return [
            ValidationIssue(
                file=schema_dir,
                message=f"Schema directory does not exist: {schema_dir}",
            )
        ]

    all_issues: list[ValidationIssue] = []
    for path in iter_schema_files(schema_dir):
        file_issues = validate_schema_file(path)
        if strict:
            for issue in file_issues:
                if issue.severity == "warning":
                    issue.severity = "error"
        all_issues.extend(file_issues)

    logger.debug("Validated schema directory %s: %d issue(s)", schema_dir, len(all_issues))
    return all_issues
