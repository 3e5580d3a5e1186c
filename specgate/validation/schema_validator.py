#!/usr/bin/env python3
# CUI // SP-CTI
"""JSON Schema validation of workflow document headers.

The document type comes from the header's ``type`` field, falling back to
the filename.  Schemas live in ``context/schemas/<type>.schema.json`` and
are compiled at most once per validator instance.

Usage:
    validator = SchemaValidator()
    errors = validator.validate_file(Path("changes/add-auth/proposal.md"))
"""

import datetime
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from specgate.documents.document_parser import Document, load_document
from specgate.schemas.validation import ErrorCategory, Severity, ValidationError

logger = logging.getLogger("specgate.validation.schema")

BASE_DIR = Path(__file__).resolve().parent.parent.parent
SCHEMAS_DIR = BASE_DIR / "context" / "schemas"

# Violations of these keywords break the document contract outright.
# Matched case-insensitively as substrings, so dependentRequired counts.
_HIGH_KEYWORDS = ("required", "type", "enum")


class DocumentType(str, Enum):
    PROPOSAL = "proposal"
    TASKS = "tasks"
    SPEC = "spec"
    CHALLENGE = "challenge"
    STATE = "state"

    @property
    def schema_filename(self) -> str:
        return f"{self.value}.schema.json"

    @classmethod
    def from_filename(cls, filename: str) -> Optional["DocumentType"]:
        name = filename.lower()
        if name == "proposal.md":
            return cls.PROPOSAL
        if name == "tasks.md":
            return cls.TASKS
        if name == "challenge.md":
            return cls.CHALLENGE
        if name in ("state.yaml", "state.yml"):
            return cls.STATE
        if name.endswith(".md"):
            return cls.SPEC
        return None

    @classmethod
    def from_type_field(cls, value) -> Optional["DocumentType"]:
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def _to_json_compatible(value: Any) -> Any:
    """YAML dates and non-string keys to their JSON equivalents."""
    if isinstance(value, dict):
        return {str(k): _to_json_compatible(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_compatible(v) for v in value]
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return value


class SchemaValidator:
    """Header schema checks with a per-instance compiled schema cache."""

    def __init__(self, schemas_dir: Optional[Path] = None):
        self.schemas_dir = Path(schemas_dir) if schemas_dir else SCHEMAS_DIR
        self._validators: Dict[DocumentType, Draft202012Validator] = {}

    def _get_validator(self, doc_type: DocumentType) -> Draft202012Validator:
        """Load and compile the schema for *doc_type*.

        Raises ``OSError``, ``json.JSONDecodeError`` or ``SchemaError``.
        """
        if doc_type not in self._validators:
            path = self.schemas_dir / doc_type.schema_filename
            with open(path, "r", encoding="utf-8") as f:
                schema = json.load(f)
            Draft202012Validator.check_schema(schema)
            self._validators[doc_type] = Draft202012Validator(schema)
            logger.debug("Compiled %s schema from %s", doc_type.value, path)
        return self._validators[doc_type]

    def validate_file(self, path: Path, display_name: Optional[str] = None) -> List[ValidationError]:
        path = Path(path)
        file = display_name or str(path)
        if DocumentType.from_filename(path.name) == DocumentType.STATE:
            try:
                data = yaml.safe_load(path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError) as e:
                return [_structure_error(f"Failed to read file: {e}", file)]
            except yaml.YAMLError as e:
                return [_structure_error(f"Invalid YAML: {e}", file)]
            return self.validate_data(data, file, DocumentType.STATE)
        try:
            doc = load_document(path)
        except (OSError, UnicodeDecodeError) as e:
            return [_structure_error(f"Failed to read file: {e}", file)]
        return self.validate_document(doc, file)

    def validate_document(self, doc: Document, file: Optional[str] = None) -> List[ValidationError]:
        file = file or str(doc.path)
        if not doc.has_header:
            logger.debug("%s has no header, schema check skipped", file)
            return []
        try:
            data = doc.header_data()
        except yaml.YAMLError as e:
            return [_structure_error(f"Invalid YAML in frontmatter: {e}", file, line=1)]
        except ValueError as e:
            return [_structure_error(str(e), file, line=1)]
        return self.validate_data(data, file, DocumentType.from_filename(doc.path.name))

    def validate_data(self, data: Any, file: str,
                      fallback_type: Optional[DocumentType] = None) -> List[ValidationError]:
        """Validate an already-parsed header value."""
        data = _to_json_compatible(data if data is not None else {})
        declared = data.get("type") if isinstance(data, dict) else None
        doc_type = DocumentType.from_type_field(declared) or fallback_type
        if doc_type is None:
            return [ValidationError(
                message="Cannot determine document type (no 'type' field and unknown filename)",
                file=file,
                severity=Severity.MEDIUM,
                category=ErrorCategory.INVALID_STRUCTURE,
            )]

        try:
            validator = self._get_validator(doc_type)
        except (OSError, json.JSONDecodeError, SchemaError) as e:
            return [_structure_error(f"Failed to load schema: {e}", file)]

        errors = []
        violations = sorted(validator.iter_errors(data), key=lambda e: (e.json_path, e.message))
        for violation in violations:
            keyword = str(violation.validator).lower()
            severity = Severity.HIGH if any(k in keyword for k in _HIGH_KEYWORDS) else Severity.MEDIUM
            errors.append(ValidationError(
                message=f"{violation.json_path}: {violation.message}",
                file=file,
                severity=severity,
                category=ErrorCategory.INVALID_STRUCTURE,
            ))
        return errors


def _structure_error(message: str, file: str, line: Optional[int] = None) -> ValidationError:
    return ValidationError(
        message=message,
        file=file,
        line=line,
        severity=Severity.HIGH,
        category=ErrorCategory.INVALID_STRUCTURE,
    )
