# [TEMPLATE: CUI // SP-CTI]
"""Tests for specgate.validation.schema_validator."""

import json
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from specgate.schemas.validation import ErrorCategory, Severity
from specgate.validation.schema_validator import SCHEMAS_DIR, DocumentType, SchemaValidator


def _write(tmp_path, name, content):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


class TestDocumentType:
    @pytest.mark.parametrize("name,expected", [
        ("proposal.md", DocumentType.PROPOSAL),
        ("tasks.md", DocumentType.TASKS),
        ("CHALLENGE.md", DocumentType.CHALLENGE),
        ("STATE.yaml", DocumentType.STATE),
        ("auth-flow.md", DocumentType.SPEC),
        ("notes.txt", None),
    ])
    def test_from_filename(self, name, expected):
        assert DocumentType.from_filename(name) == expected

    def test_from_type_field(self):
        assert DocumentType.from_type_field("Spec") == DocumentType.SPEC
        assert DocumentType.from_type_field("unknown") is None
        assert DocumentType.from_type_field(3) is None

    def test_every_type_has_a_schema_file(self):
        for doc_type in DocumentType:
            assert (SCHEMAS_DIR / doc_type.schema_filename).exists()


class TestSchemaValidator:
    def test_valid_proposal(self, tmp_path):
        path = _write(tmp_path, "proposal.md",
                      "---\nid: add-auth\ntype: proposal\nversion: 1\nstatus: proposed\n---\n# Body\n")
        assert SchemaValidator().validate_file(path) == []

    def test_missing_required_field_is_high(self, tmp_path):
        path = _write(tmp_path, "proposal.md", "---\nid: add-auth\ntype: proposal\nversion: 1\n---\n")
        errors = SchemaValidator().validate_file(path)
        assert len(errors) == 1
        assert errors[0].severity == Severity.HIGH
        assert errors[0].category == ErrorCategory.INVALID_STRUCTURE
        assert "status" in errors[0].message

    def test_enum_violation_is_high(self, tmp_path):
        path = _write(tmp_path, "proposal.md",
                      "---\nid: add-auth\ntype: proposal\nversion: 1\nstatus: shipped\n---\n")
        errors = SchemaValidator().validate_file(path)
        assert [e.severity for e in errors] == [Severity.HIGH]
        assert errors[0].message.startswith("$.status")

    def test_other_keyword_is_medium(self, tmp_path):
        path = _write(tmp_path, "proposal.md",
                      "---\nid: add-auth\ntype: proposal\nversion: 0\nstatus: proposed\n---\n")
        errors = SchemaValidator().validate_file(path)
        assert [e.severity for e in errors] == [Severity.MEDIUM]

    def test_declared_type_wins_over_filename(self, tmp_path):
        path = _write(tmp_path, "proposal.md",
                      "---\nid: x\ntype: spec\ntitle: X\nversion: 1\n---\n")
        assert SchemaValidator().validate_file(path) == []

    def test_spec_inferred_from_filename(self, tmp_path):
        path = _write(tmp_path, "auth.md", "---\nid: auth\nversion: 1\n---\n")
        errors = SchemaValidator().validate_file(path)
        messages = " ".join(e.message for e in errors)
        assert "title" in messages and "type" in messages

    def test_unknown_type_is_medium(self, tmp_path):
        path = _write(tmp_path, "notes.txt", "---\nid: x\n---\n")
        errors = SchemaValidator().validate_file(path)
        assert [(e.severity, e.category) for e in errors] == [(Severity.MEDIUM, ErrorCategory.INVALID_STRUCTURE)]

    def test_no_header_is_skipped(self, tmp_path):
        assert SchemaValidator().validate_file(_write(tmp_path, "auth.md", "# Title\n")) == []

    def test_invalid_header_yaml(self, tmp_path):
        path = _write(tmp_path, "auth.md", "---\nid: [broken\n---\n")
        errors = SchemaValidator().validate_file(path)
        assert len(errors) == 1
        assert errors[0].message.startswith("Invalid YAML in frontmatter")

    def test_yaml_dates_are_json_compatible(self, tmp_path):
        path = _write(tmp_path, "proposal.md",
                      "---\nid: add-auth\ntype: proposal\nversion: 1\nstatus: proposed\n"
                      "created_at: 2024-05-01\n---\n")
        assert SchemaValidator().validate_file(path) == []

    def test_state_file_validated_whole(self, tmp_path):
        path = _write(tmp_path, "STATE.yaml", "change_id: add-auth\nphase: limbo\n")
        errors = SchemaValidator().validate_file(path)
        assert len(errors) == 1
        assert "phase" in errors[0].message

    def test_unreadable_file(self, tmp_path):
        errors = SchemaValidator().validate_file(tmp_path / "missing.md")
        assert [e.category for e in errors] == [ErrorCategory.INVALID_STRUCTURE]


class TestSchemaLoading:
    def test_missing_schema_reports_load_failure(self, tmp_path):
        path = _write(tmp_path, "auth.md", "---\nid: auth\n---\n")
        errors = SchemaValidator(tmp_path / "no-schemas").validate_file(path)
        assert len(errors) == 1
        assert errors[0].severity == Severity.HIGH
        assert errors[0].message.startswith("Failed to load schema")

    def test_invalid_schema_reports_load_failure(self, tmp_path):
        schemas = tmp_path / "schemas"
        schemas.mkdir()
        (schemas / "spec.schema.json").write_text(json.dumps({"type": "not-a-type"}))
        path = _write(tmp_path, "auth.md", "---\nid: auth\n---\n")
        errors = SchemaValidator(schemas).validate_file(path)
        assert errors[0].message.startswith("Failed to load schema")

    def test_dependent_required_is_high(self, tmp_path):
        schemas = tmp_path / "schemas"
        schemas.mkdir()
        (schemas / "spec.schema.json").write_text(json.dumps({
            "type": "object",
            "dependentRequired": {"parent_spec": ["related_specs"]},
            "properties": {"title": {"maxLength": 3}},
        }))
        path = _write(tmp_path, "auth.md", "---\nparent_spec: base\ntitle: long title\n---\n")
        errors = SchemaValidator(schemas).validate_file(path)
        assert [(e.severity, e.message.split(":")[0]) for e in errors] == [
            (Severity.HIGH, "$"),
            (Severity.MEDIUM, "$.title"),
        ]

    def test_schema_compiled_once_per_instance(self, tmp_path):
        schemas = tmp_path / "schemas"
        schemas.mkdir()
        schema_file = schemas / "spec.schema.json"
        schema_file.write_text(json.dumps({"type": "object", "required": ["id"]}))
        validator = SchemaValidator(schemas)
        path = _write(tmp_path, "auth.md", "---\ntitle: x\n---\n")
        assert len(validator.validate_file(path)) == 1
        schema_file.unlink()
        assert len(validator.validate_file(path)) == 1
        assert len(SchemaValidator(schemas).validate_file(path)) == 1
        assert SchemaValidator(schemas).validate_file(path)[0].message.startswith("Failed to load schema")
