# [TEMPLATE: CUI // SP-CTI]
"""Tests for specgate.validation.auto_fixer."""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from specgate.documents.validation_rules import ValidationRules
from specgate.schemas.validation import ErrorCategory, Severity, ValidationError
from specgate.validation.auto_fixer import AutoFixer
from specgate.validation.format_validator import FormatValidator


SPEC_AC_WITHOUT_SCENARIOS = """\
# Spec: Login

## Overview
Login support.

## Acceptance Criteria
Users can log in.

## Notes
None.
"""

SPEC_WITHOUT_SECTIONS = """\
# Spec: Login

## Requirements

### R1: Foo
Something.
"""


def _write_spec(tmp_path, content, filename="spec.md"):
    path = tmp_path / filename
    path.write_text(content, encoding="utf-8")
    return path


def _validate(path):
    return FormatValidator(ValidationRules.for_spec()).validate_file(path, display_name=path.name)


class TestPlaceholderScenario:
    def test_inserted_directly_under_acceptance_criteria(self, tmp_path):
        path = _write_spec(tmp_path, SPEC_AC_WITHOUT_SCENARIOS)
        errors = _validate(path)
        assert ErrorCategory.MISSING_WHEN_THEN in [e.category for e in errors]

        result = AutoFixer(tmp_path).fix_errors(errors)
        content = path.read_text()
        assert result.errors_fixed >= 1
        assert result.files_modified == ["spec.md"]
        assert "## Acceptance Criteria\n\n#### Scenario: Basic Usage\n- **WHEN**" in content
        assert "- **THEN** it should work correctly\n\nUsers can log in." in content
        assert _validate(path) == []

    def test_appends_section_when_absent(self, tmp_path):
        fixer = AutoFixer(tmp_path)
        fixed = fixer.insert_placeholder_scenario("# Spec\n")
        assert fixed == "# Spec\n\n## Acceptance Criteria\n\n" + fixer.placeholder_scenario()

    def test_placeholder_uses_rule_levels(self, tmp_path):
        rules = ValidationRules.for_spec()
        rules.scenario_heading_level = 3
        assert AutoFixer(tmp_path, rules).placeholder_scenario().startswith("### Scenario: Basic Usage\n")


class TestMissingHeadings:
    def test_fixes_full_error_list(self, tmp_path):
        path = _write_spec(tmp_path, SPEC_WITHOUT_SECTIONS)
        result = AutoFixer(tmp_path).fix_errors(_validate(path))
        assert result.errors_fixed == 3
        assert result.unfixable_errors == []
        assert _validate(path) == []

    def test_existing_heading_is_satisfied(self, tmp_path):
        fixer = AutoFixer(tmp_path)
        content = "# T\n\n### overview\n"
        assert fixer.fix_missing_heading(content, "Overview") == content

    def test_unknown_heading_gets_generic_section(self, tmp_path):
        fixed = AutoFixer(tmp_path).fix_missing_heading("# T\n", "Rollout Plan")
        assert fixed.startswith("# T\n\n## Rollout Plan\n")


class TestIdempotence:
    def test_second_run_changes_nothing(self, tmp_path):
        path = _write_spec(tmp_path, SPEC_WITHOUT_SECTIONS)
        errors = _validate(path)
        fixer = AutoFixer(tmp_path)
        fixer.fix_errors(errors)
        after_first = path.read_text()

        second = fixer.fix_errors(errors)
        assert second.errors_fixed == 0
        assert second.files_modified == []
        assert len(second.already_satisfied) == len(errors)
        assert path.read_text() == after_first

    def test_unchanged_file_not_rewritten(self, tmp_path):
        path = _write_spec(tmp_path, SPEC_AC_WITHOUT_SCENARIOS)
        errors = _validate(path)
        AutoFixer(tmp_path).fix_errors(errors)
        mtime = path.stat().st_mtime_ns
        AutoFixer(tmp_path).fix_errors(errors)
        assert path.stat().st_mtime_ns == mtime


class TestUnfixable:
    def test_non_fixable_categories_pass_through(self, tmp_path):
        error = ValidationError("Circular dependency detected: 1 → 2 → 1", "tasks.md",
                                Severity.HIGH, ErrorCategory.CIRCULAR_DEPENDENCY)
        result = AutoFixer(tmp_path).fix_errors([error])
        assert result.unfixable_errors == [error]
        assert result.errors_fixed == 0

    def test_missing_target_file(self, tmp_path):
        error = ValidationError("Missing required heading: Overview", "specs/nope.md",
                                Severity.HIGH, ErrorCategory.MISSING_HEADING)
        result = AutoFixer(tmp_path).fix_errors([error])
        assert result.unfixable_errors == [error]

    def test_bad_scenario_heading_is_unfixable(self, tmp_path):
        path = _write_spec(tmp_path, "## Acceptance Criteria\n")
        error = ValidationError("Scenario heading 'x' doesn't match pattern '^Scenario:'", path.name,
                                Severity.HIGH, ErrorCategory.MISSING_SCENARIO, line=1)
        result = AutoFixer(tmp_path).fix_errors([error])
        assert result.unfixable_errors == [error]
        assert path.read_text() == "## Acceptance Criteria\n"

    @pytest.mark.parametrize("message", ["something else", ""])
    def test_unparseable_heading_message(self, tmp_path, message):
        _write_spec(tmp_path, "# T\n")
        error = ValidationError(message, "spec.md", Severity.HIGH, ErrorCategory.MISSING_HEADING)
        assert AutoFixer(tmp_path).fix_errors([error]).unfixable_errors == [error]
