#!/usr/bin/env python3
# CUI // SP-CTI
"""Format validator for workflow markdown documents.

Checks one document against the ValidationRules for its kind:

* level-3 headings inside the Requirements section match the requirement pattern
* scenario headings (level 4 by default) match the scenario pattern
* every required heading is present (case-insensitive, exact or prefix)
* at least ``min_scenarios`` scenario headings exist
* WHEN / THEN markers appear inside list blocks when scenarios are required

Usage:
    python -m specgate.validation.format_validator --file specs/auth.md --kind spec --json
"""

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional

from specgate.documents.document_parser import Document, load_document, parse_document
from specgate.documents.validation_rules import (
    DOCUMENT_KINDS,
    ValidationRules,
    load_validation_rules,
)
from specgate.schemas.validation import (
    ErrorCategory,
    Severity,
    ValidationError,
    ValidationResult,
)

logger = logging.getLogger("specgate.validation.format")


class FormatValidator:
    """Structural checks for one document kind."""

    def __init__(self, rules: ValidationRules):
        self.rules = rules
        self._requirement_re = rules.compile_pattern(rules.requirement_pattern)
        self._scenario_re = rules.compile_pattern(rules.scenario_pattern)

    def validate_file(self, path: Path, display_name: Optional[str] = None) -> List[ValidationError]:
        file = display_name or str(path)
        try:
            doc = load_document(path)
        except (OSError, UnicodeDecodeError) as e:
            return [ValidationError(
                message=f"Failed to read file: {e}",
                file=file,
                severity=Severity.HIGH,
                category=ErrorCategory.INVALID_STRUCTURE,
            )]
        return self.validate_document(doc, file)

    def validate_content(self, text: str, file: str) -> List[ValidationError]:
        return self.validate_document(parse_document(text, Path(file)), file)

    def validate_document(self, doc: Document, file: Optional[str] = None) -> List[ValidationError]:
        file = file or str(doc.path)
        if not doc.text.strip():
            return [ValidationError(
                message="File is empty",
                file=file,
                severity=Severity.HIGH,
                category=ErrorCategory.EMPTY_CONTENT,
            )]

        rules = self.rules
        errors: List[ValidationError] = []
        headings: List[str] = []
        scenario_count = 0
        in_requirements = False
        in_list = False
        has_acceptance = False
        has_when = False
        has_then = False

        for event in doc.events():
            if event.kind == "list_start":
                in_list = True
            elif event.kind == "list_end":
                in_list = False
            elif event.kind == "text":
                if in_list:
                    has_when = has_when or rules.when_marker in event.text
                    has_then = has_then or rules.then_marker in event.text
            elif event.kind == "heading":
                headings.append(event.text)
                lowered = event.text.lower()
                if event.level <= 2:
                    in_requirements = event.level == 2 and rules.requirements_section in lowered
                if "acceptance criteria" in lowered:
                    has_acceptance = True

                is_scenario = event.level == rules.scenario_heading_level
                scenario_ok = not self._scenario_re or bool(self._scenario_re.search(event.text))
                requirement_slot = event.level == 3 and in_requirements and self._requirement_re is not None
                if is_scenario and (scenario_ok or not requirement_slot):
                    scenario_count += 1

                if requirement_slot and not (is_scenario and scenario_ok):
                    if not self._requirement_re.search(event.text):
                        errors.append(ValidationError(
                            message=(f"Requirement heading '{event.text}' doesn't match "
                                     f"pattern '{rules.requirement_pattern}'"),
                            file=file,
                            line=event.line,
                            severity=rules.severity_for(ErrorCategory.INVALID_REQUIREMENT_FORMAT),
                            category=ErrorCategory.INVALID_REQUIREMENT_FORMAT,
                        ))
                elif is_scenario and not scenario_ok:
                    errors.append(ValidationError(
                        message=(f"Scenario heading '{event.text}' doesn't match "
                                 f"pattern '{rules.scenario_pattern}'"),
                        file=file,
                        line=event.line,
                        severity=rules.severity_for(ErrorCategory.MISSING_SCENARIO),
                        category=ErrorCategory.MISSING_SCENARIO,
                    ))

        errors.extend(self._check_required_headings(headings, file))

        if scenario_count < rules.min_scenarios:
            errors.append(ValidationError(
                message=f"Found {scenario_count} scenarios, but minimum {rules.min_scenarios} required",
                file=file,
                severity=rules.severity_for(ErrorCategory.MISSING_SCENARIO),
                category=ErrorCategory.MISSING_SCENARIO,
            ))

        # Nothing to look for WHEN/THEN in without scenarios or acceptance criteria
        if rules.require_when_then and rules.min_scenarios > 0 and (scenario_count or has_acceptance):
            for marker, present in ((rules.when_marker, has_when), (rules.then_marker, has_then)):
                if not present:
                    errors.append(ValidationError(
                        message=f"Missing **{marker}** clause in scenarios",
                        file=file,
                        severity=rules.severity_for(ErrorCategory.MISSING_WHEN_THEN),
                        category=ErrorCategory.MISSING_WHEN_THEN,
                    ))
        logger.debug("Format check of %s: %d error(s)", file, len(errors))
        return errors

    def _check_required_headings(self, headings: List[str], file: str) -> List[ValidationError]:
        errors = []
        normalized = [h.strip().lower() for h in headings]
        for required in self.rules.required_headings:
            target = required.strip().lower()
            if any(h == target or h.startswith(target) for h in normalized):
                continue
            errors.append(ValidationError(
                message=f"Missing required heading: {required}",
                file=file,
                severity=self.rules.severity_for(ErrorCategory.MISSING_HEADING),
                category=ErrorCategory.MISSING_HEADING,
            ))
        return errors


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="Check a workflow document's markdown structure")
    parser.add_argument("--file", required=True, help="Document to check")
    parser.add_argument("--kind", choices=DOCUMENT_KINDS, default="spec",
                        help="Rule preset (default: spec)")
    parser.add_argument("--rules", help="Path to a validation rules YAML file")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()

    rules = load_validation_rules(args.kind, Path(args.rules) if args.rules else None)
    result = ValidationResult(FormatValidator(rules).validate_file(Path(args.file)))
    if args.json:
        print(json.dumps(result.to_report(), indent=2))
    else:
        print(result.format() or "No format errors.")
    raise SystemExit(0 if result.is_valid() else 1)


if __name__ == "__main__":
    main()
