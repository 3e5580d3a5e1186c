#!/usr/bin/env python3
# CUI // SP-CTI
"""Validate one workflow instance (change directory) end to end.

Runs, in order:
  1. proposal.md  -- header schema + lenient format rules
  2. tasks.md     -- header schema + lenient format rules
  3. CHALLENGE.md -- header schema (when present); its issue blocks are
                     counted into a validate-challenge history entry
  4. specs/*.md   -- header schema + strict format rules, then semantic
                     checks in batch (cross-file duplicate ids)
  5. consistency  -- task refs, proposal <-> specs, dependency cycles,
                     spec hierarchy
Then checks staleness against STATE.yaml, appends a history entry and, when
no High error remains, refreshes checksums.  ``--fix`` applies the
auto-fixer and re-validates once.

Usage:
    python -m specgate.validation.change_validator --change-dir changes/add-auth --json
    python -m specgate.validation.change_validator --change-dir changes/add-auth --human --strict
    python -m specgate.validation.change_validator --change-dir changes/add-auth --fix --json
"""

import argparse
import dataclasses
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from specgate.documents.document_parser import load_document, parse_issue_blocks
from specgate.documents.validation_rules import ValidationRules, load_all_rules
from specgate.schemas.state import StalenessReport, ValidationMode
from specgate.schemas.validation import (
    ErrorCategory,
    FixResult,
    Severity,
    StateError,
    ValidationError,
    ValidationResult,
    RuleConfigError,
)
from specgate.state.state_tracker import StateTracker
from specgate.utils import PROJECT_ROOT, make_run_id, setup_logger
from specgate.validation.auto_fixer import AutoFixer
from specgate.validation.consistency_validator import ConsistencyValidator, list_spec_files
from specgate.validation.format_validator import FormatValidator
from specgate.validation.schema_validator import SchemaValidator
from specgate.validation.semantic_validator import SemanticValidator

logger = logging.getLogger("specgate.validation.change")

VALIDATION_STEP = "validate-proposal"
_KIND_BY_FILE = (("proposal.md", "proposal"), ("tasks.md", "tasks"))
CHALLENGE_FILE = "CHALLENGE.md"
_SCHEMA_ONLY_FILES = (CHALLENGE_FILE,)


@dataclasses.dataclass
class ChangeValidationReport:
    """Outcome of validating one change directory."""
    change_id: str
    result: ValidationResult
    staleness: StalenessReport
    strict: bool = False
    fix: Optional[FixResult] = None
    recorded: bool = False

    @property
    def valid(self) -> bool:
        return self.result.is_valid(self.strict)

    def to_dict(self) -> dict:
        report = self.result.to_report(stale_files=self.staleness.stale, strict=self.strict)
        report["change_id"] = self.change_id
        report["mode"] = ValidationMode.STRICT.value if self.strict else ValidationMode.NORMAL.value
        if self.fix is not None:
            report["fix"] = self.fix.to_dict()
        return report


class ChangeValidator:
    """Runs every validator over a change directory in a fixed order."""

    def __init__(self, change_dir: Path, rules: Optional[Dict[str, ValidationRules]] = None,
                 schemas_dir: Optional[Path] = None):
        self.change_dir = Path(change_dir)
        self.rules = rules or load_all_rules()
        self.schema_validator = SchemaValidator(schemas_dir)
        self._format = {kind: FormatValidator(r) for kind, r in self.rules.items()}
        self._semantic = SemanticValidator(self.rules["spec"])

    def collect_errors(self) -> ValidationResult:
        if not self.change_dir.is_dir():
            raise FileNotFoundError(f"Change directory not found: {self.change_dir}")
        result = ValidationResult()
        for name, kind in _KIND_BY_FILE:
            path = self.change_dir / name
            if path.exists():
                result.extend(self._validate_document(path, name, kind))
        for name in _SCHEMA_ONLY_FILES:
            path = self.change_dir / name
            if path.exists():
                result.extend(self._validate_document(path, name, None))

        readable_specs, names = [], []
        for spec in list_spec_files(self.change_dir):
            name = spec.relative_to(self.change_dir).as_posix()
            errors = self._validate_document(spec, name, "spec")
            result.extend(errors)
            if not any(e.category == ErrorCategory.INVALID_STRUCTURE and e.message.startswith("Failed to read")
                       for e in errors):
                readable_specs.append(spec)
                names.append(name)
        if readable_specs:
            result.extend(self._semantic.validate_batch(readable_specs, names))

        result.extend(ConsistencyValidator(self.change_dir).validate_all())
        return result

    def _validate_document(self, path: Path, name: str, kind: Optional[str]) -> List[ValidationError]:
        try:
            doc = load_document(path)
        except (OSError, UnicodeDecodeError) as e:
            return [ValidationError(
                message=f"Failed to read file: {e}",
                file=name,
                severity=Severity.HIGH,
                category=ErrorCategory.INVALID_STRUCTURE,
            )]
        errors = []
        if doc.has_header:
            errors.extend(self.schema_validator.validate_document(doc, name))
        if kind is not None:
            errors.extend(self._format[kind].validate_document(doc, name))
        return errors

    def _record_challenge(self, tracker: StateTracker) -> None:
        """Append a validate-challenge entry summarising CHALLENGE.md issue blocks."""
        path = self.change_dir / CHALLENGE_FILE
        if not path.is_file():
            return
        try:
            doc = load_document(path)
            header = doc.header_data() or {}
        except (OSError, UnicodeDecodeError, yaml.YAMLError, ValueError) as e:
            # already reported by collect_errors
            logger.debug(f"Skipping challenge record: {e}")
            return
        issues = parse_issue_blocks(doc.text)
        counts = {"high": 0, "medium": 0, "low": 0}
        for issue in issues:
            if issue.severity in counts:
                counts[issue.severity] += 1
        verdict = str(header.get("verdict") or "UNKNOWN")
        tracker.record_challenge_validation(verdict, len(issues), **counts)
        logger.info(f"Challenge {verdict}: {len(issues)} issue(s) parsed")

    def validate(self, strict: bool = False, fix: bool = False, record: bool = True) -> ChangeValidationReport:
        result = self.collect_errors()

        fix_result = None
        if fix and result.fixable_errors():
            fix_result = AutoFixer(self.change_dir, self.rules["spec"]).fix_errors(result.errors)
            logger.info(f"Auto-fix: {fix_result.errors_fixed} fixed in "
                        f"{len(fix_result.files_modified)} file(s)")
            if fix_result.files_modified:
                result = self.collect_errors()

        tracker = StateTracker.load(self.change_dir)
        staleness = tracker.check_staleness()
        report = ChangeValidationReport(
            change_id=tracker.state.change_id,
            result=result,
            staleness=staleness,
            strict=strict,
            fix=fix_result,
        )
        if not record:
            return report

        mode = ValidationMode.STRICT if strict else ValidationMode.NORMAL
        tracker.record_validation(VALIDATION_STEP, mode, result,
                                  rules_hash=self.rules["spec"].rules_hash())
        self._record_challenge(tracker)
        if not result.has_high():
            tracker.update_all_checksums()
            tracker.set_last_action(VALIDATION_STEP)
        tracker.save()
        report.recorded = True
        return report


def validate_change(change_dir: Path, strict: bool = False, fix: bool = False,
                    record: bool = True) -> ChangeValidationReport:
    return ChangeValidator(change_dir).validate(strict=strict, fix=fix, record=record)


# ---------------------------------------------------------------------------
# Output formatting
# ---------------------------------------------------------------------------

def _format_human(report: ChangeValidationReport) -> str:
    """Format a change validation report for terminal display."""
    lines = []
    counts = report.result.counts()
    indicator = "[PASS]" if report.valid else "[FAIL]"

    lines.append(f"{'=' * 60}")
    lines.append(f"Validation Report: {report.change_id}")
    lines.append(f"{'=' * 60}")
    lines.append(f"  Result: {indicator}{' (strict)' if report.strict else ''}")
    lines.append(
        f"  High: {counts['high']} | Medium: {counts['medium']} | Low: {counts['low']}"
    )
    if report.fix is not None:
        lines.append(
            f"  Auto-fix: {report.fix.errors_fixed} fixed, "
            f"{len(report.fix.files_modified)} file(s) modified"
        )
    lines.append("")

    for error in report.result.errors:
        lines.append(f"  {error.format()}")

    if report.staleness.stale:
        lines.append("")
        lines.append("  Changed since last validation:")
        for name in report.staleness.stale:
            lines.append(f"    - {name}")

    lines.append(f"{'=' * 60}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(
        description="Validate a workflow change directory (proposal, tasks, specs)"
    )
    parser.add_argument("--change-dir", required=True, help="Workflow instance directory")
    parser.add_argument("--strict", action="store_true", help="Any error fails validation")
    parser.add_argument("--fix", action="store_true", help="Auto-fix fixable errors, then re-validate")
    parser.add_argument("--no-record", action="store_true", help="Do not update STATE.yaml")
    parser.add_argument("--rules", help="Path to a validation rules YAML file")
    parser.add_argument("--json", action="store_true", help="JSON output")
    parser.add_argument("--human", action="store_true", help="Terminal-friendly output")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-dir", action="store_true",
                        help="Also log to .tmp/validation_runs/<run_id>/")
    args = parser.parse_args()

    setup_logger(make_run_id(), "validate", verbose=args.verbose,
                 log_root=PROJECT_ROOT / ".tmp" / "validation_runs" if args.log_dir else None)

    try:
        rules = load_all_rules(Path(args.rules) if args.rules else None)
        report = ChangeValidator(Path(args.change_dir), rules).validate(
            strict=args.strict, fix=args.fix, record=not args.no_record,
        )
    except (ValueError, FileNotFoundError, StateError, RuleConfigError) as exc:
        if args.json:
            print(json.dumps({"status": "error", "error": str(exc)}, indent=2))
        else:
            print(f"Error: {exc}")
        raise SystemExit(1)

    if args.human:
        print(_format_human(report))
    else:
        print(json.dumps(report.to_dict(), indent=2))
    raise SystemExit(0 if report.valid else 1)


if __name__ == "__main__":
    main()
