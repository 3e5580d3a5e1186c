#!/usr/bin/env python3
# CUI // SP-CTI
"""Auto-fixer for mechanically repairable format errors.

Handles MissingHeading, MissingWhenThen and MissingScenario by inserting
template text.  Each fix first checks whether the file already satisfies
the rule, so running the fixer twice with the same error list changes
nothing the second time.  The fixer never re-validates; callers do.

Usage:
    fixer = AutoFixer(change_dir)
    result = fixer.fix_errors(errors)
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from specgate.documents.document_parser import parse_document
from specgate.documents.validation_rules import ValidationRules
from specgate.schemas.validation import ErrorCategory, FixResult, ValidationError

logger = logging.getLogger("specgate.validation.fixer")

_MISSING_HEADING_RE = re.compile(r"^Missing required heading:\s*(.+?)\s*$")

_HEADING_TEMPLATES = {
    "overview": "## Overview\n\n<!-- Describe the purpose and scope of this spec. -->\n",
    "requirements": "## Requirements\n\n<!-- List requirements as ### R<n>: Title headings. -->\n",
    "acceptance criteria": "## Acceptance Criteria\n",
}


class AutoFixer:
    """Applies idempotent text insertions for fixable errors."""

    def __init__(self, project_root: Path, rules: Optional[ValidationRules] = None):
        self.project_root = Path(project_root)
        self.rules = rules or ValidationRules.for_spec()

    def placeholder_scenario(self) -> str:
        marker = "#" * self.rules.scenario_heading_level
        return (
            f"{marker} Scenario: Basic Usage\n"
            f"- **{self.rules.when_marker}** the feature is used\n"
            f"- **{self.rules.then_marker}** it should work correctly\n"
        )

    def fix_errors(self, errors: List[ValidationError]) -> FixResult:
        result = FixResult()
        by_file: Dict[str, List[ValidationError]] = {}
        for error in errors:
            if not error.fixable:
                result.unfixable_errors.append(error)
                continue
            by_file.setdefault(error.file, []).append(error)

        for file, file_errors in by_file.items():
            path = Path(file)
            if not path.is_absolute():
                path = self.project_root / path
            try:
                original = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Cannot fix %s: %s", file, e)
                result.unfixable_errors.extend(file_errors)
                continue

            content = original
            for error in file_errors:
                fixed = self._apply(content, error)
                if fixed is None:
                    result.unfixable_errors.append(error)
                elif fixed == content:
                    result.already_satisfied.append(error)
                else:
                    content = fixed
                    result.errors_fixed += 1
                    result.fix_details.append(f"{file}: {error.message}")

            if content != original:
                path.write_text(content, encoding="utf-8")
                result.files_modified.append(file)
                logger.info("Fixed %s", file)
        return result

    def _apply(self, content: str, error: ValidationError) -> Optional[str]:
        """Fixed content, unchanged content if satisfied, ``None`` if unfixable."""
        if error.category == ErrorCategory.MISSING_HEADING:
            m = _MISSING_HEADING_RE.match(error.message)
            return self.fix_missing_heading(content, m.group(1)) if m else None
        if error.category == ErrorCategory.MISSING_SCENARIO:
            if error.message.startswith("Scenario heading"):
                return None
            if self._scan(content)[0] >= max(1, self.rules.min_scenarios):
                return content
            return self.insert_placeholder_scenario(content)
        if error.category == ErrorCategory.MISSING_WHEN_THEN:
            _, has_when, has_then = self._scan(content)
            if has_when and has_then:
                return content
            return self.insert_placeholder_scenario(content)
        return None

    def fix_missing_heading(self, content: str, heading: str) -> str:
        if re.search(rf"(?im)^#{{1,6}}[ \t]+{re.escape(heading.strip())}", content):
            return content
        section = _HEADING_TEMPLATES.get(heading.strip().lower(),
                                         f"## {heading.strip()}\n\n<!-- Add {heading.strip()} content. -->\n")
        return _append_section(content, section)

    def insert_placeholder_scenario(self, content: str) -> str:
        """Place the template scenario right under the Acceptance Criteria heading."""
        match = re.search(r"(?im)^#{1,6}[ \t]+acceptance criteria.*$", content)
        if not match:
            return _append_section(content, "## Acceptance Criteria\n\n" + self.placeholder_scenario())
        end = match.end()
        head, rest = content[:end], content[end:]
        if rest.startswith("\n"):
            rest = rest[1:]
        separator = "" if rest.startswith("\n") or not rest else "\n"
        return f"{head}\n\n{self.placeholder_scenario()}{separator}{rest}"

    def _scan(self, content: str) -> Tuple[int, bool, bool]:
        """Scenario heading count and WHEN / THEN presence inside lists."""
        scenarios = 0
        in_list = has_when = has_then = False
        for event in parse_document(content, Path("fix.md")).events():
            if event.kind == "heading" and event.level == self.rules.scenario_heading_level:
                scenarios += 1
            elif event.kind == "list_start":
                in_list = True
            elif event.kind == "list_end":
                in_list = False
            elif event.kind == "text" and in_list:
                has_when = has_when or self.rules.when_marker in event.text
                has_then = has_then or self.rules.then_marker in event.text
        return scenarios, has_when, has_then


def _append_section(content: str, section: str) -> str:
    body = content.rstrip("\n")
    return f"{body}\n\n{section}" if body else section
