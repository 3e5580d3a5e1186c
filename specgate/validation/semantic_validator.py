#!/usr/bin/env python3
# CUI // SP-CTI
"""Semantic validator for spec documents.

Per file: duplicate requirement ids, broken local markdown links, empty or
placeholder requirement titles.  ``validate_batch`` adds cross-file
duplicate detection where the first file in the given order wins.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from specgate.documents.document_parser import (
    REQUIREMENT_HEADING_RE,
    Document,
    load_document,
)
from specgate.documents.validation_rules import ValidationRules
from specgate.schemas.validation import ErrorCategory, Severity, ValidationError

logger = logging.getLogger("specgate.validation.semantic")

_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_EXTERNAL_PREFIXES = ("http://", "https://", "mailto:", "#")


class SemanticValidator:
    """Requirement-level checks that need more than heading structure."""

    def __init__(self, rules: Optional[ValidationRules] = None):
        self.rules = rules or ValidationRules.for_spec()
        markers = [re.escape(m) for m in self.rules.placeholder_markers if m]
        self._placeholder_re = re.compile(rf"\b(?:{'|'.join(markers)})\b") if markers else None

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

    def validate_document(self, doc: Document, file: Optional[str] = None) -> List[ValidationError]:
        file = file or str(doc.path)
        errors: List[ValidationError] = []
        seen: Dict[str, int] = {}

        for lineno, line in doc.lines():
            m = REQUIREMENT_HEADING_RE.match(line)
            if m:
                errors.extend(self._check_requirement(m.group(1), m.group(2).strip(),
                                                      lineno, file, seen))
            errors.extend(self._check_links(line, lineno, doc.path, file))
        return errors

    def _check_requirement(self, req_id: str, title: str, lineno: int, file: str,
                           seen: Dict[str, int]) -> List[ValidationError]:
        errors = []
        if req_id in seen:
            errors.append(ValidationError(
                message=f"Duplicate requirement ID '{req_id}' (first seen at line {seen[req_id]})",
                file=file,
                line=lineno,
                severity=self.rules.severity_for(ErrorCategory.DUPLICATE_REQUIREMENT),
                category=ErrorCategory.DUPLICATE_REQUIREMENT,
            ))
        else:
            seen[req_id] = lineno

        if not title:
            errors.append(ValidationError(
                message=f"Requirement '{req_id}' has empty title",
                file=file,
                line=lineno,
                severity=Severity.HIGH,
                category=ErrorCategory.EMPTY_CONTENT,
            ))
        elif self._placeholder_re and self._placeholder_re.search(title):
            errors.append(ValidationError(
                message=f"Requirement '{req_id}' contains placeholder text: '{title}'",
                file=file,
                line=lineno,
                severity=Severity.MEDIUM,
                category=ErrorCategory.EMPTY_CONTENT,
            ))
        return errors

    def _check_links(self, line: str, lineno: int, doc_path: Path, file: str) -> List[ValidationError]:
        errors = []
        for match in _LINK_RE.finditer(line):
            target = match.group(2).strip()
            if not target or target.startswith(_EXTERNAL_PREFIXES):
                continue
            # Drop an optional title and in-file fragment
            local = target.split()[0].split("#", 1)[0]
            if not local:
                continue
            resolved = doc_path.parent / local
            if not resolved.exists():
                errors.append(ValidationError(
                    message=f"Broken reference to file: {target}",
                    file=file,
                    line=lineno,
                    severity=self.rules.severity_for(ErrorCategory.BROKEN_REFERENCE),
                    category=ErrorCategory.BROKEN_REFERENCE,
                ))
        return errors

    def validate_batch(self, paths: Sequence[Path],
                       display_names: Optional[Sequence[str]] = None) -> List[ValidationError]:
        """Validate each file, then flag requirement ids repeated across files."""
        names = list(display_names) if display_names else [str(p) for p in paths]
        errors: List[ValidationError] = []
        first_seen: Dict[str, Tuple[str, int]] = {}

        for path, file in zip(paths, names):
            errors.extend(self.validate_file(path, file))
            try:
                doc = load_document(path)
            except (OSError, UnicodeDecodeError):
                continue
            for lineno, line in doc.lines():
                m = REQUIREMENT_HEADING_RE.match(line)
                if not m:
                    continue
                req_id = m.group(1)
                if req_id not in first_seen:
                    first_seen[req_id] = (file, lineno)
                    continue
                first_file, first_line = first_seen[req_id]
                if first_file == file:
                    continue
                errors.append(ValidationError(
                    message=(f"Duplicate requirement ID '{req_id}' across files "
                             f"(first seen in {first_file} at line {first_line})"),
                    file=file,
                    line=lineno,
                    severity=self.rules.severity_for(ErrorCategory.DUPLICATE_REQUIREMENT),
                    category=ErrorCategory.DUPLICATE_REQUIREMENT,
                ))
        logger.debug("Semantic batch over %d file(s): %d error(s)", len(names), len(errors))
        return errors
