#!/usr/bin/env python3
# CUI // SP-CTI
"""Validation error and severity model.

Every validator in specgate reports problems as ``ValidationError`` values
drawn from one closed taxonomy (``ErrorCategory``).  Whether a category can
be repaired by the auto-fixer is a constant property of the category, kept
in ``CATEGORY_FIXABILITY``.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional


class SpecgateError(Exception):
    """Base class for errors raised (not reported) by specgate."""
    pass


class StateError(SpecgateError):
    """Raised when the workflow state record cannot be read or written."""
    pass


class RuleConfigError(SpecgateError):
    """Raised when a rule configuration file has an invalid structure."""
    pass


class Severity(str, Enum):
    """Error severity. High blocks a workflow step."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @classmethod
    def parse(cls, value: str) -> "Severity":
        return cls(str(value).strip().upper())


class ErrorCategory(str, Enum):
    """Closed set of problem categories."""

    MISSING_HEADING = "MissingHeading"
    MISSING_WHEN_THEN = "MissingWhenThen"
    MISSING_SCENARIO = "MissingScenario"
    INVALID_REQUIREMENT_FORMAT = "InvalidRequirementFormat"
    DUPLICATE_REQUIREMENT = "DuplicateRequirement"
    BROKEN_REFERENCE = "BrokenReference"
    CIRCULAR_DEPENDENCY = "CircularDependency"
    EMPTY_CONTENT = "EmptyContent"
    INVALID_STRUCTURE = "InvalidStructure"
    INCONSISTENCY = "Inconsistency"

    @property
    def fixable(self) -> bool:
        return CATEGORY_FIXABILITY[self]

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


CATEGORY_FIXABILITY: Dict[ErrorCategory, bool] = {
    ErrorCategory.MISSING_HEADING: True,
    ErrorCategory.MISSING_WHEN_THEN: True,
    ErrorCategory.MISSING_SCENARIO: True,
    ErrorCategory.INVALID_REQUIREMENT_FORMAT: False,
    ErrorCategory.DUPLICATE_REQUIREMENT: False,
    ErrorCategory.BROKEN_REFERENCE: False,
    ErrorCategory.CIRCULAR_DEPENDENCY: False,
    ErrorCategory.EMPTY_CONTENT: False,
    ErrorCategory.INVALID_STRUCTURE: False,
    ErrorCategory.INCONSISTENCY: False,
}

_DISPLAY_NAMES = {
    ErrorCategory.MISSING_HEADING: "Missing Heading",
    ErrorCategory.MISSING_WHEN_THEN: "Missing WHEN/THEN",
    ErrorCategory.MISSING_SCENARIO: "Missing Scenario",
    ErrorCategory.INVALID_REQUIREMENT_FORMAT: "Invalid Requirement Format",
    ErrorCategory.DUPLICATE_REQUIREMENT: "Duplicate Requirement",
    ErrorCategory.BROKEN_REFERENCE: "Broken Reference",
    ErrorCategory.CIRCULAR_DEPENDENCY: "Circular Dependency",
    ErrorCategory.EMPTY_CONTENT: "Empty Content",
    ErrorCategory.INVALID_STRUCTURE: "Invalid Structure",
    ErrorCategory.INCONSISTENCY: "Inconsistency",
}


@dataclass
class ValidationError:
    """A single reported problem."""

    message: str
    file: str
    severity: Severity
    category: ErrorCategory
    line: Optional[int] = None

    @property
    def fixable(self) -> bool:
        return self.category.fixable

    def format(self) -> str:
        """Render as ``[HIGH] file:line - message``."""
        location = f"{self.file}:{self.line}" if self.line is not None else self.file
        return f"[{self.severity.value}] {location} - {self.message}"

    def to_dict(self) -> dict:
        data = {
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "file": self.file,
        }
        if self.line is not None:
            data["line"] = self.line
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ValidationError":
        return cls(
            message=data["message"],
            file=data.get("file", ""),
            severity=Severity.parse(data["severity"]),
            category=ErrorCategory(data["category"]),
            line=data.get("line"),
        )


@dataclass
class ValidationResult:
    """Ordered collection of errors from one or more validators."""

    errors: List[ValidationError] = field(default_factory=list)

    def add(self, error: ValidationError):
        self.errors.append(error)

    def extend(self, errors):
        self.errors.extend(errors)

    def count(self, severity: Severity) -> int:
        return sum(1 for e in self.errors if e.severity == severity)

    def counts(self) -> Dict[str, int]:
        return {
            "high": self.count(Severity.HIGH),
            "medium": self.count(Severity.MEDIUM),
            "low": self.count(Severity.LOW),
        }

    def has_high(self) -> bool:
        return any(e.severity == Severity.HIGH for e in self.errors)

    def is_valid(self, strict: bool = False) -> bool:
        """No High errors, or no errors at all in strict mode."""
        if strict:
            return not self.errors
        return not self.has_high()

    def fixable_errors(self) -> List[ValidationError]:
        return [e for e in self.errors if e.fixable]

    def format(self) -> str:
        return "\n".join(e.format() for e in self.errors)

    def to_report(self, stale_files: Optional[List[str]] = None,
                  strict: bool = False) -> dict:
        """Build the machine-readable error report."""
        report = {
            "valid": self.is_valid(strict),
            "counts": self.counts(),
            "errors": [e.to_dict() for e in self.errors],
            "stale_files": list(stale_files or []),
        }
        return report

    def __len__(self):
        return len(self.errors)


@dataclass
class FixResult:
    """Outcome of an auto-fix run."""

    files_modified: List[str] = field(default_factory=list)
    errors_fixed: int = 0
    unfixable_errors: List[ValidationError] = field(default_factory=list)
    already_satisfied: List[ValidationError] = field(default_factory=list)
    fix_details: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["unfixable_errors"] = [e.to_dict() for e in self.unfixable_errors]
        data["already_satisfied"] = [e.to_dict() for e in self.already_satisfied]
        return data
