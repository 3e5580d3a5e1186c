#!/usr/bin/env python3
# CUI // SP-CTI
"""Shared models for specgate validators and the state tracker.

Plain dataclass models with ``to_dict()`` methods so every validator and
the CLI can emit the same JSON report shape.
"""

from specgate.schemas.validation import (
    CATEGORY_FIXABILITY,
    ErrorCategory,
    FixResult,
    RuleConfigError,
    Severity,
    SpecgateError,
    StateError,
    ValidationError,
    ValidationResult,
)
from specgate.schemas.documents import (
    IssueBlock,
    RequirementBlock,
    ScenarioBlock,
    SpecRef,
    TaskAction,
    TaskBlock,
)
from specgate.schemas.state import (
    ChecksumEntry,
    LlmCall,
    Phase,
    StalenessReport,
    Telemetry,
    ValidationEntry,
    ValidationOutcome,
    WorkflowState,
)

__all__ = [
    "CATEGORY_FIXABILITY",
    "ErrorCategory",
    "FixResult",
    "RuleConfigError",
    "Severity",
    "SpecgateError",
    "StateError",
    "ValidationError",
    "ValidationResult",
    "IssueBlock",
    "RequirementBlock",
    "ScenarioBlock",
    "SpecRef",
    "TaskAction",
    "TaskBlock",
    "ChecksumEntry",
    "LlmCall",
    "Phase",
    "StalenessReport",
    "Telemetry",
    "ValidationEntry",
    "ValidationOutcome",
    "WorkflowState",
]
