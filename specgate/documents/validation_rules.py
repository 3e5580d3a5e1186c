#!/usr/bin/env python3
# CUI // SP-CTI
"""Validation rule presets per document kind.

Rules are read from ``args/validation_rules.yaml`` and fall back to the
hardcoded defaults below when the file is missing or unreadable.  Three
kinds exist: ``proposal`` and ``tasks`` (lenient) and ``spec`` (strict).

Usage:
    rules = load_validation_rules("spec")
    rules = ValidationRules.for_spec()
"""

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Pattern

import yaml

from specgate.schemas.validation import ErrorCategory, RuleConfigError, Severity

logger = logging.getLogger("specgate.documents.rules")

BASE_DIR = Path(__file__).resolve().parent.parent.parent
RULES_PATH = BASE_DIR / "args" / "validation_rules.yaml"

DOCUMENT_KINDS = ("proposal", "tasks", "spec")

_DEFAULT_SEVERITY = {
    "MissingHeading": "HIGH",
    "MissingWhenThen": "HIGH",
    "MissingScenario": "HIGH",
    "InvalidRequirementFormat": "HIGH",
    "DuplicateRequirement": "HIGH",
    "BrokenReference": "MEDIUM",
}

_DEFAULT_RULES = {
    "proposal": {
        "requirement_pattern": "",
        "scenario_pattern": "",
        "required_headings": [],
        "min_scenarios": 0,
        "require_when_then": False,
    },
    "tasks": {
        "requirement_pattern": "",
        "scenario_pattern": "",
        "required_headings": [],
        "min_scenarios": 0,
        "require_when_then": False,
    },
    "spec": {
        "requirement_pattern": r"^R\d+:",
        "scenario_pattern": r"^Scenario:",
        "scenario_heading_level": 4,
        "requirements_section": "requirements",
        "required_headings": ["Overview", "Acceptance Criteria"],
        "min_scenarios": 1,
        "require_when_then": True,
        "when_marker": "WHEN",
        "then_marker": "THEN",
    },
}

_DEFAULT_PLACEHOLDERS = ["TODO", "TBD", "FIXME", "XXX"]


# ---------------------------------------------------------------------------
# Rules model
# ---------------------------------------------------------------------------

@dataclass
class ValidationRules:
    """Format rules for one document kind."""
    kind: str
    requirement_pattern: str = ""
    scenario_pattern: str = ""
    scenario_heading_level: int = 4
    requirements_section: str = "requirements"
    required_headings: List[str] = field(default_factory=list)
    min_scenarios: int = 0
    require_when_then: bool = False
    when_marker: str = "WHEN"
    then_marker: str = "THEN"
    severity_map: Dict[ErrorCategory, Severity] = field(default_factory=dict)
    placeholder_markers: List[str] = field(default_factory=lambda: list(_DEFAULT_PLACEHOLDERS))

    def severity_for(self, category: ErrorCategory) -> Severity:
        return self.severity_map.get(category, Severity.HIGH)

    def compile_pattern(self, pattern: str) -> Optional[Pattern]:
        """Compile a rule regex; ``None`` (check skipped) if empty or invalid."""
        if not pattern:
            return None
        try:
            return re.compile(pattern)
        except re.error as e:
            logger.warning("Invalid %s rule pattern %r, check skipped: %s", self.kind, pattern, e)
            return None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "requirement_pattern": self.requirement_pattern,
            "scenario_pattern": self.scenario_pattern,
            "scenario_heading_level": self.scenario_heading_level,
            "requirements_section": self.requirements_section,
            "required_headings": list(self.required_headings),
            "min_scenarios": self.min_scenarios,
            "require_when_then": self.require_when_then,
            "when_marker": self.when_marker,
            "then_marker": self.then_marker,
            "severity": {c.value: s.value for c, s in self.severity_map.items()},
            "placeholder_markers": list(self.placeholder_markers),
        }

    def rules_hash(self) -> str:
        """Stable hash recorded in validation history."""
        payload = json.dumps(self.to_dict(), sort_keys=True)
        return "sha256:" + hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

    @classmethod
    def from_config(cls, kind: str, rule_cfg: dict, severity_cfg: dict,
                    placeholders: Optional[List[str]] = None) -> "ValidationRules":
        rules = cls(kind=kind)
        for key in ("requirement_pattern", "scenario_pattern", "requirements_section",
                    "when_marker", "then_marker"):
            if key in rule_cfg and rule_cfg[key] is not None:
                setattr(rules, key, str(rule_cfg[key]))
        if "scenario_heading_level" in rule_cfg:
            rules.scenario_heading_level = int(rule_cfg["scenario_heading_level"])
        if "min_scenarios" in rule_cfg:
            rules.min_scenarios = int(rule_cfg["min_scenarios"])
        if "require_when_then" in rule_cfg:
            rules.require_when_then = bool(rule_cfg["require_when_then"])
        rules.required_headings = [str(h) for h in rule_cfg.get("required_headings") or []]
        rules.severity_map = _parse_severity_map(severity_cfg, kind)
        if placeholders is not None:
            rules.placeholder_markers = [str(p) for p in placeholders]
        return rules

    @classmethod
    def for_proposal(cls) -> "ValidationRules":
        return _default_rules("proposal")

    @classmethod
    def for_tasks(cls) -> "ValidationRules":
        return _default_rules("tasks")

    @classmethod
    def for_spec(cls) -> "ValidationRules":
        return _default_rules("spec")


# ---------------------------------------------------------------------------
# Loaders (args file with hardcoded fallbacks)
# ---------------------------------------------------------------------------

def _parse_severity_map(config: dict, kind: str) -> Dict[ErrorCategory, Severity]:
    severity_map = {}
    for name, level in {**_DEFAULT_SEVERITY, **(config or {})}.items():
        try:
            category = ErrorCategory(name)
        except ValueError:
            logger.warning("Unknown error category %r in %s severity map, ignored", name, kind)
            continue
        try:
            severity_map[category] = Severity.parse(level)
        except ValueError:
            fallback = _DEFAULT_SEVERITY.get(name, "HIGH")
            logger.warning("Unknown severity %r for %s, using %s", level, name, fallback)
            severity_map[category] = Severity.parse(fallback)
    return severity_map


def _default_rules(kind: str) -> ValidationRules:
    return ValidationRules.from_config(kind, _DEFAULT_RULES[kind], {}, _DEFAULT_PLACEHOLDERS)


def _load_config(config_path: Optional[Path] = None) -> dict:
    """Load the rules file, fallback to an empty config (defaults apply)."""
    path = Path(config_path) if config_path else RULES_PATH
    if not path.exists():
        logger.debug("Rules file %s not found, using defaults", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        logger.warning("Could not read rules file %s, using defaults: %s", path, e)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict) or not isinstance(data.get("rules", {}), dict):
        raise RuleConfigError(f"Rules file {path} must be a mapping with a 'rules' mapping")
    return data


def load_validation_rules(kind: str, config_path: Optional[Path] = None) -> ValidationRules:
    """Build the rules for *kind* from the rules file merged over defaults."""
    if kind not in DOCUMENT_KINDS:
        raise ValueError(f"Unknown document kind: {kind} (expected one of {', '.join(DOCUMENT_KINDS)})")
    config = _load_config(config_path)
    rule_cfg = dict(_DEFAULT_RULES[kind])
    rule_cfg.update((config.get("rules") or {}).get(kind) or {})
    severity_cfg = dict(config.get("severity") or {})
    severity_cfg.update(rule_cfg.pop("severity", None) or {})
    placeholders = (config.get("semantic") or {}).get("placeholder_markers") or _DEFAULT_PLACEHOLDERS
    return ValidationRules.from_config(kind, rule_cfg, severity_cfg, placeholders)


def load_all_rules(config_path: Optional[Path] = None) -> Dict[str, ValidationRules]:
    return {kind: load_validation_rules(kind, config_path) for kind in DOCUMENT_KINDS}
