#!/usr/bin/env python3
# CUI // SP-CTI
"""Typed blocks extracted from workflow documents.

RequirementBlock, ScenarioBlock, TaskBlock, IssueBlock and SpecRef are
transient: they are rebuilt from the document text on every validation call.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Optional


class TaskAction(str, Enum):
    CREATE = "CREATE"
    MODIFY = "MODIFY"
    DELETE = "DELETE"
    RENAME = "RENAME"

    @classmethod
    def parse(cls, value) -> Optional["TaskAction"]:
        if value is None:
            return None
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


@dataclass
class RequirementBlock:
    """A requirement: ``### R1: Title`` heading or a ``requirement:`` YAML block."""

    id: str
    title: str = ""
    description: str = ""
    priority: Optional[str] = None
    status: Optional[str] = None
    line: Optional[int] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class ScenarioBlock:
    """A ``Scenario:`` heading with its GIVEN/WHEN/THEN/AND clauses."""

    name: str
    given: List[str] = field(default_factory=list)
    when: List[str] = field(default_factory=list)
    then: List[str] = field(default_factory=list)
    and_clauses: List[str] = field(default_factory=list)
    line: Optional[int] = None

    @property
    def complete(self) -> bool:
        return bool(self.when) and bool(self.then)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SpecRef:
    """Target of a task's ``spec_ref``: a spec file plus optional anchor."""

    raw: str
    path: str
    anchor: Optional[str] = None


@dataclass
class TaskBlock:
    """A task declared in a fenced ``task:`` YAML block."""

    id: str
    action: Optional[TaskAction] = None
    file: str = ""
    status: str = "pending"
    spec_ref: Optional[str] = None
    depends_on: List[str] = field(default_factory=list)
    estimated_lines: Optional[int] = None
    line: Optional[int] = None

    @property
    def layer(self) -> Optional[int]:
        """Leading integer of the dotted id (``2.3`` -> 2)."""
        head = self.id.split(".", 1)[0]
        return int(head) if head.isdigit() else None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["action"] = self.action.value if self.action else None
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class IssueBlock:
    """A review finding declared in a fenced ``issue:`` YAML block (CHALLENGE.md)."""

    id: str
    severity: Optional[str] = None
    category: str = ""
    file: Optional[str] = None
    file_line: Optional[int] = None
    affects_requirements: List[str] = field(default_factory=list)
    auto_fixable: Optional[bool] = None
    line: Optional[int] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}
