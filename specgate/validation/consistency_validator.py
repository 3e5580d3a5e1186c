#!/usr/bin/env python3
# CUI // SP-CTI
"""Cross-document consistency checks for one workflow instance.

A workflow instance (change directory) holds ``proposal.md``, ``tasks.md``
and ``specs/<id>.md``.  This validator checks the references between them:

1. Task -> spec: every task ``spec_ref`` resolves to an existing spec file
   and, when an anchor is given, to a heading or requirement block in it.
2. Proposal <-> specs: ``affected_specs`` in the proposal header matches the
   specs directory (missing file Medium, undeclared spec Low).
3. Task dependencies: every ``depends_on`` id exists and the graph is
   acyclic.  Only the first cycle found is reported.
4. Spec hierarchy: ``parent_spec`` / ``related_specs`` header links exist.

Usage:
    python -m specgate.validation.consistency_validator --change-dir changes/add-auth --json
"""

import argparse
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from specgate.documents.document_parser import (
    find_line,
    has_anchor,
    load_document,
    parse_spec_ref,
    parse_task_blocks,
)
from specgate.schemas.documents import TaskBlock
from specgate.schemas.validation import (
    ErrorCategory,
    Severity,
    ValidationError,
    ValidationResult,
)

logger = logging.getLogger("specgate.validation.consistency")

PROPOSAL_FILE = "proposal.md"
TASKS_FILE = "tasks.md"
SPECS_DIR = "specs"


def list_spec_files(change_dir: Path) -> List[Path]:
    """Spec documents in sorted order; ``_``-prefixed templates excluded."""
    specs_dir = Path(change_dir) / SPECS_DIR
    if not specs_dir.is_dir():
        return []
    return sorted(
        p for p in specs_dir.glob("*.md")
        if p.is_file() and not p.name.startswith("_")
    )


def _spec_path_for(ref: str) -> str:
    ref = ref.strip()
    if ref.startswith("./"):
        ref = ref[2:]
    if ref.endswith(".md"):
        return ref if "/" in ref else f"{SPECS_DIR}/{ref}"
    return f"{SPECS_DIR}/{ref}.md"


class ConsistencyValidator:
    """Referential integrity across proposal, tasks and specs."""

    def __init__(self, change_dir: Path):
        self.change_dir = Path(change_dir)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_tasks(self) -> Tuple[List[TaskBlock], List[ValidationError]]:
        path = self.change_dir / TASKS_FILE
        if not path.exists():
            return [], []
        try:
            text = load_document(path).text
        except (OSError, UnicodeDecodeError) as e:
            return [], [ValidationError(
                message=f"Failed to read file: {e}",
                file=TASKS_FILE,
                severity=Severity.HIGH,
                category=ErrorCategory.INVALID_STRUCTURE,
            )]
        problems: List[Tuple[int, str]] = []
        tasks = parse_task_blocks(text, problems)
        return tasks, [
            ValidationError(
                message=message,
                file=TASKS_FILE,
                line=line,
                severity=Severity.HIGH,
                category=ErrorCategory.INVALID_STRUCTURE,
            )
            for line, message in problems
        ]

    def _load_header(self, path: Path) -> Optional[dict]:
        try:
            return load_document(path).header_data()
        except (OSError, UnicodeDecodeError, yaml.YAMLError, ValueError) as e:
            logger.debug("Header of %s unusable, skipping: %s", path, e)
            return None

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def validate_task_spec_refs(self) -> List[ValidationError]:
        tasks, errors = self._load_tasks()
        for task in tasks:
            if not task.spec_ref:
                continue
            ref = parse_spec_ref(task.spec_ref)
            if not ref.path:
                continue
            spec_path = self.change_dir / ref.path
            if not spec_path.is_file():
                errors.append(ValidationError(
                    message=f"Task {task.id} references non-existent spec file: {ref.path}",
                    file=TASKS_FILE,
                    line=task.line,
                    severity=Severity.HIGH,
                    category=ErrorCategory.BROKEN_REFERENCE,
                ))
                continue
            if not ref.anchor:
                continue
            try:
                found = has_anchor(load_document(spec_path), ref.anchor)
            except (OSError, UnicodeDecodeError) as e:
                errors.append(ValidationError(
                    message=f"Task {task.id} - error checking anchor #{ref.anchor}: {e}",
                    file=TASKS_FILE,
                    line=task.line,
                    severity=Severity.MEDIUM,
                    category=ErrorCategory.BROKEN_REFERENCE,
                ))
                continue
            if not found:
                errors.append(ValidationError(
                    message=(f"Task {task.id} references non-existent anchor "
                             f"#{ref.anchor} in {ref.path}"),
                    file=TASKS_FILE,
                    line=task.line,
                    severity=Severity.HIGH,
                    category=ErrorCategory.BROKEN_REFERENCE,
                ))
        return errors

    def validate_proposal_specs(self) -> List[ValidationError]:
        proposal_path = self.change_dir / PROPOSAL_FILE
        if not proposal_path.exists():
            return []
        header = self._load_header(proposal_path)
        if header is None:
            return []

        errors: List[ValidationError] = []
        affected = header.get("affected_specs") or []
        if not isinstance(affected, list):
            return [ValidationError(
                message=f"affected_specs must be a list, got {type(affected).__name__}",
                file=PROPOSAL_FILE,
                severity=Severity.MEDIUM,
                category=ErrorCategory.INVALID_STRUCTURE,
            )]
        proposal_text = proposal_path.read_text(encoding="utf-8")
        declared = set()
        for entry in affected:
            if isinstance(entry, dict):
                raw = entry.get("path") or entry.get("id")
            else:
                raw = entry
            if not raw:
                continue
            rel = _spec_path_for(str(raw))
            declared.add(rel)
            if not (self.change_dir / rel).is_file():
                errors.append(ValidationError(
                    message=f"Proposal references non-existent spec: {raw}",
                    file=PROPOSAL_FILE,
                    line=find_line(proposal_text, str(raw)),
                    severity=Severity.MEDIUM,
                    category=ErrorCategory.BROKEN_REFERENCE,
                ))

        for spec in list_spec_files(self.change_dir):
            rel = spec.relative_to(self.change_dir).as_posix()
            if rel not in declared:
                errors.append(ValidationError(
                    message=f"Spec file {rel} not listed in proposal.affected_specs",
                    file=PROPOSAL_FILE,
                    severity=Severity.LOW,
                    category=ErrorCategory.INCONSISTENCY,
                ))
        return errors

    def validate_task_dependencies(self) -> List[ValidationError]:
        # read and structure failures are reported by validate_task_spec_refs
        tasks, _ = self._load_tasks()
        errors: List[ValidationError] = []
        if not tasks:
            return errors
        known = {t.id for t in tasks}
        lines = {t.id: t.line for t in tasks}
        graph: Dict[str, List[str]] = {}
        for task in tasks:
            graph.setdefault(task.id, [])
            for dep in task.depends_on:
                if dep in known:
                    graph[task.id].append(dep)
                    continue
                errors.append(ValidationError(
                    message=f"Task {task.id} depends on non-existent task: {dep}",
                    file=TASKS_FILE,
                    line=task.line,
                    severity=Severity.HIGH,
                    category=ErrorCategory.BROKEN_REFERENCE,
                ))

        cycle = find_cycle([t.id for t in tasks], graph)
        if cycle:
            errors.append(ValidationError(
                message=f"Circular dependency detected: {' → '.join(cycle)}",
                file=TASKS_FILE,
                line=lines.get(cycle[0]),
                severity=Severity.HIGH,
                category=ErrorCategory.CIRCULAR_DEPENDENCY,
            ))
        return errors

    def validate_spec_hierarchy(self) -> List[ValidationError]:
        errors: List[ValidationError] = []
        for spec in list_spec_files(self.change_dir):
            rel = spec.relative_to(self.change_dir).as_posix()
            header = self._load_header(spec)
            if not header:
                continue
            parent = header.get("parent_spec")
            if parent and not (self.change_dir / _spec_path_for(str(parent))).is_file():
                errors.append(ValidationError(
                    message=f"Parent spec '{parent}' not found",
                    file=rel,
                    severity=Severity.MEDIUM,
                    category=ErrorCategory.BROKEN_REFERENCE,
                ))
            related_specs = header.get("related_specs") or []
            if not isinstance(related_specs, list):
                errors.append(ValidationError(
                    message=f"related_specs must be a list, got {type(related_specs).__name__}",
                    file=rel,
                    severity=Severity.MEDIUM,
                    category=ErrorCategory.INVALID_STRUCTURE,
                ))
                continue
            for related in related_specs:
                raw = (related.get("path") or related.get("id")) if isinstance(related, dict) else related
                if raw and not (self.change_dir / _spec_path_for(str(raw))).is_file():
                    errors.append(ValidationError(
                        message=f"Related spec '{raw}' not found",
                        file=rel,
                        severity=Severity.LOW,
                        category=ErrorCategory.BROKEN_REFERENCE,
                    ))
        return errors

    def validate_all(self) -> List[ValidationError]:
        errors = []
        errors.extend(self.validate_task_spec_refs())
        errors.extend(self.validate_proposal_specs())
        errors.extend(self.validate_task_dependencies())
        errors.extend(self.validate_spec_hierarchy())
        return errors


# ---------------------------------------------------------------------------
# Cycle detection
# ---------------------------------------------------------------------------

_WHITE, _GRAY, _BLACK = 0, 1, 2


def find_cycle(order: List[str], graph: Dict[str, List[str]]) -> Optional[List[str]]:
    """First cycle by iterative three-colour DFS, as ``[a, b, ..., a]``.

    Roots are visited in *order* and edges in list order, so the result is
    deterministic.
    """
    color = {node: _WHITE for node in graph}
    for root in order:
        if color.get(root, _BLACK) != _WHITE:
            continue
        color[root] = _GRAY
        path = [root]
        stack = [iter(graph.get(root, []))]
        while stack:
            advanced = False
            for child in stack[-1]:
                state = color.get(child, _BLACK)
                if state == _GRAY:
                    return path[path.index(child):] + [child]
                if state == _WHITE:
                    color[child] = _GRAY
                    path.append(child)
                    stack.append(iter(graph.get(child, [])))
                    advanced = True
                    break
            if not advanced:
                color[path.pop()] = _BLACK
                stack.pop()
    return None


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="Cross-document consistency checks")
    parser.add_argument("--change-dir", required=True, help="Workflow instance directory")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()

    change_dir = Path(args.change_dir)
    if not change_dir.is_dir():
        print(f"Error: not a directory: {change_dir}")
        raise SystemExit(1)
    result = ValidationResult(ConsistencyValidator(change_dir).validate_all())
    if args.json:
        print(json.dumps(result.to_report(), indent=2))
    else:
        print(result.format() or "No consistency errors.")
    raise SystemExit(0 if result.is_valid() else 1)


if __name__ == "__main__":
    main()
