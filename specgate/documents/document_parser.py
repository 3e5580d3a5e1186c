#!/usr/bin/env python3
# CUI // SP-CTI
"""Workflow document model and parser.

A workflow document is markdown with an optional YAML header delimited by
``---`` lines at the very top.  The body is walked line by line as a stream
of heading / list / text events (fenced code is skipped), and typed blocks
are pulled out of it:

* requirement headings (``### R1: Title``) and ``requirement:`` YAML blocks
* scenario headings (``#### Scenario: Name``) with WHEN/THEN bullets
* ``task:`` and ``issue:`` YAML blocks inside fenced ```` ```yaml ```` code

Documents are loaded fresh on every call; nothing is cached.

Usage:
    doc = load_document(Path("changes/add-auth/specs/auth.md"))
    for event in doc.events():
        ...
    header = doc.header_data()
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import yaml

from specgate.schemas.documents import (
    IssueBlock,
    RequirementBlock,
    ScenarioBlock,
    SpecRef,
    TaskAction,
    TaskBlock,
)

logger = logging.getLogger("specgate.documents.parser")

HEADER_DELIMITER = "---"
_CLOSING_DELIMITER = re.compile(r"\n---[ \t]*(?:\n|$)")
_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.*?)(?:[ \t]+#+)?[ \t]*$")
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")
_FENCE_RE = re.compile(r"^\s{0,3}(`{3,}|~{3,})\s*([\w+-]*)")
REQUIREMENT_HEADING_RE = re.compile(r"^###[ \t]+(R\d+):(.*)$")
_SCENARIO_HEADING_RE = re.compile(r"^#{3,4}[ \t]+Scenario:[ \t]*(.*?)[ \t]*$", re.IGNORECASE)
_CLAUSE_RE = re.compile(
    r"^\s*[-*+]\s+(?:\*\*)?(GIVEN|WHEN|THEN|AND)(?:\*\*)?[ \t]*:?[ \t]*(.*)$"
)


# ---------------------------------------------------------------------------
# Document model
# ---------------------------------------------------------------------------

@dataclass
class MarkdownEvent:
    """One item of the body event stream.

    ``kind`` is one of ``heading``, ``list_start``, ``list_end``, ``text``.
    ``line`` is 1-based and counts from the top of the file, header included.
    """
    kind: str
    line: int
    text: str = ""
    level: int = 0


@dataclass
class Document:
    path: Path
    text: str
    header: Optional[str]
    body: str
    body_offset: int = 0

    @property
    def has_header(self) -> bool:
        return self.header is not None

    def header_data(self) -> Optional[dict]:
        """Parse the header as YAML. Raises ``yaml.YAMLError`` or ``ValueError``."""
        if self.header is None:
            return None
        return parse_header(self.header)

    def events(self) -> List["MarkdownEvent"]:
        return list(iter_events(self.body, self.body_offset))

    def lines(self) -> Iterator[Tuple[int, str]]:
        """Yield ``(line_number, line)`` for body lines outside fenced code."""
        return iter_unfenced_lines(self.body, self.body_offset)


# ---------------------------------------------------------------------------
# Loading and header handling
# ---------------------------------------------------------------------------

def normalize_text(text: str) -> str:
    """Strip a UTF-8 BOM and convert CRLF / CR line endings to LF."""
    if text.startswith("\ufeff"):
        text = text[1:]
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_header(text: str) -> Tuple[Optional[str], str, int]:
    """Split normalised text into ``(header, body, body_offset)``.

    ``body_offset`` is the number of lines that precede the body.  A header
    exists only when the first line is ``---`` and a closing ``---`` line
    follows; otherwise the whole text is body.
    """
    first_line = text.partition("\n")[0]
    if first_line.rstrip() != HEADER_DELIMITER:
        return None, text, 0
    start = len(first_line)
    match = _CLOSING_DELIMITER.search(text, start)
    if not match:
        return None, text, 0
    header = text[start + 1:match.start() + 1] if match.start() > start else ""
    body = text[match.end():]
    return header, body, text[:match.end()].count("\n")


def has_header(text: str) -> bool:
    header, _, _ = split_header(normalize_text(text))
    return header is not None


def parse_header(header: str) -> dict:
    """Parse header YAML into a mapping; an empty header is ``{}``."""
    data = yaml.safe_load(header) if header.strip() else None
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Invalid frontmatter format: header must be a mapping")
    return data


def parse_document(text: str, path: Path) -> Document:
    text = normalize_text(text)
    header, body, offset = split_header(text)
    return Document(path=Path(path), text=text, header=header, body=body, body_offset=offset)


def load_document(path: Path) -> Document:
    """Read and parse a document. Raises ``OSError`` / ``UnicodeDecodeError``."""
    path = Path(path)
    return parse_document(path.read_text(encoding="utf-8"), path)


# ---------------------------------------------------------------------------
# Event stream
# ---------------------------------------------------------------------------

def iter_unfenced_lines(text: str, offset: int = 0) -> Iterator[Tuple[int, str]]:
    fence = None
    for idx, line in enumerate(text.split("\n")):
        m = _FENCE_RE.match(line)
        if fence is None:
            if m:
                fence = m.group(1)
                continue
        else:
            if m and m.group(1)[0] == fence[0] and len(m.group(1)) >= len(fence) \
                    and not m.group(2):
                fence = None
            continue
        yield offset + idx + 1, line


def iter_events(text: str, offset: int = 0) -> Iterator[MarkdownEvent]:
    """Walk markdown text as heading / list / text events.

    A list block runs from its first item to the first non-blank line that
    is neither another item nor an indented continuation.
    """
    in_list = False
    last_line = offset
    for lineno, line in iter_unfenced_lines(text, offset):
        last_line = lineno
        if not line.strip():
            continue
        heading = _HEADING_RE.match(line)
        is_item = _LIST_ITEM_RE.match(line) is not None
        if in_list and (heading or not (is_item or line[:1] in (" ", "\t"))):
            yield MarkdownEvent("list_end", lineno)
            in_list = False
        if heading:
            yield MarkdownEvent("heading", lineno, heading.group(2).strip(), len(heading.group(1)))
            continue
        if is_item and not in_list:
            yield MarkdownEvent("list_start", lineno)
            in_list = True
        yield MarkdownEvent("text", lineno, line.strip())
    if in_list:
        yield MarkdownEvent("list_end", last_line)


def find_line(text: str, needle: str) -> Optional[int]:
    """1-based number of the first line containing *needle*."""
    for idx, line in enumerate(text.split("\n")):
        if needle in line:
            return idx + 1
    return None


# ---------------------------------------------------------------------------
# Block extraction
# ---------------------------------------------------------------------------

def extract_yaml_blocks(text: str) -> List[Tuple[int, str]]:
    """Return ``(fence_line, content)`` for every fenced yaml/yml block."""
    blocks = []
    fence = None
    start = 0
    buffer: List[str] = []
    for idx, line in enumerate(text.split("\n")):
        m = _FENCE_RE.match(line)
        if fence is None:
            if m:
                fence = m.group(1)
                start = idx + 1
                is_yaml = m.group(2).lower() in ("yaml", "yml")
                buffer = [] if is_yaml else None
            continue
        if m and m.group(1)[0] == fence[0] and len(m.group(1)) >= len(fence) and not m.group(2):
            if buffer is not None:
                blocks.append((start, "\n".join(buffer)))
            fence = None
            continue
        if buffer is not None:
            buffer.append(line)
    return blocks


def _typed_yaml_blocks(text: str, key: str) -> Iterator[Tuple[int, dict]]:
    marker = re.compile(rf"^\s*{key}\s*:", re.MULTILINE)
    for line, content in extract_yaml_blocks(text):
        if not marker.search(content):
            continue
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            logger.warning("Skipping unparseable %s block at line %d: %s", key, line, e)
            continue
        if isinstance(data, dict) and isinstance(data.get(key), dict):
            yield line, data[key]


def _as_id(value) -> str:
    return str(value).strip() if value is not None else ""


def _unquoted(value) -> str:
    return f'{value} must be a quoted string (e.g. "{value}")'


def parse_task_blocks(text: str, problems: Optional[List[Tuple[int, str]]] = None) -> List[TaskBlock]:
    """Tasks declared as ``task:`` YAML blocks.

    Ids and ``depends_on`` entries must be YAML strings: an unquoted ``1.10``
    loads as the float ``1.1``.  A task with a non-string id is skipped and a
    non-string dependency is dropped; each is appended to *problems* as
    ``(line, message)`` when a list is given.
    """
    tasks = []
    for line, data in _typed_yaml_blocks(text, "task"):
        raw_id = data.get("id")
        if raw_id is not None and not isinstance(raw_id, str):
            logger.debug("Task block at line %d has non-string id %r", line, raw_id)
            if problems is not None:
                problems.append((line, f"Task id {_unquoted(raw_id)}"))
            continue
        task_id = _as_id(raw_id)
        if not task_id:
            logger.debug("Task block at line %d has no id", line)
            continue
        depends = data.get("depends_on") or []
        if not isinstance(depends, list):
            depends = [depends]
        depends_on = []
        for dep in depends:
            if not isinstance(dep, str):
                if problems is not None:
                    problems.append((line, f"Task {task_id} depends_on entry {_unquoted(dep)}"))
                continue
            if dep.strip():
                depends_on.append(dep.strip())
        estimated = data.get("estimated_lines")
        tasks.append(TaskBlock(
            id=task_id,
            action=TaskAction.parse(data.get("action")),
            file=str(data.get("file") or ""),
            status=str(data.get("status") or "pending"),
            spec_ref=_as_id(data.get("spec_ref")) or None,
            depends_on=depends_on,
            estimated_lines=int(estimated) if isinstance(estimated, int) else None,
            line=line,
        ))
    return tasks


def parse_requirement_blocks(text: str) -> List[RequirementBlock]:
    """Requirements declared as ``requirement:`` YAML blocks."""
    blocks = []
    for line, data in _typed_yaml_blocks(text, "requirement"):
        req_id = _as_id(data.get("id"))
        if not req_id:
            continue
        blocks.append(RequirementBlock(
            id=req_id,
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            priority=data.get("priority"),
            status=data.get("status"),
            line=line,
        ))
    return blocks


def parse_issue_blocks(text: str) -> List[IssueBlock]:
    """Review findings declared as ``issue:`` YAML blocks."""
    issues = []
    for line, data in _typed_yaml_blocks(text, "issue"):
        issue_id = _as_id(data.get("id"))
        if not issue_id:
            continue
        location = data.get("location") if isinstance(data.get("location"), dict) else {}
        affects = data.get("affects_requirements") or []
        if not isinstance(affects, list):
            affects = [affects]
        severity = data.get("severity")
        fixable = data.get("auto_fixable")
        issues.append(IssueBlock(
            id=issue_id,
            severity=str(severity).lower() if severity is not None else None,
            category=str(data.get("category") or ""),
            file=location.get("file"),
            file_line=location.get("line") if isinstance(location.get("line"), int) else None,
            affects_requirements=[_as_id(r) for r in affects if _as_id(r)],
            auto_fixable=fixable if isinstance(fixable, bool) else None,
            line=line,
        ))
    return issues


def parse_requirement_headings(doc: Document) -> List[RequirementBlock]:
    """Requirements declared as ``### R<n>: Title`` headings.

    The description is the body text up to the next heading.
    """
    blocks: List[RequirementBlock] = []
    current: Optional[RequirementBlock] = None
    description: List[str] = []
    for lineno, line in doc.lines():
        m = REQUIREMENT_HEADING_RE.match(line)
        if m or _HEADING_RE.match(line):
            if current is not None:
                current.description = "\n".join(description).strip()
                current = None
            if m:
                current = RequirementBlock(id=m.group(1), title=m.group(2).strip(), line=lineno)
                blocks.append(current)
                description = []
            continue
        if current is not None:
            description.append(line)
            prio = re.match(r"^\s*[-*]?\s*\**priority\**\s*:\s*\**(\w+)", line, re.IGNORECASE)
            if prio and current.priority is None:
                current.priority = prio.group(1).lower()
    if current is not None:
        current.description = "\n".join(description).strip()
    return blocks


def parse_scenario_blocks(doc: Document) -> List[ScenarioBlock]:
    scenarios: List[ScenarioBlock] = []
    current: Optional[ScenarioBlock] = None
    for lineno, line in doc.lines():
        m = _SCENARIO_HEADING_RE.match(line)
        if m:
            current = ScenarioBlock(name=m.group(1), line=lineno)
            scenarios.append(current)
            continue
        if _HEADING_RE.match(line):
            current = None
            continue
        if current is None:
            continue
        clause = _CLAUSE_RE.match(line)
        if not clause:
            continue
        keyword, rest = clause.group(1), clause.group(2).strip()
        if keyword == "GIVEN":
            current.given.append(rest)
        elif keyword == "WHEN":
            current.when.append(rest)
        elif keyword == "THEN":
            current.then.append(rest)
        else:
            current.and_clauses.append(rest)
    return scenarios


def parse_spec_ref(raw: str) -> SpecRef:
    """Resolve ``path#anchor`` or ``spec-id[:anchor]`` to a spec path.

    Bare spec ids map to ``specs/<id>.md``.
    """
    raw = raw.strip()
    if "#" in raw:
        target, anchor = raw.split("#", 1)
    elif ":" in raw:
        target, anchor = raw.split(":", 1)
    else:
        target, anchor = raw, ""
    target = target.strip()
    if target and not target.endswith(".md"):
        target = f"{target}.md" if "/" in target else f"specs/{target}.md"
    return SpecRef(raw=raw, path=target, anchor=anchor.strip() or None)


def has_anchor(doc: Document, anchor: str) -> bool:
    """True if a heading (levels 1-6) or requirement block carries *anchor*."""
    for event in doc.events():
        if event.kind != "heading":
            continue
        text = event.text
        if text == anchor:
            return True
        if text.startswith(anchor) and text[len(anchor):len(anchor) + 1] in (":", " ", "\t"):
            return True
    return any(block.id == anchor for block in parse_requirement_blocks(doc.text))


# ---------------------------------------------------------------------------
# Checksums
# ---------------------------------------------------------------------------

def normalize_for_checksum(text: str) -> str:
    lines = [line.rstrip() for line in normalize_text(text).split("\n")]
    return "\n".join(lines).rstrip("\n")


def compute_checksum(text: str) -> str:
    """``sha256:<hex>`` of the text, ignoring trailing whitespace."""
    digest = hashlib.sha256(normalize_for_checksum(text).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


def compute_body_checksum(text: str) -> str:
    _, body, _ = split_header(normalize_text(text))
    return compute_checksum(body)


def file_checksum(path: Path) -> str:
    """Checksum of a file; undecodable content is hashed as raw bytes.

    Raises ``OSError`` if the file cannot be read.
    """
    data = Path(path).read_bytes()
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return "sha256:" + hashlib.sha256(data).hexdigest()
    return compute_checksum(text)
