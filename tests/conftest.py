#!/usr/bin/env python3
# CUI // SP-CTI
"""Shared pytest fixtures for the specgate test suite.

Provides sample workflow documents and a ``change_dir`` fixture that lays
out a complete, valid workflow instance under ``tmp_path``.
"""

import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path
BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))


# ---------------------------------------------------------------------------
# Sample documents
# ---------------------------------------------------------------------------

VALID_PROPOSAL = """\
---
id: add-auth
type: proposal
version: 1
status: proposed
affected_specs:
  - id: auth-flow
    path: specs/auth-flow.md
---

# Change: Add authentication

## Summary
Add login and session handling.

## Why
Users cannot sign in today.
"""

VALID_TASKS = """\
---
id: add-auth-tasks
type: tasks
version: 1
---

# Tasks

```yaml
task:
  id: "1.1"
  action: CREATE
  status: pending
  file: src/auth/models.py
  spec_ref: auth-flow:R1
  depends_on: []
```

```yaml
task:
  id: "2.1"
  action: MODIFY
  status: pending
  file: src/auth/login.py
  spec_ref: specs/auth-flow.md#R2
  depends_on: ["1.1"]
```
"""

VALID_SPEC = """\
---
id: auth-flow
type: spec
title: Authentication flow
version: 1
---

# Spec: Authentication flow

## Overview
Login with username and password.

## Requirements

### R1: Password login
Users log in with a password.

### R2: Session expiry
Sessions expire after 30 minutes.

## Acceptance Criteria

#### Scenario: Successful login
- **WHEN** a user submits valid credentials
- **THEN** a session is created
"""


def write_change(root: Path, proposal: str = VALID_PROPOSAL, tasks: str = VALID_TASKS,
                 specs: dict = None) -> Path:
    """Create a change directory with the given documents."""
    root.mkdir(parents=True, exist_ok=True)
    if proposal is not None:
        (root / "proposal.md").write_text(proposal, encoding="utf-8")
    if tasks is not None:
        (root / "tasks.md").write_text(tasks, encoding="utf-8")
    specs = {"auth-flow.md": VALID_SPEC} if specs is None else specs
    if specs:
        (root / "specs").mkdir(exist_ok=True)
        for name, content in specs.items():
            (root / "specs" / name).write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def change_dir(tmp_path):
    """A complete, valid workflow instance named ``add-auth``."""
    return write_change(tmp_path / "add-auth")
