"""Shared fixtures: a small spec directory on disk."""

from __future__ import annotations

from pathlib import Path

import pytest

REQUIREMENTS = """# Requirements Document

### Requirement 1: Parse input

#### Acceptance Criteria

1. WHEN input is valid THEN the parser SHALL return a tree
"""

DESIGN = """# Design Document

## Overview

A small parser.

## Correctness Properties

**Property 1: Round trip**
"""

TASKS = """# Implementation Plan

- [ ] 1 Set up project
  - [ ] 1.1 Create package layout
    - _Requirements: 1.1, 1.2_
  - [ ]* 1.2 Write smoke tests
- [ ] 2 Build parser
  - [ ] 2.1 Tokenizer
  - [ ] 2.2 Grammar
    - **Property 1: Round trip**
- [ ] 3 Wire CLI
"""

LINEAR_TASKS = """# Implementation Plan

- [ ] 1 First task
- [ ] 2 Second task
- [ ] 3 Third task
"""


def write_spec(path: Path, tasks: str = TASKS) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    (path / "requirements.md").write_text(REQUIREMENTS)
    (path / "design.md").write_text(DESIGN)
    (path / "tasks.md").write_text(tasks)
    return path


@pytest.fixture
def spec_dir(tmp_path):
    return write_spec(tmp_path / "specs" / "parser")


@pytest.fixture
def linear_spec_dir(tmp_path):
    return write_spec(tmp_path / "specs" / "linear", LINEAR_TASKS)


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / ".specorch" / "state" / "orchestrator-state.json"


@pytest.fixture
def tasks_text():
    return TASKS
