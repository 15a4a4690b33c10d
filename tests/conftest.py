from __future__ import annotations

import os
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest

from docsynth.builtin_templates import PRD
from docsynth.models import RenderContext, TemplateStructure
from docsynth.template_registry import TemplateRegistry
from docsynth.template_structure import derive_structure

FIXED_TIME = datetime(2024, 3, 15, 9, 30, 0, tzinfo=UTC)

PRD_DOCUMENT = (
    "# Checkout Revamp\n\n"
    "## Problem Statement\n\n<!-- Describe the problem being solved -->\n\n"
    "## Target Users\n\n<!-- Describe the primary user personas -->\n\n"
    "## Goals and Objectives\n\n<!-- List the goals and objectives -->\n\n"
    "## Key Features\n\n<!-- List the core product features -->\n"
)


def build_render_context(author: str | None = None, **variables: object) -> RenderContext:
    return RenderContext(
        variables=variables,
        workspace_root="/workspace",
        current_time=FIXED_TIME,
        author=author,
    )


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for key in list(os.environ):
        if key.startswith("DOCSYNTH_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def templates_dir(tmp_path: Path) -> Path:
    path = tmp_path / ".docsynth" / "templates"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def write_template(templates_dir: Path) -> Callable[[str, str], Path]:
    def _write(filename: str, text: str) -> Path:
        path = templates_dir / filename
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_context() -> Callable[..., RenderContext]:
    return build_render_context


@pytest.fixture
def registry(templates_dir: Path) -> TemplateRegistry:
    return TemplateRegistry(templates_dir)


@pytest.fixture
def prd_structure() -> TemplateStructure:
    return derive_structure(PRD)


@pytest.fixture
def prd_document(tmp_path: Path) -> Path:
    path = tmp_path / "docs" / "prd.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(PRD_DOCUMENT, encoding="utf-8")
    return path
