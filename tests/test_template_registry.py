from __future__ import annotations

from pathlib import Path

import pytest

from docsynth.builtin_templates import BUILTIN_TEMPLATES
from docsynth.exceptions import TemplateLoadError
from docsynth.models import TemplateDefinition, VariableSpec, VariableType
from docsynth.template_registry import (
    TemplateRegistry,
    extract_variables,
    parse_template_text,
    validate_template,
)
from docsynth.tracing import RunTraceCollector


def _write_template(directory: Path, filename: str, text: str) -> Path:
    path = directory / filename
    path.write_text(text, encoding="utf-8")
    return path


RELEASE_NOTES = """---
id: release-notes
name: Release Notes
description: Notes for a product release
variables:
  - name: title
    required: true
  - name: version
    description: Release version
    required: true
  - name: highlights
    defaultValue: "<!-- Add highlights -->"
frontMatter:
  title: "{{title}}"
  version: "{{version}}"
agentRestrictions: [prd-creator]
requiredSections: [Highlights]
---
# {{title}} {{version}}

## Highlights

{{highlights}}
"""


def test_builtins_are_listed_in_registration_order(registry: TemplateRegistry) -> None:
    ids = [template.id for template in registry.list_templates()]
    assert ids == ["basic", "prd", "requirements", "design", "tasks"]
    assert all(registry.is_builtin(template_id) for template_id in ids)
    assert registry.get_template("nope") is None


def test_builtin_templates_validate_cleanly() -> None:
    for template in BUILTIN_TEMPLATES:
        assert validate_template(template) == [], template.id


def test_load_reads_header_template(registry: TemplateRegistry, templates_dir: Path) -> None:
    _write_template(templates_dir, "release.md", RELEASE_NOTES)

    assert registry.load() == 1
    template = registry.get_template("release-notes")
    assert template is not None
    assert template.name == "Release Notes"
    assert [variable.name for variable in template.variables] == ["title", "version", "highlights"]
    assert template.variable("highlights").default == "<!-- Add highlights -->"
    assert template.front_matter == {"title": "{{title}}", "version": "{{version}}"}
    assert template.agent_restrictions == ["prd-creator"]
    assert template.required_sections == ["Highlights"]
    assert template.body.startswith("# {{title}} {{version}}")
    assert template.source_path == str(templates_dir / "release.md")
    assert not registry.is_builtin("release-notes")
    assert registry.list_templates()[-1].id == "release-notes"


def test_plain_markdown_template_extracts_variables(
    registry: TemplateRegistry, templates_dir: Path
) -> None:
    _write_template(
        templates_dir,
        "retro.md",
        "# {{team}} retro\n\nBy {{author}} on {{currentDate}}\n\n## Wins\n\n{{wins}}\n{{team}}\n",
    )
    registry.load()

    template = registry.get_template("retro")
    assert template is not None
    assert template.name == "retro"
    assert [variable.name for variable in template.variables] == ["team", "wins"]
    assert all(variable.required for variable in template.variables)
    assert all(variable.type == VariableType.STRING for variable in template.variables)


def test_yaml_document_template(registry: TemplateRegistry, templates_dir: Path) -> None:
    _write_template(
        templates_dir,
        "adr.yaml",
        "name: Decision Record\n"
        "variables:\n"
        "  - name: decision\n"
        "    required: true\n"
        "  - name: reviewers\n"
        "    type: number\n"
        "    default: 2\n"
        "body: |\n"
        "  # ADR\n"
        "\n"
        "  ## Decision\n"
        "\n"
        "  {{decision}} reviewed by {{reviewers}}\n",
    )
    registry.load()

    template = registry.get_template("adr")
    assert template is not None
    assert template.name == "Decision Record"
    assert template.variable("reviewers").type == VariableType.NUMBER
    assert template.variable("reviewers").default == 2
    assert "## Decision" in template.body


def test_workspace_template_overrides_builtin_and_reload_restores_it(
    registry: TemplateRegistry, templates_dir: Path
) -> None:
    override = _write_template(
        templates_dir,
        "basic.md",
        "---\nid: basic\nname: Team Basic\n---\n# Team\n\n## Overview\n\nTeam overview.\n",
    )
    registry.load()

    assert registry.get_template("basic").name == "Team Basic"
    assert not registry.is_builtin("basic")
    assert [template.id for template in registry.list_templates()].count("basic") == 1

    override.unlink()
    registry.reload()
    assert registry.get_template("basic").name == "Basic Document"
    assert registry.is_builtin("basic")


def test_register_overwrites_existing_definition(registry: TemplateRegistry) -> None:
    registry.register(TemplateDefinition(id="notes", name="Notes v1", body="# v1\n"))
    registry.register(TemplateDefinition(id="notes", name="Notes v2", body="# v2\n"))
    assert registry.get_template("notes").name == "Notes v2"


def test_invalid_files_are_skipped_and_reported(templates_dir: Path) -> None:
    _write_template(templates_dir, "a-broken.md", "---\nid: [unclosed\n---\nbody\n")
    _write_template(
        templates_dir,
        "b-duplicate.md",
        "---\nvariables:\n  - name: x\n  - name: x\n---\n{{x}}\n",
    )
    _write_template(templates_dir, "c-good.md", "# Good {{thing}}\n")
    _write_template(templates_dir, "notes.txt", "ignored {{x}}\n")
    trace = RunTraceCollector()
    registry = TemplateRegistry(templates_dir, trace=trace)

    assert registry.load() == 1
    assert registry.get_template("c-good") is not None
    assert registry.get_template("notes") is None
    assert len(registry.load_errors) == 2
    assert any("invalid YAML" in error for error in registry.load_errors)
    assert any("more than once" in error for error in registry.load_errors)
    statuses = [event["status"] for event in trace.events() if event["action"] == "load_file"]
    assert statuses == ["error", "error"]


def test_missing_templates_dir_loads_nothing(tmp_path: Path) -> None:
    registry = TemplateRegistry(tmp_path / "missing")
    assert registry.load() == 0
    assert len(registry.list_templates()) == 5


def test_templates_for_agent_filters_restricted_templates(registry: TemplateRegistry) -> None:
    ids = [template.id for template in registry.templates_for_agent("prd-creator")]
    assert ids == ["basic", "prd", "tasks"]


def test_yaml_document_requires_body() -> None:
    with pytest.raises(TemplateLoadError, match="body"):
        parse_template_text("name: Empty\n", fallback_id="empty", yaml_document=True)


def test_header_with_non_list_variables_is_rejected() -> None:
    with pytest.raises(TemplateLoadError, match="variables"):
        parse_template_text("---\nvariables: nope\n---\n# Body\n", fallback_id="bad")


def test_extract_variables_skips_reserved_names() -> None:
    variables = extract_variables("{{workspaceRoot}} {{owner}} {{currentDateTime}} {{scope}}")
    assert [variable.name for variable in variables] == ["owner", "scope"]


def test_validate_template_reports_problems() -> None:
    definition = TemplateDefinition(
        id="draft",
        name="Draft",
        body="# {{title}}\n\n## Scope\n\n{{scope}} {{undeclared}}\n",
        variables=[
            VariableSpec(name="title", required=True),
            VariableSpec(name="scope"),
            VariableSpec(name="unused"),
            VariableSpec(name="bad name"),
        ],
        front_matter={"created": "{{currentDate}}"},
        required_sections=["Scope", "Risks"],
    )

    errors = validate_template(definition)

    assert "Placeholder '{{undeclared}}' has no declared variable." in errors
    assert "Variable 'unused' is declared but never used." in errors
    assert "Variable name 'bad name' is not a valid token identifier." in errors
    assert "Required section 'Risks' has no matching heading." in errors
    assert not any("Scope" in error for error in errors)
    assert not any("currentDate" in error for error in errors)


def test_validate_template_reports_empty_body() -> None:
    errors = validate_template(TemplateDefinition(id="blank", name="Blank", body="  \n"))
    assert errors == ["Template 'blank' has an empty body."]


def test_front_matter_tokens_count_as_used() -> None:
    definition = TemplateDefinition(
        id="fm",
        name="FM",
        body="# Body\n",
        variables=[VariableSpec(name="owner")],
        front_matter={"owner": "{{owner}}"},
    )
    assert validate_template(definition) == []
