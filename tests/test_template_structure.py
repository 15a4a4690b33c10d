from __future__ import annotations

from docsynth.builtin_templates import BASIC, PRD, REQUIREMENTS
from docsynth.models import TemplateDefinition, TemplateStructure, VariableSpec
from docsynth.template_structure import derive_structure


def test_prd_structure_lists_sections_in_body_order(prd_structure: TemplateStructure) -> None:
    assert prd_structure.template_id == "prd"
    assert prd_structure.ordered_sections() == [
        "Executive Summary",
        "Problem Statement",
        "Target Users",
        "Goals and Objectives",
        "Key Features",
        "User Stories",
        "Technical Requirements",
        "Success Metrics",
        "Timeline",
    ]
    assert prd_structure.required_sections() == [
        "Problem Statement",
        "Target Users",
        "Goals and Objectives",
        "Key Features",
    ]
    problem = prd_structure.sections["Problem Statement"]
    assert problem.header == "## Problem Statement"
    assert problem.order == 2


def test_placeholders_map_to_owning_sections(prd_structure: TemplateStructure) -> None:
    info = prd_structure.placeholders["{{problemStatement}}"]
    assert info.section == "Problem Statement"
    assert info.description == "Describe the problem being solved"
    assert prd_structure.placeholders["{{title}}"].section == "{{title}}"


def test_required_variable_marks_its_section_required() -> None:
    definition = TemplateDefinition(
        id="brief",
        name="Brief",
        body="Intro {{intro}}\n\n## Scope\n\n{{scope}}\n\n## Notes\n\n{{notes}}\n\n## Scope\n\nagain\n",
        variables=[
            VariableSpec(name="intro", description="Opening line"),
            VariableSpec(name="scope", required=True),
            VariableSpec(name="notes"),
        ],
    )

    structure = derive_structure(definition)

    assert structure.ordered_sections() == ["Scope", "Notes"]
    assert structure.required_sections() == ["Scope"]
    assert structure.placeholders["{{intro}}"].section == "Brief"
    assert structure.placeholders["{{intro}}"].description == "Opening line"
    assert structure.placeholders["{{notes}}"].section == "Notes"


def test_builtin_structures_declare_required_sections() -> None:
    assert derive_structure(BASIC).required_sections() == ["Overview"]
    assert derive_structure(REQUIREMENTS).required_sections() == [
        "Introduction",
        "Functional Requirements",
        "Non-Functional Requirements",
        "Constraints",
    ]
    assert derive_structure(PRD).sections["Timeline"].required is False
