"""Built-in template definitions.

Section bodies default to an HTML comment prompt, which progress measurement
treats as empty, so a freshly rendered document starts at 0% completion.
"""

from __future__ import annotations

from docsynth.models import TemplateDefinition, VariableSpec, VariableType

_TITLE = VariableSpec(name="title", description="Document title", required=True)
_AUTHOR = VariableSpec(name="author", description="Document author")


def _prompt(name: str, description: str) -> VariableSpec:
    return VariableSpec(name=name, description=description, default=f"<!-- {description} -->")


def _front_matter(doc_type: str | None = None) -> dict[str, object]:
    fields: dict[str, object] = {"title": "{{title}}"}
    if doc_type is not None:
        fields["type"] = doc_type
        fields["version"] = 1.0
        fields["status"] = "Draft"
    fields["created"] = "{{currentDate}}"
    fields["author"] = "{{author}}"
    return fields


BASIC = TemplateDefinition(
    id="basic",
    name="Basic Document",
    description="Simple template for basic documents",
    body="# {{title}}\n\n## Overview\n\n{{content}}\n",
    variables=[
        _TITLE,
        _AUTHOR,
        VariableSpec(
            name="content",
            description="Document content",
            default="Add your content here...",
        ),
    ],
    front_matter=_front_matter(),
    required_sections=["Overview"],
)

PRD = TemplateDefinition(
    id="prd",
    name="Product Requirements Document",
    description="Template for creating Product Requirements Documents",
    body=(
        "# {{title}}\n\n"
        "## Executive Summary\n\n{{executiveSummary}}\n\n"
        "## Problem Statement\n\n{{problemStatement}}\n\n"
        "## Target Users\n\n{{targetUsers}}\n\n"
        "## Goals and Objectives\n\n{{goals}}\n\n"
        "## Key Features\n\n{{keyFeatures}}\n\n"
        "## User Stories\n\n{{userStories}}\n\n"
        "## Technical Requirements\n\n{{technicalRequirements}}\n\n"
        "## Success Metrics\n\n{{successMetrics}}\n\n"
        "## Timeline\n\n{{timeline}}\n"
    ),
    variables=[
        _TITLE,
        _AUTHOR,
        _prompt("executiveSummary", "Summarize the product in a few sentences"),
        _prompt("problemStatement", "Describe the problem being solved"),
        _prompt("targetUsers", "Describe the primary user personas"),
        _prompt("goals", "List the goals and objectives"),
        _prompt("keyFeatures", "List the core product features"),
        _prompt("userStories", "Add user stories"),
        _prompt("technicalRequirements", "Add technical requirements"),
        _prompt("successMetrics", "Define success metrics"),
        _prompt("timeline", "Outline the delivery timeline"),
    ],
    front_matter=_front_matter("PRD"),
    agent_restrictions=["prd-creator"],
    required_sections=["Problem Statement", "Target Users", "Goals and Objectives", "Key Features"],
)

REQUIREMENTS = TemplateDefinition(
    id="requirements",
    name="Requirements Document",
    description="Template for creating structured requirements documents",
    body=(
        "# {{title}} - Requirements Document\n\n"
        "## Introduction\n\n{{introduction}}\n\n"
        "## Functional Requirements\n\n{{functionalRequirements}}\n\n"
        "## Non-Functional Requirements\n\n{{nonFunctionalRequirements}}\n\n"
        "## Constraints\n\n{{constraints}}\n\n"
        "## Acceptance Criteria\n\n{{acceptanceCriteria}}\n"
    ),
    variables=[
        _TITLE,
        _AUTHOR,
        VariableSpec(
            name="introduction",
            description="Requirements introduction",
            required=True,
        ),
        _prompt("functionalRequirements", "List functional requirements"),
        _prompt("nonFunctionalRequirements", "List performance, security and usability needs"),
        _prompt("constraints", "List constraints and limitations"),
        _prompt("acceptanceCriteria", "Add WHEN/THEN acceptance criteria"),
    ],
    front_matter=_front_matter("Requirements"),
    agent_restrictions=["requirements-gatherer"],
    required_sections=["Functional Requirements", "Non-Functional Requirements", "Constraints"],
)

DESIGN = TemplateDefinition(
    id="design",
    name="Design Document",
    description="Technical architecture and system design document",
    body=(
        "# {{title}}\n\n"
        "## Overview\n\n{{purpose}}\n\n"
        "## System Architecture\n\n{{systemArchitecture}}\n\n"
        "## Components\n\n{{components}}\n\n"
        "## Data Flow\n\n{{dataFlow}}\n\n"
        "## Error Handling\n\n{{errorHandling}}\n\n"
        "## Security Considerations\n\n{{security}}\n\n"
        "## Deployment\n\n{{deployment}}\n"
    ),
    variables=[
        _TITLE,
        _AUTHOR,
        VariableSpec(name="purpose", description="Purpose of the design", default="To be defined."),
        _prompt("systemArchitecture", "Describe the system architecture"),
        _prompt("components", "List components and their interfaces"),
        _prompt("dataFlow", "Describe how data moves through the system"),
        _prompt("errorHandling", "Describe error categories and recovery"),
        _prompt("security", "Describe security considerations"),
        _prompt("deployment", "Describe the deployment plan"),
    ],
    front_matter=_front_matter("Design"),
    agent_restrictions=["solution-architect"],
    required_sections=["System Architecture", "Components", "Data Flow"],
)

TASKS = TemplateDefinition(
    id="tasks",
    name="Implementation Plan",
    description="Task breakdown and implementation roadmap",
    body=(
        "# {{title}}\n\n"
        "## Overview\n\n{{overview}}\n\n"
        "## Task Breakdown\n\n{{tasks}}\n\n"
        "## Testing Strategy\n\n{{testing}}\n\n"
        "## Risk Register\n\n{{risks}}\n\n"
        "## Timeline\n\n{{timeline}}\n\n"
        "Estimated effort: {{estimatedDays}} days. Blocked: {{blocked}}.\n"
    ),
    variables=[
        _TITLE,
        _AUTHOR,
        VariableSpec(name="overview", description="Implementation overview", default="To be defined."),
        _prompt("tasks", "Break the work into phases and tasks"),
        _prompt("testing", "Describe unit and integration testing"),
        _prompt("risks", "List delivery risks"),
        _prompt("timeline", "Outline milestones"),
        VariableSpec(
            name="estimatedDays",
            description="Estimated effort in days",
            default=0,
            type=VariableType.NUMBER,
        ),
        VariableSpec(
            name="blocked",
            description="Whether the plan is blocked",
            default=False,
            type=VariableType.BOOLEAN,
        ),
    ],
    front_matter=_front_matter("Implementation Plan"),
    required_sections=["Task Breakdown", "Testing Strategy"],
)

BUILTIN_TEMPLATES: tuple[TemplateDefinition, ...] = (BASIC, PRD, REQUIREMENTS, DESIGN, TASKS)
