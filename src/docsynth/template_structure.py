"""Derive the section structure a template is expected to produce."""

from __future__ import annotations

from docsynth.markdown_sections import normalize_header, parse_lines, split_lines
from docsynth.models import PlaceholderInfo, StructureSection, TemplateDefinition, TemplateStructure
from docsynth.placeholders import find_tokens

_SECTION_LEVEL = 2


def derive_structure(definition: TemplateDefinition) -> TemplateStructure:
    """Build a :class:`TemplateStructure` from a template body.

    Every level-2 heading is a section, in body order. A section is required when
    the template lists it in ``required_sections`` or when it holds a placeholder
    of a required variable.
    """
    lines = split_lines(definition.body)
    parsed = parse_lines(lines)
    required_titles = {normalize_header(name) for name in definition.required_sections}
    required_variables = {variable.name for variable in definition.variables if variable.required}
    descriptions = {variable.name: variable.description for variable in definition.variables}

    sections: dict[str, StructureSection] = {}
    owners: dict[int, str] = {}
    document_title = definition.name
    for section in parsed:
        if section.level < _SECTION_LEVEL:
            document_title = section.title
            owners[section.start_line] = section.title
            continue
        if section.level != _SECTION_LEVEL:
            continue
        owners[section.start_line] = section.title
        if section.title in sections:
            continue
        run = "\n".join(lines[section.content_start : section.content_end + 1])
        sections[section.title] = StructureSection(
            header=lines[section.start_line].strip(),
            required=normalize_header(section.title) in required_titles
            or any(token in required_variables for token in find_tokens(run)),
            order=len(sections) + 1,
        )

    placeholders: dict[str, PlaceholderInfo] = {}
    owner = document_title
    for index, line in enumerate(lines):
        owner = owners.get(index, owner)
        for token in find_tokens(line):
            placeholders.setdefault(
                f"{{{{{token}}}}}",
                PlaceholderInfo(section=owner, description=descriptions.get(token, "")),
            )

    return TemplateStructure(template_id=definition.id, sections=sections, placeholders=placeholders)
