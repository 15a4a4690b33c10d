"""Map free-form agent replies onto template sections with keyword rules."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from docsynth.models import ConversationContext, SectionUpdateSpec, TemplateStructure, UpdateMode

UNDECLARED_PRIORITY = 999
FEATURE_PLACEHOLDER = "[Feature description to be added]"

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_SPACE_RE = re.compile(r"\s+")
_FILLER_RES = (
    re.compile(r"^(?:Great|Excellent|Perfect)!?\s*", re.IGNORECASE),
    re.compile(r"Let me help you with that\.?\s*", re.IGNORECASE),
    re.compile(r"Here's what I understand:?\s*", re.IGNORECASE),
    re.compile(r"Based on your response:?\s*", re.IGNORECASE),
)


@dataclass(frozen=True)
class SectionRule:
    """Trigger words that route reply sentences to a section."""

    key: str
    section: str
    keywords: tuple[str, ...]

    def matches(self, sentence: str) -> bool:
        return any(_keyword_pattern(keyword).search(sentence) for keyword in self.keywords)


AGENT_RULES: dict[str, tuple[SectionRule, ...]] = {
    "prd-creator": (
        SectionRule(
            "problemStatement",
            "Problem Statement",
            ("problem", "issue", "challenge", "pain point", "difficulty"),
        ),
        SectionRule(
            "targetUsers",
            "Target Users",
            ("users", "customers", "audience", "personas", "target"),
        ),
        SectionRule(
            "features",
            "Key Features",
            ("features", "functionality", "capabilities", "tools"),
        ),
        SectionRule(
            "goals",
            "Goals and Objectives",
            ("goals", "objectives", "aims", "targets", "outcomes"),
        ),
    ),
    "requirements-gatherer": (
        SectionRule(
            "functionalRequirements",
            "Functional Requirements",
            ("functional", "requirement", "must", "shall", "should"),
        ),
        SectionRule(
            "nonFunctionalRequirements",
            "Non-Functional Requirements",
            ("performance", "security", "scalability", "usability"),
        ),
        SectionRule(
            "constraints",
            "Constraints",
            ("constraints", "limitations", "restrictions", "boundaries"),
        ),
    ),
    "solution-architect": (
        SectionRule(
            "architecture",
            "System Architecture",
            ("architecture", "design", "structure", "system"),
        ),
        SectionRule(
            "components",
            "Components",
            ("components", "modules", "services", "parts"),
        ),
        SectionRule(
            "dataFlow",
            "Data Flow",
            ("data flow", "information flow", "process", "workflow"),
        ),
    ),
}


def rules_for_agent(agent: str) -> tuple[SectionRule, ...]:
    return AGENT_RULES.get(agent, ())


def clean_agent_reply(text: str) -> str:
    """Strip conversational filler that should never land in a document."""
    cleaned = text
    for pattern in _FILLER_RES:
        cleaned = pattern.sub("", cleaned)
    return cleaned.strip()


def split_sentences(text: str) -> list[str]:
    """Sentences with collapsed whitespace, each terminated by a period."""
    sentences: list[str] = []
    for chunk in _SENTENCE_SPLIT_RE.split(text):
        sentence = _SPACE_RE.sub(" ", chunk).strip()
        if sentence:
            sentences.append(f"{sentence}.")
    return sentences


def extract_by_keywords(text: str, rule: SectionRule) -> list[str]:
    """Sentences of ``text`` that mention one of the rule's keywords, in order."""
    return [sentence for sentence in split_sentences(text) if rule.matches(sentence)]


def format_for_section(section_name: str, items: Sequence[str]) -> str:
    """Shape extracted items for the kind of section they land in."""
    lowered = section_name.lower()
    if "requirements" in lowered:
        return "\n".join(f"- {item}" for item in items)
    if "features" in lowered:
        return "\n\n".join(f"### {item.rstrip('.')}\n\n{FEATURE_PLACEHOLDER}" for item in items)
    return " ".join(items)


def determine_update_mode(section_name: str, context: ConversationContext) -> UpdateMode:
    """First turn replaces template prompts; every later turn appends."""
    if context.current_turn == 1:
        return UpdateMode.REPLACE
    return UpdateMode.APPEND


def section_priority(section_name: str, structure: TemplateStructure) -> int:
    section = structure.sections.get(section_name)
    return section.order if section is not None else UNDECLARED_PRIORITY


def map_content_to_sections(
    content: str,
    structure: TemplateStructure,
    context: ConversationContext,
) -> dict[str, SectionUpdateSpec]:
    """Turn an agent reply into section updates, ordered by priority.

    Sections whose keywords match nothing are left out entirely. Agents without
    rules route the whole reply to the structure's first section instead of
    matching a section literally named "content", which most templates lack and
    which would silently drop the reply.
    """
    rules = rules_for_agent(context.agent)
    if not rules:
        ordered = structure.ordered_sections()
        text = content.strip()
        if not ordered or not text:
            return {}
        return {ordered[0]: _build_spec(ordered[0], text, structure, context)}

    updates: dict[str, SectionUpdateSpec] = {}
    for rule in rules:
        sentences = extract_by_keywords(content, rule)
        if not sentences:
            continue
        name = structure.canonical_name(rule.section) or rule.section
        updates[name] = _build_spec(name, format_for_section(name, sentences), structure, context)
    return _by_priority(updates)


def map_extracted_content_to_sections(
    extracted: Mapping[str, str],
    structure: TemplateStructure,
    context: ConversationContext,
) -> dict[str, SectionUpdateSpec]:
    """Map pre-extracted ``{key: text}`` pairs onto sections.

    Keys are rule keys (``problemStatement``) or section names; unmatched keys
    and blank values are dropped.
    """
    rule_targets = {rule.key: rule.section for rule in rules_for_agent(context.agent)}
    updates: dict[str, SectionUpdateSpec] = {}
    for key, value in extracted.items():
        if not value.strip():
            continue
        target = rule_targets.get(key) or find_structure_section(key, structure)
        if target is None:
            continue
        name = structure.canonical_name(target) or target
        if _is_list_section(name):
            items = [line.strip().lstrip("-* ").strip() for line in value.splitlines() if line.strip()]
            text = format_for_section(name, items)
        else:
            text = value.strip()
        updates[name] = _build_spec(name, text, structure, context)
    return _by_priority(updates)


def find_structure_section(key: str, structure: TemplateStructure) -> str | None:
    """Declared section whose name or header contains ``key``."""
    exact = structure.canonical_name(key)
    if exact is not None:
        return exact
    lowered = key.strip().lower()
    if not lowered:
        return None
    for name in structure.ordered_sections():
        if lowered in name.lower() or lowered in structure.sections[name].header.lower():
            return name
    return None


def _build_spec(
    name: str,
    content: str,
    structure: TemplateStructure,
    context: ConversationContext,
) -> SectionUpdateSpec:
    return SectionUpdateSpec(
        section=name,
        content=content,
        mode=determine_update_mode(name, context),
        priority=section_priority(name, structure),
    )


def _by_priority(updates: dict[str, SectionUpdateSpec]) -> dict[str, SectionUpdateSpec]:
    ordered = sorted(updates.items(), key=lambda item: item[1].priority)
    return dict(ordered)


def _is_list_section(name: str) -> bool:
    lowered = name.lower()
    return "requirements" in lowered or "features" in lowered


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(r"\b" + re.escape(keyword), re.IGNORECASE)
