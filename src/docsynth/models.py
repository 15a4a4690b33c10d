"""Core typed models."""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator

VariableValue = str | int | float | bool | date | datetime


class VariableType(StrEnum):
    """Semantic type tags for template variables."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"


class UpdateMode(StrEnum):
    """How new content is folded into an existing section."""

    REPLACE = "replace"
    APPEND = "append"
    PREPEND = "prepend"


class RenderErrorKind(StrEnum):
    """Reasons a render can fail."""

    TEMPLATE_NOT_FOUND = "template_not_found"
    MISSING_REQUIRED_VARIABLES = "missing_required_variables"


class VariableSpec(BaseModel):
    """Declared template variable."""

    model_config = {"frozen": True}

    name: str
    description: str = ""
    required: bool = False
    default: VariableValue | None = None
    type: VariableType = VariableType.STRING


class TemplateDefinition(BaseModel):
    """Reusable document skeleton with placeholder tokens."""

    model_config = {"frozen": True}

    id: str
    name: str
    description: str = ""
    body: str
    variables: list[VariableSpec] = Field(default_factory=list)
    front_matter: dict[str, Any] = Field(default_factory=dict)
    agent_restrictions: list[str] = Field(default_factory=list)
    required_sections: list[str] = Field(default_factory=list)
    source_path: str | None = None

    @model_validator(mode="after")
    def ensure_unique_variable_names(self) -> TemplateDefinition:
        """Variable names identify tokens, so they must not repeat."""
        seen: set[str] = set()
        for variable in self.variables:
            if variable.name in seen:
                raise ValueError(
                    f"Template '{self.id}' declares variable '{variable.name}' more than once."
                )
            seen.add(variable.name)
        return self

    def variable(self, name: str) -> VariableSpec | None:
        """Return the declared variable with the given name."""
        for variable in self.variables:
            if variable.name == name:
                return variable
        return None

    def allows_agent(self, agent: str) -> bool:
        """Whether the agent may use this template."""
        return not self.agent_restrictions or agent in self.agent_restrictions


class TemplateMetadata(BaseModel):
    """Snapshot of template identity captured in a render result."""

    model_config = {"frozen": True}

    id: str
    name: str
    description: str = ""
    variables: list[VariableSpec] = Field(default_factory=list)
    builtin: bool = False


class RenderContext(BaseModel):
    """Per-call render inputs."""

    variables: dict[str, VariableValue] = Field(default_factory=dict)
    workspace_root: str = "."
    current_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    author: str | None = None


class RenderResult(BaseModel):
    """Successful render output."""

    model_config = {"frozen": True}

    body: str
    front_matter: dict[str, Any] = Field(default_factory=dict)
    metadata: TemplateMetadata


class RenderFailure(BaseModel):
    """Render error returned as a value."""

    model_config = {"frozen": True}

    kind: RenderErrorKind
    template_id: str
    missing_variables: list[str] = Field(default_factory=list)
    message: str


class SectionUpdateSpec(BaseModel):
    """Targeted edit against one document section."""

    model_config = {"frozen": True}

    section: str
    content: str
    mode: UpdateMode = UpdateMode.REPLACE
    priority: int = 999


class StructureSection(BaseModel):
    """Declared section of a template structure."""

    header: str
    required: bool = False
    order: int


class PlaceholderInfo(BaseModel):
    """Owning section of a placeholder token."""

    section: str
    description: str = ""


class TemplateStructure(BaseModel):
    """Sections a template is expected to produce, independent of document content."""

    template_id: str | None = None
    sections: dict[str, StructureSection] = Field(default_factory=dict)
    placeholders: dict[str, PlaceholderInfo] = Field(default_factory=dict)

    def ordered_sections(self) -> list[str]:
        """Section names in declared order."""
        return sorted(self.sections, key=lambda name: self.sections[name].order)

    def required_sections(self) -> list[str]:
        """Required section names in declared order."""
        return [name for name in self.ordered_sections() if self.sections[name].required]

    def canonical_name(self, name: str) -> str | None:
        """Return the declared section name matching ``name`` case-insensitively."""
        lowered = name.strip().lower()
        for section_name in self.sections:
            if section_name.lower() == lowered:
                return section_name
        return None


class ConversationContext(BaseModel):
    """Caller-owned state of the conversation driving an update."""

    agent: str
    template_id: str
    current_turn: int = Field(default=1, ge=1)
    previous_responses: list[str] = Field(default_factory=list)
    document_path: str = ""


class UpdateRecord(BaseModel):
    """History entry for one applied section update."""

    timestamp: datetime
    section: str
    mode: UpdateMode
    turn: int | None = None
    excerpt: str = ""


class ProgressRecord(BaseModel):
    """Completion tracking for one document path."""

    document_path: str
    template_id: str | None = None
    required_sections: list[str] = Field(default_factory=list)
    satisfied_sections: list[str] = Field(default_factory=list)
    progress_percentage: float = 0.0
    last_updated: datetime | None = None
    update_history: list[UpdateRecord] = Field(default_factory=list)

    @property
    def total_sections(self) -> int:
        return len(self.required_sections)

    @property
    def completed_sections(self) -> int:
        return len(self.satisfied_sections)


class SectionUpdateOutcome(BaseModel):
    """Result of applying a batch of section updates."""

    document_path: str
    sections_updated: list[str] = Field(default_factory=list)
    sections_created: list[str] = Field(default_factory=list)
    changed: bool = False
    progress: ProgressRecord


class AppConfig(BaseModel):
    """Runtime configuration."""

    workspace_root: str = "."
    templates_dir: str = ".docsynth/templates"
    author: str | None = None
    default_template: str = "basic"
    enable_document_updates: bool = True
    trace_dir: str | None = None
