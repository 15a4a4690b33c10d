"""Render templates into document text and front matter."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from docsynth.exceptions import DocumentWriteError
from docsynth.file_ops import atomic_write_text
from docsynth.models import (
    RenderContext,
    RenderErrorKind,
    RenderFailure,
    RenderResult,
    TemplateDefinition,
    TemplateMetadata,
    VariableValue,
)
from docsynth.placeholders import substitute_tokens
from docsynth.template_registry import TemplateRegistry
from docsynth.tracing import RunTraceCollector

_CANONICAL_FIELDS = ("title", "created", "author")


class TemplateRenderer:
    """Materialize registry templates.

    Rendering is all-or-nothing and referentially transparent: identical inputs
    give byte-identical output. Failures are returned as :class:`RenderFailure`.
    """

    def __init__(self, registry: TemplateRegistry, *, trace: RunTraceCollector | None = None) -> None:
        self._registry = registry
        self._trace = trace

    def render(self, template_id: str, context: RenderContext) -> RenderResult | RenderFailure:
        template = self._registry.get_template(template_id)
        if template is None:
            return self._fail(
                RenderFailure(
                    kind=RenderErrorKind.TEMPLATE_NOT_FOUND,
                    template_id=template_id,
                    message=f"Template '{template_id}' not found.",
                )
            )

        missing = missing_required_variables(template, context.variables)
        if missing:
            return self._fail(
                RenderFailure(
                    kind=RenderErrorKind.MISSING_REQUIRED_VARIABLES,
                    template_id=template_id,
                    missing_variables=missing,
                    message=f"Missing required variables: {', '.join(missing)}",
                )
            )

        bindings = resolve_bindings(template, context)
        front_matter = render_front_matter(template.front_matter, bindings)
        if "title" in bindings:
            front_matter["title"] = bindings["title"]
        front_matter["created"] = bindings["currentDate"]
        front_matter["author"] = bindings["author"]

        result = RenderResult(
            body=substitute_tokens(template.body, bindings),
            front_matter=front_matter,
            metadata=TemplateMetadata(
                id=template.id,
                name=template.name,
                description=template.description,
                variables=list(template.variables),
                builtin=self._registry.is_builtin(template.id),
            ),
        )
        if self._trace is not None:
            self._trace.log(
                event_type="render",
                component="template_renderer",
                action="render",
                template_id=template_id,
                details={"bindings": sorted(bindings), "body_length": len(result.body)},
            )
        return result

    def _fail(self, failure: RenderFailure) -> RenderFailure:
        if self._trace is not None:
            self._trace.log(
                event_type="render",
                component="template_renderer",
                action="render",
                status="error",
                template_id=failure.template_id,
                details={"kind": failure.kind.value, "missing": failure.missing_variables},
            )
        return failure


def missing_required_variables(
    template: TemplateDefinition,
    variables: Mapping[str, VariableValue],
) -> list[str]:
    """Every required variable that is neither supplied nor defaulted, in declaration order."""
    return [
        variable.name
        for variable in template.variables
        if variable.required and variable.name not in variables and variable.default is None
    ]


def resolve_bindings(template: TemplateDefinition, context: RenderContext) -> dict[str, VariableValue]:
    """Merge explicit values, then declared defaults, then reserved system values.

    Each layer only fills names the previous layers left unbound, so a template's
    own variable can shadow a reserved name.
    """
    bindings: dict[str, VariableValue] = dict(context.variables)
    for variable in template.variables:
        if variable.name not in bindings and variable.default is not None:
            bindings[variable.name] = variable.default

    system_values: dict[str, VariableValue] = {
        "currentDate": context.current_time.date().isoformat(),
        "currentDateTime": context.current_time.isoformat(),
        "workspaceRoot": context.workspace_root,
        "author": context.author or "Unknown",
    }
    for name, value in system_values.items():
        bindings.setdefault(name, value)
    return bindings


def render_front_matter(
    front_matter: Mapping[str, Any],
    bindings: Mapping[str, VariableValue],
) -> dict[str, Any]:
    """Substitute tokens in string values; other values pass through unchanged."""
    return {
        key: substitute_tokens(value, bindings) if isinstance(value, str) else value
        for key, value in front_matter.items()
    }


def compose_document(result: RenderResult) -> str:
    """Serialize a render result as ``---`` front matter followed by the body."""
    if not result.front_matter:
        return result.body
    header = yaml.safe_dump(
        dict(result.front_matter),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"---\n{header}---\n\n{result.body}"


def write_document(result: RenderResult, path: Path, *, overwrite: bool = False) -> Path:
    """Persist a rendered document; refuses to replace an existing file unless asked."""
    if path.exists() and not overwrite:
        raise FileExistsError(f"Document already exists: {path}")
    try:
        atomic_write_text(path, compose_document(result))
    except OSError as exc:
        raise DocumentWriteError(path, exc) from exc
    return path
