"""Template catalog: built-in definitions plus workspace-supplied template files."""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from docsynth.builtin_templates import BUILTIN_TEMPLATES
from docsynth.exceptions import TemplateLoadError
from docsynth.markdown_sections import normalize_header, parse_sections
from docsynth.models import TemplateDefinition, VariableSpec
from docsynth.placeholders import RESERVED_VARIABLES, VARIABLE_NAME_RE, find_tokens
from docsynth.tracing import RunTraceCollector

_HEADER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)(.*)\Z", re.DOTALL)
_TEMPLATE_SUFFIXES = (".md", ".yaml", ".yml")


class TemplateRegistry:
    """Templates keyed by identifier.

    Built-ins are fixed at construction. Workspace templates are read from
    ``templates_dir`` on :meth:`load` and may shadow a built-in with the same id;
    :meth:`reload` discards every workspace entry and reads storage again.
    """

    def __init__(
        self,
        templates_dir: Path | None = None,
        *,
        builtins: Iterable[TemplateDefinition] = BUILTIN_TEMPLATES,
        trace: RunTraceCollector | None = None,
    ) -> None:
        self._templates_dir = templates_dir
        self._builtins: dict[str, TemplateDefinition] = {item.id: item for item in builtins}
        self._workspace: dict[str, TemplateDefinition] = {}
        self._load_errors: list[str] = []
        self._trace = trace

    @property
    def templates_dir(self) -> Path | None:
        return self._templates_dir

    @property
    def load_errors(self) -> list[str]:
        """Problems found by the most recent load, one message per skipped file."""
        return list(self._load_errors)

    def get_template(self, template_id: str) -> TemplateDefinition | None:
        """Return the effective definition for ``template_id``."""
        if template_id in self._workspace:
            return self._workspace[template_id]
        return self._builtins.get(template_id)

    def list_templates(self) -> list[TemplateDefinition]:
        """Effective definitions, built-ins first, then workspace-only templates."""
        listed = [self._workspace.get(key, value) for key, value in self._builtins.items()]
        listed.extend(
            value for key, value in self._workspace.items() if key not in self._builtins
        )
        return listed

    def templates_for_agent(self, agent: str) -> list[TemplateDefinition]:
        return [template for template in self.list_templates() if template.allows_agent(agent)]

    def is_builtin(self, template_id: str) -> bool:
        """True when the effective definition is the built-in one."""
        return template_id in self._builtins and template_id not in self._workspace

    def register(self, definition: TemplateDefinition) -> None:
        """Add a workspace definition; an existing id is overwritten, not merged."""
        shadowed = definition.id in self._builtins or definition.id in self._workspace
        self._workspace[definition.id] = definition
        self._log("register", definition.id, details={"overwrote": shadowed})

    def load(self) -> int:
        """Read workspace template files; return how many were registered."""
        directory = self._templates_dir
        if directory is None or not directory.is_dir():
            self._log("load", None, status="skipped", details={"templates_dir": str(directory)})
            return 0

        loaded = 0
        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.suffix.lower() not in _TEMPLATE_SUFFIXES:
                continue
            try:
                definition = parse_template_file(path)
            except TemplateLoadError as exc:
                self._load_errors.append(str(exc))
                self._log("load_file", None, status="error", details=str(exc))
                continue
            self.register(definition)
            loaded += 1
        self._log("load", None, details={"templates_dir": str(directory), "loaded": loaded})
        return loaded

    def reload(self) -> int:
        """Drop workspace templates (restoring shadowed built-ins) and load again."""
        self._workspace.clear()
        self._load_errors.clear()
        self._log("reload", None)
        return self.load()

    def _log(
        self,
        action: str,
        template_id: str | None,
        *,
        status: str = "ok",
        details: dict[str, Any] | str | None = None,
    ) -> None:
        if self._trace is None:
            return
        self._trace.log(
            event_type="template",
            component="template_registry",
            action=action,
            status=status,
            template_id=template_id,
            details=details,
        )


def parse_template_file(path: Path) -> TemplateDefinition:
    """Parse a workspace template file (.md, .yaml or .yml)."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise TemplateLoadError(f"Cannot read template file {path}: {exc}") from exc
    return parse_template_text(
        text,
        fallback_id=path.stem,
        source_path=str(path),
        yaml_document=path.suffix.lower() in {".yaml", ".yml"},
    )


def parse_template_text(
    text: str,
    *,
    fallback_id: str,
    source_path: str | None = None,
    yaml_document: bool = False,
) -> TemplateDefinition:
    """Parse template text with an optional ``---`` YAML header.

    Without a header, markdown text becomes the body and its tokens become
    required string variables; a YAML document must be a mapping with a ``body``.
    """
    header = _HEADER_RE.match(text)
    if header is not None:
        raw = _load_mapping(header.group(1), fallback_id)
        return _definition_from_mapping(raw, header.group(2), fallback_id, source_path)

    if yaml_document:
        raw = _load_mapping(text, fallback_id)
        body = raw.get("body", raw.get("content"))
        if not isinstance(body, str):
            raise TemplateLoadError(f"Template '{fallback_id}' YAML document needs a 'body' string.")
        return _definition_from_mapping(raw, body, fallback_id, source_path)

    return TemplateDefinition(
        id=fallback_id,
        name=fallback_id,
        description="User-defined template",
        body=text,
        variables=extract_variables(text),
        source_path=source_path,
    )


def extract_variables(text: str) -> list[VariableSpec]:
    """Infer required string variables from the tokens used in ``text``."""
    return [
        VariableSpec(name=name, description=f"Variable: {name}", required=True)
        for name in find_tokens(text)
        if name not in RESERVED_VARIABLES
    ]


def validate_template(definition: TemplateDefinition) -> list[str]:
    """Return human-readable problems with a template definition."""
    errors: list[str] = []
    if not definition.body.strip():
        errors.append(f"Template '{definition.id}' has an empty body.")

    declared = {variable.name for variable in definition.variables}
    for variable in definition.variables:
        if not VARIABLE_NAME_RE.match(variable.name):
            errors.append(f"Variable name '{variable.name}' is not a valid token identifier.")

    used = find_tokens(definition.body)
    for value in definition.front_matter.values():
        if isinstance(value, str):
            used.extend(token for token in find_tokens(value) if token not in used)

    for token in used:
        if token not in declared and token not in RESERVED_VARIABLES:
            errors.append(f"Placeholder '{{{{{token}}}}}' has no declared variable.")
    for variable in definition.variables:
        if variable.name not in used:
            errors.append(f"Variable '{variable.name}' is declared but never used.")

    headings = {normalize_header(section.title) for section in parse_sections(definition.body)}
    for section_name in definition.required_sections:
        if normalize_header(section_name) not in headings:
            errors.append(f"Required section '{section_name}' has no matching heading.")
    return errors


def _load_mapping(text: str, template_id: str) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise TemplateLoadError(f"Template '{template_id}' has invalid YAML: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise TemplateLoadError(f"Template '{template_id}' header must be a YAML mapping.")
    return raw


def _definition_from_mapping(
    raw: dict[str, Any],
    body: str,
    fallback_id: str,
    source_path: str | None,
) -> TemplateDefinition:
    template_id = str(raw.get("id") or fallback_id)
    front_matter = _first_present(raw, "frontMatter", "front_matter", default={})
    if not isinstance(front_matter, dict):
        raise TemplateLoadError(f"Template '{template_id}' field 'frontMatter' must be a mapping.")
    try:
        return TemplateDefinition(
            id=template_id,
            name=str(raw.get("name") or template_id),
            description=str(raw.get("description") or "User-defined template"),
            body=body,
            variables=_parse_variables(raw.get("variables") or [], template_id),
            front_matter=front_matter,
            agent_restrictions=_parse_str_list(
                _first_present(raw, "agentRestrictions", "agent_restrictions", default=[]),
                template_id,
                "agentRestrictions",
            ),
            required_sections=_parse_str_list(
                _first_present(raw, "requiredSections", "required_sections", default=[]),
                template_id,
                "requiredSections",
            ),
            source_path=source_path,
        )
    except ValidationError as exc:
        raise TemplateLoadError(f"Template '{template_id}' is invalid: {exc}") from exc


def _parse_variables(raw: Any, template_id: str) -> list[VariableSpec]:
    if not isinstance(raw, list):
        raise TemplateLoadError(f"Template '{template_id}' field 'variables' must be a list.")
    parsed: list[VariableSpec] = []
    for entry in raw:
        if not isinstance(entry, dict) or "name" not in entry:
            raise TemplateLoadError(
                f"Template '{template_id}' variable entries must be mappings with key 'name'."
            )
        payload = {
            "name": str(entry["name"]),
            "description": str(entry.get("description", "")),
            "required": bool(entry.get("required", False)),
            "default": _first_present(entry, "defaultValue", "default", default=None),
            "type": entry.get("type", "string"),
        }
        try:
            parsed.append(VariableSpec(**payload))
        except ValidationError as exc:
            raise TemplateLoadError(
                f"Template '{template_id}' variable '{payload['name']}' is invalid: {exc}"
            ) from exc
    return parsed


def _parse_str_list(raw: Any, template_id: str, field: str) -> list[str]:
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise TemplateLoadError(f"Template '{template_id}' field '{field}' must be a list of strings.")
    return list(raw)


def _first_present(raw: dict[str, Any], *keys: str, default: Any) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return default
