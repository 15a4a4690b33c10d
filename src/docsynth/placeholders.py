"""Placeholder token utilities shared by the registry and the renderer."""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, datetime

from docsynth.exceptions import VariableCoercionError
from docsynth.models import VariableSpec, VariableType, VariableValue

TOKEN_RE = re.compile(r"\{\{(\w+)\}\}")
VARIABLE_NAME_RE = re.compile(r"^\w+$")
RESERVED_VARIABLES = ("currentDate", "currentDateTime", "workspaceRoot", "author")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def find_tokens(text: str) -> list[str]:
    """Token names in first-occurrence order, without duplicates."""
    return list(dict.fromkeys(TOKEN_RE.findall(text)))


def substitute_tokens(text: str, bindings: Mapping[str, VariableValue]) -> str:
    """Replace every bound ``{{name}}`` token in one pass.

    Unbound tokens are left verbatim and substituted text is never re-scanned.
    """

    def replacement(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in bindings:
            return match.group(0)
        return format_value(bindings[name])

    return TOKEN_RE.sub(replacement, text)


def format_value(value: VariableValue) -> str:
    """String form of a bound value, used only at substitution time."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime | date):
        return value.isoformat()
    return str(value)


def coerce_variable_value(spec: VariableSpec, raw: str) -> VariableValue:
    """Convert raw text into the value type named by the spec's type tag."""
    text = raw.strip()
    if spec.type == VariableType.STRING:
        return raw
    if spec.type == VariableType.NUMBER:
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError as exc:
            raise VariableCoercionError(
                f"Variable '{spec.name}' expects a number, got '{raw}'."
            ) from exc
    if spec.type == VariableType.BOOLEAN:
        lowered = text.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise VariableCoercionError(f"Variable '{spec.name}' expects a boolean, got '{raw}'.")
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise VariableCoercionError(
            f"Variable '{spec.name}' expects an ISO date (YYYY-MM-DD), got '{raw}'."
        ) from exc
