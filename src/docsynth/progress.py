"""Per-document completion tracking."""

from __future__ import annotations

import re
import threading
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from docsynth.markdown_sections import (
    Section,
    normalize_header,
    parse_lines,
    section_body,
    split_lines,
)
from docsynth.models import ProgressRecord, TemplateStructure, UpdateRecord

_COMMENT_ONLY_RE = re.compile(r"^\s*<!--.*-->\s*$")


class ProgressStore:
    """Progress records keyed by document path, held for the life of the process.

    ``get`` creates a 0% record on first access. Records handed out are copies;
    the store changes only through :meth:`record` and :meth:`clear`.
    """

    def __init__(self) -> None:
        self._records: dict[str, ProgressRecord] = {}
        self._structures: dict[str, TemplateStructure] = {}
        self._lock = threading.Lock()

    def get(self, document_path: str | Path) -> ProgressRecord:
        key = str(document_path)
        with self._lock:
            record = self._records.get(key)
            if record is None:
                record = ProgressRecord(document_path=key)
                self._records[key] = record
            return record.model_copy(deep=True)

    def structure_for(self, document_path: str | Path) -> TemplateStructure | None:
        """The structure most recently recorded for the path."""
        with self._lock:
            return self._structures.get(str(document_path))

    def record(
        self,
        document_path: str | Path,
        *,
        structure: TemplateStructure | None,
        satisfied: Sequence[str],
        percentage: float,
        updated_at: datetime,
        history: Sequence[UpdateRecord] = (),
    ) -> ProgressRecord:
        """Store freshly measured progress, extending the path's update history."""
        key = str(document_path)
        with self._lock:
            previous = self._records.get(key)
            if structure is not None:
                self._structures[key] = structure
            known = self._structures.get(key)
            record = ProgressRecord(
                document_path=key,
                template_id=known.template_id if known is not None else None,
                required_sections=known.required_sections() if known is not None else [],
                satisfied_sections=list(satisfied),
                progress_percentage=percentage,
                last_updated=updated_at,
                update_history=[
                    *(previous.update_history if previous is not None else []),
                    *history,
                ],
            )
            self._records[key] = record
            return record.model_copy(deep=True)

    def clear(self, document_path: str | Path | None = None) -> None:
        """Forget one path, or every path when none is given."""
        with self._lock:
            if document_path is None:
                self._records.clear()
                self._structures.clear()
                return
            self._records.pop(str(document_path), None)
            self._structures.pop(str(document_path), None)

    def __contains__(self, document_path: object) -> bool:
        if not isinstance(document_path, (str, Path)):
            return False
        with self._lock:
            return str(document_path) in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def measure_progress(
    text: str,
    structure: TemplateStructure | None,
) -> tuple[list[str], float]:
    """Return the satisfied required sections of ``text`` and the completion percentage.

    A required section is satisfied when the document has a heading with exactly
    its title (ignoring case and spacing) and at least one content line that is
    neither blank nor an HTML comment. A heading that merely contains the title,
    such as the document title, does not count.
    """
    if structure is None:
        return [], 0.0
    required = structure.required_sections()
    if not required:
        return [], 100.0

    lines = split_lines(text)
    sections = parse_lines(lines)
    satisfied: list[str] = []
    for name in required:
        section = _exact_section(sections, structure.sections[name].header)
        if section is None:
            continue
        if any(not _COMMENT_ONLY_RE.match(line) for line in section_body(lines, section)):
            satisfied.append(name)
    return satisfied, round(len(satisfied) / len(required) * 100, 2)


def _exact_section(sections: Sequence[Section], header: str) -> Section | None:
    wanted = normalize_header(header)
    for section in sections:
        if normalize_header(section.title) == wanted:
            return section
    return None
