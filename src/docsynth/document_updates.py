"""Apply agent-driven section updates to markdown documents."""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager, nullcontext
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from docsynth import content_mapping
from docsynth.exceptions import DocumentWriteError
from docsynth.file_ops import atomic_write_text, read_text_or_empty
from docsynth.markdown_sections import (
    apply_update,
    create_section,
    join_lines,
    locate_section,
    parse_lines,
    split_lines,
)
from docsynth.models import (
    ConversationContext,
    ProgressRecord,
    SectionUpdateOutcome,
    SectionUpdateSpec,
    TemplateStructure,
    UpdateMode,
    UpdateRecord,
)
from docsynth.progress import ProgressStore, measure_progress
from docsynth.tracing import RunTraceCollector

EXCERPT_LENGTH = 100


class _PathLocks:
    """Process-wide lock per document path.

    An entry lives only while some thread holds or waits on it, so the registry
    does not grow with every path ever touched.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            lock, users = entry if entry is not None else (threading.Lock(), 0)
            self._entries[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._entries[key]
                if users == 1:
                    del self._entries[key]
                else:
                    self._entries[key] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


_PATH_LOCKS = _PathLocks()


class DocumentUpdateEngine:
    """Fold section updates into documents and track their completion.

    At most one update batch runs per document path at a time, across every
    engine in the process: the full read, modify, write and progress sequence
    holds that path's lock.
    """

    def __init__(
        self,
        progress_store: ProgressStore | None = None,
        *,
        trace: RunTraceCollector | None = None,
        enable_document_updates: bool = True,
    ) -> None:
        self._progress = progress_store if progress_store is not None else ProgressStore()
        self._trace = trace
        self._enabled = enable_document_updates

    @property
    def progress_store(self) -> ProgressStore:
        return self._progress

    def map_content_to_sections(
        self,
        content: str,
        structure: TemplateStructure,
        context: ConversationContext,
    ) -> dict[str, SectionUpdateSpec]:
        return content_mapping.map_content_to_sections(content, structure, context)

    def map_extracted_content_to_sections(
        self,
        extracted: Mapping[str, str],
        structure: TemplateStructure,
        context: ConversationContext,
    ) -> dict[str, SectionUpdateSpec]:
        return content_mapping.map_extracted_content_to_sections(extracted, structure, context)

    def determine_update_mode(self, section_name: str, context: ConversationContext) -> UpdateMode:
        return content_mapping.determine_update_mode(section_name, context)

    def get_update_progress(self, path: str | Path) -> ProgressRecord:
        """Current progress for ``path``, created at 0% if the path is new."""
        return self._progress.get(_document_key(path))

    def apply_section_updates(
        self,
        path: str | Path,
        updates: Sequence[SectionUpdateSpec],
        *,
        structure: TemplateStructure | None = None,
        context: ConversationContext | None = None,
    ) -> SectionUpdateOutcome:
        """Apply ``updates`` to the document at ``path`` and persist it once.

        Updates run in ascending priority; equal priorities keep the given order.
        Each update re-parses the partially updated text, so later updates see the
        sections earlier ones created. An unreadable document is treated as empty.
        ``structure`` defaults to the one last used for this path.

        Raises:
            DocumentWriteError: The document could not be written. Progress is
                left as it was.
        """
        document_path = Path(path)
        key = _document_key(document_path)
        with _PATH_LOCKS.hold(key):
            original, read_error = read_text_or_empty(document_path)
            if read_error is not None:
                self._log(
                    "read",
                    key,
                    status="recovered",
                    details={"error": str(read_error), "treated_as": "empty document"},
                )

            text = original
            sections_updated: list[str] = []
            sections_created: list[str] = []
            history: list[UpdateRecord] = []
            now = datetime.now(UTC)
            for update in sorted(updates, key=lambda item: item.priority):
                lines = split_lines(text)
                section = locate_section(parse_lines(lines), update.section)
                if section is None:
                    text = create_section(text, update.section, update.content)
                    sections_created.append(update.section)
                    action = "create_section"
                else:
                    text = join_lines(apply_update(lines, section, update.content, update.mode))
                    sections_updated.append(section.title)
                    action = "apply_update"
                history.append(
                    UpdateRecord(
                        timestamp=now,
                        section=update.section,
                        mode=update.mode,
                        turn=context.current_turn if context is not None else None,
                        excerpt=update.content[:EXCERPT_LENGTH],
                    )
                )
                self._log(
                    action,
                    key,
                    section=update.section,
                    details={"mode": update.mode.value, "priority": update.priority},
                )

            changed = text != original
            if changed:
                self._write(document_path, key, text)

            effective = structure if structure is not None else self._progress.structure_for(key)
            satisfied, percentage = measure_progress(text, effective)
            progress = self._progress.record(
                key,
                structure=structure,
                satisfied=satisfied,
                percentage=percentage,
                updated_at=now,
                history=history,
            )
            self._log(
                "progress",
                key,
                details={"satisfied": satisfied, "percentage": percentage},
            )

        return SectionUpdateOutcome(
            document_path=key,
            sections_updated=sections_updated,
            sections_created=sections_created,
            changed=changed,
            progress=progress,
        )

    def update_document_from_conversation(
        self,
        path: str | Path,
        reply: str,
        structure: TemplateStructure,
        context: ConversationContext,
    ) -> SectionUpdateOutcome:
        """Clean an agent reply, map it onto sections and apply the result."""
        key = _document_key(path)
        if not self._enabled:
            self._log("conversation_update", key, status="skipped", details="document updates disabled")
            return SectionUpdateOutcome(document_path=key, progress=self.get_update_progress(path))

        updates = self.map_content_to_sections(
            content_mapping.clean_agent_reply(reply),
            structure,
            context,
        )
        if not updates:
            self._log("conversation_update", key, status="skipped", details="no matching content")
            return SectionUpdateOutcome(document_path=key, progress=self.get_update_progress(path))
        return self.apply_section_updates(
            path,
            list(updates.values()),
            structure=structure,
            context=context,
        )

    def _write(self, document_path: Path, key: str, text: str) -> None:
        with self._timed("write", key) as details:
            details["bytes"] = len(text.encode("utf-8"))
            try:
                atomic_write_text(document_path, text)
            except OSError as exc:
                raise DocumentWriteError(document_path, exc) from exc

    @contextmanager
    def _timed(self, action: str, key: str) -> Iterator[dict[str, Any]]:
        if self._trace is None:
            with nullcontext({}) as details:
                yield details
            return
        with self._trace.timed(
            event_type="document",
            component="document_updates",
            action=action,
            document_path=key,
        ) as details:
            yield details

    def _log(
        self,
        action: str,
        key: str,
        *,
        status: str = "ok",
        section: str | None = None,
        details: dict[str, Any] | str | None = None,
    ) -> None:
        if self._trace is None:
            return
        self._trace.log(
            event_type="document",
            component="document_updates",
            action=action,
            status=status,
            document_path=key,
            section=section,
            details=details,
        )


def _document_key(path: str | Path) -> str:
    return str(Path(path).resolve())
