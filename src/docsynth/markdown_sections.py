"""Heading-delimited section model for markdown documents.

A document is a flat, ordered list of sections. Nesting is implicit: a section's
content run extends until the next heading whose level is less than or equal to
its own, or to the end of the document. All functions here are pure.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from docsynth.models import UpdateMode

_HEADING_RE = re.compile(r"^(#{1,6})\s+(\S.*?)\s*$")
_CLOSING_HASHES_RE = re.compile(r"\s+#+$")
_LEADING_MARKER_RE = re.compile(r"^[#\s]+")
_SPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class Section:
    """A heading and the line range of the content that belongs to it."""

    level: int
    title: str
    start_line: int
    content_start: int
    content_end: int

    @property
    def is_empty_run(self) -> bool:
        return self.content_end < self.content_start


def split_lines(text: str) -> list[str]:
    """Split on ``\\n`` so that ``join_lines(split_lines(text)) == text``."""
    return text.split("\n")


def join_lines(lines: Sequence[str]) -> str:
    return "\n".join(lines)


def normalize_header(text: str) -> str:
    """Lowercased title text without leading ``#`` markers or extra whitespace."""
    stripped = _LEADING_MARKER_RE.sub("", text.strip())
    return _SPACE_RE.sub(" ", stripped).strip().lower()


def parse_sections(text: str) -> list[Section]:
    """Parse document text into sections in document order."""
    return parse_lines(split_lines(text))


def parse_lines(lines: Sequence[str]) -> list[Section]:
    headings: list[tuple[int, int, str]] = []
    for index, line in enumerate(lines):
        match = _HEADING_RE.match(line.strip())
        if match is None:
            continue
        title = _CLOSING_HASHES_RE.sub("", match.group(2)).strip()
        if not title:
            continue
        headings.append((index, len(match.group(1)), _SPACE_RE.sub(" ", title)))

    sections: list[Section] = []
    last_line = len(lines) - 1
    for position, (index, level, title) in enumerate(headings):
        content_end = last_line
        for next_index, next_level, _title in headings[position + 1 :]:
            if next_level <= level:
                content_end = next_index - 1
                break
        sections.append(
            Section(
                level=level,
                title=title,
                start_line=index,
                content_start=index + 1,
                content_end=content_end,
            )
        )
    return sections


def locate_section(sections: Sequence[Section], target_header: str) -> Section | None:
    """Find the section best matching ``target_header``.

    Matches rank exact title > prefix (either direction) > substring (either
    direction). Ties go to the earliest section in document order.
    """
    target = normalize_header(target_header)
    if not target:
        return None

    best: Section | None = None
    best_rank: int | None = None
    for section in sections:
        rank = match_rank(normalize_header(section.title), target)
        if rank is None:
            continue
        if best_rank is None or rank < best_rank:
            best, best_rank = section, rank
            if rank == 0:
                break
    return best


def match_rank(title: str, target: str) -> int | None:
    """Rank how well a normalized title matches a normalized target (lower is better)."""
    if not title or not target:
        return None
    if title == target:
        return 0
    if title.startswith(target) or target.startswith(title):
        return 1
    if target in title or title in target:
        return 2
    return None


def section_body(lines: Sequence[str], section: Section) -> list[str]:
    """Content lines of a section without surrounding blank padding."""
    _leading, body, _trailing = _partition_run(lines, section)
    return body


def apply_update(
    lines: Sequence[str],
    section: Section,
    content: str,
    mode: UpdateMode,
) -> list[str]:
    """Return new lines with ``content`` folded into ``section``.

    Blank lines padding the content run are kept; only the body between them is
    replaced, extended or prefixed. Lines outside the run are returned unchanged.
    """
    new_lines = _content_lines(content)
    leading, body, trailing = _partition_run(lines, section)
    if not body and new_lines:
        leading = [""]
        if not trailing:
            trailing = [""]

    if mode == UpdateMode.REPLACE:
        merged = new_lines
    elif mode == UpdateMode.APPEND:
        merged = [*body, "", *new_lines] if body and new_lines else [*body, *new_lines]
    else:
        merged = [*new_lines, "", *body] if body and new_lines else [*new_lines, *body]

    return [
        *lines[: section.content_start],
        *leading,
        *merged,
        *trailing,
        *lines[section.content_end + 1 :],
    ]


def create_section(text: str, header: str, content: str) -> str:
    """Append a new section at the end of ``text``, leaving existing text untouched."""
    stripped_header = header.strip()
    header_line = stripped_header if stripped_header.startswith("#") else f"## {stripped_header}"
    body = content.strip("\n")
    if not text:
        return f"{header_line}\n\n{body}\n"
    separator = "\n" if text.endswith("\n") else "\n\n"
    return f"{text}{separator}{header_line}\n\n{body}\n"


def _content_lines(content: str) -> list[str]:
    if not content.strip():
        return []
    return split_lines(content.strip("\n"))


def _partition_run(
    lines: Sequence[str],
    section: Section,
) -> tuple[list[str], list[str], list[str]]:
    run = list(lines[section.content_start : section.content_end + 1])
    first = 0
    while first < len(run) and not run[first].strip():
        first += 1
    if first == len(run):
        return run[:1], [], run[1:]
    last = len(run)
    while last > first and not run[last - 1].strip():
        last -= 1
    return run[:first], run[first:last], run[last:]
