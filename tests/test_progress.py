from __future__ import annotations

from datetime import UTC, datetime

from docsynth.builtin_templates import DESIGN
from docsynth.models import StructureSection, TemplateStructure, UpdateMode, UpdateRecord
from docsynth.progress import ProgressStore, measure_progress
from docsynth.template_structure import derive_structure

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)


def _record(section: str) -> UpdateRecord:
    return UpdateRecord(timestamp=NOW, section=section, mode=UpdateMode.REPLACE, turn=1, excerpt="x")


def test_get_creates_zero_percent_record_on_first_access() -> None:
    store = ProgressStore()
    assert "doc.md" not in store

    record = store.get("doc.md")

    assert record.progress_percentage == 0.0
    assert record.satisfied_sections == []
    assert record.update_history == []
    assert "doc.md" in store
    assert len(store) == 1


def test_returned_records_are_copies() -> None:
    store = ProgressStore()
    record = store.get("doc.md")
    record.satisfied_sections.append("Tampered")
    record.progress_percentage = 99.0

    fresh = store.get("doc.md")
    assert fresh.satisfied_sections == []
    assert fresh.progress_percentage == 0.0


def test_record_replaces_progress_and_extends_history(prd_structure: TemplateStructure) -> None:
    store = ProgressStore()
    store.record(
        "doc.md",
        structure=prd_structure,
        satisfied=["Problem Statement"],
        percentage=25.0,
        updated_at=NOW,
        history=[_record("Problem Statement")],
    )
    record = store.record(
        "doc.md",
        structure=None,
        satisfied=[],
        percentage=0.0,
        updated_at=NOW,
        history=[_record("Target Users")],
    )

    assert record.template_id == "prd"
    assert record.total_sections == 4
    assert record.progress_percentage == 0.0
    assert [entry.section for entry in record.update_history] == ["Problem Statement", "Target Users"]
    assert store.structure_for("doc.md") is prd_structure


def test_clear_single_path_and_everything() -> None:
    store = ProgressStore()
    store.get("a.md")
    store.get("b.md")

    store.clear("a.md")
    assert "a.md" not in store
    assert "b.md" in store

    store.clear()
    assert len(store) == 0
    assert 42 not in store


def test_measure_progress_counts_filled_required_sections(prd_structure: TemplateStructure) -> None:
    text = (
        "# Doc\n\n"
        "## Problem Statement\n\nCheckout is slow.\n\n"
        "## Target Users\n\n<!-- Describe the primary user personas -->\n\n"
        "## Key Features\n\n### Saved carts\n"
    )

    satisfied, percentage = measure_progress(text, prd_structure)

    assert satisfied == ["Problem Statement", "Key Features"]
    assert percentage == 50.0


def test_measure_progress_edge_cases() -> None:
    optional_only = TemplateStructure(
        template_id="notes",
        sections={"Notes": StructureSection(header="## Notes", order=1)},
    )

    assert measure_progress("anything", None) == ([], 0.0)
    assert measure_progress("", optional_only) == ([], 100.0)


def test_measure_progress_rounds_to_two_decimals() -> None:
    structure = TemplateStructure(
        sections={
            name: StructureSection(header=f"## {name}", required=True, order=index)
            for index, name in enumerate(["A", "B", "C"], start=1)
        }
    )
    satisfied, percentage = measure_progress("## A\n\nfilled\n\n## B\n\n## C\n", structure)
    assert satisfied == ["A"]
    assert percentage == 33.33


def test_title_mentioning_missing_sections_does_not_satisfy_them() -> None:
    structure = derive_structure(DESIGN)
    text = "# Data Flow Components System Architecture\n\nIntro paragraph.\n"

    assert measure_progress(text, structure) == ([], 0.0)


def test_required_sections_need_an_exact_heading(prd_structure: TemplateStructure) -> None:
    text = (
        "## problem   statement\n\nSlow checkout.\n\n"
        "## Target Users and Buyers\n\nShop owners.\n"
    )

    satisfied, percentage = measure_progress(text, prd_structure)

    assert satisfied == ["Problem Statement"]
    assert percentage == 25.0
