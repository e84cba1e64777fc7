"""Test entity reconciliation."""
import pytest
from extraction.models import (
    BookType,
    CollectionEntity,
    EntityDraft,
    EntityKind,
    NovelEntity
)
from extraction.reconciler import EntityReconciler, deduplicate
from ingestion.models import Section
from utils.logger import RunLog


def draft(kind, name, numbers, description=""):
    return EntityDraft(kind=kind, name=name, description=description, section_numbers=numbers)


@pytest.fixture
def sections():
    return [
        Section(title="Front Matter", body="For you", index=0, is_front_matter=True),
        Section(title="Arrival", body="...", index=1),
        Section(title="Storm", body="...", index=2),
        Section(title="Departure", body="...", index=3),
    ]


def test_novel_merges_same_name_across_chunks(sections):
    """Test that case-insensitive duplicates merge with unioned references."""
    chunks = [
        [draft("character", "Mara", [3, 1], "Captain")],
        [draft("character", " mara ", [2, 3], "Someone else")],
    ]

    entities = EntityReconciler().reconcile(chunks, BookType.NOVEL, sections)

    assert len(entities) == 1
    mara = entities[0]
    assert isinstance(mara, NovelEntity)
    assert mara.name == "Mara"
    assert mara.description == "Captain"
    assert mara.section_refs == [sections[1].id, sections[2].id, sections[3].id]
    assert mara.position is None


def test_novel_keeps_different_kinds_apart(sections):
    """Test that the same name with different kinds stays separate."""
    chunks = [[draft("location", "Harbour", [1]), draft("scene", "Harbour", [1])]]

    entities = EntityReconciler().reconcile(chunks, BookType.NOVEL, sections)

    assert len(entities) == 2


def test_collection_keeps_duplicates(sections):
    """Test that collection mode never merges same-named entities."""
    chunks = [
        [draft("character", "Mara", [1])],
        [draft("character", "Mara", [3])],
    ]

    entities = EntityReconciler().reconcile(chunks, BookType.COLLECTION, sections)

    assert len(entities) == 2
    assert all(isinstance(e, CollectionEntity) for e in entities)
    assert [e.section_titles for e in entities] == [["Arrival"], ["Departure"]]
    assert entities[0].id != entities[1].id


def test_unknown_section_numbers_dropped(sections):
    """Test that references to missing sections are dropped."""
    chunks = [[draft("theme", "Exile", [0, 2, 9])]]
    run_log = RunLog()

    entities = EntityReconciler().reconcile(chunks, BookType.NOVEL, sections, run_log)

    assert entities[0].section_refs == [sections[2].id]
    assert any(e.level == "WARNING" for e in run_log.entries)


def test_sorted_by_kind_then_first_section(sections):
    """Test final ordering: scenes, characters, locations, themes, notes."""
    chunks = [[
        draft("theme", "Exile", [1]),
        draft("character", "Teo", [3]),
        draft("note", "Check dates", []),
        draft("character", "Mara", [2]),
        draft("scene", "The storm", [2]),
        draft("location", "Harbour", [1]),
        draft("scene", "Landing", [1]),
    ]]

    entities = EntityReconciler().reconcile(chunks, BookType.NOVEL, sections)

    assert [e.name for e in entities] == [
        "Landing", "The storm", "Mara", "Teo", "Harbour", "Exile", "Check dates"
    ]
    assert entities[0].kind == EntityKind.SCENE


def test_unreferenced_entities_keep_draft_order(sections):
    """Test that entities without references sort last within their kind."""
    chunks = [[
        draft("character", "Nobody", []),
        draft("character", "Ghost", []),
        draft("character", "Mara", [3]),
    ]]

    entities = EntityReconciler().reconcile(chunks, BookType.NOVEL, sections)

    assert [e.name for e in entities] == ["Mara", "Nobody", "Ghost"]


def test_deduplicate_first_seen_order():
    """Test that deduplication keeps first-seen order and sorts numbers."""
    drafts = [
        draft("character", "B", [2, 2]),
        draft("character", "A", [1]),
        draft("character", "b", [1]),
    ]

    result = deduplicate(drafts)

    assert [d.name for d in result] == ["B", "A"]
    assert result[0].section_numbers == [1, 2]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
