"""Test board layout."""
import pytest
from board.layout import LayoutEngine
from extraction.models import EntityKind, NovelEntity, Position


def make_entities(count):
    return [NovelEntity(kind=EntityKind.CHARACTER, name=f"Person {i}") for i in range(count)]


def test_grid_row_major():
    """Test grid positions on an empty board."""
    layout = LayoutEngine(origin=Position(x=100, y=80), columns=4, cell_width=240, cell_height=200)

    placed = layout.place(make_entities(6))

    assert [(e.position.x, e.position.y) for e in placed] == [
        (100, 80), (340, 80), (580, 80), (820, 80),
        (100, 280), (340, 280),
    ]


def test_batch_cells_unique():
    """Test that no two cards of a batch share a cell."""
    layout = LayoutEngine(columns=4)

    placed = layout.place(make_entities(16))

    cells = {(e.position.x, e.position.y) for e in placed}
    assert len(cells) == 16


def test_place_does_not_mutate_input():
    """Test that placement returns copies."""
    entities = make_entities(2)

    placed = LayoutEngine().place(entities)

    assert all(e.position is None for e in entities)
    assert all(e.position is not None for e in placed)
    assert [e.id for e in placed] == [e.id for e in entities]


def test_batch_goes_below_existing_cards():
    """Test that a new batch starts under the lowest existing card."""
    layout = LayoutEngine(origin=Position(x=100, y=80), cell_height=200)
    existing = [Position(x=100, y=80), Position(x=340, y=480)]

    placed = layout.place(make_entities(1), existing)

    assert placed[0].position == Position(x=100, y=680)


def test_find_empty_position_on_empty_board():
    """Test that the first candidate is used when nothing overlaps."""
    layout = LayoutEngine()

    assert layout.find_empty_position([]) == Position(x=80, y=60)


def test_find_empty_position_skips_overlaps():
    """Test scanning left to right, then down a row."""
    layout = LayoutEngine(cell_width=240, cell_height=200)
    existing = [Position(x=80, y=60), Position(x=320, y=60)]

    assert layout.find_empty_position(existing, max_x=1600) == Position(x=560, y=60)

    full_row = [Position(x=80 + i * 240, y=60) for i in range(7)]
    assert layout.find_empty_position(full_row, max_x=1600) == Position(x=80, y=260)


def test_find_empty_position_iteration_limit():
    """Test that the last candidate is accepted after the scan limit."""
    layout = LayoutEngine(cell_width=240, cell_height=200)
    everywhere = [Position(x=80 + i * 240, y=60 + j * 200) for i in range(7) for j in range(20)]

    position = layout.find_empty_position(everywhere, max_x=1600, max_iterations=3)

    assert position == Position(x=800, y=60)
    assert layout.overlaps(position, everywhere)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
