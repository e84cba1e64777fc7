"""Test response parsing and salvage."""
import pytest
from extraction.models import EntityKind
from extraction.sanitizer import (
    MalformedResponseError,
    ResponseSanitizer,
    closing_tokens,
    record_boundaries,
    sanitize,
    strip_code_fences
)
from utils.logger import RunLog


def test_plain_json():
    """Test a well-formed response."""
    raw = '{"entities": [{"type": "character", "name": "Ada", "description": "Engineer", "sectionNumbers": [1, 2]}]}'

    drafts = sanitize(raw)

    assert len(drafts) == 1
    assert drafts[0].kind == EntityKind.CHARACTER
    assert drafts[0].name == "Ada"
    assert drafts[0].section_numbers == [1, 2]


def test_code_fences_stripped():
    """Test that markdown code fences around the JSON are removed."""
    raw = '```json\n{"entities": [{"type": "theme", "name": "Loss", "sectionNumbers": [1]}]}\n```'

    drafts = sanitize(raw)

    assert [d.name for d in drafts] == ["Loss"]
    assert strip_code_fences("```\n[]\n```") == "[]"


def test_truncated_array_salvaged():
    """Test recovery of an array cut off after a complete record."""
    raw = (
        '[{"type": "scene", "name": "Arrival", "description": "She arrives", "sectionNumbers": [1]},'
        '{"type": "character", "name": "Bo'
    )

    drafts = sanitize(raw)

    assert [d.name for d in drafts] == ["Arrival"]


def test_truncated_object_salvaged():
    """Test recovery when the entity list is wrapped in an object."""
    raw = (
        '{"entities": ['
        '{"type": "scene", "name": "Arrival", "description": "A {curly} note", "sectionNumbers": [1]},'
        '{"type": "character", "name": "Bo", "description": "Friend", "sectionNumbers": [1]},'
        '{"type": "location", "name": "Har'
    )
    run_log = RunLog()

    drafts = ResponseSanitizer().sanitize(raw, run_log)

    assert [d.name for d in drafts] == ["Arrival", "Bo"]
    assert any("Salvaged" in e.message for e in run_log.entries)


def test_braces_inside_cut_off_string_ignored():
    """Test that a '},' inside the truncated record's text is not taken as a boundary."""
    raw = (
        '[{"type": "scene", "name": "A", "sectionNumbers": [1]},'
        '{"type": "note", "name": "B", "description": "set {x}, then'
    )

    drafts = sanitize(raw)

    assert [d.name for d in drafts] == ["A"]


def test_record_boundaries_skip_strings():
    """Test that only boundaries outside string literals are reported."""
    text = '[{"a": "x},"},{"b": 1},'

    assert record_boundaries(text) == [12, 21]


def test_unsalvageable_response():
    """Test that text without a record boundary fails."""
    with pytest.raises(MalformedResponseError):
        sanitize('{"entities": [{"type": "scene", "na')

    with pytest.raises(MalformedResponseError):
        sanitize("I could not find any entities.")


def test_invalid_records_skipped():
    """Test that one bad record does not lose the others."""
    raw = (
        '{"entities": ['
        '{"type": "character", "name": "   "},'
        '{"type": "unknown", "name": "X"},'
        '"not a record",'
        '{"type": "idea", "name": "Red herring", "sectionNumbers": 2}'
        ']}'
    )

    drafts = sanitize(raw)

    assert len(drafts) == 1
    assert drafts[0].kind == EntityKind.NOTE
    assert drafts[0].section_numbers == [2]


def test_non_list_payload():
    """Test that an entity payload that is not a list is rejected."""
    with pytest.raises(MalformedResponseError):
        sanitize('{"entities": "none"}')


def test_closing_tokens_ignore_strings():
    """Test that brackets inside strings do not count."""
    assert closing_tokens('{"a": [{"b": "]}"}') == "]}"
    assert closing_tokens('[{"x": "\\"{"}') == "]"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
