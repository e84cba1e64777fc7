"""LLM prompt templates for entity extraction."""
from extraction.models import BookType


def entity_extraction_prompt(
    text: str,
    start_number: int,
    end_number: int,
    total_sections: int,
    mode: BookType = BookType.NOVEL
) -> str:
    """Generate prompt for extracting entities from a group of sections.

    Args:
        text: Serialized sections, headed "## Section N: Title"
        start_number: Absolute number of the first section in the text
        end_number: Absolute number of the last section in the text
        total_sections: Number of sections in the whole work
        mode: Novel or story collection

    Returns:
        Formatted prompt string
    """
    section_count = end_number - start_number + 1
    if start_number == end_number:
        section_range = f"section {start_number}"
    else:
        section_range = f"sections {start_number}-{end_number}"

    work = "story collection" if mode == BookType.COLLECTION else "work"

    collection_note = ""
    if mode == BookType.COLLECTION:
        collection_note = """
IMPORTANT: This is a collection of independent stories. Characters with the same name in different sections are DIFFERENT people. Do NOT merge them: list a separate character entry for each section they appear in, with only that section's number.
"""

    return f"""Analyse this text and extract entities. This is {section_range} of a {total_sections}-section {work}.
{collection_note}
TEXT:
{text}

Extract, in this order:
1. SCENES: Extract AT LEAST ONE significant scene per section. You have {section_count} sections, so provide at least {section_count} scenes. Each scene should capture the key action or development.
2. CHARACTERS: People mentioned by name. Include their role/description and which section numbers they appear in.
3. LOCATIONS: Named places or settings.
4. THEMES: Major themes or motifs (typically 2-4 for this excerpt).

Section numbers MUST be the absolute numbers shown in the "## Section N" headers, between {start_number} and {end_number}. Do not renumber from 1.

Respond ONLY with valid JSON (no markdown fences, no explanation):
{{
  "entities": [
    {{"type": "scene", "name": "Scene Title", "description": "What happens", "sectionNumbers": [{start_number}]}},
    {{"type": "character", "name": "Name", "description": "Brief description", "sectionNumbers": [{start_number}]}},
    {{"type": "location", "name": "Place", "description": "Description", "sectionNumbers": [{start_number}]}},
    {{"type": "theme", "name": "Theme Name", "description": "How it manifests", "sectionNumbers": [{start_number}]}}
  ]
}}"""
