"""Pydantic models for ingestion module."""
import uuid
from pydantic import BaseModel, Field
from typing import List, Optional


def new_section_id() -> str:
    """Generate a unique section identifier."""
    return f"ch-{uuid.uuid4().hex}"


class Section(BaseModel):
    """A titled unit of manuscript content (a chapter or a story)."""
    id: str = Field(default_factory=new_section_id)
    title: str
    body: str = ""
    index: int  # 0 is reserved for front matter
    is_front_matter: bool = False


class SegmentedManuscript(BaseModel):
    """Result of segmenting a manuscript."""
    title: Optional[str] = None
    sections: List[Section] = Field(default_factory=list)
    used_fallback: bool = False

    @property
    def front_matter(self) -> Optional[Section]:
        for section in self.sections:
            if section.is_front_matter:
                return section
        return None


class ChunkGroup(BaseModel):
    """Consecutive sections sent together in one extraction request.

    start_index and end_index are the 1-based section numbers of the first
    and last section in the group.
    """
    sections: List[Section]
    start_index: int
    end_index: int

    @property
    def section_range(self) -> str:
        if self.start_index == self.end_index:
            return f"section {self.start_index}"
        return f"sections {self.start_index}-{self.end_index}"


def extractable_sections(sections: List[Section]) -> List[Section]:
    """Sections that are sent for extraction, in order (front matter excluded)."""
    ordered = sorted(sections, key=lambda s: s.index)
    return [s for s in ordered if not s.is_front_matter]
