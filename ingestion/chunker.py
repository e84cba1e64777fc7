"""Chunk planning for the extraction service."""
from typing import List
from utils.logger import setup_logger
from ingestion.models import ChunkGroup, Section, extractable_sections
import config

logger = setup_logger(__name__)


def format_section(number: int, section: Section) -> str:
    """Format one section the way it is sent to the extraction service."""
    return f"## Section {number}: {section.title}\n{section.body}"


def format_sections(sections: List[Section], start_number: int = 1) -> str:
    """Format consecutive sections, numbering them from start_number.

    Args:
        sections: Sections in order
        start_number: Absolute number of the first section

    Returns:
        Serialized text
    """
    return '\n\n'.join(
        format_section(number, section)
        for number, section in enumerate(sections, start=start_number)
    )


class ChunkPlanner:
    """Decides whether a manuscript must be split and partitions its sections."""

    def __init__(
        self,
        threshold_chars: int = config.CHUNK_THRESHOLD_CHARS,
        group_size: int = config.CHUNK_GROUP_SIZE
    ):
        """Initialize planner.

        Args:
            threshold_chars: Largest serialized size sent as a single request
            group_size: Sections per group when splitting
        """
        if group_size < 1:
            raise ValueError("group_size must be at least 1")

        self.threshold_chars = threshold_chars
        self.group_size = group_size

        logger.info(f"ChunkPlanner initialized: {threshold_chars} chars, {group_size} sections per group")

    def serialized_length(self, sections: List[Section]) -> int:
        """Length of the extractable sections as sent to the service."""
        return len(format_sections(extractable_sections(sections)))

    def needs_split(self, sections: List[Section], threshold_chars: int = None) -> bool:
        threshold = self.threshold_chars if threshold_chars is None else threshold_chars
        return self.serialized_length(sections) > threshold

    def plan(
        self,
        sections: List[Section],
        threshold_chars: int = None,
        group_size: int = None
    ) -> List[ChunkGroup]:
        """Plan the chunk groups for a manuscript.

        Args:
            sections: All manuscript sections (front matter is skipped)
            threshold_chars: Override for the single-request size limit
            group_size: Override for sections per group

        Returns:
            One group when the manuscript fits in a single request,
            otherwise consecutive groups of group_size sections
        """
        extractable = extractable_sections(sections)

        if not extractable:
            return []

        total_length = len(format_sections(extractable))
        threshold = self.threshold_chars if threshold_chars is None else threshold_chars

        if total_length <= threshold:
            logger.info(f"Single request: {total_length} chars <= {threshold}")
            return [self._make_group(extractable, 1)]

        groups = self.partition(sections, group_size)
        logger.info(f"Split {total_length} chars into {len(groups)} groups")
        return groups

    def partition(self, sections: List[Section], group_size: int = None) -> List[ChunkGroup]:
        """Partition extractable sections into consecutive fixed-size groups.

        Args:
            sections: All manuscript sections (front matter is skipped)
            group_size: Override for sections per group

        Returns:
            Groups covering every extractable section exactly once, in order
        """
        size = self.group_size if group_size is None else group_size
        if size < 1:
            raise ValueError("group_size must be at least 1")

        extractable = extractable_sections(sections)

        return [
            self._make_group(extractable[i:i + size], i + 1)
            for i in range(0, len(extractable), size)
        ]

    def _make_group(self, sections: List[Section], start_number: int) -> ChunkGroup:
        return ChunkGroup(
            sections=sections,
            start_index=start_number,
            end_index=start_number + len(sections) - 1
        )

    def group_text(self, group: ChunkGroup) -> str:
        """Serialized text for one group, using absolute section numbers."""
        return format_sections(group.sections, group.start_index)
