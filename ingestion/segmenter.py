"""Markdown manuscript segmentation module."""
import re
from typing import List, Optional, Tuple

from utils.logger import setup_logger
from ingestion.models import Section, SegmentedManuscript
from ingestion.cleaner import normalize_manuscript, trim_blank_lines

logger = setup_logger(__name__)

H1_PATTERN = re.compile(r'^#\s+(.+?)\s*$')
H2_PATTERN = re.compile(r'^##\s+(.+?)\s*$')

FRONT_MATTER_TITLE = "Front Matter"


class ParseError(Exception):
    """Raised when no section headers of the expected level are found."""
    pass


class ManuscriptSegmenter:
    """Splits a markdown manuscript into an ordered list of sections.

    First-level headers give the manuscript title (first occurrence only),
    second-level headers start sections, and text between the title and the
    first section becomes front matter. Manuscripts without any second-level
    header are re-scanned using first-level headers as section boundaries.
    """

    def segment(self, text: str) -> SegmentedManuscript:
        """Segment manuscript text.

        Args:
            text: Raw markdown text

        Returns:
            SegmentedManuscript with title and ordered sections
        """
        lines = normalize_manuscript(text).split('\n') if text else []

        try:
            title, sections = self._scan_sections(lines)
            used_fallback = False
        except ParseError as e:
            logger.info(f"{e}; falling back to first-level headers")
            title, sections = None, self._scan_fallback(lines)
            used_fallback = True

        sections = self._renumber(sections)

        logger.info(
            f"Segmented manuscript into {len(sections)} sections"
            f"{' (fallback mode)' if used_fallback else ''}"
        )

        return SegmentedManuscript(
            title=title,
            sections=sections,
            used_fallback=used_fallback
        )

    def _scan_sections(self, lines: List[str]) -> Tuple[Optional[str], List[Section]]:
        """Scan using second-level headers as section boundaries.

        Args:
            lines: Manuscript lines

        Returns:
            Tuple of (title, sections)

        Raises:
            ParseError: If no second-level header exists
        """
        title = None
        sections = []
        front_lines: List[str] = []
        current_title = None
        current_lines: List[str] = []
        in_section = False
        dropped = 0

        for line in lines:
            h2 = H2_PATTERN.match(line)
            if h2:
                if in_section:
                    sections.append(self._make_section(current_title, current_lines))
                current_title = h2.group(1)
                current_lines = []
                in_section = True
                continue

            h1 = H1_PATTERN.match(line)
            if h1:
                if title is None and not sections and not in_section:
                    title = h1.group(1)
                    continue
                if in_section:
                    # A later first-level header closes the open section
                    sections.append(self._make_section(current_title, current_lines))
                    current_title = None
                    current_lines = []
                    in_section = False
                    continue

            if in_section:
                current_lines.append(line)
            elif not sections:
                if title is not None:
                    front_lines.append(line)
            elif line.strip():
                dropped += 1

        if in_section:
            sections.append(self._make_section(current_title, current_lines))

        if not sections:
            raise ParseError("No second-level headers found")

        if dropped:
            logger.warning(f"Ignored {dropped} lines between a first-level header and the next section")

        front_matter = trim_blank_lines(front_lines)
        if front_matter:
            sections.insert(0, Section(
                title=FRONT_MATTER_TITLE,
                body=front_matter,
                index=0,
                is_front_matter=True
            ))

        return title, sections

    def _scan_fallback(self, lines: List[str]) -> List[Section]:
        """Scan using first-level headers as section boundaries.

        Args:
            lines: Manuscript lines

        Returns:
            List of sections (possibly empty)
        """
        sections = []
        current_title = None
        current_lines: List[str] = []

        for line in lines:
            h1 = H1_PATTERN.match(line)
            if h1:
                if current_title is not None:
                    sections.append(self._make_section(current_title, current_lines))
                current_title = h1.group(1)
                current_lines = []
            elif current_title is not None:
                current_lines.append(line)

        if current_title is not None:
            sections.append(self._make_section(current_title, current_lines))

        # A lone first-level header is a title, not a section boundary
        if len(sections) < 2:
            return []

        return sections

    def _make_section(self, title: str, lines: List[str]) -> Section:
        # Index is provisional until _renumber
        return Section(title=title, body=trim_blank_lines(lines), index=-1)

    def _renumber(self, sections: List[Section]) -> List[Section]:
        """Assign dense indices in insertion order, 0 for front matter."""
        renumbered = []
        next_index = 1
        for section in sections:
            if section.is_front_matter:
                renumbered.append(section.model_copy(update={'index': 0}))
            else:
                renumbered.append(section.model_copy(update={'index': next_index}))
                next_index += 1
        return renumbered


def segment(text: str) -> SegmentedManuscript:
    """Segment manuscript text with a default segmenter."""
    return ManuscriptSegmenter().segment(text)
