"""Manuscript and project JSON import."""
import json
from typing import Iterable, Optional

from utils.logger import setup_logger
from extraction.models import BookType, Position
from ingestion.cleaner import normalize_manuscript
from ingestion.segmenter import ManuscriptSegmenter
from storage.models import DEFAULT_TITLE, Project
import config

logger = setup_logger(__name__)


class ProjectImportError(Exception):
    """Raised when an import file cannot be read."""
    pass


def default_grid_position(i: int) -> Position:
    """Position given to the i-th imported entity that has none."""
    return Position(
        x=config.GRID_ORIGIN_X + (i % config.GRID_COLUMNS) * config.CARD_WIDTH,
        y=config.GRID_ORIGIN_Y + (i // config.GRID_COLUMNS) * config.CARD_HEIGHT
    )


def versioned_title(title: str, existing_titles: Iterable[str]) -> str:
    """Smallest "<title> vN" (N >= 2) not already taken, case-insensitively.

    Args:
        title: Conflicting title
        existing_titles: Titles already in the library

    Returns:
        New title
    """
    taken = {t.lower() for t in existing_titles}
    version = 2
    while f"{title} v{version}".lower() in taken:
        version += 1
    return f"{title} v{version}"


class ProjectImporter:
    """Builds projects from Markdown manuscripts or project JSON."""

    def __init__(self, segmenter: Optional[ManuscriptSegmenter] = None):
        self.segmenter = segmenter or ManuscriptSegmenter()

    def from_markdown(self, text: str, book_type: BookType = BookType.NOVEL) -> Project:
        """Create a project from a Markdown manuscript.

        Args:
            text: Markdown text
            book_type: Novel or story collection

        Returns:
            New project without entities
        """
        manuscript = self.segmenter.segment(text)

        project = Project(
            title=manuscript.title or DEFAULT_TITLE,
            book_type=book_type,
            sections=manuscript.sections
        )

        logger.info(f"Imported manuscript '{project.title}' with {len(project.sections)} sections")
        return project

    def from_json(self, text: str) -> Project:
        """Create a project from project JSON.

        Args:
            text: JSON document

        Returns:
            Project with ids and positions filled in

        Raises:
            ProjectImportError: If the document is not valid project JSON
        """
        try:
            data = json.loads(normalize_manuscript(text))
        except json.JSONDecodeError as e:
            raise ProjectImportError(f"Invalid project JSON: {e}") from e

        if not isinstance(data, dict):
            raise ProjectImportError("Project JSON must be an object")

        try:
            project = Project.from_export_dict(data)
        except ValueError as e:
            raise ProjectImportError(f"Invalid project JSON: {e}") from e

        entities = [
            e if e.position is not None else e.model_copy(update={'position': default_grid_position(i)})
            for i, e in enumerate(project.entities)
        ]

        logger.info(f"Imported project '{project.title}' with {len(entities)} entities")
        return project.model_copy(update={'entities': entities})

    def load(self, text: str, is_json: bool, book_type: BookType = BookType.NOVEL) -> Project:
        if is_json:
            return self.from_json(text)
        return self.from_markdown(text, book_type)

    def overwrite(self, existing: Project, imported: Project, is_json: bool) -> Project:
        """Replace an existing project's content with an import.

        The existing id and creation time are kept. A Markdown import drops
        the existing entities, since they reference the old sections.

        Args:
            existing: Stored project with the conflicting title
            imported: Newly imported project
            is_json: Whether the import came from project JSON

        Returns:
            Project to store under the existing id
        """
        if is_json:
            return imported.model_copy(update={
                'id': existing.id,
                'created_at': existing.created_at,
            })

        return existing.model_copy(update={
            'title': imported.title,
            'book_type': imported.book_type,
            'sections': imported.sections,
            'entities': [],
        })
