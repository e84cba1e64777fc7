"""Pydantic models for stored projects and the project JSON format."""
import uuid
from datetime import datetime, timezone
from pydantic import BaseModel, Field, TypeAdapter
from typing import Any, Dict, List, Optional

from extraction.models import (
    BookType,
    CollectionEntity,
    Entity,
    EntityKind,
    Position
)
from ingestion.models import Section, new_section_id

DEFAULT_TITLE = "Untitled Novel"

_entity_adapter = TypeAdapter(Entity)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_project_id() -> str:
    """Generate a unique project identifier."""
    return f"proj-{uuid.uuid4().hex}"


class ProjectSummary(BaseModel):
    """Library listing entry for a project."""
    id: str
    title: str
    book_type: BookType
    chapter_count: int = 0
    entity_count: int = 0
    updated_at: str


class Project(BaseModel):
    """A manuscript with its sections and board entities."""
    id: str = Field(default_factory=new_project_id)
    title: str = DEFAULT_TITLE
    book_type: BookType = BookType.NOVEL
    custom_folders: List[str] = Field(default_factory=list)
    sections: List[Section] = Field(default_factory=list)
    entities: List[Entity] = Field(default_factory=list)
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)

    def section_by_id(self, section_id: str) -> Optional[Section]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def entity_positions(self) -> List[Position]:
        """Board positions of all entities, unplaced ones at the origin."""
        return [e.position or Position(x=0, y=0) for e in self.entities]

    def to_export_dict(self) -> Dict[str, Any]:
        """Serialize to the project JSON format.

        Returns:
            Dict with camelCase keys
        """
        chapters = []
        for section in sorted(self.sections, key=lambda s: s.index):
            chapter = {
                'id': section.id,
                'title': section.title,
                'content': section.body,
                'order': section.index,
            }
            if section.is_front_matter:
                chapter['isFrontMatter'] = True
            chapters.append(chapter)

        return {
            'id': self.id,
            'title': self.title,
            'bookType': self.book_type.value,
            'customFolders': list(self.custom_folders),
            'chapters': chapters,
            'entities': [entity_to_export_dict(e) for e in self.entities],
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_export_dict(cls, data: Dict[str, Any]) -> "Project":
        """Build a project from the project JSON format.

        Missing section ids, section orders and entity ids are generated.
        Missing entity positions are left empty.

        Args:
            data: Parsed project JSON

        Returns:
            Project
        """
        book_type = BookType(data.get('bookType') or BookType.NOVEL.value)

        sections = []
        for i, chapter in enumerate(data.get('chapters') or []):
            is_front_matter = bool(chapter.get('isFrontMatter', False))
            order = chapter.get('order')
            if order is None:
                order = 0 if is_front_matter else i + 1
            sections.append(Section(
                id=chapter.get('id') or new_section_id(),
                title=chapter.get('title') or '',
                body=chapter.get('content') or '',
                index=order,
                is_front_matter=is_front_matter
            ))

        entities = [
            entity_from_export_dict(item, book_type)
            for item in data.get('entities') or []
        ]

        fields = {
            'title': data.get('title') or DEFAULT_TITLE,
            'book_type': book_type,
            'custom_folders': data.get('customFolders') or [],
            'sections': sections,
            'entities': entities,
        }
        for key, name in (('id', 'id'), ('createdAt', 'created_at'), ('updatedAt', 'updated_at')):
            if data.get(key):
                fields[name] = data[key]

        return cls(**fields)

    def summary(self) -> ProjectSummary:
        return ProjectSummary(
            id=self.id,
            title=self.title,
            book_type=self.book_type,
            chapter_count=len([s for s in self.sections if not s.is_front_matter]),
            entity_count=len(self.entities),
            updated_at=self.updated_at
        )


def entity_to_export_dict(entity) -> Dict[str, Any]:
    """Serialize one entity to the project JSON format."""
    item = {
        'id': entity.id,
        'type': entity.kind.value,
        'name': entity.name,
        'description': entity.description,
    }
    if isinstance(entity, CollectionEntity):
        item['storyRefs'] = list(entity.section_titles)
    else:
        item['chapterRefs'] = list(entity.section_refs)
    if entity.folder:
        item['folder'] = entity.folder
    if entity.position is not None:
        item['position'] = {'x': entity.position.x, 'y': entity.position.y}
    if entity.starred:
        item['starred'] = True
    return item


def entity_from_export_dict(item: Dict[str, Any], book_type: BookType):
    """Parse one entity of the project JSON format."""
    mode = book_type.value
    if 'storyRefs' in item and 'chapterRefs' not in item:
        mode = BookType.COLLECTION.value

    data = {
        'mode': mode,
        'kind': EntityKind(_legacy_kind(item.get('type', EntityKind.NOTE.value))),
        'name': item.get('name') or '',
        'description': item.get('description') or '',
        'position': item.get('position'),
        'starred': bool(item.get('starred', False)),
        'folder': item.get('folder'),
    }
    if item.get('id'):
        data['id'] = item['id']
    if mode == BookType.COLLECTION.value:
        data['section_titles'] = item.get('storyRefs') or []
    else:
        data['section_refs'] = item.get('chapterRefs') or []

    return _entity_adapter.validate_python(data)


def _legacy_kind(value: str) -> str:
    value = (value or '').strip().lower()
    return EntityKind.NOTE.value if value == 'idea' else value

