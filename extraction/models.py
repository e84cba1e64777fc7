"""Pydantic models for entity extraction."""
import uuid
from enum import Enum
from pydantic import AliasChoices, BaseModel, Field, field_validator
from typing import Annotated, List, Literal, Optional, Union


class EntityKind(str, Enum):
    """Kinds of story element shown on the board."""
    CHARACTER = "character"
    THEME = "theme"
    LOCATION = "location"
    SCENE = "scene"
    NOTE = "note"


# Final ordering of reconciled entities
KIND_PRIORITY = {
    EntityKind.SCENE: 0,
    EntityKind.CHARACTER: 1,
    EntityKind.LOCATION: 2,
    EntityKind.THEME: 3,
    EntityKind.NOTE: 4,
}

KIND_ALIASES = {
    "idea": EntityKind.NOTE,
    "ideas": EntityKind.NOTE,
    "characters": EntityKind.CHARACTER,
    "themes": EntityKind.THEME,
    "locations": EntityKind.LOCATION,
    "scenes": EntityKind.SCENE,
    "notes": EntityKind.NOTE,
}


class BookType(str, Enum):
    """Reconciliation mode of a manuscript."""
    NOVEL = "novel"            # continuous story, same name means same entity
    COLLECTION = "collection"  # independent stories, entities stay per story


class ModeContext(BaseModel):
    """What the extraction client needs to know about the whole run."""
    mode: BookType = BookType.NOVEL
    total_sections: int


class EntityDraft(BaseModel):
    """Entity as returned by the extraction service, before reconciliation."""
    kind: EntityKind = Field(validation_alias=AliasChoices("kind", "type"))
    name: str
    description: str = ""
    section_numbers: List[int] = Field(
        default_factory=list,
        validation_alias=AliasChoices("section_numbers", "sectionNumbers", "chapterNums")
    )

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            return KIND_ALIASES.get(value, value)
        return value

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("description", mode="before")
    @classmethod
    def description_default(cls, value):
        return "" if value is None else value

    @field_validator("section_numbers", mode="before")
    @classmethod
    def section_numbers_list(cls, value):
        if value is None:
            return []
        if isinstance(value, (int, str)):
            return [value]
        return value

    @property
    def normalized_key(self):
        return (self.kind, self.name.strip().lower())


class ExtractionOutcome(BaseModel):
    """Result of one chunk request."""
    entities: List[EntityDraft] = Field(default_factory=list)
    was_truncated: bool = False
    # Set when a cut-off response had no recoverable record
    salvage_error: Optional[str] = None


class Position(BaseModel):
    """Board coordinates of a card's top-left corner."""
    x: float
    y: float


def new_entity_id() -> str:
    """Generate a unique entity identifier."""
    return f"ent-{uuid.uuid4().hex}"


class EntityBase(BaseModel):
    """Fields shared by novel and collection entities."""
    id: str = Field(default_factory=new_entity_id)
    kind: EntityKind
    name: str
    description: str = ""
    position: Optional[Position] = None
    starred: bool = False
    folder: Optional[str] = None


class NovelEntity(EntityBase):
    """Entity of a novel, referencing sections by id."""
    mode: Literal["novel"] = "novel"
    section_refs: List[str] = Field(default_factory=list)


class CollectionEntity(EntityBase):
    """Entity of a story collection, referencing stories by title."""
    mode: Literal["collection"] = "collection"
    section_titles: List[str] = Field(default_factory=list)


Entity = Annotated[Union[NovelEntity, CollectionEntity], Field(discriminator="mode")]


def entity_class_for(mode: BookType):
    """Entity model used for a book type."""
    return CollectionEntity if mode == BookType.COLLECTION else NovelEntity
