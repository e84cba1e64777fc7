"""Project exporters: JSON, manuscript Markdown and story bible Markdown."""
import json
from pathlib import Path
from typing import List

from utils.logger import setup_logger
from extraction.models import CollectionEntity, EntityKind
from ingestion.cleaner import slugify_title
from storage.models import Project

logger = setup_logger(__name__)

BIBLE_KIND_ORDER = [
    EntityKind.CHARACTER,
    EntityKind.THEME,
    EntityKind.LOCATION,
    EntityKind.SCENE,
    EntityKind.NOTE,
]

BIBLE_KIND_LABELS = {
    EntityKind.CHARACTER: "Characters",
    EntityKind.THEME: "Themes",
    EntityKind.LOCATION: "Locations",
    EntityKind.SCENE: "Key Scenes",
    EntityKind.NOTE: "Ideas & Notes",
}

EXPORT_SUFFIXES = {
    "json": "-project.json",
    "manuscript": "-manuscript.md",
    "bible": "-bible.md",
}


class ProjectExporter:
    """Formats a project for download."""

    def to_json(self, project: Project) -> str:
        """Project JSON document."""
        return json.dumps(project.to_export_dict(), indent=2, ensure_ascii=False)

    def manuscript_markdown(self, project: Project) -> str:
        """Format the sections back into a Markdown manuscript.

        Args:
            project: Project to export

        Returns:
            Markdown text
        """
        lines = [f"# {project.title}", ""]

        for section in sorted(project.sections, key=lambda s: s.index):
            # Front matter goes back under the title without a header of its own
            if not section.is_front_matter:
                lines.append(f"## {section.title}")
                lines.append("")
            lines.append(section.body)
            lines.append("")

        return "\n".join(lines).strip()

    def bible_markdown(self, project: Project) -> str:
        """Format the board entities as a story bible.

        Args:
            project: Project to export

        Returns:
            Markdown text
        """
        lines = [f"# {project.title} — Story Bible", ""]

        chapters = [s for s in sorted(project.sections, key=lambda s: s.index) if not s.is_front_matter]
        if chapters:
            lines.append("## Chapter Outline")
            lines.append("")
            for i, section in enumerate(chapters, start=1):
                lines.append(f"{i}. {section.title}")
            lines.append("")

        for kind in BIBLE_KIND_ORDER:
            entities = [e for e in project.entities if e.kind == kind]
            if not entities:
                continue

            lines.append(f"## {BIBLE_KIND_LABELS[kind]}")
            lines.append("")
            for entity in entities:
                lines.append(f"### {entity.name}")
                lines.append("")
                if entity.description:
                    lines.append(entity.description)
                    lines.append("")
                appears_in = self._appears_in(project, entity)
                if appears_in:
                    lines.append(f"*Appears in: {', '.join(appears_in)}*")
                    lines.append("")

        return "\n".join(lines).strip()

    def _appears_in(self, project: Project, entity) -> List[str]:
        if isinstance(entity, CollectionEntity):
            return list(entity.section_titles)

        titles = []
        for section_id in entity.section_refs:
            section = project.section_by_id(section_id)
            if section is not None:
                titles.append(section.title)
        return titles

    def render(self, project: Project, fmt: str) -> str:
        if fmt == "json":
            return self.to_json(project)
        if fmt == "manuscript":
            return self.manuscript_markdown(project)
        if fmt == "bible":
            return self.bible_markdown(project)
        raise ValueError(f"Unknown export format: {fmt}")

    def default_filename(self, project: Project, fmt: str) -> str:
        return f"{slugify_title(project.title)}{EXPORT_SUFFIXES[fmt]}"

    def export_file(self, project: Project, fmt: str, output_path: Path) -> Path:
        """Write an export to disk.

        Args:
            project: Project to export
            fmt: "json", "manuscript" or "bible"
            output_path: Target file

        Returns:
            Path written
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(self.render(project, fmt))

        logger.info(f"Exported {fmt} to {output_path}")
        return output_path
