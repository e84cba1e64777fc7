"""Main CLI entry point for Bookboard."""
import asyncio
import signal
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from utils.logger import RunLog, setup_logger
from board.layout import LayoutEngine
from execution.cancellation import CancellationToken
from extraction.models import BookType, EntityKind, entity_class_for
from extraction.pipeline import (
    ConfigurationError,
    EmptyResultError,
    ExtractionCancelled,
    build_pipeline
)
from ingestion.importer import ProjectImporter, ProjectImportError, versioned_title
from storage.database import Database, ProjectNotFoundError
from storage.exporter import ProjectExporter
from storage.models import new_project_id
from monitoring.progress_tracker import ProgressTracker
import config

logger = setup_logger(__name__)
console = Console()

BOOK_TYPES = [t.value for t in BookType]
ENTITY_KINDS = [k.value for k in EntityKind]


@click.group()
def cli():
    """Bookboard - turn a manuscript into a board of story entities"""
    pass


@cli.command(name="import")
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--book-type', type=click.Choice(BOOK_TYPES), default='novel', help='Novel or story collection (Markdown only)')
@click.option('--on-conflict', type=click.Choice(['ask', 'overwrite', 'new', 'cancel']), default='ask',
              help='What to do when a project with the same title exists')
def import_file(file, book_type, on_conflict):
    """Import a Markdown manuscript or a project JSON file."""
    console.print("\n[bold cyan]Import[/bold cyan]\n")

    path = Path(file)
    is_json = path.suffix.lower() == '.json'
    text = path.read_text(encoding='utf-8')

    db = Database(config.DB_PATH)
    importer = ProjectImporter()

    try:
        project = importer.load(text, is_json, BookType(book_type))
    except ProjectImportError as e:
        console.print(f"[red]Import failed: {e}[/red]")
        return

    existing = db.find_project_by_title(project.title)
    if existing:
        if on_conflict == 'ask':
            on_conflict = click.prompt(
                f"A project named '{existing.title}' already exists. Overwrite, create new, or cancel?",
                type=click.Choice(['overwrite', 'new', 'cancel']),
                default='new'
            )

        if on_conflict == 'cancel':
            console.print("[yellow]Import cancelled[/yellow]")
            return

        if on_conflict == 'overwrite':
            project = importer.overwrite(db.get_project(existing.id), project, is_json)
            project = db.update_project(project)
            console.print(f"[yellow]Overwrote existing project {existing.id}[/yellow]")
        else:
            new_title = versioned_title(project.title, db.get_all_titles())
            # A JSON import may carry the id of the project it was exported from
            project = project.model_copy(update={'title': new_title, 'id': new_project_id()})
            db.insert_project(project)
    else:
        db.insert_project(project)

    summary = project.summary()
    console.print(f"\n[green]✓ Import complete![/green]")
    console.print(f"Project ID: [cyan]{project.id}[/cyan]")
    console.print(f"Title: [cyan]{project.title}[/cyan]")
    console.print(f"Book type: {project.book_type.value}")
    console.print(f"Chapters: {summary.chapter_count}")
    if any(s.is_front_matter for s in project.sections):
        console.print("Front matter: yes")
    console.print(f"Cards: {summary.entity_count}")


@cli.command(name="list")
def list_projects():
    """List all projects."""
    db = Database(config.DB_PATH)
    projects = db.get_all_projects()

    if not projects:
        console.print("[yellow]No projects yet. Import a manuscript to get started.[/yellow]")
        return

    table = Table(title="Projects")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Type")
    table.add_column("Chapters", justify="right")
    table.add_column("Cards", justify="right")
    table.add_column("Last edited")

    for p in projects:
        table.add_row(p.id, p.title, p.book_type.value, str(p.chapter_count), str(p.entity_count), p.updated_at[:19])

    console.print(table)


@cli.command()
@click.argument('project_id')
def show(project_id):
    """Show a project's chapters and cards."""
    db = Database(config.DB_PATH)
    try:
        project = db.get_project(project_id)
    except ProjectNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    console.print(f"\n[bold cyan]{project.title}[/bold cyan] ({project.book_type.value})\n")

    chapters = Table(title="Chapters")
    chapters.add_column("#", justify="right")
    chapters.add_column("Title")
    chapters.add_column("Length", justify="right")
    for section in sorted(project.sections, key=lambda s: s.index):
        label = "front" if section.is_front_matter else str(section.index)
        chapters.add_row(label, section.title, f"{len(section.body):,}")
    console.print(chapters)

    cards = Table(title="Cards")
    cards.add_column("ID", style="cyan")
    cards.add_column("Kind")
    cards.add_column("Name")
    cards.add_column("Position")
    for entity in project.entities:
        pos = f"({entity.position.x:g}, {entity.position.y:g})" if entity.position else "-"
        cards.add_row(entity.id, entity.kind.value, entity.name, pos)
    console.print(cards)


async def _run_extraction(pipeline, project, mode, run_log, cancel_token, tracker):
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_token.cancel)
    except (NotImplementedError, RuntimeError, ValueError):
        pass

    try:
        return await pipeline.run(
            project.sections,
            mode=mode,
            existing_positions=project.entity_positions(),
            run_log=run_log,
            cancel_token=cancel_token,
            on_progress=tracker.on_chunk
        )
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError, ValueError):
            pass


@cli.command()
@click.argument('project_id')
@click.option('--mode', type=click.Choice(BOOK_TYPES), default=None, help="Extract as this book type (a change needs --replace)")
@click.option('--replace', is_flag=True, help='Clear existing cards instead of adding to them')
@click.option('--log-file', type=click.Path(dir_okay=False), default=None, help="Write the run log to this file (relative to the run log directory)")
def extract(project_id, mode, replace, log_file):
    """Extract characters, scenes, locations and themes from a project."""
    console.print("\n[bold cyan]Entity Extraction[/bold cyan]\n")

    db = Database(config.DB_PATH)
    try:
        project = db.get_project(project_id)
    except ProjectNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    mode = BookType(mode) if mode else project.book_type
    if mode != project.book_type and not replace:
        # Novel and collection cards never share a board
        console.print(
            f"[red]Error: project is a {project.book_type.value}; "
            f"use --replace to re-extract it as a {mode.value}[/red]"
        )
        return
    if replace:
        project = project.model_copy(update={'entities': []})

    try:
        pipeline = build_pipeline()
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    console.print(f"Initializing extraction with model: [cyan]{config.ANTHROPIC_MODEL}[/cyan]\n")

    run_log = RunLog()
    cancel_token = CancellationToken()
    run_id = db.insert_extraction_run(project_id, mode.value)

    try:
        with ProgressTracker(console) as tracker:
            result = asyncio.run(_run_extraction(pipeline, project, mode, run_log, cancel_token, tracker))
    except (ConfigurationError, EmptyResultError, ExtractionCancelled) as e:
        status = "cancelled" if isinstance(e, ExtractionCancelled) else "failed"
        db.update_extraction_run(run_id, status, error=str(e), log_text=run_log.to_text())
        _write_log(run_log, log_file)
        color = "yellow" if status == "cancelled" else "red"
        console.print(f"[{color}]Extraction {status}: {e}[/{color}]")
        return
    except Exception as e:
        db.update_extraction_run(run_id, "failed", error=str(e), log_text=run_log.to_text())
        _write_log(run_log, log_file)
        console.print(f"[red]Error during extraction: {e}[/red]")
        logger.exception("Extraction failed")
        return

    db.apply_extraction(project_id, result.entities, replace=replace, book_type=mode)
    db.update_extraction_run(run_id, "complete", entity_count=len(result.entities), log_text=run_log.to_text())
    _write_log(run_log, log_file)

    console.print(f"\n[green]✓ Extraction complete![/green]\n")

    table = Table(show_header=False)
    table.add_row("Strategy", result.strategy)
    table.add_row("Requests", str(result.chunks_attempted))
    table.add_row("Failed chunks", str(len(result.failures)))
    table.add_row("Truncated chunks", str(result.truncated_chunks))
    for kind in EntityKind:
        count = len([e for e in result.entities if e.kind == kind])
        if count:
            table.add_row(kind.value.capitalize() + "s", str(count))
    table.add_row("New cards", str(len(result.entities)))
    console.print(table)


def _write_log(run_log: RunLog, log_file) -> None:
    if not log_file:
        return
    # Relative names land in the run log directory
    path = config.RUN_LOGS_DIR / log_file
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(run_log.to_text(), encoding='utf-8')
    console.print(f"Run log written to: [cyan]{path}[/cyan]")


@cli.command(name="add-entity")
@click.argument('project_id')
@click.option('--kind', type=click.Choice(ENTITY_KINDS), required=True)
@click.option('--name', required=True)
@click.option('--description', default='')
@click.option('--section', 'sections', type=int, multiple=True, help='Section number the card refers to')
def add_entity(project_id, kind, name, description, sections):
    """Add a card by hand, placed in the first free spot."""
    db = Database(config.DB_PATH)
    try:
        project = db.get_project(project_id)
    except ProjectNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    chapters = [s for s in sorted(project.sections, key=lambda s: s.index) if not s.is_front_matter]
    referenced = [chapters[n - 1] for n in sections if 1 <= n <= len(chapters)]

    position = LayoutEngine().find_empty_position(project.entity_positions())
    entity_cls = entity_class_for(project.book_type)
    fields = {
        'kind': EntityKind(kind),
        'name': name,
        'description': description,
        'position': position,
    }
    if project.book_type == BookType.COLLECTION:
        fields['section_titles'] = [s.title for s in referenced]
    else:
        fields['section_refs'] = [s.id for s in referenced]

    entity = entity_cls(**fields)
    db.add_entity(project_id, entity)

    console.print(f"[green]✓ Added {kind} '{name}' at ({position.x:g}, {position.y:g})[/green]")
    console.print(f"Card ID: [cyan]{entity.id}[/cyan]")


@cli.command(name="delete-entity")
@click.argument('project_id')
@click.argument('entity_id')
def delete_entity(project_id, entity_id):
    """Remove a card from a project."""
    db = Database(config.DB_PATH)
    try:
        db.delete_entity(project_id, entity_id)
    except ProjectNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return
    console.print(f"[green]✓ Removed card {entity_id}[/green]")


@cli.command()
@click.argument('project_id')
@click.option('--format', 'fmt', type=click.Choice(['json', 'manuscript', 'bible']), default='json')
@click.option('--output', type=click.Path(dir_okay=False), default=None, help='Output file')
def export(project_id, fmt, output):
    """Export a project as JSON, a Markdown manuscript or a story bible."""
    db = Database(config.DB_PATH)
    try:
        project = db.get_project(project_id)
    except ProjectNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    exporter = ProjectExporter()
    output_path = Path(output) if output else config.EXPORTS_DIR / exporter.default_filename(project, fmt)
    exporter.export_file(project, fmt, output_path)

    console.print(f"[green]✓ Exported to: [cyan]{output_path}[/cyan][/green]")


@cli.command()
@click.argument('project_id')
@click.confirmation_option(prompt='Delete this project?')
def delete(project_id):
    """Delete a project."""
    db = Database(config.DB_PATH)
    try:
        db.delete_project(project_id)
    except ProjectNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return
    console.print(f"[green]✓ Deleted project {project_id}[/green]")


if __name__ == '__main__':
    cli()
