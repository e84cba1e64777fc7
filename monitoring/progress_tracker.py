from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn

from ingestion.models import ChunkGroup


class ProgressTracker:
    """Rich progress display for an extraction run, one step per chunk."""

    def __init__(self, console):
        self.console = console
        self.progress = None
        self.task_id = None

    def create_progress(self):
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total} requests"),
            TimeElapsedColumn(),
            console=self.console
        )

    def __enter__(self):
        self.progress = self.create_progress()
        self.progress.__enter__()
        self.task_id = self.progress.add_task("Analysing manuscript...", total=None)
        return self

    def __exit__(self, exc_type, exc, tb):
        return self.progress.__exit__(exc_type, exc, tb)

    def on_chunk(self, number: int, total: int, group: ChunkGroup, total_sections: int) -> None:
        """Progress callback for ExtractionPipeline.run"""
        if total == 1 and group.start_index == 1 and group.end_index == total_sections:
            description = "Analysing manuscript..."
        else:
            description = f"Analysing sections {group.start_index}-{group.end_index} of {total_sections}..."

        # A fallback to chunks restarts the count
        self.progress.update(self.task_id, description=description, total=total, completed=number - 1)
