"""Extraction run orchestration: plan, request, reconcile, lay out."""
from typing import Callable, List, Optional, Sequence
from pydantic import BaseModel, Field

from utils.logger import RunLog, setup_logger
from board.layout import LayoutEngine
from execution.cancellation import CancellationToken
from execution.rate_limiter import RequestThrottle
from extraction.client import ExtractionClient
from extraction.models import BookType, EntityDraft, ModeContext, Position
from extraction.reconciler import EntityReconciler
from extraction.sanitizer import MalformedResponseError
from extraction.service import ServiceError
from ingestion.chunker import ChunkPlanner
from ingestion.models import ChunkGroup, Section, extractable_sections

logger = setup_logger(__name__)

# Called before each chunk request with (chunk number, chunk count, group, total sections)
ProgressCallback = Callable[[int, int, ChunkGroup, int], None]


class ConfigurationError(Exception):
    """Raised when a run cannot start (missing credentials or manuscript)."""
    pass


class EmptyResultError(Exception):
    """Raised when every chunk was attempted and no entity was produced."""
    pass


class ExtractionCancelled(Exception):
    """Raised when the user aborts a run between chunk requests."""
    pass


class ChunkFailure(BaseModel):
    """A chunk whose request or response failed."""
    chunk_number: int
    section_range: str
    text_length: int
    error: str


class ExtractionResult(BaseModel):
    """Positioned entities of a completed run."""
    entities: List = Field(default_factory=list)
    strategy: str = "single"  # "single" | "chunked" | "single+chunked"
    chunks_attempted: int = 0
    failures: List[ChunkFailure] = Field(default_factory=list)
    truncated_chunks: int = 0
    draft_count: int = 0


class ExtractionPipeline:
    """Runs one extraction over a manuscript's sections.

    Chunks are requested strictly one after another. A failed chunk is
    logged and skipped. Nothing is written anywhere: the caller applies the
    returned entities to its store once the run has completed.
    """

    def __init__(
        self,
        client: ExtractionClient,
        planner: Optional[ChunkPlanner] = None,
        reconciler: Optional[EntityReconciler] = None,
        layout: Optional[LayoutEngine] = None,
        throttle: Optional[RequestThrottle] = None
    ):
        """Initialize pipeline.

        Args:
            client: Extraction client
            planner: Chunk planner
            reconciler: Entity reconciler
            layout: Layout engine for the new cards
            throttle: Spacing between service requests
        """
        self.client = client
        self.planner = planner or ChunkPlanner()
        self.reconciler = reconciler or EntityReconciler()
        self.layout = layout or LayoutEngine()
        self.throttle = throttle or RequestThrottle()

    async def run(
        self,
        sections: List[Section],
        mode: BookType = BookType.NOVEL,
        existing_positions: Optional[Sequence[Position]] = None,
        run_log: Optional[RunLog] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> ExtractionResult:
        """Extract, reconcile and place entities for a manuscript.

        Args:
            sections: Manuscript sections
            mode: Novel or story collection
            existing_positions: Positions of cards already on the board
            run_log: Run log for diagnostics
            cancel_token: Checked before each chunk request
            on_progress: Progress callback

        Returns:
            ExtractionResult with positioned entities

        Raises:
            ConfigurationError: If there is nothing to extract
            EmptyResultError: If no chunk produced any entity
            ExtractionCancelled: If cancel_token was triggered
        """
        run_log = run_log if run_log is not None else RunLog(logger)
        cancel_token = cancel_token or CancellationToken()

        extractable = extractable_sections(sections)
        if not extractable:
            raise ConfigurationError("Import a manuscript first: there are no sections to analyse")

        context = ModeContext(mode=mode, total_sections=len(extractable))
        result = ExtractionResult()

        run_log.log(
            "Starting extraction",
            section_count=len(extractable),
            mode=mode.value,
            text_length=self.planner.serialized_length(extractable)
        )

        if self.planner.needs_split(extractable):
            result.strategy = "chunked"
            groups = self.planner.plan(extractable)
            run_log.log("Processing in chunks", total_chunks=len(groups), group_size=self.planner.group_size)
            drafts_by_chunk = await self._run_groups(groups, context, result, run_log, cancel_token, on_progress)
        else:
            run_log.log("Processing as single request")
            groups = self.planner.plan(extractable)
            outcome = await self._run_group(1, 1, groups[0], context, result, run_log, cancel_token, on_progress)

            if outcome is not None and outcome.was_truncated:
                # A cut-off single response is discarded, not accepted as partial
                result.strategy = "single+chunked"
                groups = self.planner.partition(extractable)
                run_log.warning(
                    "Single request was truncated, falling back to chunks",
                    discarded_entities=len(outcome.entities),
                    total_chunks=len(groups)
                )
                drafts_by_chunk = await self._run_groups(groups, context, result, run_log, cancel_token, on_progress)
            else:
                drafts_by_chunk = [outcome.entities] if outcome is not None else []

        result.draft_count = sum(len(drafts) for drafts in drafts_by_chunk)
        run_log.log(
            "All API calls complete",
            total_entities=result.draft_count,
            failed_chunks=len(result.failures)
        )

        if result.draft_count == 0:
            run_log.error("No entities extracted")
            raise EmptyResultError("No entities could be extracted. Check the run log for details.")

        entities = self.reconciler.reconcile(drafts_by_chunk, mode, extractable, run_log)

        run_log.log("Starting positioning")
        result.entities = self.layout.place(entities, existing_positions or [])
        run_log.log("Extraction complete", count=len(result.entities))

        return result

    async def _run_groups(
        self,
        groups: List[ChunkGroup],
        context: ModeContext,
        result: ExtractionResult,
        run_log: RunLog,
        cancel_token: CancellationToken,
        on_progress: Optional[ProgressCallback]
    ) -> List[List[EntityDraft]]:
        drafts_by_chunk = []
        for number, group in enumerate(groups, start=1):
            outcome = await self._run_group(
                number, len(groups), group, context, result, run_log, cancel_token, on_progress
            )
            if outcome is None:
                continue
            if outcome.salvage_error:
                self._record_failure(result, run_log, number, group, "MalformedResponseError", outcome.salvage_error)
                continue
            if outcome.was_truncated:
                result.truncated_chunks += 1
                run_log.warning(
                    "Chunk output was truncated, keeping recovered entities",
                    chunk=number,
                    section_range=group.section_range,
                    entities=len(outcome.entities)
                )
            drafts_by_chunk.append(outcome.entities)
        return drafts_by_chunk

    async def _run_group(
        self,
        number: int,
        total: int,
        group: ChunkGroup,
        context: ModeContext,
        result: ExtractionResult,
        run_log: RunLog,
        cancel_token: CancellationToken,
        on_progress: Optional[ProgressCallback]
    ):
        """Request one group; returns None when the chunk failed."""
        if cancel_token.cancelled:
            run_log.warning("Extraction cancelled", before_chunk=number, section_range=group.section_range)
            cancel_token.raise_if_cancelled(ExtractionCancelled)

        if on_progress:
            on_progress(number, total, group, context.total_sections)

        await self.throttle.acquire()

        run_log.log(
            f"Processing chunk {number}",
            start=group.start_index,
            end=group.end_index,
            text_length=len(self.planner.group_text(group))
        )
        result.chunks_attempted += 1

        try:
            outcome = await self.client.extract(group, context, run_log)
        except (ServiceError, MalformedResponseError) as e:
            self._record_failure(result, run_log, number, group, type(e).__name__, str(e))
            return None

        run_log.log(f"Chunk {number} complete", entities=len(outcome.entities), truncated=outcome.was_truncated)
        return outcome

    def _record_failure(
        self,
        result: ExtractionResult,
        run_log: RunLog,
        number: int,
        group: ChunkGroup,
        error_type: str,
        error: str
    ) -> None:
        text_length = len(self.planner.group_text(group))
        result.failures.append(ChunkFailure(
            chunk_number=number,
            section_range=group.section_range,
            text_length=text_length,
            error=error
        ))
        run_log.error(
            "Chunk failed, continuing",
            chunk=number,
            start=group.start_index,
            end=group.end_index,
            text_length=text_length,
            error_type=error_type,
            error=error
        )


def build_pipeline(api_key: Optional[str] = None, model: Optional[str] = None) -> ExtractionPipeline:
    """Create a pipeline backed by the Anthropic API.

    Args:
        api_key: Anthropic API key, defaults to ANTHROPIC_API_KEY
        model: Model name, defaults to ANTHROPIC_MODEL

    Returns:
        ExtractionPipeline

    Raises:
        ConfigurationError: If no API key is configured
    """
    from anthropic import AsyncAnthropic
    from extraction.service import AnthropicTextService
    import config

    api_key = api_key or config.ANTHROPIC_API_KEY
    if not api_key:
        raise ConfigurationError("ANTHROPIC_API_KEY not set in environment")

    service = AnthropicTextService(
        AsyncAnthropic(api_key=api_key),
        model=model or config.ANTHROPIC_MODEL
    )
    return ExtractionPipeline(ExtractionClient(service))
