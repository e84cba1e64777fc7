"""Entity extraction requests against a text generation service."""
from typing import Optional

from utils.logger import RunLog, setup_logger
from extraction.models import ExtractionOutcome, ModeContext
from extraction.sanitizer import MalformedResponseError, ResponseSanitizer
from extraction.service import ProtocolError, TextGenerationService
from extraction import prompts
from ingestion.chunker import format_sections
from ingestion.models import ChunkGroup
import config

logger = setup_logger(__name__)


class ExtractionClient:
    """Issues one extraction request per chunk group."""

    def __init__(
        self,
        service: TextGenerationService,
        sanitizer: Optional[ResponseSanitizer] = None,
        max_output_tokens: int = config.MAX_OUTPUT_TOKENS
    ):
        """Initialize client.

        Args:
            service: Text generation backend
            sanitizer: Parser for raw responses
            max_output_tokens: Generation budget per request
        """
        self.service = service
        self.sanitizer = sanitizer or ResponseSanitizer()
        self.max_output_tokens = max_output_tokens

    def build_prompt(self, chunk: ChunkGroup, context: ModeContext) -> str:
        """Build the extraction prompt for a chunk.

        Args:
            chunk: Sections to analyse
            context: Mode and total section count of the run

        Returns:
            Prompt text
        """
        text = format_sections(chunk.sections, chunk.start_index)
        return prompts.entity_extraction_prompt(
            text,
            chunk.start_index,
            chunk.end_index,
            context.total_sections,
            context.mode
        )

    async def extract(
        self,
        chunk: ChunkGroup,
        context: ModeContext,
        run_log: Optional[RunLog] = None
    ) -> ExtractionOutcome:
        """Extract entity drafts from one chunk.

        Args:
            chunk: Sections to analyse
            context: Mode and total section count of the run
            run_log: Run log for diagnostics

        Returns:
            ExtractionOutcome with drafts and the service's truncation flag.
            A truncated response without any recoverable record gives an
            empty outcome with salvage_error set.

        Raises:
            ServiceError: On transport or authentication failure
            ProtocolError: If the response has no usable text
            MalformedResponseError: If a complete response cannot be parsed
        """
        run_log = run_log or RunLog(logger)
        prompt = self.build_prompt(chunk, context)

        run_log.log(
            "Sending API request",
            section_range=chunk.section_range,
            prompt_length=len(prompt),
            max_tokens=self.max_output_tokens
        )

        result = await self.service.generate(prompt, self.max_output_tokens)

        run_log.log(
            "API response received",
            section_range=chunk.section_range,
            content_length=len(result.text),
            truncated=result.truncated
        )

        if not result.text or not result.text.strip():
            run_log.error("No content in response", section_range=chunk.section_range)
            raise ProtocolError(f"No text in response for {chunk.section_range}")

        try:
            drafts = self.sanitizer.sanitize(result.text, run_log)
        except MalformedResponseError as e:
            if not result.truncated:
                raise
            # Truncation is reported even when nothing was recovered
            run_log.error(
                "Truncated response could not be recovered",
                section_range=chunk.section_range,
                error=str(e)
            )
            return ExtractionOutcome(entities=[], was_truncated=True, salvage_error=str(e))

        return ExtractionOutcome(entities=drafts, was_truncated=result.truncated)
