"""Text generation service used for entity extraction."""
from typing import Optional, Protocol
from anthropic import AsyncAnthropic, APIError
from pydantic import BaseModel

from utils.logger import setup_logger
from execution.retry_handler import RetryHandler
import config

logger = setup_logger(__name__)


class ServiceError(Exception):
    """Raised when the text generation service cannot be reached or refuses the request."""
    pass


class ProtocolError(ServiceError):
    """Raised when the service answers without any usable text."""
    pass


class GenerationResult(BaseModel):
    """Generated text plus whether generation was cut short."""
    text: str
    truncated: bool = False
    input_tokens: int = 0
    output_tokens: int = 0


class TextGenerationService(Protocol):
    """Any text generation backend: a prompt and a length budget in, text out."""

    async def generate(self, prompt: str, max_tokens: int) -> GenerationResult:
        ...


class AnthropicTextService:
    """Text generation through the Anthropic Messages API."""

    def __init__(
        self,
        client: AsyncAnthropic,
        model: str = config.ANTHROPIC_MODEL,
        temperature: float = config.LLM_TEMPERATURE,
        retry_handler: Optional[RetryHandler] = None
    ):
        """Initialize service.

        Args:
            client: Async Anthropic API client
            model: Model name to use
            temperature: Sampling temperature
            retry_handler: Retry policy for transient failures
        """
        self.client = client
        self.model = model
        self.temperature = temperature
        self.retry_handler = retry_handler or RetryHandler()
        self.total_tokens_used = 0

        logger.info(f"AnthropicTextService initialized with model: {model}")

    async def generate(self, prompt: str, max_tokens: int) -> GenerationResult:
        """Generate text for a prompt.

        Args:
            prompt: Prompt text
            max_tokens: Generation budget

        Returns:
            GenerationResult

        Raises:
            ServiceError: If the call fails after retries
        """
        try:
            message = await self.retry_handler.execute_with_retry(
                self.client.messages.create,
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                messages=[
                    {"role": "user", "content": prompt}
                ]
            )
        except APIError as e:
            logger.error(f"LLM call failed: {e}")
            raise ServiceError(f"LLM call failed: {e}") from e

        # Track token usage
        input_tokens = message.usage.input_tokens
        output_tokens = message.usage.output_tokens
        self.total_tokens_used += input_tokens + output_tokens

        text = "".join(
            block.text for block in message.content
            if getattr(block, "type", None) == "text"
        )

        return GenerationResult(
            text=text,
            truncated=message.stop_reason == "max_tokens",
            input_tokens=input_tokens,
            output_tokens=output_tokens
        )
