"""Test the extraction client and the Anthropic service adapter."""
import asyncio
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from execution.retry_handler import RetryHandler
from extraction.client import ExtractionClient
from extraction.models import BookType, ModeContext
from extraction.sanitizer import MalformedResponseError
from extraction.service import AnthropicTextService, GenerationResult, ProtocolError, ServiceError
from ingestion.models import ChunkGroup, Section


class FakeService:
    """Returns canned generation results and records prompts."""

    def __init__(self, *results):
        self.results = list(results)
        self.prompts = []
        self.budgets = []

    async def generate(self, prompt, max_tokens):
        self.prompts.append(prompt)
        self.budgets.append(max_tokens)
        return self.results.pop(0)


def make_group(start, titles):
    sections = [Section(title=t, body=f"Body of {t}", index=start + i) for i, t in enumerate(titles)]
    return ChunkGroup(sections=sections, start_index=start, end_index=start + len(titles) - 1)


def test_prompt_uses_absolute_numbers():
    """Test that a later chunk is numbered from its absolute position."""
    client = ExtractionClient(FakeService(), max_output_tokens=1000)
    group = make_group(4, ["Four", "Five", "Six"])

    prompt = client.build_prompt(group, ModeContext(mode=BookType.NOVEL, total_sections=7))

    assert "sections 4-6 of a 7-section work" in prompt
    assert "## Section 4: Four" in prompt
    assert "## Section 6: Six" in prompt
    assert "## Section 1:" not in prompt
    assert "at least 3 scenes" in prompt
    assert "DIFFERENT people" not in prompt


def test_collection_prompt_forbids_merging():
    """Test that collection mode tells the service not to merge characters."""
    client = ExtractionClient(FakeService())
    group = make_group(1, ["Story A"])

    prompt = client.build_prompt(group, ModeContext(mode=BookType.COLLECTION, total_sections=1))

    assert "DIFFERENT people" in prompt
    assert "section 1 of a 1-section story collection" in prompt


def test_extract_returns_drafts_and_truncation_flag():
    """Test a successful request."""
    service = FakeService(GenerationResult(
        text='{"entities": [{"type": "scene", "name": "Start", "sectionNumbers": [1]}]}',
        truncated=True
    ))
    client = ExtractionClient(service, max_output_tokens=1234)

    outcome = asyncio.run(client.extract(make_group(1, ["One"]), ModeContext(total_sections=1)))

    assert [d.name for d in outcome.entities] == ["Start"]
    assert outcome.was_truncated
    assert service.budgets == [1234]


def test_empty_response_is_protocol_error():
    """Test that a response without text raises ProtocolError."""
    client = ExtractionClient(FakeService(GenerationResult(text="   ")))

    with pytest.raises(ProtocolError):
        asyncio.run(client.extract(make_group(1, ["One"]), ModeContext(total_sections=1)))


def test_garbage_response_is_malformed():
    """Test that unparseable text raises MalformedResponseError."""
    client = ExtractionClient(FakeService(GenerationResult(text="Sorry, no JSON today")))

    with pytest.raises(MalformedResponseError):
        asyncio.run(client.extract(make_group(1, ["One"]), ModeContext(total_sections=1)))


def test_unrecoverable_truncated_response_keeps_flag():
    """Test that a cut-off response with no complete record still reports truncation."""
    client = ExtractionClient(FakeService(
        GenerationResult(text='{"entities": [{"type": "scene", "name": "Lo', truncated=True)
    ))

    outcome = asyncio.run(client.extract(make_group(1, ["One"]), ModeContext(total_sections=1)))

    assert outcome.entities == []
    assert outcome.was_truncated
    assert outcome.salvage_error


class FakeMessages:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_message(text, stop_reason="end_turn"):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        stop_reason=stop_reason,
        usage=SimpleNamespace(input_tokens=10, output_tokens=5)
    )


def make_status_error(status_code):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status_code, request=request)
    return anthropic.APIStatusError("error", response=response, body=None)


def test_anthropic_service_reports_max_tokens_as_truncated():
    """Test that a max_tokens stop reason is reported as truncation."""
    messages = FakeMessages([make_message('{"entities": []}', stop_reason="max_tokens")])
    service = AnthropicTextService(SimpleNamespace(messages=messages), model="test-model")

    result = asyncio.run(service.generate("prompt", 500))

    assert result.truncated
    assert result.text == '{"entities": []}'
    assert messages.calls[0]["max_tokens"] == 500
    assert messages.calls[0]["model"] == "test-model"
    assert service.total_tokens_used == 15


def test_anthropic_service_retries_transient_errors():
    """Test that an overloaded response is retried."""
    messages = FakeMessages([make_status_error(529), make_message("ok")])
    retry = RetryHandler(max_retries=2, base_delay=0, max_delay=0)
    service = AnthropicTextService(SimpleNamespace(messages=messages), retry_handler=retry)

    result = asyncio.run(service.generate("prompt", 100))

    assert result.text == "ok"
    assert not result.truncated
    assert len(messages.calls) == 2


def test_anthropic_service_wraps_api_errors():
    """Test that a non-transient API error becomes ServiceError without retry."""
    messages = FakeMessages([make_status_error(401)])
    retry = RetryHandler(max_retries=3, base_delay=0, max_delay=0)
    service = AnthropicTextService(SimpleNamespace(messages=messages), retry_handler=retry)

    with pytest.raises(ServiceError):
        asyncio.run(service.generate("prompt", 100))

    assert len(messages.calls) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
