"""Parsing and salvage of raw extraction responses."""
import json
import re
from typing import Any, Iterator, List, Optional, Tuple
from pydantic import ValidationError

from utils.logger import RunLog, setup_logger
from extraction.models import EntityDraft

logger = setup_logger(__name__)

FENCE_PATTERN = re.compile(r'```(?:json)?[ \t]*\n?', re.IGNORECASE)

# Boundary after a complete record inside a list
RECORD_BOUNDARY = '},'


class MalformedResponseError(Exception):
    """Raised when a response cannot be parsed, even after salvage."""
    pass


def strip_code_fences(text: str) -> str:
    """Remove markdown code fence decoration."""
    return FENCE_PATTERN.sub('', text).strip()


def structural_chars(text: str) -> Iterator[Tuple[int, str]]:
    """Yield (index, char) for every character outside string literals."""
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        yield index, char


def closing_tokens(text: str) -> str:
    """Closing brackets needed to balance the open lists and objects in text.

    Brackets inside string literals are ignored.

    Args:
        text: JSON prefix

    Returns:
        String of ']' and '}' characters, innermost first
    """
    stack = []

    for _, char in structural_chars(text):
        if char in '[{':
            stack.append(char)
        elif char in ']}' and stack:
            stack.pop()

    return ''.join(']' if opener == '[' else '}' for opener in reversed(stack))


def record_boundaries(text: str) -> List[int]:
    """Positions of the '}' of every record boundary outside string literals."""
    return [
        index for index, char in structural_chars(text)
        if char == '}' and text.startswith(RECORD_BOUNDARY, index)
    ]


class ResponseSanitizer:
    """Turns raw model output into entity drafts."""

    def sanitize(self, raw_output: str, run_log: Optional[RunLog] = None) -> List[EntityDraft]:
        """Parse raw model output into entity drafts.

        Args:
            raw_output: Text returned by the extraction service
            run_log: Run log for diagnostics

        Returns:
            List of EntityDrafts

        Raises:
            MalformedResponseError: If the output cannot be parsed or salvaged
        """
        cleaned = strip_code_fences(raw_output or '')

        try:
            payload = json.loads(cleaned)
            if run_log:
                run_log.log("JSON parsed successfully", length=len(cleaned))
        except json.JSONDecodeError as e:
            if run_log:
                run_log.warning(
                    "JSON parse error, attempting salvage",
                    error=str(e),
                    length=len(cleaned),
                    content=cleaned[:500]
                )
            payload = self.salvage(cleaned, run_log)

        return self._to_drafts(payload, run_log)

    def salvage(self, text: str, run_log: Optional[RunLog] = None) -> Any:
        """Recover the complete records of a truncated JSON response.

        The text is cut after a complete record and the open list and object
        are closed. Record boundaries are tried from the last to the first.

        Args:
            text: Unparseable response text

        Returns:
            Parsed payload

        Raises:
            MalformedResponseError: If no complete record can be recovered
        """
        boundaries = record_boundaries(text)
        if not boundaries:
            raise MalformedResponseError("Invalid JSON response")

        last_error = None
        for boundary in reversed(boundaries):
            head = text[:boundary + 1]
            try:
                payload = json.loads(head + closing_tokens(head))
            except json.JSONDecodeError as e:
                last_error = e
                continue

            if run_log:
                run_log.log("Salvaged partial JSON", kept_chars=len(head), dropped_chars=len(text) - len(head))
            return payload

        if run_log:
            run_log.error("Salvage failed", error=str(last_error), tried=len(boundaries), content=text[-500:])
        raise MalformedResponseError("Response was truncated and could not be recovered") from last_error

    def _to_drafts(self, payload: Any, run_log: Optional[RunLog] = None) -> List[EntityDraft]:
        """Validate the parsed payload record by record."""
        if isinstance(payload, dict):
            records = payload.get('entities', [])
        else:
            records = payload

        if not isinstance(records, list):
            raise MalformedResponseError(f"Expected a list of entities, got {type(records).__name__}")

        drafts = []
        skipped = 0
        for record in records:
            if not isinstance(record, dict):
                skipped += 1
                continue
            try:
                drafts.append(EntityDraft.model_validate(record))
            except ValidationError as e:
                skipped += 1
                logger.warning(f"Skipping invalid entity record {record.get('name', '?')!r}: {e.error_count()} errors")

        if skipped and run_log:
            run_log.warning("Skipped invalid entity records", skipped=skipped, kept=len(drafts))

        return drafts


def sanitize(raw_output: str, run_log: Optional[RunLog] = None) -> List[EntityDraft]:
    """Sanitize raw output with a default sanitizer."""
    return ResponseSanitizer().sanitize(raw_output, run_log)
