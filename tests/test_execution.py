"""Test retry, throttling, cancellation and run logging helpers."""
import asyncio
import logging
import time

import pytest

from execution.cancellation import CancellationToken, OperationCancelled
from execution.rate_limiter import RequestThrottle
from execution.retry_handler import RetryHandler, is_transient_error
from utils.logger import RunLog


def test_retry_gives_up_on_non_transient_errors():
    """Test that ordinary exceptions are not retried."""
    calls = []

    async def failing():
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        asyncio.run(RetryHandler(max_retries=3, base_delay=0, max_delay=0).execute_with_retry(failing))

    assert len(calls) == 1
    assert not is_transient_error(ValueError("x"))


def test_throttle_spaces_requests():
    """Test that the second request waits for the interval."""
    throttle = RequestThrottle(min_interval=0.05)

    async def two_requests():
        await throttle.acquire()
        start = time.monotonic()
        await throttle.acquire()
        return time.monotonic() - start

    assert asyncio.run(two_requests()) >= 0.04


def test_throttle_disabled():
    """Test that a zero interval never sleeps."""
    throttle = RequestThrottle(min_interval=0)

    async def many():
        for _ in range(5):
            await throttle.acquire()

    asyncio.run(many())
    assert throttle.last_request > 0


def test_cancellation_token():
    """Test cancel, check and wait."""
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel("User pressed stop")

    assert token.cancelled
    with pytest.raises(OperationCancelled, match="User pressed stop"):
        token.raise_if_cancelled()
    asyncio.run(asyncio.wait_for(token.wait(), timeout=1))


def test_run_log_text():
    """Test the downloadable run log."""
    run_log = RunLog()
    run_log.log("Starting extraction", section_count=3)
    run_log.warning("Chunk failed, continuing", chunk=2)
    run_log.log("Done")

    text = run_log.to_text()
    blocks = text.split("\n\n")

    assert len(run_log) == 3
    assert run_log.entries[1].level == "WARNING"
    assert blocks[0].startswith("[") and "] Starting extraction" in blocks[0]
    assert '"section_count": 3' in text
    assert text.endswith("] Done")

    run_log.clear()
    assert len(run_log) == 0


def test_run_log_forwards_to_logger(caplog):
    """Test that entries also reach the regular logger."""
    logger = logging.getLogger("test.runlog")
    run_log = RunLog(logger)

    with caplog.at_level(logging.INFO, logger="test.runlog"):
        run_log.error("Salvage failed", error="Unexpected end")

    assert "Salvage failed" in caplog.text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
