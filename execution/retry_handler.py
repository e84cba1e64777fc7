from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception
import anthropic
from typing import Callable, Any

import config

# 529 is Anthropic's "overloaded" status
TRANSIENT_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504, 529}


def is_transient_error(exc: BaseException) -> bool:
    if isinstance(exc, (anthropic.APIConnectionError, anthropic.APITimeoutError, anthropic.RateLimitError)):
        return True
    if isinstance(exc, anthropic.APIStatusError):
        return exc.status_code in TRANSIENT_STATUS_CODES
    return False


class RetryHandler:
    def __init__(
        self,
        max_retries: int = config.MAX_RETRIES,
        base_delay: float = config.RETRY_BACKOFF_MULTIPLIER,
        max_delay: float = 60
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    async def execute_with_retry(
        self,
        func: Callable,
        *args,
        **kwargs
    ) -> Any:
        @retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.base_delay, min=self.base_delay, max=self.max_delay),
            retry=retry_if_exception(is_transient_error),
            reraise=True
        )
        async def _wrapper():
            return await func(*args, **kwargs)

        return await _wrapper()
