import time
import asyncio

import config


class RequestThrottle:
    """Keeps a minimum interval between consecutive service requests."""

    def __init__(self, min_interval: float = config.API_CALL_DELAY):
        self.min_interval = min_interval
        self.last_request = 0.0

    async def acquire(self) -> None:
        """Block until the next request is allowed"""
        if self.min_interval <= 0:
            self.record_request()
            return

        elapsed = time.monotonic() - self.last_request
        if self.last_request and elapsed < self.min_interval:
            await asyncio.sleep(self.min_interval - elapsed)

        self.record_request()

    def record_request(self) -> None:
        self.last_request = time.monotonic()
