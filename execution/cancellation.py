import asyncio


class OperationCancelled(Exception):
    """Raised when a cancellation token has been triggered."""
    pass


class CancellationToken:
    """Cooperative cancellation flag checked between async steps."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason = None

    def cancel(self, reason: str = "Cancelled by user") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, exc_type=OperationCancelled) -> None:
        if self.cancelled:
            raise exc_type(self.reason)

    async def wait(self) -> None:
        await self._event.wait()
