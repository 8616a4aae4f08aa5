from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Set, TypeVar

from webinar_pipeline.errors import GenerationTimeout, PipelineCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_CONCURRENCY = 2


class GenerationQueue:
    """Bounds in-flight model calls across every deliverable of a run.

    Waiters acquire the semaphore in arrival order. Each call runs the
    blocking adapter in a worker thread under a timeout.
    """

    def __init__(self, max_concurrency: int = DEFAULT_MAX_CONCURRENCY) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._live: Set[asyncio.Future] = set()
        self._cancelled = False
        self.active = 0
        self.waiting = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def is_active(self) -> bool:
        return self.active > 0 or self.waiting > 0

    async def submit(
        self, func: Callable[..., T], *args: Any, timeout: Optional[float] = None
    ) -> T:
        if self._cancelled:
            raise PipelineCancelled("Queue has been cancelled")

        self.waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self.waiting -= 1

        try:
            if self._cancelled:
                raise PipelineCancelled("Request cancelled before it started")
            self.active += 1
            call = asyncio.ensure_future(asyncio.wait_for(asyncio.to_thread(func, *args), timeout))
            self._live.add(call)
            try:
                return await call
            except asyncio.TimeoutError as exc:
                logger.warning("[queue] request timed out after %ss", timeout)
                raise GenerationTimeout(f"Model call timed out after {timeout}s") from exc
            except asyncio.CancelledError:
                if self._cancelled:
                    raise PipelineCancelled("Request cancelled") from None
                raise
            finally:
                self._live.discard(call)
                self.active -= 1
        finally:
            self._semaphore.release()

    def cancel(self) -> None:
        self._cancelled = True
        for call in list(self._live):
            call.cancel()
        logger.info("[queue] cancelled live=%d waiting=%d", len(self._live), self.waiting)

    def reset(self) -> None:
        self._cancelled = False
