from __future__ import annotations

import logging
from typing import Any, Optional

from webinar_pipeline.errors import GenerationError
from webinar_pipeline.gates.parsers import extract_json

from .llm_base import CallOptions, LLMAdapter, LLMResponse
from .queue import GenerationQueue

logger = logging.getLogger(__name__)


class ModelClient:
    def __init__(
        self,
        adapter: LLMAdapter,
        queue: Optional[GenerationQueue] = None,
        options: Optional[CallOptions] = None,
    ) -> None:
        self.adapter = adapter
        self.queue = queue or GenerationQueue()
        self.options = options or CallOptions()
        self.calls = 0

    async def call(self, system: str, user: str, options: Optional[CallOptions] = None) -> Any:
        options = options or self.options
        self.calls += 1
        response: LLMResponse = await self.queue.submit(
            self.adapter.complete, user, system, options, timeout=options.timeout_seconds
        )
        logger.debug("[client] call=%d response_chars=%d", self.calls, len(response.raw_text))
        try:
            return extract_json(response.raw_text)
        except ValueError as exc:
            raise GenerationError(str(exc)) from exc

    def cancel(self) -> None:
        self.queue.cancel()
