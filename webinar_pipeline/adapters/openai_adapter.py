from __future__ import annotations

import logging
import os
import time
from typing import Dict, List, Optional

from openai import OpenAI
from openai import (
    APIConnectionError,
    APITimeoutError,
    AuthenticationError as OpenAIAuthenticationError,
    InternalServerError,
    PermissionDeniedError,
    RateLimitError,
)

from webinar_pipeline.errors import (
    AuthenticationError,
    GenerationError,
    GenerationTimeout,
    RateLimitedError,
)

from .llm_base import CallOptions, LLMAdapter, LLMResponse

logger = logging.getLogger(__name__)


class OpenAIAdapter(LLMAdapter):
    def __init__(self, model: Optional[str] = None, max_retries: int = 4) -> None:
        self.api_key = os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise AuthenticationError("OPENAI_API_KEY is not set.")
        self.client = OpenAI(api_key=self.api_key)
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.max_retries = max_retries

    def _messages(self, prompt: str, system: Optional[str]) -> List[Dict[str, str]]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    def complete(
        self, prompt: str, system: Optional[str] = None, options: Optional[CallOptions] = None
    ) -> LLMResponse:
        options = options or CallOptions()
        attempt = 0
        backoff = 1.0
        while True:
            attempt += 1
            try:
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=self._messages(prompt, system),
                    max_tokens=options.max_output_tokens,
                    temperature=options.temperature,
                    response_format={"type": "json_object"},
                    timeout=options.timeout_seconds,
                )
                content = response.choices[0].message.content
                if content is None:
                    raise GenerationError("OpenAI returned empty content.")
                usage = getattr(response, "usage", None)
                usage_payload = None
                if usage:
                    usage_payload = {
                        "prompt_tokens": getattr(usage, "prompt_tokens", None),
                        "completion_tokens": getattr(usage, "completion_tokens", None),
                        "total_tokens": getattr(usage, "total_tokens", None),
                    }
                    logger.info(
                        "[openai] model=%s prompt_tokens=%s completion_tokens=%s total_tokens=%s",
                        self.model,
                        usage_payload["prompt_tokens"],
                        usage_payload["completion_tokens"],
                        usage_payload["total_tokens"],
                    )
                else:
                    logger.info("[openai] usage not provided by SDK")
                return LLMResponse(raw_text=content, usage=usage_payload)
            except (OpenAIAuthenticationError, PermissionDeniedError) as exc:
                raise AuthenticationError(
                    "OpenAI rejected the API key. Check OPENAI_API_KEY."
                ) from exc
            except RateLimitError as exc:
                error = getattr(exc, "error", None)
                code = getattr(error, "code", None)
                if code == "insufficient_quota":
                    raise RateLimitedError(
                        "OpenAI API quota exceeded. Please enable billing in your OpenAI account."
                    ) from exc
                if attempt >= self.max_retries:
                    raise RateLimitedError("OpenAI rate limit exceeded.") from exc
            except APITimeoutError as exc:
                if attempt >= self.max_retries:
                    raise GenerationTimeout("OpenAI request timed out.") from exc
            except (APIConnectionError, InternalServerError) as exc:
                if attempt >= self.max_retries:
                    raise GenerationError(f"OpenAI request failed: {exc}") from exc
            logger.warning("[openai] retrying attempt=%d/%d in %.1fs", attempt, self.max_retries, backoff)
            time.sleep(backoff)
            backoff *= 2

    def generate(self, prompt: str, system: Optional[str] = None, options: Optional[CallOptions] = None) -> str:
        return self.complete(prompt, system=system, options=options).raw_text
