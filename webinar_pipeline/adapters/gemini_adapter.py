from __future__ import annotations

import logging
import os
import random
import time
from typing import List, Optional

from google import genai
from google.genai import types

from webinar_pipeline.errors import (
    AuthenticationError,
    GenerationError,
    GenerationTimeout,
    RateLimitedError,
)

from .llm_base import CallOptions, LLMAdapter, LLMResponse

logger = logging.getLogger(__name__)


class GeminiAdapter(LLMAdapter):
    def __init__(self, model: Optional[str] = None) -> None:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise AuthenticationError("GEMINI_API_KEY is not set.")

        self.client = genai.Client(api_key=api_key)

        primary = model or os.getenv("GEMINI_MODEL", "gemini-flash-latest")
        self.model_candidates: List[str] = [primary]
        fallback = os.getenv("GEMINI_FALLBACK_MODEL", "gemini-2.5-pro")
        if fallback and fallback != primary:
            self.model_candidates.append(fallback)

        self.max_attempts = int(os.getenv("GEMINI_MAX_ATTEMPTS", "3"))
        self.base_delay = float(os.getenv("GEMINI_BASE_DELAY_SECONDS", "1.0"))

    def _is_transient(self, err: Exception) -> bool:
        msg = str(err).lower()
        return any(s in msg for s in ["503", "unavailable", "429", "too many", "timeout", "temporarily"])

    def _is_auth(self, err: Exception) -> bool:
        msg = str(err).lower()
        return any(s in msg for s in ["401", "403", "api key not valid", "permission_denied", "unauthenticated"])

    def _config(self, system: Optional[str], options: CallOptions) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=system,
            temperature=options.temperature,
            max_output_tokens=options.max_output_tokens,
            response_mime_type="application/json",
        )

    def _translate(self, err: Exception) -> GenerationError:
        msg = str(err).lower()
        if "429" in msg or "too many" in msg or "resource_exhausted" in msg:
            return RateLimitedError(f"Gemini rate limit exceeded: {err}")
        if "timeout" in msg or "deadline" in msg:
            return GenerationTimeout(f"Gemini request timed out: {err}")
        return GenerationError(f"Gemini generate_content failed: {err}")

    def complete(
        self, prompt: str, system: Optional[str] = None, options: Optional[CallOptions] = None
    ) -> LLMResponse:
        options = options or CallOptions()
        last_err: Exception | None = None

        for model in self.model_candidates:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    logger.info("[gemini] model=%s attempt=%d/%d", model, attempt, self.max_attempts)
                    response = self.client.models.generate_content(
                        model=model,
                        contents=prompt,
                        config=self._config(system, options),
                    )
                    text = getattr(response, "text", None)
                    if not text:
                        raise GenerationError("Gemini returned empty content.")
                    return LLMResponse(raw_text=text)

                except GenerationError as e:
                    last_err = e
                    break
                except Exception as e:
                    if self._is_auth(e):
                        raise AuthenticationError(
                            "Gemini rejected the API key. Check GEMINI_API_KEY."
                        ) from e
                    last_err = e
                    if not self._is_transient(e):
                        break

                    delay = self.base_delay * (2 ** (attempt - 1)) + random.random() * 0.5
                    logger.warning("[gemini] transient error: %s -> sleeping %.2fs", e, delay)
                    time.sleep(delay)

            logger.warning("[gemini] switching model after failures: %s", model)

        if isinstance(last_err, GenerationError):
            raise last_err
        raise self._translate(last_err) from last_err

    def generate(self, prompt: str, system: Optional[str] = None, options: Optional[CallOptions] = None) -> str:
        return self.complete(prompt, system=system, options=options).raw_text
