from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol


@dataclass
class CallOptions:
    max_output_tokens: int = 8000
    temperature: float = 0.7
    timeout_seconds: float = 120.0


@dataclass
class LLMResponse:
    raw_text: str
    usage: Optional[Dict[str, Optional[int]]] = field(default=None)


class LLMAdapter(Protocol):
    def generate(self, prompt: str, system: Optional[str] = None, options: Optional[CallOptions] = None) -> str:
        raise NotImplementedError

    def complete(
        self, prompt: str, system: Optional[str] = None, options: Optional[CallOptions] = None
    ) -> LLMResponse:
        return LLMResponse(raw_text=self.generate(prompt, system=system, options=options))
