from __future__ import annotations

import copy
import itertools
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from webinar_pipeline.adapters.client import ModelClient
from webinar_pipeline.adapters.llm_base import CallOptions, LLMResponse
from webinar_pipeline.adapters.mock_adapter import MockAdapter, detect_deliverable
from webinar_pipeline.adapters.queue import GenerationQueue
from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.contracts.types import (
    ArtifactRecord,
    ProjectMetadata,
    ProjectSettings,
    TranscriptData,
)
from webinar_pipeline.pipeline_webinar import WebinarPipeline
from webinar_pipeline.storage import InMemoryStore

TRANSCRIPT = (
    "Jordan walks through how independent consultants can fill their calendar "
    "with one signature talk, a referral engine and a simple follow-up cadence. "
    "The offer is a done-with-you programme and the call to action is booking a call."
)


@dataclass
class ScriptedAdapter:
    """Serves queued responses per deliverable and falls back to the mock payloads.

    Queue items may be dicts (sent as JSON), raw strings, or exceptions to raise.
    ``always`` entries are returned on every call for that deliverable.
    """

    responses: Dict[str, List[Any]] = field(default_factory=dict)
    always: Dict[str, Any] = field(default_factory=dict)
    fallback: MockAdapter = field(default_factory=MockAdapter)
    calls: List[Tuple[Optional[str], str, Optional[str]]] = field(default_factory=list)

    def complete(
        self, prompt: str, system: Optional[str] = None, options: Optional[CallOptions] = None
    ) -> LLMResponse:
        deliverable = detect_deliverable(prompt, system)
        self.calls.append((deliverable, prompt, system))
        queued = self.responses.get(deliverable)
        if queued:
            return self._respond(queued.pop(0))
        if deliverable in self.always:
            return self._respond(self.always[deliverable])
        return self.fallback.complete(prompt, system=system, options=options)

    def generate(self, prompt: str, system: Optional[str] = None, options: Optional[CallOptions] = None) -> str:
        return self.complete(prompt, system=system, options=options).raw_text

    def calls_for(self, deliverable: str) -> List[Tuple[Optional[str], str, Optional[str]]]:
        return [call for call in self.calls if call[0] == deliverable]

    @staticmethod
    def _respond(item: Any) -> LLMResponse:
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return LLMResponse(raw_text=item)
        return LLMResponse(raw_text=json.dumps(item))


@pytest.fixture
def clock() -> Callable[[], float]:
    counter = itertools.count(1000)
    return lambda: float(next(counter))


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def payload_for() -> Callable[..., Dict]:
    mock = MockAdapter()

    def build(deliverable: Any, length: int = 60) -> Dict:
        return copy.deepcopy(
            mock.payload_for(DeliverableId(deliverable).value, {"webinar_length_minutes": length})
        )

    return build


@pytest.fixture
def record_for(payload_for) -> Callable[..., ArtifactRecord]:
    def build(deliverable: Any, validated: bool = True, content: Any = None) -> ArtifactRecord:
        return ArtifactRecord(
            content=content if content is not None else payload_for(deliverable),
            validated=validated,
            generated_at=1.0,
        )

    return build


@pytest.fixture
def project(store) -> ProjectMetadata:
    metadata = ProjectMetadata(
        project_id="wrproj_test",
        run_id="run_test",
        title="Book Calls From One Talk",
        settings=ProjectSettings(webinar_length_minutes=60),
    )
    store.save_project(metadata)
    store.write_transcript(metadata.project_id, TranscriptData(build_transcript=TRANSCRIPT))
    return metadata


@pytest.fixture
def make_client() -> Callable[..., ModelClient]:
    def build(adapter: Any, max_concurrency: int = 2) -> ModelClient:
        return ModelClient(adapter, queue=GenerationQueue(max_concurrency))

    return build


@pytest.fixture
def make_pipeline(store, make_client) -> Callable[..., WebinarPipeline]:
    def build(adapter: Any, **kwargs: Any) -> WebinarPipeline:
        return WebinarPipeline(store, make_client(adapter), **kwargs)

    return build


@pytest.fixture
def scripted() -> Callable[..., ScriptedAdapter]:
    return ScriptedAdapter
