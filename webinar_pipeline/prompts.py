from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping

from webinar_pipeline.contracts.catalog import DELIVERABLES, STAGE_BY_ID
from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.contracts.types import ProjectSettings, TranscriptData
from webinar_pipeline.kinds import DeliverableKind
from webinar_pipeline.utils.io import read_text

PROMPTS_DIR = Path(__file__).resolve().parent / "prompt_templates"
DELIVERABLE_MARKER = "DELIVERABLE:"


@dataclass
class PromptContext:
    transcript: TranscriptData
    settings: ProjectSettings
    dependencies: Dict[DeliverableId, Any] = field(default_factory=dict)


@lru_cache(maxsize=None)
def load_template(name: str) -> str:
    return read_text(PROMPTS_DIR / f"{name}.md")


def render_template(template: str, values: Mapping[str, str]) -> str:
    rendered = template
    for key, value in values.items():
        rendered = rendered.replace("{{" + key + "}}", value)
    return rendered


def build_system_prompt(kind: DeliverableKind, settings: ProjectSettings) -> str:
    return render_template(
        load_template("system"),
        {
            "DELIVERABLE": kind.id.value,
            "TITLE": DELIVERABLES[kind.id].title,
            "WEBINAR_LENGTH": str(settings.webinar_length_minutes),
            "CTA_MODE": settings.cta_mode.value,
            "AUDIENCE_TEMPERATURE": settings.audience_temperature.value,
            "CONSTRAINTS": kind.constraint_summary,
            "INSTRUCTIONS": load_template(kind.prompt_name),
        },
    ).strip() + "\n"


def build_user_prompt(kind: DeliverableKind, context: PromptContext) -> str:
    wanted = STAGE_BY_ID[kind.id].dependencies
    payload = {
        "build_transcript": context.transcript.build_transcript,
        "intake_transcript": context.transcript.intake_transcript,
        "operator_notes": context.transcript.operator_notes,
        "settings": context.settings.to_dict(),
        "dependencies": {
            deliverable.value: context.dependencies[deliverable]
            for deliverable in wanted
            if context.dependencies.get(deliverable) is not None
        },
    }
    return f"{DELIVERABLE_MARKER} {kind.id.value}\n\nINPUT:\n{json.dumps(payload, indent=2, ensure_ascii=False)}\n"
