from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml

from webinar_pipeline.contracts.ids import generate_project_id, generate_run_id
from webinar_pipeline.contracts.types import ProjectMetadata, ProjectSettings, TranscriptData
from webinar_pipeline.storage import ProjectStore
from webinar_pipeline.utils.io import read_text

logger = logging.getLogger(__name__)

SETTING_KEYS = (
    "cta_mode",
    "audience_temperature",
    "webinar_length_minutes",
    "client_name",
    "speaker_name",
    "company_name",
)


@dataclass
class Intake:
    title: str
    settings: ProjectSettings
    transcript: TranscriptData


def parse_frontmatter(content: str) -> Tuple[Dict, str]:
    if not content.startswith("---"):
        stripped = content.lstrip()
        if stripped.startswith("{"):
            try:
                decoder = json.JSONDecoder()
                parsed, end = decoder.raw_decode(stripped)
            except json.JSONDecodeError:
                return {}, content
            if isinstance(parsed, dict):
                body = stripped[end:].lstrip("\n")
                return parsed, body
        return {}, content
    parts = content.split("---", 2)
    if len(parts) < 3:
        return {}, content
    meta_raw = parts[1].strip()
    body = parts[2].lstrip("\n")
    try:
        meta = yaml.safe_load(meta_raw) or {}
    except yaml.YAMLError:
        logger.warning("[intake] frontmatter is not valid YAML; treating it as transcript text")
        return {}, content
    if not isinstance(meta, dict):
        return {}, content
    return meta, body


def settings_from_frontmatter(meta: Dict) -> ProjectSettings:
    payload = {key: meta[key] for key in SETTING_KEYS if meta.get(key) is not None}
    try:
        return ProjectSettings.from_dict(payload)
    except ValueError as exc:
        raise ValueError(f"Invalid project settings in transcript frontmatter: {exc}") from exc


def load_intake(
    transcript_path: Path,
    intake_path: Optional[Path] = None,
    notes_path: Optional[Path] = None,
) -> Intake:
    meta, body = parse_frontmatter(read_text(Path(transcript_path)))
    notes = read_text(Path(notes_path)) if notes_path else meta.get("operator_notes")
    return Intake(
        title=str(meta.get("title") or Path(transcript_path).stem),
        settings=settings_from_frontmatter(meta),
        transcript=TranscriptData(
            build_transcript=body,
            intake_transcript=read_text(Path(intake_path)) if intake_path else None,
            operator_notes=notes,
        ),
    )


def create_project(store: ProjectStore, intake: Intake, project_id: Optional[str] = None) -> ProjectMetadata:
    metadata = ProjectMetadata(
        project_id=project_id or generate_project_id(),
        run_id=generate_run_id(),
        title=intake.title,
        settings=intake.settings,
    )
    store.save_project(metadata)
    store.write_transcript(metadata.project_id, intake.transcript)
    logger.info("[intake] created project=%s run=%s", metadata.project_id, metadata.run_id)
    return metadata
