from __future__ import annotations

import copy
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from webinar_pipeline.contracts.enums import DeliverableId, ProjectStatus
from webinar_pipeline.contracts.types import (
    ArtifactRecord,
    NormalizationLog,
    ProjectMetadata,
    TranscriptData,
)
from webinar_pipeline.errors import PreconditionError
from webinar_pipeline.utils.io import read_json, write_json_atomic

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class ProjectStore:
    """Key/value persistence for projects, transcripts and artifacts.

    Subclasses provide the raw record primitives. Generation and edit
    timestamps are stamped here so every backend treats them the same way.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self.clock = clock

    def get_project(self, project_id: str) -> Optional[ProjectMetadata]:
        raise NotImplementedError

    def save_project(self, metadata: ProjectMetadata) -> None:
        raise NotImplementedError

    def read_transcript(self, project_id: str) -> Optional[TranscriptData]:
        raise NotImplementedError

    def write_transcript(self, project_id: str, transcript: TranscriptData) -> None:
        raise NotImplementedError

    def read_artifact(self, project_id: str, deliverable: DeliverableId) -> Optional[ArtifactRecord]:
        raise NotImplementedError

    def list_artifacts(self, project_id: str) -> Dict[DeliverableId, ArtifactRecord]:
        raise NotImplementedError

    def _put_artifact(self, project_id: str, deliverable: DeliverableId, record: ArtifactRecord) -> None:
        raise NotImplementedError

    def require_project(self, project_id: str) -> ProjectMetadata:
        project = self.get_project(project_id)
        if project is None:
            raise PreconditionError(f"Project not found: {project_id}")
        return project

    def write_artifact(
        self,
        project_id: str,
        deliverable: DeliverableId,
        content: Any,
        validated: bool,
        normalization_log: Optional[NormalizationLog] = None,
    ) -> ArtifactRecord:
        deliverable = DeliverableId(deliverable)
        record = ArtifactRecord(
            content=copy.deepcopy(content),
            validated=validated,
            generated_at=self.clock(),
            normalization_log=normalization_log,
        )
        self._put_artifact(project_id, deliverable, record)
        logger.info(
            "[store] wrote project=%s deliverable=%s validated=%s",
            project_id,
            deliverable.value,
            validated,
        )
        return record

    def edit_artifact(
        self,
        project_id: str,
        deliverable: DeliverableId,
        content: Any,
        validated: bool,
        normalization_log: Optional[NormalizationLog] = None,
    ) -> ArtifactRecord:
        deliverable = DeliverableId(deliverable)
        existing = self.read_artifact(project_id, deliverable)
        if existing is None:
            raise PreconditionError(f"No {deliverable.value} artifact to edit for project {project_id}")
        record = ArtifactRecord(
            content=copy.deepcopy(content),
            validated=validated,
            generated_at=existing.generated_at,
            edited_at=self.clock(),
            normalization_log=normalization_log or existing.normalization_log,
        )
        self._put_artifact(project_id, deliverable, record)
        logger.info("[store] edited project=%s deliverable=%s", project_id, deliverable.value)
        return record

    def update_project_status(self, project_id: str, status: ProjectStatus) -> None:
        project = self.require_project(project_id)
        project.status = ProjectStatus(status)
        self.save_project(project)
        logger.info("[store] project=%s status=%s", project_id, project.status.value)


class InMemoryStore(ProjectStore):
    def __init__(self, clock: Clock = time.time) -> None:
        super().__init__(clock)
        self._projects: Dict[str, ProjectMetadata] = {}
        self._transcripts: Dict[str, TranscriptData] = {}
        self._artifacts: Dict[Tuple[str, DeliverableId], ArtifactRecord] = {}

    def get_project(self, project_id: str) -> Optional[ProjectMetadata]:
        project = self._projects.get(project_id)
        return copy.deepcopy(project) if project else None

    def save_project(self, metadata: ProjectMetadata) -> None:
        self._projects[metadata.project_id] = copy.deepcopy(metadata)

    def read_transcript(self, project_id: str) -> Optional[TranscriptData]:
        return self._transcripts.get(project_id)

    def write_transcript(self, project_id: str, transcript: TranscriptData) -> None:
        self._transcripts[project_id] = transcript

    def read_artifact(self, project_id: str, deliverable: DeliverableId) -> Optional[ArtifactRecord]:
        record = self._artifacts.get((project_id, DeliverableId(deliverable)))
        return copy.deepcopy(record) if record else None

    def list_artifacts(self, project_id: str) -> Dict[DeliverableId, ArtifactRecord]:
        return {
            deliverable: copy.deepcopy(record)
            for (owner, deliverable), record in self._artifacts.items()
            if owner == project_id
        }

    def _put_artifact(self, project_id: str, deliverable: DeliverableId, record: ArtifactRecord) -> None:
        self._artifacts[(project_id, deliverable)] = copy.deepcopy(record)


class FileStore(ProjectStore):
    """JSON files under ``runs/<project>/``; artifacts live in ``<run>/artifacts/<ID>.json``."""

    def __init__(self, runs_dir: Path, clock: Clock = time.time) -> None:
        super().__init__(clock)
        self.runs_dir = Path(runs_dir)

    def project_dir(self, project_id: str) -> Path:
        return self.runs_dir / project_id

    def artifacts_dir(self, project_id: str) -> Path:
        project = self.require_project(project_id)
        return self.project_dir(project_id) / project.run_id / "artifacts"

    def get_project(self, project_id: str) -> Optional[ProjectMetadata]:
        path = self.project_dir(project_id) / "project.json"
        if not path.exists():
            return None
        return ProjectMetadata.from_dict(read_json(path))

    def save_project(self, metadata: ProjectMetadata) -> None:
        write_json_atomic(self.project_dir(metadata.project_id) / "project.json", metadata.to_dict())

    def read_transcript(self, project_id: str) -> Optional[TranscriptData]:
        path = self.project_dir(project_id) / "transcript.json"
        if not path.exists():
            return None
        payload = read_json(path)
        return TranscriptData(
            build_transcript=payload.get("build_transcript", ""),
            intake_transcript=payload.get("intake_transcript"),
            operator_notes=payload.get("operator_notes"),
        )

    def write_transcript(self, project_id: str, transcript: TranscriptData) -> None:
        write_json_atomic(self.project_dir(project_id) / "transcript.json", transcript.to_dict())

    def read_artifact(self, project_id: str, deliverable: DeliverableId) -> Optional[ArtifactRecord]:
        path = self.artifacts_dir(project_id) / f"{DeliverableId(deliverable).value}.json"
        if not path.exists():
            return None
        return ArtifactRecord.from_dict(read_json(path))

    def list_artifacts(self, project_id: str) -> Dict[DeliverableId, ArtifactRecord]:
        directory = self.artifacts_dir(project_id)
        records: Dict[DeliverableId, ArtifactRecord] = {}
        if not directory.exists():
            return records
        for path in sorted(directory.glob("*.json")):
            try:
                deliverable = DeliverableId(path.stem)
            except ValueError:
                logger.warning("[store] ignoring unexpected artifact file %s", path.name)
                continue
            records[deliverable] = ArtifactRecord.from_dict(read_json(path))
        return records

    def _put_artifact(self, project_id: str, deliverable: DeliverableId, record: ArtifactRecord) -> None:
        write_json_atomic(self.artifacts_dir(project_id) / f"{deliverable.value}.json", record.to_dict())
