from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from webinar_pipeline.contracts.catalog import STAGE_BY_ID
from webinar_pipeline.contracts.enums import CONTENT_DELIVERABLES, DeliverableId
from webinar_pipeline.contracts.types import (
    ArtifactRecord,
    PlaceholderScan,
    ReadinessResult,
    TargetConstraints,
    ValidationIssue,
    ValidationResult,
)
from webinar_pipeline.gates.placeholders import scan_contents
from webinar_pipeline.gates.readiness import compute_readiness_score
from webinar_pipeline.kinds import kind_for
from webinar_pipeline.storage import ProjectStore

logger = logging.getLogger(__name__)


@dataclass
class ExportEligibility:
    can_export: bool
    readiness: ReadinessResult
    validation_results: Dict[DeliverableId, ValidationResult]
    placeholder_scan: PlaceholderScan
    stale: Dict[DeliverableId, List[DeliverableId]] = field(default_factory=dict)


def missing_result(deliverable: DeliverableId) -> ValidationResult:
    return ValidationResult(
        issues=[
            ValidationIssue(
                kind="missing",
                deliverable=deliverable.value,
                field="",
                detail="not generated",
                code="missing",
            )
        ]
    )


def revalidate(
    records: Mapping[DeliverableId, ArtifactRecord], constraints: TargetConstraints
) -> Dict[DeliverableId, ValidationResult]:
    """Validate every persisted content deliverable against its persisted dependencies."""
    results: Dict[DeliverableId, ValidationResult] = {}
    for deliverable in CONTENT_DELIVERABLES:
        record = records.get(deliverable)
        if record is None or record.content is None:
            results[deliverable] = missing_result(deliverable)
            continue
        dependencies = {
            dependency: records[dependency]
            for dependency in STAGE_BY_ID[deliverable].dependencies
            if dependency in records
        }
        results[deliverable] = kind_for(deliverable).validate(record.content, dependencies, constraints)
    return results


def check_staleness(
    deliverable: DeliverableId, records: Mapping[DeliverableId, ArtifactRecord]
) -> List[DeliverableId]:
    """Return the dependencies that changed after ``deliverable`` was generated.

    A dependency counts as changed when its last edit, or its generation if it was
    never edited, is strictly later than the deliverable's own generation time.
    """
    record = records.get(deliverable)
    if record is None:
        return []
    stale_from: List[DeliverableId] = []
    for dependency in STAGE_BY_ID[deliverable].dependencies:
        upstream = records.get(dependency)
        if upstream is None:
            continue
        changed_at = upstream.edited_at if upstream.edited_at is not None else upstream.generated_at
        if changed_at > record.generated_at:
            stale_from.append(dependency)
    return stale_from


def stale_deliverables(
    records: Mapping[DeliverableId, ArtifactRecord]
) -> Dict[DeliverableId, List[DeliverableId]]:
    stale: Dict[DeliverableId, List[DeliverableId]] = {}
    for deliverable in CONTENT_DELIVERABLES:
        stale_from = check_staleness(deliverable, records)
        if stale_from:
            stale[deliverable] = stale_from
    return stale


def missing_context_count(records: Mapping[DeliverableId, ArtifactRecord]) -> int:
    preflight = records.get(DeliverableId.PREFLIGHT)
    if preflight is None or not isinstance(preflight.content, dict):
        return 0
    missing = preflight.content.get("missing_context")
    return len(missing) if isinstance(missing, list) else 0


def assess(
    project_id: str,
    run_id: str,
    records: Mapping[DeliverableId, ArtifactRecord],
    constraints: TargetConstraints,
    failures: Optional[Mapping[DeliverableId, str]] = None,
) -> ExportEligibility:
    validation_results = revalidate(records, constraints)
    scan = scan_contents(
        project_id,
        run_id,
        {
            deliverable: record.content
            for deliverable, record in records.items()
            if deliverable in CONTENT_DELIVERABLES
        },
    )
    readiness = compute_readiness_score(
        validation_results, scan, missing_context_count(records), failures
    )
    return ExportEligibility(
        can_export=readiness.pass_,
        readiness=readiness,
        validation_results=validation_results,
        placeholder_scan=scan,
        stale=stale_deliverables(records),
    )


def compute_export_eligibility(store: ProjectStore, project_id: str) -> ExportEligibility:
    project = store.require_project(project_id)
    eligibility = assess(
        project.project_id,
        project.run_id,
        store.list_artifacts(project_id),
        TargetConstraints(webinar_length_minutes=project.settings.webinar_length_minutes),
    )
    logger.info(
        "[eligibility] project=%s score=%d can_export=%s stale=%d",
        project_id,
        eligibility.readiness.score,
        eligibility.can_export,
        len(eligibility.stale),
    )
    return eligibility
