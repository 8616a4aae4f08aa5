from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List

from webinar_pipeline.artifacts.validation_matrix_writer import write_validation_matrix
from webinar_pipeline.artifacts.writers import write_readiness_report, write_run_of_show, write_script
from webinar_pipeline.contracts.catalog import export_filename, exportable_deliverables
from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.eligibility import ExportEligibility, compute_export_eligibility
from webinar_pipeline.errors import ExportNotAllowed
from webinar_pipeline.storage import ProjectStore
from webinar_pipeline.utils.io import write_json

logger = logging.getLogger(__name__)

INTERNAL_FIELDS = frozenset(
    {
        "qa",
        "assumptions",
        "placeholders",
        "claims_requiring_proof",
        "status",
        "readiness",
        "missing_context",
        "recommended_questions",
        "risk_flags",
    }
)

COACH_ONLY_FIELDS: Dict[DeliverableId, FrozenSet[str]] = {
    DeliverableId.WR2: frozenset({"speaker_notes_md"}),
    DeliverableId.WR6: frozenset({"coach_cue", "fallback_if_cold", "time_check"}),
}


@dataclass
class ExportResult:
    eligibility: ExportEligibility
    written: List[Path] = field(default_factory=list)


def _strip(value: Any, excluded: FrozenSet[str]) -> Any:
    if isinstance(value, list):
        return [_strip(item, excluded) for item in value]
    if isinstance(value, dict):
        return {key: _strip(item, excluded) for key, item in value.items() if key not in excluded}
    return value


def sanitize_for_client(deliverable: DeliverableId, content: Any) -> Any:
    """Drop QA bookkeeping and coach-only notes; operator deliverables export nothing."""
    deliverable = DeliverableId(deliverable)
    if deliverable in (DeliverableId.PREFLIGHT, DeliverableId.WR9):
        return None
    return _strip(content, INTERNAL_FIELDS | COACH_ONLY_FIELDS.get(deliverable, frozenset()))


def export_project(store: ProjectStore, project_id: str, out_dir: Path, force: bool = False) -> ExportResult:
    eligibility = compute_export_eligibility(store, project_id)
    if not eligibility.can_export and not force:
        reasons = ", ".join(eligibility.readiness.blocking_reasons)
        raise ExportNotAllowed(f"Project {project_id} is not ready for client export: {reasons}")
    if not eligibility.can_export:
        logger.warning("[export] project=%s exporting despite readiness failure", project_id)

    project = store.require_project(project_id)
    records = store.list_artifacts(project_id)
    out_dir = Path(out_dir)
    result = ExportResult(eligibility=eligibility)

    for deliverable in exportable_deliverables():
        record = records.get(deliverable)
        if record is None:
            continue
        path = out_dir / f"{export_filename(deliverable)}.json"
        write_json(path, sanitize_for_client(deliverable, record.content))
        result.written.append(path)

    framework = records.get(DeliverableId.WR2)
    run_of_show = records.get(DeliverableId.WR6)
    if framework is not None:
        path = out_dir / "Webinar_Script.md"
        write_script(path, framework.content, project.title, run_of_show.content if run_of_show else None)
        result.written.append(path)
    if run_of_show is not None:
        path = out_dir / "Run_of_Show.md"
        write_run_of_show(path, run_of_show.content, project.title, include_coaching=False)
        result.written.append(path)

    internal = out_dir / "internal"
    report = records.get(DeliverableId.WR9)
    if report is not None:
        path = internal / "readiness_report.md"
        write_readiness_report(path, report.content, generated_at=report.generated_at)
        result.written.append(path)
    path = internal / "validation_matrix.csv"
    write_validation_matrix(path, eligibility.validation_results, eligibility.placeholder_scan)
    result.written.append(path)

    logger.info("[export] project=%s files=%d dir=%s", project_id, len(result.written), out_dir)
    return result
