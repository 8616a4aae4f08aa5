from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from webinar_pipeline.adapters.client import ModelClient
from webinar_pipeline.config import PipelineSettings
from webinar_pipeline.contracts.catalog import STAGE_BY_ID, STAGES, StageSpec, batches, dependents_of
from webinar_pipeline.contracts.enums import DeliverableId, ProjectStatus, RiskFlag
from webinar_pipeline.contracts.types import (
    ArtifactRecord,
    DependencyMap,
    NormalizationLog,
    ProjectMetadata,
    ReadinessResult,
    TargetConstraints,
    TranscriptData,
    ValidationResult,
)
from webinar_pipeline.eligibility import ExportEligibility, assess
from webinar_pipeline.errors import (
    GenerationError,
    PipelineCancelled,
    PreconditionError,
    RepairExhaustedError,
)
from webinar_pipeline.kinds import DeliverableKind, kind_for
from webinar_pipeline.prompts import PromptContext, build_system_prompt, build_user_prompt
from webinar_pipeline.repair import RepairContext, attempt_repair
from webinar_pipeline.storage import ProjectStore

logger = logging.getLogger(__name__)

GENERATED: Tuple[DeliverableId, ...] = tuple(
    stage.deliverable for stage in STAGES if stage.deliverable != DeliverableId.WR9
)

PENDING = "pending"
GENERATING = "generating"
REPAIRING = "repairing"
VALIDATING = "validating"
COMPLETE = "complete"
ERROR = "error"


@dataclass
class ProgressEvent:
    deliverable: DeliverableId
    state: str
    attempt: Optional[int] = None
    max_attempts: Optional[int] = None
    message: Optional[str] = None


PipelineProgress = Callable[[ProgressEvent], None]


@dataclass
class Continue:
    deliverable: DeliverableId
    record: ArtifactRecord


@dataclass
class Blocked:
    deliverable: DeliverableId
    reason: str


@dataclass
class Failed:
    deliverable: DeliverableId
    message: str
    details: List[str] = field(default_factory=list)


StageOutcome = Union[Continue, Blocked, Failed]


@dataclass
class RunOutcome:
    project_id: str
    status: str
    project_status: ProjectStatus
    completed: List[DeliverableId] = field(default_factory=list)
    failures: Dict[DeliverableId, Failed] = field(default_factory=dict)
    readiness: Optional[ReadinessResult] = None
    blocked_reason: Optional[str] = None
    stale: Dict[DeliverableId, List[DeliverableId]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "completed" and not self.failures


def derive_risk_flags(preflight: Dict[str, Any]) -> List[str]:
    missing = {
        str(item.get("field", "")).lower()
        for item in preflight.get("missing_context", [])
        if isinstance(item, dict)
    }
    text = json.dumps(list(preflight.values())).lower()
    flags: List[RiskFlag] = []
    if "offer" in missing or ("offer" in text and "missing" in text):
        flags.append(RiskFlag.OFFER_MISSING)
    if missing & {"target_audience", "icp"} or ("audience" in text and "unclear" in text):
        flags.append(RiskFlag.ICP_MISSING)
    if ("proof" in text and "missing" in text) or "testimonial" in text or "case study" in text:
        flags.append(RiskFlag.PROOF_MISSING)
    if "cta" in missing or ("cta" in text and "unclear" in text):
        flags.append(RiskFlag.CTA_UNCLEAR)
    if ("mechanism" in text or "how" in text) and "unclear" in text:
        flags.append(RiskFlag.MECHANISM_UNCLEAR)
    return [flag.value for flag in flags]


class WebinarPipeline:
    def __init__(
        self,
        store: ProjectStore,
        client: ModelClient,
        settings: Optional[PipelineSettings] = None,
        on_progress: Optional[PipelineProgress] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.settings = settings or PipelineSettings()
        self.on_progress = on_progress
        self._cancelled = False

    def cancel(self) -> None:
        logger.info("[pipeline] cancellation requested")
        self._cancelled = True
        self.client.cancel()

    async def run(self, project_id: str) -> RunOutcome:
        project, transcript = self._preconditions(project_id)
        return await self._execute(project, transcript, GENERATED)

    async def regenerate(
        self, project_id: str, target: DeliverableId, cascade: bool = False
    ) -> RunOutcome:
        target = DeliverableId(target)
        project, transcript = self._preconditions(project_id)
        affected: Set[DeliverableId] = {target}
        if cascade:
            affected |= dependents_of(target)
        affected.discard(DeliverableId.WR9)
        logger.info(
            "[pipeline] regenerate project=%s target=%s cascade=%s affected=%s",
            project_id,
            target.value,
            cascade,
            ",".join(sorted(item.value for item in affected)) or "-",
        )
        return await self._execute(project, transcript, affected)

    def edit(
        self, project_id: str, deliverable: DeliverableId, content: Any
    ) -> Tuple[ArtifactRecord, ValidationResult]:
        deliverable = DeliverableId(deliverable)
        if deliverable == DeliverableId.WR9:
            raise PreconditionError("WR9 is assembled from the other deliverables and cannot be edited.")
        project = self.store.require_project(project_id)
        kind = kind_for(deliverable)
        canonical, log = kind.canonicalize(content)
        validation = kind.validate(
            canonical, self._dependencies(project_id, deliverable), self._constraints(project)
        )
        record = self.store.edit_artifact(
            project_id,
            deliverable,
            canonical,
            validated=validation.ok,
            normalization_log=log if log.changes else None,
        )
        return record, validation

    def _preconditions(self, project_id: str) -> Tuple[ProjectMetadata, TranscriptData]:
        project = self.store.require_project(project_id)
        transcript = self.store.read_transcript(project_id)
        problem = None
        if transcript is None:
            problem = f"No transcript found for project {project_id}"
        elif len(transcript.build_transcript.strip()) < self.settings.min_transcript_chars:
            problem = (
                f"Build transcript is too short (minimum {self.settings.min_transcript_chars} characters)"
            )
        if problem:
            self.store.update_project_status(project_id, ProjectStatus.FAILED)
            logger.error("[pipeline] project=%s precondition failed: %s", project_id, problem)
            raise PreconditionError(problem)
        return project, transcript

    async def _execute(
        self,
        project: ProjectMetadata,
        transcript: TranscriptData,
        selected: Iterable[DeliverableId],
    ) -> RunOutcome:
        project_id = project.project_id
        self._cancelled = False
        self.client.queue.reset()
        selected = list(selected)
        outcome = RunOutcome(project_id=project_id, status="completed", project_status=ProjectStatus.GENERATING)
        for deliverable in selected:
            self._emit(deliverable, PENDING)
        self.store.update_project_status(project_id, ProjectStatus.GENERATING)

        try:
            for number, batch in enumerate(batches(only=selected), start=1):
                if self._cancelled:
                    return self._finish_cancelled(outcome)
                logger.info(
                    "[pipeline] project=%s batch=%d deliverables=%s",
                    project_id,
                    number,
                    ",".join(stage.deliverable.value for stage in batch),
                )
                results = await asyncio.gather(
                    *(self._run_stage(project, transcript, stage) for stage in batch),
                    return_exceptions=True,
                )
                if self._cancelled or any(isinstance(result, PipelineCancelled) for result in results):
                    return self._finish_cancelled(outcome)
                for result in results:
                    if isinstance(result, BaseException):
                        raise result
                    if isinstance(result, Failed):
                        outcome.failures[result.deliverable] = result
                    elif isinstance(result, Blocked):
                        outcome.status = "preflight_blocked"
                        outcome.blocked_reason = result.reason
                        outcome.project_status = ProjectStatus.PREFLIGHT_BLOCKED
                        self.store.update_project_status(project_id, ProjectStatus.PREFLIGHT_BLOCKED)
                        logger.warning("[pipeline] project=%s preflight blocked: %s", project_id, result.reason)
                        return outcome
                    else:
                        outcome.completed.append(result.deliverable)

            eligibility = self._assemble_report(project, outcome.failures)
            outcome.readiness = eligibility.readiness
            outcome.stale = eligibility.stale
            invalid = [
                deliverable.value
                for deliverable, result in eligibility.validation_results.items()
                if not result.ok
            ]
            needs_review = bool(outcome.failures or invalid)
            outcome.project_status = ProjectStatus.REVIEW if needs_review else ProjectStatus.READY
            self.store.update_project_status(project_id, outcome.project_status)
            logger.info(
                "[pipeline] project=%s done status=%s failures=%d invalid=%s stale=%s score=%d",
                project_id,
                outcome.project_status.value,
                len(outcome.failures),
                ",".join(invalid) or "-",
                ",".join(sorted(item.value for item in outcome.stale)) or "-",
                outcome.readiness.score,
            )
            return outcome
        except Exception:
            logger.exception("[pipeline] project=%s aborted", project_id)
            self.store.update_project_status(project_id, ProjectStatus.FAILED)
            raise

    def _finish_cancelled(self, outcome: RunOutcome) -> RunOutcome:
        outcome.status = "cancelled"
        outcome.project_status = ProjectStatus.REVIEW
        self.store.update_project_status(outcome.project_id, ProjectStatus.REVIEW)
        logger.warning("[pipeline] project=%s cancelled", outcome.project_id)
        return outcome

    def _constraints(self, project: ProjectMetadata) -> TargetConstraints:
        return TargetConstraints(webinar_length_minutes=project.settings.webinar_length_minutes)

    def _dependencies(self, project_id: str, deliverable: DeliverableId) -> DependencyMap:
        dependencies: DependencyMap = {}
        for dependency in STAGE_BY_ID[deliverable].dependencies:
            record = self.store.read_artifact(project_id, dependency)
            if record is not None:
                dependencies[dependency] = record
        return dependencies

    async def _run_stage(
        self, project: ProjectMetadata, transcript: TranscriptData, stage: StageSpec
    ) -> StageOutcome:
        deliverable = stage.deliverable
        kind = kind_for(deliverable)
        project_id = project.project_id
        dependencies = self._dependencies(project_id, deliverable)
        context = PromptContext(
            transcript=transcript,
            settings=project.settings,
            dependencies={key: record.content for key, record in dependencies.items()},
        )
        system = build_system_prompt(kind, project.settings)
        user = build_user_prompt(kind, context)
        self._emit(deliverable, GENERATING)

        try:
            result = await self._generate(kind, dependencies, project, system, user)
        except PipelineCancelled:
            raise
        except RepairExhaustedError as exc:
            if exc.last_candidate is not None:
                self.store.write_artifact(project_id, deliverable, exc.last_candidate, validated=False)
            self._emit(deliverable, ERROR, message=str(exc))
            return Failed(deliverable, str(exc), exc.errors)
        except Exception as exc:
            logger.exception("[pipeline] deliverable=%s failed", deliverable.value)
            self._emit(deliverable, ERROR, message=str(exc))
            return Failed(deliverable, str(exc), [type(exc).__name__])

        content, log = result
        if deliverable == DeliverableId.PREFLIGHT:
            content = {**content, "risk_flags": derive_risk_flags(content)}
        record = self.store.write_artifact(
            project_id,
            deliverable,
            content,
            validated=True,
            normalization_log=log if log.changes else None,
        )
        self._emit(deliverable, COMPLETE)
        if deliverable == DeliverableId.PREFLIGHT and content.get("status") == "blocked":
            fields = [item.get("field", "") for item in content.get("missing_context", [])]
            reason = "Missing context: " + ", ".join(fields) if fields else "Preflight blocked"
            return Blocked(deliverable, reason)
        return Continue(deliverable, record)

    async def _generate(
        self,
        kind: DeliverableKind,
        dependencies: DependencyMap,
        project: ProjectMetadata,
        system: str,
        user: str,
    ) -> Tuple[Any, NormalizationLog]:
        deliverable = kind.id
        context = RepairContext(
            dependencies=dependencies,
            constraints=self._constraints(project),
            system_prompt=system,
            user_prompt=user,
            on_repair_attempt=lambda attempt, budget: self._emit(
                deliverable, REPAIRING, attempt=attempt, max_attempts=budget
            ),
            on_validating=lambda: self._emit(deliverable, VALIDATING),
        )
        try:
            raw = await self.client.call(system, user)
        except GenerationError as exc:
            if not exc.retryable:
                raise
            logger.warning("[pipeline] deliverable=%s initial call failed: %s", deliverable.value, exc)
            raw = None
            context.initial_error = exc
        result = await attempt_repair(raw, kind, context, self.client)
        return result.content, result.normalization_log

    def _assemble_report(
        self, project: ProjectMetadata, failures: Dict[DeliverableId, Failed]
    ) -> ExportEligibility:
        self._emit(DeliverableId.WR9, GENERATING)
        records = self.store.list_artifacts(project.project_id)
        eligibility = assess(
            project.project_id,
            project.run_id,
            records,
            self._constraints(project),
            {deliverable: failure.message for deliverable, failure in failures.items()},
        )
        readiness = eligibility.readiness
        stale_actions = [
            f"Regenerate {deliverable.value}; it predates changes to "
            f"{', '.join(item.value for item in stale_from)}."
            for deliverable, stale_from in eligibility.stale.items()
        ]
        report = {
            "readiness_score": readiness.score,
            "pass": readiness.pass_,
            "blocking_reasons": readiness.blocking_reasons,
            "validation_results": {
                deliverable.value: result.to_dict()
                for deliverable, result in eligibility.validation_results.items()
            },
            "placeholder_scan": eligibility.placeholder_scan.to_dict(),
            "recommended_next_actions": readiness.recommended_actions + stale_actions,
            "stale_deliverables": {
                deliverable.value: [item.value for item in stale_from]
                for deliverable, stale_from in eligibility.stale.items()
            },
        }
        kind = kind_for(DeliverableId.WR9)
        self.store.write_artifact(
            project.project_id, DeliverableId.WR9, report, validated=kind.validate(report).ok
        )
        self._emit(DeliverableId.WR9, COMPLETE)
        return eligibility

    def _emit(self, deliverable: DeliverableId, state: str, **details: Any) -> None:
        if self.on_progress is None:
            return
        self.on_progress(ProgressEvent(deliverable=deliverable, state=state, **details))

