from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Set

from webinar_pipeline.contracts.enums import CONTENT_DELIVERABLES, DeliverableId
from webinar_pipeline.contracts.types import PlaceholderScan, ReadinessResult, ValidationResult

PASS_THRESHOLD = 70
MISSING_CONTEXT_PENALTY = (15, 60)
CRITICAL_PLACEHOLDER_PENALTY = (10, 40)
INVALID_DELIVERABLE_PENALTY = 10


@dataclass
class DeliverableStatus:
    deliverable: DeliverableId
    present: bool
    ok: bool
    failure_kinds: Set[str] = field(default_factory=set)
    first_error: str = ""

    @property
    def usable(self) -> bool:
        return self.present and self.ok


@dataclass
class ReadinessEvaluation:
    statuses: List[DeliverableStatus]
    critical_count: int
    missing_context_count: int

    @property
    def all_valid(self) -> bool:
        return all(status.usable for status in self.statuses)

    @property
    def score(self) -> int:
        per_item, cap = MISSING_CONTEXT_PENALTY
        score = 100 - min(per_item * self.missing_context_count, cap)
        per_item, cap = CRITICAL_PLACEHOLDER_PENALTY
        score -= min(per_item * self.critical_count, cap)
        if not self.all_valid:
            score -= INVALID_DELIVERABLE_PENALTY
        return max(score, 0)

    @property
    def passed(self) -> bool:
        return self.score >= PASS_THRESHOLD and self.critical_count == 0 and self.all_valid

    def blocking_reasons(self) -> List[str]:
        reasons: List[str] = []
        if self.critical_count > 0:
            reasons.append(f"critical_placeholders_present ({self.critical_count})")
        for status in self.statuses:
            name = status.deliverable.value
            if not status.present:
                reasons.append(f"{name}_missing")
                continue
            if status.ok:
                continue
            if "schema" in status.failure_kinds:
                reasons.append(f"{name}_schema_invalid")
            if "crosslink" in status.failure_kinds:
                reasons.append(f"{name}_crosslink_invalid")
            if not status.failure_kinds & {"schema", "crosslink"}:
                reasons.append(f"{name}_validation_failed")
        if self.score < PASS_THRESHOLD:
            reasons.append(f"readiness_score_below_threshold ({self.score})")
        return reasons

    def recommended_actions(self, failures: Optional[Mapping[DeliverableId, str]] = None) -> List[str]:
        failures = failures or {}
        actions: List[str] = []
        for status in self.statuses:
            if status.deliverable in failures:
                actions.append(
                    f"Re-run generation for {status.deliverable.value} "
                    f"(failed with: {failures[status.deliverable]})"
                )
            elif not status.present:
                actions.append(f"Generate {status.deliverable.value} (not generated yet)")
        if self.critical_count > 0:
            actions.append(f"Fill {self.critical_count} critical placeholders before export")
        for status in self.statuses:
            if status.usable or not status.present or status.deliverable in failures:
                continue
            if "crosslink" in status.failure_kinds:
                actions.append(f"Fix crosslink references in {status.deliverable.value}")
            else:
                actions.append(f"Review and fix validation errors in {status.deliverable.value}")
        if self.score < PASS_THRESHOLD:
            actions.append(f"Improve readiness score to at least {PASS_THRESHOLD} before client export")
        if not actions:
            actions.append("All validations passed! Ready for client export.")
        return actions


def _status(deliverable: DeliverableId, result: Optional[ValidationResult]) -> DeliverableStatus:
    if result is None:
        return DeliverableStatus(deliverable=deliverable, present=False, ok=False)
    kinds = result.kinds()
    if kinds == {"missing"}:
        return DeliverableStatus(deliverable=deliverable, present=False, ok=False, failure_kinds=kinds)
    errors = result.errors
    return DeliverableStatus(
        deliverable=deliverable,
        present=True,
        ok=result.ok,
        failure_kinds=kinds,
        first_error=errors[0] if errors else "",
    )


def evaluate_readiness(
    validation_results: Mapping[DeliverableId, ValidationResult],
    placeholder_scan: PlaceholderScan,
    missing_context_count: int,
) -> ReadinessEvaluation:
    results = {DeliverableId(key): value for key, value in validation_results.items()}
    return ReadinessEvaluation(
        statuses=[_status(deliverable, results.get(deliverable)) for deliverable in CONTENT_DELIVERABLES],
        critical_count=placeholder_scan.critical_count,
        missing_context_count=max(missing_context_count, 0),
    )


def compute_readiness_score(
    validation_results: Mapping[DeliverableId, ValidationResult],
    placeholder_scan: PlaceholderScan,
    missing_context_count: int,
    failures: Optional[Mapping[DeliverableId, str]] = None,
) -> ReadinessResult:
    evaluation = evaluate_readiness(validation_results, placeholder_scan, missing_context_count)
    return ReadinessResult(
        score=evaluation.score,
        pass_=evaluation.passed,
        blocking_reasons=evaluation.blocking_reasons(),
        recommended_actions=evaluation.recommended_actions(failures),
    )
