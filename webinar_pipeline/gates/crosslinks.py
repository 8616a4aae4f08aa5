from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.contracts.ids import CHECKLIST_CATEGORIES, phase_for_block_id
from webinar_pipeline.contracts.types import (
    DependencyMap,
    TargetConstraints,
    ValidationIssue,
    ValidationResult,
)

DURATION_BUDGET_TOLERANCE = 0.15
TOTAL_DURATION_TOLERANCE = 0.10
EMAIL_COUNT = (8, 10)
SOCIAL_TOTAL = (6, 18)
SOCIAL_ARRAYS = ("linkedin_posts", "x_posts", "last_chance_blurbs")
CHECKLIST_ARRAYS = {category: f"{category}_webinar" for category in CHECKLIST_CATEGORIES}


def _issue(
    deliverable: DeliverableId,
    field: str,
    detail: str,
    code: str,
    kind: str = "crosslink",
    blocking: bool = True,
) -> ValidationIssue:
    return ValidationIssue(
        kind=kind,
        deliverable=deliverable.value,
        field=field,
        detail=detail,
        code=code,
        blocking=blocking,
    )


def _duplicates(values: Sequence[Any]) -> List[Any]:
    counts = Counter(values)
    return sorted(str(value) for value, count in counts.items() if count > 1)


def _items(content: Any, key: str) -> List[Dict]:
    items = content.get(key) if isinstance(content, dict) else None
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def duration_budget_issue(
    blocks: List[Dict], target_minutes: int
) -> Optional[ValidationIssue]:
    total = sum(block.get("timebox_minutes") or 0 for block in blocks)
    diff = abs(total - target_minutes) / target_minutes
    if diff <= DURATION_BUDGET_TOLERANCE:
        return None
    return _issue(
        DeliverableId.WR2,
        "blocks",
        f"blocks total {total}min but target is {target_minutes}min "
        f"({diff * 100:.1f}% difference)",
        "duration_mismatch",
        blocking=False,
    )


def check_framework(
    content: Any, dependencies: DependencyMap, constraints: TargetConstraints
) -> List[ValidationIssue]:
    deliverable = DeliverableId.WR2
    blocks = _items(content, "blocks")
    issues: List[ValidationIssue] = []

    duplicates = _duplicates([block.get("block_id") for block in blocks])
    if duplicates:
        issues.append(
            _issue(
                deliverable,
                "blocks",
                f"duplicate block_id values: {', '.join(duplicates)}",
                "crosslink_duplicate_block_ids",
            )
        )

    for index, block in enumerate(blocks):
        block_id = block.get("block_id", "")
        expected = phase_for_block_id(block_id)
        if expected is not None and block.get("phase") != expected.value:
            issues.append(
                _issue(
                    deliverable,
                    f"blocks[{index}].phase",
                    f"{block_id} should be {expected.value}",
                    "crosslink_invalid_phase",
                )
            )

    if constraints.webinar_length_minutes:
        budget = duration_budget_issue(blocks, constraints.webinar_length_minutes)
        if budget is not None:
            issues.append(budget)
    return issues


def check_email_campaign(
    content: Any, dependencies: DependencyMap, constraints: TargetConstraints
) -> List[ValidationIssue]:
    deliverable = DeliverableId.WR4
    emails = _items(content, "emails")
    issues: List[ValidationIssue] = []
    duplicates = _duplicates([email.get("email_id") for email in emails])
    if duplicates:
        issues.append(
            _issue(
                deliverable,
                "emails",
                f"duplicate email_id values: {', '.join(duplicates)}",
                "crosslink_duplicate_email_ids",
            )
        )
    low, high = EMAIL_COUNT
    if not low <= len(emails) <= high:
        issues.append(
            _issue(
                deliverable,
                "emails",
                f"expected {low}-{high} emails, got {len(emails)}",
                "crosslink_email_count_invalid",
            )
        )
    return issues


def check_social_pack(
    content: Any, dependencies: DependencyMap, constraints: TargetConstraints
) -> List[ValidationIssue]:
    deliverable = DeliverableId.WR5
    social_ids = [
        post.get("social_id") for key in SOCIAL_ARRAYS for post in _items(content, key)
    ]
    issues: List[ValidationIssue] = []
    duplicates = _duplicates(social_ids)
    if duplicates:
        issues.append(
            _issue(
                deliverable,
                "social_id",
                f"duplicate social_id values across posts: {', '.join(duplicates)}",
                "crosslink_duplicate_social_ids",
            )
        )
    low, high = SOCIAL_TOTAL
    if not low <= len(social_ids) <= high:
        issues.append(
            _issue(
                deliverable,
                "social_id",
                f"expected {low}-{high} social posts in total, got {len(social_ids)}",
                "crosslink_social_count_invalid",
            )
        )
    return issues


def check_run_of_show(
    content: Any, dependencies: DependencyMap, constraints: TargetConstraints
) -> List[ValidationIssue]:
    deliverable = DeliverableId.WR6
    framework = dependencies.get(DeliverableId.WR2)
    if framework is None or framework.content is None:
        return [
            _issue(
                deliverable,
                "timeline",
                "WR2 is required to validate block references",
                "crosslink_missing_dependency",
                kind="dependency",
            )
        ]
    if not framework.validated:
        return [
            _issue(
                deliverable,
                "timeline",
                "WR2 must be valid before validating WR6",
                "crosslink_dependency_invalid",
                kind="dependency",
            )
        ]

    known_blocks = {block.get("block_id") for block in _items(framework.content, "blocks")}
    total = content.get("total_duration_minutes", 0)
    timeline = _items(content, "timeline")
    issues: List[ValidationIssue] = []

    for index, segment in enumerate(timeline):
        title = segment.get("segment_title", "")
        block_id = segment.get("block_id")
        if block_id not in known_blocks:
            issues.append(
                _issue(
                    deliverable,
                    f"timeline[{index}].block_id",
                    f"{block_id} not found in WR2",
                    "crosslink_invalid_block_id",
                )
            )
        if segment.get("start_minute", 0) >= segment.get("end_minute", 0):
            issues.append(
                _issue(
                    deliverable,
                    f"timeline[{index}]",
                    f"{title} starts at or after its end",
                    "crosslink_invalid_time_bounds",
                )
            )
        if segment.get("end_minute", 0) > total:
            issues.append(
                _issue(
                    deliverable,
                    f"timeline[{index}].end_minute",
                    f"{title} ends after total_duration_minutes ({total})",
                    "crosslink_time_exceeds_duration",
                )
            )

    ordered = sorted(timeline, key=lambda segment: segment.get("start_minute", 0))
    for previous, current in zip(ordered, ordered[1:]):
        if current.get("start_minute", 0) < previous.get("end_minute", 0):
            issues.append(
                _issue(
                    deliverable,
                    "timeline",
                    f"{previous.get('segment_title', '')} overlaps {current.get('segment_title', '')}",
                    "crosslink_overlapping_segments",
                )
            )

    target = constraints.webinar_length_minutes
    if target and abs(total - target) / target > TOTAL_DURATION_TOLERANCE:
        issues.append(
            _issue(
                deliverable,
                "total_duration_minutes",
                f"{total} differs from target webinar length {target} by more than 10%",
                "crosslink_duration_mismatch",
            )
        )
    return issues


def check_checklist(
    content: Any, dependencies: DependencyMap, constraints: TargetConstraints
) -> List[ValidationIssue]:
    deliverable = DeliverableId.WR7
    issues: List[ValidationIssue] = []
    all_ids: List[Any] = []
    for category, key in CHECKLIST_ARRAYS.items():
        prefix = f"CL_{category}_"
        for index, item in enumerate(_items(content, key)):
            checklist_id = item.get("checklist_id", "")
            all_ids.append(checklist_id)
            if not str(checklist_id).startswith(prefix):
                issues.append(
                    _issue(
                        deliverable,
                        f"{key}[{index}].checklist_id",
                        f"{checklist_id} should start with {prefix}",
                        "crosslink_invalid_checklist_category",
                    )
                )
    duplicates = _duplicates(all_ids)
    if duplicates:
        issues.insert(
            0,
            _issue(
                deliverable,
                "checklist_id",
                f"duplicate checklist_id values: {', '.join(duplicates)}",
                "crosslink_duplicate_checklist_ids",
            ),
        )
    return issues


def validate_crosslinks(
    deliverable: DeliverableId,
    content: Any,
    dependencies: Optional[DependencyMap] = None,
    constraints: Optional[TargetConstraints] = None,
) -> ValidationResult:
    from webinar_pipeline.kinds import kind_for

    return kind_for(deliverable).validate_crosslinks(
        content, dependencies or {}, constraints or TargetConstraints()
    )
