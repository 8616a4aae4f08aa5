from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from webinar_pipeline.adapters.client import ModelClient
from webinar_pipeline.contracts.catalog import load_schema
from webinar_pipeline.contracts.types import (
    DependencyMap,
    NormalizationLog,
    TargetConstraints,
    ValidationIssue,
    ValidationResult,
)
from webinar_pipeline.errors import GenerationError, RepairExhaustedError
from webinar_pipeline.kinds import DeliverableKind

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 15000

ID_HINTS = {
    "block_id": "Block IDs MUST be exactly B01, B02, B03... B21 with leading zeros. Convert any B1 to B01, B2 to B02, etc.",
    "email_id": "Email IDs MUST be E01, E02, E03... E10 with TWO digits. Convert E1 to E01, E2 to E02, etc.",
    "social_id": "Social IDs MUST use two digits (S01-S18) and be unique across linkedin_posts, x_posts and last_chance_blurbs. Convert S1 to S01, etc.",
    "checklist_id": "Checklist IDs MUST use 3 digits and the prefix of their array: CL_pre_001, CL_live_001, CL_post_001. Convert CL_pre_1 to CL_pre_001, etc.",
}

ID_TRANSLATIONS = {
    "block_id": "Block IDs must be exactly B01-B21 with leading zeros",
    "email_id": "Email IDs must be E01-E10 with leading zeros",
    "social_id": "Social IDs must use two digits (S01-S18)",
    "checklist_id": "Checklist IDs must use 3 digits (CL_pre_001, CL_live_001, CL_post_001)",
}

COUNT_TRANSLATIONS = {
    "blocks": "Framework must have exactly 21 blocks",
    "emails": "Email campaign must have 8-10 emails",
}

CROSSLINK_HINTS = {
    "crosslink_duplicate_block_ids": "Every block_id must appear exactly once.",
    "crosslink_duplicate_email_ids": "Every email_id must appear exactly once.",
    "crosslink_duplicate_social_ids": "Every social_id must be unique across all three post arrays.",
    "crosslink_duplicate_checklist_ids": "Every checklist_id must be unique across pre, live and post arrays.",
    "crosslink_invalid_phase": "Phase mapping: B01-B07=\"beginning\", B08-B14=\"middle\", B15-B21=\"end\". Check each block has correct phase for its ID.",
    "crosslink_email_count_invalid": "You must have 8-10 emails. Adjust the array length.",
    "crosslink_social_count_invalid": "The three post arrays must hold 6-18 posts in total.",
    "crosslink_invalid_checklist_category": "Move each checklist item into the array matching its prefix, or fix the prefix.",
    "crosslink_invalid_block_id": "Every timeline block_id must reference a block that exists in the framework (B01-B21).",
    "crosslink_invalid_time_bounds": "Every segment needs start_minute strictly less than end_minute.",
    "crosslink_time_exceeds_duration": "No segment may end after total_duration_minutes.",
    "crosslink_overlapping_segments": "Segments must not overlap: each start_minute must be at or after the previous end_minute.",
    "crosslink_duration_mismatch": "total_duration_minutes must be within 10% of the target webinar length.",
}

CROSSLINK_TRANSLATIONS = {
    "crosslink_duplicate_block_ids": "Block IDs must be unique",
    "crosslink_duplicate_email_ids": "Email IDs must be unique",
    "crosslink_duplicate_social_ids": "Social IDs must be unique across all post types",
    "crosslink_duplicate_checklist_ids": "Checklist IDs must be unique",
    "crosslink_invalid_phase": "Block phases must follow B01-B07 beginning, B08-B14 middle, B15-B21 end",
    "crosslink_overlapping_segments": "Run of show segments must not overlap",
    "crosslink_invalid_block_id": "Run of show references blocks that do not exist in the framework",
    "crosslink_duration_mismatch": "Run of show length must match the webinar length",
}


@dataclass
class RepairContext:
    dependencies: DependencyMap
    constraints: TargetConstraints
    system_prompt: str
    user_prompt: str
    initial_error: Optional[Exception] = None
    on_repair_attempt: Optional[Callable[[int, int], None]] = None
    on_normalization: Optional[Callable[[NormalizationLog], None]] = None
    on_validating: Optional[Callable[[], None]] = None


@dataclass
class RepairResult:
    content: Any
    attempts: int
    normalization_log: NormalizationLog
    validation: ValidationResult


def _leaf(field: str) -> str:
    return field.rsplit(".", 1)[-1].split("[", 1)[0]


def _resolve(schema: Dict, node: Dict) -> Dict:
    ref = node.get("$ref")
    if isinstance(ref, str) and ref.startswith("#/definitions/"):
        return schema.get("definitions", {}).get(ref.split("/")[-1], {})
    return node


def array_bounds(kind: DeliverableKind, field: str) -> Optional[Tuple[Optional[int], Optional[int]]]:
    schema = load_schema(kind.id)
    node: Dict = schema
    for part in field.replace("[", ".[").split("."):
        if not part:
            continue
        node = _resolve(schema, node)
        if part.startswith("["):
            node = node.get("items", {})
        else:
            node = node.get("properties", {}).get(part, {})
    node = _resolve(schema, node)
    if node.get("type") != "array":
        return None
    return node.get("minItems"), node.get("maxItems")


def _count_phrase(bounds: Tuple[Optional[int], Optional[int]]) -> str:
    low, high = bounds
    if low is not None and low == high:
        return f"EXACTLY {low}"
    if low is not None and high is not None:
        return f"between {low} and {high}"
    if low is not None:
        return f"at least {low}"
    return f"at most {high}"


def repair_hints(kind: DeliverableKind, issues: List[ValidationIssue]) -> List[str]:
    hints: List[str] = []
    for issue in issues:
        leaf = _leaf(issue.field)
        if issue.kind == "schema" and leaf in ID_HINTS:
            hints.append(ID_HINTS[leaf])
        if leaf == "phase":
            hints.append(CROSSLINK_HINTS["crosslink_invalid_phase"])
        if issue.code in ("schema_minItems", "schema_maxItems"):
            bounds = array_bounds(kind, issue.field)
            if bounds:
                hints.append(
                    f"`{issue.field}` MUST contain {_count_phrase(bounds)} items. "
                    "Count the array and add or remove entries."
                )
        if issue.code == "schema_minLength":
            hints.append(
                f"`{issue.field}` is too short ({issue.detail}). Expand it with more concrete detail."
            )
        if issue.code == "schema_additionalProperties":
            hints.append(
                f"Remove extra fields not in the schema. Found unexpected keys at {issue.field or 'root'}."
            )
        if issue.code == "schema_type":
            hints.append(f'Field "{issue.field or "root"}" has wrong type: {issue.detail}.')
        if issue.code in CROSSLINK_HINTS:
            hints.append(CROSSLINK_HINTS[issue.code])
    return list(dict.fromkeys(hints))


def translate_issue(issue: ValidationIssue) -> str:
    leaf = _leaf(issue.field)
    if issue.kind == "schema":
        if leaf in ID_TRANSLATIONS and issue.code == "schema_pattern":
            return ID_TRANSLATIONS[leaf]
        if issue.field == "gamma_prompt" and issue.code == "schema_minLength":
            return "Deck prompt must be at least 100 characters"
        if issue.code == "schema_type":
            return f'Field "{issue.field or "root"}" has wrong type ({issue.detail})'
        if issue.field in COUNT_TRANSLATIONS and issue.code in ("schema_minItems", "schema_maxItems"):
            return COUNT_TRANSLATIONS[issue.field]
    if issue.code in CROSSLINK_TRANSLATIONS:
        return CROSSLINK_TRANSLATIONS[issue.code]
    return f"{issue.field or 'root'}: {issue.detail}"


def translate_issues(issues: List[ValidationIssue]) -> List[str]:
    return list(dict.fromkeys(translate_issue(issue) for issue in issues))


def build_repair_prompt(
    kind: DeliverableKind, candidate: Any, issues: List[ValidationIssue], attempt: int
) -> Tuple[str, str]:
    hints = repair_hints(kind, issues)
    hints_section = ""
    if hints:
        numbered = "\n".join(f"{index}. {hint}" for index, hint in enumerate(hints, start=1))
        hints_section = f"\n\nSPECIFIC FIX INSTRUCTIONS:\n{numbered}"

    system = (
        "You are a JSON repair specialist. Your task is to fix validation errors in JSON output.\n"
        f"This is repair attempt {attempt}. Previous attempts failed validation.\n\n"
        f"CONSTRAINT SUMMARY FOR {kind.id.value}:\n{kind.constraint_summary}\n\n"
        "CRITICAL RULES:\n"
        "1. Output ONLY valid JSON - no markdown fences, no explanation, no text before or after\n"
        "2. Do NOT add any fields not specified in the schema\n"
        "3. All IDs must use leading zeros (B01 not B1, E01 not E1, S01 not S1, CL_pre_001 not CL_pre_1)\n"
        "4. Fix ALL errors listed, not just the first one"
        f"{hints_section}"
    )

    errors = json.dumps(
        [
            {"path": issue.field, "message": issue.detail, "code": issue.code, "kind": issue.kind}
            for issue in issues
        ],
        indent=2,
    )
    output = json.dumps(candidate, indent=2, ensure_ascii=False)[:MAX_OUTPUT_CHARS]
    user = (
        "The following JSON failed validation with these errors:\n\n"
        f"ERRORS:\n{errors}\n\n"
        f"INVALID OUTPUT (truncated if too long):\n{output}\n\n"
        "Return a COMPLETE, CORRECTED JSON object that:\n"
        "1. Fixes all validation errors listed above\n"
        "2. Matches the required schema exactly\n"
        "3. Contains no extra fields\n"
        "4. Uses correct ID formats with leading zeros"
    )
    return system, user


def _generation_issue(kind: DeliverableKind, error: Exception) -> ValidationIssue:
    return ValidationIssue(
        kind="generation",
        deliverable=kind.id.value,
        field="",
        detail=str(error),
        code=type(error).__name__,
    )


async def attempt_repair(
    raw_output: Any,
    kind: DeliverableKind,
    context: RepairContext,
    client: ModelClient,
    max_attempts: Optional[int] = None,
) -> RepairResult:
    budget = max_attempts or kind.max_attempts
    name = kind.id.value
    candidate = raw_output
    last_error = context.initial_error
    last_canonical: Any = None
    issues: List[ValidationIssue] = []

    for attempt in range(1, budget + 1):
        if candidate is not None:
            canonical, log = kind.canonicalize(candidate)
            if log.changes and context.on_normalization:
                context.on_normalization(log)
            if context.on_validating:
                context.on_validating()
            validation = kind.validate(canonical, context.dependencies, context.constraints)
            if validation.ok:
                if attempt > 1:
                    logger.info("[repair] deliverable=%s succeeded attempt=%d/%d", name, attempt, budget)
                return RepairResult(
                    content=canonical, attempts=attempt, normalization_log=log, validation=validation
                )
            last_canonical = canonical
            issues = validation.issues
        else:
            issues = [_generation_issue(kind, last_error or GenerationError("no model output"))]

        if attempt == budget:
            break

        logger.warning(
            "[repair] deliverable=%s attempt=%d/%d issues=%d", name, attempt, budget, len(issues)
        )
        if context.on_repair_attempt:
            context.on_repair_attempt(attempt, budget)

        if candidate is None:
            system, user = context.system_prompt, context.user_prompt
        else:
            system, user = build_repair_prompt(kind, last_canonical, issues, attempt)
        try:
            candidate = await client.call(system, user)
        except GenerationError as exc:
            if not exc.retryable:
                raise
            logger.warning("[repair] deliverable=%s model call failed: %s", name, exc)
            candidate = None
            last_error = exc

    logger.error("[repair] deliverable=%s exhausted attempts=%d", name, budget)
    raise RepairExhaustedError(
        deliverable=name,
        attempts=budget,
        translated=translate_issues(issues),
        issues=issues,
        last_candidate=last_canonical,
    )
