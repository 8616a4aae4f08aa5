from __future__ import annotations

import math
from typing import Any, Callable, ClassVar, Dict, FrozenSet, List, Sequence, Tuple

from webinar_pipeline.canonicalizer import Scope, SortRule, run_rules
from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.contracts.ids import (
    BLOCK_ID,
    CHECKLIST_CATEGORIES,
    EMAIL_ID,
    SOCIAL_ID,
    IdRule,
    phase_for_block_id,
    rehome_checklist_id,
)
from webinar_pipeline.contracts.types import (
    DependencyMap,
    NormalizationLog,
    PlaceholderLocation,
    TargetConstraints,
    ValidationIssue,
    ValidationResult,
)
from webinar_pipeline.gates import crosslinks
from webinar_pipeline.gates.schema import validate_schema

QA_FIELDS = ("assumptions", "placeholders", "claims_requiring_proof")
QA_SCOPE = Scope(path=("qa",), fields=QA_FIELDS)


def _derived_phase(block: Dict[str, Any]) -> Any:
    block_id = block.get("block_id")
    if not isinstance(block_id, str):
        return None
    phase = phase_for_block_id(block_id)
    return phase.value if phase else None


def _numeric_id_key(field: str, rule: IdRule) -> Callable[[Any], float]:
    def key(item: Any) -> float:
        if not isinstance(item, dict) or not isinstance(item.get(field), str):
            return math.inf
        number = rule.number(item[field])
        return math.inf if number is None else number

    return key


def _minute_key(item: Any) -> float:
    if not isinstance(item, dict):
        return math.inf
    value = item.get("start_minute")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return math.inf
    return value


class DeliverableKind:
    id: ClassVar[DeliverableId]
    scopes: ClassVar[Sequence[Scope]] = ()
    sorts: ClassVar[Sequence[SortRule]] = ()
    complex: ClassVar[bool] = False
    non_critical_fields: ClassVar[FrozenSet[str]] = frozenset()
    constraint_summary: ClassVar[str] = ""
    prompt_name: ClassVar[str] = ""

    @property
    def max_attempts(self) -> int:
        return 3 if self.complex else 2

    def canonicalize(self, raw: Any) -> Tuple[Any, NormalizationLog]:
        return run_rules(self.id.value, raw, self.scopes, self.sorts)

    def validate_schema(self, content: Any) -> ValidationResult:
        return validate_schema(self.id, content)

    def crosslink_issues(
        self, content: Any, dependencies: DependencyMap, constraints: TargetConstraints
    ) -> List[ValidationIssue]:
        return []

    def validate_crosslinks(
        self, content: Any, dependencies: DependencyMap, constraints: TargetConstraints
    ) -> ValidationResult:
        return ValidationResult(issues=self.crosslink_issues(content, dependencies, constraints))

    def validate(
        self,
        content: Any,
        dependencies: DependencyMap | None = None,
        constraints: TargetConstraints | None = None,
    ) -> ValidationResult:
        schema_result = self.validate_schema(content)
        if not schema_result.ok:
            return schema_result
        return schema_result.merge(
            self.validate_crosslinks(
                content, dependencies or {}, constraints or TargetConstraints()
            )
        )

    def extra_placeholders(self, artifact_id: str, content: Any) -> List[PlaceholderLocation]:
        return []


class PreflightKind(DeliverableKind):
    id = DeliverableId.PREFLIGHT
    prompt_name = "preflight"
    scopes = (
        Scope(
            path=(),
            fields=(
                "status",
                "readiness",
                "missing_context",
                "assumptions",
                "recommended_questions",
                "risk_flags",
            ),
        ),
        Scope(path=("readiness",), fields=("score", "rationale"), numbers=("score",)),
        Scope(
            path=("missing_context", "*"),
            fields=("field", "why_it_matters", "example_answer"),
        ),
    )
    constraint_summary = (
        "status is can_proceed or blocked. readiness.score is an integer 0-100 with a "
        "non-empty rationale. missing_context items carry field, why_it_matters and "
        "example_answer. assumptions and recommended_questions are string arrays."
    )


class DossierKind(DeliverableKind):
    id = DeliverableId.WR1
    prompt_name = "wr1_dossier"
    scopes = (
        Scope(
            path=(),
            fields=(
                "parsed_intake",
                "executive_summary",
                "cleaned_transcript",
                "structured_notes",
                "main_themes",
                "speaker_insights",
                "proof_points",
                "qa",
                "edited_fields",
            ),
        ),
        Scope(
            path=("parsed_intake",),
            fields=(
                "client_name",
                "company",
                "webinar_title",
                "offer",
                "target_audience",
                "tone",
                "primary_cta_type",
                "speaker_name",
                "speaker_title",
            ),
        ),
        Scope(path=("executive_summary",), fields=("overview", "key_points")),
        Scope(path=("proof_points", "*"), fields=("type", "content", "source")),
        QA_SCOPE,
    )
    constraint_summary = (
        "parsed_intake holds nine nullable strings (primary_cta_type is book_call, "
        "buy_now, hybrid or null). proof_points[].type is testimonial, metric or "
        "case_study with a nullable source. qa has assumptions, placeholders and "
        "claims_requiring_proof arrays."
    )


class FrameworkKind(DeliverableKind):
    id = DeliverableId.WR2
    prompt_name = "wr2_framework"
    complex = True
    scopes = (
        Scope(path=(), fields=("blocks", "qa")),
        Scope(
            path=("blocks", "*"),
            fields=(
                "block_id",
                "phase",
                "title",
                "purpose",
                "talk_track_md",
                "speaker_notes_md",
                "transition_in",
                "transition_out",
                "timebox_minutes",
                "proof_insertion_points",
                "objections_handled",
            ),
            ids={"block_id": BLOCK_ID.pad},
            numbers=("timebox_minutes",),
            derived={"phase": _derived_phase},
        ),
        QA_SCOPE,
    )
    sorts = (SortRule(key="blocks", sort_key=_numeric_id_key("block_id", BLOCK_ID), label="block_id"),)
    constraint_summary = (
        "EXACTLY 21 blocks with block_id B01-B21 (two digits). Phases: B01-B07 "
        "beginning, B08-B14 middle, B15-B21 end. timebox_minutes is an integer "
        "1-60 and the block total should match the webinar length."
    )

    def crosslink_issues(
        self, content: Any, dependencies: DependencyMap, constraints: TargetConstraints
    ) -> List[ValidationIssue]:
        return crosslinks.check_framework(content, dependencies, constraints)


class LandingPageKind(DeliverableKind):
    id = DeliverableId.WR3
    prompt_name = "wr3_landing_page"
    scopes = (
        Scope(
            path=(),
            fields=(
                "hero_headline",
                "subheadline",
                "bullets",
                "agenda_preview",
                "proof_blocks",
                "speaker_bio",
                "cta_block",
                "faq",
                "who_its_for",
                "who_its_not_for",
                "legal_disclaimer_md",
                "qa",
            ),
        ),
        Scope(
            path=("agenda_preview", "*"),
            fields=("segment", "timebox_minutes", "promise"),
            numbers=("timebox_minutes",),
        ),
        Scope(
            path=("proof_blocks", "*"),
            fields=("type", "content", "needs_source"),
            booleans=("needs_source",),
        ),
        Scope(path=("speaker_bio",), fields=("one_liner", "credibility_bullets")),
        Scope(path=("cta_block",), fields=("headline", "body", "button_label", "link_placeholder")),
        Scope(path=("faq", "*"), fields=("question", "answer")),
        QA_SCOPE,
    )
    constraint_summary = (
        "bullets has 3-7 items. proof_blocks[].needs_source is a boolean. cta_block "
        "has headline, body, button_label and link_placeholder. faq items are "
        "question/answer pairs."
    )

    def extra_placeholders(self, artifact_id: str, content: Any) -> List[PlaceholderLocation]:
        locations: List[PlaceholderLocation] = []
        if not isinstance(content, dict):
            return locations
        blocks = content.get("proof_blocks")
        if not isinstance(blocks, list):
            return locations
        for index, block in enumerate(blocks):
            if isinstance(block, dict) and block.get("needs_source") is True:
                locations.append(
                    PlaceholderLocation(
                        artifact_id=artifact_id,
                        field_path=f"proof_blocks[{index}]",
                        placeholder_text="needs_source=true",
                        is_critical=True,
                    )
                )
        return locations


class EmailCampaignKind(DeliverableKind):
    id = DeliverableId.WR4
    prompt_name = "wr4_email_campaign"
    complex = True
    scopes = (
        Scope(path=(), fields=("send_rules", "emails", "qa")),
        Scope(
            path=("send_rules",),
            fields=("from_name_placeholder", "from_email_placeholder", "reply_to_placeholder"),
        ),
        Scope(
            path=("emails", "*"),
            fields=(
                "email_id",
                "timing",
                "subject",
                "preview_text",
                "body_markdown",
                "primary_cta_label",
                "primary_cta_link_placeholder",
            ),
            ids={"email_id": EMAIL_ID.pad},
        ),
        QA_SCOPE,
    )
    sorts = (SortRule(key="emails", sort_key=_numeric_id_key("email_id", EMAIL_ID), label="email_id"),)
    constraint_summary = (
        "8-10 emails with unique email_id E01-E10 (two digits). send_rules holds "
        "from_name_placeholder, from_email_placeholder and reply_to_placeholder."
    )

    def crosslink_issues(
        self, content: Any, dependencies: DependencyMap, constraints: TargetConstraints
    ) -> List[ValidationIssue]:
        return crosslinks.check_email_campaign(content, dependencies, constraints)


class SocialPackKind(DeliverableKind):
    id = DeliverableId.WR5
    prompt_name = "wr5_social_pack"
    complex = True
    scopes = (
        Scope(path=(), fields=("linkedin_posts", "x_posts", "last_chance_blurbs", "qa")),
        Scope(
            path=("linkedin_posts", "*"),
            fields=("social_id", "hook", "body", "cta_line"),
            ids={"social_id": SOCIAL_ID.pad},
        ),
        Scope(path=("x_posts", "*"), fields=("social_id", "body"), ids={"social_id": SOCIAL_ID.pad}),
        Scope(
            path=("last_chance_blurbs", "*"),
            fields=("social_id", "body"),
            ids={"social_id": SOCIAL_ID.pad},
        ),
        QA_SCOPE,
    )
    constraint_summary = (
        "3-8 linkedin_posts, 2-6 x_posts and 1-4 last_chance_blurbs; 6-18 posts in "
        "total. social_id values S01-S18 (two digits) are unique across all three arrays."
    )

    def crosslink_issues(
        self, content: Any, dependencies: DependencyMap, constraints: TargetConstraints
    ) -> List[ValidationIssue]:
        return crosslinks.check_social_pack(content, dependencies, constraints)


class RunOfShowKind(DeliverableKind):
    id = DeliverableId.WR6
    prompt_name = "wr6_run_of_show"
    complex = True
    non_critical_fields = frozenset({"coach_cue", "fallback_if_cold", "time_check"})
    scopes = (
        Scope(
            path=(),
            fields=("total_duration_minutes", "timeline", "qa"),
            numbers=("total_duration_minutes",),
        ),
        Scope(
            path=("timeline", "*"),
            fields=(
                "start_minute",
                "end_minute",
                "segment_title",
                "block_id",
                "description",
                "coach_cue",
                "fallback_if_cold",
                "time_check",
            ),
            ids={"block_id": BLOCK_ID.pad},
            numbers=("start_minute", "end_minute"),
        ),
        QA_SCOPE,
    )
    sorts = (SortRule(key="timeline", sort_key=_minute_key, label="start_minute"),)
    constraint_summary = (
        "total_duration_minutes is an integer 15-180 within 10% of the webinar "
        "length. Every timeline segment has start_minute < end_minute <= "
        "total_duration_minutes, does not overlap its neighbours and references "
        "a block_id that exists in WR2."
    )

    def crosslink_issues(
        self, content: Any, dependencies: DependencyMap, constraints: TargetConstraints
    ) -> List[ValidationIssue]:
        return crosslinks.check_run_of_show(content, dependencies, constraints)


def _checklist_scope(category: str) -> Scope:
    return Scope(
        path=(f"{category}_webinar", "*"),
        fields=("checklist_id", "task", "timing", "notes"),
        ids={"checklist_id": lambda value, category=category: rehome_checklist_id(value, category)},
    )


class ChecklistKind(DeliverableKind):
    id = DeliverableId.WR7
    prompt_name = "wr7_checklist"
    complex = True
    scopes = (
        Scope(path=(), fields=("pre_webinar", "live_webinar", "post_webinar", "qa")),
        *[_checklist_scope(category) for category in CHECKLIST_CATEGORIES],
        QA_SCOPE,
    )
    constraint_summary = (
        "checklist_id uses three digits and the prefix of its array: CL_pre_001 in "
        "pre_webinar, CL_live_001 in live_webinar, CL_post_001 in post_webinar. "
        "IDs are unique across all arrays."
    )

    def crosslink_issues(
        self, content: Any, dependencies: DependencyMap, constraints: TargetConstraints
    ) -> List[ValidationIssue]:
        return crosslinks.check_checklist(content, dependencies, constraints)


class DeckPromptKind(DeliverableKind):
    id = DeliverableId.WR8
    prompt_name = "wr8_deck_prompt"
    scopes = (
        Scope(
            path=(),
            fields=("gamma_prompt", "slide_count_recommendation", "visual_direction", "key_slides", "qa"),
            numbers=("slide_count_recommendation",),
        ),
        Scope(
            path=("key_slides", "*"),
            fields=("slide_number", "title", "purpose", "content_points"),
            numbers=("slide_number",),
        ),
        QA_SCOPE,
    )
    constraint_summary = (
        "gamma_prompt is at least 100 characters. slide_count_recommendation is an "
        "integer 5-50. key_slides items carry slide_number, title, purpose and "
        "content_points."
    )


class ReadinessReportKind(DeliverableKind):
    id = DeliverableId.WR9
    constraint_summary = "Assembled locally from validation results; never generated."


KINDS: Dict[DeliverableId, DeliverableKind] = {
    kind.id: kind
    for kind in (
        PreflightKind(),
        DossierKind(),
        FrameworkKind(),
        LandingPageKind(),
        EmailCampaignKind(),
        SocialPackKind(),
        RunOfShowKind(),
        ChecklistKind(),
        DeckPromptKind(),
        ReadinessReportKind(),
    )
}


def kind_for(deliverable: Any) -> DeliverableKind:
    return KINDS[DeliverableId(deliverable)]
