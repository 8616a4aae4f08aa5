from __future__ import annotations

from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.contracts.types import TargetConstraints
from webinar_pipeline.gates.crosslinks import validate_crosslinks
from webinar_pipeline.gates.schema import validate_schema
from webinar_pipeline.kinds import kind_for

SIXTY = TargetConstraints(webinar_length_minutes=60)


def _codes(result):
    return [issue.code for issue in result.issues]


class TestFramework:
    def test_duplicate_block_ids_pass_schema_but_fail_crosslinks(self, payload_for):
        framework = payload_for("WR2")
        framework["blocks"][1]["block_id"] = "B01"

        assert validate_schema(DeliverableId.WR2, framework).ok
        result = validate_crosslinks(DeliverableId.WR2, framework, {}, SIXTY)

        assert not result.ok
        assert "crosslink_duplicate_block_ids" in _codes(result)
        assert "B01" in result.issues[0].detail

    def test_phase_mismatch(self, payload_for):
        framework = payload_for("WR2")
        framework["blocks"][7]["phase"] = "beginning"

        result = validate_crosslinks(DeliverableId.WR2, framework, {}, SIXTY)

        assert _codes(result) == ["crosslink_invalid_phase"]
        assert result.issues[0].field == "blocks[7].phase"

    def test_duration_budget_is_advisory(self, payload_for):
        framework = payload_for("WR2", length=60)

        result = validate_crosslinks(
            DeliverableId.WR2, framework, {}, TargetConstraints(webinar_length_minutes=90)
        )

        assert result.ok
        assert _codes(result) == ["duration_mismatch"]
        assert result.warnings == result.errors
        assert "33.3% difference" in result.errors[0]

    def test_duration_within_tolerance(self, payload_for):
        framework = payload_for("WR2", length=60)
        result = validate_crosslinks(
            DeliverableId.WR2, framework, {}, TargetConstraints(webinar_length_minutes=55)
        )
        assert result.issues == []


class TestEmailsAndSocial:
    def test_duplicate_email_ids(self, payload_for):
        emails = payload_for("WR4")
        emails["emails"][7]["email_id"] = "E01"
        result = validate_crosslinks(DeliverableId.WR4, emails)
        assert _codes(result) == ["crosslink_duplicate_email_ids"]

    def test_social_ids_unique_across_arrays(self, payload_for):
        social = payload_for("WR5")
        social["last_chance_blurbs"][0]["social_id"] = "S01"

        assert validate_schema(DeliverableId.WR5, social).ok
        result = validate_crosslinks(DeliverableId.WR5, social)

        assert _codes(result) == ["crosslink_duplicate_social_ids"]


class TestRunOfShow:
    def test_valid_against_framework(self, payload_for, record_for):
        result = validate_crosslinks(
            DeliverableId.WR6, payload_for("WR6"), {DeliverableId.WR2: record_for("WR2")}, SIXTY
        )
        assert result.issues == []

    def test_missing_framework_is_a_dependency_issue(self, payload_for):
        result = validate_crosslinks(DeliverableId.WR6, payload_for("WR6"), {}, SIXTY)
        assert [issue.kind for issue in result.issues] == ["dependency"]
        assert _codes(result) == ["crosslink_missing_dependency"]

    def test_invalid_framework_short_circuits(self, payload_for, record_for):
        run_of_show = payload_for("WR6")
        run_of_show["timeline"][0]["block_id"] = "B99"
        result = validate_crosslinks(
            DeliverableId.WR6,
            run_of_show,
            {DeliverableId.WR2: record_for("WR2", validated=False)},
            SIXTY,
        )
        assert _codes(result) == ["crosslink_dependency_invalid"]

    def test_segment_checks_accumulate(self, payload_for, record_for):
        framework = payload_for("WR2")
        framework["blocks"] = framework["blocks"][:20]
        run_of_show = payload_for("WR6")
        timeline = run_of_show["timeline"]
        timeline[1]["start_minute"] = 2
        timeline[2]["end_minute"] = timeline[2]["start_minute"]
        timeline[20]["end_minute"] = 75

        result = validate_crosslinks(
            DeliverableId.WR6,
            run_of_show,
            {DeliverableId.WR2: record_for("WR2", content=framework)},
            SIXTY,
        )

        codes = _codes(result)
        assert "crosslink_invalid_block_id" in codes
        assert "crosslink_invalid_time_bounds" in codes
        assert "crosslink_time_exceeds_duration" in codes
        assert "crosslink_overlapping_segments" in codes

    def test_total_duration_mismatch_is_blocking(self, payload_for, record_for):
        result = validate_crosslinks(
            DeliverableId.WR6,
            payload_for("WR6", length=60),
            {DeliverableId.WR2: record_for("WR2")},
            TargetConstraints(webinar_length_minutes=90),
        )
        assert not result.ok
        assert _codes(result) == ["crosslink_duration_mismatch"]


class TestChecklist:
    def test_category_prefix_must_match_array(self, payload_for):
        checklist = payload_for("WR7")
        checklist["post_webinar"][0]["checklist_id"] = "CL_pre_009"
        result = validate_crosslinks(DeliverableId.WR7, checklist)
        assert _codes(result) == ["crosslink_invalid_checklist_category"]
        assert result.issues[0].field == "post_webinar[0].checklist_id"

    def test_duplicates_across_arrays(self, payload_for):
        checklist = payload_for("WR7")
        checklist["live_webinar"][0]["checklist_id"] = "CL_pre_001"
        result = validate_crosslinks(DeliverableId.WR7, checklist)
        assert _codes(result)[0] == "crosslink_duplicate_checklist_ids"


class TestCombinedValidation:
    def test_crosslinks_skipped_when_schema_fails(self, payload_for):
        framework = payload_for("WR2")
        framework["blocks"][1]["block_id"] = "B01"
        del framework["qa"]

        result = kind_for(DeliverableId.WR2).validate(framework, {}, SIXTY)

        assert {issue.kind for issue in result.issues} == {"schema"}

    def test_schema_and_crosslink_issues_merge(self, payload_for):
        framework = payload_for("WR2")
        result = kind_for(DeliverableId.WR2).validate(
            framework, {}, TargetConstraints(webinar_length_minutes=120)
        )
        assert result.ok
        assert result.errors[0].startswith("crosslink:WR2.blocks")
